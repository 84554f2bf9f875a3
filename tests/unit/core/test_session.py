import pytest
from sqlalchemy import func, select

from billsight.models.billing import Bill
from billsight.shared.db.session import (
    create_schema,
    get_db,
    get_engine,
    get_session_maker,
    reset_db_runtime,
)


@pytest.mark.asyncio
async def test_runtime_builds_schema_on_configured_database():
    reset_db_runtime()
    try:
        assert get_session_maker() is get_session_maker()
        assert get_engine().dialect.name == "sqlite"

        await create_schema()
        async for session in get_db():
            assert (await session.execute(select(func.count(Bill.id)))).scalar_one() == 0
    finally:
        await get_engine().dispose()
        reset_db_runtime()
