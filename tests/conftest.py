"""
Global pytest fixtures for the Billsight test suite.

Provides:
- Async SQLite database (temporary file) with the full schema
- Session factory for code that opens its own sessions (import pipeline)
- Seed helpers for bills, lines and projects
"""
import os
from datetime import date
from decimal import Decimal
from typing import AsyncGenerator, Iterable, Optional

import pytest
import pytest_asyncio

# Set test environment BEFORE any billsight imports
os.environ["TESTING"] = "true"
os.environ["ENVIRONMENT"] = "development"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["OVH_APPLICATION_KEY"] = "test-app-key"
os.environ["OVH_APPLICATION_SECRET"] = "test-app-secret"
os.environ["OVH_CONSUMER_KEY"] = "test-consumer-key"
os.environ["OVH_RATE_LIMIT_BACKOFF_SECONDS"] = "0"

import billsight.models  # noqa: F401,E402  register mappers
from billsight.models.billing import Bill, BillDetail, Project  # noqa: E402


# ============================================================================
# Async Database Fixtures
# ============================================================================

@pytest_asyncio.fixture
async def async_engine(tmp_path):
    """Create async SQLite engine for testing using a temporary file."""
    from sqlalchemy.ext.asyncio import create_async_engine

    db_url = f"sqlite+aiosqlite:///{tmp_path / 'billsight_test.sqlite'}"
    engine = create_async_engine(db_url, echo=False)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_maker(async_engine):
    """Create tables and return a session factory bound to the test engine."""
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
    from billsight.shared.db.base import Base

    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_maker) -> AsyncGenerator:
    """Provide an async session with proper cleanup."""
    async with session_maker() as session:
        try:
            yield session
        finally:
            await session.rollback()
            await session.close()


# ============================================================================
# Seed helpers
# ============================================================================

def make_line(
    bill_id: str,
    detail_id: str,
    *,
    total: str,
    domain: Optional[str] = None,
    description: str = "",
    service_type: str = "Other",
    resource_type: str = "other",
    project_id: Optional[str] = None,
) -> BillDetail:
    return BillDetail(
        id=f"{bill_id}_{detail_id}",
        bill_id=bill_id,
        project_id=project_id,
        domain=domain,
        description=description,
        quantity=Decimal("1"),
        unit_price=Decimal(total),
        total_price=Decimal(total),
        service_type=service_type,
        resource_type=resource_type,
    )


@pytest.fixture
def seed():
    """Insert projects, bills and lines, then commit."""

    async def _seed(
        session,
        *,
        projects: Iterable[tuple[str, str]] = (),
        bills: Iterable[tuple[str, date]] = (),
        lines: Iterable[BillDetail] = (),
    ) -> None:
        for project_id, name in projects:
            session.add(Project(id=project_id, name=name))
        for bill_id, bill_date in bills:
            session.add(Bill(id=bill_id, date=bill_date, currency="EUR"))
        await session.flush()
        session.add_all(list(lines))
        await session.commit()

    return _seed


@pytest.fixture
def line():
    """Factory for classified BillDetail rows."""
    return make_line
