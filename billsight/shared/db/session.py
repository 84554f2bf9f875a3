import time
from dataclasses import dataclass
from threading import Lock
from typing import Any, AsyncGenerator

import structlog
from sqlalchemy import event
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from billsight.shared.core.config import get_settings

logger = structlog.get_logger()

# Ensure ORM mappings are registered for scripts that import the DB layer directly.
import billsight.models  # noqa: F401, E402


@dataclass(slots=True)
class _DBRuntime:
    settings: Any
    engine: AsyncEngine
    session_maker: async_sessionmaker[AsyncSession]


_db_runtime: _DBRuntime | None = None
_db_runtime_lock = Lock()


def _get_slow_query_threshold_seconds() -> float:
    """Return configurable slow-query threshold with a safe fallback."""
    try:
        threshold = float(get_settings().DB_SLOW_QUERY_THRESHOLD_SECONDS)
    except (TypeError, ValueError):
        threshold = 0.2
    return threshold if threshold > 0 else 0.2


def before_cursor_execute(
    conn: Connection,
    _cursor: Any,
    _statement: str,
    _parameters: Any,
    _context: Any,
    _executemany: bool,
) -> None:
    """Record query start time."""
    conn.info.setdefault("query_start_time", []).append(time.perf_counter())


def after_cursor_execute(
    conn: Connection,
    _cursor: Any,
    statement: str,
    parameters: Any,
    _context: Any,
    _executemany: bool,
) -> None:
    """Log slow queries."""
    total = time.perf_counter() - conn.info["query_start_time"].pop(-1)
    threshold = _get_slow_query_threshold_seconds()
    if total > threshold:
        logger.warning(
            "slow_query_detected",
            duration_seconds=round(total, 3),
            threshold_seconds=threshold,
            statement=statement[:200] + "..." if len(statement) > 200 else statement,
            parameters=str(parameters)[:100] if parameters else None,
        )


def _build_pool_config(settings_obj: Any, db_url: str) -> dict[str, Any]:
    pool_config: dict[str, Any] = {
        "pool_pre_ping": True,
        "echo": bool(getattr(settings_obj, "DB_ECHO", False)),
    }
    if "sqlite" in db_url:
        # In-memory SQLite must share one connection across sessions.
        if ":memory:" in db_url:
            pool_config["poolclass"] = StaticPool
    else:
        pool_config.update(
            {
                "pool_size": int(getattr(settings_obj, "DB_POOL_SIZE", 10)),
                "max_overflow": int(getattr(settings_obj, "DB_MAX_OVERFLOW", 10)),
                "pool_recycle": int(getattr(settings_obj, "DB_POOL_RECYCLE", 3600)),
            }
        )
    return pool_config


def register_engine_event_listeners(engine: AsyncEngine) -> None:
    sync_engine = getattr(engine, "sync_engine", None)
    if sync_engine is None:
        return
    event.listen(sync_engine, "before_cursor_execute", before_cursor_execute)
    event.listen(sync_engine, "after_cursor_execute", after_cursor_execute)


def _build_db_runtime() -> _DBRuntime:
    settings_obj = get_settings()
    db_url = str(settings_obj.DATABASE_URL).strip()
    if not db_url:
        raise ValueError("DATABASE_URL is not set. The application cannot start.")

    engine = create_async_engine(db_url, **_build_pool_config(settings_obj, db_url))
    register_engine_event_listeners(engine)
    session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    logger.info("db_runtime_initialized", backend=engine.dialect.name)
    return _DBRuntime(settings=settings_obj, engine=engine, session_maker=session_maker)


def _get_db_runtime() -> _DBRuntime:
    global _db_runtime
    runtime = _db_runtime
    if runtime is not None:
        return runtime
    with _db_runtime_lock:
        runtime = _db_runtime
        if runtime is None:
            runtime = _build_db_runtime()
            _db_runtime = runtime
    return runtime


def reset_db_runtime() -> None:
    """Test helper for forcing runtime re-initialization on next access."""
    global _db_runtime
    runtime = _db_runtime
    _db_runtime = None

    if runtime is None:
        return

    try:
        runtime.engine.sync_engine.dispose()
    except Exception as exc:
        logger.debug("db_runtime_dispose_skipped", error=str(exc), exc_info=True)


def get_engine() -> AsyncEngine:
    """Return the active async engine."""
    return _get_db_runtime().engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Return the active session factory."""
    return _get_db_runtime().session_maker


def async_session_maker(*args: Any, **kwargs: Any) -> Any:
    """Return a new async session from the active session factory."""
    return _get_db_runtime().session_maker(*args, **kwargs)


async def create_schema() -> None:
    """Create all tables (local/dev databases; Alembic owns production schema)."""
    from billsight.shared.db.base import Base

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a session for read-side callers (reporting queries)."""
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()
