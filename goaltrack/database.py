"""Async SQLAlchemy engine, sessions and the declarative base.

One HTTP request maps to one AsyncSession and one transaction: services only
flush, and get_db_session() commits when the handler returns or rolls back
when it raises.  Activity writes and the goal recompute they trigger are
therefore atomic.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Any

import structlog
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool, StaticPool

from goaltrack.config import Settings, get_settings

log = structlog.get_logger(__name__)


class Base(DeclarativeBase):
    """Metadata owner for every goaltrack table (used by Alembic too)."""


def _redacted(url: str) -> str:
    return url.split("@")[-1]


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _enable_sqlite_foreign_keys(engine: AsyncEngine) -> None:
    # SQLite leaves FK enforcement off per connection unless asked
    @event.listens_for(engine.sync_engine, "connect")
    def _fk_pragma(dbapi_conn: Any, connection_record: Any) -> None:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def _pool_options(url: str, for_test: bool) -> dict[str, Any]:
    if _is_sqlite(url) and ":memory:" in url:
        # Each new connection to :memory: would be a separate, empty database
        return {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
    if for_test:
        return {"poolclass": NullPool}
    if _is_sqlite(url):
        return {}
    return {
        "pool_size": 5,
        "max_overflow": 10,
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }


def build_engine(settings: Settings, *, for_test: bool = False) -> AsyncEngine:
    """Engine for settings.database_url with pooling suited to the backend."""
    engine = create_async_engine(
        settings.database_url,
        echo=settings.db_echo_sql,
        **_pool_options(settings.database_url, for_test),
    )
    if _is_sqlite(settings.database_url):
        _enable_sqlite_foreign_keys(engine)
    return engine


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Objects stay readable after commit so responses can be built from them
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def init_db(settings: Settings | None = None, *, for_test: bool = False) -> None:
    """Create the process-wide engine and session factory."""
    global _engine, _session_factory
    settings = settings or get_settings()
    _engine = build_engine(settings, for_test=for_test)
    _session_factory = build_session_factory(_engine)
    log.info("database.initialized", url=_redacted(settings.database_url))


async def create_all() -> None:
    """Create tables straight from metadata; used for SQLite instead of Alembic."""
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    log.info("database.tables_created")


async def close_db() -> None:
    global _engine, _session_factory
    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _session_factory = None
    log.info("database.closed")


def get_engine() -> AsyncEngine:
    if _engine is None:
        raise RuntimeError("init_db() has not been called")
    return _engine


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session and transaction per request."""
    if _session_factory is None:
        raise RuntimeError("init_db() has not been called")

    async with _session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
