"""Async engine and session factory construction.

Engines are built explicitly from DatabaseSettings and owned by the
runtime, so tests and the CLI can point at their own databases.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from prometheus_client import Gauge
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.ext.asyncio import create_async_engine as _create_async_engine

from notification_service.core.database import Base

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from notification_service.core.settings import DatabaseSettings

logger = logging.getLogger(__name__)

database_connections_active = Gauge(
    "database_connections_active",
    "Number of open database connections held by the pool",
)


def create_engine(settings: DatabaseSettings) -> AsyncEngine:
    """Create the async engine described by ``settings``.

    Pool sizing options are only passed for server databases; SQLite uses
    SQLAlchemy's default pool for the driver.
    """
    engine_kwargs: dict[str, Any] = {"echo": settings.echo}
    if not settings.is_sqlite:
        engine_kwargs.update(
            pool_size=settings.pool_size,
            max_overflow=settings.max_overflow,
            pool_timeout=settings.pool_timeout,
            pool_recycle=settings.pool_recycle,
            pool_pre_ping=settings.pool_pre_ping,
        )

    engine = _create_async_engine(settings.url, **engine_kwargs)
    _instrument_pool(engine)

    logger.info(
        "Database engine created",
        extra={"dialect": engine.dialect.name, "operation": "db.create_engine"},
    )
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create the session factory shared by the dispatcher and jobs."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@asynccontextmanager
async def session_scope(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """Yield a session that commits on success and rolls back on error.

    Example:
        async with session_scope(factory) as session:
            await repo.update_status(session, notification_id, "sent")
    """
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_database(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet.

    Production schemas are expected to be managed by migrations; this is
    the bootstrap path for SQLite and fresh environments.
    """
    # Import models so their tables are registered on Base.metadata.
    from notification_service.features.notifications import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ensured", extra={"operation": "db.init"})


async def close_database(engine: AsyncEngine) -> None:
    """Dispose the engine's connection pool."""
    await engine.dispose()
    logger.info("Database engine disposed", extra={"operation": "db.close"})


def _instrument_pool(engine: AsyncEngine) -> None:
    pool = engine.sync_engine.pool

    @event.listens_for(pool, "connect")
    def _receive_connect(dbapi_conn: Any, connection_record: Any) -> None:
        _ = dbapi_conn, connection_record
        database_connections_active.inc()

    @event.listens_for(pool, "close")
    def _receive_close(dbapi_conn: Any, connection_record: Any) -> None:
        _ = dbapi_conn, connection_record
        database_connections_active.dec()


__all__ = [
    "close_database",
    "create_engine",
    "create_session_factory",
    "init_database",
    "session_scope",
]
