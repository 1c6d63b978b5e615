"""Pytest configuration and shared fixtures.

Organization:
    - Settings Fixtures: cache isolation between tests
    - Database Fixtures: in-memory SQLite engine, session factory and session
    - Delivery Fixtures: tracker, registry, dispatcher and stub providers

Every database fixture shares one in-memory SQLite connection (StaticPool),
so tests must use sessions one after another, never nested.
"""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator, Callable
from typing import TYPE_CHECKING, Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from notification_service.core.database import Base
from notification_service.core.settings import clear_settings_cache
from notification_service.features.notifications import models  # noqa: F401
from notification_service.features.notifications.delivery import (
    BackoffPolicy,
    DeliveryStateTracker,
)
from notification_service.features.notifications.dispatcher import NotificationDispatcher
from notification_service.features.notifications.enums import Channel
from notification_service.features.notifications.providers import ProviderRegistry, ProviderResult
from notification_service.infra.database import create_session_factory

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

# Keep tests independent of a developer's local configuration
os.environ.setdefault("LOG_CONSOLE_ENABLED", "false")


# ============================================================================
# Settings Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def _fresh_settings() -> Any:
    """Clear cached settings before and after each test.

    Tests that set environment variables with ``monkeypatch.setenv`` see
    their values on the next ``get_*_settings()`` call.
    """
    clear_settings_cache()
    yield
    clear_settings_cache()


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine]:
    """Create an in-memory SQLite engine with all tables created.

    Yields:
        Async SQLAlchemy engine bound to a single shared connection.

    Example:
        async def test_with_db(db_engine):
            async with db_engine.begin() as conn:
                await conn.execute(text("SELECT 1"))
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory configured like the runtime's.

    Example:
        async def test_job(session_factory):
            async with session_scope(session_factory) as session:
                ...
    """
    return create_session_factory(db_engine)


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """Provide a session that is rolled back after the test.

    Example:
        async def test_create(db_session):
            notification = await NotificationRepository().create(db_session, ...)
            assert notification.id is not None
    """
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.rollback()


# ============================================================================
# Delivery Fixtures
# ============================================================================


@pytest.fixture
def tracker() -> DeliveryStateTracker:
    """Tracker with three attempts and deterministic (jitter-free) backoff."""
    return DeliveryStateTracker(
        BackoffPolicy(base_seconds=60.0, max_seconds=3600.0, jitter=0.0),
        max_attempts=3,
    )


@pytest.fixture
def registry() -> ProviderRegistry:
    """Empty provider registry; tests register the providers they need."""
    return ProviderRegistry()


@pytest.fixture
def dispatcher(registry: ProviderRegistry, tracker: DeliveryStateTracker) -> NotificationDispatcher:
    """Dispatcher wired to the ``registry`` and ``tracker`` fixtures."""
    return NotificationDispatcher(registry, tracker, provider_timeout=1.0)


@pytest.fixture
def make_provider() -> Callable[..., MagicMock]:
    """Factory for provider doubles satisfying the Provider protocol.

    ``results`` are returned (or raised, for exceptions) by successive
    ``send`` calls; with none given every call succeeds.

    Example:
        def test_fallback(make_provider):
            primary = make_provider(
                Channel.EMAIL, "primary", ProviderResult.transient("primary", "503")
            )
    """

    def _make(
        channel: Channel,
        provider_id: str,
        *results: ProviderResult | BaseException,
        recipient: str | None = "user@example.com",
    ) -> MagicMock:
        provider = MagicMock()
        provider.channel = channel
        provider.provider_id = provider_id
        provider.resolve_recipient.return_value = recipient
        if not results:
            provider.send = AsyncMock(
                return_value=ProviderResult.ok(provider_id, provider_message_id=f"{provider_id}-1")
            )
        elif len(results) == 1 and isinstance(results[0], ProviderResult):
            provider.send = AsyncMock(return_value=results[0])
        else:
            provider.send = AsyncMock(side_effect=list(results))
        provider.health_check = AsyncMock(return_value=True)
        provider.aclose = AsyncMock()
        return provider

    return _make
