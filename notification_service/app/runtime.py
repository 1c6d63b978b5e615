"""Process runtime for the notification service.

Builds every long-lived object once, in dependency order, and owns their
shutdown.

Startup Order:
1. Logging
2. Provider registry (fails fast on misconfigured providers)
3. Database engine and session factory
4. Dispatcher and delivery state tracker
5. APScheduler and the scheduler, retry and cleanup jobs

Shutdown Order: Reverse of startup (what starts first, shuts down last)
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from notification_service.core.settings import (
    get_db_settings,
    get_logging_settings,
    get_notification_settings,
    get_provider_settings,
)
from notification_service.features.notifications.delivery import DeliveryStateTracker
from notification_service.features.notifications.dispatcher import NotificationDispatcher
from notification_service.features.notifications.providers import build_provider_registry
from notification_service.infra.database import (
    close_database,
    create_engine,
    create_session_factory,
    init_database,
)
from notification_service.infra.logging import setup_logging
from notification_service.infra.logging import shutdown as shutdown_logging
from notification_service.tasks import create_scheduler, start_scheduler, stop_scheduler
from notification_service.workers.notifications import (
    NotificationCleanupJob,
    NotificationRetryJob,
    NotificationSchedulerJob,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from apscheduler.schedulers.asyncio import AsyncIOScheduler  # type: ignore[import-untyped]
    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

    from notification_service.core.settings import (
        DatabaseSettings,
        LoggingSettings,
        NotificationSettings,
        ProviderSettings,
    )
    from notification_service.features.notifications.providers import ProviderRegistry
    from notification_service.workers.notifications import PeriodicJob

logger = logging.getLogger(__name__)


class NotificationRuntime:
    """Everything a running notification service process needs."""

    def __init__(
        self,
        *,
        settings: NotificationSettings,
        engine: AsyncEngine,
        session_factory: async_sessionmaker[AsyncSession],
        registry: ProviderRegistry,
        dispatcher: NotificationDispatcher,
        scheduler: AsyncIOScheduler,
        scheduler_job: NotificationSchedulerJob,
        retry_job: NotificationRetryJob,
        cleanup_job: NotificationCleanupJob,
    ) -> None:
        self.settings = settings
        self.engine = engine
        self.session_factory = session_factory
        self.registry = registry
        self.dispatcher = dispatcher
        self.scheduler = scheduler
        self.scheduler_job = scheduler_job
        self.retry_job = retry_job
        self.cleanup_job = cleanup_job
        self._started = False

    @classmethod
    def build(
        cls,
        *,
        notification_settings: NotificationSettings | None = None,
        provider_settings: ProviderSettings | None = None,
        db_settings: DatabaseSettings | None = None,
        log_settings: LoggingSettings | None = None,
        configure_logs: bool = True,
    ) -> NotificationRuntime:
        """Build the runtime from settings (defaults: environment).

        Raises:
            ProviderConfigurationError: If an enabled provider is missing
                credentials
        """
        if configure_logs:
            setup_logging(log_settings or get_logging_settings())

        settings = notification_settings or get_notification_settings()
        registry = build_provider_registry(
            provider_settings or get_provider_settings(),
            timeout=settings.provider_timeout_seconds,
        )

        engine = create_engine(db_settings or get_db_settings())
        session_factory = create_session_factory(engine)

        tracker = DeliveryStateTracker.from_settings(settings)
        dispatcher = NotificationDispatcher.from_settings(registry, tracker, settings)

        scheduler = create_scheduler()
        runtime = cls(
            settings=settings,
            engine=engine,
            session_factory=session_factory,
            registry=registry,
            dispatcher=dispatcher,
            scheduler=scheduler,
            scheduler_job=NotificationSchedulerJob.from_settings(
                session_factory, dispatcher, settings, scheduler=scheduler
            ),
            retry_job=NotificationRetryJob.from_settings(
                session_factory, dispatcher, settings, scheduler=scheduler
            ),
            cleanup_job=NotificationCleanupJob.from_settings(
                session_factory, settings, scheduler=scheduler
            ),
        )
        logger.info(
            "Notification runtime built",
            extra={
                "channels": [str(c) for c in registry.channels()],
                "dialect": engine.dialect.name,
            },
        )
        return runtime

    @property
    def jobs(self) -> dict[str, PeriodicJob]:
        return {
            job.name: job for job in (self.scheduler_job, self.retry_job, self.cleanup_job)
        }

    async def start(self, *, create_schema: bool = False) -> None:
        """Start the scheduler and all three jobs.

        Must be awaited from the event loop the jobs should run on.
        """
        if self._started:
            return
        if create_schema:
            await init_database(self.engine)

        start_scheduler(self.scheduler)
        for job in self.jobs.values():
            job.start()
        self._started = True
        logger.info("Notification runtime started", extra={"jobs": list(self.jobs)})

    async def stop(self) -> None:
        """Stop jobs, then release providers and the database. Idempotent.

        Cycles already running finish before the scheduler shuts down, so
        no dispatch is cancelled halfway through a provider call.
        """
        await asyncio.gather(*(job.stop() for job in self.jobs.values()))
        stop_scheduler(self.scheduler, wait=False)
        await self.registry.aclose()
        await close_database(self.engine)
        self._started = False
        logger.info("Notification runtime stopped")

    @asynccontextmanager
    async def lifespan(self, *, create_schema: bool = False) -> AsyncIterator[NotificationRuntime]:
        """Run the jobs for the duration of the ``async with`` block."""
        await self.start(create_schema=create_schema)
        try:
            yield self
        finally:
            await self.stop()
            shutdown_logging()
