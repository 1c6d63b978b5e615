"""Periodic notification jobs.

This module provides:
- NotificationSchedulerJob: deliver notifications whose scheduled time has come
- NotificationRetryJob: re-attempt failed deliveries whose backoff has elapsed
- NotificationCleanupJob: purge rows past their retention window

Each job exposes ``tick()`` for exactly one cycle (tests call it directly
with a fixed ``now``) and ``start()``/``stop()`` to run it on an APScheduler
interval. Jobs run one cycle immediately on start.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from abc import ABC, abstractmethod
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any, ClassVar

from apscheduler.jobstores.base import JobLookupError  # type: ignore[import-untyped]
from apscheduler.triggers.interval import IntervalTrigger  # type: ignore[import-untyped]

from notification_service.core.database import utcnow
from notification_service.features.notifications.enums import DeliveryStatus, NotificationStatus
from notification_service.features.notifications.metrics import (
    notification_claims_released_total,
    notification_cleanup_deleted_total,
    notification_job_duration_seconds,
    notification_job_runs_total,
    notification_retry_total,
)
from notification_service.features.notifications.repository import (
    NotificationAnalyticsRepository,
    NotificationDeliveryRepository,
    NotificationRepository,
)
from notification_service.infra.database import session_scope
from notification_service.infra.logging import get_lazy_logger, log_context

if TYPE_CHECKING:
    from apscheduler.job import Job  # type: ignore[import-untyped]
    from apscheduler.schedulers.asyncio import AsyncIOScheduler  # type: ignore[import-untyped]
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from notification_service.core.settings import NotificationSettings
    from notification_service.features.notifications.dispatcher import NotificationDispatcher

logger = logging.getLogger(__name__)
_lazy = get_lazy_logger(__name__)


class PeriodicJob(ABC):
    """Base class for jobs run on a fixed interval.

    ``stop()`` removes the APScheduler job, makes any already-queued run a
    no-op and waits for a cycle that is in flight to finish. Shut the
    scheduler down only after that: APScheduler cancels coroutine jobs that
    are still running on shutdown.
    """

    name: ClassVar[str]

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        interval_seconds: float,
        scheduler: AsyncIOScheduler | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.interval_seconds = interval_seconds
        self.scheduler = scheduler
        self._job: Job | None = None
        self._stopped = True
        self._cycle_lock = asyncio.Lock()

    @property
    def job_id(self) -> str:
        return f"notifications.{self.name}"

    @property
    def running(self) -> bool:
        return not self._stopped

    @abstractmethod
    async def tick(self, now: datetime | None = None) -> dict[str, Any]:
        """Run exactly one cycle and return its counters.

        Exceptions propagate; ``run_cycle`` is the error-isolating wrapper.
        """

    async def run_cycle(self, now: datetime | None = None) -> dict[str, Any] | None:
        """Run one cycle, logging and counting failures instead of raising.

        Returns:
            The cycle counters, or None if the job is stopped or the cycle
            failed.
        """
        if self._stopped:
            return None

        async with self._cycle_lock:
            # stop() may have run while this cycle waited for the lock.
            if self._stopped:
                return None
            return await self._run_locked(now)

    async def _run_locked(self, now: datetime | None) -> dict[str, Any] | None:
        start = time.perf_counter()
        with log_context(job=self.name, cycle_id=uuid.uuid4().hex[:12]):
            try:
                summary = await self.tick(now)
            except Exception:
                notification_job_runs_total.labels(job=self.name, outcome="error").inc()
                logger.exception(f"Notification {self.name} job cycle failed")
                return None
            finally:
                notification_job_duration_seconds.labels(job=self.name).observe(
                    time.perf_counter() - start
                )

            notification_job_runs_total.labels(job=self.name, outcome="success").inc()
            logger.info(f"Notification {self.name} job cycle completed", extra=summary)
            return summary

    def start(self) -> None:
        """Schedule the job on its interval, with the first run immediately.

        Raises:
            RuntimeError: If the job has no scheduler
        """
        if self.scheduler is None:
            msg = f"{type(self).__name__} has no scheduler"
            raise RuntimeError(msg)
        if self._job is not None:
            logger.warning(f"Notification {self.name} job already started")
            return

        self._stopped = False
        self._job = self.scheduler.add_job(
            self.run_cycle,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=self.job_id,
            name=f"Notification {self.name} job",
            next_run_time=datetime.now(UTC),
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        logger.info(
            f"Notification {self.name} job started",
            extra={"job": self.name, "interval_seconds": self.interval_seconds},
        )

    async def stop(self) -> None:
        """Prevent further cycles and wait for one in flight. Idempotent."""
        self._stopped = True
        if self._job is not None:
            try:
                self._job.remove()
            except JobLookupError:
                _lazy.debug(lambda: f"Job {self.job_id} already removed")
            self._job = None
            logger.info(f"Notification {self.name} job stopped", extra={"job": self.name})

        if self._cycle_lock.locked():
            logger.info(
                f"Waiting for in-flight notification {self.name} cycle", extra={"job": self.name}
            )
        async with self._cycle_lock:
            pass


class NotificationSchedulerJob(PeriodicJob):
    """Deliver due notifications.

    Each cycle releases expired processing claims, then claims and
    dispatches every due notification in its own transaction. When dispatch
    raises, that transaction rolls back and the claim is released so a later
    cycle picks the notification up again.
    """

    name: ClassVar[str] = "scheduler"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        dispatcher: NotificationDispatcher,
        *,
        interval_seconds: float = 60.0,
        batch_size: int = 100,
        claim_lease_seconds: float = 600.0,
        notifications: NotificationRepository | None = None,
        scheduler: AsyncIOScheduler | None = None,
    ) -> None:
        super().__init__(session_factory, interval_seconds=interval_seconds, scheduler=scheduler)
        self.dispatcher = dispatcher
        self.batch_size = batch_size
        self.claim_lease = timedelta(seconds=claim_lease_seconds)
        self.notifications = notifications or dispatcher.notifications

    @classmethod
    def from_settings(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        dispatcher: NotificationDispatcher,
        settings: NotificationSettings,
        *,
        scheduler: AsyncIOScheduler | None = None,
    ) -> NotificationSchedulerJob:
        return cls(
            session_factory,
            dispatcher,
            interval_seconds=settings.scheduler_interval_seconds,
            batch_size=settings.batch_size,
            claim_lease_seconds=settings.claim_lease_seconds,
            scheduler=scheduler,
        )

    async def tick(self, now: datetime | None = None) -> dict[str, Any]:
        now = now or utcnow()
        summary = {
            "released": 0,
            "due": 0,
            "claimed": 0,
            "sent": 0,
            "failed": 0,
            "skipped": 0,
            "errors": 0,
        }

        async with session_scope(self.session_factory) as session:
            summary["released"] = await self.notifications.release_stale_claims(
                session, older_than=now - self.claim_lease
            )
        if summary["released"]:
            notification_claims_released_total.inc(summary["released"])

        async with session_scope(self.session_factory) as session:
            due = await self.notifications.find_scheduled_to_send(
                session, now=now, limit=self.batch_size
            )
            due_ids = [n.id for n in due]
        summary["due"] = len(due_ids)

        for notification_id in due_ids:
            async with session_scope(self.session_factory) as session:
                claimed = await self.notifications.claim(session, notification_id, now=now)
            if claimed is None:
                summary["skipped"] += 1
                continue
            summary["claimed"] += 1

            try:
                async with session_scope(self.session_factory) as session:
                    notification = await self.notifications.get_or_raise(session, notification_id)
                    result = await self.dispatcher.dispatch(session, notification, now=now)
            except Exception:
                logger.exception(
                    "Scheduled notification dispatch failed, releasing claim",
                    extra={"notification_id": str(notification_id)},
                )
                async with session_scope(self.session_factory) as session:
                    await self.notifications.release_claim(session, notification_id, now=now)
                summary["errors"] += 1
                continue

            if result.status == NotificationStatus.SENT:
                summary["sent"] += 1
            else:
                summary["failed"] += 1

        return summary


class NotificationRetryJob(PeriodicJob):
    """Re-attempt failed deliveries whose ``next_retry_at`` has passed.

    The claim (failed -> pending) and the re-attempt share one transaction,
    so a crash mid-attempt rolls the delivery back to its failed state and
    it is picked up again next cycle.
    """

    name: ClassVar[str] = "retry"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        dispatcher: NotificationDispatcher,
        *,
        interval_seconds: float = 300.0,
        batch_size: int = 100,
        deliveries: NotificationDeliveryRepository | None = None,
        notifications: NotificationRepository | None = None,
        scheduler: AsyncIOScheduler | None = None,
    ) -> None:
        super().__init__(session_factory, interval_seconds=interval_seconds, scheduler=scheduler)
        self.dispatcher = dispatcher
        self.batch_size = batch_size
        self.deliveries = deliveries or dispatcher.deliveries
        self.notifications = notifications or dispatcher.notifications

    @classmethod
    def from_settings(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        dispatcher: NotificationDispatcher,
        settings: NotificationSettings,
        *,
        scheduler: AsyncIOScheduler | None = None,
    ) -> NotificationRetryJob:
        return cls(
            session_factory,
            dispatcher,
            interval_seconds=settings.retry_interval_seconds,
            batch_size=settings.batch_size,
            scheduler=scheduler,
        )

    @property
    def max_attempts(self) -> int:
        return self.dispatcher.tracker.max_attempts

    async def tick(self, now: datetime | None = None) -> dict[str, Any]:
        now = now or utcnow()
        summary = {"ready": 0, "sent": 0, "retrying": 0, "exhausted": 0, "skipped": 0, "errors": 0}

        async with session_scope(self.session_factory) as session:
            ready = await self.deliveries.find_ready_for_retry(
                session, max_attempts=self.max_attempts, now=now, limit=self.batch_size
            )
            ready_ids = [d.id for d in ready]
        summary["ready"] = len(ready_ids)

        for delivery_id in ready_ids:
            try:
                outcome = await self._retry_one(delivery_id, now)
            except Exception:
                logger.exception(
                    "Delivery retry failed unexpectedly",
                    extra={"delivery_id": str(delivery_id)},
                )
                summary["errors"] += 1
                continue
            summary[outcome] += 1

        return summary

    async def _retry_one(self, delivery_id: Any, now: datetime) -> str:
        async with session_scope(self.session_factory) as session:
            delivery = await self.deliveries.claim_for_retry(
                session, delivery_id, max_attempts=self.max_attempts, now=now
            )
            if delivery is None:
                return "skipped"

            notification = await self.notifications.find_by_id(session, delivery.notification_id)
            if notification is None:
                await self.deliveries.mark_as_failed(
                    session, delivery_id, "notification not found", now=now
                )
                notification_retry_total.labels(channel=delivery.channel, outcome="exhausted").inc()
                return "exhausted"

            result = await self.dispatcher.redeliver(session, delivery, notification, now=now)

        if result.status == DeliveryStatus.SENT:
            outcome = "sent"
        elif result.will_retry:
            outcome = "retrying"
        else:
            outcome = "exhausted"
        notification_retry_total.labels(channel=str(result.channel), outcome=outcome).inc()
        return outcome


class NotificationCleanupJob(PeriodicJob):
    """Delete notifications, deliveries and analytics past retention.

    Deliveries go first so that databases without enforced foreign keys do
    not keep orphans. Running it twice in a row deletes nothing the second
    time.
    """

    name: ClassVar[str] = "cleanup"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        interval_seconds: float = 3600.0,
        notification_retention_days: int = 30,
        delivery_retention_days: int = 30,
        analytics_retention_days: int = 90,
        notifications: NotificationRepository | None = None,
        deliveries: NotificationDeliveryRepository | None = None,
        analytics: NotificationAnalyticsRepository | None = None,
        scheduler: AsyncIOScheduler | None = None,
    ) -> None:
        super().__init__(session_factory, interval_seconds=interval_seconds, scheduler=scheduler)
        self.notification_retention_days = notification_retention_days
        self.delivery_retention_days = delivery_retention_days
        self.analytics_retention_days = analytics_retention_days
        self.notifications = notifications or NotificationRepository()
        self.deliveries = deliveries or NotificationDeliveryRepository()
        self.analytics = analytics or NotificationAnalyticsRepository()

    @classmethod
    def from_settings(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        settings: NotificationSettings,
        *,
        scheduler: AsyncIOScheduler | None = None,
    ) -> NotificationCleanupJob:
        return cls(
            session_factory,
            interval_seconds=settings.cleanup_interval_seconds,
            notification_retention_days=settings.notification_retention_days,
            delivery_retention_days=settings.delivery_retention_days,
            analytics_retention_days=settings.analytics_retention_days,
            scheduler=scheduler,
        )

    async def tick(self, now: datetime | None = None) -> dict[str, Any]:
        now = now or utcnow()
        async with session_scope(self.session_factory) as session:
            deliveries = await self.deliveries.delete_older_than(
                session, self.delivery_retention_days, now=now
            )
            notifications = await self.notifications.delete_older_than(
                session, self.notification_retention_days, now=now
            )
            analytics = await self.analytics.delete_older_than(
                session, self.analytics_retention_days, now=now
            )

        summary = {"notifications": notifications, "deliveries": deliveries, "analytics": analytics}
        for table, count in summary.items():
            if count:
                notification_cleanup_deleted_total.labels(table=table).inc(count)
        return summary
