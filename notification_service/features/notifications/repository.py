"""Repositories for the notifications feature.

Claims (``claim`` and ``claim_for_retry``) are single conditional UPDATE
statements that check the current status in the WHERE clause. Only one
caller can win a claim, across processes as well as tasks.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import and_, func, or_, select, update

from notification_service.core.database import BaseRepository, utcnow
from notification_service.features.notifications.enums import (
    AnalyticsEvent,
    DeliveryStatus,
    ErrorKind,
    NotificationStatus,
)
from notification_service.features.notifications.models import (
    Notification,
    NotificationAnalytics,
    NotificationDelivery,
    NotificationTemplate,
)

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession


class NotificationTemplateRepository(BaseRepository[NotificationTemplate]):
    """Repository for NotificationTemplate model."""

    def __init__(self) -> None:
        """Initialize with NotificationTemplate model."""
        super().__init__(NotificationTemplate)

    async def get_by_slug(
        self,
        session: AsyncSession,
        slug: str,
    ) -> NotificationTemplate | None:
        """Get an active template by slug.

        Returns:
            Template if found and active, None otherwise
        """
        stmt = select(NotificationTemplate).where(
            and_(
                NotificationTemplate.slug == slug,
                NotificationTemplate.is_active.is_(True),
            )
        )
        result = await session.execute(stmt)
        template = result.scalar_one_or_none()

        self._lazy.debug(
            lambda: f"db.get_by_slug({slug!r}) -> {'found' if template else 'not found'}"
        )
        return template


class NotificationRepository(BaseRepository[Notification]):
    """Repository for Notification model."""

    def __init__(self) -> None:
        """Initialize with Notification model."""
        super().__init__(Notification)

    async def find_by_id(
        self,
        session: AsyncSession,
        notification_id: UUID,
    ) -> Notification | None:
        """Get notification by ID."""
        return await self.get(session, notification_id)

    async def find_scheduled_to_send(
        self,
        session: AsyncSession,
        *,
        now: datetime | None = None,
        limit: int = 100,
    ) -> Sequence[Notification]:
        """Find pending notifications whose scheduled time has been reached.

        Pending rows without ``scheduled_for`` are immediate sends whose
        claim was released after a crash; they are due right away.

        Args:
            session: Database session
            now: Reference time (defaults to the current UTC time)
            limit: Max results

        Returns:
            Due notifications, earliest first
        """
        now = now or utcnow()
        due_at = func.coalesce(Notification.scheduled_for, Notification.created_at)
        stmt = (
            select(Notification)
            .where(
                and_(
                    Notification.status == NotificationStatus.PENDING,
                    or_(
                        Notification.scheduled_for.is_(None),
                        Notification.scheduled_for <= now,
                    ),
                ),
            )
            .order_by(due_at.asc(), Notification.id.asc())
            .limit(limit)
        )

        result = await session.execute(stmt)
        items = result.scalars().all()

        self._lazy.debug(lambda: f"db.find_scheduled_to_send() -> {len(items)} notifications")
        return items

    async def claim(
        self,
        session: AsyncSession,
        notification_id: UUID,
        *,
        now: datetime | None = None,
    ) -> Notification | None:
        """Atomically move a notification from pending to processing.

        Returns:
            The claimed notification (freshly loaded), or None if another
            worker claimed it first or it is no longer pending.
        """
        now = now or utcnow()
        stmt = (
            update(Notification)
            .where(
                and_(
                    Notification.id == notification_id,
                    Notification.status == NotificationStatus.PENDING,
                )
            )
            .values(status=NotificationStatus.PROCESSING, claimed_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        if result.rowcount != 1:
            self._lazy.debug(lambda: f"db.claim({notification_id}) -> lost")
            return None

        self._lazy.debug(lambda: f"db.claim({notification_id}) -> claimed")
        return await self.get(session, notification_id, populate_existing=True)

    async def release_claim(
        self,
        session: AsyncSession,
        notification_id: UUID,
        *,
        now: datetime | None = None,
    ) -> bool:
        """Hand a claimed notification back to the pending pool.

        Used when dispatch raises before an outcome was recorded, so the
        next scheduler cycle can pick the notification up again.

        Returns:
            True if the notification was still processing and got released
        """
        stmt = (
            update(Notification)
            .where(
                and_(
                    Notification.id == notification_id,
                    Notification.status == NotificationStatus.PROCESSING,
                )
            )
            .values(status=NotificationStatus.PENDING, claimed_at=None, updated_at=now or utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        released = result.rowcount == 1

        self._lazy.debug(
            lambda: f"db.release_claim({notification_id}) -> {'released' if released else 'noop'}"
        )
        return released

    async def cancel(
        self,
        session: AsyncSession,
        notification_id: UUID,
        *,
        now: datetime | None = None,
    ) -> Notification | None:
        """Atomically move a pending notification to cancelled.

        Returns:
            The cancelled notification, or None if it was no longer pending
        """
        stmt = (
            update(Notification)
            .where(
                and_(
                    Notification.id == notification_id,
                    Notification.status == NotificationStatus.PENDING,
                )
            )
            .values(status=NotificationStatus.CANCELLED, updated_at=now or utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        if result.rowcount != 1:
            self._lazy.debug(lambda: f"db.cancel({notification_id}) -> not pending")
            return None

        self._lazy.debug(lambda: f"db.cancel({notification_id}) -> cancelled")
        return await self.get(session, notification_id, populate_existing=True)

    async def release_stale_claims(
        self,
        session: AsyncSession,
        *,
        older_than: datetime,
    ) -> int:
        """Return processing notifications claimed before ``older_than`` to pending.

        A worker that dies between claim and completion leaves its
        notification in processing; this makes it eligible again.

        Returns:
            Number of notifications released
        """
        stmt = (
            update(Notification)
            .where(
                and_(
                    Notification.status == NotificationStatus.PROCESSING,
                    Notification.claimed_at.isnot(None),
                    Notification.claimed_at < older_than,
                )
            )
            .values(status=NotificationStatus.PENDING, claimed_at=None, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        released: int = result.rowcount or 0

        if released:
            self._logger.warning(
                "Released stale processing claims",
                extra={
                    "released": released,
                    "claimed_before": older_than.isoformat(),
                    "operation": "db.release_stale_claims",
                },
            )
        return released

    async def update_status(
        self,
        session: AsyncSession,
        notification_id: UUID,
        status: NotificationStatus,
        *,
        now: datetime | None = None,
    ) -> Notification:
        """Set a notification's status.

        Leaving ``processing`` clears the claim; the first move to ``sent``
        stamps ``sent_at``.

        Raises:
            NotFoundError: If the notification doesn't exist
        """
        notification = await self.get_or_raise(session, notification_id)
        notification.status = status
        if status != NotificationStatus.PROCESSING:
            notification.claimed_at = None
        if status == NotificationStatus.SENT and notification.sent_at is None:
            notification.sent_at = now or utcnow()
        await session.flush()

        self._lazy.debug(lambda: f"db.update_status({notification_id}) -> {status}")
        return notification


class NotificationDeliveryRepository(BaseRepository[NotificationDelivery]):
    """Repository for NotificationDelivery model."""

    def __init__(self) -> None:
        """Initialize with NotificationDelivery model."""
        super().__init__(NotificationDelivery)

    async def find_by_notification(
        self,
        session: AsyncSession,
        notification_id: UUID,
    ) -> Sequence[NotificationDelivery]:
        """Get all deliveries for a notification, oldest first."""
        stmt = (
            select(NotificationDelivery)
            .where(NotificationDelivery.notification_id == notification_id)
            .order_by(NotificationDelivery.created_at.asc(), NotificationDelivery.id.asc())
        )
        result = await session.execute(stmt)
        return result.scalars().all()

    list_for_notification = find_by_notification

    async def find_ready_for_retry(
        self,
        session: AsyncSession,
        *,
        max_attempts: int,
        now: datetime | None = None,
        limit: int = 100,
    ) -> Sequence[NotificationDelivery]:
        """Find failed deliveries whose retry time has been reached.

        Args:
            session: Database session
            max_attempts: Deliveries at or above this count are never returned
            now: Reference time (defaults to the current UTC time)
            limit: Max results

        Returns:
            Deliveries ready for retry, earliest next_retry_at first
        """
        now = now or utcnow()
        stmt = (
            select(NotificationDelivery)
            .where(
                and_(
                    NotificationDelivery.status == DeliveryStatus.FAILED,
                    NotificationDelivery.next_retry_at.isnot(None),
                    NotificationDelivery.next_retry_at <= now,
                    NotificationDelivery.attempt_count < max_attempts,
                ),
            )
            .order_by(NotificationDelivery.next_retry_at.asc())
            .limit(limit)
        )

        result = await session.execute(stmt)
        items = result.scalars().all()

        self._lazy.debug(lambda: f"db.find_ready_for_retry() -> {len(items)} deliveries")
        return items

    async def claim_for_retry(
        self,
        session: AsyncSession,
        delivery_id: UUID,
        *,
        max_attempts: int,
        now: datetime | None = None,
    ) -> NotificationDelivery | None:
        """Atomically move a retry-eligible delivery from failed back to pending.

        Returns:
            The claimed delivery (freshly loaded), or None if it was already
            claimed, succeeded, or is no longer eligible.
        """
        now = now or utcnow()
        stmt = (
            update(NotificationDelivery)
            .where(
                and_(
                    NotificationDelivery.id == delivery_id,
                    NotificationDelivery.status == DeliveryStatus.FAILED,
                    NotificationDelivery.next_retry_at.isnot(None),
                    NotificationDelivery.next_retry_at <= now,
                    NotificationDelivery.attempt_count < max_attempts,
                )
            )
            .values(status=DeliveryStatus.PENDING, next_retry_at=None, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        if result.rowcount != 1:
            self._lazy.debug(lambda: f"db.claim_for_retry({delivery_id}) -> lost")
            return None

        return await self.get(session, delivery_id, populate_existing=True)

    async def claim_failed(
        self,
        session: AsyncSession,
        delivery_id: UUID,
        *,
        now: datetime | None = None,
    ) -> NotificationDelivery | None:
        """Atomically move any failed delivery back to pending.

        Unlike ``claim_for_retry`` this ignores the backoff schedule and the
        attempt budget; callers decide eligibility beforehand.

        Returns:
            The claimed delivery (freshly loaded), or None if it is no longer
            failed.
        """
        now = now or utcnow()
        stmt = (
            update(NotificationDelivery)
            .where(
                and_(
                    NotificationDelivery.id == delivery_id,
                    NotificationDelivery.status == DeliveryStatus.FAILED,
                )
            )
            .values(
                status=DeliveryStatus.PENDING,
                next_retry_at=None,
                failed_at=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        if result.rowcount != 1:
            self._lazy.debug(lambda: f"db.claim_failed({delivery_id}) -> lost")
            return None

        return await self.get(session, delivery_id, populate_existing=True)

    async def update_status(
        self,
        session: AsyncSession,
        delivery_id: UUID,
        status: DeliveryStatus,
    ) -> NotificationDelivery:
        """Set a delivery's status without touching attempt bookkeeping.

        Attempt counts and retry times are owned by DeliveryStateTracker;
        this is the plain status write used by administrative paths.

        Raises:
            NotFoundError: If the delivery doesn't exist
        """
        delivery = await self.get_or_raise(session, delivery_id)
        delivery.status = status
        if status == DeliveryStatus.SENT:
            delivery.next_retry_at = None
        await session.flush()
        return delivery

    async def mark_as_failed(
        self,
        session: AsyncSession,
        delivery_id: UUID,
        reason: str,
        *,
        now: datetime | None = None,
    ) -> NotificationDelivery:
        """Mark a delivery terminal-failed so it is never retried.

        Raises:
            NotFoundError: If the delivery doesn't exist
        """
        delivery = await self.get_or_raise(session, delivery_id)
        delivery.status = DeliveryStatus.FAILED
        delivery.last_error = reason
        delivery.error_kind = ErrorKind.TERMINAL
        delivery.next_retry_at = None
        delivery.failed_at = now or utcnow()
        await session.flush()

        self._logger.info(
            "Delivery marked as failed",
            extra={
                "delivery_id": str(delivery_id),
                "channel": delivery.channel,
                "reason": reason,
                "operation": "db.mark_as_failed",
            },
        )
        return delivery


class NotificationAnalyticsRepository(BaseRepository[NotificationAnalytics]):
    """Repository for NotificationAnalytics model (write and purge only)."""

    def __init__(self) -> None:
        """Initialize with NotificationAnalytics model."""
        super().__init__(NotificationAnalytics)

    async def record(
        self,
        session: AsyncSession,
        *,
        notification_id: UUID,
        channel: str,
        event: AnalyticsEvent,
        provider_id: str | None = None,
    ) -> NotificationAnalytics:
        """Append one analytics event."""
        entry = NotificationAnalytics(
            notification_id=notification_id,
            channel=channel,
            event=event,
            provider_id=provider_id,
        )
        session.add(entry)
        await session.flush()

        self._lazy.debug(lambda: f"db.record({notification_id}, {channel}, {event})")
        return entry
