"""Notification dispatcher coordinating multi-channel delivery.

``send`` persists a notification and, unless it is scheduled for later,
delivers it immediately. Each channel is resolved through the provider
registry and tried provider by provider in priority order until one
succeeds. Provider calls for all channels run concurrently; database writes
happen afterwards, one channel at a time, on the caller's session.

The dispatcher never commits. Callers own the transaction boundary.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from notification_service.core.database import utcnow
from notification_service.features.notifications.enums import (
    AnalyticsEvent,
    Channel,
    DeliveryStatus,
    ErrorKind,
    NotificationStatus,
)
from notification_service.features.notifications.exceptions import (
    InvalidNotificationError,
    NoProviderAvailableError,
)
from notification_service.features.notifications.metrics import (
    notification_completed_total,
    notification_created_total,
    notification_delivered_total,
    notification_delivery_duration_seconds,
    notification_provider_attempts_total,
)
from notification_service.features.notifications.models import (
    Notification,
    NotificationDelivery,
)
from notification_service.features.notifications.providers import MessageContent, ProviderResult
from notification_service.features.notifications.repository import (
    NotificationAnalyticsRepository,
    NotificationDeliveryRepository,
    NotificationRepository,
    NotificationTemplateRepository,
)
from notification_service.features.notifications.schemas import (
    ChannelResult,
    SendNotificationResult,
)
from notification_service.features.notifications.templates import TemplateRenderer
from notification_service.infra.logging import get_lazy_logger, log_context

if TYPE_CHECKING:
    from datetime import datetime
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession

    from notification_service.core.settings import NotificationSettings
    from notification_service.features.notifications.delivery import DeliveryStateTracker
    from notification_service.features.notifications.providers import (
        Provider,
        ProviderRegistry,
    )
    from notification_service.features.notifications.schemas import SendNotificationRequest

logger = logging.getLogger(__name__)
_lazy = get_lazy_logger(__name__)


@dataclass(slots=True)
class ChannelAttempt:
    """Outcome of running one channel's provider chain (no I/O state)."""

    channel: Channel
    recipient: str | None = None
    result: ProviderResult | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None
    tried: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.result is not None and self.result.success

    @property
    def provider_id(self) -> str | None:
        return self.result.provider_id if self.result is not None else None


class NotificationDispatcher:
    """Sends notifications through the providers registered per channel.

    Collaborators are injected so that tests and the runtime share one code
    path: the registry decides which providers exist, the tracker owns every
    delivery state change, and the repositories own persistence.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        tracker: DeliveryStateTracker,
        *,
        notifications: NotificationRepository | None = None,
        deliveries: NotificationDeliveryRepository | None = None,
        analytics: NotificationAnalyticsRepository | None = None,
        renderer: TemplateRenderer | None = None,
        provider_timeout: float = 10.0,
    ) -> None:
        """Initialize dispatcher.

        Args:
            registry: Channel to provider lookup
            tracker: Delivery state machine
            notifications: Notification repository
            deliveries: Delivery repository
            analytics: Analytics repository
            renderer: Template renderer for ``template_slug`` requests
            provider_timeout: Upper bound in seconds for a single provider call
        """
        self.registry = registry
        self.tracker = tracker
        self.notifications = notifications or NotificationRepository()
        self.deliveries = deliveries or NotificationDeliveryRepository()
        self.analytics = analytics or NotificationAnalyticsRepository()
        self.renderer = renderer or TemplateRenderer(NotificationTemplateRepository())
        self.provider_timeout = provider_timeout

    @classmethod
    def from_settings(
        cls,
        registry: ProviderRegistry,
        tracker: DeliveryStateTracker,
        settings: NotificationSettings,
    ) -> NotificationDispatcher:
        return cls(registry, tracker, provider_timeout=settings.provider_timeout_seconds)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def send(
        self,
        session: AsyncSession,
        request: SendNotificationRequest,
        *,
        now: datetime | None = None,
    ) -> SendNotificationResult:
        """Persist a notification and deliver it unless scheduled for later.

        Args:
            session: Database session (not committed here)
            request: Validated send request
            now: Reference time (defaults to the current UTC time)

        Returns:
            Aggregate result. ``pending`` with no channel results when the
            notification was scheduled for the future.

        Raises:
            TemplateNotFoundError: If ``template_slug`` is unknown or inactive
            TemplateRenderError: If the template fails to render
            InvalidNotificationError: If the rendered message is empty
        """
        now = now or utcnow()
        title, message = request.title, request.message
        if request.template_slug:
            rendered = await self.renderer.render_slug(
                session, request.template_slug, request.template_params
            )
            message = rendered.message
            if rendered.title is not None:
                title = rendered.title

        if not message or not message.strip():
            msg = "Notification message must not be empty"
            raise InvalidNotificationError(msg, field="message")

        deferred = request.scheduled_for is not None and request.scheduled_for > now
        notification = Notification(
            user_id=request.user_id,
            notification_type=request.notification_type,
            title=title,
            message=message,
            channels=[str(c) for c in request.channels],
            priority=str(request.priority),
            template_slug=request.template_slug,
            template_params=request.template_params or None,
            data=request.data or None,
            extra_metadata=request.metadata or None,
            scheduled_for=request.scheduled_for,
            # Immediate sends are claimed on insert.
            status=NotificationStatus.PENDING if deferred else NotificationStatus.PROCESSING,
            claimed_at=None if deferred else now,
        )
        await self.notifications.create(session, notification)

        notification_created_total.labels(
            notification_type=request.notification_type,
            priority=str(request.priority),
        ).inc()

        if deferred:
            logger.info(
                "Notification scheduled",
                extra={
                    "notification_id": str(notification.id),
                    "user_id": request.user_id,
                    "scheduled_for": notification.scheduled_for.isoformat()
                    if notification.scheduled_for
                    else None,
                },
            )
            return SendNotificationResult(
                notification_id=notification.id,
                status=NotificationStatus.PENDING,
            )

        return await self.dispatch(session, notification, now=now)

    async def dispatch(
        self,
        session: AsyncSession,
        notification: Notification,
        *,
        now: datetime | None = None,
    ) -> SendNotificationResult:
        """Deliver a persisted notification on every requested channel now.

        Channels that already have a delivery row are not attempted again;
        their current state is reported instead. The notification ends
        ``sent`` if any channel succeeded and ``failed`` otherwise.
        """
        now = now or utcnow()
        with log_context(notification_id=str(notification.id), user_id=notification.user_id):
            existing = {
                d.channel: d
                for d in await self.deliveries.find_by_notification(session, notification.id)
            }
            channels = [Channel(c) for c in notification.channels]
            pending = [c for c in channels if c not in existing]

            content = MessageContent.from_notification(notification)
            metadata = self._provider_metadata(notification)
            attempts = await asyncio.gather(
                *(self._attempt_channel(c, notification, content, metadata) for c in pending)
            )

            results: dict[Channel, ChannelResult] = {}
            for attempt in attempts:
                delivery = NotificationDelivery(
                    notification_id=notification.id,
                    channel=str(attempt.channel),
                    recipient=attempt.recipient,
                    status=DeliveryStatus.PENDING,
                    attempt_count=0,
                )
                session.add(delivery)
                await session.flush()
                results[attempt.channel] = await self._record_attempt(
                    session, notification, delivery, attempt, now=now
                )

            for channel in channels:
                if channel in existing:
                    results[channel] = self._existing_result(existing[channel])

            ordered = {c: results[c] for c in channels}
            status = (
                NotificationStatus.SENT
                if any(r.success for r in ordered.values())
                else NotificationStatus.FAILED
            )
            await self.notifications.update_status(session, notification.id, status, now=now)
            notification_completed_total.labels(status=str(status)).inc()

            logger.info(
                "Notification dispatched",
                extra={
                    "status": str(status),
                    "succeeded": [str(c) for c, r in ordered.items() if r.success],
                    "failed": [str(c) for c, r in ordered.items() if not r.success],
                },
            )
            return SendNotificationResult(
                notification_id=notification.id,
                status=status,
                results=ordered,
            )

    async def redeliver(
        self,
        session: AsyncSession,
        delivery: NotificationDelivery,
        notification: Notification,
        *,
        now: datetime | None = None,
    ) -> ChannelResult:
        """Run one channel's provider chain again for an existing delivery.

        The delivery must be pending (claimed by the retry job). A success
        promotes a failed notification to sent.

        Raises:
            InvalidDeliveryTransitionError: If the delivery is terminal
        """
        now = now or utcnow()
        with log_context(notification_id=str(notification.id), delivery_id=str(delivery.id)):
            self.tracker.start_attempt(delivery)
            channel = Channel(delivery.channel)
            attempt = await self._attempt_channel(
                channel,
                notification,
                MessageContent.from_notification(notification),
                self._provider_metadata(notification),
            )
            if attempt.recipient is None:
                attempt.recipient = delivery.recipient
            result = await self._record_attempt(session, notification, delivery, attempt, now=now)

            if result.success and notification.status != NotificationStatus.SENT:
                await self.notifications.update_status(
                    session, notification.id, NotificationStatus.SENT, now=now
                )
            return result

    async def retry(
        self,
        session: AsyncSession,
        notification_id: UUID,
        *,
        force: bool = False,
        now: datetime | None = None,
    ) -> SendNotificationResult:
        """Re-attempt a dispatched notification's failed channels right away.

        Failed deliveries that still have a retry scheduled are attempted
        without waiting for their backoff. With ``force``, terminal-failed
        deliveries are re-opened too. Each delivery is claimed with a
        conditional update, so the retry job never attempts it concurrently.

        Raises:
            NotFoundError: If the notification doesn't exist
            InvalidNotificationError: If the notification has not been
                dispatched yet or was cancelled
        """
        now = now or utcnow()
        notification = await self.notifications.get_or_raise(session, notification_id)
        if notification.status not in (NotificationStatus.SENT, NotificationStatus.FAILED):
            msg = f"Cannot retry a {notification.status} notification"
            raise InvalidNotificationError(msg, field="status")

        results: dict[Channel, ChannelResult] = {}
        for delivery in await self.deliveries.find_by_notification(session, notification.id):
            channel = Channel(delivery.channel)
            if self.tracker.can_reopen(delivery, force=force):
                claimed = await self.deliveries.claim_failed(session, delivery.id, now=now)
                if claimed is not None:
                    results[channel] = await self.redeliver(session, claimed, notification, now=now)
                    continue
                await session.refresh(delivery)
            results[channel] = self._existing_result(delivery)

        ordered = {Channel(c): results[Channel(c)] for c in notification.channels if c in results}
        logger.info(
            "Notification retried",
            extra={
                "notification_id": str(notification.id),
                "force": force,
                "status": str(notification.status),
                "succeeded": [str(c) for c, r in ordered.items() if r.success],
            },
        )
        return SendNotificationResult(
            notification_id=notification.id,
            status=NotificationStatus(notification.status),
            results=ordered,
        )

    async def cancel(
        self,
        session: AsyncSession,
        notification_id: UUID,
        *,
        now: datetime | None = None,
    ) -> bool:
        """Cancel a notification the scheduler has not claimed yet.

        Returns:
            True if the notification was pending and is now cancelled, False
            if it was already claimed, finished or cancelled

        Raises:
            NotFoundError: If the notification doesn't exist
        """
        cancelled = await self.notifications.cancel(session, notification_id, now=now)
        if cancelled is None:
            await self.notifications.get_or_raise(session, notification_id)
            return False

        notification_completed_total.labels(status=str(NotificationStatus.CANCELLED)).inc()
        logger.info("Notification cancelled", extra={"notification_id": str(notification_id)})
        return True

    # ------------------------------------------------------------------
    # Provider chain
    # ------------------------------------------------------------------

    async def _attempt_channel(
        self,
        channel: Channel,
        notification: Notification,
        content: MessageContent,
        metadata: dict[str, Any],
    ) -> ChannelAttempt:
        """Try providers for one channel until one succeeds.

        Never raises; every failure mode becomes part of the returned
        ChannelAttempt.
        """
        start = time.perf_counter()
        attempt = ChannelAttempt(channel=channel)
        try:
            try:
                providers = self.registry.resolve(channel)
            except NoProviderAvailableError as e:
                logger.warning("No provider available", extra={"channel": str(channel)})
                attempt.error = e.message
                attempt.error_kind = ErrorKind.TERMINAL
                return attempt

            failures: list[ProviderResult] = []
            for provider in providers:
                recipient = provider.resolve_recipient(notification)
                if not recipient:
                    failures.append(
                        ProviderResult.terminal(
                            provider.provider_id,
                            f"No {channel} recipient for user {notification.user_id}",
                        )
                    )
                    continue

                attempt.recipient = recipient
                attempt.tried.append(provider.provider_id)
                result = await self._call_provider(provider, recipient, content, metadata)
                outcome = "success" if result.success else str(result.error_kind or ErrorKind.TRANSIENT)
                if result.metadata.get("timeout"):
                    outcome = "timeout"
                notification_provider_attempts_total.labels(
                    channel=str(channel),
                    provider=provider.provider_id,
                    outcome=outcome,
                ).inc()

                if result.success:
                    attempt.result = result
                    return attempt

                failures.append(result)
                _lazy.debug(
                    lambda p=provider.provider_id, r=result: (
                        f"Provider {p} failed for {channel}: {r.error}; trying next"
                    )
                )

            last = failures[-1]
            attempt.result = last
            attempt.error = last.error
            # Retryable if any provider failed transiently.
            attempt.error_kind = (
                ErrorKind.TRANSIENT
                if any(f.error_kind == ErrorKind.TRANSIENT for f in failures)
                else ErrorKind.TERMINAL
            )
            return attempt
        finally:
            notification_delivery_duration_seconds.labels(channel=str(channel)).observe(
                time.perf_counter() - start
            )

    async def _call_provider(
        self,
        provider: Provider,
        recipient: str,
        content: MessageContent,
        metadata: dict[str, Any],
    ) -> ProviderResult:
        try:
            async with asyncio.timeout(self.provider_timeout):
                return await provider.send(recipient, content, metadata)
        except TimeoutError:
            return ProviderResult.transient(
                provider.provider_id,
                f"{provider.provider_id} timed out after {self.provider_timeout:g}s",
                metadata={"timeout": True},
            )
        except Exception as e:
            logger.exception(
                "Provider raised during send",
                extra={"provider": provider.provider_id, "channel": str(provider.channel)},
            )
            return ProviderResult.transient(provider.provider_id, str(e) or type(e).__name__)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def _record_attempt(
        self,
        session: AsyncSession,
        notification: Notification,
        delivery: NotificationDelivery,
        attempt: ChannelAttempt,
        *,
        now: datetime,
    ) -> ChannelResult:
        """Apply an attempt to its delivery row and record analytics."""
        if attempt.recipient is not None:
            delivery.recipient = attempt.recipient

        will_retry = False
        if attempt.success and attempt.result is not None:
            self.tracker.record_success(
                delivery,
                provider_id=attempt.result.provider_id,
                provider_message_id=attempt.result.provider_message_id,
                now=now,
            )
            event = AnalyticsEvent.SENT
        else:
            will_retry = self.tracker.record_failure(
                delivery,
                error=attempt.error or "delivery failed",
                error_kind=attempt.error_kind or ErrorKind.TRANSIENT,
                provider_id=attempt.provider_id,
                now=now,
            )
            event = AnalyticsEvent.FAILED
        await session.flush()

        await self.analytics.record(
            session,
            notification_id=notification.id,
            channel=delivery.channel,
            event=event,
            provider_id=delivery.provider_id,
        )
        notification_delivered_total.labels(channel=delivery.channel, status=str(event)).inc()

        return ChannelResult(
            channel=attempt.channel,
            success=attempt.success,
            status=DeliveryStatus(delivery.status),
            provider_id=delivery.provider_id,
            delivery_id=delivery.id,
            provider_message_id=delivery.provider_message_id,
            error=delivery.last_error,
            will_retry=will_retry,
        )

    def _existing_result(self, delivery: NotificationDelivery) -> ChannelResult:
        return ChannelResult(
            channel=Channel(delivery.channel),
            success=delivery.status == DeliveryStatus.SENT,
            status=DeliveryStatus(delivery.status),
            provider_id=delivery.provider_id,
            delivery_id=delivery.id,
            provider_message_id=delivery.provider_message_id,
            error=delivery.last_error,
            will_retry=delivery.next_retry_at is not None,
        )

    @staticmethod
    def _provider_metadata(notification: Notification) -> dict[str, Any]:
        return {
            **(notification.extra_metadata or {}),
            "notification_id": str(notification.id),
            "notification_type": notification.notification_type,
            "priority": notification.priority,
        }
