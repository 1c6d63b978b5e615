"""Delivery state tracking and retry backoff.

State machine per delivery::

    pending --success--> sent                        (terminal)
    pending --failure--> failed (next_retry_at set)  (retry pending)
    failed  --retry----> pending --> sent | failed ...
    failed with no next_retry_at                     (terminal)

A delivery becomes terminal-failed when it reaches ``max_attempts`` or
when the provider reports a terminal error. DeliveryStateTracker is the
only code that increments ``attempt_count`` or computes ``next_retry_at``.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from notification_service.core.database import utcnow
from notification_service.features.notifications.enums import DeliveryStatus, ErrorKind
from notification_service.features.notifications.exceptions import (
    InvalidDeliveryTransitionError,
)

if TYPE_CHECKING:
    from notification_service.core.settings import NotificationSettings
    from notification_service.features.notifications.models import NotificationDelivery

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class BackoffPolicy:
    """Capped exponential backoff with jitter.

    The delay before retry *n* (1-based) is ``base * 2 ** (n - 1)``, capped
    at ``max_delay``, then scaled by a random factor in ``[1 - jitter, 1]``.

    Attributes:
        base_seconds: Delay before the first retry
        max_seconds: Cap applied before jitter
        jitter: Fraction of the delay that may be randomised away (0 disables)
    """

    base_seconds: float = 60.0
    max_seconds: float = 3600.0
    jitter: float = 0.2
    rng: random.Random = field(default_factory=random.Random, compare=False, repr=False)

    @classmethod
    def from_settings(cls, settings: NotificationSettings) -> BackoffPolicy:
        """Build the policy from NOTIFY_* settings."""
        return cls(
            base_seconds=settings.backoff_base_seconds,
            max_seconds=settings.backoff_max_seconds,
            jitter=settings.backoff_jitter,
        )

    def delay(self, attempt: int) -> timedelta:
        """Return the delay to wait after failed attempt number ``attempt``."""
        exponent = max(attempt, 1) - 1
        raw = min(self.base_seconds * (2**exponent), self.max_seconds)
        if self.jitter:
            raw *= 1 - self.jitter * self.rng.random()
        return timedelta(seconds=raw)


class DeliveryStateTracker:
    """Owns every state change of a NotificationDelivery.

    Callers do the I/O (provider calls, session commits); the tracker only
    mutates the ORM object so that invariants live in one place:

    - ``attempt_count`` grows by exactly one per recorded attempt
    - ``next_retry_at`` is set only for retryable failures with attempts left
    - sent and terminal-failed deliveries reject further attempts
    """

    def __init__(self, backoff: BackoffPolicy, max_attempts: int) -> None:
        """Initialize tracker.

        Args:
            backoff: Retry delay policy
            max_attempts: Attempts allowed before a delivery is terminal-failed
        """
        if max_attempts < 1:
            msg = "max_attempts must be >= 1"
            raise ValueError(msg)
        self.backoff = backoff
        self.max_attempts = max_attempts

    @classmethod
    def from_settings(cls, settings: NotificationSettings) -> DeliveryStateTracker:
        """Build the tracker from NOTIFY_* settings."""
        return cls(BackoffPolicy.from_settings(settings), settings.max_attempts)

    def is_terminal(self, delivery: NotificationDelivery) -> bool:
        """Whether no further attempt is allowed."""
        if delivery.status == DeliveryStatus.SENT:
            return True
        return delivery.status == DeliveryStatus.FAILED and delivery.next_retry_at is None

    def is_retryable(self, delivery: NotificationDelivery, now: datetime | None = None) -> bool:
        """Whether the retry job should pick this delivery up at ``now``."""
        now = now or utcnow()
        return (
            delivery.status == DeliveryStatus.FAILED
            and delivery.next_retry_at is not None
            and delivery.next_retry_at <= now
            and delivery.attempt_count < self.max_attempts
        )

    def can_reopen(self, delivery: NotificationDelivery, *, force: bool = False) -> bool:
        """Whether a manual retry may re-open a failed delivery.

        Without ``force`` only failures that still have a retry scheduled
        qualify, however far off it is. ``force`` also re-opens
        terminal-failed deliveries. Sent deliveries never re-open.
        """
        if delivery.status != DeliveryStatus.FAILED:
            return False
        if force:
            return True
        return delivery.next_retry_at is not None and delivery.attempt_count < self.max_attempts

    def start_attempt(self, delivery: NotificationDelivery) -> None:
        """Move a delivery into ``pending`` ahead of a provider call.

        New deliveries are already pending. A failed delivery with a retry
        scheduled is re-opened here.

        Raises:
            InvalidDeliveryTransitionError: If the delivery is sent or
                terminal-failed
        """
        if delivery.status == DeliveryStatus.PENDING:
            return
        if self.is_terminal(delivery):
            raise InvalidDeliveryTransitionError(
                str(delivery.id), delivery.status, "start an attempt on"
            )
        delivery.status = DeliveryStatus.PENDING
        delivery.next_retry_at = None

    def record_success(
        self,
        delivery: NotificationDelivery,
        *,
        provider_id: str,
        provider_message_id: str | None = None,
        now: datetime | None = None,
    ) -> None:
        """Record a successful attempt: pending -> sent."""
        self._require_pending(delivery, "record success for")
        now = now or utcnow()

        delivery.attempt_count += 1
        delivery.status = DeliveryStatus.SENT
        delivery.provider_id = provider_id
        delivery.provider_message_id = provider_message_id
        delivery.next_retry_at = None
        delivery.last_error = None
        delivery.error_kind = None
        delivery.sent_at = now

    def record_failure(
        self,
        delivery: NotificationDelivery,
        *,
        error: str,
        error_kind: ErrorKind,
        provider_id: str | None = None,
        now: datetime | None = None,
    ) -> bool:
        """Record a failed attempt: pending -> failed.

        Returns:
            True if a retry was scheduled, False if the delivery is now
            terminal-failed.
        """
        self._require_pending(delivery, "record failure for")
        now = now or utcnow()

        delivery.attempt_count += 1
        delivery.status = DeliveryStatus.FAILED
        delivery.last_error = error
        delivery.error_kind = error_kind
        if provider_id is not None:
            delivery.provider_id = provider_id

        if error_kind == ErrorKind.TRANSIENT and delivery.attempt_count < self.max_attempts:
            delivery.next_retry_at = now + self.backoff.delay(delivery.attempt_count)
            logger.info(
                "Delivery failed, retry scheduled",
                extra={
                    "delivery_id": str(delivery.id),
                    "channel": delivery.channel,
                    "attempt": delivery.attempt_count,
                    "next_retry_at": delivery.next_retry_at.isoformat(),
                },
            )
            return True

        delivery.next_retry_at = None
        delivery.failed_at = now
        logger.warning(
            "Delivery permanently failed",
            extra={
                "delivery_id": str(delivery.id),
                "channel": delivery.channel,
                "attempt": delivery.attempt_count,
                "error_kind": str(error_kind),
                "error": error,
            },
        )
        return False

    def _require_pending(self, delivery: NotificationDelivery, action: str) -> None:
        if delivery.status != DeliveryStatus.PENDING:
            raise InvalidDeliveryTransitionError(str(delivery.id), delivery.status, action)
