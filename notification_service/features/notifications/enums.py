"""Enumerations shared by the notifications feature."""

from __future__ import annotations

from enum import StrEnum


class Channel(StrEnum):
    """Delivery medium."""

    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"
    WEBHOOK = "webhook"
    IN_APP = "in_app"


class Priority(StrEnum):
    """Notification priority."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class NotificationStatus(StrEnum):
    """Notification lifecycle.

    pending -> processing -> sent | failed. A processing claim goes back to
    pending when it expires or when dispatch raises before recording an
    outcome. Only a pending notification can be cancelled.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    SENT = "sent"
    FAILED = "failed"
    CANCELLED = "cancelled"


class DeliveryStatus(StrEnum):
    """Per-channel delivery lifecycle."""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class ErrorKind(StrEnum):
    """Provider failure classification."""

    TRANSIENT = "transient"  # network, timeout, 5xx, 429
    TERMINAL = "terminal"  # invalid recipient, validation, unsupported


class AnalyticsEvent(StrEnum):
    """Analytics event types stored per channel."""

    SENT = "sent"
    FAILED = "failed"
    OPENED = "opened"
    CLICKED = "clicked"
