"""SQLAlchemy models for the notifications feature."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from notification_service.core.database import StringArray, UTCDateTime, UUIDv7TimestampedBase
from notification_service.features.notifications.enums import (
    DeliveryStatus,
    NotificationStatus,
    Priority,
)

JSONType = JSONB().with_variant(JSON(), "sqlite")


class NotificationTemplate(UUIDv7TimestampedBase):
    """Reusable Jinja2 template looked up by slug at send time.

    ``subject`` renders into the notification title and ``body`` into the
    message. ``default_params`` are overlaid by the request's params.
    """

    __tablename__ = "notification_templates"

    slug: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        unique=True,
        comment="Stable template identifier used by callers",
    )
    notification_type: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        index=True,
        comment="Notification type this template produces",
    )
    subject: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
        comment="Jinja2 template for the title (optional)",
    )
    body: Mapped[str] = mapped_column(
        Text(),
        nullable=False,
        comment="Jinja2 template for the message",
    )
    default_params: Mapped[dict[str, Any] | None] = mapped_column(
        JSONType,
        nullable=True,
        comment="Default template variables",
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean(),
        default=True,
        nullable=False,
        comment="Inactive templates cannot be used for new notifications",
    )


class Notification(UUIDv7TimestampedBase):
    """A notification intent addressed to one user over one or more channels.

    Notifications can be:
    - Immediate (scheduled_for = None or in the past)
    - Scheduled (scheduled_for in the future, picked up by the scheduler job)

    ``claimed_at`` records when the scheduler moved the row to
    ``processing``; claims older than the configured lease are released.

    Indexes:
        - (status, scheduled_for) for the scheduler scan
        - (status, claimed_at) for stale-claim release
    """

    __tablename__ = "notifications"

    user_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
        comment="User identifier (notification recipient)",
    )
    notification_type: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        index=True,
        comment="Free-form type tag (e.g., order_shipped)",
    )
    title: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
        comment="Title / subject (rendered)",
    )
    message: Mapped[str] = mapped_column(
        Text(),
        nullable=False,
        comment="Message body (rendered)",
    )
    channels: Mapped[list[str]] = mapped_column(
        StringArray(),
        nullable=False,
        comment="Requested channels, deduplicated, in request order",
    )
    priority: Mapped[str] = mapped_column(
        String(20),
        default=Priority.NORMAL,
        nullable=False,
        comment="Priority: low, normal, high, urgent",
    )
    template_slug: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
        comment="Template used for rendering (optional)",
    )
    template_params: Mapped[dict[str, Any] | None] = mapped_column(
        JSONType,
        nullable=True,
        comment="Template variables used for rendering",
    )
    data: Mapped[dict[str, Any] | None] = mapped_column(
        JSONType,
        nullable=True,
        comment="Payload passed to providers (recipient addresses, deep links)",
    )
    extra_metadata: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata",
        JSONType,
        nullable=True,
        comment="Opaque caller metadata carried to providers",
    )

    scheduled_for: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
        comment="When to send (null = immediately)",
    )
    status: Mapped[str] = mapped_column(
        String(20),
        default=NotificationStatus.PENDING,
        nullable=False,
        index=True,
        comment="Status: pending, processing, sent, failed, cancelled",
    )
    claimed_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
        comment="When the scheduler claimed the notification for processing",
    )
    sent_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
        comment="When at least one channel first succeeded",
    )

    deliveries: Mapped[list[NotificationDelivery]] = relationship(
        "NotificationDelivery",
        back_populates="notification",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="raise",
    )

    __table_args__ = (
        Index("idx_notification_status_scheduled", "status", "scheduled_for"),
        Index("idx_notification_status_claimed", "status", "claimed_at"),
    )

    def __repr__(self) -> str:
        return f"<Notification(id={self.id}, type={self.notification_type!r}, status={self.status!r})>"


class NotificationDelivery(UUIDv7TimestampedBase):
    """One channel-level delivery record for a notification.

    Exactly one row exists per requested channel. Re-attempts update the
    row in place through the delivery state tracker: ``attempt_count``
    only grows and ``next_retry_at`` is set only while a retry remains.

    Indexes:
        - unique (notification_id, channel): one row per requested channel
        - (status, next_retry_at) for the retry scan
    """

    __tablename__ = "notification_deliveries"

    notification_id: Mapped[UUID] = mapped_column(
        ForeignKey("notifications.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Reference to parent notification",
    )
    channel: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="Delivery channel: email, sms, push, webhook, in_app",
    )
    provider_id: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
        comment="Provider that handled (or last attempted) the delivery",
    )
    recipient: Mapped[str | None] = mapped_column(
        String(2048),
        nullable=True,
        comment="Resolved recipient (address, phone, device token, URL, user id)",
    )
    status: Mapped[str] = mapped_column(
        String(20),
        default=DeliveryStatus.PENDING,
        nullable=False,
        comment="Delivery status: pending, sent, failed",
    )
    attempt_count: Mapped[int] = mapped_column(
        Integer(),
        default=0,
        nullable=False,
        comment="Number of delivery attempts made",
    )
    last_error: Mapped[str | None] = mapped_column(
        Text(),
        nullable=True,
        comment="Error from the most recent failed attempt",
    )
    error_kind: Mapped[str | None] = mapped_column(
        String(20),
        nullable=True,
        comment="transient or terminal",
    )
    next_retry_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
        comment="Scheduled time for next retry (only while retries remain)",
    )
    provider_message_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Message ID assigned by the provider",
    )
    sent_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
        comment="When delivery succeeded",
    )
    failed_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
        comment="When delivery became terminal-failed",
    )

    notification: Mapped[Notification] = relationship(
        "Notification",
        back_populates="deliveries",
        lazy="raise",
    )

    __table_args__ = (
        UniqueConstraint("notification_id", "channel", name="uq_delivery_notification_channel"),
        Index("idx_delivery_status_retry", "status", "next_retry_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<NotificationDelivery(id={self.id}, channel={self.channel!r}, "
            f"status={self.status!r}, attempts={self.attempt_count})>"
        )


class NotificationAnalytics(UUIDv7TimestampedBase):
    """Append-only analytics event for one channel of one notification.

    The service only writes and purges these rows; aggregation is left to
    reporting tools.
    """

    __tablename__ = "notification_analytics"

    notification_id: Mapped[UUID] = mapped_column(
        nullable=False,
        index=True,
        comment="Notification the event belongs to (not a FK: outlives cleanup)",
    )
    channel: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="Delivery channel",
    )
    provider_id: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
        comment="Provider involved, if any",
    )
    event: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="Event: sent, failed, opened, clicked",
    )

    __table_args__ = (Index("idx_analytics_channel_event", "channel", "event"),)
