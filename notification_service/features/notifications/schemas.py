"""Pydantic schemas for the notifications feature."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from notification_service.features.notifications.enums import (
    Channel,
    DeliveryStatus,
    NotificationStatus,
    Priority,
)

# ============================================================================
# Send request
# ============================================================================


class SendNotificationRequest(BaseModel):
    """Input to NotificationDispatcher.send().

    ``channels`` is deduplicated keeping the order of first appearance.
    Either ``message`` or ``template_slug`` must be provided; with a
    template, the rendered body replaces ``message`` and the rendered
    subject replaces ``title``.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    user_id: str = Field(..., min_length=1, max_length=255, description="Recipient user ID")
    notification_type: str = Field(
        ...,
        alias="type",
        min_length=1,
        max_length=100,
        description="Free-form type tag (e.g., 'order_shipped')",
    )
    channels: list[Channel] = Field(
        ...,
        min_length=1,
        description="Channels to deliver on (email, sms, push, webhook, in_app)",
    )
    message: str | None = Field(default=None, description="Message body")
    title: str | None = Field(default=None, max_length=500, description="Title / subject")
    template_slug: str | None = Field(
        default=None,
        max_length=100,
        description="Render title and message from this template",
    )
    template_params: dict[str, Any] = Field(
        default_factory=dict,
        description="Variables for template rendering",
    )
    data: dict[str, Any] = Field(
        default_factory=dict,
        description="Payload for providers (e.g., email, phone, device_token, webhook_url)",
    )
    scheduled_for: datetime | None = Field(
        default=None,
        description="Deliver at this time instead of immediately",
    )
    priority: Priority = Field(default=Priority.NORMAL, description="Priority level")
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Opaque metadata carried to providers",
    )

    @field_validator("channels")
    @classmethod
    def deduplicate_channels(cls, v: list[Channel]) -> list[Channel]:
        """Drop repeated channels, keeping first-appearance order."""
        return list(dict.fromkeys(v))

    @field_validator("scheduled_for")
    @classmethod
    def normalize_scheduled_for(cls, v: datetime | None) -> datetime | None:
        """Treat naive datetimes as UTC and convert aware ones to UTC."""
        if v is None:
            return v
        if v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v.astimezone(UTC)

    @model_validator(mode="after")
    def require_content(self) -> SendNotificationRequest:
        """Ensure there is something to deliver."""
        if not self.template_slug and not (self.message and self.message.strip()):
            msg = "Either message or template_slug must be provided"
            raise ValueError(msg)
        return self


# ============================================================================
# Send result
# ============================================================================


class ChannelResult(BaseModel):
    """Outcome of one channel within a send."""

    model_config = ConfigDict(frozen=True)

    channel: Channel
    success: bool
    status: DeliveryStatus
    provider_id: str | None = None
    delivery_id: UUID | None = None
    provider_message_id: str | None = None
    error: str | None = None
    will_retry: bool = False


class SendNotificationResult(BaseModel):
    """Aggregate outcome of a send.

    ``status`` is ``sent`` when at least one channel succeeded, ``failed``
    when every channel failed, and ``pending`` when the notification was
    scheduled for later. Callers decide whether partial success is enough.
    """

    model_config = ConfigDict(frozen=True)

    notification_id: UUID
    status: NotificationStatus
    results: dict[Channel, ChannelResult] = Field(default_factory=dict)

    @property
    def scheduled(self) -> bool:
        """Whether delivery was deferred to the scheduler."""
        return self.status == NotificationStatus.PENDING

    @property
    def succeeded_channels(self) -> list[Channel]:
        return [c for c, r in self.results.items() if r.success]

    @property
    def failed_channels(self) -> list[Channel]:
        return [c for c, r in self.results.items() if not r.success]
