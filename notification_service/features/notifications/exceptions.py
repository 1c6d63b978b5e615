"""Custom exceptions for the notifications feature.

Provider delivery failures are not exceptions; they come back as
ProviderResult values. These exceptions cover configuration, input and
state-machine errors.
"""

from __future__ import annotations


class NotificationError(Exception):
    """Base exception for notification feature errors."""

    def __init__(self, message: str, *, notification_id: str | None = None) -> None:
        self.message = message
        self.notification_id = notification_id
        super().__init__(message)


class InvalidNotificationError(NotificationError):
    """Raised when a send request breaks a notification invariant."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


class NoProviderAvailableError(NotificationError):
    """Raised when no enabled provider is registered for a channel.

    Reported per channel by the dispatcher; never fails a whole send.
    """

    def __init__(self, channel: str) -> None:
        self.channel = channel
        super().__init__("no provider available")


class ProviderConfigurationError(NotificationError):
    """Raised at startup when an enabled provider is misconfigured."""

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        missing_fields: list[str] | None = None,
    ) -> None:
        self.provider = provider
        self.missing_fields = missing_fields or []
        super().__init__(message)


class TemplateNotFoundError(NotificationError):
    """Raised when a send request references an unknown or inactive template."""

    def __init__(self, slug: str) -> None:
        self.slug = slug
        super().__init__(f"Notification template not found: {slug}")


class TemplateRenderError(NotificationError):
    """Raised when a template fails to render."""

    def __init__(
        self,
        message: str,
        *,
        template_slug: str | None = None,
        missing_vars: list[str] | None = None,
    ) -> None:
        self.template_slug = template_slug
        self.missing_vars = missing_vars or []
        super().__init__(message)


class InvalidDeliveryTransitionError(NotificationError):
    """Raised when a delivery state change is not allowed from its current state."""

    def __init__(self, delivery_id: str, current: str, action: str) -> None:
        self.delivery_id = delivery_id
        self.current = current
        self.action = action
        super().__init__(f"Cannot {action} delivery {delivery_id} in status {current!r}")
