"""Base provider protocol and abstract class.

Defines the contract every delivery provider implements.

Usage:
    class MyProvider(BaseProvider):
        channel = Channel.SMS

        @property
        def provider_id(self) -> str:
            return "my-sms"

        async def _do_send(self, recipient, content, metadata) -> ProviderResult:
            ...
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar, Protocol, runtime_checkable

from notification_service.features.notifications.enums import Channel, ErrorKind

if TYPE_CHECKING:
    from notification_service.features.notifications.models import Notification

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


@dataclass(frozen=True, slots=True)
class MessageContent:
    """What a provider delivers: title, body and structured payload."""

    message: str
    title: str | None = None
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_notification(cls, notification: Notification) -> MessageContent:
        return cls(
            message=notification.message,
            title=notification.title,
            data=dict(notification.data or {}),
        )


@dataclass(frozen=True, slots=True)
class ProviderResult:
    """Result of one provider send call.

    Immutable. Failures carry an ErrorKind so the state tracker can decide
    between scheduling a retry and failing the delivery for good.

    Attributes:
        success: Whether the provider accepted the message
        provider_id: Provider that produced this result
        provider_message_id: Provider-assigned message ID (for tracking)
        error: Error message if failed
        error_kind: transient or terminal (failures only)
        duration_ms: Time taken in milliseconds
        metadata: Provider-specific response details
    """

    success: bool
    provider_id: str
    provider_message_id: str | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None
    duration_ms: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(
        cls,
        provider_id: str,
        provider_message_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ProviderResult:
        """Create a successful result."""
        return cls(
            success=True,
            provider_id=provider_id,
            provider_message_id=provider_message_id,
            metadata=metadata or {},
        )

    @classmethod
    def transient(
        cls,
        provider_id: str,
        error: str,
        metadata: dict[str, Any] | None = None,
    ) -> ProviderResult:
        """Create a retryable failure (network, timeout, 5xx, rate limit)."""
        return cls(
            success=False,
            provider_id=provider_id,
            error=error,
            error_kind=ErrorKind.TRANSIENT,
            metadata=metadata or {},
        )

    @classmethod
    def terminal(
        cls,
        provider_id: str,
        error: str,
        metadata: dict[str, Any] | None = None,
    ) -> ProviderResult:
        """Create a non-retryable failure (invalid recipient, rejected payload)."""
        return cls(
            success=False,
            provider_id=provider_id,
            error=error,
            error_kind=ErrorKind.TERMINAL,
            metadata=metadata or {},
        )


def classify_http_status(status_code: int) -> ErrorKind:
    """Map an HTTP error status to an ErrorKind.

    429 and 5xx are worth retrying, as are 401/403 (credentials are often
    rotated without a restart). Other 4xx mean the request itself is bad.
    """
    if status_code in (401, 403, 408, 429) or status_code >= 500:
        return ErrorKind.TRANSIENT
    return ErrorKind.TERMINAL


@runtime_checkable
class Provider(Protocol):
    """Protocol for a channel delivery provider.

    Using Protocol allows test doubles without subclassing BaseProvider.
    """

    channel: Channel

    @property
    def provider_id(self) -> str:
        """Stable provider name (e.g., 'sendgrid')."""
        ...

    async def send(
        self,
        recipient: str,
        content: MessageContent,
        metadata: dict[str, Any],
    ) -> ProviderResult:
        """Deliver one message. Never raises for delivery failures."""
        ...

    def resolve_recipient(self, notification: Notification) -> str | None:
        """Pick this channel's address for the notification's user."""
        ...

    async def health_check(self) -> bool:
        """Check if the provider can currently deliver."""
        ...


class BaseProvider(ABC):
    """Abstract base class for delivery providers.

    Provides common functionality for all providers:
    - Bounded execution time (asyncio timeout, default 10 seconds)
    - Timing measurement
    - Logging
    - Conversion of unexpected exceptions into transient failures

    Subclasses must implement:
    - provider_id property
    - _do_send(): Actual sending logic

    and may override ``recipient_keys`` / ``resolve_recipient`` and
    ``_do_health_check``.
    """

    channel: ClassVar[Channel]
    # Keys looked up in notification.data, then notification metadata.
    recipient_keys: ClassVar[tuple[str, ...]] = ()

    def __init__(self, *, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> None:
        """Initialize provider.

        Args:
            timeout: Upper bound in seconds for one send call
        """
        self.timeout = timeout

    @property
    @abstractmethod
    def provider_id(self) -> str:
        """Get the provider name."""
        ...

    @abstractmethod
    async def _do_send(
        self,
        recipient: str,
        content: MessageContent,
        metadata: dict[str, Any],
    ) -> ProviderResult:
        """Implement the actual sending logic."""
        ...

    async def _do_health_check(self) -> bool:
        """Implement the actual health check logic."""
        return True

    def resolve_recipient(self, notification: Notification) -> str | None:
        """Find this channel's address in the notification payload.

        Returns:
            The first non-empty value among ``recipient_keys`` in
            ``notification.data`` then ``notification.extra_metadata``,
            falling back to the user ID.
        """
        for source in (notification.data or {}, notification.extra_metadata or {}):
            for key in self.recipient_keys:
                value = source.get(key)
                if value:
                    return str(value)
        return notification.user_id or None

    async def send(
        self,
        recipient: str,
        content: MessageContent,
        metadata: dict[str, Any],
    ) -> ProviderResult:
        """Send with a timeout, timing and error handling.

        Returns:
            ProviderResult; timeouts and unexpected exceptions become
            transient failures.
        """
        start_time = time.perf_counter()

        try:
            async with asyncio.timeout(self.timeout):
                result = await self._do_send(recipient, content, metadata)
        except TimeoutError:
            result = ProviderResult.transient(
                self.provider_id,
                f"{self.provider_id} timed out after {self.timeout:g}s",
                metadata={"timeout": True},
            )
        except Exception as e:
            duration_ms = int((time.perf_counter() - start_time) * 1000)
            logger.exception(
                f"Unexpected error in {self.provider_id} provider",
                extra={
                    "provider": self.provider_id,
                    "channel": str(self.channel),
                    "error": str(e),
                    "duration_ms": duration_ms,
                },
            )
            return ProviderResult(
                success=False,
                provider_id=self.provider_id,
                error=str(e) or type(e).__name__,
                error_kind=ErrorKind.TRANSIENT,
                duration_ms=duration_ms,
            )

        duration_ms = int((time.perf_counter() - start_time) * 1000)
        result = ProviderResult(
            success=result.success,
            provider_id=result.provider_id,
            provider_message_id=result.provider_message_id,
            error=result.error,
            error_kind=result.error_kind,
            duration_ms=result.duration_ms if result.duration_ms is not None else duration_ms,
            metadata=result.metadata,
        )

        if result.success:
            logger.info(
                f"Message sent via {self.provider_id}",
                extra={
                    "provider": self.provider_id,
                    "channel": str(self.channel),
                    "provider_message_id": result.provider_message_id,
                    "duration_ms": result.duration_ms,
                },
            )
        else:
            logger.warning(
                f"Send failed via {self.provider_id}",
                extra={
                    "provider": self.provider_id,
                    "channel": str(self.channel),
                    "error": result.error,
                    "error_kind": str(result.error_kind),
                    "duration_ms": result.duration_ms,
                },
            )
        return result

    async def health_check(self) -> bool:
        """Check if provider is healthy with logging."""
        try:
            async with asyncio.timeout(self.timeout):
                healthy = await self._do_health_check()
        except Exception as e:
            logger.warning(
                f"{self.provider_id} health check failed",
                extra={"provider": self.provider_id, "error": str(e)},
            )
            return False

        logger.debug(
            f"{self.provider_id} health check: {'healthy' if healthy else 'unhealthy'}",
            extra={"provider": self.provider_id, "healthy": healthy},
        )
        return healthy

    async def aclose(self) -> None:
        """Release network resources held by the provider."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(provider_id={self.provider_id!r}, channel={self.channel})>"
