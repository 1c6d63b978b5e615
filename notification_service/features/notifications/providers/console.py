"""Console provider for development.

Logs the message instead of delivering it. One instance is registered per
channel it stands in for.
"""

from __future__ import annotations

import uuid
from typing import Any

from notification_service.features.notifications.enums import Channel
from notification_service.infra.logging import get_logger

from .base import BaseProvider, MessageContent, ProviderResult


class ConsoleProvider(BaseProvider):
    """Log-only provider bound to one channel."""

    def __init__(self, channel: Channel, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.channel = channel  # type: ignore[misc]
        self._logger = get_logger(__name__, channel=str(channel), provider="console")

    @property
    def provider_id(self) -> str:
        return "console"

    async def _do_send(
        self,
        recipient: str,
        content: MessageContent,
        metadata: dict[str, Any],
    ) -> ProviderResult:
        message_id = f"console_{uuid.uuid4().hex[:12]}"
        self._logger.info(
            "[console] %s to %s: %s",
            self.channel,
            recipient,
            content.title or content.message[:80],
            extra={
                "recipient": recipient,
                "title": content.title,
                "body": content.message,
                "provider_message_id": message_id,
            },
        )
        return ProviderResult.ok(self.provider_id, provider_message_id=message_id)
