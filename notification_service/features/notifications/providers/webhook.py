"""Signed HTTP webhook provider.

Each request carries an HMAC-SHA256 signature of ``"{timestamp}.{payload}"``
in ``X-Webhook-Signature`` so receivers can verify origin and freshness.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
from typing import TYPE_CHECKING, Any, ClassVar

import httpx

from notification_service.features.notifications.enums import Channel

from .base import DEFAULT_TIMEOUT_SECONDS, MessageContent, ProviderResult
from .http import HTTPProvider

if TYPE_CHECKING:
    from notification_service.core.settings import WebhookConfig
    from notification_service.features.notifications.models import Notification

logger = logging.getLogger(__name__)


def generate_signature(secret: str, timestamp: str, payload: str) -> str:
    """Generate the hex HMAC-SHA256 signature for a webhook payload."""
    message = f"{timestamp}.{payload}"
    return hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()


class WebhookProvider(HTTPProvider):
    """POST the notification as JSON to the recipient URL."""

    channel: ClassVar[Channel] = Channel.WEBHOOK
    recipient_keys: ClassVar[tuple[str, ...]] = ("webhook_url", "callback_url")

    def __init__(
        self,
        config: WebhookConfig,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if config.secret is None:
            msg = "Webhook provider requires secret"
            raise ValueError(msg)
        super().__init__(base_url=config.url or "", timeout=timeout, client=client)

        self._default_url = config.url
        self._secret = config.secret

    @property
    def provider_id(self) -> str:
        return "webhook"

    def resolve_recipient(self, notification: Notification) -> str | None:
        """Use the notification's URL, else the configured default URL."""
        for source in (notification.data or {}, notification.extra_metadata or {}):
            for key in self.recipient_keys:
                if value := source.get(key):
                    return str(value)
        return self._default_url

    async def _do_send(
        self,
        recipient: str,
        content: MessageContent,
        metadata: dict[str, Any],
    ) -> ProviderResult:
        if not recipient.startswith(("http://", "https://")):
            return ProviderResult.terminal(self.provider_id, f"Invalid webhook URL: {recipient!r}")

        payload = json.dumps(
            {
                "title": content.title,
                "message": content.message,
                "data": content.data,
                "metadata": metadata,
            },
            separators=(",", ":"),
            default=str,
        )
        timestamp = time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
        headers = {
            "Content-Type": "application/json",
            "User-Agent": "notification-service-webhook/1.0",
            "X-Webhook-Signature": generate_signature(
                self._secret.get_secret_value(), timestamp, payload
            ),
            "X-Webhook-Timestamp": timestamp,
        }

        response = await self._post(recipient, content=payload, headers=headers)
        if isinstance(response, ProviderResult):
            return response

        if 200 <= response.status_code < 300:
            return ProviderResult.ok(
                self.provider_id,
                provider_message_id=response.headers.get("X-Request-Id"),
                metadata={"status_code": response.status_code},
            )
        return self._error_result(response)
