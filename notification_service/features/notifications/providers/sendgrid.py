"""SendGrid email provider.

Uses the SendGrid API v3 ``/mail/send`` endpoint over httpx. SendGrid
answers 202 Accepted and returns the message id in ``X-Message-Id``.

Usage:
    provider = SendGridProvider(config)
    result = await provider.send("user@example.com", content, {})
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, ClassVar

import httpx

from notification_service.features.notifications.enums import Channel

from .base import DEFAULT_TIMEOUT_SECONDS, MessageContent, ProviderResult
from .http import HTTPProvider

if TYPE_CHECKING:
    from notification_service.core.settings import SendGridConfig

logger = logging.getLogger(__name__)


class SendGridProvider(HTTPProvider):
    """SendGrid email provider using API v3."""

    channel: ClassVar[Channel] = Channel.EMAIL
    recipient_keys: ClassVar[tuple[str, ...]] = ("email", "email_address")

    SEND_ENDPOINT = "/mail/send"

    def __init__(
        self,
        config: SendGridConfig,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize SendGrid provider.

        Args:
            config: SendGrid block of the provider settings
            timeout: Upper bound in seconds for one send call
            client: Optional preconfigured httpx client

        Raises:
            ValueError: If the API key or sender is missing
        """
        if config.api_key is None or not config.from_email:
            msg = "SendGrid provider requires api_key and from_email"
            raise ValueError(msg)
        super().__init__(base_url=config.base_url, timeout=timeout, client=client)

        self._api_key = config.api_key
        self._from_email = config.from_email
        self._from_name = config.from_name

        logger.info(
            "SendGrid provider initialized",
            extra={"base_url": self._base_url},
        )

    @property
    def provider_id(self) -> str:
        return "sendgrid"

    def _build_payload(
        self,
        recipient: str,
        content: MessageContent,
        metadata: dict[str, Any],
    ) -> dict[str, Any]:
        sender: dict[str, str] = {"email": self._from_email}
        if self._from_name:
            sender["name"] = self._from_name

        payload: dict[str, Any] = {
            "personalizations": [{"to": [{"email": recipient}]}],
            "from": sender,
            "subject": content.title or "",
            "content": [{"type": "text/plain", "value": content.message}],
        }
        if metadata:
            payload["custom_args"] = {k: str(v) for k, v in metadata.items()}
        return payload

    async def _do_send(
        self,
        recipient: str,
        content: MessageContent,
        metadata: dict[str, Any],
    ) -> ProviderResult:
        if "@" not in recipient:
            return ProviderResult.terminal(
                self.provider_id,
                f"Invalid email recipient: {recipient!r}",
            )

        response = await self._post(
            f"{self._base_url}{self.SEND_ENDPOINT}",
            json=self._build_payload(recipient, content, metadata),
            headers={
                "Authorization": f"Bearer {self._api_key.get_secret_value()}",
                "Content-Type": "application/json",
            },
        )
        if isinstance(response, ProviderResult):
            return response

        if response.status_code in (200, 202):
            return ProviderResult.ok(
                self.provider_id,
                provider_message_id=response.headers.get("X-Message-Id"),
                metadata={"status_code": response.status_code},
            )
        return self._error_result(response)
