"""Twilio SMS provider (Programmable Messaging REST API)."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, ClassVar

import httpx

from notification_service.features.notifications.enums import Channel

from .base import DEFAULT_TIMEOUT_SECONDS, MessageContent, ProviderResult
from .http import HTTPProvider

if TYPE_CHECKING:
    from notification_service.core.settings import TwilioConfig

logger = logging.getLogger(__name__)

# Twilio caps a single message body at 1600 characters.
MAX_BODY_LENGTH = 1600


class TwilioProvider(HTTPProvider):
    """Send SMS through Twilio's ``Messages.json`` endpoint."""

    channel: ClassVar[Channel] = Channel.SMS
    recipient_keys: ClassVar[tuple[str, ...]] = ("phone", "phone_number", "mobile")

    def __init__(
        self,
        config: TwilioConfig,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not config.account_sid or config.auth_token is None or not config.from_number:
            msg = "Twilio provider requires account_sid, auth_token and from_number"
            raise ValueError(msg)
        super().__init__(base_url=config.base_url, timeout=timeout, client=client)

        self._account_sid = config.account_sid
        self._auth_token = config.auth_token
        self._from_number = config.from_number

        logger.info("Twilio provider initialized", extra={"from_number": self._from_number})

    @property
    def provider_id(self) -> str:
        return "twilio"

    @property
    def _messages_url(self) -> str:
        return f"{self._base_url}/Accounts/{self._account_sid}/Messages.json"

    async def _do_send(
        self,
        recipient: str,
        content: MessageContent,
        metadata: dict[str, Any],
    ) -> ProviderResult:
        body = content.message
        if content.title:
            body = f"{content.title}\n{body}"

        response = await self._post(
            self._messages_url,
            data={"To": recipient, "From": self._from_number, "Body": body[:MAX_BODY_LENGTH]},
            auth=(self._account_sid, self._auth_token.get_secret_value()),
        )
        if isinstance(response, ProviderResult):
            return response

        if response.status_code in (200, 201):
            payload = response.json()
            return ProviderResult.ok(
                self.provider_id,
                provider_message_id=payload.get("sid"),
                metadata={"twilio_status": payload.get("status")},
            )
        return self._error_result(response)
