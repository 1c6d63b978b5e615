"""Firebase Cloud Messaging push provider (HTTP v1 API).

The access token is an OAuth2 bearer token for the Firebase project; minting
and refreshing it is left to the deployment (e.g., a sidecar writing
PROVIDER_FCM__ACCESS_TOKEN).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, ClassVar

import httpx

from notification_service.features.notifications.enums import Channel, ErrorKind

from .base import DEFAULT_TIMEOUT_SECONDS, MessageContent, ProviderResult
from .http import HTTPProvider

if TYPE_CHECKING:
    from notification_service.core.settings import FCMConfig

logger = logging.getLogger(__name__)


class FCMProvider(HTTPProvider):
    """Send push notifications to a single device token."""

    channel: ClassVar[Channel] = Channel.PUSH
    recipient_keys: ClassVar[tuple[str, ...]] = ("device_token", "fcm_token", "push_token")

    def __init__(
        self,
        config: FCMConfig,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not config.project_id or config.access_token is None:
            msg = "FCM provider requires project_id and access_token"
            raise ValueError(msg)
        super().__init__(base_url=config.base_url, timeout=timeout, client=client)

        self._project_id = config.project_id
        self._access_token = config.access_token

        logger.info("FCM provider initialized", extra={"project_id": self._project_id})

    @property
    def provider_id(self) -> str:
        return "fcm"

    def _build_payload(self, recipient: str, content: MessageContent) -> dict[str, Any]:
        message: dict[str, Any] = {
            "token": recipient,
            "notification": {"title": content.title or "", "body": content.message},
        }
        if content.data:
            # FCM data values must be strings
            message["data"] = {k: str(v) for k, v in content.data.items()}
        return {"message": message}

    async def _do_send(
        self,
        recipient: str,
        content: MessageContent,
        metadata: dict[str, Any],
    ) -> ProviderResult:
        response = await self._post(
            f"{self._base_url}/projects/{self._project_id}/messages:send",
            json=self._build_payload(recipient, content),
            headers={"Authorization": f"Bearer {self._access_token.get_secret_value()}"},
        )
        if isinstance(response, ProviderResult):
            return response

        if response.status_code == 200:
            return ProviderResult.ok(self.provider_id, provider_message_id=response.json().get("name"))

        result = self._error_result(response)
        # An unregistered token never becomes valid again.
        if response.status_code == 404 or "UNREGISTERED" in response.text:
            return ProviderResult(
                success=False,
                provider_id=self.provider_id,
                error=result.error,
                error_kind=ErrorKind.TERMINAL,
                metadata=result.metadata,
            )
        return result
