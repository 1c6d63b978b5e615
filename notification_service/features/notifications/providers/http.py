"""Shared plumbing for providers that talk to an HTTP API with httpx."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from .base import DEFAULT_TIMEOUT_SECONDS, BaseProvider, ProviderResult, classify_http_status

if TYPE_CHECKING:
    from notification_service.features.notifications.enums import ErrorKind

logger = logging.getLogger(__name__)


class HTTPProvider(BaseProvider):
    """Base class for httpx-backed providers.

    Owns one ``httpx.AsyncClient`` for the provider's lifetime. Tests pass a
    client built on ``httpx.MockTransport``.
    """

    def __init__(
        self,
        *,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(timeout=timeout)
        self._base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    async def _post(self, url: str, **kwargs: Any) -> httpx.Response | ProviderResult:
        """POST and translate transport errors into transient results."""
        try:
            return await self._client.post(url, **kwargs)
        except httpx.TimeoutException as e:
            return ProviderResult.transient(
                self.provider_id,
                f"{self.provider_id} request timed out: {e}",
                metadata={"timeout": True},
            )
        except httpx.HTTPError as e:
            return ProviderResult.transient(
                self.provider_id,
                f"{self.provider_id} request failed: {e}",
            )

    def _error_result(self, response: httpx.Response) -> ProviderResult:
        """Build a failure result from a non-2xx response."""
        kind: ErrorKind = classify_http_status(response.status_code)
        body = response.text[:500]
        return ProviderResult(
            success=False,
            provider_id=self.provider_id,
            error=f"{self.provider_id} API error: {response.status_code} - {body}",
            error_kind=kind,
            metadata={"status_code": response.status_code},
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
