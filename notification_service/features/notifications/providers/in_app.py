"""In-app provider.

The persisted notification row is the user's inbox entry, so delivery is a
bookkeeping step that always succeeds.
"""

from __future__ import annotations

import uuid
from typing import Any, ClassVar

from notification_service.features.notifications.enums import Channel

from .base import BaseProvider, MessageContent, ProviderResult


class InAppProvider(BaseProvider):
    """Always-successful in-app delivery keyed by user ID."""

    channel: ClassVar[Channel] = Channel.IN_APP

    @property
    def provider_id(self) -> str:
        return "in_app"

    async def _do_send(
        self,
        recipient: str,
        content: MessageContent,
        metadata: dict[str, Any],
    ) -> ProviderResult:
        return ProviderResult.ok(self.provider_id, provider_message_id=f"inapp_{uuid.uuid4()}")
