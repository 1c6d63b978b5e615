"""In-memory provider registry.

Maps each channel to an ordered list of registrations. Built once at
startup (see ``factory.build_provider_registry``) and injected into the
dispatcher; nothing here is module-global.

Usage:
    registry = ProviderRegistry()
    registry.register(Channel.EMAIL, sendgrid, priority=10)
    registry.register(Channel.EMAIL, smtp, priority=20)

    for provider in registry.resolve(Channel.EMAIL):
        ...
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from notification_service.features.notifications.enums import Channel
from notification_service.features.notifications.exceptions import NoProviderAvailableError

if TYPE_CHECKING:
    from .base import Provider

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ProviderRegistration:
    """One provider registered for one channel."""

    channel: Channel
    provider: Provider
    priority: int
    enabled: bool
    sequence: int

    @property
    def provider_id(self) -> str:
        return self.provider.provider_id


class ProviderRegistry:
    """Channel to provider lookup with priority ordering.

    Resolution order is ascending ``priority``; ties keep registration
    order, so the result is deterministic for a given configuration.
    """

    def __init__(self) -> None:
        self._registrations: dict[Channel, list[ProviderRegistration]] = {}
        self._sequence = itertools.count()

    def register(
        self,
        channel: Channel | str,
        provider: Provider,
        priority: int = 10,
        *,
        enabled: bool = True,
    ) -> ProviderRegistration:
        """Register a provider for a channel.

        Args:
            channel: Channel the provider delivers on
            provider: Provider instance
            priority: Lower numbers are tried first
            enabled: Disabled registrations are kept but never resolved

        Returns:
            The new registration

        Raises:
            ValueError: If the same provider ID is already registered for
                the channel
        """
        channel = Channel(channel)
        entries = self._registrations.setdefault(channel, [])
        if any(e.provider_id == provider.provider_id for e in entries):
            msg = f"Provider {provider.provider_id!r} already registered for {channel}"
            raise ValueError(msg)

        registration = ProviderRegistration(
            channel=channel,
            provider=provider,
            priority=priority,
            enabled=enabled,
            sequence=next(self._sequence),
        )
        entries.append(registration)
        entries.sort(key=lambda e: (e.priority, e.sequence))

        logger.debug(
            "Registered provider",
            extra={
                "channel": str(channel),
                "provider": provider.provider_id,
                "priority": priority,
                "enabled": enabled,
            },
        )
        return registration

    def unregister(self, channel: Channel | str, provider_id: str) -> bool:
        """Remove a provider from a channel.

        Returns:
            True if a registration was removed
        """
        entries = self._registrations.get(Channel(channel), [])
        for index, entry in enumerate(entries):
            if entry.provider_id == provider_id:
                del entries[index]
                return True
        return False

    def resolve(self, channel: Channel | str) -> list[Provider]:
        """Return enabled providers for a channel in try order.

        Raises:
            NoProviderAvailableError: If no enabled provider is registered
        """
        channel = Channel(channel)
        providers = [e.provider for e in self._registrations.get(channel, []) if e.enabled]
        if not providers:
            raise NoProviderAvailableError(channel)
        return providers

    def has(self, channel: Channel | str) -> bool:
        """Whether at least one enabled provider serves the channel."""
        return any(e.enabled for e in self._registrations.get(Channel(channel), []))

    def channels(self) -> list[Channel]:
        """Channels with at least one enabled provider."""
        return [c for c in Channel if self.has(c)]

    def registrations(self) -> list[ProviderRegistration]:
        """All registrations, grouped by channel in try order."""
        return [e for c in Channel for e in self._registrations.get(c, [])]

    def providers(self) -> list[Provider]:
        """Distinct provider instances across all channels."""
        seen: dict[int, Provider] = {}
        for entry in self.registrations():
            seen.setdefault(id(entry.provider), entry.provider)
        return list(seen.values())

    async def health_check(self) -> dict[str, bool]:
        """Run every enabled provider's health check concurrently.

        Returns:
            ``{"<channel>:<provider_id>": healthy}`` for each enabled
            registration
        """
        entries = [e for e in self.registrations() if e.enabled]
        results = await asyncio.gather(
            *(e.provider.health_check() for e in entries),
            return_exceptions=True,
        )
        report: dict[str, bool] = {}
        for entry, result in zip(entries, results, strict=True):
            report[f"{entry.channel}:{entry.provider_id}"] = result is True
        return report

    async def aclose(self) -> None:
        """Close every provider that holds network resources."""
        for provider in self.providers():
            close = getattr(provider, "aclose", None)
            if close is not None:
                await close()

    def __len__(self) -> int:
        return sum(len(v) for v in self._registrations.values())
