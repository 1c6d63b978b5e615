"""Build the provider registry from settings.

Called once at startup. Every enabled provider block is validated before
anything is constructed, so a misconfigured deployment fails immediately
instead of on the first send.

Usage:
    registry = build_provider_registry(get_provider_settings(), timeout=10.0)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from notification_service.features.notifications.enums import Channel
from notification_service.features.notifications.exceptions import ProviderConfigurationError

from .base import DEFAULT_TIMEOUT_SECONDS
from .console import ConsoleProvider
from .fcm import FCMProvider
from .in_app import InAppProvider
from .registry import ProviderRegistry
from .sendgrid import SendGridProvider
from .smtp import SMTPProvider
from .twilio import TwilioProvider
from .webhook import WebhookProvider

if TYPE_CHECKING:
    from notification_service.core.settings import ProviderConfig, ProviderSettings

logger = logging.getLogger(__name__)


def validate_provider_settings(settings: ProviderSettings) -> None:
    """Check credentials of every enabled provider block.

    Raises:
        ProviderConfigurationError: For the first enabled provider with
            missing credentials
    """
    blocks: dict[str, ProviderConfig] = {
        "sendgrid": settings.sendgrid,
        "smtp": settings.smtp,
        "twilio": settings.twilio,
        "fcm": settings.fcm,
        "webhook": settings.webhook,
        "in_app": settings.in_app,
        "console": settings.console,
    }
    for name, block in blocks.items():
        if not block.enabled:
            continue
        missing = block.missing_credentials()
        if missing:
            msg = f"Provider {name!r} is enabled but missing: {', '.join(missing)}"
            raise ProviderConfigurationError(msg, provider=name, missing_fields=missing)

    unknown = [c for c in settings.console.channels if c not in Channel._value2member_map_]
    if settings.console.enabled and unknown:
        msg = f"Console provider configured for unknown channels: {', '.join(unknown)}"
        raise ProviderConfigurationError(msg, provider="console")


def build_provider_registry(
    settings: ProviderSettings,
    *,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> ProviderRegistry:
    """Construct providers for all enabled blocks and register them.

    Args:
        settings: Provider settings (PROVIDER_*)
        timeout: Per-provider send timeout in seconds

    Returns:
        Populated registry

    Raises:
        ProviderConfigurationError: If an enabled provider is misconfigured
    """
    validate_provider_settings(settings)
    registry = ProviderRegistry()

    if settings.sendgrid.enabled:
        registry.register(
            Channel.EMAIL,
            SendGridProvider(settings.sendgrid, timeout=timeout),
            settings.sendgrid.priority,
        )
    if settings.smtp.enabled:
        registry.register(
            Channel.EMAIL,
            SMTPProvider(settings.smtp, timeout=timeout),
            settings.smtp.priority,
        )
    if settings.twilio.enabled:
        registry.register(
            Channel.SMS,
            TwilioProvider(settings.twilio, timeout=timeout),
            settings.twilio.priority,
        )
    if settings.fcm.enabled:
        registry.register(
            Channel.PUSH,
            FCMProvider(settings.fcm, timeout=timeout),
            settings.fcm.priority,
        )
    if settings.webhook.enabled:
        registry.register(
            Channel.WEBHOOK,
            WebhookProvider(settings.webhook, timeout=timeout),
            settings.webhook.priority,
        )
    if settings.in_app.enabled:
        registry.register(
            Channel.IN_APP,
            InAppProvider(timeout=timeout),
            settings.in_app.priority,
        )
    if settings.console.enabled:
        for channel in settings.console.channels:
            registry.register(
                channel,
                ConsoleProvider(Channel(channel), timeout=timeout),
                settings.console.priority,
            )

    logger.info(
        "Provider registry built",
        extra={
            "providers": [f"{r.channel}:{r.provider_id}" for r in registry.registrations()],
            "channels": [str(c) for c in registry.channels()],
        },
    )
    return registry
