"""Modular, environment-driven settings for the notification service."""

from __future__ import annotations

from .database import DatabaseSettings
from .loader import (
    clear_settings_cache,
    get_db_settings,
    get_logging_settings,
    get_notification_settings,
    get_provider_settings,
)
from .logs import LoggingSettings
from .notifications import NotificationSettings
from .providers import (
    ConsoleConfig,
    FCMConfig,
    InAppConfig,
    ProviderConfig,
    ProviderSettings,
    SendGridConfig,
    SMTPConfig,
    TwilioConfig,
    WebhookConfig,
)

__all__ = [
    "ConsoleConfig",
    "DatabaseSettings",
    "FCMConfig",
    "InAppConfig",
    "LoggingSettings",
    "NotificationSettings",
    "ProviderConfig",
    "ProviderSettings",
    "SMTPConfig",
    "SendGridConfig",
    "TwilioConfig",
    "WebhookConfig",
    "clear_settings_cache",
    "get_db_settings",
    "get_logging_settings",
    "get_notification_settings",
    "get_provider_settings",
]
