"""LRU-cached settings loaders.

Settings are loaded and validated once, then cached for the lifetime of the process.

Usage:
    from notification_service.core.settings.loader import get_notification_settings

    settings = get_notification_settings()  # First call: loads and validates
    settings = get_notification_settings()  # Subsequent calls: cached instance

Testing:
    In tests, clear the cache to force reload:
    get_notification_settings.cache_clear()

    Or build settings directly:
    settings = NotificationSettings(max_attempts=2)
"""

from __future__ import annotations

from functools import lru_cache

from .database import DatabaseSettings
from .logs import LoggingSettings
from .notifications import NotificationSettings
from .providers import ProviderSettings


@lru_cache(maxsize=1)
def get_logging_settings() -> LoggingSettings:
    """Get cached logging settings.

    Returns:
        Validated and frozen LoggingSettings instance.
    """
    return LoggingSettings()


@lru_cache(maxsize=1)
def get_db_settings() -> DatabaseSettings:
    """Get cached database settings.

    Returns:
        Validated and frozen DatabaseSettings instance.
    """
    return DatabaseSettings()


@lru_cache(maxsize=1)
def get_notification_settings() -> NotificationSettings:
    """Get cached delivery policy and job settings.

    Returns:
        Validated and frozen NotificationSettings instance.
    """
    return NotificationSettings()


@lru_cache(maxsize=1)
def get_provider_settings() -> ProviderSettings:
    """Get cached provider settings.

    Returns:
        Validated and frozen ProviderSettings instance.
    """
    return ProviderSettings()


def clear_settings_cache() -> None:
    """Drop every cached settings instance (tests and reloads)."""
    get_logging_settings.cache_clear()
    get_db_settings.cache_clear()
    get_notification_settings.cache_clear()
    get_provider_settings.cache_clear()
