"""Channel delivery providers and the registry that orders them."""

from __future__ import annotations

from .base import BaseProvider, MessageContent, Provider, ProviderResult, classify_http_status
from .console import ConsoleProvider
from .factory import build_provider_registry, validate_provider_settings
from .fcm import FCMProvider
from .in_app import InAppProvider
from .registry import ProviderRegistration, ProviderRegistry
from .sendgrid import SendGridProvider
from .smtp import SMTPProvider
from .twilio import TwilioProvider
from .webhook import WebhookProvider, generate_signature

__all__ = [
    "BaseProvider",
    "ConsoleProvider",
    "FCMProvider",
    "InAppProvider",
    "MessageContent",
    "Provider",
    "ProviderRegistration",
    "ProviderRegistry",
    "ProviderResult",
    "SMTPProvider",
    "SendGridProvider",
    "TwilioProvider",
    "WebhookProvider",
    "build_provider_registry",
    "classify_http_status",
    "generate_signature",
    "validate_provider_settings",
]
