"""Delivery provider settings.

Environment variables use PROVIDER_ prefix with ``__`` separating the
provider block from the field.
Example: PROVIDER_SENDGRID__ENABLED=true, PROVIDER_SENDGRID__API_KEY=SG.xxx

Credentials are only checked for enabled providers, and that check happens
once when the provider registry is built at startup.
"""

from __future__ import annotations

from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProviderConfig(BaseModel):
    """Fields shared by every provider block."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    required_fields: ClassVar[tuple[str, ...]] = ()

    enabled: bool = Field(default=False, description="Register this provider at startup")
    priority: int = Field(
        default=10,
        ge=0,
        le=1000,
        description="Lower numbers are tried first within a channel",
    )

    def missing_credentials(self) -> list[str]:
        """Return required fields that are unset or blank."""
        missing = []
        for name in self.required_fields:
            value = getattr(self, name)
            if isinstance(value, SecretStr):
                value = value.get_secret_value()
            if value is None or (isinstance(value, str) and not value.strip()):
                missing.append(name)
        return missing


class SendGridConfig(ProviderConfig):
    """SendGrid API v3 (email)."""

    required_fields: ClassVar[tuple[str, ...]] = ("api_key", "from_email")

    api_key: SecretStr | None = None
    from_email: str | None = None
    from_name: str | None = None
    base_url: str = "https://api.sendgrid.com/v3"


class SMTPConfig(ProviderConfig):
    """Plain SMTP relay (email), usually a fallback behind SendGrid."""

    required_fields: ClassVar[tuple[str, ...]] = ("host", "from_email")

    priority: int = Field(default=20, ge=0, le=1000)
    host: str | None = None
    port: int = Field(default=587, ge=1, le=65535)
    username: str | None = None
    password: SecretStr | None = None
    use_tls: bool = True
    use_ssl: bool = False
    from_email: str | None = None


class TwilioConfig(ProviderConfig):
    """Twilio Programmable Messaging (sms)."""

    required_fields: ClassVar[tuple[str, ...]] = ("account_sid", "auth_token", "from_number")

    account_sid: str | None = None
    auth_token: SecretStr | None = None
    from_number: str | None = None
    base_url: str = "https://api.twilio.com/2010-04-01"


class FCMConfig(ProviderConfig):
    """Firebase Cloud Messaging HTTP v1 (push)."""

    required_fields: ClassVar[tuple[str, ...]] = ("project_id", "access_token")

    project_id: str | None = None
    access_token: SecretStr | None = None
    base_url: str = "https://fcm.googleapis.com/v1"


class WebhookConfig(ProviderConfig):
    """Signed HTTP POST (webhook)."""

    required_fields: ClassVar[tuple[str, ...]] = ("secret",)

    url: str | None = Field(
        default=None,
        description="Default target; a notification's data.webhook_url overrides it",
    )
    secret: SecretStr | None = None


class InAppConfig(ProviderConfig):
    """In-app delivery; the stored notification is the inbox entry."""

    enabled: bool = True


class ConsoleConfig(ProviderConfig):
    """Log-only provider for development, registered as the last resort."""

    priority: int = Field(default=100, ge=0, le=1000)
    channels: list[str] = Field(
        default_factory=lambda: ["email", "sms", "push", "webhook"],
        description="Channels the console provider stands in for",
    )


class ProviderSettings(BaseSettings):
    """All provider blocks known to the service."""

    sendgrid: SendGridConfig = Field(default_factory=SendGridConfig)
    smtp: SMTPConfig = Field(default_factory=SMTPConfig)
    twilio: TwilioConfig = Field(default_factory=TwilioConfig)
    fcm: FCMConfig = Field(default_factory=FCMConfig)
    webhook: WebhookConfig = Field(default_factory=WebhookConfig)
    in_app: InAppConfig = Field(default_factory=InAppConfig)
    console: ConsoleConfig = Field(default_factory=ConsoleConfig)

    model_config = SettingsConfigDict(
        env_prefix="PROVIDER_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )
