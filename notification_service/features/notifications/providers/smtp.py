"""SMTP email provider using aiosmtplib.

Supports:
- STARTTLS (port 587)
- Implicit SSL/TLS (port 465)
- Authentication (LOGIN, PLAIN)

Usage:
    provider = SMTPProvider(config)
    result = await provider.send("user@example.com", content, {})
"""

from __future__ import annotations

import logging
import ssl
from email.message import EmailMessage
from email.utils import make_msgid
from typing import TYPE_CHECKING, Any, ClassVar

import aiosmtplib

from notification_service.features.notifications.enums import Channel

from .base import DEFAULT_TIMEOUT_SECONDS, BaseProvider, MessageContent, ProviderResult

if TYPE_CHECKING:
    from notification_service.core.settings import SMTPConfig

logger = logging.getLogger(__name__)


class SMTPProvider(BaseProvider):
    """SMTP email provider using native async aiosmtplib."""

    channel: ClassVar[Channel] = Channel.EMAIL
    recipient_keys: ClassVar[tuple[str, ...]] = ("email", "email_address")

    def __init__(self, config: SMTPConfig, *, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> None:
        """Initialize SMTP provider.

        Args:
            config: SMTP block of the provider settings
            timeout: Upper bound in seconds for one send call

        Raises:
            ValueError: If the host or sender is missing
        """
        super().__init__(timeout=timeout)
        if not config.host or not config.from_email:
            msg = "SMTP provider requires host and from_email"
            raise ValueError(msg)

        self._host = config.host
        self._port = config.port
        self._username = config.username
        self._password = config.password.get_secret_value() if config.password else None
        self._use_tls = config.use_tls
        self._use_ssl = config.use_ssl
        self._from_email = config.from_email

        logger.info(
            "SMTP provider initialized",
            extra={
                "host": self._host,
                "port": self._port,
                "use_tls": self._use_tls,
                "use_ssl": self._use_ssl,
            },
        )

    @property
    def provider_id(self) -> str:
        return "smtp"

    def _client(self) -> aiosmtplib.SMTP:
        tls_context = ssl.create_default_context() if (self._use_tls or self._use_ssl) else None
        return aiosmtplib.SMTP(
            hostname=self._host,
            port=self._port,
            use_tls=self._use_ssl,
            start_tls=self._use_tls and not self._use_ssl,
            tls_context=tls_context,
            timeout=self.timeout,
        )

    def _build_message(
        self,
        recipient: str,
        content: MessageContent,
        metadata: dict[str, Any],
    ) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self._from_email
        message["To"] = recipient
        message["Subject"] = content.title or ""
        message["Message-ID"] = make_msgid(domain=self._from_email.rpartition("@")[2] or None)
        for key, value in metadata.items():
            message[f"X-Notification-{key}"] = str(value)
        message.set_content(content.message)
        return message

    async def _do_send(
        self,
        recipient: str,
        content: MessageContent,
        metadata: dict[str, Any],
    ) -> ProviderResult:
        message = self._build_message(recipient, content, metadata)
        message_id = message["Message-ID"]

        try:
            async with self._client() as smtp:
                if self._username and self._password:
                    await smtp.login(self._username, self._password)
                errors, _response = await smtp.send_message(message)
        except aiosmtplib.SMTPRecipientsRefused as e:
            return ProviderResult.terminal(self.provider_id, f"All recipients refused: {e}")
        except aiosmtplib.SMTPAuthenticationError as e:
            return ProviderResult.transient(self.provider_id, f"SMTP authentication failed: {e}")
        except aiosmtplib.SMTPResponseException as e:
            # 5xx replies are permanent, 4xx are temporary
            if 500 <= e.code < 600:
                return ProviderResult.terminal(self.provider_id, f"SMTP error {e.code}: {e.message}")
            return ProviderResult.transient(self.provider_id, f"SMTP error {e.code}: {e.message}")
        except (aiosmtplib.SMTPException, OSError) as e:
            return ProviderResult.transient(self.provider_id, f"SMTP connection failed: {e}")

        if recipient in errors:
            return ProviderResult.terminal(
                self.provider_id,
                f"Recipient rejected: {errors[recipient]}",
            )
        return ProviderResult.ok(self.provider_id, provider_message_id=message_id)

    async def _do_health_check(self) -> bool:
        try:
            async with self._client() as smtp:
                await smtp.noop()
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.warning("SMTP health check failed", extra={"host": self._host, "error": str(e)})
            return False
        return True
