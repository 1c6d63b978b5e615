"""Tests for the HTTP-based providers against httpx.MockTransport."""

from __future__ import annotations

import json
from collections.abc import Callable
from urllib.parse import parse_qs

import httpx
import pytest

from notification_service.core.settings import (
    FCMConfig,
    SendGridConfig,
    TwilioConfig,
    WebhookConfig,
)
from notification_service.features.notifications.enums import ErrorKind
from notification_service.features.notifications.providers import (
    FCMProvider,
    MessageContent,
    SendGridProvider,
    TwilioProvider,
    WebhookProvider,
    generate_signature,
)

CONTENT = MessageContent(message="Your order has shipped", title="Order update", data={"order": 42})


def _client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def captured() -> list[httpx.Request]:
    """Requests seen by the mock transport, in order."""
    return []


@pytest.mark.unit
class TestSendGridProvider:
    """Test suite for SendGridProvider."""

    @pytest.fixture
    def config(self) -> SendGridConfig:
        return SendGridConfig(
            enabled=True,
            api_key="SG.test",
            from_email="noreply@example.com",
            from_name="Shop",
            base_url="https://sendgrid.test/v3",
        )

    @pytest.mark.asyncio
    async def test_accepted(self, config, captured):
        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return httpx.Response(202, headers={"X-Message-Id": "sg-123"})

        provider = SendGridProvider(config, client=_client(handler))
        result = await provider.send("user@example.com", CONTENT, {"notification_id": "n-1"})

        assert result.success is True
        assert result.provider_id == "sendgrid"
        assert result.provider_message_id == "sg-123"
        assert result.duration_ms is not None

        request = captured[0]
        assert str(request.url) == "https://sendgrid.test/v3/mail/send"
        assert request.headers["Authorization"] == "Bearer SG.test"
        body = json.loads(request.content)
        assert body["personalizations"] == [{"to": [{"email": "user@example.com"}]}]
        assert body["from"] == {"email": "noreply@example.com", "name": "Shop"}
        assert body["subject"] == "Order update"
        assert body["custom_args"] == {"notification_id": "n-1"}

    @pytest.mark.asyncio
    async def test_invalid_recipient_is_terminal_without_request(self, config, captured):
        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return httpx.Response(202)

        provider = SendGridProvider(config, client=_client(handler))
        result = await provider.send("not-an-email", CONTENT, {})

        assert result.success is False
        assert result.error_kind == ErrorKind.TERMINAL
        assert captured == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("status", "kind"),
        [
            (400, ErrorKind.TERMINAL),
            (413, ErrorKind.TERMINAL),
            (401, ErrorKind.TRANSIENT),
            (429, ErrorKind.TRANSIENT),
            (503, ErrorKind.TRANSIENT),
        ],
    )
    async def test_error_status_classification(self, config, status, kind):
        provider = SendGridProvider(
            config, client=_client(lambda request: httpx.Response(status, text="nope"))
        )

        result = await provider.send("user@example.com", CONTENT, {})

        assert result.success is False
        assert result.error_kind == kind
        assert str(status) in (result.error or "")
        assert result.metadata["status_code"] == status

    @pytest.mark.asyncio
    async def test_network_error_is_transient(self, config):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        provider = SendGridProvider(config, client=_client(handler))
        result = await provider.send("user@example.com", CONTENT, {})

        assert result.success is False
        assert result.error_kind == ErrorKind.TRANSIENT
        assert "connection refused" in (result.error or "")

    @pytest.mark.asyncio
    async def test_request_timeout_is_transient(self, config):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        provider = SendGridProvider(config, client=_client(handler))
        result = await provider.send("user@example.com", CONTENT, {})

        assert result.error_kind == ErrorKind.TRANSIENT
        assert result.metadata == {"timeout": True}

    def test_requires_credentials(self):
        with pytest.raises(ValueError, match="api_key"):
            SendGridProvider(SendGridConfig(from_email="noreply@example.com"))


@pytest.mark.unit
class TestTwilioProvider:
    """Test suite for TwilioProvider."""

    @pytest.fixture
    def config(self) -> TwilioConfig:
        return TwilioConfig(
            enabled=True,
            account_sid="AC123",
            auth_token="token",
            from_number="+15550000000",
            base_url="https://twilio.test/2010-04-01",
        )

    @pytest.mark.asyncio
    async def test_created(self, config, captured):
        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return httpx.Response(201, json={"sid": "SM1", "status": "queued"})

        provider = TwilioProvider(config, client=_client(handler))
        result = await provider.send("+15551234567", CONTENT, {})

        assert result.success is True
        assert result.provider_message_id == "SM1"
        assert result.metadata["twilio_status"] == "queued"

        request = captured[0]
        assert str(request.url) == "https://twilio.test/2010-04-01/Accounts/AC123/Messages.json"
        assert request.headers["Authorization"].startswith("Basic ")
        form = parse_qs(request.content.decode())
        assert form["To"] == ["+15551234567"]
        assert form["From"] == ["+15550000000"]
        assert form["Body"] == ["Order update\nYour order has shipped"]

    @pytest.mark.asyncio
    async def test_invalid_number_is_terminal(self, config):
        provider = TwilioProvider(
            config,
            client=_client(lambda request: httpx.Response(400, json={"code": 21211})),
        )

        result = await provider.send("12", CONTENT, {})

        assert result.success is False
        assert result.error_kind == ErrorKind.TERMINAL

    @pytest.mark.asyncio
    async def test_body_truncated(self, config, captured):
        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return httpx.Response(201, json={"sid": "SM2"})

        provider = TwilioProvider(config, client=_client(handler))
        await provider.send("+15551234567", MessageContent(message="x" * 5000), {})

        form = parse_qs(captured[0].content.decode())
        assert len(form["Body"][0]) == 1600


@pytest.mark.unit
class TestFCMProvider:
    """Test suite for FCMProvider."""

    @pytest.fixture
    def config(self) -> FCMConfig:
        return FCMConfig(
            enabled=True,
            project_id="shop-app",
            access_token="ya29.token",
            base_url="https://fcm.test/v1",
        )

    @pytest.mark.asyncio
    async def test_sent(self, config, captured):
        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return httpx.Response(200, json={"name": "projects/shop-app/messages/1"})

        provider = FCMProvider(config, client=_client(handler))
        result = await provider.send("device-token", CONTENT, {})

        assert result.success is True
        assert result.provider_message_id == "projects/shop-app/messages/1"
        body = json.loads(captured[0].content)
        assert body["message"]["token"] == "device-token"
        assert body["message"]["notification"] == {
            "title": "Order update",
            "body": "Your order has shipped",
        }
        assert body["message"]["data"] == {"order": "42"}
        assert str(captured[0].url) == "https://fcm.test/v1/projects/shop-app/messages:send"

    @pytest.mark.asyncio
    async def test_unregistered_token_is_terminal(self, config):
        provider = FCMProvider(
            config,
            client=_client(
                lambda request: httpx.Response(404, json={"error": {"status": "NOT_FOUND"}})
            ),
        )

        result = await provider.send("stale-token", CONTENT, {})

        assert result.success is False
        assert result.error_kind == ErrorKind.TERMINAL

    @pytest.mark.asyncio
    async def test_server_error_is_transient(self, config):
        provider = FCMProvider(config, client=_client(lambda request: httpx.Response(500)))

        result = await provider.send("device-token", CONTENT, {})

        assert result.error_kind == ErrorKind.TRANSIENT


@pytest.mark.unit
class TestWebhookProvider:
    """Test suite for WebhookProvider and its request signing."""

    @pytest.fixture
    def config(self) -> WebhookConfig:
        return WebhookConfig(enabled=True, url="https://hooks.example.com/default", secret="s3cret")

    def test_signature_is_hmac_sha256_of_timestamp_and_payload(self):
        signature = generate_signature("key", "2025-01-01T00:00:00Z", '{"a":1}')

        assert len(signature) == 64
        assert signature == generate_signature("key", "2025-01-01T00:00:00Z", '{"a":1}')
        assert signature != generate_signature("key", "2025-01-01T00:00:01Z", '{"a":1}')

    @pytest.mark.asyncio
    async def test_signed_post(self, config, captured):
        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return httpx.Response(204)

        provider = WebhookProvider(config, client=_client(handler))
        result = await provider.send("https://hooks.example.com/orders", CONTENT, {"k": "v"})

        assert result.success is True
        request = captured[0]
        payload = request.content.decode()
        timestamp = request.headers["X-Webhook-Timestamp"]
        assert request.headers["X-Webhook-Signature"] == generate_signature(
            "s3cret", timestamp, payload
        )
        assert json.loads(payload) == {
            "title": "Order update",
            "message": "Your order has shipped",
            "data": {"order": 42},
            "metadata": {"k": "v"},
        }

    @pytest.mark.asyncio
    async def test_non_http_url_is_terminal(self, config):
        provider = WebhookProvider(config, client=_client(lambda request: httpx.Response(200)))

        result = await provider.send("ftp://example.com", CONTENT, {})

        assert result.error_kind == ErrorKind.TERMINAL

    def test_requires_secret(self):
        with pytest.raises(ValueError, match="secret"):
            WebhookProvider(WebhookConfig(enabled=True, url="https://x.example"))
