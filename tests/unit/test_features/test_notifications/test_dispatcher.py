"""Tests for NotificationDispatcher against an in-memory database."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import TYPE_CHECKING
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select

from notification_service.core.database import NotFoundError, generate_uuid7, utcnow
from notification_service.features.notifications.dispatcher import NotificationDispatcher
from notification_service.features.notifications.enums import (
    Channel,
    DeliveryStatus,
    ErrorKind,
    NotificationStatus,
)
from notification_service.features.notifications.exceptions import (
    InvalidNotificationError,
    TemplateNotFoundError,
)
from notification_service.features.notifications.models import (
    Notification,
    NotificationAnalytics,
    NotificationTemplate,
)
from notification_service.features.notifications.providers import ProviderResult
from notification_service.features.notifications.repository import (
    NotificationDeliveryRepository,
    NotificationRepository,
)
from notification_service.features.notifications.schemas import SendNotificationRequest

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from notification_service.features.notifications.providers import ProviderRegistry


def _request(*channels: str, **overrides) -> SendNotificationRequest:
    values = {
        "user_id": "user-1",
        "type": "order_shipped",
        "channels": list(channels),
        "message": "Your order has shipped",
        "title": "Order update",
        "data": {"email": "user@example.com"},
    }
    values.update(overrides)
    return SendNotificationRequest(**values)


@pytest.mark.asyncio
async def test_partial_success_is_sent(
    db_session: AsyncSession,
    dispatcher: NotificationDispatcher,
    registry: ProviderRegistry,
    make_provider,
) -> None:
    """One channel succeeding is enough for the notification to be sent."""
    now = utcnow()
    email = make_provider(Channel.EMAIL, "sendgrid")
    push = make_provider(
        Channel.PUSH, "fcm", ProviderResult.transient("fcm", "503 unavailable"), recipient="tok"
    )
    registry.register(Channel.EMAIL, email)
    registry.register(Channel.PUSH, push)

    result = await dispatcher.send(db_session, _request("email", "push"), now=now)

    assert result.status == NotificationStatus.SENT
    assert list(result.results) == [Channel.EMAIL, Channel.PUSH]
    assert result.succeeded_channels == [Channel.EMAIL]
    assert result.failed_channels == [Channel.PUSH]

    push_result = result.results[Channel.PUSH]
    assert push_result.status == DeliveryStatus.FAILED
    assert push_result.will_retry is True
    assert push_result.error == "503 unavailable"

    deliveries = await NotificationDeliveryRepository().find_by_notification(
        db_session, result.notification_id
    )
    by_channel = {d.channel: d for d in deliveries}
    assert by_channel["email"].status == DeliveryStatus.SENT
    assert by_channel["email"].provider_message_id == "sendgrid-1"
    assert by_channel["email"].attempt_count == 1
    assert by_channel["push"].next_retry_at == now + timedelta(seconds=60)
    assert by_channel["push"].recipient == "tok"

    notification = await NotificationRepository().get(db_session, result.notification_id)
    assert notification.status == NotificationStatus.SENT
    assert notification.sent_at == now
    assert notification.claimed_at is None

    analytics = (await db_session.execute(select(NotificationAnalytics))).scalars().all()
    assert sorted((a.channel, a.event) for a in analytics) == [
        ("email", "sent"),
        ("push", "failed"),
    ]


@pytest.mark.asyncio
async def test_channel_without_provider_fails_terminally(
    db_session: AsyncSession,
    dispatcher: NotificationDispatcher,
) -> None:
    result = await dispatcher.send(db_session, _request("sms"))

    assert result.status == NotificationStatus.FAILED
    sms = result.results[Channel.SMS]
    assert sms.success is False
    assert sms.error == "no provider available"
    assert sms.will_retry is False

    deliveries = await NotificationDeliveryRepository().find_by_notification(
        db_session, result.notification_id
    )
    assert deliveries[0].error_kind == ErrorKind.TERMINAL
    assert deliveries[0].next_retry_at is None


@pytest.mark.asyncio
async def test_future_schedule_contacts_no_provider(
    db_session: AsyncSession,
    dispatcher: NotificationDispatcher,
    registry: ProviderRegistry,
    make_provider,
) -> None:
    now = utcnow()
    email = make_provider(Channel.EMAIL, "sendgrid")
    registry.register(Channel.EMAIL, email)

    result = await dispatcher.send(
        db_session,
        _request("email", scheduled_for=now + timedelta(hours=1)),
        now=now,
    )

    assert result.status == NotificationStatus.PENDING
    assert result.scheduled is True
    assert result.results == {}
    email.send.assert_not_awaited()

    notification = await NotificationRepository().get(db_session, result.notification_id)
    assert notification.status == NotificationStatus.PENDING
    assert notification.scheduled_for == now + timedelta(hours=1)
    assert await NotificationDeliveryRepository().find_by_notification(
        db_session, result.notification_id
    ) == []


@pytest.mark.asyncio
async def test_past_schedule_is_sent_now(
    db_session: AsyncSession,
    dispatcher: NotificationDispatcher,
    registry: ProviderRegistry,
    make_provider,
) -> None:
    now = utcnow()
    registry.register(Channel.EMAIL, make_provider(Channel.EMAIL, "sendgrid"))

    result = await dispatcher.send(
        db_session, _request("email", scheduled_for=now - timedelta(minutes=1)), now=now
    )

    assert result.status == NotificationStatus.SENT


@pytest.mark.asyncio
async def test_falls_back_to_next_provider(
    db_session: AsyncSession,
    dispatcher: NotificationDispatcher,
    registry: ProviderRegistry,
    make_provider,
) -> None:
    primary = make_provider(Channel.EMAIL, "sendgrid", ProviderResult.transient("sendgrid", "503"))
    backup = make_provider(Channel.EMAIL, "smtp")
    registry.register(Channel.EMAIL, primary, priority=10)
    registry.register(Channel.EMAIL, backup, priority=20)

    result = await dispatcher.send(db_session, _request("email"))

    email = result.results[Channel.EMAIL]
    assert email.success is True
    assert email.provider_id == "smtp"
    primary.send.assert_awaited_once()
    backup.send.assert_awaited_once()

    args = backup.send.await_args.args
    assert args[0] == "user@example.com"
    assert args[1].message == "Your order has shipped"
    assert args[2]["notification_id"] == str(result.notification_id)


@pytest.mark.asyncio
async def test_transient_anywhere_keeps_delivery_retryable(
    db_session: AsyncSession,
    dispatcher: NotificationDispatcher,
    registry: ProviderRegistry,
    make_provider,
) -> None:
    registry.register(
        Channel.EMAIL,
        make_provider(Channel.EMAIL, "sendgrid", ProviderResult.transient("sendgrid", "503")),
        priority=10,
    )
    registry.register(
        Channel.EMAIL,
        make_provider(Channel.EMAIL, "smtp", ProviderResult.terminal("smtp", "550 rejected")),
        priority=20,
    )

    result = await dispatcher.send(db_session, _request("email"))

    email = result.results[Channel.EMAIL]
    assert email.success is False
    assert email.will_retry is True
    assert email.provider_id == "smtp"
    assert email.error == "550 rejected"


@pytest.mark.asyncio
async def test_terminal_failure_is_not_retried(
    db_session: AsyncSession,
    dispatcher: NotificationDispatcher,
    registry: ProviderRegistry,
    make_provider,
) -> None:
    registry.register(
        Channel.SMS,
        make_provider(Channel.SMS, "twilio", ProviderResult.terminal("twilio", "invalid number")),
    )

    result = await dispatcher.send(db_session, _request("sms"))

    assert result.status == NotificationStatus.FAILED
    assert result.results[Channel.SMS].will_retry is False


@pytest.mark.asyncio
async def test_provider_exception_becomes_transient_failure(
    db_session: AsyncSession,
    dispatcher: NotificationDispatcher,
    registry: ProviderRegistry,
    make_provider,
) -> None:
    registry.register(
        Channel.WEBHOOK,
        make_provider(Channel.WEBHOOK, "webhook", RuntimeError("socket closed")),
    )

    result = await dispatcher.send(db_session, _request("webhook"))

    webhook = result.results[Channel.WEBHOOK]
    assert webhook.success is False
    assert webhook.error == "socket closed"
    assert webhook.will_retry is True


@pytest.mark.asyncio
async def test_slow_provider_is_cut_off(
    db_session: AsyncSession,
    registry: ProviderRegistry,
    tracker,
    make_provider,
) -> None:
    async def hang(*args, **kwargs):
        await asyncio.sleep(5)

    slow = make_provider(Channel.PUSH, "fcm")
    slow.send = AsyncMock(side_effect=hang)
    registry.register(Channel.PUSH, slow)
    dispatcher = NotificationDispatcher(registry, tracker, provider_timeout=0.05)

    result = await dispatcher.send(db_session, _request("push"))

    push = result.results[Channel.PUSH]
    assert push.success is False
    assert push.will_retry is True
    assert "timed out" in (push.error or "")


@pytest.mark.asyncio
async def test_missing_recipient_skips_provider(
    db_session: AsyncSession,
    dispatcher: NotificationDispatcher,
    registry: ProviderRegistry,
    make_provider,
) -> None:
    push = make_provider(Channel.PUSH, "fcm", recipient=None)
    registry.register(Channel.PUSH, push)

    result = await dispatcher.send(db_session, _request("push"))

    assert result.status == NotificationStatus.FAILED
    assert result.results[Channel.PUSH].will_retry is False
    push.send.assert_not_awaited()


@pytest.mark.asyncio
async def test_template_send_renders_title_and_message(
    db_session: AsyncSession,
    dispatcher: NotificationDispatcher,
    registry: ProviderRegistry,
    make_provider,
) -> None:
    db_session.add(
        NotificationTemplate(
            slug="shipped",
            notification_type="order_shipped",
            subject="Order {{ order_id }}",
            body="Order {{ order_id }} shipped",
        )
    )
    await db_session.flush()
    in_app = make_provider(Channel.IN_APP, "in_app")
    registry.register(Channel.IN_APP, in_app)

    result = await dispatcher.send(
        db_session,
        _request(
            "in_app",
            message=None,
            title=None,
            template_slug="shipped",
            template_params={"order_id": 9},
        ),
    )

    notification = await NotificationRepository().get(db_session, result.notification_id)
    assert notification.title == "Order 9"
    assert notification.message == "Order 9 shipped"
    assert in_app.send.await_args.args[1].title == "Order 9"


@pytest.mark.asyncio
async def test_unknown_template_persists_nothing(
    db_session: AsyncSession,
    dispatcher: NotificationDispatcher,
) -> None:
    with pytest.raises(TemplateNotFoundError):
        await dispatcher.send(
            db_session, _request("email", message=None, template_slug="nope")
        )

    assert (await db_session.execute(select(Notification))).scalars().all() == []


@pytest.mark.asyncio
async def test_dispatch_does_not_resend_existing_channels(
    db_session: AsyncSession,
    dispatcher: NotificationDispatcher,
    registry: ProviderRegistry,
    make_provider,
) -> None:
    email = make_provider(Channel.EMAIL, "sendgrid")
    registry.register(Channel.EMAIL, email)
    first = await dispatcher.send(db_session, _request("email"))
    notification = await NotificationRepository().get(db_session, first.notification_id)

    second = await dispatcher.dispatch(db_session, notification)

    assert second.status == NotificationStatus.SENT
    assert second.results[Channel.EMAIL].delivery_id == first.results[Channel.EMAIL].delivery_id
    email.send.assert_awaited_once()
    deliveries = await NotificationDeliveryRepository().find_by_notification(
        db_session, first.notification_id
    )
    assert len(deliveries) == 1


@pytest.mark.asyncio
async def test_redeliver_success_promotes_failed_notification(
    db_session: AsyncSession,
    dispatcher: NotificationDispatcher,
    registry: ProviderRegistry,
    make_provider,
) -> None:
    now = utcnow()
    sms = make_provider(
        Channel.SMS,
        "twilio",
        ProviderResult.transient("twilio", "429"),
        ProviderResult.ok("twilio", provider_message_id="SM1"),
    )
    registry.register(Channel.SMS, sms)
    first = await dispatcher.send(db_session, _request("sms"), now=now)
    assert first.status == NotificationStatus.FAILED

    deliveries = NotificationDeliveryRepository()
    delivery = (await deliveries.find_by_notification(db_session, first.notification_id))[0]
    notification = await NotificationRepository().get(db_session, first.notification_id)

    retried = await dispatcher.redeliver(
        db_session, delivery, notification, now=now + timedelta(minutes=2)
    )

    assert retried.success is True
    assert delivery.attempt_count == 2
    assert delivery.provider_message_id == "SM1"
    assert notification.status == NotificationStatus.SENT
    assert notification.sent_at == now + timedelta(minutes=2)


# ============================================================================
# Manual retry and cancel
# ============================================================================


@pytest.mark.asyncio
async def test_retry_does_not_wait_for_backoff(
    db_session: AsyncSession,
    dispatcher: NotificationDispatcher,
    registry: ProviderRegistry,
    make_provider,
) -> None:
    now = utcnow()
    sms = make_provider(
        Channel.SMS,
        "twilio",
        ProviderResult.transient("twilio", "429"),
        ProviderResult.ok("twilio", provider_message_id="SM1"),
    )
    registry.register(Channel.SMS, sms)
    first = await dispatcher.send(db_session, _request("sms"), now=now)

    retried = await dispatcher.retry(
        db_session, first.notification_id, now=now + timedelta(seconds=1)
    )

    assert retried.status == NotificationStatus.SENT
    assert retried.results[Channel.SMS].success is True
    assert retried.results[Channel.SMS].delivery_id == first.results[Channel.SMS].delivery_id
    assert sms.send.await_count == 2


@pytest.mark.asyncio
async def test_retry_reopens_terminal_failures_only_when_forced(
    db_session: AsyncSession,
    dispatcher: NotificationDispatcher,
    registry: ProviderRegistry,
    make_provider,
) -> None:
    email = make_provider(
        Channel.EMAIL,
        "sendgrid",
        ProviderResult.terminal("sendgrid", "mailbox does not exist"),
        ProviderResult.ok("sendgrid", provider_message_id="sg-2"),
    )
    registry.register(Channel.EMAIL, email)
    first = await dispatcher.send(db_session, _request("email"))

    plain = await dispatcher.retry(db_session, first.notification_id)

    assert plain.status == NotificationStatus.FAILED
    assert plain.results[Channel.EMAIL].error == "mailbox does not exist"
    email.send.assert_awaited_once()

    forced = await dispatcher.retry(db_session, first.notification_id, force=True)

    assert forced.status == NotificationStatus.SENT
    assert forced.results[Channel.EMAIL].provider_message_id == "sg-2"
    delivery = (
        await NotificationDeliveryRepository().find_by_notification(
            db_session, first.notification_id
        )
    )[0]
    assert delivery.attempt_count == 2
    assert delivery.failed_at is None


@pytest.mark.asyncio
async def test_retry_leaves_sent_channels_alone(
    db_session: AsyncSession,
    dispatcher: NotificationDispatcher,
    registry: ProviderRegistry,
    make_provider,
) -> None:
    email = make_provider(Channel.EMAIL, "sendgrid")
    push = make_provider(
        Channel.PUSH,
        "fcm",
        ProviderResult.transient("fcm", "503 unavailable"),
        ProviderResult.ok("fcm"),
        recipient="tok",
    )
    registry.register(Channel.EMAIL, email)
    registry.register(Channel.PUSH, push)
    first = await dispatcher.send(db_session, _request("email", "push"))

    retried = await dispatcher.retry(db_session, first.notification_id, force=True)

    assert list(retried.results) == [Channel.EMAIL, Channel.PUSH]
    assert retried.succeeded_channels == [Channel.EMAIL, Channel.PUSH]
    email.send.assert_awaited_once()
    assert push.send.await_count == 2


@pytest.mark.asyncio
async def test_retry_rejects_undispatched_notification(
    db_session: AsyncSession,
    dispatcher: NotificationDispatcher,
) -> None:
    scheduled = await dispatcher.send(
        db_session, _request("email", scheduled_for=utcnow() + timedelta(hours=1))
    )

    with pytest.raises(InvalidNotificationError, match="pending"):
        await dispatcher.retry(db_session, scheduled.notification_id)

    with pytest.raises(NotFoundError):
        await dispatcher.retry(db_session, generate_uuid7())


@pytest.mark.asyncio
async def test_cancel_only_pending_notifications(
    db_session: AsyncSession,
    dispatcher: NotificationDispatcher,
    registry: ProviderRegistry,
    make_provider,
) -> None:
    email = make_provider(Channel.EMAIL, "sendgrid")
    registry.register(Channel.EMAIL, email)
    now = utcnow()
    scheduled = await dispatcher.send(
        db_session, _request("email", scheduled_for=now + timedelta(hours=1)), now=now
    )
    sent = await dispatcher.send(db_session, _request("email"), now=now)

    assert await dispatcher.cancel(db_session, scheduled.notification_id) is True
    assert await dispatcher.cancel(db_session, scheduled.notification_id) is False
    assert await dispatcher.cancel(db_session, sent.notification_id) is False

    repo = NotificationRepository()
    cancelled = await repo.get(db_session, scheduled.notification_id)
    assert cancelled.status == NotificationStatus.CANCELLED
    assert await repo.find_scheduled_to_send(db_session, now=now + timedelta(days=1)) == []
    assert (await repo.get(db_session, sent.notification_id)).status == NotificationStatus.SENT
    email.send.assert_awaited_once()

    with pytest.raises(NotFoundError):
        await dispatcher.cancel(db_session, generate_uuid7())
