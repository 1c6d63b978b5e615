"""Unit tests for column types, UUIDv7 keys and the generic repository."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import select, update
from sqlalchemy.dialects import postgresql, sqlite

from notification_service.core.database import (
    NotFoundError,
    RepositoryError,
    StringArray,
    UTCDateTime,
    generate_uuid7,
    utcnow,
)
from notification_service.features.notifications.models import (
    Notification,
    NotificationAnalytics,
)
from notification_service.features.notifications.repository import (
    NotificationAnalyticsRepository,
    NotificationRepository,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


def _notification(**overrides) -> Notification:
    values = {
        "user_id": "user-1",
        "notification_type": "test",
        "message": "hello",
        "channels": ["email"],
    }
    values.update(overrides)
    return Notification(**values)


@pytest.mark.unit
class TestUTCDateTime:
    """Test suite for UTCDateTime."""

    def test_sqlite_binds_naive_utc(self):
        column_type = UTCDateTime()
        value = datetime(2025, 1, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))

        bound = column_type.process_bind_param(value, sqlite.dialect())

        assert bound == datetime(2025, 1, 1, 12, 0)
        assert bound.tzinfo is None

    def test_postgres_binds_aware_utc(self):
        column_type = UTCDateTime()
        value = datetime(2025, 1, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))

        bound = column_type.process_bind_param(value, postgresql.dialect())

        assert bound == datetime(2025, 1, 1, 12, 0, tzinfo=UTC)
        assert bound.utcoffset() == timedelta(0)

    def test_naive_result_tagged_utc(self):
        """SQLite hands back naive values; they come out as aware UTC."""
        result = UTCDateTime().process_result_value(datetime(2025, 1, 1, 12, 0), sqlite.dialect())

        assert result == datetime(2025, 1, 1, 12, 0, tzinfo=UTC)

    def test_none_passthrough(self):
        assert UTCDateTime().process_bind_param(None, sqlite.dialect()) is None
        assert UTCDateTime().process_result_value(None, sqlite.dialect()) is None


@pytest.mark.unit
class TestStringArray:
    """Test suite for StringArray."""

    def test_sqlite_round_trip_as_json(self):
        column_type = StringArray()
        dialect = sqlite.dialect()

        bound = column_type.process_bind_param(["email", "sms"], dialect)

        assert bound == '["email", "sms"]'
        assert column_type.process_result_value(bound, dialect) == ["email", "sms"]

    def test_postgres_uses_native_list(self):
        bound = StringArray().process_bind_param(["push"], postgresql.dialect())

        assert bound == ["push"]

    def test_null_loads_as_empty_list(self):
        assert StringArray().process_result_value(None, sqlite.dialect()) == []


@pytest.mark.unit
def test_uuid7_is_version_7_and_time_ordered():
    first = generate_uuid7()
    second = generate_uuid7()

    assert first.version == 7
    # The 48-bit millisecond prefix never goes backwards
    assert first.bytes[:6] <= second.bytes[:6]


@pytest.mark.unit
def test_utcnow_is_aware():
    assert utcnow().tzinfo is UTC


@pytest.mark.asyncio
async def test_create_populates_id_and_timestamps(db_session: AsyncSession) -> None:
    repo = NotificationRepository()

    notification = await repo.create(db_session, _notification())

    assert notification.id is not None
    assert notification.created_at.tzinfo is not None
    assert notification.channels == ["email"]


@pytest.mark.asyncio
async def test_get_or_raise_missing(db_session: AsyncSession) -> None:
    repo = NotificationRepository()

    with pytest.raises(NotFoundError) as exc_info:
        await repo.get_or_raise(db_session, generate_uuid7())

    assert exc_info.value.model_name == "Notification"
    assert "Notification not found" in str(exc_info.value)


@pytest.mark.asyncio
async def test_get_populate_existing_reloads(db_session: AsyncSession) -> None:
    repo = NotificationRepository()
    notification = await repo.create(db_session, _notification(user_id="a"))
    await db_session.execute(
        update(Notification)
        .where(Notification.id == notification.id)
        .values(user_id="b")
        .execution_options(synchronize_session=False)
    )

    cached = await repo.get(db_session, notification.id)
    assert cached is not None
    assert cached.user_id == "a"

    reloaded = await repo.get(db_session, notification.id, populate_existing=True)
    assert reloaded is notification
    assert reloaded.user_id == "b"


@pytest.mark.asyncio
async def test_delete_older_than_uses_created_at(db_session: AsyncSession) -> None:
    repo = NotificationAnalyticsRepository()
    now = utcnow()
    db_session.add_all(
        [
            NotificationAnalytics(
                notification_id=generate_uuid7(),
                channel="email",
                event="sent",
                created_at=now - timedelta(days=100),
            ),
            NotificationAnalytics(
                notification_id=generate_uuid7(),
                channel="email",
                event="sent",
                created_at=now - timedelta(days=10),
            ),
        ]
    )
    await db_session.flush()

    deleted = await repo.delete_older_than(db_session, 90, now=now)
    remaining = (await db_session.execute(select(NotificationAnalytics))).scalars().all()

    assert deleted == 1
    assert len(remaining) == 1


@pytest.mark.asyncio
async def test_delete_older_than_rejects_negative_days(db_session: AsyncSession) -> None:
    with pytest.raises(RepositoryError, match="Retention days"):
        await NotificationAnalyticsRepository().delete_older_than(db_session, -1)
