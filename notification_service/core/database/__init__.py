"""Core database package: declarative base, mixins, column types and repository.

Base Classes and Mixins:
    - Base: Declarative base with constraint naming conventions
    - UUIDv7PKMixin: Time-sortable UUID primary keys
    - TimestampMixin: created_at, updated_at tracking (UTC)
    - UUIDv7TimestampedBase: Abstract base combining both

Types:
    - UTCDateTime: Timezone-aware datetime that round-trips as UTC on every backend
    - StringArray: Native ARRAY on PostgreSQL, JSON text elsewhere

Repository:
    - BaseRepository[T]: Generic CRUD with explicit session passing

Exceptions:
    - RepositoryError, NotFoundError
"""

from __future__ import annotations

from notification_service.core.database.base import (
    NAMING_CONVENTION,
    Base,
    TimestampMixin,
    UUIDv7PKMixin,
    UUIDv7TimestampedBase,
    generate_uuid7,
    utcnow,
)
from notification_service.core.database.exceptions import NotFoundError, RepositoryError
from notification_service.core.database.repository import BaseRepository
from notification_service.core.database.types import StringArray, UTCDateTime

__all__ = [
    "NAMING_CONVENTION",
    "Base",
    "BaseRepository",
    "NotFoundError",
    "RepositoryError",
    "TimestampMixin",
    "StringArray",
    "UTCDateTime",
    "UUIDv7PKMixin",
    "UUIDv7TimestampedBase",
    "generate_uuid7",
    "utcnow",
]
