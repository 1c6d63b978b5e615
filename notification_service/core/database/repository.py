"""Minimal generic repository for SQLAlchemy models.

Provides basic CRUD operations with explicit session passing.
For complex queries, use the session directly - this is a convenience, not a cage.

Example:
    class NotificationRepository(BaseRepository[Notification]):
        async def find_pending(self, session: AsyncSession) -> Sequence[Notification]:
            stmt = select(Notification).where(Notification.status == "pending")
            result = await session.execute(stmt)
            return result.scalars().all()

    repo = NotificationRepository(Notification)
    notification = await repo.get(session, notification_id)
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from sqlalchemy import delete as sql_delete

from notification_service.core.database.base import utcnow
from notification_service.core.database.exceptions import NotFoundError, RepositoryError
from notification_service.infra.logging import get_lazy_logger

if TYPE_CHECKING:
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar("T")


class BaseRepository(Generic[T]):
    """Minimal generic repository for CRUD operations.

    Provides:
        - get(session, id) -> T | None
        - get_or_raise(session, id) -> T (raises NotFoundError)
        - create(session, instance) -> T
        - delete_older_than(session, days) -> int

    Session is always explicit - no hidden state. Repositories flush but never
    commit; the caller owns the transaction boundary.
    """

    __slots__ = ("model", "_logger", "_lazy")

    def __init__(self, model: type[T]) -> None:
        """Initialize repository with model class.

        Args:
            model: SQLAlchemy model class (e.g., Notification)
        """
        self.model = model
        # Standard logger for INFO/WARNING/ERROR
        self._logger = logging.getLogger(f"repository.{model.__name__}")
        # Lazy logger for DEBUG (zero overhead when DEBUG disabled)
        self._lazy = get_lazy_logger(f"repository.{model.__name__}")

    async def get(
        self,
        session: AsyncSession,
        id: Any,  # noqa: A002
        *,
        populate_existing: bool = False,
    ) -> T | None:
        """Get entity by primary key.

        Args:
            session: Database session
            id: Primary key value
            populate_existing: Reload attributes even if the entity is
                already in the session's identity map.

        Returns:
            Entity if found, None otherwise
        """
        instance = await session.get(self.model, id, populate_existing=populate_existing)

        self._lazy.debug(
            lambda: f"db.get: {self.model.__name__}({id}) -> {'found' if instance else 'not found'}"
        )
        return instance

    async def get_or_raise(
        self,
        session: AsyncSession,
        id: Any,  # noqa: A002
    ) -> T:
        """Get entity by primary key or raise NotFoundError.

        Raises:
            NotFoundError: If entity doesn't exist
        """
        instance = await self.get(session, id)
        if instance is None:
            self._logger.info(
                "Entity not found",
                extra={
                    "entity": self.model.__name__,
                    "id": str(id),
                    "operation": "db.get_or_raise",
                },
            )
            raise NotFoundError(self.model.__name__, {"id": id})
        return instance

    async def create(self, session: AsyncSession, instance: T) -> T:
        """Persist a new entity.

        Adds to session, flushes to get generated values (like id),
        and refreshes to ensure instance is up-to-date.

        Returns:
            Persisted entity with generated fields populated
        """
        session.add(instance)
        await session.flush()
        await session.refresh(instance)

        entity_id = getattr(instance, "id", None)
        self._lazy.debug(lambda: f"db.create: {self.model.__name__}(id={entity_id})")
        return instance

    async def delete_older_than(
        self,
        session: AsyncSession,
        days: int,
        *,
        now: datetime | None = None,
    ) -> int:
        """Delete every row whose ``created_at`` is older than ``days`` days.

        Uses a single DELETE statement; rows are never loaded into the session.

        Args:
            session: Database session
            days: Retention window in days
            now: Reference time (defaults to the current UTC time)

        Returns:
            Number of rows deleted

        Raises:
            RepositoryError: If the model has no ``created_at`` column or
                ``days`` is negative.
        """
        created_at = getattr(self.model, "created_at", None)
        if created_at is None:
            raise RepositoryError(
                "Model has no created_at column",
                details={"model": self.model.__name__},
            )
        if days < 0:
            raise RepositoryError("Retention days must be >= 0", details={"days": days})

        cutoff = (now or utcnow()) - timedelta(days=days)
        stmt = (
            sql_delete(self.model)
            .where(created_at < cutoff)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        await session.flush()
        deleted_count: int = result.rowcount or 0

        if deleted_count:
            self._logger.info(
                "Retention delete executed",
                extra={
                    "entity": self.model.__name__,
                    "deleted": deleted_count,
                    "retention_days": days,
                    "operation": "db.delete_older_than",
                },
            )
        else:
            self._lazy.debug(
                lambda: f"db.delete_older_than: {self.model.__name__}(days={days}) -> 0 deleted"
            )
        return deleted_count
