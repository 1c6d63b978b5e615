"""Database infrastructure: engine, session factory and schema bootstrap."""

from __future__ import annotations

from notification_service.infra.database.session import (
    close_database,
    create_engine,
    create_session_factory,
    init_database,
    session_scope,
)

__all__ = [
    "close_database",
    "create_engine",
    "create_session_factory",
    "init_database",
    "session_scope",
]
