"""Database management commands.

Example:bash
    # Create any missing tables
    notification-service db init
"""

import sys

import click

from notification_service.cli.utils import coro, error, info, success
from notification_service.core.settings import get_db_settings


@click.group(name="db")
def db() -> None:
    """Database management commands."""


@db.command()
@coro
async def init() -> None:
    """Create the notification tables if they do not exist."""
    from notification_service.infra.database import close_database, create_engine, init_database

    settings = get_db_settings()
    engine = create_engine(settings)
    info(f"Using {engine.dialect.name} database")

    try:
        await init_database(engine)
    except Exception as e:
        error(f"Failed to initialize database: {e}")
        sys.exit(1)
    finally:
        await close_database(engine)

    success("Database schema is up to date")
