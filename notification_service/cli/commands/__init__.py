"""CLI command modules."""

from notification_service.cli.commands import database, jobs, providers

__all__ = [
    "database",
    "jobs",
    "providers",
]
