"""Main CLI entry point for notification-service management commands."""

import click

from notification_service.cli.commands import database, jobs, providers
from notification_service.infra.logging import setup_logging


@click.group()
@click.version_option(version="0.1.0", prog_name="notification-service")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Notification Service CLI - Operate the delivery engine.

    \b
    Command Groups:
      providers  Inspect and health-check delivery providers
      jobs       Run the scheduler, retry and cleanup jobs
      db         Database schema management

    \b
    Quick Start:
      notification-service db init            # Create tables
      notification-service providers list     # Show provider order per channel
      notification-service jobs tick cleanup  # Run one cleanup cycle
      notification-service jobs run           # Run all jobs until interrupted
    """
    ctx.ensure_object(dict)


cli.add_command(providers.providers)
cli.add_command(jobs.jobs)
cli.add_command(database.db)


def main() -> None:
    """Entry point for CLI."""
    setup_logging()
    cli(obj={})


if __name__ == "__main__":
    main()
