"""Background job commands.

Example:bash
    # Run the scheduler, retry and cleanup jobs until interrupted
    notification-service jobs run

    # Run a single cycle of one job
    notification-service jobs tick retry
"""

from __future__ import annotations

import asyncio
import json
import signal
import sys
from datetime import UTC, datetime

import click

from notification_service.cli.utils import coro, error, header, info, success
from notification_service.features.notifications.exceptions import ProviderConfigurationError


def _build_runtime():
    from notification_service.app.runtime import NotificationRuntime

    try:
        return NotificationRuntime.build(configure_logs=False)
    except ProviderConfigurationError as e:
        error(e.message)
        sys.exit(1)


@click.group(name="jobs")
def jobs() -> None:
    """Periodic job commands."""


@jobs.command(name="run")
@click.option("--create-schema", is_flag=True, help="Create missing tables before starting")
@coro
async def run_jobs(create_schema: bool) -> None:
    """Run all periodic jobs until SIGINT/SIGTERM."""
    runtime = _build_runtime()
    stop_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    header("Notification jobs")
    for name, job in runtime.jobs.items():
        info(f"{name}: every {job.interval_seconds:g}s")

    async with runtime.lifespan(create_schema=create_schema):
        await stop_event.wait()

    success("Jobs stopped")


@jobs.command(name="tick")
@click.argument("job_name", type=click.Choice(["scheduler", "retry", "cleanup"]))
@click.option(
    "--now",
    "now_iso",
    default=None,
    help="Reference time (ISO 8601, UTC if naive); defaults to the current time",
)
@coro
async def tick_job(job_name: str, now_iso: str | None) -> None:
    """Run exactly one cycle of JOB_NAME and print its counters."""
    now = None
    if now_iso:
        try:
            now = datetime.fromisoformat(now_iso)
        except ValueError:
            error(f"Invalid --now value: {now_iso}")
            sys.exit(2)
        if now.tzinfo is None:
            now = now.replace(tzinfo=UTC)

    runtime = _build_runtime()
    try:
        summary = await runtime.jobs[job_name].tick(now)
    except Exception as e:
        error(f"{job_name} cycle failed: {e}")
        sys.exit(1)
    finally:
        await runtime.stop()

    click.echo(json.dumps(summary, indent=2))
