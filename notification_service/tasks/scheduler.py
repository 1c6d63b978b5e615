"""APScheduler integration for the periodic notification jobs.

The scheduler runs in-process on the asyncio event loop. It is created per
runtime instead of at import time so tests and the CLI get their own.

Architecture:
    AsyncIOScheduler (in-process) -> PeriodicJob.run_cycle() -> repositories
"""

from __future__ import annotations

import logging
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler  # type: ignore[import-untyped]

logger = logging.getLogger(__name__)

JOB_DEFAULTS: dict[str, Any] = {
    "coalesce": True,  # Combine multiple pending executions into one
    "max_instances": 1,  # Only one instance of each job at a time
    "misfire_grace_time": 60,  # Allow 60s delay before considering job missed
}


def create_scheduler(**job_defaults: Any) -> AsyncIOScheduler:
    """Create a UTC AsyncIOScheduler with the notification job defaults."""
    return AsyncIOScheduler(timezone="UTC", job_defaults={**JOB_DEFAULTS, **job_defaults})


def start_scheduler(scheduler: AsyncIOScheduler) -> None:
    """Start the scheduler. Must be called from a running event loop."""
    if not scheduler.running:
        logger.info("Starting APScheduler")
        scheduler.start()
        logger.info(f"APScheduler started with {len(scheduler.get_jobs())} jobs")
    else:
        logger.warning("APScheduler is already running")


def stop_scheduler(scheduler: AsyncIOScheduler, *, wait: bool = True) -> None:
    """Stop the scheduler.

    Coroutine jobs still running are cancelled by APScheduler's asyncio
    executor; stop periodic jobs first to let their cycles finish.
    """
    if scheduler.running:
        logger.info("Stopping APScheduler")
        scheduler.shutdown(wait=wait)
        logger.info("APScheduler stopped")
    else:
        logger.debug("APScheduler is not running")


def get_job_status(scheduler: AsyncIOScheduler) -> list[dict[str, Any]]:
    """Get status of all scheduled jobs.

    Returns:
        List of job information dictionaries.
    """
    return [
        {
            "id": job.id,
            "name": job.name,
            "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None,
            "trigger": str(job.trigger),
        }
        for job in scheduler.get_jobs()
    ]
