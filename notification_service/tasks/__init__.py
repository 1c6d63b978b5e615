"""Scheduling infrastructure for periodic notification jobs.

This package provides:
- scheduler.py: APScheduler construction, start/stop and job introspection

The jobs themselves live in ``notification_service.workers.notifications``.
"""

from __future__ import annotations

from notification_service.tasks.scheduler import (
    create_scheduler,
    get_job_status,
    start_scheduler,
    stop_scheduler,
)

__all__ = ["create_scheduler", "get_job_status", "start_scheduler", "stop_scheduler"]
