"""Periodic notification jobs (scheduler, retry, cleanup)."""

from __future__ import annotations

from notification_service.workers.notifications.jobs import (
    NotificationCleanupJob,
    NotificationRetryJob,
    NotificationSchedulerJob,
    PeriodicJob,
)

__all__ = [
    "NotificationCleanupJob",
    "NotificationRetryJob",
    "NotificationSchedulerJob",
    "PeriodicJob",
]
