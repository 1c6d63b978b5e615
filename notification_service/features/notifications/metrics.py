"""Prometheus metrics for notification delivery monitoring.

Usage:
    from notification_service.features.notifications.metrics import (
        notification_delivered_total,
    )

    notification_delivered_total.labels(channel="email", status="sent").inc()
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram

# =============================================================================
# Notification Lifecycle Metrics
# =============================================================================

notification_created_total = Counter(
    "notification_created_total",
    "Total number of notifications created",
    labelnames=["notification_type", "priority"],
)
"""
Counter for tracking notification creation.

Labels:
    notification_type: Type tag of the notification
    priority: Priority level (low, normal, high, urgent)
"""

notification_completed_total = Counter(
    "notification_completed_total",
    "Total number of notifications that reached a final status",
    labelnames=["status"],
)
"""
Counter for notifications finishing dispatch.

Labels:
    status: sent (at least one channel succeeded) or failed
"""

# =============================================================================
# Delivery Metrics
# =============================================================================

notification_delivered_total = Counter(
    "notification_delivered_total",
    "Total number of channel delivery outcomes",
    labelnames=["channel", "status"],
)
"""
Counter for channel-level delivery outcomes.

Labels:
    channel: Delivery channel (email, sms, push, webhook, in_app)
    status: sent or failed
"""

notification_provider_attempts_total = Counter(
    "notification_provider_attempts_total",
    "Provider send calls by outcome",
    labelnames=["channel", "provider", "outcome"],
)
"""
Counter for individual provider calls, including ones followed by fallback.

Labels:
    channel: Delivery channel
    provider: Provider ID (sendgrid, twilio, ...)
    outcome: success, transient, terminal or timeout
"""

notification_delivery_duration_seconds = Histogram(
    "notification_delivery_duration_seconds",
    "Time spent delivering one channel, including provider fallback",
    labelnames=["channel"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)
"""
Histogram for channel delivery time.

Labels:
    channel: Delivery channel
"""

notification_retry_total = Counter(
    "notification_retry_total",
    "Retry attempts made by the retry job",
    labelnames=["channel", "outcome"],
)
"""
Counter for retry attempts.

Labels:
    channel: Delivery channel
    outcome: sent, retrying or exhausted
"""

# =============================================================================
# Background Job Metrics
# =============================================================================

notification_job_runs_total = Counter(
    "notification_job_runs_total",
    "Background job cycles by outcome",
    labelnames=["job", "outcome"],
)
"""
Counter for job cycles.

Labels:
    job: scheduler, retry or cleanup
    outcome: success or error
"""

notification_job_duration_seconds = Histogram(
    "notification_job_duration_seconds",
    "Duration of background job cycles",
    labelnames=["job"],
    buckets=(0.01, 0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0),
)

notification_cleanup_deleted_total = Counter(
    "notification_cleanup_deleted_total",
    "Rows deleted by the cleanup job",
    labelnames=["table"],
)
"""
Counter for retention deletes.

Labels:
    table: notifications, deliveries or analytics
"""

notification_claims_released_total = Counter(
    "notification_claims_released_total",
    "Processing claims returned to pending after the lease expired",
)
