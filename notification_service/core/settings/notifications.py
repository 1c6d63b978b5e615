"""Notification delivery and background job settings.

Environment variables use NOTIFY_ prefix.
Example: NOTIFY_MAX_ATTEMPTS=5, NOTIFY_SCHEDULER_INTERVAL_SECONDS=30
"""

from __future__ import annotations

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class NotificationSettings(BaseSettings):
    """Delivery policy, retention windows and job cadence."""

    # ─────────────────────────────────────────────────────
    # Job intervals
    # ─────────────────────────────────────────────────────
    scheduler_interval_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Seconds between scheduler cycles (due scheduled notifications)",
    )
    retry_interval_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Seconds between retry cycles (failed deliveries)",
    )
    cleanup_interval_seconds: float = Field(
        default=3600.0,
        gt=0,
        description="Seconds between cleanup cycles (retention purge)",
    )
    batch_size: int = Field(
        default=100,
        ge=1,
        le=10_000,
        description="Maximum records handled by one scheduler or retry cycle",
    )

    # ─────────────────────────────────────────────────────
    # Retention
    # ─────────────────────────────────────────────────────
    notification_retention_days: int = Field(
        default=30,
        ge=1,
        description="Delete notifications older than this many days (any status)",
    )
    delivery_retention_days: int = Field(
        default=30,
        ge=1,
        description="Delete delivery records older than this many days",
    )
    analytics_retention_days: int = Field(
        default=90,
        ge=1,
        description="Delete analytics records older than this many days",
    )

    # ─────────────────────────────────────────────────────
    # Delivery policy
    # ─────────────────────────────────────────────────────
    max_attempts: int = Field(
        default=3,
        ge=1,
        le=50,
        description="Attempts per delivery before it becomes terminal-failed",
    )
    backoff_base_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Delay before the first retry; doubles with every attempt",
    )
    backoff_max_seconds: float = Field(
        default=3600.0,
        gt=0,
        description="Upper bound for the retry delay",
    )
    backoff_jitter: float = Field(
        default=0.2,
        ge=0.0,
        le=1.0,
        description="Fraction of the delay randomised away to spread retries",
    )
    provider_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        le=120.0,
        description="Upper bound for a single provider send call",
    )
    claim_lease_seconds: float = Field(
        default=600.0,
        gt=0,
        description="Processing claims older than this are returned to pending",
    )

    @model_validator(mode="after")
    def validate_backoff_bounds(self) -> NotificationSettings:
        """Ensure the backoff cap is not below the base delay."""
        if self.backoff_max_seconds < self.backoff_base_seconds:
            msg = "backoff_max_seconds must be >= backoff_base_seconds"
            raise ValueError(msg)
        return self

    model_config = SettingsConfigDict(
        env_prefix="NOTIFY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )
