"""Provider inspection commands.

Example:bash
    notification-service providers list
    notification-service providers check
"""

from __future__ import annotations

import json
import sys

import click

from notification_service.cli.utils import coro, error, header, info, success, table, warning
from notification_service.core.settings import get_notification_settings, get_provider_settings
from notification_service.features.notifications.exceptions import ProviderConfigurationError
from notification_service.features.notifications.providers import (
    ProviderRegistry,
    build_provider_registry,
)


def _load_registry() -> ProviderRegistry:
    try:
        return build_provider_registry(
            get_provider_settings(),
            timeout=get_notification_settings().provider_timeout_seconds,
        )
    except ProviderConfigurationError as e:
        error(e.message)
        sys.exit(1)


@click.group(name="providers")
def providers() -> None:
    """Delivery provider commands."""


@providers.command(name="list")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"]),
    default="table",
    help="Output format",
)
@coro
async def list_providers(output_format: str) -> None:
    """List registered providers per channel in try order."""
    registry = _load_registry()
    try:
        rows = [
            {
                "channel": str(r.channel),
                "provider": r.provider_id,
                "priority": r.priority,
                "enabled": r.enabled,
            }
            for r in registry.registrations()
        ]
    finally:
        await registry.aclose()

    if output_format == "json":
        click.echo(json.dumps(rows, indent=2))
        return

    header("Registered Providers")
    if not rows:
        warning("No providers are enabled")
        return
    table(rows, ["channel", "provider", "priority", "enabled"])
    click.echo()
    success(f"Total: {len(rows)} registrations")


@providers.command(name="check")
@coro
async def check_providers() -> None:
    """Run every enabled provider's health check."""
    registry = _load_registry()
    try:
        report = await registry.health_check()
    finally:
        await registry.aclose()

    header("Provider Health")
    if not report:
        info("No providers are enabled")
        return

    for name, healthy in report.items():
        if healthy:
            success(name)
        else:
            error(name)

    if not all(report.values()):
        sys.exit(1)
