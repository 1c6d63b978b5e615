"""Tests for the notification-service CLI.

Testing approach:
- Uses Click's CliRunner for command invocation
- Points DB_URL at a temporary SQLite file instead of mocking the database
- Provider configuration comes from PROVIDER_* environment variables
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest
from click.testing import CliRunner

from notification_service.cli.main import cli

if TYPE_CHECKING:
    from pathlib import Path

# =============================================================================
# Test Fixtures
# =============================================================================


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create Click CLI runner for testing commands."""
    return CliRunner()


@pytest.fixture
def sqlite_url(tmp_path: Path, monkeypatch) -> str:
    """Point the CLI at a fresh SQLite database file."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"
    monkeypatch.setenv("DB_URL", url)
    return url


# =============================================================================
# providers
# =============================================================================


@pytest.mark.unit
class TestProvidersCommands:
    """Test suite for the providers command group."""

    def test_list_json_defaults_to_in_app(self, cli_runner: CliRunner):
        result = cli_runner.invoke(cli, ["providers", "list", "--format", "json"])

        assert result.exit_code == 0
        assert json.loads(result.stdout) == [
            {"channel": "in_app", "provider": "in_app", "priority": 10, "enabled": True}
        ]

    def test_list_table_includes_console_fallback(self, cli_runner: CliRunner, monkeypatch):
        monkeypatch.setenv("PROVIDER_CONSOLE__ENABLED", "true")

        result = cli_runner.invoke(cli, ["providers", "list"])

        assert result.exit_code == 0
        assert "CHANNEL" in result.stdout
        assert "console" in result.stdout
        assert "Total: 5 registrations" in result.stdout

    def test_list_reports_missing_credentials(self, cli_runner: CliRunner, monkeypatch):
        monkeypatch.setenv("PROVIDER_TWILIO__ENABLED", "true")

        result = cli_runner.invoke(cli, ["providers", "list"])

        assert result.exit_code == 1
        assert "twilio" in result.output

    def test_check_healthy(self, cli_runner: CliRunner):
        result = cli_runner.invoke(cli, ["providers", "check"])

        assert result.exit_code == 0
        assert "in_app:in_app" in result.stdout


# =============================================================================
# db / jobs
# =============================================================================


@pytest.mark.unit
class TestDatabaseAndJobCommands:
    """Test suite for the db and jobs command groups."""

    def test_db_init_then_cleanup_tick(self, cli_runner: CliRunner, sqlite_url: str):
        init = cli_runner.invoke(cli, ["db", "init"])
        assert init.exit_code == 0, init.output
        assert "Database schema is up to date" in init.stdout

        tick = cli_runner.invoke(cli, ["jobs", "tick", "cleanup"])

        assert tick.exit_code == 0, tick.output
        assert json.loads(tick.stdout) == {"notifications": 0, "deliveries": 0, "analytics": 0}

    def test_scheduler_tick_with_explicit_now(self, cli_runner: CliRunner, sqlite_url: str):
        cli_runner.invoke(cli, ["db", "init"])

        result = cli_runner.invoke(
            cli, ["jobs", "tick", "scheduler", "--now", "2025-01-01T12:00:00"]
        )

        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["due"] == 0

    def test_tick_without_schema_fails(self, cli_runner: CliRunner, sqlite_url: str):
        result = cli_runner.invoke(cli, ["jobs", "tick", "retry"])

        assert result.exit_code == 1
        assert "retry cycle failed" in result.output

    def test_invalid_now_exits_2(self, cli_runner: CliRunner, sqlite_url: str):
        result = cli_runner.invoke(cli, ["jobs", "tick", "cleanup", "--now", "yesterday"])

        assert result.exit_code == 2
        assert "Invalid --now value" in result.output

    def test_unknown_job_rejected(self, cli_runner: CliRunner):
        result = cli_runner.invoke(cli, ["jobs", "tick", "digest"])

        assert result.exit_code == 2
