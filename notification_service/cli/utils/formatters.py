"""Output formatting utilities for CLI commands."""

import click


def success(message: str) -> None:
    """Print a success message in green."""
    click.secho(f"✓ {message}", fg="green")


def error(message: str) -> None:
    """Print an error message in red."""
    click.secho(f"✗ {message}", fg="red", err=True)


def warning(message: str) -> None:
    """Print a warning message in yellow."""
    click.secho(f"⚠ {message}", fg="yellow")


def info(message: str) -> None:
    """Print an info message in blue."""
    click.secho(f"ℹ {message}", fg="blue")


def header(message: str) -> None:
    """Print a header message in cyan bold."""
    click.secho(f"\n{message}", fg="cyan", bold=True)


def table(rows: list[dict[str, object]], columns: list[str]) -> None:
    """Print rows as a left-aligned plain-text table."""
    widths = {c: max([len(c), *(len(str(r.get(c, ""))) for r in rows)]) + 2 for c in columns}
    click.echo("".join(f"{c.upper():<{widths[c]}}" for c in columns))
    click.echo("-" * sum(widths.values()))
    for row in rows:
        click.echo("".join(f"{str(row.get(c, '')):<{widths[c]}}" for c in columns))
