"""
Root Typer application for the waypoint CLI.
"""

from __future__ import annotations

import sys

import typer
from typer import Typer

from waypoint import __version__
from waypoint.core.config import get_settings
from waypoint.core.logging import configure_logging_from_settings

CLI_LOG_LEVEL = "WARNING"

app = Typer(
    name="waypoint",
    help="waypoint: durable workflow runs and cron scheduling.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"waypoint {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    log_level: str | None = typer.Option(
        None,
        "--log-level",
        help="Log level for engine events. Defaults to WAYPOINT_LOG_LEVEL, else WARNING.",
    ),
    json_logs: bool | None = typer.Option(
        None,
        "--json-logs/--console-logs",
        help="Log line format. Defaults to WAYPOINT_LOG_FORMAT.",
    ),
) -> None:
    """waypoint CLI: inspect runs and manage scheduled tasks."""
    settings = get_settings()
    if log_level is None and "log_level" not in settings.model_fields_set:
        log_level = CLI_LOG_LEVEL
    configure_logging_from_settings(
        settings, level=log_level, json_format=json_logs, stream=sys.stderr
    )


# ── Sub-command registration ─────────────────────────────────────────────

from waypoint.cli.runs import app as runs_app  # noqa: E402
from waypoint.cli.schedule import app as schedule_app  # noqa: E402

app.add_typer(runs_app, name="runs", help="Workflow run inspection and recovery.")
app.add_typer(schedule_app, name="schedule", help="Scheduled task management.")


if __name__ == "__main__":
    app()
