"""
CLI: ``waypoint runs`` - inspect and reconcile workflow runs.
"""

from __future__ import annotations

from pathlib import Path

import typer

from waypoint.cli.utils import console, fail, open_runtime, output_item, output_list
from waypoint.runs.models import Run, RunStatus

app = typer.Typer(no_args_is_help=True)

_COLUMNS = ("id", "agent_name", "status", "phase", "started_at", "ended_at", "error")


def _summary(run: Run) -> dict:
    return {
        "id": run.id,
        "agent_name": run.agent_name,
        "status": run.status.value,
        "phase": run.phase,
        "started_at": run.started_at.isoformat(),
        "ended_at": run.ended_at.isoformat() if run.ended_at else None,
        "error": run.error,
    }


@app.command("list")
def list_runs(
    agent: str | None = typer.Option(None, "--agent", "-a", help="Filter by agent name"),
    status: RunStatus | None = typer.Option(None, "--status", "-s"),
    limit: int = typer.Option(50, "--limit", "-n"),
    data_dir: Path | None = typer.Option(None, "--data-dir", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List runs, newest first."""
    with open_runtime(data_dir) as runtime:
        runs = runtime.run_registry.list_runs(agent_name=agent, status=status, limit=limit)
        output_list([_summary(r) for r in runs], _COLUMNS, as_json=json_out, title="Runs")


@app.command("show")
def show_run(
    run_id: str = typer.Argument(..., help="Run ID"),
    data_dir: Path | None = typer.Option(None, "--data-dir", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show a run's full record, including its checkpoint."""
    with open_runtime(data_dir) as runtime:
        run = runtime.run_registry.get(run_id)
        if run is None:
            fail(f"Run not found: {run_id}")
        output_item(run, as_json=json_out, title=f"Run: {run_id}")


@app.command("recover")
def recover_runs(
    data_dir: Path | None = typer.Option(None, "--data-dir", "-d"),
) -> None:
    """Complete runs that reached their final phase but were never closed out."""
    with open_runtime(data_dir) as runtime:
        reports = runtime.recover()

    for agent_name, report in reports.items():
        console.print(
            f"[bold]{agent_name}[/bold]: "
            f"{len(report.recovered)} recovered, {len(report.interrupted)} interrupted"
        )
        for run_id in report.recovered:
            console.print(f"  [green]recovered[/green] {run_id}")
        for run_id in report.interrupted:
            console.print(f"  [yellow]interrupted[/yellow] {run_id}")
