"""
CLI: ``waypoint schedule`` - scheduled task CRUD and manual firing.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import typer

from waypoint.cli.utils import console, fail, open_runtime, output_item, output_list
from waypoint.scheduling.models import CreateTaskParams, UpdateTaskParams

app = typer.Typer(no_args_is_help=True)

_COLUMNS = ("id", "name", "task_type", "cron_expression", "enabled", "last_run_at", "next_run_at")


def _parse_config(raw: str | None) -> dict[str, Any] | None:
    if raw is None:
        return None
    try:
        config = json.loads(raw)
    except ValueError as e:
        fail(f"--config is not valid JSON: {e}")
    if not isinstance(config, dict):
        fail("--config must be a JSON object")
    return config


@app.command("list")
def list_tasks(
    data_dir: Path | None = typer.Option(None, "--data-dir", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List scheduled tasks."""
    with open_runtime(data_dir) as runtime:
        output_list(runtime.scheduler.list(), _COLUMNS, as_json=json_out, title="Scheduled tasks")


@app.command("show")
def show_task(
    task_id: str = typer.Argument(..., help="Task ID"),
    data_dir: Path | None = typer.Option(None, "--data-dir", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show a scheduled task."""
    with open_runtime(data_dir) as runtime:
        task = runtime.scheduler.get(task_id)
        if task is None:
            fail(f"Task not found: {task_id}")
        output_item(task, as_json=json_out, title=f"Task: {task.name}")


@app.command("create")
def create_task(
    task_type: str = typer.Argument(..., help="Registered task type"),
    name: str = typer.Option(..., "--name", help="Task name"),
    cron: str | None = typer.Option(None, "--cron", help="Cron expression (type default if omitted)"),
    description: str | None = typer.Option(None, "--description"),
    config: str | None = typer.Option(None, "--config", help="Handler config as a JSON object"),
    enabled: bool = typer.Option(True, "--enabled/--disabled"),
    data_dir: Path | None = typer.Option(None, "--data-dir", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Create a scheduled task."""
    parsed_config = _parse_config(config)
    with open_runtime(data_dir) as runtime:
        if cron is None:
            definition = runtime.scheduler.registry.get(task_type)
            if definition is None:
                fail(f"Unknown task type: {task_type}")
            cron = definition.default_cron
        task = runtime.scheduler.create(
            CreateTaskParams(
                name=name,
                task_type=task_type,
                cron_expression=cron,
                description=description,
                enabled=enabled,
                config=parsed_config,
            )
        )
        output_item(task, as_json=json_out, title="Task created")


@app.command("update")
def update_task(
    task_id: str = typer.Argument(..., help="Task ID"),
    name: str | None = typer.Option(None, "--name"),
    cron: str | None = typer.Option(None, "--cron"),
    description: str | None = typer.Option(None, "--description"),
    config: str | None = typer.Option(None, "--config"),
    enabled: bool | None = typer.Option(None, "--enabled/--disabled"),
    data_dir: Path | None = typer.Option(None, "--data-dir", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Update a scheduled task. Omitted options are left unchanged."""
    params = UpdateTaskParams(
        name=name,
        description=description,
        cron_expression=cron,
        enabled=enabled,
        config=_parse_config(config),
    )
    with open_runtime(data_dir) as runtime:
        task = runtime.scheduler.update(task_id, params)
        if task is None:
            fail(f"Task not found: {task_id}")
        output_item(task, as_json=json_out, title="Task updated")


@app.command("toggle")
def toggle_task(
    task_id: str = typer.Argument(..., help="Task ID"),
    enable: bool = typer.Option(..., "--enable/--disable"),
    data_dir: Path | None = typer.Option(None, "--data-dir", "-d"),
) -> None:
    """Enable or disable a scheduled task."""
    with open_runtime(data_dir) as runtime:
        task = runtime.scheduler.toggle(task_id, enable)
        if task is None:
            fail(f"Task not found: {task_id}")
    state = "enabled" if task.enabled else "disabled"
    console.print(f"[green]{task.name}[/green] {state} (next run: {task.next_run_at or '-'})")


@app.command("delete")
def delete_task(
    task_id: str = typer.Argument(..., help="Task ID"),
    data_dir: Path | None = typer.Option(None, "--data-dir", "-d"),
) -> None:
    """Delete a scheduled task."""
    with open_runtime(data_dir) as runtime:
        if not runtime.scheduler.delete(task_id):
            fail(f"Task not found: {task_id}")
    console.print(f"Deleted {task_id}")


@app.command("run")
def run_task(
    task_id: str = typer.Argument(..., help="Task ID"),
    data_dir: Path | None = typer.Option(None, "--data-dir", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Fire a scheduled task now."""
    with open_runtime(data_dir) as runtime:
        result = asyncio.run(runtime.scheduler.run_now(task_id))
    output_item(result, as_json=json_out, title="Execution result")
    if not result.success:
        raise typer.Exit(code=1)


@app.command("types")
def list_types(
    data_dir: Path | None = typer.Option(None, "--data-dir", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List registered task types."""
    with open_runtime(data_dir) as runtime:
        rows = [
            {
                "type": d.type,
                "name": d.name,
                "description": d.description,
                "default_cron": d.default_cron,
                "config_keys": ", ".join(f.key for f in d.config_schema),
            }
            for d in runtime.scheduler.task_types()
        ]
    output_list(
        rows,
        ("type", "name", "default_cron", "config_keys", "description"),
        as_json=json_out,
        title="Task types",
    )
