"""
CLI utility helpers: runtime construction and output formatting.
"""

from __future__ import annotations

import json
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any, NoReturn

import typer
from rich.console import Console
from rich.table import Table

from waypoint.core.config import WaypointSettings, get_settings
from waypoint.core.errors import WaypointError
from waypoint.runtime import Runtime, create_runtime

console = Console()
err_console = Console(stderr=True)


# ── Runtime helper ───────────────────────────────────────────────────────


def load_settings(data_dir: Path | None = None) -> WaypointSettings:
    """Settings from the environment, with ``--data-dir`` taking precedence."""
    if data_dir is None:
        return get_settings()
    return WaypointSettings(data_dir=data_dir)


@contextmanager
def open_runtime(data_dir: Path | None = None, *, recover: bool = False) -> Iterator[Runtime]:
    """Build a runtime for one command and close its stores afterwards."""
    try:
        runtime = create_runtime(load_settings(data_dir), recover=recover)
    except WaypointError as e:
        fail(e.message)
    try:
        yield runtime
    except WaypointError as e:
        fail(e.message)
    finally:
        runtime.close()


def fail(message: str) -> NoReturn:
    err_console.print(f"[bold red]Error[/bold red]: {message}")
    raise typer.Exit(code=1)


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def output_item(obj: Any, *, as_json: bool = False, title: str = "") -> None:
    """Render one record as JSON or key-value pairs."""
    data = _to_dict(obj)
    if as_json:
        typer.echo(json.dumps(data, indent=2, default=str))
        return
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")


def output_list(
    items: Sequence[Any],
    columns: Sequence[str],
    *,
    as_json: bool = False,
    title: str = "",
) -> None:
    """Render records as JSON or a Rich table restricted to ``columns``."""
    rows = [_to_dict(item) for item in items]
    if as_json:
        typer.echo(json.dumps(rows, indent=2, default=str))
        return
    if not rows:
        console.print("[dim]No items.[/dim]")
        return

    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in columns:
        table.add_column(col, overflow="fold")
    for row in rows:
        table.add_row(*("" if row.get(col) is None else str(row.get(col)) for col in columns))
    console.print(table)
