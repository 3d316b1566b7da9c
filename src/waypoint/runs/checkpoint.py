"""
Checkpoint stores - durable CRUD for run records.

A checkpoint store persists one record per run, keyed by run id. It holds
no business logic: the run registry owns every invariant. Stores never
swallow storage failures; losing a checkpoint write silently would make
crash recovery replay work that already happened.

Architecture:
    ::

        ┌───────────────────────────────────────────────────────────┐
        │                   CheckpointStore (Protocol)               │
        │   save(run) · load(run_id) · list_all() · delete(run_id)   │
        └──────────────┬──────────────────────┬──────────────────────┘
                       │                      │
          FileCheckpointStore        SQLiteCheckpointStore
          <runs_dir>/<id>.json       waypoint_runs table
          (atomic temp+replace)      (one JSON blob per row)

Tags:
    checkpoint, persistence, crash-recovery, sqlite, json, waypoint
"""

from __future__ import annotations

import json
import os
import sqlite3
import tempfile
import threading
from pathlib import Path
from typing import Protocol, runtime_checkable

from waypoint.core.errors import StorageError
from waypoint.core.logging import get_logger
from waypoint.core.timestamps import to_iso8601, utc_now

from .models import Run

logger = get_logger(__name__)


@runtime_checkable
class CheckpointStore(Protocol):
    """Durable storage for run records."""

    def save(self, run: Run) -> None:
        """Upsert the full record."""
        ...

    def load(self, run_id: str) -> Run | None:
        """Return the record or None when absent."""
        ...

    def list_all(self) -> list[Run]:
        """Return every stored record."""
        ...

    def delete(self, run_id: str) -> None:
        """Remove a record (no-op when absent)."""
        ...


class FileCheckpointStore:
    """One JSON document per run under ``runs_dir``.

    Writes go to a temporary file in the same directory followed by
    ``os.replace``, so a crash mid-write leaves the previous checkpoint
    intact.
    """

    def __init__(self, runs_dir: str | Path):
        self.runs_dir = Path(runs_dir)

    def _path(self, run_id: str) -> Path:
        return self.runs_dir / f"{run_id}.json"

    def save(self, run: Run) -> None:
        payload = json.dumps(run.to_dict(), indent=2, default=str)
        try:
            self.runs_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.runs_dir, prefix=f".{run.id}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(payload)
                    handle.flush()
                    os.fsync(handle.fileno())
                os.replace(tmp_name, self._path(run.id))
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StorageError(
                f"Failed to write checkpoint for {run.id}", cause=e
            ).with_context(run_id=run.id)

    def load(self, run_id: str) -> Run | None:
        path = self._path(run_id)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Failed to read checkpoint {path}", cause=e)
        try:
            return Run.from_dict(json.loads(raw))
        except (ValueError, KeyError) as e:
            raise StorageError(f"Corrupt checkpoint {path}", cause=e).with_context(
                run_id=run_id
            )

    def list_all(self) -> list[Run]:
        if not self.runs_dir.exists():
            return []
        runs = []
        for path in sorted(self.runs_dir.glob("*.json")):
            run = self.load(path.stem)
            if run is not None:
                runs.append(run)
        return runs

    def delete(self, run_id: str) -> None:
        try:
            self._path(run_id).unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to delete checkpoint {run_id}", cause=e)


class SQLiteCheckpointStore:
    """Run records as JSON blobs in a SQLite table.

    Accepts an existing connection (tests pass ``sqlite3.connect(":memory:")``)
    or a database path. Access is serialized with a lock so the scheduler
    thread and the main loop can share one connection.
    """

    _SCHEMA = """
        CREATE TABLE IF NOT EXISTS waypoint_runs (
            id TEXT PRIMARY KEY,
            agent_name TEXT NOT NULL,
            status TEXT NOT NULL,
            record TEXT NOT NULL,
            started_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """

    def __init__(self, conn: sqlite3.Connection | str | Path):
        if isinstance(conn, sqlite3.Connection):
            self._conn = conn
        else:
            Path(conn).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(conn), check_same_thread=False)
        self._lock = threading.Lock()
        with self._lock:
            self._conn.execute(self._SCHEMA)
            self._conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_waypoint_runs_status "
                "ON waypoint_runs(status)"
            )
            self._conn.commit()

    def save(self, run: Run) -> None:
        try:
            with self._lock:
                self._conn.execute(
                    """
                    INSERT INTO waypoint_runs (id, agent_name, status, record, started_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        agent_name = excluded.agent_name,
                        status = excluded.status,
                        record = excluded.record,
                        updated_at = excluded.updated_at
                    """,
                    (
                        run.id,
                        run.agent_name,
                        run.status.value,
                        json.dumps(run.to_dict(), default=str),
                        to_iso8601(run.started_at),
                        to_iso8601(utc_now()),
                    ),
                )
                self._conn.commit()
        except sqlite3.Error as e:
            raise StorageError(
                f"Failed to write checkpoint for {run.id}", cause=e
            ).with_context(run_id=run.id)

    def load(self, run_id: str) -> Run | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT record FROM waypoint_runs WHERE id = ?", (run_id,)
            ).fetchone()
        if row is None:
            return None
        return Run.from_dict(json.loads(row[0]))

    def list_all(self) -> list[Run]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT record FROM waypoint_runs ORDER BY started_at"
            ).fetchall()
        return [Run.from_dict(json.loads(row[0])) for row in rows]

    def delete(self, run_id: str) -> None:
        with self._lock:
            self._conn.execute("DELETE FROM waypoint_runs WHERE id = ?", (run_id,))
            self._conn.commit()

    def close(self) -> None:
        with self._lock:
            self._conn.close()


__all__ = ["CheckpointStore", "FileCheckpointStore", "SQLiteCheckpointStore"]
