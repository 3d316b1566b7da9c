"""
Schedule Store - SQLite persistence for scheduled tasks.

Responsibility: scheduled-task CRUD plus next-run computation.

┌──────────────────────────────────────────────────────────────────────────────┐
│  SCHEDULE STORE                                                              │
│                                                                              │
│  startup:  CREATE TABLE ─► migrate legacy DBs (INSERT OR IGNORE) ─► dedupe   │
│                                                                              │
│  create / update / toggle / update_last_run_at                               │
│        └─► next_run_at = croniter(cron, now).get_next()  if enabled          │
│                        = None                            if disabled/invalid │
│                                                                              │
│  Duplicates: equal (task_type, name, description, cron, canonical config).   │
│  The row with the later updated_at (falling back to created_at) survives.    │
│                                                                              │
│  - Uses croniter for cron parsing (5-field, evaluated in UTC)                │
│  - config is stored as sorted-key JSON                                       │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import json
import sqlite3
import threading
import uuid
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from croniter import croniter

from waypoint.core.hashing import canonical_json
from waypoint.core.logging import get_logger
from waypoint.core.timestamps import from_iso8601, to_iso8601, utc_now

from .models import CreateTaskParams, ScheduledTask, UpdateTaskParams

logger = get_logger(__name__)

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS scheduled_tasks (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        description TEXT,
        task_type TEXT NOT NULL,
        cron_expression TEXT NOT NULL,
        enabled INTEGER NOT NULL DEFAULT 1,
        last_run_at TEXT,
        next_run_at TEXT,
        config TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
"""

_COLUMNS = (
    "id, name, description, task_type, cron_expression, enabled, "
    "last_run_at, next_run_at, config, created_at, updated_at"
)


def is_valid_cron(expression: str) -> bool:
    return bool(expression) and croniter.is_valid(expression)


def compute_next_run(expression: str, after: datetime) -> datetime | None:
    """Next firing strictly after ``after``, or None for an invalid expression."""
    if not is_valid_cron(expression):
        return None
    if after.tzinfo is None:
        after = after.replace(tzinfo=UTC)
    next_run = croniter(expression, after).get_next(datetime)
    if next_run.tzinfo is None:
        return next_run.replace(tzinfo=UTC)
    return next_run.astimezone(UTC)


def _encode_config(config: dict[str, Any] | None) -> str | None:
    return canonical_json(config) if config else None


def _decode_config(raw: str | None) -> dict[str, Any] | None:
    if not raw:
        return None
    return json.loads(raw)


class ScheduleStore:
    """Repository for scheduled tasks.

    Example:
        >>> store = ScheduleStore("~/.waypoint/waypoint.db")
        >>> task = store.create(CreateTaskParams(
        ...     name="Morning news",
        ...     task_type="news",
        ...     cron_expression="0 6 * * *",
        ... ))
        >>> store.get_due(utc_now())
    """

    def __init__(
        self,
        conn: sqlite3.Connection | str | Path,
        legacy_paths: Iterable[str | Path] = (),
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Open the store and run the startup migration and dedup passes.

        Args:
            conn: Open connection or database file path
            legacy_paths: Older databases whose ``scheduled_tasks`` rows are imported
            clock: Time source for timestamps and next-run computation
        """
        if isinstance(conn, sqlite3.Connection):
            self.db_path: Path | None = None
            self.conn = conn
        else:
            self.db_path = Path(conn).expanduser()
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self.conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self.conn.execute("PRAGMA journal_mode = WAL")
        self.conn.row_factory = sqlite3.Row
        self._clock = clock
        self._lock = threading.RLock()

        with self._lock:
            self.conn.execute(_SCHEMA)
            self.conn.commit()

        self.migrate_legacy(legacy_paths)
        self.dedupe()

    # === Startup passes ===

    def migrate_legacy(self, legacy_paths: Iterable[str | Path]) -> int:
        """Import rows from older databases, skipping ids already present.

        Unreadable legacy databases are logged and skipped.

        Returns:
            Number of rows inserted.
        """
        total = 0
        for legacy in legacy_paths:
            legacy_path = Path(legacy).expanduser()
            if self.db_path is not None and legacy_path.resolve() == self.db_path.resolve():
                continue
            if not legacy_path.exists():
                continue

            try:
                legacy_conn = sqlite3.connect(f"file:{legacy_path}?mode=ro", uri=True)
                try:
                    has_table = legacy_conn.execute(
                        "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = 'scheduled_tasks'"
                    ).fetchone()
                    if not has_table:
                        continue
                    rows = legacy_conn.execute(
                        f"SELECT {_COLUMNS} FROM scheduled_tasks"
                    ).fetchall()
                finally:
                    legacy_conn.close()
            except sqlite3.Error as e:
                logger.warning(
                    "schedule_store.legacy_read_failed", path=str(legacy_path), error=str(e)
                )
                continue

            inserted = 0
            with self._lock:
                for row in rows:
                    cursor = self.conn.execute(
                        f"INSERT OR IGNORE INTO scheduled_tasks ({_COLUMNS}) "
                        "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                        tuple(row),
                    )
                    inserted += cursor.rowcount
                self.conn.commit()

            if inserted:
                logger.info("schedule_store.migrated", path=str(legacy_path), count=inserted)
            total += inserted
        return total

    def dedupe(self) -> int:
        """Collapse exact-duplicate tasks, keeping the most recently updated.

        Returns:
            Number of rows deleted.
        """
        with self._lock:
            rows = self.conn.execute(
                "SELECT id, name, description, task_type, cron_expression, config, "
                "created_at, updated_at FROM scheduled_tasks"
            ).fetchall()

            keep: dict[tuple, tuple[str, datetime]] = {}
            to_delete: list[str] = []
            for row in rows:
                key = (
                    row["task_type"],
                    row["name"],
                    row["description"] or "",
                    row["cron_expression"],
                    self._config_key(row["config"]),
                )
                stamp = (
                    from_iso8601(row["updated_at"])
                    or from_iso8601(row["created_at"])
                    or datetime.min.replace(tzinfo=UTC)
                )
                existing = keep.get(key)
                if existing is None:
                    keep[key] = (row["id"], stamp)
                elif stamp > existing[1]:
                    to_delete.append(existing[0])
                    keep[key] = (row["id"], stamp)
                else:
                    to_delete.append(row["id"])

            if to_delete:
                self.conn.executemany(
                    "DELETE FROM scheduled_tasks WHERE id = ?", [(i,) for i in to_delete]
                )
                self.conn.commit()
                logger.info("schedule_store.deduped", count=len(to_delete))
        return len(to_delete)

    @staticmethod
    def _config_key(raw: str | None) -> str:
        if not raw:
            return ""
        try:
            decoded = json.loads(raw)
        except ValueError:
            return raw
        return canonical_json(decoded) if decoded else ""

    # === Queries ===

    def list(self) -> list[ScheduledTask]:
        with self._lock:
            rows = self.conn.execute(
                f"SELECT {_COLUMNS} FROM scheduled_tasks ORDER BY created_at DESC"
            ).fetchall()
        return [self._row_to_task(row) for row in rows]

    def list_enabled(self) -> list[ScheduledTask]:
        return [task for task in self.list() if task.enabled]

    def get(self, task_id: str) -> ScheduledTask | None:
        with self._lock:
            row = self.conn.execute(
                f"SELECT {_COLUMNS} FROM scheduled_tasks WHERE id = ?", (task_id,)
            ).fetchone()
        return self._row_to_task(row) if row else None

    def find_by_type(self, task_type: str) -> ScheduledTask | None:
        """Oldest task of ``task_type``, if any."""
        with self._lock:
            row = self.conn.execute(
                f"SELECT {_COLUMNS} FROM scheduled_tasks WHERE task_type = ? "
                "ORDER BY created_at ASC LIMIT 1",
                (task_type,),
            ).fetchone()
        return self._row_to_task(row) if row else None

    def get_due(self, now: datetime | None = None) -> list[ScheduledTask]:
        """Enabled tasks whose ``next_run_at`` is at or before ``now``."""
        now = now or self._clock()
        due = [task for task in self.list_enabled() if task.is_due(now)]
        due.sort(key=lambda t: t.next_run_at)
        return due

    # === Mutations ===

    def create(self, params: CreateTaskParams) -> ScheduledTask:
        task_id = str(uuid.uuid4())
        now = self._clock()
        next_run = compute_next_run(params.cron_expression, now) if params.enabled else None

        with self._lock:
            self.conn.execute(
                f"INSERT INTO scheduled_tasks ({_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    task_id,
                    params.name,
                    params.description,
                    params.task_type,
                    params.cron_expression,
                    1 if params.enabled else 0,
                    None,
                    to_iso8601(next_run),
                    _encode_config(params.config),
                    to_iso8601(now),
                    to_iso8601(now),
                ),
            )
            self.conn.commit()
        return self.get(task_id)  # type: ignore[return-value]

    def update(self, task_id: str, params: UpdateTaskParams) -> ScheduledTask | None:
        with self._lock:
            existing = self.get(task_id)
            if existing is None:
                return None

            now = self._clock()
            cron_expression = params.cron_expression or existing.cron_expression
            enabled = existing.enabled if params.enabled is None else params.enabled
            config = existing.config if params.config is None else params.config
            next_run = compute_next_run(cron_expression, now) if enabled else None

            self.conn.execute(
                """
                UPDATE scheduled_tasks SET
                    name = ?, description = ?, cron_expression = ?, enabled = ?,
                    next_run_at = ?, config = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    params.name if params.name is not None else existing.name,
                    params.description if params.description is not None else existing.description,
                    cron_expression,
                    1 if enabled else 0,
                    to_iso8601(next_run),
                    _encode_config(config),
                    to_iso8601(now),
                    task_id,
                ),
            )
            self.conn.commit()
        return self.get(task_id)

    def toggle(self, task_id: str, enabled: bool) -> ScheduledTask | None:
        return self.update(task_id, UpdateTaskParams(enabled=enabled))

    def delete(self, task_id: str) -> bool:
        with self._lock:
            cursor = self.conn.execute("DELETE FROM scheduled_tasks WHERE id = ?", (task_id,))
            self.conn.commit()
        return cursor.rowcount > 0

    def update_last_run_at(self, task_id: str) -> ScheduledTask | None:
        """Stamp a firing and advance ``next_run_at``."""
        with self._lock:
            existing = self.get(task_id)
            if existing is None:
                return None
            now = self._clock()
            next_run = (
                compute_next_run(existing.cron_expression, now) if existing.enabled else None
            )
            self.conn.execute(
                "UPDATE scheduled_tasks SET last_run_at = ?, next_run_at = ?, updated_at = ? "
                "WHERE id = ?",
                (to_iso8601(now), to_iso8601(next_run), to_iso8601(now), task_id),
            )
            self.conn.commit()
        return self.get(task_id)

    def close(self) -> None:
        with self._lock:
            self.conn.close()

    # === Row mapping ===

    def _row_to_task(self, row: sqlite3.Row) -> ScheduledTask:
        return ScheduledTask(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            task_type=row["task_type"],
            cron_expression=row["cron_expression"],
            enabled=bool(row["enabled"]),
            last_run_at=from_iso8601(row["last_run_at"]),
            next_run_at=from_iso8601(row["next_run_at"]),
            config=_decode_config(row["config"]),
            created_at=from_iso8601(row["created_at"]),
            updated_at=from_iso8601(row["updated_at"]),
        )
