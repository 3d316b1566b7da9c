"""Scheduled task records, task definitions and execution results."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

from waypoint.core.timestamps import to_iso8601

# ---------------------------------------------------------------------------
# scheduled_tasks
# ---------------------------------------------------------------------------


@dataclass
class ScheduledTask:
    """Scheduled task row (``scheduled_tasks``).

    ``next_run_at`` is always the next firing implied by
    ``cron_expression`` while enabled, and None when disabled or when the
    expression cannot be parsed.
    """

    id: str
    name: str
    task_type: str
    cron_expression: str
    description: str | None = None
    enabled: bool = True
    last_run_at: datetime | None = None
    next_run_at: datetime | None = None
    config: dict[str, Any] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def is_due(self, now: datetime) -> bool:
        return self.enabled and self.next_run_at is not None and self.next_run_at <= now

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "task_type": self.task_type,
            "cron_expression": self.cron_expression,
            "enabled": self.enabled,
            "last_run_at": to_iso8601(self.last_run_at),
            "next_run_at": to_iso8601(self.next_run_at),
            "config": self.config,
            "created_at": to_iso8601(self.created_at),
            "updated_at": to_iso8601(self.updated_at),
        }


@dataclass
class CreateTaskParams:
    """DTO for creating a scheduled task."""

    name: str
    task_type: str
    cron_expression: str
    description: str | None = None
    enabled: bool = True
    config: dict[str, Any] | None = None


@dataclass
class UpdateTaskParams:
    """DTO for updating a scheduled task. None leaves a field unchanged."""

    name: str | None = None
    description: str | None = None
    cron_expression: str | None = None
    enabled: bool | None = None
    config: dict[str, Any] | None = None


# ---------------------------------------------------------------------------
# task types
# ---------------------------------------------------------------------------

TaskHandler = Callable[[dict[str, Any] | None], Awaitable[Any] | Any]

ConfigFieldType = Literal["text", "textarea", "number", "select", "boolean"]


@dataclass(frozen=True)
class ConfigField:
    """One entry of a task type's configuration form."""

    key: str
    label: str
    type: ConfigFieldType = "text"
    placeholder: str | None = None
    required: bool = False
    options: list[tuple[str, str]] | None = None  # (value, label)
    default_value: Any = None


@dataclass
class TaskDefinition:
    """A registered task type: what runs when a task of this type fires.

    Attributes:
        type: Key referenced by ``ScheduledTask.task_type``
        name: Human-readable name
        description: What the handler does
        execute: Handler called with the task's ``config``; may be sync or async
        default_cron: Schedule used by ``ensure_default_task``
        config_schema: Optional configuration form fields
        record_run: Wrap each firing in a registry run (``task:<type>``).
            Off for handlers that start their own run, such as workflows.
    """

    type: str
    name: str
    description: str
    execute: TaskHandler
    default_cron: str
    config_schema: list[ConfigField] = field(default_factory=list)
    record_run: bool = True


# ---------------------------------------------------------------------------
# results
# ---------------------------------------------------------------------------


@dataclass
class TaskExecutionResult:
    """Structured outcome of one task firing. Never raised, always returned."""

    task_id: str
    success: bool
    executed_at: datetime
    error: str | None = None
    duration_ms: float | None = None
    run_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "success": self.success,
            "error": self.error,
            "executed_at": to_iso8601(self.executed_at),
            "duration_ms": self.duration_ms,
            "run_id": self.run_id,
        }
