"""Run records and the run status state machine.

A run is one execution of a workflow. Its status moves exactly once,
from ``running`` to a terminal state::

    RUNNING → COMPLETED | FAILED

Terminal runs are immutable: checkpoint, result and error are frozen and
``ended_at`` is written by the same transition that sets the status.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from waypoint.core.errors import InvalidTransitionError
from waypoint.core.timestamps import from_iso8601, to_iso8601, utc_now

TERMINAL_PHASE = "completed"


class RunStatus(str, Enum):
    """Status of a run."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not RunStatus.RUNNING


RUN_VALID_TRANSITIONS: dict[RunStatus, frozenset[RunStatus]] = {
    RunStatus.RUNNING: frozenset({RunStatus.COMPLETED, RunStatus.FAILED}),
    RunStatus.COMPLETED: frozenset(),
    RunStatus.FAILED: frozenset(),
}


def validate_run_transition(
    current: RunStatus, target: RunStatus, run_id: str | None = None
) -> None:
    """Raise :class:`InvalidTransitionError` if *current → target* is illegal.

    Example:
        >>> validate_run_transition(RunStatus.RUNNING, RunStatus.COMPLETED)
        >>> validate_run_transition(RunStatus.FAILED, RunStatus.COMPLETED)
        InvalidTransitionError: Invalid run transition: failed → completed
    """
    if target not in RUN_VALID_TRANSITIONS.get(current, frozenset()):
        raise InvalidTransitionError(current.value, target.value, run_id=run_id)


@dataclass
class ToolCallRecord:
    """One tool invocation observed during a run."""

    tool: str
    input: Any = None
    output: Any = None
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool": self.tool,
            "input": self.input,
            "output": self.output,
            "timestamp": to_iso8601(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ToolCallRecord:
        return cls(
            tool=data["tool"],
            input=data.get("input"),
            output=data.get("output"),
            timestamp=from_iso8601(data.get("timestamp")) or utc_now(),
        )


@dataclass
class Run:
    """A single workflow execution tracked by the run registry.

    Attributes:
        id: Opaque generated id (``run_<ms>_<rand>``)
        agent_name: Discriminant of the workflow that produced the run
        status: Current status
        input: Snapshot of the triggering input
        input_digest: Short SHA-256 of the canonical input
        checkpoint: Workflow-owned payload, always carrying ``phase`` once initialized
        result: Output, set on completion
        error: Error message, set on failure
        session_id: External conversation token used to resume agent calls
        tool_calls: Ordered tool invocations recorded during the run
        started_at / ended_at: Lifecycle timestamps (``ended_at`` set once)
    """

    id: str
    agent_name: str
    status: RunStatus = RunStatus.RUNNING
    input: Any = None
    input_digest: str | None = None
    checkpoint: dict[str, Any] = field(default_factory=dict)
    result: Any = None
    error: str | None = None
    session_id: str | None = None
    tool_calls: list[ToolCallRecord] = field(default_factory=list)
    started_at: datetime = field(default_factory=utc_now)
    ended_at: datetime | None = None

    @property
    def phase(self) -> str | None:
        return self.checkpoint.get("phase")

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def duration_seconds(self) -> float | None:
        if self.ended_at is None:
            return None
        return (self.ended_at - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict (the persisted record shape)."""
        return {
            "id": self.id,
            "agent_name": self.agent_name,
            "status": self.status.value,
            "input": self.input,
            "input_digest": self.input_digest,
            "checkpoint": self.checkpoint,
            "result": self.result,
            "error": self.error,
            "session_id": self.session_id,
            "tool_calls": [call.to_dict() for call in self.tool_calls],
            "started_at": to_iso8601(self.started_at),
            "ended_at": to_iso8601(self.ended_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Run:
        return cls(
            id=data["id"],
            agent_name=data["agent_name"],
            status=RunStatus(data.get("status", RunStatus.RUNNING.value)),
            input=data.get("input"),
            input_digest=data.get("input_digest"),
            checkpoint=dict(data.get("checkpoint") or {}),
            result=data.get("result"),
            error=data.get("error"),
            session_id=data.get("session_id"),
            tool_calls=[ToolCallRecord.from_dict(c) for c in data.get("tool_calls") or []],
            started_at=from_iso8601(data.get("started_at")) or utc_now(),
            ended_at=from_iso8601(data.get("ended_at")),
        )
