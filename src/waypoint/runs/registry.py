"""
Run Registry - the authoritative state machine for workflow runs.

Manifesto:
    A run's checkpoint is the only thing standing between a crash and a
    duplicated side effect. The registry therefore persists every mutation
    to the checkpoint store *before* updating its in-memory mirror and
    before returning to the caller. If the write fails, the mirror is left
    untouched and the storage error reaches the caller.

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                         RunRegistry                           │
        │                                                               │
        │  start ─► update_checkpoint* ─► complete | fail               │
        │             set_session_id*                                   │
        │             record_tool_call*                                 │
        │                                                               │
        │  run lock ──► copy ──► mutate ──► store.save ──► mirror       │
        └──────────────────────────────┬───────────────────────────────┘
                                       │
                               CheckpointStore

Guardrails:
    ❌ DON'T: mutate a Run returned by get() and expect it to persist
    ✅ DO: go through update_checkpoint()/complete()/fail()

    ❌ DON'T: complete a failed run
    ✅ DO: start a fresh run (execute_with_retry does this per attempt)

Tags:
    run-registry, state-machine, checkpoint, crash-recovery, waypoint

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import copy
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Any

from waypoint.core.errors import InvalidTransitionError, RunNotFoundError
from waypoint.core.hashing import compute_digest
from waypoint.core.logging import get_logger
from waypoint.core.serialization import to_jsonable
from waypoint.core.timestamps import generate_run_id, utc_now

from .checkpoint import CheckpointStore
from .models import Run, RunStatus, ToolCallRecord, validate_run_transition

logger = get_logger(__name__)

LOCK_STRIPES = 64


class RunRegistry:
    """Tracks runs in memory and mirrors every change to a checkpoint store.

    Example:
        >>> registry = RunRegistry(FileCheckpointStore("data/runs"))
        >>> run = registry.start("research", {"topic": "rust"})
        >>> registry.update_checkpoint(run.id, {"phase": "collecting"})
        >>> registry.complete(run.id, {"report": "..."})
    """

    def __init__(self, store: CheckpointStore):
        self.store = store
        self._runs: dict[str, Run] = {}
        self._stripes = [threading.RLock() for _ in range(LOCK_STRIPES)]

    # === Locking ===

    @contextmanager
    def _locked(self, run_id: str) -> Iterator[None]:
        with self._stripes[hash(run_id) % LOCK_STRIPES]:
            yield

    def _current(self, run_id: str) -> Run:
        run = self._runs.get(run_id)
        if run is None:
            run = self.store.load(run_id)
            if run is None:
                raise RunNotFoundError(run_id)
            self._runs[run_id] = run
        return run

    def _commit(self, run: Run) -> Run:
        self.store.save(run)
        self._runs[run.id] = run
        return copy.deepcopy(run)

    # === Lifecycle ===

    def start(self, agent_name: str, input: Any = None) -> Run:
        """Create and persist a new running run with an empty checkpoint."""
        run = Run(
            id=generate_run_id(),
            agent_name=agent_name,
            status=RunStatus.RUNNING,
            input=to_jsonable(input),
            input_digest=compute_digest(input),
            checkpoint={},
            started_at=utc_now(),
        )
        with self._locked(run.id):
            stored = self._commit(run)
        logger.info("run.registered", run_id=run.id, agent_name=agent_name)
        return stored

    def update_checkpoint(self, run_id: str, partial: Mapping[str, Any]) -> Run:
        """Shallow-merge ``partial`` into the run's checkpoint and persist it."""
        with self._locked(run_id):
            current = self._current(run_id)
            if current.is_terminal:
                raise InvalidTransitionError(
                    current.status.value, "checkpoint update", run_id=run_id
                )
            run = copy.deepcopy(current)
            run.checkpoint.update(to_jsonable(dict(partial)))
            stored = self._commit(run)
        if "phase" in partial:
            logger.debug("run.phase", run_id=run_id, phase=partial["phase"])
        return stored

    def set_session_id(self, run_id: str, session_id: str) -> Run:
        """Record the external session token used to resume agent calls."""
        with self._locked(run_id):
            run = copy.deepcopy(self._current(run_id))
            run.session_id = session_id
            return self._commit(run)

    def record_tool_call(
        self, run_id: str, tool: str, input: Any = None, output: Any = None
    ) -> Run:
        """Append a tool invocation to the run's audit trail."""
        with self._locked(run_id):
            current = self._current(run_id)
            if current.is_terminal:
                raise InvalidTransitionError(
                    current.status.value, "tool call", run_id=run_id
                )
            run = copy.deepcopy(current)
            run.tool_calls.append(
                ToolCallRecord(tool=tool, input=to_jsonable(input), output=to_jsonable(output))
            )
            return self._commit(run)

    def complete(self, run_id: str, result: Any = None) -> Run:
        """Mark a run completed.

        Completing an already completed run is a no-op. Completing a failed
        run raises :class:`InvalidTransitionError`.
        """
        with self._locked(run_id):
            current = self._current(run_id)
            if current.status is RunStatus.COMPLETED:
                logger.debug("run.already_completed", run_id=run_id)
                return copy.deepcopy(current)
            validate_run_transition(current.status, RunStatus.COMPLETED, run_id=run_id)
            run = copy.deepcopy(current)
            run.status = RunStatus.COMPLETED
            if result is not None:
                run.result = to_jsonable(result)
            run.ended_at = utc_now()
            return self._commit(run)

    def fail(self, run_id: str, error: str) -> Run:
        """Mark a run failed with an error message.

        Failing an already failed run is a no-op. Failing a completed run
        raises :class:`InvalidTransitionError`.
        """
        with self._locked(run_id):
            current = self._current(run_id)
            if current.status is RunStatus.FAILED:
                return copy.deepcopy(current)
            validate_run_transition(current.status, RunStatus.FAILED, run_id=run_id)
            run = copy.deepcopy(current)
            run.status = RunStatus.FAILED
            run.error = error
            run.ended_at = utc_now()
            return self._commit(run)

    # === Queries ===

    def get(self, run_id: str) -> Run | None:
        """Return a snapshot of the run, or None if unknown."""
        with self._locked(run_id):
            try:
                return copy.deepcopy(self._current(run_id))
            except RunNotFoundError:
                return None

    def get_pending(self) -> list[Run]:
        """Runs still in ``running`` status."""
        return self.list_runs(status=RunStatus.RUNNING)

    def get_by_agent(self, agent_name: str) -> list[Run]:
        return self.list_runs(agent_name=agent_name)

    def list_runs(
        self,
        agent_name: str | None = None,
        status: RunStatus | None = None,
        limit: int | None = None,
    ) -> list[Run]:
        """List runs from the in-memory mirror, newest first."""
        runs = [
            copy.deepcopy(run)
            for run in list(self._runs.values())
            if (agent_name is None or run.agent_name == agent_name)
            and (status is None or run.status is status)
        ]
        runs.sort(key=lambda r: r.started_at, reverse=True)
        return runs[:limit] if limit is not None else runs

    # === Maintenance ===

    def load_from_store(self) -> int:
        """Populate the in-memory mirror from durable storage.

        Returns:
            Number of runs loaded.
        """
        runs = self.store.list_all()
        for run in runs:
            with self._locked(run.id):
                self._runs[run.id] = run
        logger.info("run_registry.loaded", count=len(runs))
        return len(runs)

    def delete(self, run_id: str) -> None:
        with self._locked(run_id):
            self.store.delete(run_id)
            self._runs.pop(run_id, None)

    def clear(self) -> None:
        """Drop the in-memory mirror. Durable records are kept."""
        self._runs.clear()

    def __len__(self) -> int:
        return len(self._runs)


__all__ = ["RunRegistry"]
