"""
Task Executor - fires one scheduled task and reports a structured result.

Manifesto:
    A failing handler must never take the scheduler loop down with it.
    The executor is the boundary where handler exceptions become data:
    every firing yields a :class:`TaskExecutionResult`, and every firing
    advances ``last_run_at`` / ``next_run_at`` whether it succeeded or not.

Architecture:
    ::

        execute(task)
          ├── registry.get(task.task_type)       unknown → result(success=False)
          ├── run_registry.start("task:<type>")  (record_run definitions only)
          ├── handler(task.config)               sync or async
          │     ok    → run.complete, result(success=True)
          │     raise → run.fail,     result(success=False, error)
          ├── store.update_last_run_at(task.id)
          └── on_executed(result)

Tags:
    scheduling, task-executor, error-boundary, waypoint
"""

from __future__ import annotations

import inspect
import time
from collections.abc import Callable
from typing import Any

from waypoint.core.errors import categorize_error
from waypoint.core.logging import LogContext, get_logger
from waypoint.core.timestamps import utc_now
from waypoint.execution.retry import error_message
from waypoint.runs.registry import RunRegistry

from .models import ScheduledTask, TaskExecutionResult
from .registry import TaskRegistry
from .store import ScheduleStore

logger = get_logger(__name__)

ExecutionCallback = Callable[[TaskExecutionResult], Any]

TASK_AGENT_PREFIX = "task:"


class TaskExecutor:
    """Runs scheduled tasks through their registered handlers.

    Example:
        >>> executor = TaskExecutor(registry, store, run_registry=runs)
        >>> result = await executor.execute_by_id(task_id)
        >>> result.success
        True
    """

    def __init__(
        self,
        registry: TaskRegistry,
        store: ScheduleStore,
        run_registry: RunRegistry | None = None,
        on_executed: ExecutionCallback | None = None,
    ):
        self.registry = registry
        self.store = store
        self.run_registry = run_registry
        self._on_executed = on_executed

    def set_execution_callback(self, callback: ExecutionCallback | None) -> None:
        self._on_executed = callback

    async def execute_by_id(self, task_id: str) -> TaskExecutionResult:
        task = self.store.get(task_id)
        if task is None:
            return TaskExecutionResult(
                task_id=task_id,
                success=False,
                executed_at=utc_now(),
                error=f"Task not found: {task_id}",
            )
        return await self.execute(task)

    async def execute_by_type(self, task_type: str) -> TaskExecutionResult:
        task = self.store.find_by_type(task_type)
        if task is None:
            return TaskExecutionResult(
                task_id="",
                success=False,
                executed_at=utc_now(),
                error=f"No task of type: {task_type}",
            )
        return await self.execute(task)

    async def execute(self, task: ScheduledTask) -> TaskExecutionResult:
        """Fire ``task`` once. Never raises for handler failures."""
        executed_at = utc_now()
        definition = self.registry.get(task.task_type)

        async with LogContext(task_id=task.id):
            if definition is None:
                logger.error("task.unknown_type", task_type=task.task_type)
                result = TaskExecutionResult(
                    task_id=task.id,
                    success=False,
                    executed_at=executed_at,
                    error=f"Unknown task type: {task.task_type}",
                )
            else:
                result = await self._run_handler(task, definition.execute, definition.record_run)

        self.store.update_last_run_at(task.id)
        await self._notify(result)
        return result

    async def _run_handler(
        self, task: ScheduledTask, handler: Callable[..., Any], record_run: bool
    ) -> TaskExecutionResult:
        run_id: str | None = None
        executed_at = utc_now()
        started = time.perf_counter()

        logger.info("task.executing", task_type=task.task_type, name=task.name)
        try:
            if record_run and self.run_registry is not None:
                run = self.run_registry.start(
                    f"{TASK_AGENT_PREFIX}{task.task_type}",
                    {"task_id": task.id, "config": task.config},
                )
                run_id = run.id
                self.run_registry.update_checkpoint(run_id, {"phase": "executing"})

            output = handler(task.config)
            if inspect.isawaitable(output):
                output = await output
        except Exception as e:
            message = error_message(e)
            duration_ms = (time.perf_counter() - started) * 1000
            if run_id is not None:
                self.run_registry.fail(run_id, message)  # type: ignore[union-attr]
            logger.error(
                "task.failed",
                task_type=task.task_type,
                error=message,
                error_category=categorize_error(e).value,
                duration_ms=round(duration_ms, 2),
            )
            return TaskExecutionResult(
                task_id=task.id,
                success=False,
                executed_at=executed_at,
                error=message,
                duration_ms=duration_ms,
                run_id=run_id,
            )

        duration_ms = (time.perf_counter() - started) * 1000
        if run_id is not None:
            self.run_registry.complete(run_id, output)  # type: ignore[union-attr]
        logger.info(
            "task.completed", task_type=task.task_type, duration_ms=round(duration_ms, 2)
        )
        return TaskExecutionResult(
            task_id=task.id,
            success=True,
            executed_at=executed_at,
            duration_ms=duration_ms,
            run_id=run_id,
        )

    async def _notify(self, result: TaskExecutionResult) -> None:
        if self._on_executed is None:
            return
        try:
            outcome = self._on_executed(result)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:
            logger.exception("task.listener_failed", task_id=result.task_id)
