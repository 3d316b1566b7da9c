"""Scheduler manager - tick loop plus the task CRUD facade.

Manifesto:
    The manager is the single entry point the runtime and the CLI talk to.
    Timing belongs to the backend, persistence to the store, and firing to
    the executor; the manager only decides which tasks are due and keeps
    the bookkeeping (stats, health, listeners).

┌──────────────────────────────────────────────────────────────────────────────┐
│  SCHEDULER MANAGER                                                           │
│                                                                              │
│   backend ──tick()──► store.get_due(now)                                     │
│                          │                                                   │
│                          ▼  one firing per due task, in-flight ones skipped  │
│                       executor.execute(task)  (all firings gathered)         │
│                          │                                                   │
│                          ▼                                                   │
│                       _on_executed(result) ─► stats, on_task_updated(task)   │
│                                                                              │
│   register_task_type / ensure_default_task / create / update / toggle /      │
│   delete / run_now                                                           │
└──────────────────────────────────────────────────────────────────────────────┘

Tags:
    scheduling, scheduler-manager, cron, beat-as-poller, waypoint
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from waypoint.core.errors import ScheduleError
from waypoint.core.logging import get_logger
from waypoint.core.timestamps import utc_now
from waypoint.runs.registry import RunRegistry

from .executor import TaskExecutor
from .models import (
    CreateTaskParams,
    ScheduledTask,
    TaskDefinition,
    TaskExecutionResult,
    UpdateTaskParams,
)
from .protocol import SchedulerBackend
from .registry import TaskRegistry
from .store import ScheduleStore, is_valid_cron
from .thread_backend import ThreadSchedulerBackend

logger = get_logger(__name__)

TaskUpdatedCallback = Callable[[ScheduledTask], Any]


@dataclass
class SchedulerStats:
    """Statistics for the scheduler manager."""

    tick_count: int = 0
    tasks_executed: int = 0
    tasks_failed: int = 0
    last_tick: datetime | None = None
    last_error: str | None = None


@dataclass
class SchedulerHealth:
    """Health status for the scheduler manager."""

    healthy: bool
    backend: dict[str, Any]
    tasks_enabled: int = 0
    last_tick: datetime | None = None
    stats: SchedulerStats = field(default_factory=SchedulerStats)

    def to_dict(self) -> dict[str, Any]:
        return {
            "healthy": self.healthy,
            "backend": self.backend,
            "tasks_enabled": self.tasks_enabled,
            "last_tick": self.last_tick.isoformat() if self.last_tick else None,
            "stats": {
                "tick_count": self.stats.tick_count,
                "tasks_executed": self.stats.tasks_executed,
                "tasks_failed": self.stats.tasks_failed,
                "last_error": self.stats.last_error,
            },
        }


class SchedulerManager:
    """Cron scheduler over a :class:`ScheduleStore`.

    Example:
        >>> manager = SchedulerManager(ScheduleStore(db_path), run_registry=runs)
        >>> manager.register_task_type(TaskDefinition(
        ...     type="news",
        ...     name="News digest",
        ...     description="Collect and summarise news",
        ...     execute=collect_news,
        ...     default_cron="0 6 * * *",
        ... ))
        >>> manager.ensure_default_task("news", "Morning news", "Daily digest")
        >>> manager.start()
    """

    def __init__(
        self,
        store: ScheduleStore,
        registry: TaskRegistry | None = None,
        executor: TaskExecutor | None = None,
        backend: SchedulerBackend | None = None,
        *,
        run_registry: RunRegistry | None = None,
        interval_seconds: float = 30.0,
        on_task_updated: TaskUpdatedCallback | None = None,
    ) -> None:
        """
        Args:
            store: Scheduled task persistence
            registry: Task type registry (a fresh one by default)
            executor: Task executor (built from registry/store by default)
            backend: Timing backend (daemon thread by default)
            run_registry: Run registry used by the default executor
            interval_seconds: Tick interval
            on_task_updated: Called with the refreshed task after each firing
        """
        self.store = store
        self.registry = registry or TaskRegistry()
        self.executor = executor or TaskExecutor(self.registry, store, run_registry)
        self.executor.set_execution_callback(self._on_executed)
        self.backend = backend or ThreadSchedulerBackend()
        self.interval = interval_seconds
        self.on_task_updated = on_task_updated

        self._stats = SchedulerStats()
        self._running = False
        self._in_flight: set[str] = set()

    # === Lifecycle ===

    def start(self) -> None:
        if self._running:
            logger.warning("scheduler.already_running")
            return
        self.backend.start(self.tick, self.interval)
        self._running = True
        logger.info(
            "scheduler.started", backend=self.backend.name, interval_seconds=self.interval
        )

    def stop(self) -> None:
        if not self._running:
            return
        self.backend.stop()
        self._running = False
        logger.info("scheduler.stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    # === Tick Processing ===

    async def tick(self, now: datetime | None = None) -> list[TaskExecutionResult]:
        """Fire every enabled task whose ``next_run_at`` has passed.

        Due tasks fire concurrently, so a hung handler only holds up its own
        firing. A task still in flight from an earlier tick is skipped.
        """
        self._stats.tick_count += 1
        self._stats.last_tick = utc_now()
        now = now or self._stats.last_tick

        try:
            due = self.store.get_due(now)
        except Exception as e:
            self._stats.last_error = str(e)
            logger.exception("scheduler.tick_failed", error=str(e))
            return []

        busy = [task.id for task in due if task.id in self._in_flight]
        if busy:
            logger.info("scheduler.still_running", task_ids=busy)
        due = [task for task in due if task.id not in self._in_flight]
        if not due:
            logger.debug("scheduler.nothing_due")
            return []

        firings = []
        for task in due:
            self._in_flight.add(task.id)
            firing = asyncio.ensure_future(self._fire(task))
            firing.add_done_callback(
                lambda _f, task_id=task.id: self._in_flight.discard(task_id)
            )
            firings.append(firing)

        outcomes = await asyncio.gather(*firings)
        return [result for result in outcomes if result is not None]

    async def _fire(self, task: ScheduledTask) -> TaskExecutionResult | None:
        try:
            return await self.executor.execute(task)
        except Exception as e:
            self._stats.last_error = str(e)
            logger.exception("scheduler.tick_failed", task_id=task.id, error=str(e))
            return None

    @property
    def in_flight(self) -> frozenset[str]:
        """Ids of tasks whose firing has not finished yet."""
        return frozenset(self._in_flight)

    async def _on_executed(self, result: TaskExecutionResult) -> None:
        self._stats.tasks_executed += 1
        if not result.success:
            self._stats.tasks_failed += 1
            self._stats.last_error = result.error

        if self.on_task_updated is None:
            return
        task = self.store.get(result.task_id)
        if task is None:
            return
        outcome = self.on_task_updated(task)
        if inspect.isawaitable(outcome):
            await outcome

    # === Task Types ===

    def register_task_type(self, definition: TaskDefinition) -> None:
        self.registry.register(definition)

    def task_types(self) -> list[TaskDefinition]:
        return self.registry.list()

    def ensure_default_task(
        self,
        task_type: str,
        name: str,
        description: str | None = None,
        cron_expression: str | None = None,
        config: dict[str, Any] | None = None,
    ) -> ScheduledTask:
        """Create a task of ``task_type`` unless one already exists.

        The cron expression defaults to the task type's ``default_cron``.
        """
        existing = self.store.find_by_type(task_type)
        if existing is not None:
            return existing

        if cron_expression is None:
            definition = self.registry.get(task_type)
            if definition is None:
                raise ScheduleError(f"Unknown task type: {task_type}")
            cron_expression = definition.default_cron

        task = self.create(
            CreateTaskParams(
                name=name,
                task_type=task_type,
                cron_expression=cron_expression,
                description=description,
                config=config,
            )
        )
        logger.info("scheduler.default_task_created", task_id=task.id, task_type=task_type)
        return task

    # === Task CRUD ===

    def list(self) -> list[ScheduledTask]:
        return self.store.list()

    def get(self, task_id: str) -> ScheduledTask | None:
        return self.store.get(task_id)

    def create(self, params: CreateTaskParams) -> ScheduledTask:
        """Create a task.

        Raises:
            ScheduleError: Unknown task type or invalid cron expression
        """
        if not self.registry.has(params.task_type):
            raise ScheduleError(f"Unknown task type: {params.task_type}")
        if not is_valid_cron(params.cron_expression):
            raise ScheduleError(f"Invalid cron expression: {params.cron_expression!r}")
        return self.store.create(params)

    def update(self, task_id: str, params: UpdateTaskParams) -> ScheduledTask | None:
        if params.cron_expression is not None and not is_valid_cron(params.cron_expression):
            raise ScheduleError(f"Invalid cron expression: {params.cron_expression!r}")
        return self.store.update(task_id, params)

    def toggle(self, task_id: str, enabled: bool) -> ScheduledTask | None:
        return self.store.toggle(task_id, enabled)

    def delete(self, task_id: str) -> bool:
        return self.store.delete(task_id)

    async def run_now(self, task_id: str) -> TaskExecutionResult:
        """Fire a task immediately, regardless of its schedule."""
        return await self.executor.execute_by_id(task_id)

    # === Health & Stats ===

    @property
    def stats(self) -> SchedulerStats:
        return self._stats

    def reset_stats(self) -> None:
        self._stats = SchedulerStats()

    def health(self) -> SchedulerHealth:
        backend_health = self.backend.health()
        return SchedulerHealth(
            healthy=self._running and bool(backend_health.get("healthy", False)),
            backend=backend_health,
            tasks_enabled=len(self.store.list_enabled()),
            last_tick=self._stats.last_tick,
            stats=self._stats,
        )
