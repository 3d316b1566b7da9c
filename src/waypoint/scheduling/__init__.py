"""Cron scheduling for waypoint.

Architecture::

    models.py          ScheduledTask, TaskDefinition, TaskExecutionResult, DTOs
    store.py           ScheduleStore (SQLite, croniter next-run, migration, dedup)
    registry.py        TaskRegistry (task type -> definition)
    executor.py        TaskExecutor (error boundary, run tracking)
    protocol.py        SchedulerBackend protocol
    thread_backend.py  Default daemon-thread backend
    manager.py         SchedulerManager (tick loop + CRUD facade)
    workflow_tasks.py  Task types that execute a WorkflowEngine
"""

from .executor import TaskExecutor
from .manager import SchedulerHealth, SchedulerManager, SchedulerStats
from .models import (
    ConfigField,
    CreateTaskParams,
    ScheduledTask,
    TaskDefinition,
    TaskExecutionResult,
    UpdateTaskParams,
)
from .protocol import BackendHealth, SchedulerBackend, TickCallback
from .registry import TaskRegistry
from .store import ScheduleStore, compute_next_run, is_valid_cron
from .thread_backend import ThreadSchedulerBackend
from .workflow_tasks import workflow_task_definition

__all__ = [
    "BackendHealth",
    "ConfigField",
    "CreateTaskParams",
    "ScheduleStore",
    "ScheduledTask",
    "SchedulerBackend",
    "SchedulerHealth",
    "SchedulerManager",
    "SchedulerStats",
    "TaskDefinition",
    "TaskExecutionResult",
    "TaskExecutor",
    "TaskRegistry",
    "ThreadSchedulerBackend",
    "TickCallback",
    "UpdateTaskParams",
    "compute_next_run",
    "is_valid_cron",
    "workflow_task_definition",
]
