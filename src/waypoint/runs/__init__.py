"""Run records, checkpoint stores and the run registry."""

from .checkpoint import CheckpointStore, FileCheckpointStore, SQLiteCheckpointStore
from .models import (
    RUN_VALID_TRANSITIONS,
    TERMINAL_PHASE,
    Run,
    RunStatus,
    ToolCallRecord,
    validate_run_transition,
)
from .registry import RunRegistry

__all__ = [
    "CheckpointStore",
    "FileCheckpointStore",
    "SQLiteCheckpointStore",
    "RUN_VALID_TRANSITIONS",
    "TERMINAL_PHASE",
    "Run",
    "RunStatus",
    "ToolCallRecord",
    "validate_run_transition",
    "RunRegistry",
]
