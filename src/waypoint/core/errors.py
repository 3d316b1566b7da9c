"""
Structured error types for the waypoint engine.

Every error raised by waypoint itself derives from :class:`WaypointError`,
which carries a category, a retryable flag, structured context and an
optional chained cause. Errors raised by workflow code are NOT wrapped:
the engine records their message on the run and rethrows them unchanged.

Manifesto:
    - **Typed hierarchy:** storage, validation, config and orchestration
      failures are distinguishable without string matching
    - **Explicit retry semantics:** each error type knows its default
    - **Rich context:** run_id, agent_name and task_id travel with the error

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                       WaypointError                             │
        │  (category, retryable, context, cause)                          │
        ├─────────────────────────────────────────────────────────────────┤
        │  TransientError     ValidationError     ConfigError             │
        │  (retryable=True)   (VALIDATION)        (CONFIG)                │
        │       │                                                          │
        │  ProviderError      StorageError                                 │
        │                     (STORAGE)                                    │
        │                                                                  │
        │  OrchestrationError (ORCHESTRATION)                              │
        │       │                                                          │
        │  WorkflowError  ScheduleError  RunNotFoundError                  │
        │  InvalidTransitionError  IdempotencyStateError                   │
        │  ExecutionInProgressError  ProviderNotConfiguredError            │
        └─────────────────────────────────────────────────────────────────┘

Tags:
    error-handling, exception-hierarchy, retry-logic, waypoint

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    NETWORK = "NETWORK"
    STORAGE = "STORAGE"
    PROVIDER = "PROVIDER"
    VALIDATION = "VALIDATION"
    CONFIG = "CONFIG"
    ORCHESTRATION = "ORCHESTRATION"
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """Structured metadata attached to an error.

    Attributes:
        run_id: Run the error belongs to
        agent_name: Workflow discriminant
        task_id: Scheduled task id
        phase: Checkpoint phase active when the error occurred
        metadata: Free-form extra fields
    """

    run_id: str | None = None
    agent_name: str | None = None
    task_id: str | None = None
    phase: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize non-empty fields for logging."""
        result: dict[str, Any] = {}
        for key in ("run_id", "agent_name", "task_id", "phase"):
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        result.update(self.metadata)
        return result


class WaypointError(Exception):
    """Base class for all waypoint errors.

    Subclasses set ``default_category`` and ``default_retryable``; both may
    be overridden per instance.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> WaypointError:
        """Add context to this error (fluent API).

        Usage:
            raise StorageError("write failed").with_context(run_id=run.id)
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# TRANSIENT ERRORS
# =============================================================================


class TransientError(WaypointError):
    """Temporary failure expected to succeed on retry."""

    default_category = ErrorCategory.NETWORK
    default_retryable = True


class ProviderError(TransientError):
    """Agent provider call failed (connection drop, rate limit, 5xx)."""

    default_category = ErrorCategory.PROVIDER


# =============================================================================
# PERMANENT ERRORS
# =============================================================================


class ValidationError(WaypointError):
    """Input failed validation. Never retryable."""

    default_category = ErrorCategory.VALIDATION
    default_retryable = False

    def __init__(self, message: str, *, field_name: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.field_name = field_name


class ConfigError(WaypointError):
    """Missing or invalid configuration."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class StorageError(WaypointError):
    """Checkpoint or schedule storage failed."""

    default_category = ErrorCategory.STORAGE
    default_retryable = False


# =============================================================================
# ORCHESTRATION ERRORS
# =============================================================================


class OrchestrationError(WaypointError):
    """Run lifecycle or scheduling failure."""

    default_category = ErrorCategory.ORCHESTRATION
    default_retryable = False


class WorkflowError(OrchestrationError):
    """Workflow definition or wiring problem."""


class ScheduleError(OrchestrationError):
    """Invalid scheduled task (unknown type, bad cron, missing id)."""


class RunNotFoundError(OrchestrationError):
    """Operation targeted a run id the registry does not know."""

    def __init__(self, run_id: str):
        super().__init__(f"Run not found: {run_id}", context=ErrorContext(run_id=run_id))
        self.run_id = run_id


class InvalidTransitionError(OrchestrationError):
    """Raised when an illegal run status transition is attempted.

    Terminal runs never change status. If you hit this on a legitimate
    path, the caller is mutating a run it does not own.
    """

    def __init__(self, current: str, target: str, run_id: str | None = None):
        self.current = current
        self.target = target
        super().__init__(
            f"Invalid run transition: {current} → {target}",
            context=ErrorContext(run_id=run_id),
        )


class IdempotencyStateError(OrchestrationError):
    """Idempotency record mutated outside the pending state."""

    def __init__(self, key: str, status: str | None):
        self.key = key
        self.status = status
        super().__init__(
            f"Idempotency key {key} is {status or 'absent'}, expected pending",
            context=ErrorContext(metadata={"idempotency_key": key}),
        )


class ExecutionInProgressError(OrchestrationError):
    """A duplicate trigger arrived while the original is still pending."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(
            f"Operation already in progress for key {key}",
            context=ErrorContext(metadata={"idempotency_key": key}),
        )


class ProviderNotConfiguredError(OrchestrationError):
    """Workflow tried to stream an agent call with no provider attached."""


# =============================================================================
# HELPERS
# =============================================================================


def is_retryable(error: Exception) -> bool:
    """Check whether an error is retryable.

    Non-waypoint exceptions are treated as retryable; classification of
    foreign errors is left to the caller's retry policy.
    """
    if isinstance(error, WaypointError):
        return error.retryable
    return True


def categorize_error(error: Exception) -> ErrorCategory:
    """Return the category of an error (UNKNOWN for foreign exceptions)."""
    if isinstance(error, WaypointError):
        return error.category
    if isinstance(error, (ConnectionError, TimeoutError)):
        return ErrorCategory.NETWORK
    if isinstance(error, OSError):
        return ErrorCategory.STORAGE
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "WaypointError",
    "TransientError",
    "ProviderError",
    "ValidationError",
    "ConfigError",
    "StorageError",
    "OrchestrationError",
    "WorkflowError",
    "ScheduleError",
    "RunNotFoundError",
    "InvalidTransitionError",
    "IdempotencyStateError",
    "ExecutionInProgressError",
    "ProviderNotConfiguredError",
    "is_retryable",
    "categorize_error",
]
