"""Execution primitives: retry policy and idempotency guard."""

from .idempotency import (
    CheckResult,
    IdempotencyManager,
    IdempotencyRecord,
    IdempotencyStatus,
)
from .retry import RetryPolicy, cancellable_sleep, error_message

__all__ = [
    "CheckResult",
    "IdempotencyManager",
    "IdempotencyRecord",
    "IdempotencyStatus",
    "RetryPolicy",
    "cancellable_sleep",
    "error_message",
]
