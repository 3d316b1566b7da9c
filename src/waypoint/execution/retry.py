"""Retry policy with exponential backoff and error classification.

A :class:`RetryPolicy` is an explicit value passed by the caller on every
``execute_with_retry`` call; there are no module-level mutable defaults.

Delay before retry *n* (0-based) is::

    initial_delay_ms * backoff_multiplier ** n

Example:
    >>> policy = RetryPolicy(max_retries=3, initial_delay_ms=1000)
    >>> [policy.delay_ms(n) for n in range(3)]
    [1000.0, 2000.0, 4000.0]
    >>> RetryPolicy(retryable_errors=["timeout"]).is_retryable(RuntimeError("read timeout"))
    True
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import Sequence
from dataclasses import dataclass, field

from waypoint.core.errors import WaypointError
from waypoint.core.errors import is_retryable as is_retryable_error

ErrorMatcher = str | re.Pattern[str]


def error_message(error: BaseException) -> str:
    """Return the message recorded for an error (``str(error)``, or its type name when empty)."""
    return str(error) or type(error).__name__


@dataclass(frozen=True)
class RetryPolicy:
    """How ``execute_with_retry`` repeats failed runs.

    Attributes:
        max_retries: Retries after the first attempt (total attempts = 1 + max_retries)
        initial_delay_ms: Delay before the first retry
        backoff_multiplier: Growth factor applied per retry
        retryable_errors: Substrings or compiled patterns matched against the
            message of errors from outside waypoint. None or empty means every
            such error is retryable. Waypoint errors follow their own
            ``retryable`` flag instead.
    """

    max_retries: int = 3
    initial_delay_ms: float = 1000
    backoff_multiplier: float = 2
    retryable_errors: Sequence[ErrorMatcher] | None = field(default=None)

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.initial_delay_ms < 0:
            raise ValueError("initial_delay_ms must be >= 0")
        if self.backoff_multiplier <= 0:
            raise ValueError("backoff_multiplier must be > 0")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_ms(self, attempt_index: int) -> float:
        """Delay before the retry following attempt ``attempt_index`` (0-based)."""
        return float(self.initial_delay_ms * self.backoff_multiplier**attempt_index)

    def delay_seconds(self, attempt_index: int) -> float:
        return self.delay_ms(attempt_index) / 1000.0

    def is_retryable(self, error: BaseException) -> bool:
        """Classify ``error`` by its waypoint type, else by ``retryable_errors``."""
        if isinstance(error, WaypointError):
            return is_retryable_error(error)
        if not self.retryable_errors:
            return True
        message = error_message(error)
        for matcher in self.retryable_errors:
            if isinstance(matcher, re.Pattern):
                if matcher.search(message):
                    return True
            elif matcher in message:
                return True
        return False

    def should_retry(self, attempt_index: int, error: BaseException) -> bool:
        """True when another attempt is allowed after ``attempt_index`` failed."""
        return attempt_index < self.max_retries and self.is_retryable(error)


async def cancellable_sleep(seconds: float, cancel_event: asyncio.Event | None = None) -> bool:
    """Sleep for ``seconds`` unless ``cancel_event`` is set first.

    Returns:
        True if the full delay elapsed, False if cancelled.
    """
    if cancel_event is None:
        await asyncio.sleep(seconds)
        return True
    if cancel_event.is_set():
        return False
    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        return True
    return False


__all__ = ["RetryPolicy", "ErrorMatcher", "error_message", "cancellable_sleep"]
