"""
Idempotency guard for side-effecting operations.

Manifesto:
    Triggers get repeated: a user double-clicks, a webhook is redelivered,
    a cron tick overlaps a manual run. Operations with external effects
    (publishing a post, sending a message) must run at most once per
    business entity. The manager keys each operation by
    ``sha256(entity_id:operation)`` and tracks it through::

        (absent) ──check_and_set──► PENDING ──record_success──► SUCCEEDED
                                       │
                                       └──clear_on_failure──► FAILED ──check_and_set──► PENDING

    SUCCEEDED short-circuits every later trigger with the cached result.
    FAILED (or absent, or expired) allows a fresh attempt. A trigger that
    arrives while the key is PENDING is reported as in progress.

Concurrency:
    ``check_and_set`` is atomic per key: a striped lock serializes callers
    racing on the same key, while different keys proceed in parallel.
    State is held in memory; it does not survive a restart.

Tags:
    idempotency, deduplication, side-effects, locking, waypoint
"""

from __future__ import annotations

import threading
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, TypeVar

from waypoint.core.errors import ExecutionInProgressError, IdempotencyStateError
from waypoint.core.hashing import compute_hash
from waypoint.core.logging import get_logger
from waypoint.core.timestamps import utc_now

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_TTL_SECONDS = 24 * 60 * 60
LOCK_STRIPES = 64


class IdempotencyStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class IdempotencyRecord:
    """State of one idempotency key."""

    key: str
    status: IdempotencyStatus
    result: Any = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    expires_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now


@dataclass(frozen=True)
class CheckResult:
    """Outcome of :meth:`IdempotencyManager.check_and_set`.

    Attributes:
        already_executed: A previous attempt succeeded; ``result`` holds its value
        result: Cached result (only when ``already_executed``)
        in_progress: Another caller holds the key in PENDING
    """

    already_executed: bool
    result: Any = None
    in_progress: bool = False


class IdempotencyManager:
    """In-memory idempotency records with per-key locking and TTL.

    Args:
        ttl_seconds: Record lifetime; expired records count as absent. None disables expiry.
        strict: Raise :class:`IdempotencyStateError` when a key is resolved
            outside PENDING. When False, log a warning instead.
        clock: Time source (tests inject a fake).
    """

    def __init__(
        self,
        ttl_seconds: float | None = DEFAULT_TTL_SECONDS,
        *,
        strict: bool = True,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.ttl_seconds = ttl_seconds
        self.strict = strict
        self._clock = clock
        self._records: dict[str, IdempotencyRecord] = {}
        self._stripes = [threading.Lock() for _ in range(LOCK_STRIPES)]

    @staticmethod
    def generate_key(entity_id: str, operation: str) -> str:
        """Deterministic 32-char key for (entity, operation)."""
        return compute_hash(f"{entity_id}:{operation}", length=32)

    def _lock_for(self, key: str) -> threading.Lock:
        return self._stripes[hash(key) % LOCK_STRIPES]

    def _live(self, key: str, now: datetime) -> IdempotencyRecord | None:
        record = self._records.get(key)
        if record is not None and record.is_expired(now):
            del self._records[key]
            return None
        return record

    def _expiry(self, now: datetime) -> datetime | None:
        if self.ttl_seconds is None:
            return None
        return now + timedelta(seconds=self.ttl_seconds)

    # === State transitions ===

    def check_and_set(self, key: str) -> CheckResult:
        """Atomically claim ``key`` unless it already succeeded or is pending."""
        self.cleanup_expired()
        with self._lock_for(key):
            now = self._clock()
            record = self._live(key, now)
            if record is not None and record.status is IdempotencyStatus.SUCCEEDED:
                logger.info("idempotency.hit", key=key)
                return CheckResult(already_executed=True, result=record.result)
            if record is not None and record.status is IdempotencyStatus.PENDING:
                logger.warning("idempotency.in_progress", key=key)
                return CheckResult(already_executed=False, in_progress=True)
            self._records[key] = IdempotencyRecord(
                key=key,
                status=IdempotencyStatus.PENDING,
                created_at=now,
                updated_at=now,
                expires_at=self._expiry(now),
            )
            return CheckResult(already_executed=False)

    def record_success(self, key: str, result: Any) -> None:
        """PENDING → SUCCEEDED, caching ``result``."""
        with self._lock_for(key):
            now = self._clock()
            record = self._live(key, now)
            if record is None or record.status is not IdempotencyStatus.PENDING:
                self._unexpected(key, record)
                if record is None:
                    record = IdempotencyRecord(key=key, status=IdempotencyStatus.PENDING, created_at=now)
                    self._records[key] = record
            record.status = IdempotencyStatus.SUCCEEDED
            record.result = result
            record.updated_at = now
            record.expires_at = self._expiry(now)

    def clear_on_failure(self, key: str) -> None:
        """PENDING → FAILED, allowing a later attempt to claim the key again."""
        with self._lock_for(key):
            now = self._clock()
            record = self._live(key, now)
            if record is None or record.status is not IdempotencyStatus.PENDING:
                self._unexpected(key, record)
                if record is None:
                    return
            record.status = IdempotencyStatus.FAILED
            record.result = None
            record.updated_at = now

    def _unexpected(self, key: str, record: IdempotencyRecord | None) -> None:
        status = record.status.value if record is not None else None
        if self.strict:
            raise IdempotencyStateError(key, status)
        logger.warning("idempotency.unexpected_state", key=key, status=status)

    # === Helpers ===

    async def run_once(self, key: str, func: Callable[[], Awaitable[T]]) -> T:
        """Run ``func`` at most once per key, caching its successful result.

        Raises:
            ExecutionInProgressError: The key is already PENDING.
        """
        check = self.check_and_set(key)
        if check.already_executed:
            return check.result
        if check.in_progress:
            raise ExecutionInProgressError(key)
        try:
            result = await func()
        except BaseException:
            self.clear_on_failure(key)
            raise
        self.record_success(key, result)
        return result

    def get(self, key: str) -> IdempotencyRecord | None:
        self.cleanup_expired()
        with self._lock_for(key):
            return self._live(key, self._clock())

    def cleanup_expired(self) -> int:
        """Drop expired records. Returns the number removed.

        Runs at the start of every ``check_and_set`` and ``get``.
        """
        if self.ttl_seconds is None:
            return 0
        now = self._clock()
        removed = 0
        for key, record in list(self._records.items()):
            if not record.is_expired(now):
                continue
            with self._lock_for(key):
                if key in self._records and self._live(key, now) is None:
                    removed += 1
        return removed

    def clear(self) -> None:
        self._records.clear()

    def __len__(self) -> int:
        return len(self._records)


__all__ = [
    "CheckResult",
    "DEFAULT_TTL_SECONDS",
    "IdempotencyManager",
    "IdempotencyRecord",
    "IdempotencyStatus",
]
