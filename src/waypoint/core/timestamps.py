"""
Run-id generation and timestamp utilities.

Every persisted record in waypoint (runs, scheduled tasks, idempotency
records) stores timezone-aware UTC timestamps as ISO-8601 strings.

Features:
    - **utc_now():** Timezone-aware UTC datetime
    - **to_iso8601() / from_iso8601():** Safe serialization round-trip
    - **generate_run_id():** ``run_<epoch-ms>_<6 base36 chars>``, sortable by start time

Tags:
    timestamps, utc, datetime, run-id, waypoint
"""

import random
import string
import time
from datetime import UTC, datetime

_RUN_ID_ALPHABET = string.ascii_lowercase + string.digits


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)


def generate_run_id() -> str:
    """Generate an opaque, time-sortable run id."""
    timestamp_ms = int(time.time() * 1000)
    suffix = "".join(random.choices(_RUN_ID_ALPHABET, k=6))
    return f"run_{timestamp_ms}_{suffix}"


def to_iso8601(dt: datetime | None) -> str | None:
    """Convert datetime to ISO 8601 string."""
    if dt is None:
        return None
    return dt.isoformat()


def from_iso8601(s: str | None) -> datetime | None:
    """Parse ISO 8601 string to a UTC-aware datetime."""
    if not s:
        return None
    dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt
