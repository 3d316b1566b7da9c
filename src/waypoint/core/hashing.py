"""
Deterministic hashing utilities.

Used for idempotency keys (``entity_id:operation``) and for the input
digest stored on every run, which lets an operator spot re-executions of
the same trigger payload.

Tags:
    hashing, idempotency, sha256, waypoint
"""

import hashlib
import json
from typing import Any

from .serialization import to_jsonable


def compute_hash(*values: Any, length: int = 32) -> str:
    """
    Compute deterministic hash from values.

    Values are converted to strings and joined with ``|`` before hashing
    with SHA-256. Order matters: ``compute_hash("a", "b")`` differs from
    ``compute_hash("b", "a")``.

    Examples:
        >>> len(compute_hash("article-42", length=16))
        16
        >>> compute_hash("a", "b") != compute_hash("b", "a")
        True

    Args:
        *values: Values to hash (converted to strings)
        length: Hex digest length (default 32 = 128 bits)

    Returns:
        Hex string of specified length
    """
    content = "|".join(str(v) for v in values)
    return hashlib.sha256(content.encode()).hexdigest()[:length]


def canonical_json(value: Any) -> str:
    """Serialize to JSON with sorted keys so equal payloads compare equal."""
    return json.dumps(to_jsonable(value), sort_keys=True, separators=(",", ":"))


def compute_digest(value: Any, length: int = 16) -> str:
    """Hash an arbitrary JSON-compatible payload (key order independent)."""
    return compute_hash(canonical_json(value), length=length)
