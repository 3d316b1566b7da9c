"""Approval sink - where generated content waits for a human decision.

The approval queue itself (storage, UI, notifications) lives outside the
engine. Workflows only need somewhere to submit a request and get back
an id they can checkpoint.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from waypoint.core.timestamps import utc_now


@dataclass
class ApprovalRequest:
    """Content submitted for human review."""

    platform: str
    content: dict[str, Any]
    prompt: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class ApprovalItem:
    id: str
    request: ApprovalRequest
    status: str = "pending"
    created_at: datetime = field(default_factory=utc_now)


@runtime_checkable
class ApprovalSink(Protocol):
    def submit(self, request: ApprovalRequest) -> str:
        """Enqueue a request and return its id."""
        ...


class InMemoryApprovalSink:
    """Process-local approval queue."""

    def __init__(self) -> None:
        self.items: dict[str, ApprovalItem] = {}

    def submit(self, request: ApprovalRequest) -> str:
        item_id = f"approval_{uuid.uuid4().hex[:12]}"
        self.items[item_id] = ApprovalItem(id=item_id, request=request)
        return item_id

    def pending(self) -> list[ApprovalItem]:
        return [item for item in self.items.values() if item.status == "pending"]

    def __len__(self) -> int:
        return len(self.items)
