"""Scheduler backend protocol.

┌──────────────────────────────────────────────────────────────────────────────┐
│  SCHEDULER BACKEND PROTOCOL                                                  │
│                                                                              │
│  Backends control WHEN ticks happen. SchedulerManager controls WHAT          │
│  happens on each tick (load due tasks, fire them, advance next_run_at).      │
│                                                                              │
│   ┌─────────────────┐       tick()       ┌──────────────────┐                │
│   │  Thread Backend │ ─────────────────► │ SchedulerManager │                │
│   │  (default)      │                    │  - get_due       │                │
│   └─────────────────┘                    │  - execute       │                │
│                                          │  - notify        │                │
│   ┌─────────────────┐       tick()       └──────────────────┘                │
│   │  test / manual  │ ─────────────────►                                     │
│   └─────────────────┘                                                        │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

TickCallback = Callable[[], Awaitable[None]]


@runtime_checkable
class SchedulerBackend(Protocol):
    """Timing backend: calls the tick callback at a fixed interval."""

    name: str

    def start(
        self,
        tick_callback: TickCallback,
        interval_seconds: float = 30.0,
    ) -> None:
        """Start the scheduler loop."""
        ...

    def stop(self) -> None:
        """Stop the loop. In-flight ticks get a grace period, then are cancelled."""
        ...

    def health(self) -> dict[str, Any]:
        """Return at least ``healthy``, ``backend``, ``tick_count`` and ``last_tick``."""
        ...

    @property
    def is_running(self) -> bool: ...


@dataclass
class BackendHealth:
    """Structured backend health response."""

    healthy: bool
    backend: str
    tick_count: int = 0
    last_tick: datetime | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "healthy": self.healthy,
            "backend": self.backend,
            "tick_count": self.tick_count,
            "last_tick": self.last_tick.isoformat() if self.last_tick else None,
            **self.extra,
        }
