"""Daemon-thread scheduler backend with one long-lived event loop.

┌──────────────────────────────────────────────────────────────────────────────┐
│  ThreadSchedulerBackend                                                      │
│                                                                              │
│   start(tick, interval)                                                      │
│      └─► daemon thread "waypoint-scheduler": asyncio.run(_serve())           │
│             every interval:                                                  │
│                 spawn tick() as a task on the same loop   (never awaited)    │
│                                                                              │
│   stop()                                                                     │
│      └─► wake the loop ─► drain in-flight ticks (drain_timeout)              │
│                         ─► cancel the rest ─► thread.join(join_timeout)      │
│                                                                              │
│  Ticks may overlap. A slow firing keeps its own tick alive while later       │
│  ticks keep coming; SchedulerManager skips tasks that are still in flight.   │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import asyncio
import threading
from datetime import datetime
from typing import Any

from waypoint.core.logging import get_logger
from waypoint.core.timestamps import utc_now

from .protocol import BackendHealth, TickCallback

logger = get_logger(__name__)


class ThreadSchedulerBackend:
    """Runs the tick callback on a background event loop.

    Example:
        >>> backend = ThreadSchedulerBackend()
        >>> backend.start(manager.tick, interval_seconds=30.0)
        >>> backend.stop()
    """

    name = "thread"

    def __init__(self, drain_timeout: float = 5.0, join_timeout: float = 10.0) -> None:
        """
        Args:
            drain_timeout: Seconds ``stop`` lets in-flight ticks finish before cancelling them
            join_timeout: Seconds ``stop`` waits for the thread to exit
        """
        self._drain_timeout = drain_timeout
        self._join_timeout = join_timeout
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._wakeup: asyncio.Event | None = None
        self._ticks: set[asyncio.Future] = set()
        self._tick_count = 0
        self._last_tick: datetime | None = None
        self._interval = 30.0
        self._lock = threading.Lock()

    def start(self, tick_callback: TickCallback, interval_seconds: float = 30.0) -> None:
        if self._thread is not None:
            logger.warning("scheduler_backend.already_started", backend=self.name)
            return

        self._interval = interval_seconds
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=asyncio.run,
            args=(self._serve(tick_callback, interval_seconds),),
            daemon=True,
            name="waypoint-scheduler",
        )
        self._thread.start()

    async def _serve(self, tick_callback: TickCallback, interval: float) -> None:
        self._loop = asyncio.get_running_loop()
        self._wakeup = asyncio.Event()
        logger.info("scheduler_backend.started", backend=self.name, interval_seconds=interval)

        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=interval)
            except TimeoutError:
                self._spawn(tick_callback)

        await self._drain()
        self._loop = None
        logger.info("scheduler_backend.stopped", backend=self.name)

    def _spawn(self, tick_callback: TickCallback) -> None:
        with self._lock:
            self._tick_count += 1
            self._last_tick = utc_now()
        tick = asyncio.ensure_future(tick_callback())
        self._ticks.add(tick)
        tick.add_done_callback(self._on_tick_done)

    def _on_tick_done(self, tick: asyncio.Future) -> None:
        self._ticks.discard(tick)
        if tick.cancelled():
            return
        error = tick.exception()
        if error is not None:
            logger.error("scheduler_backend.tick_failed", error=str(error), exc_info=error)

    async def _drain(self) -> None:
        if not self._ticks:
            return
        _, pending = await asyncio.wait(set(self._ticks), timeout=self._drain_timeout)
        if pending:
            logger.warning("scheduler_backend.cancelling_ticks", count=len(pending))
            for tick in pending:
                tick.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

    def stop(self) -> None:
        if self._thread is None:
            return

        self._stop_event.set()
        loop, wakeup = self._loop, self._wakeup
        if loop is not None and wakeup is not None:
            try:
                loop.call_soon_threadsafe(wakeup.set)
            except RuntimeError:
                pass  # loop already closed
        self._thread.join(timeout=self._join_timeout)
        if self._thread.is_alive():
            logger.warning("scheduler_backend.stop_timeout", backend=self.name)
        self._thread = None

    def health(self) -> dict[str, Any]:
        return self.get_health().to_dict()

    def get_health(self) -> BackendHealth:
        return BackendHealth(
            healthy=self.is_running,
            backend=self.name,
            tick_count=self._tick_count,
            last_tick=self._last_tick,
            extra={"interval_seconds": self._interval, "ticks_in_flight": len(self._ticks)},
        )

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def tick_count(self) -> int:
        return self._tick_count
