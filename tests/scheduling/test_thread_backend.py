"""Tests for ThreadSchedulerBackend."""

import asyncio
import threading
import time

from waypoint.scheduling.protocol import BackendHealth, SchedulerBackend
from waypoint.scheduling.thread_backend import ThreadSchedulerBackend


def _wait_for(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


class TestThreadSchedulerBackend:
    def test_satisfies_protocol(self):
        assert isinstance(ThreadSchedulerBackend(), SchedulerBackend)

    def test_ticks_until_stopped(self):
        calls = []

        async def tick():
            calls.append(threading.current_thread().name)

        backend = ThreadSchedulerBackend()
        backend.start(tick, interval_seconds=0.01)
        try:
            assert _wait_for(lambda: len(calls) >= 2)
            assert backend.is_running
        finally:
            backend.stop()

        assert not backend.is_running
        assert set(calls) == {"waypoint-scheduler"}
        settled = len(calls)
        time.sleep(0.05)
        assert len(calls) == settled

    def test_failing_tick_keeps_loop_alive(self):
        attempts = []

        async def tick():
            attempts.append(1)
            raise RuntimeError("tick failed")

        backend = ThreadSchedulerBackend()
        backend.start(tick, interval_seconds=0.01)
        try:
            assert _wait_for(lambda: len(attempts) >= 3)
        finally:
            backend.stop()

    def test_hung_tick_does_not_block_later_ticks(self):
        calls = []
        cancelled = threading.Event()

        async def tick():
            calls.append(len(calls))
            if len(calls) == 1:
                try:
                    await asyncio.sleep(60)
                except asyncio.CancelledError:
                    cancelled.set()
                    raise

        backend = ThreadSchedulerBackend(drain_timeout=0.05)
        backend.start(tick, interval_seconds=0.01)
        try:
            assert _wait_for(lambda: len(calls) >= 3)
            assert backend.health()["ticks_in_flight"] >= 1
        finally:
            backend.stop()

        assert cancelled.is_set()
        assert not backend.is_running

    def test_stop_lets_in_flight_tick_finish(self):
        finished = threading.Event()
        started = threading.Event()

        async def tick():
            started.set()
            await asyncio.sleep(0.05)
            finished.set()

        backend = ThreadSchedulerBackend(drain_timeout=5.0)
        backend.start(tick, interval_seconds=0.01)
        assert started.wait(timeout=5)
        backend.stop()

        assert finished.is_set()

    def test_start_twice_is_ignored(self):
        async def tick():
            pass

        backend = ThreadSchedulerBackend()
        backend.start(tick, interval_seconds=10)
        first_thread = backend._thread
        backend.start(tick, interval_seconds=10)
        assert backend._thread is first_thread
        backend.stop()

    def test_stop_without_start(self):
        ThreadSchedulerBackend().stop()

    def test_health(self):
        async def tick():
            pass

        backend = ThreadSchedulerBackend()
        assert backend.health()["healthy"] is False

        backend.start(tick, interval_seconds=0.01)
        try:
            assert _wait_for(lambda: backend.tick_count >= 1)
            health = backend.health()
        finally:
            backend.stop()

        assert health["healthy"] is True
        assert health["backend"] == "thread"
        assert health["tick_count"] >= 1
        assert health["last_tick"] is not None
        assert health["interval_seconds"] == 0.01


def test_backend_health_to_dict():
    assert BackendHealth(healthy=True, backend="x").to_dict() == {
        "healthy": True,
        "backend": "x",
        "tick_count": 0,
        "last_tick": None,
    }
