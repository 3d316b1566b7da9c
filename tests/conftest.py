"""
Shared pytest fixtures and configuration for waypoint tests.

This module provides:
- Auto-marking of tests (unit / integration)
- Settings cache isolation
- Run registry, provider and clock fixtures

Usage:
    Fixtures are auto-discovered by pytest:

    def test_something(run_registry, mock_provider):
        ...
"""

from collections.abc import Generator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from waypoint.agents.mock import MockAgentProvider
from waypoint.agents.protocol import DoneEvent
from waypoint.core.config import clear_settings_cache
from waypoint.runs.checkpoint import FileCheckpointStore
from waypoint.runs.registry import RunRegistry


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)

        if "cli" in test_path.parts or test_path.name == "test_runtime.py":
            item.add_marker(pytest.mark.integration)

        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "slow"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def clean_settings_cache() -> Generator[None, None, None]:
    """Never leak a cached WaypointSettings between tests."""
    clear_settings_cache()
    yield
    clear_settings_cache()


# =============================================================================
# Core fixtures
# =============================================================================


@pytest.fixture
def runs_dir(tmp_path: Path) -> Path:
    return tmp_path / "runs"


@pytest.fixture
def checkpoint_store(runs_dir: Path) -> FileCheckpointStore:
    return FileCheckpointStore(runs_dir)


@pytest.fixture
def run_registry(checkpoint_store: FileCheckpointStore) -> RunRegistry:
    return RunRegistry(checkpoint_store)


@pytest.fixture
def mock_provider() -> MockAgentProvider:
    return MockAgentProvider(default_script=[DoneEvent(result="ok", session_id="sess-1")])


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 1, 15, 5, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
