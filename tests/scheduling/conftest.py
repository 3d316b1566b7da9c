"""Fixtures shared by the scheduling tests."""

import sqlite3

import pytest

from waypoint.scheduling.models import TaskDefinition
from waypoint.scheduling.registry import TaskRegistry
from waypoint.scheduling.store import ScheduleStore


@pytest.fixture
def schedule_store(clock):
    store = ScheduleStore(sqlite3.connect(":memory:"), clock=clock)
    yield store
    store.close()


@pytest.fixture
def handler_calls() -> list:
    return []


@pytest.fixture
def news_definition(handler_calls) -> TaskDefinition:
    def collect(config):
        handler_calls.append(config)
        return {"articles": 3}

    return TaskDefinition(
        type="news",
        name="News digest",
        description="Collect and summarise news",
        execute=collect,
        default_cron="0 6 * * *",
    )


@pytest.fixture
def task_registry(news_definition) -> TaskRegistry:
    registry = TaskRegistry()
    registry.register(news_definition)
    return registry

