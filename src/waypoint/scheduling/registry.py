"""Task type registry: maps ``task_type`` keys to their definitions."""

from __future__ import annotations

from waypoint.core.logging import get_logger

from .models import TaskDefinition

logger = get_logger(__name__)


class TaskRegistry:
    """In-memory map of task type to :class:`TaskDefinition`.

    Registering a type that already exists replaces it and logs a warning.
    """

    def __init__(self) -> None:
        self._definitions: dict[str, TaskDefinition] = {}

    def register(self, definition: TaskDefinition) -> None:
        if definition.type in self._definitions:
            logger.warning("task_registry.overwrite", task_type=definition.type)
        self._definitions[definition.type] = definition
        logger.debug("task_registry.registered", task_type=definition.type)

    def unregister(self, task_type: str) -> bool:
        return self._definitions.pop(task_type, None) is not None

    def get(self, task_type: str) -> TaskDefinition | None:
        return self._definitions.get(task_type)

    def has(self, task_type: str) -> bool:
        return task_type in self._definitions

    def list(self) -> list[TaskDefinition]:
        return list(self._definitions.values())

    def types(self) -> list[str]:
        return list(self._definitions)

    def clear(self) -> None:
        self._definitions.clear()

    def __contains__(self, task_type: object) -> bool:
        return task_type in self._definitions

    def __len__(self) -> int:
        return len(self._definitions)
