"""Task types backed by a workflow engine.

A cron-fired workflow goes through the same run lifecycle as an on-demand
one: the handler calls ``engine.execute`` (or ``execute_with_retry``),
which registers its own run, so the executor does not wrap it again.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from waypoint.execution.retry import RetryPolicy
from waypoint.workflows.engine import WorkflowEngine

from .models import ConfigField, TaskDefinition

InputFactory = Callable[[dict[str, Any] | None], Any]


def workflow_task_definition(
    engine: WorkflowEngine[Any, Any],
    task_type: str,
    name: str,
    description: str,
    default_cron: str,
    input_factory: InputFactory | None = None,
    *,
    policy: RetryPolicy | None = None,
    config_schema: list[ConfigField] | None = None,
) -> TaskDefinition:
    """Build a :class:`TaskDefinition` whose handler executes ``engine``.

    Args:
        engine: Engine wrapping the workflow to fire
        task_type: Task type key
        name: Human-readable name
        description: What the task does
        default_cron: Schedule used by ``ensure_default_task``
        input_factory: Maps the task's ``config`` to workflow input
            (the config itself is passed when omitted)
        policy: Retry policy; a single attempt when omitted
        config_schema: Optional configuration form fields
    """

    async def _execute(config: dict[str, Any] | None) -> Any:
        workflow_input = input_factory(config) if input_factory else config
        if policy is not None:
            return await engine.execute_with_retry(workflow_input, policy)
        return await engine.execute(workflow_input)

    return TaskDefinition(
        type=task_type,
        name=name,
        description=description,
        execute=_execute,
        default_cron=default_cron,
        config_schema=list(config_schema or []),
        record_run=False,
    )
