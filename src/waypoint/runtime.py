"""
Runtime - wires settings into stores, registries, engines and the scheduler.

Startup order::

    settings
      └─► checkpoint store (file | sqlite)
            └─► RunRegistry.load_from_store()
                  ├─► IdempotencyManager(ttl)
                  ├─► ScheduleStore(db, legacy paths)  (migrate + dedupe)
                  │     └─► SchedulerManager(run_registry)
                  └─► register_workflow(...) per workflow
                        └─► recover()  (per-engine pending-run reconciliation)

The scheduler is never started implicitly; call ``runtime.scheduler.start()``.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from waypoint.agents.protocol import AgentProvider
from waypoint.core.config import CheckpointBackend, WaypointSettings, get_settings
from waypoint.core.errors import ConfigError
from waypoint.core.logging import get_logger
from waypoint.execution.idempotency import IdempotencyManager
from waypoint.runs.checkpoint import CheckpointStore, FileCheckpointStore, SQLiteCheckpointStore
from waypoint.runs.registry import RunRegistry
from waypoint.scheduling.manager import SchedulerManager
from waypoint.scheduling.models import ConfigField
from waypoint.scheduling.store import ScheduleStore
from waypoint.scheduling.workflow_tasks import workflow_task_definition
from waypoint.workflows.engine import LifecycleHooks, RecoveryReport, Workflow, WorkflowEngine
from waypoint.workflows.posts import PostGenerationService, PostGenerationWorkflow
from waypoint.workflows.research import ResearchInput, ResearchWorkflow

logger = get_logger(__name__)

RESEARCH_TASK_TYPE = "research"


@dataclass
class Runtime:
    """Everything a process needs to execute and schedule workflows."""

    settings: WaypointSettings
    checkpoint_store: CheckpointStore
    run_registry: RunRegistry
    idempotency: IdempotencyManager
    schedule_store: ScheduleStore
    scheduler: SchedulerManager
    provider: AgentProvider | None = None
    engines: dict[str, WorkflowEngine[Any, Any]] = field(default_factory=dict)

    def register_workflow(
        self,
        workflow: Workflow[Any, Any],
        hooks: LifecycleHooks | None = None,
        provider: AgentProvider | None = None,
    ) -> WorkflowEngine[Any, Any]:
        """Build an engine for ``workflow`` sharing this runtime's registry."""
        engine: WorkflowEngine[Any, Any] = WorkflowEngine(
            workflow,
            self.run_registry,
            provider=provider or self.provider,
            hooks=hooks,
            default_max_turns=self.settings.agent_max_turns,
            default_permission_mode=self.settings.agent_permission_mode,  # type: ignore[arg-type]
        )
        if engine.agent_name in self.engines:
            logger.warning("runtime.engine_replaced", agent_name=engine.agent_name)
        self.engines[engine.agent_name] = engine
        return engine

    def engine(self, agent_name: str) -> WorkflowEngine[Any, Any]:
        try:
            return self.engines[agent_name]
        except KeyError:
            raise ConfigError(f"No workflow registered for agent '{agent_name}'") from None

    def post_service(self, agent_name: str = PostGenerationWorkflow.agent_name) -> PostGenerationService:
        return PostGenerationService(self.engine(agent_name), self.idempotency)

    def recover(self) -> dict[str, RecoveryReport]:
        """Run the pending-run reconciliation for every registered engine."""
        reports = {name: engine.recover_pending_runs() for name, engine in self.engines.items()}
        recovered = sum(len(r.recovered) for r in reports.values())
        interrupted = sum(len(r.interrupted) for r in reports.values())
        logger.info("runtime.recovered", recovered=recovered, interrupted=interrupted)
        return reports

    def close(self) -> None:
        self.scheduler.stop()
        self.schedule_store.close()
        close = getattr(self.checkpoint_store, "close", None)
        if close is not None:
            close()


def build_checkpoint_store(settings: WaypointSettings) -> CheckpointStore:
    if settings.checkpoint_backend is CheckpointBackend.SQLITE:
        return SQLiteCheckpointStore(settings.resolved_database_path)
    return FileCheckpointStore(settings.resolved_runs_dir)


def create_runtime(
    settings: WaypointSettings | None = None,
    *,
    provider: AgentProvider | None = None,
    workflows: Iterable[Workflow[Any, Any]] | None = None,
    recover: bool = True,
) -> Runtime:
    """Build a :class:`Runtime` from settings.

    Args:
        settings: Configuration (``get_settings()`` by default)
        provider: Agent provider shared by every engine
        workflows: Workflows to register; the research and post workflows
            when omitted
        recover: Run startup recovery after registering workflows
    """
    settings = settings or get_settings()

    checkpoint_store = build_checkpoint_store(settings)
    run_registry = RunRegistry(checkpoint_store)
    run_registry.load_from_store()

    schedule_store = ScheduleStore(
        settings.resolved_database_path,
        legacy_paths=settings.legacy_schedule_paths,
    )
    scheduler = SchedulerManager(
        schedule_store,
        run_registry=run_registry,
        interval_seconds=settings.scheduler_interval_seconds,
    )

    runtime = Runtime(
        settings=settings,
        checkpoint_store=checkpoint_store,
        run_registry=run_registry,
        idempotency=IdempotencyManager(settings.idempotency_ttl_seconds),
        schedule_store=schedule_store,
        scheduler=scheduler,
        provider=provider,
    )

    if workflows is None:
        workflows = [
            ResearchWorkflow(output_root=settings.resolved_data_dir),
            PostGenerationWorkflow(),
        ]
    for workflow in workflows:
        runtime.register_workflow(workflow)

    research = runtime.engines.get(ResearchWorkflow.agent_name)
    if research is not None:
        scheduler.register_task_type(
            workflow_task_definition(
                research,
                RESEARCH_TASK_TYPE,
                "Topic research",
                "Research a topic and write a markdown report",
                "0 6 * * *",
                lambda config: ResearchInput.from_mapping(config or {}),
                config_schema=[
                    ConfigField(key="topic", label="Topic", required=True),
                    ConfigField(
                        key="depth",
                        label="Depth",
                        type="select",
                        options=[("quick", "Quick"), ("normal", "Normal"), ("deep", "Deep")],
                        default_value="normal",
                    ),
                    ConfigField(
                        key="language",
                        label="Language",
                        type="select",
                        options=[("ja", "Japanese"), ("en", "English")],
                        default_value="ja",
                    ),
                ],
            )
        )

    if recover:
        runtime.recover()
    return runtime
