"""Integration tests for create_runtime wiring."""

import pytest

from waypoint.agents.mock import MockAgentProvider
from waypoint.agents.protocol import DoneEvent
from waypoint.core.config import CheckpointBackend, WaypointSettings
from waypoint.core.errors import ConfigError
from waypoint.runs.checkpoint import FileCheckpointStore, SQLiteCheckpointStore
from waypoint.runs.models import RunStatus
from waypoint.runs.registry import RunRegistry
from waypoint.runtime import RESEARCH_TASK_TYPE, create_runtime
from waypoint.workflows.posts import Article, PostGenerationWorkflow
from waypoint.workflows.research import ResearchWorkflow


@pytest.fixture
def settings(tmp_path) -> WaypointSettings:
    return WaypointSettings(_env_file=None, data_dir=tmp_path, legacy_schedule_paths=[])


@pytest.fixture
def runtime(settings, mock_provider):
    rt = create_runtime(settings, provider=mock_provider)
    yield rt
    rt.close()


class TestCreateRuntime:
    def test_default_wiring(self, runtime, settings, tmp_path):
        assert sorted(runtime.engines) == ["post-generation-agent", "research-agent"]
        assert isinstance(runtime.checkpoint_store, FileCheckpointStore)
        assert runtime.checkpoint_store.runs_dir == tmp_path / "runs"
        assert runtime.schedule_store.db_path == tmp_path / "waypoint.db"
        assert runtime.idempotency.ttl_seconds == 86400.0
        assert runtime.scheduler.interval == 30.0
        assert runtime.scheduler.is_running is False
        assert runtime.engine("research-agent").default_max_turns == 15

    def test_research_task_type_registered(self, runtime):
        definition = runtime.scheduler.registry.get(RESEARCH_TASK_TYPE)
        assert definition.default_cron == "0 6 * * *"
        assert [f.key for f in definition.config_schema] == ["topic", "depth", "language"]
        assert definition.record_run is False

    def test_unknown_engine(self, runtime):
        with pytest.raises(ConfigError):
            runtime.engine("nobody")

    def test_custom_workflows(self, settings):
        runtime = create_runtime(settings, workflows=[PostGenerationWorkflow()])
        try:
            assert list(runtime.engines) == ["post-generation-agent"]
            assert runtime.scheduler.registry.get(RESEARCH_TASK_TYPE) is None
        finally:
            runtime.close()

    def test_register_workflow_replaces(self, runtime):
        replacement = ResearchWorkflow(output_root="/tmp/elsewhere")
        engine = runtime.register_workflow(replacement)
        assert runtime.engine("research-agent") is engine
        assert engine.workflow is replacement

    def test_sqlite_backend(self, tmp_path):
        settings = WaypointSettings(
            _env_file=None,
            data_dir=tmp_path,
            legacy_schedule_paths=[],
            checkpoint_backend=CheckpointBackend.SQLITE,
        )
        runtime = create_runtime(settings)
        try:
            assert isinstance(runtime.checkpoint_store, SQLiteCheckpointStore)
            run = runtime.run_registry.start("research-agent", {"topic": "rust"})
            assert runtime.checkpoint_store.load(run.id) is not None
        finally:
            runtime.close()


class TestRecoveryOnStartup:
    def test_completes_finished_runs(self, settings, tmp_path):
        registry = RunRegistry(FileCheckpointStore(tmp_path / "runs"))
        finished = registry.start("research-agent", {"topic": "rust"})
        registry.update_checkpoint(finished.id, {"phase": "completed"})
        stuck = registry.start("post-generation-agent", {"id": "a1"})
        registry.update_checkpoint(stuck.id, {"phase": "pending_approval"})

        runtime = create_runtime(settings)
        try:
            assert runtime.run_registry.get(finished.id).status is RunStatus.COMPLETED
            assert runtime.run_registry.get(stuck.id).status is RunStatus.RUNNING

            reports = runtime.recover()
            assert reports["research-agent"].recovered == []
            assert reports["post-generation-agent"].interrupted == [stuck.id]
        finally:
            runtime.close()

    def test_recovery_can_be_skipped(self, settings, tmp_path):
        registry = RunRegistry(FileCheckpointStore(tmp_path / "runs"))
        finished = registry.start("research-agent")
        registry.update_checkpoint(finished.id, {"phase": "completed"})

        runtime = create_runtime(settings, recover=False)
        try:
            assert runtime.run_registry.get(finished.id).status is RunStatus.RUNNING
        finally:
            runtime.close()


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_scheduled_research_run(self, runtime, tmp_path):
        task = runtime.scheduler.ensure_default_task(
            RESEARCH_TASK_TYPE, "Daily research", config={"topic": "rust", "language": "en"}
        )

        result = await runtime.scheduler.run_now(task.id)

        assert result.success is True
        (run,) = runtime.run_registry.list_runs()
        assert run.agent_name == "research-agent"
        assert run.status is RunStatus.COMPLETED
        assert (tmp_path / run.result["output_path"]).exists()
        assert runtime.scheduler.get(task.id).last_run_at is not None

    @pytest.mark.asyncio
    async def test_scheduled_research_without_topic_fails(self, runtime):
        task = runtime.scheduler.ensure_default_task(RESEARCH_TASK_TYPE, "Daily research")
        result = await runtime.scheduler.run_now(task.id)
        assert result.success is False
        assert "topic" in result.error

    @pytest.mark.asyncio
    async def test_post_service_is_idempotent(self, runtime):
        service = runtime.post_service()
        article = Article(id="a-1", title="News", url="https://example.com", content="Body")

        first = await service.create_post_for_article(article)
        second = await service.create_post_for_article(article)

        assert second is first
        assert first.used_fallback is True
        assert len(runtime.run_registry.get_by_agent("post-generation-agent")) == 1

    @pytest.mark.asyncio
    async def test_per_engine_provider_override(self, runtime):
        provider = MockAgentProvider(default_script=[DoneEvent(result="override")])
        engine = runtime.register_workflow(PostGenerationWorkflow(), provider=provider)
        await engine.execute(Article(id="a-2", title="t", url="u", content="c"))
        assert provider.call_count == 1
