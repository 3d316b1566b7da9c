"""Tests for the content-research workflow."""

from datetime import UTC, datetime

import pytest

from waypoint.agents.mock import MockAgentProvider
from waypoint.agents.protocol import CancelledEvent, DoneEvent, ToolResultEvent, TurnCompleteEvent
from waypoint.core.errors import ValidationError, WorkflowError
from waypoint.runs.models import RunStatus
from waypoint.workflows.engine import WorkflowEngine
from waypoint.workflows.research import (
    AGENT_NAME,
    ResearchInput,
    ResearchWorkflow,
    generate_search_queries,
    report_path,
)


def _analysis_script(result: str, sources: int = 2, turns: int = 3) -> list:
    events: list = [
        ToolResultEvent(tool="WebSearch", result=f"source {i}", tool_use_id=f"t{i}")
        for i in range(sources)
    ]
    events.append(TurnCompleteEvent(turn_number=turns))
    events.append(DoneEvent(result=result, session_id="sess-r"))
    return events


@pytest.fixture
def engine(run_registry, tmp_path):
    return WorkflowEngine(
        ResearchWorkflow(output_root=tmp_path),
        run_registry,
        provider=MockAgentProvider(default_script=_analysis_script("## Findings\nRust is fast.")),
    )


class TestResearchInput:
    def test_defaults(self):
        data = ResearchInput(topic="WebGPU")
        assert data.depth == "normal"
        assert data.language == "ja"

    @pytest.mark.parametrize(
        "kwargs",
        [{"topic": "   "}, {"topic": "x", "depth": "extreme"}, {"topic": "x", "language": "fr"}],
    )
    def test_invalid(self, kwargs):
        with pytest.raises(ValidationError):
            ResearchInput(**kwargs)

    def test_from_mapping(self):
        data = ResearchInput.from_mapping({"topic": "rust", "depth": "deep", "language": "en"})
        assert data == ResearchInput(topic="rust", depth="deep", language="en")


class TestHelpers:
    def test_search_queries_en(self):
        assert generate_search_queries("rust", "en") == [
            "rust",
            "rust latest",
            "rust trends",
            "rust explained",
        ]

    def test_search_queries_ja(self):
        queries = generate_search_queries("量子", "ja")
        assert queries[0] == "量子"
        assert queries[1] == "量子 最新"
        assert len(queries) == 4

    def test_report_path_sanitizes_topic(self):
        when = datetime(2025, 1, 15, tzinfo=UTC)
        assert report_path("Rust & WebGPU!", when) == (
            "agent-output/research-20250115-Rust---WebGPU-/report.md"
        )

    def test_report_path_keeps_japanese(self):
        when = datetime(2025, 1, 15, tzinfo=UTC)
        assert report_path("量子コンピュータ", when) == (
            "agent-output/research-20250115-量子コンピュータ/report.md"
        )

    def test_report_path_truncates(self):
        path = report_path("a" * 50, datetime(2025, 1, 15, tzinfo=UTC))
        assert path == f"agent-output/research-20250115-{'a' * 30}/report.md"


class TestResearchWorkflow:
    @pytest.mark.asyncio
    async def test_normal_run_writes_report(self, engine, run_registry, tmp_path):
        result = await engine.execute(ResearchInput(topic="rust", language="en"))

        assert result.source_count == 2
        assert result.total_turns == 3
        assert result.search_queries[0] == "rust"

        report = (tmp_path / result.output_path).read_text(encoding="utf-8")
        assert report.startswith("# rust")
        assert "Rust is fast." in report
        assert "- rust latest" in report

        run = run_registry.get(result.run_id)
        assert run.agent_name == AGENT_NAME
        assert run.status is RunStatus.COMPLETED
        assert run.session_id == "sess-r"
        assert run.checkpoint["phase"] == "completed"
        assert run.checkpoint["output_path"] == result.output_path
        assert run.checkpoint["source_count"] == 2
        assert run.checkpoint["search_queries"] == result.search_queries
        assert len(run.tool_calls) == 2

    @pytest.mark.asyncio
    async def test_deep_run_makes_second_pass(self, run_registry, tmp_path):
        provider = MockAgentProvider(
            scripts=[
                _analysis_script("first pass", sources=1, turns=2),
                _analysis_script("deeper findings", sources=3, turns=4),
            ]
        )
        engine = WorkflowEngine(ResearchWorkflow(output_root=tmp_path), run_registry, provider=provider)

        result = await engine.execute(ResearchInput(topic="rust", depth="deep"))

        assert provider.call_count == 2
        assert provider.calls[1]["options"].resume == "sess-r"
        assert result.source_count == 4
        assert result.total_turns == 6
        assert "deeper findings" in (tmp_path / result.output_path).read_text(encoding="utf-8")

    @pytest.mark.asyncio
    async def test_empty_findings_placeholder(self, run_registry, tmp_path):
        engine = WorkflowEngine(
            ResearchWorkflow(output_root=tmp_path),
            run_registry,
            provider=MockAgentProvider(default_script=[DoneEvent(result="")]),
        )
        result = await engine.execute(ResearchInput(topic="rust"))
        assert "(no findings returned)" in (tmp_path / result.output_path).read_text(encoding="utf-8")

    @pytest.mark.asyncio
    async def test_cancelled_agent_fails_run(self, run_registry, tmp_path):
        engine = WorkflowEngine(
            ResearchWorkflow(output_root=tmp_path),
            run_registry,
            provider=MockAgentProvider(default_script=[CancelledEvent(reason="user abort")]),
        )

        with pytest.raises(WorkflowError, match="user abort"):
            await engine.execute(ResearchInput(topic="rust"))

        (run,) = run_registry.list_runs()
        assert run.status is RunStatus.FAILED
        assert run.phase == "analyzing"
        assert not (tmp_path / "agent-output").exists()
