"""Content-research workflow.

Collects search queries for a topic, drives the research agent through
analysis (and an optional deep pass), then writes a markdown report.

Phases::

    collecting → analyzing → [deep-analyzing] → generating → completed

The report path is checkpointed in ``generating`` before the file is
written, so an interrupted run always says where its output would land.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Literal

from waypoint.core.errors import ValidationError, WorkflowError
from waypoint.core.logging import get_logger
from waypoint.core.timestamps import utc_now

from .engine import AgentDefinition, RunContext

logger = get_logger(__name__)

AGENT_NAME = "research-agent"

Depth = Literal["quick", "normal", "deep"]
Language = Literal["ja", "en"]

_QUERY_SUFFIXES: dict[str, tuple[str, ...]] = {
    "ja": ("最新", "トレンド", "解説"),
    "en": ("latest", "trends", "explained"),
}

# Keep ASCII alphanumerics plus hiragana, katakana and CJK ideographs.
_UNSAFE_TOPIC_CHARS = re.compile(r"[^a-zA-Z0-9\u3040-\u309F\u30A0-\u30FF\u4E00-\u9FAF]")

RESEARCH_AGENT = AgentDefinition(
    prompt=(
        "You are a research analyst. Search the web for the given queries, "
        "judge the reliability of each source, and synthesize the findings "
        "into a structured markdown report with citations."
    ),
    tools=["WebSearch", "WebFetch", "Read", "Write"],
    description="Web research and report synthesis",
)


@dataclass(frozen=True)
class ResearchInput:
    """What to research."""

    topic: str
    depth: Depth = "normal"
    language: Language = "ja"

    def __post_init__(self) -> None:
        if not self.topic.strip():
            raise ValidationError("topic must not be empty", field_name="topic")
        if self.depth not in ("quick", "normal", "deep"):
            raise ValidationError(f"Unknown depth: {self.depth}", field_name="depth")
        if self.language not in _QUERY_SUFFIXES:
            raise ValidationError(f"Unknown language: {self.language}", field_name="language")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ResearchInput:
        return cls(
            topic=str(data.get("topic", "")),
            depth=data.get("depth", "normal"),
            language=data.get("language", "ja"),
        )


@dataclass
class ResearchResult:
    run_id: str
    output_path: str
    search_queries: list[str] = field(default_factory=list)
    source_count: int = 0
    total_turns: int = 0


def generate_search_queries(topic: str, language: str) -> list[str]:
    """The topic itself plus three language-specific variations."""
    return [topic] + [f"{topic} {suffix}" for suffix in _QUERY_SUFFIXES[language]]


def report_path(topic: str, when: datetime | None = None) -> str:
    """``agent-output/research-YYYYMMDD-<safe topic>/report.md``"""
    date_str = (when or utc_now()).strftime("%Y%m%d")
    safe_topic = _UNSAFE_TOPIC_CHARS.sub("-", topic)[:30]
    return f"agent-output/research-{date_str}-{safe_topic}/report.md"


class ResearchWorkflow:
    """Research a topic and write a report under ``output_root``."""

    agent_name = AGENT_NAME

    def __init__(self, output_root: str | Path = ".", agent: AgentDefinition = RESEARCH_AGENT):
        self.output_root = Path(output_root)
        self.agent = agent

    def init_checkpoint(self, input: ResearchInput) -> dict[str, Any]:
        return {"topic": input.topic, "phase": "collecting"}

    async def run(self, ctx: RunContext, input: ResearchInput) -> ResearchResult:
        queries = generate_search_queries(input.topic, input.language)
        ctx.update_phase("collecting", search_queries=queries)

        ctx.update_phase("analyzing")
        analysis = await ctx.run_agent(self._analysis_prompt(input, queries), self.agent)
        if analysis.cancelled:
            raise WorkflowError(f"Research cancelled: {analysis.cancel_reason}")
        source_count = len(analysis.tool_results)
        total_turns = analysis.total_turns

        findings = analysis.final_result
        if input.depth == "deep":
            ctx.update_phase("deep-analyzing")
            deep = await ctx.run_agent(
                "Go deeper: verify the weakest claims in your analysis, find primary "
                "sources for them, and extend the findings.",
                self.agent,
            )
            if deep.cancelled:
                raise WorkflowError(f"Research cancelled: {deep.cancel_reason}")
            source_count += len(deep.tool_results)
            total_turns += deep.total_turns
            findings = deep.final_result or findings

        output_path = report_path(input.topic)
        ctx.update_phase("generating", output_path=output_path)
        self._write_report(output_path, input, queries, findings)

        ctx.update_phase("completed", output_path=output_path, source_count=source_count)
        logger.info("research.report_written", output_path=output_path, sources=source_count)

        return ResearchResult(
            run_id=ctx.run_id,
            output_path=output_path,
            search_queries=queries,
            source_count=source_count,
            total_turns=total_turns,
        )

    def _analysis_prompt(self, input: ResearchInput, queries: list[str]) -> str:
        lines = [
            f"Research topic: {input.topic}",
            f"Depth: {input.depth}",
            f"Report language: {input.language}",
            "",
            "Search queries:",
            *[f"- {q}" for q in queries],
            "",
            "Collect sources, rate their reliability (high/medium/low), and "
            "return the analysis as markdown.",
        ]
        return "\n".join(lines)

    def _write_report(
        self, output_path: str, input: ResearchInput, queries: list[str], findings: str
    ) -> None:
        path = self.output_root / output_path
        path.parent.mkdir(parents=True, exist_ok=True)
        body = [
            f"# {input.topic}",
            "",
            f"_Generated {utc_now().isoformat()} · depth: {input.depth}_",
            "",
            "## Queries",
            *[f"- {q}" for q in queries],
            "",
            "## Findings",
            findings or "(no findings returned)",
            "",
        ]
        path.write_text("\n".join(body), encoding="utf-8")
