"""
Social-post generation workflow.

Turns a news article into candidate posts by driving an agent through
compose, evaluate and refine skills, picks the best candidate, and submits
it for human approval.

Phases::

    analyzing → generating → [evaluating] → [refining] → selecting
              → pending_approval → completed

``pending_approval`` is checkpointed together with the generated posts
*before* the approval request is submitted. A crash between the two
leaves the run in ``pending_approval``, which recovery reports as
interrupted instead of resubmitting.

Triggers for the same article are deduplicated by
:class:`PostGenerationService` with the idempotency key
``(article.id, "create-post")``.
"""

from __future__ import annotations

import re
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from waypoint.agents.protocol import AgentEvent, ToolStartEvent
from waypoint.core.errors import ValidationError, WorkflowError
from waypoint.core.logging import get_logger
from waypoint.execution.idempotency import IdempotencyManager
from waypoint.execution.retry import RetryPolicy

from .approval import ApprovalRequest, ApprovalSink, InMemoryApprovalSink
from .engine import AgentDefinition, RunContext, WorkflowEngine

logger = get_logger(__name__)

AGENT_NAME = "post-generation-agent"
CREATE_POST_OPERATION = "create-post"
FALLBACK_SCORE = 60
MAX_ARTICLE_CHARS = 2000

_JSON_BLOCK = re.compile(r"```json\s*([\s\S]*?)\s*```")

POST_AGENT = AgentDefinition(
    prompt=(
        "You write short social posts about technology news. Use the compose "
        "skill to draft, the evaluate skill to score drafts, and the refine "
        "skill to improve the best ones."
    ),
    tools=["Skill", "Read", "WebFetch"],
    description="Post composition, evaluation and refinement",
)


# ── Models ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class Article:
    """Source article a post is generated from."""

    id: str
    title: str
    url: str
    content: str
    summary: str | None = None

    def __post_init__(self) -> None:
        if not self.id:
            raise ValidationError("article id must not be empty", field_name="id")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Article:
        return cls(
            id=str(data.get("id", "")),
            title=str(data.get("title", "")),
            url=str(data.get("url", "")),
            content=str(data.get("content", "")),
            summary=data.get("summary"),
        )


class GeneratedPost(BaseModel):
    id: str
    text: str
    score: float | None = None


class PostBatch(BaseModel):
    """Shape of the JSON block the agent is asked to emit."""

    posts: list[GeneratedPost] = Field(min_length=1)
    best_post_id: str | None = Field(default=None, alias="bestPostId")

    def best(self) -> GeneratedPost:
        for post in self.posts:
            if post.id == self.best_post_id:
                return post
        return self.posts[0]


@dataclass
class PostGenerationResult:
    run_id: str
    posts: list[GeneratedPost] = field(default_factory=list)
    best_post: GeneratedPost | None = None
    approval_id: str | None = None
    used_fallback: bool = False


def parse_post_batch(final_result: str) -> PostBatch | None:
    """Extract the fenced ```json block from the agent's answer.

    Returns None when the block is missing or does not match :class:`PostBatch`.
    """
    match = _JSON_BLOCK.search(final_result or "")
    if not match:
        return None
    try:
        return PostBatch.model_validate_json(match.group(1))
    except PydanticValidationError:
        return None


def fallback_post(article: Article) -> GeneratedPost:
    return GeneratedPost(
        id=f"post_{int(time.time() * 1000)}_1",
        text=f"【{article.title}】\n\nKey points summarized.\n\nDetails in the replies.",
        score=FALLBACK_SCORE,
    )


# ── Workflow ─────────────────────────────────────────────────────


class PostGenerationWorkflow:
    agent_name = AGENT_NAME

    def __init__(
        self,
        approvals: ApprovalSink | None = None,
        agent: AgentDefinition = POST_AGENT,
        platform: str = "x",
    ):
        self.approvals = approvals if approvals is not None else InMemoryApprovalSink()
        self.agent = agent
        self.platform = platform

    def init_checkpoint(self, input: Article) -> dict[str, Any]:
        return {"article_id": input.id, "phase": "analyzing", "refinement_count": 0}

    async def run(self, ctx: RunContext, input: Article) -> PostGenerationResult:
        ctx.update_phase("generating")

        refinements = 0

        def track_skills(event: AgentEvent) -> None:
            nonlocal refinements
            if not isinstance(event, ToolStartEvent) or event.tool != "Skill":
                return
            skill_arg = str(event.input or "")
            if "evaluate" in skill_arg:
                ctx.update_phase("evaluating")
            elif "refine" in skill_arg:
                refinements += 1
                ctx.update_phase("refining", refinement_count=refinements)

        outcome = await ctx.run_agent(self._prompt(input), self.agent, on_event=track_skills)
        if outcome.cancelled:
            raise WorkflowError(f"Post generation cancelled: {outcome.cancel_reason}")

        ctx.update_phase("selecting")
        batch = parse_post_batch(outcome.final_result)
        used_fallback = batch is None
        if batch is None:
            logger.warning("posts.parse_failed", article_id=input.id)
            post = fallback_post(input)
            batch = PostBatch(posts=[post], bestPostId=post.id)
        best = batch.best()

        ctx.update_phase(
            "pending_approval",
            generated_posts=[p.model_dump() for p in batch.posts],
            best_post_id=best.id,
        )
        approval_id = self.approvals.submit(
            ApprovalRequest(
                platform=self.platform,
                content={"text": best.text},
                prompt=f"Generated from article \"{input.title}\""
                + (" (fallback)" if used_fallback else ""),
                metadata={
                    "run_id": ctx.run_id,
                    "article_id": input.id,
                    "article_title": input.title,
                    "score": best.score,
                    "all_posts": [p.model_dump() for p in batch.posts],
                },
            )
        )
        ctx.update_phase("completed", approval_id=approval_id)

        return PostGenerationResult(
            run_id=ctx.run_id,
            posts=list(batch.posts),
            best_post=best,
            approval_id=approval_id,
            used_fallback=used_fallback,
        )

    def _prompt(self, article: Article) -> str:
        body = article.content[:MAX_ARTICLE_CHARS]
        if len(article.content) > MAX_ARTICLE_CHARS:
            body += "..."
        summary = f"Summary: {article.summary}\n" if article.summary else ""
        return (
            "Use the compose skill to write five post candidates for the article "
            "below. Score them with the evaluate skill and keep the top three, "
            "then improve each with the refine skill.\n\n"
            "## Article\n"
            f"Title: {article.title}\n"
            f"URL: {article.url}\n"
            f"{summary}\n"
            f"{body}\n\n"
            "## Output\n"
            "Finish with a JSON block:\n"
            "```json\n"
            '{"posts": [{"id": "post_1", "text": "...", "score": 85}], "bestPostId": "post_1"}\n'
            "```"
        )


class PostGenerationService:
    """Public entry point that deduplicates triggers per article."""

    def __init__(self, engine: WorkflowEngine[Article, PostGenerationResult], idempotency: IdempotencyManager):
        self.engine = engine
        self.idempotency = idempotency

    async def create_post_for_article(
        self, article: Article, policy: RetryPolicy | None = None
    ) -> PostGenerationResult:
        """Generate posts for ``article`` at most once.

        A repeat trigger after success returns the cached result. A trigger
        arriving while another is still running raises
        :class:`~waypoint.core.errors.ExecutionInProgressError`. Failures
        release the key so a later trigger can try again.
        """
        key = self.idempotency.generate_key(article.id, CREATE_POST_OPERATION)

        async def _generate() -> PostGenerationResult:
            if policy is None:
                return await self.engine.execute(article)
            return await self.engine.execute_with_retry(article, policy)

        return await self.idempotency.run_once(key, _generate)
