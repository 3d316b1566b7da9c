"""
Workflow Engine - run lifecycle, retry and agent-stream reduction for any workflow.

Manifesto:
    Domain workflows should only describe their steps. Everything around
    the steps is identical for every workflow and lives here: registering
    the run, writing the initial checkpoint, recording completion or
    failure, retrying with backoff, reducing an agent event stream, and
    reconciling runs a crash left behind.

    The engine never wraps the errors a workflow raises. ``execute``
    records the message on the run and rethrows the original exception,
    so callers can match on the real cause.

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────────┐
        │                     WorkflowEngine.execute(input)                 │
        ├──────────────────────────────────────────────────────────────────┤
        │  registry.start(agent_name, input)                                │
        │  hooks.on_start(run_id, agent_name)                               │
        │  registry.update_checkpoint(run_id, workflow.init_checkpoint())   │
        │  try:                                                             │
        │      output = await workflow.run(RunContext, input)               │
        │      registry.complete(run_id, output); hooks.on_complete(...)    │
        │  except:                                                          │
        │      registry.fail(run_id, str(e)); hooks.on_fail(...); raise     │
        └──────────────────────────────────────────────────────────────────┘

        execute_with_retry(input, RetryPolicy)
            attempt 0 ──fail──► on_retry(1) ─ sleep(d·m⁰) ─► attempt 1 (fresh run) ...
            non-matching error or exhausted ──► raise last error

        RunContext.run_agent(prompt, AgentDefinition)
            provider.stream_agent_turn ──► tool_start     → log
                                          tool_result    → collect + record_tool_call
                                          turn_complete  → total_turns
                                          done           → final_result, session_id, usage
                                          cancelled      → stop consuming, return

Guardrails:
    ❌ DON'T: catch and wrap errors inside ``run`` just to add context
    ✅ DO: let them propagate; the engine records them on the run

    ❌ DON'T: perform an external effect before the checkpoint for its phase is written
    ✅ DO: ``await ctx.update_phase("publishing")`` first, then publish

Tags:
    workflow-engine, template-method, retry, backoff, lifecycle-hooks,
    agent-streaming, crash-recovery, waypoint

Doc-Types:
    - API Reference
    - Architecture Documentation
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Generic, Protocol, TypeVar, runtime_checkable

from waypoint.agents.protocol import (
    AgentChatOptions,
    AgentEvent,
    AgentProvider,
    CancelledEvent,
    DoneEvent,
    Message,
    PermissionMode,
    TokenUsage,
    ToolResultEvent,
    ToolStartEvent,
    TurnCompleteEvent,
)
from waypoint.core.errors import ProviderNotConfiguredError, WaypointError, categorize_error
from waypoint.core.logging import LogContext, get_logger
from waypoint.execution.retry import RetryPolicy, cancellable_sleep, error_message
from waypoint.runs.models import TERMINAL_PHASE, Run
from waypoint.runs.registry import RunRegistry

logger = get_logger(__name__)

InputT = TypeVar("InputT")
OutputT = TypeVar("OutputT")

EventCallback = Callable[[AgentEvent], Awaitable[None] | None]


# =============================================================================
# CONTRACTS
# =============================================================================


@runtime_checkable
class Workflow(Protocol[InputT, OutputT]):
    """What a domain workflow implements.

    Attributes:
        agent_name: Constant discriminant stored on every run
    """

    agent_name: str

    def init_checkpoint(self, input: InputT) -> dict[str, Any]:
        """Initial checkpoint payload; must carry a ``phase``."""
        ...

    async def run(self, ctx: RunContext, input: InputT) -> OutputT:
        """Domain logic. Raising signals failure."""
        ...


@dataclass
class LifecycleHooks:
    """Optional observability callbacks. Each may be sync or async.

    A hook that raises is logged and ignored, so it can never mask the
    workflow's own outcome.
    """

    on_start: Callable[[str, str], Any] | None = None
    on_complete: Callable[[str, str], Any] | None = None
    on_fail: Callable[[str, str, str], Any] | None = None
    on_retry: Callable[[str, int, str], Any] | None = None


@dataclass(frozen=True)
class AgentDefinition:
    """How to drive one agent call: system prompt and allowed tools."""

    prompt: str
    tools: list[str] = field(default_factory=list)
    model: str | None = None
    description: str = ""


@dataclass
class AgentRunResult:
    """Reduced outcome of one streaming agent call."""

    final_result: str = ""
    tool_results: list[str] = field(default_factory=list)
    total_turns: int = 0
    usage: TokenUsage | None = None
    total_cost_usd: float | None = None
    session_id: str | None = None
    cancelled: bool = False
    cancel_reason: str | None = None


@dataclass
class RecoveryReport:
    """Outcome of a startup recovery scan."""

    recovered: list[str] = field(default_factory=list)
    interrupted: list[str] = field(default_factory=list)


# =============================================================================
# RUN CONTEXT
# =============================================================================


@dataclass
class RunContext:
    """Handle passed to ``Workflow.run`` for one execution."""

    engine: WorkflowEngine[Any, Any]
    run_id: str
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def agent_name(self) -> str:
        return self.engine.agent_name

    @property
    def registry(self) -> RunRegistry:
        return self.engine.registry

    @property
    def checkpoint(self) -> dict[str, Any]:
        run = self.registry.get(self.run_id)
        return run.checkpoint if run else {}

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def update_phase(self, phase: str, **fields: Any) -> None:
        """Durably record ``phase`` (and any extra checkpoint fields)."""
        self.engine.update_phase(self.run_id, phase, **fields)

    def update_checkpoint(self, partial: Mapping[str, Any]) -> None:
        self.registry.update_checkpoint(self.run_id, partial)

    async def run_agent(
        self,
        prompt: str,
        agent: AgentDefinition,
        *,
        max_turns: int | None = None,
        permission_mode: PermissionMode | None = None,
        on_event: EventCallback | None = None,
    ) -> AgentRunResult:
        return await self.engine.run_agent(
            self.run_id,
            prompt,
            agent,
            max_turns=max_turns,
            permission_mode=permission_mode,
            on_event=on_event,
            cancel_event=self.cancel_event,
        )


# =============================================================================
# ENGINE
# =============================================================================


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class WorkflowEngine(Generic[InputT, OutputT]):
    """Drives a :class:`Workflow` through the run lifecycle.

    Example:
        >>> engine = WorkflowEngine(ResearchWorkflow(), registry, provider=provider)
        >>> report = await engine.execute_with_retry(
        ...     ResearchInput(topic="WebGPU"),
        ...     RetryPolicy(max_retries=2, retryable_errors=["timeout"]),
        ... )
    """

    def __init__(
        self,
        workflow: Workflow[InputT, OutputT],
        registry: RunRegistry,
        provider: AgentProvider | None = None,
        hooks: LifecycleHooks | None = None,
        *,
        default_max_turns: int = 15,
        default_permission_mode: PermissionMode = "acceptEdits",
    ):
        self.workflow = workflow
        self.registry = registry
        self.provider = provider
        self.hooks = hooks or LifecycleHooks()
        self.default_max_turns = default_max_turns
        self.default_permission_mode = default_permission_mode

    @property
    def agent_name(self) -> str:
        return self.workflow.agent_name

    def set_provider(self, provider: AgentProvider) -> None:
        self.provider = provider

    def set_hooks(self, hooks: LifecycleHooks) -> None:
        self.hooks = hooks

    async def _fire(self, name: str, *args: Any) -> None:
        hook = getattr(self.hooks, name)
        if hook is None:
            return
        try:
            await _maybe_await(hook(*args))
        except Exception:
            logger.exception("hook.failed", hook=name, agent_name=self.agent_name)

    # === Lifecycle ===

    async def execute(
        self, input: InputT, *, cancel_event: asyncio.Event | None = None
    ) -> OutputT:
        """Run the workflow once as a new run.

        Raises:
            Whatever ``workflow.run`` raised, unchanged.
        """
        run = self.registry.start(self.agent_name, input)
        ctx = RunContext(
            engine=self,
            run_id=run.id,
            cancel_event=cancel_event if cancel_event is not None else asyncio.Event(),
        )

        async with LogContext(run_id=run.id, agent_name=self.agent_name):
            logger.info("run.started")
            await self._fire("on_start", run.id, self.agent_name)

            try:
                self.registry.update_checkpoint(run.id, self.workflow.init_checkpoint(input))
                output = await self.workflow.run(ctx, input)
            except (Exception, asyncio.CancelledError) as e:
                message = error_message(e)
                try:
                    self.registry.fail(run.id, message)
                except Exception:
                    logger.exception("run.fail_not_recorded", error=message)
                logger.error(
                    "run.failed",
                    error=message,
                    error_type=type(e).__name__,
                    error_category=categorize_error(e).value,
                )
                await self._fire("on_fail", run.id, self.agent_name, message)
                raise

            self.registry.complete(run.id, output)
            logger.info("run.completed")
            await self._fire("on_complete", run.id, self.agent_name)
            return output

    async def execute_with_retry(
        self,
        input: InputT,
        policy: RetryPolicy | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> OutputT:
        """Repeat :meth:`execute` as fresh runs until success or the policy gives up.

        Raises:
            The last error seen, unchanged.
        """
        policy = policy or RetryPolicy()

        for attempt_index in range(policy.max_attempts):
            try:
                return await self.execute(input, cancel_event=cancel_event)
            except Exception as e:
                if not policy.should_retry(attempt_index, e):
                    raise

                delay_ms = policy.delay_ms(attempt_index)
                message = error_message(e)
                logger.warning(
                    "run.retry_scheduled",
                    agent_name=self.agent_name,
                    attempt=attempt_index + 1,
                    max_retries=policy.max_retries,
                    delay_ms=delay_ms,
                    error=message,
                )
                await self._fire("on_retry", self.agent_name, attempt_index + 1, message)

                if not await cancellable_sleep(delay_ms / 1000.0, cancel_event):
                    logger.info("run.retry_cancelled", agent_name=self.agent_name)
                    raise

        raise AssertionError("unreachable: retry loop exits by return or raise")

    def update_phase(self, run_id: str, phase: str, **fields: Any) -> None:
        """Shorthand for ``update_checkpoint(run_id, {"phase": phase, ...})``."""
        self.registry.update_checkpoint(run_id, {"phase": phase, **fields})

    # === Agent streaming ===

    async def run_agent(
        self,
        run_id: str,
        prompt: str,
        agent: AgentDefinition,
        *,
        max_turns: int | None = None,
        permission_mode: PermissionMode | None = None,
        on_event: EventCallback | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> AgentRunResult:
        """Drive one streaming agent call and reduce its events.

        Resumes the run's previous agent session when one was recorded.
        A ``cancelled`` event ends the reduction without raising; the
        caller decides how to record the outcome.

        Raises:
            ProviderNotConfiguredError: No provider attached.
        """
        if self.provider is None:
            raise ProviderNotConfiguredError(
                f"No agent provider configured for {self.agent_name}"
            ).with_context(run_id=run_id, agent_name=self.agent_name)

        existing: Run | None = self.registry.get(run_id)
        options = AgentChatOptions(
            system_prompt=agent.prompt,
            model=agent.model,
            max_turns=max_turns or self.default_max_turns,
            tools=list(agent.tools),
            permission_mode=permission_mode or self.default_permission_mode,
            resume=existing.session_id if existing else None,
            cancel_event=cancel_event,
        )

        result = AgentRunResult()
        tool_inputs: dict[str, Any] = {}
        stream = self.provider.stream_agent_turn([Message.user(prompt)], options)

        try:
            async for event in stream:
                if isinstance(event, ToolStartEvent):
                    tool_inputs[event.tool_use_id] = event.input
                    logger.info("agent.tool_start", run_id=run_id, tool=event.tool)
                elif isinstance(event, ToolResultEvent):
                    result.tool_results.append(event.result)
                    self.registry.record_tool_call(
                        run_id,
                        event.tool,
                        input=tool_inputs.pop(event.tool_use_id, None),
                        output=event.result,
                    )
                    logger.info(
                        "agent.tool_result",
                        run_id=run_id,
                        tool=event.tool,
                        preview=event.result[:100],
                    )
                elif isinstance(event, TurnCompleteEvent):
                    result.total_turns = event.turn_number
                    logger.debug("agent.turn_complete", run_id=run_id, turn=event.turn_number)
                elif isinstance(event, DoneEvent):
                    result.final_result = event.result
                    if event.session_id:
                        result.session_id = event.session_id
                        self.registry.set_session_id(run_id, event.session_id)
                    if event.usage is not None:
                        result.usage = event.usage
                    if event.total_cost_usd is not None:
                        result.total_cost_usd = event.total_cost_usd
                    logger.info("agent.done", run_id=run_id, preview=event.result[:200])
                elif isinstance(event, CancelledEvent):
                    result.cancelled = True
                    result.cancel_reason = event.reason
                    logger.info("agent.cancelled", run_id=run_id, reason=event.reason)

                if on_event is not None:
                    await _maybe_await(on_event(event))

                if result.cancelled:
                    break
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

        return result

    # === Recovery ===

    def recover_pending_runs(self) -> RecoveryReport:
        """Close out runs of this workflow that finished but were never marked complete.

        Runs whose checkpoint reached the terminal phase are completed.
        Every other pending run is only logged and left running.
        """
        report = RecoveryReport()
        for run in self.registry.get_pending():
            if run.agent_name != self.agent_name:
                continue
            if run.phase == TERMINAL_PHASE:
                try:
                    self.registry.complete(run.id)
                except WaypointError:
                    logger.exception("run.recovery_failed", run_id=run.id)
                    continue
                report.recovered.append(run.id)
                logger.info("run.recovered", run_id=run.id, agent_name=self.agent_name)
            else:
                report.interrupted.append(run.id)
                logger.warning(
                    "run.interrupted",
                    run_id=run.id,
                    agent_name=self.agent_name,
                    phase=run.phase,
                )
        return report


__all__ = [
    "AgentDefinition",
    "AgentRunResult",
    "LifecycleHooks",
    "RecoveryReport",
    "RunContext",
    "Workflow",
    "WorkflowEngine",
]
