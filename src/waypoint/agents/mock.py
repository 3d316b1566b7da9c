"""Mock agent provider - deterministic event streams for testing.

Useful for workflow tests, CI pipelines, and local development where a
real agent backend is unavailable or too expensive.

Example::

    from waypoint.agents.mock import MockAgentProvider
    from waypoint.agents.protocol import DoneEvent, ToolStartEvent

    provider = MockAgentProvider(
        default_script=[DoneEvent(result="ok", session_id="sess-1")],
    )
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field
from typing import Any

from .protocol import (
    AgentChatOptions,
    AgentEvent,
    CancelledEvent,
    DoneEvent,
    Message,
)


@dataclass
class MockAgentProvider:
    """Scripted agent provider.

    Resolution order for each call:
    1. ``scripts``: consumed in order, one event list per call
    2. ``default_script``: replayed for every further call

    An entry in a script that is an exception instance is raised at that
    point in the stream, which lets tests simulate a provider failing
    mid-conversation.

    Attributes:
        default_script: Events replayed when ``scripts`` is exhausted.
        scripts: Per-call event lists.
        name: Provider name.
    """

    default_script: list[AgentEvent | BaseException] = field(
        default_factory=lambda: [DoneEvent(result="Mock agent response")]
    )
    scripts: list[Sequence[AgentEvent | BaseException]] = field(default_factory=list)
    name: str = "mock"

    calls: list[dict[str, Any]] = field(default_factory=list, repr=False)
    _script_index: int = field(default=0, repr=False)

    async def stream_agent_turn(
        self,
        messages: list[Message],
        options: AgentChatOptions,
    ) -> AsyncIterator[AgentEvent]:
        self.calls.append({
            "messages": [{"role": m.role.value, "content": m.content} for m in messages],
            "options": options,
        })
        for item in self._next_script():
            if options.cancel_event is not None and options.cancel_event.is_set():
                yield CancelledEvent(reason="cancelled by caller")
                return
            if isinstance(item, BaseException):
                raise item
            yield item

    def _next_script(self) -> Sequence[AgentEvent | BaseException]:
        if self._script_index < len(self.scripts):
            script = self.scripts[self._script_index]
            self._script_index += 1
            return script
        return self.default_script

    @property
    def call_count(self) -> int:
        return len(self.calls)

    @property
    def last_options(self) -> AgentChatOptions | None:
        return self.calls[-1]["options"] if self.calls else None

    def reset(self) -> None:
        self.calls.clear()
        self._script_index = 0
