"""Agent provider protocol and the streaming event union.

An agent provider drives one multi-turn, tool-using conversation with an
LLM and yields :data:`AgentEvent` values as it goes. The workflow engine
consumes this stream through ``RunContext.run_agent``; any object that
satisfies :class:`AgentProvider` can be substituted without engine changes.

Event sequence for a typical call::

    text* → (tool_start → tool_result)* → turn_complete → ... → done
                                                       └──► cancelled
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Literal, Protocol, Union, runtime_checkable


class Role(str, Enum):
    """Message role in a conversation."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Message:
    """A single message in a conversation."""

    role: Role
    content: str

    @classmethod
    def system(cls, content: str) -> Message:
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str) -> Message:
        return cls(role=Role.ASSISTANT, content=content)


PermissionMode = Literal["default", "acceptEdits", "bypassPermissions"]


@dataclass(frozen=True)
class TokenUsage:
    """Token usage reported by a finished agent call."""

    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def to_dict(self) -> dict[str, int]:
        return {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass
class AgentChatOptions:
    """Options for one streaming agent call.

    Attributes:
        system_prompt: System prompt for the conversation
        model: Provider-specific model alias
        max_turns: Upper bound on agent turns
        tools: Allowed tool names (empty means provider default)
        permission_mode: How tool permission prompts are answered
        resume: Session token of a previous conversation to continue
        cancel_event: Set by the caller to cancel the call
    """

    system_prompt: str | None = None
    model: str | None = None
    max_turns: int = 15
    tools: list[str] = field(default_factory=list)
    permission_mode: PermissionMode = "acceptEdits"
    resume: str | None = None
    cancel_event: asyncio.Event | None = None


# ── Events ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class TextEvent:
    type: ClassVar[str] = "text"
    text: str


@dataclass(frozen=True)
class ToolStartEvent:
    type: ClassVar[str] = "tool_start"
    tool: str
    input: Any
    tool_use_id: str


@dataclass(frozen=True)
class ToolResultEvent:
    type: ClassVar[str] = "tool_result"
    tool: str
    result: str
    tool_use_id: str


@dataclass(frozen=True)
class TurnCompleteEvent:
    type: ClassVar[str] = "turn_complete"
    turn_number: int


@dataclass(frozen=True)
class DoneEvent:
    type: ClassVar[str] = "done"
    result: str
    session_id: str | None = None
    usage: TokenUsage | None = None
    total_cost_usd: float | None = None


@dataclass(frozen=True)
class CancelledEvent:
    type: ClassVar[str] = "cancelled"
    reason: str


AgentEvent = Union[
    TextEvent,
    ToolStartEvent,
    ToolResultEvent,
    TurnCompleteEvent,
    DoneEvent,
    CancelledEvent,
]


@runtime_checkable
class AgentProvider(Protocol):
    """Protocol for streaming, tool-using agent backends.

    Implementors
    ------------
    * ``MockAgentProvider`` - scripted events for testing
    * User-defined backends wrapping a vendor agent SDK
    """

    name: str

    def stream_agent_turn(
        self,
        messages: list[Message],
        options: AgentChatOptions,
    ) -> AsyncIterator[AgentEvent]:
        """Stream the events of one agent call.

        Implementations must stop and yield a :class:`CancelledEvent` when
        ``options.cancel_event`` is set.
        """
        ...
