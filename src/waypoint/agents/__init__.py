"""Agent provider abstraction.

Architecture::

    protocol.py   AgentProvider protocol, AgentEvent union, AgentChatOptions
    mock.py       MockAgentProvider (scripted, for tests)
"""

from .mock import MockAgentProvider
from .protocol import (
    AgentChatOptions,
    AgentEvent,
    AgentProvider,
    CancelledEvent,
    DoneEvent,
    Message,
    PermissionMode,
    Role,
    TextEvent,
    TokenUsage,
    ToolResultEvent,
    ToolStartEvent,
    TurnCompleteEvent,
)

__all__ = [
    "AgentChatOptions",
    "AgentEvent",
    "AgentProvider",
    "CancelledEvent",
    "DoneEvent",
    "Message",
    "MockAgentProvider",
    "PermissionMode",
    "Role",
    "TextEvent",
    "TokenUsage",
    "ToolResultEvent",
    "ToolStartEvent",
    "TurnCompleteEvent",
]
