"""Workflow engine and reference workflows.

Architecture::

    engine.py     Workflow protocol, RunContext, LifecycleHooks, WorkflowEngine
    approval.py   ApprovalSink protocol + in-memory sink
    research.py   Content-research workflow
    posts.py      Social-post workflow + idempotent PostGenerationService
"""

from .approval import ApprovalRequest, ApprovalSink, InMemoryApprovalSink
from .engine import (
    AgentDefinition,
    AgentRunResult,
    LifecycleHooks,
    RecoveryReport,
    RunContext,
    Workflow,
    WorkflowEngine,
)
from .posts import (
    Article,
    GeneratedPost,
    PostGenerationResult,
    PostGenerationService,
    PostGenerationWorkflow,
)
from .research import ResearchInput, ResearchResult, ResearchWorkflow

__all__ = [
    "AgentDefinition",
    "AgentRunResult",
    "ApprovalRequest",
    "ApprovalSink",
    "Article",
    "GeneratedPost",
    "InMemoryApprovalSink",
    "LifecycleHooks",
    "PostGenerationResult",
    "PostGenerationService",
    "PostGenerationWorkflow",
    "RecoveryReport",
    "ResearchInput",
    "ResearchResult",
    "ResearchWorkflow",
    "RunContext",
    "Workflow",
    "WorkflowEngine",
]
