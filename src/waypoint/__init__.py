"""
Waypoint - durable workflow execution with crash-recoverable checkpoints.

Layers::

    waypoint.core        errors, logging, config, hashing, timestamps
    waypoint.runs        Run records, checkpoint stores, RunRegistry
    waypoint.execution   RetryPolicy, IdempotencyManager
    waypoint.agents      AgentProvider protocol and event types
    waypoint.workflows   WorkflowEngine and reference workflows
    waypoint.scheduling  cron ScheduleStore, TaskExecutor, SchedulerManager
    waypoint.runtime     wiring from settings to a ready Runtime
"""

__version__ = "0.1.0"
