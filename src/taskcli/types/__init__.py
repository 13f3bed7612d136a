"""Core data types shared across taskcli."""

from taskcli.types.command import (
    Classification,
    ClassificationStatus,
    CommandOutcome,
    CommandStatus,
    FailureKind,
    RetryAction,
    RetryDecision,
    RunResult,
    TimeoutKind,
)
from taskcli.types.events import Event, EventType
from taskcli.types.task import Task, TaskStatus, TaskType

__all__ = [
    "Classification",
    "ClassificationStatus",
    "CommandOutcome",
    "CommandStatus",
    "Event",
    "EventType",
    "FailureKind",
    "RetryAction",
    "RetryDecision",
    "RunResult",
    "Task",
    "TaskStatus",
    "TaskType",
    "TimeoutKind",
]
