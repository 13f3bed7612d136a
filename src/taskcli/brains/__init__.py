"""External collaborators: protocols and the LLM-backed implementation."""

from taskcli.brains.base import (
    AgentRequest,
    Brains,
    ClassifierBackend,
    CloseoutWriter,
    ContentGenerator,
    ExecutionAgent,
    Planner,
    Replanner,
    RetryBackend,
)
from taskcli.brains.llm import LLMBrain

__all__ = [
    "AgentRequest",
    "Brains",
    "ClassifierBackend",
    "CloseoutWriter",
    "ContentGenerator",
    "ExecutionAgent",
    "LLMBrain",
    "Planner",
    "Replanner",
    "RetryBackend",
]
