"""External collaborator protocols.

The core never interprets natural language itself. Each decision is a
call into one of these collaborators, which answer with a raw payload
(model text or a dict) that :mod:`taskcli.contracts` validates.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from taskcli.types.messages import UsageTotals
from taskcli.types.task import Task

RawPayload = str | dict[str, Any]


@dataclass(frozen=True, slots=True)
class AgentRequest:
    """Everything the execution agent sees in one cycle."""

    goal: str
    remaining: list[Task]
    transcript: str
    cwd: str
    cycle: int
    max_actions: int


@runtime_checkable
class Planner(Protocol):
    async def plan(self, goal: str, memory_summary: str, cwd: str) -> RawPayload: ...


@runtime_checkable
class ExecutionAgent(Protocol):
    async def next_turn(self, request: AgentRequest) -> RawPayload: ...


@runtime_checkable
class ClassifierBackend(Protocol):
    async def classify(self, context: dict[str, Any]) -> RawPayload: ...


@runtime_checkable
class RetryBackend(Protocol):
    async def plan_retry(self, context: dict[str, Any]) -> RawPayload: ...


@runtime_checkable
class Replanner(Protocol):
    async def adjust(self, goal: str, plan: list[Task], queued: list[str]) -> RawPayload: ...


@runtime_checkable
class CloseoutWriter(Protocol):
    async def summarize(self, goal: str, transcript: str) -> str: ...


@runtime_checkable
class ContentGenerator(Protocol):
    async def generate(self, instruction: str, path: str) -> str: ...

    async def edit(self, path: str, current: str, instruction: str) -> str: ...


@dataclass(slots=True)
class Brains:
    """The collaborator bundle the engine is built from."""

    planner: Planner
    agent: ExecutionAgent
    classifier: ClassifierBackend | None = None
    retry: RetryBackend | None = None
    replanner: Replanner | None = None
    closeout: CloseoutWriter | None = None
    content: ContentGenerator | None = None
    usage: UsageTotals | None = None
