"""Task types.

A task is one typed step of a plan. Statuses only move forward:
``pending -> running -> done|failed`` (``pending`` may jump straight to
``done`` or ``failed`` when the step is settled without a visible run).
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields, replace
from enum import StrEnum
from typing import Any


class TaskType(StrEnum):
    """Kinds of work a task can describe."""

    READ_FILE = "read_file"
    WRITE_FILE = "write_file"
    GENERATE_FILE_FROM_PROMPT = "generate_file_from_prompt"
    EDIT_FILE = "edit_file"
    RUN_COMMAND = "run_command"
    SEARCH_WEB = "search_web"
    SESSION_CLOSE = "session_close"
    ASK_USER = "ask_user"


class TaskStatus(StrEnum):
    """Status of a plan task."""

    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


# Valid forward moves: (from_status, to_status)
STATUS_TRANSITIONS: set[tuple[TaskStatus, TaskStatus]] = {
    (TaskStatus.PENDING, TaskStatus.RUNNING),
    (TaskStatus.PENDING, TaskStatus.DONE),
    (TaskStatus.PENDING, TaskStatus.FAILED),
    (TaskStatus.RUNNING, TaskStatus.DONE),
    (TaskStatus.RUNNING, TaskStatus.FAILED),
}

CLOSEOUT_TASK_ID = "session-close"


def can_advance(current: TaskStatus, target: TaskStatus) -> bool:
    """Whether ``current -> target`` is a forward move."""
    return (current, target) in STATUS_TRANSITIONS


@dataclass(slots=True)
class Task:
    """A single typed step of a plan."""

    id: str
    type: TaskType
    title: str = ""
    rationale: str | None = None
    path: str | None = None
    command: str | None = None
    content: str | None = None
    content_prompt: str | None = None
    instruction: str | None = None
    prompt: str | None = None
    confirm: bool | None = None
    cwd: str | None = None
    query: str | None = None
    num_results: int | None = None
    questions: list[str] = field(default_factory=list)
    hidden: bool = False
    status: TaskStatus = TaskStatus.PENDING

    @property
    def is_closeout(self) -> bool:
        return self.type == TaskType.SESSION_CLOSE

    @property
    def label(self) -> str:
        """Short human-readable label for logs and summaries."""
        if self.title:
            return self.title
        target = self.command or self.path or self.query or ""
        return f"{self.type} {target}".strip()

    def with_fields(self, **changes: Any) -> Task:
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["type"] = str(self.type)
        data["status"] = str(self.status)
        return {k: v for k, v in data.items() if v is not None and v != []}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Task:
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in known}
        kwargs["type"] = TaskType(kwargs["type"])
        if "status" in kwargs:
            kwargs["status"] = TaskStatus(kwargs["status"])
        return cls(**kwargs)


def make_closeout_task() -> Task:
    """The hidden terminal task every plan ends with."""
    return Task(
        id=CLOSEOUT_TASK_ID,
        type=TaskType.SESSION_CLOSE,
        title="Close session",
        rationale="Summarize what was done and suggest next steps",
        hidden=True,
    )
