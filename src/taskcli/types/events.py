"""Session event types.

Events are the append-only audit log of a session: one per completed or
failed action, tagged by the subsystem that produced it. They feed the
execution agent's transcript and the local closeout summary.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


class EventType(StrEnum):
    """Types of session events.

    Action events share their name with the task type that produced
    them so the local summary can find files written and commands run.
    """

    # --- Goal lifecycle ---
    USER_GOAL = "user_goal"
    PLAN = "plan"
    PLAN_ERROR = "plan_error"
    PLAN_ADJUSTED = "plan_adjusted"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    TASK_FAILED = "task_failed"
    CLOSEOUT = "closeout"

    # --- Actions ---
    READ_FILE = "read_file"
    WRITE_FILE = "write_file"
    EDIT_FILE = "edit_file"
    RUN_COMMAND = "run_command"
    SEARCH_WEB = "search_web"
    ASK_USER = "ask_user"

    # --- Agent ---
    AGENT_SAY = "agent_say"
    AGENT_FALLBACK = "agent_fallback"
    CYCLE = "cycle"


def utc_now_iso() -> str:
    return datetime.now(UTC).isoformat()


@dataclass(frozen=True, slots=True)
class Event:
    """A single entry of the session history."""

    type: EventType
    summary: str = ""
    time: str = field(default_factory=utc_now_iso)
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"time": self.time, "type": str(self.type), "summary": self.summary, **self.payload}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Event:
        payload = {k: v for k, v in data.items() if k not in ("time", "type", "summary")}
        return cls(
            type=EventType(data["type"]),
            summary=data.get("summary", ""),
            time=data.get("time") or utc_now_iso(),
            payload=payload,
        )
