"""Session: metadata, the append-only event log and task snapshots.

A session spans one CLI invocation or one interactive shell. The
execution engine is its only writer while a goal runs.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any

from taskcli.types.events import Event, EventType, utc_now_iso
from taskcli.types.task import Task

MEMORY_EVENTS = 6
TRANSCRIPT_EVENTS = 30
OUTPUT_SNIPPET_CHARS = 600


def new_session_id() -> str:
    return uuid.uuid4().hex[:12]


@dataclass
class Session:
    """One CLI session and its audit log."""

    id: str = field(default_factory=new_session_id)
    created_at: str = field(default_factory=utc_now_iso)
    meta: dict[str, Any] = field(default_factory=dict)
    _history: list[Event] = field(default_factory=list, repr=False)
    tasks: dict[str, dict[str, Any]] = field(default_factory=dict, repr=False)

    @property
    def cwd(self) -> str:
        return str(self.meta.get("cwd", "."))

    @property
    def history(self) -> tuple[Event, ...]:
        """Read-only view; entries are only ever appended."""
        return tuple(self._history)

    def append_event(self, type: EventType, summary: str = "", **payload: Any) -> Event:
        event = Event(type=type, summary=summary, payload=payload)
        self._history.append(event)
        return event

    def add(self, event: Event) -> None:
        self._history.append(event)

    def events_of(self, *types: EventType) -> list[Event]:
        return [e for e in self._history if e.type in types]

    def upsert_task_snapshot(self, task: Task) -> None:
        self.tasks[task.id] = task.to_dict()

    def summarize_memory(self, limit: int = MEMORY_EVENTS) -> str:
        """Short hint of recent history for the planner."""
        lines = [f"{e.type}: {e.summary or e.payload.get('message', '')}" for e in self._history[-limit:]]
        return "\n".join(lines) or "No prior history."

    def transcript(self, limit: int = TRANSCRIPT_EVENTS) -> str:
        """Recent events with truncated action output, for the execution agent."""
        lines: list[str] = []
        for event in self._history[-limit:]:
            line = f"- [{event.type}] {event.summary or event.payload.get('message', '')}".rstrip()
            output = event.payload.get("output")
            if output:
                snippet = str(output)
                if len(snippet) > OUTPUT_SNIPPET_CHARS:
                    snippet = snippet[:OUTPUT_SNIPPET_CHARS] + "...(truncated)"
                line += "\n  " + snippet.replace("\n", "\n  ")
            error = event.payload.get("error")
            if error:
                line += f"\n  error: {error}"
            lines.append(line)
        return "\n".join(lines) or "(no events yet)"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "createdAt": self.created_at,
            "meta": dict(self.meta),
            "history": [e.to_dict() for e in self._history],
            "tasks": list(self.tasks.values()),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Session:
        session = cls(
            id=data["id"],
            created_at=data.get("createdAt") or utc_now_iso(),
            meta=dict(data.get("meta") or {}),
        )
        for raw in data.get("history", []):
            session.add(Event.from_dict(raw))
        for raw in data.get("tasks", []):
            if "id" in raw:
                session.tasks[str(raw["id"])] = dict(raw)
        return session
