"""Closeout: the final summary of a goal execution.

The external closing-summary call is bounded by a timeout. When it times
out, fails or is cancelled, a summary is built locally from the event
log so the user always gets one.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from taskcli.errors import CancellationError, CloseoutTimeoutError
from taskcli.types.events import Event, EventType

if TYPE_CHECKING:
    from taskcli.brains.base import CloseoutWriter
    from taskcli.core.cancellation import CancellationToken
    from taskcli.session import Session

logger = logging.getLogger(__name__)

DEFAULT_CLOSEOUT_TIMEOUT = 30.0


@dataclass(frozen=True, slots=True)
class CloseoutResult:
    summary: str
    source: str  # "model" or "local"
    error: str | None = None


def _goal_events(session: Session) -> list[Event]:
    """Events since the most recent goal started."""
    history = session.history
    for index in range(len(history) - 1, -1, -1):
        if history[index].type == EventType.USER_GOAL:
            return list(history[index:])
    return list(history)


def build_local_summary(goal: str, session: Session, outcome: str = "") -> str:
    """Summary computed purely from the event log."""
    events = _goal_events(session)
    files = []
    for event in events:
        if event.type in (EventType.WRITE_FILE, EventType.EDIT_FILE):
            path = event.payload.get("path") or event.summary
            if path not in files:
                files.append(path)
    commands = [e.summary for e in events if e.type == EventType.RUN_COMMAND]
    failures = [e for e in events if e.type == EventType.TASK_FAILED]

    lines = [f"Goal: {goal}"]
    if outcome:
        lines.append(f"Outcome: {outcome}")
    lines.append("Files written:" if files else "Files written: none")
    lines.extend(f"  - {path}" for path in files)
    lines.append("Commands run:" if commands else "Commands run: none")
    lines.extend(f"  - {summary}" for summary in commands)
    for failure in failures:
        lines.append(f"Stopped at: {failure.summary} ({failure.payload.get('error', 'failed')})")
    if failures:
        lines.append("Next steps: fix the failing step above and run the goal again.")
    elif files or commands:
        lines.append("Next steps: review the changes above.")
    return "\n".join(lines)


async def run_closeout(
    writer: CloseoutWriter | None,
    goal: str,
    session: Session,
    *,
    timeout: float = DEFAULT_CLOSEOUT_TIMEOUT,
    token: CancellationToken | None = None,
    outcome: str = "",
) -> CloseoutResult:
    """Ask ``writer`` for a summary within ``timeout``; fall back locally."""
    if writer is None:
        return CloseoutResult(build_local_summary(goal, session, outcome), "local")

    error: str | None = None
    try:
        call = writer.summarize(goal, session.transcript())
        text = await asyncio.wait_for(
            token.race(call) if token is not None else call, timeout=timeout,
        )
        if text and text.strip():
            return CloseoutResult(text.strip(), "model")
        error = "empty summary"
    except asyncio.TimeoutError:
        error = str(CloseoutTimeoutError(timeout))
    except CancellationError as e:
        error = str(e)
    except Exception as e:
        error = f"{type(e).__name__}: {e}"
    logger.warning("closeout fell back to local summary: %s", error)
    return CloseoutResult(build_local_summary(goal, session, outcome), "local", error)
