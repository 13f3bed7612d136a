"""Execution observer.

The engine reports progress through these hooks; the console UI and
tests override the ones they care about. Every hook defaults to a no-op.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from taskcli.core.state_machine import EngineState
    from taskcli.types.task import Task


class ExecutionObserver:
    """Base observer with no-op hooks."""

    def on_state(self, from_state: EngineState, to_state: EngineState) -> None:
        pass

    def on_plan(self, tasks: list[Task]) -> None:
        pass

    def on_cycle(self, cycle: int, max_cycles: int) -> None:
        pass

    def on_agent_say(self, text: str) -> None:
        pass

    def on_task_start(self, task: Task) -> None:
        pass

    def on_task_done(self, task: Task, detail: str = "") -> None:
        pass

    def on_task_failed(self, task: Task, error: str) -> None:
        pass

    def on_command_output(self, stream: str, text: str) -> None:
        pass

    def on_log(self, message: str, level: str = "info") -> None:
        pass

    def on_closeout(self, summary: str, source: str) -> None:
        pass


class RecordingObserver(ExecutionObserver):
    """Keeps every notification as ``(hook, *args)``; useful for headless runs and tests."""

    def __init__(self) -> None:
        self.calls: list[tuple[object, ...]] = []

    def hooks(self, name: str) -> list[tuple[object, ...]]:
        return [c[1:] for c in self.calls if c[0] == name]

    def on_state(self, from_state: EngineState, to_state: EngineState) -> None:
        self.calls.append(("state", from_state, to_state))

    def on_plan(self, tasks: list[Task]) -> None:
        self.calls.append(("plan", [t.id for t in tasks]))

    def on_cycle(self, cycle: int, max_cycles: int) -> None:
        self.calls.append(("cycle", cycle))

    def on_agent_say(self, text: str) -> None:
        self.calls.append(("say", text))

    def on_task_start(self, task: Task) -> None:
        self.calls.append(("task_start", task.id))

    def on_task_done(self, task: Task, detail: str = "") -> None:
        self.calls.append(("task_done", task.id))

    def on_task_failed(self, task: Task, error: str) -> None:
        self.calls.append(("task_failed", task.id, error))

    def on_command_output(self, stream: str, text: str) -> None:
        self.calls.append(("output", stream, text))

    def on_log(self, message: str, level: str = "info") -> None:
        self.calls.append(("log", level, message))

    def on_closeout(self, summary: str, source: str) -> None:
        self.calls.append(("closeout", source, summary))
