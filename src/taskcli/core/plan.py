"""Task plan.

An ordered, id-keyed list of tasks that always ends with exactly one
hidden closeout task. Status changes go through :meth:`TaskPlan.set_status`
and only ever move forward; the only way back to ``pending`` is a full
:meth:`TaskPlan.replace`, and even then nothing is carried over unless
the caller passes it explicitly.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping
from typing import Any

from taskcli.errors import InvalidTransitionError
from taskcli.types.task import (
    CLOSEOUT_TASK_ID,
    Task,
    TaskStatus,
    can_advance,
    make_closeout_task,
)

logger = logging.getLogger(__name__)


class TaskPlan:
    """Ordered tasks for one goal plus the trailing closeout task."""

    def __init__(self, tasks: Iterable[Task] = ()) -> None:
        self._closeout = make_closeout_task()
        self._tasks: dict[str, Task] = {}
        for task in tasks:
            self._insert(task)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._tasks) + 1

    def __iter__(self) -> Iterator[Task]:
        """All tasks in order, closeout last."""
        yield from self._tasks.values()
        yield self._closeout

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks or task_id == self._closeout.id

    def get(self, task_id: str) -> Task | None:
        if task_id == self._closeout.id:
            return self._closeout
        return self._tasks.get(task_id)

    @property
    def closeout(self) -> Task:
        return self._closeout

    @property
    def tasks(self) -> list[Task]:
        return list(self)

    def visible(self) -> list[Task]:
        """Tasks the user and the agent get to see."""
        return [t for t in self._tasks.values() if not t.hidden]

    def remaining(self) -> list[Task]:
        """Non-hidden tasks that are not done, in plan order."""
        return [t for t in self._tasks.values() if not t.hidden and t.status != TaskStatus.DONE]

    def next_pending(self) -> Task | None:
        for task in self._tasks.values():
            if not task.hidden and task.status == TaskStatus.PENDING:
                return task
        return None

    def done_ids(self) -> dict[str, TaskStatus]:
        """Carry-over map of every finished task, for :meth:`replace`."""
        return {t.id: TaskStatus.DONE for t in self._tasks.values() if t.status == TaskStatus.DONE}

    def count(self, status: TaskStatus) -> int:
        return sum(1 for t in self._tasks.values() if not t.hidden and t.status == status)

    def snapshot(self) -> list[dict[str, Any]]:
        return [t.to_dict() for t in self]

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def upsert(self, task: Task) -> Task:
        """Insert a new task, or merge fields into the task with the same id.

        A merge keeps the current status unless ``task`` carries a forward
        move from it.
        """
        if task.is_closeout or task.id == CLOSEOUT_TASK_ID:
            raise ValueError("the closeout task is managed by the plan")
        existing = self._tasks.get(task.id)
        if existing is None:
            self._insert(task)
            return task
        status = task.status if can_advance(existing.status, task.status) else existing.status
        merged = task.with_fields(status=status)
        self._tasks[task.id] = merged
        return merged

    def set_status(self, task_id: str, status: TaskStatus) -> bool:
        """Move a task forward. Returns False when it already has ``status``.

        Raises KeyError for unknown ids and InvalidTransitionError for
        anything but a forward move.
        """
        task = self.get(task_id)
        if task is None:
            raise KeyError(task_id)
        if task.status == status:
            return False
        if not can_advance(task.status, status):
            raise InvalidTransitionError(task.status, status, subject="task status")
        task.status = status
        return True

    def mark_done(self, task_id: str) -> bool:
        """Lenient completion used when reconciling agent reports.

        Unknown, already-done and failed tasks are left alone.
        """
        task = self._tasks.get(task_id)
        if task is None:
            logger.debug("ignoring completion for unknown task %s", task_id)
            return False
        if not can_advance(task.status, TaskStatus.DONE):
            return False
        task.status = TaskStatus.DONE
        return True

    def replace(
        self,
        tasks: Iterable[Task],
        carry_over: Mapping[str, TaskStatus] | None = None,
    ) -> None:
        """Swap in a new task list. The closeout task is re-appended.

        Reused ids start from the status the new task carries; only
        entries of ``carry_over`` are restored.
        """
        carry = carry_over or {}
        fresh: dict[str, Task] = {}
        for task in tasks:
            if task.is_closeout:
                continue
            _check_id(task)
            if task.id in fresh:
                raise ValueError(f"duplicate task id in replacement plan: {task.id}")
            status = carry.get(task.id, task.status)
            fresh[task.id] = task.with_fields(status=status)
        self._tasks = fresh
        logger.debug("plan replaced: %d tasks, %d carried over", len(fresh), len(set(carry) & set(fresh)))

    def _insert(self, task: Task) -> None:
        if task.is_closeout:
            return
        _check_id(task)
        if task.id in self._tasks:
            raise ValueError(f"duplicate task id: {task.id}")
        self._tasks[task.id] = task


def _check_id(task: Task) -> None:
    if task.id == CLOSEOUT_TASK_ID:
        raise ValueError(f"task id {CLOSEOUT_TASK_ID!r} is reserved for the closeout task")
