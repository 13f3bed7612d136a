"""Execution cycle engine.

Drives one goal from plan to closeout::

    PLANNING -> CYCLING <-> ADJUSTING
                   |            |
                   v            v
                CLOSING ----> DONE | FAILED
        (any) -> CANCELLED

Each cycle asks the execution agent for a bounded batch of actions,
runs them strictly in order, and reconciles which plan tasks are done.
A malformed or failed agent turn falls back to running the next pending
task directly so the plan always moves. The first task failure stops
the run; cancellation always wins over failure handling.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from taskcli.brains.base import AgentRequest, Brains
from taskcli.contracts import (
    AgentTurn,
    CancelAdjustment,
    parse_agent_turn,
    parse_plan,
    parse_plan_adjustment,
)
from taskcli.core.cancellation import CancellationToken
from taskcli.core.closeout import DEFAULT_CLOSEOUT_TIMEOUT, build_local_summary, run_closeout
from taskcli.core.input_queue import InputQueue
from taskcli.core.observer import ExecutionObserver
from taskcli.core.plan import TaskPlan
from taskcli.core.state_machine import EngineState, EngineStateMachine
from taskcli.errors import (
    CancellationError,
    ContractError,
    EngineBusyError,
    PlanningError,
    TaskExecutionError,
    UserInputRequiredError,
)
from taskcli.types.events import EventType
from taskcli.types.messages import UsageTotals
from taskcli.types.task import Task, TaskStatus, TaskType, can_advance

if TYPE_CHECKING:
    from taskcli.core.handlers import TaskHandlers
    from taskcli.session import Session

logger = logging.getLogger(__name__)

DEFAULT_MAX_CYCLES = 20
DEFAULT_MAX_ACTIONS = 5


@dataclass(frozen=True, slots=True)
class EngineSettings:
    max_cycles: int = DEFAULT_MAX_CYCLES
    max_actions: int = DEFAULT_MAX_ACTIONS
    closeout_timeout: float = DEFAULT_CLOSEOUT_TIMEOUT


@dataclass(slots=True)
class EngineResult:
    """What the caller learns about one goal execution."""

    state: EngineState
    reason: str = ""
    summary: str = ""
    error: str | None = None
    question: str | None = None
    remaining: int = 0
    cycles: int = 0
    completed: int = 0
    summary_source: str = "local"
    usage: UsageTotals | None = None

    @property
    def ok(self) -> bool:
        return self.state == EngineState.DONE

    @property
    def cancelled(self) -> bool:
        return self.state == EngineState.CANCELLED

    @property
    def needs_input(self) -> bool:
        return self.question is not None


@dataclass(slots=True)
class _Stop:
    """How the cycle loop ended."""

    state: EngineState
    reason: str
    error: str | None = None
    question: str | None = None


class ExecutionEngine:
    """Runs goals against one session, one at a time."""

    def __init__(
        self,
        brains: Brains,
        handlers: TaskHandlers,
        session: Session,
        *,
        settings: EngineSettings | None = None,
        observer: ExecutionObserver | None = None,
        input_queue: InputQueue | None = None,
    ) -> None:
        self._brains = brains
        self._handlers = handlers
        self._session = session
        self._settings = settings or EngineSettings()
        self._observer = observer or ExecutionObserver()
        self._queue = input_queue if input_queue is not None else InputQueue()
        self._fsm = EngineStateMachine()
        self._plan: TaskPlan | None = None
        self._busy = False

    @property
    def session(self) -> Session:
        return self._session

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    @property
    def state(self) -> EngineState:
        return self._fsm.state

    @property
    def history(self) -> list[tuple[EngineState, EngineState]]:
        return self._fsm.history

    @property
    def plan(self) -> TaskPlan | None:
        return self._plan

    @property
    def input_queue(self) -> InputQueue:
        return self._queue

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def usage(self) -> UsageTotals | None:
        """Token usage of every model call this engine's collaborators made."""
        return self._brains.usage

    async def execute(self, goal: str, token: CancellationToken | None = None) -> EngineResult:
        """Run ``goal`` to a terminal state. Raises EngineBusyError if one is active."""
        if self._busy:
            raise EngineBusyError()
        self._busy = True
        self._fsm = EngineStateMachine()
        self._fsm.on_transition(lambda old, new, _meta: self._observer.on_state(old, new))
        self._plan = None
        usage = self._brains.usage
        start = usage.copy() if usage is not None else None
        try:
            result = await self._execute(goal, token or CancellationToken())
        finally:
            self._busy = False
        if usage is not None and start is not None:
            result.usage = usage.since(start)
        return result

    # ------------------------------------------------------------------
    # Top level
    # ------------------------------------------------------------------

    async def _execute(self, goal: str, token: CancellationToken) -> EngineResult:
        self._session.append_event(EventType.USER_GOAL, goal, message=goal)
        self._fsm.transition(EngineState.PLANNING)

        try:
            tasks = await self._make_plan(goal, token)
        except CancellationError as e:
            return self._finish_cancelled(goal, str(e), cycles=0)
        except PlanningError as e:
            logger.warning("planning failed: %s", e)
            self._session.append_event(EventType.PLAN_ERROR, str(e), message=str(e))
            self._observer.on_log(f"Planning failed: {e}", "error")
            self._fsm.transition(EngineState.FAILED)
            summary = build_local_summary(goal, self._session, "planning failed")
            self._observer.on_closeout(summary, "local")
            return EngineResult(
                state=EngineState.FAILED, reason="planning_failed", summary=summary, error=str(e),
            )

        plan = TaskPlan(tasks)
        self._plan = plan
        self._snapshot_all(plan)
        self._session.append_event(
            EventType.PLAN, f"Planned {len(plan.visible())} tasks",
            tasks=[t.to_dict() for t in plan.visible()],
        )
        self._observer.on_plan(plan.visible())
        self._fsm.transition(EngineState.CYCLING)

        cycles = 0
        try:
            stop, cycles = await self._cycle_loop(goal, plan, token)
        except CancellationError as e:
            stop = _Stop(EngineState.CANCELLED, str(e))

        if stop.state == EngineState.CANCELLED:
            return self._finish_cancelled(goal, stop.reason, cycles=cycles)
        return await self._close(goal, plan, stop, cycles, token)

    async def _make_plan(self, goal: str, token: CancellationToken) -> list[Task]:
        planner = self._brains.planner
        try:
            raw = await token.race(
                planner.plan(goal, self._session.summarize_memory(), self._session.cwd),
            )
        except CancellationError:
            raise
        except Exception as e:
            raise PlanningError(f"Planner call failed: {e}") from e
        try:
            return parse_plan(raw)
        except ContractError as e:
            raise PlanningError(str(e)) from e

    # ------------------------------------------------------------------
    # Cycles
    # ------------------------------------------------------------------

    async def _cycle_loop(
        self, goal: str, plan: TaskPlan, token: CancellationToken,
    ) -> tuple[_Stop, int]:
        max_cycles = self._settings.max_cycles
        cycles = 0
        while True:
            token.check()
            if not plan.remaining():
                return _Stop(EngineState.DONE, "completed"), cycles
            if cycles >= max_cycles:
                remaining = len(plan.remaining())
                logger.warning("cycle budget of %d exhausted with %d tasks left", max_cycles, remaining)
                self._observer.on_log(
                    f"Stopped after {max_cycles} cycles with {remaining} tasks remaining", "warning",
                )
                return _Stop(EngineState.DONE, "max_cycles"), cycles

            cycles += 1
            self._observer.on_cycle(cycles, max_cycles)
            try:
                directive = await self._run_cycle(goal, plan, cycles, token)
            except UserInputRequiredError as e:
                return self._failed(e, question=e.question), cycles
            except TaskExecutionError as e:
                return self._failed(e), cycles
            except CancellationError:
                raise
            except Exception as e:
                logger.exception("unexpected error in cycle %d", cycles)
                return self._failed(TaskExecutionError(f"Internal error: {e}")), cycles

            if directive == "cancel":
                return _Stop(EngineState.CANCELLED, "Cancelled by agent"), cycles

            adjusted = False
            if self._queue:
                self._fsm.transition(EngineState.ADJUSTING)
                outcome = await self._adjust(goal, plan, token)
                if outcome == "cancel":
                    return _Stop(EngineState.CANCELLED, "Cancelled by new input"), cycles
                adjusted = outcome == "updated"
                self._fsm.transition(EngineState.CYCLING)

            if directive == "done" and not adjusted:
                reason = "completed" if not plan.remaining() else "agent_done"
                return _Stop(EngineState.DONE, reason), cycles

    async def _run_cycle(
        self, goal: str, plan: TaskPlan, cycle: int, token: CancellationToken,
    ) -> str:
        """One agent turn. Returns the ``next`` directive."""
        remaining = plan.remaining()
        head = remaining[0]
        if head.type == TaskType.ASK_USER and head.status == TaskStatus.PENDING:
            await self._run_task(plan, head, token)
            return "continue"

        request = AgentRequest(
            goal=goal,
            remaining=remaining,
            transcript=self._session.transcript(),
            cwd=self._session.cwd,
            cycle=cycle,
            max_actions=self._settings.max_actions,
        )
        try:
            raw = await token.race(self._brains.agent.next_turn(request))
            turn = parse_agent_turn(raw)
        except CancellationError:
            raise
        except Exception as e:
            logger.warning("agent turn unusable in cycle %d, running next task directly: %s", cycle, e)
            self._session.append_event(EventType.AGENT_FALLBACK, f"Agent turn unusable: {e}")
            self._observer.on_log("Agent response unusable; running the next task directly", "warning")
            await self._run_next_directly(plan, token)
            return "continue"

        await self._apply_turn(plan, turn, cycle, token)
        if turn.next == "cancel":
            return "cancel"
        return "done" if turn.wants_stop else "continue"

    async def _apply_turn(
        self, plan: TaskPlan, turn: AgentTurn, cycle: int, token: CancellationToken,
    ) -> None:
        if turn.speak:
            self._session.append_event(EventType.AGENT_SAY, turn.speak)
            self._observer.on_agent_say(turn.speak)
        for draft in turn.plan_updates:
            merged = plan.upsert(draft.to_task())
            self._session.upsert_task_snapshot(merged)
        if turn.plan_updates:
            self._observer.on_plan(plan.visible())

        actions = turn.actions
        if len(actions) > self._settings.max_actions:
            logger.warning(
                "agent requested %d actions, running the first %d", len(actions), self._settings.max_actions,
            )
            actions = actions[: self._settings.max_actions]

        ran = 0
        targeted: list[str] = []
        for index, action in enumerate(actions, 1):
            token.check()
            target = plan.get(action.task_id) if action.task_id else None
            if target is not None and target.is_closeout:
                target = None
            task = action.to_task(f"c{cycle}-a{index}")
            if target is not None:
                task = task.with_fields(title=target.title or task.title)
                self._advance(plan, target, TaskStatus.RUNNING)
                if target.id not in targeted:
                    targeted.append(target.id)
            self._observer.on_task_start(task)
            try:
                detail = await self._handlers.run(task, token)
            except TaskExecutionError as e:
                if target is not None:
                    self._advance(plan, target, TaskStatus.FAILED)
                self._observer.on_task_failed(task, str(e))
                raise
            self._observer.on_task_done(task, detail)
            ran += 1

        completed = [task_id for task_id in turn.completed_tasks if self._mark_done(plan, task_id)]
        if ran and not turn.completed_tasks:
            if targeted:
                candidates = targeted
            else:
                first = next(
                    (t for t in plan.remaining() if t.status in (TaskStatus.RUNNING, TaskStatus.PENDING)),
                    None,
                )
                candidates = [first.id] if first is not None else []
            for task_id in candidates:
                if self._mark_done(plan, task_id):
                    logger.info("agent reported no completions; advancing %s", task_id)
                    completed.append(task_id)
        self._session.append_event(
            EventType.CYCLE, f"Cycle {cycle}: {ran} actions, {len(completed)} tasks done",
            cycle=cycle, actions=ran, completed=completed,
        )

    async def _run_next_directly(self, plan: TaskPlan, token: CancellationToken) -> None:
        token.check()
        task = plan.next_pending()
        if task is None:
            remaining = plan.remaining()
            if not remaining:
                return
            task = remaining[0]
        await self._run_task(plan, task, token)

    async def _run_task(self, plan: TaskPlan, task: Task, token: CancellationToken) -> None:
        """Run a plan task through its handler, bypassing the agent."""
        self._advance(plan, task, TaskStatus.RUNNING)
        self._observer.on_task_start(task)
        try:
            detail = await self._handlers.run(task, token)
        except TaskExecutionError as e:
            self._advance(plan, task, TaskStatus.FAILED)
            self._observer.on_task_failed(task, str(e))
            raise
        self._advance(plan, task, TaskStatus.DONE)
        self._observer.on_task_done(task, detail)

    # ------------------------------------------------------------------
    # Adjusting
    # ------------------------------------------------------------------

    async def _adjust(self, goal: str, plan: TaskPlan, token: CancellationToken) -> str:
        """Consume all queued input in one batch. Returns cancel/updated/ignored."""
        queued = self._queue.drain()
        if not queued:
            return "ignored"
        replanner = self._brains.replanner
        if replanner is None:
            logger.info("no re-planner configured, ignoring %d queued inputs", len(queued))
            return "ignored"

        try:
            raw = await token.race(replanner.adjust(goal, plan.visible(), queued))
            adjustment = parse_plan_adjustment(raw)
        except CancellationError:
            raise
        except Exception as e:
            logger.warning("plan adjustment ignored: %s", e)
            self._observer.on_log(f"Ignored plan adjustment: {e}", "warning")
            return "ignored"

        if isinstance(adjustment, CancelAdjustment):
            note = adjustment.note or "cancelled by new input"
            self._session.append_event(EventType.PLAN_ADJUSTED, f"Cancelled: {note}", inputs=queued)
            return "cancel"

        tasks = [draft.to_task() for draft in adjustment.tasks]
        plan.replace(tasks, carry_over=plan.done_ids())
        self._snapshot_all(plan)
        self._session.append_event(
            EventType.PLAN_ADJUSTED, f"Plan updated: {len(tasks)} tasks",
            inputs=queued, note=adjustment.note, tasks=[t.to_dict() for t in plan.visible()],
        )
        self._observer.on_plan(plan.visible())
        return "updated"

    # ------------------------------------------------------------------
    # Closing
    # ------------------------------------------------------------------

    async def _close(
        self, goal: str, plan: TaskPlan, stop: _Stop, cycles: int, token: CancellationToken,
    ) -> EngineResult:
        self._fsm.transition(EngineState.CLOSING)
        closeout = plan.closeout
        self._advance(plan, closeout, TaskStatus.RUNNING)
        if stop.state == EngineState.FAILED:
            outcome = f"failed: {stop.error}"
        elif stop.reason == "max_cycles":
            outcome = f"stopped after {cycles} cycles"
        else:
            outcome = "completed"
        result = await run_closeout(
            self._brains.closeout, goal, self._session,
            timeout=self._settings.closeout_timeout, token=token, outcome=outcome,
        )
        self._advance(plan, closeout, TaskStatus.DONE)
        self._session.append_event(EventType.CLOSEOUT, result.summary, source=result.source)
        self._observer.on_closeout(result.summary, result.source)

        completed = plan.count(TaskStatus.DONE)
        remaining = len(plan.remaining())
        if token.is_cancelled:
            self._fsm.transition(EngineState.CANCELLED)
            self._session.append_event(EventType.CANCELLED, token.reason or "cancelled")
            return EngineResult(
                state=EngineState.CANCELLED, reason=token.reason or "cancelled",
                summary=result.summary, summary_source=result.source,
                remaining=remaining, cycles=cycles, completed=completed,
            )
        if stop.state == EngineState.FAILED:
            self._fsm.transition(EngineState.FAILED)
            return EngineResult(
                state=EngineState.FAILED, reason=stop.reason, summary=result.summary,
                summary_source=result.source, error=stop.error, question=stop.question,
                remaining=remaining, cycles=cycles, completed=completed,
            )

        self._fsm.transition(EngineState.DONE)
        self._session.append_event(
            EventType.COMPLETED, f"Completed {completed} tasks",
            reason=stop.reason, remaining=remaining,
        )
        return EngineResult(
            state=EngineState.DONE, reason=stop.reason, summary=result.summary,
            summary_source=result.source, remaining=remaining, cycles=cycles, completed=completed,
        )

    def _finish_cancelled(self, goal: str, reason: str, *, cycles: int) -> EngineResult:
        self._fsm.transition(EngineState.CANCELLED)
        self._session.append_event(EventType.CANCELLED, reason)
        summary = build_local_summary(goal, self._session, f"cancelled ({reason})")
        self._observer.on_closeout(summary, "local")
        plan = self._plan
        return EngineResult(
            state=EngineState.CANCELLED,
            reason=reason,
            summary=summary,
            remaining=len(plan.remaining()) if plan else 0,
            cycles=cycles,
            completed=plan.count(TaskStatus.DONE) if plan else 0,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _failed(self, error: TaskExecutionError, *, question: str | None = None) -> _Stop:
        reason = "user_input_required" if question is not None else "task_failed"
        self._session.append_event(
            EventType.TASK_FAILED, str(error),
            task_id=error.task_id, error=question or str(error), category=str(error.category),
        )
        return _Stop(EngineState.FAILED, reason, error=str(error), question=question)

    def _advance(self, plan: TaskPlan, task: Task, status: TaskStatus) -> None:
        current = plan.get(task.id)
        if current is None or not can_advance(current.status, status):
            return
        if plan.set_status(task.id, status):
            self._session.upsert_task_snapshot(current)

    def _mark_done(self, plan: TaskPlan, task_id: str) -> bool:
        if not plan.mark_done(task_id):
            return False
        task = plan.get(task_id)
        if task is not None:
            self._session.upsert_task_snapshot(task)
        return True

    def _snapshot_all(self, plan: TaskPlan) -> None:
        for task in plan.visible():
            self._session.upsert_task_snapshot(task)
