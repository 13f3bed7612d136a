"""Adaptive command execution.

One logical command goes through::

    RUNNING -> OK
            -> CLASSIFYING -> DECIDING -> run      -> RUNNING (replacements) -> OK | FAILED
                                       -> ask_user -> NEEDS_INPUT
                                       -> abort    -> ABORTED

There is exactly one classify+decide round per original failure. When a
replacement command fails, that failure is returned as it is.
Cancellation at any point ends in CANCELLED and skips classification.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from taskcli.core.classifier import ClassificationContext, CommandClassifier
from taskcli.core.process_runner import ProcessRunner
from taskcli.core.retry_planner import RetryPlanner
from taskcli.errors import CancellationError
from taskcli.types.command import (
    Classification,
    CommandOutcome,
    CommandStatus,
    RetryAction,
    RunResult,
)

if TYPE_CHECKING:
    from taskcli.core.cancellation import CancellationToken

logger = logging.getLogger(__name__)

ConfirmCallback = Callable[[str], Awaitable[bool]]
OutputCallback = Callable[[str, str], None]


class CommandPhase(StrEnum):
    """Phases of the per-command state machine, for observers and logs."""

    RUNNING = "running"
    CLASSIFYING = "classifying"
    DECIDING = "deciding"
    RETRYING = "retrying"


@dataclass(slots=True)
class ConfirmPolicy:
    """Whether commands may run without asking first."""

    auto_confirm: bool = False
    confirm: ConfirmCallback | None = None

    def env(self) -> dict[str, str]:
        return {"npm_config_yes": "true"} if self.auto_confirm else {}

    async def approve(self, command: str, requested: bool | None = None) -> bool:
        """``requested`` is the task's own ``confirm`` flag (unset means ask)."""
        if self.auto_confirm or requested is False:
            return True
        if self.confirm is None:
            logger.warning("About to run: %s", command)
            return True
        return await self.confirm(command)


def _cancelled(result: RunResult | None, commands: list[str], reason: str) -> CommandOutcome:
    return CommandOutcome(
        status=CommandStatus.CANCELLED,
        stdout=result.stdout if result else "",
        stderr=result.stderr if result else "",
        error=reason,
        commands_run=tuple(commands),
    )


class AdaptiveCommandExecutor:
    """Process runner + classifier + retry planner as one bounded retry loop."""

    def __init__(
        self,
        runner: ProcessRunner,
        classifier: CommandClassifier,
        planner: RetryPlanner,
        *,
        on_phase: Callable[[str, CommandPhase], None] | None = None,
    ) -> None:
        self._runner = runner
        self._classifier = classifier
        self._planner = planner
        self._on_phase = on_phase

    async def execute(
        self,
        command: str,
        cwd: str,
        policy: ConfirmPolicy | None = None,
        *,
        token: CancellationToken | None = None,
        confirm: bool | None = None,
        on_output: OutputCallback | None = None,
    ) -> CommandOutcome:
        policy = policy or ConfirmPolicy()
        commands_run: list[str] = []

        if token is not None and token.is_cancelled:
            return _cancelled(None, commands_run, token.reason)
        approval = policy.approve(command, confirm)
        if token is None:
            approved = await approval
        else:
            try:
                approved = await token.race(approval)
            except CancellationError:
                return _cancelled(None, commands_run, token.reason)
        if not approved:
            return CommandOutcome(
                status=CommandStatus.ABORTED,
                error="Declined by user",
                note="Declined by user",
            )

        self._phase(command, CommandPhase.RUNNING)
        result = await self._run(command, cwd, policy, token, on_output)
        commands_run.append(command)

        if result.cancelled:
            return _cancelled(result, commands_run, result.error or "Cancelled")
        if result.ok:
            return CommandOutcome(
                status=CommandStatus.OK,
                stdout=result.stdout,
                stderr=result.stderr,
                commands_run=tuple(commands_run),
            )
        if not result.spawned:
            return CommandOutcome(
                status=CommandStatus.FAILED,
                error=result.error,
                commands_run=tuple(commands_run),
            )

        try:
            self._phase(command, CommandPhase.CLASSIFYING)
            classification = await self._classifier.classify(result, command, cwd, token=token)
            logger.info(
                "classified %r as %s (%s)", command, classification.status, classification.source,
            )
            self._phase(command, CommandPhase.DECIDING)
            context = ClassificationContext.from_run(result, command, cwd)
            decision = await self._planner.decide(classification, context, token=token)
        except CancellationError as e:
            return _cancelled(result, commands_run, str(e))

        if decision.action == RetryAction.ASK_USER:
            return CommandOutcome(
                status=CommandStatus.NEEDS_INPUT,
                stdout=result.stdout,
                stderr=result.stderr,
                error=result.error,
                question=decision.question or "Additional details required.",
                commands_run=tuple(commands_run),
                classification=classification,
            )
        if decision.action == RetryAction.ABORT:
            return CommandOutcome(
                status=CommandStatus.ABORTED,
                stdout=result.stdout,
                stderr=result.stderr,
                error=result.error,
                note=decision.note or classification.summary or None,
                commands_run=tuple(commands_run),
                classification=classification,
            )
        return await self._run_replacements(
            decision.commands, cwd, policy, token, on_output, commands_run, classification,
        )

    async def _run_replacements(
        self,
        commands: list[str],
        cwd: str,
        policy: ConfirmPolicy,
        token: CancellationToken | None,
        on_output: OutputCallback | None,
        commands_run: list[str],
        classification: Classification,
    ) -> CommandOutcome:
        last: RunResult | None = None
        for replacement in commands:
            if token is not None and token.is_cancelled:
                return _cancelled(last, commands_run, token.reason)
            logger.info("running replacement command: %s", replacement)
            self._phase(replacement, CommandPhase.RETRYING)
            last = await self._run(replacement, cwd, policy, token, on_output)
            commands_run.append(replacement)
            if last.cancelled:
                return _cancelled(last, commands_run, last.error or "Cancelled")
            if not last.ok:
                return CommandOutcome(
                    status=CommandStatus.FAILED,
                    stdout=last.stdout,
                    stderr=last.stderr,
                    error=last.error,
                    commands_run=tuple(commands_run),
                    classification=classification,
                )
        return CommandOutcome(
            status=CommandStatus.OK,
            stdout=last.stdout if last else "",
            stderr=last.stderr if last else "",
            commands_run=tuple(commands_run),
            classification=classification,
        )

    async def _run(
        self,
        command: str,
        cwd: str,
        policy: ConfirmPolicy,
        token: CancellationToken | None,
        on_output: OutputCallback | None,
    ) -> RunResult:
        on_stdout = on_stderr = None
        if on_output is not None:
            def on_stdout(text: str) -> None:
                on_output("stdout", text)

            def on_stderr(text: str) -> None:
                on_output("stderr", text)

        return await self._runner.run(
            command,
            cwd=cwd,
            env=policy.env(),
            token=token,
            on_stdout=on_stdout,
            on_stderr=on_stderr,
        )

    def _phase(self, command: str, phase: CommandPhase) -> None:
        if self._on_phase is not None:
            self._on_phase(command, phase)
