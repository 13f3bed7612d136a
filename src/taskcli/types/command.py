"""Command execution types.

Covers a single physical process run (:class:`RunResult`), the verdict
on why it failed (:class:`Classification`), the chosen next move
(:class:`RetryDecision`) and the outcome of one logical command after
the retry round (:class:`CommandOutcome`).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum


class TimeoutKind(StrEnum):
    """Which timer ended the process."""

    IDLE = "idle"
    HARD = "hard"


class FailureKind(StrEnum):
    """Why a run did not succeed."""

    NONE = "none"
    EXIT_CODE = "exit_code"
    NOT_FOUND = "not_found"
    INVALID_CWD = "invalid_cwd"
    SPAWN_ERROR = "spawn_error"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


@dataclass(frozen=True, slots=True)
class RunResult:
    """Result of exactly one process invocation. Never mutated."""

    ok: bool
    stdout: str = ""
    stderr: str = ""
    code: int | None = None
    error: str | None = None
    cancelled: bool = False
    timeout_kind: TimeoutKind | None = None
    failure: FailureKind = FailureKind.NONE
    duration: float = 0.0

    @property
    def combined_tail(self) -> str:
        return f"{self.stdout[-2000:]}\n{self.stderr[-2000:]}"

    @property
    def spawned(self) -> bool:
        return self.failure not in (FailureKind.INVALID_CWD, FailureKind.SPAWN_ERROR)


class ClassificationStatus(StrEnum):
    INTERACTIVE = "interactive"
    ERROR = "error"
    STUCK = "stuck"


@dataclass(frozen=True, slots=True)
class Classification:
    """Verdict on why a command failed or stalled."""

    status: ClassificationStatus
    summary: str = ""
    hint: str = ""
    source: str = "model"


class RetryAction(StrEnum):
    RUN = "run"
    ASK_USER = "ask_user"
    ABORT = "abort"


@dataclass(frozen=True, slots=True)
class RetryDecision:
    """The chosen next move after a classification."""

    action: RetryAction
    commands: list[str] = field(default_factory=list)
    question: str | None = None
    note: str | None = None

    @classmethod
    def abort(cls, note: str) -> RetryDecision:
        return cls(action=RetryAction.ABORT, note=note)


class CommandStatus(StrEnum):
    """Terminal states of the adaptive command state machine."""

    OK = "ok"
    NEEDS_INPUT = "needs_input"
    ABORTED = "aborted"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True, slots=True)
class CommandOutcome:
    """Outcome of one logical command, including any replacement runs."""

    status: CommandStatus
    stdout: str = ""
    stderr: str = ""
    error: str | None = None
    question: str | None = None
    note: str | None = None
    commands_run: tuple[str, ...] = ()
    classification: Classification | None = None

    @property
    def ok(self) -> bool:
        return self.status == CommandStatus.OK

    @property
    def cancelled(self) -> bool:
        return self.status == CommandStatus.CANCELLED
