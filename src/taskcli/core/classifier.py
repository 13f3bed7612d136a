"""Command failure classification.

Decides whether a failed or stalled run is ``interactive``, ``error`` or
``stuck``. Local evidence is checked first (idle timeout, prompt-looking
output); only when that is inconclusive is the external classifier
consulted.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from taskcli.contracts import parse_classification
from taskcli.errors import CancellationError, TaskCLIError
from taskcli.types.command import (
    Classification,
    ClassificationStatus,
    RunResult,
    TimeoutKind,
)

if TYPE_CHECKING:
    from taskcli.brains.base import ClassifierBackend
    from taskcli.core.cancellation import CancellationToken

logger = logging.getLogger(__name__)

TAIL_CHARS = 2000

# Output shapes that mean the process is sitting on a prompt
INTERACTIVE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\?\s.*(yes|no|y/n|No / Yes|Yes / No)", re.IGNORECASE),
    re.compile(r"\(y/n\)\s*$", re.IGNORECASE | re.MULTILINE),
    re.compile(r"Would you like to", re.IGNORECASE),
    re.compile(r"Select a package manager", re.IGNORECASE),
    re.compile(r"Enter .*:"),
    re.compile(r"Password:", re.IGNORECASE),
    re.compile(r"Press Enter to continue", re.IGNORECASE),
    re.compile(r"›\s"),
)

_NON_INTERACTIVE_HINT = (
    "Re-run with non-interactive flags (for example --yes, -y or --no-input) "
    "or provide the answers up front."
)


@dataclass(frozen=True, slots=True)
class ClassificationContext:
    """The bounded view of a run handed to external collaborators."""

    command: str
    cwd: str
    stdout_tail: str
    stderr_tail: str
    exit_code: int | None
    error: str | None
    timeout_kind: str | None
    interactive: bool

    @classmethod
    def from_run(cls, result: RunResult, command: str, cwd: str) -> ClassificationContext:
        return cls(
            command=command,
            cwd=cwd,
            stdout_tail=result.stdout[-TAIL_CHARS:],
            stderr_tail=result.stderr[-TAIL_CHARS:],
            exit_code=result.code,
            error=result.error,
            timeout_kind=str(result.timeout_kind) if result.timeout_kind else None,
            interactive=detect_interactive(result),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "command": self.command,
            "cwd": self.cwd,
            "stdoutTail": self.stdout_tail,
            "stderrTail": self.stderr_tail,
            "exitCode": self.exit_code,
            "error": self.error,
            "timeoutKind": self.timeout_kind,
            "interactive": self.interactive,
        }


def looks_interactive(text: str) -> bool:
    """Whether ``text`` contains a known prompt shape."""
    return any(p.search(text) for p in INTERACTIVE_PATTERNS)


def detect_interactive(result: RunResult) -> bool:
    """Local verdict: idle timeout, or prompt text in the output tail."""
    if result.timeout_kind == TimeoutKind.IDLE:
        return True
    return looks_interactive(result.combined_tail)


def default_classification(result: RunResult) -> Classification:
    """What to assume when the external classifier gives no usable answer."""
    if result.timeout_kind == TimeoutKind.HARD:
        return Classification(
            status=ClassificationStatus.STUCK,
            summary=result.error or "Command exceeded its time limit",
            hint="Split the work into smaller steps or raise the hard timeout.",
            source="default",
        )
    return Classification(
        status=ClassificationStatus.ERROR,
        summary=result.error or "Command failed",
        hint="",
        source="default",
    )


class CommandClassifier:
    """Local heuristics first, then the external classification call."""

    def __init__(self, backend: ClassifierBackend | None = None) -> None:
        self._backend = backend

    async def classify(
        self,
        result: RunResult,
        command: str,
        cwd: str,
        *,
        token: CancellationToken | None = None,
    ) -> Classification:
        context = ClassificationContext.from_run(result, command, cwd)
        if result.timeout_kind == TimeoutKind.IDLE:
            return Classification(
                status=ClassificationStatus.INTERACTIVE,
                summary="Command went quiet and appears to be waiting for input",
                hint=_NON_INTERACTIVE_HINT,
                source="local",
            )
        if context.interactive:
            return Classification(
                status=ClassificationStatus.INTERACTIVE,
                summary="Command appears to be waiting for input",
                hint=_NON_INTERACTIVE_HINT,
                source="local",
            )
        if self._backend is None:
            return default_classification(result)

        try:
            call = self._backend.classify(context.to_dict())
            raw = await (token.race(call) if token is not None else call)
            return parse_classification(raw)
        except CancellationError:
            raise
        except TaskCLIError as e:
            logger.warning("classifier answer unusable, using default: %s", e)
        except Exception:
            logger.exception("classifier call failed, using default")
        return default_classification(result)
