"""taskcli error hierarchy."""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class ErrorCategory(StrEnum):
    """Category of error for classification and handling."""

    PLANNING = "planning"
    TASK = "task"
    COMMAND = "command"
    CANCELLATION = "cancellation"
    CONTRACT = "contract"
    CLOSEOUT = "closeout"
    PROVIDER = "provider"
    CONFIGURATION = "configuration"
    INTERNAL = "internal"


class TaskCLIError(Exception):
    """Base error for all taskcli exceptions."""

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory = ErrorCategory.INTERNAL,
        retryable: bool = False,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.category = category
        self.retryable = retryable
        self.details: dict[str, Any] = details or {}

    def __repr__(self) -> str:
        return f"{type(self).__name__}({str(self)!r}, category={self.category!r})"


class PlanningError(TaskCLIError):
    """The planner returned no usable task list. Nothing has run yet."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        super().__init__(message, category=ErrorCategory.PLANNING, **kwargs)


class TaskExecutionError(TaskCLIError):
    """A single task (or agent action) failed; the run stops here."""

    def __init__(
        self,
        message: str,
        *,
        task_id: str | None = None,
        **kwargs: Any,
    ) -> None:
        kwargs.setdefault("category", ErrorCategory.TASK)
        super().__init__(message, **kwargs)
        self.task_id = task_id


class UserInputRequiredError(TaskExecutionError):
    """The run cannot continue without a human decision."""

    def __init__(self, question: str, *, task_id: str | None = None) -> None:
        super().__init__("User input required", task_id=task_id)
        self.question = question


class CommandError(TaskExecutionError):
    """A shell command failed after the bounded retry sequence."""

    def __init__(self, message: str, *, command: str = "", **kwargs: Any) -> None:
        kwargs.setdefault("category", ErrorCategory.COMMAND)
        super().__init__(message, **kwargs)
        self.command = command


class CancellationError(TaskCLIError):
    """Operation was cancelled by user or system."""

    def __init__(self, message: str = "Operation cancelled") -> None:
        super().__init__(message, category=ErrorCategory.CANCELLATION, retryable=False)


class CloseoutTimeoutError(TaskCLIError):
    """The closing summary call did not answer in time."""

    def __init__(self, timeout: float) -> None:
        super().__init__(
            f"Closeout timed out after {timeout:.1f}s",
            category=ErrorCategory.CLOSEOUT,
            retryable=False,
        )
        self.timeout = timeout


class ContractError(TaskCLIError):
    """An external collaborator returned a payload that does not fit its contract."""

    def __init__(self, contract: str, message: str, *, payload: Any = None) -> None:
        super().__init__(f"Invalid {contract} payload: {message}", category=ErrorCategory.CONTRACT)
        self.contract = contract
        self.payload = payload


class ProviderError(TaskCLIError):
    """Error from an LLM provider (rate limit, network, auth)."""

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        status_code: int | None = None,
        retryable: bool = True,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, category=ErrorCategory.PROVIDER, retryable=retryable, **kwargs)
        self.provider = provider
        self.status_code = status_code


class ConfigurationError(TaskCLIError):
    """Invalid or missing configuration."""

    def __init__(self, message: str) -> None:
        super().__init__(message, category=ErrorCategory.CONFIGURATION, retryable=False)


class InvalidTransitionError(TaskCLIError):
    """Raised when a state or status transition is not allowed."""

    def __init__(self, from_state: str, to_state: str, *, subject: str = "state") -> None:
        super().__init__(f"Invalid {subject} transition: {from_state} -> {to_state}")
        self.from_state = from_state
        self.to_state = to_state


class EngineBusyError(TaskCLIError):
    """A second goal was started while one is still executing."""

    def __init__(self) -> None:
        super().__init__("An execution is already active for this session")
