"""Tests for error hierarchy."""

from __future__ import annotations

import pytest

from taskcli.errors import (
    CancellationError,
    CloseoutTimeoutError,
    CommandError,
    ConfigurationError,
    ContractError,
    EngineBusyError,
    ErrorCategory,
    InvalidTransitionError,
    PlanningError,
    ProviderError,
    TaskCLIError,
    TaskExecutionError,
    UserInputRequiredError,
)


class TestErrorCategory:
    def test_values(self) -> None:
        assert ErrorCategory.PLANNING == "planning"
        assert ErrorCategory.COMMAND == "command"
        assert ErrorCategory.CANCELLATION == "cancellation"


class TestHierarchy:
    @pytest.mark.parametrize("error", [
        PlanningError("no plan"),
        TaskExecutionError("failed"),
        UserInputRequiredError("which one?"),
        CancellationError(),
        CloseoutTimeoutError(1.5),
        ContractError("plan", "missing tasks"),
        ProviderError("rate limited"),
        ConfigurationError("bad"),
        InvalidTransitionError("idle", "done"),
        EngineBusyError(),
    ])
    def test_all_are_taskcli_errors(self, error: TaskCLIError) -> None:
        assert isinstance(error, TaskCLIError)

    def test_user_input_is_a_task_failure(self) -> None:
        error = UserInputRequiredError("Which template?", task_id="t3")
        assert isinstance(error, TaskExecutionError)
        assert error.question == "Which template?"
        assert error.task_id == "t3"
        assert str(error) == "User input required"


class TestDetails:
    def test_categories(self) -> None:
        assert PlanningError("x").category == ErrorCategory.PLANNING
        assert TaskExecutionError("x").category == ErrorCategory.TASK
        assert CancellationError().category == ErrorCategory.CANCELLATION
        assert ConfigurationError("x").category == ErrorCategory.CONFIGURATION

    def test_command_error_is_a_task_failure(self) -> None:
        error = CommandError("exit 2", command="make", task_id="t1")
        assert isinstance(error, TaskExecutionError)
        assert error.category == ErrorCategory.COMMAND
        assert error.command == "make"

    def test_closeout_timeout_message(self) -> None:
        error = CloseoutTimeoutError(30)
        assert str(error) == "Closeout timed out after 30.0s"
        assert error.timeout == 30

    def test_contract_error_keeps_payload(self) -> None:
        error = ContractError("retry decision", "unknown action", payload={"action": "pray"})
        assert str(error) == "Invalid retry decision payload: unknown action"
        assert error.payload == {"action": "pray"}

    def test_transition_message(self) -> None:
        error = InvalidTransitionError("done", "running", subject="task status")
        assert str(error) == "Invalid task status transition: done -> running"

    def test_provider_error(self) -> None:
        error = ProviderError("boom", provider="anthropic", status_code=500)
        assert error.retryable
        assert error.status_code == 500

    def test_repr(self) -> None:
        assert repr(ConfigurationError("bad")).startswith("ConfigurationError('bad', category=")
