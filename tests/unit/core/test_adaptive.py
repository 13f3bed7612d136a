"""Tests for the adaptive command executor."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from taskcli.core.adaptive import AdaptiveCommandExecutor, CommandPhase, ConfirmPolicy
from taskcli.core.cancellation import CancellationToken
from taskcli.core.classifier import CommandClassifier
from taskcli.core.process_runner import ProcessRunner
from taskcli.core.retry_planner import RetryPlanner
from taskcli.types.command import CommandStatus, FailureKind, RunResult, TimeoutKind
from tests.helpers.fakes import FakeRunner, ScriptedClassifier, ScriptedRetry

_FAIL = RunResult(ok=False, stderr="bad flag", code=2, error="Command exited with code 2: bad flag",
                  failure=FailureKind.EXIT_CODE)
_OK = RunResult(ok=True, stdout="fixed\n", code=0)


def _executor(
    runner: FakeRunner | ProcessRunner,
    classifier: ScriptedClassifier | None = None,
    retry: ScriptedRetry | None = None,
    **kwargs: object,
) -> AdaptiveCommandExecutor:
    return AdaptiveCommandExecutor(runner, CommandClassifier(classifier), RetryPlanner(retry), **kwargs)  # type: ignore[arg-type]


class TestSuccess:
    @pytest.mark.asyncio
    async def test_success_skips_classification(self) -> None:
        classifier = ScriptedClassifier({"status": "error"})
        retry = ScriptedRetry({"action": "abort"})
        outcome = await _executor(FakeRunner(_OK), classifier, retry).execute("make", "/tmp")
        assert outcome.status == CommandStatus.OK
        assert outcome.stdout == "fixed\n"
        assert outcome.commands_run == ("make",)
        assert classifier.call_count == 0
        assert retry.call_count == 0

    @pytest.mark.asyncio
    async def test_real_process(self, executor: AdaptiveCommandExecutor, tmp_workdir: Path) -> None:
        outcome = await executor.execute("echo real", str(tmp_workdir))
        assert outcome.ok
        assert outcome.stdout.strip() == "real"


class TestRetryRound:
    @pytest.mark.asyncio
    async def test_replacement_runs_after_one_round(self) -> None:
        runner = FakeRunner(_FAIL, _OK)
        classifier = ScriptedClassifier({"status": "error", "summary": "bad flag"})
        retry = ScriptedRetry({"action": "run", "commands": ["make --fixed"]})
        outcome = await _executor(runner, classifier, retry).execute("make --bad", "/tmp")
        assert outcome.status == CommandStatus.OK
        assert runner.commands == ["make --bad", "make --fixed"]
        assert classifier.call_count == 1
        assert retry.call_count == 1

    @pytest.mark.asyncio
    async def test_failed_replacement_is_final(self) -> None:
        second = RunResult(ok=False, stderr="still bad", code=1, error="Command exited with code 1: still bad",
                           failure=FailureKind.EXIT_CODE)
        runner = FakeRunner(_FAIL, second)
        classifier = ScriptedClassifier({"status": "error"})
        retry = ScriptedRetry({"action": "run", "commands": ["a", "b"]})
        outcome = await _executor(runner, classifier, retry).execute("make", "/tmp")
        assert outcome.status == CommandStatus.FAILED
        assert outcome.error == "Command exited with code 1: still bad"
        assert runner.commands == ["make", "a"]
        assert classifier.call_count == 1
        assert retry.call_count == 1

    @pytest.mark.asyncio
    async def test_multiple_replacements_run_in_order(self) -> None:
        runner = FakeRunner(_FAIL, _OK, _OK)
        retry = ScriptedRetry({"action": "run", "commands": ["step one", "step two"]})
        outcome = await _executor(runner, ScriptedClassifier({"status": "error"}), retry).execute("x", "/tmp")
        assert outcome.ok
        assert outcome.commands_run == ("x", "step one", "step two")

    @pytest.mark.asyncio
    async def test_ask_user(self) -> None:
        retry = ScriptedRetry({"action": "ask_user", "question": "Which port?"})
        outcome = await _executor(FakeRunner(_FAIL), ScriptedClassifier({"status": "error"}), retry).execute(
            "serve", "/tmp",
        )
        assert outcome.status == CommandStatus.NEEDS_INPUT
        assert outcome.question == "Which port?"

    @pytest.mark.asyncio
    async def test_abort(self) -> None:
        retry = ScriptedRetry({"action": "abort", "note": "not fixable"})
        outcome = await _executor(FakeRunner(_FAIL), ScriptedClassifier({"status": "error"}), retry).execute(
            "serve", "/tmp",
        )
        assert outcome.status == CommandStatus.ABORTED
        assert outcome.note == "not fixable"

    @pytest.mark.asyncio
    async def test_interactive_idle_reaches_retry_planner(self) -> None:
        idle = RunResult(ok=False, timeout_kind=TimeoutKind.IDLE, error="No output for 15s",
                         failure=FailureKind.TIMEOUT)
        classifier = ScriptedClassifier({"status": "error"})
        retry = ScriptedRetry({"action": "run", "commands": ["npx create-app --yes"]})
        runner = FakeRunner(idle, _OK)
        outcome = await _executor(runner, classifier, retry).execute("npx create-app", "/tmp")
        assert outcome.ok
        assert outcome.classification is not None
        assert outcome.classification.source == "local"
        assert classifier.call_count == 0
        assert retry.calls[0]["classification"]["status"] == "interactive"


class TestSpawnFailure:
    @pytest.mark.asyncio
    async def test_invalid_cwd_is_not_classified(self, tmp_path: Path) -> None:
        classifier = ScriptedClassifier({"status": "error"})
        retry = ScriptedRetry({"action": "run", "commands": ["x"]})
        executor = _executor(ProcessRunner(), classifier, retry)
        outcome = await executor.execute("echo hi", str(tmp_path / "nope"))
        assert outcome.status == CommandStatus.FAILED
        assert outcome.error is not None and outcome.error.startswith("Invalid working directory")
        assert classifier.call_count == 0
        assert retry.call_count == 0


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancelled_run_is_not_classified(self) -> None:
        cancelled = RunResult(ok=False, cancelled=True, error="Cancelled: user", failure=FailureKind.CANCELLED)
        classifier = ScriptedClassifier({"status": "error"})
        retry = ScriptedRetry({"action": "abort"})
        outcome = await _executor(FakeRunner(cancelled), classifier, retry).execute("sleep 9", "/tmp")
        assert outcome.status == CommandStatus.CANCELLED
        assert outcome.cancelled
        assert classifier.call_count == 0
        assert retry.call_count == 0

    @pytest.mark.asyncio
    async def test_cancelled_token_runs_nothing(self) -> None:
        token = CancellationToken()
        token.cancel("stop")
        runner = FakeRunner(_OK)
        outcome = await _executor(runner).execute("make", "/tmp", token=token)
        assert outcome.status == CommandStatus.CANCELLED
        assert runner.commands == []

    @pytest.mark.asyncio
    async def test_real_process_cancel(self, runner: ProcessRunner, tmp_workdir: Path) -> None:
        token = CancellationToken()
        asyncio.get_running_loop().call_later(0.2, token.cancel, "user")
        classifier = ScriptedClassifier({"status": "error"})
        outcome = await _executor(runner, classifier).execute("sleep 10", str(tmp_workdir), token=token)
        assert outcome.status == CommandStatus.CANCELLED
        assert classifier.call_count == 0


class TestConfirmation:
    @pytest.mark.asyncio
    async def test_declined(self) -> None:
        async def no(command: str) -> bool:
            return False

        runner = FakeRunner(_OK)
        outcome = await _executor(runner).execute("rm -rf build", "/tmp", ConfirmPolicy(confirm=no))
        assert outcome.status == CommandStatus.ABORTED
        assert outcome.error == "Declined by user"
        assert runner.commands == []

    @pytest.mark.asyncio
    async def test_confirm_false_skips_prompt(self) -> None:
        asked: list[str] = []

        async def ask(command: str) -> bool:
            asked.append(command)
            return False

        outcome = await _executor(FakeRunner(_OK)).execute(
            "ls", "/tmp", ConfirmPolicy(confirm=ask), confirm=False,
        )
        assert outcome.ok
        assert asked == []

    @pytest.mark.asyncio
    async def test_auto_confirm_sets_npm_yes(self) -> None:
        runner = FakeRunner(_OK)
        await _executor(runner).execute("npm init", "/tmp", ConfirmPolicy(auto_confirm=True))
        assert runner.envs[0]["npm_config_yes"] == "true"

    @pytest.mark.asyncio
    async def test_cancel_while_awaiting_answer(self) -> None:
        never: asyncio.Future[bool] = asyncio.get_running_loop().create_future()
        token = CancellationToken()

        async def wait_forever(command: str) -> bool:
            return await never

        async def cancel_soon() -> None:
            await asyncio.sleep(0.05)
            token.cancel("Stopped by user")

        runner = FakeRunner(_OK)
        canceller = asyncio.create_task(cancel_soon())
        outcome = await asyncio.wait_for(
            _executor(runner).execute("make", "/tmp", ConfirmPolicy(confirm=wait_forever), token=token),
            timeout=2,
        )
        await canceller
        assert outcome.status == CommandStatus.CANCELLED
        assert outcome.error == "Stopped by user"
        assert runner.commands == []


class TestPhases:
    @pytest.mark.asyncio
    async def test_phase_callback_order(self) -> None:
        phases: list[CommandPhase] = []
        executor = _executor(
            FakeRunner(_FAIL, _OK),
            ScriptedClassifier({"status": "error"}),
            ScriptedRetry({"action": "run", "commands": ["fixed"]}),
            on_phase=lambda command, phase: phases.append(phase),
        )
        await executor.execute("broken", "/tmp")
        assert phases == [
            CommandPhase.RUNNING, CommandPhase.CLASSIFYING, CommandPhase.DECIDING, CommandPhase.RETRYING,
        ]
