"""Tests for the retry planner."""

from __future__ import annotations

import pytest

from taskcli.core.classifier import ClassificationContext
from taskcli.core.retry_planner import NO_DECISION_NOTE, RetryPlanner
from taskcli.types.command import (
    Classification,
    ClassificationStatus,
    RetryAction,
)
from tests.helpers.fakes import ScriptedRetry

_VERDICT = Classification(status=ClassificationStatus.ERROR, summary="exit 1", hint="retry with --force")
_CONTEXT = ClassificationContext(
    command="npm install", cwd="/repo", stdout_tail="", stderr_tail="ERESOLVE",
    exit_code=1, error="Command exited with code 1: ERESOLVE", timeout_kind=None, interactive=False,
)


class TestRetryPlanner:
    @pytest.mark.asyncio
    async def test_run_decision(self) -> None:
        backend = ScriptedRetry({"action": "run", "commands": ["npm install --legacy-peer-deps"]})
        decision = await RetryPlanner(backend).decide(_VERDICT, _CONTEXT)
        assert decision.action == RetryAction.RUN
        assert decision.commands == ["npm install --legacy-peer-deps"]

    @pytest.mark.asyncio
    async def test_request_carries_classification(self) -> None:
        backend = ScriptedRetry({"action": "abort", "note": "give up"})
        await RetryPlanner(backend).decide(_VERDICT, _CONTEXT)
        request = backend.calls[0]
        assert request["command"] == "npm install"
        assert request["classification"] == {
            "status": "error", "summary": "exit 1", "hint": "retry with --force",
        }

    @pytest.mark.asyncio
    async def test_ask_user_decision(self) -> None:
        backend = ScriptedRetry({"action": "ask_user", "question": "Which registry?"})
        decision = await RetryPlanner(backend).decide(_VERDICT, _CONTEXT)
        assert decision.action == RetryAction.ASK_USER
        assert decision.question == "Which registry?"

    @pytest.mark.asyncio
    async def test_run_with_no_commands_aborts(self) -> None:
        backend = ScriptedRetry({"action": "run", "commands": ["  "]})
        decision = await RetryPlanner(backend).decide(_VERDICT, _CONTEXT)
        assert decision.action == RetryAction.ABORT
        assert decision.note == NO_DECISION_NOTE

    @pytest.mark.asyncio
    async def test_garbage_aborts(self) -> None:
        decision = await RetryPlanner(ScriptedRetry("not json at all")).decide(_VERDICT, _CONTEXT)
        assert decision.action == RetryAction.ABORT
        assert decision.note == NO_DECISION_NOTE

    @pytest.mark.asyncio
    async def test_backend_error_aborts(self) -> None:
        decision = await RetryPlanner(ScriptedRetry(RuntimeError("503"))).decide(_VERDICT, _CONTEXT)
        assert decision.action == RetryAction.ABORT

    @pytest.mark.asyncio
    async def test_without_backend_aborts_with_summary(self) -> None:
        decision = await RetryPlanner().decide(_VERDICT, _CONTEXT)
        assert decision.action == RetryAction.ABORT
        assert decision.note == "exit 1"
