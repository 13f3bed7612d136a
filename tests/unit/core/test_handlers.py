"""Tests for the per-task-type handlers."""

from __future__ import annotations

from pathlib import Path

import httpx
import pytest

from taskcli.core.adaptive import AdaptiveCommandExecutor, ConfirmPolicy
from taskcli.core.cancellation import CancellationToken
from taskcli.core.classifier import CommandClassifier
from taskcli.core.handlers import TaskHandlers
from taskcli.core.observer import RecordingObserver
from taskcli.core.retry_planner import RetryPlanner
from taskcli.errors import (
    CancellationError,
    CommandError,
    ErrorCategory,
    TaskExecutionError,
    UserInputRequiredError,
)
from taskcli.session import Session
from taskcli.tools.web_search import WebSearcher
from taskcli.types.command import FailureKind, RunResult
from taskcli.types.events import EventType
from taskcli.types.task import Task, TaskType
from tests.helpers.fakes import FakeContent, FakeRunner, ScriptedRetry


def _handlers(
    session: Session,
    runner: FakeRunner | None = None,
    **kwargs: object,
) -> TaskHandlers:
    executor = AdaptiveCommandExecutor(
        runner or FakeRunner(),  # type: ignore[arg-type]
        CommandClassifier(),
        RetryPlanner(ScriptedRetry({"action": "abort", "note": "Cannot recover"})),
    )
    return TaskHandlers(session, executor, **kwargs)  # type: ignore[arg-type]


# =============================================================================
# Files
# =============================================================================


class TestFileTasks:
    @pytest.mark.asyncio
    async def test_read_file(self, session: Session, tmp_workdir: Path) -> None:
        (tmp_workdir / "notes.txt").write_text("hello\n")
        task = Task(id="t1", type=TaskType.READ_FILE, path="notes.txt")
        detail = await _handlers(session).run(task, CancellationToken())
        assert detail == "hello\n"
        event = session.history[-1]
        assert event.type == EventType.READ_FILE
        assert event.payload["output"] == "hello\n"

    @pytest.mark.asyncio
    async def test_read_missing_file_fails(self, session: Session) -> None:
        task = Task(id="t1", type=TaskType.READ_FILE, path="nope.txt")
        with pytest.raises(TaskExecutionError, match="File not found"):
            await _handlers(session).run(task, CancellationToken())
        assert session.history == ()

    @pytest.mark.asyncio
    async def test_write_file_creates_parents(self, session: Session, tmp_workdir: Path) -> None:
        task = Task(id="t1", type=TaskType.WRITE_FILE, path="docs/README.md", content="# Title\n")
        await _handlers(session).run(task, CancellationToken())
        assert (tmp_workdir / "docs" / "README.md").read_text() == "# Title\n"
        assert session.history[-1].payload["bytes"] == len(b"# Title\n")

    @pytest.mark.asyncio
    async def test_write_file_generates_from_content_prompt(self, session: Session, tmp_workdir: Path) -> None:
        content = FakeContent("print('hi')\n")
        task = Task(id="t1", type=TaskType.WRITE_FILE, path="hi.py", content_prompt="a greeting script")
        await _handlers(session, content=content).run(task, CancellationToken())
        assert (tmp_workdir / "hi.py").read_text() == "print('hi')\n"
        assert content.generated == [("a greeting script", "hi.py")]

    @pytest.mark.asyncio
    async def test_write_file_without_content(self, session: Session) -> None:
        task = Task(id="t1", type=TaskType.WRITE_FILE, path="empty.txt")
        with pytest.raises(TaskExecutionError, match="No content to write."):
            await _handlers(session).run(task, CancellationToken())

    @pytest.mark.asyncio
    async def test_generate_file(self, session: Session, tmp_workdir: Path) -> None:
        content = FakeContent("body\n")
        task = Task(id="g", type=TaskType.GENERATE_FILE_FROM_PROMPT, path="out.txt", prompt="write a body")
        detail = await _handlers(session, content=content).run(task, CancellationToken())
        assert detail.startswith("Generated ")
        assert (tmp_workdir / "out.txt").read_text() == "body\n"
        assert session.history[-1].type == EventType.WRITE_FILE

    @pytest.mark.asyncio
    async def test_generate_without_generator(self, session: Session) -> None:
        task = Task(id="g", type=TaskType.GENERATE_FILE_FROM_PROMPT, path="out.txt", prompt="x")
        with pytest.raises(TaskExecutionError, match="No content generator"):
            await _handlers(session).run(task, CancellationToken())

    @pytest.mark.asyncio
    async def test_edit_file(self, session: Session, tmp_workdir: Path) -> None:
        (tmp_workdir / "app.py").write_text("x = 1\n")
        content = FakeContent()
        task = Task(id="e", type=TaskType.EDIT_FILE, path="app.py", instruction="add y")
        await _handlers(session, content=content).run(task, CancellationToken())
        assert (tmp_workdir / "app.py").read_text() == "x = 1\n# add y\n"
        assert content.edits == [("app.py", "x = 1\n", "add y")]
        assert session.history[-1].type == EventType.EDIT_FILE

    @pytest.mark.asyncio
    async def test_missing_field(self, session: Session) -> None:
        task = Task(id="e", type=TaskType.EDIT_FILE, path="app.py")
        with pytest.raises(TaskExecutionError, match="missing 'instruction'"):
            await _handlers(session, content=FakeContent()).run(task, CancellationToken())


# =============================================================================
# Commands
# =============================================================================


class TestRunCommand:
    @pytest.mark.asyncio
    async def test_success_records_event(self, session: Session) -> None:
        runner = FakeRunner(RunResult(ok=True, stdout="built\n", code=0))
        observer = RecordingObserver()
        task = Task(id="c", type=TaskType.RUN_COMMAND, command="make", confirm=False)
        detail = await _handlers(session, runner, observer=observer).run(task, CancellationToken())
        assert detail == "built"
        event = session.history[-1]
        assert event.summary == "Ran: make"
        assert event.payload["commands"] == ["make"]
        assert observer.hooks("output") == [("stdout", "built\n")]

    @pytest.mark.asyncio
    async def test_task_cwd_is_resolved(self, session: Session, tmp_workdir: Path) -> None:
        task = Task(id="c", type=TaskType.RUN_COMMAND, command="ls", cwd="sub", confirm=False)
        await _handlers(session).run(task, CancellationToken())
        assert session.history[-1].payload["cwd"] == str((tmp_workdir / "sub").resolve())

    @pytest.mark.asyncio
    async def test_failure_raises_command_error(self, session: Session) -> None:
        failed = RunResult(ok=False, stderr="boom", code=3, error="Command exited with code 3: boom",
                           failure=FailureKind.EXIT_CODE)
        task = Task(id="c", type=TaskType.RUN_COMMAND, command="false", confirm=False)
        with pytest.raises(CommandError) as exc_info:
            await _handlers(session, FakeRunner(failed)).run(task, CancellationToken())
        assert exc_info.value.category == ErrorCategory.COMMAND
        assert exc_info.value.command == "false"
        assert "Cannot recover" in str(exc_info.value)
        assert "exited with code 3" in str(exc_info.value)
        assert session.history[-1].summary == "Failed: false"

    @pytest.mark.asyncio
    async def test_declined_command(self, session: Session) -> None:
        async def deny(command: str) -> bool:
            return False

        runner = FakeRunner()
        task = Task(id="c", type=TaskType.RUN_COMMAND, command="rm -rf build")
        handlers = _handlers(session, runner, policy=ConfirmPolicy(confirm=deny))
        with pytest.raises(TaskExecutionError, match="Declined by user"):
            await handlers.run(task, CancellationToken())
        assert runner.commands == []

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, session: Session) -> None:
        token = CancellationToken()
        token.cancel("stop")
        task = Task(id="c", type=TaskType.RUN_COMMAND, command="make")
        with pytest.raises(CancellationError):
            await _handlers(session).run(task, token)
        assert session.history == ()


# =============================================================================
# Web search and user questions
# =============================================================================


def _search_transport(payload: dict[str, object]) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=payload)

    return httpx.MockTransport(handler)


class TestSearchAndAsk:
    @pytest.mark.asyncio
    async def test_search_web(self, session: Session) -> None:
        searcher = WebSearcher(transport=_search_transport({
            "RelatedTopics": [
                {"FirstURL": "https://www.python-httpx.org", "Text": "HTTPX - A next-generation HTTP client"},
            ],
        }))
        task = Task(id="s", type=TaskType.SEARCH_WEB, query="httpx")
        try:
            detail = await _handlers(session, searcher=searcher).run(task, CancellationToken())
        finally:
            await searcher.close()
        assert "HTTPX - https://www.python-httpx.org" in detail
        assert session.history[-1].payload["results"][0]["title"] == "HTTPX"

    @pytest.mark.asyncio
    async def test_search_http_error(self, session: Session) -> None:
        searcher = WebSearcher(transport=httpx.MockTransport(lambda request: httpx.Response(503)))
        task = Task(id="s", type=TaskType.SEARCH_WEB, query="httpx")
        try:
            with pytest.raises(TaskExecutionError, match="HTTP 503"):
                await _handlers(session, searcher=searcher).run(task, CancellationToken())
        finally:
            await searcher.close()

    @pytest.mark.asyncio
    async def test_search_without_searcher(self, session: Session) -> None:
        task = Task(id="s", type=TaskType.SEARCH_WEB, query="httpx")
        with pytest.raises(TaskExecutionError, match="not configured"):
            await _handlers(session).run(task, CancellationToken())

    @pytest.mark.asyncio
    async def test_ask_user(self, session: Session) -> None:
        task = Task(id="q", type=TaskType.ASK_USER, questions=["Which branch?", " ", "Which remote?"])
        with pytest.raises(UserInputRequiredError) as exc_info:
            await _handlers(session).run(task, CancellationToken())
        assert exc_info.value.question == "Which branch?\nWhich remote?"
        assert session.history[-1].type == EventType.ASK_USER

    @pytest.mark.asyncio
    async def test_ask_user_falls_back_to_prompt(self, session: Session) -> None:
        task = Task(id="q", type=TaskType.ASK_USER, prompt="Which license?")
        with pytest.raises(UserInputRequiredError) as exc_info:
            await _handlers(session).run(task, CancellationToken())
        assert exc_info.value.question == "Which license?"
