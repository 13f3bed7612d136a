"""Per-task-type handlers.

Each handler performs one task against the file system, the shell or
the network, appends one session event and returns a short text detail
for display. Failures raise :class:`TaskExecutionError` (or its
:class:`UserInputRequiredError` subclass); cancellation raises
:class:`CancellationError`. Effects already applied are never undone.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from taskcli.core.adaptive import AdaptiveCommandExecutor, ConfirmPolicy
from taskcli.errors import (
    CancellationError,
    CommandError,
    TaskCLIError,
    TaskExecutionError,
    UserInputRequiredError,
)
from taskcli.tools.file_ops import read_file, resolve_path, write_file
from taskcli.tools.web_search import DEFAULT_NUM_RESULTS, SearchError, WebSearcher
from taskcli.types.command import CommandStatus
from taskcli.types.events import EventType
from taskcli.types.task import Task, TaskType

if TYPE_CHECKING:
    from taskcli.brains.base import ContentGenerator
    from taskcli.core.cancellation import CancellationToken
    from taskcli.core.observer import ExecutionObserver
    from taskcli.session import Session

logger = logging.getLogger(__name__)

OUTPUT_TAIL_CHARS = 2000

Handler = Callable[[Task, "CancellationToken"], Awaitable[str]]


def _tail(text: str, limit: int = OUTPUT_TAIL_CHARS) -> str:
    return text if len(text) <= limit else text[-limit:]


class TaskHandlers:
    """Dispatches a task to the handler for its type."""

    def __init__(
        self,
        session: Session,
        executor: AdaptiveCommandExecutor,
        *,
        content: ContentGenerator | None = None,
        searcher: WebSearcher | None = None,
        policy: ConfirmPolicy | None = None,
        observer: ExecutionObserver | None = None,
    ) -> None:
        self._session = session
        self._executor = executor
        self._content = content
        self._searcher = searcher
        self._policy = policy or ConfirmPolicy()
        self._observer = observer
        self._handlers: dict[TaskType, Handler] = {
            TaskType.READ_FILE: self._read_file,
            TaskType.WRITE_FILE: self._write_file,
            TaskType.GENERATE_FILE_FROM_PROMPT: self._generate_file,
            TaskType.EDIT_FILE: self._edit_file,
            TaskType.RUN_COMMAND: self._run_command,
            TaskType.SEARCH_WEB: self._search_web,
            TaskType.ASK_USER: self._ask_user,
        }

    @property
    def cwd(self) -> str:
        return self._session.cwd

    async def run(self, task: Task, token: CancellationToken) -> str:
        token.check()
        handler = self._handlers.get(task.type)
        if handler is None:
            raise TaskExecutionError(f"No handler for task type: {task.type}", task_id=task.id)
        logger.debug("running %s task %s", task.type, task.id)
        try:
            return await handler(task, token)
        except (CancellationError, TaskExecutionError):
            raise
        except OSError as e:
            raise TaskExecutionError(f"{task.label}: {e}", task_id=task.id) from e
        except TaskCLIError as e:
            raise TaskExecutionError(str(e), task_id=task.id, category=e.category) from e

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    async def _read_file(self, task: Task, token: CancellationToken) -> str:
        path = self._require(task, task.path, "path")
        result = await read_file(self.cwd, path)
        self._session.append_event(
            EventType.READ_FILE, f"Read {path}",
            task_id=task.id, path=path, output=_tail(result.content),
        )
        return result.content

    async def _write_file(self, task: Task, token: CancellationToken) -> str:
        path = self._require(task, task.path, "path")
        content = task.content
        if not content and task.content_prompt:
            content = await self._generate(task.content_prompt, path, token)
        if not content:
            raise TaskExecutionError("No content to write.", task_id=task.id)
        written = await write_file(self.cwd, path, content)
        self._session.append_event(
            EventType.WRITE_FILE, f"Wrote {path}",
            task_id=task.id, path=path, bytes=len(content.encode()),
        )
        return f"Wrote {len(content)} chars to {written}"

    async def _generate_file(self, task: Task, token: CancellationToken) -> str:
        path = self._require(task, task.path, "path")
        prompt = self._require(task, task.prompt, "prompt")
        content = await self._generate(prompt, path, token)
        written = await write_file(self.cwd, path, content)
        self._session.append_event(
            EventType.WRITE_FILE, f"Generated {path}",
            task_id=task.id, path=path, bytes=len(content.encode()),
        )
        return f"Generated {written}"

    async def _edit_file(self, task: Task, token: CancellationToken) -> str:
        path = self._require(task, task.path, "path")
        instruction = self._require(task, task.instruction, "instruction")
        current = await read_file(self.cwd, path)
        generator = self._generator(task)
        updated = await token.race(generator.edit(path, current.content, instruction))
        await write_file(self.cwd, path, updated)
        self._session.append_event(
            EventType.EDIT_FILE, f"Edited {path}",
            task_id=task.id, path=path, bytes=len(updated.encode()),
        )
        return f"Edited {path}"

    async def _generate(self, instruction: str, path: str, token: CancellationToken) -> str:
        generator = self._generator()
        return await token.race(generator.generate(instruction, path))

    def _generator(self, task: Task | None = None) -> ContentGenerator:
        if self._content is None:
            raise TaskExecutionError(
                "No content generator configured", task_id=task.id if task else None,
            )
        return self._content

    # ------------------------------------------------------------------
    # Shell
    # ------------------------------------------------------------------

    async def _run_command(self, task: Task, token: CancellationToken) -> str:
        command = self._require(task, task.command, "command")
        cwd = str(resolve_path(task.cwd, self.cwd)) if task.cwd else self.cwd
        on_output = self._observer.on_command_output if self._observer else None

        outcome = await self._executor.execute(
            command, cwd, self._policy,
            token=token, confirm=task.confirm, on_output=on_output,
        )
        output = _tail(f"{outcome.stdout}{outcome.stderr}".strip())
        verb = "Ran" if outcome.ok else "Failed"
        self._session.append_event(
            EventType.RUN_COMMAND, f"{verb}: {command}",
            task_id=task.id, command=command, cwd=cwd, status=str(outcome.status),
            commands=list(outcome.commands_run), output=output, error=outcome.error,
        )

        if outcome.status == CommandStatus.OK:
            return output
        if outcome.status == CommandStatus.CANCELLED:
            raise CancellationError(outcome.error or "Command cancelled")
        if outcome.status == CommandStatus.NEEDS_INPUT:
            raise UserInputRequiredError(outcome.question or "Additional details required.", task_id=task.id)
        message = outcome.note or outcome.error or "Command failed"
        if outcome.error and outcome.note and outcome.error != outcome.note:
            message = f"{outcome.note} ({outcome.error})"
        raise CommandError(
            message,
            command=command,
            task_id=task.id,
            details={"command": command, "commands_run": list(outcome.commands_run)},
        )

    # ------------------------------------------------------------------
    # Web and user
    # ------------------------------------------------------------------

    async def _search_web(self, task: Task, token: CancellationToken) -> str:
        query = self._require(task, task.query, "query")
        if self._searcher is None:
            raise TaskExecutionError("Web search is not configured", task_id=task.id)
        try:
            results = await token.race(
                self._searcher.search(query, task.num_results or DEFAULT_NUM_RESULTS),
            )
        except SearchError as e:
            raise TaskExecutionError(str(e), task_id=task.id) from e
        lines = [f"{r.title} - {r.url}\n  {r.description}" for r in results]
        output = "\n".join(lines) or "No results."
        self._session.append_event(
            EventType.SEARCH_WEB, f"Searched: {query}",
            task_id=task.id, query=query, results=[r.to_dict() for r in results], output=_tail(output),
        )
        return output

    async def _ask_user(self, task: Task, token: CancellationToken) -> str:
        questions = [q for q in task.questions if q.strip()]
        if not questions and task.prompt:
            questions = [task.prompt]
        question = "\n".join(questions) or "Additional details required."
        self._session.append_event(
            EventType.ASK_USER, task.title or "Clarification needed",
            task_id=task.id, questions=questions,
        )
        raise UserInputRequiredError(question, task_id=task.id)

    @staticmethod
    def _require(task: Task, value: str | None, field_name: str) -> str:
        if not value:
            raise TaskExecutionError(f"{task.type} task is missing '{field_name}'", task_id=task.id)
        return value
