"""CLI entry point using Click."""

from __future__ import annotations

import asyncio
import contextlib
import signal
import sys
from collections.abc import Awaitable, Callable
from typing import Any

import click
from rich.console import Console
from rich.table import Table

from taskcli import __version__
from taskcli.builder import EngineBuilder, Runtime
from taskcli.config import RunContext, build_run_context, load_config
from taskcli.core.adaptive import ConfirmCallback
from taskcli.core.cancellation import CancellationTokenSource
from taskcli.core.engine import EngineResult
from taskcli.doctor import render_checks, run_checks
from taskcli.errors import TaskCLIError
from taskcli.logging_setup import get_logger, setup_logging
from taskcli.persistence.store import SessionStore
from taskcli.session import Session
from taskcli.ui import ConsoleObserver, plan_table, render_result

LineReader = Callable[[], Awaitable[str | None]]

SHELL_HELP = """\
Type a goal and press enter. While a goal runs, new lines are queued
and folded into the plan at the next cycle boundary.

  /status   show the current plan
  /session  show session id, counts and token usage
  /model    show the provider and model
  /cancel   cancel the running goal
  /exit     quit
"""


@click.command()
@click.argument("goal", nargs=-1)
@click.option("--headless", is_flag=True, help="Run one goal without the interactive shell")
@click.option("--cwd", "working_directory", type=click.Path(file_okay=False), default=None,
              help="Working directory for tasks and commands")
@click.option("--yes", "-y", "auto_confirm", is_flag=True, help="Run commands without asking first")
@click.option("--model", "-m", help="Model to use")
@click.option("--max-cycles", type=int, help="Maximum execution cycles per goal")
@click.option("--resume", default=None, help="Continue a stored session by ID")
@click.option("--list-sessions", is_flag=True, help="List stored sessions and exit")
@click.option("--doctor", is_flag=True, help="Check the environment and exit")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--json-logs", is_flag=True, help="Log as JSON lines on stderr")
@click.option("--version", is_flag=True, help="Show version and exit")
def main(
    goal: tuple[str, ...],
    headless: bool,
    working_directory: str | None,
    auto_confirm: bool,
    model: str | None,
    max_cycles: int | None,
    resume: str | None,
    list_sessions: bool,
    doctor: bool,
    debug: bool,
    json_logs: bool,
    version: bool,
) -> None:
    """taskcli - plan a goal into tasks and carry them out.

    Run with a goal for a single run, or without one for the interactive shell.
    """
    if version:
        click.echo(f"taskcli {__version__}")
        return

    # Build CLI args dict
    cli_args: dict[str, Any] = {}
    if working_directory:
        cli_args["working_directory"] = working_directory
    if auto_confirm:
        cli_args["auto_confirm"] = True
    if model:
        cli_args["model"] = model
    if max_cycles is not None:
        cli_args["max_cycles"] = max_cycles
    if headless:
        cli_args["headless"] = True
    if debug:
        cli_args["debug"] = True
    if json_logs:
        cli_args["json_logs"] = True

    console = Console()
    try:
        config = load_config(cli_args=cli_args)
    except TaskCLIError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)
    setup_logging(debug=config.debug, json_output=config.json_logs)

    if doctor:
        ok = render_checks(console, run_checks(config))
        sys.exit(0 if ok else 1)

    try:
        context = build_run_context(config)
    except TaskCLIError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)

    if list_sessions:
        asyncio.run(_list_sessions(context, console))
        return

    goal_text = " ".join(goal).strip()
    try:
        if goal_text or config.headless:
            if not goal_text:
                click.echo("A goal is required with --headless", err=True)
                sys.exit(1)
            code = asyncio.run(_run_goal(context, goal_text, resume, console))
        else:
            code = asyncio.run(_run_shell(context, resume, console))
    except TaskCLIError as e:
        get_logger().error("run_failed", error=str(e), category=str(e.category))
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    sys.exit(code)


# ----------------------------------------------------------------------
# Sessions
# ----------------------------------------------------------------------


async def _open_session(store: SessionStore, resume: str | None, context: RunContext) -> Session:
    if not resume:
        return Session(meta={"cwd": context.cwd, "model": context.config.model})
    session = await store.load_session(resume)
    if session is None:
        raise TaskCLIError(f"Session not found: {resume}")
    session.meta["cwd"] = context.cwd
    return session


async def _list_sessions(context: RunContext, console: Console) -> None:
    async with SessionStore(context.db_path) as store:
        records = await store.list_sessions()
    if not records:
        console.print("[dim]No stored sessions.[/dim]")
        return
    table = Table(title="Sessions")
    table.add_column("id", style="cyan")
    table.add_column("created", style="dim")
    table.add_column("status")
    table.add_column("events", justify="right")
    table.add_column("goal")
    for record in records:
        table.add_row(record.id, record.created_at, record.status, str(record.event_count), record.goal)
    console.print(table)


def _build(
    context: RunContext,
    session: Session,
    console: Console,
    *,
    confirm: ConfirmCallback | None = None,
) -> Runtime:
    return (
        EngineBuilder()
        .with_config(context.config)
        .with_session(session)
        .with_observer(ConsoleObserver(console))
        .with_confirm(confirm)
        .build()
    )


# ----------------------------------------------------------------------
# Single goal
# ----------------------------------------------------------------------


async def _tty_confirm(command: str) -> bool:
    return await asyncio.to_thread(click.confirm, f"Run `{command}`?", default=True)


def _install_interrupt(source: CancellationTokenSource) -> Callable[[], None]:
    """Route Ctrl-C to the cancellation token. Returns the uninstaller."""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, source.cancel, "Interrupted by user")
    except (NotImplementedError, RuntimeError):
        return lambda: None

    def remove() -> None:
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.remove_signal_handler(signal.SIGINT)

    return remove


async def _execute(runtime: Runtime, store: SessionStore, goal: str, source: CancellationTokenSource) -> EngineResult:
    try:
        result = await runtime.engine.execute(goal, source.token)
    except Exception:
        await store.save_session(runtime.session, status="failed")
        raise
    await store.save_session(runtime.session, status=str(result.state))
    return result


async def _run_goal(context: RunContext, goal: str, resume: str | None, console: Console) -> int:
    config = context.config
    confirm = None if config.auto_confirm or not sys.stdin.isatty() else _tty_confirm
    async with SessionStore(context.db_path) as store:
        session = await _open_session(store, resume, context)
        runtime = _build(context, session, console, confirm=confirm)
        source = CancellationTokenSource()
        uninstall = _install_interrupt(source)
        try:
            result = await _execute(runtime, store, goal, source)
        finally:
            uninstall()
            await runtime.aclose()
    render_result(console, result)
    console.print(f"[dim]session {session.id}[/dim]")
    return 0 if result.ok else 1


# ----------------------------------------------------------------------
# Interactive shell
# ----------------------------------------------------------------------


async def _stdin_line() -> str | None:
    line = await asyncio.to_thread(sys.stdin.readline)
    return line or None


class InteractiveShell:
    """Reads goals line by line; queues lines while a goal is running."""

    def __init__(
        self,
        runtime: Runtime,
        store: SessionStore,
        console: Console,
        *,
        read_line: LineReader = _stdin_line,
    ) -> None:
        self._runtime = runtime
        self._store = store
        self._console = console
        self._read_line = read_line
        self._source: CancellationTokenSource | None = None
        self._run_task: asyncio.Task[None] | None = None
        self._pending_confirm: asyncio.Future[bool] | None = None
        self.results: list[EngineResult] = []

    @property
    def running(self) -> bool:
        return self._run_task is not None and not self._run_task.done()

    @property
    def awaiting_confirm(self) -> bool:
        return self._pending_confirm is not None and not self._pending_confirm.done()

    async def confirm(self, command: str) -> bool:
        """Confirmation answered by the next line typed into the shell."""
        future: asyncio.Future[bool] = asyncio.get_running_loop().create_future()
        self._pending_confirm = future
        self._console.print(f"[yellow]Run[/yellow] {command} [dim]\\[Y/n][/dim]", highlight=False)
        try:
            return await future
        finally:
            self._pending_confirm = None

    async def run(self) -> int:
        self._console.print(f"[bold]taskcli {__version__}[/bold] [dim]/help for commands[/dim]")
        while True:
            line = await self._read_line()
            if line is None:
                break
            text = line.strip()
            if self.awaiting_confirm:
                self._pending_confirm.set_result(text.lower() in ("", "y", "yes"))
                continue
            if not text:
                continue
            if text == "/exit":
                break
            self._handle(text)

        if self.awaiting_confirm:
            self._pending_confirm.set_result(False)
        if self.running and self._source is not None:
            self._source.cancel("Shell closed")
        if self._run_task is not None:
            await self._run_task
        if not self.results:
            return 0
        return 0 if self.results[-1].ok else 1

    def _handle(self, text: str) -> None:
        engine = self._runtime.engine
        if text == "/help":
            self._console.print(SHELL_HELP)
        elif text == "/cancel":
            if self.running and self._source is not None:
                self._source.cancel("Cancelled by user")
            else:
                self._console.print("[dim]Nothing is running.[/dim]")
        elif text == "/status":
            plan = engine.plan
            if plan is None:
                self._console.print("[dim]No plan yet.[/dim]")
            else:
                self._console.print(plan_table(plan.visible(), title=f"Plan ({engine.state})"))
        elif text == "/session":
            self._show_session()
        elif text == "/model":
            self._console.print(
                f"Provider: {self._runtime.provider_name}  Model: {self._runtime.model or 'unknown'}",
                highlight=False,
            )
        elif text.startswith("/"):
            self._console.print(f"[red]Unknown command:[/red] {text}")
        elif self.running:
            if engine.input_queue.put(text):
                self._console.print("[cyan]Queued for the next cycle.[/cyan]")
            else:
                self._console.print(
                    f"[yellow]Input queue is full ({engine.input_queue.capacity}); line dropped.[/yellow]",
                )
        else:
            self._run_task = asyncio.create_task(self._run_goals(text))

    def _show_session(self) -> None:
        session = self._runtime.session
        self._console.print(f"Session {session.id}", highlight=False)
        self._console.print(f"Tasks: {len(session.tasks)}, History: {len(session.history)} events", highlight=False)
        self._console.print(f"Working dir: {session.cwd}", highlight=False)
        usage = self._runtime.engine.usage
        if usage is not None:
            self._console.print(f"Usage: {usage.describe()}", highlight=False)

    async def _run_goals(self, goal: str) -> None:
        queue = self._runtime.engine.input_queue
        next_goal: str | None = goal
        while next_goal:
            self._source = CancellationTokenSource()
            try:
                result = await _execute(self._runtime, self._store, next_goal, self._source)
            except TaskCLIError as e:
                self._console.print(f"[red]Error:[/red] {e}")
                return
            finally:
                self._source.dispose()
            self.results.append(result)
            render_result(self._console, result)
            leftover = queue.drain()
            next_goal = "\n".join(leftover) if leftover else None


async def _run_shell(context: RunContext, resume: str | None, console: Console) -> int:
    async with SessionStore(context.db_path) as store:
        session = await _open_session(store, resume, context)
        shell: InteractiveShell | None = None

        async def confirm(command: str) -> bool:
            if shell is None:
                return False
            return await shell.confirm(command)

        runtime = _build(
            context, session, console,
            confirm=None if context.config.auto_confirm else confirm,
        )
        shell = InteractiveShell(runtime, store, console)
        try:
            return await shell.run()
        finally:
            await runtime.aclose()
