"""Console rendering with rich.

:class:`ConsoleObserver` prints engine progress as it happens;
:func:`render_result` prints the final verdict. Cancellation is shown
in yellow and never as an error.
"""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from taskcli.core.engine import EngineResult
from taskcli.core.observer import ExecutionObserver
from taskcli.core.state_machine import EngineState
from taskcli.types.task import Task, TaskStatus

_STATUS_ICONS = {
    TaskStatus.PENDING: "○",
    TaskStatus.RUNNING: "◉",
    TaskStatus.DONE: "✓",
    TaskStatus.FAILED: "✗",
}

_STATUS_STYLES = {
    TaskStatus.PENDING: "dim",
    TaskStatus.RUNNING: "bold yellow",
    TaskStatus.DONE: "green",
    TaskStatus.FAILED: "red",
}

_LOG_STYLES = {
    "debug": "dim",
    "info": "cyan",
    "warning": "yellow",
    "error": "red",
}


def plan_table(tasks: list[Task], title: str = "Plan") -> Table:
    table = Table(title=title, show_lines=False, expand=False)
    table.add_column("", width=2)
    table.add_column("id", style="dim")
    table.add_column("type", style="magenta")
    table.add_column("task")
    for task in tasks:
        icon = _STATUS_ICONS.get(task.status, "?")
        table.add_row(
            Text(icon, style=_STATUS_STYLES.get(task.status, "dim")),
            task.id,
            str(task.type),
            task.label,
        )
    return table


class ConsoleObserver(ExecutionObserver):
    """Prints progress to a rich console."""

    def __init__(self, console: Console | None = None, *, show_output: bool = True) -> None:
        self.console = console or Console()
        self._show_output = show_output

    def on_state(self, from_state: EngineState, to_state: EngineState) -> None:
        if to_state == EngineState.PLANNING:
            self.console.print("[dim]Planning...[/dim]")
        elif to_state == EngineState.ADJUSTING:
            self.console.print("[cyan]Adjusting the plan to new input...[/cyan]")
        elif to_state == EngineState.CLOSING:
            self.console.print("[dim]Writing summary...[/dim]")

    def on_plan(self, tasks: list[Task]) -> None:
        self.console.print(plan_table(tasks))

    def on_cycle(self, cycle: int, max_cycles: int) -> None:
        self.console.rule(f"[dim]cycle {cycle}/{max_cycles}[/dim]", style="dim")

    def on_agent_say(self, text: str) -> None:
        self.console.print(Text(text, style="italic"))

    def on_task_start(self, task: Task) -> None:
        self.console.print(f"[bold yellow]▶[/bold yellow] {task.label}", highlight=False)

    def on_task_done(self, task: Task, detail: str = "") -> None:
        self.console.print(f"[green]✓[/green] {task.label}", highlight=False)

    def on_task_failed(self, task: Task, error: str) -> None:
        self.console.print(f"[red]✗ {task.label}:[/red] {error}", highlight=False)

    def on_command_output(self, stream: str, text: str) -> None:
        if self._show_output:
            style = "dim red" if stream == "stderr" else "dim"
            self.console.print(Text(text, style=style), end="")

    def on_log(self, message: str, level: str = "info") -> None:
        self.console.print(Text(message, style=_LOG_STYLES.get(level, "")))

    def on_closeout(self, summary: str, source: str) -> None:
        self.console.print(Panel(summary, title="Summary", border_style="blue"))


def render_result(console: Console, result: EngineResult) -> None:
    """Verdict after a goal finishes, plus token usage when known."""
    if result.state == EngineState.DONE:
        line = f"[bold green]Done[/bold green]  {result.completed} tasks completed"
        if result.reason == "max_cycles":
            line += f" [yellow](cycle limit reached, {result.remaining} remaining)[/yellow]"
        console.print(line)
    elif result.state == EngineState.CANCELLED:
        console.print(f"[bold yellow]Cancelled[/bold yellow]  {result.reason}")
    elif result.needs_input:
        console.print("[bold yellow]User input required[/bold yellow]")
        console.print(f"[yellow]Question:[/yellow] {result.question}")
    else:
        console.print(f"[bold red]Failed[/bold red]  {result.error or result.reason}")
    if result.usage is not None and result.usage.llm_calls:
        console.print(f"[dim]Usage: {result.usage.describe()}[/dim]")
