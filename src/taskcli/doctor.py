"""Environment checks for ``taskcli --doctor``."""

from __future__ import annotations

import os
import shutil
import sys
import tempfile
from dataclasses import dataclass
from pathlib import Path

from rich.console import Console
from rich.table import Table

from taskcli.config import TaskCLIConfig

MIN_PYTHON = (3, 11)


@dataclass(frozen=True, slots=True)
class CheckResult:
    name: str
    ok: bool
    detail: str = ""


def _writable(path: Path) -> tuple[bool, str]:
    try:
        path.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(dir=path, prefix=".taskcli-doctor-"):
            pass
    except OSError as e:
        return False, str(e)
    return True, str(path)


def check_python() -> CheckResult:
    version = ".".join(str(p) for p in sys.version_info[:3])
    return CheckResult("Python version", sys.version_info[:2] >= MIN_PYTHON, version)


def check_api_key(config: TaskCLIConfig) -> CheckResult:
    if config.api_key:
        return CheckResult("API key", True, "configured")
    return CheckResult("API key", False, "set ANTHROPIC_API_KEY")


def check_working_directory(config: TaskCLIConfig) -> CheckResult:
    path = Path(config.working_directory)
    if not path.is_dir():
        return CheckResult("Working directory", False, f"missing: {path}")
    if not os.access(path, os.W_OK):
        return CheckResult("Working directory", False, f"not writable: {path}")
    return CheckResult("Working directory", True, str(path))


def check_shell() -> CheckResult:
    shell = shutil.which("sh") or ("/bin/sh" if Path("/bin/sh").exists() else None)
    return CheckResult("Shell", shell is not None, shell or "/bin/sh not found")


def check_session_dir(config: TaskCLIConfig) -> CheckResult:
    ok, detail = _writable(Path(config.session_dir).expanduser())
    return CheckResult("Session directory", ok, detail)


def run_checks(config: TaskCLIConfig) -> list[CheckResult]:
    return [
        check_python(),
        check_api_key(config),
        check_working_directory(config),
        check_shell(),
        check_session_dir(config),
    ]


def render_checks(console: Console, results: list[CheckResult]) -> bool:
    """Print the results table. Returns True when every check passed."""
    table = Table(title="taskcli doctor")
    table.add_column("Check", style="cyan")
    table.add_column("Status")
    table.add_column("Detail", style="dim")
    for result in results:
        status = "[green]pass[/green]" if result.ok else "[red]fail[/red]"
        table.add_row(result.name, status, result.detail)
    console.print(table)
    return all(r.ok for r in results)
