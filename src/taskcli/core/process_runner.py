"""Shell process runner.

Runs one shell command per call and reports a :class:`RunResult`:

- stdout/stderr are streamed to callbacks as they arrive and buffered
  (tail-capped) for post-mortem classification
- an idle timer, reset on every chunk of output, ends processes that
  went quiet; that is the primary signal for "waiting on a prompt"
- a hard timer ends the process regardless of activity
- a cancellation token races the process; whichever of exit, timeout
  or cancellation is observed first decides the result
- SIGTERM then SIGKILL, sent to the whole process group so shell
  children do not keep the pipes open

Command failure never raises. Only a bad working directory or a spawn
error short-circuits, and both still come back as a failed result.
"""

from __future__ import annotations

import asyncio
import codecs
from collections import deque
import logging
import os
import signal
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

from taskcli.core.cancellation import CancellationToken
from taskcli.types.command import FailureKind, RunResult, TimeoutKind

logger = logging.getLogger(__name__)

DEFAULT_IDLE_TIMEOUT = 15.0
DEFAULT_HARD_TIMEOUT = 15 * 60.0
MAX_BUFFERED = 100_000
SIGTERM_GRACE_SECONDS = 2.0
DRAIN_SECONDS = 1.0
READ_CHUNK = 4096
NOT_FOUND_EXIT_CODE = 127

# Environment variables to strip from child processes
SENSITIVE_ENV_VARS = frozenset({
    "AWS_SECRET_ACCESS_KEY",
    "AWS_SESSION_TOKEN",
    "GITHUB_TOKEN",
    "GH_TOKEN",
    "NPM_TOKEN",
    "PYPI_TOKEN",
    "DATABASE_URL",
    "DB_PASSWORD",
    "ANTHROPIC_API_KEY",
})

OutputCallback = Callable[[str], None]


def build_env(extra: Mapping[str, str | None] | None = None) -> dict[str, str]:
    """Sanitized environment for child processes.

    ``None`` values in ``extra`` remove the variable.
    """
    env = dict(os.environ)
    env["TERM"] = "dumb"
    env["CI"] = "1"
    for var in SENSITIVE_ENV_VARS:
        env.pop(var, None)
    for key, value in (extra or {}).items():
        if value is None:
            env.pop(key, None)
        else:
            env[key] = value
    return env


@dataclass
class _OutputBuffer:
    """Keeps at most ``limit`` characters, dropping the oldest."""

    limit: int
    chunks: deque[str] = field(default_factory=deque)
    size: int = 0
    truncated: bool = False

    def append(self, chunk: str) -> None:
        if not chunk:
            return
        self.chunks.append(chunk)
        self.size += len(chunk)
        if self.size > self.limit:
            self.truncated = True
        # Whole chunks are dropped here; `text` trims the head.
        while len(self.chunks) > 1 and self.size - len(self.chunks[0]) >= self.limit:
            self.size -= len(self.chunks.popleft())

    @property
    def text(self) -> str:
        joined = "".join(self.chunks)
        return joined[len(joined) - self.limit:] if len(joined) > self.limit else joined


@dataclass
class _Activity:
    last: float


def _signal_group(proc: asyncio.subprocess.Process, sig: signal.Signals) -> None:
    try:
        if hasattr(os, "killpg"):
            os.killpg(proc.pid, sig)
        else:
            proc.send_signal(sig)
    except (ProcessLookupError, PermissionError):
        try:
            proc.send_signal(sig)
        except ProcessLookupError:
            pass


async def _terminate(proc: asyncio.subprocess.Process) -> None:
    """SIGTERM the process group, SIGKILL after the grace period."""
    if proc.returncode is not None:
        return
    _signal_group(proc, signal.SIGTERM)
    try:
        await asyncio.wait_for(proc.wait(), timeout=SIGTERM_GRACE_SECONDS)
    except asyncio.TimeoutError:
        logger.debug("pid %s ignored SIGTERM, sending SIGKILL", proc.pid)
        _signal_group(proc, signal.SIGKILL)
        await proc.wait()


async def _drain(pumps: list[asyncio.Task[None]]) -> None:
    """Let readers finish; cancel them if a grandchild keeps a pipe open."""
    _, pending = await asyncio.wait(pumps, timeout=DRAIN_SECONDS)
    for task in pending:
        task.cancel()
    if pending:
        await asyncio.gather(*pending, return_exceptions=True)


def _last_line(text: str) -> str:
    for line in reversed(text.strip().splitlines()):
        if line.strip():
            return line.strip()[:300]
    return ""


class ProcessRunner:
    """Spawns shell commands with idle/hard timeouts and cancellation."""

    def __init__(
        self,
        *,
        idle_timeout: float = DEFAULT_IDLE_TIMEOUT,
        hard_timeout: float = DEFAULT_HARD_TIMEOUT,
        max_buffered: int = MAX_BUFFERED,
    ) -> None:
        self.idle_timeout = idle_timeout
        self.hard_timeout = hard_timeout
        self._max_buffered = max_buffered

    async def run(
        self,
        command: str,
        *,
        cwd: str | None = None,
        env: Mapping[str, str | None] | None = None,
        idle_timeout: float | None = None,
        hard_timeout: float | None = None,
        token: CancellationToken | None = None,
        on_stdout: OutputCallback | None = None,
        on_stderr: OutputCallback | None = None,
    ) -> RunResult:
        idle = idle_timeout if idle_timeout is not None else self.idle_timeout
        hard = hard_timeout if hard_timeout is not None else self.hard_timeout
        workdir = cwd or os.getcwd()

        if not os.path.isdir(workdir):
            return RunResult(
                ok=False,
                error=f"Invalid working directory: {workdir}",
                failure=FailureKind.INVALID_CWD,
            )
        if token is not None and token.is_cancelled:
            return RunResult(
                ok=False,
                cancelled=True,
                error="Cancelled before start",
                failure=FailureKind.CANCELLED,
            )

        loop = asyncio.get_running_loop()
        started = loop.time()
        try:
            proc = await asyncio.create_subprocess_shell(
                command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=workdir,
                env=build_env(env),
                start_new_session=True,
            )
        except OSError as e:
            return RunResult(
                ok=False,
                error=f"Failed to start command: {e}",
                failure=FailureKind.SPAWN_ERROR,
            )

        logger.debug("spawned pid %s: %s", proc.pid, command)
        activity = _Activity(last=started)
        out_buf = _OutputBuffer(self._max_buffered)
        err_buf = _OutputBuffer(self._max_buffered)
        pumps = [
            asyncio.create_task(self._pump(proc.stdout, out_buf, on_stdout, activity)),
            asyncio.create_task(self._pump(proc.stderr, err_buf, on_stderr, activity)),
        ]
        exit_wait = asyncio.create_task(proc.wait())
        cancel_wait = asyncio.create_task(token.wait()) if token is not None else None

        timeout_kind: TimeoutKind | None = None
        cancelled = False
        try:
            while True:
                now = loop.time()
                hard_deadline = started + hard
                idle_deadline = activity.last + idle
                remaining = min(hard_deadline, idle_deadline) - now
                if remaining <= 0:
                    timeout_kind = TimeoutKind.HARD if now >= hard_deadline else TimeoutKind.IDLE
                    break
                waiters: set[asyncio.Task[object]] = {exit_wait}  # type: ignore[arg-type]
                if cancel_wait is not None:
                    waiters.add(cancel_wait)  # type: ignore[arg-type]
                done, _ = await asyncio.wait(
                    waiters, timeout=remaining, return_when=asyncio.FIRST_COMPLETED,
                )
                if exit_wait in done:
                    break
                if cancel_wait is not None and cancel_wait in done:
                    cancelled = True
                    break

            if timeout_kind is not None or cancelled:
                await _terminate(proc)
            await _drain(pumps)
        finally:
            if cancel_wait is not None:
                cancel_wait.cancel()
            if proc.returncode is None:
                await _terminate(proc)
            if not exit_wait.done():
                exit_wait.cancel()
            for task in pumps:
                if not task.done():
                    task.cancel()
            if proc.stdin is not None and not proc.stdin.is_closing():
                proc.stdin.close()

        duration = loop.time() - started
        code = proc.returncode
        common = {
            "stdout": out_buf.text,
            "stderr": err_buf.text,
            "code": code,
            "duration": duration,
        }

        if cancelled:
            reason = token.reason if token is not None else "cancelled"
            logger.info("command cancelled (%s): %s", reason, command)
            return RunResult(
                ok=False, cancelled=True, error=f"Cancelled: {reason}",
                failure=FailureKind.CANCELLED, **common,
            )
        if timeout_kind == TimeoutKind.IDLE:
            logger.info("command idle for %.1fs, terminated: %s", idle, command)
            return RunResult(
                ok=False, timeout_kind=TimeoutKind.IDLE,
                error=f"No output for {idle:g}s (interactive or idle timeout)",
                failure=FailureKind.TIMEOUT, **common,
            )
        if timeout_kind == TimeoutKind.HARD:
            logger.info("command exceeded %.1fs, terminated: %s", hard, command)
            return RunResult(
                ok=False, timeout_kind=TimeoutKind.HARD,
                error=f"Command timed out after {hard:g}s",
                failure=FailureKind.TIMEOUT, **common,
            )
        if code == 0:
            return RunResult(ok=True, **common)
        if code == NOT_FOUND_EXIT_CODE:
            program = command.strip().split()[0] if command.strip() else command
            return RunResult(
                ok=False, error=f"Command not found: {program}",
                failure=FailureKind.NOT_FOUND, **common,
            )
        detail = _last_line(err_buf.text) or _last_line(out_buf.text)
        message = f"Command exited with code {code}"
        return RunResult(
            ok=False,
            error=f"{message}: {detail}" if detail else message,
            failure=FailureKind.EXIT_CODE,
            **common,
        )

    async def _pump(
        self,
        stream: asyncio.StreamReader | None,
        buffer: _OutputBuffer,
        callback: OutputCallback | None,
        activity: _Activity,
    ) -> None:
        if stream is None:
            return
        loop = asyncio.get_running_loop()
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            chunk = await stream.read(READ_CHUNK)
            if not chunk:
                break
            activity.last = loop.time()
            self._emit(decoder.decode(chunk), buffer, callback)
        self._emit(decoder.decode(b"", final=True), buffer, callback)

    @staticmethod
    def _emit(text: str, buffer: _OutputBuffer, callback: OutputCallback | None) -> None:
        if not text:
            return
        buffer.append(text)
        if callback is not None:
            try:
                callback(text)
            except Exception:
                logger.exception("output callback failed")
