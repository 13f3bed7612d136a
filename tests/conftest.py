"""Global test fixtures for taskcli."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from taskcli.core.adaptive import AdaptiveCommandExecutor
from taskcli.core.classifier import CommandClassifier
from taskcli.core.process_runner import ProcessRunner
from taskcli.core.retry_planner import RetryPlanner
from taskcli.session import Session


@pytest.fixture
def tmp_workdir(tmp_path: Path) -> Path:
    """Provide a temporary working directory for file and command tests."""
    workdir = tmp_path / "work"
    workdir.mkdir()
    return workdir


@pytest.fixture
def session(tmp_workdir: Path) -> Session:
    return Session(meta={"cwd": str(tmp_workdir)})


@pytest.fixture
def runner() -> ProcessRunner:
    return ProcessRunner(idle_timeout=5.0, hard_timeout=30.0)


@pytest.fixture
def executor(runner: ProcessRunner) -> AdaptiveCommandExecutor:
    """Executor over real processes with no classifier or retry backend."""
    return AdaptiveCommandExecutor(runner, CommandClassifier(), RetryPlanner())


@pytest.fixture
def restore_logging() -> None:
    """Undo setup_logging() changes to the root logger after a test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
