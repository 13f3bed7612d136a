"""Core execution: process runner, adaptive commands, plan and engine."""

from taskcli.core.adaptive import AdaptiveCommandExecutor, CommandPhase, ConfirmPolicy
from taskcli.core.cancellation import CancellationToken, CancellationTokenSource
from taskcli.core.classifier import ClassificationContext, CommandClassifier
from taskcli.core.closeout import CloseoutResult, build_local_summary, run_closeout
from taskcli.core.engine import EngineResult, EngineSettings, ExecutionEngine
from taskcli.core.handlers import TaskHandlers
from taskcli.core.input_queue import InputQueue
from taskcli.core.observer import ExecutionObserver, RecordingObserver
from taskcli.core.plan import TaskPlan
from taskcli.core.process_runner import ProcessRunner
from taskcli.core.retry_planner import RetryPlanner
from taskcli.core.state_machine import EngineState, EngineStateMachine

__all__ = [
    "AdaptiveCommandExecutor",
    "CancellationToken",
    "CancellationTokenSource",
    "ClassificationContext",
    "CloseoutResult",
    "CommandClassifier",
    "CommandPhase",
    "ConfirmPolicy",
    "EngineResult",
    "EngineSettings",
    "EngineState",
    "EngineStateMachine",
    "ExecutionEngine",
    "ExecutionObserver",
    "InputQueue",
    "ProcessRunner",
    "RecordingObserver",
    "RetryPlanner",
    "TaskHandlers",
    "TaskPlan",
    "build_local_summary",
    "run_closeout",
]
