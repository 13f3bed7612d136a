"""EngineBuilder - fluent API for wiring an execution engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from taskcli.brains.base import Brains
from taskcli.brains.llm import LLMBrain
from taskcli.config import TaskCLIConfig
from taskcli.core.adaptive import AdaptiveCommandExecutor, ConfirmCallback, ConfirmPolicy
from taskcli.core.classifier import CommandClassifier
from taskcli.core.engine import EngineSettings, ExecutionEngine
from taskcli.core.handlers import TaskHandlers
from taskcli.core.input_queue import InputQueue
from taskcli.core.observer import ExecutionObserver
from taskcli.core.process_runner import ProcessRunner
from taskcli.core.retry_planner import RetryPlanner
from taskcli.errors import ConfigurationError
from taskcli.providers.anthropic import AnthropicProvider
from taskcli.providers.base import LLMProvider
from taskcli.session import Session
from taskcli.tools.web_search import WebSearcher


def create_provider(config: TaskCLIConfig) -> LLMProvider:
    """Create the provider named in ``config``."""
    if config.provider == "anthropic":
        return AnthropicProvider(
            api_key=config.api_key,
            model=config.model,
            max_tokens=config.max_tokens,
        )
    raise ConfigurationError(f"Unknown provider: {config.provider}")


@dataclass(slots=True)
class Runtime:
    """A built engine plus the resources it owns."""

    engine: ExecutionEngine
    session: Session
    provider: LLMProvider | None = None
    searcher: WebSearcher | None = None
    provider_name: str = "custom"
    model: str = ""
    _closed: bool = field(default=False, repr=False)

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self.searcher is not None:
            await self.searcher.close()
        if self.provider is not None:
            await self.provider.close()


class EngineBuilder:
    """Fluent builder for :class:`ExecutionEngine` instances.

    Usage:
        runtime = (
            EngineBuilder()
            .with_config(config)
            .with_observer(ConsoleObserver())
            .build()
        )
        result = await runtime.engine.execute("add a README")
    """

    def __init__(self) -> None:
        self._config = TaskCLIConfig()
        self._brains: Brains | None = None
        self._provider: LLMProvider | None = None
        self._session: Session | None = None
        self._observer: ExecutionObserver | None = None
        self._confirm: ConfirmCallback | None = None
        self._searcher: WebSearcher | None = None
        self._searcher_set = False
        self._input_queue: InputQueue | None = None
        self._runner: ProcessRunner | None = None

    def with_config(self, config: TaskCLIConfig) -> EngineBuilder:
        """Set configuration (limits, timeouts, provider settings)."""
        self._config = config
        return self

    def with_brains(self, brains: Brains) -> EngineBuilder:
        """Use these collaborators instead of building them from a provider."""
        self._brains = brains
        return self

    def with_provider(self, provider: LLMProvider) -> EngineBuilder:
        self._provider = provider
        return self

    def with_session(self, session: Session) -> EngineBuilder:
        """Continue an existing session instead of starting a new one."""
        self._session = session
        return self

    def with_observer(self, observer: ExecutionObserver) -> EngineBuilder:
        self._observer = observer
        return self

    def with_confirm(self, confirm: ConfirmCallback | None) -> EngineBuilder:
        """Set the callback asked before each command runs."""
        self._confirm = confirm
        return self

    def with_searcher(self, searcher: WebSearcher | None) -> EngineBuilder:
        """Set the web searcher. ``None`` disables search_web tasks."""
        self._searcher = searcher
        self._searcher_set = True
        return self

    def with_input_queue(self, queue: InputQueue) -> EngineBuilder:
        self._input_queue = queue
        return self

    def with_runner(self, runner: ProcessRunner) -> EngineBuilder:
        self._runner = runner
        return self

    def build(self) -> Runtime:
        """Build the engine and everything under it."""
        config = self._config
        owned_provider: LLMProvider | None = None
        provider_name = "custom"
        brains = self._brains
        if brains is None:
            provider = self._provider
            if provider is None:
                provider = owned_provider = create_provider(config)
            provider_name = provider.name
            brains = LLMBrain(provider, model=config.model, max_tokens=config.max_tokens).as_brains()

        session = self._session or Session(meta=self._session_meta(config))
        session.meta.setdefault("cwd", config.working_directory)

        owned_searcher: WebSearcher | None = None
        searcher = self._searcher
        if not self._searcher_set and config.web_search:
            searcher = owned_searcher = WebSearcher()

        runner = self._runner or ProcessRunner(
            idle_timeout=config.idle_timeout,
            hard_timeout=config.hard_timeout,
        )
        executor = AdaptiveCommandExecutor(
            runner,
            CommandClassifier(brains.classifier),
            RetryPlanner(brains.retry),
        )
        observer = self._observer or ExecutionObserver()
        handlers = TaskHandlers(
            session,
            executor,
            content=brains.content,
            searcher=searcher,
            policy=ConfirmPolicy(auto_confirm=config.auto_confirm, confirm=self._confirm),
            observer=observer,
        )
        engine = ExecutionEngine(
            brains,
            handlers,
            session,
            settings=EngineSettings(
                max_cycles=config.max_cycles,
                max_actions=config.max_actions,
                closeout_timeout=config.closeout_timeout,
            ),
            observer=observer,
            input_queue=self._input_queue if self._input_queue is not None else InputQueue(config.queue_limit),
        )
        return Runtime(
            engine=engine,
            session=session,
            provider=owned_provider,
            searcher=owned_searcher,
            provider_name=provider_name,
            model=config.model,
        )

    @staticmethod
    def _session_meta(config: TaskCLIConfig) -> dict[str, Any]:
        return {
            "cwd": config.working_directory,
            "model": config.model,
            "headless": config.headless,
        }
