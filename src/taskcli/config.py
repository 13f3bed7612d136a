"""Configuration loading and the explicit run context."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from taskcli.errors import ConfigurationError

DEFAULT_MODEL = "claude-sonnet-4-20250514"
DEFAULT_MAX_TOKENS = 8192

# Config directory names
PROJECT_DIR = ".taskcli"
USER_DIR_NAME = ".taskcli"

# Millisecond env vars and the config field (in seconds) they set
_MS_ENV_VARS: dict[str, str] = {
    "TASKCLI_IDLE_TIMEOUT_MS": "idle_timeout",
    "TASKCLI_HARD_TIMEOUT_MS": "hard_timeout",
    "TASKCLI_CLOSEOUT_TIMEOUT_MS": "closeout_timeout",
}

_INT_ENV_VARS: dict[str, str] = {
    "TASKCLI_MAX_CYCLES": "max_cycles",
    "TASKCLI_MAX_ACTIONS": "max_actions",
    "TASKCLI_QUEUE_LIMIT": "queue_limit",
}

_TRUTHY = ("1", "true", "yes", "on")


@dataclass(slots=True)
class TaskCLIConfig:
    """Merged configuration from all sources.

    Priority: CLI args > env vars > project config > user config > defaults
    """

    # Provider
    provider: str = "anthropic"
    model: str = DEFAULT_MODEL
    api_key: str | None = None
    max_tokens: int = DEFAULT_MAX_TOKENS

    # Engine
    max_cycles: int = 20
    max_actions: int = 5
    closeout_timeout: float = 30.0
    queue_limit: int = 5

    # Commands (seconds)
    idle_timeout: float = 15.0
    hard_timeout: float = 900.0
    auto_confirm: bool = False

    # Paths
    working_directory: str = ""
    session_dir: str = ""

    # Features
    web_search: bool = True
    headless: bool = False
    debug: bool = False
    json_logs: bool = False

    def validate(self) -> None:
        """Raise ConfigurationError for values the engine cannot run with."""
        for name in ("max_cycles", "max_actions", "queue_limit"):
            if getattr(self, name) < 1:
                raise ConfigurationError(f"{name} must be at least 1")
        for name in ("idle_timeout", "hard_timeout", "closeout_timeout"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive")
        if not Path(self.working_directory).is_dir():
            raise ConfigurationError(f"Working directory does not exist: {self.working_directory}")


@dataclass(frozen=True, slots=True)
class RunContext:
    """Paths and settings for one CLI run, built once at startup."""

    cwd: str
    session_dir: Path
    db_path: Path
    config: TaskCLIConfig


def find_project_root(start: Path | None = None) -> Path | None:
    """Find the project root by looking for .taskcli/ or .git/."""
    current = start or Path.cwd()
    for parent in [current, *current.parents]:
        if (parent / PROJECT_DIR).exists():
            return parent
        if (parent / ".git").exists():
            return parent
    return None


def get_user_config_dir() -> Path:
    """Get the user-level config directory (~/.taskcli/)."""
    return Path.home() / USER_DIR_NAME


def load_json_config(path: Path) -> dict[str, Any]:
    """Load a JSON config file, returning empty dict if not found."""
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return data if isinstance(data, dict) else {}
    except (json.JSONDecodeError, OSError):
        return {}


def load_yaml_config(path: Path) -> dict[str, Any]:
    """Load a YAML config file, returning empty dict if not found."""
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
        return data if isinstance(data, dict) else {}
    except (yaml.YAMLError, OSError):
        return {}


def load_config(
    *,
    cli_args: dict[str, Any] | None = None,
    working_dir: str | None = None,
    environ: dict[str, str] | None = None,
    user_dir: Path | None = None,
    load_env_file: bool = True,
) -> TaskCLIConfig:
    """Load configuration from all sources with proper priority.

    Priority: CLI args > env vars > project config > user config > defaults
    """
    config = TaskCLIConfig()
    cli_args = cli_args or {}
    config.working_directory = os.path.abspath(
        cli_args.get("working_directory") or working_dir or os.getcwd(),
    )
    if load_env_file:
        load_dotenv(Path(config.working_directory) / ".env")
    env = os.environ if environ is None else environ

    # 1. User-level config (~/.taskcli/config.json)
    _apply_dict(config, load_json_config((user_dir or get_user_config_dir()) / "config.json"))

    # 2. Project-level config (.taskcli/config.yaml, then config.json)
    project_root = find_project_root(Path(config.working_directory))
    if project_root:
        project_dir = project_root / PROJECT_DIR
        _apply_dict(config, load_yaml_config(project_dir / "config.yaml"))
        _apply_dict(config, load_json_config(project_dir / "config.json"))
        if not config.session_dir:
            config.session_dir = str(project_dir / "sessions")

    # 3. Environment variables
    _apply_env(config, env)

    # 4. CLI args (highest priority)
    _apply_dict(config, cli_args)
    config.working_directory = os.path.abspath(config.working_directory)

    if not config.session_dir:
        config.session_dir = str(Path(config.working_directory) / PROJECT_DIR / "sessions")
    return config


def build_run_context(config: TaskCLIConfig) -> RunContext:
    config.validate()
    session_dir = Path(config.session_dir).expanduser()
    return RunContext(
        cwd=config.working_directory,
        session_dir=session_dir,
        db_path=session_dir / "sessions.db",
        config=config,
    )


def _apply_env(config: TaskCLIConfig, env: Any) -> None:
    if api_key := env.get("ANTHROPIC_API_KEY"):
        if not config.api_key:
            config.api_key = api_key
    if model := env.get("TASKCLI_MODEL"):
        config.model = model
    if debug := env.get("TASKCLI_DEBUG"):
        config.debug = debug.lower() in _TRUTHY
    for var, attr in _INT_ENV_VARS.items():
        if (raw := env.get(var)) is not None:
            setattr(config, attr, _parse_number(var, raw))
    for var, attr in _MS_ENV_VARS.items():
        if (raw := env.get(var)) is not None:
            setattr(config, attr, _parse_number(var, raw) / 1000.0)


def _parse_number(var: str, raw: str) -> int:
    try:
        return int(raw.strip())
    except ValueError as e:
        raise ConfigurationError(f"{var} must be an integer, got {raw!r}") from e


def _apply_dict(config: TaskCLIConfig, data: dict[str, Any]) -> None:
    """Apply dictionary values to config, only for known fields."""
    known = {f.name for f in fields(config)}
    aliases = {
        "maxCycles": "max_cycles",
        "maxActions": "max_actions",
        "maxTokens": "max_tokens",
        "closeoutTimeout": "closeout_timeout",
        "queueLimit": "queue_limit",
        "idleTimeout": "idle_timeout",
        "hardTimeout": "hard_timeout",
        "autoConfirm": "auto_confirm",
        "sessionDir": "session_dir",
        "webSearch": "web_search",
    }
    for key, value in data.items():
        attr = aliases.get(key, key)
        if attr in known and value is not None:
            setattr(config, attr, value)
