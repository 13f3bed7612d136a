"""Structured logging using structlog."""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

# Libraries that are chatty at INFO
_QUIET_LOGGERS = ("httpx", "httpcore", "aiosqlite")


def setup_logging(*, debug: bool = False, json_output: bool = False) -> None:
    """Configure structlog and stdlib logging, both writing to stderr.

    Args:
        debug: Enable DEBUG level logging.
        json_output: Use JSON output format instead of console.
    """
    level = logging.DEBUG if debug else logging.WARNING

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    renderer: Any = (
        structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    )

    # stdlib records (logging.getLogger(__name__)) go through the same renderer
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=processors,
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    ))
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = "taskcli", **kwargs: Any) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name, **kwargs)
