"""
Tool: Logging Setup
Purpose: One structlog processor chain for every engine log record

Usage:
    from notify_engine.logging_config import setup_logging, setup_logging_from_config

    setup_logging(level="DEBUG")
    setup_logging_from_config(config.logging)

Engine modules log through ``logging.getLogger(__name__)``. Records are
rendered by structlog's ProcessorFormatter and tagged with the subsystem that
emitted them (``ratelimit``, ``notifications``, ``social``, ...), so rate-limit
rejections and scheduler decisions can be filtered apart in JSON output.

Environment:
    NOTIFY_ENGINE_LOG_LEVEL   default level when none is passed
    NOTIFY_ENGINE_LOG_FORMAT  "json" selects JSON output
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO, TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from notify_engine.config import LoggingConfig

PACKAGE_LOGGER = "notify_engine"


def add_component(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Tag engine records with their subsystem, e.g. notify_engine.ratelimit.limiter -> ratelimit."""
    name = event_dict.get("logger") or ""
    parts = name.split(".")
    if len(parts) > 1 and parts[0] == PACKAGE_LOGGER:
        event_dict.setdefault("component", parts[1])
    return event_dict


def _resolve_level(level: str | None) -> int:
    if level is None:
        level = os.environ.get("NOTIFY_ENGINE_LOG_LEVEL", "INFO")
    return getattr(logging, level.upper(), logging.INFO)


def setup_logging(
    level: str | None = None,
    json_output: bool | None = None,
    stream: IO[str] | None = None,
) -> logging.Handler:
    """
    Install the engine's handler on the root logger.

    Replaces any handlers already installed, so calling it twice is safe.

    Args:
        level: Level name; falls back to NOTIFY_ENGINE_LOG_LEVEL, then INFO
        json_output: JSON lines instead of console rendering; falls back to
            NOTIFY_ENGINE_LOG_FORMAT
        stream: Where records go (stderr by default, keeping stdout for CLI output)

    Returns:
        The installed handler
    """
    if json_output is None:
        json_output = os.environ.get("NOTIFY_ENGINE_LOG_FORMAT", "").lower() == "json"

    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_component,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    render_chain: list[structlog.types.Processor] = [structlog.stdlib.ProcessorFormatter.remove_processors_meta]
    if json_output:
        render_chain += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        render_chain.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=render_chain,
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(_resolve_level(level))
    return handler


def setup_logging_from_config(config: LoggingConfig, stream: IO[str] | None = None) -> logging.Handler:
    return setup_logging(level=config.level, json_output=config.json_output, stream=stream)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


__all__ = ["PACKAGE_LOGGER", "add_component", "get_logger", "setup_logging", "setup_logging_from_config"]
