"""Structured logging configuration.

Provides console or JSON structured logging via structlog with a
configurable level and context injection (e.g. the bridge URL).

Everything is written to stderr: stdout carries the relayed JSON-RPC
stream and a single stray log line there would corrupt it.
"""

from __future__ import annotations

__all__ = [
    "LogFormat",
    "LoggingConfig",
    "configure_bridge_logging",
]

import logging
import sys
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, TextIO

import structlog
from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# LogFormat enum
# ---------------------------------------------------------------------------


class LogFormat(StrEnum):
    """Supported log output formats."""

    JSON = "json"
    CONSOLE = "console"


# ---------------------------------------------------------------------------
# LoggingConfig
# ---------------------------------------------------------------------------


class LoggingConfig(BaseModel):
    """Configuration container for the bridge's structured logging.

    Attributes:
        level: Root log level (e.g. ``"WARNING"``).
        format: Output format (:class:`LogFormat`).
        context: Global key-value pairs injected into every log event.
    """

    level: str = "WARNING"
    format: LogFormat = LogFormat.CONSOLE
    context: dict[str, str] = Field(default_factory=dict)

    def add_context(self, key: str, value: str) -> LoggingConfig:
        """Add a key-value pair to the global log context.

        Returns:
            Self for chaining.
        """
        self.context[key] = value
        return self


# ---------------------------------------------------------------------------
# structlog processors
# ---------------------------------------------------------------------------


def _add_timestamp(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Add ISO-8601 timestamp to the event dict."""
    event_dict["timestamp"] = datetime.now(tz=UTC).isoformat()
    return event_dict


def _add_log_level(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Add ``level`` key derived from the method name."""
    event_dict["level"] = method_name
    return event_dict


def _make_context_injector(
    context: dict[str, str],
) -> structlog.types.Processor:
    """Return a processor that merges *context* into every event."""

    def _inject_context(
        logger: Any,
        method_name: str,
        event_dict: dict[str, Any],
    ) -> dict[str, Any]:
        for key, value in context.items():
            event_dict.setdefault(key, value)
        return event_dict

    return _inject_context


# ---------------------------------------------------------------------------
# Entry-point
# ---------------------------------------------------------------------------


def _build_processor_chain(config: LoggingConfig) -> list[structlog.types.Processor]:
    """Build the structlog processor chain from *config*."""
    processors: list[structlog.types.Processor] = [
        _add_timestamp,
        _add_log_level,
    ]

    if config.context:
        processors.append(_make_context_injector(config.context))

    if config.format == LogFormat.JSON:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    return processors


def configure_bridge_logging(
    config: LoggingConfig | None = None,
    stream: TextIO | None = None,
) -> LoggingConfig:
    """Configure structlog and stdlib logging for the bridge.

    Args:
        config: A :class:`LoggingConfig` instance, or ``None`` for defaults
            (console output, WARNING level).
        stream: Output stream. Defaults to ``sys.stderr``.

    Returns:
        The :class:`LoggingConfig` that was applied.
    """
    if config is None:
        config = LoggingConfig()
    output = stream if stream is not None else sys.stderr

    root_level = getattr(logging, config.level.upper(), logging.WARNING)

    # stdlib logging carries the websockets library's own records
    logging.basicConfig(
        format="%(levelname)s %(name)s: %(message)s",
        stream=output,
        level=root_level,
        force=True,
    )

    structlog.configure(
        processors=_build_processor_chain(config),
        wrapper_class=structlog.make_filtering_bound_logger(root_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=output),
        cache_logger_on_first_use=False,
    )

    return config
