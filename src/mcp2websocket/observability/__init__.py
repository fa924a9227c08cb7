"""Observability: structured logging to stderr."""

from mcp2websocket.observability.logging_config import (
    LogFormat,
    LoggingConfig,
    configure_bridge_logging,
)

__all__ = [
    "LogFormat",
    "LoggingConfig",
    "configure_bridge_logging",
]
