"""Exceptions raised by the bridge."""

from __future__ import annotations

__all__ = ["BridgeError", "LocalIOError", "MalformedFrameError"]

from typing import Any


class BridgeError(Exception):
    """Base class for bridge errors."""


class MalformedFrameError(BridgeError, ValueError):
    """A frame could not be decoded into a message, or a message not encoded.

    Recoverable: the caller logs and drops the frame.
    """

    def __init__(self, line: Any, reason: str) -> None:
        self.line = line
        self.reason = reason
        super().__init__(f"Malformed frame: {reason}")


class LocalIOError(BridgeError, OSError):
    """Writing to the local output failed.

    Fatal: the local stream is the bridge's only contract with its client.
    """
