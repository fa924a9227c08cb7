"""Frame codec: one line of JSON-RPC text <-> one structured message.

Used by both directions of the relay. Payloads are parsed only far enough to
move them as structured values; nothing is validated or rewritten.
"""

from __future__ import annotations

__all__ = ["FrameCodec"]

import json

from mcp2websocket.bridge.errors import MalformedFrameError
from mcp2websocket.bridge.types import Message


class FrameCodec:
    """Decodes and encodes single frames."""

    @staticmethod
    def decode(line: str | bytes) -> Message:
        """Parse one frame into a structured message.

        Args:
            line: One line of text (or UTF-8 bytes). Surrounding whitespace,
                including the line terminator, is ignored.

        Returns:
            The decoded message.

        Raises:
            MalformedFrameError: If the line is not valid UTF-8 or not valid JSON.
        """
        try:
            text = line.decode("utf-8") if isinstance(line, bytes | bytearray) else line
            return json.loads(text)
        except UnicodeDecodeError as e:
            raise MalformedFrameError(line, f"invalid UTF-8: {e}") from e
        except json.JSONDecodeError as e:
            raise MalformedFrameError(line, str(e)) from e

    @staticmethod
    def encode(message: Message) -> str:
        """Serialize a message to one line of compact JSON.

        Non-ASCII characters are escaped, so the result is plain ASCII and
        always encodable as UTF-8, even for lone surrogates that
        ``decode`` accepts from ``\\ud800``-style escapes. The result never
        contains a newline; the transport adds line framing.

        Raises:
            MalformedFrameError: If the value is not JSON-serializable.
        """
        try:
            return json.dumps(message, ensure_ascii=True, separators=(",", ":"))
        except (TypeError, ValueError) as e:
            raise MalformedFrameError(message, str(e)) from e
