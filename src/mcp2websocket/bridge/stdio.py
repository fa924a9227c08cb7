"""Local line-oriented transport: stdin reader and stdout writer.

stdout is reserved for protocol lines. Logs must never be written there.
"""

from __future__ import annotations

__all__ = ["StdinLineReader", "StdoutLineWriter"]

import asyncio
import sys
from typing import TYPE_CHECKING, TextIO

import structlog

from mcp2websocket.bridge.codec import FrameCodec
from mcp2websocket.bridge.errors import LocalIOError

if TYPE_CHECKING:
    from mcp2websocket.bridge.types import Message

logger = structlog.get_logger(__name__)

# asyncio's default 64 KiB line limit is too small for large JSON-RPC results.
DEFAULT_LINE_LIMIT = 8 * 1024 * 1024


class StdinLineReader:
    """Async iterator over the lines of the local input stream.

    Yields raw ``bytes`` lines (terminator included). Blank lines are skipped
    and oversized lines are logged and dropped.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader | None = None,
        *,
        limit: int = DEFAULT_LINE_LIMIT,
    ) -> None:
        """Initialise the reader.

        Args:
            reader: Existing stream to read from. When omitted, :meth:`open`
                attaches ``sys.stdin``.
            limit: Maximum accepted line length in bytes.
        """
        self._reader = reader
        self._limit = limit
        self._transport: asyncio.ReadTransport | None = None
        self._feeder: asyncio.Task[None] | None = None

    async def open(self) -> None:
        """Attach to ``sys.stdin`` unless a stream was injected.

        Pipes, sockets and terminals are read through the event loop. Anything
        else (a regular file redirected with ``<``, or a Windows console) is
        read line by line in the default executor.
        """
        if self._reader is not None:
            return
        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader(limit=self._limit)
        protocol = asyncio.StreamReaderProtocol(reader)
        try:
            self._transport, _ = await loop.connect_read_pipe(lambda: protocol, sys.stdin)
        except (ValueError, NotImplementedError, OSError) as exc:
            logger.debug("stdin_pipe_unavailable", error=str(exc))
            self._feeder = loop.create_task(self._feed_from_thread(reader), name="stdin-feeder")
        self._reader = reader

    def close(self) -> None:
        """Release the stdin pipe or feeder if this reader opened one."""
        if self._transport is not None:
            self._transport.close()
            self._transport = None
        if self._feeder is not None:
            self._feeder.cancel()
            self._feeder = None

    async def _feed_from_thread(self, reader: asyncio.StreamReader) -> None:
        loop = asyncio.get_running_loop()
        stream = sys.stdin.buffer
        try:
            while True:
                line = await loop.run_in_executor(None, stream.readline)
                if not line:
                    break
                reader.feed_data(line)
        except OSError as exc:
            reader.set_exception(exc)
            return
        reader.feed_eof()

    def __aiter__(self) -> StdinLineReader:
        return self

    async def __anext__(self) -> bytes:
        line = await self.readline()
        if line is None:
            raise StopAsyncIteration
        return line

    async def readline(self) -> bytes | None:
        """Return the next non-blank line, or ``None`` at end of input."""
        if self._reader is None:
            raise RuntimeError("StdinLineReader is not open")
        while True:
            try:
                line = await self._reader.readline()
            except ValueError:
                logger.warning("local_frame_too_long", limit=self._limit)
                continue
            if not line:
                return None
            if line.strip():
                return line


class StdoutLineWriter:
    """Writes one message per line to the local output stream."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream

    def write_message(self, message: Message) -> None:
        """Encode *message*, write it with a newline and flush.

        Raises:
            LocalIOError: If the stream cannot be written.
        """
        stream = self._stream if self._stream is not None else sys.stdout
        line = FrameCodec.encode(message)
        try:
            stream.write(line + "\n")
            stream.flush()
        except (OSError, ValueError) as e:
            raise LocalIOError(f"Failed to write to local output: {e}") from e
