"""Test helper classes for mcp2websocket tests.

FakeConnection stands in for a ``websockets`` client connection; FakeConnector
stands in for ``websockets.asyncio.client.connect``.
"""

from __future__ import annotations

import asyncio
from typing import Any

from websockets.exceptions import ConnectionClosedError
from websockets.protocol import State


class _Closed:
    """Sentinel placed in the incoming queue when the connection ends."""

    def __init__(self, error: Exception | None) -> None:
        self.error = error


class FakeConnection:
    """In-memory WebSocket client connection."""

    def __init__(self) -> None:
        self.state = State.OPEN
        self.sent: list[str] = []
        self.pings = 0
        self.auto_pong = True
        self.fail_send = False
        self.send_error: Exception | None = None
        self.close_called = False
        self.close_code: int | None = None
        self.close_reason: str | None = None
        self._incoming: asyncio.Queue[Any] = asyncio.Queue()

    # --- client API used by the controller ---

    async def send(self, text: str) -> None:
        if self.state is not State.OPEN or self.fail_send:
            raise ConnectionClosedError(None, None)
        if self.send_error is not None:
            raise self.send_error
        # text frames go out as UTF-8, as in the real client
        text.encode("utf-8")
        self.sent.append(text)

    async def ping(self) -> asyncio.Future[float]:
        self.pings += 1
        waiter: asyncio.Future[float] = asyncio.get_running_loop().create_future()
        if self.auto_pong:
            waiter.set_result(0.0)
        return waiter

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.close_called = True
        if self.state is State.OPEN:
            self._finish(code, reason, None)

    def __aiter__(self) -> FakeConnection:
        return self

    async def __anext__(self) -> str | bytes:
        item = await self._incoming.get()
        if isinstance(item, _Closed):
            self._incoming.put_nowait(item)
            if item.error is not None:
                raise item.error
            raise StopAsyncIteration
        return item

    # --- test controls ---

    def feed(self, raw: str | bytes) -> None:
        """Deliver one frame from the "server"."""
        self._incoming.put_nowait(raw)

    def drop(self, code: int = 1006, reason: str = "", *, error: bool = True) -> None:
        """Simulate the server side going away."""
        self._finish(code, reason, ConnectionClosedError(None, None) if error else None)

    def _finish(self, code: int, reason: str, error: Exception | None) -> None:
        self.state = State.CLOSED
        self.close_code = code
        self.close_reason = reason
        self._incoming.put_nowait(_Closed(error))


class FakeConnector:
    """Callable replacement for ``websockets`` ``connect``.

    Set ``failures`` to make the next N attempts raise ``error``.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.connections: list[FakeConnection] = []
        self.failures = 0
        self.error: Exception = ConnectionRefusedError("connection refused")

    async def __call__(self, url: str, **kwargs: Any) -> FakeConnection:
        self.calls.append((url, kwargs))
        if self.failures > 0:
            self.failures -= 1
            raise self.error
        conn = FakeConnection()
        self.connections.append(conn)
        return conn

    @property
    def last(self) -> FakeConnection:
        return self.connections[-1]


async def settle(turns: int = 10) -> None:
    """Let pending callbacks and tasks run for a few loop turns."""
    for _ in range(turns):
        await asyncio.sleep(0)


async def wait_for(predicate: Any, timeout: float = 2.0) -> None:
    """Poll *predicate* until true or fail after *timeout* seconds."""
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout=timeout)
