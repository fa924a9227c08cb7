"""Integration test fixtures: a real WebSocket server on localhost."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import pytest
from websockets.asyncio.server import serve
from websockets.exceptions import ConnectionClosed

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from websockets.asyncio.server import Server, ServerConnection


class EchoServer:
    """Echoes every text frame back and records what it saw."""

    def __init__(self) -> None:
        self.connections: list[ServerConnection] = []
        self.auth_headers: list[str | None] = []
        self.received: list[Any] = []
        self.port = 0
        self._server: Server | None = None

    @property
    def url(self) -> str:
        return f"ws://127.0.0.1:{self.port}/mcp"

    async def start(self) -> None:
        self._server = await serve(self._handler, "127.0.0.1", 0)
        self.port = self._server.sockets[0].getsockname()[1]

    async def stop(self) -> None:
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

    async def drop_all(self, code: int = 1001, reason: str = "restart") -> None:
        """Close every open connection from the server side."""
        for ws in list(self.connections):
            await ws.close(code, reason)

    async def _handler(self, ws: ServerConnection) -> None:
        self.connections.append(ws)
        self.auth_headers.append(ws.request.headers.get("Authorization"))
        try:
            async for raw in ws:
                self.received.append(json.loads(raw))
                await ws.send(raw)
        except ConnectionClosed:
            pass


@pytest.fixture
async def echo_server() -> AsyncIterator[EchoServer]:
    server = EchoServer()
    await server.start()
    yield server
    await server.stop()
