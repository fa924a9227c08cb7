"""Shared test fixtures for mcp2websocket tests."""

from __future__ import annotations

import io
from typing import TYPE_CHECKING, Any

import pytest

from mcp2websocket.bridge.controller import ConnectionController
from mcp2websocket.config.settings import BridgeSettings
from tests.helpers import FakeConnector

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

TEST_URL = "ws://127.0.0.1:9/mcp"


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Any) -> None:
    """Keep host environment variables and .env files out of settings."""
    for name in (
        "AUTH_TOKEN",
        "DEBUG",
        "MCP2WS_URL",
        "MCP2WS_TOKEN",
        "MCP2WS_DEBUG",
        "MCP2WS_HEARTBEAT_INTERVAL_MS",
        "MCP2WS_RECONNECT_INTERVAL_MS",
        "MCP2WS_LOG__LEVEL",
        "MCP2WS_LOG__FORMAT",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def connector() -> FakeConnector:
    """Fake WebSocket connect callable."""
    return FakeConnector()


@pytest.fixture
def received() -> list[Any]:
    """Messages the controller handed to the local side."""
    return []


@pytest.fixture
def events() -> list[tuple[Any, Any]]:
    """Lifecycle events reported by the controller."""
    return []


@pytest.fixture
async def make_controller(
    connector: FakeConnector,
    received: list[Any],
    events: list[tuple[Any, Any]],
) -> AsyncIterator[Callable[..., ConnectionController]]:
    """Factory for controllers wired to the fake connector."""
    created: list[ConnectionController] = []

    def _make(**kwargs: Any) -> ConnectionController:
        kwargs.setdefault("reconnect_interval_ms", 1000.0)
        kwargs.setdefault("heartbeat_interval_ms", 30000.0)
        controller = ConnectionController(
            TEST_URL,
            on_message=received.append,
            on_event=lambda event, details: events.append((event, details)),
            connect_factory=connector,
            **kwargs,
        )
        created.append(controller)
        return controller

    yield _make

    for controller in created:
        await controller.close()


@pytest.fixture
def settings() -> BridgeSettings:
    """Bridge settings with short timers for tests."""
    return BridgeSettings(
        url=TEST_URL,
        reconnect_interval_ms=20.0,
        max_reconnect_interval_ms=100.0,
        heartbeat_interval_ms=30000.0,
    )


@pytest.fixture
def output() -> io.StringIO:
    """In-memory local output stream."""
    return io.StringIO()
