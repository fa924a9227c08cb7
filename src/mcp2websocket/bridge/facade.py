"""Bridge facade - stdio <-> WebSocket relay with lifecycle management.

Composes the connection controller with the local line reader and writer and
exposes ``start`` / ``shutdown`` plus connected/disconnected/error
notifications to the embedding process.
"""

from __future__ import annotations

__all__ = ["WebSocketBridge"]

import asyncio
import contextlib
import inspect
from typing import TYPE_CHECKING, Any

import structlog

from mcp2websocket.bridge.codec import FrameCodec
from mcp2websocket.bridge.controller import ConnectionController
from mcp2websocket.bridge.errors import LocalIOError, MalformedFrameError
from mcp2websocket.bridge.stdio import StdinLineReader, StdoutLineWriter
from mcp2websocket.bridge.types import BridgeEvent, Message

if TYPE_CHECKING:
    from collections.abc import Callable

    from mcp2websocket.config.settings import BridgeSettings

logger = structlog.get_logger(__name__)

EXIT_OK = 0
EXIT_LOCAL_IO_FAILURE = 1


class WebSocketBridge:
    """Transparent JSON-RPC relay between stdio and a WebSocket server.

    Usage::

        bridge = WebSocketBridge(settings)
        bridge.on(BridgeEvent.CONNECTED, lambda _details: ...)
        exit_code = await bridge.run()

    Listeners receive one positional argument: ``None`` for ``connected``,
    ``{"code": ..., "reason": ...}`` for ``disconnected`` and the exception
    for ``error``. They are called on a later loop turn, so a slow or failing
    listener never holds up relaying.
    """

    def __init__(
        self,
        settings: BridgeSettings,
        *,
        reader: StdinLineReader | None = None,
        writer: StdoutLineWriter | None = None,
        connect_factory: Callable[..., Any] | None = None,
    ) -> None:
        """Initialise the bridge.

        Args:
            settings: Validated bridge settings.
            reader: Local input. Defaults to stdin.
            writer: Local output. Defaults to stdout.
            connect_factory: Optional replacement for the WebSocket connect call.
        """
        self._settings = settings
        self._reader = reader or StdinLineReader()
        self._writer = writer or StdoutLineWriter()
        self._controller = ConnectionController(
            settings.url,
            token=settings.token,
            reconnect_interval_ms=settings.reconnect_interval_ms,
            max_reconnect_interval_ms=settings.max_reconnect_interval_ms,
            reconnect_decay=settings.reconnect_decay,
            heartbeat_interval_ms=settings.heartbeat_interval_ms,
            on_message=self._on_remote_message,
            on_event=self._notify,
            connect_factory=connect_factory,
        )
        self._listeners: dict[BridgeEvent, list[Callable[[Any], Any]]] = {
            event: [] for event in BridgeEvent
        }
        self._listener_tasks: set[asyncio.Task[Any]] = set()
        self._started = False
        self._stdin_task: asyncio.Task[None] | None = None
        self._shutdown_task: asyncio.Task[None] | None = None
        self._exit_future: asyncio.Future[int] | None = None

    def __repr__(self) -> str:
        return f"WebSocketBridge(url={self._settings.url!r}, state={self._controller.state.value})"

    # --- Properties ---------------------------------------------------------

    @property
    def controller(self) -> ConnectionController:
        return self._controller

    @property
    def shutting_down(self) -> bool:
        return self._shutdown_task is not None

    # --- Notifications ------------------------------------------------------

    def on(self, event: BridgeEvent | str, callback: Callable[[Any], Any]) -> None:
        """Register *callback* for a lifecycle notification."""
        self._listeners[BridgeEvent(event)].append(callback)

    def off(self, event: BridgeEvent | str, callback: Callable[[Any], Any]) -> None:
        """Remove a previously registered callback. Unknown callbacks are ignored."""
        with contextlib.suppress(ValueError):
            self._listeners[BridgeEvent(event)].remove(callback)

    def _notify(self, event: BridgeEvent, details: Any) -> None:
        if self.shutting_down:
            return
        loop = asyncio.get_running_loop()
        for callback in list(self._listeners[event]):
            loop.call_soon(self._deliver, callback, event, details)

    def _deliver(self, callback: Callable[[Any], Any], event: BridgeEvent, details: Any) -> None:
        try:
            result = callback(details)
        except Exception:
            logger.exception("listener_failed", bridge_event=str(event))
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._listener_tasks.add(task)
            task.add_done_callback(self._listener_tasks.discard)

    # --- Lifecycle ----------------------------------------------------------

    def _ensure_exit_future(self) -> asyncio.Future[int]:
        if self._exit_future is None:
            self._exit_future = asyncio.get_running_loop().create_future()
        return self._exit_future

    async def start(self) -> None:
        """Begin reading local input and attempt the first connection.

        Raises:
            RuntimeError: If the bridge was already started.
        """
        if self._started:
            raise RuntimeError("Bridge already started")
        self._started = True
        self._ensure_exit_future()

        logger.info("bridge_starting", url=self._settings.url)
        await self._reader.open()
        self._stdin_task = asyncio.get_running_loop().create_task(
            self._pump_stdin(), name="stdin-reader"
        )
        self._controller.connect()

    async def run(self) -> int:
        """Start the bridge and wait for shutdown. Returns the exit code."""
        await self.start()
        return await self.wait_closed()

    async def wait_closed(self) -> int:
        """Wait until shutdown has completed and return the exit code."""
        return await asyncio.shield(self._ensure_exit_future())

    def shutdown(self, exit_code: int = EXIT_OK) -> None:
        """Stop relaying and release every resource.

        Idempotent: calls after the first are ignored. The reconnect timer and
        the heartbeat are cancelled before this returns; the socket and the
        input reader are released by a teardown task that resolves
        :meth:`wait_closed`.
        """
        if self._shutdown_task is not None:
            return
        logger.info("bridge_shutting_down", exit_code=exit_code)
        self._controller.halt()
        self._ensure_exit_future()
        self._shutdown_task = asyncio.get_running_loop().create_task(
            self._teardown(exit_code), name="bridge-teardown"
        )

    async def _teardown(self, exit_code: int) -> None:
        try:
            task = self._stdin_task
            if task is not None and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
            self._stdin_task = None

            await self._controller.close()
            self._reader.close()
            logger.info("bridge_stopped", exit_code=exit_code)
        finally:
            future = self._ensure_exit_future()
            if not future.done():
                future.set_result(exit_code)

    # --- Relay --------------------------------------------------------------

    async def _pump_stdin(self) -> None:
        try:
            async for line in self._reader:
                try:
                    await self.relay_local_line(line)
                except Exception as exc:
                    logger.exception("local_relay_failed")
                    self._notify(BridgeEvent.ERROR, exc)
        except OSError as exc:
            logger.exception("stdin_read_failed")
            self._notify(BridgeEvent.ERROR, exc)
            self.shutdown(EXIT_LOCAL_IO_FAILURE)
            return
        logger.info("stdin_closed")
        self.shutdown()

    async def relay_local_line(self, line: str | bytes) -> None:
        """Decode one local line and hand it to the controller.

        Malformed lines are logged and dropped.
        """
        try:
            message = FrameCodec.decode(line)
        except MalformedFrameError as exc:
            logger.warning("local_frame_discarded", reason=exc.reason)
            return
        logger.debug("local_message_received")
        await self._controller.send_to_remote(message)

    def _on_remote_message(self, message: Message) -> None:
        try:
            self._writer.write_message(message)
        except MalformedFrameError as exc:
            logger.warning("remote_frame_discarded", reason=exc.reason)
        except LocalIOError:
            logger.exception("local_output_failed")
            self.shutdown(EXIT_LOCAL_IO_FAILURE)
