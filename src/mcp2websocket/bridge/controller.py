"""WebSocket connection controller - the bridge's connection state machine.

Owns the WebSocket handle and drives::

    disconnected -> connecting -> connected -> disconnected -> ...

Open, message, close and pong signals from the transport drive the state
transitions, which in turn arm the reconnect timer and the heartbeat. All
mutation happens on the event loop thread, one callback at a time.
"""

from __future__ import annotations

__all__ = ["ConnectionController"]

import asyncio
import contextlib
from typing import TYPE_CHECKING, Any

import structlog
from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed, ConnectionClosedError
from websockets.protocol import State

from mcp2websocket.bridge.codec import FrameCodec
from mcp2websocket.bridge.errors import MalformedFrameError
from mcp2websocket.bridge.heartbeat import DEFAULT_HEARTBEAT_INTERVAL_MS, HeartbeatMonitor
from mcp2websocket.bridge.queue import OutboundQueue
from mcp2websocket.bridge.reconnect import (
    DEFAULT_MAX_RECONNECT_INTERVAL_MS,
    DEFAULT_RECONNECT_DECAY,
    DEFAULT_RECONNECT_INTERVAL_MS,
    ReconnectScheduler,
)
from mcp2websocket.bridge.types import BridgeEvent, ConnectionState, Message

if TYPE_CHECKING:
    from collections.abc import Callable

    from websockets.asyncio.client import ClientConnection

logger = structlog.get_logger(__name__)


class ConnectionController:
    """Connects, reconnects and relays messages over one WebSocket.

    Messages from the local side go through :meth:`send_to_remote`; frames from
    the remote side are decoded and handed to *on_message*. Lifecycle changes
    are reported through *on_event*.
    """

    def __init__(
        self,
        url: str,
        *,
        token: str | None = None,
        reconnect_interval_ms: float = DEFAULT_RECONNECT_INTERVAL_MS,
        max_reconnect_interval_ms: float = DEFAULT_MAX_RECONNECT_INTERVAL_MS,
        reconnect_decay: float = DEFAULT_RECONNECT_DECAY,
        heartbeat_interval_ms: float = DEFAULT_HEARTBEAT_INTERVAL_MS,
        on_message: Callable[[Message], None] | None = None,
        on_event: Callable[[BridgeEvent, Any], None] | None = None,
        connect_factory: Callable[..., Any] | None = None,
    ) -> None:
        """Initialise the controller.

        Args:
            url: ``ws://`` or ``wss://`` endpoint.
            token: Optional bearer token sent on every connection attempt.
            reconnect_interval_ms: Delay before the first retry.
            max_reconnect_interval_ms: Upper bound for retry delays.
            reconnect_decay: Backoff growth factor.
            heartbeat_interval_ms: Interval between pings while connected.
            on_message: Called with each decoded inbound message.
            on_event: Called with ``(event, details)`` on lifecycle changes.
            connect_factory: Replacement for ``websockets`` ``connect``;
                awaited with ``(url, **kwargs)`` and must return a connection.
        """
        self._url = url
        self._token = token
        self._heartbeat_interval_s = heartbeat_interval_ms / 1000.0
        self._on_message = on_message
        self._on_event = on_event
        self._connect_factory = connect_factory or ws_connect

        self._state = ConnectionState.DISCONNECTED
        self._attempts = 0
        self._closing = False
        self._sending = False
        self._queue = OutboundQueue()
        self._heartbeat = HeartbeatMonitor()
        self._scheduler = ReconnectScheduler(
            base_interval_ms=reconnect_interval_ms,
            decay=reconnect_decay,
            max_interval_ms=max_reconnect_interval_ms,
        )

        self._ws: ClientConnection | None = None
        self._connect_task: asyncio.Task[None] | None = None
        self._receive_task: asyncio.Task[None] | None = None
        self._drain_task: asyncio.Task[None] | None = None

    def __repr__(self) -> str:
        return f"ConnectionController(url={self._url!r}, state={self._state.value})"

    # --- Properties ---------------------------------------------------------

    @property
    def url(self) -> str:
        return self._url

    @property
    def state(self) -> ConnectionState:
        """Return the current connection state."""
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def closed(self) -> bool:
        """True once :meth:`halt` has been called. Terminal."""
        return self._closing

    @property
    def attempts(self) -> int:
        """Reconnect attempts since the last successful connection."""
        return self._attempts

    @property
    def queue(self) -> OutboundQueue:
        return self._queue

    @property
    def heartbeat(self) -> HeartbeatMonitor:
        return self._heartbeat

    @property
    def scheduler(self) -> ReconnectScheduler:
        return self._scheduler

    # --- Connection lifecycle -----------------------------------------------

    def connect(self) -> None:
        """Start a connection attempt.

        Only valid from DISCONNECTED; ignored in any other state or once the
        controller has been halted.
        """
        if self._closing or self._state != ConnectionState.DISCONNECTED:
            return

        self._state = ConnectionState.CONNECTING
        self._connect_task = asyncio.get_running_loop().create_task(
            self._open(), name="ws-connect"
        )

    def halt(self) -> None:
        """Enter the terminal state and cancel both timers.

        Synchronous so that neither the retry timer nor the heartbeat can fire
        once shutdown has begun. Sockets and tasks are released by
        :meth:`close`.
        """
        self._closing = True
        self._scheduler.cancel()
        self._heartbeat.stop()

    async def close(self) -> None:
        """Shut the controller down and release the transport."""
        self.halt()

        ws = self._ws
        self._ws = None
        self._state = ConnectionState.DISCONNECTED

        pending = [
            task
            for task in (self._connect_task, self._receive_task, self._drain_task)
            if task is not None and not task.done() and task is not asyncio.current_task()
        ]
        for task in pending:
            task.cancel()
        for task in pending:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._connect_task = None
        self._receive_task = None
        self._drain_task = None

        if ws is not None:
            try:
                await ws.close()
            except (ConnectionClosed, OSError):
                logger.debug("websocket_close_failed", exc_info=True)
        logger.info("controller_closed", pending=len(self._queue))

    def _auth_headers(self) -> dict[str, str]:
        if self._token:
            return {"Authorization": f"Bearer {self._token}"}
        return {}

    async def _open(self) -> None:
        logger.info("websocket_connecting", url=self._url, attempt=self._attempts)
        try:
            ws = await self._connect_factory(
                self._url,
                additional_headers=self._auth_headers(),
                ping_interval=None,
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._on_open_failed(exc)
            return

        if self._closing:
            await ws.close()
            return
        self._on_open(ws)

    def _on_open(self, ws: ClientConnection) -> None:
        self._connect_task = None
        self._ws = ws
        self._state = ConnectionState.CONNECTED
        self._attempts = 0
        logger.info("websocket_connected", url=self._url)

        self._heartbeat.start(self._heartbeat_interval_s, self._send_ping)
        self._receive_task = asyncio.get_running_loop().create_task(
            self._receive(ws), name="ws-receive"
        )
        self._emit(BridgeEvent.CONNECTED, None)
        self._schedule_drain()

    def _on_open_failed(self, exc: Exception) -> None:
        self._connect_task = None
        self._state = ConnectionState.DISCONNECTED
        logger.warning(
            "websocket_connect_failed",
            url=self._url,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        self._emit(BridgeEvent.ERROR, exc)
        if not self._closing:
            self._schedule_reconnect()

    def _on_close(self, ws: ClientConnection) -> None:
        if ws is not self._ws:
            return
        self._ws = None
        self._receive_task = None
        self._heartbeat.stop()
        self._state = ConnectionState.DISCONNECTED

        details = {"code": ws.close_code, "reason": ws.close_reason}
        logger.info("websocket_closed", **details)
        self._emit(BridgeEvent.DISCONNECTED, details)
        if not self._closing:
            self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        self._scheduler.schedule_next(self._attempts, self._on_retry)

    def _on_retry(self) -> None:
        self._attempts += 1
        self.connect()

    # --- Inbound ------------------------------------------------------------

    async def _receive(self, ws: ClientConnection) -> None:
        try:
            async for raw in ws:
                self._handle_frame(raw)
        except ConnectionClosedError as exc:
            logger.warning("websocket_error", error=str(exc))
            self._emit(BridgeEvent.ERROR, exc)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("websocket_receive_failed")
            self._emit(BridgeEvent.ERROR, exc)
        self._on_close(ws)

    def _handle_frame(self, raw: str | bytes) -> None:
        try:
            message = FrameCodec.decode(raw)
        except MalformedFrameError as exc:
            logger.warning("remote_frame_discarded", reason=exc.reason)
            return
        logger.debug("remote_message_received")
        if self._on_message is not None:
            self._on_message(message)

    # --- Outbound -----------------------------------------------------------

    def _socket_open(self) -> bool:
        return self._ws is not None and self._ws.state is State.OPEN

    def _can_send_now(self) -> bool:
        return (
            self._state == ConnectionState.CONNECTED
            and self._socket_open()
            and self._queue.is_empty
            and not self._queue.is_draining
            and not self._sending
        )

    async def send_to_remote(self, message: Message) -> bool:
        """Deliver *message* now if possible, otherwise queue it.

        A message never overtakes one that is already queued. A message that
        cannot be sent for a reason other than the transport (for example one
        that fails to encode) is logged, reported as an error and dropped.

        Args:
            message: Decoded message from the local side.

        Returns:
            True if the message was written to the socket, False if queued
            or dropped.
        """
        if self._can_send_now():
            self._sending = True
            try:
                if await self.try_send(message):
                    return True
            except Exception as exc:
                logger.exception("outbound_message_dropped")
                self._emit(BridgeEvent.ERROR, exc)
                return False
            finally:
                self._sending = False
        elif not self.is_connected:
            logger.warning("websocket_not_connected_queueing", pending=len(self._queue) + 1)

        self._queue.enqueue(message)
        self._schedule_drain()
        return False

    async def try_send(self, message: Message) -> bool:
        """Write one message to the socket.

        Returns:
            False if not connected or the write failed, True otherwise.
        """
        ws = self._ws
        if self._state != ConnectionState.CONNECTED or ws is None or ws.state is not State.OPEN:
            return False
        try:
            await ws.send(FrameCodec.encode(message))
        except (ConnectionClosed, OSError) as exc:
            logger.warning("websocket_send_failed", error=str(exc))
            return False
        return True

    async def flush(self) -> int:
        """Drain the outbound queue now. Returns the number delivered."""
        if not self.is_connected:
            return 0
        return await self._queue.drain_into(self)

    def _schedule_drain(self) -> None:
        if self._closing or not self.is_connected or self._queue.is_empty:
            return
        if self._drain_task is not None and not self._drain_task.done():
            return
        self._drain_task = asyncio.get_running_loop().create_task(
            self._drain(), name="queue-drain"
        )

    async def _drain(self) -> None:
        try:
            delivered = await self._queue.drain_into(self)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("queue_drain_failed")
            return
        if delivered:
            logger.info("queued_messages_sent", delivered=delivered, pending=len(self._queue))

    # --- Heartbeat ----------------------------------------------------------

    async def _send_ping(self) -> None:
        ws = self._ws
        if self._state != ConnectionState.CONNECTED or ws is None or ws.state is not State.OPEN:
            return
        logger.debug("websocket_ping")
        pong_waiter = await ws.ping()
        pong_waiter.add_done_callback(self._on_pong)

    def _on_pong(self, waiter: asyncio.Future[Any]) -> None:
        if waiter.cancelled() or waiter.exception() is not None:
            return
        self._heartbeat.record_pong()
        logger.debug("websocket_pong")

    # --- Notifications ------------------------------------------------------

    def _emit(self, event: BridgeEvent, details: Any) -> None:
        if self._on_event is not None:
            self._on_event(event, details)
