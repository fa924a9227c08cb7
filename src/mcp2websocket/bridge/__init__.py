"""stdio <-> WebSocket bridge: codec, queue, heartbeat, reconnect and controller."""

from mcp2websocket.bridge.codec import FrameCodec
from mcp2websocket.bridge.controller import ConnectionController
from mcp2websocket.bridge.errors import BridgeError, LocalIOError, MalformedFrameError
from mcp2websocket.bridge.facade import WebSocketBridge
from mcp2websocket.bridge.heartbeat import HeartbeatMonitor
from mcp2websocket.bridge.queue import FrameSink, OutboundQueue
from mcp2websocket.bridge.reconnect import ReconnectScheduler, compute_delay
from mcp2websocket.bridge.stdio import StdinLineReader, StdoutLineWriter
from mcp2websocket.bridge.types import BridgeEvent, ConnectionState

__all__ = [
    "BridgeError",
    "BridgeEvent",
    "ConnectionController",
    "ConnectionState",
    "FrameCodec",
    "FrameSink",
    "HeartbeatMonitor",
    "LocalIOError",
    "MalformedFrameError",
    "OutboundQueue",
    "ReconnectScheduler",
    "StdinLineReader",
    "StdoutLineWriter",
    "WebSocketBridge",
    "compute_delay",
]
