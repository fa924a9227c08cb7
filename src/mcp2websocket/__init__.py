"""mcp2websocket: relay JSON-RPC between stdio and a WebSocket server."""

from mcp2websocket.bridge import BridgeEvent, ConnectionState, WebSocketBridge
from mcp2websocket.config import BridgeSettings, get_settings

__all__ = [
    "BridgeEvent",
    "BridgeSettings",
    "ConnectionState",
    "WebSocketBridge",
    "get_settings",
]
