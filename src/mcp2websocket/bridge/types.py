"""Bridge-specific type definitions.

ConnectionState vs BridgeEvent:
- ConnectionState: the controller's WebSocket lifecycle state
  (disconnected/connecting/connected). Exactly one per controller.
- BridgeEvent: lifecycle notifications emitted to the embedding process.
  Best-effort signalling, not part of the message-delivery contract.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

# One decoded JSON-RPC frame. The bridge never looks inside it.
Message = Any


class ConnectionState(StrEnum):
    """Connection state of the WebSocket transport."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class BridgeEvent(StrEnum):
    """Lifecycle notifications emitted by the bridge."""

    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"
