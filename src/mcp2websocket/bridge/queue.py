"""Outbound queue: FIFO buffer of messages awaiting the WebSocket transport."""

from __future__ import annotations

__all__ = ["FrameSink", "OutboundQueue"]

import asyncio
from collections import deque
from typing import Protocol, runtime_checkable

import structlog

from mcp2websocket.bridge.types import Message

logger = structlog.get_logger(__name__)


@runtime_checkable
class FrameSink(Protocol):
    """Anything that can attempt delivery of one message.

    Implemented by the connection controller; the queue depends only on this
    protocol.
    """

    async def try_send(self, message: Message) -> bool: ...


class OutboundQueue:
    """Ordered, unbounded buffer of pending outbound messages.

    Arrival order is preserved by ``enqueue`` and by ``drain_into``. A message
    that the sink refuses goes back to the head so the next drain retries it
    first. A message whose delivery raises is logged and dropped so it cannot
    block the messages behind it.
    """

    def __init__(self) -> None:
        self._items: deque[Message] = deque()
        self._draining = False

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"OutboundQueue(pending={len(self._items)}, draining={self._draining})"

    @property
    def is_empty(self) -> bool:
        return not self._items

    @property
    def is_draining(self) -> bool:
        """True while a drain is delivering messages."""
        return self._draining

    def enqueue(self, message: Message) -> None:
        """Append a message to the tail."""
        self._items.append(message)
        logger.debug("message_queued", pending=len(self._items))

    def snapshot(self) -> list[Message]:
        """Return a copy of the pending messages, head first."""
        return list(self._items)

    def clear(self) -> int:
        """Drop every pending message and return how many were dropped."""
        dropped = len(self._items)
        self._items.clear()
        return dropped

    async def drain_into(self, sink: FrameSink) -> int:
        """Deliver queued messages to *sink* until empty or refused.

        Messages enqueued while the drain is awaiting the sink are delivered
        by the same drain. Calling this while another drain is running is a
        no-op.

        Args:
            sink: Delivery target.

        Returns:
            Number of messages delivered by this call.
        """
        if self._draining:
            return 0

        self._draining = True
        delivered = 0
        try:
            while self._items:
                message = self._items.popleft()
                try:
                    sent = await sink.try_send(message)
                except asyncio.CancelledError:
                    self._items.appendleft(message)
                    raise
                except Exception:
                    logger.exception("queued_message_dropped", pending=len(self._items))
                    continue
                if not sent:
                    self._items.appendleft(message)
                    break
                delivered += 1
        finally:
            self._draining = False

        if delivered:
            logger.debug("queue_drained", delivered=delivered, pending=len(self._items))
        return delivered
