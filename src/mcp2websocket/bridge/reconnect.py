"""Reconnect scheduler - exponential backoff with a single pending retry.

Delay for attempt ``n`` is ``min(base * decay ** n, maximum)``. With the
defaults that is 1000, 1500, 2250, 3375, ... ms, clamped at 30000 ms.
"""

from __future__ import annotations

__all__ = ["ReconnectScheduler", "compute_delay"]

import asyncio
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import Callable

logger = structlog.get_logger(__name__)

DEFAULT_RECONNECT_INTERVAL_MS = 1000.0
DEFAULT_MAX_RECONNECT_INTERVAL_MS = 30000.0
DEFAULT_RECONNECT_DECAY = 1.5


def compute_delay(attempt: int, base_ms: float, decay: float, maximum_ms: float) -> float:
    """Return the backoff delay in milliseconds for *attempt* (0-based)."""
    if attempt < 0:
        raise ValueError("attempt must be non-negative")
    try:
        delay = base_ms * decay**attempt
    except OverflowError:
        return maximum_ms
    return min(delay, maximum_ms)


class ReconnectScheduler:
    """Owns the one pending reconnect timer.

    Usage::

        scheduler = ReconnectScheduler()
        delay_ms = scheduler.schedule_next(attempt, connect)
        ...
        scheduler.cancel()
    """

    def __init__(
        self,
        base_interval_ms: float = DEFAULT_RECONNECT_INTERVAL_MS,
        decay: float = DEFAULT_RECONNECT_DECAY,
        max_interval_ms: float = DEFAULT_MAX_RECONNECT_INTERVAL_MS,
    ) -> None:
        """Initialise the scheduler.

        Args:
            base_interval_ms: Delay before the first retry.
            decay: Growth factor applied per attempt.
            max_interval_ms: Upper bound for any delay.
        """
        self._base_ms = base_interval_ms
        self._decay = decay
        self._max_ms = max_interval_ms
        self._handle: asyncio.TimerHandle | None = None
        self._pending_delay_ms: float | None = None

    def __repr__(self) -> str:
        return (
            f"ReconnectScheduler(base_ms={self._base_ms}, decay={self._decay}, "
            f"max_ms={self._max_ms}, pending={self.pending})"
        )

    @property
    def pending(self) -> bool:
        """True while a retry timer is armed."""
        return self._handle is not None

    @property
    def pending_delay_ms(self) -> float | None:
        """Delay of the armed timer, or ``None``."""
        return self._pending_delay_ms

    def delay_for(self, attempt: int) -> float:
        """Backoff delay in milliseconds for *attempt*."""
        return compute_delay(attempt, self._base_ms, self._decay, self._max_ms)

    def schedule_next(self, attempt: int, callback: Callable[[], object]) -> float:
        """Arm the retry timer for *attempt*.

        If a timer is already pending nothing changes and its delay is
        returned.

        Args:
            attempt: 0-based attempt number driving the backoff.
            callback: Called on the event loop when the timer fires.

        Returns:
            The delay in milliseconds of the pending timer.
        """
        if self._handle is not None and self._pending_delay_ms is not None:
            return self._pending_delay_ms

        delay_ms = self.delay_for(attempt)
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(delay_ms / 1000.0, self._fire, callback)
        self._pending_delay_ms = delay_ms
        logger.info("reconnect_scheduled", delay_ms=delay_ms, attempt=attempt + 1)
        return delay_ms

    def cancel(self) -> bool:
        """Cancel the pending timer. Returns True if one was cancelled."""
        if self._handle is None:
            return False
        self._handle.cancel()
        self._handle = None
        self._pending_delay_ms = None
        return True

    def _fire(self, callback: Callable[[], object]) -> None:
        self._handle = None
        self._pending_delay_ms = None
        callback()
