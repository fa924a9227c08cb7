"""Heartbeat monitor - periodic liveness probes on the live connection.

The probe is diagnostic only. A missing pong never forces a reconnect; the
transport's own close/error signalling is the sole failure signal.
"""

from __future__ import annotations

__all__ = ["HeartbeatMonitor"]

import asyncio
import time
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine

logger = structlog.get_logger(__name__)

DEFAULT_HEARTBEAT_INTERVAL_MS = 30000.0


class HeartbeatMonitor:
    """Runs a single periodic probe task while armed.

    Tracks:
    - Probe count and time of the last probe
    - Time of the last observed pong
    """

    def __init__(self) -> None:
        self._task: asyncio.Task[None] | None = None
        self._interval_s = 0.0
        self._probe_count = 0
        self._last_probe_at: float | None = None
        self._last_pong_at: float | None = None

    def __repr__(self) -> str:
        return f"HeartbeatMonitor(armed={self.armed}, interval_s={self._interval_s})"

    # --- Properties ---------------------------------------------------------

    @property
    def armed(self) -> bool:
        """True while a probe cycle is pending."""
        return self._task is not None and not self._task.done()

    @property
    def probe_count(self) -> int:
        return self._probe_count

    @property
    def last_probe_at(self) -> float | None:
        return self._last_probe_at

    @property
    def last_pong_at(self) -> float | None:
        return self._last_pong_at

    # --- Lifecycle ----------------------------------------------------------

    def start(
        self,
        interval_s: float,
        probe: Callable[[], Coroutine[Any, Any, None]],
    ) -> None:
        """Begin calling *probe* every *interval_s* seconds.

        No-op if already armed, so there is never more than one probe cycle.

        Args:
            interval_s: Seconds between probes.
            probe: Async callable that sends one liveness ping.

        Raises:
            ValueError: If *interval_s* is not positive.
        """
        if self.armed:
            return
        if interval_s <= 0:
            raise ValueError("interval_s must be positive")

        self._interval_s = interval_s
        self._task = asyncio.get_running_loop().create_task(
            self._run(interval_s, probe), name="heartbeat"
        )
        logger.debug("heartbeat_started", interval_s=interval_s)

    def stop(self) -> None:
        """Cancel the probe cycle. No probe runs after this returns."""
        if self._task is None:
            return
        self._task.cancel()
        self._task = None
        logger.debug("heartbeat_stopped", probes=self._probe_count)

    def record_pong(self) -> None:
        """Record that the remote answered a probe."""
        self._last_pong_at = time.monotonic()

    async def _run(
        self,
        interval_s: float,
        probe: Callable[[], Coroutine[Any, Any, None]],
    ) -> None:
        while True:
            await asyncio.sleep(interval_s)
            self._probe_count += 1
            self._last_probe_at = time.monotonic()
            try:
                await probe()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.warning("heartbeat_probe_failed", exc_info=True)
