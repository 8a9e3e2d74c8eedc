"""Cancellable recurring timer for the collector."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Set

logger = logging.getLogger(__name__)


class IntervalTimer:
    """Fires an async callback every `interval` seconds until cancelled.

    Each firing runs as its own task, so a slow callback does not delay the
    next tick. Cancelling stops future ticks but leaves running callbacks
    alone.
    """

    def __init__(self, interval: float, callback: Callable[[], Awaitable[None]]):
        self.interval = interval
        self.callback = callback
        self._task: Optional[asyncio.Task] = None
        self._inflight: Set[asyncio.Task] = set()

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def idle(self) -> bool:
        """True when no callback is running."""
        return not self._inflight

    def start(self) -> None:
        """Arm the timer. Must be called from a running event loop."""
        if self.active:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            task = asyncio.get_running_loop().create_task(self._fire())
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)

    async def _fire(self) -> None:
        try:
            await self.callback()
        except Exception:
            logger.exception("Timer callback failed")

    def cancel(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def wait_inflight(self) -> None:
        """Wait for callbacks that were already running when the timer was cancelled."""
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)
