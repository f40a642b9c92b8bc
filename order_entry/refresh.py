"""
Periodic Refresh

Re-fetches store state on a fixed interval so statuses reported by the
preparation queue (pending -> fired -> completed) reach the entry screen.
The loop is an explicit task with a stop handle; stop() is part of session
teardown.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from order_entry.core.exceptions import OrderEntryError

logger = logging.getLogger(__name__)


class PeriodicRefresh:
    """
    Cancellable polling loop.

    A failed round is logged and the loop carries on; the next round is
    the retry.
    """

    def __init__(self, refresh: Callable[[], Awaitable[None]], interval: float, name: str = "refresh"):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._refresh = refresh
        self._interval = interval
        self._name = name
        self._task: Optional[asyncio.Task] = None
        self.rounds = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self._name)
        logger.debug(f"{self._name}: polling every {self._interval}s")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug(f"{self._name}: stopped after {self.rounds} round(s)")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self._refresh()
            except OrderEntryError as e:
                logger.warning(f"{self._name}: round failed: {e}")
            self.rounds += 1
