"""
Edit-Window Timer Controller

One countdown per order. Sending items opens the window; every item that
enters limbo while it is open restarts it at the full duration (it never
accumulates). When the window closes, naturally or through force_expire(),
the on_expire callback runs exactly once with the fire time, and the
caller reads live item state at that moment.

The countdown is driven by a single asyncio task that ticks at a fixed
resolution. tick() is public so the projection and expiry can be driven
by hand (auto_tick=False) with an injected clock.
"""

import asyncio
import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
ExpiryCallback = Callable[[datetime], None]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class EditWindowTimer:
    """
    Countdown for a single order's edit window.

    Attributes:
        expires_at: Instant the window closes (None when no window is open)
        seconds_left: Whole-second projection. None before any window was
            opened or after cancel(); 0 once a window has closed by expiry.

    Example:
        >>> timer = EditWindowTimer(on_expire=session.expire_window)
        >>> timer.start(15)
        >>> timer.seconds_left
        15
    """

    def __init__(
        self,
        on_expire: ExpiryCallback,
        *,
        clock: Clock = utc_now,
        tick_interval: float = 1.0,
        auto_tick: bool = True,
    ):
        self._on_expire = on_expire
        self._clock = clock
        self._tick_interval = tick_interval
        self._auto_tick = auto_tick

        self._expires_at: Optional[datetime] = None
        self._seconds_left: Optional[int] = None
        self._task: Optional[asyncio.Task] = None
        self.expirations = 0

    # =========================================================================
    # PROJECTIONS
    # =========================================================================

    @property
    def active(self) -> bool:
        return self._expires_at is not None

    @property
    def expires_at(self) -> Optional[datetime]:
        return self._expires_at

    @property
    def seconds_left(self) -> Optional[int]:
        return self._seconds_left

    def remaining(self, now: Optional[datetime] = None) -> float:
        """Seconds until the window closes (0.0 when none is open)."""
        if self._expires_at is None:
            return 0.0
        now = now or self._clock()
        return max(0.0, (self._expires_at - now).total_seconds())

    # =========================================================================
    # CONTROL
    # =========================================================================

    def start(self, duration_seconds: float, expires_at: Optional[datetime] = None) -> None:
        """
        Open the window for duration_seconds, or until expires_at when the
        store reported the instant itself.
        """
        now = self._clock()
        self._expires_at = expires_at or now + timedelta(seconds=duration_seconds)
        self._seconds_left = math.ceil(self.remaining(now))
        logger.debug(f"Edit window open until {self._expires_at.isoformat()}")
        self._ensure_running()

    def reset(self, duration_seconds: float) -> None:
        """Restart the window at the full duration, replacing the old expiry."""
        if self._expires_at is not None:
            logger.debug("Edit window reset")
        self.start(duration_seconds)

    def cancel(self) -> None:
        """Drop the window without expiring anything."""
        if self._expires_at is not None:
            logger.debug("Edit window cancelled")
        self._expires_at = None
        self._seconds_left = None
        self._stop_task()

    def force_expire(self) -> bool:
        """
        Close the window now ("send now").

        Returns:
            bool: True if a window was open and on_expire ran
        """
        if self._expires_at is None:
            return False
        self._fire(self._clock())
        self._stop_task()
        return True

    def tick(self, now: Optional[datetime] = None) -> bool:
        """
        Refresh the projection and fire on expiry.

        Returns:
            bool: True if this tick closed the window
        """
        if self._expires_at is None:
            return False
        now = now or self._clock()
        remaining = self.remaining(now)
        if remaining <= 0:
            self._fire(now)
            return True
        self._seconds_left = math.ceil(remaining)
        return False

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _fire(self, now: datetime) -> None:
        # Cleared before the callback so a re-entrant tick cannot fire twice.
        self._expires_at = None
        self._seconds_left = 0
        self.expirations += 1
        logger.info("Edit window closed")
        self._on_expire(now)

    def _ensure_running(self) -> None:
        if not self._auto_tick:
            return
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._run())

    def _stop_task(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if task is not current:
            task.cancel()

    async def _run(self) -> None:
        while self._expires_at is not None:
            await asyncio.sleep(min(self._tick_interval, max(self.remaining(), 0.01)))
            self.tick()
