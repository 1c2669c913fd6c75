"""
Interview time budget.
"""
import asyncio
import logging
from typing import Callable, Optional

logger = logging.getLogger("session_clock")


class SessionClock:
    """Counts down the interview budget on the event loop.

    ``remaining`` is derived from loop time, so it only ever decreases while
    running. The expiry callback fires at most once, and never after ``stop()``.
    """

    def __init__(self, budget_seconds: float,
                 on_expire: Optional[Callable[[], None]] = None,
                 on_tick: Optional[Callable[[float], None]] = None,
                 tick_interval: float = 1.0):
        if budget_seconds <= 0:
            raise ValueError("Interview time budget must be positive")
        self.budget_seconds = float(budget_seconds)
        self.on_expire = on_expire
        self.on_tick = on_tick
        self.tick_interval = tick_interval

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._started_at: Optional[float] = None
        self._stopped_at: Optional[float] = None
        self._expire_handle: Optional[asyncio.TimerHandle] = None
        self._tick_handle: Optional[asyncio.TimerHandle] = None
        self._expired = False

    @property
    def running(self) -> bool:
        return self._started_at is not None and self._stopped_at is None

    @property
    def expired(self) -> bool:
        return self._expired

    @property
    def elapsed(self) -> float:
        if self._started_at is None:
            return 0.0
        end = self._stopped_at if self._stopped_at is not None else self._loop.time()
        return max(0.0, end - self._started_at)

    @property
    def remaining(self) -> float:
        return max(0.0, self.budget_seconds - self.elapsed)

    def start(self) -> None:
        if self._started_at is not None:
            raise RuntimeError("Session clock already started")
        self._loop = asyncio.get_running_loop()
        self._started_at = self._loop.time()
        self._expire_handle = self._loop.call_later(self.budget_seconds, self._expire)
        if self.on_tick is not None:
            self._tick_handle = self._loop.call_later(self.tick_interval, self._tick)
        logger.info(f"Session clock started: {self.budget_seconds:.0f}s budget")

    def stop(self) -> bool:
        """Stop the clock. Returns False if it was not running."""
        if not self.running:
            return False
        self._stopped_at = self._loop.time()
        self._cancel_handles()
        logger.info(f"Session clock stopped after {self.elapsed:.1f}s ({self.remaining:.1f}s remaining)")
        return True

    def _cancel_handles(self) -> None:
        for handle in (self._expire_handle, self._tick_handle):
            if handle is not None:
                handle.cancel()
        self._expire_handle = None
        self._tick_handle = None

    def _expire(self) -> None:
        if not self.running or self._expired:
            return
        self._expired = True
        logger.info("Session clock expired")
        if self._tick_handle is not None:
            self._tick_handle.cancel()
            self._tick_handle = None
        if self.on_expire is not None:
            try:
                self.on_expire()
            except Exception as e:
                logger.error(f"Error in clock expiry callback: {e}")

    def _tick(self) -> None:
        if not self.running or self._expired:
            return
        try:
            self.on_tick(self.remaining)
        except Exception as e:
            logger.error(f"Error in clock tick callback: {e}")
        self._tick_handle = self._loop.call_later(self.tick_interval, self._tick)
