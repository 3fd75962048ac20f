"""
Clock and Scheduler — the leaves of the evaluation pipeline.

The scheduler fires a tick callback on a fixed period until its stop event is
set. It has no knowledge of what a tick does; the Delivery Controller owns
that.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional, Protocol

logger = logging.getLogger(__name__)


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Local wall-clock time. Business hours are local hours."""

    def now(self) -> datetime:
        return datetime.now()


class ManualClock:
    """A clock that only moves when told to. Used for simulated time."""

    def __init__(self, start: datetime):
        self._now = start

    def now(self) -> datetime:
        return self._now

    def set(self, value: datetime) -> None:
        self._now = value

    def advance(self, **kwargs) -> datetime:
        """Move forward by a timedelta given as keyword arguments."""
        self._now = self._now + timedelta(**kwargs)
        return self._now


class Scheduler:
    """
    Single periodic timer.

    States:
      STOPPED → RUNNING (tick, wait interval, tick, ...) → STOPPED
    """

    def __init__(self, interval_seconds: float):
        self.interval_seconds = interval_seconds
        self._running = False
        self.tick_count = 0

    @property
    def status(self) -> str:
        return "running" if self._running else "stopped"

    async def run(
        self,
        tick: Callable[[], Awaitable[object]],
        stop_event: Optional[asyncio.Event] = None,
    ) -> None:
        """Tick immediately, then every interval, until stop_event is set."""
        self._running = True
        if stop_event is None:
            stop_event = asyncio.Event()

        try:
            while not stop_event.is_set():
                self.tick_count += 1
                try:
                    await tick()
                except Exception:
                    # A failing tick must not end the schedule
                    logger.exception("Scheduled tick %d failed", self.tick_count)
                try:
                    await asyncio.wait_for(
                        stop_event.wait(),
                        timeout=self.interval_seconds,
                    )
                except asyncio.TimeoutError:
                    continue
        finally:
            self._running = False
