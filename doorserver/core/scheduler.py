"""
Clock and timer abstraction.

Door auto-close and the periodic refresh jobs are scheduled through a
``Scheduler`` so that tests can drive virtual time with ``ManualScheduler``
instead of waiting on real timers.
"""
import asyncio
import heapq
import itertools
import logging
import time as _time
from datetime import datetime, timezone, tzinfo
from typing import Awaitable, Callable, Optional
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)


class TimerHandle:
    def __init__(self, cancel: Callable[[], None]):
        self._cancel = cancel
        self.cancelled = False

    def cancel(self) -> None:
        if not self.cancelled:
            self.cancelled = True
            self._cancel()


class Scheduler:
    def __init__(self, tz: tzinfo | str = "UTC"):
        self.tz = ZoneInfo(tz) if isinstance(tz, str) else tz

    def time(self) -> float:
        raise NotImplementedError

    def now(self) -> datetime:
        """Current instant on the configured local clock."""
        return datetime.fromtimestamp(self.time(), tz=timezone.utc).astimezone(self.tz)

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        raise NotImplementedError

    def every(self, interval: float, job: Callable[[], Awaitable[None]]) -> TimerHandle:
        raise NotImplementedError


class AsyncioScheduler(Scheduler):
    """Timers backed by the running event loop."""

    def __init__(self, tz: tzinfo | str = "UTC", loop: Optional[asyncio.AbstractEventLoop] = None):
        super().__init__(tz)
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def time(self) -> float:
        return _time.time()

    def call_later(self, delay, callback):
        handle = self.loop.call_later(delay, callback)
        return TimerHandle(handle.cancel)

    def every(self, interval, job):
        async def runner():
            while True:
                await asyncio.sleep(interval)
                try:
                    await job()
                except Exception:
                    logger.exception("Periodic job %s failed", getattr(job, "__name__", job))

        task = self.loop.create_task(runner())
        return TimerHandle(task.cancel)


class ManualScheduler(Scheduler):
    """
    Virtual clock. Nothing fires until ``advance()`` moves time forward.
    Periodic async jobs are collected in ``pending`` and awaited by
    ``advance_async()``.
    """

    def __init__(self, start: float | datetime = 0.0, tz: tzinfo | str = "UTC"):
        super().__init__(tz)
        if isinstance(start, datetime):
            start = start.timestamp()
        self._now = float(start)
        self._queue: list = []
        self._counter = itertools.count()
        self.pending: list[Awaitable[None]] = []

    def time(self) -> float:
        return self._now

    def set(self, when: float | datetime) -> None:
        if isinstance(when, datetime):
            when = when.timestamp()
        self._now = float(when)

    def call_later(self, delay, callback):
        entry = [self._now + delay, next(self._counter), callback, True]
        heapq.heappush(self._queue, entry)

        def cancel():
            entry[3] = False

        return TimerHandle(cancel)

    def every(self, interval, job):
        handle = None

        def fire():
            nonlocal handle
            self.pending.append(job())
            handle = self.call_later(interval, fire)

        handle = self.call_later(interval, fire)
        return TimerHandle(lambda: handle.cancel())

    def advance(self, seconds: float) -> None:
        target = self._now + seconds
        while self._queue and self._queue[0][0] <= target:
            when, _, callback, active = heapq.heappop(self._queue)
            if not active:
                continue
            self._now = when
            callback()
        self._now = target

    async def advance_async(self, seconds: float) -> None:
        self.advance(seconds)
        while self.pending:
            await self.pending.pop(0)
