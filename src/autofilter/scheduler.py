"""Delayed-task scheduler driven by an injectable clock.

Tasks are coroutine functions run once their delay has elapsed. In production
``run()`` sleeps until the next task is due; tests use a ``VirtualClock`` and
call ``run_pending()`` after advancing it, so nothing waits on real time.
"""

import asyncio
import heapq
import itertools
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from autofilter.clock import Clock, SystemClock

logger = logging.getLogger(__name__)

TaskCallback = Callable[[], Awaitable[None]]


@dataclass(order=True)
class TaskHandle:
    """A scheduled task. Cancelling it before it runs prevents it from running."""

    due_at: float
    seq: int
    callback: TaskCallback = field(compare=False, repr=False)
    name: str = field(default="", compare=False)
    cancelled: bool = field(default=False, compare=False)
    done: bool = field(default=False, compare=False)

    def cancel(self) -> bool:
        if self.done or self.cancelled:
            return False
        self.cancelled = True
        return True


class DelayedTaskScheduler:
    """Runs callbacks after a delay, in due-time order."""

    def __init__(self, clock: Clock | None = None) -> None:
        self.clock = clock or SystemClock()
        self._queue: list[TaskHandle] = []
        self._counter = itertools.count()
        self._wakeup: asyncio.Event | None = None

    def schedule(self, delay: float, callback: TaskCallback, name: str = "") -> TaskHandle:
        """Schedule ``callback`` to run ``delay`` seconds from now."""
        handle = TaskHandle(
            due_at=self.clock.now() + max(delay, 0.0),
            seq=next(self._counter),
            callback=callback,
            name=name,
        )
        heapq.heappush(self._queue, handle)
        if self._wakeup is not None:
            self._wakeup.set()
        return handle

    @property
    def pending(self) -> int:
        return sum(1 for handle in self._queue if not handle.cancelled)

    @property
    def next_due(self) -> float | None:
        while self._queue and self._queue[0].cancelled:
            heapq.heappop(self._queue)
        return self._queue[0].due_at if self._queue else None

    async def run_pending(self) -> int:
        """Run every task that is due; returns how many ran.

        Tasks scheduled by a running task are picked up in the same call if
        they are already due.
        """
        ran = 0
        while self._queue and self._queue[0].due_at <= self.clock.now():
            handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            handle.done = True
            try:
                await handle.callback()
            except Exception:
                logger.exception("Scheduled task %r failed", handle.name or handle.seq)
            ran += 1
        return ran

    async def run(self, stop: asyncio.Event | None = None) -> None:
        """Run tasks as they come due until ``stop`` is set."""
        self._wakeup = asyncio.Event()
        stop = stop or asyncio.Event()
        while not stop.is_set():
            await self.run_pending()
            next_due = self.next_due
            timeout = None if next_due is None else max(next_due - self.clock.now(), 0.0)
            self._wakeup.clear()
            waiters = [asyncio.ensure_future(self._wakeup.wait()), asyncio.ensure_future(stop.wait())]
            try:
                await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
            finally:
                for waiter in waiters:
                    waiter.cancel()
