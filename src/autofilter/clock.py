"""Clocks used by the cache and the delayed-task scheduler."""

import time
from typing import Protocol


class Clock(Protocol):
    def now(self) -> float:
        """Current time in seconds on a monotonic scale."""
        ...


class SystemClock:
    """Wall-clock backed by ``time.monotonic``."""

    def now(self) -> float:
        return time.monotonic()


class VirtualClock:
    """Manually advanced clock for tests and simulations."""

    def __init__(self, start: float = 0.0) -> None:
        self._now = start

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> float:
        if seconds < 0:
            raise ValueError("cannot move a clock backwards")
        self._now += seconds
        return self._now
