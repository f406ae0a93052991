"""
liveness.clock — timestamp sources.

The protocol only ever asks "what time is it now?" in whole seconds. A block
timestamp on a real chain, a wall clock for local runs, a hand-driven clock
for tests and simulations.
"""

from __future__ import annotations

import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    def now(self) -> int: ...


class SystemClock:
    """Wall-clock seconds since the epoch."""

    def now(self) -> int:
        return int(time.time())


class ManualClock:
    """
    Clock that only moves when told to.

        clock = ManualClock(1_700_000_000)
        clock.advance(days(31))
    """

    def __init__(self, start: int = 0) -> None:
        if start < 0:
            raise ValueError("start must be non-negative")
        self._now = int(start)

    def now(self) -> int:
        return self._now

    def set(self, ts: int) -> None:
        if ts < self._now:
            raise ValueError(f"clock cannot move backwards ({ts} < {self._now})")
        self._now = int(ts)

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("seconds must be non-negative")
        self._now += int(seconds)
        return self._now


def days(n: int) -> int:
    return int(n) * 86_400


def hours(n: int) -> int:
    return int(n) * 3_600


__all__ = ["Clock", "SystemClock", "ManualClock", "days", "hours"]
