"""
spudverse.clock — Millisecond Time Sources
===========================================

All economy math (energy ticks, passive income) runs on integer epoch
milliseconds.  Services receive a :class:`Clock` instead of calling
``time.time()`` so regeneration can be tested without real waiting.
"""

from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    """Anything that can report the current wall-clock time in epoch ms."""

    def now_ms(self) -> int: ...


class SystemClock:
    """Wall-clock time from the host."""

    def now_ms(self) -> int:
        return time.time_ns() // 1_000_000


class FrozenClock:
    """A clock that only moves when told to.

    Usage::

        clock = FrozenClock(1_700_000_000_000)
        clock.advance(seconds=25)
    """

    def __init__(self, start_ms: int = 1_700_000_000_000) -> None:
        self._now = start_ms

    def now_ms(self) -> int:
        return self._now

    def advance(self, ms: int = 0, *, seconds: float = 0) -> int:
        """Move the clock forward and return the new time."""
        self._now += ms + int(seconds * 1000)
        return self._now

    def set(self, now_ms: int) -> None:
        self._now = now_ms
