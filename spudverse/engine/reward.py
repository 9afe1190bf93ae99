"""
spudverse.engine.reward — Tap Reward Calculation & Batching
============================================================

Pure calculation — no DB I/O.

* :func:`tap_reward` — the authoritative SPUD credit for a batch of taps.
* :class:`ComboMeter` — the client's rapid-tap multiplier.  Advisory only:
  the server never credits it.
* :class:`TapBatcher` — the client-side pending-tap ledger that decides when
  to flush and how to recover from failed flushes without double counting.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

logger = logging.getLogger(__name__)

__all__ = [
    "FLUSH_INTERVAL_MS",
    "MAX_TAPS_PER_BATCH",
    "ComboMeter",
    "TapBatcher",
    "predicted_tap_reward",
    "tap_reward",
]

FLUSH_INTERVAL_MS = 2_000
MAX_TAPS_PER_BATCH = 500
ENERGY_PER_TAP = 1

# Combo tuning (mirrors the Mini App)
COMBO_STEP = 0.1
COMBO_MAX = 3.0
COMBO_FAST_TAP_MS = 500
COMBO_RESET_MS = 2_000


def tap_reward(per_tap: int, tap_count: int) -> int:
    """SPUD credited for *tap_count* taps at the server-side *per_tap*."""
    if tap_count < 0:
        raise ValueError("tap_count cannot be negative")
    return per_tap * tap_count


def predicted_tap_reward(per_tap: int, combo: float) -> int:
    """What the client shows for a single tap (display only)."""
    return math.floor(per_tap * combo)


# ---------------------------------------------------------------------------
# Combo meter
# ---------------------------------------------------------------------------
class ComboMeter:
    """Rapid successive taps raise the combo; a pause resets it."""

    def __init__(self) -> None:
        self.combo = 1.0
        self._last_tap_ms: int | None = None

    def tap(self, now_ms: int) -> float:
        """Register a tap at *now_ms* and return the combo to display."""
        if self._last_tap_ms is not None:
            gap = now_ms - self._last_tap_ms
            if gap < COMBO_FAST_TAP_MS:
                self.combo = round(min(self.combo + COMBO_STEP, COMBO_MAX), 1)
            elif gap > COMBO_RESET_MS:
                self.combo = 1.0
        self._last_tap_ms = now_ms
        return self.combo


# ---------------------------------------------------------------------------
# Tap batcher
# ---------------------------------------------------------------------------
@dataclass
class FlushTicket:
    """A batch handed to the network layer."""

    tap_count: int
    started_ms: int


class TapBatcher:
    """Accumulates taps locally and hands them out in flushes.

    Taps leave the ledger only on a confirmed response.  The life of a
    batch::

        add() … due(now)? → begin_flush() → confirm()          # 2xx
                                           → requeue()          # definite failure
                                           → discard()          # 400, no energy
                                           → mark_ambiguous()   # timeout
                                               → reconcile(applied)
    """

    def __init__(self, flush_interval_ms: int = FLUSH_INTERVAL_MS) -> None:
        self.flush_interval_ms = flush_interval_ms
        self.pending = 0
        self.in_flight: FlushTicket | None = None
        self.ambiguous: FlushTicket | None = None
        self._last_flush_ms: int | None = None

    def add(self, count: int = 1) -> None:
        if count < 0:
            raise ValueError("count cannot be negative")
        self.pending += count

    def due(self, now_ms: int) -> bool:
        """True when there is something to send and the interval has passed."""
        if self.pending <= 0 or self.in_flight is not None or self.ambiguous is not None:
            return False
        if self._last_flush_ms is None:
            return True
        return now_ms - self._last_flush_ms >= self.flush_interval_ms

    def begin_flush(self, now_ms: int) -> FlushTicket | None:
        """Move pending taps in flight.  Returns ``None`` if nothing to send."""
        if self.in_flight is not None:
            raise RuntimeError("A flush is already in flight")
        if self.pending <= 0:
            return None
        count = min(self.pending, MAX_TAPS_PER_BATCH)
        self.pending -= count
        self.in_flight = FlushTicket(tap_count=count, started_ms=now_ms)
        self._last_flush_ms = now_ms
        return self.in_flight

    def confirm(self) -> int:
        """Server accepted the batch."""
        ticket = self._take_in_flight()
        return ticket.tap_count

    def requeue(self) -> int:
        """Request definitively failed — put the same taps back."""
        ticket = self._take_in_flight()
        self.pending += ticket.tap_count
        return ticket.tap_count

    def discard(self) -> int:
        """Server rejected the batch (insufficient energy) — drop it."""
        ticket = self._take_in_flight()
        return ticket.tap_count

    def mark_ambiguous(self) -> None:
        """Timed out — outcome unknown until a follow-up read."""
        self.ambiguous = self._take_in_flight()

    def reconcile(self, applied: bool) -> int:
        """Resolve an ambiguous batch after reading authoritative state."""
        if self.ambiguous is None:
            return 0
        ticket, self.ambiguous = self.ambiguous, None
        if not applied:
            self.pending += ticket.tap_count
        return ticket.tap_count

    def _take_in_flight(self) -> FlushTicket:
        if self.in_flight is None:
            raise RuntimeError("No flush in flight")
        ticket, self.in_flight = self.in_flight, None
        return ticket
