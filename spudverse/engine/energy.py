"""
spudverse.engine.energy — Tick-Based Energy Regeneration
=========================================================

Pure calculation — no DB I/O, no clock reads.  Callers pass ``now_ms``.

Energy regenerates in whole ticks of :data:`TICK_INTERVAL_MS`.  The
authoritative ``last_update_ms`` only ever advances by the duration of the
ticks actually consumed, so the partial progress toward the next tick is
carried over instead of being thrown away on every recompute.  The same
function backs the server's accounting and any client-side prediction.
"""

from __future__ import annotations

from dataclasses import dataclass

from spudverse.errors import InsufficientEnergy

__all__ = [
    "TICK_INTERVAL_MS",
    "EnergyReading",
    "compute_current_energy",
    "time_to_full",
    "try_consume_energy",
]

TICK_INTERVAL_MS = 10_000


@dataclass(frozen=True, slots=True)
class EnergyReading:
    """Energy as of some instant.

    ``last_update_ms`` is the value to persist alongside ``energy``.
    ``next_tick_ms`` is display-only: time until the next whole tick,
    0 when energy is already full.
    """

    energy: int
    last_update_ms: int
    next_tick_ms: int = 0


def compute_current_energy(
    last_energy: int,
    last_update_ms: int,
    regen_rate: int,
    max_energy: int,
    now_ms: int,
) -> EnergyReading:
    """Project stored energy forward to *now_ms*.

    >>> compute_current_energy(5, 0, 2, 100, 25_000)
    EnergyReading(energy=9, last_update_ms=20000, next_tick_ms=5000)
    """
    elapsed = max(0, now_ms - last_update_ms)
    ticks = elapsed // TICK_INTERVAL_MS
    energy = min(max_energy, max(0, last_energy) + ticks * regen_rate)
    new_last = last_update_ms + ticks * TICK_INTERVAL_MS

    next_tick = 0
    if energy < max_energy:
        next_tick = TICK_INTERVAL_MS - (elapsed % TICK_INTERVAL_MS)

    return EnergyReading(energy=energy, last_update_ms=new_last, next_tick_ms=next_tick)


def time_to_full(reading: EnergyReading, regen_rate: int, max_energy: int) -> int:
    """Milliseconds until *reading* regenerates to *max_energy* (display only)."""
    missing = max_energy - reading.energy
    if missing <= 0:
        return 0
    ticks_needed = -(-missing // max(1, regen_rate))  # ceil
    return (ticks_needed - 1) * TICK_INTERVAL_MS + reading.next_tick_ms


def try_consume_energy(
    reading: EnergyReading, cost: int, max_energy: int, now_ms: int
) -> EnergyReading:
    """Spend *cost* energy from a *reading* taken at *now_ms*.

    Raises
    ------
    InsufficientEnergy
        If ``reading.energy < cost``.  Nothing is consumed.
    """
    if cost < 0:
        raise ValueError("Energy cost cannot be negative")
    if reading.energy < cost:
        raise InsufficientEnergy(reading.energy, max_energy, cost)
    energy = reading.energy - cost

    next_tick = 0
    if energy < max_energy:
        since_tick = max(0, now_ms - reading.last_update_ms) % TICK_INTERVAL_MS
        next_tick = TICK_INTERVAL_MS - since_tick
    return EnergyReading(
        energy=energy, last_update_ms=reading.last_update_ms, next_tick_ms=next_tick
    )
