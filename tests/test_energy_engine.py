"""
tests/test_energy_engine.py — Tick-Based Energy Regeneration
=============================================================
"""

from __future__ import annotations

import random

import pytest

from spudverse.engine.energy import (
    TICK_INTERVAL_MS,
    EnergyReading,
    compute_current_energy,
    time_to_full,
    try_consume_energy,
)
from spudverse.errors import InsufficientEnergy, InsufficientResource


class TestComputeCurrentEnergy:
    def test_whole_ticks_only(self):
        reading = compute_current_energy(5, 0, 2, 100, 25_000)
        assert reading.energy == 9
        assert reading.last_update_ms == 20_000
        assert reading.next_tick_ms == 5_000

    def test_no_time_elapsed(self):
        reading = compute_current_energy(40, 1_000, 3, 100, 1_000)
        assert reading == EnergyReading(40, 1_000, TICK_INTERVAL_MS)

    def test_caps_at_max(self):
        reading = compute_current_energy(95, 0, 5, 100, 10 * TICK_INTERVAL_MS)
        assert reading.energy == 100
        assert reading.next_tick_ms == 0

    def test_clock_behind_mark_changes_nothing(self):
        reading = compute_current_energy(10, 50_000, 1, 100, 20_000)
        assert reading.energy == 10
        assert reading.last_update_ms == 50_000

    def test_idempotent(self):
        a = compute_current_energy(12, 1_000, 2, 150, 47_321)
        b = compute_current_energy(12, 1_000, 2, 150, 47_321)
        assert a == b

    def test_remainder_survives_repeated_recompute(self):
        """Recomputing every 3 s must regenerate exactly as one 30 s jump."""
        energy, mark = 0, 0
        for now in range(3_000, 30_001, 3_000):
            reading = compute_current_energy(energy, mark, 1, 100, now)
            energy, mark = reading.energy, reading.last_update_ms
        assert energy == compute_current_energy(0, 0, 1, 100, 30_000).energy == 3

    def test_later_now_never_decreases_energy(self):
        rng = random.Random(7)
        for _ in range(200):
            last = rng.randint(0, 100)
            start = rng.randint(0, 10**9)
            regen = rng.randint(1, 5)
            t1 = start + rng.randint(0, 600_000)
            t2 = t1 + rng.randint(0, 600_000)
            e1 = compute_current_energy(last, start, regen, 100, t1).energy
            e2 = compute_current_energy(last, start, regen, 100, t2).energy
            assert 0 <= e1 <= e2 <= 100


class TestTryConsumeEnergy:
    def test_spends_exact_cost(self):
        reading = compute_current_energy(5, 0, 2, 100, 0)
        after = try_consume_energy(reading, 5, 100, 0)
        assert after.energy == 0
        assert after.last_update_ms == 0

    def test_insufficient_energy_reports_current_and_max(self):
        reading = compute_current_energy(0, 0, 2, 100, 0)
        with pytest.raises(InsufficientEnergy) as exc_info:
            try_consume_energy(reading, 1, 100, 0)
        err = exc_info.value
        assert isinstance(err, InsufficientResource)
        assert err.details == {"current_energy": 0, "max_energy": 100, "required": 1}

    def test_rejects_negative_cost(self):
        with pytest.raises(ValueError):
            try_consume_energy(EnergyReading(10, 0), -1, 100, 0)

    def test_random_sequences_stay_in_bounds(self):
        rng = random.Random(11)
        energy, mark, now = 100, 0, 0
        for _ in range(500):
            now += rng.randint(0, 15_000)
            reading = compute_current_energy(energy, mark, 2, 100, now)
            try:
                reading = try_consume_energy(reading, rng.randint(0, 30), 100, now)
            except InsufficientEnergy:
                pass
            energy, mark = reading.energy, reading.last_update_ms
            assert 0 <= energy <= 100


class TestTimeToFull:
    def test_full_is_zero(self):
        assert time_to_full(EnergyReading(100, 0, 0), 1, 100) == 0

    def test_counts_partial_tick(self):
        reading = compute_current_energy(95, 0, 2, 100, 4_000)
        # 5 missing at 2/tick → 3 ticks, the first one 6 s away
        assert time_to_full(reading, 2, 100) == 6_000 + 2 * TICK_INTERVAL_MS
