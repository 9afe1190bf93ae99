"""
tests/test_progression_engine.py — Level Ladder & Derived Stats
================================================================
"""

from __future__ import annotations

import pytest

from spudverse.database.models import UpgradeName
from spudverse.engine.progression import (
    LEVELS,
    MAX_LEVEL,
    derive_stats,
    level_for_total,
    level_info,
    level_progress,
    next_level,
)


class TestLadder:
    def test_ladder_is_strictly_ordered(self):
        thresholds = [info.required_total for info in LEVELS]
        assert thresholds == sorted(thresholds)
        assert len(set(thresholds)) == len(thresholds)
        assert [info.level for info in LEVELS] == list(range(1, MAX_LEVEL + 1))

    @pytest.mark.parametrize(
        "total, expected",
        [(0, 1), (999, 1), (1_000, 2), (4_999, 2), (5_000, 3), (499_999, 6), (10**9, 7)],
    )
    def test_level_for_total(self, total, expected):
        assert level_for_total(total).level == expected

    def test_level_two_stats(self):
        info = level_info(2)
        assert (info.per_tap, info.max_energy) == (2, 150)

    def test_level_info_clamps(self):
        assert level_info(0).level == 1
        assert level_info(99).level == MAX_LEVEL

    def test_next_level(self):
        assert next_level(1).level == 2
        assert next_level(MAX_LEVEL) is None


class TestLevelProgress:
    def test_midway(self):
        progress = level_progress(3_000)
        assert progress["level"] == 2
        assert progress["next_level_at"] == 5_000
        assert progress["progress"] == 50.0

    def test_top_of_ladder(self):
        progress = level_progress(LEVELS[-1].required_total)
        assert progress["next_level_at"] is None
        assert progress["progress"] == 100.0


class TestDeriveStats:
    INCREMENTS = {
        UpgradeName.PER_TAP: 1,
        UpgradeName.MAX_ENERGY: 50,
        UpgradeName.ENERGY_REGEN_RATE: 1,
    }

    def test_base_values(self):
        stats = derive_stats(1, {}, self.INCREMENTS)
        assert (stats.per_tap, stats.max_energy, stats.energy_regen_rate) == (1, 100, 1)

    def test_upgrades_stack_on_level(self):
        stats = derive_stats(
            3,
            {UpgradeName.PER_TAP: 2, UpgradeName.MAX_ENERGY: 1, UpgradeName.ENERGY_REGEN_RATE: 3},
            self.INCREMENTS,
        )
        assert stats.per_tap == 3 + 2
        assert stats.max_energy == 200 + 50
        assert stats.energy_regen_rate == 1 + 3

    def test_unknown_increment_adds_nothing(self):
        stats = derive_stats(1, {UpgradeName.PER_TAP: 4}, {})
        assert stats.per_tap == 1
