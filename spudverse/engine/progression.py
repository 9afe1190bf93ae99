"""
spudverse.engine.progression — Level Ladder & Derived Stats
============================================================

Levels are a pure function of ``total_farmed``.  An account's active stats
are the level's base values plus whatever upgrades the player bought.

This module is pure calculation — no database I/O.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field

from spudverse.database.models import UpgradeName

logger = logging.getLogger(__name__)

BASE_REGEN_RATE = 1


@dataclass(frozen=True, slots=True)
class LevelInfo:
    level: int
    required_total: int
    per_tap: int
    max_energy: int
    title: str


LEVELS: tuple[LevelInfo, ...] = (
    LevelInfo(1, 0, 1, 100, "Spud Starter 🌱"),
    LevelInfo(2, 1_000, 2, 150, "Tater Tot 🥔"),
    LevelInfo(3, 5_000, 3, 200, "Farm Hand 🧑‍🌾"),
    LevelInfo(4, 15_000, 5, 250, "Crop Captain 🚀"),
    LevelInfo(5, 50_000, 8, 350, "Potato Baron 👑"),
    LevelInfo(6, 150_000, 12, 500, "Spud-nik Explorer 🧑‍🚀"),
    LevelInfo(7, 500_000, 20, 750, "Legendary Spud Master 🌟"),
)

MAX_LEVEL = LEVELS[-1].level


def level_info(level: int) -> LevelInfo:
    """Ladder entry for *level* (clamped to the ladder bounds)."""
    index = min(max(level, 1), MAX_LEVEL) - 1
    return LEVELS[index]


def level_for_total(total_farmed: int) -> LevelInfo:
    """Highest level whose threshold is ≤ *total_farmed*."""
    current = LEVELS[0]
    for info in LEVELS:
        if total_farmed >= info.required_total:
            current = info
        else:
            break
    return current


def next_level(level: int) -> LevelInfo | None:
    """The rung above *level*, or ``None`` at the top of the ladder."""
    if level >= MAX_LEVEL:
        return None
    return LEVELS[level]


def level_progress(total_farmed: int) -> dict:
    """Display helper: current rung, next rung and progress percentage."""
    current = level_for_total(total_farmed)
    upcoming = next_level(current.level)
    if upcoming is None:
        return {"level": current.level, "title": current.title,
                "next_level_at": None, "progress": 100.0}
    span = upcoming.required_total - current.required_total
    done = total_farmed - current.required_total
    return {
        "level": current.level,
        "title": current.title,
        "next_level_at": upcoming.required_total,
        "progress": round(min(100.0, done * 100 / span), 1),
    }


# ---------------------------------------------------------------------------
# Derived stats
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class DerivedStats:
    per_tap: int
    max_energy: int
    energy_regen_rate: int


def derive_stats(
    level: int,
    upgrade_levels: Mapping[str, int],
    increments: Mapping[str, int],
) -> DerivedStats:
    """Combine level base values with purchased upgrade bonuses.

    Parameters
    ----------
    level : Current account level.
    upgrade_levels : upgrade name → purchased level (missing means 0).
    increments : upgrade name → stat gained per purchased level.
    """
    base = level_info(level)

    def bonus(name: UpgradeName) -> int:
        return upgrade_levels.get(name, 0) * increments.get(name, 0)

    return DerivedStats(
        per_tap=base.per_tap + bonus(UpgradeName.PER_TAP),
        max_energy=base.max_energy + bonus(UpgradeName.MAX_ENERGY),
        energy_regen_rate=BASE_REGEN_RATE + bonus(UpgradeName.ENERGY_REGEN_RATE),
    )


# ---------------------------------------------------------------------------
# Level-up outcome
# ---------------------------------------------------------------------------
@dataclass
class LevelUpResult:
    """What one progression check changed.

    ``granted_bonuses`` lists the stat values the account ended up with
    (only populated when ``leveled_up``).
    """

    leveled_up: bool = False
    old_level: int = 1
    new_level: int = 1
    granted_bonuses: dict[str, int] = field(default_factory=dict)

    @property
    def levels_gained(self) -> int:
        return self.new_level - self.old_level
