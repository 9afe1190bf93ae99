"""
spudverse.services.progression_service — Levels, Stats & Post-Earning Hooks
============================================================================

Every earning event ends with :func:`apply_progression`, inside the same
transaction as the credit:

    1. Unlock achievements until no new one fires (an achievement reward
       can push the balance over another threshold).
    2. Walk the level ladder across every crossed threshold and apply the
       final level's stats once, with a full energy refill.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.orm import Session

from spudverse.database.models import Account, Upgrade, UserUpgrade
from spudverse.database.store import require_account
from spudverse.engine.energy import compute_current_energy
from spudverse.engine.progression import (
    DerivedStats,
    LevelUpResult,
    derive_stats,
    level_for_total,
)
from spudverse.errors import InvalidStateTransition
from spudverse.services import achievement_service

if TYPE_CHECKING:
    from spudverse.clock import Clock
    from spudverse.database.store import Store

logger = logging.getLogger(__name__)


@dataclass
class ProgressionOutcome:
    level: LevelUpResult
    unlocked_achievements: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Derived stats
# ---------------------------------------------------------------------------
def upgrade_levels(session: Session, user_id: int) -> dict[str, int]:
    rows = session.scalars(select(UserUpgrade).where(UserUpgrade.user_id == user_id)).all()
    return {row.upgrade_name: row.level for row in rows}


def upgrade_increments(session: Session) -> dict[str, int]:
    return {u.name: u.stat_increment for u in session.scalars(select(Upgrade)).all()}


def current_stats(session: Session, account: Account) -> DerivedStats:
    return derive_stats(
        account.level,
        upgrade_levels(session, account.user_id),
        upgrade_increments(session),
    )


def refresh_stats(session: Session, account: Account, now_ms: int) -> DerivedStats:
    """Re-derive per_tap / max_energy / regen after an upgrade purchase.

    Energy is settled at the old regen rate first, then clamped to the new
    maximum.  No refill.
    """
    reading = compute_current_energy(
        account.energy, account.last_energy_update,
        account.energy_regen_rate, account.max_energy, now_ms,
    )
    stats = current_stats(session, account)
    account.per_tap = stats.per_tap
    account.max_energy = stats.max_energy
    account.energy_regen_rate = stats.energy_regen_rate
    account.energy = min(reading.energy, stats.max_energy)
    account.last_energy_update = reading.last_update_ms
    return stats


# ---------------------------------------------------------------------------
# Level-ups
# ---------------------------------------------------------------------------
def apply_level_ups(session: Session, account: Account, now_ms: int) -> LevelUpResult:
    """Bring ``account.level`` up to what ``total_farmed`` earns.

    Crossing several thresholds at once lands directly on the highest one.
    Idempotent: a second call with no new earnings changes nothing.
    """
    old_level = account.level
    target = level_for_total(account.total_farmed)
    if target.level <= old_level:
        return LevelUpResult(leveled_up=False, old_level=old_level, new_level=old_level)

    account.level = target.level
    stats = current_stats(session, account)
    account.per_tap = stats.per_tap
    account.max_energy = stats.max_energy
    account.energy_regen_rate = stats.energy_regen_rate
    account.energy = stats.max_energy
    account.last_energy_update = now_ms

    logger.info(
        "Level up: user %d %d → %d (%s)",
        account.user_id, old_level, target.level, target.title,
    )
    return LevelUpResult(
        leveled_up=True,
        old_level=old_level,
        new_level=target.level,
        granted_bonuses={
            "per_tap": stats.per_tap,
            "max_energy": stats.max_energy,
            "energy": stats.max_energy,
        },
    )


def apply_progression(session: Session, account: Account, now_ms: int) -> ProgressionOutcome:
    """Post-earning hook: achievements first, then level-ups."""
    unlocked = achievement_service.unlock_achievements(session, account)
    level = apply_level_ups(session, account, now_ms)
    return ProgressionOutcome(level=level, unlocked_achievements=[a.key for a in unlocked])


# ---------------------------------------------------------------------------
# Explicit level-up check
# ---------------------------------------------------------------------------
def check_level_up(store: Store, clock: Clock, user_id: int) -> LevelUpResult:
    """Apply any pending level-ups.

    Raises :class:`InvalidStateTransition` when no threshold was crossed.
    """

    def _check(session: Session) -> LevelUpResult:
        account = require_account(session, user_id)
        result = apply_level_ups(session, account, clock.now_ms())
        if not result.leveled_up:
            raise InvalidStateTransition(
                "Level-up threshold not met.", level=account.level,
                total_farmed=account.total_farmed,
            )
        return result

    return store.atomic(_check)
