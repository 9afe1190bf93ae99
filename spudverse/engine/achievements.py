"""
spudverse.engine.achievements — Achievement Check Pipeline
===========================================================

Handler-registry implementation for achievement unlock evaluation.
Each AchievementType maps to a pure handler function that receives the
achievement threshold and an AchievementContext.

This module is pure calculation — no database I/O.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Protocol

from spudverse.database.models import AchievementType

logger = logging.getLogger(__name__)


class AchievementLike(Protocol):
    id: int
    key: str
    type: str
    threshold: int
    is_active: bool


# ---------------------------------------------------------------------------
# Achievement Context — passed to every handler
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class AchievementContext:
    """Snapshot of account state passed to handlers.

    Parameters
    ----------
    balance : Current spendable balance.
    referrals : Number of accounts this user referred.
    missions_claimed : Number of missions whose reward was claimed.
    rank : 1-based leaderboard position by balance, or None if unknown.
    players : Number of ranked accounts when rank was read.
    """

    balance: int = 0
    referrals: int = 0
    missions_claimed: int = 0
    rank: int | None = None
    players: int = 0


# ---------------------------------------------------------------------------
# Handlers — pure functions (threshold, ctx) → bool
# ---------------------------------------------------------------------------
def _check_balance(threshold: int, ctx: AchievementContext) -> bool:
    return ctx.balance >= threshold


def _check_referrals(threshold: int, ctx: AchievementContext) -> bool:
    return ctx.referrals >= threshold


def _check_missions(threshold: int, ctx: AchievementContext) -> bool:
    return ctx.missions_claimed >= threshold


def _check_rank(threshold: int, ctx: AchievementContext) -> bool:
    """Fires when the account is at or above leaderboard position *threshold*.

    Rank is read outside any lock, so this is best-effort.  A board with
    no more than *threshold* players has no "top" to reach yet, and an
    empty balance shares first place with every other empty one.
    """
    if ctx.rank is None or ctx.rank < 1 or ctx.balance <= 0:
        return False
    if ctx.players <= threshold:
        return False
    return ctx.rank <= threshold


# ---------------------------------------------------------------------------
# Handler registry
# ---------------------------------------------------------------------------
ACHIEVEMENT_HANDLERS: dict[str, Callable[[int, AchievementContext], bool]] = {
    AchievementType.BALANCE: _check_balance,
    AchievementType.REFERRALS: _check_referrals,
    AchievementType.MISSIONS: _check_missions,
    AchievementType.RANK: _check_rank,
}


def needs_rank(catalog: Iterable[AchievementLike], already_unlocked: set[int]) -> bool:
    """True if any still-locked achievement depends on leaderboard rank."""
    return any(
        a.is_active and a.type == AchievementType.RANK and a.id not in already_unlocked
        for a in catalog
    )


# ---------------------------------------------------------------------------
# Main check function
# ---------------------------------------------------------------------------
def check_achievements(
    catalog: Iterable[AchievementLike],
    ctx: AchievementContext,
    already_unlocked: set[int],
) -> list[int]:
    """Check which achievements the account has newly unlocked.

    Parameters
    ----------
    catalog : Achievement catalog rows.
    ctx : AchievementContext with current account state.
    already_unlocked : Set of achievement IDs the account already has.

    Returns
    -------
    List of achievement IDs that were newly triggered.
    """
    newly_unlocked: list[int] = []

    for achievement in catalog:
        if not achievement.is_active or achievement.id in already_unlocked:
            continue

        handler = ACHIEVEMENT_HANDLERS.get(achievement.type)
        if handler is None:
            continue

        if handler(achievement.threshold, ctx):
            newly_unlocked.append(achievement.id)
            logger.debug("Achievement triggered: %s (id=%d)", achievement.key, achievement.id)

    return newly_unlocked
