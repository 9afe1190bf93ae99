"""
spudverse.services.achievement_service — Achievement Unlocks
=============================================================

Unlocking inserts a ``user_achievements`` row behind its primary key and
credits the reward in the same transaction, so a reward is paid at most
once no matter how many requests race to unlock it.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from spudverse.database.models import (
    Account,
    Achievement,
    MissionStatus,
    UserAchievement,
    UserMission,
)
from spudverse.database.store import compute_rank, count_referrals, credit, insert_if_absent
from spudverse.engine.achievements import AchievementContext, check_achievements, needs_rank

if TYPE_CHECKING:
    from spudverse.database.store import Store

logger = logging.getLogger(__name__)


def get_unlocked_ids(session: Session, user_id: int) -> set[int]:
    """Set of achievement IDs the account already unlocked."""
    rows = session.scalars(
        select(UserAchievement.achievement_id).where(UserAchievement.user_id == user_id)
    ).all()
    return set(rows)


def count_claimed_missions(session: Session, user_id: int) -> int:
    return session.scalar(
        select(func.count()).select_from(UserMission).where(
            UserMission.user_id == user_id,
            UserMission.status == MissionStatus.CLAIMED.value,
        )
    ) or 0


def build_context(
    session: Session,
    account: Account,
    catalog: list[Achievement],
    unlocked: set[int],
) -> AchievementContext:
    rank = None
    players = 0
    if needs_rank(catalog, unlocked):
        session.flush()
        rank = compute_rank(session, account.balance)
        players = session.scalar(select(func.count()).select_from(Account)) or 0
    return AchievementContext(
        balance=account.balance,
        referrals=count_referrals(session, account.user_id),
        missions_claimed=count_claimed_missions(session, account.user_id),
        rank=rank,
        players=players,
    )


def unlock_achievements(session: Session, account: Account) -> list[Achievement]:
    """Unlock every achievement the account now qualifies for.

    Repeats until a pass unlocks nothing.  Returns the newly unlocked rows.
    """
    catalog = list(session.scalars(
        select(Achievement).where(Achievement.is_active.is_(True)).order_by(Achievement.id)
    ).all())
    if not catalog:
        return []

    unlocked = get_unlocked_ids(session, account.user_id)
    by_id = {a.id: a for a in catalog}
    newly: list[Achievement] = []

    while True:
        ctx = build_context(session, account, catalog, unlocked)
        triggered = check_achievements(catalog, ctx, unlocked)
        if not triggered:
            break
        for achievement_id in triggered:
            unlocked.add(achievement_id)
            row = UserAchievement(user_id=account.user_id, achievement_id=achievement_id)
            if not insert_if_absent(session, row):
                continue
            achievement = by_id[achievement_id]
            credit(account, achievement.reward)
            newly.append(achievement)
            logger.info(
                "Achievement unlocked: %s for user %d (+%d)",
                achievement.key, account.user_id, achievement.reward,
            )

    return newly


def list_achievements(store: Store, user_id: int) -> list[dict]:
    """Catalog with per-account ``unlocked`` flags."""
    with store.read() as session:
        unlocked = get_unlocked_ids(session, user_id)
        catalog = session.scalars(
            select(Achievement).where(Achievement.is_active.is_(True)).order_by(Achievement.id)
        ).all()
        return [
            {
                "id": a.id,
                "key": a.key,
                "title": a.title,
                "description": a.description,
                "type": a.type,
                "threshold": a.threshold,
                "reward": a.reward,
                "unlocked": a.id in unlocked,
            }
            for a in catalog
        ]
