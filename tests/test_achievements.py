"""
tests/test_achievements.py — Achievement Check Pipeline & Unlocks
==================================================================

Pure handler tests against mock catalog rows, then the database-backed
unlock path (reward paid once, chained unlocks, listing).
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from spudverse.database.models import Account, Achievement, AchievementType, UserAchievement
from spudverse.database.store import require_account
from spudverse.engine.achievements import AchievementContext, check_achievements, needs_rank
from spudverse.services import achievement_service


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _ach(id: int, type: str, threshold: int, *, active: bool = True) -> MagicMock:
    """Create a mock Achievement catalog row."""
    a = MagicMock()
    a.id = id
    a.key = f"achievement_{id}"
    a.type = type
    a.threshold = threshold
    a.is_active = active
    return a


@pytest.fixture
def catalog():
    return [
        _ach(1, AchievementType.BALANCE, 1_000),
        _ach(2, AchievementType.REFERRALS, 1),
        _ach(3, AchievementType.MISSIONS, 3),
        _ach(4, AchievementType.RANK, 10),
        _ach(5, AchievementType.BALANCE, 10, active=False),
    ]


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------
class TestCheckAchievements:
    def test_nothing_below_thresholds(self, catalog):
        assert check_achievements(catalog, AchievementContext(balance=999), set()) == []

    def test_balance_threshold_inclusive(self, catalog):
        assert check_achievements(catalog, AchievementContext(balance=1_000), set()) == [1]

    def test_referrals_and_missions(self, catalog):
        ctx = AchievementContext(referrals=1, missions_claimed=3)
        assert check_achievements(catalog, ctx, set()) == [2, 3]

    def test_already_unlocked_are_skipped(self, catalog):
        ctx = AchievementContext(balance=5_000, referrals=2)
        assert check_achievements(catalog, ctx, {1, 2}) == []

    def test_inactive_never_fire(self, catalog):
        assert 5 not in check_achievements(catalog, AchievementContext(balance=10**6), set())

    def test_rank_needs_a_full_board(self, catalog):
        def ranked(rank, players):
            return AchievementContext(balance=5, rank=rank, players=players)

        assert check_achievements(catalog, ranked(1, 10), set()) == []
        assert check_achievements(catalog, ranked(10, 11), set()) == [4]
        assert check_achievements(catalog, ranked(11, 50), set()) == []

    def test_unknown_rank_never_fires(self, catalog):
        assert check_achievements(catalog, AchievementContext(rank=None, players=99), set()) == []

    def test_empty_balance_never_ranks(self, catalog):
        assert check_achievements(catalog, AchievementContext(rank=1, players=99), set()) == []

    def test_needs_rank(self, catalog):
        assert needs_rank(catalog, set())
        assert not needs_rank(catalog, {4})


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------
def _unlock_count(engine, user_id: int) -> int:
    with Session(engine) as s:
        return s.scalar(
            select(func.count()).select_from(UserAchievement).where(
                UserAchievement.user_id == user_id
            )
        )


class TestUnlockAchievements:
    def test_reward_paid_once(self, db_engine, make_account, patch_account, load_account):
        make_account(1)
        patch_account(1, balance=1_000, total_farmed=1_000)

        with Session(db_engine, expire_on_commit=False) as s:
            account = require_account(s, 1)
            first = achievement_service.unlock_achievements(s, account)
            second = achievement_service.unlock_achievements(s, account)
            s.commit()

        assert [a.key for a in first] == ["first_thousand"]
        assert second == []
        assert load_account(1).balance == 1_100
        assert load_account(1).total_farmed == 1_100
        assert _unlock_count(db_engine, 1) == 1

    def test_duplicate_row_does_not_credit(self, db_engine, make_account, patch_account,
                                           load_account):
        """A unlock row committed by a concurrent request blocks the reward."""
        make_account(1)
        patch_account(1, balance=1_000, total_farmed=1_000)
        with Session(db_engine) as s:
            first_thousand = s.scalar(select(Achievement).where(Achievement.key == "first_thousand"))
            s.add(UserAchievement(user_id=1, achievement_id=first_thousand.id))
            s.commit()

        with Session(db_engine) as s:
            account = require_account(s, 1)
            assert achievement_service.unlock_achievements(s, account) == []
            s.commit()

        assert load_account(1).balance == 1_000

    def test_rewards_chain_into_next_threshold(self, db_engine, make_account, patch_account,
                                               load_account):
        make_account(1)
        # 9,950 is short of spud_hoarder ...
        patch_account(1, balance=9_950, total_farmed=9_950)
        with Session(db_engine, expire_on_commit=False) as s:
            unlocked = achievement_service.unlock_achievements(s, require_account(s, 1))
            s.commit()
        # ... until the first_thousand reward lands, in the same call
        assert [a.key for a in unlocked] == ["first_thousand", "spud_hoarder"]
        assert load_account(1).balance == 9_950 + 100 + 500

    def test_list_marks_unlocked(self, store, db_engine, make_account, patch_account):
        make_account(1)
        patch_account(1, balance=1_000, total_farmed=1_000)
        with Session(db_engine) as s:
            achievement_service.unlock_achievements(s, require_account(s, 1))
            s.commit()

        listing = {a["key"]: a["unlocked"] for a in achievement_service.list_achievements(store, 1)}
        assert listing["first_thousand"] is True
        assert listing["spud_hoarder"] is False

    def test_rank_achievement_with_full_board(self, db_engine, make_account, patch_account,
                                              load_account):
        for uid in range(1, 13):
            make_account(uid)
        patch_account(12, balance=500, total_farmed=500)

        with Session(db_engine, expire_on_commit=False) as s:
            unlocked = achievement_service.unlock_achievements(s, require_account(s, 12))
            s.commit()

        # top_ten pays 1,000, which then unlocks first_thousand
        assert [a.key for a in unlocked] == ["top_ten", "first_thousand"]
        assert load_account(12).balance == 500 + 1_000 + 100
        with Session(db_engine) as s:
            assert s.get(Account, 12).level == 1
