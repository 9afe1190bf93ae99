"""
tests/test_account_service.py — Account Creation, Referrals & Leaderboard
==========================================================================
"""

from __future__ import annotations

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from spudverse.database.models import Referral
from spudverse.engine.shop import MS_PER_HOUR
from spudverse.errors import UserNotFound
from spudverse.services import account_service
from spudverse.services.account_service import (
    ReferralOutcome,
    build_referral_link,
    create_account,
    parse_referral_code,
    register_referral,
)


def _edges(engine) -> list[tuple[int, int]]:
    with Session(engine) as s:
        return [(r.referrer_id, r.referred_id) for r in s.scalars(select(Referral)).all()]


# ---------------------------------------------------------------------------
# Referral codes
# ---------------------------------------------------------------------------
class TestReferralCodes:
    @pytest.mark.parametrize(
        "code, expected",
        [("ref_123", 123), ("123", 123), (123, 123), (" ref_7 ", 7),
         ("ref_", None), ("abc", None), ("0", None), ("-5", None), (None, None)],
    )
    def test_parse(self, code, expected):
        assert parse_referral_code(code) == expected

    def test_link(self):
        assert build_referral_link("@SpudVerseBot", 42) == "https://t.me/SpudVerseBot?startapp=ref_42"


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------
class TestCreateAccount:
    def test_new_account_snapshot(self, store, clock, config):
        snapshot, outcome = create_account(store, clock, config, 1, username="spudling")

        assert outcome is None
        assert snapshot["user_id"] == 1
        assert snapshot["balance"] == 0
        assert snapshot["total_farmed"] == 0
        assert snapshot["level"] == 1
        assert snapshot["per_tap"] == 1
        assert snapshot["energy"] == snapshot["max_energy"] == 100
        assert snapshot["regen_rate"] == 1
        assert snapshot["referral_count"] == 0
        assert snapshot["next_level_at"] == 1_000

    def test_second_create_returns_existing(self, store, clock, config, patch_account):
        create_account(store, clock, config, 1)
        patch_account(1, balance=777)

        snapshot, outcome = create_account(store, clock, config, 1, referral_code="ref_5")

        assert outcome is None
        assert snapshot["balance"] == 777

    def test_get_snapshot_unknown_user(self, store, clock):
        with pytest.raises(UserNotFound) as exc_info:
            account_service.get_snapshot(store, clock, 404)
        assert exc_info.value.code == "new_user"

    def test_snapshot_applies_passive_income(self, store, clock, make_account, patch_account):
        make_account(1)
        patch_account(1, sph=120, last_passive_sync=clock.now_ms())
        clock.advance(MS_PER_HOUR // 2)

        snapshot = account_service.get_snapshot(store, clock, 1)

        assert snapshot["passive_credited"] == 60
        assert snapshot["balance"] == 60

    def test_snapshot_energy_is_regenerated(self, store, clock, make_account, patch_account):
        make_account(1)
        patch_account(1, energy=10, last_energy_update=clock.now_ms())
        clock.advance(seconds=31)

        snapshot = account_service.get_snapshot(store, clock, 1)

        assert snapshot["energy"] == snapshot["current_energy"] == 13
        assert snapshot["next_tick_in"] == 9_000


# ---------------------------------------------------------------------------
# Referrals
# ---------------------------------------------------------------------------
class TestReferrals:
    def test_referred_signup(self, store, clock, config, db_engine, make_account, load_account):
        make_account(1001)

        snapshot, outcome = create_account(store, clock, config, 1002, referral_code="1001")

        assert outcome is ReferralOutcome.SUCCESS
        assert snapshot["balance"] == 50
        assert load_account(1001).balance == 100
        assert load_account(1001).total_farmed == 100
        assert load_account(1002).referrer_id == 1001
        assert _edges(db_engine) == [(1001, 1002)]

    def test_start_param_form(self, store, clock, config, make_account, load_account):
        make_account(1001)
        _, outcome = create_account(store, clock, config, 1002, referral_code="ref_1001")
        assert outcome is ReferralOutcome.SUCCESS

    def test_self_referral_rejected(self, store, clock, config, db_engine):
        snapshot, outcome = create_account(store, clock, config, 7, referral_code="ref_7")
        assert outcome is ReferralOutcome.SELF_REFERRAL
        assert snapshot["balance"] == 0
        assert _edges(db_engine) == []

    @pytest.mark.parametrize("code", ["ref_999", "not-a-code"])
    def test_unknown_referrer(self, store, clock, config, db_engine, code):
        snapshot, outcome = create_account(store, clock, config, 7, referral_code=code)
        assert outcome is ReferralOutcome.UNKNOWN_REFERRER
        assert snapshot["balance"] == 0
        assert _edges(db_engine) == []

    def test_blank_code_is_no_code(self, store, clock, config):
        _, outcome = create_account(store, clock, config, 7, referral_code="  ")
        assert outcome is None

    def test_existing_account_gets_no_bonus(self, store, clock, config, make_account,
                                            load_account, db_engine):
        make_account(1001)
        make_account(1002)
        _, outcome = create_account(store, clock, config, 1002, referral_code="1001")
        assert outcome is None
        assert load_account(1001).balance == 0
        assert _edges(db_engine) == []

    def test_bonus_granted_at_most_once(self, store, clock, config, db_engine, make_account,
                                        load_account):
        make_account(1001)
        make_account(1003)
        create_account(store, clock, config, 1002, referral_code="1001")

        with Session(db_engine) as s:
            outcome = register_referral(
                s, 1003, 1002, referral_bonus=100, referred_bonus=50, now_ms=clock.now_ms(),
            )
            s.commit()

        assert outcome is ReferralOutcome.ALREADY_REFERRED
        assert load_account(1002).balance == 50
        assert load_account(1003).balance == 0
        with Session(db_engine) as s:
            assert s.scalar(select(func.count()).select_from(Referral)) == 1

    def test_referrer_can_level_up_from_bonus(self, store, clock, config, make_account,
                                              patch_account, load_account):
        make_account(1001)
        patch_account(1001, balance=950, total_farmed=950)
        create_account(store, clock, config, 1002, referral_code="1001")
        referrer = load_account(1001)
        assert referrer.balance == 1_050
        assert referrer.level == 2

    def test_referral_info(self, store, clock, config, make_account):
        make_account(1001)
        create_account(store, clock, config, 1002, referral_code="1001")

        info = account_service.referral_info(store, config, 1001)

        assert info["referral_count"] == 1
        assert info["referral_code"] == "ref_1001"
        assert info["referral_link"] == "https://t.me/SpudVerseBot?startapp=ref_1001"

    def test_referral_info_unknown_user(self, store, config):
        with pytest.raises(UserNotFound):
            account_service.referral_info(store, config, 1)


# ---------------------------------------------------------------------------
# Leaderboard
# ---------------------------------------------------------------------------
class TestLeaderboard:
    def test_ordering_and_own_rank(self, store, make_account, patch_account):
        for uid, balance in [(1, 300), (2, 900), (3, 50), (4, 900)]:
            make_account(uid)
            patch_account(uid, balance=balance)

        board = account_service.leaderboard(store, 3, limit=3)

        assert [e["user_id"] for e in board["entries"]] == [2, 4, 1]
        assert [e["rank"] for e in board["entries"]] == [1, 2, 3]
        assert board["entries"][0]["name"] == "@farmer2"
        assert board["me"] == {"rank": 4, "balance": 50}

    def test_caller_without_account(self, store, make_account):
        make_account(1)
        assert account_service.leaderboard(store, 99)["me"] is None
