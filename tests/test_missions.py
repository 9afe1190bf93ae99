"""
tests/test_missions.py — Mission State Machine, Verification & Claims
======================================================================
"""

from __future__ import annotations

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from spudverse.database.models import Mission, MissionStatus
from spudverse.engine.missions import evaluate_locally, requirement_kind, transition
from spudverse.errors import InvalidStateTransition, NotFound, UserNotFound
from spudverse.services import mission_service

PENDING = MissionStatus.PENDING
COMPLETED = MissionStatus.COMPLETED
CLAIMED = MissionStatus.CLAIMED


def _mission_id(engine, sort_order: int) -> int:
    """Seeded missions by position: 1 welcome, 2 channel, 3 twitter, 4 invite."""
    with Session(engine) as s:
        return s.scalar(select(Mission.id).where(Mission.sort_order == sort_order))


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------
class TestTransition:
    def test_forward_steps(self):
        assert transition(PENDING, COMPLETED) is True
        assert transition(COMPLETED, CLAIMED) is True

    def test_recomplete_is_a_noop(self):
        assert transition(COMPLETED, COMPLETED) is False

    def test_claim_pending_rejected(self):
        with pytest.raises(InvalidStateTransition, match="not completed"):
            transition(PENDING, CLAIMED)

    def test_claim_twice_rejected(self):
        with pytest.raises(InvalidStateTransition, match="already claimed"):
            transition(CLAIMED, CLAIMED)

    @pytest.mark.parametrize("current, target", [(COMPLETED, PENDING), (CLAIMED, COMPLETED)])
    def test_never_backwards(self, current, target):
        with pytest.raises(InvalidStateTransition):
            transition(current, target)


class TestRequirements:
    def test_kind_defaults_to_auto(self):
        assert requirement_kind(None) == "auto"
        assert requirement_kind({}) == "auto"

    def test_local_answers(self):
        assert evaluate_locally({"kind": "auto"}, 0) is True
        assert evaluate_locally({"kind": "external_link", "url": "x"}, 0) is True
        assert evaluate_locally({"kind": "referrals", "count": 5}, 4) is False
        assert evaluate_locally({"kind": "referrals", "count": 5}, 5) is True

    def test_channel_is_delegated(self):
        assert evaluate_locally({"kind": "telegram_channel", "chat_id": "@c"}, 0) is None


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------
class TestMissionService:
    def test_welcome_completed_at_signup(self, store, make_account):
        make_account(1)
        statuses = {m["title"]: m["status"] for m in mission_service.list_missions(store, 1)}
        assert statuses["🎉 Welcome to SpudVerse"] == COMPLETED
        assert statuses["📢 Join Telegram Channel"] == PENDING

    def test_channel_plan_is_delegated(self, store, db_engine, make_account):
        make_account(1)
        plan = mission_service.prepare_verification(store, 1, _mission_id(db_engine, 2))
        assert plan.status == PENDING
        assert plan.local_result is None
        assert plan.requirements["chat_id"] == "@spudverse_channel"

    def test_referral_plan_answers_locally(self, store, db_engine, make_account):
        make_account(1)
        plan = mission_service.prepare_verification(store, 1, _mission_id(db_engine, 4))
        assert plan.local_result is False

    def test_unknown_user_and_mission(self, store, make_account):
        with pytest.raises(UserNotFound):
            mission_service.prepare_verification(store, 1, 1)
        make_account(1)
        with pytest.raises(NotFound):
            mission_service.prepare_verification(store, 1, 999)

    def test_complete_is_idempotent(self, store, db_engine, make_account):
        make_account(1)
        mid = _mission_id(db_engine, 2)
        assert mission_service.complete_mission(store, 1, mid) == COMPLETED
        assert mission_service.complete_mission(store, 1, mid) == COMPLETED

    def test_claim_pending_rejected(self, store, clock, db_engine, make_account, load_account):
        make_account(1)
        with pytest.raises(InvalidStateTransition, match="not completed"):
            mission_service.claim_mission(store, clock, 1, _mission_id(db_engine, 2))
        assert load_account(1).balance == 0

    def test_claim_twice_credits_once(self, store, clock, db_engine, make_account, load_account):
        make_account(1)
        mid = _mission_id(db_engine, 2)
        mission_service.complete_mission(store, 1, mid)

        result = mission_service.claim_mission(store, clock, 1, mid)
        assert result.reward == 250
        assert result.new_balance == 250

        with pytest.raises(InvalidStateTransition, match="already claimed"):
            mission_service.claim_mission(store, clock, 1, mid)
        assert load_account(1).balance == 250
        assert load_account(1).total_farmed == 250

    def test_completing_claimed_mission_is_rejected(self, store, clock, db_engine,
                                                     make_account):
        make_account(1)
        mid = _mission_id(db_engine, 1)
        mission_service.claim_mission(store, clock, 1, mid)
        with pytest.raises(InvalidStateTransition):
            mission_service.complete_mission(store, 1, mid)

    def test_claimed_status_listed(self, store, clock, db_engine, make_account):
        make_account(1)
        mission_service.claim_mission(store, clock, 1, _mission_id(db_engine, 1))
        welcome = next(m for m in mission_service.list_missions(store, 1) if m["reward"] == 100)
        assert welcome["status"] == CLAIMED
        assert welcome["claimed"] is True

    def test_third_claim_unlocks_go_getter(self, store, clock, db_engine, make_account,
                                           load_account):
        make_account(1)
        for order in (1, 2, 3):
            mid = _mission_id(db_engine, order)
            mission_service.complete_mission(store, 1, mid)
            result = mission_service.claim_mission(store, clock, 1, mid)
        assert result.unlocked_achievements == ["go_getter"]
        assert load_account(1).balance == 100 + 250 + 200 + 300
