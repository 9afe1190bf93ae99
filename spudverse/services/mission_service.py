"""
spudverse.services.mission_service — Mission Progress & Claims
===============================================================

Progress rows in ``user_missions`` are created lazily; a missing row means
``pending``.  Verification may need the network, so it is split in two
database steps around the verifier call::

    plan = prepare_verification(...)      # DB: status + local answer
    ok   = await verifier.verify(...)     # only if plan.local_result is None
    complete_mission(...)                 # DB: pending → completed

Claims use a compare-and-set UPDATE so only one request can move a mission
from ``completed`` to ``claimed``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from spudverse.database.models import (
    Account,
    Mission,
    MissionStatus,
    MissionType,
    UserMission,
)
from spudverse.database.store import (
    count_referrals,
    credit,
    insert_if_absent,
    require_account,
)
from spudverse.engine.missions import evaluate_locally, transition
from spudverse.errors import InvalidStateTransition, NotFound, UserNotFound
from spudverse.services.progression_service import apply_progression

if TYPE_CHECKING:
    from spudverse.clock import Clock
    from spudverse.database.store import Store

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class VerificationPlan:
    mission_id: int
    status: str
    requirements: dict
    local_result: bool | None


@dataclass
class ClaimResult:
    mission_id: int
    reward: int
    new_balance: int
    leveled_up: bool = False
    level: int = 1
    unlocked_achievements: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _get_mission(session: Session, mission_id: int) -> Mission:
    mission = session.get(Mission, mission_id)
    if mission is None or not mission.is_active:
        raise NotFound(f"Mission {mission_id} not found.")
    return mission


def _status(session: Session, user_id: int, mission_id: int) -> str:
    progress = session.get(UserMission, (user_id, mission_id))
    return progress.status if progress else MissionStatus.PENDING.value


def mark_completed(session: Session, user_id: int, mission_id: int) -> bool:
    """Move a mission to ``completed``.  Returns True if it changed."""
    now = datetime.now(UTC)
    row = UserMission(
        user_id=user_id, mission_id=mission_id,
        status=MissionStatus.COMPLETED.value, completed_at=now,
    )
    if insert_if_absent(session, row):
        return True

    progress = session.get(UserMission, (user_id, mission_id))
    if not transition(progress.status, MissionStatus.COMPLETED):
        return False
    progress.status = MissionStatus.COMPLETED.value
    progress.completed_at = now
    return True


def complete_welcome_missions(session: Session, user_id: int) -> int:
    """Mark every active welcome mission completed (called at sign-up)."""
    missions = session.scalars(
        select(Mission).where(
            Mission.type == MissionType.WELCOME, Mission.is_active.is_(True)
        )
    ).all()
    return sum(1 for m in missions if mark_completed(session, user_id, m.id))


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------
def list_missions(store: Store, user_id: int) -> list[dict]:
    with store.read() as session:
        missions = session.scalars(
            select(Mission).where(Mission.is_active.is_(True))
            .order_by(Mission.sort_order, Mission.id)
        ).all()
        progress = {
            p.mission_id: p.status
            for p in session.scalars(
                select(UserMission).where(UserMission.user_id == user_id)
            ).all()
        }
        result = []
        for m in missions:
            status = progress.get(m.id, MissionStatus.PENDING.value)
            result.append({
                "id": m.id,
                "title": m.title,
                "description": m.description,
                "reward": m.reward,
                "type": m.type,
                "requirements": m.requirements or {},
                "status": status,
                "claimed": status == MissionStatus.CLAIMED.value,
            })
        return result


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------
def prepare_verification(store: Store, user_id: int, mission_id: int) -> VerificationPlan:
    """Look up the mission and answer its requirement locally if possible."""
    with store.read() as session:
        if session.get(Account, user_id) is None:
            raise UserNotFound(f"No account for user {user_id}.")
        mission = _get_mission(session, mission_id)
        status = _status(session, user_id, mission_id)
        requirements = dict(mission.requirements or {})

        if status != MissionStatus.PENDING.value:
            local: bool | None = True
        else:
            local = evaluate_locally(requirements, count_referrals(session, user_id))

        return VerificationPlan(mission_id, status, requirements, local)


def complete_mission(store: Store, user_id: int, mission_id: int) -> str:
    """Record a successful verification.  Returns the resulting status."""

    def _complete(session: Session) -> str:
        require_account(session, user_id)
        _get_mission(session, mission_id)
        if mark_completed(session, user_id, mission_id):
            logger.info("Mission %d completed by user %d", mission_id, user_id)
        return _status(session, user_id, mission_id)

    return store.atomic(_complete)


# ---------------------------------------------------------------------------
# Claiming
# ---------------------------------------------------------------------------
def claim_mission(store: Store, clock: Clock, user_id: int, mission_id: int) -> ClaimResult:
    """Credit a completed mission's reward exactly once.

    Raises :class:`InvalidStateTransition` if the mission is still pending
    or was already claimed.
    """

    def _claim(session: Session) -> ClaimResult:
        account = require_account(session, user_id)
        mission = _get_mission(session, mission_id)

        swapped = session.execute(
            update(UserMission)
            .where(
                UserMission.user_id == user_id,
                UserMission.mission_id == mission_id,
                UserMission.status == MissionStatus.COMPLETED.value,
            )
            .values(status=MissionStatus.CLAIMED.value, claimed_at=datetime.now(UTC))
            .execution_options(synchronize_session=False)
        )
        if swapped.rowcount != 1:
            # Raises with the reason (still pending / already claimed)
            transition(_status(session, user_id, mission_id), MissionStatus.CLAIMED)
            raise InvalidStateTransition("Mission could not be claimed.")

        credit(account, mission.reward)
        outcome = apply_progression(session, account, clock.now_ms())
        logger.info(
            "Mission %d claimed by user %d (+%d)", mission_id, user_id, mission.reward,
        )
        return ClaimResult(
            mission_id=mission_id,
            reward=mission.reward,
            new_balance=account.balance,
            leveled_up=outcome.level.leveled_up,
            level=account.level,
            unlocked_achievements=outcome.unlocked_achievements,
        )

    return store.atomic(_claim)
