"""
spudverse.engine.missions — Mission State Machine & Requirement Checks
=======================================================================

    pending ──verify──▶ completed ──claim──▶ claimed

Transitions only move forward.  Re-completing a completed mission is a
no-op; every other repeat or backwards move is rejected.
"""

from __future__ import annotations

from spudverse.database.models import MissionStatus
from spudverse.errors import InvalidStateTransition

_ORDER = {
    MissionStatus.PENDING: 0,
    MissionStatus.COMPLETED: 1,
    MissionStatus.CLAIMED: 2,
}


def transition(current: str, target: str) -> bool:
    """Validate ``current → target``.

    Returns True if the status changes, False for the
    ``completed → completed`` no-op.  Raises :class:`InvalidStateTransition`
    otherwise.
    """
    current_s = MissionStatus(current)
    target_s = MissionStatus(target)

    if current_s == target_s == MissionStatus.COMPLETED:
        return False
    if _ORDER[target_s] - _ORDER[current_s] != 1:
        if current_s == MissionStatus.CLAIMED:
            raise InvalidStateTransition("Mission reward already claimed.")
        if target_s == MissionStatus.CLAIMED:
            raise InvalidStateTransition("Mission not completed yet.")
        raise InvalidStateTransition(
            f"Mission cannot move from {current_s} to {target_s}."
        )
    return True


# ---------------------------------------------------------------------------
# Requirement descriptors
# ---------------------------------------------------------------------------
REQUIREMENT_AUTO = "auto"
REQUIREMENT_EXTERNAL_LINK = "external_link"
REQUIREMENT_REFERRALS = "referrals"
REQUIREMENT_TELEGRAM_CHANNEL = "telegram_channel"


def requirement_kind(requirements: dict | None) -> str:
    if not requirements:
        return REQUIREMENT_AUTO
    return str(requirements.get("kind", REQUIREMENT_AUTO))


def evaluate_locally(requirements: dict | None, referral_count: int) -> bool | None:
    """Resolve a requirement without leaving the process.

    Returns True/False when the answer is known here, or ``None`` when it
    has to be delegated to an external verifier.
    """
    kind = requirement_kind(requirements)
    if kind in (REQUIREMENT_AUTO, REQUIREMENT_EXTERNAL_LINK):
        return True
    if kind == REQUIREMENT_REFERRALS:
        return referral_count >= int((requirements or {}).get("count", 1))
    return None
