"""
spudverse.api.routes.missions — Mission listing, verification & claims
========================================================================
"""

from __future__ import annotations

import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from spudverse.api.deps import get_clock, get_current_user_id, get_store, get_verifier
from spudverse.api.rate_limit import rate_limited_user
from spudverse.clock import Clock
from spudverse.database.engine import run_db
from spudverse.database.models import MissionStatus
from spudverse.database.store import LedgerStore
from spudverse.errors import ExternalVerificationFailure
from spudverse.services import mission_service
from spudverse.services.verifier import Verifier

router = APIRouter(prefix="/missions", tags=["missions"])
logger = logging.getLogger(__name__)


class MissionAction(BaseModel):
    mission_id: int


@router.get("")
async def list_missions(
    user_id: int = Depends(get_current_user_id),
    store: LedgerStore = Depends(get_store),
):
    return await run_db(mission_service.list_missions, store, user_id)


@router.post("/verify-channel")
async def verify_mission(
    body: MissionAction,
    user_id: int = Depends(rate_limited_user),
    store: LedgerStore = Depends(get_store),
    verifier: Verifier = Depends(get_verifier),
):
    """Check a mission requirement and mark it completed if met.

    A verifier outage leaves the mission pending and answers
    ``{"verified": false, "retry": true}``.
    """
    plan = await run_db(mission_service.prepare_verification, store, user_id, body.mission_id)

    verified = plan.local_result
    if verified is None:
        try:
            verified = await verifier.verify(user_id, plan.requirements)
        except ExternalVerificationFailure as exc:
            logger.warning(
                "Verification unavailable for user %d mission %d: %s",
                user_id, body.mission_id, exc.message,
            )
            return {"verified": False, "status": plan.status, "retry": True}

    if not verified:
        return {"verified": False, "status": plan.status, "retry": False}

    status = plan.status
    if status == MissionStatus.PENDING:
        status = await run_db(mission_service.complete_mission, store, user_id, body.mission_id)
    return {"verified": True, "status": status, "retry": False}


@router.post("/claim")
async def claim_mission(
    body: MissionAction,
    user_id: int = Depends(rate_limited_user),
    store: LedgerStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
):
    result = await run_db(mission_service.claim_mission, store, clock, user_id, body.mission_id)
    return asdict(result)
