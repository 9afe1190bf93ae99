"""
spudverse.api.routes.game — Account, taps, energy & social endpoints
======================================================================
"""

from __future__ import annotations

import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field, model_validator

from spudverse.api.deps import (
    get_clock,
    get_config,
    get_current_user,
    get_current_user_id,
    get_store,
)
from spudverse.api.rate_limit import rate_limited_user
from spudverse.clock import Clock
from spudverse.config import SpudConfig
from spudverse.database.engine import run_db
from spudverse.database.store import LedgerStore
from spudverse.engine.reward import MAX_TAPS_PER_BATCH
from spudverse.services import (
    account_service,
    achievement_service,
    progression_service,
    shop_service,
    tap_service,
)

router = APIRouter(tags=["game"])
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class CreateAccount(BaseModel):
    referral_code: str | None = None


class TapBatch(BaseModel):
    tap_count: int | None = Field(None, ge=1, le=MAX_TAPS_PER_BATCH)
    amount: int | None = Field(None, ge=1, le=MAX_TAPS_PER_BATCH)  # legacy alias
    per_tap: int | None = None   # advisory
    combo: float | None = None   # advisory

    @model_validator(mode="after")
    def _require_count(self) -> TapBatch:
        if self.tap_count is None and self.amount is None:
            raise ValueError("tap_count (or legacy amount) is required")
        return self

    @property
    def taps(self) -> int:
        return self.tap_count if self.tap_count is not None else self.amount


# ---------------------------------------------------------------------------
# Account
# ---------------------------------------------------------------------------
@router.get("/user")
async def get_user(
    user_id: int = Depends(get_current_user_id),
    store: LedgerStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
):
    """Authoritative snapshot; 404 ``new_user`` starts onboarding."""
    return await run_db(account_service.get_snapshot, store, clock, user_id)


@router.post("/user/create")
async def create_user(
    body: CreateAccount,
    user: dict = Depends(get_current_user),
    _: int = Depends(rate_limited_user),
    store: LedgerStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
    cfg: SpudConfig = Depends(get_config),
):
    snapshot, outcome = await run_db(
        account_service.create_account,
        store, clock, cfg, int(user["id"]),
        username=user.get("username"),
        first_name=user.get("first_name"),
        last_name=user.get("last_name"),
        referral_code=body.referral_code,
    )
    return {**snapshot, "referral": outcome.value if outcome else None}


@router.get("/user/sync-balance")
async def sync_balance(
    user_id: int = Depends(get_current_user_id),
    store: LedgerStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
):
    result = await run_db(shop_service.sync_passive, store, clock, user_id)
    return asdict(result)


@router.post("/user/level-up")
async def level_up(
    user_id: int = Depends(rate_limited_user),
    store: LedgerStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
):
    result = await run_db(progression_service.check_level_up, store, clock, user_id)
    return {
        "leveled_up": result.leveled_up,
        "new_level": result.new_level,
        "granted_bonuses": result.granted_bonuses,
    }


# ---------------------------------------------------------------------------
# Taps & energy
# ---------------------------------------------------------------------------
@router.post("/tap")
async def tap(
    body: TapBatch,
    user_id: int = Depends(rate_limited_user),
    store: LedgerStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
):
    result = await run_db(
        tap_service.record_taps, store, clock, user_id, body.taps,
        client_per_tap=body.per_tap, combo=body.combo,
    )
    return asdict(result)


@router.get("/energy")
async def energy(
    user_id: int = Depends(get_current_user_id),
    store: LedgerStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
):
    return await run_db(tap_service.energy_status, store, clock, user_id)


# ---------------------------------------------------------------------------
# Achievements, leaderboard & referrals
# ---------------------------------------------------------------------------
@router.get("/achievements")
async def achievements(
    user_id: int = Depends(get_current_user_id),
    store: LedgerStore = Depends(get_store),
):
    return await run_db(achievement_service.list_achievements, store, user_id)


@router.get("/leaderboard")
async def leaderboard(
    limit: int = Query(10, ge=1, le=100),
    user_id: int = Depends(get_current_user_id),
    store: LedgerStore = Depends(get_store),
):
    return await run_db(account_service.leaderboard, store, user_id, limit)


@router.get("/referrals")
async def referrals(
    user_id: int = Depends(get_current_user_id),
    store: LedgerStore = Depends(get_store),
    cfg: SpudConfig = Depends(get_config),
):
    return await run_db(account_service.referral_info, store, cfg, user_id)
