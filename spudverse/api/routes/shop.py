"""
spudverse.api.routes.shop — Upgrades & passive-income shop
============================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from spudverse.api.deps import get_clock, get_current_user_id, get_store
from spudverse.api.rate_limit import rate_limited_user
from spudverse.clock import Clock
from spudverse.database.engine import run_db
from spudverse.database.store import LedgerStore
from spudverse.services import shop_service

router = APIRouter(tags=["shop"])


class UpgradePurchase(BaseModel):
    upgrade_name: str


class ShopPurchase(BaseModel):
    item_id: str


@router.get("/upgrades")
async def list_upgrades(
    user_id: int = Depends(get_current_user_id),
    store: LedgerStore = Depends(get_store),
):
    return await run_db(shop_service.list_upgrades, store, user_id)


@router.post("/upgrades/purchase")
async def purchase_upgrade(
    body: UpgradePurchase,
    user_id: int = Depends(rate_limited_user),
    store: LedgerStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
):
    return await run_db(shop_service.purchase_upgrade, store, clock, user_id, body.upgrade_name)


@router.get("/shop")
async def list_shop(
    user_id: int = Depends(get_current_user_id),
    store: LedgerStore = Depends(get_store),
):
    return await run_db(shop_service.list_shop, store, user_id)


@router.post("/shop/buy")
async def buy_item(
    body: ShopPurchase,
    user_id: int = Depends(rate_limited_user),
    store: LedgerStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
):
    return await run_db(shop_service.buy_shop_item, store, clock, user_id, body.item_id)
