"""
spudverse.services.shop_service — Upgrades, Shop Items & Passive Income
========================================================================

Two ways to spend SPUD:

* **Upgrades** — capped, permanent stat boosts (per tap, max energy,
  regeneration).  Cost grows by ``cost_multiplier`` per level.
* **Shop items** — uncapped passive-income units.  Each unit costs and
  yields ``scaling_factor`` times the previous one.

Passive income is credited lazily: before any read of the account and
before anything that changes SPH, :func:`apply_passive` settles what the
old rate earned.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.orm import Session

from spudverse.database.models import Account, ShopItem, Upgrade, UserShopItem, UserUpgrade
from spudverse.database.store import credit, debit, require_account
from spudverse.engine.shop import (
    accrue_passive,
    compute_sph,
    item_profit,
    unit_cost,
    unit_profit,
    upgrade_cost,
)
from spudverse.errors import MaxLevelReached, NotFound
from spudverse.services.progression_service import (
    apply_progression,
    refresh_stats,
    upgrade_levels,
)

if TYPE_CHECKING:
    from spudverse.clock import Clock
    from spudverse.database.store import Store

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PassiveSync:
    credited: int
    balance: int
    sph: int


# ---------------------------------------------------------------------------
# Passive income
# ---------------------------------------------------------------------------
def apply_passive(session: Session, account: Account, now_ms: int) -> int:
    """Credit whatever the current SPH earned since the last sync."""
    accrual = accrue_passive(account.sph, account.last_passive_sync, now_ms)
    account.last_passive_sync = accrual.last_sync_ms
    if accrual.credited:
        credit(account, accrual.credited)
        logger.debug("Passive income: user %d +%d", account.user_id, accrual.credited)
    return accrual.credited


def owned_items(session: Session, user_id: int) -> dict[str, int]:
    rows = session.scalars(select(UserShopItem).where(UserShopItem.user_id == user_id)).all()
    return {row.item_id: row.count for row in rows}


def recompute_sph(session: Session, account: Account) -> int:
    owned = owned_items(session, account.user_id)
    items = session.scalars(select(ShopItem).where(ShopItem.id.in_(owned))).all() if owned else []
    account.sph = compute_sph(
        (item.base_profit_per_hour, item.scaling_factor, owned[item.id]) for item in items
    )
    return account.sph


def sync_passive(store: Store, clock: Clock, user_id: int) -> PassiveSync:
    def _sync(session: Session) -> PassiveSync:
        account = require_account(session, user_id)
        now = clock.now_ms()
        credited = apply_passive(session, account, now)
        if credited:
            apply_progression(session, account, now)
        return PassiveSync(credited=credited, balance=account.balance, sph=account.sph)

    return store.atomic(_sync)


# ---------------------------------------------------------------------------
# Upgrades
# ---------------------------------------------------------------------------
def list_upgrades(store: Store, user_id: int) -> list[dict]:
    with store.read() as session:
        levels = upgrade_levels(session, user_id)
        upgrades = session.scalars(select(Upgrade).order_by(Upgrade.name)).all()
        result = []
        for u in upgrades:
            level = levels.get(u.name, 0)
            maxed = level >= u.max_level
            result.append({
                "name": u.name,
                "description": u.description,
                "current_level": level,
                "max_level": u.max_level,
                "stat_increment": u.stat_increment,
                "next_level_cost": None if maxed else upgrade_cost(
                    u.base_cost, u.cost_multiplier, level
                ),
            })
        return result


def purchase_upgrade(store: Store, clock: Clock, user_id: int, upgrade_name: str) -> dict:
    """Buy the next level of *upgrade_name*.

    Raises :class:`NotFound`, :class:`MaxLevelReached` or
    :class:`InsufficientBalance`.
    """

    def _purchase(session: Session) -> dict:
        account = require_account(session, user_id)
        upgrade = session.get(Upgrade, upgrade_name)
        if upgrade is None:
            raise NotFound(f"Unknown upgrade '{upgrade_name}'.")

        now = clock.now_ms()
        if apply_passive(session, account, now):
            apply_progression(session, account, now)

        owned = session.get(UserUpgrade, (user_id, upgrade_name))
        level = owned.level if owned else 0
        if level >= upgrade.max_level:
            raise MaxLevelReached(
                f"{upgrade_name} is already at max level {upgrade.max_level}.",
                max_level=upgrade.max_level,
            )

        cost = upgrade_cost(upgrade.base_cost, upgrade.cost_multiplier, level)
        debit(account, cost)
        if owned is None:
            owned = UserUpgrade(user_id=user_id, upgrade_name=upgrade_name, level=0)
            session.add(owned)
        owned.level = level + 1
        session.flush()

        stats = refresh_stats(session, account, now)
        logger.info(
            "Upgrade purchased: user %d %s → level %d (-%d)",
            user_id, upgrade_name, owned.level, cost,
        )
        return {
            "upgrade_name": upgrade_name,
            "new_level": owned.level,
            "cost": cost,
            "new_balance": account.balance,
            "per_tap": stats.per_tap,
            "max_energy": stats.max_energy,
            "energy_regen_rate": stats.energy_regen_rate,
            "next_level_cost": None if owned.level >= upgrade.max_level else upgrade_cost(
                upgrade.base_cost, upgrade.cost_multiplier, owned.level
            ),
        }

    return store.atomic(_purchase)


# ---------------------------------------------------------------------------
# Shop items
# ---------------------------------------------------------------------------
def list_shop(store: Store, user_id: int) -> list[dict]:
    with store.read() as session:
        owned = owned_items(session, user_id)
        items = session.scalars(
            select(ShopItem).where(ShopItem.is_active.is_(True)).order_by(ShopItem.base_cost)
        ).all()
        return [
            {
                "id": item.id,
                "name": item.name,
                "category": item.category,
                "owned": owned.get(item.id, 0),
                "next_cost": unit_cost(item.base_cost, item.scaling_factor, owned.get(item.id, 0)),
                "next_profit": unit_profit(
                    item.base_profit_per_hour, item.scaling_factor, owned.get(item.id, 0)
                ),
                "current_profit": item_profit(
                    item.base_profit_per_hour, item.scaling_factor, owned.get(item.id, 0)
                ),
            }
            for item in items
        ]


def buy_shop_item(store: Store, clock: Clock, user_id: int, item_id: str) -> dict:
    """Buy one more unit of *item_id* and raise the account's SPH."""

    def _buy(session: Session) -> dict:
        account = require_account(session, user_id)
        item = session.get(ShopItem, item_id)
        if item is None or not item.is_active:
            raise NotFound(f"Unknown shop item '{item_id}'.")

        # Settle income at the old rate before the rate changes
        now = clock.now_ms()
        if apply_passive(session, account, now):
            apply_progression(session, account, now)

        holding = session.get(UserShopItem, (user_id, item_id))
        count = holding.count if holding else 0
        cost = unit_cost(item.base_cost, item.scaling_factor, count)
        debit(account, cost)

        if holding is None:
            holding = UserShopItem(user_id=user_id, item_id=item_id, count=0)
            session.add(holding)
        holding.count = count + 1
        session.flush()

        sph = recompute_sph(session, account)
        logger.info(
            "Shop purchase: user %d bought %s #%d (-%d), sph=%d",
            user_id, item_id, holding.count, cost, sph,
        )
        return {
            "item_id": item_id,
            "owned": holding.count,
            "cost": cost,
            "new_balance": account.balance,
            "sph": sph,
            "next_cost": unit_cost(item.base_cost, item.scaling_factor, holding.count),
        }

    return store.atomic(_buy)
