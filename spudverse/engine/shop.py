"""
spudverse.engine.shop — Upgrade & Shop Pricing, Passive Income
===============================================================

Pure calculation — no DB I/O.

Pricing is geometric in the number of units already owned::

    unit_cost(owned)   = int(base_cost   * factor ** owned)
    unit_profit(k)     = int(base_profit * factor ** k)      # k-th unit, 0-based

An item's hourly contribution is the sum of its owned units' profits and
the account's SPH is the sum over items.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

MS_PER_HOUR = 3_600_000


def upgrade_cost(base_cost: int, cost_multiplier: float, current_level: int) -> int:
    """Price of the next upgrade level."""
    return int(base_cost * cost_multiplier ** current_level)


def unit_cost(base_cost: int, factor: float, owned: int) -> int:
    """Price of the next unit of a shop item when *owned* are held."""
    return int(base_cost * factor ** owned)


def unit_profit(base_profit: int, factor: float, index: int) -> int:
    """Hourly profit of the unit at 0-based position *index*."""
    return int(base_profit * factor ** index)


def item_profit(base_profit: int, factor: float, count: int) -> int:
    """Hourly profit of *count* owned units of one item."""
    return sum(unit_profit(base_profit, factor, k) for k in range(count))


def compute_sph(holdings: Iterable[tuple[int, float, int]]) -> int:
    """Total SPUD per hour from ``(base_profit, factor, count)`` triples."""
    return sum(item_profit(profit, factor, count) for profit, factor, count in holdings)


@dataclass(frozen=True, slots=True)
class PassiveAccrual:
    credited: int
    last_sync_ms: int


def accrue_passive(sph: int, last_sync_ms: int, now_ms: int) -> PassiveAccrual:
    """Whole SPUD earned since *last_sync_ms* at *sph* per hour.

    The sync mark only advances by the time that produced whole SPUD, so
    frequent syncs lose nothing to rounding.  With no income the mark moves
    to *now* so a first purchase does not pay retroactively.

    >>> accrue_passive(3600, 0, 2500)
    PassiveAccrual(credited=2, last_sync_ms=2000)
    """
    elapsed = max(0, now_ms - last_sync_ms)
    if sph <= 0:
        return PassiveAccrual(0, max(last_sync_ms, now_ms))

    earned = elapsed * sph // MS_PER_HOUR
    if earned == 0:
        return PassiveAccrual(0, last_sync_ms)

    consumed = -(-earned * MS_PER_HOUR // sph)
    return PassiveAccrual(earned, last_sync_ms + consumed)
