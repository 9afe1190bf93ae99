"""
spudverse.database.seed — Default Catalog Seeder
=================================================

Baseline missions, achievements, upgrades, and shop items seeded on first
startup so the game is immediately playable.

Idempotent — only inserts rows whose natural key doesn't exist yet.
Catalog rows edited later in the database are never overwritten.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from spudverse.database.models import (
    Achievement,
    AchievementType,
    Mission,
    MissionType,
    ShopItem,
    Upgrade,
    UpgradeName,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Default catalogues
# ---------------------------------------------------------------------------
DEFAULT_MISSIONS: list[dict] = [
    {
        "title": "🎉 Welcome to SpudVerse",
        "description": "Complete account registration",
        "reward": 100,
        "type": MissionType.WELCOME,
        "requirements": {"kind": "auto"},
        "sort_order": 1,
    },
    {
        "title": "📢 Join Telegram Channel",
        "description": "Join our official channel @spudverse_channel",
        "reward": 250,
        "type": MissionType.SOCIAL,
        "requirements": {"kind": "telegram_channel", "chat_id": "@spudverse_channel"},
        "sort_order": 2,
    },
    {
        "title": "🐦 Follow Twitter",
        "description": "Follow @SpudVerse on Twitter",
        "reward": 200,
        "type": MissionType.SOCIAL,
        "requirements": {"kind": "external_link", "url": "https://twitter.com/SpudVerse"},
        "sort_order": 3,
    },
    {
        "title": "👥 Invite 5 Friends",
        "description": "Invite 5 friends to join SpudVerse",
        "reward": 500,
        "type": MissionType.REFERRAL,
        "requirements": {"kind": "referrals", "count": 5},
        "sort_order": 4,
    },
]

DEFAULT_ACHIEVEMENTS: list[dict] = [
    {"key": "first_thousand", "title": "🥔 First Harvest", "type": AchievementType.BALANCE,
     "threshold": 1_000, "reward": 100, "description": "Hold 1,000 SPUD"},
    {"key": "spud_hoarder", "title": "💰 Spud Hoarder", "type": AchievementType.BALANCE,
     "threshold": 10_000, "reward": 500, "description": "Hold 10,000 SPUD"},
    {"key": "potato_tycoon", "title": "👑 Potato Tycoon", "type": AchievementType.BALANCE,
     "threshold": 100_000, "reward": 2_500, "description": "Hold 100,000 SPUD"},
    {"key": "first_friend", "title": "🤝 First Friend", "type": AchievementType.REFERRALS,
     "threshold": 1, "reward": 100, "description": "Invite your first friend"},
    {"key": "community_builder", "title": "👥 Community Builder", "type": AchievementType.REFERRALS,
     "threshold": 10, "reward": 1_000, "description": "Invite 10 friends"},
    {"key": "go_getter", "title": "✅ Go-Getter", "type": AchievementType.MISSIONS,
     "threshold": 3, "reward": 300, "description": "Claim 3 missions"},
    {"key": "top_ten", "title": "🏆 Top Ten Farmer", "type": AchievementType.RANK,
     "threshold": 10, "reward": 1_000, "description": "Reach the top 10 of the leaderboard"},
]

DEFAULT_UPGRADES: list[dict] = [
    {"name": UpgradeName.PER_TAP, "description": "+1 SPUD per tap",
     "max_level": 10, "base_cost": 500, "cost_multiplier": 2.0, "stat_increment": 1},
    {"name": UpgradeName.MAX_ENERGY, "description": "+50 maximum energy",
     "max_level": 10, "base_cost": 400, "cost_multiplier": 1.8, "stat_increment": 50},
    {"name": UpgradeName.ENERGY_REGEN_RATE, "description": "+1 energy per regeneration tick",
     "max_level": 5, "base_cost": 1_000, "cost_multiplier": 2.5, "stat_increment": 1},
]

DEFAULT_SHOP_ITEMS: list[dict] = [
    {"id": "potato_patch", "name": "🌱 Potato Patch", "category": "farm",
     "base_cost": 250, "base_profit_per_hour": 20, "scaling_factor": 1.15},
    {"id": "irrigation", "name": "💧 Irrigation System", "category": "farm",
     "base_cost": 1_000, "base_profit_per_hour": 90, "scaling_factor": 1.15},
    {"id": "tractor", "name": "🚜 Tractor", "category": "equipment",
     "base_cost": 5_000, "base_profit_per_hour": 500, "scaling_factor": 1.2},
    {"id": "chip_factory", "name": "🏭 Chip Factory", "category": "industry",
     "base_cost": 25_000, "base_profit_per_hour": 2_800, "scaling_factor": 1.25},
]


# ---------------------------------------------------------------------------
# Seeder
# ---------------------------------------------------------------------------
def _seed_missions(session: Session) -> int:
    existing = set(session.scalars(select(Mission.title)).all())
    count = 0
    for data in DEFAULT_MISSIONS:
        if data["title"] in existing:
            continue
        session.add(Mission(**data))
        count += 1
    return count


def _seed_achievements(session: Session) -> int:
    existing = set(session.scalars(select(Achievement.key)).all())
    count = 0
    for data in DEFAULT_ACHIEVEMENTS:
        if data["key"] in existing:
            continue
        session.add(Achievement(**data))
        count += 1
    return count


def _seed_upgrades(session: Session) -> int:
    count = 0
    for data in DEFAULT_UPGRADES:
        if session.get(Upgrade, str(data["name"])) is None:
            session.add(Upgrade(**{**data, "name": str(data["name"])}))
            count += 1
    return count


def _seed_shop_items(session: Session) -> int:
    count = 0
    for data in DEFAULT_SHOP_ITEMS:
        if session.get(ShopItem, data["id"]) is None:
            session.add(ShopItem(**data))
            count += 1
    return count


def seed_catalog(engine: Engine) -> dict[str, int]:
    """Insert default catalog rows that don't yet exist.

    Returns a mapping of catalog name → rows inserted.
    """
    from spudverse.database.engine import get_session

    with get_session(engine) as session:
        inserted = {
            "missions": _seed_missions(session),
            "achievements": _seed_achievements(session),
            "upgrades": _seed_upgrades(session),
            "shop_items": _seed_shop_items(session),
        }

    if any(inserted.values()):
        logger.info(
            "Seeded catalog: %d missions, %d achievements, %d upgrades, %d shop items.",
            inserted["missions"], inserted["achievements"],
            inserted["upgrades"], inserted["shop_items"],
        )
    return inserted
