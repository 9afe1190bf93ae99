"""
spudverse.database.models — SQLAlchemy 2.0 Data Models
=======================================================

Tables:
- accounts           — One row per Telegram user (Telegram id PK)
- referrals          — Referrer → referred edges (one per referred user)
- missions           — Mission catalog
- user_missions      — Per-user mission progress (forward-only status)
- achievements       — Achievement catalog with typed thresholds
- user_achievements  — Unlocked achievements (row existence = unlocked)
- upgrades           — Upgrade catalog (per_tap, max_energy, regen rate)
- user_upgrades      — Per-user upgrade levels
- shop_items         — Passive-income item catalog
- user_shop_items    — Per-user owned item counts
- rate_limit_events  — Durable sliding-window state for mutation limits

Timestamps that drive economy math (energy, passive income, taps) are
integer epoch milliseconds, not ``DateTime`` — they are compared and
subtracted on every request and must survive every dialect unchanged.
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all SpudVerse ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class MissionType(enum.StrEnum):
    WELCOME = "welcome"
    SOCIAL = "social"
    REFERRAL = "referral"
    DAILY = "daily"


class MissionStatus(enum.StrEnum):
    """Forward-only: pending → completed → claimed."""
    PENDING = "pending"
    COMPLETED = "completed"
    CLAIMED = "claimed"


class AchievementType(enum.StrEnum):
    """Which account statistic an achievement threshold is compared to."""
    BALANCE = "balance"
    REFERRALS = "referrals"
    MISSIONS = "missions"
    RANK = "rank"


class UpgradeName(enum.StrEnum):
    PER_TAP = "per_tap"
    MAX_ENERGY = "max_energy"
    ENERGY_REGEN_RATE = "energy_regen_rate"


# ---------------------------------------------------------------------------
# Accounts — one row per Telegram user
# ---------------------------------------------------------------------------
class Account(Base):
    __tablename__ = "accounts"

    user_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    username: Mapped[str | None] = mapped_column(String(64), default=None)
    first_name: Mapped[str | None] = mapped_column(String(128), default=None)
    last_name: Mapped[str | None] = mapped_column(String(128), default=None)

    balance: Mapped[int] = mapped_column(BigInteger, default=0)
    total_farmed: Mapped[int] = mapped_column(BigInteger, default=0)
    level: Mapped[int] = mapped_column(Integer, default=1)
    per_tap: Mapped[int] = mapped_column(Integer, default=1)

    energy: Mapped[int] = mapped_column(Integer, default=100)
    max_energy: Mapped[int] = mapped_column(Integer, default=100)
    energy_regen_rate: Mapped[int] = mapped_column(Integer, default=1)
    last_energy_update: Mapped[int] = mapped_column(BigInteger, nullable=False)
    last_tap_time: Mapped[int | None] = mapped_column(BigInteger, default=None)

    referrer_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("accounts.user_id", ondelete="SET NULL"), default=None
    )

    sph: Mapped[int] = mapped_column(BigInteger, default=0)
    last_passive_sync: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # Optimistic concurrency counter — bumped on every UPDATE
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    missions: Mapped[list[UserMission]] = relationship(
        back_populates="account", cascade="all, delete-orphan"
    )
    achievements: Mapped[list[UserAchievement]] = relationship(
        back_populates="account", cascade="all, delete-orphan"
    )
    upgrades: Mapped[list[UserUpgrade]] = relationship(
        back_populates="account", cascade="all, delete-orphan"
    )
    owned_items: Mapped[list[UserShopItem]] = relationship(
        back_populates="account", cascade="all, delete-orphan"
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_accounts_balance_nonneg"),
        CheckConstraint("energy >= 0", name="ck_accounts_energy_nonneg"),
        CheckConstraint("energy <= max_energy", name="ck_accounts_energy_cap"),
        CheckConstraint("level >= 1", name="ck_accounts_level_min"),
        CheckConstraint("per_tap >= 1", name="ck_accounts_per_tap_min"),
        CheckConstraint("energy_regen_rate >= 1", name="ck_accounts_regen_min"),
        CheckConstraint(
            "referrer_id IS NULL OR referrer_id <> user_id",
            name="ck_accounts_no_self_referral",
        ),
        Index("ix_accounts_balance_desc", "balance"),
        Index("ix_accounts_referrer", "referrer_id"),
    )

    def __repr__(self) -> str:
        return f"<Account id={self.user_id} lvl={self.level} balance={self.balance}>"


# ---------------------------------------------------------------------------
# Referrals — one edge per referred account
# ---------------------------------------------------------------------------
class Referral(Base):
    __tablename__ = "referrals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    referrer_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("accounts.user_id", ondelete="CASCADE"), nullable=False
    )
    referred_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("accounts.user_id", ondelete="CASCADE"), nullable=False
    )
    bonus_claimed: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("referred_id", name="uq_referrals_referred"),
        Index("ix_referrals_referrer", "referrer_id"),
    )

    def __repr__(self) -> str:
        return f"<Referral {self.referrer_id} → {self.referred_id}>"


# ---------------------------------------------------------------------------
# Missions — catalog + per-user progress
# ---------------------------------------------------------------------------
class Mission(Base):
    """A one-time task with a claimable reward.

    ``requirements`` is an opaque descriptor, e.g.
    ``{"kind": "telegram_channel", "chat_id": "@spudverse_channel"}``.
    """
    __tablename__ = "missions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    reward: Mapped[int] = mapped_column(Integer, default=0)
    type: Mapped[str] = mapped_column(
        Enum(MissionType, name="mission_type_enum", native_enum=False,
             values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    requirements: Mapped[dict | None] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)

    def __repr__(self) -> str:
        return f"<Mission id={self.id} title={self.title!r}>"


class UserMission(Base):
    __tablename__ = "user_missions"

    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("accounts.user_id", ondelete="CASCADE"), primary_key=True
    )
    mission_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("missions.id", ondelete="CASCADE"), primary_key=True
    )
    status: Mapped[str] = mapped_column(String(20), default=MissionStatus.PENDING.value)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)

    account: Mapped[Account] = relationship(back_populates="missions")

    def __repr__(self) -> str:
        return f"<UserMission user={self.user_id} mission={self.mission_id} {self.status}>"


# ---------------------------------------------------------------------------
# Achievements — catalog + unlocks
# ---------------------------------------------------------------------------
class Achievement(Base):
    __tablename__ = "achievements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    type: Mapped[str] = mapped_column(
        Enum(AchievementType, name="achievement_type_enum", native_enum=False,
             values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    threshold: Mapped[int] = mapped_column(BigInteger, nullable=False)
    reward: Mapped[int] = mapped_column(Integer, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    def __repr__(self) -> str:
        return f"<Achievement id={self.id} key={self.key!r}>"


class UserAchievement(Base):
    """Existence of the row means the achievement is unlocked."""
    __tablename__ = "user_achievements"

    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("accounts.user_id", ondelete="CASCADE"), primary_key=True
    )
    achievement_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("achievements.id", ondelete="CASCADE"), primary_key=True
    )
    unlocked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    account: Mapped[Account] = relationship(back_populates="achievements")


# ---------------------------------------------------------------------------
# Upgrades — capped stat boosts bought with balance
# ---------------------------------------------------------------------------
class Upgrade(Base):
    __tablename__ = "upgrades"

    name: Mapped[str] = mapped_column(String(32), primary_key=True)
    description: Mapped[str] = mapped_column(String(200), nullable=False)
    max_level: Mapped[int] = mapped_column(Integer, nullable=False)
    base_cost: Mapped[int] = mapped_column(Integer, nullable=False)
    cost_multiplier: Mapped[float] = mapped_column(Float, default=2.0)
    stat_increment: Mapped[int] = mapped_column(Integer, default=1)

    def __repr__(self) -> str:
        return f"<Upgrade {self.name} max={self.max_level}>"


class UserUpgrade(Base):
    __tablename__ = "user_upgrades"

    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("accounts.user_id", ondelete="CASCADE"), primary_key=True
    )
    upgrade_name: Mapped[str] = mapped_column(
        String(32), ForeignKey("upgrades.name", ondelete="CASCADE"), primary_key=True
    )
    level: Mapped[int] = mapped_column(Integer, default=0)

    account: Mapped[Account] = relationship(back_populates="upgrades")


# ---------------------------------------------------------------------------
# Shop — passive income items with geometric pricing
# ---------------------------------------------------------------------------
class ShopItem(Base):
    __tablename__ = "shop_items"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    base_cost: Mapped[int] = mapped_column(Integer, nullable=False)
    base_profit_per_hour: Mapped[int] = mapped_column(Integer, nullable=False)
    scaling_factor: Mapped[float] = mapped_column(Float, default=1.15)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    def __repr__(self) -> str:
        return f"<ShopItem {self.id!r} cost={self.base_cost}>"


class UserShopItem(Base):
    __tablename__ = "user_shop_items"

    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("accounts.user_id", ondelete="CASCADE"), primary_key=True
    )
    item_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("shop_items.id", ondelete="CASCADE"), primary_key=True
    )
    count: Mapped[int] = mapped_column(Integer, default=0)

    account: Mapped[Account] = relationship(back_populates="owned_items")


# ---------------------------------------------------------------------------
# Rate limiting — durable per-user sliding window
# ---------------------------------------------------------------------------
class RateLimitEvent(Base):
    __tablename__ = "rate_limit_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    timestamp_ms: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __table_args__ = (
        Index("ix_rate_limit_events_user_time", "user_id", "timestamp_ms"),
    )
