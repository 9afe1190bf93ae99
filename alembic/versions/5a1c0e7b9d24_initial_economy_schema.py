"""Initial economy schema: accounts, referrals, missions, achievements, upgrades, shop

Revision ID: 5a1c0e7b9d24
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "5a1c0e7b9d24"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(),
    )


def upgrade() -> None:
    """Create every table; catalog rows are seeded by the application."""
    op.create_table(
        "accounts",
        sa.Column("user_id", sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column("username", sa.String(64)),
        sa.Column("first_name", sa.String(128)),
        sa.Column("last_name", sa.String(128)),
        sa.Column("balance", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("total_farmed", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("level", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("per_tap", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("energy", sa.Integer(), nullable=False, server_default="100"),
        sa.Column("max_energy", sa.Integer(), nullable=False, server_default="100"),
        sa.Column("energy_regen_rate", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("last_energy_update", sa.BigInteger(), nullable=False),
        sa.Column("last_tap_time", sa.BigInteger()),
        sa.Column(
            "referrer_id", sa.BigInteger(),
            sa.ForeignKey("accounts.user_id", ondelete="SET NULL"),
        ),
        sa.Column("sph", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_passive_sync", sa.BigInteger(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("balance >= 0", name="ck_accounts_balance_nonneg"),
        sa.CheckConstraint("energy >= 0", name="ck_accounts_energy_nonneg"),
        sa.CheckConstraint("energy <= max_energy", name="ck_accounts_energy_cap"),
        sa.CheckConstraint("level >= 1", name="ck_accounts_level_min"),
        sa.CheckConstraint("per_tap >= 1", name="ck_accounts_per_tap_min"),
        sa.CheckConstraint("energy_regen_rate >= 1", name="ck_accounts_regen_min"),
        sa.CheckConstraint(
            "referrer_id IS NULL OR referrer_id <> user_id",
            name="ck_accounts_no_self_referral",
        ),
    )
    op.create_index("ix_accounts_balance_desc", "accounts", ["balance"])
    op.create_index("ix_accounts_referrer", "accounts", ["referrer_id"])

    op.create_table(
        "referrals",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "referrer_id", sa.BigInteger(),
            sa.ForeignKey("accounts.user_id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "referred_id", sa.BigInteger(),
            sa.ForeignKey("accounts.user_id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("bonus_claimed", sa.Boolean(), server_default=sa.false()),
        _created_at(),
        sa.UniqueConstraint("referred_id", name="uq_referrals_referred"),
    )
    op.create_index("ix_referrals_referrer", "referrals", ["referrer_id"])

    op.create_table(
        "missions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("reward", sa.Integer(), server_default="0"),
        sa.Column("type", sa.String(8), nullable=False),
        sa.Column("requirements", postgresql.JSONB()),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("sort_order", sa.Integer(), server_default="0"),
    )

    op.create_table(
        "user_missions",
        sa.Column(
            "user_id", sa.BigInteger(),
            sa.ForeignKey("accounts.user_id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column(
            "mission_id", sa.Integer(),
            sa.ForeignKey("missions.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("status", sa.String(20), server_default="pending"),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column("claimed_at", sa.DateTime(timezone=True)),
    )

    op.create_table(
        "achievements",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("key", sa.String(64), nullable=False, unique=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("type", sa.String(9), nullable=False),
        sa.Column("threshold", sa.BigInteger(), nullable=False),
        sa.Column("reward", sa.Integer(), server_default="0"),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
    )

    op.create_table(
        "user_achievements",
        sa.Column(
            "user_id", sa.BigInteger(),
            sa.ForeignKey("accounts.user_id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column(
            "achievement_id", sa.Integer(),
            sa.ForeignKey("achievements.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("unlocked_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "upgrades",
        sa.Column("name", sa.String(32), primary_key=True),
        sa.Column("description", sa.String(200), nullable=False),
        sa.Column("max_level", sa.Integer(), nullable=False),
        sa.Column("base_cost", sa.Integer(), nullable=False),
        sa.Column("cost_multiplier", sa.Float(), server_default="2.0"),
        sa.Column("stat_increment", sa.Integer(), server_default="1"),
    )

    op.create_table(
        "user_upgrades",
        sa.Column(
            "user_id", sa.BigInteger(),
            sa.ForeignKey("accounts.user_id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column(
            "upgrade_name", sa.String(32),
            sa.ForeignKey("upgrades.name", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("level", sa.Integer(), server_default="0"),
    )

    op.create_table(
        "shop_items",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("category", sa.String(50), nullable=False),
        sa.Column("base_cost", sa.Integer(), nullable=False),
        sa.Column("base_profit_per_hour", sa.Integer(), nullable=False),
        sa.Column("scaling_factor", sa.Float(), server_default="1.15"),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
    )

    op.create_table(
        "user_shop_items",
        sa.Column(
            "user_id", sa.BigInteger(),
            sa.ForeignKey("accounts.user_id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column(
            "item_id", sa.String(64),
            sa.ForeignKey("shop_items.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("count", sa.Integer(), server_default="0"),
    )

    op.create_table(
        "rate_limit_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("timestamp_ms", sa.BigInteger(), nullable=False),
    )
    op.create_index(
        "ix_rate_limit_events_user_time", "rate_limit_events", ["user_id", "timestamp_ms"],
    )


def downgrade() -> None:
    op.drop_index("ix_rate_limit_events_user_time", table_name="rate_limit_events")
    op.drop_table("rate_limit_events")
    op.drop_table("user_shop_items")
    op.drop_table("shop_items")
    op.drop_table("user_upgrades")
    op.drop_table("upgrades")
    op.drop_table("user_achievements")
    op.drop_table("achievements")
    op.drop_table("user_missions")
    op.drop_table("missions")
    op.drop_index("ix_referrals_referrer", table_name="referrals")
    op.drop_table("referrals")
    op.drop_index("ix_accounts_referrer", table_name="accounts")
    op.drop_index("ix_accounts_balance_desc", table_name="accounts")
    op.drop_table("accounts")
