"""Widen accounts.sph to BIGINT

Revision ID: 8c3e6f2a41b7
Revises: 5a1c0e7b9d24
Create Date: 2026-10-20 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "8c3e6f2a41b7"
down_revision: str | Sequence[str] | None = "5a1c0e7b9d24"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Geometric per-unit profits summed over a large holding overflow INTEGER."""
    op.alter_column(
        "accounts", "sph",
        existing_type=sa.Integer(),
        type_=sa.BigInteger(),
        existing_nullable=False,
        existing_server_default="0",
    )


def downgrade() -> None:
    op.alter_column(
        "accounts", "sph",
        existing_type=sa.BigInteger(),
        type_=sa.Integer(),
        existing_nullable=False,
        existing_server_default="0",
    )
