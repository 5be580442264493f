"""Create progression tables

Revision ID: 4c2e7a91b0d3
Revises:
Create Date: 2026-10-19 09:12:04.118530

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '4c2e7a91b0d3'
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create users, the action ledger, the catalog and per-user state."""

    # --- users (identity projection) ---
    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger, primary_key=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("display_name", sa.String(100), nullable=False, server_default=""),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )

    # --- action_records (append-only ledger) ---
    op.create_table(
        "action_records",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.BigInteger,
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("action_type", sa.String(50), nullable=False),
        sa.Column("points_awarded", sa.Integer, nullable=False, server_default="0"),
        sa.Column("metadata", postgresql.JSONB, nullable=True),
        sa.Column(
            "occurred_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "ix_action_records_user_type", "action_records", ["user_id", "action_type"],
    )
    op.create_index("ix_action_records_occurred_at", "action_records", ["occurred_at"])

    # --- levels (catalog) ---
    op.create_table(
        "levels",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("level_number", sa.Integer, nullable=False, unique=True),
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("min_points", sa.Integer, nullable=False, server_default="0"),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("rewards", postgresql.JSONB, nullable=True),
        sa.Column("instructions", postgresql.JSONB, nullable=True),
        sa.Column("gate_level", sa.Integer, nullable=True),
        sa.Column("requirements", postgresql.JSONB, nullable=True),
        sa.Column("catalog_version", sa.String(20), nullable=False, server_default="1"),
    )

    # --- badges (catalog) ---
    op.create_table(
        "badges",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(50), nullable=False, unique=True),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("criteria", postgresql.JSONB, nullable=True),
        sa.Column("icon_url", sa.String(255), nullable=True),
        sa.Column("instructions", postgresql.JSONB, nullable=True),
        sa.Column("sort_order", sa.Integer, nullable=True, server_default="0"),
        sa.Column("catalog_version", sa.String(20), nullable=False, server_default="1"),
    )

    # --- progression_state (cached points / level) ---
    op.create_table(
        "progression_state",
        sa.Column(
            "user_id", sa.BigInteger,
            sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("points", sa.Integer, nullable=False, server_default="0"),
        sa.Column(
            "level", sa.Integer, sa.ForeignKey("levels.level_number"),
            nullable=False, server_default="1",
        ),
        sa.Column("level_name", sa.String(50), nullable=False, server_default=""),
        sa.Column("last_activity_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_progression_state_points_desc", "progression_state", ["points"])

    # --- user_badges (earned, permanent) ---
    op.create_table(
        "user_badges",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.BigInteger,
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("badge_name", sa.String(50), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column(
            "earned_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint("user_id", "badge_name", name="uq_user_badges_user_name"),
    )


def downgrade() -> None:
    op.drop_table("user_badges")
    op.drop_index("ix_progression_state_points_desc", table_name="progression_state")
    op.drop_table("progression_state")
    op.drop_table("badges")
    op.drop_table("levels")
    op.drop_index("ix_action_records_occurred_at", table_name="action_records")
    op.drop_index("ix_action_records_user_type", table_name="action_records")
    op.drop_table("action_records")
    op.drop_table("users")
