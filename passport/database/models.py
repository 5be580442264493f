"""
passport.database.models — SQLAlchemy 2.0 Data Models
======================================================

Tables:
- users              — Identity-store projection (existence + email only)
- action_records     — Append-only ledger of point-earning actions
- levels             — Catalog: ordered tiers with gated action-count rules
- badges             — Catalog: named achievements with tagged criteria
- progression_state  — Denormalized per-user points / level snapshot
- user_badges        — Earned badges (ordered, unique per user)
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    DateTime,
    ForeignKey,
    Index,
    Integer,
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
    """Shared base for all Passport ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class ActionType(enum.StrEnum):
    """The closed set of actions that can be recorded in the ledger."""
    REVIEW_CREATED = "review_created"
    VOTE_RECEIVED = "vote_received"
    PROFILE_COMPLETED = "profile_completed"
    COMMENT_POSTED = "comment_posted"
    MEDIA_UPLOAD = "media_upload"
    PLACE_ADDED = "place_added"
    EXPENSE_CREATED = "expense_created"


# ---------------------------------------------------------------------------
# Users — read-only projection of the identity store
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    progression: Mapped[ProgressionState | None] = relationship(
        back_populates="user", uselist=False, cascade="all, delete-orphan"
    )
    badges: Mapped[list[UserBadge]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
        order_by="UserBadge.id",
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} name={self.display_name!r}>"


# ---------------------------------------------------------------------------
# ActionRecord — append-only ledger, source of truth for points
# ---------------------------------------------------------------------------
class ActionRecord(Base):
    __tablename__ = "action_records"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    points_awarded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSONB, nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_action_records_user_type", "user_id", "action_type"),
        Index("ix_action_records_occurred_at", "occurred_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<ActionRecord id={self.id} user={self.user_id} "
            f"type={self.action_type} pts={self.points_awarded}>"
        )


# ---------------------------------------------------------------------------
# Level — catalog tier with a gated action-count rule
# ---------------------------------------------------------------------------
class Level(Base):
    """One tier of the level ladder.

    Qualification is ``gate_level`` holding (if set) AND every entry of
    ``requirements`` (``[{"action_type": ..., "count": N}, ...]``) being met
    by the user's ledger.  ``min_points`` only drives the progress bar.
    """
    __tablename__ = "levels"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    level_number: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    min_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    rewards: Mapped[dict | None] = mapped_column(JSONB, default=dict)
    instructions: Mapped[list | None] = mapped_column(JSONB, default=list)
    gate_level: Mapped[int | None] = mapped_column(Integer, nullable=True)
    requirements: Mapped[list | None] = mapped_column(JSONB, default=list)
    catalog_version: Mapped[str] = mapped_column(String(20), nullable=False, default="1")

    def __repr__(self) -> str:
        return f"<Level {self.level_number} name={self.name!r}>"


# ---------------------------------------------------------------------------
# Badge — catalog achievement with tagged criteria
# ---------------------------------------------------------------------------
class Badge(Base):
    __tablename__ = "badges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    # List of {"kind": ..., ...}; any one satisfied criterion earns the badge
    criteria: Mapped[list | None] = mapped_column(JSONB, default=list)
    icon_url: Mapped[str | None] = mapped_column(String(255), nullable=True)
    instructions: Mapped[list | None] = mapped_column(JSONB, default=list)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)
    catalog_version: Mapped[str] = mapped_column(String(20), nullable=False, default="1")

    def __repr__(self) -> str:
        return f"<Badge id={self.id} name={self.name!r}>"


# ---------------------------------------------------------------------------
# ProgressionState — denormalized per-user snapshot
# ---------------------------------------------------------------------------
class ProgressionState(Base):
    __tablename__ = "progression_state"

    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    level: Mapped[int] = mapped_column(
        Integer, ForeignKey("levels.level_number"), nullable=False, default=1
    )
    level_name: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    last_activity_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    user: Mapped[User] = relationship(back_populates="progression")

    __table_args__ = (
        Index("ix_progression_state_points_desc", "points"),
    )

    def __repr__(self) -> str:
        return f"<ProgressionState user={self.user_id} pts={self.points} lvl={self.level}>"


# ---------------------------------------------------------------------------
# UserBadge — earned badges, permanent once written
# ---------------------------------------------------------------------------
class UserBadge(Base):
    __tablename__ = "user_badges"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    badge_name: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    earned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    user: Mapped[User] = relationship(back_populates="badges")

    __table_args__ = (
        UniqueConstraint("user_id", "badge_name", name="uq_user_badges_user_name"),
    )

    def __repr__(self) -> str:
        return f"<UserBadge user={self.user_id} badge={self.badge_name!r}>"
