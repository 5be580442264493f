"""
passport.engine.catalog — In-Memory Catalog Store
==================================================

Levels and badges are static between deployments, so they are read from
the database once at startup and served from memory as frozen dataclasses.
The store holds no per-user state.

Usage::

    catalog = CatalogStore(engine)
    catalog.load_all()

    levels = catalog.levels()            # ascending by level_number
    badge = catalog.badge("⭐ Popular")
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.orm import Session

from passport.database.models import Badge, Level
from passport.engine.criteria import ActionCount, Criterion, parse_criteria, parse_criterion
from passport.engine.levels import LevelDef

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class BadgeDef:
    """Immutable catalog view of one badge."""

    name: str
    description: str | None = None
    criteria: tuple[Criterion, ...] = ()
    icon_url: str | None = None
    instructions: tuple[str, ...] = ()
    sort_order: int = 0
    raw_criteria: tuple[dict, ...] = field(default=(), compare=False)


def level_from_row(row: Level) -> LevelDef:
    requirements = tuple(
        parse_criterion({"kind": "action_count", **req})
        for req in (row.requirements or [])
    )
    return LevelDef(
        level_number=row.level_number,
        name=row.name,
        min_points=row.min_points,
        description=row.description,
        gate_level=row.gate_level,
        requirements=tuple(r for r in requirements if isinstance(r, ActionCount)),
        rewards=dict(row.rewards or {}),
        instructions=tuple(row.instructions or ()),
    )


def badge_from_row(row: Badge) -> BadgeDef:
    return BadgeDef(
        name=row.name,
        description=row.description,
        criteria=parse_criteria(row.criteria),
        icon_url=row.icon_url,
        instructions=tuple(row.instructions or ()),
        sort_order=row.sort_order,
        raw_criteria=tuple(dict(c) for c in (row.criteria or [])),
    )


class CatalogStore:
    """Thread-safe, read-mostly cache of the level and badge catalog."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._lock = threading.Lock()
        self._levels: tuple[LevelDef, ...] = ()
        self._badges: tuple[BadgeDef, ...] = ()
        self._loaded = False

    # -------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------
    def load_all(self) -> None:
        """(Re)load levels and badges from the database."""
        with Session(self._engine) as session:
            level_rows = session.scalars(select(Level).order_by(Level.level_number)).all()
            badge_rows = session.scalars(
                select(Badge).order_by(Badge.sort_order, Badge.id)
            ).all()
            levels = tuple(level_from_row(r) for r in level_rows)
            badges = tuple(badge_from_row(r) for r in badge_rows)

        with self._lock:
            self._levels = levels
            self._badges = badges
            self._loaded = True

        logger.info("CatalogStore loaded: %d levels, %d badges", len(levels), len(badges))

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load_all()

    # -------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------
    def levels(self) -> tuple[LevelDef, ...]:
        self._ensure_loaded()
        with self._lock:
            return self._levels

    def badges(self) -> tuple[BadgeDef, ...]:
        self._ensure_loaded()
        with self._lock:
            return self._badges

    def level(self, level_number: int) -> LevelDef | None:
        for lvl in self.levels():
            if lvl.level_number == level_number:
                return lvl
        return None

    def badge(self, name: str) -> BadgeDef | None:
        for b in self.badges():
            if b.name == name:
                return b
        return None
