"""
passport.services.milestones — Milestone Projection
====================================================

Turns the catalog plus one user's ledger counts into a sequence of
milestones: one per level, then one per badge.  Pure and read-only; the
same inputs always produce the same milestones in the same order.
"""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Iterator, Sequence
from dataclasses import asdict, dataclass, field

from passport.engine.catalog import BadgeDef
from passport.engine.criteria import LedgerSnapshot, best_progress
from passport.engine.levels import LevelDef, level_progress, qualifying_levels


@dataclass(frozen=True, slots=True)
class Milestone:
    id: str
    title: str
    description: str | None
    progress: int
    target: int
    is_completed: bool
    category: str
    instructions: tuple[str, ...] = field(default=())
    level_required: int | None = None
    badge_name: str | None = None

    def as_dict(self) -> dict:
        data = asdict(self)
        return {
            "id": data["id"],
            "title": data["title"],
            "description": data["description"],
            "progress": data["progress"],
            "target": data["target"],
            "isCompleted": data["is_completed"],
            "category": data["category"],
            "instructions": list(data["instructions"]),
            "levelRequired": data["level_required"],
            "badgeName": data["badge_name"],
        }


def badge_slug(name: str) -> str:
    """``"🌍 Primera Reseña"`` → ``"primera-resena"``."""
    ascii_name = unicodedata.normalize("NFKD", name).encode("ascii", "ignore").decode()
    slug = re.sub(r"\s+", "-", ascii_name.strip().lower())
    return re.sub(r"[^\w-]", "", slug, flags=re.ASCII).strip("-")


def project_milestones(
    levels: Sequence[LevelDef],
    badges: Sequence[BadgeDef],
    snap: LedgerSnapshot,
    earned_badges: frozenset[str],
) -> Iterator[Milestone]:
    """Yield level milestones (ascending) then badge milestones (catalog order)."""
    qualified = set(qualifying_levels(levels, snap))

    for level in sorted(levels, key=lambda lv: lv.level_number):
        progress, target = level_progress(level, levels, snap)
        done = level.level_number in qualified
        yield Milestone(
            id=f"level-{level.level_number}",
            title=level.name,
            description=level.description,
            progress=target if done else min(progress, target),
            target=target,
            is_completed=done,
            category="level",
            instructions=level.instructions,
            level_required=level.level_number,
        )

    for badge in badges:
        progress, target = best_progress(badge.criteria, snap)
        done = badge.name in earned_badges
        yield Milestone(
            id=f"badge-{badge_slug(badge.name)}",
            title=badge.name,
            description=badge.description,
            progress=target if done else min(progress, target),
            target=target,
            is_completed=done,
            category="badge",
            instructions=badge.instructions,
            badge_name=badge.name,
        )
