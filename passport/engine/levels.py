"""
passport.engine.levels — Level Qualification
=============================================

Levels are gated action-count rules: a level qualifies when its gate level
qualifies (if it has one) AND every one of its own action-count thresholds
is met.  The user's level is the highest-numbered qualifying level, and
level 1 when none qualifies.

Points never decide a level here; ``min_points`` is only used for the
progress bar in :func:`progress_to_next`.

Pure calculation — no database I/O.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from passport.engine.criteria import ActionCount, LedgerSnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LevelDef:
    """Immutable catalog view of one level."""

    level_number: int
    name: str
    min_points: int = 0
    description: str | None = None
    gate_level: int | None = None
    requirements: tuple[ActionCount, ...] = ()
    rewards: dict = field(default_factory=dict)
    instructions: tuple[str, ...] = ()


def _qualifies(
    level: LevelDef,
    snap: LedgerSnapshot,
    by_number: dict[int, LevelDef],
    memo: dict[int, bool],
) -> bool:
    if level.level_number in memo:
        return memo[level.level_number]

    memo[level.level_number] = False  # guards against a gate cycle
    ok = True
    if level.gate_level is not None:
        gate = by_number.get(level.gate_level)
        ok = gate is not None and _qualifies(gate, snap, by_number, memo)
    if ok:
        ok = all(snap.count(req.action_type) >= req.count for req in level.requirements)
    memo[level.level_number] = ok
    return ok


def qualifying_levels(levels: Sequence[LevelDef], snap: LedgerSnapshot) -> list[int]:
    """Level numbers whose predicate holds, ascending."""
    by_number = {lvl.level_number: lvl for lvl in levels}
    memo: dict[int, bool] = {}
    return [
        lvl.level_number
        for lvl in sorted(levels, key=lambda lv: lv.level_number)
        if _qualifies(lvl, snap, by_number, memo)
    ]


def compute_level(levels: Sequence[LevelDef], snap: LedgerSnapshot) -> LevelDef:
    """Return the highest level whose predicate holds (level 1 if none).

    Raises ``LookupError`` when the catalog has no levels at all.
    """
    if not levels:
        raise LookupError("No levels configured. Seed the catalog first.")

    by_number = {lvl.level_number: lvl for lvl in levels}
    qualified = qualifying_levels(levels, snap)
    if qualified:
        return by_number[qualified[-1]]

    lowest = min(levels, key=lambda lv: lv.level_number)
    return by_number.get(1, lowest)


def level_progress(
    level: LevelDef,
    levels: Sequence[LevelDef],
    snap: LedgerSnapshot,
) -> tuple[int, int]:
    """``(progress, target)`` for the first unmet threshold on the path to *level*.

    Walks the gate chain from the bottom so the reported threshold is the
    next thing the user actually has to do.  A fully met level reports its
    last threshold as complete.
    """
    by_number = {lvl.level_number: lvl for lvl in levels}
    chain: list[LevelDef] = []
    seen: set[int] = set()
    current: LevelDef | None = level
    while current is not None and current.level_number not in seen:
        seen.add(current.level_number)
        chain.append(current)
        current = by_number.get(current.gate_level) if current.gate_level else None

    last: tuple[int, int] = (1, 1)
    for step in reversed(chain):
        for req in step.requirements:
            have = snap.count(req.action_type)
            if have < req.count:
                return have, req.count
            last = (req.count, req.count)
    return last


def progress_to_next(
    points: int,
    current: LevelDef | None,
    next_level: LevelDef | None,
) -> int:
    """Display-only 0–100 progress between the current and next ``min_points``."""
    if next_level is None:
        return 100
    if current is None:
        return 0
    level_range = next_level.min_points - current.min_points
    if level_range <= 0:
        return 100
    pct = round((points - current.min_points) / level_range * 100)
    return min(100, max(0, pct))
