"""
passport.engine.criteria — Tagged Badge Criteria
=================================================

A badge criterion is one of four variants::

    LevelThreshold(level)                       level >= N
    ActionCount(action_type, count)             ledger count of a type >= N
    PerEntityVotes(count, entity_key)           votes on one entity >= N
    Named(name)                                 a hand-written special rule

Criteria are parsed once from the catalog JSON into frozen dataclasses and
evaluated with an exhaustive ``match``.  This module is pure calculation:
callers build a :class:`LedgerSnapshot` from the database first.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import assert_never

from passport.database.models import ActionType

logger = logging.getLogger(__name__)


class NamedCriterion(enum.StrEnum):
    """Special rules that don't fit the generic threshold shapes."""
    FIRST_REVIEW = "first_review"      # exactly one review_created so far
    HAS_MEDIA = "has_media"            # at least one media_upload
    POPULAR = "popular"                # at least 5 vote_received in total


POPULAR_VOTE_THRESHOLD = 5


# ---------------------------------------------------------------------------
# Variants
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class LevelThreshold:
    level: int


@dataclass(frozen=True, slots=True)
class ActionCount:
    action_type: ActionType
    count: int


@dataclass(frozen=True, slots=True)
class PerEntityVotes:
    count: int
    entity_key: str = "review_id"


@dataclass(frozen=True, slots=True)
class Named:
    name: NamedCriterion


Criterion = LevelThreshold | ActionCount | PerEntityVotes | Named


# ---------------------------------------------------------------------------
# Evaluation context
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class LedgerSnapshot:
    """What the criteria can see about one user.

    Parameters
    ----------
    level : The user's level after this action's level re-evaluation.
    action_counts : action_type string → number of ledger records.
    entity_votes : entity key (e.g. ``"review_id"``) → vote count for the
        entity in question.  During an award this is the entity named in
        the action metadata; for milestone projection it is the user's
        best entity so far.
    """

    level: int = 1
    action_counts: Mapping[str, int] = field(default_factory=dict)
    entity_votes: Mapping[str, int] = field(default_factory=dict)

    def count(self, action_type: ActionType | str) -> int:
        return self.action_counts.get(str(action_type), 0)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------
def parse_criterion(raw: Mapping) -> Criterion:
    """Turn one catalog criterion dict into a variant.

    Raises ``ValueError`` for an unknown ``kind`` or a bad payload, so a
    broken catalog fails at load time rather than at award time.
    """
    kind = raw.get("kind")
    try:
        if kind == "level":
            return LevelThreshold(level=int(raw["level"]))
        if kind == "action_count":
            return ActionCount(
                action_type=ActionType(raw["action_type"]),
                count=int(raw["count"]),
            )
        if kind == "entity_votes":
            return PerEntityVotes(
                count=int(raw["count"]),
                entity_key=str(raw.get("entity_key", "review_id")),
            )
        if kind == "named":
            return Named(name=NamedCriterion(raw["name"]))
    except (KeyError, TypeError) as exc:
        raise ValueError(f"Malformed {kind!r} criterion: {dict(raw)!r}") from exc
    raise ValueError(f"Unknown criterion kind: {kind!r}")


def parse_criteria(raw_list: Iterable[Mapping] | None) -> tuple[Criterion, ...]:
    return tuple(parse_criterion(raw) for raw in raw_list or ())


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------
def is_satisfied(criterion: Criterion, snap: LedgerSnapshot) -> bool:
    match criterion:
        case LevelThreshold(level=level):
            return snap.level >= level
        case ActionCount(action_type=action_type, count=count):
            return snap.count(action_type) >= count
        case PerEntityVotes(count=count, entity_key=key):
            return snap.entity_votes.get(key, 0) >= count
        case Named(name=NamedCriterion.FIRST_REVIEW):
            return snap.count(ActionType.REVIEW_CREATED) == 1
        case Named(name=NamedCriterion.HAS_MEDIA):
            return snap.count(ActionType.MEDIA_UPLOAD) > 0
        case Named(name=NamedCriterion.POPULAR):
            return snap.count(ActionType.VOTE_RECEIVED) >= POPULAR_VOTE_THRESHOLD
        case _:
            assert_never(criterion)


def any_satisfied(criteria: Iterable[Criterion], snap: LedgerSnapshot) -> bool:
    """First match wins; an empty criteria list never matches."""
    return any(is_satisfied(c, snap) for c in criteria)


def criterion_progress(criterion: Criterion, snap: LedgerSnapshot) -> tuple[int, int]:
    """Return ``(progress, target)`` toward *criterion*, progress capped at target."""
    match criterion:
        case LevelThreshold(level=level):
            return min(snap.level, level), level
        case ActionCount(action_type=action_type, count=count):
            return min(snap.count(action_type), count), count
        case PerEntityVotes(count=count, entity_key=key):
            return min(snap.entity_votes.get(key, 0), count), count
        case Named(name=NamedCriterion.FIRST_REVIEW):
            return min(snap.count(ActionType.REVIEW_CREATED), 1), 1
        case Named(name=NamedCriterion.HAS_MEDIA):
            return min(snap.count(ActionType.MEDIA_UPLOAD), 1), 1
        case Named(name=NamedCriterion.POPULAR):
            return (
                min(snap.count(ActionType.VOTE_RECEIVED), POPULAR_VOTE_THRESHOLD),
                POPULAR_VOTE_THRESHOLD,
            )
        case _:
            assert_never(criterion)


def best_progress(criteria: Iterable[Criterion], snap: LedgerSnapshot) -> tuple[int, int]:
    """Progress toward the closest criterion (highest completed fraction)."""
    best: tuple[int, int] | None = None
    for c in criteria:
        progress, target = criterion_progress(c, snap)
        if best is None or progress * best[1] > best[0] * target:
            best = (progress, target)
    return best or (0, 1)
