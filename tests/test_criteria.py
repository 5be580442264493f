"""
tests/test_criteria.py — Unit Tests for Badge Criteria
=======================================================

Tests parsing and evaluation of the tagged criteria (no I/O, no database).
"""

from __future__ import annotations

import pytest

from passport.database.models import ActionType
from passport.engine.criteria import (
    ActionCount,
    LedgerSnapshot,
    LevelThreshold,
    Named,
    NamedCriterion,
    PerEntityVotes,
    any_satisfied,
    best_progress,
    criterion_progress,
    is_satisfied,
    parse_criteria,
    parse_criterion,
)


def _snap(level: int = 1, entity_votes: dict | None = None, **counts: int) -> LedgerSnapshot:
    return LedgerSnapshot(level=level, action_counts=counts, entity_votes=entity_votes or {})


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------
class TestParseCriterion:
    def test_level(self):
        assert parse_criterion({"kind": "level", "level": 3}) == LevelThreshold(level=3)

    def test_action_count(self):
        crit = parse_criterion({"kind": "action_count", "action_type": "place_added", "count": "5"})
        assert crit == ActionCount(action_type=ActionType.PLACE_ADDED, count=5)

    def test_entity_votes_defaults_to_review_id(self):
        assert parse_criterion({"kind": "entity_votes", "count": 10}) == PerEntityVotes(count=10)

    def test_named(self):
        assert parse_criterion({"kind": "named", "name": "popular"}) == Named(NamedCriterion.POPULAR)

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValueError, match="Unknown criterion kind"):
            parse_criterion({"kind": "streak", "days": 7})

    def test_missing_field_rejected(self):
        with pytest.raises(ValueError, match="Malformed"):
            parse_criterion({"kind": "level"})

    def test_unknown_action_type_rejected(self):
        with pytest.raises(ValueError):
            parse_criterion({"kind": "action_count", "action_type": "like_given", "count": 1})

    def test_parse_criteria_handles_none(self):
        assert parse_criteria(None) == ()


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------
class TestIsSatisfied:
    def test_level_threshold(self):
        assert is_satisfied(LevelThreshold(3), _snap(level=3))
        assert not is_satisfied(LevelThreshold(3), _snap(level=2))

    def test_action_count(self):
        crit = ActionCount(ActionType.REVIEW_CREATED, 10)
        assert is_satisfied(crit, _snap(review_created=10))
        assert not is_satisfied(crit, _snap(review_created=9))

    def test_per_entity_votes_uses_entity_key(self):
        crit = PerEntityVotes(count=10, entity_key="review_id")
        assert is_satisfied(crit, _snap(entity_votes={"review_id": 10}))
        assert not is_satisfied(crit, _snap(entity_votes={"place_id": 10}))

    def test_first_review_is_exactly_one(self):
        crit = Named(NamedCriterion.FIRST_REVIEW)
        assert not is_satisfied(crit, _snap())
        assert is_satisfied(crit, _snap(review_created=1))
        assert not is_satisfied(crit, _snap(review_created=2))

    def test_has_media(self):
        crit = Named(NamedCriterion.HAS_MEDIA)
        assert is_satisfied(crit, _snap(media_upload=1))
        assert not is_satisfied(crit, _snap(review_created=4))

    def test_popular_needs_five_votes(self):
        crit = Named(NamedCriterion.POPULAR)
        assert not is_satisfied(crit, _snap(vote_received=4))
        assert is_satisfied(crit, _snap(vote_received=5))

    def test_any_satisfied(self):
        criteria = (LevelThreshold(4), ActionCount(ActionType.PLACE_ADDED, 1))
        assert any_satisfied(criteria, _snap(place_added=1))
        assert not any_satisfied(criteria, _snap())

    def test_empty_criteria_never_match(self):
        assert not any_satisfied((), _snap(level=4, review_created=100))


class TestProgress:
    def test_progress_is_capped_at_target(self):
        crit = ActionCount(ActionType.VOTE_RECEIVED, 10)
        assert criterion_progress(crit, _snap(vote_received=6)) == (6, 10)
        assert criterion_progress(crit, _snap(vote_received=60)) == (10, 10)

    def test_best_progress_picks_closest_fraction(self):
        criteria = (
            ActionCount(ActionType.REVIEW_CREATED, 10),   # 2/10
            ActionCount(ActionType.PLACE_ADDED, 5),       # 3/5
        )
        assert best_progress(criteria, _snap(review_created=2, place_added=3)) == (3, 5)

    def test_best_progress_of_nothing(self):
        assert best_progress((), _snap()) == (0, 1)
