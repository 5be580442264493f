"""
tests/test_levels.py — Unit Tests for Level Qualification
==========================================================

Uses a hand-built ladder with the same gated structure as the seed catalog.
"""

from __future__ import annotations

import pytest

from passport.database.models import ActionType
from passport.engine.criteria import ActionCount, LedgerSnapshot
from passport.engine.levels import (
    LevelDef,
    compute_level,
    level_progress,
    progress_to_next,
    qualifying_levels,
)

LADDER = (
    LevelDef(1, "Explorador", 0, requirements=(ActionCount(ActionType.PROFILE_COMPLETED, 1),)),
    LevelDef(2, "Viajero Activo", 35, gate_level=1,
             requirements=(ActionCount(ActionType.REVIEW_CREATED, 3),)),
    LevelDef(3, "Guía Experto", 45, gate_level=2,
             requirements=(ActionCount(ActionType.VOTE_RECEIVED, 10),)),
    LevelDef(4, "Embajador Viajero", 155, gate_level=2,
             requirements=(
                 ActionCount(ActionType.REVIEW_CREATED, 10),
                 ActionCount(ActionType.VOTE_RECEIVED, 50),
             )),
)


def _snap(**counts: int) -> LedgerSnapshot:
    return LedgerSnapshot(action_counts=counts)


class TestComputeLevel:
    def test_no_activity_defaults_to_level_one(self):
        assert compute_level(LADDER, _snap()).level_number == 1

    def test_gate_must_hold(self):
        # Three reviews but no completed profile: level 2's gate fails.
        assert qualifying_levels(LADDER, _snap(review_created=3)) == []
        assert compute_level(LADDER, _snap(review_created=3)).level_number == 1

    def test_reaches_level_two(self):
        snap = _snap(profile_completed=1, review_created=3)
        assert compute_level(LADDER, snap).name == "Viajero Activo"

    def test_highest_qualifying_level_wins(self):
        snap = _snap(profile_completed=1, review_created=10, vote_received=50)
        assert qualifying_levels(LADDER, snap) == [1, 2, 3, 4]
        assert compute_level(LADDER, snap).level_number == 4

    def test_level_four_does_not_need_level_three_gate(self):
        # Level 4 is gated on 2, so it can qualify alongside 3.
        snap = _snap(profile_completed=1, review_created=10, vote_received=50)
        assert 4 in qualifying_levels(LADDER, snap)

    def test_points_never_decide_level(self):
        assert compute_level(LADDER, _snap(place_added=100)).level_number == 1

    def test_empty_catalog_raises(self):
        with pytest.raises(LookupError):
            compute_level((), _snap())

    def test_gate_cycle_does_not_recurse_forever(self):
        looped = (
            LevelDef(1, "A", gate_level=None),
            LevelDef(2, "B", gate_level=3),
            LevelDef(3, "C", gate_level=2),
        )
        assert qualifying_levels(looped, _snap()) == [1]


class TestLevelProgress:
    def test_reports_first_unmet_threshold_on_gate_chain(self):
        # Level 3 needs level 1's profile first.
        assert level_progress(LADDER[2], LADDER, _snap(vote_received=6)) == (0, 1)

    def test_partial_count(self):
        snap = _snap(profile_completed=1, review_created=3, vote_received=6)
        assert level_progress(LADDER[2], LADDER, snap) == (6, 10)

    def test_completed_level(self):
        snap = _snap(profile_completed=1, review_created=3)
        assert level_progress(LADDER[1], LADDER, snap) == (3, 3)


class TestProgressToNext:
    def test_linear_interpolation(self):
        assert progress_to_next(20, LADDER[0], LADDER[1]) == 57

    def test_clamped(self):
        assert progress_to_next(500, LADDER[0], LADDER[1]) == 100
        assert progress_to_next(40, LADDER[2], LADDER[3]) == 0

    def test_top_level_is_full(self):
        assert progress_to_next(10, LADDER[3], None) == 100
