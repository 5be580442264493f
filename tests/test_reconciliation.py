"""
tests/test_reconciliation.py — Daily Stats Reconciliation Tests
================================================================
"""

from __future__ import annotations

from unittest.mock import patch

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from passport.database.engine import UnitOfWork
from passport.database.models import ActionRecord, ProgressionState
from passport.services.reconciliation_service import list_user_ids, recalculate_all_users


def _drift(engine, user_id: int, points: int) -> None:
    with UnitOfWork(engine) as session:
        session.get(ProgressionState, user_id).points = points


class TestRecalculateAllUsers:
    def test_no_users(self, db_engine, progression):
        report = recalculate_all_users(db_engine, progression)
        assert report["processed"] == 0
        assert report["errors"] == 0
        assert report["timestamp"]

    def test_points_equal_ledger_sum_for_every_user(self, db_engine, progression, make_user):
        for uid in (1, 2, 3):
            make_user(db_engine, uid, email=None)
            progression.award(uid, "review_created")
            progression.award(uid, "vote_received")
        _drift(db_engine, 2, 500)

        report = recalculate_all_users(db_engine, progression)

        assert report["processed"] == 3
        assert report["corrected"] == 1
        with Session(db_engine) as session:
            for uid in (1, 2, 3):
                ledger_sum = session.scalar(
                    select(func.sum(ActionRecord.points_awarded)).where(ActionRecord.user_id == uid)
                )
                assert session.get(ProgressionState, uid).points == ledger_sum == 11

    def test_one_failure_does_not_abort_batch(self, db_engine, progression, make_user):
        for uid in (1, 2, 3):
            make_user(db_engine, uid)
        real = progression.recalculate_user_stats

        def _flaky(user_id, **kwargs):
            if user_id == 2:
                raise RuntimeError("boom")
            return real(user_id, **kwargs)

        with patch.object(progression, "recalculate_user_stats", side_effect=_flaky):
            report = recalculate_all_users(db_engine, progression)

        assert report["processed"] == 2
        assert report["errors"] == 1
        assert report["failed_user_ids"] == [2]

    def test_list_user_ids_sorted(self, db_engine, make_user):
        for uid in (30, 10, 20):
            make_user(db_engine, uid)
        assert list_user_ids(db_engine) == [10, 20, 30]
