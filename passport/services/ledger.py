"""
passport.services.ledger — Action Ledger
=========================================

Append-only record of every point-earning action.  The ledger is the
source of truth for a user's point total; ``progression_state.points`` is a
cache of ``SUM(points_awarded)`` that reconciliation restores.

The engine only appends and counts.  There is no update or delete here.
All methods take the caller's :class:`Session` so they run inside the
caller's transaction.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import UTC, datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from passport.database.models import ActionRecord, ActionType

logger = logging.getLogger(__name__)


class ActionLedger:
    """Write-once access to ``action_records``."""

    def append(
        self,
        session: Session,
        user_id: int,
        action_type: ActionType | str,
        points_awarded: int,
        metadata: dict | None = None,
    ) -> ActionRecord:
        """Insert one record and flush it so later counts in the same
        transaction include it.  Storage errors propagate unchanged."""
        record = ActionRecord(
            user_id=user_id,
            action_type=str(action_type),
            points_awarded=points_awarded,
            metadata_=dict(metadata or {}),
            occurred_at=datetime.now(UTC),
        )
        session.add(record)
        session.flush()
        return record

    def count_by_type(
        self, session: Session, user_id: int, action_type: ActionType | str
    ) -> int:
        return session.scalar(
            select(func.count())
            .select_from(ActionRecord)
            .where(
                ActionRecord.user_id == user_id,
                ActionRecord.action_type == str(action_type),
            )
        ) or 0

    def counts_by_type(self, session: Session, user_id: int) -> dict[str, int]:
        """action_type → record count for *user_id*, in one query."""
        rows = session.execute(
            select(ActionRecord.action_type, func.count().label("cnt"))
            .where(ActionRecord.user_id == user_id)
            .group_by(ActionRecord.action_type)
        ).all()
        return {row.action_type: row.cnt for row in rows}

    def sum_points(self, session: Session, user_id: int) -> int:
        return int(session.scalar(
            select(func.coalesce(func.sum(ActionRecord.points_awarded), 0))
            .where(ActionRecord.user_id == user_id)
        ) or 0)

    # -------------------------------------------------------------------
    # Per-entity vote counts
    # -------------------------------------------------------------------
    # Entity ids live inside the JSON metadata and may arrive as str or int,
    # so matching is done on the str() form in Python rather than with a
    # dialect-specific JSON operator.
    def _entity_vote_counter(
        self, session: Session, user_id: int, entity_key: str
    ) -> Counter[str]:
        rows = session.scalars(
            select(ActionRecord.metadata_).where(
                ActionRecord.user_id == user_id,
                ActionRecord.action_type == ActionType.VOTE_RECEIVED.value,
            )
        ).all()
        counter: Counter[str] = Counter()
        for meta in rows:
            if meta and meta.get(entity_key) is not None:
                counter[str(meta[entity_key])] += 1
        return counter

    def count_entity_votes(
        self, session: Session, user_id: int, entity_key: str, entity_id: object
    ) -> int:
        """Number of ``vote_received`` records whose metadata names *entity_id*."""
        if entity_id is None:
            return 0
        return self._entity_vote_counter(session, user_id, entity_key)[str(entity_id)]

    def max_entity_votes(self, session: Session, user_id: int, entity_key: str) -> int:
        """Highest vote count over all of the user's entities."""
        counter = self._entity_vote_counter(session, user_id, entity_key)
        return max(counter.values(), default=0)
