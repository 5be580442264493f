"""
passport.services.reconciliation_service — Daily Stats Reconciliation
======================================================================

Scheduled job that rebuilds every user's cached points and level from the
action ledger.

How it works:
    1. List every user id.
    2. For each user, call :meth:`ProgressionEngine.recalculate_user_stats`
       in its own transaction.
    3. A user whose recalculation fails is logged and counted, and the
       job carries on with the next user.

Badges are never touched: a badge earned under older rules stays earned.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from passport.database.models import User

if TYPE_CHECKING:
    from passport.services.progression_service import ProgressionEngine

logger = logging.getLogger(__name__)


def list_user_ids(engine: Engine) -> list[int]:
    with Session(engine) as session:
        return list(session.scalars(select(User.id).order_by(User.id)).all())


def recalculate_all_users(engine: Engine, progression: ProgressionEngine) -> dict:
    """Recalculate points and level for every user.

    Returns ``{"processed": N, "errors": M, "failed_user_ids": [...],
    "corrected": K, "timestamp": ...}``.
    """
    processed = 0
    corrected = 0
    failed: list[int] = []

    user_ids = list_user_ids(engine)
    logger.info("Stats reconciliation: %d users to process", len(user_ids))

    for user_id in user_ids:
        try:
            result = progression.recalculate_user_stats(user_id)
        except Exception:
            logger.exception("Stats reconciliation failed for user %d", user_id)
            failed.append(user_id)
            continue
        processed += 1
        if result.changed:
            corrected += 1

    if failed:
        logger.warning(
            "Stats reconciliation: %d processed, %d errors (users %s)",
            processed, len(failed), failed,
        )
    else:
        logger.info(
            "Stats reconciliation: %d processed, %d corrected", processed, corrected
        )

    return {
        "processed": processed,
        "errors": len(failed),
        "failed_user_ids": failed,
        "corrected": corrected,
        "timestamp": datetime.now(UTC).isoformat(),
    }
