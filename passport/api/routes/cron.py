"""
passport.api.routes.cron — Manual trigger for scheduled jobs
=============================================================
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from passport.api.deps import get_progression
from passport.services.progression_service import ProgressionEngine
from passport.services.reconciliation_service import recalculate_all_users

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["cron"])


@router.post("/recalculate-stats")
def recalculate_stats(progression: ProgressionEngine = Depends(get_progression)):
    """Run the daily stats reconciliation now."""
    logger.info("Manual stats reconciliation requested")
    report = recalculate_all_users(progression.engine, progression)
    return {"success": True, "data": report}
