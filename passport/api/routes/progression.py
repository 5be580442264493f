"""
passport.api.routes.progression — Points, stats, levels, badges, milestones
============================================================================

Every response uses the ``{"success": true, "data": ...}`` envelope.
Progression errors are turned into HTTP errors by the handlers in
:mod:`passport.api.main`.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from passport.api.deps import get_progression
from passport.engine.catalog import BadgeDef
from passport.engine.levels import LevelDef
from passport.services.progression_service import ProgressionEngine

router = APIRouter(tags=["progression"])


class AwardRequest(BaseModel):
    action: str = Field(..., min_length=1, max_length=50)
    metadata: dict = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _level_dict(level: LevelDef) -> dict:
    return {
        "levelNumber": level.level_number,
        "name": level.name,
        "minPoints": level.min_points,
        "description": level.description,
        "rewards": level.rewards,
        "instructions": list(level.instructions),
    }


def _badge_dict(badge: BadgeDef) -> dict:
    return {
        "name": badge.name,
        "description": badge.description,
        "iconUrl": badge.icon_url,
        "criteria": list(badge.raw_criteria),
        "instructions": list(badge.instructions),
    }


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------
@router.get("/users/{user_id}/stats")
def get_user_stats(user_id: int, progression: ProgressionEngine = Depends(get_progression)):
    return {"success": True, "data": progression.get_user_stats(user_id).as_dict()}


@router.post("/users/{user_id}/points")
def award_points(
    user_id: int,
    body: AwardRequest,
    progression: ProgressionEngine = Depends(get_progression),
):
    """Record one action.  Mostly for internal callers and testing."""
    result = progression.award(user_id, body.action, body.metadata)
    return {"success": True, "data": result.as_dict()}


@router.get("/users/{user_id}/milestones")
def get_user_milestones(user_id: int, progression: ProgressionEngine = Depends(get_progression)):
    milestones = progression.get_user_milestones(user_id)
    return {"success": True, "data": [m.as_dict() for m in milestones]}


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------
@router.get("/levels")
def list_levels(progression: ProgressionEngine = Depends(get_progression)):
    return {"success": True, "data": [_level_dict(lvl) for lvl in progression.get_all_levels()]}


@router.get("/badges")
def list_badges(progression: ProgressionEngine = Depends(get_progression)):
    return {"success": True, "data": [_badge_dict(b) for b in progression.get_all_badges()]}
