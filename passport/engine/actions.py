"""
passport.engine.actions — Action Types and Point Values
========================================================

Every qualifying domain event is normalized to an :class:`ActionType`
before it reaches the engine.  The point table is fixed; an action worth
zero points is still a valid, ledgered action.
"""

from __future__ import annotations

from passport.database.models import ActionType
from passport.engine.errors import InvalidAction

__all__ = ["ActionType", "POINTS_PER_ACTION", "parse_action_type", "points_for"]

# ---------------------------------------------------------------------------
# Points per action type
# ---------------------------------------------------------------------------
POINTS_PER_ACTION: dict[ActionType, int] = {
    ActionType.REVIEW_CREATED: 10,
    ActionType.VOTE_RECEIVED: 1,
    ActionType.PROFILE_COMPLETED: 5,
    ActionType.COMMENT_POSTED: 2,
    ActionType.MEDIA_UPLOAD: 5,
    ActionType.PLACE_ADDED: 15,
    ActionType.EXPENSE_CREATED: 0,
}


def parse_action_type(value: str | ActionType) -> ActionType:
    """Return the :class:`ActionType` for *value* or raise :class:`InvalidAction`."""
    if isinstance(value, ActionType):
        return value
    try:
        return ActionType(value)
    except ValueError:
        raise InvalidAction(value) from None


def points_for(action_type: ActionType) -> int:
    return POINTS_PER_ACTION.get(action_type, 0)
