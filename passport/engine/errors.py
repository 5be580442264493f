"""
passport.engine.errors — Progression Error Taxonomy
====================================================

Terminal errors surfaced to callers.  Ledger-append and notification
failures are not represented here: they are logged and swallowed where
they happen.
"""

from __future__ import annotations


class ProgressionError(Exception):
    """Base class for errors raised by the progression engine."""

    is_retryable = False


class UserNotFound(ProgressionError):
    """The user id does not reference an existing user."""

    def __init__(self, user_id: int) -> None:
        super().__init__(f"User {user_id} not found")
        self.user_id = user_id


class InvalidAction(ProgressionError):
    """The action type is not one of the enumerated action types."""

    def __init__(self, action_type: object) -> None:
        super().__init__(f"Invalid action type: {action_type!r}")
        self.action_type = action_type


class TransactionFailure(ProgressionError):
    """The points/level/badge transaction failed and was rolled back.

    Retryable.  Retrying re-awards the action, so the caller must make sure
    it is not retrying an award that already committed.
    """

    is_retryable = True

    def __init__(self, user_id: int, cause: BaseException) -> None:
        super().__init__(f"Progression update for user {user_id} failed: {cause}")
        self.user_id = user_id
        self.cause = cause
