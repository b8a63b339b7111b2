"""Exception types raised by run-rank."""

from __future__ import annotations


class RunRankError(Exception):
    """Base class for run-rank errors."""


class InvalidActivityError(RunRankError, ValueError):
    """Distance or date of an activity is missing or malformed."""


class ActivityNotFoundError(RunRankError, LookupError):
    pass


class UserNotFoundError(RunRankError, LookupError):
    pass


class PermissionDeniedError(RunRankError):
    pass


class RecalculationError(RunRankError):
    """A step after saving an activity failed.

    The activity itself is stored; derived stats may be stale until the
    recalculation for the user is retried.
    """

    def __init__(self, user_id: str, activity_id: int | None = None, reason: str = "") -> None:
        self.user_id = user_id
        self.activity_id = activity_id
        self.saved = True
        message = (
            f"Saved, but stats for user {user_id} may be temporarily inconsistent. "
            f"Retry recalculation."
        )
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class AggregateWriteError(RecalculationError):
    """Writing the user aggregate failed. Retry the full recalculation."""
