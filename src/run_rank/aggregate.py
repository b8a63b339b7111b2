"""Per-user totals, always recomputed in full from the user's activities."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import date

from run_rank.db import Database
from run_rank.levels import level_from_xp
from run_rank.streaks import calculate_streak

logger = logging.getLogger(__name__)


@dataclass
class UserAggregate:
    total_xp: int
    total_distance: float
    total_runs: int
    current_streak: int
    longest_streak: int
    level: int


def build_aggregate(
    activities: list[dict],
    level_thresholds: list[dict] | None = None,
    today: str | date | None = None,
) -> UserAggregate:
    """Sum a user's activities into totals.

    Streaks are computed from unique active days; level comes from the
    threshold table (fallback table when None or empty).
    """
    streak_info = calculate_streak((a["date"] for a in activities), today=today)
    total_xp = sum(int(a.get("xp_gained") or 0) for a in activities)
    return UserAggregate(
        total_xp=total_xp,
        total_distance=round(sum(float(a["distance"]) for a in activities), 3),
        total_runs=len(activities),
        current_streak=streak_info.current_streak,
        longest_streak=streak_info.longest_streak,
        level=level_from_xp(total_xp, level_thresholds),
    )


def load_level_thresholds(db: Database) -> list[dict] | None:
    """Stored level thresholds, or None to use the fallback table."""
    thresholds = db.get_level_thresholds()
    if not thresholds:
        logger.warning("No level thresholds stored, using fallback table")
        return None
    return thresholds


def update_user_aggregate(
    db: Database, user_id: str, today: str | date | None = None
) -> UserAggregate:
    """Recompute and persist the aggregate row for one user."""
    activities = db.list_activities(user_id)
    aggregate = build_aggregate(activities, load_level_thresholds(db), today=today)
    db.write_user_aggregate(user_id, asdict(aggregate))
    logger.info(
        "Updated totals for %s: %d XP, level %d, %d runs, %d day streak",
        user_id,
        aggregate.total_xp,
        aggregate.level,
        aggregate.total_runs,
        aggregate.current_streak,
    )
    return aggregate
