"""Streak tracking for run-rank.

All streak math runs on the set of unique active days, never on the list of
activities, so several runs on one day count once.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, timedelta


@dataclass
class StreakInfo:
    current_streak: int
    longest_streak: int
    last_active_date: str | None  # YYYY-MM-DD
    is_active_today: bool


def _parse_date(d: str | date) -> date:
    """Parse a YYYY-MM-DD string to a date object."""
    if isinstance(d, date):
        return d
    return date.fromisoformat(d)


def unique_days(dates: Iterable[str | date]) -> list[date]:
    """Collapse dates to sorted unique calendar days."""
    return sorted({_parse_date(d) for d in dates})


def calculate_longest_streak(dates: Iterable[str | date]) -> int:
    """Longest run of consecutive active days. 0 for no dates."""
    days = unique_days(dates)
    if not days:
        return 0

    longest = 1
    streak = 1
    for prev, curr in zip(days, days[1:]):
        if (curr - prev).days == 1:
            streak += 1
        else:
            streak = 1
        longest = max(longest, streak)
    return longest


def _count_back(days: list[date], index: int) -> int:
    """Count consecutive days ending at days[index], walking backwards."""
    streak = 1
    for i in range(index, 0, -1):
        if (days[i] - days[i - 1]).days == 1:
            streak += 1
        else:
            break
    return streak


def calculate_current_streak(dates: Iterable[str | date], today: str | date | None = None) -> int:
    """Current streak, alive only if the latest active day is today or yesterday."""
    days = unique_days(dates)
    if not days:
        return 0

    today_date = _parse_date(today) if today else date.today()
    latest = days[-1]
    if latest != today_date and latest != today_date - timedelta(days=1):
        return 0
    return _count_back(days, len(days) - 1)


def get_streak_day(dates: Iterable[str | date], target: str | date) -> int:
    """Streak day number for target: consecutive active days ending at target.

    Returns 1 when target is not an active day.
    """
    days = unique_days(dates)
    target_date = _parse_date(target)
    if target_date not in days:
        return 1
    return _count_back(days, days.index(target_date))


def calculate_streak(dates: Iterable[str | date], today: str | date | None = None) -> StreakInfo:
    """Summarise current and longest streak for a collection of active dates."""
    days = unique_days(dates)
    if not days:
        return StreakInfo(
            current_streak=0,
            longest_streak=0,
            last_active_date=None,
            is_active_today=False,
        )

    today_date = _parse_date(today) if today else date.today()
    return StreakInfo(
        current_streak=calculate_current_streak(days, today_date),
        longest_streak=calculate_longest_streak(days),
        last_active_date=days[-1].isoformat(),
        is_active_today=days[-1] == today_date,
    )
