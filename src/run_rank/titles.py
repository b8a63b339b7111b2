"""Title definitions and metric calculation for run-rank."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum

from run_rank.streaks import calculate_longest_streak

# Weekend average looks at this many most recent weeks with weekend running
WEEKEND_WINDOW = 4


class Metric(str, Enum):
    LONGEST_RUN = "longest_run"
    LONGEST_STREAK = "longest_streak"
    TOTAL_DISTANCE = "total_distance"
    WEEKEND_AVERAGE = "weekend_average"


@dataclass
class TitleDef:
    id: str
    name: str
    description: str
    metric: Metric
    unlock_requirement: float
    unit: str


TITLES: list[TitleDef] = [
    TitleDef(
        id="longest_run",
        name="The Reborn Eliud Kipchoge",
        description="Longest single run",
        metric=Metric.LONGEST_RUN,
        unlock_requirement=12,
        unit="km",
    ),
    TitleDef(
        id="longest_streak",
        name="The Daaaaaviiiiiid GOGGINGS",
        description="Longest run streak",
        metric=Metric.LONGEST_STREAK,
        unlock_requirement=20,
        unit="days",
    ),
    TitleDef(
        id="total_distance",
        name="The Ultra Man",
        description="Most total kilometers",
        metric=Metric.TOTAL_DISTANCE,
        unlock_requirement=100,
        unit="km",
    ),
    TitleDef(
        id="weekend_average",
        name="The Weekend Destroyer",
        description="Highest weekend average over the last 4 weekends",
        metric=Metric.WEEKEND_AVERAGE,
        unlock_requirement=9,
        unit="km",
    ),
]


def get_title(title_id: str) -> TitleDef:
    """Look up a title by id. Raises KeyError for unknown ids."""
    for title in TITLES:
        if title.id == title_id:
            return title
    raise KeyError(title_id)


def _activities_until(activities: list[dict], as_of: str | None) -> list[dict]:
    if as_of is None:
        return list(activities)
    return [a for a in activities if a["date"] <= as_of]


def longest_run(activities: list[dict]) -> float:
    return max((float(a["distance"]) for a in activities), default=0.0)


def total_distance(activities: list[dict]) -> float:
    return round(sum(float(a["distance"]) for a in activities), 3)


def weekend_totals(activities: list[dict]) -> dict[str, float]:
    """Sum Saturday/Sunday distance per week, keyed by the week's Monday."""
    totals: dict[str, float] = {}
    for activity in activities:
        day = date.fromisoformat(activity["date"])
        if day.weekday() < 5:
            continue
        monday = (day - timedelta(days=day.weekday())).isoformat()
        totals[monday] = totals.get(monday, 0.0) + float(activity["distance"])
    return totals


def weekend_average(activities: list[dict]) -> float:
    """Average of the most recent WEEKEND_WINDOW weekly weekend totals.

    Weeks without weekend activity are absent, not counted as zero.
    Rounded to one decimal.
    """
    totals = weekend_totals(activities)
    return _recent_average(totals, sorted(totals, reverse=True)[:WEEKEND_WINDOW])


def _recent_average(totals: dict[str, float], weeks: list[str]) -> float:
    """Average of totals for the given weeks (newest first), one decimal."""
    if not weeks:
        return 0.0
    recent = [totals[week] for week in weeks]
    return round(sum(recent) / len(recent), 1)


def compute_metric(metric: Metric, activities: list[dict], as_of: str | None = None) -> float:
    """Compute a title metric, optionally only over activities dated on/before as_of."""
    relevant = _activities_until(activities, as_of)
    if metric == Metric.LONGEST_RUN:
        return longest_run(relevant)
    if metric == Metric.LONGEST_STREAK:
        return float(calculate_longest_streak(a["date"] for a in relevant))
    if metric == Metric.TOTAL_DISTANCE:
        return total_distance(relevant)
    if metric == Metric.WEEKEND_AVERAGE:
        return weekend_average(relevant)
    raise ValueError(f"Unknown metric: {metric}")


def qualified_since(metric: Metric, activities: list[dict], value: float) -> str | None:
    """Earliest activity date by which the metric had reached value.

    Used as the tie-break timestamp: whoever got there first ranks higher.
    """
    for day, reached in running_values(metric, activities):
        if reached >= value:
            return day
    return None


def running_values(metric: Metric, activities: list[dict]) -> Iterator[tuple[str, float]]:
    """Yield (day, metric as of that day) for each active day, in one chronological pass."""
    ordered = sorted(activities, key=lambda a: a["date"])
    best = 0.0
    distance = 0.0
    streak = 0
    longest = 0
    previous: date | None = None
    weeks: dict[str, float] = {}
    week_order: list[str] = []

    for i, activity in enumerate(ordered):
        day = activity["date"]
        km = float(activity["distance"])
        if metric == Metric.LONGEST_RUN:
            best = max(best, km)
        elif metric == Metric.TOTAL_DISTANCE:
            distance += km
        elif metric == Metric.LONGEST_STREAK:
            current = date.fromisoformat(day)
            if previous is None or (current - previous).days > 1:
                streak = 1
            elif current != previous:
                streak += 1
            previous = current
            longest = max(longest, streak)
        elif metric == Metric.WEEKEND_AVERAGE:
            current = date.fromisoformat(day)
            if current.weekday() >= 5:
                monday = (current - timedelta(days=current.weekday())).isoformat()
                if monday not in weeks:
                    weeks[monday] = 0.0
                    week_order.append(monday)
                weeks[monday] += km
        else:
            raise ValueError(f"Unknown metric: {metric}")

        # Report once per day, after all of that day's activities
        if i + 1 < len(ordered) and ordered[i + 1]["date"] == day:
            continue
        if metric == Metric.LONGEST_RUN:
            yield day, best
        elif metric == Metric.TOTAL_DISTANCE:
            yield day, round(distance, 3)
        elif metric == Metric.LONGEST_STREAK:
            yield day, float(longest)
        else:
            yield day, _recent_average(weeks, week_order[-WEEKEND_WINDOW:][::-1])


def check_unlocked(title: TitleDef, value: float) -> bool:
    return value >= title.unlock_requirement
