"""XP calculation engine for run-rank.

Pure functions that convert a run's distance and the user's streak into XP.
All persisted XP values are integers (math.floor for rounding).
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date

# Distance bonus thresholds in km, highest first
BONUS_THRESHOLDS: tuple[int, ...] = (20, 15, 10, 5)

# Fallback rule set when no admin settings are stored
DEFAULT_RULES: dict[str, float] = {
    "base_xp": 15,
    "xp_per_km": 2,
    "bonus_5km": 5,
    "bonus_10km": 15,
    "bonus_15km": 25,
    "bonus_20km": 50,
    "min_run_distance": 1.0,
}

# Fallback streak multiplier tiers (minimum streak day -> multiplier)
DEFAULT_MULTIPLIER_TIERS: dict[int, float] = {
    5: 1.1,
    15: 1.2,
    30: 1.3,
    60: 1.4,
    90: 1.5,
    120: 1.6,
    180: 1.7,
    220: 1.8,
    240: 1.9,
    270: 2.0,
}


@dataclass(frozen=True)
class RuleSet:
    base_xp: int = 15
    xp_per_km: float = 2
    bonus_5km: int = 5
    bonus_10km: int = 15
    bonus_15km: int = 25
    bonus_20km: int = 50
    min_run_distance: float = 1.0

    @classmethod
    def from_dict(cls, data: dict | None) -> RuleSet:
        """Build a rule set, falling back per key for anything missing or None."""
        data = data or {}
        values = {}
        for key, default in DEFAULT_RULES.items():
            raw = data.get(key)
            values[key] = default if raw is None else raw
        return cls(
            base_xp=int(values["base_xp"]),
            xp_per_km=float(values["xp_per_km"]),
            bonus_5km=int(values["bonus_5km"]),
            bonus_10km=int(values["bonus_10km"]),
            bonus_15km=int(values["bonus_15km"]),
            bonus_20km=int(values["bonus_20km"]),
            min_run_distance=float(values["min_run_distance"]),
        )

    def bonus_for_threshold(self, threshold_km: int) -> int:
        return getattr(self, f"bonus_{threshold_km}km")


@dataclass
class XPBreakdown:
    """Pre-streak XP for a single run."""

    base_xp: int
    distance_xp: int
    distance_bonus: int
    total_xp: int


@dataclass
class ActivityScore:
    """Derived fields persisted on an activity."""

    base_xp: int
    distance_xp: int
    distance_bonus: int
    streak_day: int
    multiplier: float
    streak_bonus: int
    xp_gained: int

    def as_fields(self) -> dict:
        return {
            "base_xp": self.base_xp,
            "distance_xp": self.distance_xp,
            "distance_bonus": self.distance_bonus,
            "streak_day": self.streak_day,
            "multiplier": self.multiplier,
            "streak_bonus": self.streak_bonus,
            "xp_gained": self.xp_gained,
        }


def _is_valid_distance(distance: object) -> bool:
    if isinstance(distance, bool) or not isinstance(distance, (int, float)):
        return False
    if math.isnan(distance) or math.isinf(distance):
        return False
    return distance > 0


def calculate_run_xp(distance_km: object, rules: RuleSet | None = None) -> XPBreakdown:
    """Calculate XP for a run before any streak multiplier.

    1. Base XP if the run reaches min_run_distance.
    2. Distance XP = floor(distance * xp_per_km).
    3. Distance bonus for the single highest threshold reached (20/15/10/5 km).
    4. Total = base + distance XP + bonus.

    A non-positive or non-numeric distance yields an all-zero breakdown.
    """
    if not _is_valid_distance(distance_km):
        return XPBreakdown(base_xp=0, distance_xp=0, distance_bonus=0, total_xp=0)
    rules = rules or RuleSet()

    base_xp = rules.base_xp if distance_km >= rules.min_run_distance else 0
    distance_xp = math.floor(distance_km * rules.xp_per_km)

    distance_bonus = 0
    for threshold in BONUS_THRESHOLDS:
        if distance_km >= threshold:
            distance_bonus = rules.bonus_for_threshold(threshold)
            break

    return XPBreakdown(
        base_xp=base_xp,
        distance_xp=distance_xp,
        distance_bonus=distance_bonus,
        total_xp=base_xp + distance_xp + distance_bonus,
    )


def normalize_tiers(tiers: dict[int, float] | list[dict] | None) -> list[tuple[int, float]]:
    """Return tiers as (threshold, multiplier) pairs sorted by threshold.

    Accepts a {days: multiplier} mapping or a list of {"days", "multiplier"} rows.
    Falls back to DEFAULT_MULTIPLIER_TIERS when empty.
    """
    if not tiers:
        tiers = DEFAULT_MULTIPLIER_TIERS
    if isinstance(tiers, dict):
        pairs = [(int(days), float(mult)) for days, mult in tiers.items()]
    else:
        pairs = [(int(row["days"]), float(row["multiplier"])) for row in tiers]
    return sorted(pairs)


def get_streak_multiplier(
    streak_day: int | None, tiers: dict[int, float] | list[dict] | None = None
) -> float:
    """Return the multiplier for a streak day.

    Uses the tier with the greatest threshold not above streak_day.
    E.g., streak_day=10 -> 1.1 (5-day tier), streak_day=15 -> 1.2 (15-day tier).
    """
    if not streak_day or streak_day <= 0:
        return 1.0
    multiplier = 1.0
    for threshold, tier_multiplier in normalize_tiers(tiers):
        if streak_day >= threshold:
            multiplier = tier_multiplier
    return multiplier


def score_activity(
    distance_km: float,
    streak_day: int,
    rules: RuleSet | None = None,
    tiers: dict[int, float] | list[dict] | None = None,
    multiplier: float | None = None,
) -> ActivityScore:
    """Score one activity.

    The streak multiplier applies to base + distance XP only; the distance
    bonus is added afterwards. Pass `multiplier` to reuse a stored value
    instead of resolving it from the tiers.
    """
    breakdown = calculate_run_xp(distance_km, rules)
    if multiplier is None:
        multiplier = get_streak_multiplier(streak_day, tiers)

    unmultiplied = breakdown.base_xp + breakdown.distance_xp
    # round() strips float noise such as 118.99999999999999 before flooring
    multiplied = math.floor(round(unmultiplied * multiplier, 9))

    return ActivityScore(
        base_xp=breakdown.base_xp,
        distance_xp=breakdown.distance_xp,
        distance_bonus=breakdown.distance_bonus,
        streak_day=streak_day,
        multiplier=multiplier,
        streak_bonus=multiplied - unmultiplied,
        xp_gained=multiplied + breakdown.distance_bonus,
    )


def score_history(
    activities: list[dict],
    rules: RuleSet | None = None,
    tiers: dict[int, float] | list[dict] | None = None,
) -> list[tuple[dict, ActivityScore]]:
    """Score a user's activities in chronological order.

    Each activity dict needs "date" (YYYY-MM-DD) and "distance". Several
    activities on one day share that day's streak day number.
    """
    ordered = sorted(activities, key=lambda a: (a["date"], a.get("id") or 0))
    results: list[tuple[dict, ActivityScore]] = []
    previous: date | None = None
    streak_day = 0
    for activity in ordered:
        day = date.fromisoformat(activity["date"])
        if previous is None or (day - previous).days > 1:
            streak_day = 1
        elif day != previous:
            streak_day += 1
        previous = day
        score = score_activity(activity["distance"], streak_day, rules, tiers)
        results.append((activity, score))
    return results


def format_breakdown(score: ActivityScore) -> list[str]:
    """Human-readable breakdown lines for a scored activity."""
    unmultiplied = score.base_xp + score.distance_xp
    return [
        f"Base XP: {score.base_xp}",
        f"Distance XP: {score.distance_xp}",
        f"Distance Bonus: {score.distance_bonus}",
        f"Streak Bonus: {score.streak_bonus} ({score.multiplier}x on {unmultiplied} XP, day {score.streak_day})",
        f"Total: {score.xp_gained} XP",
    ]
