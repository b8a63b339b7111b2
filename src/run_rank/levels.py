"""Level progression from total XP. Pure functions, no side effects."""

# Highest level of the fallback table
MAX_LEVEL = 30

# Cumulative XP required for levels 1..30, used when no thresholds are stored
FALLBACK_LEVEL_XP: list[int] = [
    0, 50, 102, 158, 217, 280, 349, 423, 504, 594,
    693, 806, 934, 1079, 1244, 1436, 1659, 1920, 2228, 2591,
    3026, 3549, 4181, 4953, 5902, 7089, 8584, 10482, 12912, 16071,
]


def default_thresholds() -> list[dict]:
    """Fallback level table as [{"level", "xp_required"}] rows."""
    return [
        {"level": i + 1, "xp_required": xp}
        for i, xp in enumerate(FALLBACK_LEVEL_XP)
    ]


def _sorted_thresholds(thresholds: list[dict] | None) -> list[dict]:
    rows = thresholds or default_thresholds()
    return sorted(rows, key=lambda r: r["level"])


def max_level(thresholds: list[dict] | None = None) -> int:
    """Highest level the table defines (MAX_LEVEL for the fallback table)."""
    return max(int(row["level"]) for row in _sorted_thresholds(thresholds))


def level_from_xp(total_xp: int, thresholds: list[dict] | None = None) -> int:
    """Given total XP, return the highest level reached, capped at the table's top level."""
    for row in reversed(_sorted_thresholds(thresholds)):
        if total_xp >= row["xp_required"]:
            return int(row["level"])
    return 1


def xp_for_level(level: int, thresholds: list[dict] | None = None) -> int:
    """Cumulative XP needed to reach a level. 0 for unknown levels."""
    for row in _sorted_thresholds(thresholds):
        if row["level"] == level:
            return int(row["xp_required"])
    return 0


def level_progress(total_xp: int, thresholds: list[dict] | None = None) -> dict:
    """Return current level, level bounds, percent progress and XP to next level.

    At max level progress is 100 and xp_to_next is 0.
    """
    level = level_from_xp(total_xp, thresholds)
    current_level_xp = xp_for_level(level, thresholds)
    top = max_level(thresholds)
    next_level_xp = xp_for_level(min(level + 1, top), thresholds)

    if level >= top or next_level_xp <= current_level_xp:
        progress = 100.0
        xp_to_next = 0
    else:
        progress = (total_xp - current_level_xp) / (next_level_xp - current_level_xp) * 100
        xp_to_next = next_level_xp - total_xp

    return {
        "level": level,
        "current_level_xp": current_level_xp,
        "next_level_xp": next_level_xp,
        "progress": max(0.0, min(100.0, progress)),
        "xp_to_next": max(0, xp_to_next),
    }
