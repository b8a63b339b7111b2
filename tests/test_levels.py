"""Tests for level progression."""

from run_rank.levels import (
    FALLBACK_LEVEL_XP,
    MAX_LEVEL,
    default_thresholds,
    level_from_xp,
    level_progress,
    max_level,
    xp_for_level,
)


class TestFallbackTable:
    def test_thirty_levels(self):
        assert len(FALLBACK_LEVEL_XP) == MAX_LEVEL == 30

    def test_strictly_increasing(self):
        assert all(a < b for a, b in zip(FALLBACK_LEVEL_XP, FALLBACK_LEVEL_XP[1:]))

    def test_max_level_follows_table(self):
        assert max_level() == MAX_LEVEL
        assert max_level([{"level": 1, "xp_required": 0}, {"level": 45, "xp_required": 9}]) == 45

    def test_default_rows(self):
        rows = default_thresholds()
        assert rows[0] == {"level": 1, "xp_required": 0}
        assert rows[-1] == {"level": 30, "xp_required": 16071}


class TestLevelFromXP:
    def test_zero_xp_is_level_one(self):
        assert level_from_xp(0) == 1

    def test_exact_threshold(self):
        assert level_from_xp(50) == 2
        assert level_from_xp(49) == 1
        assert level_from_xp(102) == 3

    def test_capped_at_max(self):
        assert level_from_xp(16071) == 30
        assert level_from_xp(1_000_000) == 30

    def test_custom_thresholds(self):
        table = [
            {"level": 2, "xp_required": 100},
            {"level": 1, "xp_required": 0},
            {"level": 3, "xp_required": 300},
        ]
        assert level_from_xp(150, table) == 2
        assert level_from_xp(300, table) == 3

    def test_custom_table_above_thirty_levels(self):
        table = [{"level": i, "xp_required": (i - 1) * 100} for i in range(1, 41)]
        assert level_from_xp(3000, table) == 31
        assert level_from_xp(3900, table) == 40
        assert level_from_xp(1_000_000, table) == 40

    def test_custom_table_below_thirty_levels(self):
        table = [{"level": i, "xp_required": (i - 1) * 100} for i in range(1, 11)]
        assert level_from_xp(1_000_000, table) == 10

    def test_empty_table_uses_fallback(self):
        assert level_from_xp(60, []) == 2


class TestXPForLevel:
    def test_known(self):
        assert xp_for_level(1) == 0
        assert xp_for_level(10) == 594

    def test_unknown(self):
        assert xp_for_level(99) == 0


class TestLevelProgress:
    def test_midway(self):
        progress = level_progress(76)
        assert progress["level"] == 2
        assert progress["current_level_xp"] == 50
        assert progress["next_level_xp"] == 102
        assert progress["progress"] == 50.0
        assert progress["xp_to_next"] == 26

    def test_at_threshold(self):
        progress = level_progress(0)
        assert progress["level"] == 1
        assert progress["progress"] == 0.0
        assert progress["xp_to_next"] == 50

    def test_max_level(self):
        progress = level_progress(20_000)
        assert progress["level"] == 30
        assert progress["progress"] == 100.0
        assert progress["xp_to_next"] == 0

    def test_progress_past_thirty_on_larger_table(self):
        table = [{"level": i, "xp_required": (i - 1) * 100} for i in range(1, 41)]
        progress = level_progress(3050, table)
        assert progress["level"] == 31
        assert progress["next_level_xp"] == 3100
        assert progress["progress"] == 50.0
        assert progress["xp_to_next"] == 50

        top = level_progress(5000, table)
        assert top["level"] == 40
        assert top["progress"] == 100.0
        assert top["xp_to_next"] == 0
