"""Tests for streak tracking."""

from datetime import date

from run_rank.streaks import (
    calculate_current_streak,
    calculate_longest_streak,
    calculate_streak,
    get_streak_day,
    unique_days,
)


class TestUniqueDays:
    def test_deduplicates_and_sorts(self):
        days = unique_days(["2025-09-02", "2025-09-01", "2025-09-02"])
        assert days == [date(2025, 9, 1), date(2025, 9, 2)]

    def test_accepts_date_objects(self):
        assert unique_days([date(2025, 9, 1), "2025-09-01"]) == [date(2025, 9, 1)]


class TestLongestStreak:
    def test_empty(self):
        assert calculate_longest_streak([]) == 0

    def test_single_day(self):
        assert calculate_longest_streak(["2025-09-28"]) == 1

    def test_reference_example(self):
        assert calculate_longest_streak(["2025-09-28", "2025-09-29", "2025-09-30"]) == 3

    def test_picks_longest_segment(self):
        dates = ["2025-01-01", "2025-01-02", "2025-01-05", "2025-01-06", "2025-01-07", "2025-01-09"]
        assert calculate_longest_streak(dates) == 3

    def test_duplicate_days_do_not_lengthen(self):
        once = ["2025-09-28", "2025-09-29"]
        twice = once + ["2025-09-29", "2025-09-29"]
        assert calculate_longest_streak(twice) == calculate_longest_streak(once)

    def test_across_month_boundary(self):
        assert calculate_longest_streak(["2025-02-27", "2025-02-28", "2025-03-01"]) == 3


class TestCurrentStreak:
    def test_empty(self):
        assert calculate_current_streak([], today="2025-09-30") == 0

    def test_active_today(self):
        dates = ["2025-09-28", "2025-09-29", "2025-09-30"]
        assert calculate_current_streak(dates, today="2025-09-30") == 3

    def test_active_yesterday_still_alive(self):
        dates = ["2025-09-28", "2025-09-29"]
        assert calculate_current_streak(dates, today="2025-09-30") == 2

    def test_broken_two_days_ago(self):
        dates = ["2025-09-27", "2025-09-28"]
        assert calculate_current_streak(dates, today="2025-09-30") == 0

    def test_counts_only_latest_segment(self):
        dates = ["2025-09-20", "2025-09-21", "2025-09-22", "2025-09-29", "2025-09-30"]
        assert calculate_current_streak(dates, today=date(2025, 9, 30)) == 2


class TestStreakDay:
    def test_reference_example(self):
        dates = ["2025-09-28", "2025-09-29", "2025-09-30"]
        assert get_streak_day(dates, "2025-09-30") == 3
        assert get_streak_day(dates, "2025-09-28") == 1

    def test_ignores_later_days(self):
        dates = ["2025-09-28", "2025-09-29", "2025-09-30"]
        assert get_streak_day(dates, "2025-09-29") == 2

    def test_missing_target_is_one(self):
        assert get_streak_day(["2025-09-28"], "2025-10-05") == 1

    def test_after_gap(self):
        dates = ["2025-09-01", "2025-09-02", "2025-09-04", "2025-09-05"]
        assert get_streak_day(dates, "2025-09-05") == 2


class TestCalculateStreak:
    def test_no_activity(self):
        info = calculate_streak([], today="2025-09-30")
        assert info.current_streak == 0
        assert info.longest_streak == 0
        assert info.last_active_date is None
        assert info.is_active_today is False

    def test_summary(self):
        dates = ["2025-09-01", "2025-09-02", "2025-09-03", "2025-09-29", "2025-09-30"]
        info = calculate_streak(dates, today="2025-09-30")
        assert info.current_streak == 2
        assert info.longest_streak == 3
        assert info.last_active_date == "2025-09-30"
        assert info.is_active_today is True
