"""Tests for title definitions and metrics."""

import time
from datetime import date, timedelta

import pytest

from run_rank.titles import (
    TITLES,
    Metric,
    check_unlocked,
    compute_metric,
    get_title,
    qualified_since,
    running_values,
    weekend_average,
    weekend_totals,
)


def _run(day: str, km: float) -> dict:
    return {"date": day, "distance": km}


class TestTitleDefinitions:
    def test_four_titles(self):
        assert [t.id for t in TITLES] == [
            "longest_run", "longest_streak", "total_distance", "weekend_average",
        ]

    def test_unlock_requirements(self):
        assert get_title("longest_run").unlock_requirement == 12
        assert get_title("longest_streak").unlock_requirement == 20
        assert get_title("total_distance").unlock_requirement == 100
        assert get_title("weekend_average").unlock_requirement == 9

    def test_names(self):
        assert get_title("total_distance").name == "The Ultra Man"
        assert get_title("weekend_average").name == "The Weekend Destroyer"

    def test_unknown_title(self):
        with pytest.raises(KeyError):
            get_title("fastest_mile")

    def test_check_unlocked_is_inclusive(self):
        title = get_title("longest_run")
        assert check_unlocked(title, 12.0)
        assert not check_unlocked(title, 11.99)


class TestWeekendAverage:
    def test_reference_example(self):
        # Saturdays of four consecutive weeks
        activities = [
            _run("2025-09-06", 12),
            _run("2025-09-13", 15),
            _run("2025-09-20", 3.7),
            _run("2025-09-27", 19),
        ]
        assert weekend_average(activities) == 12.4

    def test_saturday_and_sunday_share_a_week(self):
        activities = [_run("2025-09-27", 10), _run("2025-09-28", 5)]
        assert weekend_totals(activities) == {"2025-09-22": 15.0}

    def test_weekdays_ignored(self):
        activities = [_run("2025-09-29", 30), _run("2025-09-27", 10)]
        assert weekend_average(activities) == 10.0

    def test_only_four_most_recent_weeks(self):
        activities = [
            _run("2025-08-30", 100),
            _run("2025-09-06", 10),
            _run("2025-09-13", 10),
            _run("2025-09-20", 10),
            _run("2025-09-27", 10),
        ]
        assert weekend_average(activities) == 10.0

    def test_missing_weeks_are_not_zero(self):
        activities = [_run("2025-08-02", 10), _run("2025-09-27", 20)]
        assert weekend_average(activities) == 15.0

    def test_no_weekend_runs(self):
        assert weekend_average([_run("2025-09-29", 5)]) == 0.0


class TestComputeMetric:
    activities = [
        _run("2025-09-01", 5.0),
        _run("2025-09-02", 13.5),
        _run("2025-09-03", 7.25),
    ]

    def test_longest_run(self):
        assert compute_metric(Metric.LONGEST_RUN, self.activities) == 13.5

    def test_longest_streak(self):
        assert compute_metric(Metric.LONGEST_STREAK, self.activities) == 3.0

    def test_total_distance(self):
        assert compute_metric(Metric.TOTAL_DISTANCE, self.activities) == 25.75

    def test_as_of_cuts_later_activities(self):
        assert compute_metric(Metric.LONGEST_RUN, self.activities, as_of="2025-09-01") == 5.0
        assert compute_metric(Metric.TOTAL_DISTANCE, self.activities, as_of="2025-09-02") == 18.5

    def test_empty(self):
        assert compute_metric(Metric.LONGEST_RUN, []) == 0.0
        assert compute_metric(Metric.LONGEST_STREAK, []) == 0.0


class TestQualifiedSince:
    def test_day_value_was_reached(self):
        activities = [_run("2025-09-01", 60), _run("2025-09-05", 45), _run("2025-09-09", 10)]
        assert qualified_since(Metric.TOTAL_DISTANCE, activities, 100) == "2025-09-05"

    def test_longest_run_reached_early(self):
        activities = [_run("2025-09-01", 15), _run("2025-09-05", 8)]
        assert qualified_since(Metric.LONGEST_RUN, activities, 15) == "2025-09-01"

    def test_never_reached(self):
        assert qualified_since(Metric.LONGEST_RUN, [_run("2025-09-01", 5)], 12) is None

    @pytest.mark.parametrize("metric", list(Metric))
    def test_running_values_match_as_of_metric(self, metric):
        activities = [
            _run("2025-08-02", 10),
            _run("2025-08-03", 4.5),
            _run("2025-08-04", 7),
            _run("2025-08-04", 2.25),
            _run("2025-08-09", 12),
            _run("2025-08-16", 3.7),
            _run("2025-08-17", 6),
            _run("2025-08-18", 1.1),
            _run("2025-08-23", 19),
            _run("2025-08-30", 8),
        ]
        running = list(running_values(metric, activities))
        assert [day for day, _ in running] == sorted({a["date"] for a in activities})
        for day, value in running:
            assert value == compute_metric(metric, activities, as_of=day)

    def test_long_history_is_fast(self):
        start = date(2023, 1, 1)
        activities = [_run((start + timedelta(days=i)).isoformat(), 5.0) for i in range(1500)]
        began = time.perf_counter()
        for metric in Metric:
            value = compute_metric(metric, activities)
            assert qualified_since(metric, activities, value) is not None
        assert time.perf_counter() - began < 1.0
        assert qualified_since(Metric.TOTAL_DISTANCE, activities, 100) == "2023-01-20"
