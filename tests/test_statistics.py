"""Tests for the numeric helpers."""

from datetime import datetime, timedelta, timezone

from team_flow.core.statistics import (
    lower_median,
    mean,
    months_before,
    placeholder_streak,
    start_of_week,
    whole_hours_as_days,
)


class TestLowerMedian:
    def test_odd_length_is_middle_element(self):
        assert lower_median([1, 2, 3]) == 2

    def test_even_length_takes_lower_middle_not_average(self):
        """[1, 2, 3, 4] is 2, never 2.5."""
        assert lower_median([1, 2, 3, 4]) == 2

    def test_unsorted_input_is_not_reordered(self):
        values = [9, 1, 5]
        assert lower_median(values) == 5
        assert values == [9, 1, 5]

    def test_empty_is_none(self):
        assert lower_median([]) is None

    def test_single_value(self):
        assert lower_median([4.5]) == 4.5


def test_mean_of_empty_is_zero():
    assert mean([]) == 0.0
    assert mean([1, 2, 3, 6]) == 3.0


def test_placeholder_streak_is_half_completed():
    assert placeholder_streak(0) == 0
    assert placeholder_streak(1) == 0
    assert placeholder_streak(7) == 3


def test_whole_hours_truncate():
    start = datetime(2025, 1, 1, tzinfo=timezone.utc)
    assert whole_hours_as_days(start, start + timedelta(hours=36, minutes=59)) == 1.5


class TestMonthsBefore:
    def test_plain_subtraction(self):
        moment = datetime(2025, 11, 12, 15, 0, tzinfo=timezone.utc)
        assert months_before(moment, 3) == datetime(2025, 8, 12, 15, 0, tzinfo=timezone.utc)

    def test_crosses_year_boundary(self):
        moment = datetime(2025, 2, 10, tzinfo=timezone.utc)
        assert months_before(moment, 3) == datetime(2024, 11, 10, tzinfo=timezone.utc)

    def test_clamps_day_to_month_length(self):
        moment = datetime(2025, 5, 31, tzinfo=timezone.utc)
        assert months_before(moment, 3) == datetime(2025, 2, 28, tzinfo=timezone.utc)


class TestStartOfWeek:
    def test_monday_start(self):
        wednesday = datetime(2025, 11, 12, 15, 30, tzinfo=timezone.utc)
        assert start_of_week(wednesday) == datetime(2025, 11, 10, tzinfo=timezone.utc)

    def test_monday_is_its_own_start(self):
        monday = datetime(2025, 11, 10, 0, 0, tzinfo=timezone.utc)
        assert start_of_week(monday) == monday

    def test_sunday_start(self):
        wednesday = datetime(2025, 11, 12, 15, 30, tzinfo=timezone.utc)
        assert start_of_week(wednesday, week_starts_on=6) == datetime(
            2025, 11, 9, tzinfo=timezone.utc
        )
