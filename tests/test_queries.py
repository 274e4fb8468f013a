"""Tests for the read-side query helpers."""

from datetime import date

import pytest

from debt.domain.models import DailySummary, UserSettings
from debt.queries import (
    chart_series,
    daily_history,
    format_delta,
    format_minutes,
    rolling_debt,
    today_summary,
)


def summary(day, delta, cumulative=0):
    return DailySummary(
        day_id=f"{day.isoformat()}@anchor4",
        date=day,
        actual_minutes=480 - delta,
        delta_minutes=delta,
        cumulative_debt_minutes=cumulative,
        source_count=1,
    )


@pytest.fixture
def summaries():
    return [
        summary(date(2024, 3, 10), 60, 60),
        summary(date(2024, 3, 12), -90, 0),
        summary(date(2024, 3, 14), 120, 120),
    ]


class TestFormatting:
    @pytest.mark.parametrize(
        "minutes, expected", [(0, "0h 0m"), (59, "0h 59m"), (390, "6h 30m"), (1440, "24h 0m")]
    )
    def test_format_minutes(self, minutes, expected):
        assert format_minutes(minutes) == expected

    @pytest.mark.parametrize("delta, expected", [(60, "+1h 0m"), (-90, "-1h 30m"), (0, "+0h 0m")])
    def test_format_delta(self, delta, expected):
        assert format_delta(delta) == expected


class TestRollingDebt:
    @pytest.mark.parametrize("window, expected", [(1, 120), (3, 30), (5, 90)])
    def test_sums_deltas_inside_window(self, summaries, window, expected):
        assert rolling_debt(summaries, window, date(2024, 3, 14)) == expected

    def test_clamped_at_zero(self, summaries):
        assert rolling_debt(summaries, 3, date(2024, 3, 12)) == 0

    def test_no_data(self):
        assert rolling_debt([], 7, date(2024, 3, 14)) == 0


class TestChartSeries:
    def test_one_point_per_day(self, summaries):
        points = chart_series(summaries, 3, date(2024, 3, 14))
        assert [(p.date, p.value) for p in points] == [
            (date(2024, 3, 12), 0),
            (date(2024, 3, 13), 0),
            (date(2024, 3, 14), 30),
        ]

    @pytest.mark.parametrize("window", [1, 2, 3, 5, 7])
    def test_last_point_matches_rolling_debt(self, summaries, window):
        as_of = date(2024, 3, 14)
        points = chart_series(summaries, window, as_of)
        assert len(points) == window
        assert points[-1].value == rolling_debt(summaries, window, as_of)


class TestTodaySummary:
    def test_no_data_marker(self):
        result = today_summary(None, UserSettings(), date(2024, 3, 15))
        assert result.has_data is False
        assert result.actual_minutes is None
        assert result.day_id == "2024-03-15@anchor4"
        assert result.label == "Today: No Data"

    def test_actual_vs_goal(self):
        today = summary(date(2024, 3, 15), 90, 200)
        result = today_summary(today, UserSettings(), date(2024, 3, 15))
        assert result.actual_minutes == 390
        assert result.cumulative_debt_minutes == 200
        assert result.label == "Today: 6h 30m / 8h"

    def test_goal_with_minutes(self):
        today = summary(date(2024, 3, 15), 90)
        result = today_summary(today, UserSettings(goal_minutes=450), date(2024, 3, 15))
        assert result.label.endswith("/ 7h 30m")


def test_daily_history_newest_first(summaries):
    history = daily_history(summaries)
    assert [h.date for h in history] == [date(2024, 3, 14), date(2024, 3, 12), date(2024, 3, 10)]
    assert history[0].slept_label == "Slept: 6h 0m"
    assert history[0].delta_label == "+2h 0m"
    assert history[1].delta_label == "-1h 30m"
