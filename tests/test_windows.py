"""Tests for calendar window computation."""

import pytest
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from ledgerflow.engine import WindowCalculator

from conftest import NOW


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class TestWeekRange:
    """Tests for WindowCalculator.week_range."""

    def test_monday_start(self):
        week = WindowCalculator(week_start=0).week_range(NOW)
        assert week.start == utc(2024, 6, 3)
        assert week.end == utc(2024, 6, 10)

    def test_sunday_start(self):
        week = WindowCalculator(week_start=6).week_range(NOW)
        assert week.start == utc(2024, 6, 2)
        assert week.end == utc(2024, 6, 9)

    def test_now_on_first_day(self):
        week = WindowCalculator(week_start=0).week_range(utc(2024, 6, 3))
        assert week.start == utc(2024, 6, 3)

    def test_now_on_last_instant(self):
        last = utc(2024, 6, 10) - timedelta(microseconds=1)
        week = WindowCalculator(week_start=0).week_range(last)
        assert week.start == utc(2024, 6, 3)
        assert week.contains(last)

    def test_local_timezone(self):
        tz = ZoneInfo("America/New_York")
        # 02:00 UTC Monday is still Sunday evening in New York
        week = WindowCalculator(week_start=0, tz=tz).week_range(utc(2024, 6, 3, 2))
        assert week.start == datetime(2024, 5, 27, tzinfo=tz)
        assert week.end == datetime(2024, 6, 3, tzinfo=tz)

    def test_naive_now_is_utc(self):
        calculator = WindowCalculator()
        assert calculator.week_range(NOW.replace(tzinfo=None)) == calculator.week_range(NOW)

    def test_invalid_week_start(self):
        with pytest.raises(ValueError):
            WindowCalculator(week_start=7)


class TestMonthRange:
    """Tests for WindowCalculator.month_range."""

    def test_month(self):
        month = WindowCalculator().month_range(NOW)
        assert month.start == utc(2024, 6, 1)
        assert month.end == utc(2024, 7, 1)

    def test_december_rolls_into_next_year(self):
        month = WindowCalculator().month_range(utc(2024, 12, 31, 23, 59))
        assert month.start == utc(2024, 12, 1)
        assert month.end == utc(2025, 1, 1)

    def test_end_is_exclusive(self):
        month = WindowCalculator().month_range(NOW)
        assert WindowCalculator.is_within(utc(2024, 6, 1), month)
        assert not WindowCalculator.is_within(utc(2024, 7, 1), month)
        assert not WindowCalculator.is_within(None, month)


class TestProjectionRange:
    """Tests for the projected-income horizon."""

    def test_includes_horizon_instant(self):
        horizon = WindowCalculator().projection_range(NOW, 7)
        assert horizon.contains(NOW + timedelta(days=7))
        assert not horizon.contains(NOW + timedelta(days=7, seconds=1))

    def test_no_lower_bound(self):
        horizon = WindowCalculator().projection_range(NOW, 7)
        assert horizon.contains(utc(1999, 1, 1))


class TestDeterminism:
    """Identical `now` gives identical windows."""

    def test_repeated_calls(self):
        calculator = WindowCalculator(week_start=2)
        assert calculator.week_range(NOW) == calculator.week_range(NOW)
        assert calculator.month_range(NOW) == calculator.month_range(NOW)

    def test_day_of_uses_window_timezone(self):
        tz = ZoneInfo("Asia/Tokyo")
        calculator = WindowCalculator(tz=tz)
        assert calculator.day_of(utc(2024, 6, 3, 20)).isoformat() == "2024-06-04"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
