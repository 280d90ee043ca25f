"""
Unit tests for datetime utilities.
"""

import pytest
from datetime import date, datetime, timezone, timedelta

from utils.datetime_utils import (
    utc_now, ensure_utc, add_days, parse_date_string,
    day_of_week_index, is_valid_time_label,
)


class TestUtcNow:
    def test_returns_timezone_aware_utc(self):
        now = utc_now()
        assert now.tzinfo is not None
        assert now.utcoffset() == timedelta(0)


class TestEnsureUtc:
    """Test normalization of naive and aware datetimes."""

    def test_none_passthrough(self):
        assert ensure_utc(None) is None

    def test_naive_is_assumed_utc(self):
        """SQLite returns naive datetimes; they are read as UTC."""
        result = ensure_utc(datetime(2025, 1, 6, 9, 0))
        assert result == datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)

    def test_aware_is_converted(self):
        minus_six = timezone(timedelta(hours=-6))
        result = ensure_utc(datetime(2025, 1, 6, 9, 0, tzinfo=minus_six))
        assert result == datetime(2025, 1, 6, 15, 0, tzinfo=timezone.utc)


class TestParseDateString:
    """Test calendar date parsing."""

    @pytest.mark.parametrize("value", ["2025-01-06", "2025/01/06", "2025-1-6", "2025-01-06T00:00:00.000Z"])
    def test_accepted_formats(self, value):
        assert parse_date_string(value) == date(2025, 1, 6)

    @pytest.mark.parametrize("value", ["", "   ", "06.01.2025", "2025-13-01", "2025-02-30", "2025-01"])
    def test_invalid_dates_raise(self, value):
        with pytest.raises(ValueError):
            parse_date_string(value)


class TestDayOfWeekIndex:
    """0=Sunday .. 6=Saturday."""

    def test_sunday_is_zero(self):
        assert day_of_week_index(date(2025, 1, 5)) == 0

    def test_monday_is_one(self):
        assert day_of_week_index(date(2025, 1, 6)) == 1

    def test_saturday_is_six(self):
        assert day_of_week_index(date(2025, 1, 11)) == 6


class TestTimeLabels:
    @pytest.mark.parametrize("label", ["00:00", "09:30", "23:59"])
    def test_valid(self, label):
        assert is_valid_time_label(label) is True

    @pytest.mark.parametrize("label", ["9:30", "24:00", "12:60", "0930", "", None, 930])
    def test_invalid(self, label):
        assert is_valid_time_label(label) is False


def test_add_days():
    start = datetime(2025, 1, 30, 12, 0, tzinfo=timezone.utc)
    assert add_days(start, 7) == datetime(2025, 2, 6, 12, 0, tzinfo=timezone.utc)
