"""Tests for time helpers."""

from datetime import datetime, timedelta, timezone

import pytest

from bias_app.utils.time import (
    NEW_YORK,
    ensure_utc,
    format_time,
    lookback_window,
    ny_now,
    parse_time,
    utc_now,
)


class TestClock:
    """Test wall-clock helpers."""

    def test_utc_now_is_aware(self):
        """Test utc_now returns an aware UTC datetime."""
        assert utc_now().tzinfo == timezone.utc

    def test_ny_now_in_new_york(self):
        """Test ny_now is expressed in America/New_York."""
        now = ny_now()
        assert now.tzinfo == NEW_YORK
        assert abs((now - utc_now()).total_seconds()) < 5


class TestEnsureUtc:
    """Test ensure_utc normalization."""

    def test_naive_treated_as_utc(self):
        """Test naive datetimes get UTC attached."""
        result = ensure_utc(datetime(2024, 1, 1, 12, 0))
        assert result == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def test_other_zone_converted(self):
        """Test aware datetimes are converted to UTC."""
        ny_time = datetime(2024, 1, 1, 9, 30, tzinfo=NEW_YORK)
        assert ensure_utc(ny_time) == datetime(2024, 1, 1, 14, 30, tzinfo=timezone.utc)
        assert ensure_utc(ny_time).tzinfo == timezone.utc

    def test_fallback_used_for_missing(self):
        """Test the fallback replaces None."""
        fallback = datetime(2024, 6, 1, tzinfo=timezone.utc)
        assert ensure_utc(None, fallback=fallback) == fallback

    def test_missing_defaults_to_now(self):
        """Test None without fallback becomes now."""
        assert abs((ensure_utc(None) - utc_now()).total_seconds()) < 5


class TestLookbackWindow:
    """Test lookback_window."""

    def test_window_bounds(self):
        """Test the window ends at now and spans the given hours."""
        now = datetime(2024, 3, 1, 12, tzinfo=timezone.utc)

        since, until = lookback_window(4, now)

        assert until == now
        assert until - since == timedelta(hours=4)

    @pytest.mark.parametrize("hours", [0, -1])
    def test_non_positive_rejected(self, hours):
        """Test a non-positive window is rejected."""
        with pytest.raises(ValueError):
            lookback_window(hours)


class TestFormatting:
    """Test ISO formatting helpers."""

    def test_format_and_parse(self):
        """Test formatted timestamps parse back to the same instant."""
        ts = datetime(2024, 3, 1, 15, 30, 5, 123000, tzinfo=timezone.utc)

        text = format_time(ts)

        assert text == "2024-03-01T15:30:05.123000+00:00"
        assert parse_time(text) == ts

    def test_parse_naive_string(self):
        """Test strings without offset are read as UTC."""
        assert parse_time("2024-03-01T15:30:00") == datetime(2024, 3, 1, 15, 30, tzinfo=timezone.utc)
