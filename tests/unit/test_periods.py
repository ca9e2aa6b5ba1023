"""Unit tests for leaderboard period windows."""

from datetime import date, datetime, timedelta, timezone

import pytest

from gamelink.enums import Period
from gamelink.errors import ValidationError
from gamelink.leaderboard.periods import (
    ALL_TIME_KEY,
    get_monday,
    parse_period,
    period_key,
    validate_period_key,
    window_bounds,
)


class TestPeriodKey:
    """Window keys per period."""

    def test_all_time_key_is_constant(self):
        assert period_key(Period.ALL_TIME, datetime(2026, 1, 1, tzinfo=timezone.utc)) == ALL_TIME_KEY
        assert period_key("all_time", datetime(2031, 7, 4, tzinfo=timezone.utc)) == ALL_TIME_KEY

    def test_monthly_key(self):
        assert period_key(Period.MONTHLY, datetime(2026, 10, 18, 12, tzinfo=timezone.utc)) == "2026-10"

    def test_weekly_key_uses_iso_week(self):
        assert period_key(Period.WEEKLY, datetime(2026, 10, 18, 12, tzinfo=timezone.utc)) == "2026-W42"

    def test_iso_year_differs_from_calendar_year(self):
        # 2027-01-01 is a Friday in ISO week 53 of 2026
        assert period_key(Period.WEEKLY, datetime(2027, 1, 1, tzinfo=timezone.utc)) == "2026-W53"

    def test_sunday_and_next_monday_are_different_weeks(self):
        sun = datetime(2026, 10, 18, 23, 59, 59, tzinfo=timezone.utc)
        mon = sun + timedelta(seconds=1)
        assert period_key(Period.WEEKLY, sun) != period_key(Period.WEEKLY, mon)

    def test_naive_datetimes_are_treated_as_utc(self):
        assert period_key(Period.MONTHLY, datetime(2026, 10, 31, 23, 30)) == "2026-10"

    def test_other_timezones_are_converted_to_utc(self):
        rome = timezone(timedelta(hours=2))
        # 01:00 in Rome on Nov 1st is still October in UTC
        assert period_key(Period.MONTHLY, datetime(2026, 11, 1, 1, 0, tzinfo=rome)) == "2026-10"


class TestParsePeriod:
    def test_accepts_enum_values(self):
        assert parse_period("weekly") is Period.WEEKLY
        assert parse_period(" Monthly ") is Period.MONTHLY

    def test_accepts_all_time_aliases(self):
        assert parse_period("alltime") is Period.ALL_TIME
        assert parse_period("global") is Period.ALL_TIME

    def test_rejects_unknown_period(self):
        with pytest.raises(ValidationError):
            parse_period("daily")


class TestWindowBounds:
    def test_weekly_window_starts_monday(self):
        start, end = window_bounds(Period.WEEKLY, datetime(2026, 10, 15, 9, tzinfo=timezone.utc))
        assert start == datetime(2026, 10, 12, tzinfo=timezone.utc)
        assert end - start == timedelta(days=7)

    def test_monthly_window_rolls_over_december(self):
        start, end = window_bounds(Period.MONTHLY, datetime(2026, 12, 31, tzinfo=timezone.utc))
        assert start == datetime(2026, 12, 1, tzinfo=timezone.utc)
        assert end == datetime(2027, 1, 1, tzinfo=timezone.utc)

    def test_all_time_is_unbounded(self):
        assert window_bounds(Period.ALL_TIME) == (None, None)

    def test_get_monday(self):
        assert get_monday(date(2026, 10, 18)) == date(2026, 10, 12)
        assert get_monday(datetime(2026, 10, 12, 8, tzinfo=timezone.utc)) == date(2026, 10, 12)


class TestValidatePeriodKey:
    @pytest.mark.parametrize(
        ("period", "key"),
        [(Period.WEEKLY, "2026-W42"), (Period.MONTHLY, "2026-10"), (Period.ALL_TIME, "all")],
    )
    def test_accepts_well_formed_keys(self, period, key):
        assert validate_period_key(period, key) == key

    @pytest.mark.parametrize(
        ("period", "key"),
        [(Period.WEEKLY, "2026-10"), (Period.MONTHLY, "2026-W42"), (Period.ALL_TIME, "2026"), (Period.MONTHLY, "2026-13")],
    )
    def test_rejects_mismatched_keys(self, period, key):
        with pytest.raises(ValidationError):
            validate_period_key(period, key)
