"""Tests for almanac.analytics.periods."""

from datetime import UTC, date, datetime, timedelta, timezone

import pytest

from almanac.analytics.periods import (
    Cadence,
    month_range,
    parse_cadence,
    parse_period_key,
    period_key,
    period_keys,
    period_range,
    previous_period_key,
    previous_period_start,
    quarter_range,
    to_utc,
    week_range,
    year_range,
)
from almanac.core.exceptions import InvalidCadence

END_MS = timedelta(hours=23, minutes=59, seconds=59, milliseconds=999)


@pytest.mark.smoke
class TestRanges:
    def test_week_wednesday(self):
        start, end = week_range(datetime(2026, 2, 18, 15, 30, tzinfo=UTC))
        assert start == datetime(2026, 2, 16, tzinfo=UTC)
        assert end == datetime(2026, 2, 22, tzinfo=UTC) + END_MS

    def test_week_sunday_belongs_to_previous_monday(self):
        start, _ = week_range(datetime(2026, 2, 22, 23, 0, tzinfo=UTC))
        assert start == datetime(2026, 2, 16, tzinfo=UTC)

    def test_week_monday_midnight(self):
        start, _ = week_range(datetime(2026, 2, 16, tzinfo=UTC))
        assert start == datetime(2026, 2, 16, tzinfo=UTC)

    def test_week_spans_year_boundary(self):
        start, end = week_range(date(2026, 1, 1))
        assert start == datetime(2025, 12, 29, tzinfo=UTC)
        assert end.date() == date(2026, 1, 4)

    def test_month_february_leap_year(self):
        start, end = month_range(date(2028, 2, 10))
        assert start == datetime(2028, 2, 1, tzinfo=UTC)
        assert end.date() == date(2028, 2, 29)

    def test_month_december(self):
        _, end = month_range(date(2026, 12, 5))
        assert end == datetime(2026, 12, 31, tzinfo=UTC) + END_MS

    @pytest.mark.parametrize(
        "day,first,last",
        [
            (date(2026, 2, 18), date(2026, 1, 1), date(2026, 3, 31)),
            (date(2026, 5, 1), date(2026, 4, 1), date(2026, 6, 30)),
            (date(2026, 9, 30), date(2026, 7, 1), date(2026, 9, 30)),
            (date(2026, 11, 11), date(2026, 10, 1), date(2026, 12, 31)),
        ],
    )
    def test_quarters(self, day, first, last):
        start, end = quarter_range(day)
        assert start.date() == first
        assert end.date() == last

    def test_year(self):
        start, end = year_range(datetime(2026, 7, 4, tzinfo=UTC))
        assert start == datetime(2026, 1, 1, tzinfo=UTC)
        assert end == datetime(2026, 12, 31, tzinfo=UTC) + END_MS

    def test_ranges_are_utc_aware(self):
        for cadence in Cadence:
            start, end = period_range(date(2026, 2, 18), cadence)
            assert start.tzinfo is UTC
            assert end.tzinfo is UTC
            assert start < end


@pytest.mark.smoke
class TestKeys:
    def test_period_keys(self):
        keys = period_keys(datetime(2026, 2, 18, 12, tzinfo=UTC))
        assert keys == {
            Cadence.WEEKLY: "weekly-2026-02-16",
            Cadence.MONTHLY: "monthly-2026-02-01",
            Cadence.QUARTERLY: "quarterly-2026-01-01",
            Cadence.ANNUAL: "annual-2026-01-01",
        }

    def test_same_period_same_key(self):
        assert period_key(date(2026, 2, 16), "weekly") == period_key(date(2026, 2, 22), "weekly")
        assert period_key(date(2026, 2, 15), "weekly") != period_key(date(2026, 2, 16), "weekly")

    def test_non_utc_offset_is_converted(self):
        # 01:00 on Monday at UTC+3 is still Sunday in UTC
        local = datetime(2026, 2, 16, 1, 0, tzinfo=timezone(timedelta(hours=3)))
        assert period_key(local, Cadence.WEEKLY) == "weekly-2026-02-09"

    def test_naive_treated_as_utc(self):
        assert to_utc(datetime(2026, 2, 16, 1, 0)) == datetime(2026, 2, 16, 1, 0, tzinfo=UTC)

    def test_unknown_cadence(self):
        with pytest.raises(InvalidCadence):
            period_key(date(2026, 2, 18), "fortnightly")
        with pytest.raises(ValueError):
            parse_cadence("daily")

    def test_previous_period(self):
        when = date(2026, 3, 2)
        assert previous_period_key(when, "weekly") == "weekly-2026-02-23"
        assert previous_period_key(when, "monthly") == "monthly-2026-02-01"
        assert previous_period_key(when, "quarterly") == "quarterly-2025-10-01"
        assert previous_period_key(when, "annual") == "annual-2025-01-01"
        assert previous_period_start(when, "weekly") == datetime(2026, 2, 23, tzinfo=UTC)

    def test_parse_period_key(self):
        assert parse_period_key("quarterly-2026-04-01") == (Cadence.QUARTERLY, date(2026, 4, 1))
        with pytest.raises(InvalidCadence):
            parse_period_key("daily-2026-04-01")
