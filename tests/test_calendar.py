"""Business calendar arithmetic."""

from datetime import datetime, timedelta, timezone

import pytest
from hypothesis import given, settings, strategies as st

from ticketflow.core.exceptions import ConfigurationException
from ticketflow.sla.domain import BusinessCalendar, default_calendar

UTC = timezone.utc

OFFICE_HOURS = BusinessCalendar(
    working_days=frozenset({0, 1, 2, 3, 4}),
    day_start_hour=9,
    day_end_hour=18,
)

instants = st.datetimes(
    min_value=datetime(2023, 1, 1),
    max_value=datetime(2026, 12, 31),
    timezones=st.just(UTC),
)
hours = st.floats(min_value=0.01, max_value=400, allow_nan=False, allow_infinity=False)


class TestDefaultCalendar:
    def test_skips_weekend(self):
        friday_evening = datetime(2024, 1, 19, 20, 0, tzinfo=UTC)
        due = default_calendar().add_business_hours(friday_evening, 8)
        assert due == datetime(2024, 1, 22, 4, 0, tzinfo=UTC)

    def test_start_on_weekend_rolls_to_monday(self):
        saturday = datetime(2024, 1, 20, 12, 0, tzinfo=UTC)
        due = default_calendar().add_business_hours(saturday, 1)
        assert due == datetime(2024, 1, 22, 1, 0, tzinfo=UTC)

    def test_zero_hours_is_identity(self):
        start = datetime(2024, 1, 20, 12, 0, tzinfo=UTC)
        assert default_calendar().add_business_hours(start, 0) == start

    def test_hours_between_over_weekend(self):
        cal = default_calendar()
        start = datetime(2024, 1, 19, 12, 0, tzinfo=UTC)
        end = datetime(2024, 1, 22, 12, 0, tzinfo=UTC)
        assert cal.business_hours_between(start, end) == pytest.approx(24.0)
        assert cal.business_hours_between(end, start) == pytest.approx(-24.0)

    def test_naive_datetimes_are_treated_as_utc(self):
        due = default_calendar().add_business_hours(datetime(2024, 1, 15, 10, 0), 2)
        assert due == datetime(2024, 1, 15, 12, 0, tzinfo=UTC)


class TestOfficeHours:
    def test_rolls_over_to_next_morning(self):
        due = OFFICE_HOURS.add_business_hours(datetime(2024, 1, 15, 17, 0, tzinfo=UTC), 2)
        assert due == datetime(2024, 1, 16, 10, 0, tzinfo=UTC)

    def test_before_opening_starts_at_opening(self):
        due = OFFICE_HOURS.add_business_hours(datetime(2024, 1, 15, 6, 0, tzinfo=UTC), 1)
        assert due == datetime(2024, 1, 15, 10, 0, tzinfo=UTC)

    def test_is_business_time(self):
        assert OFFICE_HOURS.is_business_time(datetime(2024, 1, 15, 9, 0, tzinfo=UTC))
        assert not OFFICE_HOURS.is_business_time(datetime(2024, 1, 15, 18, 0, tzinfo=UTC))
        assert not OFFICE_HOURS.is_business_time(datetime(2024, 1, 20, 12, 0, tzinfo=UTC))

    def test_negative_hours_walk_backwards(self):
        start = datetime(2024, 1, 16, 10, 0, tzinfo=UTC)
        assert OFFICE_HOURS.add_business_hours(start, -2) == datetime(2024, 1, 15, 17, 0, tzinfo=UTC)

    def test_window_in_local_timezone(self):
        kolkata = BusinessCalendar(
            working_days=frozenset({0, 1, 2, 3, 4, 5}),
            day_start_hour=9,
            day_end_hour=18,
            timezone_name="Asia/Kolkata",
        )
        # 09:00 IST
        start = datetime(2024, 1, 15, 3, 30, tzinfo=UTC)
        assert kolkata.add_business_hours(start, 9) == datetime(2024, 1, 15, 12, 30, tzinfo=UTC)
        # Saturday is a working day, Sunday is not
        saturday_close = datetime(2024, 1, 20, 12, 30, tzinfo=UTC)
        assert kolkata.add_business_hours(saturday_close, 1) == datetime(2024, 1, 22, 4, 30, tzinfo=UTC)


class TestValidation:
    @pytest.mark.parametrize("kwargs", [
        {"working_days": frozenset()},
        {"working_days": frozenset({7})},
        {"day_start_hour": 18, "day_end_hour": 9},
        {"day_start_hour": 0, "day_end_hour": 25},
    ])
    def test_invalid_calendar(self, kwargs):
        with pytest.raises(ConfigurationException):
            BusinessCalendar(**kwargs)


class TestProperties:
    @settings(max_examples=200, deadline=None)
    @given(start=instants, h=hours)
    def test_added_hours_are_counted_back(self, start, h):
        for cal in (default_calendar(), OFFICE_HOURS):
            due = cal.add_business_hours(start, h)
            assert cal.business_hours_between(start, due) == pytest.approx(h, abs=1e-5)

    @settings(max_examples=200, deadline=None)
    @given(start=instants, a=hours, b=hours)
    def test_monotonic_in_hours(self, start, a, b):
        low, high = sorted((a, b))
        assert OFFICE_HOURS.add_business_hours(start, low) <= OFFICE_HOURS.add_business_hours(start, high)

    @settings(max_examples=100, deadline=None)
    @given(start=instants, h=hours)
    def test_never_earlier_than_start(self, start, h):
        due = OFFICE_HOURS.add_business_hours(start, h)
        assert due > start
        assert due - start >= timedelta(hours=h) - timedelta(microseconds=1)

    @settings(max_examples=100, deadline=None)
    @given(start=instants, h=hours)
    def test_deadline_lands_in_working_time(self, start, h):
        due = OFFICE_HOURS.add_business_hours(start, h)
        # A deadline sits inside a window or exactly on its closing edge
        assert OFFICE_HOURS.is_business_time(due - timedelta(microseconds=1))
