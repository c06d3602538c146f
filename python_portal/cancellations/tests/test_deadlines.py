"""
Unit and property-based tests for the deadline calculator.
"""
import calendar
from datetime import datetime, timedelta, timezone as dt_timezone

from hypothesis import given, settings
import hypothesis.strategies as st

from cancellations.services.deadlines import basic_deadline, days_elapsed, extended_deadline
from cancellations.tests.helpers import TOKYO, jst


class TestBasicDeadline:
    """Tests for basic_deadline function."""

    def test_seven_days_at_end_of_day(self):
        assert basic_deadline(jst(2024, 1, 15, 10, 0)) == jst(2024, 1, 22, 23, 59, 59)

    def test_crosses_month_boundary(self):
        assert basic_deadline(jst(2024, 1, 28, 9, 30)) == jst(2024, 2, 4, 23, 59, 59)

    def test_microseconds_are_dropped(self):
        deadline = basic_deadline(jst(2024, 1, 15, 23, 59, 59, 999999))
        assert deadline.microsecond == 0
        assert deadline == jst(2024, 1, 22, 23, 59, 59)

    def test_utc_input_is_read_in_given_zone(self):
        # 2024-01-15 20:00 UTC is already 2024-01-16 in Tokyo
        delivered = datetime(2024, 1, 15, 20, 0, tzinfo=dt_timezone.utc)
        assert basic_deadline(delivered, tz=TOKYO) == jst(2024, 1, 23, 23, 59, 59)

    def test_naive_input_stays_naive(self):
        deadline = basic_deadline(datetime(2024, 1, 15, 10, 0))
        assert deadline == datetime(2024, 1, 22, 23, 59, 59)
        assert deadline.tzinfo is None

    def test_custom_window(self):
        assert basic_deadline(jst(2024, 1, 15), window_days=3) == jst(2024, 1, 18, 23, 59, 59)


class TestExtendedDeadline:
    """Tests for extended_deadline function."""

    def test_leap_february(self):
        assert extended_deadline(jst(2024, 1, 15, 10, 0)) == jst(2024, 2, 29, 23, 59, 59)

    def test_non_leap_february(self):
        assert extended_deadline(jst(2023, 1, 31)) == jst(2023, 2, 28, 23, 59, 59)

    def test_december_rolls_into_next_year(self):
        assert extended_deadline(jst(2024, 12, 3, 8, 0)) == jst(2025, 1, 31, 23, 59, 59)

    def test_thirty_day_month(self):
        assert extended_deadline(jst(2024, 3, 31)) == jst(2024, 4, 30, 23, 59, 59)


class TestDaysElapsed:

    def test_whole_days(self):
        assert days_elapsed(jst(2024, 1, 15, 10, 0), jst(2024, 1, 20, 9, 0)) == 4

    def test_never_negative(self):
        assert days_elapsed(jst(2024, 1, 15), jst(2024, 1, 14)) == 0


delivery_times = st.datetimes(
    min_value=datetime(2000, 1, 1),
    max_value=datetime(2099, 12, 31, 23, 59, 59),
).map(lambda d: d.replace(tzinfo=TOKYO))


class TestDeadlineProperties:
    """
    Deadlines depend only on the delivery timestamp, always fall at
    23:59:59 and never precede the delivery.
    """

    @settings(max_examples=200)
    @given(delivered=delivery_times)
    def test_basic_deadline_is_day_seven_end_of_day(self, delivered):
        deadline = basic_deadline(delivered)

        assert deadline.date() == (delivered + timedelta(days=7)).date()
        assert (deadline.hour, deadline.minute, deadline.second, deadline.microsecond) == (23, 59, 59, 0)
        assert deadline > delivered

    @settings(max_examples=200)
    @given(delivered=delivery_times)
    def test_extended_deadline_is_last_day_of_next_month(self, delivered):
        deadline = extended_deadline(delivered)

        expected_month = delivered.month % 12 + 1
        assert deadline.month == expected_month
        assert deadline.day == calendar.monthrange(deadline.year, deadline.month)[1]
        assert (deadline.hour, deadline.minute, deadline.second) == (23, 59, 59)
        assert deadline >= basic_deadline(delivered)

    @settings(max_examples=100)
    @given(delivered=delivery_times)
    def test_deterministic(self, delivered):
        assert basic_deadline(delivered) == basic_deadline(delivered)
        assert extended_deadline(delivered) == extended_deadline(delivered)
