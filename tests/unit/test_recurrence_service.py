"""
Unit tests for recurrence_service.

Tests cover:
- expand_dates: weekly rrule expansion from the day after the base date
- expand_occurrences: wall-clock preservation and UTC conversion
"""

from datetime import UTC, date, datetime, timedelta

import pytest

from scheduling.errors import ValidationError
from scheduling.schemas import RecurrencePattern
from scheduling.services.recurrence_service import expand_dates, expand_occurrences
from shared.business_calendar import local_datetime


class TestExpandDates:
    def test_mondays_and_wednesdays(self):
        """Monday 2024-01-01 base, Mon/Wed through Jan 15."""
        dates = expand_dates(date(2024, 1, 1), [1, 3], date(2024, 1, 15))
        assert dates == [
            date(2024, 1, 3),
            date(2024, 1, 8),
            date(2024, 1, 10),
            date(2024, 1, 15),
        ]

    def test_base_date_is_not_repeated(self):
        dates = expand_dates(date(2024, 1, 1), [1], date(2024, 1, 8))
        assert dates == [date(2024, 1, 8)]

    def test_end_date_on_base_date(self):
        assert expand_dates(date(2024, 1, 1), [1, 3], date(2024, 1, 1)) == []

    def test_sunday_is_zero(self):
        dates = expand_dates(date(2024, 1, 1), [0], date(2024, 1, 14))
        assert dates == [date(2024, 1, 7), date(2024, 1, 14)]

    def test_closed_days_are_included(self):
        """Wednesday appears even though the shop is closed."""
        assert expand_dates(date(2024, 1, 1), [3], date(2024, 1, 3)) == [date(2024, 1, 3)]


class TestExpandOccurrences:
    def test_keeps_local_time_and_duration(self):
        start = local_datetime(date(2024, 1, 1), 12)
        end = local_datetime(date(2024, 1, 1), 13, 30)
        pattern = RecurrencePattern(days_of_week=[1, 3], end_date=date(2024, 1, 15))

        occurrences = expand_occurrences(start, end, pattern)

        assert len(occurrences) == 4
        first_start, first_end = occurrences[0]
        assert first_start == local_datetime(date(2024, 1, 3), 12).astimezone(UTC)
        assert first_end - first_start == timedelta(minutes=90)
        assert all(s.tzinfo == UTC for s, _ in occurrences)

    def test_end_date_before_base_rejected(self):
        start = local_datetime(date(2024, 1, 8), 12)
        pattern = RecurrencePattern(days_of_week=[1], end_date=date(2024, 1, 1))
        with pytest.raises(ValidationError) as exc_info:
            expand_occurrences(start, start + timedelta(hours=1), pattern)
        assert exc_info.value.error_code == "INVALID_RECURRENCE"

    def test_base_date_uses_business_timezone(self):
        """23:30 UTC Sunday is already Monday in Singapore."""
        start = datetime(2023, 12, 31, 23, 30, tzinfo=UTC)
        pattern = RecurrencePattern(days_of_week=[1], end_date=date(2024, 1, 8))
        occurrences = expand_occurrences(start, start + timedelta(hours=1), pattern)
        assert occurrences == [(start + timedelta(days=7), start + timedelta(days=7, hours=1))]


class TestRecurrencePattern:
    def test_weekdays_sorted_and_deduplicated(self):
        pattern = RecurrencePattern(days_of_week=[3, 1, 3], end_date=date(2024, 1, 15))
        assert pattern.days_of_week == [1, 3]

    def test_invalid_weekday(self):
        with pytest.raises(ValueError):
            RecurrencePattern(days_of_week=[7], end_date=date(2024, 1, 15))
