"""Tests for month-lock and future-date rules."""

from datetime import date, datetime, timezone

import pytest

from allocation_engine.errors import EntryLockedError, StateError, ValidationError
from allocation_engine.services.lock_rules import (
    FUTURE_DATE_MESSAGE,
    LOCKED_MONTH_MESSAGE,
    ensure_creatable,
    ensure_mutable,
    is_entry_locked,
    is_future_date,
    is_month_locked,
    late_log_days,
    month_end,
    to_business_date,
    today_in_business_tz,
)


class TestMonthLock:
    """Lock state is derived from the allocation date and today."""

    def test_month_end(self):
        """Test last-day computation including leap years."""
        assert month_end(date(2025, 1, 15)) == date(2025, 1, 31)
        assert month_end(date(2024, 2, 3)) == date(2024, 2, 29)
        assert month_end(date(2025, 2, 3)) == date(2025, 2, 28)
        assert month_end(date(2025, 12, 31)) == date(2025, 12, 31)

    def test_current_month_is_open(self):
        """Entries in the current month are open."""
        assert is_month_locked(date(2025, 3, 1), today=date(2025, 3, 14)) is False

    def test_last_day_of_month_is_still_open(self):
        """The month stays open through its last day."""
        assert is_month_locked(date(2025, 2, 10), today=date(2025, 2, 28)) is False

    def test_elapsed_month_is_locked(self):
        """Once today passes the last day, the month is locked."""
        assert is_month_locked(date(2025, 2, 28), today=date(2025, 3, 1)) is True
        assert is_month_locked(date(2024, 12, 31), today=date(2025, 1, 1)) is True

    def test_explicit_flag_forces_lock(self):
        """The admin flag locks entries in an open month."""
        assert is_entry_locked(date(2025, 3, 10), True, today=date(2025, 3, 14)) is True
        assert is_entry_locked(date(2025, 3, 10), False, today=date(2025, 3, 14)) is False

    def test_ensure_mutable_raises_state_error(self):
        """Locked entries raise the entry-locked error."""
        with pytest.raises(EntryLockedError) as exc_info:
            ensure_mutable(date(2025, 2, 1), False, today=date(2025, 3, 1))

        assert isinstance(exc_info.value, StateError)
        assert exc_info.value.message == "This entry is locked and cannot be modified"


class TestCreationRules:
    """Creation rejects future dates and closed months."""

    def test_today_is_allowed(self):
        """allocation_date == today passes."""
        ensure_creatable(date(2025, 3, 14), today=date(2025, 3, 14))

    def test_future_date_rejected(self):
        """Tomorrow is rejected with the future-date message."""
        assert is_future_date(date(2025, 3, 15), date(2025, 3, 14)) is True

        with pytest.raises(ValidationError) as exc_info:
            ensure_creatable(date(2025, 3, 15), today=date(2025, 3, 14))

        assert exc_info.value.message == FUTURE_DATE_MESSAGE

    def test_locked_month_rejected(self):
        """A date in the previous month is rejected after month end."""
        with pytest.raises(ValidationError) as exc_info:
            ensure_creatable(date(2025, 2, 27), today=date(2025, 3, 1))

        assert exc_info.value.message == LOCKED_MONTH_MESSAGE


class TestBusinessTimezone:
    """Today is evaluated on the business calendar."""

    def test_utc_after_midnight_is_previous_day_in_new_york(self):
        """02:00 UTC on the 1st is still the last day of the month in New York."""
        instant = datetime(2025, 3, 1, 2, 0, tzinfo=timezone.utc)

        assert to_business_date(instant, "America/New_York") == date(2025, 2, 28)
        assert today_in_business_tz(lambda: instant, "America/New_York") == date(2025, 2, 28)

    def test_naive_datetime_treated_as_utc(self):
        """Naive timestamps are interpreted as UTC."""
        assert to_business_date(datetime(2025, 3, 1, 2, 0), "America/New_York") == date(2025, 2, 28)
        assert to_business_date(datetime(2025, 3, 1, 12, 0), "America/New_York") == date(2025, 3, 1)


class TestLateLog:
    def test_late_log_days(self):
        """Days late counts calendar days after the allocation date."""
        assert late_log_days(date(2025, 3, 10), date(2025, 3, 10)) == 0
        assert late_log_days(date(2025, 3, 10), date(2025, 3, 13)) == 3
        assert late_log_days(date(2025, 3, 10), date(2025, 3, 9)) == 0
