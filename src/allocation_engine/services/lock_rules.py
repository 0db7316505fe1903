"""Month-lock and future-date rules.

Lock state is a pure function of (allocation_date, is_locked flag, today).
Nothing is ever scheduled to "transition" an entry; the month boundary is
re-evaluated on every read and write.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, timezone
from typing import Callable
from zoneinfo import ZoneInfo

from allocation_engine.errors import EntryLockedError, ValidationError

LOCKED_MONTH_MESSAGE = "Cannot add entries for locked month. Month has ended."
FUTURE_DATE_MESSAGE = "Cannot add entries for future dates. Please select today or a past date."
LOCKED_ENTRY_MESSAGE = "This entry is locked and cannot be modified"
LOCKED_DELETE_MESSAGE = "This entry is locked and cannot be deleted"

DEFAULT_TIMEZONE = "America/New_York"

Clock = Callable[[], datetime]


def utc_clock() -> datetime:
    return datetime.now(timezone.utc)


def to_business_date(instant: datetime, tz_name: str = DEFAULT_TIMEZONE) -> date:
    """Calendar date of an instant in the business timezone.

    Naive datetimes (as returned by SQLite) are taken to be UTC.
    """
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(ZoneInfo(tz_name)).date()


def today_in_business_tz(clock: Clock = utc_clock, tz_name: str = DEFAULT_TIMEZONE) -> date:
    """Today in the business timezone, per the given clock."""
    return to_business_date(clock(), tz_name)


def month_end(value: date) -> date:
    """Last calendar day of the month containing value."""
    last_day = calendar.monthrange(value.year, value.month)[1]
    return value.replace(day=last_day)


def is_month_locked(allocation_date: date, today: date) -> bool:
    """True once the month containing allocation_date has fully elapsed."""
    return today > month_end(allocation_date)


def is_entry_locked(allocation_date: date, is_locked_flag: bool, today: date) -> bool:
    """Effective lock: explicit admin flag or elapsed month."""
    return bool(is_locked_flag) or is_month_locked(allocation_date, today)


def is_future_date(allocation_date: date, today: date) -> bool:
    return allocation_date > today


def late_log_days(allocation_date: date, logged_on: date) -> int:
    """Days between the attributed date and the capture date (0 when on time)."""
    return max(0, (logged_on - allocation_date).days)


def ensure_creatable(allocation_date: date, today: date) -> None:
    """Validate a new entry's date, raising ValidationError with the user-facing reason."""
    if is_future_date(allocation_date, today):
        raise ValidationError(FUTURE_DATE_MESSAGE)
    if is_month_locked(allocation_date, today):
        raise ValidationError(LOCKED_MONTH_MESSAGE)


def ensure_mutable(
    allocation_date: date,
    is_locked_flag: bool,
    today: date,
    message: str = LOCKED_ENTRY_MESSAGE,
) -> None:
    """Validate that an existing entry may still be edited or deleted."""
    if is_entry_locked(allocation_date, is_locked_flag, today):
        raise EntryLockedError(message)
