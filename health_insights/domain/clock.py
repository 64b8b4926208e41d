"""
Time helpers shared by the analysis functions.

The engine never reads the system clock. Callers pass ``now`` in, and every
timestamp parsed from a record is normalized to timezone-aware UTC so that
comparisons between record dates and ``now`` are always well defined.
"""

from datetime import UTC, date, datetime, time, timedelta
from typing import Any

from pydantic import TypeAdapter, ValidationError

_DATETIME_ADAPTER: TypeAdapter[datetime] = TypeAdapter(datetime)
_DATE_ADAPTER: TypeAdapter[date] = TypeAdapter(date)

_ONE_DAY = timedelta(days=1)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_timestamp(value: Any) -> datetime | None:
    """
    Parse a record timestamp into an aware UTC datetime.

    Accepts datetimes, dates and ISO 8601 strings (date-only strings become
    midnight UTC). Anything unparseable yields None rather than raising.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=UTC)
    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    try:
        return as_utc(_DATETIME_ADAPTER.validate_python(text))
    except OverflowError:
        return None
    except ValidationError:
        pass
    try:
        parsed_date = _DATE_ADAPTER.validate_python(text)
    except ValidationError:
        return None
    return datetime.combine(parsed_date, time.min, tzinfo=UTC)


def coerce_now(now: Any) -> datetime:
    """
    Validate the caller-supplied evaluation time.

    A bad ``now`` is a programming error in the caller, not a data-quality
    issue, so it raises instead of degrading.
    """
    if isinstance(now, datetime):
        return as_utc(now)
    if isinstance(now, date):
        return datetime.combine(now, time.min, tzinfo=UTC)
    raise TypeError(f"now must be a datetime, got {type(now).__name__}")


def days_between(later: datetime, earlier: datetime) -> int:
    """Whole days from ``earlier`` to ``later``, truncated toward zero."""
    return int((later - earlier) / _ONE_DAY)


def whole_years_between(later: datetime, earlier: datetime) -> int:
    """Completed calendar years from ``earlier`` to ``later`` (age arithmetic)."""
    years = later.year - earlier.year
    if (later.month, later.day) < (earlier.month, earlier.day):
        years -= 1
    return years


def subtract_months(moment: datetime, months: int) -> datetime:
    """Move ``moment`` back by calendar months, clamping the day of month."""
    month_index = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(moment.day, _days_in_month(year, month))
    return moment.replace(year=year, month=month, day=day)


def _days_in_month(year: int, month: int) -> int:
    if month == 12:
        return 31
    return (date(year, month + 1, 1) - date(year, month, 1)).days
