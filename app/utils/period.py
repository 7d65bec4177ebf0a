"""Week period resolution."""
from datetime import date, datetime, timedelta, timezone
from typing import NamedTuple

from app.exceptions import ValidationError

WEEK_LENGTH_DAYS = 7


class WeekPeriod(NamedTuple):
    """Inclusive week range as ISO date strings."""

    start: str
    end: str


def parse_iso_day(value: str) -> date:
    """
    Parse an ISO-8601 date (or datetime) into a calendar date.

    Datetimes are anchored to UTC before taking the date part.

    Args:
        value: ISO date string, e.g. "2024-01-01" or "2024-01-01T00:00:00Z"

    Returns:
        The calendar date

    Raises:
        ValidationError: If the value is not a valid calendar date

    Example:
        >>> parse_iso_day("2024-01-01")
        datetime.date(2024, 1, 1)
    """
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"Invalid date: {value!r}")

    text = value.strip()
    try:
        if "T" in text:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            if parsed.tzinfo is not None:
                parsed = parsed.astimezone(timezone.utc)
            return parsed.date()
        return date.fromisoformat(text)
    except ValueError:
        raise ValidationError(f"Invalid date: {value!r}")


def resolve_week(week_start: str) -> WeekPeriod:
    """
    Turn a week-start date into a 7-day inclusive range.

    Args:
        week_start: ISO date meant to be the Monday of the week

    Returns:
        WeekPeriod with start and end (start + 6 days) as ISO dates

    Raises:
        ValidationError: If week_start is not a valid date or the week
            would end past year 9999

    Example:
        >>> resolve_week("2024-01-01")
        WeekPeriod(start='2024-01-01', end='2024-01-07')
    """
    start = parse_iso_day(week_start)
    try:
        end = start + timedelta(days=WEEK_LENGTH_DAYS - 1)
    except OverflowError:
        raise ValidationError(f"Week starting {start.isoformat()} runs past the last calendar date")
    return WeekPeriod(start=start.isoformat(), end=end.isoformat())


def is_within(period: WeekPeriod, day: str) -> bool:
    """Check whether an ISO day falls inside the period."""
    return period.start <= day <= period.end
