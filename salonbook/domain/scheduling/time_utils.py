"""
Time interval utilities

All clock times inside the engine are minutes since midnight. Strings at
the boundaries are "HH:MM" (the database also hands back "HH:MM:SS").
"""

import re
from datetime import date, datetime, time
from typing import Union

from .errors import FormatError

MINUTES_PER_DAY = 24 * 60

_TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")

TimeLike = Union[str, int, time]


def parse_time(value: TimeLike) -> int:
    """
    Parse a clock time into minutes since midnight.

    Accepts "HH:MM", "HH:MM:SS", a ``datetime.time`` or an int that is
    already in minutes. "24:00" is allowed and means end of day.

    Raises:
        FormatError: If the value is malformed or out of range
    """
    if isinstance(value, bool):
        raise FormatError(f"Invalid time value: {value!r}")
    if isinstance(value, int):
        if not 0 <= value <= MINUTES_PER_DAY:
            raise FormatError(f"Minutes out of range: {value}")
        return value
    if isinstance(value, time):
        return value.hour * 60 + value.minute
    if not isinstance(value, str):
        raise FormatError(f"Invalid time value: {value!r}")

    match = _TIME_PATTERN.match(value.strip())
    if not match:
        raise FormatError(f"Invalid time format: {value!r}. Expected HH:MM or HH:MM:SS")

    hours, minutes = int(match.group(1)), int(match.group(2))
    seconds = int(match.group(3) or 0)

    if hours == 24 and minutes == 0 and seconds == 0:
        return MINUTES_PER_DAY
    if hours > 23 or minutes > 59 or seconds > 59:
        raise FormatError(f"Time out of range: {value!r}")

    return hours * 60 + minutes


def format_minutes(minutes: int) -> str:
    """Format minutes since midnight as "HH:MM" """
    if not 0 <= minutes <= MINUTES_PER_DAY:
        raise FormatError(f"Minutes out of range: {minutes}")
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def normalize_time(value: TimeLike) -> str:
    """Normalize "H:MM" / "HH:MM:SS" / time objects to "HH:MM" """
    return format_minutes(parse_time(value))


def add_minutes(value: TimeLike, delta: int) -> str:
    """Shift a clock time by ``delta`` minutes, staying inside the day"""
    return format_minutes(parse_time(value) + delta)


def minutes_between(start: TimeLike, end: TimeLike) -> int:
    return parse_time(end) - parse_time(start)


def overlaps(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    """Half-open interval overlap; touching endpoints do not overlap"""
    return start_a < end_b and start_b < end_a


def is_range_within(inner_start: int, inner_end: int, outer_start: int, outer_end: int) -> bool:
    return inner_start >= outer_start and inner_end <= outer_end


def parse_date(value: Union[str, date]) -> date:
    """
    Parse a "YYYY-MM-DD" calendar date.

    Raises:
        FormatError: If the value is not a valid ISO date
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        raise FormatError(f"Invalid date format: {value!r}. Expected YYYY-MM-DD") from None


def minutes_of(moment: datetime) -> int:
    """Minutes since midnight of a datetime, ignoring seconds"""
    return moment.hour * 60 + moment.minute
