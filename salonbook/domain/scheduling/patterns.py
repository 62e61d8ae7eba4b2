"""
One-shot pattern expansion for bulk working-day creation

Nothing here is stored: a pattern is expanded into concrete dates, the
caller validates and inserts them, and the pattern is forgotten.
Weekdays follow ``date.weekday()`` (Monday == 0).
"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable

from .time_utils import normalize_time, parse_date

# Guard against runaway ranges (roughly two years)
MAX_PATTERN_DAYS = 731


@dataclass(frozen=True)
class BreakSpan:
    start_time: str
    end_time: str


@dataclass(frozen=True)
class GeneratedWorkingDay:
    date: date
    start_time: str
    end_time: str
    breaks: tuple[BreakSpan, ...] = field(default_factory=tuple)


def _span(brk) -> BreakSpan:
    # Accepts (start, end) pairs, API BreakInput models and ORM/engine breaks
    if isinstance(brk, (tuple, list)):
        start, end = brk
    elif hasattr(brk, "startTime"):
        start, end = brk.startTime, brk.endTime
    else:
        start, end = brk.start_time, brk.end_time
    return BreakSpan(normalize_time(start), normalize_time(end))


def _hours(start_time, end_time, breaks: Iterable) -> tuple[str, str, tuple[BreakSpan, ...]]:
    return normalize_time(start_time), normalize_time(end_time), tuple(_span(b) for b in breaks)


def _each_day(start_date, end_date) -> list[date]:
    start = parse_date(start_date)
    end = parse_date(end_date)
    if end < start:
        raise ValueError("End date must not be before start date")
    total = (end - start).days + 1
    if total > MAX_PATTERN_DAYS:
        raise ValueError(f"Pattern range is limited to {MAX_PATTERN_DAYS} days")
    return [start + timedelta(days=i) for i in range(total)]


def generate_from_weekly_pattern(
    start_date, end_date, weekdays: Iterable[int], start_time, end_time, breaks: Iterable = ()
) -> list[GeneratedWorkingDay]:
    """Working days on the given weekdays between two dates (inclusive)"""
    selected = set(weekdays)
    start, end, spans = _hours(start_time, end_time, breaks)
    return [
        GeneratedWorkingDay(day, start, end, spans)
        for day in _each_day(start_date, end_date)
        if day.weekday() in selected
    ]


def generate_from_rotation_pattern(
    start_date, end_date, days_on: int, days_off: int, start_time, end_time, breaks: Iterable = ()
) -> list[GeneratedWorkingDay]:
    """
    Working days from an on/off rotation (e.g. 2 on, 2 off).

    The cycle starts on ``start_date`` with the first "on" day.
    """
    if days_on <= 0:
        raise ValueError("days_on must be positive")
    if days_off < 0:
        raise ValueError("days_off must not be negative")

    cycle = days_on + days_off
    start, end, spans = _hours(start_time, end_time, breaks)
    return [
        GeneratedWorkingDay(day, start, end, spans)
        for i, day in enumerate(_each_day(start_date, end_date))
        if i % cycle < days_on
    ]


def generate_from_dates(dates: Iterable, start_time, end_time, breaks: Iterable = ()) -> list[GeneratedWorkingDay]:
    """Same hours on an explicit list of dates; duplicates are dropped"""
    start, end, spans = _hours(start_time, end_time, breaks)
    unique = sorted({parse_date(d) for d in dates})
    return [GeneratedWorkingDay(day, start, end, spans) for day in unique]


def generate_from_pattern(request) -> list[GeneratedWorkingDay]:
    """Expand a BulkScheduleRequest"""
    hours = request.workingHours
    if request.type == "weekly":
        return generate_from_weekly_pattern(
            request.startDate, request.endDate, request.weekdays, hours.startTime, hours.endTime, hours.breaks
        )
    if request.type == "rotation":
        return generate_from_rotation_pattern(
            request.startDate,
            request.endDate,
            request.daysOn,
            request.daysOff or 0,
            hours.startTime,
            hours.endTime,
            hours.breaks,
        )
    if request.type == "dates":
        return generate_from_dates(request.dates, hours.startTime, hours.endTime, hours.breaks)
    raise ValueError(f"Unknown pattern type: {request.type}")


def filter_existing_dates(generated: Iterable[GeneratedWorkingDay], existing_dates: Iterable) -> list[GeneratedWorkingDay]:
    existing = {parse_date(d) for d in existing_dates}
    return [day for day in generated if day.date not in existing]


def count_new_and_existing(generated: Iterable[GeneratedWorkingDay], existing_dates: Iterable) -> tuple[int, int]:
    """Return (new_count, existing_count) for a preview"""
    existing = {parse_date(d) for d in existing_dates}
    new_count = existing_count = 0
    for day in generated:
        if day.date in existing:
            existing_count += 1
        else:
            new_count += 1
    return new_count, existing_count
