"""
Slot generation

Turns one working day, its breaks and the day's appointments into the list
of candidate start times for a service of a given duration.
"""

from datetime import date
from typing import Iterable, Optional, Sequence

from .clock import Clock, SystemClock, local_now
from .lifecycle import is_active
from .schemas import FreeGap, ServiceWindow, TimeSlot
from .time_utils import add_minutes, format_minutes, minutes_of, overlaps, parse_date, parse_time

DEFAULT_SLOT_INTERVAL = 30


class _Blocked:
    __slots__ = ("start", "end", "reason")

    def __init__(self, start: int, end: int, reason: str):
        self.start = start
        self.end = end
        self.reason = reason


def _blocked_ranges(breaks: Iterable, appointments: Iterable) -> list[_Blocked]:
    """Breaks plus active appointments, sorted by start"""
    blocked = [_Blocked(parse_time(b.start_time), parse_time(b.end_time), "break") for b in breaks]
    for appointment in appointments:
        if not is_active(appointment.status):
            continue
        blocked.append(
            _Blocked(parse_time(appointment.start_time), parse_time(appointment.end_time), "booked")
        )
    blocked.sort(key=lambda r: (r.start, r.end))
    return blocked


def effective_window(
    work_start: int, work_end: int, service_windows: Sequence[ServiceWindow] = ()
) -> Optional[tuple[int, int]]:
    """
    Intersect working hours with every service's own bookable window.

    A service with either bound missing uses the full working hours.
    Returns None when the intersection is empty.
    """
    start, end = work_start, work_end
    for window in service_windows:
        if not window.available_from or not window.available_to:
            continue
        start = max(start, parse_time(window.available_from))
        end = min(end, parse_time(window.available_to))
        if start >= end:
            return None
    if start >= end:
        return None
    return start, end


def _next_obstruction(moment: int, blocked: list[_Blocked], day_end: int) -> int:
    """Start of the first blocked range after ``moment``, or the day end"""
    for r in blocked:
        if r.start > moment:
            return min(r.start, day_end)
    return day_end


def earliest_bookable_minute(target: date, timezone: str, clock: Clock, min_notice_hours) -> Optional[int]:
    """
    First bookable minute on ``target`` in provider time.

    None means the whole date lies in the past. Dates after today have no
    lower bound (0).
    """
    now = local_now(clock, timezone)
    today = now.date()
    if target < today:
        return None
    if target > today:
        return 0
    return minutes_of(now) + int(round(float(min_notice_hours) * 60))


def generate_slots(
    working_day,
    breaks: Optional[Iterable] = None,
    appointments: Iterable = (),
    service_duration: int = DEFAULT_SLOT_INTERVAL,
    slot_interval: Optional[int] = None,
    min_notice_hours=0,
    target_date=None,
    timezone: str = "UTC",
    clock: Optional[Clock] = None,
    service_windows: Sequence[ServiceWindow] = (),
) -> list[TimeSlot]:
    """
    Generate candidate slots for a single day.

    Steps run from the start of the effective window (working hours narrowed
    by any service windows) by ``slot_interval`` up to the last start that
    still fits ``service_duration`` before the day ends. Steps that fall
    inside a break or an active appointment are not offered at all; every
    other step is returned, flagged unavailable with a reason (``past``,
    ``break``, ``booked``, ``outside_hours``) when it cannot be booked.
    Each slot reports the free minutes from its start up to the next break,
    booking or the end of the day.

    Args:
        working_day: Working day for the date, or None when the provider is off
        breaks: Breaks of the day (defaults to ``working_day.breaks``)
        appointments: Appointments on the date; inactive ones are ignored
        service_duration: Requested service length in minutes
        slot_interval: Stepping granularity (defaults to the day's interval)
        min_notice_hours: Minimum lead time before a slot on today's date
        target_date: Date being generated (defaults to ``working_day.date``)
        timezone: Provider IANA timezone used to resolve "now"
        clock: Source of the current instant
        service_windows: Per-service time windows to intersect with hours

    Returns:
        Ordered list of TimeSlot
    """
    if working_day is None:
        return []

    if service_duration <= 0:
        raise ValueError("Service duration must be positive")

    if breaks is None:
        breaks = getattr(working_day, "breaks", None) or []
    if slot_interval is None:
        slot_interval = getattr(working_day, "slot_interval_minutes", None) or DEFAULT_SLOT_INTERVAL
    if slot_interval <= 0:
        raise ValueError("Slot interval must be positive")
    target = parse_date(target_date if target_date is not None else working_day.date)
    clock = clock or SystemClock()

    day_start = parse_time(working_day.start_time)
    day_end = parse_time(working_day.end_time)

    window = effective_window(day_start, day_end, service_windows)
    if window is None:
        return []
    window_start, window_end = window

    blocked = _blocked_ranges(breaks, appointments)
    earliest = earliest_bookable_minute(target, timezone, clock, min_notice_hours)

    slots: list[TimeSlot] = []
    last_start = day_end - service_duration

    t = window_start
    while t <= last_start:
        end = t + service_duration

        # Inside a break or booking: not a candidate start at all
        if any(r.start <= t < r.end for r in blocked):
            t += slot_interval
            continue

        slot = {"time": format_minutes(t), "duration_minutes": _next_obstruction(t, blocked, day_end) - t}

        if end > window_end:
            slots.append(TimeSlot(**slot, available=False, reason="outside_hours"))
        elif earliest is None or t < earliest:
            slots.append(TimeSlot(**slot, available=False, reason="past"))
        else:
            hit = next((r for r in blocked if overlaps(t, end, r.start, r.end)), None)
            if hit is not None:
                slots.append(TimeSlot(**slot, available=False, reason=hit.reason))
            else:
                slots.append(TimeSlot(**slot, available=True))

        t += slot_interval

    return slots


def available_slots(slots: Iterable[TimeSlot]) -> list[TimeSlot]:
    return [slot for slot in slots if slot.available]


def has_available_slots(slots: Iterable[TimeSlot]) -> bool:
    return any(slot.available for slot in slots)


def free_gaps(working_day, breaks: Optional[Iterable] = None, appointments: Iterable = ()) -> list[FreeGap]:
    """Contiguous free intervals of a working day, in order"""
    if working_day is None:
        return []
    if breaks is None:
        breaks = getattr(working_day, "breaks", None) or []

    day_start = parse_time(working_day.start_time)
    day_end = parse_time(working_day.end_time)

    gaps: list[FreeGap] = []
    cursor = day_start
    for r in _blocked_ranges(breaks, appointments):
        if r.start > cursor:
            gap_end = min(r.start, day_end)
            if gap_end > cursor:
                gaps.append(
                    FreeGap(
                        start_time=format_minutes(cursor),
                        end_time=format_minutes(gap_end),
                        duration_minutes=gap_end - cursor,
                    )
                )
        cursor = max(cursor, r.end)
        if cursor >= day_end:
            break

    if cursor < day_end:
        gaps.append(
            FreeGap(
                start_time=format_minutes(cursor),
                end_time=format_minutes(day_end),
                duration_minutes=day_end - cursor,
            )
        )
    return gaps


def calculate_end_time(start_time, duration_minutes: int) -> str:
    """End time of a booking starting at ``start_time``"""
    return add_minutes(start_time, duration_minutes)
