"""
Schedule conflict checks

Every check returns a Verdict instead of raising, so callers can collect
several verdicts (bulk creation, day-off staging) before deciding what to
do. ``Verdict.raise_for_error()`` turns a failure into the exception.
"""

from datetime import date
from typing import Iterable, Optional

from .errors import ErrorKind, FormatError, Verdict
from .lifecycle import is_active
from .time_utils import format_minutes, is_range_within, overlaps, parse_date, parse_time


def _interval(item) -> dict:
    """Describe a break/appointment for the ``conflicts_with`` payload"""
    described = {
        "start_time": format_minutes(parse_time(item.start_time)),
        "end_time": format_minutes(parse_time(item.end_time)),
    }
    item_id = getattr(item, "id", None)
    if item_id is not None:
        described["id"] = item_id
    item_date = getattr(item, "date", None)
    if item_date is not None:
        described["date"] = parse_date(item_date).isoformat()
    status = getattr(item, "status", None)
    if status is not None:
        described["status"] = getattr(status, "value", status)
    return described


def _parse_range(start, end) -> tuple[int, int]:
    return parse_time(start), parse_time(end)


def _format_failure(error: FormatError) -> Verdict:
    return Verdict.failure(ErrorKind.FORMAT_ERROR, error.detail)


def _active_on(appointments: Iterable, target: date, exclude_id=None) -> list:
    return [
        a
        for a in appointments
        if is_active(a.status)
        and parse_date(a.date) == target
        and (exclude_id is None or getattr(a, "id", None) != exclude_id)
    ]


# ============================================================================
# WORKING DAYS
# ============================================================================


def validate_working_day(
    start_time,
    end_time,
    target_date,
    existing_dates: Iterable = (),
    appointments: Iterable = (),
    current_date=None,
) -> Verdict:
    """
    Validate a working day being created or updated.

    On creation (``current_date`` is None) the date must not already have a
    working day. On update every active appointment on the date must still
    fit inside the new hours; hours are never silently widened to make
    them fit.

    Args:
        start_time: New start of working hours
        end_time: New end of working hours
        target_date: Calendar date of the working day
        existing_dates: Dates that already have a working day for this owner
        appointments: Appointments of the owner (any date, any status)
        current_date: Date of the row being updated, None on creation
    """
    try:
        start, end = _parse_range(start_time, end_time)
        target = parse_date(target_date)
        existing = {parse_date(d) for d in existing_dates}
    except FormatError as e:
        return _format_failure(e)

    if start >= end:
        return Verdict.failure(
            ErrorKind.INVALID_RANGE,
            f"Working day start {format_minutes(start)} must be before end {format_minutes(end)}",
        )

    is_update = current_date is not None
    if is_update:
        existing.discard(parse_date(current_date))

    if target in existing:
        return Verdict.failure(
            ErrorKind.CONFLICT,
            f"A working day already exists on {target.isoformat()}",
            conflicts_with={"date": target.isoformat()},
        )

    if is_update:
        for appointment in _active_on(appointments, target):
            a_start, a_end = _parse_range(appointment.start_time, appointment.end_time)
            if not is_range_within(a_start, a_end, start, end):
                return Verdict.failure(
                    ErrorKind.CONFLICT,
                    "New working hours would leave an active appointment outside the day",
                    conflicts_with=_interval(appointment),
                )

    return Verdict.success()


def validate_working_day_deletion(
    working_day, appointments: Iterable = (), breaks: Optional[Iterable] = None, reconcile: bool = False
) -> Verdict:
    """
    Check whether a working day can be removed.

    A day with active appointments can only go through the day-off
    reconciler (``reconcile=True``). A successful verdict lists the breaks
    that must be deleted along with the day (``orphaned_breaks``) and, on
    the reconcile path, the appointments that still need a decision
    (``affected_appointments``).
    """
    target = parse_date(working_day.date)
    if breaks is None:
        breaks = getattr(working_day, "breaks", None) or []

    affected = _active_on(appointments, target)
    orphaned = [_interval(b) for b in breaks]

    if affected and not reconcile:
        return Verdict.failure(
            ErrorKind.CONFLICT,
            f"Working day on {target.isoformat()} still has {len(affected)} active appointment(s)",
            conflicts_with=_interval(affected[0]),
        )

    return Verdict.success(
        orphaned_breaks=orphaned,
        affected_appointments=[_interval(a) for a in affected],
    )


# ============================================================================
# BREAKS
# ============================================================================


def validate_break(
    start_time, end_time, working_day, sibling_breaks: Optional[Iterable] = None, exclude_id=None
) -> Verdict:
    """
    Validate a break against its working day and the other breaks.

    Args:
        start_time: Break start
        end_time: Break end
        working_day: Owning working day
        sibling_breaks: Existing breaks of the day (defaults to ``working_day.breaks``)
        exclude_id: Id of the break being edited, excluded from the sibling check
    """
    try:
        start, end = _parse_range(start_time, end_time)
        day_start, day_end = _parse_range(working_day.start_time, working_day.end_time)
    except FormatError as e:
        return _format_failure(e)

    if start >= end:
        return Verdict.failure(
            ErrorKind.INVALID_RANGE,
            f"Break start {format_minutes(start)} must be before end {format_minutes(end)}",
        )

    if not is_range_within(start, end, day_start, day_end):
        return Verdict.failure(
            ErrorKind.INVALID_RANGE,
            f"Break must be within working hours {format_minutes(day_start)}-{format_minutes(day_end)}",
            conflicts_with={"start_time": format_minutes(day_start), "end_time": format_minutes(day_end)},
        )

    if sibling_breaks is None:
        sibling_breaks = getattr(working_day, "breaks", None) or []

    for sibling in sibling_breaks:
        if exclude_id is not None and getattr(sibling, "id", None) == exclude_id:
            continue
        s_start, s_end = _parse_range(sibling.start_time, sibling.end_time)
        if overlaps(start, end, s_start, s_end):
            return Verdict.failure(
                ErrorKind.CONFLICT,
                "Break overlaps another break",
                conflicts_with=_interval(sibling),
            )

    return Verdict.success()


# ============================================================================
# APPOINTMENTS
# ============================================================================


def validate_appointment_placement(
    start_time, end_time, target_date, appointments: Iterable = (), exclude_id=None
) -> Verdict:
    """
    Check a candidate booking interval against the owner's active appointments.

    Working hours are not enforced here; owner overrides (quick booking,
    start early) only need to avoid other bookings. Cancelled, completed
    and no-show appointments never block.
    """
    try:
        start, end = _parse_range(start_time, end_time)
        target = parse_date(target_date)
    except FormatError as e:
        return _format_failure(e)

    if start >= end:
        return Verdict.failure(
            ErrorKind.INVALID_RANGE,
            f"Appointment start {format_minutes(start)} must be before end {format_minutes(end)}",
        )

    for appointment in _active_on(appointments, target, exclude_id=exclude_id):
        a_start, a_end = _parse_range(appointment.start_time, appointment.end_time)
        if overlaps(start, end, a_start, a_end):
            return Verdict.failure(
                ErrorKind.CONFLICT,
                "Time slot overlaps an existing appointment",
                conflicts_with=_interval(appointment),
            )

    return Verdict.success()


def validate_booking_window(start_time, end_time, working_day, breaks: Optional[Iterable] = None) -> Verdict:
    """
    Public booking check: the interval must sit inside working hours and
    must not touch a break. Placement against other bookings is checked
    separately by ``validate_appointment_placement``.
    """
    if working_day is None:
        return Verdict.failure(ErrorKind.INVALID_RANGE, "Specialist is not working on this date")

    try:
        start, end = _parse_range(start_time, end_time)
        day_start, day_end = _parse_range(working_day.start_time, working_day.end_time)
    except FormatError as e:
        return _format_failure(e)

    if start >= end:
        return Verdict.failure(
            ErrorKind.INVALID_RANGE,
            f"Appointment start {format_minutes(start)} must be before end {format_minutes(end)}",
        )

    if not is_range_within(start, end, day_start, day_end):
        return Verdict.failure(
            ErrorKind.INVALID_RANGE,
            "Appointment is outside working hours",
            conflicts_with={"start_time": format_minutes(day_start), "end_time": format_minutes(day_end)},
        )

    if breaks is None:
        breaks = getattr(working_day, "breaks", None) or []

    for brk in breaks:
        b_start, b_end = _parse_range(brk.start_time, brk.end_time)
        if overlaps(start, end, b_start, b_end):
            return Verdict.failure(
                ErrorKind.CONFLICT,
                "Appointment overlaps a break",
                conflicts_with=_interval(brk),
            )

    return Verdict.success()


def validate_bulk_schedule(items: Iterable, existing_dates: Iterable = ()) -> list[tuple[object, Verdict]]:
    """
    Validate generated working days before a bulk insert.

    Each item needs ``date``, ``start_time``, ``end_time`` and optionally
    ``breaks``. Dates repeated inside the batch conflict with the first
    occurrence.
    """
    seen = {parse_date(d) for d in existing_dates}
    results = []

    for item in items:
        verdict = validate_working_day(item.start_time, item.end_time, item.date, seen)
        if verdict.ok:
            siblings = []
            for brk in getattr(item, "breaks", None) or []:
                verdict = validate_break(brk.start_time, brk.end_time, item, siblings)
                if not verdict.ok:
                    break
                siblings.append(brk)
        if verdict.ok:
            seen.add(parse_date(item.date))
        results.append((item, verdict))

    return results
