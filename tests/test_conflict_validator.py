from datetime import date

import pytest

from salonbook.domain.scheduling.conflict_validator import (
    validate_appointment_placement,
    validate_booking_window,
    validate_break,
    validate_bulk_schedule,
    validate_working_day,
    validate_working_day_deletion,
)
from salonbook.domain.scheduling.errors import Conflict, ErrorKind
from salonbook.domain.scheduling.patterns import generate_from_dates
from salonbook.domain.scheduling.schemas import BreakData

from .factories import FUTURE, make_appointment, make_day


# ============================================================================
# WORKING DAYS
# ============================================================================


def test_working_day_requires_start_before_end() -> None:
    verdict = validate_working_day("18:00", "09:00", FUTURE)

    assert not verdict
    assert verdict.kind == ErrorKind.INVALID_RANGE


def test_working_day_rejects_malformed_time() -> None:
    verdict = validate_working_day("9am", "18:00", FUTURE)

    assert verdict.kind == ErrorKind.FORMAT_ERROR


def test_working_day_is_unique_per_date() -> None:
    verdict = validate_working_day("09:00", "18:00", FUTURE, existing_dates=[FUTURE])

    assert verdict.kind == ErrorKind.CONFLICT
    assert verdict.conflicts_with == {"date": FUTURE.isoformat()}


def test_working_day_update_keeps_its_own_date() -> None:
    verdict = validate_working_day("10:00", "17:00", FUTURE, existing_dates=[FUTURE], current_date=FUTURE)

    assert verdict.ok


def test_working_day_update_cannot_strand_active_appointment() -> None:
    appointments = [make_appointment("09:00", "10:00", appointment_id=3)]

    verdict = validate_working_day("09:30", "18:00", FUTURE, [FUTURE], appointments, current_date=FUTURE)

    assert verdict.kind == ErrorKind.CONFLICT
    assert verdict.conflicts_with["id"] == 3


def test_working_day_update_ignores_cancelled_and_other_dates() -> None:
    appointments = [
        make_appointment("09:00", "10:00", status="cancelled"),
        make_appointment("08:00", "09:00", on=date(2025, 3, 13)),
    ]

    verdict = validate_working_day("12:00", "18:00", FUTURE, [FUTURE], appointments, current_date=FUTURE)

    assert verdict.ok


def test_deletion_refused_with_active_appointments() -> None:
    day = make_day(breaks=[("13:00", "14:00")])
    appointments = [make_appointment("10:00", "11:00", appointment_id=5)]

    verdict = validate_working_day_deletion(day, appointments)

    assert verdict.kind == ErrorKind.CONFLICT
    assert verdict.conflicts_with["id"] == 5


def test_deletion_reports_orphaned_breaks() -> None:
    day = make_day(breaks=[("13:00", "14:00")])

    verdict = validate_working_day_deletion(day, [make_appointment("10:00", "11:00", status="completed")])

    assert verdict.ok
    assert verdict.extra["orphaned_breaks"] == [{"id": 1, "start_time": "13:00", "end_time": "14:00"}]


def test_deletion_through_reconciler_lists_affected_appointments() -> None:
    day = make_day()
    appointments = [make_appointment("10:00", "11:00", appointment_id=5)]

    verdict = validate_working_day_deletion(day, appointments, reconcile=True)

    assert verdict.ok
    assert [a["id"] for a in verdict.extra["affected_appointments"]] == [5]


# ============================================================================
# BREAKS
# ============================================================================


@pytest.mark.parametrize(
    "start, end",
    [("08:30", "09:30"), ("17:30", "18:30"), ("12:00", "12:00"), ("14:00", "13:00")],
)
def test_break_must_be_a_range_inside_working_hours(start, end) -> None:
    verdict = validate_break(start, end, make_day())

    assert verdict.kind == ErrorKind.INVALID_RANGE


def test_break_may_touch_day_edges_and_siblings() -> None:
    day = make_day(breaks=[("13:00", "14:00")])

    assert validate_break("09:00", "09:30", day).ok
    assert validate_break("14:00", "14:30", day).ok
    assert validate_break("17:30", "18:00", day).ok


def test_break_cannot_overlap_sibling() -> None:
    day = make_day(breaks=[("13:00", "14:00")])

    verdict = validate_break("13:30", "14:30", day)

    assert verdict.kind == ErrorKind.CONFLICT
    assert verdict.conflicts_with["id"] == 1


def test_break_update_excludes_itself() -> None:
    day = make_day(breaks=[("13:00", "14:00")])

    assert validate_break("13:15", "14:15", day, exclude_id=1).ok


def test_accepted_break_is_contained_in_day() -> None:
    day = make_day()
    candidates = [("08:00", "09:15"), ("09:00", "10:00"), ("17:00", "18:01"), ("12:00", "13:00")]

    for start, end in candidates:
        if validate_break(start, end, day).ok:
            brk = BreakData(start_time=start, end_time=end)
            assert day.start_minutes <= brk.start_minutes < brk.end_minutes <= day.end_minutes


# ============================================================================
# APPOINTMENTS
# ============================================================================


def test_placement_conflicts_with_overlapping_booking() -> None:
    existing = [make_appointment("10:00", "11:00", appointment_id=1)]

    verdict = validate_appointment_placement("10:30", "11:30", FUTURE, existing)

    assert verdict.kind == ErrorKind.CONFLICT
    assert verdict.conflicts_with["start_time"] == "10:00"
    with pytest.raises(Conflict):
        verdict.raise_for_error()


def test_placement_back_to_back_is_allowed() -> None:
    existing = [make_appointment("10:00", "11:00", appointment_id=1)]

    assert validate_appointment_placement("11:00", "12:00", FUTURE, existing).ok


def test_placement_ignores_inactive_other_dates_and_itself() -> None:
    existing = [
        make_appointment("10:00", "11:00", status="no_show", appointment_id=1),
        make_appointment("10:00", "11:00", on=date(2025, 3, 13), appointment_id=2),
        make_appointment("10:00", "11:00", appointment_id=3),
    ]

    assert validate_appointment_placement("10:00", "11:00", FUTURE, existing, exclude_id=3).ok


def test_placement_ignores_working_hours() -> None:
    assert validate_appointment_placement("19:00", "20:00", FUTURE, []).ok


def test_booking_window_needs_a_working_day() -> None:
    verdict = validate_booking_window("10:00", "11:00", None)

    assert verdict.kind == ErrorKind.INVALID_RANGE


def test_booking_window_checks_hours_and_breaks() -> None:
    day = make_day(breaks=[("13:00", "14:00")])

    assert validate_booking_window("17:30", "18:30", day).kind == ErrorKind.INVALID_RANGE
    assert validate_booking_window("12:30", "13:30", day).kind == ErrorKind.CONFLICT
    assert validate_booking_window("14:00", "15:00", day).ok


def test_bulk_schedule_flags_duplicates_and_bad_breaks() -> None:
    days = generate_from_dates([FUTURE, date(2025, 3, 13)], "09:00", "18:00", [("12:00", "13:00")])
    bad = generate_from_dates([date(2025, 3, 14)], "09:00", "18:00", [("12:00", "13:00"), ("12:30", "13:30")])

    results = validate_bulk_schedule(days + bad, existing_dates=[date(2025, 3, 13)])
    kinds = {item.date: verdict.kind for item, verdict in results}

    assert kinds[FUTURE] is None
    assert kinds[date(2025, 3, 13)] == ErrorKind.CONFLICT
    assert kinds[date(2025, 3, 14)] == ErrorKind.CONFLICT
