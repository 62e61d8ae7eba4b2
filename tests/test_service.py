from datetime import date
from unittest.mock import patch

import pytest
from fastapi import HTTPException

from salonbook.domain.scheduling.errors import Conflict, InvalidRange, InvalidTransition, ReconciliationIncomplete
from salonbook.domain.scheduling.schemas import (
    BookingRequest,
    BreakInput,
    DayOffRequest,
    QuickBookingRequest,
    RescheduleRequest,
    ServiceWindow,
    StatusChangeRequest,
    WorkingDayCreate,
    WorkingDayUpdate,
)
from salonbook.models import Appointment, AppointmentStatusHistory, BookingSettings, WorkingDay, WorkingDayBreak

from .factories import FUTURE, SPECIALIST_ID, TODAY, booking_payload

NEXT_DAY = date(2025, 3, 13)


def _create_day(service, on=FUTURE, start="09:00", end="18:00", breaks=()):
    day = service.create_working_day(SPECIALIST_ID, WorkingDayCreate(date=on, startTime=start, endTime=end))
    for b_start, b_end in breaks:
        service.add_break(SPECIALIST_ID, day.id, BreakInput(startTime=b_start, endTime=b_end))
    return day


def _quick(service, on=FUTURE, start="10:00", duration=60, status="confirmed"):
    return service.quick_book(
        SPECIALIST_ID, QuickBookingRequest(**booking_payload(on=on, start=start, duration=duration), status=status)
    )


def test_generate_book_regenerate(service) -> None:
    _create_day(service, breaks=[("13:00", "14:00")])

    before = {s.time: s for s in service.get_availability(SPECIALIST_ID, FUTURE, 60).slots}
    assert before["11:00"].available

    service.book_appointment(SPECIALIST_ID, BookingRequest(**booking_payload(start="11:00")))

    after = {s.time: s for s in service.get_availability(SPECIALIST_ID, FUTURE, 60).slots}
    assert "11:00" not in after
    assert after["10:30"].reason == "booked"


def test_availability_honours_service_window(service) -> None:
    _create_day(service)
    window = ServiceWindow(available_from="10:15", available_to="12:00")

    slots = service.get_availability(SPECIALIST_ID, FUTURE, 30, service_windows=[window]).slots

    assert [s.time for s in slots if s.available] == ["10:15", "10:45", "11:15"]


def test_advertised_duration_can_be_booked(service) -> None:
    _create_day(service, breaks=[("13:00", "14:00")])
    _quick(service, start="10:00", duration=60)

    slot = next(s for s in service.get_availability(SPECIALIST_ID, FUTURE, 30).slots if s.time == "09:30")
    assert slot.duration_minutes == 30

    booked = service.book_appointment(
        SPECIALIST_ID, BookingRequest(**booking_payload(start=slot.time, duration=slot.duration_minutes))
    )
    assert booked.end_time == "10:00"


def test_public_booking_is_pending_without_auto_confirm(service) -> None:
    _create_day(service)

    appointment = service.book_appointment(SPECIALIST_ID, BookingRequest(**booking_payload()))

    assert appointment.status == "pending"
    assert appointment.end_time == "11:00"
    assert appointment.currency == "EUR"
    assert appointment.client_phone == "+380671234567"
    assert appointment.client_email == "olena@example.com"


def test_public_booking_honours_auto_confirm(service, db) -> None:
    db.add(BookingSettings(specialist_id=SPECIALIST_ID, timezone="UTC", auto_confirm=True))
    db.commit()
    _create_day(service)

    appointment = service.book_appointment(SPECIALIST_ID, BookingRequest(**booking_payload()))

    assert appointment.status == "confirmed"
    assert appointment.confirmed_at is not None


def test_public_booking_rejects_overlap_and_accepts_adjacent(service) -> None:
    _create_day(service)
    service.book_appointment(SPECIALIST_ID, BookingRequest(**booking_payload(start="10:00")))

    with pytest.raises(Conflict):
        service.book_appointment(SPECIALIST_ID, BookingRequest(**booking_payload(start="10:30")))

    assert service.book_appointment(SPECIALIST_ID, BookingRequest(**booking_payload(start="11:00"))).id


def test_public_booking_respects_hours_breaks_and_notice(service) -> None:
    _create_day(service, breaks=[("13:00", "14:00")])
    _create_day(service, on=TODAY)

    with pytest.raises(InvalidRange):
        service.book_appointment(SPECIALIST_ID, BookingRequest(**booking_payload(start="17:30")))
    with pytest.raises(Conflict):
        service.book_appointment(SPECIALIST_ID, BookingRequest(**booking_payload(start="12:30")))
    # Clock is 08:00 on TODAY
    with pytest.raises(InvalidRange):
        service.book_appointment(SPECIALIST_ID, BookingRequest(**booking_payload(on=TODAY, start="07:00")))
    with pytest.raises(InvalidRange):
        service.book_appointment(SPECIALIST_ID, BookingRequest(**booking_payload(on=date(2025, 9, 1))))


def test_quick_booking_ignores_hours_but_not_other_bookings(service) -> None:
    _create_day(service)

    late = _quick(service, start="19:00")
    assert late.status == "confirmed"

    with pytest.raises(Conflict):
        _quick(service, start="19:30")


def test_working_day_is_unique_per_date(service) -> None:
    _create_day(service)

    with pytest.raises(Conflict):
        _create_day(service)


def test_shrinking_hours_cannot_strand_appointments(service) -> None:
    day = _create_day(service)
    _quick(service, start="09:00")

    with pytest.raises(Conflict):
        service.update_working_day(SPECIALIST_ID, day.id, WorkingDayUpdate(startTime="10:00"))

    updated = service.update_working_day(SPECIALIST_ID, day.id, WorkingDayUpdate(endTime="17:00"))
    assert updated.end_time == "17:00"


def test_shrinking_hours_cannot_strand_breaks(service) -> None:
    day = _create_day(service, breaks=[("17:00", "17:30")])

    with pytest.raises(InvalidRange):
        service.update_working_day(SPECIALIST_ID, day.id, WorkingDayUpdate(endTime="17:00"))


def test_delete_working_day_removes_breaks(service, db) -> None:
    day = _create_day(service, breaks=[("13:00", "14:00")])

    result = service.delete_working_day(SPECIALIST_ID, day.id)

    assert result["deletedBreaks"] == 1
    assert db.query(WorkingDay).count() == 0
    assert db.query(WorkingDayBreak).count() == 0


def test_delete_working_day_with_bookings_is_refused(service) -> None:
    day = _create_day(service)
    _quick(service)

    with pytest.raises(Conflict):
        service.delete_working_day(SPECIALIST_ID, day.id)


def test_missing_rows_raise_404(service) -> None:
    with pytest.raises(HTTPException) as exc_info:
        service.get_working_day(SPECIALIST_ID, 999)
    assert exc_info.value.status_code == 404

    with pytest.raises(HTTPException):
        service.get_appointment(SPECIALIST_ID, 999)


def test_status_change_records_history(service, db) -> None:
    _create_day(service)
    appointment = _quick(service, status="pending")

    service.change_status(SPECIALIST_ID, appointment.id, StatusChangeRequest(status="confirmed", actorId="owner-1"))
    cancelled = service.change_status(
        SPECIALIST_ID, appointment.id, StatusChangeRequest(status="cancelled", reason="Client asked")
    )

    assert cancelled.status == "cancelled"
    assert cancelled.cancelled_at is not None
    assert cancelled.cancellation_reason == "Client asked"
    history = db.query(AppointmentStatusHistory).order_by(AppointmentStatusHistory.id).all()
    assert [(h.old_status, h.new_status, h.changed_by) for h in history] == [
        ("pending", "confirmed", "owner-1"),
        ("confirmed", "cancelled", None),
    ]


def test_status_change_survives_audit_failure(service, db) -> None:
    _create_day(service)
    appointment = _quick(service)

    with patch.object(service.repo, "add_status_history", side_effect=RuntimeError("audit down")):
        updated = service.change_status(SPECIALIST_ID, appointment.id, StatusChangeRequest(status="completed"))

    assert updated.status == "completed"
    db.expire_all()
    assert db.get(Appointment, appointment.id).status == "completed"


def test_invalid_status_change_is_rejected(service) -> None:
    _create_day(service)
    appointment = _quick(service, status="pending")

    with pytest.raises(InvalidTransition):
        service.change_status(SPECIALIST_ID, appointment.id, StatusChangeRequest(status="completed"))


def test_start_early_moves_to_now(service) -> None:
    _create_day(service, on=TODAY)
    appointment = _quick(service, on=TODAY, start="10:00", duration=45)

    moved = service.start_early(SPECIALIST_ID, appointment.id)

    assert (moved.start_time, moved.end_time) == ("08:00", "08:45")


def test_start_early_blocked_by_earlier_booking(service) -> None:
    _create_day(service, on=TODAY)
    _quick(service, on=TODAY, start="08:30", duration=30)
    appointment = _quick(service, on=TODAY, start="10:00", duration=60)

    with pytest.raises(Conflict):
        service.start_early(SPECIALIST_ID, appointment.id)


def test_start_early_refused_for_future_appointment(service, db) -> None:
    _create_day(service)
    appointment = _quick(service, start="10:00", duration=60)

    with pytest.raises(InvalidRange):
        service.start_early(SPECIALIST_ID, appointment.id)

    db.refresh(appointment)
    assert (appointment.date, appointment.start_time) == (FUTURE, "10:00")


def test_reschedule_keeps_status(service) -> None:
    _create_day(service)
    appointment = _quick(service, status="pending")

    moved = service.reschedule(
        SPECIALIST_ID, appointment.id, RescheduleRequest(newDate=NEXT_DAY, newStartTime="12:00", newEndTime="13:30")
    )

    assert moved.date == NEXT_DAY
    assert moved.status == "pending"
    assert moved.duration_minutes == 90


def test_reschedule_into_own_slot_is_allowed(service) -> None:
    _create_day(service)
    appointment = _quick(service, start="10:00")

    moved = service.reschedule(
        SPECIALIST_ID, appointment.id, RescheduleRequest(newDate=FUTURE, newStartTime="10:30", newEndTime="11:30")
    )

    assert moved.start_time == "10:30"


def _day_with_two_bookings(service):
    day = _create_day(service, breaks=[("13:00", "14:00")])
    first = _quick(service, start="10:00")
    second = _quick(service, start="15:00", status="pending")
    return day, first, second


def test_day_off_applies_every_decision(service, db) -> None:
    day, first, second = _day_with_two_bookings(service)

    result = service.apply_day_off(
        SPECIALIST_ID,
        day.id,
        DayOffRequest(
            actorId="owner-1",
            decisions=[
                {"appointmentId": first.id, "action": "reschedule", "newDate": "2025-03-13",
                 "newStartTime": "10:00", "newEndTime": "11:00"},
                {"appointmentId": second.id, "action": "cancel", "reason": "Day off"},
            ],
        ),
    )

    assert (result.rescheduled, result.cancelled) == (1, 1)
    db.expire_all()
    assert db.query(WorkingDay).count() == 0
    assert db.query(WorkingDayBreak).count() == 0
    assert db.get(Appointment, first.id).date == NEXT_DAY
    assert db.get(Appointment, second.id).status == "cancelled"
    assert db.query(AppointmentStatusHistory).filter_by(appointment_id=second.id).one().changed_by == "owner-1"


def test_day_off_reschedule_updates_duration(service, db) -> None:
    day, first, second = _day_with_two_bookings(service)

    service.apply_day_off(
        SPECIALIST_ID,
        day.id,
        DayOffRequest(
            decisions=[
                {"appointmentId": first.id, "action": "reschedule", "newDate": "2025-03-13",
                 "newStartTime": "10:00", "newEndTime": "11:30"},
                {"appointmentId": second.id, "action": "cancel"},
            ],
        ),
    )

    db.expire_all()
    moved = db.get(Appointment, first.id)
    assert (moved.date, moved.start_time, moved.end_time) == (NEXT_DAY, "10:00", "11:30")
    assert moved.duration_minutes == 90


def test_day_off_requires_decision_for_every_appointment(service, db) -> None:
    day, first, _ = _day_with_two_bookings(service)

    with pytest.raises(ReconciliationIncomplete):
        service.apply_day_off(
            SPECIALIST_ID, day.id, DayOffRequest(decisions=[{"appointmentId": first.id, "action": "cancel"}])
        )

    assert db.query(WorkingDay).count() == 1


def test_day_off_commit_failure_rolls_back_everything(service, db) -> None:
    day, first, second = _day_with_two_bookings(service)
    request = DayOffRequest(
        decisions=[
            {"appointmentId": first.id, "action": "reschedule", "newDate": "2025-03-13",
             "newStartTime": "10:00", "newEndTime": "11:00"},
            {"appointmentId": second.id, "action": "cancel"},
        ]
    )

    with patch.object(db, "commit", side_effect=RuntimeError("connection lost")):
        with pytest.raises(RuntimeError):
            service.apply_day_off(SPECIALIST_ID, day.id, request)

    db.expire_all()
    assert db.query(WorkingDay).count() == 1
    assert db.query(WorkingDayBreak).count() == 1
    assert db.get(Appointment, first.id).date == FUTURE
    assert db.get(Appointment, second.id).status == "pending"
    assert db.query(AppointmentStatusHistory).count() == 0


def test_no_double_booking_after_mixed_operations(service, db) -> None:
    _create_day(service)
    _create_day(service, on=NEXT_DAY)
    created = []
    for start in ["09:00", "09:30", "10:00", "10:30", "11:00", "11:15", "12:00"]:
        try:
            created.append(_quick(service, start=start))
        except Conflict:
            pass
    for appointment in created:
        try:
            service.reschedule(
                SPECIALIST_ID, appointment.id,
                RescheduleRequest(newDate=NEXT_DAY, newStartTime="09:00", newEndTime="10:00"),
            )
        except Conflict:
            pass

    active = db.query(Appointment).filter(Appointment.status.in_(["pending", "confirmed"])).all()
    for a in active:
        for b in active:
            if a.id < b.id and a.date == b.date:
                assert a.end_time <= b.start_time or b.end_time <= a.start_time
