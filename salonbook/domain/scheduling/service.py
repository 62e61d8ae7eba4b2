"""Scheduling service - Business logic for availability, working days and appointments"""

import logging
from datetime import date, timedelta
from typing import Optional, Sequence

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ... import config
from ...models import Appointment, BookingSettings, WorkingDay, WorkingDayBreak
from .clock import Clock, SystemClock, local_now, local_today
from .conflict_validator import (
    validate_appointment_placement,
    validate_booking_window,
    validate_break,
    validate_bulk_schedule,
    validate_working_day,
    validate_working_day_deletion,
)
from .day_off import DayOffReconciler, revalidate
from .errors import Conflict, InvalidRange
from .lifecycle import (
    AppointmentStatus,
    attempt_transition,
    plan_reschedule,
    plan_start_early,
    transition_effects,
)
from .patterns import filter_existing_dates, generate_from_pattern
from .repository import SchedulingRepository
from .schemas import (
    AppointmentData,
    AvailabilityResponse,
    BookingRequest,
    BreakInput,
    BreakUpdate,
    BulkScheduleRequest,
    BulkScheduleResult,
    DayOffRequest,
    DayOffResult,
    QuickBookingRequest,
    RescheduleRequest,
    ServiceWindow,
    StatusChangeRequest,
    WorkingDayCreate,
    WorkingDayData,
    WorkingDayUpdate,
)
from .slot_generator import calculate_end_time, earliest_bookable_minute, generate_slots
from .time_utils import parse_time

logger = logging.getLogger(__name__)


class SchedulingService:
    """Service layer for scheduling business logic"""

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        self.db = db
        self.clock = clock or SystemClock()
        self.repo = SchedulingRepository()

    def _utcnow(self):
        # Stored timestamps are naive UTC, like the rest of the schema
        return self.clock.now().replace(tzinfo=None)

    # ========================================================================
    # SETTINGS
    # ========================================================================

    def get_settings(self, specialist_id: int) -> BookingSettings:
        """Booking settings of a specialist, falling back to configured defaults"""
        settings = self.repo.get_settings(self.db, specialist_id)
        if settings:
            return settings
        return BookingSettings(
            specialist_id=specialist_id,
            timezone=config.DEFAULT_TIMEZONE,
            slot_interval_minutes=config.DEFAULT_SLOT_INTERVAL_MINUTES,
            min_booking_notice_hours=config.DEFAULT_MIN_NOTICE_HOURS,
            max_days_ahead=config.DEFAULT_MAX_DAYS_AHEAD,
            auto_confirm=config.DEFAULT_AUTO_CONFIRM,
        )

    # ========================================================================
    # AVAILABILITY
    # ========================================================================

    def get_availability(
        self,
        specialist_id: int,
        target_date: date,
        duration_minutes: int,
        service_windows: Sequence[ServiceWindow] = (),
    ) -> AvailabilityResponse:
        """Candidate slots of one date for a service of the given length"""
        settings = self.get_settings(specialist_id)
        today = local_today(self.clock, settings.timezone)

        working_day = None
        if target_date <= today + timedelta(days=settings.max_days_ahead):
            working_day = self.repo.get_working_day_by_date(self.db, specialist_id, target_date)

        slots = []
        if working_day:
            # Engine works on detached snapshots, not live ORM rows
            day = WorkingDayData.model_validate(working_day)
            appointments = [
                AppointmentData.model_validate(a)
                for a in self.repo.get_appointments_for_date(self.db, specialist_id, target_date, active_only=True)
            ]
            slots = generate_slots(
                day,
                day.breaks,
                appointments,
                service_duration=duration_minutes,
                slot_interval=day.slot_interval_minutes or settings.slot_interval_minutes,
                min_notice_hours=settings.min_booking_notice_hours,
                target_date=target_date,
                timezone=settings.timezone,
                clock=self.clock,
                service_windows=service_windows,
            )

        return AvailabilityResponse(
            date=target_date,
            timezone=settings.timezone,
            durationMinutes=duration_minutes,
            slots=slots,
        )

    # ========================================================================
    # WORKING DAYS
    # ========================================================================

    def get_working_days(
        self, specialist_id: int, start_date: Optional[date] = None, end_date: Optional[date] = None
    ) -> list[WorkingDay]:
        return self.repo.get_working_days(self.db, specialist_id, start_date, end_date)

    def get_working_day(self, specialist_id: int, working_day_id: int) -> WorkingDay:
        """Get a specific working day"""
        working_day = self.repo.get_working_day(self.db, specialist_id, working_day_id)
        if not working_day:
            raise HTTPException(status_code=404, detail="Working day not found")
        return working_day

    def create_working_day(self, specialist_id: int, data: WorkingDayCreate) -> WorkingDay:
        """Create a working day after checking hours and per-date uniqueness"""
        logger.info(f"📥 Creating working day {data.date} for specialist {specialist_id}")

        existing_dates = self.repo.get_working_day_dates(self.db, specialist_id, data.date, data.date)
        validate_working_day(data.startTime, data.endTime, data.date, existing_dates).raise_for_error()

        interval = data.slotIntervalMinutes or self.get_settings(specialist_id).slot_interval_minutes
        try:
            return self.repo.create_working_day(
                self.db, specialist_id, data.date, data.startTime, data.endTime, interval
            )
        except IntegrityError:
            # Lost a race with a concurrent insert for the same date
            self.db.rollback()
            logger.warning(f"⚠️ Duplicate working day {data.date} for specialist {specialist_id}")
            raise Conflict(
                f"A working day already exists on {data.date.isoformat()}",
                conflicts_with={"date": data.date.isoformat()},
            ) from None

    def bulk_create_working_days(self, specialist_id: int, request: BulkScheduleRequest) -> BulkScheduleResult:
        """Expand a pattern and create every valid day that does not exist yet"""
        generated = generate_from_pattern(request)
        if not generated:
            return BulkScheduleResult(created=0)

        existing_dates = self.repo.get_working_day_dates(
            self.db, specialist_id, generated[0].date, generated[-1].date
        )
        existing = set(existing_dates)
        skipped = [
            {"date": day.date.isoformat(), "error": "conflict", "detail": "Working day already exists"}
            for day in generated
            if day.date in existing
        ]

        to_create = []
        for day, verdict in validate_bulk_schedule(filter_existing_dates(generated, existing_dates)):
            if verdict.ok:
                to_create.append(day)
            else:
                skipped.append({"date": day.date.isoformat(), "error": verdict.kind.value, "detail": verdict.detail})

        interval = self.get_settings(specialist_id).slot_interval_minutes
        try:
            created = self.repo.bulk_create_working_days(self.db, specialist_id, to_create, interval)
        except IntegrityError:
            self.db.rollback()
            logger.warning(f"⚠️ Bulk schedule for specialist {specialist_id} hit an existing date")
            raise Conflict("One or more dates already have a working day") from None

        logger.info(f"✅ Created {len(created)} working days for specialist {specialist_id} ({len(skipped)} skipped)")
        return BulkScheduleResult(created=len(created), skipped=sorted(skipped, key=lambda s: s["date"]))

    def update_working_day(self, specialist_id: int, working_day_id: int, data: WorkingDayUpdate) -> WorkingDay:
        """Change working hours; active appointments must stay inside the new hours"""
        working_day = self.get_working_day(specialist_id, working_day_id)

        start_time = data.startTime or working_day.start_time
        end_time = data.endTime or working_day.end_time
        appointments = self.repo.get_appointments_for_date(self.db, specialist_id, working_day.date, active_only=True)

        validate_working_day(
            start_time,
            end_time,
            working_day.date,
            existing_dates=[working_day.date],
            appointments=appointments,
            current_date=working_day.date,
        ).raise_for_error()

        # Breaks must still fit inside the new hours
        narrowed = _Hours(start_time, end_time)
        for brk in working_day.breaks:
            validate_break(brk.start_time, brk.end_time, narrowed, []).raise_for_error()

        return self.repo.update_working_day(self.db, working_day, start_time=start_time, end_time=end_time)

    def delete_working_day(self, specialist_id: int, working_day_id: int) -> dict:
        """Delete a working day that has no active appointments"""
        working_day = self.get_working_day(specialist_id, working_day_id)
        appointments = self.repo.get_appointments_for_date(self.db, specialist_id, working_day.date, active_only=True)

        verdict = validate_working_day_deletion(working_day, appointments, working_day.breaks)
        verdict.raise_for_error()

        removed = self.repo.delete_working_day(self.db, working_day)
        logger.info(f"🗑️ Deleted working day {working_day_id} ({removed} breaks) for specialist {specialist_id}")
        return {"message": "Working day deleted", "deletedBreaks": removed}

    # ========================================================================
    # BREAKS
    # ========================================================================

    def add_break(self, specialist_id: int, working_day_id: int, data: BreakInput) -> WorkingDayBreak:
        working_day = self.get_working_day(specialist_id, working_day_id)
        validate_break(data.startTime, data.endTime, working_day, working_day.breaks).raise_for_error()
        return self.repo.create_break(self.db, working_day, data.startTime, data.endTime)

    def get_break(self, specialist_id: int, break_id: int) -> WorkingDayBreak:
        brk = self.repo.get_break(self.db, specialist_id, break_id)
        if not brk:
            raise HTTPException(status_code=404, detail="Break not found")
        return brk

    def update_break(self, specialist_id: int, break_id: int, data: BreakUpdate) -> WorkingDayBreak:
        brk = self.get_break(specialist_id, break_id)
        working_day = brk.working_day

        start_time = data.startTime or brk.start_time
        end_time = data.endTime or brk.end_time
        validate_break(start_time, end_time, working_day, working_day.breaks, exclude_id=brk.id).raise_for_error()

        return self.repo.update_break(self.db, brk, start_time=start_time, end_time=end_time)

    def delete_break(self, specialist_id: int, break_id: int) -> dict:
        brk = self.get_break(specialist_id, break_id)
        self.repo.delete_break(self.db, brk)
        return {"message": "Break deleted"}

    # ========================================================================
    # APPOINTMENTS
    # ========================================================================

    def get_appointment(self, specialist_id: int, appointment_id: int) -> Appointment:
        """Get a specific appointment"""
        appointment = self.repo.get_appointment(self.db, specialist_id, appointment_id)
        if not appointment:
            raise HTTPException(status_code=404, detail="Appointment not found")
        return appointment

    def _check_placement(self, specialist_id: int, target_date: date, start_time: str, end_time: str, exclude_id=None):
        appointments = self.repo.get_appointments_for_date(self.db, specialist_id, target_date, active_only=True)
        validate_appointment_placement(
            start_time, end_time, target_date, appointments, exclude_id=exclude_id
        ).raise_for_error()

    def _appointment_fields(self, data: BookingRequest, end_time: str) -> dict:
        return {
            "date": data.date,
            "start_time": data.startTime,
            "end_time": end_time,
            "duration_minutes": data.durationMinutes,
            "service_name": data.serviceName,
            "price_cents": data.priceCents,
            "currency": (data.currency or config.DEFAULT_CURRENCY).upper(),
            "client_name": data.client.name,
            "client_phone": data.client.phone,
            "client_email": data.client.email,
            "client_notes": data.client.notes,
        }

    def book_appointment(self, specialist_id: int, data: BookingRequest) -> Appointment:
        """
        Public booking.

        The interval must be inside working hours, clear of breaks and other
        bookings, respect the minimum notice and the booking horizon.
        """
        logger.info(f"📥 Booking {data.date} {data.startTime} ({data.durationMinutes}m) for specialist {specialist_id}")

        settings = self.get_settings(specialist_id)
        end_time = calculate_end_time(data.startTime, data.durationMinutes)

        today = local_today(self.clock, settings.timezone)
        if data.date > today + timedelta(days=settings.max_days_ahead):
            raise InvalidRange(
                f"Bookings are accepted at most {settings.max_days_ahead} days ahead",
                conflicts_with={"max_days_ahead": settings.max_days_ahead},
            )

        earliest = earliest_bookable_minute(
            data.date, settings.timezone, self.clock, settings.min_booking_notice_hours
        )
        if earliest is None or parse_time(data.startTime) < earliest:
            raise InvalidRange(
                "Requested time is in the past or inside the minimum notice window",
                conflicts_with={"min_notice_hours": settings.min_booking_notice_hours},
            )

        working_day = self.repo.get_working_day_by_date(self.db, specialist_id, data.date)
        validate_booking_window(data.startTime, end_time, working_day).raise_for_error()
        self._check_placement(specialist_id, data.date, data.startTime, end_time)

        status = AppointmentStatus.CONFIRMED if settings.auto_confirm else AppointmentStatus.PENDING
        fields = self._appointment_fields(data, end_time)
        fields.update(transition_effects(status, self._utcnow()))

        appointment = self.repo.create_appointment(self.db, specialist_id, status=status.value, **fields)
        logger.info(f"✅ Appointment {appointment.id} created with status {status.value}")
        return appointment

    def quick_book(self, specialist_id: int, data: QuickBookingRequest, creator_notes: Optional[str] = None) -> Appointment:
        """Owner booking into a free slot; only other bookings can block it"""
        end_time = calculate_end_time(data.startTime, data.durationMinutes)
        self._check_placement(specialist_id, data.date, data.startTime, end_time)

        status = AppointmentStatus(data.status)
        fields = self._appointment_fields(data, end_time)
        fields.update(transition_effects(status, self._utcnow()))
        fields["creator_notes"] = creator_notes

        appointment = self.repo.create_appointment(self.db, specialist_id, status=status.value, **fields)
        logger.info(f"✅ Quick booking {appointment.id} created for specialist {specialist_id}")
        return appointment

    def change_status(self, specialist_id: int, appointment_id: int, data: StatusChangeRequest) -> Appointment:
        """Apply a guarded status transition, then record it in the audit trail"""
        appointment = self.get_appointment(specialist_id, appointment_id)
        old_status = appointment.status

        new_status = attempt_transition(old_status, data.status)
        now = self._utcnow()
        updates = {"status": new_status.value, **transition_effects(new_status, now)}
        if new_status == AppointmentStatus.CANCELLED:
            updates["cancellation_reason"] = data.reason

        appointment = self.repo.update_appointment(self.db, appointment, **updates)
        logger.info(f"🔄 Appointment {appointment_id}: {old_status} → {new_status.value}")

        self._record_status_change(appointment_id, old_status, new_status.value, now, data.actorId, data.reason)
        return appointment

    def _record_status_change(self, appointment_id, old_status, new_status, changed_at, changed_by, reason) -> None:
        # The status change is already committed; a failed audit write must not undo it
        try:
            self.repo.add_status_history(
                self.db, appointment_id, old_status, new_status, changed_at, changed_by=changed_by, reason=reason
            )
        except Exception as e:
            self.db.rollback()
            logger.warning(f"⚠️ Failed to record status history for appointment {appointment_id}: {e}")

    def start_early(self, specialist_id: int, appointment_id: int) -> Appointment:
        """Move a confirmed appointment to start now, keeping its duration"""
        appointment = self.get_appointment(specialist_id, appointment_id)
        settings = self.get_settings(specialist_id)

        shift = plan_start_early(appointment, local_now(self.clock, settings.timezone))
        self._check_placement(specialist_id, shift.date, shift.start_time, shift.end_time, exclude_id=appointment.id)

        logger.info(f"⏩ Appointment {appointment_id} starting early at {shift.start_time}")
        return self.repo.update_appointment(
            self.db,
            appointment,
            date=shift.date,
            start_time=shift.start_time,
            end_time=shift.end_time,
        )

    def reschedule(self, specialist_id: int, appointment_id: int, data: RescheduleRequest) -> Appointment:
        """Move a pending/confirmed appointment; status is kept"""
        appointment = self.get_appointment(specialist_id, appointment_id)

        shift = plan_reschedule(appointment, data.newDate, data.newStartTime, data.newEndTime)
        self._check_placement(specialist_id, shift.date, shift.start_time, shift.end_time, exclude_id=appointment.id)

        logger.info(f"📅 Appointment {appointment_id} rescheduled to {shift.date} {shift.start_time}-{shift.end_time}")
        return self.repo.update_appointment(
            self.db,
            appointment,
            date=shift.date,
            start_time=shift.start_time,
            end_time=shift.end_time,
            duration_minutes=shift.duration_minutes,
        )

    # ========================================================================
    # DAY OFF
    # ========================================================================

    def preview_day_off(self, specialist_id: int, working_day_id: int) -> tuple[WorkingDay, list[Appointment]]:
        """Working day plus the active appointments that need a decision"""
        working_day = self.get_working_day(specialist_id, working_day_id)
        appointments = self.repo.get_appointments_for_date(self.db, specialist_id, working_day.date, active_only=True)
        return working_day, appointments

    def apply_day_off(self, specialist_id: int, working_day_id: int, data: DayOffRequest) -> DayOffResult:
        """
        Remove a working day together with decisions for all its appointments.

        Every decision is staged and checked, the resulting plan is
        re-validated against the current database state and then applied in
        one transaction.
        """
        working_day, affected = self.preview_day_off(specialist_id, working_day_id)
        validate_working_day_deletion(working_day, affected, working_day.breaks, reconcile=True).raise_for_error()

        target_dates = {d.newDate for d in data.decisions if d.action == "reschedule"}
        others = self.repo.get_active_appointments(self.db, specialist_id, target_dates) if target_dates else []

        reconciler = DayOffReconciler(working_day, affected, others)
        for decision in data.decisions:
            if decision.appointmentId not in reconciler.affected:
                raise HTTPException(status_code=404, detail=f"Appointment {decision.appointmentId} is not on this day")
            if decision.action == "reschedule":
                verdict = reconciler.stage_reschedule(
                    decision.appointmentId, decision.newDate, decision.newStartTime, decision.newEndTime
                )
            else:
                verdict = reconciler.stage_cancel(decision.appointmentId, decision.reason)
            verdict.raise_for_error()

        plan = reconciler.build_plan()

        # Re-read everything the plan touches right before committing
        fresh = self.repo.get_active_appointments(self.db, specialist_id, target_dates | {working_day.date})
        revalidate(plan, fresh).raise_for_error()

        by_id = {a.id: a for a in affected}
        self.repo.apply_day_off_plan(self.db, working_day, plan, by_id, self._utcnow(), changed_by=data.actorId)

        logger.info(
            f"✅ Day off applied for working day {working_day_id}: "
            f"{len(plan.reschedules)} rescheduled, {len(plan.cancellations)} cancelled"
        )
        return DayOffResult(
            workingDayId=working_day_id,
            rescheduled=len(plan.reschedules),
            cancelled=len(plan.cancellations),
        )


class _Hours:
    """Stand-in working day used to check breaks against edited hours"""

    def __init__(self, start_time: str, end_time: str):
        self.start_time = start_time
        self.end_time = end_time
        self.breaks = []
