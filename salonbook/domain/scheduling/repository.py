"""Scheduling repository - Database operations for working days and appointments"""

import logging
from datetime import date, datetime
from typing import Iterable, Optional

from sqlalchemy.orm import Session, selectinload

from ...models import (
    Appointment,
    AppointmentStatusHistory,
    BookingSettings,
    WorkingDay,
    WorkingDayBreak,
)
from .day_off import DayOffPlan
from .lifecycle import ACTIVE_STATUSES, AppointmentStatus

logger = logging.getLogger(__name__)

_ACTIVE_VALUES = [s.value for s in ACTIVE_STATUSES]


class SchedulingRepository:
    """Repository for scheduling database operations"""

    # Booking Settings
    @staticmethod
    def get_settings(db: Session, specialist_id: int) -> Optional[BookingSettings]:
        return db.query(BookingSettings).filter(BookingSettings.specialist_id == specialist_id).first()

    # Working Days
    @staticmethod
    def get_working_day(db: Session, specialist_id: int, working_day_id: int) -> Optional[WorkingDay]:
        """Get a working day by ID, scoped to its specialist"""
        return (
            db.query(WorkingDay)
            .options(selectinload(WorkingDay.breaks))
            .filter(WorkingDay.id == working_day_id, WorkingDay.specialist_id == specialist_id)
            .first()
        )

    @staticmethod
    def get_working_day_by_date(db: Session, specialist_id: int, target_date: date) -> Optional[WorkingDay]:
        return (
            db.query(WorkingDay)
            .options(selectinload(WorkingDay.breaks))
            .filter(WorkingDay.specialist_id == specialist_id, WorkingDay.date == target_date)
            .first()
        )

    @staticmethod
    def get_working_days(
        db: Session,
        specialist_id: int,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> list[WorkingDay]:
        """Get working days for a specialist, optionally within a date range"""
        query = (
            db.query(WorkingDay)
            .options(selectinload(WorkingDay.breaks))
            .filter(WorkingDay.specialist_id == specialist_id)
        )
        if start_date:
            query = query.filter(WorkingDay.date >= start_date)
        if end_date:
            query = query.filter(WorkingDay.date <= end_date)
        return query.order_by(WorkingDay.date.asc()).all()

    @staticmethod
    def get_working_day_dates(
        db: Session,
        specialist_id: int,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> list[date]:
        query = db.query(WorkingDay.date).filter(WorkingDay.specialist_id == specialist_id)
        if start_date:
            query = query.filter(WorkingDay.date >= start_date)
        if end_date:
            query = query.filter(WorkingDay.date <= end_date)
        return [row[0] for row in query.all()]

    @staticmethod
    def _add_breaks(db: Session, working_day: WorkingDay, breaks: Iterable) -> None:
        for brk in breaks:
            db.add(
                WorkingDayBreak(
                    working_day=working_day,
                    start_time=brk.start_time,
                    end_time=brk.end_time,
                )
            )

    @staticmethod
    def create_working_day(
        db: Session,
        specialist_id: int,
        target_date: date,
        start_time: str,
        end_time: str,
        slot_interval_minutes: int,
        breaks: Iterable = (),
    ) -> WorkingDay:
        """Create a working day together with its breaks"""
        working_day = WorkingDay(
            specialist_id=specialist_id,
            date=target_date,
            start_time=start_time,
            end_time=end_time,
            slot_interval_minutes=slot_interval_minutes,
        )
        db.add(working_day)
        SchedulingRepository._add_breaks(db, working_day, breaks)
        db.commit()
        db.refresh(working_day)
        return working_day

    @staticmethod
    def bulk_create_working_days(
        db: Session, specialist_id: int, days: Iterable, slot_interval_minutes: int
    ) -> list[WorkingDay]:
        """
        Insert generated working days in one transaction.
        Returns the created rows.
        """
        created = []
        for day in days:
            working_day = WorkingDay(
                specialist_id=specialist_id,
                date=day.date,
                start_time=day.start_time,
                end_time=day.end_time,
                slot_interval_minutes=slot_interval_minutes,
            )
            db.add(working_day)
            SchedulingRepository._add_breaks(db, working_day, day.breaks)
            created.append(working_day)

        db.commit()
        for working_day in created:
            db.refresh(working_day)
        return created

    @staticmethod
    def update_working_day(db: Session, working_day: WorkingDay, **updates) -> WorkingDay:
        """Update a working day with provided fields"""
        for key, value in updates.items():
            if value is not None and hasattr(working_day, key):
                setattr(working_day, key, value)

        db.commit()
        db.refresh(working_day)
        return working_day

    @staticmethod
    def delete_working_day(db: Session, working_day: WorkingDay) -> int:
        """
        Delete a working day and its breaks.
        Returns the number of breaks removed.
        """
        removed = SchedulingRepository._delete_breaks(db, working_day)
        db.delete(working_day)
        db.commit()
        return removed

    @staticmethod
    def _delete_breaks(db: Session, working_day: WorkingDay) -> int:
        removed = (
            db.query(WorkingDayBreak)
            .filter(WorkingDayBreak.working_day_id == working_day.id)
            .delete(synchronize_session=False)
        )
        db.expire(working_day, ["breaks"])
        return removed

    # Breaks
    @staticmethod
    def get_break(db: Session, specialist_id: int, break_id: int) -> Optional[WorkingDayBreak]:
        """Get a break by ID, scoped to the owning specialist"""
        return (
            db.query(WorkingDayBreak)
            .join(WorkingDay, WorkingDayBreak.working_day_id == WorkingDay.id)
            .filter(WorkingDayBreak.id == break_id, WorkingDay.specialist_id == specialist_id)
            .first()
        )

    @staticmethod
    def create_break(db: Session, working_day: WorkingDay, start_time: str, end_time: str) -> WorkingDayBreak:
        brk = WorkingDayBreak(working_day_id=working_day.id, start_time=start_time, end_time=end_time)
        db.add(brk)
        db.commit()
        db.refresh(brk)
        return brk

    @staticmethod
    def update_break(db: Session, brk: WorkingDayBreak, **updates) -> WorkingDayBreak:
        for key, value in updates.items():
            if value is not None and hasattr(brk, key):
                setattr(brk, key, value)

        db.commit()
        db.refresh(brk)
        return brk

    @staticmethod
    def delete_break(db: Session, brk: WorkingDayBreak) -> None:
        db.delete(brk)
        db.commit()

    # Appointments
    @staticmethod
    def get_appointment(db: Session, specialist_id: int, appointment_id: int) -> Optional[Appointment]:
        return (
            db.query(Appointment)
            .filter(Appointment.id == appointment_id, Appointment.specialist_id == specialist_id)
            .first()
        )

    @staticmethod
    def get_appointments_for_date(
        db: Session, specialist_id: int, target_date: date, active_only: bool = False
    ) -> list[Appointment]:
        """Get appointments of one day ordered by start time"""
        query = db.query(Appointment).filter(
            Appointment.specialist_id == specialist_id, Appointment.date == target_date
        )
        if active_only:
            query = query.filter(Appointment.status.in_(_ACTIVE_VALUES))
        return query.order_by(Appointment.start_time.asc()).all()

    @staticmethod
    def get_active_appointments(
        db: Session, specialist_id: int, dates: Optional[Iterable[date]] = None
    ) -> list[Appointment]:
        """Active (pending/confirmed) appointments, optionally limited to some dates"""
        query = db.query(Appointment).filter(
            Appointment.specialist_id == specialist_id,
            Appointment.status.in_(_ACTIVE_VALUES),
        )
        if dates is not None:
            query = query.filter(Appointment.date.in_(list(dates)))
        return query.order_by(Appointment.date.asc(), Appointment.start_time.asc()).all()

    @staticmethod
    def create_appointment(db: Session, specialist_id: int, **appointment_data) -> Appointment:
        """Create a new appointment"""
        appointment = Appointment(specialist_id=specialist_id, **appointment_data)
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return appointment

    @staticmethod
    def update_appointment(db: Session, appointment: Appointment, **updates) -> Appointment:
        """Update an appointment with provided fields"""
        for key, value in updates.items():
            if value is not None and hasattr(appointment, key):
                setattr(appointment, key, value)

        db.commit()
        db.refresh(appointment)
        return appointment

    @staticmethod
    def add_status_history(
        db: Session,
        appointment_id: int,
        old_status: Optional[str],
        new_status: str,
        changed_at: datetime,
        changed_by: Optional[str] = None,
        reason: Optional[str] = None,
        commit: bool = True,
    ) -> AppointmentStatusHistory:
        entry = AppointmentStatusHistory(
            appointment_id=appointment_id,
            old_status=old_status,
            new_status=new_status,
            changed_by=changed_by,
            reason=reason,
            changed_at=changed_at,
        )
        db.add(entry)
        if commit:
            db.commit()
        return entry

    @staticmethod
    def get_status_history(db: Session, appointment_id: int) -> list[AppointmentStatusHistory]:
        return (
            db.query(AppointmentStatusHistory)
            .filter(AppointmentStatusHistory.appointment_id == appointment_id)
            .order_by(AppointmentStatusHistory.id.asc())
            .all()
        )

    # Day Off
    @staticmethod
    def apply_day_off_plan(
        db: Session,
        working_day: WorkingDay,
        plan: DayOffPlan,
        appointments: dict[int, Appointment],
        changed_at: datetime,
        changed_by: Optional[str] = None,
    ) -> None:
        """
        Apply a day-off plan as a single transaction.

        Reschedules, cancellations (with their status history), break
        deletion and working-day deletion either all land or none do.
        """
        try:
            for decision in plan.reschedules:
                appointment = appointments[decision.appointment_id]
                appointment.date = decision.shift.date
                appointment.start_time = decision.shift.start_time
                appointment.end_time = decision.shift.end_time
                appointment.duration_minutes = decision.shift.duration_minutes

            for decision in plan.cancellations:
                appointment = appointments[decision.appointment_id]
                old_status = appointment.status
                appointment.status = AppointmentStatus.CANCELLED.value
                appointment.cancelled_at = changed_at
                appointment.cancellation_reason = decision.reason
                SchedulingRepository.add_status_history(
                    db,
                    appointment.id,
                    old_status,
                    AppointmentStatus.CANCELLED.value,
                    changed_at,
                    changed_by=changed_by,
                    reason=decision.reason,
                    commit=False,
                )

            SchedulingRepository._delete_breaks(db, working_day)
            db.delete(working_day)
            db.commit()
        except Exception as e:
            db.rollback()
            logger.error(f"❌ Day-off commit rolled back for working day {working_day.id}: {e}")
            raise
