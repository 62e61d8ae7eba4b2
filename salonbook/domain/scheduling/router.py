"""Scheduling router - FastAPI endpoints for availability, schedules and appointments"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...database import get_db
from ...models import Appointment, WorkingDay, WorkingDayBreak
from .clock import Clock, SystemClock
from .schemas import (
    AppointmentResponse,
    AvailabilityResponse,
    BookingRequest,
    BreakInput,
    BreakResponse,
    BreakUpdate,
    BulkScheduleRequest,
    BulkScheduleResult,
    DayOffPreviewResponse,
    DayOffRequest,
    DayOffResult,
    QuickBookingRequest,
    RescheduleRequest,
    ServiceWindow,
    StatusChangeRequest,
    WorkingDayCreate,
    WorkingDayResponse,
    WorkingDayUpdate,
)
from .service import SchedulingService
from .time_utils import normalize_time

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/specialists/{specialist_id}", tags=["Scheduling"])


def get_clock() -> Clock:
    """Clock used by the scheduling service (overridden in tests)"""
    return SystemClock()


def get_scheduling_service(
    db: Session = Depends(get_db), clock: Clock = Depends(get_clock)
) -> SchedulingService:
    """Dependency injection for SchedulingService"""
    return SchedulingService(db, clock)


def _break_response(brk: WorkingDayBreak) -> BreakResponse:
    return BreakResponse(
        id=brk.id,
        startTime=normalize_time(brk.start_time),
        endTime=normalize_time(brk.end_time),
    )


def _working_day_response(day: WorkingDay) -> WorkingDayResponse:
    return WorkingDayResponse(
        id=day.id,
        date=day.date,
        startTime=normalize_time(day.start_time),
        endTime=normalize_time(day.end_time),
        slotIntervalMinutes=day.slot_interval_minutes,
        breaks=[_break_response(b) for b in day.breaks],
    )


def _appointment_response(a: Appointment) -> AppointmentResponse:
    return AppointmentResponse(
        id=a.id,
        date=a.date,
        startTime=normalize_time(a.start_time),
        endTime=normalize_time(a.end_time),
        durationMinutes=a.duration_minutes,
        status=a.status,
        serviceName=a.service_name,
        priceCents=a.price_cents,
        currency=a.currency,
        clientName=a.client_name,
        clientPhone=a.client_phone,
        clientEmail=a.client_email,
        createdAt=a.created_at,
    )


# ============================================================================
# AVAILABILITY
# ============================================================================


@router.get("/availability", response_model=AvailabilityResponse)
async def get_availability(
    specialist_id: int,
    date: date = Query(..., description="Date in YYYY-MM-DD format"),
    duration: int = Query(..., gt=0, le=24 * 60, description="Service duration in minutes"),
    available_from: Optional[str] = Query(None, alias="availableFrom", description="Service window start (HH:MM)"),
    available_to: Optional[str] = Query(None, alias="availableTo", description="Service window end (HH:MM)"),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Bookable slots for one date, optionally narrowed to the service's own window"""
    # normalize_time raises FormatError on malformed input
    window = ServiceWindow(
        available_from=normalize_time(available_from) if available_from else None,
        available_to=normalize_time(available_to) if available_to else None,
    )
    return service.get_availability(specialist_id, date, duration, service_windows=[window])


# ============================================================================
# WORKING DAYS
# ============================================================================


@router.get("/working-days", response_model=list[WorkingDayResponse])
async def get_working_days(
    specialist_id: int,
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    service: SchedulingService = Depends(get_scheduling_service),
):
    days = service.get_working_days(specialist_id, start_date, end_date)
    return [_working_day_response(d) for d in days]


@router.post("/working-days", response_model=WorkingDayResponse, status_code=201)
async def create_working_day(
    specialist_id: int,
    data: WorkingDayCreate,
    service: SchedulingService = Depends(get_scheduling_service),
):
    return _working_day_response(service.create_working_day(specialist_id, data))


@router.post("/working-days/bulk", response_model=BulkScheduleResult, status_code=201)
async def bulk_create_working_days(
    specialist_id: int,
    data: BulkScheduleRequest,
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Create working days from a weekly, rotation or explicit-dates pattern"""
    return service.bulk_create_working_days(specialist_id, data)


@router.patch("/working-days/{working_day_id}", response_model=WorkingDayResponse)
async def update_working_day(
    specialist_id: int,
    working_day_id: int,
    data: WorkingDayUpdate,
    service: SchedulingService = Depends(get_scheduling_service),
):
    return _working_day_response(service.update_working_day(specialist_id, working_day_id, data))


@router.delete("/working-days/{working_day_id}")
async def delete_working_day(
    specialist_id: int,
    working_day_id: int,
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Delete a working day without active appointments (use day-off otherwise)"""
    return service.delete_working_day(specialist_id, working_day_id)


# ============================================================================
# BREAKS
# ============================================================================


@router.post("/working-days/{working_day_id}/breaks", response_model=BreakResponse, status_code=201)
async def add_break(
    specialist_id: int,
    working_day_id: int,
    data: BreakInput,
    service: SchedulingService = Depends(get_scheduling_service),
):
    return _break_response(service.add_break(specialist_id, working_day_id, data))


@router.patch("/breaks/{break_id}", response_model=BreakResponse)
async def update_break(
    specialist_id: int,
    break_id: int,
    data: BreakUpdate,
    service: SchedulingService = Depends(get_scheduling_service),
):
    return _break_response(service.update_break(specialist_id, break_id, data))


@router.delete("/breaks/{break_id}")
async def delete_break(
    specialist_id: int,
    break_id: int,
    service: SchedulingService = Depends(get_scheduling_service),
):
    return service.delete_break(specialist_id, break_id)


# ============================================================================
# APPOINTMENTS
# ============================================================================


@router.post("/appointments", response_model=AppointmentResponse, status_code=201)
async def book_appointment(
    specialist_id: int,
    data: BookingRequest,
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Public booking flow"""
    return _appointment_response(service.book_appointment(specialist_id, data))


@router.post("/appointments/quick", response_model=AppointmentResponse, status_code=201)
async def quick_book(
    specialist_id: int,
    data: QuickBookingRequest,
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Owner booking into a free slot"""
    return _appointment_response(service.quick_book(specialist_id, data))


@router.post("/appointments/{appointment_id}/status", response_model=AppointmentResponse)
async def change_status(
    specialist_id: int,
    appointment_id: int,
    data: StatusChangeRequest,
    service: SchedulingService = Depends(get_scheduling_service),
):
    return _appointment_response(service.change_status(specialist_id, appointment_id, data))


@router.post("/appointments/{appointment_id}/start-early", response_model=AppointmentResponse)
async def start_early(
    specialist_id: int,
    appointment_id: int,
    service: SchedulingService = Depends(get_scheduling_service),
):
    return _appointment_response(service.start_early(specialist_id, appointment_id))


@router.post("/appointments/{appointment_id}/reschedule", response_model=AppointmentResponse)
async def reschedule(
    specialist_id: int,
    appointment_id: int,
    data: RescheduleRequest,
    service: SchedulingService = Depends(get_scheduling_service),
):
    return _appointment_response(service.reschedule(specialist_id, appointment_id, data))


# ============================================================================
# DAY OFF
# ============================================================================


@router.get("/working-days/{working_day_id}/day-off", response_model=DayOffPreviewResponse)
async def preview_day_off(
    specialist_id: int,
    working_day_id: int,
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Appointments that need a decision before the day can be removed"""
    working_day, appointments = service.preview_day_off(specialist_id, working_day_id)
    return DayOffPreviewResponse(
        workingDayId=working_day.id,
        date=working_day.date,
        appointments=[_appointment_response(a) for a in appointments],
        orphanedBreaks=[_break_response(b) for b in working_day.breaks],
    )


@router.post("/working-days/{working_day_id}/day-off", response_model=DayOffResult)
async def apply_day_off(
    specialist_id: int,
    working_day_id: int,
    data: DayOffRequest,
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Remove the day and apply every reschedule/cancel decision atomically"""
    return service.apply_day_off(specialist_id, working_day_id, data)
