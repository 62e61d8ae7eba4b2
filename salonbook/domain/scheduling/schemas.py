"""Scheduling domain schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ...shared.validators import validate_email, validate_phone
from .lifecycle import AppointmentStatus, is_active
from .time_utils import normalize_time, parse_time


def _normalize(v):
    if v is None:
        return v
    return normalize_time(v)


# ============================================================================
# ENGINE INPUTS
# ============================================================================


class BreakData(BaseModel):
    """Break inside a working day"""

    id: Optional[int] = None
    start_time: str
    end_time: str

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def normalize_times(cls, v):
        return _normalize(v)

    @property
    def start_minutes(self) -> int:
        return parse_time(self.start_time)

    @property
    def end_minutes(self) -> int:
        return parse_time(self.end_time)

    class Config:
        from_attributes = True


class WorkingDayData(BaseModel):
    """One calendar date on which a specialist is bookable"""

    id: Optional[int] = None
    specialist_id: Optional[int] = None
    date: date
    start_time: str
    end_time: str
    slot_interval_minutes: int = Field(default=30, gt=0, le=240)
    breaks: list[BreakData] = Field(default_factory=list)

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def normalize_times(cls, v):
        return _normalize(v)

    @property
    def start_minutes(self) -> int:
        return parse_time(self.start_time)

    @property
    def end_minutes(self) -> int:
        return parse_time(self.end_time)

    class Config:
        from_attributes = True


class AppointmentData(BaseModel):
    """Booked interval as seen by the engine"""

    id: Optional[int] = None
    date: date
    start_time: str
    end_time: str
    status: AppointmentStatus = AppointmentStatus.CONFIRMED
    duration_minutes: Optional[int] = None
    client_name: Optional[str] = None

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def normalize_times(cls, v):
        return _normalize(v)

    @property
    def start_minutes(self) -> int:
        return parse_time(self.start_time)

    @property
    def end_minutes(self) -> int:
        return parse_time(self.end_time)

    @property
    def is_active(self) -> bool:
        return is_active(self.status)

    class Config:
        from_attributes = True


class ServiceWindow(BaseModel):
    """Per-service booking window; a missing bound means working hours apply"""

    available_from: Optional[str] = None
    available_to: Optional[str] = None

    @field_validator("available_from", "available_to", mode="before")
    @classmethod
    def normalize_times(cls, v):
        return _normalize(v)


SlotReason = Literal["past", "break", "booked", "outside_hours"]


class TimeSlot(BaseModel):
    """Candidate start time plus the free time that follows it"""

    time: str
    duration_minutes: int
    available: bool
    reason: Optional[SlotReason] = None


class FreeGap(BaseModel):
    start_time: str
    end_time: str
    duration_minutes: int


# ============================================================================
# API REQUESTS
# ============================================================================


class WorkingDayCreate(BaseModel):
    """Schema for creating a working day"""

    date: date
    startTime: str
    endTime: str
    slotIntervalMinutes: Optional[int] = Field(default=None, gt=0, le=240)

    @field_validator("startTime", "endTime", mode="before")
    @classmethod
    def normalize_times(cls, v):
        return _normalize(v)


class WorkingDayUpdate(BaseModel):
    """Schema for updating working hours of an existing day"""

    startTime: Optional[str] = None
    endTime: Optional[str] = None

    @field_validator("startTime", "endTime", mode="before")
    @classmethod
    def normalize_times(cls, v):
        return _normalize(v)


class BreakInput(BaseModel):
    startTime: str
    endTime: str

    @field_validator("startTime", "endTime", mode="before")
    @classmethod
    def normalize_times(cls, v):
        return _normalize(v)


class BreakUpdate(BaseModel):
    startTime: Optional[str] = None
    endTime: Optional[str] = None

    @field_validator("startTime", "endTime", mode="before")
    @classmethod
    def normalize_times(cls, v):
        return _normalize(v)


class WorkingHoursTemplate(BaseModel):
    """Hours applied to every generated day of a bulk pattern"""

    startTime: str
    endTime: str
    breaks: list[BreakInput] = Field(default_factory=list)

    @field_validator("startTime", "endTime", mode="before")
    @classmethod
    def normalize_times(cls, v):
        return _normalize(v)


class BulkScheduleRequest(BaseModel):
    """Schema for a one-shot bulk creation from a pattern"""

    type: Literal["weekly", "rotation", "dates"]
    startDate: Optional[date] = None
    endDate: Optional[date] = None
    weekdays: list[int] = Field(default_factory=list)
    daysOn: Optional[int] = Field(default=None, gt=0)
    daysOff: Optional[int] = Field(default=None, ge=0)
    dates: list[date] = Field(default_factory=list)
    workingHours: WorkingHoursTemplate

    @field_validator("weekdays")
    @classmethod
    def validate_weekdays(cls, v):
        for day in v:
            if day < 0 or day > 6:
                raise ValueError("Weekdays must be between 0 (Monday) and 6 (Sunday)")
        return v

    @model_validator(mode="after")
    def validate_range(self):
        if self.type in ("weekly", "rotation") and (self.startDate is None or self.endDate is None):
            raise ValueError("startDate and endDate are required for weekly and rotation patterns")
        if self.type == "rotation" and self.daysOn is None:
            raise ValueError("daysOn is required for rotation patterns")
        return self


class ClientInfo(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    phone: Optional[str] = None
    email: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=2000)

    @field_validator("phone")
    @classmethod
    def check_phone(cls, v):
        if v:
            return validate_phone(v)
        return v

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        if v:
            return validate_email(v)
        return v


class BookingRequest(BaseModel):
    """Schema for a public booking"""

    date: date
    startTime: str
    durationMinutes: int = Field(gt=0, le=24 * 60)
    serviceName: str
    priceCents: int = Field(default=0, ge=0)
    currency: Optional[str] = None
    client: ClientInfo

    @field_validator("startTime", mode="before")
    @classmethod
    def normalize_times(cls, v):
        return _normalize(v)


class QuickBookingRequest(BookingRequest):
    """Owner-initiated booking into a free slot"""

    status: Literal["pending", "confirmed"] = "confirmed"


class StatusChangeRequest(BaseModel):
    status: AppointmentStatus
    reason: Optional[str] = Field(default=None, max_length=500)
    actorId: Optional[str] = None


class RescheduleRequest(BaseModel):
    newDate: date
    newStartTime: str
    newEndTime: str

    @field_validator("newStartTime", "newEndTime", mode="before")
    @classmethod
    def normalize_times(cls, v):
        return _normalize(v)


class DayOffDecision(BaseModel):
    """Staged decision for one appointment on a day being removed"""

    appointmentId: int
    action: Literal["reschedule", "cancel"]
    newDate: Optional[date] = None
    newStartTime: Optional[str] = None
    newEndTime: Optional[str] = None
    reason: Optional[str] = Field(default=None, max_length=500)

    @field_validator("newStartTime", "newEndTime", mode="before")
    @classmethod
    def normalize_times(cls, v):
        return _normalize(v)

    @model_validator(mode="after")
    def validate_reschedule_fields(self):
        if self.action == "reschedule" and not (self.newDate and self.newStartTime and self.newEndTime):
            raise ValueError("newDate, newStartTime and newEndTime are required to reschedule")
        return self


class DayOffRequest(BaseModel):
    decisions: list[DayOffDecision]
    actorId: Optional[str] = None


# ============================================================================
# API RESPONSES
# ============================================================================


class BreakResponse(BaseModel):
    id: int
    startTime: str
    endTime: str


class WorkingDayResponse(BaseModel):
    id: int
    date: date
    startTime: str
    endTime: str
    slotIntervalMinutes: int
    breaks: list[BreakResponse] = Field(default_factory=list)


class AppointmentResponse(BaseModel):
    id: int
    date: date
    startTime: str
    endTime: str
    durationMinutes: int
    status: AppointmentStatus
    serviceName: Optional[str] = None
    priceCents: int
    currency: str
    clientName: str
    clientPhone: Optional[str] = None
    clientEmail: Optional[str] = None
    createdAt: Optional[datetime] = None


class AvailabilityResponse(BaseModel):
    date: date
    timezone: str
    durationMinutes: int
    slots: list[TimeSlot]


class BulkScheduleResult(BaseModel):
    created: int
    skipped: list[dict] = Field(default_factory=list)


class DayOffPreviewResponse(BaseModel):
    workingDayId: int
    date: date
    appointments: list[AppointmentResponse]
    orphanedBreaks: list[BreakResponse] = Field(default_factory=list)


class DayOffResult(BaseModel):
    workingDayId: int
    rescheduled: int
    cancelled: int
