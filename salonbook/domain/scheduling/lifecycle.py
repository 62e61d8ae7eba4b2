"""
Appointment lifecycle state machine

Statuses: pending → confirmed → completed / cancelled / no_show
pending can also go straight to cancelled. completed, cancelled and
no_show are terminal.

Reschedule and start-early are time rewrites, not status changes; they
are planned here and must still pass the placement check before the
caller persists them.
"""

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Optional, Union

from .errors import InvalidRange, InvalidTransition
from .time_utils import MINUTES_PER_DAY, format_minutes, minutes_of, parse_date, parse_time


class AppointmentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


VALID_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset({AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED}),
    AppointmentStatus.CONFIRMED: frozenset(
        {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW}
    ),
    AppointmentStatus.COMPLETED: frozenset(),  # Terminal state
    AppointmentStatus.CANCELLED: frozenset(),  # Terminal state
    AppointmentStatus.NO_SHOW: frozenset(),  # Terminal state
}

ACTIVE_STATUSES = frozenset({AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED})
TERMINAL_STATUSES = frozenset(s for s, targets in VALID_TRANSITIONS.items() if not targets)
RESCHEDULABLE_STATUSES = ACTIVE_STATUSES

StatusLike = Union[AppointmentStatus, str]


def coerce_status(value: StatusLike) -> AppointmentStatus:
    try:
        return AppointmentStatus(value)
    except ValueError:
        raise InvalidTransition(f"Unknown appointment status: {value!r}") from None


def is_active(status: StatusLike) -> bool:
    """Active appointments still occupy time on the schedule"""
    return AppointmentStatus(status) in ACTIVE_STATUSES


def is_terminal(status: StatusLike) -> bool:
    return AppointmentStatus(status) in TERMINAL_STATUSES


def allowed_transitions(current: StatusLike) -> frozenset[AppointmentStatus]:
    return VALID_TRANSITIONS[coerce_status(current)]


def can_transition(current: StatusLike, requested: StatusLike) -> bool:
    """
    Check whether a status change is allowed.

    A same-status request is not a no-op: it is simply not in the table.
    """
    try:
        return coerce_status(requested) in allowed_transitions(current)
    except InvalidTransition:
        return False


def attempt_transition(current: StatusLike, requested: StatusLike) -> AppointmentStatus:
    """
    Validate a status change and return the new status.

    Raises:
        InvalidTransition: If the change is not in the transition table
    """
    current_status = coerce_status(current)
    requested_status = coerce_status(requested)

    if requested_status not in VALID_TRANSITIONS[current_status]:
        raise InvalidTransition(
            f"Cannot change status from {current_status.value} to {requested_status.value}",
            conflicts_with={"current": current_status.value, "requested": requested_status.value},
        )
    return requested_status


def transition_effects(requested: StatusLike, now: datetime) -> dict[str, datetime]:
    """Timestamp columns to set alongside a status change"""
    status = coerce_status(requested)
    if status == AppointmentStatus.CONFIRMED:
        return {"confirmed_at": now}
    if status == AppointmentStatus.CANCELLED:
        return {"cancelled_at": now}
    return {}


@dataclass(frozen=True)
class TimeShift:
    """New placement for an appointment; status is untouched"""

    date: date
    start_minutes: int
    end_minutes: int

    @property
    def start_time(self) -> str:
        return format_minutes(self.start_minutes)

    @property
    def end_time(self) -> str:
        return format_minutes(self.end_minutes)

    @property
    def duration_minutes(self) -> int:
        return self.end_minutes - self.start_minutes


def _duration_of(appointment) -> int:
    duration = getattr(appointment, "duration_minutes", None)
    if duration:
        return int(duration)
    return parse_time(appointment.end_time) - parse_time(appointment.start_time)


def plan_start_early(appointment, now_local: datetime) -> TimeShift:
    """
    Move a confirmed appointment to start at ``now_local`` (provider time).

    The original duration is preserved. The caller must run the placement
    check on the result before applying it.

    Raises:
        InvalidTransition: If the appointment is not confirmed
        InvalidRange: If the appointment is not on today's date, or the
            shifted appointment would run past midnight
    """
    status = coerce_status(appointment.status)
    if status != AppointmentStatus.CONFIRMED:
        raise InvalidTransition(
            f"Only confirmed appointments can be started early (status is {status.value})"
        )

    today = now_local.date()
    booked_on = parse_date(appointment.date)
    if booked_on != today:
        raise InvalidRange(
            f"Only appointments booked for today can be started early ({today.isoformat()})",
            conflicts_with={"date": booked_on.isoformat()},
        )

    start = minutes_of(now_local)
    end = start + _duration_of(appointment)
    if end > MINUTES_PER_DAY:
        raise InvalidRange("Started-early appointment would end after midnight")

    return TimeShift(date=today, start_minutes=start, end_minutes=end)


def plan_reschedule(appointment, new_date, new_start, new_end) -> TimeShift:
    """
    Validate a reschedule request against the appointment's status.

    Raises:
        InvalidTransition: If the appointment is no longer pending/confirmed
        InvalidRange: If the new start is not before the new end
        FormatError: If the new date/times are malformed
    """
    status = coerce_status(appointment.status)
    if status not in RESCHEDULABLE_STATUSES:
        raise InvalidTransition(f"Cannot reschedule an appointment with status {status.value}")

    target_date = parse_date(new_date)
    start = parse_time(new_start)
    end = parse_time(new_end)
    if start >= end:
        raise InvalidRange(f"Start time {format_minutes(start)} must be before end time {format_minutes(end)}")

    return TimeShift(date=target_date, start_minutes=start, end_minutes=end)


@dataclass(frozen=True)
class StatusChange:
    """Audit record of a status transition"""

    appointment_id: Optional[int]
    old_status: AppointmentStatus
    new_status: AppointmentStatus
    changed_by: Optional[str]
    reason: Optional[str]
    changed_at: datetime
