"""
Day-off reconciliation

When a working day that still has active appointments is removed, every
one of those appointments needs a decision first: move it to another slot
or cancel it. Decisions are staged one by one (each reschedule is checked
as soon as it is staged), then frozen into a DayOffPlan that the
repository applies in a single transaction after ``revalidate`` has run
against freshly loaded appointments.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Optional

from .conflict_validator import validate_appointment_placement
from .errors import ErrorKind, ReconciliationIncomplete, SchedulingError, Verdict
from .lifecycle import AppointmentStatus, TimeShift, attempt_transition, is_active, plan_reschedule
from .time_utils import parse_date


@dataclass(frozen=True)
class RescheduleDecision:
    appointment_id: int
    shift: TimeShift


@dataclass(frozen=True)
class CancelDecision:
    appointment_id: int
    reason: Optional[str] = None


@dataclass(frozen=True)
class DayOffPlan:
    """Complete set of decisions for one working day"""

    working_day_id: Optional[int]
    date: date
    reschedules: tuple[RescheduleDecision, ...] = ()
    cancellations: tuple[CancelDecision, ...] = ()
    orphaned_break_ids: tuple[int, ...] = field(default_factory=tuple)

    @property
    def appointment_ids(self) -> set[int]:
        ids = {d.appointment_id for d in self.reschedules}
        ids.update(d.appointment_id for d in self.cancellations)
        return ids


class _StagedInterval:
    """Staged reschedule seen by the placement check as a booked interval"""

    def __init__(self, appointment_id: int, shift: TimeShift):
        self.id = appointment_id
        self.date = shift.date
        self.start_time = shift.start_time
        self.end_time = shift.end_time
        self.status = AppointmentStatus.CONFIRMED


def _check_reschedule(
    appointment_id: int,
    shift: TimeShift,
    removed_date: date,
    committed: Iterable,
    staged: Iterable[RescheduleDecision],
    moving_ids: set,
) -> Verdict:
    if shift.date == removed_date:
        return Verdict.failure(
            ErrorKind.CONFLICT,
            "Cannot reschedule onto the day being removed",
            conflicts_with={"date": removed_date.isoformat()},
        )

    # Appointments leaving the removed day no longer block anything there
    others = [a for a in committed if getattr(a, "id", None) not in moving_ids]
    others.extend(_StagedInterval(d.appointment_id, d.shift) for d in staged if d.appointment_id != appointment_id)

    return validate_appointment_placement(
        shift.start_time, shift.end_time, shift.date, others, exclude_id=appointment_id
    )


class DayOffReconciler:
    """
    Stages per-appointment decisions for a working day being removed.

    Args:
        working_day: Day being removed (needs ``date``, optionally ``id`` and ``breaks``)
        affected: Appointments on that day; only active ones need a decision
        other_appointments: Committed appointments of the same owner on other dates
    """

    def __init__(self, working_day, affected: Iterable, other_appointments: Iterable = ()):
        self.working_day = working_day
        self.date = parse_date(working_day.date)
        self.affected = {
            a.id: a for a in affected if is_active(a.status) and parse_date(a.date) == self.date
        }
        self.other_appointments = list(other_appointments)
        self._decisions: dict[int, object] = {}

    def _appointment(self, appointment_id: int):
        try:
            return self.affected[appointment_id]
        except KeyError:
            raise KeyError(f"Appointment {appointment_id} is not on the day being removed") from None

    def stage_reschedule(self, appointment_id: int, new_date, new_start, new_end) -> Verdict:
        """
        Stage a move of one appointment to a new slot.

        The slot is checked immediately against committed appointments and
        every other staged reschedule. A failed verdict leaves any earlier
        decision for the appointment untouched.
        """
        appointment = self._appointment(appointment_id)
        try:
            shift = plan_reschedule(appointment, new_date, new_start, new_end)
        except SchedulingError as e:
            return Verdict.failure(e.kind, e.detail, e.conflicts_with)

        verdict = _check_reschedule(
            appointment_id,
            shift,
            self.date,
            self.other_appointments,
            self._staged_reschedules(),
            set(self.affected),
        )
        if verdict.ok:
            self._decisions[appointment_id] = RescheduleDecision(appointment_id, shift)
        return verdict

    def stage_cancel(self, appointment_id: int, reason: Optional[str] = None) -> Verdict:
        appointment = self._appointment(appointment_id)
        try:
            attempt_transition(appointment.status, AppointmentStatus.CANCELLED)
        except SchedulingError as e:
            return Verdict.failure(e.kind, e.detail, e.conflicts_with)
        self._decisions[appointment_id] = CancelDecision(appointment_id, reason)
        return Verdict.success()

    def clear(self, appointment_id: int) -> None:
        self._decisions.pop(appointment_id, None)

    def decision_for(self, appointment_id: int):
        return self._decisions.get(appointment_id)

    def _staged_reschedules(self) -> list[RescheduleDecision]:
        return [d for d in self._decisions.values() if isinstance(d, RescheduleDecision)]

    @property
    def pending_count(self) -> int:
        """Appointments that already have a staged decision"""
        return len(self._decisions)

    @property
    def total_count(self) -> int:
        return len(self.affected)

    @property
    def is_complete(self) -> bool:
        return not self.missing

    @property
    def missing(self) -> list[int]:
        return sorted(a_id for a_id in self.affected if a_id not in self._decisions)

    def build_plan(self) -> DayOffPlan:
        """
        Freeze the staged decisions.

        Raises:
            ReconciliationIncomplete: If any affected appointment has no decision
        """
        missing = self.missing
        if missing:
            raise ReconciliationIncomplete(
                f"{len(missing)} appointment(s) still need a decision",
                conflicts_with={"missing": missing},
            )

        breaks = getattr(self.working_day, "breaks", None) or []
        return DayOffPlan(
            working_day_id=getattr(self.working_day, "id", None),
            date=self.date,
            reschedules=tuple(self._staged_reschedules()),
            cancellations=tuple(d for d in self._decisions.values() if isinstance(d, CancelDecision)),
            orphaned_break_ids=tuple(b.id for b in breaks if getattr(b, "id", None) is not None),
        )


def revalidate(plan: DayOffPlan, fresh_appointments: Iterable) -> Verdict:
    """
    Re-check a plan against appointments loaded at commit time.

    Fails when an appointment was booked on the removed day after the plan
    was built, when a planned appointment is no longer active, or when a
    reschedule now collides with a booking made in the meantime.
    """
    fresh = list(fresh_appointments)
    planned = plan.appointment_ids

    on_day = [a for a in fresh if is_active(a.status) and parse_date(a.date) == plan.date]
    unplanned = sorted(a.id for a in on_day if a.id not in planned)
    if unplanned:
        return Verdict.failure(
            ErrorKind.RECONCILIATION_INCOMPLETE,
            f"{len(unplanned)} appointment(s) were added to the day after the plan was built",
            conflicts_with={"missing": unplanned},
        )

    by_id = {a.id: a for a in fresh}
    for appointment_id in sorted(planned):
        current = by_id.get(appointment_id)
        if current is None or not is_active(current.status):
            status = getattr(current, "status", None)
            return Verdict.failure(
                ErrorKind.INVALID_TRANSITION,
                f"Appointment {appointment_id} is no longer active",
                conflicts_with={"id": appointment_id, "status": getattr(status, "value", status)},
            )

    for decision in plan.reschedules:
        verdict = _check_reschedule(
            decision.appointment_id, decision.shift, plan.date, fresh, plan.reschedules, planned
        )
        if not verdict.ok:
            return verdict

    return Verdict.success()
