"""Scheduling error kinds and the verdict object returned by checks"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    """Closed set of failure kinds; the presentation layer maps them to text"""

    FORMAT_ERROR = "format_error"
    INVALID_RANGE = "invalid_range"
    CONFLICT = "conflict"
    INVALID_TRANSITION = "invalid_transition"
    RECONCILIATION_INCOMPLETE = "reconciliation_incomplete"


class SchedulingError(Exception):
    """Base class for every failure raised by the scheduling engine"""

    kind: ErrorKind

    def __init__(self, detail: str, conflicts_with: Optional[dict[str, Any]] = None):
        super().__init__(detail)
        self.detail = detail
        self.conflicts_with = conflicts_with

    def to_dict(self) -> dict:
        return {
            "error": self.kind.value,
            "detail": self.detail,
            "conflicts_with": self.conflicts_with,
        }


class FormatError(SchedulingError, ValueError):
    """Malformed time or date input"""

    kind = ErrorKind.FORMAT_ERROR


class InvalidRange(SchedulingError):
    """start >= end, or an interval outside its container"""

    kind = ErrorKind.INVALID_RANGE


class Conflict(SchedulingError):
    """Interval collides with a break/appointment, or the record already exists"""

    kind = ErrorKind.CONFLICT


class InvalidTransition(SchedulingError):
    """Status change not permitted from the current state"""

    kind = ErrorKind.INVALID_TRANSITION


class ReconciliationIncomplete(SchedulingError):
    """Day-off commit attempted before every appointment has a decision"""

    kind = ErrorKind.RECONCILIATION_INCOMPLETE


_ERRORS_BY_KIND: dict[ErrorKind, type[SchedulingError]] = {
    ErrorKind.FORMAT_ERROR: FormatError,
    ErrorKind.INVALID_RANGE: InvalidRange,
    ErrorKind.CONFLICT: Conflict,
    ErrorKind.INVALID_TRANSITION: InvalidTransition,
    ErrorKind.RECONCILIATION_INCOMPLETE: ReconciliationIncomplete,
}


@dataclass(frozen=True)
class Verdict:
    """
    Result of a conflict check.

    ``ok`` verdicts may still carry ``extra`` information (e.g. the breaks
    a working-day deletion would orphan). Failed verdicts carry the error
    kind, a machine-oriented detail and, for conflicts, the interval that
    was hit.
    """

    ok: bool
    kind: Optional[ErrorKind] = None
    detail: Optional[str] = None
    conflicts_with: Optional[dict[str, Any]] = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls, **extra) -> "Verdict":
        return cls(ok=True, extra=extra)

    @classmethod
    def failure(
        cls,
        kind: ErrorKind,
        detail: str,
        conflicts_with: Optional[dict[str, Any]] = None,
    ) -> "Verdict":
        return cls(ok=False, kind=kind, detail=detail, conflicts_with=conflicts_with)

    def __bool__(self) -> bool:
        return self.ok

    def raise_for_error(self) -> "Verdict":
        """Raise the matching SchedulingError if this verdict is a failure"""
        if self.ok:
            return self
        error_cls = _ERRORS_BY_KIND[self.kind]
        raise error_cls(self.detail or self.kind.value, conflicts_with=self.conflicts_with)
