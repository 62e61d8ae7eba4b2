"""Clock capability passed into every time-sensitive scheduling call"""

from datetime import date, datetime, timezone
from typing import Optional, Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .errors import FormatError


class Clock(Protocol):
    def now(self) -> datetime:
        """Current instant as an aware datetime"""
        ...


class SystemClock:
    """Wall-clock time in UTC"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """Clock frozen at a given instant (naive values are treated as UTC)"""

    def __init__(self, instant: datetime):
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        self.instant = instant

    def now(self) -> datetime:
        return self.instant


def get_timezone(name: Optional[str]) -> ZoneInfo:
    """
    Resolve an IANA timezone name.

    Raises:
        FormatError: If the name is empty or unknown
    """
    if not name:
        raise FormatError("Timezone is required")
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise FormatError(f"Unknown timezone: {name!r}") from None


def local_now(clock: Clock, tz_name: str) -> datetime:
    """Current instant expressed in the provider's timezone"""
    return clock.now().astimezone(get_timezone(tz_name))


def local_today(clock: Clock, tz_name: str) -> date:
    return local_now(clock, tz_name).date()
