"""Shared constants and builders for scheduling tests"""

from datetime import date, datetime, timezone

from salonbook.domain.scheduling.schemas import AppointmentData, BreakData, WorkingDayData

# Monday morning, UTC
NOW = datetime(2025, 3, 10, 8, 0, tzinfo=timezone.utc)
TODAY = NOW.date()
FUTURE = date(2025, 3, 12)
SPECIALIST_ID = 7


def make_day(start="09:00", end="18:00", breaks=(), on=FUTURE, interval=30, day_id=1) -> WorkingDayData:
    return WorkingDayData(
        id=day_id,
        date=on,
        start_time=start,
        end_time=end,
        slot_interval_minutes=interval,
        breaks=[BreakData(id=i + 1, start_time=s, end_time=e) for i, (s, e) in enumerate(breaks)],
    )


def make_appointment(start, end, on=FUTURE, status="confirmed", appointment_id=None) -> AppointmentData:
    return AppointmentData(id=appointment_id, date=on, start_time=start, end_time=end, status=status)


def booking_payload(on=FUTURE, start="10:00", duration=60, **extra) -> dict:
    payload = {
        "date": on.isoformat(),
        "startTime": start,
        "durationMinutes": duration,
        "serviceName": "Haircut",
        "priceCents": 2500,
        "client": {"name": "Olena", "phone": "+380 67 123 45 67", "email": "Olena@Example.com"},
    }
    payload.update(extra)
    return payload
