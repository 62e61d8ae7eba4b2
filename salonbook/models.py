from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class BookingSettings(Base):
    __tablename__ = "booking_settings"

    id = Column(Integer, primary_key=True, index=True)
    specialist_id = Column(Integer, unique=True, index=True, nullable=False)
    timezone = Column(String(64), nullable=False)  # IANA name, e.g. "Europe/Kyiv"
    slot_interval_minutes = Column(Integer, default=30, nullable=False)
    min_booking_notice_hours = Column(Integer, default=0, nullable=False)
    max_days_ahead = Column(Integer, default=60, nullable=False)
    auto_confirm = Column(Boolean, default=False, nullable=False)  # Public bookings skip "pending"

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class WorkingDay(Base):
    __tablename__ = "working_days"
    __table_args__ = (UniqueConstraint("specialist_id", "date", name="uq_working_days_specialist_date"),)

    id = Column(Integer, primary_key=True, index=True)
    specialist_id = Column(Integer, index=True, nullable=False)
    date = Column(Date, nullable=False)
    start_time = Column(String(10), nullable=False)  # HH:MM format
    end_time = Column(String(10), nullable=False)
    slot_interval_minutes = Column(Integer, default=30, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Breaks are deleted explicitly before the day, never through a cascade
    breaks = relationship(
        "WorkingDayBreak",
        back_populates="working_day",
        order_by="WorkingDayBreak.start_time",
    )


class WorkingDayBreak(Base):
    __tablename__ = "working_day_breaks"

    id = Column(Integer, primary_key=True, index=True)
    working_day_id = Column(Integer, ForeignKey("working_days.id"), index=True, nullable=False)
    start_time = Column(String(10), nullable=False)  # HH:MM format
    end_time = Column(String(10), nullable=False)

    created_at = Column(DateTime, server_default=func.now())

    working_day = relationship("WorkingDay", back_populates="breaks")


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)
    specialist_id = Column(Integer, index=True, nullable=False)
    date = Column(Date, index=True, nullable=False)
    start_time = Column(String(10), nullable=False)  # HH:MM format
    end_time = Column(String(10), nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    status = Column(String(20), default="pending", nullable=False)  # pending, confirmed, completed, cancelled, no_show

    service_name = Column(String(255), nullable=True)
    price_cents = Column(Integer, default=0, nullable=False)  # Minor units, no floats
    currency = Column(String(3), nullable=False)

    client_name = Column(String(255), nullable=False)
    client_phone = Column(String(50), nullable=True)
    client_email = Column(String(255), nullable=True)
    client_notes = Column(Text, nullable=True)
    creator_notes = Column(Text, nullable=True)  # Internal note left by the specialist

    confirmed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancellation_reason = Column(String(500), nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    status_history = relationship(
        "AppointmentStatusHistory",
        back_populates="appointment",
        order_by="AppointmentStatusHistory.id",
    )


class AppointmentStatusHistory(Base):
    __tablename__ = "appointment_status_history"

    id = Column(Integer, primary_key=True, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), index=True, nullable=False)
    old_status = Column(String(20), nullable=True)
    new_status = Column(String(20), nullable=False)
    changed_by = Column(String(255), nullable=True)  # Actor id, free-form
    reason = Column(String(500), nullable=True)
    changed_at = Column(DateTime, nullable=False)

    appointment = relationship("Appointment", back_populates="status_history")
