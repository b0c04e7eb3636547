"""
Appointments Domain Models

Implements the database model for a scheduled consultation. The calendar
date is stored as a plain date (the intended local date) and the start time
as an "HH:MM" wall-clock string; absolute instants are derived by the time
window resolver from those plus the timezone offset.
"""

from sqlalchemy import (
    Column, String, Date, Boolean, DateTime, ForeignKey,
    Integer, Numeric, Text, Enum, Index, CheckConstraint, Uuid, text
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.infrastructure.database import Base
import uuid
import enum


class AppointmentStatus(str, enum.Enum):
    """Appointment lifecycle status"""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"
    NO_SHOW = "NO_SHOW"
    RESCHEDULED = "RESCHEDULED"
    PENDING_PAYMENT = "PENDING_PAYMENT"


class PaymentStatus(str, enum.Enum):
    """Payment state of an appointment"""
    UNPAID = "UNPAID"
    PAID = "PAID"
    REFUNDED = "REFUNDED"


class BookingType(str, enum.Enum):
    """How the consultation takes place"""
    VISIT = "VISIT"
    ONLINE = "ONLINE"


ACTIVE_STATUSES = (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED)

# Statuses that occupy a doctor's slot; a rescheduled appointment awaiting
# its fee holds the slot too.
SLOT_HOLDING_STATUSES = ACTIVE_STATUSES + (AppointmentStatus.PENDING_PAYMENT,)

_slot_holding_sql = text(
    "status IN (%s)" % ", ".join(f"'{s.value}'" for s in SLOT_HOLDING_STATUSES)
)


class Appointment(Base):
    """One scheduled consultation between a doctor and a patient"""
    __tablename__ = "appointments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    appointment_number = Column(String(50), unique=True, nullable=False, index=True)

    # Parties
    doctor_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    patient_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)

    # Scheduling
    appointment_date = Column(Date, nullable=False, index=True)
    appointment_time = Column(String(5), nullable=False)
    appointment_end_time = Column(String(5))
    appointment_duration = Column(Integer, nullable=False, default=30)
    timezone = Column(String(64))
    timezone_offset = Column(Integer)

    # Type and status
    booking_type = Column(Enum(BookingType), nullable=False, default=BookingType.VISIT)
    status = Column(Enum(AppointmentStatus), nullable=False, default=AppointmentStatus.PENDING)
    payment_status = Column(Enum(PaymentStatus), nullable=False, default=PaymentStatus.UNPAID)
    payment_method = Column(String(50))

    # Visit details
    patient_notes = Column(Text)
    clinic_name = Column(String(200))
    video_call_link = Column(String(500))
    rejection_reason = Column(Text)

    # Cancellation
    cancelled_at = Column(DateTime)
    cancelled_by = Column(Uuid, ForeignKey("users.id"))
    cancellation_reason = Column(Text)

    # Rescheduling
    is_rescheduled = Column(Boolean, default=False)
    original_appointment_id = Column(Uuid, ForeignKey("appointments.id"))
    reschedule_request_id = Column(Uuid)
    reschedule_fee = Column(Numeric(10, 2, asdecimal=False))

    # Audit
    created_by = Column(Uuid, ForeignKey("users.id"))
    created_at = Column(DateTime, default=func.now(), index=True)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    # Relationships
    doctor = relationship("User", foreign_keys=[doctor_id])
    patient = relationship("User", foreign_keys=[patient_id])
    original_appointment = relationship("Appointment", remote_side=[id])
    video_sessions = relationship("VideoSession", back_populates="appointment")

    __table_args__ = (
        Index(
            "uq_appointments_active_slot",
            "doctor_id", "appointment_date", "appointment_time",
            unique=True,
            postgresql_where=_slot_holding_sql,
            sqlite_where=_slot_holding_sql,
        ),
        CheckConstraint(
            "appointment_duration >= 15 AND appointment_duration <= 120",
            name="check_appointment_duration"
        ),
    )

    @property
    def is_online(self) -> bool:
        return self.booking_type == BookingType.ONLINE
