"""
Reschedules Domain Models

A patient's request to move a missed online appointment to a new slot for a
fee. At most one PENDING or APPROVED request may reference an appointment.
"""

from sqlalchemy import (
    Column, String, Date, DateTime, ForeignKey, Numeric, Text, Enum, Index, Uuid, text
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.domain.appointments.models import PaymentStatus
from app.infrastructure.database import Base
import uuid
import enum


class RescheduleStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


OPEN_STATUSES = (RescheduleStatus.PENDING, RescheduleStatus.APPROVED)

_open_request_sql = text(
    "status IN (%s)" % ", ".join(f"'{s.value}'" for s in OPEN_STATUSES)
)


class RescheduleRequest(Base):
    """Patient request to reschedule a missed appointment"""
    __tablename__ = "reschedule_requests"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    appointment_id = Column(Uuid, ForeignKey("appointments.id"), nullable=False, index=True)
    patient_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    doctor_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)

    reason = Column(Text, nullable=False)
    preferred_date = Column(Date)
    preferred_time = Column(String(5))

    status = Column(Enum(RescheduleStatus), nullable=False, default=RescheduleStatus.PENDING)

    # Fee
    original_appointment_fee = Column(Numeric(10, 2, asdecimal=False), nullable=False, default=0)
    reschedule_fee = Column(Numeric(10, 2, asdecimal=False))
    reschedule_fee_percentage = Column(Numeric(5, 2, asdecimal=False))

    # Doctor response
    doctor_notes = Column(Text)
    rejection_reason = Column(Text)

    # Outcome
    new_appointment_id = Column(Uuid, ForeignKey("appointments.id"))
    payment_transaction_id = Column(Uuid, ForeignKey("transactions.id"))

    requested_at = Column(DateTime, default=func.now())
    responded_at = Column(DateTime)
    created_at = Column(DateTime, default=func.now(), index=True)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    appointment = relationship("Appointment", foreign_keys=[appointment_id])
    new_appointment = relationship("Appointment", foreign_keys=[new_appointment_id])

    __table_args__ = (
        Index(
            "uq_reschedule_requests_open",
            "appointment_id",
            unique=True,
            postgresql_where=_open_request_sql,
            sqlite_where=_open_request_sql,
        ),
    )

    @property
    def is_settled(self) -> bool:
        return (
            self.new_appointment is not None
            and self.new_appointment.payment_status == PaymentStatus.PAID
        )
