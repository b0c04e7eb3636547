# Appointments domain module
from app.domain.appointments.models import (
    ACTIVE_STATUSES,
    SLOT_HOLDING_STATUSES,
    Appointment,
    AppointmentStatus,
    BookingType,
    PaymentStatus,
)

__all__ = [
    "ACTIVE_STATUSES",
    "SLOT_HOLDING_STATUSES",
    "Appointment",
    "AppointmentStatus",
    "BookingType",
    "PaymentStatus",
]
