"""
Access guard for appointment-bound features (video calls, in-session chat).

A caller gets through only if they are a party to the appointment, it is
CONFIRMED, and "now" falls inside its access window.
"""

from typing import Optional, Tuple
import logging
import uuid

from app.core.clock import Clock, utc_now
from app.core.config import settings
from app.core.exceptions import NotFoundError, StateError
from app.core.permissions import Identity, ensure_party
from app.domain.appointments.models import Appointment, AppointmentStatus
from app.domain.appointments.repository import AppointmentRepository
from app.domain.appointments.time_window import TimeWindow, resolve_appointment_window

logger = logging.getLogger(__name__)

STATUS_MESSAGES = {
    AppointmentStatus.PENDING: "This appointment has not been confirmed by the doctor yet",
    AppointmentStatus.REJECTED: "This appointment was rejected by the doctor",
    AppointmentStatus.CANCELLED: "This appointment has been cancelled",
    AppointmentStatus.COMPLETED: "This appointment has already been completed",
    AppointmentStatus.NO_SHOW: "This appointment was marked as missed",
    AppointmentStatus.RESCHEDULED: "This appointment was rescheduled; use the new appointment instead",
    AppointmentStatus.PENDING_PAYMENT: "The reschedule fee for this appointment has not been paid yet",
}


class AppointmentAccessGuard:
    def __init__(self, db, clock: Clock = utc_now, buffer_minutes: Optional[int] = None):
        self.clock = clock
        self.buffer_minutes = settings.ACCESS_BUFFER_MINUTES if buffer_minutes is None else buffer_minutes
        self.appointment_repo = AppointmentRepository(db)

    def require_confirmed(self, identity: Identity, appointment_id: uuid.UUID) -> Appointment:
        """Party and status checks only"""
        appointment = self.appointment_repo.get_by_id(appointment_id)
        if not appointment:
            raise NotFoundError("Appointment not found", details={"appointment_id": str(appointment_id)})

        ensure_party(identity, appointment.doctor_id, appointment.patient_id, allow_admin=False)

        if appointment.status != AppointmentStatus.CONFIRMED:
            raise StateError(
                STATUS_MESSAGES.get(appointment.status, "This appointment is not active"),
                details={"status": appointment.status.value},
                error_code="APPOINTMENT_NOT_CONFIRMED"
            )
        return appointment

    def require_access(self, identity: Identity, appointment_id: uuid.UUID) -> Tuple[Appointment, TimeWindow]:
        """Party, status and time-window checks"""
        appointment = self.require_confirmed(identity, appointment_id)
        window = resolve_appointment_window(appointment, self.clock(), self.buffer_minutes)
        if not window.is_valid:
            logger.info(f"Access to appointment {appointment_id} outside its window ({window.reason.value})")
            raise StateError(
                window.message,
                details=window.as_details(),
                error_code=f"APPOINTMENT_{window.reason.value}"
            )
        return appointment, window
