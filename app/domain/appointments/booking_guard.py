"""
Double-booking protection.

``ensure_slot_free`` is the fast path that gives callers a readable error.
``reserve`` is the authoritative one: the insert itself is conditional on the
partial unique index ``uq_appointments_active_slot``, so two concurrent
bookings that both passed the pre-check cannot both land.
"""

from datetime import date
from typing import Any, Dict
import logging
import uuid

from sqlalchemy.exc import IntegrityError

from app.core.exceptions import ConflictError, handle_database_error
from app.domain.appointments.models import Appointment
from app.domain.appointments.repository import AppointmentRepository

logger = logging.getLogger(__name__)

SLOT_INDEX_NAME = "uq_appointments_active_slot"

# SQLite reports the columns rather than the index name
_SLOT_VIOLATION_MARKERS = (SLOT_INDEX_NAME, "appointments.appointment_time")


def _slot_conflict(doctor_id, appointment_date, appointment_time) -> ConflictError:
    return ConflictError(
        "Doctor already has an appointment at this date and time",
        details={
            "doctor_id": str(doctor_id),
            "appointment_date": str(appointment_date),
            "appointment_time": appointment_time,
        },
        error_code="SLOT_UNAVAILABLE"
    )


class BookingConflictGuard:
    def __init__(self, db):
        self.db = db
        self.appointment_repo = AppointmentRepository(db)

    def is_slot_available(self, doctor_id: uuid.UUID, appointment_date: date, appointment_time: str) -> bool:
        return self.appointment_repo.find_slot_holder(doctor_id, appointment_date, appointment_time) is None

    def ensure_slot_free(self, doctor_id: uuid.UUID, appointment_date: date, appointment_time: str) -> None:
        """Raise ConflictError if the doctor's slot is already held"""
        if not self.is_slot_available(doctor_id, appointment_date, appointment_time):
            raise _slot_conflict(doctor_id, appointment_date, appointment_time)

    def reserve(self, appointment_data: Dict[str, Any], commit: bool = True) -> Appointment:
        """Insert an appointment only if its slot is still free.

        With ``commit=False`` the row is flushed, so the index is still
        checked, and the caller commits it together with related changes.
        """
        doctor_id = appointment_data["doctor_id"]
        appointment_date = appointment_data["appointment_date"]
        appointment_time = appointment_data["appointment_time"]

        self.ensure_slot_free(doctor_id, appointment_date, appointment_time)

        appointment = Appointment(**appointment_data)
        self.db.add(appointment)
        try:
            self.db.flush()
            if commit:
                self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            if any(marker in str(e.orig) for marker in _SLOT_VIOLATION_MARKERS):
                logger.info(f"Concurrent booking lost the race for doctor {doctor_id} at {appointment_date} {appointment_time}")
                raise _slot_conflict(doctor_id, appointment_date, appointment_time)
            raise handle_database_error(e, "appointment insert")

        if commit:
            self.db.refresh(appointment)
        return appointment
