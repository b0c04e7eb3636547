import pytest
import uuid
from datetime import date

from app.core.exceptions import ConflictError
from app.domain.appointments.booking_guard import BookingConflictGuard
from app.domain.appointments.models import Appointment, AppointmentStatus, BookingType


def _booking(doctor, patient, **overrides) -> dict:
    data = {
        "id": uuid.uuid4(),
        "appointment_number": f"APT-{uuid.uuid4().hex[:10]}",
        "doctor_id": doctor.id,
        "patient_id": patient.id,
        "appointment_date": date(2024, 6, 11),
        "appointment_time": "10:00",
        "appointment_end_time": "10:30",
        "appointment_duration": 30,
        "timezone_offset": 300,
        "booking_type": BookingType.VISIT,
        "status": AppointmentStatus.PENDING,
    }
    data.update(overrides)
    return data


@pytest.mark.appointments
@pytest.mark.integration
class TestBookingConflictGuard:
    """At most one slot-holding appointment per doctor, date and time"""

    def test_free_slot_is_reserved(self, db_session, doctor, patient) -> None:
        guard = BookingConflictGuard(db_session)

        appointment = guard.reserve(_booking(doctor, patient))

        assert appointment.id is not None
        assert guard.is_slot_available(doctor.id, date(2024, 6, 11), "10:00") is False
        assert guard.is_slot_available(doctor.id, date(2024, 6, 11), "10:30") is True

    def test_held_slot_is_refused(self, db_session, doctor, patient, make_user) -> None:
        guard = BookingConflictGuard(db_session)
        guard.reserve(_booking(doctor, patient))
        other_patient = make_user(patient.role)

        with pytest.raises(ConflictError) as exc_info:
            guard.reserve(_booking(doctor, other_patient))

        assert exc_info.value.error_code == "SLOT_UNAVAILABLE"
        assert exc_info.value.status_code == 409

    @pytest.mark.parametrize("status", [
        AppointmentStatus.CANCELLED,
        AppointmentStatus.REJECTED,
        AppointmentStatus.COMPLETED,
        AppointmentStatus.NO_SHOW,
        AppointmentStatus.RESCHEDULED,
    ])
    def test_released_statuses_free_the_slot(self, db_session, doctor, patient, status) -> None:
        guard = BookingConflictGuard(db_session)
        guard.reserve(_booking(doctor, patient, status=status))

        appointment = guard.reserve(_booking(doctor, patient))

        assert appointment.status == AppointmentStatus.PENDING

    def test_pending_payment_holds_the_slot(self, db_session, doctor, patient) -> None:
        guard = BookingConflictGuard(db_session)
        guard.reserve(_booking(doctor, patient, status=AppointmentStatus.PENDING_PAYMENT))

        with pytest.raises(ConflictError):
            guard.reserve(_booking(doctor, patient))

    def test_other_doctor_same_slot(self, db_session, make_doctor, patient) -> None:
        guard = BookingConflictGuard(db_session)
        guard.reserve(_booking(make_doctor(), patient))

        appointment = guard.reserve(_booking(make_doctor(), patient))

        assert appointment.appointment_time == "10:00"

    def test_concurrent_insert_loses_at_the_index(self, db_session, doctor, patient, monkeypatch) -> None:
        """A booking that passed the pre-check is still stopped by the unique index"""
        guard = BookingConflictGuard(db_session)
        guard.reserve(_booking(doctor, patient))

        monkeypatch.setattr(guard, "ensure_slot_free", lambda *args: None)
        with pytest.raises(ConflictError) as exc_info:
            guard.reserve(_booking(doctor, patient))

        assert exc_info.value.error_code == "SLOT_UNAVAILABLE"
        holders = db_session.query(Appointment).filter(
            Appointment.doctor_id == doctor.id,
            Appointment.appointment_time == "10:00",
        ).all()
        assert len(holders) == 1
