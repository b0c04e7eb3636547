import pytest
import uuid
from datetime import datetime, timezone

from app.core.exceptions import AuthorizationError, NotFoundError, StateError, ValidationError
from app.domain.appointments.access import AppointmentAccessGuard
from app.domain.appointments.models import AppointmentStatus, BookingType
from app.domain.communication.service import VideoSessionService


def _utc(hour: int, minute: int, second: int = 0) -> datetime:
    return datetime(2024, 6, 10, hour, minute, second, tzinfo=timezone.utc)


@pytest.fixture
def guard(db_session, clock) -> AppointmentAccessGuard:
    return AppointmentAccessGuard(db_session, clock)


@pytest.fixture
def appointment(make_appointment, doctor, patient):
    # 17:45-18:15 in UTC+5, i.e. 12:45Z-13:15Z
    return make_appointment(doctor, patient)


@pytest.mark.appointments
@pytest.mark.integration
class TestAccessGuard:
    """Who may use an appointment's communication features, and when"""

    def test_party_inside_window(self, guard, clock, identity_of, appointment, doctor, patient) -> None:
        clock.set(_utc(12, 45, 30))

        found, window = guard.require_access(identity_of(patient), appointment.id)
        assert found.id == appointment.id
        assert window.is_valid is True

        found, _ = guard.require_access(identity_of(doctor), appointment.id)
        assert found.id == appointment.id

    def test_within_buffer(self, guard, clock, identity_of, appointment, patient) -> None:
        clock.set(_utc(12, 44))

        _, window = guard.require_access(identity_of(patient), appointment.id)

        assert window.earliest_allowed == _utc(12, 43)

    def test_too_early(self, guard, clock, identity_of, appointment, patient) -> None:
        clock.set(_utc(12, 42, 59))

        with pytest.raises(StateError) as exc_info:
            guard.require_access(identity_of(patient), appointment.id)

        error = exc_info.value
        assert error.error_code == "APPOINTMENT_BEFORE_START"
        assert error.details["start_utc"] == "2024-06-10T12:45:00+00:00"
        assert error.details["end_utc"] == "2024-06-10T13:15:00+00:00"

    def test_too_late(self, guard, clock, identity_of, appointment, patient) -> None:
        clock.set(_utc(13, 16))

        with pytest.raises(StateError) as exc_info:
            guard.require_access(identity_of(patient), appointment.id)

        assert exc_info.value.error_code == "APPOINTMENT_AFTER_END"

    def test_stranger(self, guard, clock, identity_of, make_user, patient, appointment) -> None:
        clock.set(_utc(12, 50))

        with pytest.raises(AuthorizationError):
            guard.require_access(identity_of(make_user(patient.role)), appointment.id)

    def test_admin_is_not_a_party(self, guard, clock, identity_of, admin, appointment) -> None:
        clock.set(_utc(12, 50))

        with pytest.raises(AuthorizationError):
            guard.require_access(identity_of(admin), appointment.id)

    @pytest.mark.parametrize("status", [
        AppointmentStatus.PENDING,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.COMPLETED,
        AppointmentStatus.RESCHEDULED,
    ])
    def test_not_confirmed(self, guard, clock, identity_of, make_appointment, doctor, patient, status) -> None:
        appointment = make_appointment(doctor, patient, status=status)
        clock.set(_utc(12, 50))

        with pytest.raises(StateError) as exc_info:
            guard.require_access(identity_of(patient), appointment.id)

        assert exc_info.value.error_code == "APPOINTMENT_NOT_CONFIRMED"
        assert exc_info.value.details == {"status": status.value}

    def test_missing(self, guard, identity_of, patient) -> None:
        with pytest.raises(NotFoundError):
            guard.require_access(identity_of(patient), uuid.uuid4())


@pytest.mark.appointments
@pytest.mark.integration
class TestVideoSessionJoin:

    @pytest.fixture
    def video(self, db_session, clock) -> VideoSessionService:
        return VideoSessionService(db_session, clock)

    def test_join_records_each_party(self, video, clock, identity_of, appointment, doctor, patient) -> None:
        clock.set(_utc(12, 44))
        session, window = video.join(identity_of(doctor), appointment.id)
        assert session.doctor_joined_at == datetime(2024, 6, 10, 12, 44)
        assert session.patient_joined_at is None

        clock.set(_utc(12, 46))
        session, _ = video.join(identity_of(patient), appointment.id)

        assert session.patient_joined_at == datetime(2024, 6, 10, 12, 46)
        assert session.doctor_joined_at == datetime(2024, 6, 10, 12, 44)
        assert window.end_utc == _utc(13, 15)

    def test_rejoin_keeps_first_join(self, video, clock, identity_of, appointment, patient) -> None:
        clock.set(_utc(12, 46))
        first, _ = video.join(identity_of(patient), appointment.id)
        clock.set(_utc(12, 50))

        second, _ = video.join(identity_of(patient), appointment.id)

        assert second.id == first.id
        assert second.patient_joined_at == datetime(2024, 6, 10, 12, 46)

    def test_visit_has_no_video(self, video, clock, identity_of, make_appointment, doctor, patient) -> None:
        appointment = make_appointment(doctor, patient, booking_type=BookingType.VISIT)
        clock.set(_utc(12, 50))

        with pytest.raises(ValidationError):
            video.join(identity_of(patient), appointment.id)

    def test_join_outside_window(self, video, clock, identity_of, appointment, patient) -> None:
        clock.set(_utc(11, 0))

        with pytest.raises(StateError):
            video.join(identity_of(patient), appointment.id)
