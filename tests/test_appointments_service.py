import pytest
import uuid
from datetime import date, datetime, timezone

from app.core.exceptions import (
    AuthorizationError, ConflictError, ExternalServiceError, NotFoundError, StateError, ValidationError
)
from app.domain.accounts.models import DoctorProfile
from app.domain.appointments.models import AppointmentStatus, BookingType, PaymentStatus
from app.domain.appointments.service import AppointmentService, can_transition
from app.domain.payments.gateway import ChargeResult, PaymentGateway
from app.domain.payments.models import Transaction, TransactionKind, TransactionStatus
from app.domain.payments.service import BalanceService
from app.infrastructure.notifications import Notification, NotificationSink


class FailingGateway(PaymentGateway):
    def charge(self, *args, **kwargs) -> ChargeResult:
        return ChargeResult(transaction_id=None, status=TransactionStatus.FAILED)


class BrokenGateway(PaymentGateway):
    def charge(self, *args, **kwargs) -> ChargeResult:
        raise RuntimeError("processor down")


class BrokenSink(NotificationSink):
    def notify(self, *args, **kwargs) -> None:
        raise RuntimeError("sink down")


@pytest.fixture
def service(db_session, clock) -> AppointmentService:
    return AppointmentService(db_session, clock=clock)


@pytest.fixture
def book(service, identity_of, doctor, patient):
    """Book 2024-06-11 10:00 (UTC+5) unless overridden"""
    def _book(**overrides):
        params = {
            "doctor_id": doctor.id,
            "appointment_date": "2024-06-11",
            "appointment_time": "10:00",
            "booking_type": BookingType.ONLINE,
            "timezone_offset": 300,
        }
        params.update(overrides)
        return service.create_appointment(identity_of(patient), **params)

    return _book


def _balance(db_session, doctor) -> float:
    profile = db_session.query(DoctorProfile).filter(DoctorProfile.user_id == doctor.id).first()
    db_session.refresh(profile)
    return profile.balance


@pytest.mark.unit
class TestTransitionTable:

    @pytest.mark.parametrize("current,target", [
        (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED),
        (AppointmentStatus.PENDING, AppointmentStatus.REJECTED),
        (AppointmentStatus.CONFIRMED, AppointmentStatus.COMPLETED),
        (AppointmentStatus.CONFIRMED, AppointmentStatus.RESCHEDULED),
        (AppointmentStatus.PENDING_PAYMENT, AppointmentStatus.CANCELLED),
    ])
    def test_allowed(self, current, target) -> None:
        assert can_transition(current, target) is True

    @pytest.mark.parametrize("current,target", [
        (AppointmentStatus.PENDING, AppointmentStatus.COMPLETED),
        (AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED),
        (AppointmentStatus.CANCELLED, AppointmentStatus.CONFIRMED),
        (AppointmentStatus.REJECTED, AppointmentStatus.PENDING),
        (AppointmentStatus.CONFIRMED, AppointmentStatus.CONFIRMED),
        (AppointmentStatus.PENDING_PAYMENT, AppointmentStatus.CONFIRMED),
        (AppointmentStatus.NO_SHOW, AppointmentStatus.RESCHEDULED),
    ])
    def test_refused(self, current, target) -> None:
        assert can_transition(current, target) is False


@pytest.mark.appointments
@pytest.mark.integration
class TestBooking:
    """Creating appointments"""

    def test_create_appointment_success(self, book, db_session, doctor, patient) -> None:
        appointment = book()

        assert appointment.status == AppointmentStatus.PENDING
        assert appointment.payment_status == PaymentStatus.UNPAID
        assert appointment.appointment_date == date(2024, 6, 11)
        assert appointment.appointment_end_time == "10:30"
        assert appointment.appointment_duration == 30
        assert appointment.appointment_number.startswith("APT-")
        assert appointment.video_call_link.endswith(str(appointment.id))

        recipients = {n.user_id for n in db_session.query(Notification).all()}
        assert recipients == {doctor.id, patient.id}

    def test_visit_has_no_video_link(self, book) -> None:
        appointment = book(booking_type=BookingType.VISIT, clinic_name="Main St")

        assert appointment.video_call_link is None
        assert appointment.clinic_name == "Main St"

    def test_offset_from_timezone_label(self, book) -> None:
        appointment = book(timezone_offset=None, timezone="UTC+2")

        assert appointment.timezone_offset == 120
        assert appointment.timezone == "UTC+2"

    def test_explicit_duration(self, book) -> None:
        appointment = book(duration_minutes=60)

        assert appointment.appointment_end_time == "11:00"

    @pytest.mark.parametrize("duration", [10, 121])
    def test_duration_out_of_range(self, book, duration) -> None:
        with pytest.raises(ValidationError):
            book(duration_minutes=duration)

    def test_past_start_is_refused(self, book) -> None:
        # 2024-06-10 12:00 in UTC+5 is 07:00Z, before the clock's 08:00Z
        with pytest.raises(ValidationError):
            book(appointment_date="2024-06-10", appointment_time="12:00")

    def test_invalid_time(self, book) -> None:
        with pytest.raises(ValidationError) as exc_info:
            book(appointment_time="25:00")
        assert exc_info.value.error_code == "INVALID_TIME_FORMAT"

    def test_doctor_cannot_book(self, service, identity_of, doctor) -> None:
        with pytest.raises(AuthorizationError):
            service.create_appointment(identity_of(doctor), doctor.id, "2024-06-11", "10:00")

    def test_patient_cannot_book_for_someone_else(self, book, make_user, patient) -> None:
        other = make_user(patient.role)
        with pytest.raises(AuthorizationError):
            book(patient_id=other.id)

    def test_admin_books_for_patient(self, service, identity_of, admin, doctor, patient) -> None:
        appointment = service.create_appointment(
            identity_of(admin), doctor.id, "2024-06-11", "10:00", patient_id=patient.id
        )

        assert appointment.patient_id == patient.id
        assert appointment.created_by == admin.id

    def test_admin_must_name_patient(self, service, identity_of, admin, doctor) -> None:
        with pytest.raises(ValidationError):
            service.create_appointment(identity_of(admin), doctor.id, "2024-06-11", "10:00")

    def test_unknown_doctor(self, book) -> None:
        with pytest.raises(NotFoundError):
            book(doctor_id=uuid.uuid4())

    def test_unapproved_doctor(self, book, make_doctor) -> None:
        with pytest.raises(ValidationError):
            book(doctor_id=make_doctor(is_approved=False).id)

    def test_incomplete_profile(self, book, make_doctor) -> None:
        with pytest.raises(ValidationError):
            book(doctor_id=make_doctor(profile_completed=False).id)

    def test_double_booking(self, book) -> None:
        book()
        with pytest.raises(ConflictError):
            book()

    def test_cancelled_slot_can_be_rebooked(self, book, service, identity_of, patient) -> None:
        first = book()
        service.cancel_appointment(identity_of(patient), first.id)

        second = book()

        assert second.id != first.id
        assert second.status == AppointmentStatus.PENDING

    def test_notification_failure_does_not_block_booking(self, db_session, clock, identity_of, doctor, patient) -> None:
        service = AppointmentService(db_session, notifier=BrokenSink(), clock=clock)

        appointment = service.create_appointment(identity_of(patient), doctor.id, "2024-06-11", "10:00")

        assert appointment.status == AppointmentStatus.PENDING

    def test_check_availability(self, book, service, doctor) -> None:
        book()

        assert service.check_availability(doctor.id, "2024-06-11", "10:00")["available"] is False
        assert service.check_availability(doctor.id, "2024-06-11", "10:30")["available"] is True


@pytest.mark.appointments
@pytest.mark.integration
class TestDoctorDecisions:

    def test_confirm(self, book, service, identity_of, doctor) -> None:
        appointment = service.confirm_appointment(identity_of(doctor), book().id)

        assert appointment.status == AppointmentStatus.CONFIRMED

    def test_confirm_twice(self, book, service, identity_of, doctor) -> None:
        appointment = book()
        service.confirm_appointment(identity_of(doctor), appointment.id)

        with pytest.raises(StateError):
            service.confirm_appointment(identity_of(doctor), appointment.id)

    def test_other_doctor_cannot_confirm(self, book, service, identity_of, make_doctor) -> None:
        appointment = book()

        with pytest.raises(AuthorizationError):
            service.confirm_appointment(identity_of(make_doctor()), appointment.id)

    def test_patient_cannot_confirm(self, book, service, identity_of, patient) -> None:
        with pytest.raises(AuthorizationError):
            service.confirm_appointment(identity_of(patient), book().id)

    def test_reject_frees_slot(self, book, service, identity_of, doctor) -> None:
        appointment = service.reject_appointment(identity_of(doctor), book().id, reason="Away that day")

        assert appointment.status == AppointmentStatus.REJECTED
        assert appointment.rejection_reason == "Away that day"
        assert service.check_availability(doctor.id, "2024-06-11", "10:00")["available"] is True

    def test_reject_confirmed(self, book, service, identity_of, doctor) -> None:
        appointment = book()
        service.confirm_appointment(identity_of(doctor), appointment.id)

        with pytest.raises(StateError):
            service.reject_appointment(identity_of(doctor), appointment.id)

    def test_missing_appointment(self, service, identity_of, doctor) -> None:
        with pytest.raises(NotFoundError):
            service.confirm_appointment(identity_of(doctor), uuid.uuid4())


@pytest.mark.appointments
@pytest.mark.integration
class TestCancellation:

    def test_patient_cancels(self, book, service, identity_of, patient, doctor, db_session) -> None:
        appointment = book()
        before = db_session.query(Notification).count()

        appointment = service.cancel_appointment(identity_of(patient), appointment.id, reason="Feeling better")

        assert appointment.status == AppointmentStatus.CANCELLED
        assert appointment.cancelled_by == patient.id
        assert appointment.cancellation_reason == "Feeling better"
        assert appointment.cancelled_at is not None
        assert db_session.query(Notification).count() - before == 1
        cancelled = db_session.query(Notification).filter(Notification.action == "APPOINTMENT_CANCELLED").one()
        assert cancelled.user_id == doctor.id

    def test_doctor_cancels_confirmed(self, book, service, identity_of, doctor) -> None:
        appointment = book()
        service.confirm_appointment(identity_of(doctor), appointment.id)

        appointment = service.cancel_appointment(identity_of(doctor), appointment.id)

        assert appointment.status == AppointmentStatus.CANCELLED

    def test_admin_cancels(self, book, service, identity_of, admin) -> None:
        appointment = service.cancel_appointment(identity_of(admin), book().id)

        assert appointment.status == AppointmentStatus.CANCELLED

    def test_stranger_cannot_cancel(self, book, service, identity_of, make_user, patient) -> None:
        appointment = book()

        with pytest.raises(AuthorizationError):
            service.cancel_appointment(identity_of(make_user(patient.role)), appointment.id)

    def test_cancel_twice(self, book, service, identity_of, patient) -> None:
        appointment = book()
        service.cancel_appointment(identity_of(patient), appointment.id)

        with pytest.raises(StateError):
            service.cancel_appointment(identity_of(patient), appointment.id)

    def test_cancel_after_start(self, book, service, identity_of, patient, clock) -> None:
        appointment = book()
        # Start is 2024-06-11 05:00Z
        clock.set(datetime(2024, 6, 11, 5, 0, tzinfo=timezone.utc))

        with pytest.raises(StateError):
            service.cancel_appointment(identity_of(patient), appointment.id)

    def test_cancel_rejected(self, book, service, identity_of, doctor, patient) -> None:
        appointment = book()
        service.reject_appointment(identity_of(doctor), appointment.id)

        with pytest.raises(StateError):
            service.cancel_appointment(identity_of(patient), appointment.id)


@pytest.mark.appointments
@pytest.mark.integration
class TestStatusUpdate:

    @pytest.fixture
    def confirmed(self, book, service, identity_of, doctor):
        appointment = book()
        return service.confirm_appointment(identity_of(doctor), appointment.id)

    def test_nothing_to_update(self, confirmed, service, identity_of, doctor) -> None:
        with pytest.raises(ValidationError):
            service.update_status(identity_of(doctor), confirmed.id)

    def test_unknown_status(self, confirmed, service, identity_of, doctor) -> None:
        with pytest.raises(ValidationError):
            service.update_status(identity_of(doctor), confirmed.id, status="ARCHIVED")

    def test_rescheduled_cannot_be_set_directly(self, confirmed, service, identity_of, doctor) -> None:
        with pytest.raises(ValidationError):
            service.update_status(identity_of(doctor), confirmed.id, status="RESCHEDULED")

    def test_patient_cannot_update(self, confirmed, service, identity_of, patient) -> None:
        with pytest.raises(AuthorizationError):
            service.update_status(identity_of(patient), confirmed.id, status="COMPLETED")

    def test_complete_before_end(self, confirmed, service, identity_of, doctor, clock) -> None:
        # Window is 05:00Z-05:30Z on 2024-06-11
        clock.set(datetime(2024, 6, 11, 5, 15, tzinfo=timezone.utc))

        with pytest.raises(StateError):
            service.update_status(identity_of(doctor), confirmed.id, status="COMPLETED")

    def test_complete_after_end(self, confirmed, service, identity_of, doctor, clock) -> None:
        clock.set(datetime(2024, 6, 11, 5, 31, tzinfo=timezone.utc))

        appointment = service.update_status(identity_of(doctor), confirmed.id, status="completed")

        assert appointment.status == AppointmentStatus.COMPLETED

    def test_no_show_after_end(self, confirmed, service, identity_of, admin, clock) -> None:
        clock.set(datetime(2024, 6, 11, 6, 0, tzinfo=timezone.utc))

        appointment = service.update_status(identity_of(admin), confirmed.id, status="NO_SHOW")

        assert appointment.status == AppointmentStatus.NO_SHOW

    def test_pending_cannot_complete(self, book, service, identity_of, doctor, clock) -> None:
        appointment = book()
        clock.set(datetime(2024, 6, 11, 6, 0, tzinfo=timezone.utc))

        with pytest.raises(StateError):
            service.update_status(identity_of(doctor), appointment.id, status="COMPLETED")

    def test_cancel_through_update(self, confirmed, service, identity_of, admin) -> None:
        appointment = service.update_status(identity_of(admin), confirmed.id, status="CANCELLED")

        assert appointment.status == AppointmentStatus.CANCELLED
        assert appointment.cancelled_by == admin.id

    def test_cancel_through_update_after_start(self, confirmed, service, identity_of, doctor, clock,
                                               db_session) -> None:
        clock.set(datetime(2024, 6, 11, 5, 10, tzinfo=timezone.utc))

        with pytest.raises(StateError):
            service.update_status(identity_of(doctor), confirmed.id, status="CANCELLED")

        db_session.refresh(confirmed)
        assert confirmed.status == AppointmentStatus.CONFIRMED
        assert confirmed.cancelled_at is None

    def test_pending_payment_cannot_be_confirmed_directly(self, service, identity_of, doctor, admin, patient,
                                                          make_appointment, db_session) -> None:
        appointment = make_appointment(
            doctor, patient, appointment_date=date(2024, 6, 12), status=AppointmentStatus.PENDING_PAYMENT
        )

        for actor in (doctor, admin):
            with pytest.raises(StateError):
                service.update_status(identity_of(actor), appointment.id, status="CONFIRMED")

        db_session.refresh(appointment)
        assert appointment.status == AppointmentStatus.PENDING_PAYMENT
        assert appointment.payment_status == PaymentStatus.UNPAID

    def test_payment_status_only(self, confirmed, service, identity_of, admin) -> None:
        appointment = service.update_status(
            identity_of(admin), confirmed.id, payment_status="PAID", payment_method="CASH"
        )

        assert appointment.status == AppointmentStatus.CONFIRMED
        assert appointment.payment_status == PaymentStatus.PAID
        assert appointment.payment_method == "CASH"


@pytest.mark.appointments
@pytest.mark.integration
class TestPaymentAndCredit:

    def test_pay(self, book, service, identity_of, patient, db_session) -> None:
        appointment = service.pay_appointment(identity_of(patient), book().id, payment_method="CARD")

        assert appointment.payment_status == PaymentStatus.PAID
        payment = db_session.query(Transaction).filter(Transaction.appointment_id == appointment.id).one()
        assert payment.amount == 40
        assert payment.kind == TransactionKind.PAYMENT
        assert payment.status == TransactionStatus.SUCCESS

    def test_pay_twice(self, book, service, identity_of, patient) -> None:
        appointment = book()
        service.pay_appointment(identity_of(patient), appointment.id)

        with pytest.raises(StateError):
            service.pay_appointment(identity_of(patient), appointment.id)

    def test_only_patient_pays(self, book, service, identity_of, doctor) -> None:
        with pytest.raises(AuthorizationError):
            service.pay_appointment(identity_of(doctor), book().id)

    def test_cancelled_cannot_be_paid(self, book, service, identity_of, patient) -> None:
        appointment = book()
        service.cancel_appointment(identity_of(patient), appointment.id)

        with pytest.raises(StateError):
            service.pay_appointment(identity_of(patient), appointment.id)

    def test_declined_payment(self, book, db_session, clock, identity_of, patient) -> None:
        appointment = book()
        service = AppointmentService(db_session, payments=FailingGateway(), clock=clock)

        with pytest.raises(ExternalServiceError) as exc_info:
            service.pay_appointment(identity_of(patient), appointment.id)

        assert exc_info.value.error_code == "PAYMENT_FAILED"
        db_session.refresh(appointment)
        assert appointment.payment_status == PaymentStatus.UNPAID

    def test_gateway_error(self, book, db_session, clock, identity_of, patient) -> None:
        appointment = book()
        service = AppointmentService(db_session, payments=BrokenGateway(), clock=clock)

        with pytest.raises(ExternalServiceError) as exc_info:
            service.pay_appointment(identity_of(patient), appointment.id)

        assert exc_info.value.status_code == 503

    def test_completed_paid_credits_doctor_once(self, book, service, identity_of, doctor, patient, db_session, clock) -> None:
        appointment = book()
        service.confirm_appointment(identity_of(doctor), appointment.id)
        service.pay_appointment(identity_of(patient), appointment.id)
        clock.set(datetime(2024, 6, 11, 6, 0, tzinfo=timezone.utc))

        service.update_status(identity_of(doctor), appointment.id, status="COMPLETED")

        assert _balance(db_session, doctor) == 40
        assert BalanceService(db_session, clock).credit_for_appointment(appointment) is None
        assert _balance(db_session, doctor) == 40
        credits = db_session.query(Transaction).filter(
            Transaction.appointment_id == appointment.id,
            Transaction.kind == TransactionKind.BALANCE_CREDIT,
        ).count()
        assert credits == 1

    def test_completed_then_paid_credits_doctor(self, book, service, identity_of, doctor, patient, db_session, clock) -> None:
        appointment = book()
        service.confirm_appointment(identity_of(doctor), appointment.id)
        service.pay_appointment(identity_of(patient), appointment.id)
        service.update_status(identity_of(doctor), appointment.id, payment_status="UNPAID")
        clock.set(datetime(2024, 6, 11, 6, 0, tzinfo=timezone.utc))
        service.update_status(identity_of(doctor), appointment.id, status="COMPLETED")
        assert _balance(db_session, doctor) == 0

        service.update_status(identity_of(doctor), appointment.id, payment_status="PAID")

        assert _balance(db_session, doctor) == 40

    def test_platform_fee(self, book, service, identity_of, doctor, patient, db_session, clock) -> None:
        appointment = book()
        service.confirm_appointment(identity_of(doctor), appointment.id)
        service.pay_appointment(identity_of(patient), appointment.id)

        credit = BalanceService(db_session, clock, platform_fee_percent=10).credit_for_appointment(appointment)

        assert credit.amount == 36
        assert _balance(db_session, doctor) == 36

    def test_no_payment_no_credit(self, book, db_session, clock) -> None:
        appointment = book()

        assert BalanceService(db_session, clock).credit_for_appointment(appointment) is None


@pytest.mark.appointments
@pytest.mark.integration
class TestQueries:

    def test_get_appointment_as_party(self, book, service, identity_of, doctor, patient) -> None:
        appointment = book()

        assert service.get_appointment(identity_of(doctor), appointment.id).id == appointment.id
        assert service.get_appointment(identity_of(patient), appointment.id).id == appointment.id

    def test_get_appointment_as_stranger(self, book, service, identity_of, make_user, patient) -> None:
        appointment = book()

        with pytest.raises(AuthorizationError):
            service.get_appointment(identity_of(make_user(patient.role)), appointment.id)

    def test_list_is_scoped_to_caller(self, book, service, identity_of, make_user, patient, doctor) -> None:
        book()
        book(appointment_time="11:00", booking_type=BookingType.VISIT)

        items, total = service.list_appointments(identity_of(patient))
        assert total == 2

        items, total = service.list_appointments(identity_of(make_user(patient.role)))
        assert total == 0

        items, total = service.list_appointments(identity_of(doctor), booking_type="VISIT")
        assert total == 1
        assert items[0].appointment_time == "11:00"

    def test_list_pagination(self, book, service, identity_of, patient) -> None:
        for hour in ("09:00", "10:00", "11:00"):
            book(appointment_time=hour)

        items, total = service.list_appointments(identity_of(patient), page=2, size=2)

        assert total == 3
        assert len(items) == 1
        assert items[0].appointment_time == "09:00"

    def test_list_invalid_range(self, service, identity_of, patient) -> None:
        with pytest.raises(ValidationError):
            service.list_appointments(
                identity_of(patient), date_from=date(2024, 6, 12), date_to=date(2024, 6, 11)
            )
