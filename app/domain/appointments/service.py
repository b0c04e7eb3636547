"""
Appointments Service Layer

Owns the appointment state machine: booking, doctor confirmation and
rejection, cancellation, administrative status updates and payment.

Collaborators (notification sink, payment gateway, plan policy source,
clock) are passed in explicitly; defaults are the in-process implementations.
"""

from typing import Optional, List, Dict, Any, Tuple
from datetime import date
import logging
import uuid

from app.core.clock import Clock, naive_utc, utc_now
from app.core.config import settings
from app.core.exceptions import (
    AuthorizationError, ExternalServiceError, NotFoundError, StateError, ValidationError,
    handle_external_service_error
)
from app.core.permissions import Identity, Role, ensure_party
from app.domain.accounts.repository import UserRepository
from app.domain.appointments.booking_guard import BookingConflictGuard
from app.domain.appointments.models import (
    Appointment, AppointmentStatus, BookingType, PaymentStatus
)
from app.domain.appointments.repository import AppointmentRepository
from app.domain.appointments.time_window import (
    add_minutes_to_wall_clock,
    appointment_start_utc,
    format_wall_clock,
    intended_calendar_date,
    parse_timezone_label,
    parse_wall_clock,
    resolve_appointment_window,
    resolve_start_end,
)
from app.domain.payments.gateway import LedgerPaymentGateway, PaymentGateway
from app.domain.payments.models import PaymentPurpose
from app.domain.payments.service import BalanceService
from app.domain.subscriptions.service import PlanPolicySource, SubscriptionQuotaService
from app.infrastructure.notifications import DatabaseNotificationSink, NotificationSink, safe_notify

logger = logging.getLogger(__name__)

MIN_DURATION_MINUTES = 15
MAX_DURATION_MINUTES = 120

ALLOWED_TRANSITIONS = {
    AppointmentStatus.PENDING: {
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.REJECTED,
        AppointmentStatus.CANCELLED,
    },
    AppointmentStatus.CONFIRMED: {
        AppointmentStatus.CANCELLED,
        AppointmentStatus.COMPLETED,
        AppointmentStatus.NO_SHOW,
        AppointmentStatus.RESCHEDULED,
    },
    # Confirmed only by paying the reschedule fee
    AppointmentStatus.PENDING_PAYMENT: {
        AppointmentStatus.CANCELLED,
    },
}

# Targets reachable through the generic status update
STATUS_UPDATE_TARGETS = {
    AppointmentStatus.CONFIRMED,
    AppointmentStatus.CANCELLED,
    AppointmentStatus.COMPLETED,
    AppointmentStatus.NO_SHOW,
}

# Targets that require the appointment window to have closed
POST_WINDOW_TARGETS = {AppointmentStatus.COMPLETED, AppointmentStatus.NO_SHOW}


def can_transition(current: AppointmentStatus, target: AppointmentStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, set())


def generate_appointment_number(now) -> str:
    return f"APT-{int(now.timestamp() * 1000)}-{uuid.uuid4().hex[:6].upper()}"


def video_call_link(appointment_id: uuid.UUID) -> str:
    return f"{settings.VIDEO_CALL_BASE_URL.rstrip('/')}/{appointment_id}"


def parse_enum(enum_cls, value, field: str):
    """Coerce user input to an enum member or raise ValidationError"""
    if value is None or isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).upper())
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(
            f"Invalid {field} '{value}'. Allowed values: {allowed}",
            details={"field": field, "value": str(value)}
        )


class AppointmentService:
    """Service layer for appointment lifecycle management"""

    def __init__(
        self,
        db,
        notifier: Optional[NotificationSink] = None,
        payments: Optional[PaymentGateway] = None,
        plans: Optional[PlanPolicySource] = None,
        clock: Clock = utc_now,
        balance: Optional[BalanceService] = None,
    ):
        self.db = db
        self.clock = clock
        self.notifier = notifier or DatabaseNotificationSink(db, clock)
        self.payments = payments or LedgerPaymentGateway(db, clock)
        self.quota = SubscriptionQuotaService(db, plans=plans, clock=clock)
        self.balance = balance or BalanceService(db, clock)
        self.appointment_repo = AppointmentRepository(db)
        self.user_repo = UserRepository(db)
        self.guard = BookingConflictGuard(db)

    # Helpers

    def _get_or_404(self, appointment_id: uuid.UUID) -> Appointment:
        appointment = self.appointment_repo.get_by_id(appointment_id)
        if not appointment:
            raise NotFoundError("Appointment not found", details={"appointment_id": str(appointment_id)})
        return appointment

    def _ensure_owning_doctor(self, identity: Identity, appointment: Appointment) -> None:
        if not identity.is_doctor or identity.user_id != appointment.doctor_id:
            raise AuthorizationError("Only the doctor of this appointment can do this")

    def _notify(self, user_id: uuid.UUID, title: str, body: str, appointment: Appointment, action: str) -> None:
        safe_notify(self.notifier, user_id, title, body, {
            "type": "APPOINTMENT",
            "action": action,
            "appointment_id": str(appointment.id),
            "appointment_number": appointment.appointment_number,
        })

    def _describe_slot(self, appointment: Appointment) -> str:
        return f"{appointment.appointment_date.isoformat()} at {appointment.appointment_time}"

    # Booking

    def create_appointment(
        self,
        identity: Identity,
        doctor_id: uuid.UUID,
        appointment_date,
        appointment_time: str,
        booking_type: BookingType = BookingType.VISIT,
        patient_id: Optional[uuid.UUID] = None,
        duration_minutes: Optional[int] = None,
        timezone: Optional[str] = None,
        timezone_offset: Optional[int] = None,
        patient_notes: Optional[str] = None,
        clinic_name: Optional[str] = None,
        payment_method: Optional[str] = None,
    ) -> Appointment:
        """Book a consultation; the result is PENDING and UNPAID"""
        now = self.clock()

        # Who the appointment is for
        if identity.is_doctor:
            raise AuthorizationError("Doctors cannot book appointments")
        if identity.is_patient:
            if patient_id and patient_id != identity.user_id:
                raise AuthorizationError("Patients can only book appointments for themselves")
            patient_id = identity.user_id
        elif not patient_id:
            raise ValidationError("patient_id is required when booking on behalf of a patient")

        patient = self.user_repo.get_by_id(patient_id)
        if not patient or patient.role != Role.PATIENT:
            raise NotFoundError("Patient not found", details={"patient_id": str(patient_id)})

        # Doctor must exist, be approved and have a complete profile
        doctor = self.user_repo.get_by_id(doctor_id)
        if not doctor or doctor.role != Role.DOCTOR or not doctor.is_active:
            raise NotFoundError("Doctor not found", details={"doctor_id": str(doctor_id)})
        profile = self.user_repo.get_doctor_profile(doctor_id)
        if not profile or not profile.is_approved:
            raise ValidationError("Doctor is not approved to accept appointments")
        if not profile.profile_completed:
            raise ValidationError("Doctor has not completed their profile")

        booking_type = parse_enum(BookingType, booking_type, "booking_type") or BookingType.VISIT
        calendar_day = intended_calendar_date(appointment_date)
        hour, minute = parse_wall_clock(appointment_time)
        start_time = format_wall_clock(hour, minute)

        duration = (
            duration_minutes
            or profile.slot_duration_minutes
            or settings.DEFAULT_APPOINTMENT_DURATION_MINUTES
        )
        if not MIN_DURATION_MINUTES <= duration <= MAX_DURATION_MINUTES:
            raise ValidationError(
                f"Appointment duration must be between {MIN_DURATION_MINUTES} and {MAX_DURATION_MINUTES} minutes",
                details={"duration_minutes": duration}
            )

        # The offset is fixed here and never changes afterwards
        if timezone_offset is None:
            timezone_offset = parse_timezone_label(timezone)

        start_utc, _ = resolve_start_end(
            calendar_day, start_time, timezone_offset=timezone_offset, duration_minutes=duration
        )
        if start_utc <= now:
            raise ValidationError(
                "Appointment time must be in the future",
                details={"start_utc": start_utc.isoformat()}
            )

        self.quota.check_booking_allowed(doctor_id, booking_type)

        appointment_id = uuid.uuid4()
        appointment = self.guard.reserve({
            "id": appointment_id,
            "appointment_number": generate_appointment_number(now),
            "doctor_id": doctor_id,
            "patient_id": patient_id,
            "appointment_date": calendar_day,
            "appointment_time": start_time,
            "appointment_end_time": add_minutes_to_wall_clock(start_time, duration),
            "appointment_duration": duration,
            "timezone": timezone,
            "timezone_offset": timezone_offset,
            "booking_type": booking_type,
            "status": AppointmentStatus.PENDING,
            "payment_status": PaymentStatus.UNPAID,
            "payment_method": payment_method,
            "patient_notes": patient_notes,
            "clinic_name": clinic_name,
            "video_call_link": video_call_link(appointment_id) if booking_type == BookingType.ONLINE else None,
            "created_by": identity.user_id,
            "created_at": naive_utc(now),
            "updated_at": naive_utc(now),
        })

        logger.info(f"Appointment {appointment.appointment_number} booked with doctor {doctor_id} for {self._describe_slot(appointment)}")

        self._notify(
            doctor_id,
            "New appointment request",
            f"{patient.full_name} requested an appointment on {self._describe_slot(appointment)}.",
            appointment,
            "APPOINTMENT_CREATED",
        )
        self._notify(
            patient_id,
            "Appointment requested",
            f"Your appointment with {doctor.full_name} on {self._describe_slot(appointment)} is awaiting confirmation.",
            appointment,
            "APPOINTMENT_CREATED",
        )
        return appointment

    # Doctor decisions

    def confirm_appointment(self, identity: Identity, appointment_id: uuid.UUID) -> Appointment:
        appointment = self._get_or_404(appointment_id)
        self._ensure_owning_doctor(identity, appointment)

        if appointment.status != AppointmentStatus.PENDING:
            raise StateError(
                f"Only pending appointments can be confirmed (current status: {appointment.status.value})",
                details={"status": appointment.status.value}
            )

        appointment.status = AppointmentStatus.CONFIRMED
        appointment.updated_at = naive_utc(self.clock())
        appointment = self.appointment_repo.save(appointment)

        logger.info(f"Appointment {appointment.appointment_number} confirmed")
        self._notify(
            appointment.patient_id,
            "Appointment confirmed",
            f"Your appointment on {self._describe_slot(appointment)} has been confirmed.",
            appointment,
            "APPOINTMENT_CONFIRMED",
        )
        return appointment

    def reject_appointment(
        self,
        identity: Identity,
        appointment_id: uuid.UUID,
        reason: Optional[str] = None
    ) -> Appointment:
        appointment = self._get_or_404(appointment_id)
        self._ensure_owning_doctor(identity, appointment)

        if appointment.status != AppointmentStatus.PENDING:
            raise StateError(
                f"Only pending appointments can be rejected (current status: {appointment.status.value})",
                details={"status": appointment.status.value}
            )

        appointment.status = AppointmentStatus.REJECTED
        appointment.rejection_reason = reason
        appointment.updated_at = naive_utc(self.clock())
        appointment = self.appointment_repo.save(appointment)

        logger.info(f"Appointment {appointment.appointment_number} rejected")
        body = f"Your appointment on {self._describe_slot(appointment)} was declined."
        if reason:
            body = f"{body} Reason: {reason}"
        self._notify(appointment.patient_id, "Appointment rejected", body, appointment, "APPOINTMENT_REJECTED")
        return appointment

    # Cancellation

    def cancel_appointment(
        self,
        identity: Identity,
        appointment_id: uuid.UUID,
        reason: Optional[str] = None
    ) -> Appointment:
        """Cancel before the start instant, by either party"""
        appointment = self._get_or_404(appointment_id)
        ensure_party(identity, appointment.doctor_id, appointment.patient_id)

        if appointment.status in (AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED):
            raise StateError(f"Appointment is already {appointment.status.value.lower()}")
        if not can_transition(appointment.status, AppointmentStatus.CANCELLED):
            raise StateError(
                f"Appointment cannot be cancelled from status {appointment.status.value}",
                details={"status": appointment.status.value}
            )

        now = self.clock()
        if now >= appointment_start_utc(appointment):
            raise StateError("Appointment has already started and can no longer be cancelled")

        self._apply_cancellation(appointment, identity, reason)
        appointment = self.appointment_repo.save(appointment)
        logger.info(f"Appointment {appointment.appointment_number} cancelled by {identity.role.value.lower()} {identity.user_id}")

        body = f"The appointment on {self._describe_slot(appointment)} has been cancelled."
        if reason:
            body = f"{body} Reason: {reason}"
        recipients = [
            user_id for user_id in (appointment.doctor_id, appointment.patient_id)
            if user_id != identity.user_id
        ]
        for user_id in recipients:
            self._notify(user_id, "Appointment cancelled", body, appointment, "APPOINTMENT_CANCELLED")
        return appointment

    def _apply_cancellation(self, appointment: Appointment, identity: Identity, reason: Optional[str]) -> None:
        now = naive_utc(self.clock())
        appointment.status = AppointmentStatus.CANCELLED
        appointment.cancelled_at = now
        appointment.cancelled_by = identity.user_id
        appointment.cancellation_reason = reason
        appointment.updated_at = now

    # Administrative / automatic updates

    def update_status(
        self,
        identity: Identity,
        appointment_id: uuid.UUID,
        status=None,
        payment_status=None,
        payment_method: Optional[str] = None,
    ) -> Appointment:
        """Generic status and payment update for admins and the owning doctor"""
        appointment = self._get_or_404(appointment_id)
        if not identity.is_admin:
            self._ensure_owning_doctor(identity, appointment)

        if status is None and payment_status is None:
            raise ValidationError("Provide a status or a payment_status to update")

        target = parse_enum(AppointmentStatus, status, "status")
        target_payment = parse_enum(PaymentStatus, payment_status, "payment_status")
        now = self.clock()

        if target is not None:
            if target not in STATUS_UPDATE_TARGETS:
                raise ValidationError(
                    f"Status {target.value} cannot be set directly",
                    details={"allowed": sorted(s.value for s in STATUS_UPDATE_TARGETS)}
                )
            if not can_transition(appointment.status, target):
                raise StateError(
                    f"Cannot change status from {appointment.status.value} to {target.value}",
                    details={"from": appointment.status.value, "to": target.value}
                )
            if target in POST_WINDOW_TARGETS:
                window = resolve_appointment_window(appointment, now, settings.ACCESS_BUFFER_MINUTES)
                if now <= window.end_utc:
                    raise StateError(
                        f"Appointment can only be marked {target.value} after it has ended",
                        details=window.as_details()
                    )
            if target == AppointmentStatus.CANCELLED and now >= appointment_start_utc(appointment):
                raise StateError("Appointment has already started and can no longer be cancelled")

        was_settled = self._is_settled(appointment)

        if target == AppointmentStatus.CANCELLED:
            self._apply_cancellation(appointment, identity, None)
        elif target is not None:
            appointment.status = target
        if target_payment is not None:
            appointment.payment_status = target_payment
        if payment_method:
            appointment.payment_method = payment_method
        appointment.updated_at = naive_utc(now)
        appointment = self.appointment_repo.save(appointment)

        logger.info(f"Appointment {appointment.appointment_number} updated: status={appointment.status.value} payment={appointment.payment_status.value}")

        if not was_settled and self._is_settled(appointment):
            # The transition stands even if crediting fails
            try:
                self.balance.credit_for_appointment(appointment)
            except Exception as e:
                self.db.rollback()
                logger.error(f"Failed to credit doctor balance for appointment {appointment.id}: {e}")

        if target is not None:
            self._notify(
                appointment.patient_id,
                "Appointment updated",
                f"Your appointment on {self._describe_slot(appointment)} is now {target.value.lower().replace('_', ' ')}.",
                appointment,
                f"APPOINTMENT_{target.value}",
            )
        return appointment

    @staticmethod
    def _is_settled(appointment: Appointment) -> bool:
        return (
            appointment.status == AppointmentStatus.COMPLETED
            and appointment.payment_status == PaymentStatus.PAID
        )

    # Payment

    def pay_appointment(
        self,
        identity: Identity,
        appointment_id: uuid.UUID,
        payment_method: Optional[str] = None
    ) -> Appointment:
        """Patient pays the doctor's consultation fee"""
        appointment = self._get_or_404(appointment_id)
        if identity.user_id != appointment.patient_id:
            raise AuthorizationError("Only the patient of this appointment can pay for it")

        if appointment.payment_status == PaymentStatus.PAID:
            raise StateError("Appointment is already paid")
        if appointment.status not in (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED):
            raise StateError(
                f"Appointment cannot be paid in status {appointment.status.value}",
                details={"status": appointment.status.value}
            )

        profile = self.user_repo.get_doctor_profile(appointment.doctor_id)
        amount = float(profile.consultation_fee or 0) if profile else 0.0

        try:
            result = self.payments.charge(
                appointment.patient_id,
                amount,
                PaymentPurpose.APPOINTMENT.value,
                appointment.appointment_number,
                appointment_id=appointment.id,
                method=payment_method,
            )
        except ExternalServiceError:
            raise
        except Exception as e:
            raise handle_external_service_error(e, "payment", "charge")

        if not result.succeeded:
            raise ExternalServiceError(
                "Payment failed",
                details={"transaction_id": str(result.transaction_id) if result.transaction_id else None},
                error_code="PAYMENT_FAILED"
            )

        appointment.payment_status = PaymentStatus.PAID
        appointment.payment_method = payment_method or appointment.payment_method
        appointment.updated_at = naive_utc(self.clock())
        appointment = self.appointment_repo.save(appointment)

        logger.info(f"Appointment {appointment.appointment_number} paid ({amount})")
        self._notify(
            appointment.doctor_id,
            "Appointment paid",
            f"The appointment on {self._describe_slot(appointment)} has been paid.",
            appointment,
            "APPOINTMENT_PAID",
        )
        return appointment

    # Queries

    def get_appointment(self, identity: Identity, appointment_id: uuid.UUID) -> Appointment:
        appointment = self._get_or_404(appointment_id)
        ensure_party(identity, appointment.doctor_id, appointment.patient_id)
        return appointment

    def list_appointments(
        self,
        identity: Identity,
        status=None,
        booking_type=None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        doctor_id: Optional[uuid.UUID] = None,
        patient_id: Optional[uuid.UUID] = None,
        page: int = 1,
        size: int = 20,
    ) -> Tuple[List[Appointment], int]:
        """Appointments visible to the caller"""
        if identity.is_patient:
            patient_id = identity.user_id
        elif identity.is_doctor:
            doctor_id = identity.user_id

        if date_from and date_to and date_from > date_to:
            raise ValidationError("date_from must be on or before date_to")

        return self.appointment_repo.list_appointments(
            doctor_id=doctor_id,
            patient_id=patient_id,
            status=parse_enum(AppointmentStatus, status, "status"),
            booking_type=parse_enum(BookingType, booking_type, "booking_type"),
            date_from=date_from,
            date_to=date_to,
            skip=(max(page, 1) - 1) * size,
            limit=size,
        )

    def check_availability(self, doctor_id: uuid.UUID, appointment_date, appointment_time: str) -> Dict[str, Any]:
        calendar_day = intended_calendar_date(appointment_date)
        start_time = format_wall_clock(*parse_wall_clock(appointment_time))
        return {
            "doctor_id": doctor_id,
            "appointment_date": calendar_day,
            "appointment_time": start_time,
            "available": self.guard.is_slot_available(doctor_id, calendar_day, start_time),
        }
