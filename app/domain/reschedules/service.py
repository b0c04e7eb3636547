"""
Reschedules Service Layer

Patient-initiated rescheduling of missed online appointments:

1. The patient asks to move a confirmed, paid, online appointment whose start
   has passed and whose video session they never joined.
2. The owning doctor approves with a new slot and a fee (or rejects). Approval
   creates a PENDING_PAYMENT appointment holding the new slot and marks the
   original RESCHEDULED.
3. The patient pays the fee, which confirms the new appointment.
"""

from datetime import date
from typing import List, Optional
import logging
import uuid

from sqlalchemy.exc import IntegrityError

from app.core.clock import Clock, naive_utc, utc_now
from app.core.exceptions import (
    AuthorizationError, ConflictError, ExternalServiceError, NotFoundError, StateError,
    ValidationError, handle_external_service_error
)
from app.core.permissions import Identity, ensure_party
from app.domain.accounts.repository import UserRepository
from app.domain.appointments.booking_guard import BookingConflictGuard
from app.domain.appointments.models import (
    Appointment, AppointmentStatus, BookingType, PaymentStatus
)
from app.domain.appointments.repository import AppointmentRepository
from app.domain.appointments.service import (
    can_transition, generate_appointment_number, parse_enum, video_call_link
)
from app.domain.appointments.time_window import (
    add_minutes_to_wall_clock,
    appointment_start_utc,
    format_wall_clock,
    intended_calendar_date,
    parse_wall_clock,
    resolve_start_end,
)
from app.domain.payments.gateway import LedgerPaymentGateway, PaymentGateway
from app.domain.payments.models import PaymentPurpose
from app.domain.payments.repository import TransactionRepository
from app.domain.reschedules.fees import compute_reschedule_fee
from app.domain.reschedules.models import RescheduleRequest, RescheduleStatus
from app.domain.reschedules.repository import RescheduleRequestRepository
from app.infrastructure.notifications import DatabaseNotificationSink, NotificationSink, safe_notify

logger = logging.getLogger(__name__)

REASON_MIN_LENGTH = 10
REASON_MAX_LENGTH = 500


class RescheduleService:
    """Service layer for the reschedule workflow"""

    def __init__(
        self,
        db,
        notifier: Optional[NotificationSink] = None,
        payments: Optional[PaymentGateway] = None,
        clock: Clock = utc_now,
        min_fee: Optional[float] = None,
        default_percentage: Optional[float] = None,
    ):
        self.db = db
        self.clock = clock
        self.notifier = notifier or DatabaseNotificationSink(db, clock)
        self.payments = payments or LedgerPaymentGateway(db, clock)
        self.min_fee = min_fee
        self.default_percentage = default_percentage
        self.request_repo = RescheduleRequestRepository(db)
        self.appointment_repo = AppointmentRepository(db)
        self.transaction_repo = TransactionRepository(db)
        self.user_repo = UserRepository(db)
        self.guard = BookingConflictGuard(db)

    # Helpers

    def _get_or_404(self, request_id: uuid.UUID) -> RescheduleRequest:
        request = self.request_repo.get_by_id(request_id)
        if not request:
            raise NotFoundError("Reschedule request not found", details={"request_id": str(request_id)})
        return request

    def _notify(self, user_id: uuid.UUID, title: str, body: str, request: RescheduleRequest, action: str) -> None:
        safe_notify(self.notifier, user_id, title, body, {
            "type": "RESCHEDULE",
            "action": action,
            "reschedule_request_id": str(request.id),
            "appointment_id": str(request.new_appointment_id or request.appointment_id),
        })

    def _ineligibility_reason(self, appointment: Appointment) -> Optional[str]:
        """Why an appointment cannot be rescheduled, or None if it can"""
        if appointment.status != AppointmentStatus.CONFIRMED:
            return "Only confirmed appointments can be rescheduled"
        if appointment.payment_status != PaymentStatus.PAID:
            return "Only paid appointments can be rescheduled"
        if appointment.booking_type != BookingType.ONLINE:
            return "Only online appointments can be rescheduled"
        if appointment_start_utc(appointment) >= self.clock():
            return "The appointment has not started yet"
        if self.request_repo.patient_joined([appointment.id]):
            return "You joined this appointment's session, so it cannot be rescheduled"
        return None

    # Queries

    def get_eligible_appointments(self, patient_id: uuid.UUID) -> List[Appointment]:
        """Missed, paid, online appointments the patient may ask to move"""
        now = self.clock()
        candidates = [
            appointment
            for appointment in self.appointment_repo.paid_confirmed_online_for_patient(patient_id)
            if appointment_start_utc(appointment) < now
        ]
        ids = [appointment.id for appointment in candidates]
        excluded = self.request_repo.patient_joined(ids) | self.request_repo.appointments_with_open_requests(ids)
        return [appointment for appointment in candidates if appointment.id not in excluded]

    def get_request(self, identity: Identity, request_id: uuid.UUID) -> RescheduleRequest:
        request = self._get_or_404(request_id)
        ensure_party(identity, request.doctor_id, request.patient_id,
                     message="You do not have access to this reschedule request")
        return request

    def list_requests(self, identity: Identity, status=None) -> List[RescheduleRequest]:
        status = parse_enum(RescheduleStatus, status, "status")
        if identity.is_patient:
            return self.request_repo.list_requests(patient_id=identity.user_id, status=status)
        if identity.is_doctor:
            return self.request_repo.list_requests(doctor_id=identity.user_id, status=status)
        return self.request_repo.list_requests(status=status)

    # Patient actions

    def create_request(
        self,
        identity: Identity,
        appointment_id: uuid.UUID,
        reason: str,
        preferred_date: Optional[date] = None,
        preferred_time: Optional[str] = None,
    ) -> RescheduleRequest:
        if not identity.is_patient:
            raise AuthorizationError("Only patients can request a reschedule")

        appointment = self.appointment_repo.get_by_id(appointment_id)
        if not appointment:
            raise NotFoundError("Appointment not found", details={"appointment_id": str(appointment_id)})
        if appointment.patient_id != identity.user_id:
            raise AuthorizationError("You can only reschedule your own appointments")

        reason = (reason or "").strip()
        if not REASON_MIN_LENGTH <= len(reason) <= REASON_MAX_LENGTH:
            raise ValidationError(
                f"Reason must be between {REASON_MIN_LENGTH} and {REASON_MAX_LENGTH} characters",
                details={"length": len(reason)}
            )
        if preferred_time:
            preferred_time = format_wall_clock(*parse_wall_clock(preferred_time))

        if self.request_repo.get_open_for_appointment(appointment.id):
            raise ConflictError("A reschedule request for this appointment is already open")

        reason_blocked = self._ineligibility_reason(appointment)
        if reason_blocked:
            raise StateError(
                reason_blocked,
                details={"appointment_id": str(appointment.id)},
                error_code="NOT_ELIGIBLE_FOR_RESCHEDULE"
            )

        payment = self.transaction_repo.latest_successful_payment(appointment.id)
        if payment is not None:
            original_fee = float(payment.amount)
        else:
            profile = self.user_repo.get_doctor_profile(appointment.doctor_id)
            original_fee = float(profile.consultation_fee or 0) if profile else 0.0

        now = naive_utc(self.clock())
        request = RescheduleRequest(
            appointment_id=appointment.id,
            patient_id=appointment.patient_id,
            doctor_id=appointment.doctor_id,
            reason=reason,
            preferred_date=intended_calendar_date(preferred_date) if preferred_date else None,
            preferred_time=preferred_time,
            status=RescheduleStatus.PENDING,
            original_appointment_fee=original_fee,
            requested_at=now,
            created_at=now,
            updated_at=now,
        )
        self.db.add(request)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError("A reschedule request for this appointment is already open")
        self.db.refresh(request)

        logger.info(f"Reschedule request {request.id} created for appointment {appointment.appointment_number}")
        self._notify(
            appointment.doctor_id,
            "Reschedule requested",
            f"A patient asked to reschedule the missed appointment of {appointment.appointment_date.isoformat()} "
            f"at {appointment.appointment_time}. Reason: {reason}",
            request,
            "RESCHEDULE_REQUESTED",
        )
        return request

    def cancel_request(self, identity: Identity, request_id: uuid.UUID) -> RescheduleRequest:
        """Patient withdraws a request the doctor has not answered yet"""
        request = self._get_or_404(request_id)
        if identity.user_id != request.patient_id:
            raise AuthorizationError("Only the patient who made the request can cancel it")
        if request.status != RescheduleStatus.PENDING:
            raise StateError(f"Reschedule request is already {request.status.value.lower()}")

        now = naive_utc(self.clock())
        request.status = RescheduleStatus.CANCELLED
        request.responded_at = now
        request.updated_at = now
        self.db.commit()
        self.db.refresh(request)
        logger.info(f"Reschedule request {request.id} cancelled by patient")
        return request

    def pay_fee(
        self,
        identity: Identity,
        request_id: uuid.UUID,
        payment_method: str = "DUMMY"
    ) -> RescheduleRequest:
        """Charge the reschedule fee and confirm the new appointment"""
        request = self._get_or_404(request_id)
        if identity.user_id != request.patient_id:
            raise AuthorizationError("Only the patient who made the request can pay for it")
        if request.status != RescheduleStatus.APPROVED:
            raise StateError(f"Only approved requests can be paid (current status: {request.status.value})")

        appointment = request.new_appointment
        if appointment is None:
            raise StateError("Reschedule request has no new appointment")
        if appointment.payment_status == PaymentStatus.PAID:
            raise StateError("Reschedule fee has already been paid")
        if appointment.status != AppointmentStatus.PENDING_PAYMENT:
            raise StateError(
                f"The new appointment is {appointment.status.value} and can no longer be paid",
                details={"status": appointment.status.value}
            )

        fee = float(request.reschedule_fee or 0)
        if fee > 0:
            try:
                result = self.payments.charge(
                    request.patient_id,
                    fee,
                    PaymentPurpose.RESCHEDULE_FEE.value,
                    f"RESCHEDULE-{request.id}",
                    appointment_id=appointment.id,
                    method=payment_method,
                )
            except ExternalServiceError:
                raise
            except Exception as e:
                raise handle_external_service_error(e, "payment", "charge")
            if not result.succeeded:
                raise ExternalServiceError("Reschedule fee payment failed", error_code="PAYMENT_FAILED")
            request.payment_transaction_id = result.transaction_id

        now = naive_utc(self.clock())
        appointment.status = AppointmentStatus.CONFIRMED
        appointment.payment_status = PaymentStatus.PAID
        appointment.payment_method = payment_method
        appointment.updated_at = now
        request.updated_at = now
        self.db.commit()
        self.db.refresh(request)

        logger.info(f"Reschedule fee {fee} paid for request {request.id}")
        body = (
            f"The rescheduled appointment on {appointment.appointment_date.isoformat()} "
            f"at {appointment.appointment_time} is confirmed."
        )
        self._notify(request.patient_id, "Reschedule confirmed", body, request, "RESCHEDULE_PAID")
        self._notify(request.doctor_id, "Reschedule confirmed", body, request, "RESCHEDULE_PAID")
        return request

    # Doctor actions

    def _pending_for_doctor(self, identity: Identity, request_id: uuid.UUID) -> RescheduleRequest:
        request = self._get_or_404(request_id)
        if not identity.is_doctor or identity.user_id != request.doctor_id:
            raise AuthorizationError("Only the doctor of this appointment can respond to the request")
        if request.status != RescheduleStatus.PENDING:
            raise StateError(f"Reschedule request is already {request.status.value.lower()}")
        return request

    def approve_request(
        self,
        identity: Identity,
        request_id: uuid.UUID,
        new_date,
        new_time: str,
        reschedule_fee: Optional[float] = None,
        reschedule_fee_percentage: Optional[float] = None,
        doctor_notes: Optional[str] = None,
    ) -> RescheduleRequest:
        """Approve with a new slot; the patient then owes the computed fee"""
        request = self._pending_for_doctor(identity, request_id)
        original = request.appointment
        if not can_transition(original.status, AppointmentStatus.RESCHEDULED):
            raise StateError(
                f"The original appointment is {original.status.value} and can no longer be rescheduled",
                details={"status": original.status.value}
            )

        calendar_day = intended_calendar_date(new_date)
        start_time = format_wall_clock(*parse_wall_clock(new_time))
        duration = original.appointment_duration
        start_utc, _ = resolve_start_end(
            calendar_day, start_time, timezone_offset=original.timezone_offset, duration_minutes=duration
        )
        if start_utc <= self.clock():
            raise ValidationError(
                "The new appointment time must be in the future",
                details={"start_utc": start_utc.isoformat()}
            )

        fee, percentage = compute_reschedule_fee(
            request.original_appointment_fee,
            percentage=reschedule_fee_percentage,
            fixed_fee=reschedule_fee,
            min_fee=self.min_fee,
            default_percentage=self.default_percentage,
        )

        now = self.clock()
        appointment_id = uuid.uuid4()
        new_appointment = self.guard.reserve({
            "id": appointment_id,
            "appointment_number": generate_appointment_number(now),
            "doctor_id": original.doctor_id,
            "patient_id": original.patient_id,
            "appointment_date": calendar_day,
            "appointment_time": start_time,
            "appointment_end_time": add_minutes_to_wall_clock(start_time, duration),
            "appointment_duration": duration,
            "timezone": original.timezone,
            "timezone_offset": original.timezone_offset,
            "booking_type": original.booking_type,
            "status": AppointmentStatus.PENDING_PAYMENT,
            "payment_status": PaymentStatus.UNPAID,
            "patient_notes": original.patient_notes,
            "clinic_name": original.clinic_name,
            "video_call_link": video_call_link(appointment_id),
            "is_rescheduled": True,
            "original_appointment_id": original.id,
            "reschedule_request_id": request.id,
            "reschedule_fee": fee,
            "created_by": identity.user_id,
            "created_at": naive_utc(now),
            "updated_at": naive_utc(now),
        }, commit=False)

        original.status = AppointmentStatus.RESCHEDULED
        original.updated_at = naive_utc(now)

        request.status = RescheduleStatus.APPROVED
        request.new_appointment_id = new_appointment.id
        request.reschedule_fee = fee
        request.reschedule_fee_percentage = percentage
        request.doctor_notes = doctor_notes
        request.responded_at = naive_utc(now)
        request.updated_at = naive_utc(now)
        self.db.commit()
        self.db.refresh(request)

        logger.info(f"Reschedule request {request.id} approved: new appointment {new_appointment.appointment_number}, fee {fee}")
        self._notify(
            request.patient_id,
            "Reschedule approved",
            f"Your appointment was moved to {calendar_day.isoformat()} at {start_time}. "
            f"Pay the reschedule fee of {fee:.2f} to confirm it.",
            request,
            "RESCHEDULE_APPROVED",
        )
        return request

    def reject_request(self, identity: Identity, request_id: uuid.UUID, rejection_reason: str) -> RescheduleRequest:
        rejection_reason = (rejection_reason or "").strip()
        if not rejection_reason:
            raise ValidationError("A rejection reason is required")

        request = self._pending_for_doctor(identity, request_id)
        now = naive_utc(self.clock())
        request.status = RescheduleStatus.REJECTED
        request.rejection_reason = rejection_reason
        request.responded_at = now
        request.updated_at = now
        self.db.commit()
        self.db.refresh(request)

        logger.info(f"Reschedule request {request.id} rejected")
        self._notify(
            request.patient_id,
            "Reschedule rejected",
            f"Your reschedule request was declined. Reason: {rejection_reason}",
            request,
            "RESCHEDULE_REJECTED",
        )
        return request
