"""
Communication Service Layer

Video session joins (behind the appointment access guard) and chat
session creation (behind the subscription chat quota).
"""

from typing import Optional, Tuple
import logging
import uuid

from app.core.clock import Clock, naive_utc, utc_now
from app.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from app.core.permissions import Identity, Role
from app.domain.accounts.repository import UserRepository
from app.domain.appointments.access import AppointmentAccessGuard
from app.domain.appointments.time_window import TimeWindow
from app.domain.communication.models import Conversation, VideoSession
from app.domain.subscriptions.service import PlanPolicySource, SubscriptionQuotaService

logger = logging.getLogger(__name__)


class VideoSessionService:
    def __init__(self, db, clock: Clock = utc_now, access: Optional[AppointmentAccessGuard] = None):
        self.db = db
        self.clock = clock
        self.access = access or AppointmentAccessGuard(db, clock)

    def get_for_appointment(self, appointment_id: uuid.UUID) -> Optional[VideoSession]:
        return self.db.query(VideoSession).filter(VideoSession.appointment_id == appointment_id).first()

    def join(self, identity: Identity, appointment_id: uuid.UUID) -> Tuple[VideoSession, TimeWindow]:
        """Record the caller joining the appointment's video call"""
        appointment, window = self.access.require_access(identity, appointment_id)
        if not appointment.is_online:
            raise ValidationError("Video calls are only available for online appointments")

        now = naive_utc(self.clock())
        session = self.get_for_appointment(appointment.id)
        if session is None:
            session = VideoSession(
                appointment_id=appointment.id,
                doctor_id=appointment.doctor_id,
                patient_id=appointment.patient_id,
                started_at=now,
                created_at=now,
            )
            self.db.add(session)

        if identity.user_id == appointment.doctor_id and session.doctor_joined_at is None:
            session.doctor_joined_at = now
        if identity.user_id == appointment.patient_id and session.patient_joined_at is None:
            session.patient_joined_at = now

        self.db.commit()
        self.db.refresh(session)
        logger.info(f"User {identity.user_id} joined video session for appointment {appointment.id}")
        return session, window


class ConversationService:
    def __init__(self, db, plans: Optional[PlanPolicySource] = None, clock: Clock = utc_now):
        self.db = db
        self.clock = clock
        self.quota = SubscriptionQuotaService(db, plans=plans, clock=clock)
        self.user_repo = UserRepository(db)

    def start_conversation(self, identity: Identity, doctor_id: uuid.UUID) -> Tuple[Conversation, bool]:
        """Open (or reuse) a chat between the calling patient and a doctor.

        Returns the conversation and whether it was newly created. Only new
        conversations count against the doctor's chat quota.
        """
        if not identity.is_patient:
            raise AuthorizationError("Only patients can start a conversation with a doctor")

        doctor = self.user_repo.get_by_id(doctor_id)
        if not doctor or doctor.role != Role.DOCTOR:
            raise NotFoundError("Doctor not found", details={"doctor_id": str(doctor_id)})

        existing = self.db.query(Conversation).filter(
            Conversation.doctor_id == doctor_id,
            Conversation.patient_id == identity.user_id,
        ).first()
        if existing:
            return existing, False

        self.quota.check_chat_allowed(doctor_id)

        conversation = Conversation(
            doctor_id=doctor_id,
            patient_id=identity.user_id,
            created_at=naive_utc(self.clock()),
        )
        self.db.add(conversation)
        self.db.commit()
        self.db.refresh(conversation)
        logger.info(f"Conversation {conversation.id} opened between patient {identity.user_id} and doctor {doctor_id}")
        return conversation, True
