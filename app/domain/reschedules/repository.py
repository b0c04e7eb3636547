"""
Reschedules Repository Layer
"""

from typing import Iterable, List, Optional, Set
import uuid

from app.domain.communication.models import VideoSession
from app.domain.reschedules.models import OPEN_STATUSES, RescheduleRequest, RescheduleStatus


class RescheduleRequestRepository:
    """Repository for reschedule request data access operations"""

    def __init__(self, db):
        self.db = db

    def get_by_id(self, request_id: uuid.UUID) -> Optional[RescheduleRequest]:
        return self.db.query(RescheduleRequest).filter(RescheduleRequest.id == request_id).first()

    def get_open_for_appointment(self, appointment_id: uuid.UUID) -> Optional[RescheduleRequest]:
        """PENDING or APPROVED request referencing an appointment"""
        return self.db.query(RescheduleRequest).filter(
            RescheduleRequest.appointment_id == appointment_id,
            RescheduleRequest.status.in_(OPEN_STATUSES)
        ).first()

    def appointments_with_open_requests(self, appointment_ids: Iterable[uuid.UUID]) -> Set[uuid.UUID]:
        appointment_ids = list(appointment_ids)
        if not appointment_ids:
            return set()
        rows = self.db.query(RescheduleRequest.appointment_id).filter(
            RescheduleRequest.appointment_id.in_(appointment_ids),
            RescheduleRequest.status.in_(OPEN_STATUSES)
        ).all()
        return {row[0] for row in rows}

    def patient_joined(self, appointment_ids: Iterable[uuid.UUID]) -> Set[uuid.UUID]:
        """Appointments whose video session the patient joined"""
        appointment_ids = list(appointment_ids)
        if not appointment_ids:
            return set()
        rows = self.db.query(VideoSession.appointment_id).filter(
            VideoSession.appointment_id.in_(appointment_ids),
            VideoSession.patient_joined_at.isnot(None)
        ).all()
        return {row[0] for row in rows}

    def list_requests(
        self,
        patient_id: Optional[uuid.UUID] = None,
        doctor_id: Optional[uuid.UUID] = None,
        status: Optional[RescheduleStatus] = None
    ) -> List[RescheduleRequest]:
        query = self.db.query(RescheduleRequest)
        if patient_id:
            query = query.filter(RescheduleRequest.patient_id == patient_id)
        if doctor_id:
            query = query.filter(RescheduleRequest.doctor_id == doctor_id)
        if status:
            query = query.filter(RescheduleRequest.status == status)
        return query.order_by(RescheduleRequest.created_at.desc()).all()
