"""
Subscriptions Repository Layer

Usage counts a doctor has consumed inside a subscription window.
"""

from datetime import datetime
import uuid

from sqlalchemy import func

from app.core.clock import naive_utc
from app.domain.appointments.models import Appointment, AppointmentStatus, BookingType
from app.domain.communication.models import Conversation
from app.domain.subscriptions.models import SubscriptionPlan

# Statuses that never count against a plan
UNCOUNTED_STATUSES = (AppointmentStatus.CANCELLED, AppointmentStatus.REJECTED)


class SubscriptionUsageRepository:
    """Repository for plan lookups and usage counting"""

    def __init__(self, db):
        self.db = db

    def get_plan(self, plan_id: uuid.UUID):
        return self.db.query(SubscriptionPlan).filter(SubscriptionPlan.id == plan_id).first()

    def count_appointments(
        self,
        doctor_id: uuid.UUID,
        booking_type: BookingType,
        start: datetime,
        end: datetime
    ) -> int:
        """Appointments of a booking type created inside [start, end]"""
        return self.db.query(func.count(Appointment.id)).filter(
            Appointment.doctor_id == doctor_id,
            Appointment.booking_type == booking_type,
            Appointment.status.notin_(UNCOUNTED_STATUSES),
            Appointment.created_at >= naive_utc(start),
            Appointment.created_at <= naive_utc(end),
        ).scalar() or 0

    def count_conversations(self, doctor_id: uuid.UUID, start: datetime, end: datetime) -> int:
        """Chat sessions opened inside [start, end]"""
        return self.db.query(func.count(Conversation.id)).filter(
            Conversation.doctor_id == doctor_id,
            Conversation.created_at >= naive_utc(start),
            Conversation.created_at <= naive_utc(end),
        ).scalar() or 0
