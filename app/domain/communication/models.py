"""
Communication Domain Models
"""

from sqlalchemy import Column, DateTime, ForeignKey, Enum, Uuid
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.infrastructure.database import Base
import uuid
import enum


class ConversationType(str, enum.Enum):
    DOCTOR_PATIENT = "DOCTOR_PATIENT"
    SUPPORT = "SUPPORT"


class VideoSession(Base):
    """Video call attached to an online appointment"""
    __tablename__ = "video_sessions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    appointment_id = Column(Uuid, ForeignKey("appointments.id"), nullable=False, unique=True)
    doctor_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    patient_id = Column(Uuid, ForeignKey("users.id"), nullable=False)

    started_at = Column(DateTime)
    doctor_joined_at = Column(DateTime)
    patient_joined_at = Column(DateTime)
    ended_at = Column(DateTime)

    created_at = Column(DateTime, default=func.now())

    appointment = relationship("Appointment", back_populates="video_sessions")


class Conversation(Base):
    """Chat session between a doctor and a patient"""
    __tablename__ = "conversations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    doctor_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    patient_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    conversation_type = Column(Enum(ConversationType), nullable=False, default=ConversationType.DOCTOR_PATIENT)

    created_at = Column(DateTime, default=func.now(), index=True)
