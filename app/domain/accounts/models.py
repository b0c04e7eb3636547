"""
Accounts Domain Models

The slice of user and doctor profile data the scheduling core reads:
- User identity and role
- Doctor approval, profile completeness, slot length and fee
- Doctor balance and subscription pointer
"""

from sqlalchemy import (
    Column, String, Boolean, DateTime, ForeignKey, Integer, Numeric, Enum, Uuid
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.core.permissions import Role
from app.infrastructure.database import Base
import uuid


class User(Base):
    """Marketplace user (patient, doctor or admin)"""
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    full_name = Column(String(200), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    role = Column(Enum(Role), nullable=False, default=Role.PATIENT)
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    doctor_profile = relationship("DoctorProfile", back_populates="user", uselist=False)


class DoctorProfile(Base):
    """Doctor-specific settings and account state"""
    __tablename__ = "doctor_profiles"

    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)

    is_approved = Column(Boolean, default=False)
    profile_completed = Column(Boolean, default=False)
    slot_duration_minutes = Column(Integer)
    consultation_fee = Column(Numeric(10, 2, asdecimal=False), default=0)
    balance = Column(Numeric(12, 2, asdecimal=False), default=0, nullable=False)

    # Subscription
    subscription_plan_id = Column(Uuid, ForeignKey("subscription_plans.id"))
    subscription_expires_at = Column(DateTime)

    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="doctor_profile")
    subscription_plan = relationship("SubscriptionPlan")
