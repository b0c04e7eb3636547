"""
Accounts Repository Layer
"""

from typing import Optional
import uuid

from sqlalchemy.orm import joinedload

from app.domain.accounts.models import DoctorProfile, User


class UserRepository:
    """Repository for user and doctor profile lookups"""

    def __init__(self, db):
        self.db = db

    def get_by_id(self, user_id: uuid.UUID) -> Optional[User]:
        """Get user by ID"""
        return self.db.query(User).filter(User.id == user_id).first()

    def get_doctor_profile(self, doctor_id: uuid.UUID) -> Optional[DoctorProfile]:
        """Get a doctor's profile with its subscription plan"""
        return self.db.query(DoctorProfile).options(
            joinedload(DoctorProfile.subscription_plan)
        ).filter(DoctorProfile.user_id == doctor_id).first()
