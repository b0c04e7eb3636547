# Accounts domain module
from app.domain.accounts.models import DoctorProfile, User

__all__ = [
    "DoctorProfile",
    "User",
]
