from app.core.permissions import Identity, Role, get_current_identity, require_roles
from app.infrastructure.database import get_db

# Role-restricted identity dependencies
patient_identity = require_roles(Role.PATIENT)
doctor_identity = require_roles(Role.DOCTOR)
doctor_or_admin_identity = require_roles(Role.DOCTOR, Role.ADMIN)

__all__ = [
    "Identity",
    "get_current_identity",
    "get_db",
    "patient_identity",
    "doctor_identity",
    "doctor_or_admin_identity",
]
