from dataclasses import dataclass
from typing import Any, Dict, Optional
import enum
import uuid

from fastapi import Request

from app.core.exceptions import AuthenticationError, AuthorizationError
from app.core.security import verify_token


class Role(str, enum.Enum):
    """Roles the identity service puts in the token"""
    PATIENT = "PATIENT"
    DOCTOR = "DOCTOR"
    ADMIN = "ADMIN"


@dataclass(frozen=True)
class Identity:
    """Verified caller: who they are and what role they act in"""
    user_id: uuid.UUID
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_doctor(self) -> bool:
        return self.role == Role.DOCTOR

    @property
    def is_patient(self) -> bool:
        return self.role == Role.PATIENT


def identity_from_payload(payload: Dict[str, Any]) -> Identity:
    try:
        return Identity(
            user_id=uuid.UUID(str(payload.get("user_id") or payload["sub"])),
            role=Role(str(payload.get("role", "")).upper()),
        )
    except (KeyError, ValueError):
        raise AuthenticationError("Invalid token claims")


def get_current_identity(request: Request) -> Identity:
    """Extract and validate the caller from the Authorization header"""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise AuthenticationError("Authentication required")

    token = auth_header.split(" ", 1)[1]
    payload = verify_token(token, "access")

    if not payload:
        raise AuthenticationError("Invalid or expired token")

    identity = identity_from_payload(payload)
    request.state.identity = identity
    return identity


def require_roles(*roles: Role):
    """Dependency factory restricting an endpoint to the given roles"""
    def role_checker(request: Request) -> Identity:
        identity = get_current_identity(request)
        if identity.role not in roles:
            raise AuthorizationError("Insufficient permissions")
        return identity

    return role_checker


def ensure_party(
    identity: Identity,
    doctor_id: Optional[uuid.UUID],
    patient_id: Optional[uuid.UUID],
    allow_admin: bool = True,
    message: str = "You do not have access to this appointment",
) -> None:
    """Raise unless the caller is the doctor or the patient of a record"""
    if allow_admin and identity.is_admin:
        return
    if identity.user_id not in (doctor_id, patient_id):
        raise AuthorizationError(message)
