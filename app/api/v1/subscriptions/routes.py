"""
Subscription usage API Routes
"""

from fastapi import APIRouter, Depends, Query
from typing import Optional
import uuid

from app.api.deps import Identity, doctor_or_admin_identity, get_db
from app.api.v1.common import ApiResponse
from app.api.v1.subscriptions.schemas import UsageSummaryResponse
from app.core.exceptions import ValidationError
from app.domain.subscriptions.service import SubscriptionQuotaService

router = APIRouter()


@router.get("/usage", response_model=ApiResponse[UsageSummaryResponse])
def get_usage_summary(
    doctor_id: Optional[uuid.UUID] = Query(None, description="Admins only; doctors see their own usage"),
    db = Depends(get_db),
    identity: Identity = Depends(doctor_or_admin_identity)
):
    """Plan limits and usage in the current subscription window"""
    if identity.is_doctor:
        doctor_id = identity.user_id
    elif doctor_id is None:
        raise ValidationError("doctor_id is required")

    service = SubscriptionQuotaService(db)
    summary = service.get_usage_summary(doctor_id)
    return ApiResponse(message="Subscription usage retrieved successfully", data=summary)
