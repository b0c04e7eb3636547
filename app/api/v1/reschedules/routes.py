"""
Reschedule Request API Routes
"""

from fastapi import APIRouter, Depends, Query, status
from typing import List, Optional
import uuid

from app.api.deps import Identity, doctor_identity, get_current_identity, get_db, patient_identity
from app.api.v1.common import ApiResponse
from app.api.v1.appointments.schemas import AppointmentResponse
from app.api.v1.reschedules.schemas import (
    RescheduleApprove, ReschedulePay, RescheduleReject,
    RescheduleRequestCreate, RescheduleRequestResponse
)
from app.domain.reschedules.service import RescheduleService

router = APIRouter()


def _request(request) -> RescheduleRequestResponse:
    return RescheduleRequestResponse.model_validate(request)


@router.get("/eligible-appointments", response_model=ApiResponse[List[AppointmentResponse]])
def get_eligible_appointments(
    db = Depends(get_db),
    identity: Identity = Depends(patient_identity)
):
    """Missed online appointments the patient may ask to reschedule"""
    service = RescheduleService(db)
    appointments = service.get_eligible_appointments(identity.user_id)
    return ApiResponse(
        message="Eligible appointments retrieved successfully",
        data=[AppointmentResponse.model_validate(a) for a in appointments]
    )


@router.post("", response_model=ApiResponse[RescheduleRequestResponse], status_code=status.HTTP_201_CREATED)
def create_reschedule_request(
    body: RescheduleRequestCreate,
    db = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    service = RescheduleService(db)
    request = service.create_request(
        identity,
        body.appointment_id,
        body.reason,
        preferred_date=body.preferred_date,
        preferred_time=body.preferred_time,
    )
    return ApiResponse(message="Reschedule request created successfully", data=_request(request))


@router.get("", response_model=ApiResponse[List[RescheduleRequestResponse]])
def list_reschedule_requests(
    status_filter: Optional[str] = Query(None, alias="status"),
    db = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    service = RescheduleService(db)
    requests = service.list_requests(identity, status=status_filter)
    return ApiResponse(
        message="Reschedule requests retrieved successfully",
        data=[_request(r) for r in requests]
    )


@router.get("/{request_id}", response_model=ApiResponse[RescheduleRequestResponse])
def get_reschedule_request(
    request_id: uuid.UUID,
    db = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    service = RescheduleService(db)
    request = service.get_request(identity, request_id)
    return ApiResponse(message="Reschedule request retrieved successfully", data=_request(request))


@router.post("/{request_id}/approve", response_model=ApiResponse[RescheduleRequestResponse])
def approve_reschedule_request(
    request_id: uuid.UUID,
    body: RescheduleApprove,
    db = Depends(get_db),
    identity: Identity = Depends(doctor_identity)
):
    """Doctor approves with a new slot and fee"""
    service = RescheduleService(db)
    request = service.approve_request(
        identity,
        request_id,
        body.new_date,
        body.new_time,
        reschedule_fee=body.reschedule_fee,
        reschedule_fee_percentage=body.reschedule_fee_percentage,
        doctor_notes=body.doctor_notes,
    )
    return ApiResponse(message="Reschedule request approved", data=_request(request))


@router.post("/{request_id}/reject", response_model=ApiResponse[RescheduleRequestResponse])
def reject_reschedule_request(
    request_id: uuid.UUID,
    body: RescheduleReject,
    db = Depends(get_db),
    identity: Identity = Depends(doctor_identity)
):
    service = RescheduleService(db)
    request = service.reject_request(identity, request_id, body.rejection_reason)
    return ApiResponse(message="Reschedule request rejected", data=_request(request))


@router.post("/{request_id}/pay", response_model=ApiResponse[RescheduleRequestResponse])
def pay_reschedule_fee(
    request_id: uuid.UUID,
    body: ReschedulePay,
    db = Depends(get_db),
    identity: Identity = Depends(patient_identity)
):
    """Patient pays the reschedule fee, confirming the new appointment"""
    service = RescheduleService(db)
    request = service.pay_fee(identity, request_id, body.payment_method)
    return ApiResponse(message="Reschedule fee paid", data=_request(request))


@router.post("/{request_id}/cancel", response_model=ApiResponse[RescheduleRequestResponse])
def cancel_reschedule_request(
    request_id: uuid.UUID,
    db = Depends(get_db),
    identity: Identity = Depends(patient_identity)
):
    service = RescheduleService(db)
    request = service.cancel_request(identity, request_id)
    return ApiResponse(message="Reschedule request cancelled", data=_request(request))
