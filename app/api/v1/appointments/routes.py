"""
Appointments API Routes

API endpoints for booking, the appointment lifecycle, availability and
in-session access.
"""

from fastapi import APIRouter, Depends, Query, status
from typing import Optional
from datetime import date
import uuid

from app.api.deps import Identity, get_current_identity, get_db
from app.api.v1.common import ApiResponse, Page, page_of
from app.domain.appointments.access import AppointmentAccessGuard
from app.domain.appointments.service import AppointmentService
from app.domain.communication.service import VideoSessionService
from app.api.v1.appointments.schemas import (
    AccessWindowResponse, AppointmentCancel, AppointmentCreate, AppointmentPay,
    AppointmentReject, AppointmentResponse, AppointmentStatusUpdate,
    AvailabilityResponse, VideoSessionResponse
)

router = APIRouter()


def _appointment(appointment) -> AppointmentResponse:
    return AppointmentResponse.model_validate(appointment)


@router.post("", response_model=ApiResponse[AppointmentResponse], status_code=status.HTTP_201_CREATED)
def create_appointment(
    appointment_data: AppointmentCreate,
    db = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    """Book an appointment"""
    service = AppointmentService(db)
    appointment = service.create_appointment(identity, **appointment_data.model_dump())
    return ApiResponse(message="Appointment created successfully", data=_appointment(appointment))


@router.get("", response_model=ApiResponse[Page[AppointmentResponse]])
def list_appointments(
    status_filter: Optional[str] = Query(None, alias="status"),
    booking_type: Optional[str] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    doctor_id: Optional[uuid.UUID] = Query(None),
    patient_id: Optional[uuid.UUID] = Query(None),
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    db = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    """List appointments visible to the caller"""
    service = AppointmentService(db)
    appointments, total = service.list_appointments(
        identity,
        status=status_filter,
        booking_type=booking_type,
        date_from=date_from,
        date_to=date_to,
        doctor_id=doctor_id,
        patient_id=patient_id,
        page=page,
        size=size,
    )
    data = page_of([_appointment(a) for a in appointments], total, page, size)
    return ApiResponse(message="Appointments retrieved successfully", data=data)


@router.get("/availability", response_model=ApiResponse[AvailabilityResponse])
def check_availability(
    doctor_id: uuid.UUID = Query(...),
    appointment_date: str = Query(..., description="YYYY-MM-DD"),
    appointment_time: str = Query(..., description="HH:MM"),
    db = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    """Whether a doctor's slot is free"""
    service = AppointmentService(db)
    result = service.check_availability(doctor_id, appointment_date, appointment_time)
    message = "Time slot is available" if result["available"] else "Time slot is already booked"
    return ApiResponse(message=message, data=result)


@router.get("/{appointment_id}", response_model=ApiResponse[AppointmentResponse])
def get_appointment(
    appointment_id: uuid.UUID,
    db = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    """Get appointment by ID"""
    service = AppointmentService(db)
    appointment = service.get_appointment(identity, appointment_id)
    return ApiResponse(message="Appointment retrieved successfully", data=_appointment(appointment))


@router.post("/{appointment_id}/confirm", response_model=ApiResponse[AppointmentResponse])
def confirm_appointment(
    appointment_id: uuid.UUID,
    db = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    """Doctor confirms a pending appointment"""
    service = AppointmentService(db)
    appointment = service.confirm_appointment(identity, appointment_id)
    return ApiResponse(message="Appointment confirmed", data=_appointment(appointment))


@router.post("/{appointment_id}/reject", response_model=ApiResponse[AppointmentResponse])
def reject_appointment(
    appointment_id: uuid.UUID,
    body: AppointmentReject,
    db = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    """Doctor rejects a pending appointment"""
    service = AppointmentService(db)
    appointment = service.reject_appointment(identity, appointment_id, body.reason)
    return ApiResponse(message="Appointment rejected", data=_appointment(appointment))


@router.post("/{appointment_id}/cancel", response_model=ApiResponse[AppointmentResponse])
def cancel_appointment(
    appointment_id: uuid.UUID,
    body: AppointmentCancel,
    db = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    """Either party cancels before the appointment starts"""
    service = AppointmentService(db)
    appointment = service.cancel_appointment(identity, appointment_id, body.reason)
    return ApiResponse(message="Appointment cancelled", data=_appointment(appointment))


@router.patch("/{appointment_id}/status", response_model=ApiResponse[AppointmentResponse])
def update_appointment_status(
    appointment_id: uuid.UUID,
    body: AppointmentStatusUpdate,
    db = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    """Administrative status or payment update"""
    service = AppointmentService(db)
    appointment = service.update_status(
        identity,
        appointment_id,
        status=body.status,
        payment_status=body.payment_status,
        payment_method=body.payment_method,
    )
    return ApiResponse(message="Appointment updated successfully", data=_appointment(appointment))


@router.post("/{appointment_id}/pay", response_model=ApiResponse[AppointmentResponse])
def pay_appointment(
    appointment_id: uuid.UUID,
    body: AppointmentPay,
    db = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    """Patient pays the consultation fee"""
    service = AppointmentService(db)
    appointment = service.pay_appointment(identity, appointment_id, body.payment_method)
    return ApiResponse(message="Payment successful", data=_appointment(appointment))


@router.get("/{appointment_id}/access", response_model=ApiResponse[AccessWindowResponse])
def check_access(
    appointment_id: uuid.UUID,
    db = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    """Whether the caller may communicate within this appointment now"""
    guard = AppointmentAccessGuard(db)
    appointment, window = guard.require_access(identity, appointment_id)
    data = AccessWindowResponse(
        appointment_id=appointment.id,
        status=appointment.status,
        start_utc=window.start_utc,
        end_utc=window.end_utc,
        earliest_allowed=window.earliest_allowed,
    )
    return ApiResponse(message="Appointment is accessible", data=data)


@router.post("/{appointment_id}/video-session/join", response_model=ApiResponse[VideoSessionResponse])
def join_video_session(
    appointment_id: uuid.UUID,
    db = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    """Join the appointment's video call"""
    service = VideoSessionService(db)
    session, window = service.join(identity, appointment_id)
    data = VideoSessionResponse(
        id=session.id,
        appointment_id=session.appointment_id,
        video_call_link=session.appointment.video_call_link,
        started_at=session.started_at,
        doctor_joined_at=session.doctor_joined_at,
        patient_joined_at=session.patient_joined_at,
        window_end_utc=window.end_utc,
    )
    return ApiResponse(message="Joined video session", data=data)
