"""
Appointments API Schemas

Pydantic models for appointment-related API requests and responses.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime, date
import uuid
from app.domain.appointments.models import AppointmentStatus, BookingType, PaymentStatus

WALL_CLOCK_PATTERN = r"^([01]?\d|2[0-3]):[0-5]\d$"


class AppointmentCreate(BaseModel):
    """Schema for booking an appointment"""
    doctor_id: uuid.UUID
    patient_id: Optional[uuid.UUID] = Field(None, description="Required when an admin books for a patient")
    appointment_date: str = Field(..., description="Intended local date, YYYY-MM-DD (ISO datetimes accepted)")
    appointment_time: str = Field(..., pattern=WALL_CLOCK_PATTERN, description="Local start time, HH:MM")
    booking_type: BookingType = BookingType.VISIT
    duration_minutes: Optional[int] = Field(None, ge=15, le=120)
    timezone: Optional[str] = Field(None, max_length=64, description="Label such as UTC+5")
    timezone_offset: Optional[int] = Field(None, ge=-720, le=840, description="Minutes ahead of UTC")
    patient_notes: Optional[str] = Field(None, max_length=1000)
    clinic_name: Optional[str] = Field(None, max_length=200)
    payment_method: Optional[str] = Field(None, max_length=50)


class AppointmentReject(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class AppointmentCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class AppointmentStatusUpdate(BaseModel):
    """Administrative status / payment update"""
    status: Optional[str] = None
    payment_status: Optional[str] = None
    payment_method: Optional[str] = Field(None, max_length=50)


class AppointmentPay(BaseModel):
    payment_method: Optional[str] = Field(None, max_length=50)


class AppointmentResponse(BaseModel):
    """Schema for appointment response"""
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    appointment_number: str
    doctor_id: uuid.UUID
    patient_id: uuid.UUID
    appointment_date: date
    appointment_time: str
    appointment_end_time: Optional[str] = None
    appointment_duration: int
    timezone: Optional[str] = None
    timezone_offset: Optional[int] = None
    booking_type: BookingType
    status: AppointmentStatus
    payment_status: PaymentStatus
    payment_method: Optional[str] = None
    patient_notes: Optional[str] = None
    clinic_name: Optional[str] = None
    video_call_link: Optional[str] = None
    rejection_reason: Optional[str] = None
    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[uuid.UUID] = None
    cancelled_at: Optional[datetime] = None
    is_rescheduled: Optional[bool] = False
    original_appointment_id: Optional[uuid.UUID] = None
    reschedule_request_id: Optional[uuid.UUID] = None
    reschedule_fee: Optional[float] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AvailabilityResponse(BaseModel):
    doctor_id: uuid.UUID
    appointment_date: date
    appointment_time: str
    available: bool


class AccessWindowResponse(BaseModel):
    """The caller may communicate within this appointment right now"""
    appointment_id: uuid.UUID
    status: AppointmentStatus
    start_utc: datetime
    end_utc: datetime
    earliest_allowed: datetime


class VideoSessionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    appointment_id: uuid.UUID
    video_call_link: Optional[str] = None
    started_at: Optional[datetime] = None
    doctor_joined_at: Optional[datetime] = None
    patient_joined_at: Optional[datetime] = None
    window_end_utc: datetime
