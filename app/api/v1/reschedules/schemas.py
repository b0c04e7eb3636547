"""
Reschedule Request API Schemas
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import date, datetime
import uuid
from app.domain.reschedules.models import RescheduleStatus

WALL_CLOCK_PATTERN = r"^([01]?\d|2[0-3]):[0-5]\d$"


class RescheduleRequestCreate(BaseModel):
    appointment_id: uuid.UUID
    reason: str = Field(..., min_length=10, max_length=500)
    preferred_date: Optional[date] = None
    preferred_time: Optional[str] = Field(None, pattern=WALL_CLOCK_PATTERN)


class RescheduleApprove(BaseModel):
    new_date: str = Field(..., description="YYYY-MM-DD")
    new_time: str = Field(..., pattern=WALL_CLOCK_PATTERN)
    reschedule_fee: Optional[float] = Field(None, ge=0)
    reschedule_fee_percentage: Optional[float] = Field(None, ge=0)
    doctor_notes: Optional[str] = Field(None, max_length=1000)


class RescheduleReject(BaseModel):
    rejection_reason: str = Field(..., min_length=1, max_length=500)


class ReschedulePay(BaseModel):
    payment_method: str = Field("DUMMY", max_length=50)


class RescheduleRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    appointment_id: uuid.UUID
    patient_id: uuid.UUID
    doctor_id: uuid.UUID
    reason: str
    preferred_date: Optional[date] = None
    preferred_time: Optional[str] = None
    status: RescheduleStatus
    original_appointment_fee: float
    reschedule_fee: Optional[float] = None
    reschedule_fee_percentage: Optional[float] = None
    doctor_notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    new_appointment_id: Optional[uuid.UUID] = None
    payment_transaction_id: Optional[uuid.UUID] = None
    is_settled: bool = False
    requested_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None
