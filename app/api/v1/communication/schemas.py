from pydantic import BaseModel, ConfigDict
from typing import Optional
from datetime import datetime
import uuid
from app.domain.communication.models import ConversationType


class ConversationCreate(BaseModel):
    doctor_id: uuid.UUID


class ConversationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    doctor_id: uuid.UUID
    patient_id: uuid.UUID
    conversation_type: ConversationType
    created_at: Optional[datetime] = None
