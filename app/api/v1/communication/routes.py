"""
Chat API Routes
"""

from fastapi import APIRouter, Depends, Response, status

from app.api.deps import Identity, get_db, patient_identity
from app.api.v1.common import ApiResponse
from app.api.v1.communication.schemas import ConversationCreate, ConversationResponse
from app.domain.communication.service import ConversationService

router = APIRouter()


@router.post("", response_model=ApiResponse[ConversationResponse])
def start_conversation(
    body: ConversationCreate,
    response: Response,
    db = Depends(get_db),
    identity: Identity = Depends(patient_identity)
):
    """Open a chat with a doctor, subject to the doctor's chat quota"""
    service = ConversationService(db)
    conversation, created = service.start_conversation(identity, body.doctor_id)
    if created:
        response.status_code = status.HTTP_201_CREATED
    return ApiResponse(
        message="Conversation started" if created else "Conversation already exists",
        data=ConversationResponse.model_validate(conversation)
    )
