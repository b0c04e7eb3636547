# Communication domain module (video sessions and chat conversations)
from app.domain.communication.models import Conversation, ConversationType, VideoSession

__all__ = [
    "Conversation",
    "ConversationType",
    "VideoSession",
]
