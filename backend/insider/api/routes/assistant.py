"""
AI assistant API routes: documentation chat with streaming, search, DM mentions and TTS
"""
import json
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from insider.core.auth import get_current_user_optional, get_current_user_required
from insider.core.database import get_db
from insider.core.errors import InsiderError, ValidationError
from insider.core.logging_config import LoggingConfig
from insider.models.user import User
from insider.services.assistant_service import AssistantService

router = APIRouter(prefix="/api/assistant", tags=["assistant"])
logger = LoggingConfig.get_logger(__name__)


def get_assistant_service(db: Session = Depends(get_db)) -> AssistantService:
    """Dependency to get the assistant service"""
    return AssistantService(db)


# Request models
class HistoryMessage(BaseModel):
    role: str = Field(..., description="user or assistant")
    content: str


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=8000)
    history: List[HistoryMessage] = Field(default_factory=list)


class ContextMessage(BaseModel):
    content: str
    is_ai_generated: bool = False


class MentionRequest(BaseModel):
    """
    Ask the assistant to answer a mention.

    ``question`` and ``context_messages`` carry client-decrypted text and are
    required for end-to-end encrypted conversations.
    """
    trigger_message_id: Optional[UUID] = None
    question: Optional[str] = Field(None, max_length=8000)
    context_messages: List[ContextMessage] = Field(default_factory=list)
    device_id: Optional[str] = None


class TTSRequest(BaseModel):
    text: str = Field(..., min_length=1)
    voice_id: Optional[str] = None


@router.post("/chat")
async def chat(
    request: ChatRequest,
    user: Optional[User] = Depends(get_current_user_optional),
    service: AssistantService = Depends(get_assistant_service)
):
    """Answer a question using the documentation as context"""
    history = [m.model_dump() for m in request.history]
    return await service.chat(request.message, history, user)


async def _stream_chat(service: AssistantService, message: str, history: list, user: Optional[User]):
    """Stream the answer as server-sent events"""
    try:
        async for chunk in service.chat_stream(message, history, user):
            yield f"data: {json.dumps({'content': chunk.content, 'done': chunk.done})}\n\n"
    except InsiderError as e:
        logger.warning(f"Chat stream failed: {e.detail}")
        yield f"data: {json.dumps({'error': e.detail, 'done': True})}\n\n"
    except Exception as e:
        logger.error(f"Error in chat stream: {e}", exc_info=True)
        yield f"data: {json.dumps({'error': 'Internal error', 'done': True})}\n\n"


@router.post("/chat/stream")
async def chat_stream(
    request: ChatRequest,
    user: Optional[User] = Depends(get_current_user_optional),
    service: AssistantService = Depends(get_assistant_service)
):
    if not request.message.strip():
        raise ValidationError("Message is required")
    history = [m.model_dump() for m in request.history]
    return StreamingResponse(
        _stream_chat(service, request.message, history, user),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/search")
async def search_docs(
    q: str = Query(..., min_length=1, description="Search query"),
    limit: int = Query(5, ge=1, le=20),
    service: AssistantService = Depends(get_assistant_service)
):
    """Search the documentation index"""
    return {"query": q, "results": service.search(q, limit)}


@router.post("/conversations/{conversation_id}/mention")
async def respond_to_mention(
    conversation_id: UUID,
    request: MentionRequest,
    user: User = Depends(get_current_user_required),
    service: AssistantService = Depends(get_assistant_service)
):
    reply = await service.respond_to_mention(
        conversation_id,
        user,
        trigger_message_id=request.trigger_message_id,
        question=request.question,
        context_messages=[m.model_dump() for m in request.context_messages],
        device_id=request.device_id,
    )
    return reply.to_dict()


@router.post("/tts")
async def text_to_speech(
    request: TTSRequest,
    user: User = Depends(get_current_user_required),
    service: AssistantService = Depends(get_assistant_service)
):
    """Convert text to speech; returns MP3 audio"""
    audio = await service.text_to_speech(request.text, request.voice_id)
    return Response(content=audio, media_type="audio/mpeg")
