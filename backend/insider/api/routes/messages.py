"""
Direct messaging API routes
"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from insider.core.auth import get_current_user_required
from insider.core.database import get_db
from insider.core.logging_config import LoggingConfig
from insider.models.user import User
from insider.services.messaging_service import MessagingService

router = APIRouter(prefix="/api/messages", tags=["messages"])
logger = LoggingConfig.get_logger(__name__)


class StartConversationRequest(BaseModel):
    participant_ids: List[UUID] = Field(..., min_length=1)
    e2ee: bool = False


class SendMessageRequest(BaseModel):
    """Plaintext ``content`` or an ``encrypted_content`` envelope"""
    content: Optional[str] = Field(None, max_length=10000)
    encrypted_content: Optional[str] = None
    encryption_algorithm: Optional[str] = Field(None, description="olm.v1 or megolm.v1")
    sender_device_id: Optional[str] = None
    sender_key: Optional[str] = None
    session_id: Optional[str] = None


@router.post("/conversations", status_code=status.HTTP_201_CREATED)
async def start_conversation(
    request: StartConversationRequest,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    """Start a conversation; an existing one-to-one conversation is reused"""
    service = MessagingService(db)
    conversation = service.start_conversation(user.id, request.participant_ids, e2ee=request.e2ee)
    return {
        "id": str(conversation.id),
        "participant_ids": [str(pid) for pid in service.participant_ids(conversation.id)],
        "e2ee_required": service.is_e2ee_required(conversation.id),
        "created_at": conversation.created_at.isoformat(),
    }


@router.get("/conversations")
async def list_conversations(
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    return {"conversations": MessagingService(db).list_conversations(user.id)}


@router.get("/conversations/{conversation_id}/messages")
async def list_messages(
    conversation_id: UUID,
    limit: int = Query(50, ge=1, le=200),
    before: Optional[datetime] = Query(None, description="Only messages older than this time"),
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    messages = MessagingService(db).list_messages(conversation_id, user.id, limit=limit, before=before)
    return {"messages": [m.to_dict() for m in messages]}


@router.post("/conversations/{conversation_id}/messages", status_code=status.HTTP_201_CREATED)
async def send_message(
    conversation_id: UUID,
    request: SendMessageRequest,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    message = MessagingService(db).send_message(
        conversation_id,
        user.id,
        content=request.content,
        encrypted_content=request.encrypted_content,
        encryption_algorithm=request.encryption_algorithm,
        sender_device_id=request.sender_device_id,
        sender_key=request.sender_key,
        session_id=request.session_id,
    )
    return message.to_dict()


@router.post("/conversations/{conversation_id}/read")
async def mark_read(
    conversation_id: UUID,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    participant = MessagingService(db).mark_read(conversation_id, user.id)
    return {
        "conversation_id": str(conversation_id),
        "unread_count": participant.unread_count,
        "last_read_at": participant.last_read_at.isoformat(),
    }
