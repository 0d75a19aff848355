"""
Megolm group session key distribution API
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from insider.core.auth import get_current_user_required
from insider.core.database import get_db
from insider.core.logging_config import LoggingConfig
from insider.models.e2ee import ConversationE2EESettings, MegolmSessionShare
from insider.models.user import User
from insider.services.megolm_service import MegolmService

router = APIRouter(prefix="/api/e2ee/sessions", tags=["e2ee"])
logger = LoggingConfig.get_logger(__name__)


class SessionShareItem(BaseModel):
    recipient_user_id: UUID
    recipient_device_id: str = Field(..., min_length=1)
    encrypted_session_key: str = Field(..., min_length=1, description="Olm-encrypted session key")
    key_algorithm: Optional[str] = "olm.v1"


class ShareSessionRequest(BaseModel):
    conversation_id: UUID
    session_id: str = Field(..., min_length=1)
    sender_device_id: str = Field(..., min_length=1)
    first_known_index: int = Field(default=0, ge=0)
    shares: List[SessionShareItem]


class ClaimSessionsRequest(BaseModel):
    device_id: str = Field(..., min_length=1)


class RotateSessionRequest(BaseModel):
    conversation_id: UUID
    session_id: str = Field(..., min_length=1)


def _share_dict(share: MegolmSessionShare) -> dict:
    return {
        "conversation_id": str(share.conversation_id),
        "session_id": share.session_id,
        "sender_user_id": str(share.sender_user_id),
        "sender_device_id": share.sender_device_id,
        "encrypted_session_key": share.encrypted_session_key,
        "key_algorithm": share.key_algorithm,
        "first_known_index": share.first_known_index,
        "created_at": share.created_at.isoformat(),
    }


def _settings_dict(row: ConversationE2EESettings) -> dict:
    return {
        "conversation_id": str(row.conversation_id),
        "e2ee_required": row.e2ee_required,
        "current_session_id": row.current_session_id,
        "current_session_created_at": (
            row.current_session_created_at.isoformat() if row.current_session_created_at else None
        ),
        "session_message_count": row.session_message_count,
    }


@router.post("/share")
async def share_session(
    request: ShareSessionRequest,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    """Distribute an outbound session key to the conversation's devices"""
    inserted = MegolmService(db).share_session(
        conversation_id=request.conversation_id,
        session_id=request.session_id,
        sender_user_id=user.id,
        sender_device_id=request.sender_device_id,
        shares=[s.model_dump() for s in request.shares],
        first_known_index=request.first_known_index,
    )
    return {"session_id": request.session_id, "shared": inserted}


@router.post("/claim")
async def claim_sessions(
    request: ClaimSessionsRequest,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    """Pending session keys for one of the caller's devices; each is delivered once"""
    shares = MegolmService(db).claim_sessions(user.id, request.device_id)
    return {"sessions": [_share_dict(s) for s in shares]}


@router.post("/rotate")
async def rotate_session(
    request: RotateSessionRequest,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    row = MegolmService(db).rotate_session(request.conversation_id, user.id, request.session_id)
    return _settings_dict(row)


@router.get("/{conversation_id}/rotation")
async def rotation_status(
    conversation_id: UUID,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    """Whether the conversation's outbound session is due for rotation"""
    service = MegolmService(db)
    service.messaging.require_participant(conversation_id, user.id)
    return service.needs_rotation(conversation_id)
