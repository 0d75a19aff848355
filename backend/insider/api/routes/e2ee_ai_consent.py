"""
AI consent API for end-to-end encrypted conversations
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from insider.core.auth import get_current_user_required
from insider.core.database import get_db
from insider.core.logging_config import LoggingConfig
from insider.models.ai_consent import AIAccessLog, AIConsent, AIFeature
from insider.models.user import User
from insider.services.ai_consent_service import AIConsentService

router = APIRouter(prefix="/api/e2ee/ai-consent", tags=["e2ee-ai-consent"])
logger = LoggingConfig.get_logger(__name__)


class AISettingsRequest(BaseModel):
    require_unanimous_consent: Optional[bool] = None
    enabled_features: Optional[List[str]] = None
    consent_expiry_days: Optional[int] = Field(None, ge=1)


class GrantConsentRequest(BaseModel):
    features: List[str] = Field(default_factory=lambda: [AIFeature.MENTION_RESPONSE.value])
    device_id: Optional[str] = None
    reason: Optional[str] = None


class WithdrawConsentRequest(BaseModel):
    reason: Optional[str] = None


class LogAccessRequest(BaseModel):
    feature: str
    content: Optional[str] = Field(None, description="Decrypted content; only its SHA-256 is stored")
    message_id: Optional[UUID] = None
    device_id: Optional[str] = None
    model: Optional[str] = None


def _consent_dict(consent: AIConsent) -> dict:
    return {
        "conversation_id": str(consent.conversation_id),
        "user_id": str(consent.user_id),
        "consent_status": consent.consent_status,
        "allowed_features": consent.allowed_features or [],
        "consent_given_at": consent.consent_given_at.isoformat() if consent.consent_given_at else None,
        "consent_expires_at": consent.consent_expires_at.isoformat() if consent.consent_expires_at else None,
        "consent_reason": consent.consent_reason,
    }


def _log_dict(entry: AIAccessLog) -> dict:
    return {
        "id": str(entry.id),
        "message_id": str(entry.message_id) if entry.message_id else None,
        "authorizing_user_id": str(entry.authorizing_user_id),
        "authorizing_device_id": entry.authorizing_device_id,
        "feature_used": entry.feature_used,
        "content_hash": entry.content_hash,
        "ai_model_used": entry.ai_model_used,
        "created_at": entry.created_at.isoformat(),
    }


@router.put("/{conversation_id}/settings")
async def update_ai_settings(
    conversation_id: UUID,
    request: AISettingsRequest,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    service = AIConsentService(db)
    service.update_settings(
        conversation_id,
        user.id,
        require_unanimous_consent=request.require_unanimous_consent,
        enabled_features=request.enabled_features,
        consent_expiry_days=request.consent_expiry_days,
    )
    return service.consent_status(conversation_id, user.id)


@router.post("/{conversation_id}/grant")
async def grant_consent(
    conversation_id: UUID,
    request: GrantConsentRequest,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    """Allow the assistant to process this conversation for the given features"""
    consent = AIConsentService(db).grant(
        conversation_id, user.id, request.features, request.device_id, request.reason
    )
    return _consent_dict(consent)


@router.post("/{conversation_id}/deny")
async def deny_consent(
    conversation_id: UUID,
    request: WithdrawConsentRequest,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    return _consent_dict(AIConsentService(db).deny(conversation_id, user.id, request.reason))


@router.post("/{conversation_id}/revoke")
async def revoke_consent(
    conversation_id: UUID,
    request: WithdrawConsentRequest,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    return _consent_dict(AIConsentService(db).revoke(conversation_id, user.id, request.reason))


@router.get("/{conversation_id}/check")
async def check_consent(
    conversation_id: UUID,
    feature: str = Query(AIFeature.MENTION_RESPONSE.value),
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    service = AIConsentService(db)
    service.messaging.require_participant(conversation_id, user.id)
    return service.check_consent(conversation_id, feature)


@router.get("/{conversation_id}/status")
async def consent_status(
    conversation_id: UUID,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    """Every participant's consent and who has not granted yet"""
    return AIConsentService(db).consent_status(conversation_id, user.id)


@router.post("/{conversation_id}/access-log")
async def log_access(
    conversation_id: UUID,
    request: LogAccessRequest,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    entry = AIConsentService(db).log_access(
        conversation_id,
        user.id,
        request.feature,
        content=request.content,
        message_id=request.message_id,
        device_id=request.device_id,
        model=request.model,
    )
    return _log_dict(entry)


@router.get("/{conversation_id}/access-log")
async def list_access_log(
    conversation_id: UUID,
    limit: int = Query(50, ge=1, le=200),
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    entries = AIConsentService(db).list_access_log(conversation_id, user.id, limit)
    return {"entries": [_log_dict(e) for e in entries]}
