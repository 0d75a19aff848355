"""
Device verification API: interactive SAS, cross-signing keys and user trust
"""
from typing import Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from insider.core.auth import get_current_user_required, require_roles
from insider.core.database import get_db
from insider.core.logging_config import LoggingConfig
from insider.models.user import User, UserRole
from insider.models.verification import (CrossSigningKey, DeviceSignature,
                                         SasVerification, TrustLevel,
                                         UserTrust)
from insider.services.cross_signing_service import CrossSigningService
from insider.services.verification_service import VerificationService

router = APIRouter(prefix="/api/e2ee/verification", tags=["e2ee-verification"])
logger = LoggingConfig.get_logger(__name__)


# Request models
class StartVerificationRequest(BaseModel):
    initiator_device_id: str = Field(..., min_length=1)
    target_user_id: UUID
    target_device_id: str = Field(..., min_length=1)
    public_key: str = Field(..., min_length=1, description="Initiator's ephemeral public key")
    commitment: str = Field(..., min_length=1, description="base64(SHA-256(public_key))")


class AcceptVerificationRequest(BaseModel):
    public_key: str = Field(..., min_length=1, description="Target's ephemeral public key")


class RevealVerificationRequest(BaseModel):
    public_key: str = Field(..., min_length=1)
    emoji_indices: Optional[List[int]] = None
    sas_decimal: Optional[str] = None


class ConfirmVerificationRequest(BaseModel):
    is_match: bool
    emoji_indices: Optional[List[int]] = None
    sas_decimal: Optional[str] = None


class UploadCrossSigningKeyRequest(BaseModel):
    key_type: str = Field(..., description="master, self_signing or user_signing")
    public_key: str = Field(..., min_length=1)
    signatures: Optional[Dict[str, str]] = None


class SignDeviceRequest(BaseModel):
    device_owner_id: UUID
    device_id: str = Field(..., min_length=1)
    signer_key_type: str
    signer_key_id: str = Field(..., min_length=1)
    signature: str = Field(..., min_length=1)


class SetTrustRequest(BaseModel):
    trusted_user_id: UUID
    trusted_master_key: str = Field(..., min_length=1)
    trust_level: str = TrustLevel.VERIFIED.value
    verification_method: Optional[str] = None


def _verification_dict(v: SasVerification) -> dict:
    return {
        "id": str(v.id),
        "transaction_id": v.transaction_id,
        "status": v.status,
        "initiator_user_id": str(v.initiator_user_id),
        "initiator_device_id": v.initiator_device_id,
        "target_user_id": str(v.target_user_id),
        "target_device_id": v.target_device_id,
        "initiator_public_key": v.initiator_public_key,
        "target_public_key": v.target_public_key,
        "initiator_commitment": v.initiator_commitment,
        "sas_emoji_indices": v.sas_emoji_indices,
        "sas_decimal": v.sas_decimal,
        "expires_at": v.expires_at.isoformat(),
        "created_at": v.created_at.isoformat(),
        "completed_at": v.completed_at.isoformat() if v.completed_at else None,
    }


def _key_dict(key: CrossSigningKey) -> dict:
    return {
        "id": str(key.id),
        "user_id": str(key.user_id),
        "key_type": key.key_type,
        "public_key": key.public_key,
        "signatures": key.signatures or {},
        "is_active": key.is_active,
        "created_at": key.created_at.isoformat(),
    }


def _signature_dict(sig: DeviceSignature) -> dict:
    return {
        "id": str(sig.id),
        "signer_user_id": str(sig.signer_user_id),
        "signer_key_type": sig.signer_key_type,
        "signer_key_id": sig.signer_key_id,
        "signature": sig.signature,
        "created_at": sig.created_at.isoformat(),
    }


def _trust_dict(trust: UserTrust) -> dict:
    return {
        "trusted_user_id": str(trust.trusted_user_id),
        "trusted_master_key": trust.trusted_master_key,
        "trust_level": trust.trust_level,
        "verification_method": trust.verification_method,
        "updated_at": trust.updated_at.isoformat(),
    }


# ----------------------------------------------------------------------
# SAS
# ----------------------------------------------------------------------

@router.post("/start")
async def start_verification(
    request: StartVerificationRequest,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    verification = VerificationService(db).start(
        initiator_user_id=user.id,
        initiator_device_id=request.initiator_device_id,
        target_user_id=request.target_user_id,
        target_device_id=request.target_device_id,
        public_key=request.public_key,
        commitment=request.commitment,
    )
    return _verification_dict(verification)


@router.post("/{transaction_id}/accept")
async def accept_verification(
    transaction_id: str,
    request: AcceptVerificationRequest,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    verification = VerificationService(db).accept(transaction_id, user.id, request.public_key)
    return _verification_dict(verification)


@router.post("/{transaction_id}/reveal")
async def reveal_verification(
    transaction_id: str,
    request: RevealVerificationRequest,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    verification = VerificationService(db).reveal(
        transaction_id, user.id, request.public_key, request.emoji_indices, request.sas_decimal
    )
    return _verification_dict(verification)


@router.post("/{transaction_id}/confirm")
async def confirm_verification(
    transaction_id: str,
    request: ConfirmVerificationRequest,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    """Report whether the displayed emoji matched on both devices"""
    verification = VerificationService(db).confirm(
        transaction_id, user.id, request.is_match, request.emoji_indices, request.sas_decimal
    )
    return _verification_dict(verification)


@router.post("/{transaction_id}/cancel")
async def cancel_verification(
    transaction_id: str,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    return _verification_dict(VerificationService(db).cancel(transaction_id, user.id))


@router.get("/pending")
async def list_pending_verifications(
    device_id: Optional[str] = Query(None),
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    pending = VerificationService(db).list_pending(user.id, device_id)
    return {"verifications": [_verification_dict(v) for v in pending]}


@router.post("/cleanup")
async def cleanup_expired_verifications(
    user: User = Depends(require_roles(UserRole.ADMIN, UserRole.MODERATOR)),
    db: Session = Depends(get_db)
):
    """Expire stale verifications; staff only"""
    return {"expired": VerificationService(db).cleanup_expired()}


@router.get("/users/{user_id}/verified-devices")
async def get_verified_devices(
    user_id: UUID,
    device_id: Optional[str] = Query(None, description="Only report this device"),
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    service = VerificationService(db)
    if device_id:
        return {"device_id": device_id, "is_verified": service.is_device_verified(user_id, device_id)}
    return {"devices": service.get_verified_devices(user_id)}


# ----------------------------------------------------------------------
# Cross-signing
# ----------------------------------------------------------------------

@router.post("/cross-signing/keys")
async def upload_cross_signing_key(
    request: UploadCrossSigningKeyRequest,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    key = CrossSigningService(db).upload_key(user.id, request.key_type, request.public_key, request.signatures)
    return _key_dict(key)


@router.get("/cross-signing/keys/{user_id}")
async def list_cross_signing_keys(
    user_id: UUID,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    return {"keys": [_key_dict(k) for k in CrossSigningService(db).list_active_keys(user_id)]}


@router.post("/cross-signing/signatures")
async def sign_device(
    request: SignDeviceRequest,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    record = CrossSigningService(db).sign_device(
        signer_user_id=user.id,
        device_owner_id=request.device_owner_id,
        device_id=request.device_id,
        signer_key_type=request.signer_key_type,
        signer_key_id=request.signer_key_id,
        signature=request.signature,
    )
    return _signature_dict(record)


@router.get("/cross-signing/signatures/{user_id}/{device_id}")
async def list_device_signatures(
    user_id: UUID,
    device_id: str,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    signatures = CrossSigningService(db).list_device_signatures(user_id, device_id)
    return {"signatures": [_signature_dict(s) for s in signatures]}


# ----------------------------------------------------------------------
# User trust
# ----------------------------------------------------------------------

@router.put("/trust")
async def set_trust(
    request: SetTrustRequest,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    trust = CrossSigningService(db).set_trust(
        user.id,
        request.trusted_user_id,
        request.trusted_master_key,
        request.trust_level,
        request.verification_method,
    )
    return _trust_dict(trust)


@router.get("/trust")
async def list_trusted_users(
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    return {"trusted": [_trust_dict(t) for t in CrossSigningService(db).list_trusted(user.id)]}


@router.get("/trust/{user_id}")
async def get_trust(
    user_id: UUID,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    trust = CrossSigningService(db).get_trust(user.id, user_id)
    if not trust:
        return {"trusted_user_id": str(user_id), "trust_level": None}
    return _trust_dict(trust)
