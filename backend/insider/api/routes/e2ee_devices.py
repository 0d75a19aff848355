"""
E2EE device key directory API: devices, one-time prekeys and key backups
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from insider.core.auth import get_current_user_required, require_permission
from insider.core.database import get_db
from insider.core.logging_config import LoggingConfig
from insider.core.permissions import Permission
from insider.models.e2ee import DeviceType, KeyBackup
from insider.models.user import User
from insider.services.device_key_service import DeviceKeyService

router = APIRouter(prefix="/api/e2ee", tags=["e2ee"])
logger = LoggingConfig.get_logger(__name__)


class RegisterDeviceRequest(BaseModel):
    """Public keys of a device; private keys never leave the client"""
    device_id: str = Field(..., min_length=1, max_length=255)
    identity_key: str = Field(..., min_length=1, description="Curve25519 identity key")
    signing_key: str = Field(..., min_length=1, description="Ed25519 signing key")
    signed_prekey: str = Field(..., min_length=1)
    signed_prekey_id: int = Field(..., ge=0)
    signed_prekey_signature: str = Field(..., min_length=1)
    device_name: Optional[str] = Field(None, max_length=255)
    device_type: DeviceType = DeviceType.WEB


class PrekeyItem(BaseModel):
    key_id: int = Field(..., ge=0)
    public_key: str = Field(..., min_length=1)


class UploadPrekeysRequest(BaseModel):
    prekeys: List[PrekeyItem]


class ClaimPrekeyRequest(BaseModel):
    user_id: UUID
    device_id: str
    claimer_device_id: Optional[str] = None


class DeviceQueryRequest(BaseModel):
    user_ids: List[UUID] = Field(..., max_length=100)


class KeyBackupRequest(BaseModel):
    encrypted_backup: str = Field(..., min_length=1)
    backup_iv: str = Field(..., min_length=1)
    backup_auth_tag: str = Field(..., min_length=1)
    salt: str = Field(..., min_length=1)
    iterations: int = Field(default=100000, ge=10000)
    device_count: int = Field(default=1, ge=0)


def _backup_dict(backup: KeyBackup) -> dict:
    return {
        "encrypted_backup": backup.encrypted_backup,
        "backup_iv": backup.backup_iv,
        "backup_auth_tag": backup.backup_auth_tag,
        "salt": backup.salt,
        "iterations": backup.iterations,
        "device_count": backup.device_count,
        "backup_version": backup.backup_version,
        "created_at": backup.created_at.isoformat(),
        "updated_at": backup.updated_at.isoformat(),
    }


# ----------------------------------------------------------------------
# Devices
# ----------------------------------------------------------------------

@router.post("/devices", status_code=status.HTTP_201_CREATED)
async def register_device(
    request: RegisterDeviceRequest,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    """Register the caller's device or refresh its keys"""
    device = DeviceKeyService(db).register_device(
        user_id=user.id,
        device_id=request.device_id,
        identity_key=request.identity_key,
        signing_key=request.signing_key,
        signed_prekey=request.signed_prekey,
        signed_prekey_id=request.signed_prekey_id,
        signed_prekey_signature=request.signed_prekey_signature,
        device_name=request.device_name,
        device_type=request.device_type.value,
    )
    return device.to_public_dict()


@router.get("/devices")
async def list_own_devices(
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    return {"devices": [d.to_public_dict() for d in DeviceKeyService(db).list_devices(user.id)]}


@router.delete("/devices/{device_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_device(
    device_id: str,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    """Delete one of the caller's devices together with its prekeys"""
    DeviceKeyService(db).delete_device(user.id, device_id)


@router.get("/users/{user_id}/devices")
async def list_user_devices(
    user_id: UUID,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    return {"devices": [d.to_public_dict() for d in DeviceKeyService(db).list_devices(user_id)]}


@router.post("/devices/query")
async def query_devices(
    request: DeviceQueryRequest,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    """Device keys of several users, grouped by user with newest devices first"""
    devices = DeviceKeyService(db).get_device_keys_for_users(request.user_ids)
    grouped = {str(uid): [] for uid in request.user_ids}
    for device in devices:
        grouped.setdefault(str(device.user_id), []).append(device.to_public_dict())
    return {"devices": grouped}


@router.post("/users/{user_id}/devices/{device_id}/admin-verify")
async def admin_verify_device(
    user_id: UUID,
    device_id: str,
    admin: User = Depends(require_permission(Permission.DEVICE_VERIFY_ADMIN)),
    db: Session = Depends(get_db)
):
    device = DeviceKeyService(db).admin_verify_device(user_id, device_id, admin.id)
    return device.to_public_dict()


# ----------------------------------------------------------------------
# One-time prekeys
# ----------------------------------------------------------------------

@router.post("/devices/{device_id}/prekeys", status_code=status.HTTP_201_CREATED)
async def upload_prekeys(
    device_id: str,
    request: UploadPrekeysRequest,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    service = DeviceKeyService(db)
    stored = service.upload_prekeys(user.id, device_id, [p.model_dump() for p in request.prekeys])
    return {"uploaded": stored, "available": service.count_available_prekeys(user.id, device_id)}


@router.get("/devices/{device_id}/prekeys/count")
async def count_prekeys(
    device_id: str,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    """Unclaimed prekeys left on the caller's device"""
    service = DeviceKeyService(db)
    available = service.count_available_prekeys(user.id, device_id)
    return {
        "device_id": device_id,
        "available": available,
        "needs_replenish": available < service.settings.prekey_low_watermark,
    }


@router.post("/prekeys/claim")
async def claim_prekey(
    request: ClaimPrekeyRequest,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    """Claim one prekey of another device; ``prekey`` is null when none is left"""
    prekey = DeviceKeyService(db).claim_prekey(
        request.user_id, request.device_id, user.id, request.claimer_device_id
    )
    return {"user_id": str(request.user_id), "device_id": request.device_id, "prekey": prekey}


@router.post("/prekeys/bundle")
async def get_prekey_bundle(
    request: ClaimPrekeyRequest,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    """Identity keys, signed prekey and one claimed one-time prekey of a device"""
    return DeviceKeyService(db).get_prekey_bundle(
        request.user_id, request.device_id, user.id, request.claimer_device_id
    )


# ----------------------------------------------------------------------
# Key backup
# ----------------------------------------------------------------------

@router.put("/backup")
async def store_backup(
    request: KeyBackupRequest,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    backup = DeviceKeyService(db).store_backup(user.id, **request.model_dump())
    return _backup_dict(backup)


@router.get("/backup")
async def get_backup(
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    backup = DeviceKeyService(db).get_backup(user.id)
    if not backup:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No key backup found")
    return _backup_dict(backup)


@router.delete("/backup", status_code=status.HTTP_204_NO_CONTENT)
async def delete_backup(
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    if not DeviceKeyService(db).delete_backup(user.id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No key backup found")
