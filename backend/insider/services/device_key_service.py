"""
Device key directory: device registration, one-time prekeys and key backups
"""
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from insider.core.config import get_settings
from insider.core.errors import ConflictError, NotFoundError, ValidationError
from insider.core.logging_config import LoggingConfig
from insider.core.metrics import (e2ee_prekey_claims_total,
                                  e2ee_prekeys_uploaded_total)
from insider.core.utils import utcnow
from insider.models.e2ee import (DeviceKey, DeviceType, KeyBackup,
                                 OneTimePrekey, VerificationMethod)

logger = LoggingConfig.get_logger(__name__)


class DeviceKeyService:
    """Service for the public key directory"""

    def __init__(self, db: Session):
        self.db = db
        self.settings = get_settings()

    # ------------------------------------------------------------------
    # Devices
    # ------------------------------------------------------------------

    def get_device(self, user_id: UUID, device_id: str) -> Optional[DeviceKey]:
        return self.db.query(DeviceKey).filter(
            DeviceKey.user_id == user_id,
            DeviceKey.device_id == device_id
        ).first()

    def require_device(self, user_id: UUID, device_id: str) -> DeviceKey:
        device = self.get_device(user_id, device_id)
        if not device:
            raise NotFoundError(f"Device {device_id} not found")
        return device

    def register_device(
        self,
        user_id: UUID,
        device_id: str,
        identity_key: str,
        signing_key: str,
        signed_prekey: str,
        signed_prekey_id: int,
        signed_prekey_signature: str,
        device_name: Optional[str] = None,
        device_type: str = DeviceType.WEB.value
    ) -> DeviceKey:
        """
        Register a device or refresh its keys.

        A changed identity key means a new device identity, so any previous
        verification of the device is dropped.
        """
        if device_type not in [t.value for t in DeviceType]:
            raise ValidationError(f"Invalid device type '{device_type}'")

        device = self.get_device(user_id, device_id)
        now = utcnow()
        if device is None:
            device = DeviceKey(user_id=user_id, device_id=device_id, created_at=now)
            self.db.add(device)
            logger.info(f"Registering device {device_id} for user {user_id}")
        elif device.identity_key != identity_key:
            logger.warning(f"Identity key changed for device {device_id} of user {user_id}, clearing verification")
            device.is_verified = False
            device.verified_at = None
            device.verified_by_user_id = None
            device.verified_by_device_id = None
            device.verification_method = None
            device.cross_sign_signature = None

        device.identity_key = identity_key
        device.signing_key = signing_key
        device.signed_prekey = signed_prekey
        device.signed_prekey_id = signed_prekey_id
        device.signed_prekey_signature = signed_prekey_signature
        device.device_name = device_name
        device.device_type = device_type
        device.last_seen_at = now

        self.db.commit()
        self.db.refresh(device)
        return device

    def list_devices(self, user_id: UUID) -> List[DeviceKey]:
        return self.db.query(DeviceKey).filter(
            DeviceKey.user_id == user_id
        ).order_by(DeviceKey.created_at.desc()).all()

    def get_device_keys_for_users(self, user_ids: List[UUID]) -> List[DeviceKey]:
        """Batch lookup ordered by user, newest device first"""
        if not user_ids:
            return []
        return self.db.query(DeviceKey).filter(
            DeviceKey.user_id.in_(user_ids)
        ).order_by(DeviceKey.user_id, DeviceKey.created_at.desc()).all()

    def admin_verify_device(self, user_id: UUID, device_id: str, admin_user_id: UUID) -> DeviceKey:
        """Mark a device verified by staff decision"""
        device = self.require_device(user_id, device_id)
        device.is_verified = True
        device.verified_at = utcnow()
        device.verified_by_user_id = admin_user_id
        device.verified_by_device_id = None
        device.verification_method = VerificationMethod.ADMIN.value
        self.db.commit()
        self.db.refresh(device)
        logger.info(f"Device {device_id} of user {user_id} verified by admin {admin_user_id}")
        return device

    def delete_device(self, user_id: UUID, device_id: str) -> None:
        device = self.require_device(user_id, device_id)
        self.db.delete(device)
        self.db.commit()
        logger.info(f"Deleted device {device_id} of user {user_id}")

    # ------------------------------------------------------------------
    # One-time prekeys
    # ------------------------------------------------------------------

    def upload_prekeys(self, user_id: UUID, device_id: str, prekeys: List[Dict[str, Any]]) -> int:
        """
        Store a batch of one-time prekeys for the caller's device.

        Args:
            prekeys: items with ``key_id`` and ``public_key``

        Returns:
            Number of prekeys stored
        """
        if not prekeys:
            raise ValidationError("No prekeys provided")
        if len(prekeys) > self.settings.prekey_upload_limit:
            raise ValidationError(f"At most {self.settings.prekey_upload_limit} prekeys per upload")

        key_ids = [p["key_id"] for p in prekeys]
        if len(set(key_ids)) != len(key_ids):
            raise ValidationError("Duplicate key_id in upload")

        device = self.require_device(user_id, device_id)
        existing = self.db.query(OneTimePrekey.key_id).filter(
            OneTimePrekey.device_key_id == device.id,
            OneTimePrekey.key_id.in_(key_ids)
        ).all()
        if existing:
            raise ConflictError(f"Prekey ids already uploaded: {sorted(k for (k,) in existing)}")

        for item in prekeys:
            self.db.add(OneTimePrekey(
                device_key_id=device.id,
                key_id=item["key_id"],
                public_key=item["public_key"],
            ))
        device.last_seen_at = utcnow()

        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError("Prekey ids already uploaded")

        e2ee_prekeys_uploaded_total.inc(len(prekeys))
        logger.info(f"Stored {len(prekeys)} prekeys for device {device_id}")
        return len(prekeys)

    def claim_prekey(
        self,
        target_user_id: UUID,
        target_device_id: str,
        claimer_user_id: UUID,
        claimer_device_id: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Atomically claim the oldest unclaimed prekey of a device.

        Returns:
            ``{"key_id", "public_key"}`` or None when the device is unknown or out of prekeys
        """
        device = self.get_device(target_user_id, target_device_id)
        if not device:
            return None

        prekey = self.db.query(OneTimePrekey).filter(
            OneTimePrekey.device_key_id == device.id,
            OneTimePrekey.claimed_at.is_(None)
        ).order_by(
            OneTimePrekey.created_at, OneTimePrekey.key_id
        ).with_for_update(skip_locked=True).first()

        if not prekey:
            e2ee_prekey_claims_total.labels(result="exhausted").inc()
            logger.warning(f"No prekeys left for device {target_device_id} of user {target_user_id}")
            return None

        prekey.claimed_at = utcnow()
        prekey.claimed_by_user = claimer_user_id
        prekey.claimed_by_device = claimer_device_id
        self.db.commit()

        e2ee_prekey_claims_total.labels(result="claimed").inc()
        return {"key_id": prekey.key_id, "public_key": prekey.public_key}

    def count_available_prekeys(self, user_id: UUID, device_id: str) -> int:
        device = self.require_device(user_id, device_id)
        return self.db.query(func.count(OneTimePrekey.id)).filter(
            OneTimePrekey.device_key_id == device.id,
            OneTimePrekey.claimed_at.is_(None)
        ).scalar() or 0

    def get_prekey_bundle(
        self,
        target_user_id: UUID,
        target_device_id: str,
        claimer_user_id: UUID,
        claimer_device_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Everything needed to open an Olm session with a device"""
        device = self.require_device(target_user_id, target_device_id)
        one_time = self.claim_prekey(target_user_id, target_device_id, claimer_user_id, claimer_device_id)
        return {
            "user_id": str(device.user_id),
            "device_id": device.device_id,
            "identity_key": device.identity_key,
            "signing_key": device.signing_key,
            "signed_prekey": device.signed_prekey,
            "signed_prekey_id": device.signed_prekey_id,
            "signed_prekey_signature": device.signed_prekey_signature,
            "one_time_prekey": one_time,
        }

    # ------------------------------------------------------------------
    # Key backup
    # ------------------------------------------------------------------

    def get_backup(self, user_id: UUID) -> Optional[KeyBackup]:
        return self.db.query(KeyBackup).filter(KeyBackup.user_id == user_id).first()

    def store_backup(
        self,
        user_id: UUID,
        encrypted_backup: str,
        backup_iv: str,
        backup_auth_tag: str,
        salt: str,
        iterations: int = 100000,
        device_count: int = 1
    ) -> KeyBackup:
        """Create or replace the user's single key backup"""
        backup = self.get_backup(user_id)
        now = utcnow()
        if backup is None:
            backup = KeyBackup(user_id=user_id, backup_version=1, created_at=now)
            self.db.add(backup)
        else:
            backup.backup_version = (backup.backup_version or 0) + 1

        backup.encrypted_backup = encrypted_backup
        backup.backup_iv = backup_iv
        backup.backup_auth_tag = backup_auth_tag
        backup.salt = salt
        backup.iterations = iterations
        backup.device_count = device_count
        backup.updated_at = now

        self.db.commit()
        self.db.refresh(backup)
        logger.info(f"Stored key backup v{backup.backup_version} for user {user_id}")
        return backup

    def delete_backup(self, user_id: UUID) -> bool:
        backup = self.get_backup(user_id)
        if not backup:
            return False
        self.db.delete(backup)
        self.db.commit()
        return True
