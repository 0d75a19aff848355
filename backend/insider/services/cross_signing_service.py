"""
Cross-signing keys, device signatures and user-to-user trust
"""
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from insider.core.errors import (ConflictError, NotFoundError,
                                 PermissionDeniedError, ValidationError)
from insider.core.logging_config import LoggingConfig
from insider.core.utils import utcnow
from insider.models.e2ee import DeviceKey, VerificationMethod
from insider.models.user import User
from insider.models.verification import (CrossSigningKey, CrossSigningKeyType,
                                         DeviceSignature, TrustLevel,
                                         UserTrust)

logger = LoggingConfig.get_logger(__name__)

SIGNER_KEY_TYPES = {t.value for t in CrossSigningKeyType} | {"device"}


class CrossSigningService:
    def __init__(self, db: Session):
        self.db = db

    def get_active_key(self, user_id: UUID, key_type: str) -> Optional[CrossSigningKey]:
        return self.db.query(CrossSigningKey).filter(
            CrossSigningKey.user_id == user_id,
            CrossSigningKey.key_type == key_type,
            CrossSigningKey.is_active.is_(True)
        ).first()

    def list_active_keys(self, user_id: UUID) -> List[CrossSigningKey]:
        return self.db.query(CrossSigningKey).filter(
            CrossSigningKey.user_id == user_id,
            CrossSigningKey.is_active.is_(True)
        ).order_by(CrossSigningKey.key_type).all()

    def upload_key(
        self,
        user_id: UUID,
        key_type: str,
        public_key: str,
        signatures: Optional[Dict[str, str]] = None
    ) -> CrossSigningKey:
        """Upload a cross-signing key; the previous active key of the same type is revoked"""
        if key_type not in [t.value for t in CrossSigningKeyType]:
            raise ValidationError(f"Invalid cross-signing key type '{key_type}'")

        previous = self.get_active_key(user_id, key_type)
        if previous is not None:
            if previous.public_key == public_key:
                previous.signatures = {**(previous.signatures or {}), **(signatures or {})}
                self.db.commit()
                self.db.refresh(previous)
                return previous
            previous.is_active = False
            previous.revoked_at = utcnow()
            logger.info(f"Revoked {key_type} key {previous.id} of user {user_id}")

        key = CrossSigningKey(
            user_id=user_id,
            key_type=key_type,
            public_key=public_key,
            signatures=signatures or {},
            is_active=True,
        )
        self.db.add(key)
        self.db.commit()
        self.db.refresh(key)
        return key

    def sign_device(
        self,
        signer_user_id: UUID,
        device_owner_id: UUID,
        device_id: str,
        signer_key_type: str,
        signer_key_id: str,
        signature: str
    ) -> DeviceSignature:
        """
        Record a signature over a device key.

        A signature from the owner's active self-signing key marks the device
        verified with method ``cross_sign``.
        """
        if signer_key_type not in SIGNER_KEY_TYPES:
            raise ValidationError(f"Invalid signer key type '{signer_key_type}'")
        if signer_key_type == CrossSigningKeyType.SELF_SIGNING.value and signer_user_id != device_owner_id:
            raise PermissionDeniedError("Self-signing keys can only sign their owner's devices")

        device = self.db.query(DeviceKey).filter(
            DeviceKey.user_id == device_owner_id,
            DeviceKey.device_id == device_id
        ).first()
        if not device:
            raise NotFoundError("Device not found")

        exists = self.db.query(DeviceSignature).filter(
            DeviceSignature.device_key_id == device.id,
            DeviceSignature.signer_key_id == signer_key_id
        ).first()
        if exists:
            raise ConflictError("Device already signed by this key")

        self_signed = signer_key_type == CrossSigningKeyType.SELF_SIGNING.value
        if self_signed:
            active = self.get_active_key(signer_user_id, CrossSigningKeyType.SELF_SIGNING.value)
            if active is None or active.public_key != signer_key_id:
                raise ValidationError("Signer key is not the active self-signing key")

        record = DeviceSignature(
            device_key_id=device.id,
            signer_user_id=signer_user_id,
            signer_key_type=signer_key_type,
            signer_key_id=signer_key_id,
            signature=signature,
        )
        self.db.add(record)

        if self_signed:
            device.is_verified = True
            device.verified_at = utcnow()
            device.verified_by_user_id = signer_user_id
            device.verified_by_device_id = None
            device.verification_method = VerificationMethod.CROSS_SIGN.value
            device.cross_sign_signature = signature

        self.db.commit()
        self.db.refresh(record)
        logger.info(f"Device {device_id} of user {device_owner_id} signed by {signer_key_type} key")
        return record

    def list_device_signatures(self, device_owner_id: UUID, device_id: str) -> List[DeviceSignature]:
        device = self.db.query(DeviceKey).filter(
            DeviceKey.user_id == device_owner_id,
            DeviceKey.device_id == device_id
        ).first()
        if not device:
            raise NotFoundError("Device not found")
        return self.db.query(DeviceSignature).filter(
            DeviceSignature.device_key_id == device.id
        ).order_by(DeviceSignature.created_at).all()

    def set_trust(
        self,
        truster_user_id: UUID,
        trusted_user_id: UUID,
        trusted_master_key: str,
        trust_level: str = TrustLevel.VERIFIED.value,
        verification_method: Optional[str] = None
    ) -> UserTrust:
        """Create or update the caller's trust in another user's master key"""
        if truster_user_id == trusted_user_id:
            raise ValidationError("Cannot set trust for yourself")
        if trust_level not in [t.value for t in TrustLevel]:
            raise ValidationError(f"Invalid trust level '{trust_level}'")
        if verification_method and verification_method not in [m.value for m in VerificationMethod]:
            raise ValidationError(f"Invalid verification method '{verification_method}'")
        if not self.db.query(User.id).filter(User.id == trusted_user_id).first():
            raise NotFoundError("User not found")

        master = self.get_active_key(trusted_user_id, CrossSigningKeyType.MASTER.value)
        if master is None:
            raise NotFoundError("User has no active master key")
        if master.public_key != trusted_master_key:
            raise ConflictError("Master key does not match the user's current master key")

        trust = self.get_trust(truster_user_id, trusted_user_id)
        now = utcnow()
        if trust is None:
            trust = UserTrust(truster_user_id=truster_user_id, trusted_user_id=trusted_user_id, created_at=now)
            self.db.add(trust)
        trust.trusted_master_key = trusted_master_key
        trust.trust_level = trust_level
        trust.verification_method = verification_method
        trust.updated_at = now

        self.db.commit()
        self.db.refresh(trust)
        return trust

    def get_trust(self, truster_user_id: UUID, trusted_user_id: UUID) -> Optional[UserTrust]:
        return self.db.query(UserTrust).filter(
            UserTrust.truster_user_id == truster_user_id,
            UserTrust.trusted_user_id == trusted_user_id
        ).first()

    def list_trusted(self, truster_user_id: UUID) -> List[UserTrust]:
        return self.db.query(UserTrust).filter(
            UserTrust.truster_user_id == truster_user_id
        ).order_by(UserTrust.updated_at.desc()).all()
