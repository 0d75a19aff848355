"""
E2EE key directory models: device keys, one-time prekeys, key backups and Megolm sharing.

Only public key material and client-encrypted blobs are stored here.
"""
from enum import Enum
from uuid import uuid4

from sqlalchemy import (Boolean, CheckConstraint, Column, DateTime, ForeignKey,
                        Integer, String, Text, UniqueConstraint, Uuid)
from sqlalchemy.orm import relationship

from insider.core.database import Base
from insider.core.utils import utcnow


class DeviceType(str, Enum):
    WEB = "web"
    MOBILE = "mobile"
    DESKTOP = "desktop"


class VerificationMethod(str, Enum):
    SAS = "sas"
    CROSS_SIGN = "cross_sign"
    ADMIN = "admin"
    QR = "qr"


class DeviceKey(Base):
    """Public identity of one device of one user"""
    __tablename__ = "device_keys"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    device_id = Column(String(255), nullable=False)
    identity_key = Column(Text, nullable=False)  # Curve25519
    signing_key = Column(Text, nullable=False)  # Ed25519
    signed_prekey = Column(Text, nullable=False)
    signed_prekey_id = Column(Integer, nullable=False)
    signed_prekey_signature = Column(Text, nullable=False)
    device_name = Column(String(255), nullable=True)
    device_type = Column(String(20), nullable=False, default=DeviceType.WEB.value)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    last_seen_at = Column(DateTime, default=utcnow, nullable=False)

    is_verified = Column(Boolean, default=False, nullable=False)
    verified_at = Column(DateTime, nullable=True)
    verified_by_user_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    verified_by_device_id = Column(String(255), nullable=True)
    verification_method = Column(String(20), nullable=True)
    cross_sign_signature = Column(Text, nullable=True)

    prekeys = relationship("OneTimePrekey", back_populates="device_key", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("user_id", "device_id", name="uq_device_keys_user_device"),
        CheckConstraint("device_type IN ('web', 'mobile', 'desktop')", name="device_keys_type_check"),
        CheckConstraint(
            "verification_method IS NULL OR verification_method IN ('sas', 'cross_sign', 'admin', 'qr')",
            name="device_keys_verification_method_check",
        ),
    )

    def to_public_dict(self) -> dict:
        return {
            "id": str(self.id),
            "user_id": str(self.user_id),
            "device_id": self.device_id,
            "identity_key": self.identity_key,
            "signing_key": self.signing_key,
            "signed_prekey": self.signed_prekey,
            "signed_prekey_id": self.signed_prekey_id,
            "signed_prekey_signature": self.signed_prekey_signature,
            "device_name": self.device_name,
            "device_type": self.device_type,
            "is_verified": self.is_verified,
            "verification_method": self.verification_method,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "last_seen_at": self.last_seen_at.isoformat() if self.last_seen_at else None,
        }

    def __repr__(self):
        return f"<DeviceKey(user_id={self.user_id}, device_id={self.device_id})>"


class OneTimePrekey(Base):
    """Single-use prekey; available while claimed_at is NULL"""
    __tablename__ = "one_time_prekeys"

    id = Column(Uuid, primary_key=True, default=uuid4)
    device_key_id = Column(Uuid, ForeignKey("device_keys.id", ondelete="CASCADE"), nullable=False, index=True)
    key_id = Column(Integer, nullable=False)
    public_key = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    claimed_at = Column(DateTime, nullable=True, index=True)
    claimed_by_user = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    claimed_by_device = Column(String(255), nullable=True)

    device_key = relationship("DeviceKey", back_populates="prekeys")

    __table_args__ = (
        UniqueConstraint("device_key_id", "key_id", name="uq_one_time_prekeys_device_key"),
    )

    def __repr__(self):
        return f"<OneTimePrekey(device_key_id={self.device_key_id}, key_id={self.key_id}, claimed={self.claimed_at is not None})>"


class KeyBackup(Base):
    """Password-encrypted backup of a user's private keys, one row per user"""
    __tablename__ = "e2ee_key_backups"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    encrypted_backup = Column(Text, nullable=False)
    backup_iv = Column(Text, nullable=False)
    backup_auth_tag = Column(Text, nullable=False)
    salt = Column(Text, nullable=False)
    iterations = Column(Integer, nullable=False, default=100000)
    device_count = Column(Integer, nullable=False, default=1)
    backup_version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<KeyBackup(user_id={self.user_id}, version={self.backup_version})>"


class MegolmSessionShare(Base):
    """Megolm session key encrypted (Olm) for one recipient device"""
    __tablename__ = "megolm_session_shares"

    id = Column(Uuid, primary_key=True, default=uuid4)
    conversation_id = Column(Uuid, ForeignKey("dm_conversations.id", ondelete="CASCADE"), nullable=False, index=True)
    session_id = Column(String(255), nullable=False, index=True)
    sender_user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    sender_device_id = Column(String(255), nullable=False)
    recipient_user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    recipient_device_id = Column(String(255), nullable=False)
    encrypted_session_key = Column(Text, nullable=False)
    key_algorithm = Column(String(20), nullable=False, default="olm.v1")
    first_known_index = Column(Integer, nullable=False, default=0)
    forwarded_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    claimed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("session_id", "recipient_device_id", name="uq_megolm_share_session_device"),
    )

    def __repr__(self):
        return f"<MegolmSessionShare(session_id={self.session_id}, recipient_device_id={self.recipient_device_id})>"


class ConversationE2EESettings(Base):
    """Per-conversation encryption state and the current outbound Megolm session"""
    __tablename__ = "e2ee_conversation_settings"

    conversation_id = Column(Uuid, ForeignKey("dm_conversations.id", ondelete="CASCADE"), primary_key=True)
    e2ee_required = Column(Boolean, nullable=False, default=False)
    current_session_id = Column(String(255), nullable=True)
    current_session_created_at = Column(DateTime, nullable=True)
    session_message_count = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<ConversationE2EESettings(conversation_id={self.conversation_id}, session={self.current_session_id})>"
