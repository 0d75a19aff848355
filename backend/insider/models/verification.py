"""
Device verification (SAS) and cross-signing trust models
"""
from enum import Enum
from uuid import uuid4

from sqlalchemy import (JSON, Boolean, CheckConstraint, Column, DateTime,
                        ForeignKey, String, Text, UniqueConstraint, Uuid)

from insider.core.database import Base
from insider.core.utils import utcnow


class SasStatus(str, Enum):
    """SAS verification state"""
    PENDING = "pending"
    STARTED = "started"
    KEY_EXCHANGED = "key_exchanged"
    SAS_READY = "sas_ready"
    SAS_MATCH = "sas_match"
    VERIFIED = "verified"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


TERMINAL_SAS_STATUSES = frozenset({
    SasStatus.VERIFIED.value,
    SasStatus.CANCELLED.value,
    SasStatus.EXPIRED.value,
})


class CrossSigningKeyType(str, Enum):
    MASTER = "master"
    SELF_SIGNING = "self_signing"
    USER_SIGNING = "user_signing"


class TrustLevel(str, Enum):
    VERIFIED = "verified"
    TOFU = "tofu"
    BLOCKED = "blocked"


class SasVerification(Base):
    """One interactive verification between two devices"""
    __tablename__ = "e2ee_sas_verifications"

    id = Column(Uuid, primary_key=True, default=uuid4)
    initiator_user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    initiator_device_id = Column(String(255), nullable=False)
    target_user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    target_device_id = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default=SasStatus.PENDING.value, index=True)
    initiator_public_key = Column(Text, nullable=True)
    target_public_key = Column(Text, nullable=True)
    initiator_commitment = Column(Text, nullable=True)
    sas_emoji_indices = Column(JSON, nullable=True)
    sas_decimal = Column(String(32), nullable=True)
    transaction_id = Column(String(64), nullable=False, unique=True, index=True)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'started', 'key_exchanged', 'sas_ready', 'sas_match', "
            "'verified', 'cancelled', 'expired')",
            name="sas_verifications_status_check",
        ),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_SAS_STATUSES

    def __repr__(self):
        return f"<SasVerification(transaction_id={self.transaction_id}, status={self.status})>"


class CrossSigningKey(Base):
    __tablename__ = "e2ee_cross_signing_keys"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    key_type = Column(String(20), nullable=False)
    public_key = Column(Text, nullable=False)
    signatures = Column(JSON, nullable=False, default=dict)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    revoked_at = Column(DateTime, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "key_type IN ('master', 'self_signing', 'user_signing')",
            name="cross_signing_keys_type_check",
        ),
    )

    def __repr__(self):
        return f"<CrossSigningKey(user_id={self.user_id}, key_type={self.key_type}, active={self.is_active})>"


class DeviceSignature(Base):
    __tablename__ = "e2ee_device_signatures"

    id = Column(Uuid, primary_key=True, default=uuid4)
    device_key_id = Column(Uuid, ForeignKey("device_keys.id", ondelete="CASCADE"), nullable=False, index=True)
    signer_user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    signer_key_type = Column(String(20), nullable=False)
    signer_key_id = Column(String(255), nullable=False)
    signature = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("device_key_id", "signer_key_id", name="uq_device_signatures_signer"),
        CheckConstraint(
            "signer_key_type IN ('master', 'self_signing', 'user_signing', 'device')",
            name="device_signatures_key_type_check",
        ),
    )


class UserTrust(Base):
    __tablename__ = "e2ee_user_trust"

    id = Column(Uuid, primary_key=True, default=uuid4)
    truster_user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    trusted_user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    trusted_master_key = Column(Text, nullable=False)
    trust_level = Column(String(20), nullable=False, default=TrustLevel.VERIFIED.value)
    verification_method = Column(String(20), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("truster_user_id", "trusted_user_id", name="uq_user_trust_pair"),
        CheckConstraint("trust_level IN ('verified', 'tofu', 'blocked')", name="user_trust_level_check"),
    )

    def __repr__(self):
        return f"<UserTrust(truster={self.truster_user_id}, trusted={self.trusted_user_id}, level={self.trust_level})>"
