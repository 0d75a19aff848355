"""
AI access consent for end-to-end encrypted conversations
"""
from enum import Enum
from uuid import uuid4

from sqlalchemy import (JSON, Boolean, CheckConstraint, Column, DateTime,
                        ForeignKey, Integer, String, Text, UniqueConstraint,
                        Uuid)

from insider.core.database import Base
from insider.core.utils import utcnow


class ConsentStatus(str, Enum):
    PENDING = "pending"
    GRANTED = "granted"
    DENIED = "denied"
    REVOKED = "revoked"


class AIFeature(str, Enum):
    MENTION_RESPONSE = "mention_response"
    TRANSLATION = "translation"
    SUMMARY = "summary"
    MODERATION = "moderation"


class AIConsent(Base):
    __tablename__ = "e2ee_ai_consent"

    id = Column(Uuid, primary_key=True, default=uuid4)
    conversation_id = Column(Uuid, ForeignKey("dm_conversations.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    device_id = Column(String(255), nullable=True)
    consent_status = Column(String(20), nullable=False, default=ConsentStatus.PENDING.value)
    allowed_features = Column(JSON, nullable=False, default=list)
    consent_given_at = Column(DateTime, nullable=True)
    consent_expires_at = Column(DateTime, nullable=True)
    consent_reason = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("conversation_id", "user_id", name="uq_ai_consent_member"),
        CheckConstraint(
            "consent_status IN ('pending', 'granted', 'denied', 'revoked')",
            name="ai_consent_status_check",
        ),
    )

    def __repr__(self):
        return f"<AIConsent(conversation_id={self.conversation_id}, user_id={self.user_id}, status={self.consent_status})>"


class AIAccessLog(Base):
    """Audit row written whenever the assistant reads decrypted content"""
    __tablename__ = "e2ee_ai_access_log"

    id = Column(Uuid, primary_key=True, default=uuid4)
    conversation_id = Column(Uuid, ForeignKey("dm_conversations.id", ondelete="CASCADE"), nullable=False, index=True)
    message_id = Column(Uuid, ForeignKey("dm_messages.id", ondelete="SET NULL"), nullable=True)
    authorizing_user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    authorizing_device_id = Column(String(255), nullable=True)
    feature_used = Column(String(50), nullable=False)
    content_hash = Column(String(64), nullable=True)
    ai_model_used = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class ConversationAISettings(Base):
    __tablename__ = "e2ee_conversation_ai_settings"

    conversation_id = Column(Uuid, ForeignKey("dm_conversations.id", ondelete="CASCADE"), primary_key=True)
    ai_allowed = Column(Boolean, nullable=False, default=False)
    require_unanimous_consent = Column(Boolean, nullable=False, default=True)
    enabled_features = Column(JSON, nullable=False, default=lambda: [AIFeature.MENTION_RESPONSE.value])
    consent_expiry_days = Column(Integer, nullable=True)
    updated_at = Column(DateTime, default=utcnow, nullable=False)
