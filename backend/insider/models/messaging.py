"""
Direct message models
"""
from enum import Enum
from uuid import uuid4

from sqlalchemy import (Boolean, CheckConstraint, Column, DateTime, ForeignKey,
                        Integer, String, Text, UniqueConstraint, Uuid)
from sqlalchemy.orm import relationship

from insider.core.database import Base
from insider.core.utils import utcnow

ENCRYPTED_PREVIEW = "🔒 Encrypted message"


class EncryptionAlgorithm(str, Enum):
    OLM = "olm.v1"
    MEGOLM = "megolm.v1"


class DMConversation(Base):
    __tablename__ = "dm_conversations"

    id = Column(Uuid, primary_key=True, default=uuid4)
    created_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    last_message_at = Column(DateTime, nullable=True, index=True)
    last_message_preview = Column(String(120), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    participants = relationship("DMParticipant", back_populates="conversation", cascade="all, delete-orphan")
    messages = relationship("DMMessage", back_populates="conversation", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<DMConversation(id={self.id})>"


class DMParticipant(Base):
    __tablename__ = "dm_participants"

    id = Column(Uuid, primary_key=True, default=uuid4)
    conversation_id = Column(Uuid, ForeignKey("dm_conversations.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    unread_count = Column(Integer, nullable=False, default=0)
    last_read_at = Column(DateTime, nullable=True)
    e2ee_enabled = Column(Boolean, nullable=False, default=False)
    e2ee_verified = Column(Boolean, nullable=False, default=False)
    joined_at = Column(DateTime, default=utcnow, nullable=False)

    conversation = relationship("DMConversation", back_populates="participants")

    __table_args__ = (
        UniqueConstraint("conversation_id", "user_id", name="uq_dm_participants_member"),
    )


class DMMessage(Base):
    __tablename__ = "dm_messages"

    id = Column(Uuid, primary_key=True, default=uuid4)
    conversation_id = Column(Uuid, ForeignKey("dm_conversations.id", ondelete="CASCADE"), nullable=False, index=True)
    sender_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    content = Column(Text, nullable=True)
    is_encrypted = Column(Boolean, nullable=False, default=False)
    encrypted_content = Column(Text, nullable=True)
    encryption_algorithm = Column(String(20), nullable=True)
    sender_device_id = Column(String(255), nullable=True)
    sender_key = Column(Text, nullable=True)
    session_id = Column(String(255), nullable=True)
    is_ai_generated = Column(Boolean, nullable=False, default=False)
    ai_response_to = Column(Uuid, ForeignKey("dm_messages.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    conversation = relationship("DMConversation", back_populates="messages")

    __table_args__ = (
        CheckConstraint(
            "encryption_algorithm IS NULL OR encryption_algorithm IN ('olm.v1', 'megolm.v1')",
            name="dm_messages_algorithm_check",
        ),
    )

    @property
    def preview(self) -> str:
        if self.is_encrypted:
            return ENCRYPTED_PREVIEW
        return (self.content or "")[:100]

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "conversation_id": str(self.conversation_id),
            "sender_id": str(self.sender_id) if self.sender_id else None,
            "content": self.content,
            "is_encrypted": self.is_encrypted,
            "encrypted_content": self.encrypted_content,
            "encryption_algorithm": self.encryption_algorithm,
            "sender_device_id": self.sender_device_id,
            "sender_key": self.sender_key,
            "session_id": self.session_id,
            "is_ai_generated": self.is_ai_generated,
            "ai_response_to": str(self.ai_response_to) if self.ai_response_to else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<DMMessage(id={self.id}, encrypted={self.is_encrypted})>"
