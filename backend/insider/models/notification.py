"""
In-app notifications and per-user notification preferences
"""
from enum import Enum
from uuid import uuid4

from sqlalchemy import (JSON, Boolean, Column, DateTime, ForeignKey, String,
                        Text, Uuid)

from insider.core.database import Base
from insider.core.utils import utcnow


class NotificationType(str, Enum):
    COMMENT = "comment"
    REPLY = "reply"
    FOLLOW = "follow"
    MESSAGE = "message"
    ACHIEVEMENT = "achievement"
    SYSTEM = "system"


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(30), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=True)
    data = Column(JSON, nullable=False, default=dict)
    read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime, nullable=True)
    actor_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    resource_type = Column(String(50), nullable=True)
    resource_id = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "data": self.data or {},
            "read": self.read,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "actor_id": str(self.actor_id) if self.actor_id else None,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class NotificationPreference(Base):
    __tablename__ = "notification_preferences"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    in_app_comments = Column(Boolean, nullable=False, default=True)
    in_app_replies = Column(Boolean, nullable=False, default=True)
    in_app_follows = Column(Boolean, nullable=False, default=True)
    in_app_messages = Column(Boolean, nullable=False, default=True)
    in_app_achievements = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    FIELDS = ("in_app_comments", "in_app_replies", "in_app_follows", "in_app_messages", "in_app_achievements")

    def to_dict(self) -> dict:
        return {field: getattr(self, field) for field in self.FIELDS}
