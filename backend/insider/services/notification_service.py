"""
In-app notifications.

Other services call ``notify`` inside their own transaction; the
notification is committed together with the action that caused it.
"""
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from insider.core.errors import NotFoundError, ValidationError
from insider.core.logging_config import LoggingConfig
from insider.core.utils import utcnow
from insider.models.notification import (Notification, NotificationPreference,
                                         NotificationType)

logger = LoggingConfig.get_logger(__name__)

MAX_PAGE_SIZE = 100

# System notifications ignore preferences
_PREFERENCE_FOR_TYPE = {
    NotificationType.COMMENT.value: "in_app_comments",
    NotificationType.REPLY.value: "in_app_replies",
    NotificationType.FOLLOW.value: "in_app_follows",
    NotificationType.MESSAGE.value: "in_app_messages",
    NotificationType.ACHIEVEMENT.value: "in_app_achievements",
}


class NotificationService:
    def __init__(self, db: Session):
        self.db = db

    def notify(
        self,
        user_id: UUID,
        type: str,
        title: str,
        message: Optional[str] = None,
        data: Optional[Dict] = None,
        actor_id: Optional[UUID] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None
    ) -> Optional[Notification]:
        """
        Queue a notification for ``user_id`` without committing.

        Returns None when the user is the actor or has turned this type off.
        """
        if actor_id is not None and actor_id == user_id:
            return None
        preference = _PREFERENCE_FOR_TYPE.get(type)
        if preference is not None and not getattr(self.get_preferences(user_id), preference):
            logger.debug(f"User {user_id} muted {type} notifications")
            return None

        notification = Notification(
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            data=data or {},
            actor_id=actor_id,
            resource_type=resource_type,
            resource_id=resource_id,
            created_at=utcnow(),
        )
        self.db.add(notification)
        return notification

    def list_for_user(self, user_id: UUID, limit: int = 20, offset: int = 0, unread_only: bool = False) -> Dict:
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
        if offset < 0:
            raise ValidationError("offset must not be negative")

        query = self.db.query(Notification).filter(Notification.user_id == user_id)
        if unread_only:
            query = query.filter(Notification.read == False)  # noqa: E712
        total = query.count()
        notifications = query.order_by(
            Notification.created_at.desc(), Notification.id
        ).offset(offset).limit(limit).all()
        return {
            "notifications": [n.to_dict() for n in notifications],
            "total": total,
            "unread_count": self.unread_count(user_id),
        }

    def unread_count(self, user_id: UUID) -> int:
        return self.db.query(Notification).filter(
            Notification.user_id == user_id,
            Notification.read == False  # noqa: E712
        ).count()

    def mark_read(self, user_id: UUID, notification_ids: Optional[List[UUID]] = None) -> int:
        """Mark the given notifications, or all of them, as read; returns how many changed"""
        query = self.db.query(Notification).filter(
            Notification.user_id == user_id,
            Notification.read == False  # noqa: E712
        )
        if notification_ids is not None:
            query = query.filter(Notification.id.in_(notification_ids))
        updated = query.update(
            {Notification.read: True, Notification.read_at: utcnow()},
            synchronize_session=False
        )
        self.db.commit()
        return updated

    def delete(self, user_id: UUID, notification_id: UUID) -> None:
        notification = self.db.query(Notification).filter(
            Notification.id == notification_id,
            Notification.user_id == user_id
        ).first()
        if notification is None:
            raise NotFoundError("Notification not found")
        self.db.delete(notification)
        self.db.commit()

    def delete_read(self, user_id: UUID) -> int:
        deleted = self.db.query(Notification).filter(
            Notification.user_id == user_id,
            Notification.read == True  # noqa: E712
        ).delete(synchronize_session=False)
        self.db.commit()
        return deleted

    def get_preferences(self, user_id: UUID) -> NotificationPreference:
        """Stored preferences, or an unsaved all-enabled row for users who never changed them"""
        preferences = self.db.query(NotificationPreference).filter(
            NotificationPreference.user_id == user_id
        ).first()
        if preferences is None:
            preferences = NotificationPreference(
                user_id=user_id,
                **{field: True for field in NotificationPreference.FIELDS}
            )
        return preferences

    def update_preferences(self, user_id: UUID, updates: Dict[str, bool]) -> NotificationPreference:
        unknown = set(updates) - set(NotificationPreference.FIELDS)
        if unknown:
            raise ValidationError(f"Unknown notification preferences: {', '.join(sorted(unknown))}")

        preferences = self.get_preferences(user_id)
        for field, value in updates.items():
            setattr(preferences, field, bool(value))
        preferences.updated_at = utcnow()
        if preferences.id is None:
            self.db.add(preferences)
        self.db.commit()
        self.db.refresh(preferences)
        return preferences
