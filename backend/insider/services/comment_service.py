"""
Threaded resource comments and likes
"""
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from insider.core.database import increment_counter
from insider.core.errors import (ConflictError, NotFoundError,
                                 PermissionDeniedError, ValidationError)
from insider.core.logging_config import LoggingConfig
from insider.core.utils import utcnow
from insider.models.notification import NotificationType
from insider.models.resource import (CommentLike, ModerationStatus, Resource,
                                     ResourceComment)
from insider.models.user import User
from insider.services.achievement_service import COMMENTS, AchievementService
from insider.services.notification_service import NotificationService
from insider.services.resource_service import ResourceService

logger = LoggingConfig.get_logger(__name__)

MAX_COMMENT_LENGTH = 5000


class CommentService:
    def __init__(self, db: Session):
        self.db = db
        self.resources = ResourceService(db)

    def get(self, comment_id: UUID) -> ResourceComment:
        comment = self.db.query(ResourceComment).filter(ResourceComment.id == comment_id).first()
        if not comment:
            raise NotFoundError("Comment not found")
        return comment

    def _refresh_comment_count(self, resource_id: UUID) -> None:
        self.db.flush()
        count = self.db.query(func.count(ResourceComment.id)).filter(
            ResourceComment.resource_id == resource_id,
            ResourceComment.status == ModerationStatus.APPROVED.value
        ).scalar()
        resource = self.db.query(Resource).filter(Resource.id == resource_id).first()
        if resource is not None:
            resource.comments_count = count or 0

    def create(self, resource_id: UUID, user_id: UUID, content: str, parent_id: Optional[UUID] = None) -> ResourceComment:
        if not content or not content.strip():
            raise ValidationError("Comment content is required")
        if len(content) > MAX_COMMENT_LENGTH:
            raise ValidationError(f"Comment must be at most {MAX_COMMENT_LENGTH} characters")

        self.resources.get(resource_id)
        parent = None
        if parent_id is not None:
            parent = self.get(parent_id)
            if parent.resource_id != resource_id:
                raise ValidationError("Parent comment belongs to another resource")

        comment = ResourceComment(
            resource_id=resource_id,
            user_id=user_id,
            parent_id=parent_id,
            content=content.strip(),
            status=ModerationStatus.APPROVED.value,
        )
        self.db.add(comment)
        self._refresh_comment_count(resource_id)
        AchievementService(self.db).record(user_id, COMMENTS)
        if parent is not None:
            self._notify_reply(parent, comment)
        self.db.commit()
        self.db.refresh(comment)
        return comment

    def _notify_reply(self, parent: ResourceComment, reply: ResourceComment) -> None:
        author = self.db.query(User.username).filter(User.id == reply.user_id).scalar()
        NotificationService(self.db).notify(
            parent.user_id,
            NotificationType.REPLY.value,
            f"{author} replied to your comment",
            message=reply.content[:200],
            data={"comment_id": str(reply.id), "resource_id": str(reply.resource_id)},
            actor_id=reply.user_id,
            resource_type="comment",
            resource_id=str(parent.id),
        )

    def edit(self, comment_id: UUID, user: User, content: str) -> ResourceComment:
        comment = self.get(comment_id)
        if comment.user_id != user.id:
            raise PermissionDeniedError("You can only edit your own comments")
        if not content or not content.strip():
            raise ValidationError("Comment content is required")
        comment.content = content.strip()
        comment.is_edited = True
        comment.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(comment)
        return comment

    def moderate(self, comment_id: UUID, status: str) -> ResourceComment:
        if status not in [s.value for s in ModerationStatus]:
            raise ValidationError(f"Invalid comment status '{status}'")
        comment = self.get(comment_id)
        comment.status = status
        comment.updated_at = utcnow()
        self._refresh_comment_count(comment.resource_id)
        self.db.commit()
        self.db.refresh(comment)
        return comment

    def delete(self, comment_id: UUID, user: User, can_moderate: bool = False) -> None:
        comment = self.get(comment_id)
        if comment.user_id != user.id and not can_moderate:
            raise PermissionDeniedError("You can only delete your own comments")
        resource_id = comment.resource_id
        self.db.delete(comment)
        self._refresh_comment_count(resource_id)
        self.db.commit()

    def list_for_resource(self, resource_id: UUID) -> List[Dict]:
        """Approved comments as a tree of top-level comments with nested replies"""
        comments = self.db.query(ResourceComment).filter(
            ResourceComment.resource_id == resource_id,
            ResourceComment.status == ModerationStatus.APPROVED.value
        ).order_by(ResourceComment.created_at).all()

        nodes = {c.id: {**c.to_dict(), "replies": []} for c in comments}
        roots = []
        for comment in comments:
            node = nodes[comment.id]
            if comment.parent_id and comment.parent_id in nodes:
                nodes[comment.parent_id]["replies"].append(node)
            else:
                roots.append(node)
        return roots

    def like(self, comment_id: UUID, user_id: UUID) -> ResourceComment:
        """Like a comment; likes_count changes once per (comment, user)"""
        comment = self.get(comment_id)
        exists = self.db.query(CommentLike.id).filter(
            CommentLike.comment_id == comment_id,
            CommentLike.user_id == user_id
        ).first()
        if exists:
            raise ConflictError("Comment already liked")

        self.db.add(CommentLike(comment_id=comment_id, user_id=user_id))
        increment_counter(self.db, ResourceComment.likes_count, ResourceComment.id == comment_id)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError("Comment already liked")
        self.db.refresh(comment)
        return comment

    def unlike(self, comment_id: UUID, user_id: UUID) -> ResourceComment:
        comment = self.get(comment_id)
        like = self.db.query(CommentLike).filter(
            CommentLike.comment_id == comment_id,
            CommentLike.user_id == user_id
        ).first()
        if like is None:
            raise NotFoundError("Like not found")
        self.db.delete(like)
        increment_counter(self.db, ResourceComment.likes_count, ResourceComment.id == comment_id, delta=-1)
        self.db.commit()
        self.db.refresh(comment)
        return comment
