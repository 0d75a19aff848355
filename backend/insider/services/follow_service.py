"""
Social follows and public profiles
"""
from typing import Dict, List
from uuid import UUID

from sqlalchemy.orm import Session

from insider.core.database import increment_counter
from insider.core.errors import ConflictError, NotFoundError, ValidationError
from insider.core.logging_config import LoggingConfig
from insider.models.notification import NotificationType
from insider.models.user import User, UserFollow
from insider.services.achievement_service import (FOLLOWERS, FOLLOWING,
                                                  AchievementService)
from insider.services.notification_service import NotificationService

logger = LoggingConfig.get_logger(__name__)


class FollowService:
    def __init__(self, db: Session):
        self.db = db

    def get_user(self, user_id: UUID) -> User:
        user = self.db.query(User).filter(User.id == user_id, User.is_active == True).first()  # noqa: E712
        if not user:
            raise NotFoundError("User not found")
        return user

    def get_by_username(self, username: str) -> User:
        user = self.db.query(User).filter(User.username == username, User.is_active == True).first()  # noqa: E712
        if not user:
            raise NotFoundError(f"User '{username}' not found")
        return user

    def is_following(self, follower_id: UUID, following_id: UUID) -> bool:
        return self.db.query(UserFollow.id).filter(
            UserFollow.follower_id == follower_id,
            UserFollow.following_id == following_id
        ).first() is not None

    def follow(self, follower: User, following_id: UUID) -> UserFollow:
        if follower.id == following_id:
            raise ValidationError("You cannot follow yourself")
        target = self.get_user(following_id)
        if self.is_following(follower.id, following_id):
            raise ConflictError(f"Already following {target.username}")

        edge = UserFollow(follower_id=follower.id, following_id=following_id)
        self.db.add(edge)
        increment_counter(self.db, User.following_count, User.id == follower.id)
        increment_counter(self.db, User.followers_count, User.id == target.id)
        achievements = AchievementService(self.db)
        achievements.record(follower.id, FOLLOWING)
        achievements.record(target.id, FOLLOWERS)
        NotificationService(self.db).notify(
            target.id,
            NotificationType.FOLLOW.value,
            f"{follower.username} started following you",
            data={"actor_username": follower.username},
            actor_id=follower.id,
            resource_type="user",
            resource_id=follower.username,
        )
        self.db.commit()
        self.db.refresh(edge)
        logger.info(f"{follower.username} followed {target.username}")
        return edge

    def unfollow(self, follower: User, following_id: UUID) -> None:
        edge = self.db.query(UserFollow).filter(
            UserFollow.follower_id == follower.id,
            UserFollow.following_id == following_id
        ).first()
        if edge is None:
            raise NotFoundError("Not following this user")

        self.db.delete(edge)
        increment_counter(self.db, User.following_count, User.id == follower.id, delta=-1)
        increment_counter(self.db, User.followers_count, User.id == following_id, delta=-1)
        achievements = AchievementService(self.db)
        achievements.record(follower.id, FOLLOWING, delta=-1)
        achievements.record(following_id, FOLLOWERS, delta=-1)
        self.db.commit()

    def followers(self, user_id: UUID) -> List[User]:
        return self.db.query(User).join(
            UserFollow, UserFollow.follower_id == User.id
        ).filter(UserFollow.following_id == user_id).order_by(UserFollow.created_at.desc()).all()

    def following(self, user_id: UUID) -> List[User]:
        return self.db.query(User).join(
            UserFollow, UserFollow.following_id == User.id
        ).filter(UserFollow.follower_id == user_id).order_by(UserFollow.created_at.desc()).all()

    @staticmethod
    def profile(user: User) -> Dict:
        return {
            "id": str(user.id),
            "username": user.username,
            "name": user.name,
            "bio": user.bio,
            "role": user.role,
            "followers_count": user.followers_count,
            "following_count": user.following_count,
            "achievements_count": user.achievements_count,
            "achievement_points": user.achievement_points,
            "created_at": user.created_at.isoformat() if user.created_at else None,
        }
