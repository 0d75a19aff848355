"""
Achievements: the catalog, progress counters and awards.

Progress is kept per ``(user, metric)``. Each action that counts toward an
achievement calls ``record`` inside the action's own transaction; any
achievement whose requirement the new value meets is awarded in the same
transaction, together with its "Achievement Unlocked" notification.
Earned achievements are never revoked, even when the counter goes down
again (unfollow, unfavorite).
"""
from typing import Dict, List
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from insider.core.database import increment_counter
from insider.core.errors import ConflictError, NotFoundError, ValidationError
from insider.core.logging_config import LoggingConfig
from insider.core.metrics import achievements_awarded_total
from insider.core.utils import utcnow
from insider.models.achievement import (Achievement, AchievementProgress,
                                        RequirementType, UserAchievement)
from insider.models.notification import NotificationType
from insider.models.user import User
from insider.services.notification_service import NotificationService

logger = LoggingConfig.get_logger(__name__)

MAX_FEATURED = 6

# Metrics fed by other services
COMMENTS = "comments"
REVIEWS = "reviews"
FAVORITES = "favorites"
FOLLOWING = "following"
FOLLOWERS = "followers"

# (slug, name, description, icon, category, points, tier, metric, requirement_value, hidden)
CATALOG = [
    ("first_comment", "First Voice", "Posted your first comment", "chat", "contribution", 10, "bronze", COMMENTS, 1, False),
    ("comments_10", "Conversationalist", "Posted 10 comments", "chat-bubble", "contribution", 25, "bronze", COMMENTS, 10, False),
    ("comments_50", "Discussion Leader", "Posted 50 comments", "chat-bubble", "contribution", 50, "silver", COMMENTS, 50, False),
    ("comments_100", "Community Voice", "Posted 100 comments", "chat-bubble", "contribution", 100, "gold", COMMENTS, 100, False),
    ("first_review", "Critic", "Reviewed your first resource", "star", "contribution", 10, "bronze", REVIEWS, 1, False),
    ("reviews_10", "Trusted Reviewer", "Reviewed 10 resources", "star", "contribution", 40, "silver", REVIEWS, 10, False),
    ("first_favorite", "Collector", "Added your first favorite", "heart", "engagement", 5, "bronze", FAVORITES, 1, False),
    ("favorites_25", "Curator", "Added 25 favorites", "heart", "engagement", 25, "bronze", FAVORITES, 25, False),
    ("favorites_100", "Archivist", "Added 100 favorites", "heart", "engagement", 75, "silver", FAVORITES, 100, False),
    ("first_follow", "Socialite", "Followed your first user", "user-plus", "engagement", 5, "bronze", FOLLOWING, 1, False),
    ("following_10", "Networker", "Following 10 users", "users", "engagement", 20, "bronze", FOLLOWING, 10, False),
    ("followers_10", "Influencer", "Gained 10 followers", "users", "engagement", 50, "silver", FOLLOWERS, 10, True),
    ("followers_50", "Community Star", "Gained 50 followers", "star", "engagement", 150, "gold", FOLLOWERS, 50, True),
    ("early_adopter", "Early Adopter", "Joined in the first month", "rocket", "special", 150, "gold", None, 1, False),
    ("verified", "Verified", "Became a verified user", "badge-check", "milestone", 200, "platinum", None, 1, True),
]

RANKS = [
    (1000, "Legend"),
    (500, "Expert"),
    (250, "Veteran"),
    (100, "Regular"),
    (50, "Member"),
    (0, "Newcomer"),
]


def rank_for_points(points: int) -> str:
    for threshold, rank in RANKS:
        if points >= threshold:
            return rank
    return RANKS[-1][1]


class AchievementService:
    def __init__(self, db: Session):
        self.db = db
        self.notifications = NotificationService(db)

    def ensure_catalog(self) -> int:
        """Insert catalog entries that are missing; returns how many were added"""
        existing = {slug for (slug,) in self.db.query(Achievement.slug).all()}
        added = 0
        for slug, name, description, icon, category, points, tier, metric, value, hidden in CATALOG:
            if slug in existing:
                continue
            self.db.add(Achievement(
                slug=slug,
                name=name,
                description=description,
                icon=icon,
                category=category,
                points=points,
                tier=tier,
                metric=metric,
                requirement_type=(
                    RequirementType.SPECIAL.value if metric is None
                    else RequirementType.FIRST.value if value == 1
                    else RequirementType.COUNT.value
                ),
                requirement_value=value,
                is_hidden=hidden,
            ))
            added += 1
        if added:
            self.db.flush()
            logger.info(f"Seeded {added} achievements")
        return added

    def _ensure_seeded(self) -> bool:
        if self.db.query(Achievement.id).first() is None:
            return self.ensure_catalog() > 0
        return False

    def catalog(self) -> List[Achievement]:
        """Visible achievements; hidden ones are only listed among a user's earned ones"""
        if self._ensure_seeded():
            self.db.commit()
        return self.db.query(Achievement).filter(
            Achievement.is_hidden == False  # noqa: E712
        ).order_by(Achievement.category, Achievement.points, Achievement.slug).all()

    def get_by_slug(self, slug: str) -> Achievement:
        self._ensure_seeded()
        achievement = self.db.query(Achievement).filter(Achievement.slug == slug).first()
        if achievement is None:
            raise NotFoundError(f"Achievement '{slug}' not found")
        return achievement

    def for_user(self, user_id: UUID) -> List[UserAchievement]:
        return self.db.query(UserAchievement).filter(
            UserAchievement.user_id == user_id
        ).order_by(UserAchievement.earned_at.desc()).all()

    def has(self, user_id: UUID, achievement_id: UUID) -> bool:
        return self.db.query(UserAchievement.id).filter(
            UserAchievement.user_id == user_id,
            UserAchievement.achievement_id == achievement_id
        ).first() is not None

    def current_value(self, user_id: UUID, metric: str) -> int:
        value = self.db.query(AchievementProgress.current_value).filter(
            AchievementProgress.user_id == user_id,
            AchievementProgress.metric == metric
        ).scalar()
        return value or 0

    def record(self, user_id: UUID, metric: str, delta: int = 1) -> List[UserAchievement]:
        """
        Move a progress counter and award what it unlocks, without committing.

        Returns the achievements awarded by this call.
        """
        self._ensure_seeded()
        exists = self.db.query(AchievementProgress.id).filter(
            AchievementProgress.user_id == user_id,
            AchievementProgress.metric == metric
        ).first()
        if exists is None:
            self.db.add(AchievementProgress(user_id=user_id, metric=metric, current_value=0))
            self.db.flush()
        increment_counter(
            self.db,
            AchievementProgress.current_value,
            AchievementProgress.user_id == user_id,
            AchievementProgress.metric == metric,
            delta=delta
        )
        if delta <= 0:
            return []

        value = self.current_value(user_id, metric)
        earned = select(UserAchievement.achievement_id).where(UserAchievement.user_id == user_id)
        unlocked = self.db.query(Achievement).filter(
            Achievement.metric == metric,
            Achievement.requirement_value <= value,
            Achievement.id.notin_(earned)
        ).order_by(Achievement.requirement_value).all()
        return [self._award(user_id, achievement) for achievement in unlocked]

    def _award(self, user_id: UUID, achievement: Achievement) -> UserAchievement:
        awarded = UserAchievement(user_id=user_id, achievement_id=achievement.id, earned_at=utcnow())
        self.db.add(awarded)
        increment_counter(self.db, User.achievements_count, User.id == user_id)
        increment_counter(self.db, User.achievement_points, User.id == user_id, delta=achievement.points)
        self.notifications.notify(
            user_id,
            NotificationType.ACHIEVEMENT.value,
            f"Achievement Unlocked: {achievement.name}",
            message=achievement.description,
            data={"slug": achievement.slug, "points": achievement.points, "tier": achievement.tier},
            resource_type="achievement",
            resource_id=achievement.slug,
        )
        achievements_awarded_total.labels(tier=achievement.tier).inc()
        logger.info(f"User {user_id} earned achievement {achievement.slug}")
        return awarded

    def award_special(self, user_id: UUID, slug: str) -> UserAchievement:
        """Grant an achievement by hand (early adopter, verified, ...)"""
        user = self.db.query(User).filter(User.id == user_id).first()
        if user is None:
            raise NotFoundError("User not found")
        achievement = self.get_by_slug(slug)
        if self.has(user_id, achievement.id):
            raise ConflictError(f"{user.username} already has '{slug}'")
        awarded = self._award(user_id, achievement)
        self.db.commit()
        self.db.refresh(awarded)
        return awarded

    def set_featured(self, user_id: UUID, slug: str, featured: bool) -> UserAchievement:
        achievement = self.get_by_slug(slug)
        earned = self.db.query(UserAchievement).filter(
            UserAchievement.user_id == user_id,
            UserAchievement.achievement_id == achievement.id
        ).first()
        if earned is None:
            raise NotFoundError("You have not earned this achievement")

        if featured and not earned.is_featured:
            featured_count = self.db.query(UserAchievement).filter(
                UserAchievement.user_id == user_id,
                UserAchievement.is_featured == True  # noqa: E712
            ).count()
            if featured_count >= MAX_FEATURED:
                raise ValidationError(f"You can feature at most {MAX_FEATURED} achievements")
        earned.is_featured = featured
        self.db.commit()
        self.db.refresh(earned)
        return earned

    def progress(self, user_id: UUID) -> List[Dict]:
        """Started but unearned visible achievements, closest to completion first"""
        self._ensure_seeded()
        values = dict(self.db.query(AchievementProgress.metric, AchievementProgress.current_value).filter(
            AchievementProgress.user_id == user_id,
            AchievementProgress.current_value > 0
        ).all())
        if not values:
            return []

        earned = select(UserAchievement.achievement_id).where(UserAchievement.user_id == user_id)
        pending = self.db.query(Achievement).filter(
            Achievement.metric.in_(list(values)),
            Achievement.is_hidden == False,  # noqa: E712
            Achievement.id.notin_(earned)
        ).all()

        items = []
        for achievement in pending:
            current = values[achievement.metric]
            items.append({
                **achievement.to_dict(),
                "current_value": current,
                "percent_complete": min(100, current * 100 // achievement.requirement_value),
            })
        items.sort(key=lambda item: (-item["percent_complete"], item["requirement_value"]))
        return items

    def stats(self, user_id: UUID) -> Dict:
        user = self.db.query(User).filter(User.id == user_id).first()
        if user is None:
            raise NotFoundError("User not found")
        by_tier = dict(self.db.query(Achievement.tier, func.count(UserAchievement.id)).join(
            UserAchievement, UserAchievement.achievement_id == Achievement.id
        ).filter(UserAchievement.user_id == user_id).group_by(Achievement.tier).all())
        return {
            "achievements_count": user.achievements_count,
            "achievement_points": user.achievement_points,
            "rank": rank_for_points(user.achievement_points),
            "by_tier": by_tier,
        }
