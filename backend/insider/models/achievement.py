"""
Achievement catalog, earned achievements and progress counters
"""
from enum import Enum
from uuid import uuid4

from sqlalchemy import (Boolean, CheckConstraint, Column, DateTime, ForeignKey,
                        Integer, String, Text, UniqueConstraint, Uuid)
from sqlalchemy.orm import relationship

from insider.core.database import Base
from insider.core.utils import utcnow


class AchievementCategory(str, Enum):
    CONTRIBUTION = "contribution"
    ENGAGEMENT = "engagement"
    MILESTONE = "milestone"
    SPECIAL = "special"


class AchievementTier(str, Enum):
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"


class RequirementType(str, Enum):
    COUNT = "count"
    FIRST = "first"
    SPECIAL = "special"


class Achievement(Base):
    __tablename__ = "achievements"

    id = Column(Uuid, primary_key=True, default=uuid4)
    slug = Column(String(100), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    icon = Column(String(50), nullable=False)
    category = Column(String(30), nullable=False)
    points = Column(Integer, nullable=False, default=10)
    tier = Column(String(20), nullable=False, default=AchievementTier.BRONZE.value)
    # Counter the achievement tracks (comments, reviews, following, ...)
    metric = Column(String(50), nullable=True, index=True)
    requirement_type = Column(String(20), nullable=False, default=RequirementType.COUNT.value)
    requirement_value = Column(Integer, nullable=False, default=1)
    is_hidden = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "category IN ('contribution', 'engagement', 'milestone', 'special')",
            name="achievements_category_check"
        ),
        CheckConstraint("tier IN ('bronze', 'silver', 'gold', 'platinum')", name="achievements_tier_check"),
        CheckConstraint("requirement_value >= 1", name="achievements_requirement_positive"),
    )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "slug": self.slug,
            "name": self.name,
            "description": self.description,
            "icon": self.icon,
            "category": self.category,
            "points": self.points,
            "tier": self.tier,
            "requirement_type": self.requirement_type,
            "requirement_value": self.requirement_value,
            "is_hidden": self.is_hidden,
        }

    def __repr__(self):
        return f"<Achievement(slug={self.slug})>"


class UserAchievement(Base):
    __tablename__ = "user_achievements"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    achievement_id = Column(Uuid, ForeignKey("achievements.id", ondelete="CASCADE"), nullable=False)
    earned_at = Column(DateTime, default=utcnow, nullable=False)
    is_featured = Column(Boolean, nullable=False, default=False)

    achievement = relationship("Achievement")

    __table_args__ = (
        UniqueConstraint("user_id", "achievement_id", name="uq_user_achievements_pair"),
    )

    def to_dict(self) -> dict:
        return {
            **self.achievement.to_dict(),
            "earned_at": self.earned_at.isoformat() if self.earned_at else None,
            "is_featured": self.is_featured,
        }


class AchievementProgress(Base):
    """Running count of one metric for one user"""
    __tablename__ = "achievement_progress"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    metric = Column(String(50), nullable=False)
    current_value = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "metric", name="uq_achievement_progress_metric"),
    )
