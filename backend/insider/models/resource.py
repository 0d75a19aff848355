"""
Resource directory models: resources, reviews, comments, favorites and the discovery queue
"""
from enum import Enum
from uuid import uuid4

from sqlalchemy import (JSON, Boolean, CheckConstraint, Column, DateTime,
                        Float, ForeignKey, Integer, String, Text,
                        UniqueConstraint, Uuid)
from sqlalchemy.orm import relationship

from insider.core.database import Base
from insider.core.utils import utcnow


class ResourceStatus(str, Enum):
    OFFICIAL = "official"
    COMMUNITY = "community"
    BETA = "beta"
    DEPRECATED = "deprecated"


class ModerationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    FLAGGED = "flagged"


class DiscoveryStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    DUPLICATE = "duplicate"
    NEEDS_INFO = "needs_info"


class DiscoveryPriority(str, Enum):
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


class Resource(Base):
    __tablename__ = "resources"

    id = Column(Uuid, primary_key=True, default=uuid4)
    slug = Column(String(120), unique=True, nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    url = Column(String(1024), nullable=False)
    category = Column(String(100), nullable=False, index=True)
    tags = Column(JSON, nullable=False, default=list)
    difficulty = Column(String(20), nullable=True)
    status = Column(String(20), nullable=False, default=ResourceStatus.COMMUNITY.value)
    github_owner = Column(String(255), nullable=True)
    github_repo = Column(String(255), nullable=True)
    github_stars = Column(Integer, nullable=True)
    discovered_via = Column(String(100), nullable=True)
    reviews_count = Column(Integer, nullable=False, default=0)
    average_rating = Column(Float, nullable=False, default=0.0)
    comments_count = Column(Integer, nullable=False, default=0)
    favorites_count = Column(Integer, nullable=False, default=0)
    created_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "status IN ('official', 'community', 'beta', 'deprecated')",
            name="resources_status_check",
        ),
    )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "slug": self.slug,
            "title": self.title,
            "description": self.description,
            "url": self.url,
            "category": self.category,
            "tags": self.tags or [],
            "difficulty": self.difficulty,
            "status": self.status,
            "github_owner": self.github_owner,
            "github_repo": self.github_repo,
            "github_stars": self.github_stars,
            "reviews_count": self.reviews_count,
            "average_rating": round(self.average_rating or 0.0, 2),
            "comments_count": self.comments_count,
            "favorites_count": self.favorites_count,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Resource(slug={self.slug})>"


class ResourceReview(Base):
    __tablename__ = "resource_reviews"

    id = Column(Uuid, primary_key=True, default=uuid4)
    resource_id = Column(Uuid, ForeignKey("resources.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    rating = Column(Integer, nullable=False)
    title = Column(String(255), nullable=True)
    content = Column(Text, nullable=False)
    pros = Column(JSON, nullable=False, default=list)
    cons = Column(JSON, nullable=False, default=list)
    status = Column(String(20), nullable=False, default=ModerationStatus.PENDING.value)
    helpful_count = Column(Integer, nullable=False, default=0)
    not_helpful_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("resource_id", "user_id", name="uq_resource_reviews_user"),
        CheckConstraint("rating >= 1 AND rating <= 5", name="resource_reviews_rating_check"),
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'flagged')",
            name="resource_reviews_status_check",
        ),
    )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "resource_id": str(self.resource_id),
            "user_id": str(self.user_id),
            "rating": self.rating,
            "title": self.title,
            "content": self.content,
            "pros": self.pros or [],
            "cons": self.cons or [],
            "status": self.status,
            "helpful_count": self.helpful_count,
            "not_helpful_count": self.not_helpful_count,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class ReviewHelpfulVote(Base):
    __tablename__ = "review_helpful_votes"

    id = Column(Uuid, primary_key=True, default=uuid4)
    review_id = Column(Uuid, ForeignKey("resource_reviews.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    is_helpful = Column(Boolean, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("review_id", "user_id", name="uq_review_helpful_votes_user"),
    )


class ResourceComment(Base):
    __tablename__ = "resource_comments"

    id = Column(Uuid, primary_key=True, default=uuid4)
    resource_id = Column(Uuid, ForeignKey("resources.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    parent_id = Column(Uuid, ForeignKey("resource_comments.id", ondelete="CASCADE"), nullable=True)
    content = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default=ModerationStatus.APPROVED.value)
    likes_count = Column(Integer, nullable=False, default=0)
    is_edited = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)

    replies = relationship("ResourceComment", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'flagged')",
            name="resource_comments_status_check",
        ),
    )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "resource_id": str(self.resource_id),
            "user_id": str(self.user_id),
            "parent_id": str(self.parent_id) if self.parent_id else None,
            "content": self.content,
            "status": self.status,
            "likes_count": self.likes_count,
            "is_edited": self.is_edited,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class CommentLike(Base):
    __tablename__ = "resource_comment_likes"

    id = Column(Uuid, primary_key=True, default=uuid4)
    comment_id = Column(Uuid, ForeignKey("resource_comments.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("comment_id", "user_id", name="uq_comment_likes_user"),
    )


class Favorite(Base):
    __tablename__ = "user_favorites"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    resource_id = Column(Uuid, ForeignKey("resources.id", ondelete="CASCADE"), nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "resource_id", name="uq_user_favorites_resource"),
    )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "user_id": str(self.user_id),
            "resource_id": str(self.resource_id),
            "notes": self.notes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class DiscoveryQueueItem(Base):
    """A candidate resource found by a crawler or submitted by a user, awaiting review"""
    __tablename__ = "resource_discovery_queue"

    id = Column(Uuid, primary_key=True, default=uuid4)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    url = Column(String(1024), nullable=False, index=True)
    suggested_category = Column(String(100), nullable=True)
    suggested_tags = Column(JSON, nullable=False, default=list)
    suggested_difficulty = Column(String(20), nullable=True)
    suggested_status = Column(String(20), nullable=True)
    github = Column(JSON, nullable=True)  # owner, repo, stars, forks, language, last_updated
    package = Column(JSON, nullable=True)  # name, registry, downloads, version
    source = Column(String(100), nullable=True)
    source_url = Column(String(1024), nullable=True)
    raw_data = Column(JSON, nullable=True)
    ai_analysis = Column(JSON, nullable=True)  # confidence, relevance, quality, reasoning, warnings, analyzed_at
    status = Column(String(20), nullable=False, default=DiscoveryStatus.PENDING.value, index=True)
    priority = Column(String(10), nullable=False, default=DiscoveryPriority.NORMAL.value)
    submitted_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    reviewed_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    review_notes = Column(Text, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    created_resource_id = Column(Uuid, ForeignKey("resources.id", ondelete="SET NULL"), nullable=True)
    duplicate_of_id = Column(Uuid, ForeignKey("resources.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'duplicate', 'needs_info')",
            name="discovery_queue_status_check",
        ),
        CheckConstraint("priority IN ('high', 'normal', 'low')", name="discovery_queue_priority_check"),
    )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "title": self.title,
            "description": self.description,
            "url": self.url,
            "suggested_category": self.suggested_category,
            "suggested_tags": self.suggested_tags or [],
            "suggested_difficulty": self.suggested_difficulty,
            "suggested_status": self.suggested_status,
            "github": self.github,
            "package": self.package,
            "source": self.source,
            "source_url": self.source_url,
            "ai_analysis": self.ai_analysis,
            "status": self.status,
            "priority": self.priority,
            "reviewed_by": str(self.reviewed_by) if self.reviewed_by else None,
            "reviewed_at": self.reviewed_at.isoformat() if self.reviewed_at else None,
            "review_notes": self.review_notes,
            "rejection_reason": self.rejection_reason,
            "created_resource_id": str(self.created_resource_id) if self.created_resource_id else None,
            "duplicate_of_id": str(self.duplicate_of_id) if self.duplicate_of_id else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<DiscoveryQueueItem(id={self.id}, status={self.status})>"
