"""
Prompt library models
"""
from enum import Enum
from uuid import uuid4

from sqlalchemy import (JSON, Boolean, CheckConstraint, Column, DateTime,
                        Float, ForeignKey, Integer, String, Text,
                        UniqueConstraint, Uuid)
from sqlalchemy.orm import relationship

from insider.core.database import Base
from insider.core.utils import utcnow


class PromptVisibility(str, Enum):
    PRIVATE = "private"
    PUBLIC = "public"
    UNLISTED = "unlisted"


class PromptStatus(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"


class PromptSort(str, Enum):
    POPULAR = "popular"
    RECENT = "recent"
    TOP_RATED = "top-rated"
    MOST_USED = "most-used"


class PromptCategory(Base):
    __tablename__ = "prompt_categories"

    id = Column(Uuid, primary_key=True, default=uuid4)
    slug = Column(String(100), unique=True, nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    icon = Column(String(50), nullable=True)
    sort_order = Column(Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<PromptCategory(slug={self.slug})>"


class Prompt(Base):
    __tablename__ = "prompts"

    id = Column(Uuid, primary_key=True, default=uuid4)
    slug = Column(String(80), unique=True, nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    content = Column(Text, nullable=False)
    category_id = Column(Uuid, ForeignKey("prompt_categories.id", ondelete="SET NULL"), nullable=True, index=True)
    tags = Column(JSON, nullable=False, default=list)
    variables = Column(JSON, nullable=False, default=list)
    author_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    visibility = Column(String(20), nullable=False, default=PromptVisibility.PRIVATE.value)
    is_featured = Column(Boolean, nullable=False, default=False)
    is_system = Column(Boolean, nullable=False, default=False)
    status = Column(String(20), nullable=False, default=PromptStatus.ACTIVE.value)
    use_count = Column(Integer, nullable=False, default=0)
    save_count = Column(Integer, nullable=False, default=0)
    avg_rating = Column(Float, nullable=False, default=0.0)
    rating_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)

    category = relationship("PromptCategory")

    __table_args__ = (
        CheckConstraint("visibility IN ('private', 'public', 'unlisted')", name="prompts_visibility_check"),
        CheckConstraint("status IN ('active', 'archived')", name="prompts_status_check"),
    )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "slug": self.slug,
            "title": self.title,
            "description": self.description,
            "content": self.content,
            "category": {
                "id": str(self.category.id),
                "slug": self.category.slug,
                "name": self.category.name,
            } if self.category else None,
            "tags": self.tags or [],
            "variables": self.variables or [],
            "author_id": str(self.author_id) if self.author_id else None,
            "visibility": self.visibility,
            "is_featured": self.is_featured,
            "is_system": self.is_system,
            "status": self.status,
            "use_count": self.use_count,
            "save_count": self.save_count,
            "avg_rating": round(self.avg_rating or 0.0, 2),
            "rating_count": self.rating_count,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Prompt(slug={self.slug}, visibility={self.visibility})>"


class PromptSave(Base):
    __tablename__ = "user_prompt_saves"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    prompt_id = Column(Uuid, ForeignKey("prompts.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "prompt_id", name="uq_prompt_saves_user"),
    )


class PromptRating(Base):
    __tablename__ = "prompt_ratings"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    prompt_id = Column(Uuid, ForeignKey("prompts.id", ondelete="CASCADE"), nullable=False, index=True)
    rating = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "prompt_id", name="uq_prompt_ratings_user"),
        CheckConstraint("rating >= 1 AND rating <= 5", name="prompt_ratings_value_check"),
    )
