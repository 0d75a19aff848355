"""
Resource reviews and helpful votes.

``Resource.reviews_count`` and ``Resource.average_rating`` only reflect
approved reviews and are recomputed in the same transaction as any review
change.
"""
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from insider.core.database import increment_counter
from insider.core.errors import (ConflictError, NotFoundError,
                                 PermissionDeniedError, ValidationError)
from insider.core.logging_config import LoggingConfig
from insider.core.utils import utcnow
from insider.models.resource import (ModerationStatus, Resource,
                                     ResourceReview, ReviewHelpfulVote)
from insider.models.user import User
from insider.services.achievement_service import REVIEWS, AchievementService
from insider.services.resource_service import ResourceService

logger = LoggingConfig.get_logger(__name__)

MIN_REVIEW_LENGTH = 10


class ReviewService:
    def __init__(self, db: Session):
        self.db = db
        self.resources = ResourceService(db)

    def get(self, review_id: UUID) -> ResourceReview:
        review = self.db.query(ResourceReview).filter(ResourceReview.id == review_id).first()
        if not review:
            raise NotFoundError("Review not found")
        return review

    def _refresh_resource_stats(self, resource_id: UUID) -> None:
        self.db.flush()
        count, average = self.db.query(
            func.count(ResourceReview.id), func.avg(ResourceReview.rating)
        ).filter(
            ResourceReview.resource_id == resource_id,
            ResourceReview.status == ModerationStatus.APPROVED.value
        ).one()
        resource = self.db.query(Resource).filter(Resource.id == resource_id).first()
        if resource is not None:
            resource.reviews_count = count or 0
            resource.average_rating = float(average or 0.0)

    def create(
        self,
        resource_id: UUID,
        user_id: UUID,
        rating: int,
        content: str,
        title: Optional[str] = None,
        pros: Optional[List[str]] = None,
        cons: Optional[List[str]] = None,
        status: str = ModerationStatus.PENDING.value
    ) -> ResourceReview:
        if not 1 <= rating <= 5:
            raise ValidationError("Rating must be between 1 and 5")
        if not content or len(content.strip()) < MIN_REVIEW_LENGTH:
            raise ValidationError(f"Review must be at least {MIN_REVIEW_LENGTH} characters")

        self.resources.get(resource_id)
        existing = self.db.query(ResourceReview).filter(
            ResourceReview.resource_id == resource_id,
            ResourceReview.user_id == user_id
        ).first()
        if existing:
            raise ConflictError("You have already reviewed this resource")

        review = ResourceReview(
            resource_id=resource_id,
            user_id=user_id,
            rating=rating,
            title=title,
            content=content.strip(),
            pros=pros or [],
            cons=cons or [],
            status=status,
        )
        self.db.add(review)
        self._refresh_resource_stats(resource_id)
        AchievementService(self.db).record(user_id, REVIEWS)
        self.db.commit()
        self.db.refresh(review)
        return review

    def update(
        self,
        review_id: UUID,
        user: User,
        rating: Optional[int] = None,
        content: Optional[str] = None,
        title: Optional[str] = None
    ) -> ResourceReview:
        """Edit own review; an edited review goes back to moderation"""
        review = self.get(review_id)
        if review.user_id != user.id:
            raise PermissionDeniedError("You can only edit your own reviews")
        if rating is not None:
            if not 1 <= rating <= 5:
                raise ValidationError("Rating must be between 1 and 5")
            review.rating = rating
        if content is not None:
            if len(content.strip()) < MIN_REVIEW_LENGTH:
                raise ValidationError(f"Review must be at least {MIN_REVIEW_LENGTH} characters")
            review.content = content.strip()
        if title is not None:
            review.title = title
        review.status = ModerationStatus.PENDING.value
        review.updated_at = utcnow()
        self._refresh_resource_stats(review.resource_id)
        self.db.commit()
        self.db.refresh(review)
        return review

    def moderate(self, review_id: UUID, status: str) -> ResourceReview:
        if status not in [s.value for s in ModerationStatus]:
            raise ValidationError(f"Invalid review status '{status}'")
        review = self.get(review_id)
        review.status = status
        review.updated_at = utcnow()
        self._refresh_resource_stats(review.resource_id)
        self.db.commit()
        self.db.refresh(review)
        logger.info(f"Review {review_id} moderated to {status}")
        return review

    def delete(self, review_id: UUID, user: User, can_moderate: bool = False) -> None:
        review = self.get(review_id)
        if review.user_id != user.id and not can_moderate:
            raise PermissionDeniedError("You can only delete your own reviews")
        resource_id = review.resource_id
        self.db.delete(review)
        self._refresh_resource_stats(resource_id)
        self.db.commit()

    def list_for_resource(self, resource_id: UUID, include_all: bool = False) -> List[ResourceReview]:
        query = self.db.query(ResourceReview).filter(ResourceReview.resource_id == resource_id)
        if not include_all:
            query = query.filter(ResourceReview.status == ModerationStatus.APPROVED.value)
        return query.order_by(ResourceReview.helpful_count.desc(), ResourceReview.created_at.desc()).all()

    def vote_helpful(self, review_id: UUID, user_id: UUID, is_helpful: bool) -> ResourceReview:
        """One vote per user; changing the vote moves it between the two counters"""
        review = self.get(review_id)
        if review.user_id == user_id:
            raise ValidationError("You cannot vote on your own review")

        vote = self.db.query(ReviewHelpfulVote).filter(
            ReviewHelpfulVote.review_id == review_id,
            ReviewHelpfulVote.user_id == user_id
        ).first()

        if vote is None:
            self.db.add(ReviewHelpfulVote(review_id=review_id, user_id=user_id, is_helpful=is_helpful))
            self._bump(review.id, is_helpful, 1)
        elif vote.is_helpful != is_helpful:
            self._bump(review.id, vote.is_helpful, -1)
            self._bump(review.id, is_helpful, 1)
            vote.is_helpful = is_helpful

        self.db.commit()
        self.db.refresh(review)
        return review

    def remove_vote(self, review_id: UUID, user_id: UUID) -> ResourceReview:
        review = self.get(review_id)
        vote = self.db.query(ReviewHelpfulVote).filter(
            ReviewHelpfulVote.review_id == review_id,
            ReviewHelpfulVote.user_id == user_id
        ).first()
        if vote is not None:
            self._bump(review.id, vote.is_helpful, -1)
            self.db.delete(vote)
            self.db.commit()
            self.db.refresh(review)
        return review

    def _bump(self, review_id: UUID, is_helpful: bool, delta: int) -> None:
        column = ResourceReview.helpful_count if is_helpful else ResourceReview.not_helpful_count
        increment_counter(self.db, column, ResourceReview.id == review_id, delta=delta)
