"""
Resource directory API: resources, reviews and comments
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from insider.core.auth import (get_current_user_optional,
                               get_current_user_required, require_permission)
from insider.core.database import get_db
from insider.core.logging_config import LoggingConfig
from insider.core.permissions import Permission, has_permission
from insider.models.resource import Resource, ResourceStatus
from insider.models.user import User
from insider.services.comment_service import CommentService
from insider.services.resource_service import ResourceService
from insider.services.review_service import ReviewService

router = APIRouter(prefix="/api/resources", tags=["resources"])
logger = LoggingConfig.get_logger(__name__)


# Request models
class ResourceCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    url: str = Field(..., min_length=1, max_length=1024)
    category: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    difficulty: Optional[str] = None
    status: ResourceStatus = ResourceStatus.COMMUNITY
    github_owner: Optional[str] = None
    github_repo: Optional[str] = None
    github_stars: Optional[int] = Field(None, ge=0)


class ResourceUpdateRequest(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    url: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    tags: Optional[List[str]] = None
    difficulty: Optional[str] = None
    status: Optional[ResourceStatus] = None
    github_owner: Optional[str] = None
    github_repo: Optional[str] = None
    github_stars: Optional[int] = Field(None, ge=0)


class ReviewCreateRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    content: str
    title: Optional[str] = Field(None, max_length=255)
    pros: List[str] = Field(default_factory=list)
    cons: List[str] = Field(default_factory=list)


class ReviewUpdateRequest(BaseModel):
    rating: Optional[int] = Field(None, ge=1, le=5)
    content: Optional[str] = None
    title: Optional[str] = Field(None, max_length=255)


class ModerateRequest(BaseModel):
    status: str = Field(..., description="pending, approved, rejected or flagged")


class HelpfulVoteRequest(BaseModel):
    is_helpful: bool = True


class CommentCreateRequest(BaseModel):
    content: str
    parent_id: Optional[UUID] = None


class CommentEditRequest(BaseModel):
    content: str


def _resolve(service: ResourceService, resource_ref: str) -> Resource:
    """Look a resource up by UUID or slug"""
    try:
        return service.get(UUID(resource_ref))
    except ValueError:
        return service.get_by_slug(resource_ref)


# ----------------------------------------------------------------------
# Resources
# ----------------------------------------------------------------------

@router.get("/")
async def list_resources(
    category: Optional[str] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
    search: Optional[str] = Query(None),
    tag: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db)
):
    resources, total = ResourceService(db).list_resources(
        category=category, status=status_filter, search=search, tag=tag, page=page, limit=limit
    )
    return {
        "resources": [r.to_dict() for r in resources],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": (total + limit - 1) // limit,
        },
    }


@router.get("/stats")
async def resource_stats(db: Session = Depends(get_db)):
    """Resource counts per category"""
    counts = ResourceService(db).stats()
    return {"total": sum(counts.values()), "categories": counts}


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_resource(
    request: ResourceCreateRequest,
    user: User = Depends(require_permission(Permission.RESOURCE_MANAGE)),
    db: Session = Depends(get_db)
):
    fields = request.model_dump()
    fields["status"] = request.status.value
    resource = ResourceService(db).create(created_by=user.id, **fields)
    return resource.to_dict()


@router.get("/{resource_ref}")
async def get_resource(resource_ref: str, db: Session = Depends(get_db)):
    return _resolve(ResourceService(db), resource_ref).to_dict()


@router.patch("/{resource_id}")
async def update_resource(
    resource_id: UUID,
    request: ResourceUpdateRequest,
    user: User = Depends(require_permission(Permission.RESOURCE_MANAGE)),
    db: Session = Depends(get_db)
):
    fields = request.model_dump(exclude_none=True)
    if request.status is not None:
        fields["status"] = request.status.value
    return ResourceService(db).update(resource_id, **fields).to_dict()


@router.delete("/{resource_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_resource(
    resource_id: UUID,
    user: User = Depends(require_permission(Permission.RESOURCE_MANAGE)),
    db: Session = Depends(get_db)
):
    ResourceService(db).delete(resource_id)
    logger.info(f"Resource {resource_id} deleted by {user.username}")


# ----------------------------------------------------------------------
# Reviews
# ----------------------------------------------------------------------

@router.get("/{resource_id}/reviews")
async def list_reviews(
    resource_id: UUID,
    include_all: bool = Query(False, description="Include unmoderated reviews (moderators only)"),
    user: Optional[User] = Depends(get_current_user_optional),
    db: Session = Depends(get_db)
):
    show_all = include_all and user is not None and has_permission(user, Permission.REVIEW_MODERATE)
    reviews = ReviewService(db).list_for_resource(resource_id, include_all=show_all)
    return {"reviews": [r.to_dict() for r in reviews]}


@router.post("/{resource_id}/reviews", status_code=status.HTTP_201_CREATED)
async def create_review(
    resource_id: UUID,
    request: ReviewCreateRequest,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    """Submit a review; it counts towards the rating once approved"""
    review = ReviewService(db).create(
        resource_id,
        user.id,
        rating=request.rating,
        content=request.content,
        title=request.title,
        pros=request.pros,
        cons=request.cons,
    )
    return review.to_dict()


@router.patch("/reviews/{review_id}")
async def update_review(
    review_id: UUID,
    request: ReviewUpdateRequest,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    review = ReviewService(db).update(
        review_id, user, rating=request.rating, content=request.content, title=request.title
    )
    return review.to_dict()


@router.post("/reviews/{review_id}/moderate")
async def moderate_review(
    review_id: UUID,
    request: ModerateRequest,
    user: User = Depends(require_permission(Permission.REVIEW_MODERATE)),
    db: Session = Depends(get_db)
):
    return ReviewService(db).moderate(review_id, request.status).to_dict()


@router.delete("/reviews/{review_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_review(
    review_id: UUID,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    ReviewService(db).delete(review_id, user, can_moderate=has_permission(user, Permission.REVIEW_MODERATE))


@router.post("/reviews/{review_id}/vote")
async def vote_review(
    review_id: UUID,
    request: HelpfulVoteRequest,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    return ReviewService(db).vote_helpful(review_id, user.id, request.is_helpful).to_dict()


@router.delete("/reviews/{review_id}/vote")
async def remove_review_vote(
    review_id: UUID,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    return ReviewService(db).remove_vote(review_id, user.id).to_dict()


# ----------------------------------------------------------------------
# Comments
# ----------------------------------------------------------------------

@router.get("/{resource_id}/comments")
async def list_comments(resource_id: UUID, db: Session = Depends(get_db)):
    """Approved comments as a reply tree"""
    return {"comments": CommentService(db).list_for_resource(resource_id)}


@router.post("/{resource_id}/comments", status_code=status.HTTP_201_CREATED)
async def create_comment(
    resource_id: UUID,
    request: CommentCreateRequest,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    comment = CommentService(db).create(resource_id, user.id, request.content, request.parent_id)
    return comment.to_dict()


@router.patch("/comments/{comment_id}")
async def edit_comment(
    comment_id: UUID,
    request: CommentEditRequest,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    return CommentService(db).edit(comment_id, user, request.content).to_dict()


@router.post("/comments/{comment_id}/moderate")
async def moderate_comment(
    comment_id: UUID,
    request: ModerateRequest,
    user: User = Depends(require_permission(Permission.COMMENT_MODERATE)),
    db: Session = Depends(get_db)
):
    return CommentService(db).moderate(comment_id, request.status).to_dict()


@router.delete("/comments/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_comment(
    comment_id: UUID,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    CommentService(db).delete(comment_id, user, can_moderate=has_permission(user, Permission.COMMENT_MODERATE))


@router.post("/comments/{comment_id}/like")
async def like_comment(
    comment_id: UUID,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    comment = CommentService(db).like(comment_id, user.id)
    return {"comment_id": str(comment.id), "likes_count": comment.likes_count, "liked": True}


@router.delete("/comments/{comment_id}/like")
async def unlike_comment(
    comment_id: UUID,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    comment = CommentService(db).unlike(comment_id, user.id)
    return {"comment_id": str(comment.id), "likes_count": comment.likes_count, "liked": False}
