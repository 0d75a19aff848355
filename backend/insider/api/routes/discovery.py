"""
Resource discovery review queue API (staff only)
"""
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from insider.core.auth import require_permission
from insider.core.database import get_db
from insider.core.errors import PermissionDeniedError
from insider.core.logging_config import LoggingConfig
from insider.core.permissions import Permission, has_permission
from insider.models.resource import DiscoveryPriority, ResourceStatus
from insider.models.user import User
from insider.services.discovery_service import DiscoveryService

router = APIRouter(prefix="/api/discovery", tags=["discovery"])
logger = LoggingConfig.get_logger(__name__)

reviewer_required = require_permission(Permission.DISCOVERY_REVIEW)


# Request models
class SubmitItemRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    url: str = Field(..., min_length=1, max_length=1024)
    description: Optional[str] = None
    suggested_category: Optional[str] = None
    suggested_tags: List[str] = Field(default_factory=list)
    suggested_difficulty: Optional[str] = None
    suggested_status: Optional[ResourceStatus] = None
    github: Optional[Dict[str, Any]] = None
    package: Optional[Dict[str, Any]] = None
    source: Optional[str] = None
    source_url: Optional[str] = None
    raw_data: Optional[Dict[str, Any]] = None
    ai_analysis: Optional[Dict[str, Any]] = Field(
        None, description="confidence, relevance, quality (0-100), reasoning, warnings, analyzed_at"
    )
    priority: DiscoveryPriority = DiscoveryPriority.NORMAL


class UpdateItemRequest(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    suggested_category: Optional[str] = None
    suggested_tags: Optional[List[str]] = None
    suggested_difficulty: Optional[str] = None
    suggested_status: Optional[str] = None
    priority: Optional[str] = None
    status: Optional[str] = None
    review_notes: Optional[str] = None


class ApproveRequest(BaseModel):
    """Overrides applied to the created resource"""
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    tags: Optional[List[str]] = None
    difficulty: Optional[str] = None
    resource_status: Optional[ResourceStatus] = None
    review_notes: Optional[str] = None


class RejectRequest(BaseModel):
    rejection_reason: Optional[str] = None
    review_notes: Optional[str] = None


class DuplicateRequest(BaseModel):
    duplicate_of: Optional[UUID] = None
    review_notes: Optional[str] = None


class NeedsInfoRequest(BaseModel):
    review_notes: Optional[str] = None


class BulkRequest(BaseModel):
    action: str = Field(..., description="approve, reject, delete or update_priority")
    ids: List[UUID]
    data: Optional[Dict[str, Any]] = None


@router.get("/")
async def list_queue(
    status_filter: Optional[str] = Query(None, alias="status"),
    priority: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(reviewer_required),
    db: Session = Depends(get_db)
):
    """Queue items ordered by priority, AI confidence and age"""
    service = DiscoveryService(db)
    items, total = service.list_items(status=status_filter, priority=priority, page=page, limit=limit)
    return {
        "items": [i.to_dict() for i in items],
        "counts": service.status_counts(),
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": (total + limit - 1) // limit,
        },
    }


@router.post("/", status_code=status.HTTP_201_CREATED)
async def submit_item(
    request: SubmitItemRequest,
    user: User = Depends(reviewer_required),
    db: Session = Depends(get_db)
):
    fields = request.model_dump(exclude={"title", "url", "priority"}, exclude_none=True)
    if request.suggested_status is not None:
        fields["suggested_status"] = request.suggested_status.value
    item = DiscoveryService(db).submit(
        request.title, request.url, submitted_by=user.id, priority=request.priority.value, **fields
    )
    return item.to_dict()


@router.post("/bulk")
async def bulk_action(
    request: BulkRequest,
    user: User = Depends(reviewer_required),
    db: Session = Depends(get_db)
):
    """Apply one action to many items; results are reported per item"""
    if request.action == "delete" and not has_permission(user, Permission.DISCOVERY_DELETE):
        raise PermissionDeniedError("Only admins can delete queue items")
    return DiscoveryService(db).bulk(request.action, request.ids, user.id, request.data)


@router.get("/{item_id}")
async def get_item(
    item_id: UUID,
    user: User = Depends(reviewer_required),
    db: Session = Depends(get_db)
):
    return DiscoveryService(db).get(item_id).to_dict()


@router.patch("/{item_id}")
async def update_item(
    item_id: UUID,
    request: UpdateItemRequest,
    user: User = Depends(reviewer_required),
    db: Session = Depends(get_db)
):
    item = DiscoveryService(db).update(item_id, user.id, **request.model_dump(exclude_none=True))
    return item.to_dict()


@router.post("/{item_id}/approve")
async def approve_item(
    item_id: UUID,
    request: ApproveRequest,
    user: User = Depends(reviewer_required),
    db: Session = Depends(get_db)
):
    """Approve an item and create the resource from it"""
    overrides = request.model_dump(exclude_none=True)
    if request.resource_status is not None:
        overrides["resource_status"] = request.resource_status.value
    item, resource = DiscoveryService(db).approve(item_id, user.id, **overrides)
    return {"item": item.to_dict(), "resource": resource.to_dict()}


@router.post("/{item_id}/reject")
async def reject_item(
    item_id: UUID,
    request: RejectRequest,
    user: User = Depends(reviewer_required),
    db: Session = Depends(get_db)
):
    item = DiscoveryService(db).reject(item_id, user.id, request.rejection_reason, request.review_notes)
    return item.to_dict()


@router.post("/{item_id}/duplicate")
async def mark_duplicate(
    item_id: UUID,
    request: DuplicateRequest,
    user: User = Depends(reviewer_required),
    db: Session = Depends(get_db)
):
    item = DiscoveryService(db).mark_duplicate(item_id, user.id, request.duplicate_of, request.review_notes)
    return item.to_dict()


@router.post("/{item_id}/needs-info")
async def request_info(
    item_id: UUID,
    request: NeedsInfoRequest,
    user: User = Depends(reviewer_required),
    db: Session = Depends(get_db)
):
    return DiscoveryService(db).request_info(item_id, user.id, request.review_notes).to_dict()


@router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_item(
    item_id: UUID,
    user: User = Depends(require_permission(Permission.DISCOVERY_DELETE)),
    db: Session = Depends(get_db)
):
    DiscoveryService(db).delete(item_id)
    logger.info(f"Discovery item {item_id} deleted by {user.username}")
