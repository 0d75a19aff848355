"""
In-app notifications API
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from insider.core.auth import get_current_user_required
from insider.core.database import get_db
from insider.models.user import User
from insider.services.notification_service import NotificationService

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


class MarkReadRequest(BaseModel):
    # Omitted means every unread notification
    notification_ids: Optional[List[UUID]] = None


class PreferencesUpdateRequest(BaseModel):
    in_app_comments: Optional[bool] = None
    in_app_replies: Optional[bool] = None
    in_app_follows: Optional[bool] = None
    in_app_messages: Optional[bool] = None
    in_app_achievements: Optional[bool] = None


@router.get("/")
async def list_notifications(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    unread_only: bool = False,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    return NotificationService(db).list_for_user(user.id, limit=limit, offset=offset, unread_only=unread_only)


@router.get("/unread-count")
async def unread_count(
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    return {"unread_count": NotificationService(db).unread_count(user.id)}


@router.post("/read")
async def mark_read(
    request: MarkReadRequest,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    service = NotificationService(db)
    updated = service.mark_read(user.id, request.notification_ids)
    return {"updated": updated, "unread_count": service.unread_count(user.id)}


@router.get("/preferences")
async def get_preferences(
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    return NotificationService(db).get_preferences(user.id).to_dict()


@router.put("/preferences")
async def update_preferences(
    request: PreferencesUpdateRequest,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    updates = request.model_dump(exclude_none=True)
    return NotificationService(db).update_preferences(user.id, updates).to_dict()


@router.delete("/read")
async def delete_read(
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    return {"deleted": NotificationService(db).delete_read(user.id)}


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(
    notification_id: UUID,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    NotificationService(db).delete(user.id, notification_id)
