"""
Public profiles, follows and user administration
"""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from insider.core.auth import (get_current_user_optional,
                               get_current_user_required, require_permission)
from insider.core.database import get_db
from insider.core.logging_config import LoggingConfig
from insider.core.permissions import Permission
from insider.models.user import User
from insider.services.auth_service import AuthService
from insider.services.follow_service import FollowService

router = APIRouter(prefix="/api/users", tags=["users"])
logger = LoggingConfig.get_logger(__name__)


class RoleUpdateRequest(BaseModel):
    role: str


@router.get("/{username}")
async def get_profile(
    username: str,
    viewer: Optional[User] = Depends(get_current_user_optional),
    db: Session = Depends(get_db)
):
    """Public profile; ``is_following`` is set for signed-in viewers"""
    service = FollowService(db)
    user = service.get_by_username(username)
    profile = service.profile(user)
    profile["is_following"] = bool(viewer and viewer.id != user.id and service.is_following(viewer.id, user.id))
    return profile


@router.post("/{user_id}/follow", status_code=status.HTTP_201_CREATED)
async def follow_user(
    user_id: UUID,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    service = FollowService(db)
    service.follow(user, user_id)
    return service.profile(service.get_user(user_id))


@router.delete("/{user_id}/follow", status_code=status.HTTP_204_NO_CONTENT)
async def unfollow_user(
    user_id: UUID,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    FollowService(db).unfollow(user, user_id)


@router.get("/{user_id}/followers")
async def list_followers(user_id: UUID, db: Session = Depends(get_db)):
    service = FollowService(db)
    service.get_user(user_id)
    return {"users": [service.profile(u) for u in service.followers(user_id)]}


@router.get("/{user_id}/following")
async def list_following(user_id: UUID, db: Session = Depends(get_db)):
    service = FollowService(db)
    service.get_user(user_id)
    return {"users": [service.profile(u) for u in service.following(user_id)]}


@router.put("/{user_id}/role")
async def set_user_role(
    user_id: UUID,
    request: RoleUpdateRequest,
    admin: User = Depends(require_permission(Permission.USER_MANAGE)),
    db: Session = Depends(get_db)
):
    user = AuthService(db).set_role(user_id, request.role)
    logger.info(f"Role of {user.username} changed to {user.role} by {admin.username}")
    return FollowService.profile(user)
