"""
Achievements API
"""
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from insider.core.auth import get_current_user_required, require_permission
from insider.core.database import get_db
from insider.core.logging_config import LoggingConfig
from insider.core.permissions import Permission
from insider.models.user import User
from insider.services.achievement_service import AchievementService
from insider.services.follow_service import FollowService

router = APIRouter(prefix="/api/achievements", tags=["achievements"])
logger = LoggingConfig.get_logger(__name__)


class FeatureRequest(BaseModel):
    featured: bool


class AwardRequest(BaseModel):
    user_id: UUID
    slug: str


@router.get("/")
async def list_catalog(db: Session = Depends(get_db)):
    return {"achievements": [a.to_dict() for a in AchievementService(db).catalog()]}


@router.get("/me")
async def my_achievements(
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    service = AchievementService(db)
    return {
        "achievements": [a.to_dict() for a in service.for_user(user.id)],
        "stats": service.stats(user.id),
    }


@router.get("/me/progress")
async def my_progress(
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    return {"progress": AchievementService(db).progress(user.id)}


@router.put("/me/{slug}/featured")
async def set_featured(
    slug: str,
    request: FeatureRequest,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    return AchievementService(db).set_featured(user.id, slug, request.featured).to_dict()


@router.get("/users/{username}")
async def user_achievements(username: str, db: Session = Depends(get_db)):
    """Public view of what a user has earned"""
    user = FollowService(db).get_by_username(username)
    service = AchievementService(db)
    return {
        "achievements": [a.to_dict() for a in service.for_user(user.id)],
        "stats": service.stats(user.id),
    }


@router.post("/award", status_code=status.HTTP_201_CREATED)
async def award_achievement(
    request: AwardRequest,
    admin: User = Depends(require_permission(Permission.ACHIEVEMENT_AWARD)),
    db: Session = Depends(get_db)
):
    awarded = AchievementService(db).award_special(request.user_id, request.slug)
    logger.info(f"{admin.username} awarded '{request.slug}' to {request.user_id}")
    return awarded.to_dict()
