"""
User favorites API
"""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from insider.core.auth import get_current_user_required
from insider.core.database import get_db
from insider.models.user import User
from insider.services.favorite_service import FavoriteService

router = APIRouter(prefix="/api/favorites", tags=["favorites"])


class FavoriteCreateRequest(BaseModel):
    resource_id: UUID
    notes: Optional[str] = Field(None, max_length=2000)


@router.get("/")
async def list_favorites(
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    return {"favorites": [f.to_dict() for f in FavoriteService(db).list_for_user(user.id)]}


@router.post("/", status_code=status.HTTP_201_CREATED)
async def add_favorite(
    request: FavoriteCreateRequest,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    return FavoriteService(db).add(user.id, request.resource_id, request.notes).to_dict()


@router.delete("/{favorite_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_favorite(
    favorite_id: UUID,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    FavoriteService(db).delete(user.id, favorite_id)
