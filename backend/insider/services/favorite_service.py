"""
User favorites
"""
from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from insider.core.database import increment_counter
from insider.core.errors import ConflictError, NotFoundError
from insider.core.logging_config import LoggingConfig
from insider.models.resource import Favorite, Resource
from insider.services.achievement_service import FAVORITES, AchievementService
from insider.services.resource_service import ResourceService

logger = LoggingConfig.get_logger(__name__)


class FavoriteService:
    def __init__(self, db: Session):
        self.db = db

    def list_for_user(self, user_id: UUID) -> List[Favorite]:
        return self.db.query(Favorite).filter(
            Favorite.user_id == user_id
        ).order_by(Favorite.created_at.desc()).all()

    def add(self, user_id: UUID, resource_id: UUID, notes: Optional[str] = None) -> Favorite:
        resource = ResourceService(self.db).get(resource_id)
        exists = self.db.query(Favorite.id).filter(
            Favorite.user_id == user_id,
            Favorite.resource_id == resource_id
        ).first()
        if exists:
            raise ConflictError("Resource is already in favorites")

        favorite = Favorite(user_id=user_id, resource_id=resource_id, notes=notes)
        self.db.add(favorite)
        increment_counter(self.db, Resource.favorites_count, Resource.id == resource.id)
        AchievementService(self.db).record(user_id, FAVORITES)
        self.db.commit()
        self.db.refresh(favorite)
        return favorite

    def delete(self, user_id: UUID, favorite_id: UUID) -> None:
        """
        Remove one of the caller's favorites.

        A favorite owned by someone else is reported as not found, the same
        as a missing one.
        """
        favorite = self.db.query(Favorite).filter(
            Favorite.id == favorite_id,
            Favorite.user_id == user_id
        ).first()
        if not favorite:
            raise NotFoundError("Favorite not found")

        increment_counter(self.db, Resource.favorites_count, Resource.id == favorite.resource_id, delta=-1)
        AchievementService(self.db).record(user_id, FAVORITES, delta=-1)
        self.db.delete(favorite)
        self.db.commit()
        logger.info(f"User {user_id} removed favorite {favorite_id}")
