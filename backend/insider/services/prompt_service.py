"""
Prompt library service
"""
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from insider.core.database import increment_counter
from insider.core.errors import (ConflictError, NotFoundError,
                                 PermissionDeniedError, ValidationError)
from insider.core.logging_config import LoggingConfig
from insider.core.utils import unique_slug, utcnow
from insider.models.prompt import (Prompt, PromptCategory, PromptRating,
                                   PromptSave, PromptSort, PromptStatus,
                                   PromptVisibility)
from insider.models.user import User, UserRole

logger = LoggingConfig.get_logger(__name__)

VISIBILITIES = [v.value for v in PromptVisibility]
SORTS = [s.value for s in PromptSort]
MAX_PAGE_SIZE = 50

_EDITABLE_FIELDS = ("title", "description", "content", "category_id", "tags", "variables", "visibility")
_ADMIN_FIELDS = ("is_featured", "status")


def _is_admin(user: Optional[User]) -> bool:
    return user is not None and user.role == UserRole.ADMIN.value


class PromptService:
    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _visible_query(self, user: Optional[User]):
        query = self.db.query(Prompt).filter(Prompt.status == PromptStatus.ACTIVE.value)
        visible = [Prompt.visibility == PromptVisibility.PUBLIC.value, Prompt.is_system == True]  # noqa: E712
        if user is not None:
            visible.append(Prompt.author_id == user.id)
        return query.filter(or_(*visible))

    def list_prompts(
        self,
        user: Optional[User] = None,
        category: Optional[str] = None,
        search: Optional[str] = None,
        tags: Optional[List[str]] = None,
        featured: bool = False,
        system: bool = False,
        mine: bool = False,
        saved: bool = False,
        sort: str = PromptSort.POPULAR.value,
        page: int = 1,
        limit: int = 20
    ) -> Dict[str, Any]:
        """
        List active prompts the caller may see: public, system, or their own.

        ``mine`` and ``saved`` are ignored for anonymous callers.
        """
        if sort not in SORTS:
            raise ValidationError(f"Invalid sort '{sort}'. Allowed: {SORTS}")
        page = max(page, 1)
        limit = max(min(limit, MAX_PAGE_SIZE), 1)

        query = self._visible_query(user)
        if category:
            query = query.join(PromptCategory, PromptCategory.id == Prompt.category_id).filter(
                PromptCategory.slug == category
            )
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(
                Prompt.title.ilike(pattern),
                Prompt.description.ilike(pattern),
                Prompt.content.ilike(pattern),
            ))
        if featured:
            query = query.filter(Prompt.is_featured == True)  # noqa: E712
        if system:
            query = query.filter(Prompt.is_system == True)  # noqa: E712
        if mine and user is not None:
            query = query.filter(Prompt.author_id == user.id)
        if saved and user is not None:
            saved_ids = self.db.query(PromptSave.prompt_id).filter(PromptSave.user_id == user.id)
            query = query.filter(Prompt.id.in_(saved_ids))

        if sort == PromptSort.RECENT.value:
            query = query.order_by(Prompt.created_at.desc())
        elif sort == PromptSort.TOP_RATED.value:
            query = query.order_by(Prompt.avg_rating.desc(), Prompt.rating_count.desc())
        elif sort == PromptSort.MOST_USED.value:
            query = query.order_by(Prompt.use_count.desc())
        else:
            query = query.order_by(Prompt.is_featured.desc(), Prompt.use_count.desc(), Prompt.save_count.desc())

        start = (page - 1) * limit
        if tags:
            # Tag overlap on a JSON list has no portable SQL form
            wanted = set(tags)
            prompts = [p for p in query.all() if wanted.intersection(p.tags or [])]
            total = len(prompts)
            page_items = prompts[start:start + limit]
        else:
            total = query.order_by(None).count()
            page_items = query.offset(start).limit(limit).all()

        return {
            "prompts": [self._with_user_state(p, user) for p in page_items],
            "categories": self.category_counts(),
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "total_pages": (total + limit - 1) // limit,
            },
        }

    def category_counts(self) -> List[Dict[str, Any]]:
        """Categories with the number of active public or system prompts in each"""
        counts = dict(
            self.db.query(Prompt.category_id, func.count(Prompt.id)).filter(
                Prompt.status == PromptStatus.ACTIVE.value,
                or_(Prompt.visibility == PromptVisibility.PUBLIC.value, Prompt.is_system == True)  # noqa: E712
            ).group_by(Prompt.category_id).all()
        )
        categories = self.db.query(PromptCategory).order_by(PromptCategory.sort_order, PromptCategory.name).all()
        return [
            {
                "id": str(c.id),
                "slug": c.slug,
                "name": c.name,
                "icon": c.icon,
                "prompt_count": counts.get(c.id, 0),
            }
            for c in categories
        ]

    def _with_user_state(self, prompt: Prompt, user: Optional[User]) -> Dict[str, Any]:
        data = prompt.to_dict()
        data["is_saved"] = False
        data["user_rating"] = None
        if user is not None:
            data["is_saved"] = self.db.query(PromptSave.id).filter(
                PromptSave.prompt_id == prompt.id, PromptSave.user_id == user.id
            ).first() is not None
            rating = self.db.query(PromptRating.rating).filter(
                PromptRating.prompt_id == prompt.id, PromptRating.user_id == user.id
            ).scalar()
            data["user_rating"] = rating
        return data

    def get(self, id_or_slug: str, user: Optional[User] = None) -> Prompt:
        """
        Look a prompt up by UUID or slug.

        Private prompts are reported as missing to everyone but their author.
        """
        prompt = None
        try:
            prompt = self.db.query(Prompt).filter(Prompt.id == UUID(str(id_or_slug))).first()
        except ValueError:
            pass
        if prompt is None:
            prompt = self.db.query(Prompt).filter(Prompt.slug == str(id_or_slug)).first()
        if prompt is None:
            raise NotFoundError("Prompt not found")

        can_view = (
            prompt.visibility in (PromptVisibility.PUBLIC.value, PromptVisibility.UNLISTED.value)
            or prompt.is_system
            or (user is not None and prompt.author_id == user.id)
        )
        if not can_view:
            raise NotFoundError("Prompt not found")
        return prompt

    def get_detail(self, id_or_slug: str, user: Optional[User] = None) -> Dict[str, Any]:
        prompt = self.get(id_or_slug, user)
        data = self._with_user_state(prompt, user)
        data["can_edit"] = user is not None and (prompt.author_id == user.id or _is_admin(user))
        return data

    def _get_by_id(self, prompt_id: UUID) -> Prompt:
        prompt = self.db.query(Prompt).filter(Prompt.id == prompt_id).first()
        if prompt is None:
            raise NotFoundError("Prompt not found")
        return prompt

    # ------------------------------------------------------------------
    # Authoring
    # ------------------------------------------------------------------

    def _check_category(self, category_id: Optional[UUID]) -> None:
        if category_id is None:
            return
        if not self.db.query(PromptCategory.id).filter(PromptCategory.id == category_id).first():
            raise ValidationError("Invalid category")

    def create(
        self,
        author: User,
        title: Optional[str],
        content: Optional[str],
        description: Optional[str] = None,
        category_id: Optional[UUID] = None,
        tags: Optional[List[str]] = None,
        variables: Optional[List[Any]] = None,
        visibility: str = PromptVisibility.PRIVATE.value
    ) -> Prompt:
        if not title or not content:
            raise ValidationError("Title and content are required")
        if visibility not in VISIBILITIES:
            raise ValidationError("Invalid visibility value")
        self._check_category(category_id)

        prompt = Prompt(
            slug=unique_slug(title),
            title=title,
            description=description or None,
            content=content,
            category_id=category_id,
            tags=tags or [],
            variables=variables or [],
            author_id=author.id,
            visibility=visibility,
        )
        self.db.add(prompt)
        self.db.commit()
        self.db.refresh(prompt)
        logger.info(f"Prompt {prompt.slug} created by {author.username}")
        return prompt

    def update(self, prompt_id: UUID, user: User, **fields: Any) -> Prompt:
        prompt = self._get_by_id(prompt_id)
        admin = _is_admin(user)
        if prompt.author_id != user.id and not admin:
            raise PermissionDeniedError("Forbidden")
        if prompt.is_system and not admin:
            raise PermissionDeniedError("System prompts can only be edited by admins")

        changes = {k: v for k, v in fields.items() if k in _EDITABLE_FIELDS and v is not None}
        if admin:
            changes.update({k: v for k, v in fields.items() if k in _ADMIN_FIELDS and v is not None})
        if not changes:
            raise ValidationError("No valid fields to update")

        if "visibility" in changes and changes["visibility"] not in VISIBILITIES:
            raise ValidationError("Invalid visibility value")
        if "status" in changes and changes["status"] not in [s.value for s in PromptStatus]:
            raise ValidationError("Invalid status value")
        if "category_id" in changes:
            self._check_category(changes["category_id"])
        if "title" in changes and not changes["title"]:
            raise ValidationError("Title is required")
        if "content" in changes and not changes["content"]:
            raise ValidationError("Content is required")

        for key, value in changes.items():
            setattr(prompt, key, value)
        prompt.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(prompt)
        return prompt

    def delete(self, prompt_id: UUID, user: User) -> None:
        prompt = self._get_by_id(prompt_id)
        if prompt.author_id != user.id and not _is_admin(user):
            raise PermissionDeniedError("Forbidden")
        if prompt.is_system:
            raise PermissionDeniedError("System prompts cannot be deleted")
        self.db.delete(prompt)
        self.db.commit()
        logger.info(f"Prompt {prompt_id} deleted by {user.username}")

    # ------------------------------------------------------------------
    # Engagement
    # ------------------------------------------------------------------

    def save(self, prompt_id: UUID, user: User) -> Prompt:
        prompt = self.get(str(prompt_id), user)
        exists = self.db.query(PromptSave.id).filter(
            PromptSave.prompt_id == prompt.id, PromptSave.user_id == user.id
        ).first()
        if exists:
            raise ConflictError("Prompt already saved")
        self.db.add(PromptSave(prompt_id=prompt.id, user_id=user.id))
        increment_counter(self.db, Prompt.save_count, Prompt.id == prompt.id)
        self.db.commit()
        self.db.refresh(prompt)
        return prompt

    def unsave(self, prompt_id: UUID, user: User) -> Prompt:
        prompt = self._get_by_id(prompt_id)
        saved = self.db.query(PromptSave).filter(
            PromptSave.prompt_id == prompt.id, PromptSave.user_id == user.id
        ).first()
        if saved is None:
            raise NotFoundError("Prompt is not saved")
        self.db.delete(saved)
        increment_counter(self.db, Prompt.save_count, Prompt.id == prompt.id, delta=-1)
        self.db.commit()
        self.db.refresh(prompt)
        return prompt

    def rate(self, prompt_id: UUID, user: User, rating: int) -> Prompt:
        """Upsert the caller's rating and recompute the prompt's average"""
        if not 1 <= rating <= 5:
            raise ValidationError("Rating must be between 1 and 5")
        prompt = self.get(str(prompt_id), user)

        existing = self.db.query(PromptRating).filter(
            PromptRating.prompt_id == prompt.id, PromptRating.user_id == user.id
        ).first()
        if existing is None:
            self.db.add(PromptRating(prompt_id=prompt.id, user_id=user.id, rating=rating))
        else:
            existing.rating = rating
            existing.updated_at = utcnow()
        self.db.flush()

        count, average = self.db.query(
            func.count(PromptRating.id), func.avg(PromptRating.rating)
        ).filter(PromptRating.prompt_id == prompt.id).one()
        prompt.rating_count = count or 0
        prompt.avg_rating = float(average or 0.0)
        self.db.commit()
        self.db.refresh(prompt)
        return prompt

    def record_use(self, prompt_id: UUID, user: Optional[User] = None) -> Prompt:
        prompt = self.get(str(prompt_id), user)
        increment_counter(self.db, Prompt.use_count, Prompt.id == prompt.id)
        self.db.commit()
        self.db.refresh(prompt)
        return prompt

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    def create_category(self, slug: str, name: str, description: Optional[str] = None,
                        icon: Optional[str] = None, sort_order: int = 0) -> PromptCategory:
        if self.db.query(PromptCategory.id).filter(PromptCategory.slug == slug).first():
            raise ConflictError(f"Category '{slug}' already exists")
        category = PromptCategory(slug=slug, name=name, description=description, icon=icon, sort_order=sort_order)
        self.db.add(category)
        self.db.commit()
        self.db.refresh(category)
        return category
