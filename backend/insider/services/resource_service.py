"""
Resource directory service
"""
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from insider.core.errors import ConflictError, NotFoundError, ValidationError
from insider.core.logging_config import LoggingConfig
from insider.core.utils import slugify, unique_slug, utcnow
from insider.models.resource import Resource, ResourceStatus

logger = LoggingConfig.get_logger(__name__)

RESOURCE_STATUSES = [s.value for s in ResourceStatus]


class ResourceService:
    def __init__(self, db: Session):
        self.db = db

    def get(self, resource_id: UUID) -> Resource:
        resource = self.db.query(Resource).filter(Resource.id == resource_id).first()
        if not resource:
            raise NotFoundError("Resource not found")
        return resource

    def get_by_slug(self, slug: str) -> Resource:
        resource = self.db.query(Resource).filter(Resource.slug == slug).first()
        if not resource:
            raise NotFoundError("Resource not found")
        return resource

    def find_by_url(self, url: str) -> Optional[Resource]:
        return self.db.query(Resource).filter(Resource.url == url).first()

    def create(
        self,
        title: str,
        url: str,
        category: str,
        description: Optional[str] = None,
        tags: Optional[List[str]] = None,
        difficulty: Optional[str] = None,
        status: str = ResourceStatus.COMMUNITY.value,
        github_owner: Optional[str] = None,
        github_repo: Optional[str] = None,
        github_stars: Optional[int] = None,
        discovered_via: Optional[str] = None,
        created_by: Optional[UUID] = None,
        commit: bool = True
    ) -> Resource:
        if not title or not title.strip():
            raise ValidationError("Title is required")
        if not url or not url.strip():
            raise ValidationError("URL is required")
        if status not in RESOURCE_STATUSES:
            raise ValidationError(f"Invalid resource status '{status}'")
        if self.find_by_url(url):
            raise ConflictError(f"A resource with URL {url} already exists")

        slug = slugify(title, max_length=80) or "resource"
        if self.db.query(Resource.id).filter(Resource.slug == slug).first():
            slug = unique_slug(title)

        resource = Resource(
            slug=slug,
            title=title.strip(),
            description=description,
            url=url.strip(),
            category=category,
            tags=tags or [],
            difficulty=difficulty,
            status=status,
            github_owner=github_owner,
            github_repo=github_repo,
            github_stars=github_stars,
            discovered_via=discovered_via,
            created_by=created_by,
        )
        self.db.add(resource)
        if commit:
            self.db.commit()
            self.db.refresh(resource)
        else:
            self.db.flush()
        logger.info(f"Created resource {resource.slug}")
        return resource

    def update(self, resource_id: UUID, **fields: Any) -> Resource:
        resource = self.get(resource_id)
        if "status" in fields and fields["status"] not in RESOURCE_STATUSES:
            raise ValidationError(f"Invalid resource status '{fields['status']}'")
        for key in ("title", "description", "url", "category", "tags", "difficulty", "status",
                    "github_owner", "github_repo", "github_stars"):
            if key in fields and fields[key] is not None:
                setattr(resource, key, fields[key])
        resource.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(resource)
        return resource

    def delete(self, resource_id: UUID) -> None:
        resource = self.get(resource_id)
        self.db.delete(resource)
        self.db.commit()

    def list_resources(
        self,
        category: Optional[str] = None,
        status: Optional[str] = None,
        search: Optional[str] = None,
        tag: Optional[str] = None,
        page: int = 1,
        limit: int = 20
    ) -> Tuple[List[Resource], int]:
        query = self.db.query(Resource)
        if category:
            query = query.filter(Resource.category == category)
        if status:
            query = query.filter(Resource.status == status)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(Resource.title.ilike(pattern), Resource.description.ilike(pattern)))

        query = query.order_by(Resource.average_rating.desc(), Resource.created_at.desc())
        start = (page - 1) * limit
        if tag:
            resources = [r for r in query.all() if tag in (r.tags or [])]
            return resources[start:start + limit], len(resources)
        return query.offset(start).limit(limit).all(), query.order_by(None).count()

    def stats(self) -> Dict[str, int]:
        rows = self.db.query(Resource.category, func.count(Resource.id)).group_by(Resource.category).all()
        return dict(rows)
