"""
API routes for the prompt library
"""
from typing import Any, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from insider.core.auth import (get_current_user_optional,
                               get_current_user_required, require_roles)
from insider.core.database import get_db
from insider.core.logging_config import LoggingConfig
from insider.models.prompt import PromptSort, PromptVisibility
from insider.models.user import User, UserRole
from insider.services.prompt_service import PromptService

router = APIRouter(prefix="/api/prompts", tags=["prompts"])
logger = LoggingConfig.get_logger(__name__)


# Request models
class PromptCreateRequest(BaseModel):
    """Request model for creating a prompt"""
    # Optional here so that a missing title/content is a 400 from the service
    title: Optional[str] = Field(None, max_length=255, description="Prompt title")
    content: Optional[str] = Field(None, description="Prompt text, may contain {{variables}}")
    description: Optional[str] = Field(None, description="Short description")
    category_id: Optional[UUID] = None
    tags: List[str] = Field(default_factory=list)
    variables: List[Any] = Field(default_factory=list)
    visibility: str = Field(PromptVisibility.PRIVATE.value, description="private, public or unlisted")


class PromptUpdateRequest(BaseModel):
    """Request model for updating a prompt"""
    title: Optional[str] = Field(None, max_length=255)
    content: Optional[str] = None
    description: Optional[str] = None
    category_id: Optional[UUID] = None
    tags: Optional[List[str]] = None
    variables: Optional[List[Any]] = None
    visibility: Optional[str] = None
    is_featured: Optional[bool] = Field(None, description="Admin only")
    status: Optional[str] = Field(None, description="Admin only")


class RatePromptRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)


class CategoryCreateRequest(BaseModel):
    slug: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    icon: Optional[str] = None
    sort_order: int = 0


@router.get("/")
async def list_prompts(
    category: Optional[str] = Query(None, description="Category slug"),
    search: Optional[str] = Query(None, description="Search in title, description and content"),
    tags: Optional[str] = Query(None, description="Comma-separated tags"),
    featured: bool = Query(False),
    system: bool = Query(False),
    mine: bool = Query(False),
    saved: bool = Query(False),
    sort: PromptSort = Query(PromptSort.POPULAR),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=50),
    user: Optional[User] = Depends(get_current_user_optional),
    db: Session = Depends(get_db)
):
    """List prompts visible to the caller"""
    tag_list = [t.strip() for t in tags.split(",") if t.strip()] if tags else None
    return PromptService(db).list_prompts(
        user=user,
        category=category,
        search=search,
        tags=tag_list,
        featured=featured,
        system=system,
        mine=mine,
        saved=saved,
        sort=sort.value,
        page=page,
        limit=limit,
    )


@router.get("/categories")
async def list_categories(db: Session = Depends(get_db)):
    """Prompt categories with prompt counts"""
    return {"categories": PromptService(db).category_counts()}


@router.post("/categories", status_code=status.HTTP_201_CREATED)
async def create_category(
    request: CategoryCreateRequest,
    user: User = Depends(require_roles(UserRole.ADMIN)),
    db: Session = Depends(get_db)
):
    category = PromptService(db).create_category(
        request.slug, request.name, request.description, request.icon, request.sort_order
    )
    return {"id": str(category.id), "slug": category.slug, "name": category.name}


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_prompt(
    request: PromptCreateRequest,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    """Create a new prompt"""
    service = PromptService(db)
    prompt = service.create(
        author=user,
        title=request.title,
        content=request.content,
        description=request.description,
        category_id=request.category_id,
        tags=request.tags,
        variables=request.variables,
        visibility=request.visibility,
    )
    return service.get_detail(str(prompt.id), user)


@router.get("/{id_or_slug}")
async def get_prompt(
    id_or_slug: str,
    user: Optional[User] = Depends(get_current_user_optional),
    db: Session = Depends(get_db)
):
    """Get a prompt by id or slug"""
    return PromptService(db).get_detail(id_or_slug, user)


@router.patch("/{prompt_id}")
async def update_prompt(
    prompt_id: UUID,
    request: PromptUpdateRequest,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    service = PromptService(db)
    service.update(prompt_id, user, **request.model_dump(exclude_none=True))
    return service.get_detail(str(prompt_id), user)


@router.delete("/{prompt_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_prompt(
    prompt_id: UUID,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    PromptService(db).delete(prompt_id, user)


@router.post("/{prompt_id}/save")
async def save_prompt(
    prompt_id: UUID,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    prompt = PromptService(db).save(prompt_id, user)
    return {"prompt_id": str(prompt.id), "save_count": prompt.save_count, "is_saved": True}


@router.delete("/{prompt_id}/save")
async def unsave_prompt(
    prompt_id: UUID,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    prompt = PromptService(db).unsave(prompt_id, user)
    return {"prompt_id": str(prompt.id), "save_count": prompt.save_count, "is_saved": False}


@router.post("/{prompt_id}/rate")
async def rate_prompt(
    prompt_id: UUID,
    request: RatePromptRequest,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    prompt = PromptService(db).rate(prompt_id, user, request.rating)
    return {
        "prompt_id": str(prompt.id),
        "avg_rating": prompt.avg_rating,
        "rating_count": prompt.rating_count,
        "user_rating": request.rating,
    }


@router.post("/{prompt_id}/use")
async def record_prompt_use(
    prompt_id: UUID,
    user: Optional[User] = Depends(get_current_user_optional),
    db: Session = Depends(get_db)
):
    """Count a copy/use of the prompt"""
    prompt = PromptService(db).record_use(prompt_id, user)
    return {"prompt_id": str(prompt.id), "use_count": prompt.use_count}
