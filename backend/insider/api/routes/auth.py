"""
Authentication API routes
"""
from typing import Optional

from fastapi import (APIRouter, Depends, HTTPException, Request, Response,
                     status)
from fastapi.security import HTTPAuthorizationCredentials
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.orm import Session

from insider.core.auth import (get_current_user_required, get_request_token,
                               security)
from insider.core.config import get_settings
from insider.core.database import get_db
from insider.core.logging_config import LoggingConfig
from insider.models.user import Session as UserSession
from insider.models.user import User
from insider.services.auth_service import AuthService

logger = LoggingConfig.get_logger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

SESSION_COOKIE = "session_token"


# Request/Response models
class RegisterRequest(BaseModel):
    """User registration request"""
    username: str = Field(..., min_length=3, max_length=255)
    email: EmailStr
    password: str = Field(..., min_length=8)
    name: Optional[str] = Field(None, max_length=255)


class LoginRequest(BaseModel):
    """User login request"""
    username: str  # Can be username or email
    password: str


class ApiKeyRequest(BaseModel):
    api_key: Optional[str] = Field(None, description="Personal Anthropic API key; empty clears it")


class UserResponse(BaseModel):
    """User response model"""
    id: str
    username: str
    email: str
    name: Optional[str] = None
    role: str
    is_active: bool
    has_api_key: bool = False
    created_at: str
    last_login: Optional[str] = None


class LoginResponse(BaseModel):
    """Login response model"""
    token: str
    user: UserResponse
    expires_at: str


def _user_response(user: User) -> UserResponse:
    return UserResponse(
        id=str(user.id),
        username=user.username,
        email=user.email,
        name=user.name,
        role=user.role,
        is_active=user.is_active,
        has_api_key=bool(user.anthropic_api_key),
        created_at=user.created_at.isoformat(),
        last_login=user.last_login.isoformat() if user.last_login else None
    )


def _set_session_cookie(response: Response, session: UserSession) -> None:
    settings = get_settings()
    response.set_cookie(
        key=SESSION_COOKIE,
        value=session.token,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
        max_age=settings.session_duration_hours * 60 * 60
    )


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(
    request: RegisterRequest,
    db: Session = Depends(get_db)
):
    """Register a new user"""
    user = AuthService(db).register_user(
        username=request.username,
        email=request.email,
        password=request.password,
        name=request.name
    )
    return _user_response(user)


@router.post("/login", response_model=LoginResponse)
async def login(
    request: LoginRequest,
    response: Response,
    db: Session = Depends(get_db)
):
    """Login and create a session"""
    auth_service = AuthService(db)

    user = auth_service.authenticate(request.username, request.password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password"
        )

    session = auth_service.create_session(user.id)
    _set_session_cookie(response, session)

    return LoginResponse(
        token=session.token,
        user=_user_response(user),
        expires_at=session.expires_at.isoformat()
    )


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    request: Request,
    response: Response,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
):
    """Logout and invalidate session"""
    token = get_request_token(request, credentials)
    if token:
        AuthService(db).logout(token)
    response.delete_cookie(key=SESSION_COOKIE)
    response.status_code = status.HTTP_204_NO_CONTENT
    return None


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(user: User = Depends(get_current_user_required)):
    """Get current user information"""
    return _user_response(user)


@router.post("/refresh", response_model=LoginResponse)
async def refresh_token(
    request: Request,
    response: Response,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
):
    """Replace the current session with a new one"""
    auth_service = AuthService(db)

    token = get_request_token(request, credentials)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No session token provided"
        )

    user = auth_service.validate_session(token)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired session"
        )

    auth_service.logout(token)
    new_session = auth_service.create_session(user.id)
    _set_session_cookie(response, new_session)

    return LoginResponse(
        token=new_session.token,
        user=_user_response(user),
        expires_at=new_session.expires_at.isoformat()
    )


@router.put("/api-key", response_model=UserResponse)
async def set_api_key(
    request: ApiKeyRequest,
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    """Set or clear the personal Anthropic API key used by the assistant"""
    api_key = (request.api_key or "").strip() or None
    return _user_response(AuthService(db).set_api_key(user, api_key))


@router.delete("/api-key", response_model=UserResponse)
async def clear_api_key(
    user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db)
):
    """Remove the personal API key; the assistant falls back to the site key"""
    return _user_response(AuthService(db).set_api_key(user, None))
