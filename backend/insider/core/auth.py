"""
Authentication dependencies
"""
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from insider.core.database import get_db
from insider.core.permissions import has_permission
from insider.models.user import User, UserRole
from insider.services.auth_service import AuthService

# HTTP Bearer security scheme
security = HTTPBearer(auto_error=False)


def get_request_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials]
) -> Optional[str]:
    """Session token from the Authorization header, falling back to the cookie"""
    if credentials:
        return credentials.credentials
    return request.cookies.get("session_token")


async def get_current_user_optional(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> Optional[User]:
    """
    Get current user if authenticated, otherwise return None (no exception)
    """
    token = get_request_token(request, credentials)
    if not token:
        return None
    return AuthService(db).validate_session(token)


async def get_current_user_required(
    user: Optional[User] = Depends(get_current_user_optional)
) -> User:
    """
    Require authentication: return User or raise 401
    """
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def require_roles(*allowed_roles: UserRole):
    """
    Dependency factory: require one of the given roles (401 when anonymous, 403 otherwise)

    Usage:
        @router.delete("/{item_id}")
        async def delete_item(user: User = Depends(require_roles(UserRole.ADMIN))):
            ...
    """
    allowed = [role.value for role in allowed_roles]

    async def dependency(user: User = Depends(get_current_user_required)) -> User:
        if user.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required roles: {allowed}"
            )
        return user

    return dependency


def require_permission(permission: str):
    """Dependency factory: require a permission from ROLE_PERMISSIONS"""

    async def dependency(user: User = Depends(get_current_user_required)) -> User:
        if not has_permission(user, permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission denied. Required permission: {permission}"
            )
        return user

    return dependency
