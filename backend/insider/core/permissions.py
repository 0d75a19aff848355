"""
Permission checking utilities
"""
from insider.models.user import User, UserRole


class Permission:
    """Permission constants"""
    # Discovery queue
    DISCOVERY_REVIEW = "discovery:review"
    DISCOVERY_DELETE = "discovery:delete"

    # Community content
    REVIEW_MODERATE = "review:moderate"
    COMMENT_MODERATE = "comment:moderate"
    RESOURCE_MANAGE = "resource:manage"

    # Prompts
    PROMPT_FEATURE = "prompt:feature"
    PROMPT_DELETE_ANY = "prompt:delete_any"

    # Admin
    ADMIN_ALL = "admin:all"
    USER_MANAGE = "user:manage"
    ACHIEVEMENT_AWARD = "achievement:award"
    DEVICE_VERIFY_ADMIN = "device:verify_admin"


ROLE_PERMISSIONS = {
    UserRole.ADMIN.value: [
        Permission.ADMIN_ALL,
        Permission.USER_MANAGE,
        Permission.DEVICE_VERIFY_ADMIN,
        Permission.ACHIEVEMENT_AWARD,
        Permission.DISCOVERY_REVIEW,
        Permission.DISCOVERY_DELETE,
        Permission.REVIEW_MODERATE,
        Permission.COMMENT_MODERATE,
        Permission.RESOURCE_MANAGE,
        Permission.PROMPT_FEATURE,
        Permission.PROMPT_DELETE_ANY,
    ],
    UserRole.MODERATOR.value: [
        Permission.DISCOVERY_REVIEW,
        Permission.REVIEW_MODERATE,
        Permission.COMMENT_MODERATE,
        Permission.RESOURCE_MANAGE,
        Permission.PROMPT_FEATURE,
    ],
    UserRole.USER.value: [],
}


def has_permission(user: User, permission: str) -> bool:
    """
    Check if a user has a specific permission

    Args:
        user: User object
        permission: Permission string (e.g., "discovery:review")
    """
    user_permissions = ROLE_PERMISSIONS.get(user.role, [])

    if Permission.ADMIN_ALL in user_permissions:
        return True

    return permission in user_permissions
