# =============================================================================
# app/auth/__init__.py - Authentication Module
# =============================================================================
# Bearer-token authentication and role guards, plus the /auth endpoints.
#
# Usage:
#   from app.auth import get_current_user, AuthUser
#
#   @router.get("/protected")
#   async def protected(user: AuthUser = Depends(get_current_user)):
#       return {"user_id": user.id}
# =============================================================================

from app.auth.dependencies import (
    can_create_projects,
    get_current_user,
    get_current_user_optional,
    is_admin,
    is_student,
    require_roles,
)
from app.auth.models import AuthUser

__all__ = [
    "get_current_user",
    "get_current_user_optional",
    "require_roles",
    "can_create_projects",
    "is_student",
    "is_admin",
    "AuthUser",
]
