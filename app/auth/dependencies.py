# =============================================================================
# app/auth/dependencies.py - FastAPI Auth Dependencies
# =============================================================================
# Provides dependency injection for authentication and role checks.
#
# Tokens are HS256 access JWTs issued by AuthService (see lib/tokens.py).
# The authenticated user is also stored on request.state.user so the access
# and error logs can attribute the request.
#
# Usage:
#   from app.auth import get_current_user, can_create_projects, AuthUser
#
#   @router.get("/protected")
#   async def protected(user: AuthUser = Depends(get_current_user)):
#       return {"user_id": user.id}
#
#   @router.post("/projects")
#   async def create(user: AuthUser = Depends(can_create_projects)):
#       ...
# =============================================================================

import logging
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.auth.models import AuthUser
from app.exceptions import CodionixException, ForbiddenError, UnauthorizedError
from core.entities import UserRole
from lib.tokens import verify_access_token

logger = logging.getLogger(__name__)

# auto_error=False so a missing header becomes our own 401 envelope
security = HTTPBearer(auto_error=False)

FORBIDDEN_MESSAGE = "You do not have permission to perform this action"


def _authenticate(request: Request, token: str) -> AuthUser:
    payload = verify_access_token(request.app.state.settings, token)
    user = AuthUser(id=payload.user_id, email=payload.email, role=UserRole(payload.role))
    request.state.user = user
    return user


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> AuthUser:
    """
    Extract and validate the user from the Bearer access token.

    Raises:
        UnauthorizedError: No token, bad signature, wrong token type or
            expired token
    """
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError("No token provided")

    user = _authenticate(request, credentials.credentials)
    logger.debug(f"Authenticated user: {user.id}")
    return user


async def get_current_user_optional(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[AuthUser]:
    """
    Like get_current_user, but anonymous callers get None instead of a 401.

    Invalid tokens are treated as anonymous too.
    """
    if credentials is None or not credentials.credentials:
        return None
    try:
        return _authenticate(request, credentials.credentials)
    except (CodionixException, ValueError) as e:
        logger.debug(f"Ignoring invalid optional token: {e}")
        return None


# =============================================================================
# Role Guards
# =============================================================================

def require_roles(*roles: UserRole):
    """
    Build a dependency that admits only the given roles.

    Example:
        @router.get("/admin", dependencies=[Depends(require_roles(UserRole.ADMIN))])
    """
    allowed = frozenset(roles)

    async def checker(user: AuthUser = Depends(get_current_user)) -> AuthUser:
        if user.role not in allowed:
            logger.warning(
                "Role check failed",
                extra={
                    "user_id": user.id,
                    "user_role": user.role.value,
                    "required_roles": sorted(r.value for r in allowed),
                },
            )
            raise ForbiddenError(FORBIDDEN_MESSAGE)
        return user

    return checker


can_create_projects = require_roles(UserRole.MENTOR, UserRole.EMPLOYER)
is_student = require_roles(UserRole.STUDENT)
is_admin = require_roles(UserRole.ADMIN)
