# =============================================================================
# app/dependencies.py - Shared Dependencies
# =============================================================================
# FastAPI dependency injection for shared resources.
# These are injected into route handlers using Depends().
#
# Everything comes from app.state (set up by create_app), never from module
# globals, so tests can build an app around their own settings and database.
# =============================================================================

from collections.abc import AsyncIterator
from typing import Annotated, Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user, get_current_user_optional
from app.auth.models import AuthUser
from app.config import Settings
from lib.database import DatabaseClient


async def get_db_session(request: Request) -> AsyncIterator[AsyncSession]:
    """
    One unit of work per request.

    Commits when the handler returns, rolls back if it raises. Declared with
    scope="function" so the commit finishes before the response is sent: a
    failing commit still reaches the exception handlers, and the request
    stays in flight for the drain until it is durable.
    """
    async with request.app.state.db.session() as session:
        yield session


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_database(request: Request) -> DatabaseClient:
    return request.app.state.db


# Type aliases for dependency injection
SessionDep = Annotated[AsyncSession, Depends(get_db_session, scope="function")]
SettingsDep = Annotated[Settings, Depends(get_app_settings)]
DatabaseDep = Annotated[DatabaseClient, Depends(get_database)]
CurrentUser = Annotated[AuthUser, Depends(get_current_user)]
OptionalUser = Annotated[Optional[AuthUser], Depends(get_current_user_optional)]
