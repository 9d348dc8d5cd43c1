# =============================================================================
# core/services/user_service.py - User Profile Business Logic
# =============================================================================
# Read and update the signed-in user's own profile.
# =============================================================================

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import NotFoundError
from core.entities import User
from core.models import ProfileUpdate
from lib.logger import track_operation

logger = logging.getLogger(__name__)

# Columns that cannot be cleared; null in an update means "leave as is"
_REQUIRED_FIELDS = {"full_name", "skills"}


class UserService:
    """Service for profile operations."""

    @staticmethod
    async def get_profile(session: AsyncSession, user_id: str) -> User:
        """
        Raises:
            NotFoundError: If the user does not exist
        """
        tracker = track_operation("user.getProfile", user_id=user_id)
        user = await session.get(User, user_id)
        if user is None:
            tracker.warn("User not found", outcome="not_found")
            raise NotFoundError("User not found")

        tracker.success(role=user.role.value)
        return user

    @staticmethod
    async def update_profile(session: AsyncSession, user_id: str, data: ProfileUpdate) -> User:
        """
        Apply a partial update.

        Only fields present in the request body are written.
        """
        changes = data.model_dump(exclude_unset=True)
        tracker = track_operation("user.updateProfile", user_id=user_id, fields=sorted(changes))

        user = await session.get(User, user_id)
        if user is None:
            tracker.warn("User not found", outcome="not_found")
            raise NotFoundError("User not found")

        for field, value in changes.items():
            if value is None and field in _REQUIRED_FIELDS:
                continue
            setattr(user, field, value)

        await session.flush()
        await session.refresh(user)
        tracker.success()
        return user

    @staticmethod
    async def update_profile_picture(session: AsyncSession, user_id: str, url: str) -> User:
        user = await session.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")

        user.profile_picture_url = url
        await session.flush()
        await session.refresh(user)
        logger.info("Profile picture updated", extra={"user_id": user_id})
        return user
