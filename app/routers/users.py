# =============================================================================
# app/routers/users.py - Profile Endpoints
# =============================================================================
# The signed-in user's own profile. All endpoints require authentication.
# =============================================================================

from fastapi import APIRouter

from app.dependencies import CurrentUser, SessionDep
from core.models import AvatarUpdate, ProfileUpdate, UserProfile, success_response
from core.services import UserService

router = APIRouter()


@router.get("/me")
async def get_profile(user: CurrentUser, session: SessionDep):
    profile = await UserService.get_profile(session, user.id)
    return success_response(UserProfile.model_validate(profile))


@router.patch("/me")
async def update_profile(body: ProfileUpdate, user: CurrentUser, session: SessionDep):
    """
    Partially update the profile.

    Only fields present in the body change; send null to clear phone, bio
    or a profile URL.
    """
    profile = await UserService.update_profile(session, user.id, body)
    return success_response(UserProfile.model_validate(profile))


@router.post("/me/avatar")
async def update_avatar(body: AvatarUpdate, user: CurrentUser, session: SessionDep):
    """Set the profile picture to an already-hosted image URL."""
    profile = await UserService.update_profile_picture(session, user.id, body.profile_picture_url)
    return success_response(UserProfile.model_validate(profile))
