# =============================================================================
# app/auth/routes.py - Authentication Routes
# =============================================================================
# Endpoints:
# - POST /auth/register              - Create an account (201)
# - POST /auth/login                 - Exchange credentials for tokens
# - POST /auth/refresh               - Rotate the refresh token
# - POST /auth/logout                - Revoke a refresh token
# - GET  /auth/me                    - Identity behind the access token
# - POST /auth/forgot-password       - Mail a reset link
# - POST /auth/reset-password        - Set a new password with the link token
# - POST /auth/verify-email          - Confirm the e-mail address
# - POST /auth/resend-verification   - Mail a fresh verification link
# =============================================================================

import logging

from fastapi import APIRouter, status

from app.dependencies import CurrentUser, SessionDep
from core.models import (
    CurrentUserResponse,
    ForgotPasswordRequest,
    LoginRequest,
    RefreshTokenRequest,
    RegisterRequest,
    ResendVerificationRequest,
    ResetPasswordRequest,
    VerifyEmailRequest,
    success_response,
)
from core.services import AuthService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(body: RegisterRequest, session: SessionDep):
    """
    Register a new account and sign it in.

    Returns the user and an access/refresh token pair. A verification e-mail
    is queued in the background.
    """
    result = await AuthService.register(session, body)
    return success_response(result, status_code=status.HTTP_201_CREATED)


@router.post("/login")
async def login(body: LoginRequest, session: SessionDep):
    result = await AuthService.login(session, body.email, body.password)
    return success_response(result)


@router.post("/refresh")
async def refresh_token(body: RefreshTokenRequest, session: SessionDep):
    """Each refresh token works once; the response carries its replacement."""
    tokens = await AuthService.refresh(session, body.refresh_token)
    return success_response(tokens)


@router.post("/logout")
async def logout(body: RefreshTokenRequest, session: SessionDep):
    await AuthService.logout(session, body.refresh_token)
    return success_response({"message": "Logged out successfully"})


@router.get("/me")
async def get_current_user_info(user: CurrentUser):
    """
    Identity encoded in the access token.

    Does not hit the database; use GET /users/me for the full profile.
    """
    return success_response(CurrentUserResponse(user_id=user.id, email=user.email, role=user.role.value))


@router.post("/forgot-password")
async def forgot_password(body: ForgotPasswordRequest, session: SessionDep):
    return success_response(await AuthService.forgot_password(session, body.email))


@router.post("/reset-password")
async def reset_password(body: ResetPasswordRequest, session: SessionDep):
    return success_response(await AuthService.reset_password(session, body.token, body.password))


@router.post("/verify-email")
async def verify_email(body: VerifyEmailRequest, session: SessionDep):
    return success_response(await AuthService.verify_email(session, body.token))


@router.post("/resend-verification")
async def resend_verification(body: ResendVerificationRequest, session: SessionDep):
    return success_response(await AuthService.resend_verification(session, body.email))
