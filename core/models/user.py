# =============================================================================
# core/models/user.py - User & Auth Schemas
# =============================================================================
# These models define the API contract for accounts:
# - RegisterRequest / LoginRequest / token bodies: auth endpoint inputs
# - AuthUserResponse / AuthResponse: what register and login return
# - UserSummary: the short form embedded in projects and feedback
# - UserProfile / ProfileUpdate: the /users/me resource
# =============================================================================

from datetime import datetime
from typing import Literal

from pydantic import EmailStr, Field

from core.entities import UserRole

from .common import CamelModel, HttpUrlStr, Password, StrictCamelModel, string_list


# =============================================================================
# Auth Requests
# =============================================================================

class RegisterRequest(CamelModel):
    """
    Schema for creating an account.

    ADMIN accounts cannot be self-registered.

    Example:
        {
            "email": "ada@example.com",
            "password": "Str0ng!pass",
            "fullName": "Ada Lovelace",
            "role": "STUDENT"
        }
    """

    email: EmailStr = Field(..., description="Login email, must be unique")
    password: Password = Field(..., description="8+ chars with upper, lower, digit and special")
    full_name: str = Field(..., min_length=2, max_length=100, description="Display name")
    role: Literal["STUDENT", "MENTOR", "EMPLOYER"] = Field(..., description="Account type")


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class RefreshTokenRequest(CamelModel):
    """Body for /auth/refresh and /auth/logout."""
    refresh_token: str = Field(..., min_length=1)


class ForgotPasswordRequest(CamelModel):
    email: EmailStr


class ResetPasswordRequest(CamelModel):
    token: str = Field(..., min_length=1, description="Token from the reset e-mail")
    password: Password


class VerifyEmailRequest(CamelModel):
    token: str = Field(..., min_length=1, description="Token from the verification e-mail")


class ResendVerificationRequest(CamelModel):
    email: EmailStr


# =============================================================================
# Auth Responses
# =============================================================================

class AuthUserResponse(CamelModel):
    id: str
    email: str
    full_name: str
    role: UserRole
    is_email_verified: bool
    profile_picture_url: str | None = None
    created_at: datetime


class TokenPairResponse(CamelModel):
    access_token: str
    refresh_token: str


class AuthResponse(CamelModel):
    """
    Returned by register and login.

    Example:
        {
            "user": {"id": "...", "email": "ada@example.com", ...},
            "tokens": {"accessToken": "eyJ...", "refreshToken": "eyJ..."}
        }
    """

    user: AuthUserResponse
    tokens: TokenPairResponse


class CurrentUserResponse(CamelModel):
    """GET /auth/me: the identity carried by the access token."""
    user_id: str
    email: str
    role: UserRole


# =============================================================================
# Profiles
# =============================================================================

class UserSummary(CamelModel):
    """Embedded in projects (createdBy) and feedback (mentor)."""
    id: str
    full_name: str
    role: UserRole


class UserProfile(CamelModel):
    id: str
    email: str
    full_name: str
    role: UserRole
    phone: str | None = None
    bio: str | None = None
    profile_picture_url: str | None = None
    linkedin_url: str | None = None
    github_url: str | None = None
    skills: list[str] = Field(default_factory=list)
    is_email_verified: bool
    created_at: datetime
    updated_at: datetime


class ProfileUpdate(StrictCamelModel):
    """
    Partial profile update.

    Only fields present in the body are written. Sending null clears an
    optional field; unknown fields are rejected.
    """

    full_name: str | None = Field(default=None, min_length=2, max_length=100)
    phone: str | None = Field(default=None, pattern=r"^\+?[1-9]\d{1,14}$", description="E.164 number")
    bio: str | None = Field(default=None, max_length=500)
    linkedin_url: HttpUrlStr | None = None
    github_url: HttpUrlStr | None = None
    skills: string_list(max_items=20) | None = None


class AvatarUpdate(CamelModel):
    profile_picture_url: HttpUrlStr = Field(..., description="Public URL of the uploaded picture")
