# =============================================================================
# core/services/auth_service.py - Authentication Business Logic
# =============================================================================
# Accounts and credentials:
# - register / login: issue an access + refresh token pair
# - refresh: rotate the refresh token (old one revoked in the same commit)
# - logout: revoke a refresh token
# - forgot / reset password, verify / resend e-mail verification
#
# Refresh tokens are JWTs *and* rows in refresh_tokens, so a token can be
# revoked before it expires.
# =============================================================================

import logging
from datetime import timedelta
from typing import Any

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.exceptions import ConflictError, NotFoundError, UnauthorizedError, ValidationError
from core.entities import RefreshToken, User, UserRole
from core.models import AuthResponse, AuthUserResponse, RegisterRequest, TokenPairResponse
from lib.database import after_commit
from lib.logger import track_operation
from lib.passwords import generate_secure_token, hash_password, verify_password
from lib.tokens import TokenPair, TokenPayload, generate_token_pair, verify_refresh_token
from lib.utils import as_utc, utcnow

from .notification_service import NotificationService

logger = logging.getLogger(__name__)

REFRESH_TOKEN_LIFETIME = timedelta(days=7)
PASSWORD_RESET_LIFETIME = timedelta(hours=1)
EMAIL_VERIFICATION_LIFETIME = timedelta(hours=24)

RESET_REQUESTED_MESSAGE = "If an account with that email exists, a reset link was sent."
VERIFICATION_SENT_MESSAGE = "If an unverified account with that email exists, a verification link was sent."


class AuthService:
    """
    Service for authentication operations.

    Every method takes the request's AsyncSession first; the session is
    committed by the caller's unit of work (DatabaseClient.session()).
    """

    @staticmethod
    async def _find_by_email(session: AsyncSession, email: str) -> User | None:
        return await session.scalar(select(User).where(User.email == email))

    @staticmethod
    async def _issue_tokens(session: AsyncSession, user: User) -> TokenPair:
        """Create a token pair and persist its refresh half."""
        tokens = generate_token_pair(get_settings(), TokenPayload(user.id, user.email, user.role.value))
        session.add(
            RefreshToken(
                user_id=user.id,
                token=tokens.refresh_token,
                expires_at=utcnow() + REFRESH_TOKEN_LIFETIME,
            )
        )
        await session.flush()
        return tokens

    @staticmethod
    def _auth_response(user: User, tokens: TokenPair) -> AuthResponse:
        return AuthResponse(
            user=AuthUserResponse.model_validate(user),
            tokens=TokenPairResponse(access_token=tokens.access_token, refresh_token=tokens.refresh_token),
        )

    # -------------------------------------------------------------------------
    # Register / Login
    # -------------------------------------------------------------------------

    @staticmethod
    async def register(session: AsyncSession, data: RegisterRequest) -> AuthResponse:
        """
        Create an account and sign it in.

        A verification e-mail is queued; the account works before it is
        verified.

        Raises:
            ConflictError: If the email is already registered
        """
        tracker = track_operation("auth.register", email=data.email, role=data.role)

        if await AuthService._find_by_email(session, data.email):
            tracker.warn("Registration with existing email", outcome="conflict")
            raise ConflictError("User with this email already exists")

        verification_token = generate_secure_token()
        user = User(
            email=data.email,
            password_hash=hash_password(data.password),
            full_name=data.full_name,
            role=UserRole(data.role),
            skills=[],
            email_verification_token=verification_token,
            email_verification_expiry=utcnow() + EMAIL_VERIFICATION_LIFETIME,
        )
        session.add(user)
        await session.flush()
        await session.refresh(user)

        tokens = await AuthService._issue_tokens(session, user)
        after_commit(session, NotificationService.send_email_verification, user.email, verification_token)

        tracker.success(user_id=user.id)
        return AuthService._auth_response(user, tokens)

    @staticmethod
    async def login(session: AsyncSession, email: str, password: str) -> AuthResponse:
        """
        Raises:
            UnauthorizedError: Unknown email or wrong password (same message
                for both so accounts cannot be enumerated)
        """
        user = await AuthService._find_by_email(session, email)
        if user is None or not verify_password(password, user.password_hash):
            logger.warning("Failed login attempt", extra={"operation": "auth.login", "email": email})
            raise UnauthorizedError("Invalid email or password")

        tokens = await AuthService._issue_tokens(session, user)
        logger.info(f"User logged in: {user.email}", extra={"user_id": user.id})
        return AuthService._auth_response(user, tokens)

    # -------------------------------------------------------------------------
    # Refresh / Logout
    # -------------------------------------------------------------------------

    @staticmethod
    async def refresh(session: AsyncSession, refresh_token: str) -> TokenPairResponse:
        """
        Exchange a refresh token for a new pair.

        The presented token is revoked and the new one stored in the same
        transaction, so each refresh token works exactly once.

        Raises:
            UnauthorizedError: Bad signature, unknown, revoked or expired token
            NotFoundError: The token's user no longer exists
        """
        payload = verify_refresh_token(get_settings(), refresh_token)

        stored = await session.scalar(select(RefreshToken).where(RefreshToken.token == refresh_token))
        if stored is None or stored.is_revoked:
            raise UnauthorizedError("Invalid refresh token")
        if as_utc(stored.expires_at) < utcnow():
            raise UnauthorizedError("Refresh token expired")

        user = await session.get(User, payload.user_id)
        if user is None:
            raise NotFoundError("User not found")

        stored.is_revoked = True
        tokens = await AuthService._issue_tokens(session, user)

        logger.info(f"Token refreshed: {user.email}", extra={"user_id": user.id})
        return TokenPairResponse(access_token=tokens.access_token, refresh_token=tokens.refresh_token)

    @staticmethod
    async def logout(session: AsyncSession, refresh_token: str) -> None:
        stored = await session.scalar(select(RefreshToken).where(RefreshToken.token == refresh_token))
        if stored is None:
            raise UnauthorizedError("Invalid refresh token")

        stored.is_revoked = True
        await session.flush()
        logger.info(f"User logged out: {stored.user_id}")

    @staticmethod
    async def me(session: AsyncSession, user_id: str) -> User:
        user = await session.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    # -------------------------------------------------------------------------
    # Password Reset
    # -------------------------------------------------------------------------

    @staticmethod
    async def forgot_password(session: AsyncSession, email: str) -> dict[str, Any]:
        """Start a reset. The response is identical whether or not the account exists."""
        user = await AuthService._find_by_email(session, email)
        if user is None:
            logger.warning(f"Password reset requested for non-existent email: {email}")
            return {"message": RESET_REQUESTED_MESSAGE}

        user.password_reset_token = generate_secure_token()
        user.password_reset_expiry = utcnow() + PASSWORD_RESET_LIFETIME
        await session.flush()

        after_commit(session, NotificationService.send_password_reset, user.email, user.password_reset_token)
        logger.info(f"Password reset requested: {user.email}")
        return {"message": RESET_REQUESTED_MESSAGE}

    @staticmethod
    async def reset_password(session: AsyncSession, token: str, password: str) -> dict[str, Any]:
        """
        Raises:
            UnauthorizedError: Unknown or expired reset token
        """
        user = await session.scalar(select(User).where(User.password_reset_token == token))
        if user is None or user.password_reset_expiry is None or as_utc(user.password_reset_expiry) <= utcnow():
            raise UnauthorizedError("Invalid or expired reset token")

        user.password_hash = hash_password(password)
        user.password_reset_token = None
        user.password_reset_expiry = None
        await session.flush()

        logger.info(f"Password reset successful: {user.email}")
        return {"message": "Password reset successful"}

    # -------------------------------------------------------------------------
    # Email Verification
    # -------------------------------------------------------------------------

    @staticmethod
    async def verify_email(session: AsyncSession, token: str) -> dict[str, Any]:
        """
        Raises:
            ValidationError: Unknown or expired verification token
        """
        user = await session.scalar(select(User).where(User.email_verification_token == token))
        if (
            user is None
            or user.email_verification_expiry is None
            or as_utc(user.email_verification_expiry) <= utcnow()
        ):
            raise ValidationError("Invalid or expired verification token")

        user.is_email_verified = True
        user.email_verification_token = None
        user.email_verification_expiry = None
        await session.flush()

        after_commit(session, NotificationService.send_welcome, user)
        logger.info(f"Email verified: {user.email}", extra={"user_id": user.id})
        return {"message": "Email verified successfully"}

    @staticmethod
    async def resend_verification(session: AsyncSession, email: str) -> dict[str, Any]:
        """Issue a fresh verification link. Never reveals whether the account exists."""
        user = await AuthService._find_by_email(session, email)
        if user is None or user.is_email_verified:
            return {"message": VERIFICATION_SENT_MESSAGE}

        user.email_verification_token = generate_secure_token()
        user.email_verification_expiry = utcnow() + EMAIL_VERIFICATION_LIFETIME
        await session.flush()

        after_commit(session, NotificationService.send_email_verification, user.email, user.email_verification_token)
        return {"message": VERIFICATION_SENT_MESSAGE}

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    @staticmethod
    async def cleanup_expired_tokens(session: AsyncSession) -> int:
        """Delete expired and revoked refresh tokens. Returns the number removed."""
        result = await session.execute(
            delete(RefreshToken).where(or_(RefreshToken.expires_at < utcnow(), RefreshToken.is_revoked.is_(True)))
        )
        count = result.rowcount or 0
        logger.info(f"Cleaned {count} expired tokens")
        return count
