# =============================================================================
# lib/tokens.py - JWT Issuing & Verification
# =============================================================================
# Access and refresh tokens are HS256 JWTs signed with separate secrets.
#
# Payload:
#   {"userId": ..., "email": ..., "role": ..., "type": "access"|"refresh",
#    "iat": ..., "exp": ..., "jti": ...}
#
# Usage:
#   from lib.tokens import generate_token_pair, verify_access_token
#
#   tokens = generate_token_pair(settings, TokenPayload(user.id, user.email, user.role))
#   payload = verify_access_token(settings, tokens.access_token)
# =============================================================================

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from jose import ExpiredSignatureError, JWTError, jwt

from app.exceptions import UnauthorizedError

ALGORITHM = "HS256"


@dataclass(frozen=True)
class TokenPayload:
    user_id: str
    email: str
    role: str


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str

    def to_dict(self) -> dict[str, str]:
        return {"accessToken": self.access_token, "refreshToken": self.refresh_token}


def _encode(payload: TokenPayload, token_type: str, secret: str, ttl) -> str:
    now = datetime.now(timezone.utc)
    claims = {
        "userId": payload.user_id,
        "email": payload.email,
        "role": payload.role,
        "type": token_type,
        "iat": now,
        "exp": now + ttl,
        # Unique per token so two pairs issued in the same second differ
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(claims, secret, algorithm=ALGORITHM)


def generate_access_token(settings, payload: TokenPayload) -> str:
    return _encode(payload, "access", settings.JWT_ACCESS_SECRET, settings.access_token_ttl)


def generate_refresh_token(settings, payload: TokenPayload) -> str:
    return _encode(payload, "refresh", settings.JWT_REFRESH_SECRET, settings.refresh_token_ttl)


def generate_token_pair(settings, payload: TokenPayload) -> TokenPair:
    return TokenPair(
        access_token=generate_access_token(settings, payload),
        refresh_token=generate_refresh_token(settings, payload),
    )


def _decode(token: str, secret: str, token_type: str, label: str) -> TokenPayload:
    try:
        claims = jwt.decode(token, secret, algorithms=[ALGORITHM])
    except ExpiredSignatureError:
        raise UnauthorizedError(f"{label} expired")
    except JWTError:
        raise UnauthorizedError(f"Invalid {label.lower()}")

    if claims.get("type") != token_type or not claims.get("userId"):
        raise UnauthorizedError(f"Invalid {label.lower()}")

    return TokenPayload(
        user_id=claims["userId"],
        email=claims.get("email", ""),
        role=claims.get("role", ""),
    )


def verify_access_token(settings, token: str) -> TokenPayload:
    """
    Verify an access token.

    Raises:
        UnauthorizedError: "Access token expired" or "Invalid access token"
    """
    return _decode(token, settings.JWT_ACCESS_SECRET, "access", "Access token")


def verify_refresh_token(settings, token: str) -> TokenPayload:
    """
    Verify a refresh token's signature and expiry.

    Revocation is checked separately against the refresh_tokens table.

    Raises:
        UnauthorizedError: "Refresh token expired" or "Invalid refresh token"
    """
    return _decode(token, settings.JWT_REFRESH_SECRET, "refresh", "Refresh token")
