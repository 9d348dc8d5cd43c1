# =============================================================================
# lib/passwords.py - Password Hashing
# =============================================================================
# bcrypt hashes with a cost factor of 12.
# =============================================================================

import secrets

import bcrypt

BCRYPT_ROUNDS = 12

# bcrypt only looks at the first 72 bytes of input
_MAX_PASSWORD_BYTES = 72


def _encode(password: str) -> bytes:
    return password.encode("utf-8")[:_MAX_PASSWORD_BYTES]


def hash_password(password: str) -> str:
    return bcrypt.hashpw(_encode(password), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Constant-time comparison of `password` against a stored hash."""
    try:
        return bcrypt.checkpw(_encode(password), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


def generate_secure_token() -> str:
    """64 hex chars, used for password reset and email verification links."""
    return secrets.token_hex(32)
