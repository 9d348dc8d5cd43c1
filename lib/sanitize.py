# =============================================================================
# lib/sanitize.py - Sensitive Field Redaction
# =============================================================================
# Scrubs credentials and personal data out of request bodies and headers
# before they are written to logs.
#
# Usage:
#   from lib.sanitize import sanitize, sanitize_headers
#
#   sanitize({"email": "a@b.com", "password": "secret123"})
#   # {"email": "a@b.com", "password": "***REDACTED***"}
# =============================================================================

from collections.abc import Mapping
from typing import Any

REDACTED = "***REDACTED***"

# Compared after lowercasing and dropping '_' / '-', so refresh_token,
# refreshToken and Refresh-Token all match
SENSITIVE_FIELDS = frozenset({
    "password",
    "passwordhash",
    "token",
    "accesstoken",
    "refreshtoken",
    "secret",
    "apikey",
    "creditcard",
    "ssn",
    "cvv",
    "cookie",
    "authorization",
})


def _normalize(key: str) -> str:
    return key.lower().replace("_", "").replace("-", "")


def is_sensitive(key: Any) -> bool:
    """True if `key` names a field whose value must never be logged."""
    return isinstance(key, str) and _normalize(key) in SENSITIVE_FIELDS


def sanitize(value: Any) -> Any:
    """
    Return a copy of `value` with sensitive fields redacted.

    Walks nested mappings and sequences; the input is never mutated.
    Scalars are returned as-is.
    """
    if isinstance(value, Mapping):
        return {
            key: REDACTED if is_sensitive(key) else sanitize(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [sanitize(item) for item in value]
    return value


def sanitize_headers(headers: Mapping[str, str] | None) -> dict[str, str]:
    """Redact credential-bearing headers (Authorization, Cookie, ...)."""
    if not headers:
        return {}
    return {
        key: REDACTED if is_sensitive(key) else value
        for key, value in headers.items()
    }
