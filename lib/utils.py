# =============================================================================
# lib/utils.py - Shared Utilities
# =============================================================================
# Common utilities used across the application.
# =============================================================================

import math
import uuid
from datetime import datetime, timezone


# =============================================================================
# UUID Utilities
# =============================================================================

def new_id() -> str:
    """Generate a new primary key (UUID4 as string)."""
    return str(uuid.uuid4())


# =============================================================================
# Time Utilities
# =============================================================================

def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """
    Attach UTC to naive datetimes.

    Some drivers (SQLite) return naive values for timezone-aware columns;
    everything stored by this app is UTC.
    """
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


# =============================================================================
# Pagination
# =============================================================================

def page_offset(page: int, limit: int) -> int:
    return (page - 1) * limit


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0
