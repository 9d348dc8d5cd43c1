# =============================================================================
# core/models/common.py - Shared Schema Building Blocks
# =============================================================================
# - CamelModel: base class, camelCase on the wire, snake_case in Python
# - Pagination / Paginated: list envelopes
# - Reusable validated field types (passwords, URLs, string lists)
# - success_response / error_body: the JSON envelope every endpoint returns
# =============================================================================

import re
from typing import Annotated, Any, Generic, TypeVar

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import AfterValidator, BaseModel, ConfigDict, Field, HttpUrl, TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from lib.utils import total_pages

T = TypeVar("T")


class CamelModel(BaseModel):
    """
    Base for all API schemas.

    JSON uses camelCase (fullName, projectType); Python attributes stay
    snake_case. Either form is accepted on input.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        str_strip_whitespace=True,
    )


class StrictCamelModel(CamelModel):
    """Partial-update bodies: unknown fields are rejected."""

    model_config = ConfigDict(extra="forbid")


# =============================================================================
# Field Types
# =============================================================================

_PASSWORD_RULES = (
    (re.compile(r"[A-Z]"), "Password must contain at least one uppercase letter"),
    (re.compile(r"[a-z]"), "Password must contain at least one lowercase letter"),
    (re.compile(r"[0-9]"), "Password must contain at least one number"),
    (re.compile(r"[!@#$%^&*(),.?\":{}|<>_]"), "Password must contain at least one special character"),
)


def _check_password(value: str) -> str:
    if len(value) < 8:
        raise ValueError("Password must be at least 8 characters")
    for pattern, message in _PASSWORD_RULES:
        if not pattern.search(value):
            raise ValueError(message)
    return value


def _check_entries(values: list[str]) -> list[str]:
    if any(not item for item in values):
        raise ValueError("Entries cannot be empty")
    return values


_http_url = TypeAdapter(HttpUrl)


def _check_url(value: str) -> str:
    # Stored as plain text; HttpUrl only validates
    try:
        _http_url.validate_python(value)
    except PydanticValidationError:
        raise ValueError("Invalid URL") from None
    return value


def string_list(min_items: int = 0, max_items: int | None = None):
    """List of trimmed, non-empty strings with size bounds."""
    return Annotated[
        list[str],
        Field(min_length=min_items, max_length=max_items),
        AfterValidator(_check_entries),
    ]


Password = Annotated[str, AfterValidator(_check_password)]
HttpUrlStr = Annotated[str, AfterValidator(_check_url)]


# =============================================================================
# Pagination
# =============================================================================

class Pagination(CamelModel):
    total: int
    page: int
    limit: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool

    @classmethod
    def build(cls, total: int, page: int, limit: int) -> "Pagination":
        pages = total_pages(total, limit)
        return cls(
            total=total,
            page=page,
            limit=limit,
            total_pages=pages,
            has_next_page=page < pages,
            has_prev_page=page > 1,
        )


class Paginated(CamelModel, Generic[T]):
    """A page of results plus pagination metadata."""
    data: list[T]
    pagination: Pagination


class PaginationParams(CamelModel):
    page: int = Field(default=1, ge=1, description="Page number (1-based)")
    limit: int = Field(default=10, ge=1, le=100, description="Items per page")


# =============================================================================
# Response Envelope
# =============================================================================
# Success: {"success": true, "data": ..., "message"?: ...}
# Failure: {"success": false, "error": {"code", "message", "details"?}}

def success_response(
    data: Any = None,
    status_code: int = 200,
    message: str | None = None,
) -> JSONResponse:
    body: dict[str, Any] = {"success": True, "data": jsonable_encoder(data, by_alias=True)}
    if message:
        body["message"] = message
    return JSONResponse(status_code=status_code, content=body)


def paginated_response(page: Paginated, item_model: type[BaseModel] | None = None) -> JSONResponse:
    """
    List endpoints put the items in `data` and the page metadata beside it.

    Pass `item_model` when the page holds ORM rows.
    """
    items = page.data if item_model is None else [item_model.model_validate(row) for row in page.data]
    body = {
        "success": True,
        "data": jsonable_encoder(items, by_alias=True),
        "pagination": page.pagination.model_dump(by_alias=True),
    }
    return JSONResponse(status_code=200, content=body)


def error_body(code: str, message: str, details: Any = None) -> dict[str, Any]:
    error: dict[str, Any] = {"code": code, "message": message}
    if details:
        error["details"] = details
    return {"success": False, "error": error}
