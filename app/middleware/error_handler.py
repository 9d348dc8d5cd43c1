# =============================================================================
# app/middleware/error_handler.py - Error Envelope Translation
# =============================================================================
# Turns any exception into the API error envelope:
#
#   {"success": false,
#    "error": {"code": "...", "message": "...",
#              "details": {"errorId": "...", "correlationId": "...", ...}}}
#
# translate_exception() is the one mapping. It is used by:
# - the FastAPI exception handlers registered in install_exception_handlers()
# - ErrorHandlerMiddleware, the innermost pipeline stage, which catches
#   whatever the handlers do not claim
#
# Logging policy:
# - 4xx (validation, not found, conflicts, auth) -> WARNING
# - database timeouts / database errors -> ERROR with pool stats attached
# - anything unrecognized -> ERROR with the traceback
# Request headers are sanitized before they reach the log.
# =============================================================================

import logging
import re
import uuid
from typing import Any, NamedTuple

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel
from sqlalchemy.exc import (
    ArgumentError,
    DataError,
    DBAPIError,
    IntegrityError,
    NoResultFound,
    SQLAlchemyError,
    StatementError,
)
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.exceptions import CodionixException, DatabaseTimeoutError
from core.models import error_body
from lib.logger import get_correlation_id
from lib.sanitize import sanitize_headers

logger = logging.getLogger(__name__)

_PG_KEY_RE = re.compile(r"Key \(([^)]+)\)=")
_SQLITE_UNIQUE_RE = re.compile(r"UNIQUE constraint failed: (.+)")
_VALUE_ERROR_PREFIX = "Value error, "

_HTTP_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    413: "PAYLOAD_TOO_LARGE",
    415: "UNSUPPORTED_MEDIA_TYPE",
    429: "RATE_LIMIT_EXCEEDED",
    503: "SERVICE_UNAVAILABLE",
}


class TranslatedError(NamedTuple):
    status_code: int
    code: str
    message: str
    details: Any
    level: int


# =============================================================================
# Helpers
# =============================================================================

def _field_name(loc: tuple) -> str:
    # Drop the request part FastAPI prefixes ("body", "query", ...)
    parts = list(loc)
    if parts and parts[0] in ("body", "query", "path", "header", "cookie"):
        parts = parts[1:]
    return ".".join(str(part) for part in parts)


def validation_details(errors: list[dict[str, Any]]) -> list[dict[str, str]]:
    """Flatten pydantic errors to [{field, message}]."""
    details = []
    for error in errors:
        message = str(error.get("msg", "Invalid value"))
        if message.startswith(_VALUE_ERROR_PREFIX):
            message = message[len(_VALUE_ERROR_PREFIX):]
        details.append({"field": _field_name(error.get("loc", ())), "message": message})
    return details


def unique_violation_fields(exc: IntegrityError) -> list[str] | None:
    """
    Column names behind a unique-constraint violation, or None if the
    IntegrityError is something else (FK, NOT NULL, ...).

    Understands the PostgreSQL detail line `Key (email)=(...)` and SQLite's
    `UNIQUE constraint failed: users.email`.
    """
    text = str(exc.orig) if exc.orig is not None else str(exc)
    lowered = text.lower()
    if "unique" not in lowered and "duplicate key" not in lowered:
        return None

    match = _PG_KEY_RE.search(text)
    if match:
        return [to_camel(name.strip()) for name in match.group(1).split(",")]

    match = _SQLITE_UNIQUE_RE.search(text)
    if match:
        columns = match.group(1).strip().split(",")
        return [to_camel(column.strip().split(".")[-1]) for column in columns]

    return []


# =============================================================================
# Translation
# =============================================================================

def translate_exception(exc: BaseException) -> TranslatedError:
    """Map an exception to (status, code, message, details, log level)."""
    if isinstance(exc, CodionixException):
        level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
        return TranslatedError(exc.status_code, exc.code, exc.message, exc.details, level)

    if isinstance(exc, (RequestValidationError, PydanticValidationError)):
        return TranslatedError(
            400, "VALIDATION_ERROR", "Validation failed", validation_details(exc.errors()), logging.WARNING
        )

    if isinstance(exc, IntegrityError):
        fields = unique_violation_fields(exc)
        if fields is not None:
            message = f"{', '.join(fields)} already exists" if fields else "Resource already exists"
            return TranslatedError(409, "CONFLICT", message, None, logging.WARNING)
        return TranslatedError(400, "VALIDATION_ERROR", "Invalid data provided", None, logging.WARNING)

    if isinstance(exc, NoResultFound):
        return TranslatedError(404, "NOT_FOUND", "Record not found", None, logging.WARNING)

    if isinstance(exc, PoolTimeoutError):
        return TranslatedError(
            503, "DATABASE_TIMEOUT", DatabaseTimeoutError().message, None, logging.ERROR
        )

    if isinstance(exc, (DataError, ArgumentError)) or (
        isinstance(exc, StatementError) and not isinstance(exc, DBAPIError)
    ):
        return TranslatedError(400, "VALIDATION_ERROR", "Invalid data provided", None, logging.WARNING)

    if isinstance(exc, SQLAlchemyError):
        return TranslatedError(500, "DATABASE_ERROR", "Database error", None, logging.ERROR)

    if isinstance(exc, StarletteHTTPException):
        code = _HTTP_CODES.get(exc.status_code, "HTTP_ERROR")
        level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
        return TranslatedError(exc.status_code, code, str(exc.detail), None, level)

    return TranslatedError(500, "INTERNAL_ERROR", "An unexpected error occurred", None, logging.ERROR)


def _is_database_error(exc: BaseException) -> bool:
    return isinstance(exc, (SQLAlchemyError, DatabaseTimeoutError))


def _pool_stats(request: Request) -> dict[str, Any] | None:
    app = request.scope.get("app")
    db = getattr(app.state, "db", None) if app is not None else None
    if db is None:
        return None
    return db.get_pool_stats().to_dict()


def error_response(request: Request, exc: BaseException) -> JSONResponse:
    """Translate, log and render one exception."""
    status_code, code, message, details, level = translate_exception(exc)
    error_id = str(uuid.uuid4())
    correlation_id = get_correlation_id() or "unknown"

    if isinstance(exc, StarletteHTTPException) and status_code == 404:
        message = f"Route {request.method} {request.url.path} not found"

    context: dict[str, Any] = {
        "error_id": error_id,
        "status_code": status_code,
        "error_code": code,
        "method": request.method,
        "url": str(request.url),
        "headers": sanitize_headers(request.headers),
        "error_type": type(exc).__name__,
    }
    user = getattr(request.state, "user", None)
    if user is not None:
        context["user_id"] = user.id
    if _is_database_error(exc) and level >= logging.ERROR:
        context["pool"] = _pool_stats(request)
    if isinstance(details, list) and code == "VALIDATION_ERROR":
        context["validation_errors"] = details

    unknown = code in ("INTERNAL_ERROR", "DATABASE_ERROR")
    logger.log(level, f"{code}: {exc}", extra=context, exc_info=exc if unknown else None)

    envelope_details: dict[str, Any] = {"errorId": error_id, "correlationId": correlation_id}
    if isinstance(details, dict):
        envelope_details = {**details, **envelope_details}
    elif details:
        envelope_details["errors"] = details

    headers = getattr(exc, "headers", None) if isinstance(exc, StarletteHTTPException) else None
    return JSONResponse(
        status_code=status_code,
        content=error_body(code, message, envelope_details),
        headers=headers,
    )


# =============================================================================
# Registration
# =============================================================================

async def _handle(request: Request, exc: Exception) -> JSONResponse:
    return error_response(request, exc)


def install_exception_handlers(app: FastAPI) -> None:
    """
    Route domain, validation, database and routing errors through
    error_response(). Anything else falls through to ErrorHandlerMiddleware.
    """
    for exc_class in (
        CodionixException,
        RequestValidationError,
        PydanticValidationError,
        SQLAlchemyError,
        StarletteHTTPException,
    ):
        app.add_exception_handler(exc_class, _handle)


class ErrorHandlerMiddleware:
    """
    Innermost pipeline stage: the catch-all for exceptions no registered
    handler claimed.

    If the response has already started there is nothing left to render,
    so the exception is logged and re-raised.
    """

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        response_started = False

        async def send_wrapper(message):
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except Exception as exc:
            if response_started:
                logger.error(f"Exception after response started: {exc}", exc_info=exc)
                raise
            response = error_response(Request(scope, receive), exc)
            await response(scope, receive, send)
