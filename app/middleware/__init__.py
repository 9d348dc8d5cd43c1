# =============================================================================
# app/middleware/ - Request Pipeline
# =============================================================================
# The HTTP pipeline is an explicit ordered list of ASGI stages, outermost
# first:
#
#   1. CorrelationMiddleware       correlation ID, access log
#   2. RequestTrackerMiddleware    in-flight counter, 503 while shutting down
#   3. ResponseLoggerMiddleware    logs 4xx/5xx bodies
#   4. SecurityHeadersMiddleware   nosniff, frame deny, HSTS
#   5. CORSMiddleware              configured origins
#   6. GZipMiddleware
#   7. RateLimitMiddleware         per-IP fixed window
#   8. ErrorHandlerMiddleware      last-resort exception -> envelope
#
# Usage:
#   stages = build_pipeline(settings, tracker)
#   install_pipeline(app, stages)
# =============================================================================

from fastapi import FastAPI
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.middleware.gzip import GZipMiddleware

from lib.request_tracker import RequestTracker

from .correlation import CORRELATION_HEADER, CorrelationMiddleware
from .error_handler import ErrorHandlerMiddleware, install_exception_handlers, translate_exception
from .rate_limit import RateLimitMiddleware
from .request_tracker import RequestTrackerMiddleware
from .response_logger import ResponseLoggerMiddleware
from .security_headers import SecurityHeadersMiddleware


def build_pipeline(settings, tracker: RequestTracker) -> list[Middleware]:
    """Return the middleware stages in execution order (outermost first)."""
    return [
        Middleware(CorrelationMiddleware),
        Middleware(RequestTrackerMiddleware, tracker=tracker),
        Middleware(ResponseLoggerMiddleware),
        Middleware(SecurityHeadersMiddleware, hsts=settings.is_production),
        Middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins_list,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
            expose_headers=[CORRELATION_HEADER],
        ),
        Middleware(GZipMiddleware, minimum_size=1024),
        Middleware(
            RateLimitMiddleware,
            max_requests=settings.RATE_LIMIT_MAX_REQUESTS,
            window_ms=settings.RATE_LIMIT_WINDOW_MS,
            enabled=not settings.is_test,
        ),
        Middleware(ErrorHandlerMiddleware),
    ]


def install_pipeline(app: FastAPI, stages: list[Middleware]) -> None:
    """
    Add `stages` to `app` so they run in list order.

    add_middleware() wraps the existing stack, so the innermost stage has to
    be added first.
    """
    for stage in reversed(stages):
        app.add_middleware(stage.cls, *stage.args, **stage.kwargs)


__all__ = [
    "build_pipeline",
    "install_pipeline",
    "install_exception_handlers",
    "translate_exception",
    "CorrelationMiddleware",
    "RequestTrackerMiddleware",
    "ResponseLoggerMiddleware",
    "SecurityHeadersMiddleware",
    "RateLimitMiddleware",
    "ErrorHandlerMiddleware",
]
