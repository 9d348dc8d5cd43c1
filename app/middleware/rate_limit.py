# =============================================================================
# app/middleware/rate_limit.py - Per-IP Fixed Window Rate Limiting
# =============================================================================
# Each client IP gets RATE_LIMIT_MAX_REQUESTS per RATE_LIMIT_WINDOW_MS.
# The window starts with the client's first request and resets when it ends.
#
# Health probes are never throttled so orchestrators can poll freely.
# Counters live in process memory; each worker limits independently.
#
# Every response carries:
#   X-RateLimit-Limit, X-RateLimit-Remaining, X-RateLimit-Reset (seconds)
# =============================================================================

import logging
import math
import time
from dataclasses import dataclass

from fastapi.responses import JSONResponse
from starlette.datastructures import MutableHeaders

from app.exceptions import RateLimitError
from core.models import error_body

logger = logging.getLogger(__name__)

# Sweep expired windows once the table grows past this
_SWEEP_THRESHOLD = 10_000


@dataclass
class Window:
    started_at: float
    count: int = 0


class FixedWindowLimiter:
    """
    Args:
        max_requests: Requests allowed per window
        window_seconds: Window length
        clock: Monotonic time source (overridable in tests)
    """

    def __init__(self, max_requests: int, window_seconds: float, clock=time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.clock = clock
        self._windows: dict[str, Window] = {}

    def hit(self, key: str) -> tuple[bool, int, float]:
        """
        Count one request for `key`.

        Returns:
            (allowed, remaining, seconds until the window resets)
        """
        now = self.clock()
        window = self._windows.get(key)
        if window is None or now - window.started_at >= self.window_seconds:
            if len(self._windows) > _SWEEP_THRESHOLD:
                self._sweep(now)
            window = Window(started_at=now)
            self._windows[key] = window

        window.count += 1
        reset_in = max(window.started_at + self.window_seconds - now, 0.0)
        remaining = max(self.max_requests - window.count, 0)
        return window.count <= self.max_requests, remaining, reset_in

    def _sweep(self, now: float) -> None:
        expired = [k for k, w in self._windows.items() if now - w.started_at >= self.window_seconds]
        for key in expired:
            del self._windows[key]


class RateLimitMiddleware:
    def __init__(self, app, max_requests: int, window_ms: int, enabled: bool = True):
        self.app = app
        self.enabled = enabled
        self.limiter = FixedWindowLimiter(max_requests, window_ms / 1000)

    @staticmethod
    def _exempt(path: str) -> bool:
        return path.rstrip("/").endswith("/health") or "/health/" in path

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http" or not self.enabled or self._exempt(scope["path"]):
            await self.app(scope, receive, send)
            return

        client = scope.get("client")
        key = client[0] if client else "unknown"
        allowed, remaining, reset_in = self.limiter.hit(key)
        rate_headers = {
            "X-RateLimit-Limit": str(self.limiter.max_requests),
            "X-RateLimit-Remaining": str(remaining),
            "X-RateLimit-Reset": str(math.ceil(reset_in)),
        }

        if not allowed:
            error = RateLimitError()
            logger.warning(
                "Rate limit exceeded",
                extra={"ip": key, "path": scope["path"], "limit": self.limiter.max_requests},
            )
            response = JSONResponse(
                status_code=error.status_code,
                content=error_body(error.code, error.message),
                headers={**rate_headers, "Retry-After": str(math.ceil(reset_in))},
            )
            await response(scope, receive, send)
            return

        async def send_wrapper(message):
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                for name, value in rate_headers.items():
                    headers[name] = value
            await send(message)

        await self.app(scope, receive, send_wrapper)
