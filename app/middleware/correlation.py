# =============================================================================
# app/middleware/correlation.py - Request Correlation & Access Log
# =============================================================================
# Outermost pipeline stage. For every HTTP request:
# - reuse the caller's X-Correlation-ID or mint a uuid4
# - bind it to lib.logger.correlation_id_var for everything downstream
# - echo it back in the X-Correlation-ID response header
# - log "Incoming request" and "Request completed" (level by status)
# =============================================================================

import logging
import time
import uuid

from starlette.datastructures import Headers, MutableHeaders

from lib.logger import correlation_id_var

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"
SLOW_REQUEST_MS = 3000
_MAX_CORRELATION_ID_LENGTH = 128


def _client_ip(scope) -> str | None:
    client = scope.get("client")
    return client[0] if client else None


class CorrelationMiddleware:
    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        incoming = headers.get(CORRELATION_HEADER)
        if incoming and len(incoming) <= _MAX_CORRELATION_ID_LENGTH:
            correlation_id = incoming
        else:
            correlation_id = str(uuid.uuid4())

        token = correlation_id_var.set(correlation_id)
        scope.setdefault("state", {})["correlation_id"] = correlation_id

        method = scope["method"]
        path = scope["path"]
        started = time.perf_counter()
        status_code = 500

        logger.info(
            "Incoming request",
            extra={
                "method": method,
                "path": path,
                "query": scope.get("query_string", b"").decode("latin-1") or None,
                "ip": _client_ip(scope),
                "user_agent": headers.get("user-agent"),
            },
        )

        async def send_wrapper(message):
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
                MutableHeaders(scope=message)[CORRELATION_HEADER] = correlation_id
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            duration = int((time.perf_counter() - started) * 1000)
            if status_code >= 500:
                level = logging.ERROR
            elif status_code >= 400:
                level = logging.WARNING
            else:
                level = logging.INFO

            context = {"method": method, "path": path, "status_code": status_code, "duration": duration}
            user = scope["state"].get("user")
            if user is not None:
                context["user_id"] = user.id
                context["user_role"] = user.role
            logger.log(level, "Request completed", extra=context)

            if duration > SLOW_REQUEST_MS:
                logger.warning(
                    "Slow request detected",
                    extra={"method": method, "path": path, "duration": duration, "threshold_ms": SLOW_REQUEST_MS},
                )
            correlation_id_var.reset(token)
