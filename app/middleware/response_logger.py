# =============================================================================
# app/middleware/response_logger.py - Error Response Capture
# =============================================================================
# Records what was actually sent back for failed requests:
# - 5xx -> ERROR "Server error response" with sanitized headers, request
#          body and response body
# - 4xx -> WARNING "Client error response" with the response body
#
# Bodies are buffered up to MAX_CAPTURE_BYTES; anything past that is dropped
# from the log (never from the response). JSON bodies are sanitized before
# logging; success bodies are never logged.
# =============================================================================

import json
import logging
from typing import Any

from starlette.datastructures import Headers

from lib.sanitize import sanitize, sanitize_headers

logger = logging.getLogger(__name__)

MAX_CAPTURE_BYTES = 64 * 1024


def _decode_body(raw: bytes, truncated: bool) -> Any:
    if not raw:
        return None
    if not truncated:
        try:
            return sanitize(json.loads(raw))
        except ValueError:
            pass
    text = raw[:500].decode("utf-8", errors="replace")
    return text + "..." if truncated or len(raw) > 500 else text


class _Capture:
    def __init__(self):
        self.chunks: list[bytes] = []
        self.size = 0
        self.truncated = False

    def add(self, chunk: bytes) -> None:
        if not chunk:
            return
        room = MAX_CAPTURE_BYTES - self.size
        if room <= 0:
            self.truncated = True
            return
        if len(chunk) > room:
            self.truncated = True
            chunk = chunk[:room]
        self.chunks.append(chunk)
        self.size += len(chunk)

    def body(self) -> Any:
        return _decode_body(b"".join(self.chunks), self.truncated)


class ResponseLoggerMiddleware:
    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_body = _Capture()
        response_body = _Capture()
        status_code = 0
        response_headers: list = []

        async def receive_wrapper():
            message = await receive()
            if message["type"] == "http.request":
                request_body.add(message.get("body", b""))
            return message

        async def send_wrapper(message):
            nonlocal status_code, response_headers
            if message["type"] == "http.response.start":
                status_code = message["status"]
                response_headers = message.get("headers", [])
            elif message["type"] == "http.response.body" and status_code >= 400:
                response_body.add(message.get("body", b""))
            await send(message)

        await self.app(scope, receive_wrapper, send_wrapper)

        if status_code < 400:
            return

        # Compressed bodies are not decodable here
        encoding = Headers(raw=response_headers).get("content-encoding")
        logged_response = None if encoding else response_body.body()

        context = {
            "method": scope["method"],
            "path": scope["path"],
            "status_code": status_code,
            "response_body": logged_response,
        }
        user = scope.get("state", {}).get("user")
        if user is not None:
            context["user_id"] = user.id

        if status_code >= 500:
            context["headers"] = sanitize_headers(Headers(scope=scope))
            context["request_body"] = request_body.body()
            context["query"] = scope.get("query_string", b"").decode("latin-1") or None
            logger.error("Server error response", extra=context)
        else:
            logger.warning("Client error response", extra=context)
