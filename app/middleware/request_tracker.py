# =============================================================================
# app/middleware/request_tracker.py - In-Flight Request Gate
# =============================================================================
# Counts each HTTP request in lib.request_tracker.RequestTracker and refuses
# new ones once shutdown has begun.
#
# The request's handle is finished on whichever happens first:
# - the last body chunk is handed to the server
# - the downstream app raises
# - the request is cancelled / the client goes away (finally)
# RequestHandle.finish() is idempotent, so overlapping paths count once.
# =============================================================================

from fastapi.responses import JSONResponse

from core.models import error_body
from lib.request_tracker import RequestTracker

SHUTDOWN_MESSAGE = "Server is shutting down. Please retry your request."
RETRY_AFTER_SECONDS = 5


class RequestTrackerMiddleware:
    def __init__(self, app, tracker: RequestTracker):
        self.app = app
        self.tracker = tracker

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        if self.tracker.is_shutting_down:
            response = JSONResponse(
                status_code=503,
                content=error_body("SERVICE_UNAVAILABLE", SHUTDOWN_MESSAGE),
                headers={"Connection": "close", "Retry-After": str(RETRY_AFTER_SECONDS)},
            )
            await response(scope, receive, send)
            return

        handle = self.tracker.on_request_start()

        async def send_wrapper(message):
            await send(message)
            if message["type"] == "http.response.body" and not message.get("more_body", False):
                handle.finish()

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            handle.finish()
