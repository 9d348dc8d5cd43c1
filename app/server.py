# =============================================================================
# app/server.py - Process Runner With Graceful Shutdown
# =============================================================================
# Runs the API under uvicorn and owns the process-level shutdown path:
#
#   SIGTERM / SIGINT
#     -> tracker.begin_shutdown()      new requests get 503
#     -> hard-timeout watchdog armed   os._exit(1) if shutdown hangs
#     -> uvicorn stops accepting       lifespan drains in-flight requests
#     -> db.disconnect()               pool released
#     -> exit 0
#
# Uncaught exceptions (main thread, worker threads, the event loop) are
# logged and routed into the same path.
#
# Usage:
#   python -m app
# =============================================================================

import asyncio
import logging
import os
import signal
import sys
import threading

import uvicorn

from app.config import ConfigurationError, Settings, get_settings
from app.main import create_app
from lib.logger import setup_logging
from lib.request_tracker import RequestTracker

logger = logging.getLogger(__name__)


def _force_exit() -> None:
    logger.critical("Graceful shutdown timed out, forcing exit")
    logging.shutdown()
    os._exit(1)


class GracefulServer(uvicorn.Server):
    """
    uvicorn.Server that flips the request tracker before uvicorn's own
    shutdown starts, and guarantees the process exits within
    hard_timeout_ms of the first signal.
    """

    def __init__(self, config: uvicorn.Config, tracker: RequestTracker, hard_timeout_ms: int):
        super().__init__(config)
        self.tracker = tracker
        self.hard_timeout_ms = hard_timeout_ms
        self.crashed = False
        self._watchdog: threading.Timer | None = None

    def handle_exit(self, sig: int, frame) -> None:
        # Only the first signal starts the sequence; later ones fall through
        # to uvicorn, which treats a second signal as force-exit.
        if self._watchdog is None:
            try:
                name = signal.Signals(sig).name
            except ValueError:
                name = str(sig)
            logger.info(
                f"Received {name}, starting graceful shutdown",
                extra={"active_requests": self.tracker.active_requests},
            )
            self.tracker.begin_shutdown()
            self._arm_watchdog()
        super().handle_exit(sig, frame)

    def _arm_watchdog(self) -> None:
        self._watchdog = threading.Timer(self.hard_timeout_ms / 1000, _force_exit)
        self._watchdog.daemon = True
        self._watchdog.start()

    def cancel_watchdog(self) -> None:
        if self._watchdog is not None:
            self._watchdog.cancel()

    def fail(self, reason: str) -> None:
        """Shut down because of an unrecoverable error; exit status becomes 1."""
        self.crashed = True
        logger.critical(f"{reason}, shutting down")
        self.handle_exit(signal.SIGTERM, None)

    # -------------------------------------------------------------------------
    # Crash hooks
    # -------------------------------------------------------------------------

    def install_crash_hooks(self) -> None:
        def excepthook(exc_type, exc, tb):
            logger.critical("Uncaught exception", exc_info=(exc_type, exc, tb))
            self.fail("Uncaught exception")

        def thread_excepthook(args: threading.ExceptHookArgs):
            if args.exc_type is SystemExit:
                return
            logger.critical(
                f"Uncaught exception in thread {args.thread.name if args.thread else '?'}",
                exc_info=(args.exc_type, args.exc_value, args.exc_traceback),
            )
            self.fail("Uncaught thread exception")

        sys.excepthook = excepthook
        threading.excepthook = thread_excepthook

    def install_loop_exception_handler(self, loop: asyncio.AbstractEventLoop) -> None:
        def handler(loop, context):
            exc = context.get("exception")
            logger.critical(
                f"Unhandled error in event loop: {context.get('message', 'unknown')}",
                exc_info=(type(exc), exc, exc.__traceback__) if exc else None,
            )
            self.fail("Unhandled event loop error")

        loop.set_exception_handler(handler)

    async def serve(self, sockets=None) -> None:
        self.install_loop_exception_handler(asyncio.get_running_loop())
        await super().serve(sockets)


def build_server(settings: Settings, tracker: RequestTracker | None = None) -> GracefulServer:
    tracker = tracker or RequestTracker()
    app = create_app(settings, tracker=tracker)
    config = uvicorn.Config(
        app,
        host=settings.HOST,
        port=settings.PORT,
        lifespan="on",
        # Logging is configured by setup_logging(); keep uvicorn off the root logger
        log_config=None,
        timeout_graceful_shutdown=settings.SHUTDOWN_DRAIN_TIMEOUT_MS / 1000,
    )
    return GracefulServer(config, tracker, settings.SHUTDOWN_HARD_TIMEOUT_MS)


def run() -> int:
    """
    Start the API and block until it stops.

    Returns:
        Process exit status: 0 after a clean shutdown, 1 on invalid
        configuration, startup failure or crash.
    """
    try:
        settings = get_settings()
    except ConfigurationError:
        # Field errors were already written to stderr
        return 1

    setup_logging(settings)
    server = build_server(settings)
    server.install_crash_hooks()

    logger.info(f"Codionix API listening on {settings.HOST}:{settings.PORT}")
    try:
        server.run()
    except Exception:
        logger.critical("Server terminated with an error", exc_info=True)
        return 1
    finally:
        server.cancel_watchdog()

    if not server.started:
        logger.error("Server failed to start")
        return 1
    if server.crashed:
        return 1

    logger.info("Server stopped cleanly")
    return 0
