# =============================================================================
# lib/request_tracker.py - In-Flight Request Tracking
# =============================================================================
# Counts requests currently being served so shutdown can wait for them.
#
# Lifecycle:
#   1. Each request calls on_request_start() and finishes its handle exactly once
#   2. SIGTERM -> begin_shutdown(): new requests get 503, the counter is frozen
#      for newcomers
#   3. wait_for_drain(timeout_ms) resolves when the counter hits zero or the
#      timeout elapses, whichever comes first
#
# All mutation happens on the event loop thread, so no locking is needed.
# =============================================================================

import asyncio
import logging

logger = logging.getLogger(__name__)


class RequestHandle:
    """
    Per-request token returned by RequestTracker.on_request_start().

    finish() may be called from several completion paths (response sent,
    error, client disconnect); only the first call decrements the counter.
    """

    __slots__ = ("_tracker", "_finished")

    def __init__(self, tracker: "RequestTracker"):
        self._tracker = tracker
        self._finished = False

    @property
    def finished(self) -> bool:
        return self._finished

    def finish(self) -> None:
        if self._finished:
            return
        self._finished = True
        self._tracker.on_request_finish()


class RequestTracker:
    """
    Process-wide active request counter plus the shutdown flag.

    Constructed once at startup and shared through app.state.
    """

    def __init__(self):
        self._active = 0
        self._shutting_down = False
        self._drain_waiters: list[asyncio.Future] = []

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def active_requests(self) -> int:
        return self._active

    @property
    def is_shutting_down(self) -> bool:
        return self._shutting_down

    @property
    def pending_waiters(self) -> int:
        return len(self._drain_waiters)

    # -------------------------------------------------------------------------
    # Request lifecycle
    # -------------------------------------------------------------------------

    def on_request_start(self) -> RequestHandle:
        self._active += 1
        return RequestHandle(self)

    def on_request_finish(self) -> None:
        """
        Decrement the counter and wake drain waiters once it reaches zero.

        Never drops below zero, even if called more often than
        on_request_start().
        """
        if self._active > 0:
            self._active -= 1
        if self._active == 0:
            self._resolve_waiters()

    def begin_shutdown(self) -> None:
        """Flip the shutdown flag. Idempotent; the flag never reverts."""
        if self._shutting_down:
            return
        self._shutting_down = True
        logger.info(
            "Shutdown initiated, rejecting new requests",
            extra={"active_requests": self._active},
        )

    # -------------------------------------------------------------------------
    # Draining
    # -------------------------------------------------------------------------

    def _resolve_waiters(self) -> None:
        waiters, self._drain_waiters = self._drain_waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(True)

    def _discard_waiter(self, waiter: asyncio.Future) -> None:
        try:
            self._drain_waiters.remove(waiter)
        except ValueError:
            pass

    async def wait_for_drain(self, timeout_ms: int) -> bool:
        """
        Wait until no requests are in flight.

        Args:
            timeout_ms: Upper bound on the wait

        Returns:
            True if the counter reached zero, False if the timeout won.
            Never raises; a timeout is an expected outcome.
        """
        if self._active == 0:
            return True

        waiter = asyncio.get_running_loop().create_future()
        self._drain_waiters.append(waiter)

        # A request may have completed between the check above and registration
        if self._active == 0:
            self._discard_waiter(waiter)
            return True

        try:
            await asyncio.wait_for(asyncio.shield(waiter), timeout=timeout_ms / 1000)
            return True
        except asyncio.TimeoutError:
            self._discard_waiter(waiter)
            logger.warning(
                "Drain timeout reached with requests still in flight",
                extra={"active_requests": self._active, "timeout_ms": timeout_ms},
            )
            return False
        finally:
            if not waiter.done():
                waiter.cancel()
