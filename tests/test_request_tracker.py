# =============================================================================
# tests/test_request_tracker.py - In-Flight Request Tracking Tests
# =============================================================================
# Unit tests for RequestTracker:
# - Counter never goes negative; handles finish once
# - Shutdown flag is sticky and idempotent
# - wait_for_drain resolves on drain, times out otherwise, never raises
# =============================================================================

import asyncio

from lib.request_tracker import RequestTracker


class TestCounter:
    """Tests for the active request counter."""

    def test_start_and_finish(self):
        """Starting and finishing a request moves the counter both ways."""
        # Arrange
        tracker = RequestTracker()

        # Act
        handle = tracker.on_request_start()

        # Assert
        assert tracker.active_requests == 1
        handle.finish()
        assert tracker.active_requests == 0

    def test_handle_finish_is_idempotent(self):
        """Several completion paths finishing the same handle count once."""
        tracker = RequestTracker()
        first = tracker.on_request_start()
        tracker.on_request_start()

        first.finish()
        first.finish()
        first.finish()

        assert tracker.active_requests == 1
        assert first.finished

    def test_counter_never_negative(self):
        """Extra finish calls clamp at zero."""
        tracker = RequestTracker()

        tracker.on_request_finish()
        tracker.on_request_finish()

        assert tracker.active_requests == 0


class TestShutdownFlag:
    """Tests for begin_shutdown()."""

    def test_begin_shutdown_is_sticky(self):
        tracker = RequestTracker()
        assert not tracker.is_shutting_down

        tracker.begin_shutdown()
        tracker.begin_shutdown()

        assert tracker.is_shutting_down

    def test_begin_shutdown_logs_once(self, caplog):
        tracker = RequestTracker()

        with caplog.at_level("INFO", logger="lib.request_tracker"):
            tracker.begin_shutdown()
            tracker.begin_shutdown()

        messages = [r.message for r in caplog.records if "Shutdown initiated" in r.message]
        assert len(messages) == 1


class TestWaitForDrain:
    """Tests for wait_for_drain()."""

    async def test_resolves_immediately_when_idle(self):
        tracker = RequestTracker()

        assert await tracker.wait_for_drain(10) is True
        assert tracker.pending_waiters == 0

    async def test_resolves_when_last_request_finishes(self):
        """Waiters wake as soon as the counter reaches zero."""
        # Arrange
        tracker = RequestTracker()
        a = tracker.on_request_start()
        b = tracker.on_request_start()

        async def finish_later():
            await asyncio.sleep(0.01)
            a.finish()
            await asyncio.sleep(0.01)
            b.finish()

        # Act
        finisher = asyncio.create_task(finish_later())
        drained = await tracker.wait_for_drain(1000)
        await finisher

        # Assert
        assert drained is True
        assert tracker.active_requests == 0

    async def test_times_out_with_requests_in_flight(self, caplog):
        """A timeout is reported as False and logged, never raised."""
        tracker = RequestTracker()
        handle = tracker.on_request_start()

        with caplog.at_level("WARNING", logger="lib.request_tracker"):
            drained = await tracker.wait_for_drain(20)

        assert drained is False
        assert tracker.pending_waiters == 0
        assert any("Drain timeout" in r.message for r in caplog.records)

        # A late finish after the timeout must not blow up
        handle.finish()
        assert tracker.active_requests == 0

    async def test_multiple_waiters_all_resolve(self):
        tracker = RequestTracker()
        handle = tracker.on_request_start()

        waiters = [asyncio.create_task(tracker.wait_for_drain(1000)) for _ in range(3)]
        await asyncio.sleep(0)
        handle.finish()

        assert await asyncio.gather(*waiters) == [True, True, True]
