# =============================================================================
# tests/test_lifecycle.py - Startup & Graceful Shutdown Tests
# =============================================================================
# Tests for the lifespan in app.main and the runner in app.server:
# - shutdown order: begin_shutdown -> wait_for_drain -> disconnect
# - degraded shutdown when the drain times out
# - startup aborts when the database cannot be reached
# - GracefulServer.handle_exit flips the tracker and arms the watchdog once
# - run() exit codes
# =============================================================================

import asyncio
import logging
import signal
import time
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app import server as server_module
from app.config import ConfigurationError
from app.main import create_app
from app.server import GracefulServer, build_server, run
from lib.database import DatabaseClient
from lib.request_tracker import RequestTracker


def _fake_db() -> MagicMock:
    db = MagicMock()
    db.connect = AsyncMock()
    db.disconnect = AsyncMock()
    return db


class TestLifespan:
    """Tests for the startup/shutdown lifespan."""

    async def test_shutdown_drains_before_disconnect(self, settings):
        """The pool is released only after the in-flight request finished."""
        # Arrange
        tracker = RequestTracker()
        db = _fake_db()
        seen_at_disconnect = {}

        async def disconnect():
            seen_at_disconnect["active"] = tracker.active_requests
            seen_at_disconnect["shutting_down"] = tracker.is_shutting_down

        db.disconnect.side_effect = disconnect
        app = create_app(settings, db=db, tracker=tracker)
        handle = tracker.on_request_start()

        # Act
        with patch("app.main.setup_logging"):
            async with app.router.lifespan_context(app):
                db.connect.assert_awaited_once()
                db.start_monitoring.assert_called_once_with(settings.pool_monitor_interval_seconds)
                asyncio.get_running_loop().call_later(0.05, handle.finish)

        # Assert
        assert seen_at_disconnect == {"active": 0, "shutting_down": True}
        db.disconnect.assert_awaited_once()

    async def test_drain_timeout_is_a_degraded_shutdown(self, settings, caplog):
        # Arrange
        tracker = RequestTracker()
        db = _fake_db()
        quick = settings.model_copy(update={"SHUTDOWN_DRAIN_TIMEOUT_MS": 50})
        app = create_app(quick, db=db, tracker=tracker)
        tracker.on_request_start()

        # Act
        with patch("app.main.setup_logging"), caplog.at_level(logging.WARNING, logger="app.main"):
            async with app.router.lifespan_context(app):
                pass

        # Assert
        assert any("Degraded shutdown" in r.message for r in caplog.records)
        assert tracker.active_requests == 1
        db.disconnect.assert_awaited_once()

    async def test_startup_aborts_when_database_unreachable(self, settings):
        """connect() exhausts its retries and the error escapes the lifespan."""
        db = DatabaseClient(settings)
        app = create_app(settings, db=db, tracker=RequestTracker())

        with patch("app.main.setup_logging"), patch("lib.database._backoff_sleep", AsyncMock()), patch.object(
            DatabaseClient, "_probe", AsyncMock(side_effect=OSError("connection refused"))
        ) as probe, patch.object(DatabaseClient, "start_monitoring") as start_monitoring:
            with pytest.raises(OSError, match="connection refused"):
                async with app.router.lifespan_context(app):
                    pass

        assert probe.await_count == 3
        start_monitoring.assert_not_called()
        assert not db.is_connected


class TestGracefulServer:
    """Tests for signal handling in GracefulServer."""

    def test_first_signal_flips_tracker_and_arms_watchdog_once(self, settings):
        # Arrange
        tracker = RequestTracker()
        server = build_server(settings, tracker)

        # Act
        with patch("app.server.threading.Timer") as timer_cls:
            server.handle_exit(signal.SIGTERM, None)
            server.handle_exit(signal.SIGTERM, None)

        # Assert
        assert tracker.is_shutting_down
        assert server.should_exit
        timer_cls.assert_called_once_with(settings.SHUTDOWN_HARD_TIMEOUT_MS / 1000, server_module._force_exit)
        timer_cls.return_value.start.assert_called_once()

    def test_watchdog_forces_exit_when_shutdown_hangs(self, settings):
        server = GracefulServer(MagicMock(), RequestTracker(), hard_timeout_ms=10)

        with patch("app.server._force_exit") as force_exit:
            server.handle_exit(signal.SIGINT, None)
            deadline = time.monotonic() + 2
            while not force_exit.called and time.monotonic() < deadline:
                time.sleep(0.01)

        force_exit.assert_called_once()

    def test_cancelled_watchdog_never_fires(self, settings):
        server = GracefulServer(MagicMock(), RequestTracker(), hard_timeout_ms=50)

        with patch("app.server._force_exit") as force_exit:
            server.handle_exit(signal.SIGTERM, None)
            server.cancel_watchdog()
            time.sleep(0.1)

        force_exit.assert_not_called()

    def test_fail_marks_crash_and_shuts_down(self, settings, caplog):
        tracker = RequestTracker()
        server = build_server(settings, tracker)

        with patch("app.server.threading.Timer"), caplog.at_level(logging.CRITICAL, logger="app.server"):
            server.fail("Uncaught exception")

        assert server.crashed
        assert tracker.is_shutting_down
        assert "Uncaught exception, shutting down" in [r.message for r in caplog.records]


class TestRun:
    """Exit status of app.server.run()."""

    @staticmethod
    def _run_with(server: MagicMock) -> int:
        with patch("app.server.setup_logging"), patch("app.server.build_server", return_value=server):
            return run()

    def test_config_error_exits_1(self):
        with patch("app.server.get_settings", side_effect=ConfigurationError([("DATABASE_URL", "Field required")])):
            assert run() == 1

    def test_clean_shutdown_exits_0(self):
        server = MagicMock(started=True, crashed=False)

        assert self._run_with(server) == 0
        server.install_crash_hooks.assert_called_once()
        server.cancel_watchdog.assert_called_once()

    def test_failed_startup_exits_1(self):
        assert self._run_with(MagicMock(started=False, crashed=False)) == 1

    def test_crash_exits_1(self):
        assert self._run_with(MagicMock(started=True, crashed=True)) == 1

    def test_server_error_exits_1(self):
        server = MagicMock(started=True, crashed=False)
        server.run.side_effect = RuntimeError("bind failed")

        assert self._run_with(server) == 1
        server.cancel_watchdog.assert_called_once()
