# =============================================================================
# lib/database.py - Database Connection Pool Client
# =============================================================================
# Owns the SQLAlchemy async engine and its connection pool:
# - connect() with linear backoff retry (2s, 4s) before giving up
# - disconnect() that is safe to call at any time during shutdown
# - health_check() / get_pool_stats() for readiness probes and monitoring
# - session() context manager handing out monitored, auto-closing sessions
# - after_commit() for side effects that must wait for a durable write
#
# The client is constructed once at startup and passed around explicitly
# (app.state.db), never imported as a global.
#
# Usage:
#   db = DatabaseClient(settings)
#   await db.connect()
#   async with db.session() as session:
#       user = await session.get(User, user_id)
#   await db.disconnect()
# =============================================================================

import asyncio
import enum
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass
from functools import partial
from typing import Any, Callable

from sqlalchemy import MetaData, event, text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from lib.pool_monitor import PoolMonitor
from lib.query_monitor import MonitoredSession, QueryMonitor

logger = logging.getLogger(__name__)

MAX_RETRY_ATTEMPTS = 3
RETRY_DELAY_SECONDS = 2.0

# session.info key holding callbacks deferred until the unit of work commits
AFTER_COMMIT_KEY = "codionix.after_commit"


class ConnectionState(str, enum.Enum):
    """
    Pool lifecycle.

    Flow: disconnected -> connecting -> connected -> disconnecting -> disconnected
    """
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTING = "disconnecting"


@dataclass(frozen=True)
class PoolStats:
    """Point-in-time snapshot of the connection pool, recomputed on every call."""
    total_connections: int
    idle_connections: int
    waiting_requests: int
    max_connections: int
    min_connections: int
    active_queries: int = 0
    total_queries: int = 0
    slow_queries: int = 0

    @property
    def utilization(self) -> float:
        """Percentage of max_connections currently open."""
        if self.max_connections <= 0:
            return 0.0
        return round(self.total_connections / self.max_connections * 100, 1)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["utilization"] = self.utilization
        return data


async def _backoff_sleep(seconds: float) -> None:
    await asyncio.sleep(seconds)


class DatabaseClient:
    """
    Connection pool lifecycle manager.

    Args:
        settings: Application settings (pool sizing and timeouts)
        engine: Pre-built engine, mainly for tests
    """

    def __init__(self, settings, engine: AsyncEngine | None = None):
        self.settings = settings
        self.max_connections = settings.DB_POOL_MAX
        self.min_connections = settings.DB_POOL_MIN
        self.engine = engine or self._create_engine(settings)
        self.query_monitor = QueryMonitor(settings.DB_QUERY_TIMEOUT_MS)
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=MonitoredSession,
            expire_on_commit=False,
            info={"query_monitor": self.query_monitor},
        )
        self.state = ConnectionState.DISCONNECTED
        self.connection_attempts = 0
        self._waiting = 0
        self._pool_monitor: PoolMonitor | None = None

    @staticmethod
    def _create_engine(settings) -> AsyncEngine:
        url = make_url(settings.DATABASE_URL)
        options: dict[str, Any] = {"pool_pre_ping": True}

        # SQLite uses a single shared connection; pool sizing does not apply
        is_sqlite = url.get_backend_name() == "sqlite"
        if is_sqlite and url.database in (None, "", ":memory:"):
            options["poolclass"] = StaticPool
        elif not is_sqlite:
            options.update(
                pool_size=max(settings.DB_POOL_MIN, 1),
                max_overflow=max(settings.DB_POOL_MAX - max(settings.DB_POOL_MIN, 1), 0),
                pool_timeout=settings.DB_CONNECTION_TIMEOUT_MS / 1000,
                pool_recycle=max(settings.DB_IDLE_TIMEOUT_MS // 1000, 1),
            )
        engine = create_async_engine(url, **options)

        if is_sqlite:
            event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    @property
    def is_connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def _probe(self) -> None:
        """Open a pooled connection and run a trivial query."""
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def connect(self) -> None:
        """
        Establish the pool, retrying transient failures.

        Waits RETRY_DELAY_SECONDS x attempt between tries (2s, then 4s).

        Raises:
            Exception: The last connection error once MAX_RETRY_ATTEMPTS fail
        """
        if self.state == ConnectionState.CONNECTED:
            return

        self.state = ConnectionState.CONNECTING
        while True:
            try:
                await self._probe()
            except Exception as e:
                self.connection_attempts += 1
                logger.error(
                    f"Database connection attempt {self.connection_attempts}/{MAX_RETRY_ATTEMPTS} failed: {e}"
                )
                if self.connection_attempts >= MAX_RETRY_ATTEMPTS:
                    self.state = ConnectionState.DISCONNECTED
                    logger.error("Max database connection attempts reached, giving up")
                    raise
                delay = RETRY_DELAY_SECONDS * self.connection_attempts
                logger.info(f"Retrying database connection in {delay:.0f}s")
                await _backoff_sleep(delay)
                continue

            self.state = ConnectionState.CONNECTED
            self.connection_attempts = 0
            logger.info(
                "Database connected",
                extra={
                    "max_connections": self.max_connections,
                    "min_connections": self.min_connections,
                    "query_timeout_ms": self.query_monitor.timeout_ms,
                },
            )
            return

    async def disconnect(self) -> None:
        """
        Release every pooled connection.

        No-op unless connected. Errors are logged, never raised, since this
        runs on the shutdown path.
        """
        if self.state != ConnectionState.CONNECTED:
            return

        self.state = ConnectionState.DISCONNECTING
        try:
            await self.stop_monitoring()
            await self.engine.dispose()
            logger.info("Database disconnected")
        except Exception as e:
            logger.error(f"Error during database disconnect: {e}", exc_info=True)
        finally:
            self.state = ConnectionState.DISCONNECTED

    # -------------------------------------------------------------------------
    # Health & Metrics
    # -------------------------------------------------------------------------

    def get_pool_stats(self) -> PoolStats:
        """Read live pool counters. Never raises."""
        pool = self.engine.pool
        checked_out = _pool_counter(pool, "checkedout")
        checked_in = _pool_counter(pool, "checkedin")
        return PoolStats(
            total_connections=checked_out + checked_in,
            idle_connections=checked_in,
            waiting_requests=self._waiting,
            max_connections=self.max_connections,
            min_connections=self.min_connections,
            **self.query_monitor.stats(),
        )

    async def health_check(self) -> dict[str, Any]:
        """
        Run SELECT 1 against the pool.

        Returns:
            {"healthy": bool, "pool": PoolStats}; failures are reported,
            never raised.
        """
        try:
            async with self.engine.connect() as conn:
                await self.query_monitor.run("health_check", conn.execute(text("SELECT 1")))
            healthy = True
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            healthy = False
        return {"healthy": healthy, "pool": self.get_pool_stats()}

    def start_monitoring(self, interval_seconds: float) -> None:
        """Start the periodic pool utilization log and the query leak detector."""
        if self._pool_monitor is None:
            self._pool_monitor = PoolMonitor(self, interval_seconds)
        self._pool_monitor.start()
        self.query_monitor.start_leak_detector()

    async def stop_monitoring(self) -> None:
        if self._pool_monitor is not None:
            await self._pool_monitor.stop()
        await self.query_monitor.stop()

    # -------------------------------------------------------------------------
    # Sessions
    # -------------------------------------------------------------------------

    @asynccontextmanager
    async def session(self) -> AsyncIterator[MonitoredSession]:
        """
        Yield a session bound to one pooled connection.

        Commits on success, rolls back on error, and always returns the
        connection to the pool. Callbacks registered with after_commit() run
        once the commit has succeeded.
        """
        session = self.session_factory()
        try:
            # Only a checkout against a full pool can block; anything else is
            # a connection being opened, not a request waiting on one
            at_capacity = _pool_counter(self.engine.pool, "checkedout") >= self.max_connections
            if at_capacity:
                self._waiting += 1
            try:
                await session.connection()
            finally:
                if at_capacity:
                    self._waiting -= 1
            yield session
            await session.commit()
        except BaseException:
            dropped = session.info.pop(AFTER_COMMIT_KEY, [])
            if dropped:
                logger.debug(f"Transaction rolled back, dropping {len(dropped)} after-commit callback(s)")
            await session.rollback()
            raise
        else:
            callbacks = session.info.pop(AFTER_COMMIT_KEY, [])
        finally:
            await session.close()

        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                # The transaction is already durable; report, never undo
                logger.error(f"After-commit callback failed: {e}", exc_info=True)

    async def create_all(self, metadata: MetaData) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(metadata.create_all)

    async def drop_all(self, metadata: MetaData) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(metadata.drop_all)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    # SQLite ignores ON DELETE CASCADE unless asked per connection
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _pool_counter(pool, name: str) -> int:
    counter = getattr(pool, name, None)
    if counter is None:
        return 0
    try:
        return int(counter())
    except Exception:
        return 0


def after_commit(session, callback: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
    """
    Defer callback(*args, **kwargs) until the session's unit of work commits.

    Callbacks run in registration order once DatabaseClient.session() has
    committed, and are discarded if the transaction rolls back. Used for side
    effects (queued e-mail) that must not escape a failed write.
    """
    session.info.setdefault(AFTER_COMMIT_KEY, []).append(partial(callback, *args, **kwargs))
