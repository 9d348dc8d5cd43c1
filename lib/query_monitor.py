# =============================================================================
# lib/query_monitor.py - Query Timeouts & Leak Detection
# =============================================================================
# Wraps every ORM round-trip with:
# - a hard timeout (DatabaseTimeoutError -> 503 instead of hanging)
# - duration / failure logging
# - an in-flight registry scanned every 30s for queries that never returned
#
# Sessions created by lib.database.DatabaseClient are MonitoredSession
# instances, so services use the normal AsyncSession API and get all of the
# above for free.
# =============================================================================

import asyncio
import itertools
import logging
import time
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Any, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import DatabaseTimeoutError
from lib.logger import SLOW_QUERY_MS, log_query

logger = logging.getLogger(__name__)

T = TypeVar("T")

LEAK_CHECK_INTERVAL_SECONDS = 30


@dataclass
class InFlightQuery:
    id: int
    operation: str
    model: str | None
    started_at: float

    def age_ms(self, now: float | None = None) -> int:
        return int(((now or time.monotonic()) - self.started_at) * 1000)


class QueryMonitor:
    """
    Times out and accounts for database operations.

    Args:
        timeout_ms: Per-operation budget before DatabaseTimeoutError
    """

    def __init__(self, timeout_ms: int):
        self.timeout_ms = timeout_ms
        self.total_queries = 0
        self.slow_queries = 0
        self.failed_queries = 0
        self._in_flight: dict[int, InFlightQuery] = {}
        self._ids = itertools.count(1)
        self._leak_task: asyncio.Task | None = None

    @property
    def active_queries(self) -> int:
        return len(self._in_flight)

    @property
    def leak_threshold_ms(self) -> int:
        return self.timeout_ms * 2

    def stats(self) -> dict[str, int]:
        return {
            "active_queries": self.active_queries,
            "total_queries": self.total_queries,
            "slow_queries": self.slow_queries,
        }

    async def run(self, operation: str, awaitable: Awaitable[T], model: str | None = None) -> T:
        """
        Await `awaitable`, giving up after the configured timeout.

        Raises:
            DatabaseTimeoutError: If the operation outlives the timeout
        """
        record = InFlightQuery(next(self._ids), operation, model, time.monotonic())
        self._in_flight[record.id] = record
        self.total_queries += 1

        try:
            result = await asyncio.wait_for(awaitable, timeout=self.timeout_ms / 1000)
        except asyncio.TimeoutError:
            duration = record.age_ms()
            self.failed_queries += 1
            log_query(operation, model, duration, False, timeout_ms=self.timeout_ms)
            raise DatabaseTimeoutError(
                details={"operation": operation, "timeout_ms": self.timeout_ms}
            ) from None
        except Exception as e:
            self.failed_queries += 1
            log_query(operation, model, record.age_ms(), False, error=str(e))
            raise
        finally:
            self._in_flight.pop(record.id, None)

        duration = record.age_ms()
        if duration > SLOW_QUERY_MS:
            self.slow_queries += 1
        log_query(operation, model, duration, True)
        return result

    # -------------------------------------------------------------------------
    # Leak detection
    # -------------------------------------------------------------------------

    def detect_leaks(self) -> list[InFlightQuery]:
        """
        Log and return in-flight queries older than twice the timeout.

        Observational only; nothing is cancelled.
        """
        now = time.monotonic()
        leaks = [q for q in self._in_flight.values() if q.age_ms(now) > self.leak_threshold_ms]
        for query in leaks:
            logger.warning(
                "Possible query leak detected",
                extra={
                    "query_id": query.id,
                    "operation": f"db.{query.operation}",
                    "model": query.model,
                    "age_ms": query.age_ms(now),
                    "threshold_ms": self.leak_threshold_ms,
                },
            )
        return leaks

    async def _leak_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self.detect_leaks()

    def start_leak_detector(self, interval: float = LEAK_CHECK_INTERVAL_SECONDS) -> None:
        if self._leak_task is None or self._leak_task.done():
            self._leak_task = asyncio.create_task(self._leak_loop(interval))

    async def stop(self) -> None:
        if self._leak_task is None:
            return
        self._leak_task.cancel()
        try:
            await self._leak_task
        except asyncio.CancelledError:
            pass
        self._leak_task = None


def _statement_name(statement: Any) -> str:
    if getattr(statement, "is_select", False):
        return "select"
    return type(statement).__name__.lower()


class MonitoredSession(AsyncSession):
    """
    AsyncSession whose database round-trips go through a QueryMonitor.

    The monitor is taken from session.info["query_monitor"], which
    DatabaseClient sets on its sessionmaker.
    """

    @property
    def query_monitor(self) -> QueryMonitor | None:
        return self.info.get("query_monitor")

    async def _monitored(self, operation: str, awaitable: Awaitable[T], model: str | None = None) -> T:
        monitor = self.query_monitor
        if monitor is None:
            return await awaitable
        return await monitor.run(operation, awaitable, model=model)

    async def execute(self, statement, *args, **kwargs):
        return await self._monitored(_statement_name(statement), super().execute(statement, *args, **kwargs))

    async def scalar(self, statement, *args, **kwargs):
        return await self._monitored(_statement_name(statement), super().scalar(statement, *args, **kwargs))

    async def get(self, entity, ident, *args, **kwargs):
        model = getattr(entity, "__name__", None)
        return await self._monitored("get", super().get(entity, ident, *args, **kwargs), model=model)

    async def flush(self, *args, **kwargs):
        return await self._monitored("flush", super().flush(*args, **kwargs))

    async def commit(self):
        return await self._monitored("commit", super().commit())

    async def refresh(self, instance, *args, **kwargs):
        model = type(instance).__name__
        return await self._monitored("refresh", super().refresh(instance, *args, **kwargs), model=model)
