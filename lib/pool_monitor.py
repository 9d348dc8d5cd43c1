# =============================================================================
# lib/pool_monitor.py - Connection Pool Utilization Monitor
# =============================================================================
# Periodically samples DatabaseClient.get_pool_stats() and logs utilization
# at a severity matching how close the pool is to exhaustion:
#
#   >= 90%  -> ERROR    (pool near exhaustion)
#   >= 80%  -> WARNING
#   else    -> INFO
#
# Any request waiting for a connection is always worth a warning, whatever
# the utilization tier.
# =============================================================================

import asyncio
import logging

logger = logging.getLogger(__name__)

UTILIZATION_WARNING = 80.0
UTILIZATION_CRITICAL = 90.0


def classify_utilization(utilization: float) -> int:
    """Map a utilization percentage to a logging level."""
    if utilization >= UTILIZATION_CRITICAL:
        return logging.ERROR
    if utilization >= UTILIZATION_WARNING:
        return logging.WARNING
    return logging.INFO


class PoolMonitor:
    """
    Background task logging pool health every `interval_seconds`.

    Args:
        db: Anything exposing get_pool_stats() (normally DatabaseClient)
        interval_seconds: Sampling period (60s in production, 300s otherwise)
    """

    def __init__(self, db, interval_seconds: float):
        self.db = db
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task | None = None

    def check(self):
        """Take one sample and log it. Returns the sampled stats."""
        stats = self.db.get_pool_stats()
        level = classify_utilization(stats.utilization)

        if level == logging.ERROR:
            message = "Database pool near exhaustion"
        elif level == logging.WARNING:
            message = "Database pool utilization high"
        else:
            message = "Database pool status"
        logger.log(level, message, extra={"pool": stats.to_dict(), "utilization": stats.utilization})

        if stats.waiting_requests > 0:
            logger.warning(
                f"{stats.waiting_requests} request(s) waiting for a database connection",
                extra={"pool": stats.to_dict()},
            )
        return stats

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                self.check()
            except Exception as e:
                logger.error(f"Pool monitor tick failed: {e}")

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())
            logger.debug(f"Pool monitor started (interval={self.interval_seconds}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
