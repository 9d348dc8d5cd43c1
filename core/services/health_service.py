# =============================================================================
# core/services/health_service.py - Dependency Health Checks
# =============================================================================
# Two kinds of probe:
# - liveness(): process is up. No I/O, safe to call every few seconds.
# - run_checks(): probes the database pool and the SMTP relay in parallel and
#   folds them into one status.
#
# Overall status:
#   unhealthy - at least one dependency is unhealthy
#   degraded  - none unhealthy, at least one degraded
#   healthy   - everything healthy
#
# Every check runs to completion even if another fails; this is diagnostics,
# not fail-fast.
# =============================================================================

import asyncio
import logging
import smtplib
import time

from app import __version__
from core.models import DependencyHealth, HealthCheckResult, LivenessResult
from lib.utils import utcnow

logger = logging.getLogger(__name__)

_STARTED_AT = time.monotonic()

DB_WARNING_MS = 100
DB_CRITICAL_MS = 500
POOL_UTILIZATION_WARNING = 80.0
POOL_UTILIZATION_CRITICAL = 95.0
SMTP_TIMEOUT_SECONDS = 3


def _uptime() -> float:
    return round(time.monotonic() - _STARTED_AT, 3)


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def _smtp_probe(settings) -> None:
    """Connect and authenticate without sending anything."""
    if settings.SMTP_SECURE:
        smtp = smtplib.SMTP_SSL(settings.SMTP_HOST, settings.SMTP_PORT, timeout=SMTP_TIMEOUT_SECONDS)
    else:
        smtp = smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=SMTP_TIMEOUT_SECONDS)
    with smtp:
        smtp.ehlo()
        if not settings.SMTP_SECURE and smtp.has_extn("starttls"):
            smtp.starttls()
            smtp.ehlo()
        smtp.login(settings.SMTP_USER, settings.SMTP_PASS)


class HealthService:
    """Service for liveness and readiness probes."""

    @staticmethod
    def liveness() -> LivenessResult:
        return LivenessResult(alive=True, uptime=_uptime())

    # -------------------------------------------------------------------------
    # Individual checks
    # -------------------------------------------------------------------------

    @staticmethod
    async def check_database(db) -> DependencyHealth:
        """
        SELECT 1 through the pool, then grade latency and pool utilization.

        Pool exhaustion outranks latency: a saturated pool is reported even
        when the probe itself was quick.
        """
        started = time.perf_counter()
        result = await db.health_check()
        response_time = _elapsed_ms(started)
        pool = result["pool"]

        if not result["healthy"]:
            logger.error(
                "Database health check failed",
                extra={"response_time_ms": response_time, "pool": pool.to_dict()},
            )
            return DependencyHealth(
                name="database",
                status="unhealthy",
                response_time=response_time,
                message="Database connection failed",
                details=pool.to_dict(),
            )

        utilization = pool.utilization
        status, message = "healthy", "Database operational"
        if utilization >= POOL_UTILIZATION_CRITICAL:
            status, message = "unhealthy", f"Connection pool critically exhausted ({utilization:.0f}%)"
        elif response_time > DB_CRITICAL_MS:
            status, message = "unhealthy", f"Database critically slow ({response_time}ms)"
        elif utilization >= POOL_UTILIZATION_WARNING:
            status, message = "degraded", f"Connection pool utilization high ({utilization:.0f}%)"
        elif response_time > DB_WARNING_MS:
            status, message = "degraded", f"Database response slow ({response_time}ms)"

        return DependencyHealth(
            name="database",
            status=status,
            response_time=response_time,
            message=message,
            details={
                "poolTotal": pool.total_connections,
                "poolIdle": pool.idle_connections,
                "poolWaiting": pool.waiting_requests,
                "poolMax": pool.max_connections,
                "utilization": utilization,
                "activeQueries": pool.active_queries,
                "totalQueries": pool.total_queries,
                "slowQueries": pool.slow_queries,
            },
        )

    @staticmethod
    async def check_email(settings) -> DependencyHealth:
        """
        Verify the SMTP relay accepts our credentials.

        Email is never critical: the worst result is degraded.
        """
        if not settings.smtp_configured:
            return DependencyHealth(
                name="email",
                status="degraded",
                response_time=0,
                message="Email service not configured",
                details={"configured": False},
            )

        started = time.perf_counter()
        try:
            await asyncio.to_thread(_smtp_probe, settings)
        except (smtplib.SMTPException, OSError) as e:
            response_time = _elapsed_ms(started)
            logger.error(f"Email health check failed: {e}", extra={"response_time_ms": response_time})
            return DependencyHealth(
                name="email",
                status="degraded",
                response_time=response_time,
                message=str(e) or "Email service unavailable",
                details={"error": str(e)},
            )

        return DependencyHealth(
            name="email",
            status="healthy",
            response_time=_elapsed_ms(started),
            message="Email service operational",
            details={"host": settings.SMTP_HOST, "port": settings.SMTP_PORT, "secure": settings.SMTP_SECURE},
        )

    # -------------------------------------------------------------------------
    # Aggregate
    # -------------------------------------------------------------------------

    @staticmethod
    async def run_checks(db, settings) -> HealthCheckResult:
        started = time.perf_counter()
        dependencies = list(
            await asyncio.gather(
                HealthService.check_database(db),
                HealthService.check_email(settings),
            )
        )

        statuses = {d.status for d in dependencies}
        if "unhealthy" in statuses:
            overall = "unhealthy"
        elif "degraded" in statuses:
            overall = "degraded"
        else:
            overall = "healthy"

        logger.debug(
            "Health check completed",
            extra={
                "status": overall,
                "duration": _elapsed_ms(started),
                "dependencies": [
                    {"name": d.name, "status": d.status, "response_time_ms": d.response_time}
                    for d in dependencies
                ],
            },
        )
        return HealthCheckResult(
            status=overall,
            timestamp=utcnow(),
            uptime=_uptime(),
            environment=settings.ENVIRONMENT,
            version=__version__,
            dependencies=dependencies,
        )
