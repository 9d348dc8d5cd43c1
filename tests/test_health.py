# =============================================================================
# tests/test_health.py - Health Check Tests
# =============================================================================
# Tests for HealthService grading and the /health endpoints.
# =============================================================================

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from core.models import DependencyHealth
from core.services import HealthService
from lib.database import PoolStats


def _pool(total: int = 2, max_connections: int = 20) -> PoolStats:
    return PoolStats(
        total_connections=total,
        idle_connections=1,
        waiting_requests=0,
        max_connections=max_connections,
        min_connections=2,
    )


def _db(healthy: bool = True, pool: PoolStats | None = None) -> MagicMock:
    db = MagicMock()
    db.health_check = AsyncMock(return_value={"healthy": healthy, "pool": pool or _pool()})
    return db


class TestCheckDatabase:
    """Tests for HealthService.check_database()."""

    async def test_healthy(self):
        result = await HealthService.check_database(_db())

        assert result.status == "healthy"
        assert result.details["poolMax"] == 20

    async def test_connection_failure_is_unhealthy(self):
        result = await HealthService.check_database(_db(healthy=False))

        assert result.status == "unhealthy"
        assert result.message == "Database connection failed"

    @pytest.mark.parametrize(
        "total, status",
        [
            (15, "healthy"),  # 75%
            (16, "degraded"),  # 80%
            (19, "unhealthy"),  # 95%
        ],
    )
    async def test_pool_utilization(self, total, status):
        result = await HealthService.check_database(_db(pool=_pool(total)))

        assert result.status == status

    async def test_slow_response_is_degraded(self):
        # 0.0s start, 0.2s end -> 200ms
        with patch("core.services.health_service.time.perf_counter", side_effect=[0.0, 0.2]):
            result = await HealthService.check_database(_db())

        assert result.status == "degraded"
        assert result.response_time == 200


class TestCheckEmail:
    async def test_not_configured_is_degraded(self, settings):
        result = await HealthService.check_email(settings)

        assert result.status == "degraded"
        assert result.message == "Email service not configured"

    async def test_probe_failure_is_degraded_never_unhealthy(self, settings):
        configured = settings.model_copy(update={"SMTP_HOST": "smtp.codionix.dev", "SMTP_USER": "u", "SMTP_PASS": "p"})

        with patch("core.services.health_service._smtp_probe", side_effect=OSError("connection refused")):
            result = await HealthService.check_email(configured)

        assert result.status == "degraded"
        assert "connection refused" in result.message

    async def test_probe_success(self, settings):
        configured = settings.model_copy(update={"SMTP_HOST": "smtp.codionix.dev", "SMTP_USER": "u", "SMTP_PASS": "p"})

        with patch("core.services.health_service._smtp_probe"):
            result = await HealthService.check_email(configured)

        assert result.status == "healthy"


class TestRunChecks:
    async def test_worst_status_wins(self, settings):
        result = await HealthService.run_checks(_db(healthy=False), settings)

        assert result.status == "unhealthy"
        assert {d.name for d in result.dependencies} == {"database", "email"}

    async def test_degraded_when_only_email_missing(self, settings):
        result = await HealthService.run_checks(_db(), settings)

        assert result.status == "degraded"
        assert result.environment == "test"


class TestHealthEndpoints:
    async def test_liveness(self, client, api_prefix):
        response = await client.get(f"{api_prefix}/health")

        body = response.json()
        assert response.status_code == 200
        assert body["data"]["alive"] is True
        assert body["data"]["uptime"] >= 0

    async def test_ready_with_real_database(self, client, api_prefix):
        """Without SMTP the service is degraded, which still counts as ready."""
        response = await client.get(f"{api_prefix}/health/ready")

        body = response.json()
        assert response.status_code == 200
        assert body["data"]["status"] == "degraded"
        database = next(d for d in body["data"]["dependencies"] if d["name"] == "database")
        assert database["status"] in ("healthy", "degraded")
        assert "responseTime" in database

    async def test_ready_503_when_database_down(self, client, api_prefix):
        down = DependencyHealth(name="database", status="unhealthy", response_time=1, message="Database connection failed")

        with patch.object(HealthService, "check_database", AsyncMock(return_value=down)):
            response = await client.get(f"{api_prefix}/health/ready")

        assert response.status_code == 503
        assert response.json()["success"] is False

    async def test_full_is_always_200(self, client, api_prefix):
        down = DependencyHealth(name="database", status="unhealthy", response_time=1)

        with patch.object(HealthService, "check_database", AsyncMock(return_value=down)):
            response = await client.get(f"{api_prefix}/health/full")

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "unhealthy"
