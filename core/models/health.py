# =============================================================================
# core/models/health.py - Health Check Schemas
# =============================================================================

from datetime import datetime
from typing import Any, Literal

from pydantic import Field

from .common import CamelModel

HealthStatus = Literal["healthy", "degraded", "unhealthy"]


class DependencyHealth(CamelModel):
    """
    Result of probing one external dependency.

    Example:
        {
            "name": "database",
            "status": "healthy",
            "responseTime": 4,
            "message": "Database operational",
            "details": {"poolMax": 20, "utilization": 10.0}
        }
    """

    name: str
    status: HealthStatus
    response_time: int = Field(..., description="Probe duration in milliseconds")
    message: str | None = None
    details: dict[str, Any] | None = None


class HealthCheckResult(CamelModel):
    """Aggregate of every dependency check."""

    status: HealthStatus
    timestamp: datetime
    uptime: float = Field(..., description="Process uptime in seconds")
    environment: str
    version: str
    dependencies: list[DependencyHealth]


class LivenessResult(CamelModel):
    alive: bool = True
    uptime: float
