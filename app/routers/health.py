# =============================================================================
# app/routers/health.py - Health Check Endpoints
# =============================================================================
# Provides health check endpoints for monitoring and load balancers.
# Unauthenticated and exempt from rate limiting.
#
# - GET /health        liveness: process is up (always 200, no I/O)
# - GET /health/ready  readiness: 503 when any dependency is unhealthy
# - GET /health/full   diagnostics: always 200 so the report is readable
# =============================================================================

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder

from app.dependencies import DatabaseDep, SettingsDep
from core.models import success_response
from core.services import HealthService

router = APIRouter()


@router.get("")
async def liveness_check():
    """
    Liveness check endpoint.

    Called every few seconds by load balancers; never touches dependencies.
    """
    return success_response(HealthService.liveness())


@router.get("/ready")
async def readiness_check(db: DatabaseDep, settings: SettingsDep):
    """
    Readiness check endpoint.

    Returns 503 when any dependency is unhealthy so the instance is taken
    out of rotation. Degraded still counts as ready.
    """
    result = await HealthService.run_checks(db, settings)
    unhealthy = result.status == "unhealthy"
    return JSONResponse(
        status_code=503 if unhealthy else 200,
        content={"success": not unhealthy, "data": jsonable_encoder(result, by_alias=True)},
    )


@router.get("/full")
async def full_health_check(db: DatabaseDep, settings: SettingsDep):
    """Full diagnostic report. Not for load balancers."""
    return success_response(await HealthService.run_checks(db, settings))
