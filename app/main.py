# =============================================================================
# app/main.py - FastAPI Application Factory
# =============================================================================
# Builds the Codionix API: middleware pipeline, exception handlers, routers
# and the startup/shutdown lifespan.
#
# Everything stateful is created here and hung on app.state:
#   app.state.settings         validated Settings
#   app.state.db               DatabaseClient (connection pool)
#   app.state.request_tracker  RequestTracker (graceful drain)
#
# Usage:
#   python -m app                                       # graceful runner
#   uvicorn app.main:create_app --factory --reload      # development
# =============================================================================

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app import __version__
from app.auth import routes as auth_routes
from app.config import Settings, get_settings
from app.middleware import build_pipeline, install_exception_handlers, install_pipeline
from app.routers import applications, feedback, health, projects, users
from core.models import success_response
from lib.database import DatabaseClient
from lib.logger import setup_logging
from lib.request_tracker import RequestTracker

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup: configure logging, connect the pool (a failure here propagates
    and the server never starts serving), start pool/query monitoring.

    Shutdown: refuse new requests, drain in-flight ones, release the pool.
    """
    settings: Settings = app.state.settings
    db: DatabaseClient = app.state.db
    tracker: RequestTracker = app.state.request_tracker

    # Startup
    setup_logging(settings)
    logger.info(f"Starting Codionix API in {settings.ENVIRONMENT} mode")
    logger.info(f"CORS origins: {settings.cors_origins_list}")

    await db.connect()
    db.start_monitoring(settings.pool_monitor_interval_seconds)

    yield

    # Shutdown
    logger.info("Shutting down Codionix API", extra={"active_requests": tracker.active_requests})
    tracker.begin_shutdown()

    drained = await tracker.wait_for_drain(settings.SHUTDOWN_DRAIN_TIMEOUT_MS)
    if drained:
        logger.info("All in-flight requests completed")
    else:
        logger.warning(
            "Degraded shutdown: drain timeout reached, closing with requests in flight",
            extra={"active_requests": tracker.active_requests, "timeout_ms": settings.SHUTDOWN_DRAIN_TIMEOUT_MS},
        )

    await db.disconnect()
    logger.info("Shutdown complete")


def create_app(
    settings: Settings | None = None,
    db: DatabaseClient | None = None,
    tracker: RequestTracker | None = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Defaults to get_settings()
        db: Defaults to a DatabaseClient built from settings
        tracker: Defaults to a fresh RequestTracker
    """
    settings = settings or get_settings()
    db = db or DatabaseClient(settings)
    tracker = tracker or RequestTracker()

    app = FastAPI(
        title="Codionix API",
        description="Marketplace connecting students with mentors and employers offering projects and internships.",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
        openapi_tags=[
            {"name": "Auth", "description": "Registration, login, tokens and e-mail verification"},
            {"name": "Users", "description": "The signed-in user's profile"},
            {"name": "Projects", "description": "Project and internship postings"},
            {"name": "Applications", "description": "Applying to projects and reviewing applications"},
            {"name": "Feedback", "description": "Mentor feedback on reviewed applications"},
            {"name": "Health", "description": "Liveness, readiness and diagnostics"},
        ],
    )

    app.state.settings = settings
    app.state.db = db
    app.state.request_tracker = tracker

    # =========================================================================
    # Middleware & Exception Handlers
    # =========================================================================

    install_exception_handlers(app)
    install_pipeline(app, build_pipeline(settings, tracker))

    # =========================================================================
    # Routers
    # =========================================================================

    prefix = settings.api_prefix

    app.include_router(auth_routes.router, prefix=prefix)
    app.include_router(users.router, prefix=f"{prefix}/users", tags=["Users"])
    app.include_router(projects.router, prefix=f"{prefix}/projects", tags=["Projects"])
    app.include_router(applications.router, prefix=f"{prefix}/applications", tags=["Applications"])
    app.include_router(feedback.router, prefix=f"{prefix}/feedback", tags=["Feedback"])
    app.include_router(health.router, prefix=f"{prefix}/health", tags=["Health"])

    @app.get("/", tags=["Root"])
    async def root():
        """
        Root endpoint - returns API info.
        """
        return success_response(
            {
                "name": "Codionix API",
                "version": __version__,
                "docs": "/docs",
                "health": f"{prefix}/health",
            }
        )

    return app
