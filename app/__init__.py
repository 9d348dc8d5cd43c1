# =============================================================================
# app/ - FastAPI Application Package
# =============================================================================
# This package contains the FastAPI web application:
# - main.py: app factory, lifespan, exception handlers, router mounting
# - server.py: uvicorn runner with graceful shutdown
# - config.py: Environment variable loading and settings
# - exceptions.py: error taxonomy
# - middleware/: the ordered request pipeline
# - auth/: bearer-token dependencies and role guards
# - routers/: API endpoint definitions organized by feature
#
# The app layer is thin - it handles HTTP concerns and delegates
# business logic to the core/ package.
# =============================================================================

__version__ = "1.0.0"
