# =============================================================================
# app/routers/ - API Route Definitions
# =============================================================================
# This package contains FastAPI routers organized by feature:
# - health.py: liveness, readiness and diagnostics
# - users.py: the signed-in user's profile
# - projects.py: project postings
# - applications.py: applying and reviewing
# - feedback.py: mentor feedback
#
# The /auth router lives in app/auth/routes.py.
# Each router is mounted in main.py with a URL prefix.
# =============================================================================

from . import health
from . import users
from . import projects
from . import applications
from . import feedback

__all__ = [
    "health",
    "users",
    "projects",
    "applications",
    "feedback",
]
