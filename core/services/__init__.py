# =============================================================================
# core/services/__init__.py - Service Layer Exports
# =============================================================================

from .auth_service import AuthService
from .user_service import UserService
from .project_service import ProjectService
from .application_service import ApplicationService
from .feedback_service import FeedbackService
from .health_service import HealthService
from .notification_service import NotificationService

__all__ = [
    "AuthService",
    "UserService",
    "ProjectService",
    "ApplicationService",
    "FeedbackService",
    "HealthService",
    "NotificationService",
]
