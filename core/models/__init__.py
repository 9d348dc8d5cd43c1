# =============================================================================
# core/models/ - Pydantic Data Models
# =============================================================================
# This package contains Pydantic schemas for data validation:
# - common.py: base model, pagination, response envelope
# - user.py: auth requests/responses and profiles
# - project.py: project postings
# - application.py: applications and status review
# - feedback.py: mentor feedback
# - health.py: liveness and dependency checks
#
# These models define the "contract" between API and clients.
# =============================================================================

from .common import (
    CamelModel,
    Paginated,
    Pagination,
    PaginationParams,
    error_body,
    paginated_response,
    success_response,
)
from .user import (
    AuthResponse,
    AuthUserResponse,
    CurrentUserResponse,
    AvatarUpdate,
    ForgotPasswordRequest,
    LoginRequest,
    ProfileUpdate,
    RefreshTokenRequest,
    RegisterRequest,
    ResendVerificationRequest,
    ResetPasswordRequest,
    TokenPairResponse,
    UserProfile,
    UserSummary,
    VerifyEmailRequest,
)
from .project import ProjectCreate, ProjectFilters, ProjectResponse, ProjectUpdate
from .application import (
    ApplicationCreate,
    ApplicationFilters,
    ApplicationResponse,
    ApplicationStatusUpdate,
)
from .feedback import FeedbackCreate, FeedbackFilters, FeedbackResponse, FeedbackUpdate
from .health import DependencyHealth, HealthCheckResult, HealthStatus, LivenessResult

__all__ = [
    # Common
    "CamelModel",
    "Paginated",
    "Pagination",
    "PaginationParams",
    "error_body",
    "paginated_response",
    "success_response",
    # Users & auth
    "AuthResponse",
    "AuthUserResponse",
    "CurrentUserResponse",
    "AvatarUpdate",
    "ForgotPasswordRequest",
    "LoginRequest",
    "ProfileUpdate",
    "RefreshTokenRequest",
    "RegisterRequest",
    "ResendVerificationRequest",
    "ResetPasswordRequest",
    "TokenPairResponse",
    "UserProfile",
    "UserSummary",
    "VerifyEmailRequest",
    # Projects
    "ProjectCreate",
    "ProjectFilters",
    "ProjectResponse",
    "ProjectUpdate",
    # Applications
    "ApplicationCreate",
    "ApplicationFilters",
    "ApplicationResponse",
    "ApplicationStatusUpdate",
    # Feedback
    "FeedbackCreate",
    "FeedbackFilters",
    "FeedbackResponse",
    "FeedbackUpdate",
    # Health
    "DependencyHealth",
    "HealthCheckResult",
    "HealthStatus",
    "LivenessResult",
]
