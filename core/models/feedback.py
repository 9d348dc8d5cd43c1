# =============================================================================
# core/models/feedback.py - Feedback Schemas
# =============================================================================
# Mentor feedback on a reviewed (ACCEPTED or REJECTED) application.
# Private by default: only the student and the mentor can read it unless
# isPublic is set.
# =============================================================================

from datetime import datetime

from pydantic import Field

from core.entities import ApplicationStatus

from .common import CamelModel, PaginationParams, StrictCamelModel, string_list
from .user import UserSummary

PointList = string_list(min_items=1, max_items=10)


class FeedbackCreate(CamelModel):
    """
    Example:
        {
            "applicationId": "550e8400-e29b-41d4-a716-446655440000",
            "rating": 4,
            "feedbackText": "Clear communication and solid fundamentals.",
            "strengths": ["Testing"],
            "improvements": ["SQL indexing"],
            "isPublic": false
        }
    """

    application_id: str = Field(..., pattern=r"^[0-9a-fA-F-]{36}$", description="Application UUID")
    rating: int = Field(..., ge=1, le=5)
    feedback_text: str = Field(..., min_length=20, max_length=2000)
    strengths: PointList
    improvements: PointList
    is_public: bool = False


class FeedbackUpdate(StrictCamelModel):
    rating: int | None = Field(default=None, ge=1, le=5)
    feedback_text: str | None = Field(default=None, min_length=20, max_length=2000)
    strengths: PointList | None = None
    improvements: PointList | None = None
    is_public: bool | None = None


class FeedbackFilters(PaginationParams):
    student_id: str | None = None
    mentor_id: str | None = None
    is_public: bool | None = None


# -----------------------------------------------------------------------------
# Embedded summaries
# -----------------------------------------------------------------------------

class FeedbackProjectSummary(CamelModel):
    id: str
    title: str
    created_by_id: str


class FeedbackStudentSummary(CamelModel):
    id: str
    full_name: str
    email: str


class FeedbackApplicationSummary(CamelModel):
    id: str
    student_id: str
    project_id: str
    status: ApplicationStatus
    project: FeedbackProjectSummary
    student: FeedbackStudentSummary


class FeedbackResponse(CamelModel):
    id: str
    application_id: str
    mentor_id: str
    rating: int
    feedback_text: str
    strengths: list[str]
    improvements: list[str]
    is_public: bool
    created_at: datetime
    updated_at: datetime
    application: FeedbackApplicationSummary
    mentor: UserSummary
