# =============================================================================
# core/models/application.py - Application Schemas
# =============================================================================
# - ApplicationCreate: a student applying to a project
# - ApplicationStatusUpdate: a project owner reviewing an application
# - ApplicationFilters: query string for GET /applications
# - ApplicationResponse: an application with project, student and reviewer
#
# Status flow: PENDING -> UNDER_REVIEW -> ACCEPTED | REJECTED
# =============================================================================

from datetime import datetime

from pydantic import Field

from core.entities import ApplicationStatus, ProjectStatus, ProjectType

from .common import CamelModel, HttpUrlStr, PaginationParams


class ApplicationCreate(CamelModel):
    """
    Example:
        {
            "projectId": "550e8400-e29b-41d4-a716-446655440000",
            "coverLetter": "I have built three FastAPI services ...",
            "resumeUrl": "https://example.com/cv.pdf"
        }
    """

    project_id: str = Field(..., pattern=r"^[0-9a-fA-F-]{36}$", description="Project UUID")
    cover_letter: str = Field(..., min_length=50, max_length=1000)
    resume_url: HttpUrlStr | None = None


class ApplicationStatusUpdate(CamelModel):
    status: ApplicationStatus
    rejection_reason: str | None = Field(
        default=None,
        min_length=10,
        max_length=500,
        description="Required when status is REJECTED",
    )


class ApplicationFilters(PaginationParams):
    status: ApplicationStatus | None = None
    project_id: str | None = None
    student_id: str | None = None


# -----------------------------------------------------------------------------
# Embedded summaries
# -----------------------------------------------------------------------------

class ApplicationProjectSummary(CamelModel):
    id: str
    title: str
    project_type: ProjectType
    status: ProjectStatus
    created_by_id: str


class StudentSummary(CamelModel):
    id: str
    full_name: str
    email: str
    skills: list[str] = Field(default_factory=list)


class ReviewerSummary(CamelModel):
    id: str
    full_name: str


class ApplicationResponse(CamelModel):
    id: str
    project_id: str
    student_id: str
    cover_letter: str
    resume_url: str | None = None
    status: ApplicationStatus
    applied_at: datetime
    reviewed_at: datetime | None = None
    reviewer_id: str | None = None
    rejection_reason: str | None = None
    updated_at: datetime
    project: ApplicationProjectSummary
    student: StudentSummary
    reviewer: ReviewerSummary | None = None
