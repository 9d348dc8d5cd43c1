# =============================================================================
# core/models/project.py - Project Schemas
# =============================================================================
# These models define the API contract for project postings:
# - ProjectCreate: input for POST /projects
# - ProjectUpdate: partial input for PATCH /projects/{id}
# - ProjectFilters: query string for GET /projects
# - ProjectResponse: a project with its creator embedded
#
# A project is either a short PROJECT or an INTERNSHIP. Students can only
# apply while it is PUBLISHED.
# =============================================================================

from datetime import datetime

from pydantic import Field

from core.entities import DifficultyLevel, ProjectStatus, ProjectType

from .common import CamelModel, PaginationParams, StrictCamelModel, string_list
from .user import UserSummary

SkillList = string_list(min_items=1, max_items=10)


class ProjectCreate(CamelModel):
    """
    Schema for posting a new project.

    Example:
        {
            "title": "Build a REST API",
            "description": "Design and ship a small CRUD service with tests.",
            "skills": ["Python", "FastAPI"],
            "duration": "4 weeks",
            "deadline": "2026-12-01T00:00:00Z",
            "projectType": "PROJECT"
        }
    """

    title: str = Field(..., min_length=5, max_length=100)
    description: str = Field(..., min_length=20)
    skills: SkillList
    duration: str = Field(..., min_length=1, description="Free text, e.g. '3 months'")
    deadline: datetime = Field(..., description="ISO-8601 application deadline")
    project_type: ProjectType
    stipend: float | None = Field(default=None, gt=0)
    is_remote: bool = True
    difficulty_level: DifficultyLevel = DifficultyLevel.INTERMEDIATE
    status: ProjectStatus = ProjectStatus.DRAFT
    company_name: str | None = None
    location: str | None = None
    max_applicants: int = Field(default=10, ge=1, le=100)


class ProjectUpdate(StrictCamelModel):
    """
    Partial project update. Only fields present in the body are written.

    null is accepted for every field but only clears the nullable ones
    (stipend, companyName, location); for the rest it means "unchanged".
    """

    title: str | None = Field(default=None, min_length=5, max_length=100)
    description: str | None = Field(default=None, min_length=20)
    skills: SkillList | None = None
    duration: str | None = Field(default=None, min_length=1)
    deadline: datetime | None = None
    project_type: ProjectType | None = None
    stipend: float | None = Field(default=None, gt=0)
    is_remote: bool | None = None
    difficulty_level: DifficultyLevel | None = None
    status: ProjectStatus | None = None
    company_name: str | None = None
    location: str | None = None
    max_applicants: int | None = Field(default=None, ge=1, le=100)


class ProjectFilters(PaginationParams):
    project_type: ProjectType | None = None
    difficulty_level: DifficultyLevel | None = None
    status: ProjectStatus | None = None
    skills: str | None = Field(default=None, description="Comma-separated, matches any")
    search: str | None = Field(default=None, description="Case-insensitive title/description match")


class ProjectResponse(CamelModel):
    id: str
    title: str
    description: str
    skills: list[str]
    duration: str
    deadline: datetime
    project_type: ProjectType
    stipend: float | None = None
    is_remote: bool
    difficulty_level: DifficultyLevel
    status: ProjectStatus
    company_name: str | None = None
    location: str | None = None
    max_applicants: int
    current_applicants: int
    created_by_id: str
    created_at: datetime
    updated_at: datetime
    created_by: UserSummary
