# =============================================================================
# app/routers/applications.py - Application Endpoints
# =============================================================================
# Endpoints:
# - GET   /applications                  - List, filtered and paginated
# - GET   /applications/my-applications  - Caller's applications (student)
# - GET   /applications/{id}             - One application
# - POST  /applications                  - Apply to a project (student)
# - PATCH /applications/{id}/status      - Review (mentor/employer, owner)
# =============================================================================

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from app.auth import AuthUser, can_create_projects, is_student
from app.dependencies import CurrentUser, SessionDep
from core.models import (
    ApplicationCreate,
    ApplicationFilters,
    ApplicationResponse,
    ApplicationStatusUpdate,
    paginated_response,
    success_response,
)
from core.services import ApplicationService

router = APIRouter()

Student = Annotated[AuthUser, Depends(is_student)]
Reviewer = Annotated[AuthUser, Depends(can_create_projects)]


@router.get("")
async def list_applications(
    filters: Annotated[ApplicationFilters, Query()],
    user: CurrentUser,
    session: SessionDep,
):
    page = await ApplicationService.list_applications(session, filters)
    return paginated_response(page, ApplicationResponse)


@router.get("/my-applications")
async def my_applications(user: Student, session: SessionDep):
    applications = await ApplicationService.my_applications(session, user.id)
    return success_response([ApplicationResponse.model_validate(a) for a in applications])


@router.get("/{application_id}")
async def get_application(application_id: str, user: CurrentUser, session: SessionDep):
    application = await ApplicationService.get(session, application_id)
    return success_response(ApplicationResponse.model_validate(application))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_application(body: ApplicationCreate, user: Student, session: SessionDep):
    """
    Apply to a published project.

    The project owner is notified by e-mail in the background.
    """
    application = await ApplicationService.create(session, user.id, body)
    return success_response(
        ApplicationResponse.model_validate(application), status_code=status.HTTP_201_CREATED
    )


@router.patch("/{application_id}/status")
async def update_application_status(
    application_id: str,
    body: ApplicationStatusUpdate,
    user: Reviewer,
    session: SessionDep,
):
    """REJECTED requires a rejectionReason. The student is notified by e-mail."""
    application = await ApplicationService.update_status(session, application_id, user.id, body)
    return success_response(ApplicationResponse.model_validate(application))
