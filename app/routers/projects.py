# =============================================================================
# app/routers/projects.py - Project Endpoints
# =============================================================================
# Endpoints:
# - GET    /projects                    - Browse, filtered and paginated (public)
# - GET    /projects/my-projects        - Caller's own postings (mentor/employer)
# - GET    /projects/{id}               - One project (public)
# - GET    /projects/{id}/applications  - Applications to a project (owner)
# - POST   /projects                    - Create (mentor/employer)
# - PATCH  /projects/{id}               - Update (owner)
# - DELETE /projects/{id}               - Delete (owner)
# =============================================================================

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from app.auth import AuthUser, can_create_projects
from app.dependencies import SessionDep
from core.models import (
    ApplicationResponse,
    ProjectCreate,
    ProjectFilters,
    ProjectResponse,
    ProjectUpdate,
    paginated_response,
    success_response,
)
from core.services import ApplicationService, ProjectService

router = APIRouter()

ProjectOwner = Annotated[AuthUser, Depends(can_create_projects)]


@router.get("")
async def list_projects(filters: Annotated[ProjectFilters, Query()], session: SessionDep):
    """
    Browse projects, newest first.

    Query parameters: projectType, difficultyLevel, status, skills
    (comma-separated, matches any), search, page, limit.
    """
    page = await ProjectService.list_projects(session, filters)
    return paginated_response(page, ProjectResponse)


@router.get("/my-projects")
async def my_projects(user: ProjectOwner, session: SessionDep):
    projects = await ProjectService.my_projects(session, user.id)
    return success_response([ProjectResponse.model_validate(p) for p in projects])


@router.get("/{project_id}")
async def get_project(project_id: str, session: SessionDep):
    project = await ProjectService.get(session, project_id)
    return success_response(ProjectResponse.model_validate(project))


@router.get("/{project_id}/applications")
async def project_applications(project_id: str, user: ProjectOwner, session: SessionDep):
    applications = await ApplicationService.project_applications(session, project_id, user.id)
    return success_response([ApplicationResponse.model_validate(a) for a in applications])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_project(body: ProjectCreate, user: ProjectOwner, session: SessionDep):
    project = await ProjectService.create(session, user.id, body)
    return success_response(ProjectResponse.model_validate(project), status_code=status.HTTP_201_CREATED)


@router.patch("/{project_id}")
async def update_project(project_id: str, body: ProjectUpdate, user: ProjectOwner, session: SessionDep):
    project = await ProjectService.update(session, project_id, user.id, body)
    return success_response(ProjectResponse.model_validate(project))


@router.delete("/{project_id}")
async def delete_project(project_id: str, user: ProjectOwner, session: SessionDep):
    await ProjectService.delete(session, project_id, user.id)
    return success_response({"message": "Project deleted successfully"})
