# =============================================================================
# core/services/project_service.py - Project Business Logic
# =============================================================================
# CRUD for project postings. Only the creator can update or delete a project.
# Listing supports filters (type, difficulty, status, skills, free-text
# search), newest first, paginated.
# =============================================================================

import json
import logging

from sqlalchemy import String, cast, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import ForbiddenError, NotFoundError
from core.entities import Project
from core.models import Paginated, Pagination, ProjectCreate, ProjectFilters, ProjectUpdate
from lib.logger import track_operation
from lib.utils import page_offset

logger = logging.getLogger(__name__)

# Null for these clears the column; for every other field it means "unchanged"
_NULLABLE_FIELDS = {"stipend", "company_name", "location"}


class ProjectService:
    """Service for project postings."""

    @staticmethod
    async def _get_or_404(session: AsyncSession, project_id: str) -> Project:
        project = await session.get(Project, project_id)
        if project is None:
            raise NotFoundError("Project not found")
        return project

    @staticmethod
    def _filter_clauses(filters: ProjectFilters) -> list:
        clauses = []
        if filters.project_type:
            clauses.append(Project.project_type == filters.project_type)
        if filters.difficulty_level:
            clauses.append(Project.difficulty_level == filters.difficulty_level)
        if filters.status:
            clauses.append(Project.status == filters.status)

        if filters.skills:
            wanted = [s.strip() for s in filters.skills.split(",") if s.strip()]
            if wanted:
                # skills is a JSON array; match any quoted element in its text form
                skills_text = cast(Project.skills, String)
                clauses.append(or_(*[skills_text.contains(json.dumps(s), autoescape=True) for s in wanted]))

        if filters.search:
            clauses.append(
                or_(
                    Project.title.icontains(filters.search, autoescape=True),
                    Project.description.icontains(filters.search, autoescape=True),
                )
            )
        return clauses

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    @staticmethod
    async def list_projects(session: AsyncSession, filters: ProjectFilters) -> Paginated:
        tracker = track_operation("project.list", page=filters.page, limit=filters.limit)
        clauses = ProjectService._filter_clauses(filters)

        total = await session.scalar(select(func.count()).select_from(Project).where(*clauses))
        result = await session.scalars(
            select(Project)
            .where(*clauses)
            .order_by(Project.created_at.desc())
            .offset(page_offset(filters.page, filters.limit))
            .limit(filters.limit)
        )
        projects = list(result.unique())

        tracker.success(results=len(projects), total=total)
        return Paginated(data=projects, pagination=Pagination.build(total or 0, filters.page, filters.limit))

    @staticmethod
    async def get(session: AsyncSession, project_id: str) -> Project:
        """
        Raises:
            NotFoundError: If the project does not exist
        """
        return await ProjectService._get_or_404(session, project_id)

    @staticmethod
    async def my_projects(session: AsyncSession, user_id: str) -> list[Project]:
        result = await session.scalars(
            select(Project).where(Project.created_by_id == user_id).order_by(Project.created_at.desc())
        )
        return list(result.unique())

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    @staticmethod
    async def create(session: AsyncSession, user_id: str, data: ProjectCreate) -> Project:
        project = Project(created_by_id=user_id, **data.model_dump())
        session.add(project)
        await session.flush()
        await session.refresh(project)

        logger.info(f"Project created: {project.title} by user: {user_id}", extra={"project_id": project.id})
        return project

    @staticmethod
    async def update(session: AsyncSession, project_id: str, user_id: str, data: ProjectUpdate) -> Project:
        """
        Raises:
            NotFoundError: If the project does not exist
            ForbiddenError: If the caller did not create it
        """
        project = await ProjectService._get_or_404(session, project_id)
        if project.created_by_id != user_id:
            raise ForbiddenError("You do not have permission to update this project")

        for field, value in data.model_dump(exclude_unset=True).items():
            if value is None and field not in _NULLABLE_FIELDS:
                continue
            setattr(project, field, value)

        await session.flush()
        await session.refresh(project)
        logger.info(f"Project updated: {project.title}", extra={"project_id": project.id})
        return project

    @staticmethod
    async def delete(session: AsyncSession, project_id: str, user_id: str) -> None:
        """Delete a project and, by cascade, its applications and their feedback."""
        project = await ProjectService._get_or_404(session, project_id)
        if project.created_by_id != user_id:
            raise ForbiddenError("You do not have permission to delete this project")

        await session.delete(project)
        await session.flush()
        logger.info(f"Project deleted: {project.title}", extra={"project_id": project_id})
