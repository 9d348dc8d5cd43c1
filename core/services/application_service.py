# =============================================================================
# core/services/application_service.py - Application Business Logic
# =============================================================================
# Students apply to published projects; project owners review applications.
#
# Applying checks, in order: project exists, is PUBLISHED, is not full, and
# the student has not applied before. The application row and the project's
# currentApplicants counter are written in the same transaction.
# =============================================================================

import logging

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from core.entities import Application, ApplicationStatus, Project, ProjectStatus
from core.models import (
    ApplicationCreate,
    ApplicationFilters,
    ApplicationStatusUpdate,
    Paginated,
    Pagination,
)
from lib.database import after_commit
from lib.logger import track_operation
from lib.utils import page_offset, utcnow

from .notification_service import NotificationService

logger = logging.getLogger(__name__)


class ApplicationService:
    """Service for project applications."""

    @staticmethod
    async def _get_or_404(session: AsyncSession, application_id: str) -> Application:
        application = await session.get(Application, application_id)
        if application is None:
            raise NotFoundError("Application not found")
        return application

    # -------------------------------------------------------------------------
    # Create
    # -------------------------------------------------------------------------

    @staticmethod
    async def create(session: AsyncSession, student_id: str, data: ApplicationCreate) -> Application:
        """
        Apply to a project.

        Raises:
            NotFoundError: Project does not exist
            ValidationError: Project not published, or already full
            ConflictError: Student already applied to this project
        """
        tracker = track_operation("application.create", user_id=student_id, project_id=data.project_id)

        project = await session.get(Project, data.project_id)
        if project is None:
            tracker.warn("Application to non-existent project", outcome="not_found")
            raise NotFoundError("Project not found")

        if project.status != ProjectStatus.PUBLISHED:
            tracker.warn("Application to unpublished project", outcome="validation_error")
            raise ValidationError("Cannot apply to unpublished projects")

        if project.max_applicants and project.current_applicants >= project.max_applicants:
            tracker.warn("Application to full project", outcome="validation_error")
            raise ValidationError("Project has reached maximum applicants")

        existing = await session.scalar(
            select(Application.id).where(
                Application.project_id == data.project_id,
                Application.student_id == student_id,
            )
        )
        if existing:
            tracker.warn("Duplicate application", outcome="conflict")
            raise ConflictError("You have already applied to this project")

        application = Application(
            project_id=data.project_id,
            student_id=student_id,
            cover_letter=data.cover_letter,
            resume_url=data.resume_url,
        )
        session.add(application)
        await session.flush()
        await session.execute(
            update(Project)
            .where(Project.id == data.project_id)
            .values(current_applicants=Project.current_applicants + 1)
        )
        await session.refresh(application)

        after_commit(session, NotificationService.send_new_application_alert, application)
        tracker.success(application_id=application.id)
        return application

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    @staticmethod
    async def list_applications(session: AsyncSession, filters: ApplicationFilters) -> Paginated:
        clauses = []
        if filters.status:
            clauses.append(Application.status == filters.status)
        if filters.project_id:
            clauses.append(Application.project_id == filters.project_id)
        if filters.student_id:
            clauses.append(Application.student_id == filters.student_id)

        total = await session.scalar(select(func.count()).select_from(Application).where(*clauses))
        result = await session.scalars(
            select(Application)
            .where(*clauses)
            .order_by(Application.applied_at.desc())
            .offset(page_offset(filters.page, filters.limit))
            .limit(filters.limit)
        )
        return Paginated(
            data=list(result.unique()),
            pagination=Pagination.build(total or 0, filters.page, filters.limit),
        )

    @staticmethod
    async def get(session: AsyncSession, application_id: str) -> Application:
        return await ApplicationService._get_or_404(session, application_id)

    @staticmethod
    async def my_applications(session: AsyncSession, student_id: str) -> list[Application]:
        result = await session.scalars(
            select(Application)
            .where(Application.student_id == student_id)
            .order_by(Application.applied_at.desc())
        )
        return list(result.unique())

    @staticmethod
    async def project_applications(session: AsyncSession, project_id: str, user_id: str) -> list[Application]:
        """
        All applications to one project, for its owner.

        Raises:
            NotFoundError: Project does not exist
            ForbiddenError: Caller does not own the project
        """
        project = await session.get(Project, project_id)
        if project is None:
            raise NotFoundError("Project not found")
        if project.created_by_id != user_id:
            raise ForbiddenError("You do not have permission to view these applications")

        result = await session.scalars(
            select(Application)
            .where(Application.project_id == project_id)
            .order_by(Application.applied_at.desc())
        )
        return list(result.unique())

    # -------------------------------------------------------------------------
    # Review
    # -------------------------------------------------------------------------

    @staticmethod
    async def update_status(
        session: AsyncSession,
        application_id: str,
        reviewer_id: str,
        data: ApplicationStatusUpdate,
    ) -> Application:
        """
        Move an application to a new status.

        Records who reviewed it and when, then mails the student for
        ACCEPTED, REJECTED and UNDER_REVIEW.

        Raises:
            NotFoundError: Application does not exist
            ForbiddenError: Caller does not own the project
            ValidationError: REJECTED without a rejection reason
        """
        tracker = track_operation(
            "application.updateStatus",
            application_id=application_id,
            user_id=reviewer_id,
            status=data.status.value,
        )
        application = await ApplicationService._get_or_404(session, application_id)

        if application.project.created_by_id != reviewer_id:
            tracker.warn("Status update by non-owner", outcome="forbidden")
            raise ForbiddenError("You do not have permission to update this application")

        if data.status == ApplicationStatus.REJECTED and not data.rejection_reason:
            raise ValidationError("Rejection reason is required when rejecting")

        application.status = data.status
        application.reviewed_at = utcnow()
        application.reviewer_id = reviewer_id
        if data.rejection_reason is not None:
            application.rejection_reason = data.rejection_reason

        await session.flush()
        await session.refresh(application)

        after_commit(session, NotificationService.send_status_update, application)
        tracker.success()
        return application
