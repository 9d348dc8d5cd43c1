# =============================================================================
# core/services/feedback_service.py - Feedback Business Logic
# =============================================================================
# Project owners leave one piece of feedback per reviewed application.
#
# Privacy: feedback is visible to everyone only when isPublic is set;
# otherwise only the student it is about and the mentor who wrote it can
# read it.
# =============================================================================

import logging

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from core.entities import Application, ApplicationStatus, Feedback
from core.models import FeedbackCreate, FeedbackFilters, FeedbackUpdate, Paginated, Pagination
from lib.logger import track_operation
from lib.utils import page_offset

logger = logging.getLogger(__name__)

REVIEWED_STATUSES = (ApplicationStatus.ACCEPTED, ApplicationStatus.REJECTED)


class FeedbackService:
    """Service for mentor feedback."""

    @staticmethod
    async def _get_or_404(session: AsyncSession, feedback_id: str) -> Feedback:
        feedback = await session.get(Feedback, feedback_id)
        if feedback is None:
            raise NotFoundError("Feedback not found")
        return feedback

    @staticmethod
    async def _for_application_id(session: AsyncSession, application_id: str) -> Feedback | None:
        return await session.scalar(select(Feedback).where(Feedback.application_id == application_id))

    # -------------------------------------------------------------------------
    # Create / Update / Delete
    # -------------------------------------------------------------------------

    @staticmethod
    async def create(session: AsyncSession, mentor_id: str, data: FeedbackCreate) -> Feedback:
        """
        Raises:
            NotFoundError: Application does not exist
            ForbiddenError: Caller does not own the application's project
            ConflictError: The application already has feedback
            ValidationError: The application has not been accepted or rejected
        """
        tracker = track_operation("feedback.create", user_id=mentor_id, application_id=data.application_id)
        application = await session.get(Application, data.application_id)
        if application is None:
            tracker.warn("Feedback for non-existent application", outcome="not_found")
            raise NotFoundError("Application not found")

        if application.project.created_by_id != mentor_id:
            tracker.warn(
                "Unauthorized feedback creation attempt",
                outcome="forbidden",
                project_owner_id=application.project.created_by_id,
            )
            raise ForbiddenError("Only the project owner can provide feedback")

        existing = await FeedbackService._for_application_id(session, application.id)
        if existing is not None:
            tracker.warn("Duplicate feedback creation attempt", outcome="conflict", existing_feedback_id=existing.id)
            raise ConflictError("Feedback already exists for this application")

        if application.status not in REVIEWED_STATUSES:
            tracker.warn(
                "Feedback for non-reviewed application",
                outcome="validation_error",
                application_status=application.status.value,
            )
            raise ValidationError("Feedback can only be provided for accepted or rejected applications")

        feedback = Feedback(mentor_id=mentor_id, **data.model_dump())
        session.add(feedback)
        await session.flush()
        await session.refresh(feedback)

        tracker.success(feedback_id=feedback.id, rating=feedback.rating, is_public=feedback.is_public)
        return feedback

    @staticmethod
    async def update(session: AsyncSession, feedback_id: str, mentor_id: str, data: FeedbackUpdate) -> Feedback:
        changes = data.model_dump(exclude_unset=True)
        tracker = track_operation("feedback.update", feedback_id=feedback_id, user_id=mentor_id, fields=sorted(changes))

        feedback = await FeedbackService._get_or_404(session, feedback_id)
        if feedback.mentor_id != mentor_id:
            tracker.warn("Unauthorized feedback update attempt", outcome="forbidden")
            raise ForbiddenError("You can only update your own feedback")

        for field, value in changes.items():
            # Every feedback column is required; null means "unchanged"
            if value is not None:
                setattr(feedback, field, value)

        await session.flush()
        await session.refresh(feedback)
        tracker.success()
        return feedback

    @staticmethod
    async def delete(session: AsyncSession, feedback_id: str, mentor_id: str) -> None:
        feedback = await FeedbackService._get_or_404(session, feedback_id)
        if feedback.mentor_id != mentor_id:
            logger.warning(
                "Unauthorized feedback delete attempt",
                extra={"operation": "feedback.delete", "feedback_id": feedback_id, "user_id": mentor_id},
            )
            raise ForbiddenError("You can only delete your own feedback")

        await session.delete(feedback)
        await session.flush()
        logger.info("Feedback deleted", extra={"operation": "feedback.delete", "feedback_id": feedback_id})

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    @staticmethod
    async def list_feedback(
        session: AsyncSession, filters: FeedbackFilters, viewer_id: str | None = None
    ) -> Paginated:
        """
        Paginated feedback, newest first.

        Private feedback is only included for the student it is about and
        the mentor who wrote it; anonymous callers see public feedback only.
        """
        if viewer_id is None:
            clauses = [Feedback.is_public.is_(True)]
        else:
            clauses = [
                or_(
                    Feedback.is_public.is_(True),
                    Feedback.mentor_id == viewer_id,
                    Feedback.application_id.in_(
                        select(Application.id).where(Application.student_id == viewer_id)
                    ),
                )
            ]
        if filters.is_public is not None:
            clauses.append(Feedback.is_public.is_(filters.is_public))
        if filters.mentor_id:
            clauses.append(Feedback.mentor_id == filters.mentor_id)
        if filters.student_id:
            clauses.append(
                Feedback.application_id.in_(
                    select(Application.id).where(Application.student_id == filters.student_id)
                )
            )

        total = await session.scalar(select(func.count()).select_from(Feedback).where(*clauses))
        result = await session.scalars(
            select(Feedback)
            .where(*clauses)
            .order_by(Feedback.created_at.desc())
            .offset(page_offset(filters.page, filters.limit))
            .limit(filters.limit)
        )
        return Paginated(
            data=list(result.unique()),
            pagination=Pagination.build(total or 0, filters.page, filters.limit),
        )

    @staticmethod
    async def get(session: AsyncSession, feedback_id: str, viewer_id: str | None = None) -> Feedback:
        """
        Fetch one piece of feedback, enforcing privacy.

        Raises:
            NotFoundError: Feedback does not exist
            ForbiddenError: Private, and the viewer is neither the student nor the mentor
        """
        feedback = await FeedbackService._get_or_404(session, feedback_id)

        is_student = viewer_id is not None and viewer_id == feedback.application.student_id
        is_mentor = viewer_id is not None and viewer_id == feedback.mentor_id
        if not feedback.is_public and not is_student and not is_mentor:
            logger.warning(
                "Unauthorized feedback access attempt",
                extra={"operation": "feedback.getById", "feedback_id": feedback_id, "user_id": viewer_id},
            )
            raise ForbiddenError("You do not have access to this feedback")
        return feedback

    @staticmethod
    async def my_feedback(session: AsyncSession, student_id: str) -> list[Feedback]:
        """Feedback received by a student."""
        result = await session.scalars(
            select(Feedback)
            .join(Feedback.application)
            .where(Application.student_id == student_id)
            .order_by(Feedback.created_at.desc())
        )
        return list(result.unique())

    @staticmethod
    async def given(session: AsyncSession, mentor_id: str) -> list[Feedback]:
        """Feedback written by a mentor."""
        result = await session.scalars(
            select(Feedback).where(Feedback.mentor_id == mentor_id).order_by(Feedback.created_at.desc())
        )
        return list(result.unique())

    @staticmethod
    async def for_application(session: AsyncSession, application_id: str, viewer_id: str) -> Feedback | None:
        """
        The feedback on one application, or None if there is none yet.

        Raises:
            NotFoundError: Application does not exist
            ForbiddenError: Viewer is not the student, the project owner, and
                the feedback is not public
        """
        application = await session.get(Application, application_id)
        if application is None:
            raise NotFoundError("Application not found")

        feedback = await FeedbackService._for_application_id(session, application_id)
        is_student = viewer_id == application.student_id
        is_owner = viewer_id == application.project.created_by_id
        is_public = feedback is not None and feedback.is_public
        if not is_student and not is_owner and not is_public:
            raise ForbiddenError("You do not have permission to view this feedback")
        return feedback
