# =============================================================================
# app/routers/feedback.py - Mentor Feedback Endpoints
# =============================================================================
# Endpoints:
# - GET    /feedback                           - List (public, plus the caller's own)
# - GET    /feedback/my-feedback               - Feedback received (student)
# - GET    /feedback/given                     - Feedback written (mentor/employer)
# - GET    /feedback/application/{id}          - Feedback on one application
# - GET    /feedback/{id}                      - One piece of feedback (optional auth)
# - POST   /feedback                           - Create (project owner)
# - PATCH  /feedback/{id}                      - Update (author)
# - DELETE /feedback/{id}                      - Delete (author)
# =============================================================================

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from app.auth import AuthUser, can_create_projects, is_student
from app.dependencies import CurrentUser, OptionalUser, SessionDep
from core.models import (
    FeedbackCreate,
    FeedbackFilters,
    FeedbackResponse,
    FeedbackUpdate,
    paginated_response,
    success_response,
)
from core.services import FeedbackService

router = APIRouter()

Mentor = Annotated[AuthUser, Depends(can_create_projects)]
Student = Annotated[AuthUser, Depends(is_student)]


def _many(rows) -> list[FeedbackResponse]:
    return [FeedbackResponse.model_validate(row) for row in rows]


@router.get("")
async def list_feedback(
    filters: Annotated[FeedbackFilters, Query()],
    user: OptionalUser,
    session: SessionDep,
):
    page = await FeedbackService.list_feedback(session, filters, viewer_id=user.id if user else None)
    return paginated_response(page, FeedbackResponse)


@router.get("/my-feedback")
async def my_feedback(user: Student, session: SessionDep):
    return success_response(_many(await FeedbackService.my_feedback(session, user.id)))


@router.get("/given")
async def given_feedback(user: Mentor, session: SessionDep):
    return success_response(_many(await FeedbackService.given(session, user.id)))


@router.get("/application/{application_id}")
async def feedback_for_application(application_id: str, user: CurrentUser, session: SessionDep):
    """Returns data: null while the application has no feedback yet."""
    feedback = await FeedbackService.for_application(session, application_id, user.id)
    return success_response(FeedbackResponse.model_validate(feedback) if feedback else None)


@router.get("/{feedback_id}")
async def get_feedback(feedback_id: str, user: OptionalUser, session: SessionDep):
    """Private feedback is visible to its student and mentor only."""
    feedback = await FeedbackService.get(session, feedback_id, viewer_id=user.id if user else None)
    return success_response(FeedbackResponse.model_validate(feedback))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_feedback(body: FeedbackCreate, user: Mentor, session: SessionDep):
    feedback = await FeedbackService.create(session, user.id, body)
    return success_response(FeedbackResponse.model_validate(feedback), status_code=status.HTTP_201_CREATED)


@router.patch("/{feedback_id}")
async def update_feedback(feedback_id: str, body: FeedbackUpdate, user: Mentor, session: SessionDep):
    feedback = await FeedbackService.update(session, feedback_id, user.id, body)
    return success_response(FeedbackResponse.model_validate(feedback))


@router.delete("/{feedback_id}")
async def delete_feedback(feedback_id: str, user: Mentor, session: SessionDep):
    await FeedbackService.delete(session, feedback_id, user.id)
    return success_response({"message": "Feedback deleted successfully"})
