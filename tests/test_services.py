# =============================================================================
# tests/test_services.py - Service Layer Tests
# =============================================================================
# Business rules exercised directly against the services, one database per
# test. Notifications are patched out where the test asserts on them.
# =============================================================================

from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy import select

from app.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from core.entities import (
    Application,
    ApplicationStatus,
    Project,
    ProjectStatus,
    RefreshToken,
    User,
    UserRole,
)
from core.models import (
    ApplicationCreate,
    ApplicationFilters,
    ApplicationStatusUpdate,
    FeedbackCreate,
    FeedbackFilters,
    ProfileUpdate,
    ProjectFilters,
    ProjectUpdate,
    RegisterRequest,
)
from core.services import (
    ApplicationService,
    AuthService,
    FeedbackService,
    ProjectService,
    UserService,
)
from core.services.auth_service import RESET_REQUESTED_MESSAGE
from lib.utils import utcnow

from .conftest import TEST_PASSWORD

COVER_LETTER = "I have shipped several production APIs and would love to work on this one."


def _apply(project: Project) -> ApplicationCreate:
    return ApplicationCreate(project_id=project.id, cover_letter=COVER_LETTER)


def _feedback(application: Application, **fields) -> FeedbackCreate:
    values = {
        "application_id": application.id,
        "rating": 4,
        "feedback_text": "Solid fundamentals and clear communication throughout.",
        "strengths": ["Testing"],
        "improvements": ["SQL indexing"],
    }
    values.update(fields)
    return FeedbackCreate(**values)


# =============================================================================
# AuthService
# =============================================================================

class TestAuthService:
    """Tests for registration, login and token rotation."""

    async def test_register_issues_tokens_and_queues_verification(self, db):
        # Arrange
        data = RegisterRequest(email="ada@codionix.dev", password=TEST_PASSWORD, full_name="Ada L", role="STUDENT")

        # Act
        with patch("core.services.auth_service.NotificationService") as notifications:
            async with db.session() as session:
                result = await AuthService.register(session, data)

        # Assert
        assert result.user.email == "ada@codionix.dev"
        assert result.user.is_email_verified is False
        assert result.tokens.access_token and result.tokens.refresh_token
        notifications.send_email_verification.assert_called_once()

        async with db.session() as session:
            user = await session.scalar(select(User).where(User.email == "ada@codionix.dev"))
            assert user.password_hash != TEST_PASSWORD
            assert user.email_verification_token is not None

    async def test_register_duplicate_email(self, db, make_user):
        await make_user(email="taken@codionix.dev")
        data = RegisterRequest(email="taken@codionix.dev", password=TEST_PASSWORD, full_name="Ada L", role="MENTOR")

        with pytest.raises(ConflictError, match="already exists"):
            async with db.session() as session:
                await AuthService.register(session, data)

    async def test_login_wrong_password_and_unknown_email_look_the_same(self, db, make_user):
        user = await make_user()

        async with db.session() as session:
            with pytest.raises(UnauthorizedError) as wrong_password:
                await AuthService.login(session, user.email, "Wr0ng!pass")
            with pytest.raises(UnauthorizedError) as unknown:
                await AuthService.login(session, "ghost@codionix.dev", TEST_PASSWORD)

        assert wrong_password.value.message == unknown.value.message == "Invalid email or password"

    async def test_refresh_rotates_and_revokes(self, db, make_user):
        """Each refresh token works exactly once."""
        # Arrange
        user = await make_user()
        async with db.session() as session:
            login = await AuthService.login(session, user.email, TEST_PASSWORD)
        old_token = login.tokens.refresh_token

        # Act
        async with db.session() as session:
            rotated = await AuthService.refresh(session, old_token)

        # Assert
        assert rotated.refresh_token != old_token
        async with db.session() as session:
            stored = await session.scalar(select(RefreshToken).where(RefreshToken.token == old_token))
            assert stored.is_revoked

        with pytest.raises(UnauthorizedError, match="Invalid refresh token"):
            async with db.session() as session:
                await AuthService.refresh(session, old_token)

    async def test_refresh_expired_row(self, db, make_user):
        user = await make_user()
        async with db.session() as session:
            login = await AuthService.login(session, user.email, TEST_PASSWORD)
            stored = await session.scalar(
                select(RefreshToken).where(RefreshToken.token == login.tokens.refresh_token)
            )
            stored.expires_at = utcnow() - timedelta(minutes=1)

        with pytest.raises(UnauthorizedError, match="Refresh token expired"):
            async with db.session() as session:
                await AuthService.refresh(session, login.tokens.refresh_token)

    async def test_logout_revokes(self, db, make_user):
        user = await make_user()
        async with db.session() as session:
            login = await AuthService.login(session, user.email, TEST_PASSWORD)

        async with db.session() as session:
            await AuthService.logout(session, login.tokens.refresh_token)

        with pytest.raises(UnauthorizedError):
            async with db.session() as session:
                await AuthService.refresh(session, login.tokens.refresh_token)

    async def test_password_reset_flow(self, db, make_user):
        # Arrange
        user = await make_user()

        # Act
        with patch("core.services.auth_service.NotificationService"):
            async with db.session() as session:
                result = await AuthService.forgot_password(session, user.email)
        async with db.session() as session:
            token = (await session.get(User, user.id)).password_reset_token
            await AuthService.reset_password(session, token, "N3w!password")

        # Assert
        assert result["message"] == RESET_REQUESTED_MESSAGE
        async with db.session() as session:
            await AuthService.login(session, user.email, "N3w!password")
            with pytest.raises(UnauthorizedError, match="Invalid or expired reset token"):
                await AuthService.reset_password(session, token, "An0ther!pass")

    async def test_forgot_password_unknown_email_same_message(self, db):
        async with db.session() as session:
            result = await AuthService.forgot_password(session, "nobody@codionix.dev")

        assert result["message"] == RESET_REQUESTED_MESSAGE

    async def test_verify_email(self, db, make_user):
        user = await make_user(
            email_verification_token="verify-me",
            email_verification_expiry=utcnow() + timedelta(hours=1),
        )

        with patch("core.services.auth_service.NotificationService") as notifications:
            async with db.session() as session:
                result = await AuthService.verify_email(session, "verify-me")

        assert result["message"] == "Email verified successfully"
        notifications.send_welcome.assert_called_once()
        async with db.session() as session:
            assert (await session.get(User, user.id)).is_email_verified

    async def test_verify_email_expired(self, db, make_user):
        await make_user(
            email_verification_token="stale",
            email_verification_expiry=utcnow() - timedelta(hours=1),
        )

        with pytest.raises(ValidationError, match="Invalid or expired verification token"):
            async with db.session() as session:
                await AuthService.verify_email(session, "stale")

    async def test_cleanup_expired_tokens(self, db, make_user):
        user = await make_user()
        async with db.session() as session:
            session.add(RefreshToken(user_id=user.id, token="old", expires_at=utcnow() - timedelta(days=1)))
            session.add(RefreshToken(user_id=user.id, token="revoked", expires_at=utcnow() + timedelta(days=1), is_revoked=True))
            session.add(RefreshToken(user_id=user.id, token="live", expires_at=utcnow() + timedelta(days=1)))

        async with db.session() as session:
            removed = await AuthService.cleanup_expired_tokens(session)

        assert removed == 2


# =============================================================================
# ProjectService
# =============================================================================

class TestProjectService:
    async def test_list_filters_and_paginates(self, db, make_user, make_project):
        mentor = await make_user(UserRole.MENTOR)
        await make_project(mentor, title="Python data pipeline", skills=["Python"])
        await make_project(mentor, title="React dashboard build", skills=["React"])
        await make_project(mentor, title="Draft idea for later", status=ProjectStatus.DRAFT)

        async with db.session() as session:
            by_skill = await ProjectService.list_projects(session, ProjectFilters(skills="React,Go"))
            by_search = await ProjectService.list_projects(session, ProjectFilters(search="pipeline"))
            paged = await ProjectService.list_projects(session, ProjectFilters(page=2, limit=2))

        assert [p.title for p in by_skill.data] == ["React dashboard build"]
        assert [p.title for p in by_search.data] == ["Python data pipeline"]
        assert paged.pagination.total == 3
        assert paged.pagination.total_pages == 2
        assert len(paged.data) == 1
        assert paged.pagination.has_prev_page and not paged.pagination.has_next_page

    async def test_update_by_non_owner_is_forbidden(self, db, make_user, make_project):
        owner = await make_user(UserRole.MENTOR)
        other = await make_user(UserRole.EMPLOYER)
        project = await make_project(owner)

        with pytest.raises(ForbiddenError, match="permission to update"):
            async with db.session() as session:
                await ProjectService.update(session, project.id, other.id, ProjectUpdate(title="Hijacked title"))

    async def test_update_applies_only_sent_fields(self, db, make_user, make_project):
        owner = await make_user(UserRole.MENTOR)
        project = await make_project(owner, location="Berlin")

        async with db.session() as session:
            updated = await ProjectService.update(
                session, project.id, owner.id, ProjectUpdate(status=ProjectStatus.CLOSED)
            )

        assert updated.status == ProjectStatus.CLOSED
        assert updated.location == "Berlin"
        assert updated.title == project.title

    async def test_delete(self, db, make_user, make_project):
        owner = await make_user(UserRole.MENTOR)
        project = await make_project(owner)

        async with db.session() as session:
            await ProjectService.delete(session, project.id, owner.id)

        with pytest.raises(NotFoundError):
            async with db.session() as session:
                await ProjectService.get(session, project.id)


# =============================================================================
# ApplicationService
# =============================================================================

class TestApplicationService:
    """Tests for applying and reviewing."""

    async def test_apply_increments_applicant_count(self, db, make_user, make_project):
        # Arrange
        mentor = await make_user(UserRole.MENTOR)
        student = await make_user()
        project = await make_project(mentor)

        # Act
        with patch("core.services.application_service.NotificationService") as notifications:
            async with db.session() as session:
                application = await ApplicationService.create(session, student.id, _apply(project))

        # Assert
        assert application.status == ApplicationStatus.PENDING
        notifications.send_new_application_alert.assert_called_once()
        async with db.session() as session:
            assert (await session.get(Project, project.id)).current_applicants == 1

    async def test_rolled_back_apply_sends_no_alert(self, db, make_user, make_project):
        """The owner alert waits for the commit; a rollback discards it."""
        # Arrange
        mentor = await make_user(UserRole.MENTOR)
        student = await make_user()
        project = await make_project(mentor)

        # Act
        with patch("core.services.application_service.NotificationService") as notifications:
            with pytest.raises(RuntimeError):
                async with db.session() as session:
                    await ApplicationService.create(session, student.id, _apply(project))
                    raise RuntimeError("request failed after the insert")

        # Assert
        notifications.send_new_application_alert.assert_not_called()
        async with db.session() as session:
            assert (await session.get(Project, project.id)).current_applicants == 0

    async def test_apply_checks_in_order(self, db, make_user, make_project, make_application):
        mentor = await make_user(UserRole.MENTOR)
        student = await make_user()
        draft = await make_project(mentor, status=ProjectStatus.DRAFT)
        full = await make_project(mentor, max_applicants=1, current_applicants=1)
        open_project = await make_project(mentor)
        await make_application(open_project, student)

        async with db.session() as session:
            with pytest.raises(NotFoundError, match="Project not found"):
                await ApplicationService.create(
                    session,
                    student.id,
                    ApplicationCreate(project_id="00000000-0000-0000-0000-000000000000", cover_letter=COVER_LETTER),
                )
            with pytest.raises(ValidationError, match="unpublished"):
                await ApplicationService.create(session, student.id, _apply(draft))
            with pytest.raises(ValidationError, match="maximum applicants"):
                await ApplicationService.create(session, student.id, _apply(full))
            with pytest.raises(ConflictError, match="already applied"):
                await ApplicationService.create(session, student.id, _apply(open_project))

    async def test_update_status_requires_owner(self, db, make_user, make_project, make_application):
        owner = await make_user(UserRole.MENTOR)
        other = await make_user(UserRole.MENTOR)
        application = await make_application(await make_project(owner), await make_user())

        with pytest.raises(ForbiddenError):
            async with db.session() as session:
                await ApplicationService.update_status(
                    session, application.id, other.id, ApplicationStatusUpdate(status=ApplicationStatus.ACCEPTED)
                )

    async def test_reject_requires_reason(self, db, make_user, make_project, make_application):
        owner = await make_user(UserRole.MENTOR)
        application = await make_application(await make_project(owner), await make_user())

        with pytest.raises(ValidationError, match="Rejection reason is required"):
            async with db.session() as session:
                await ApplicationService.update_status(
                    session, application.id, owner.id, ApplicationStatusUpdate(status=ApplicationStatus.REJECTED)
                )

    async def test_review_records_reviewer(self, db, make_user, make_project, make_application):
        owner = await make_user(UserRole.EMPLOYER)
        application = await make_application(await make_project(owner), await make_user())

        with patch("core.services.application_service.NotificationService") as notifications:
            async with db.session() as session:
                updated = await ApplicationService.update_status(
                    session,
                    application.id,
                    owner.id,
                    ApplicationStatusUpdate(status=ApplicationStatus.REJECTED, rejection_reason="Looking for more SQL experience"),
                )

        assert updated.reviewer_id == owner.id
        assert updated.reviewed_at is not None
        assert updated.rejection_reason == "Looking for more SQL experience"
        notifications.send_status_update.assert_called_once()

    async def test_list_filters(self, db, make_user, make_project, make_application):
        owner = await make_user(UserRole.MENTOR)
        project = await make_project(owner)
        await make_application(project, await make_user(), status=ApplicationStatus.ACCEPTED)
        await make_application(project, await make_user())

        async with db.session() as session:
            page = await ApplicationService.list_applications(
                session, ApplicationFilters(status=ApplicationStatus.ACCEPTED)
            )

        assert page.pagination.total == 1
        assert page.data[0].status == ApplicationStatus.ACCEPTED


# =============================================================================
# FeedbackService
# =============================================================================

class TestFeedbackService:
    """Tests for feedback rules and privacy."""

    @pytest.fixture
    async def reviewed(self, make_user, make_project, make_application):
        mentor = await make_user(UserRole.MENTOR)
        student = await make_user()
        application = await make_application(
            await make_project(mentor), student, status=ApplicationStatus.ACCEPTED
        )
        return mentor, student, application

    async def test_create(self, db, reviewed):
        mentor, _, application = reviewed

        async with db.session() as session:
            feedback = await FeedbackService.create(session, mentor.id, _feedback(application))

        assert feedback.rating == 4
        assert feedback.is_public is False

    async def test_only_owner_can_create(self, db, reviewed, make_user):
        _, _, application = reviewed
        stranger = await make_user(UserRole.MENTOR)

        with pytest.raises(ForbiddenError, match="Only the project owner"):
            async with db.session() as session:
                await FeedbackService.create(session, stranger.id, _feedback(application))

    async def test_duplicate_is_conflict(self, db, reviewed):
        mentor, _, application = reviewed
        async with db.session() as session:
            await FeedbackService.create(session, mentor.id, _feedback(application))

        with pytest.raises(ConflictError, match="Feedback already exists"):
            async with db.session() as session:
                await FeedbackService.create(session, mentor.id, _feedback(application))

    async def test_pending_application_cannot_get_feedback(self, db, make_user, make_project, make_application):
        mentor = await make_user(UserRole.MENTOR)
        application = await make_application(await make_project(mentor), await make_user())

        with pytest.raises(ValidationError, match="accepted or rejected"):
            async with db.session() as session:
                await FeedbackService.create(session, mentor.id, _feedback(application))

    async def test_private_feedback_visibility(self, db, reviewed, make_user):
        mentor, student, application = reviewed
        stranger = await make_user()
        async with db.session() as session:
            feedback = await FeedbackService.create(session, mentor.id, _feedback(application))

        async with db.session() as session:
            assert (await FeedbackService.get(session, feedback.id, student.id)).id == feedback.id
            assert (await FeedbackService.get(session, feedback.id, mentor.id)).id == feedback.id
            with pytest.raises(ForbiddenError, match="do not have access"):
                await FeedbackService.get(session, feedback.id, stranger.id)
            with pytest.raises(ForbiddenError):
                await FeedbackService.get(session, feedback.id, None)

    async def test_list_hides_private_feedback_from_others(self, db, reviewed, make_user):
        mentor, student, application = reviewed
        stranger = await make_user()
        async with db.session() as session:
            await FeedbackService.create(session, mentor.id, _feedback(application))

        async with db.session() as session:
            anonymous = await FeedbackService.list_feedback(session, FeedbackFilters())
            as_stranger = await FeedbackService.list_feedback(session, FeedbackFilters(), stranger.id)
            as_student = await FeedbackService.list_feedback(session, FeedbackFilters(), student.id)

        assert anonymous.pagination.total == 0
        assert as_stranger.pagination.total == 0
        assert as_student.pagination.total == 1

    async def test_update_and_delete_only_by_author(self, db, reviewed, make_user):
        mentor, _, application = reviewed
        other = await make_user(UserRole.MENTOR)
        async with db.session() as session:
            feedback = await FeedbackService.create(session, mentor.id, _feedback(application))

        async with db.session() as session:
            with pytest.raises(ForbiddenError):
                await FeedbackService.delete(session, feedback.id, other.id)
            await FeedbackService.delete(session, feedback.id, mentor.id)

        with pytest.raises(NotFoundError):
            async with db.session() as session:
                await FeedbackService.get(session, feedback.id, mentor.id)


# =============================================================================
# UserService
# =============================================================================

class TestUserService:
    async def test_update_profile(self, db, make_user):
        user = await make_user()

        async with db.session() as session:
            updated = await UserService.update_profile(
                session, user.id, ProfileUpdate(bio="Backend developer", skills=["Python", "SQL"])
            )

        assert updated.bio == "Backend developer"
        assert updated.skills == ["Python", "SQL"]
        assert updated.full_name == user.full_name

    async def test_update_profile_picture(self, db, make_user):
        user = await make_user()

        async with db.session() as session:
            updated = await UserService.update_profile_picture(session, user.id, "https://cdn.codionix.dev/a.png")

        assert updated.profile_picture_url == "https://cdn.codionix.dev/a.png"

    async def test_missing_user(self, db):
        with pytest.raises(NotFoundError):
            async with db.session() as session:
                await UserService.get_profile(session, "00000000-0000-0000-0000-000000000000")
