# =============================================================================
# tests/test_tasks.py - E-mail Queue Tests
# =============================================================================
# Tests for workers.tasks.send_email (run eagerly in test), the
# NotificationService queueing rules and the e-mail templates.
# =============================================================================

import logging
import smtplib
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from core.entities import ApplicationStatus, UserRole
from core.services import NotificationService
from core.services import email_templates
from workers.tasks import build_message, send_email


@pytest.fixture
def smtp_settings(settings):
    return settings.model_copy(
        update={"SMTP_HOST": "smtp.codionix.dev", "SMTP_USER": "mailer", "SMTP_PASS": "secret"}
    )


class TestSendEmail:
    """Tests for the send_email Celery task."""

    def test_without_smtp_config_logs_and_skips(self, caplog):
        with caplog.at_level(logging.WARNING, logger="workers.tasks"):
            result = send_email.apply(args=("ada@codionix.dev", "Hi", "<p>Hi</p>", {"type": "test"})).get()

        assert result == {"sent": False, "attempts": 0}
        assert any("no SMTP config" in r.message for r in caplog.records)

    def test_delivers(self, smtp_settings):
        with patch("workers.tasks.get_settings", return_value=smtp_settings), patch(
            "workers.tasks.deliver"
        ) as deliver:
            result = send_email.apply(args=("ada@codionix.dev", "Hi", "<p>Hi</p>")).get()

        assert result == {"sent": True, "attempts": 1}
        message = deliver.call_args.args[1]
        assert message["To"] == "ada@codionix.dev"

    def test_retries_transient_failures(self, smtp_settings):
        """A socket error is retried and the later attempt succeeds."""
        # Arrange
        deliver = MagicMock(side_effect=[OSError("connection reset"), None])

        # Act
        with patch("workers.tasks.get_settings", return_value=smtp_settings), patch(
            "workers.tasks.deliver", deliver
        ):
            result = send_email.apply(args=("ada@codionix.dev", "Hi", "<p>Hi</p>")).get()

        # Assert
        assert deliver.call_count == 2
        assert result == {"sent": True, "attempts": 2}

    def test_gives_up_after_three_retries(self, smtp_settings):
        deliver = MagicMock(side_effect=smtplib.SMTPServerDisconnected("gone"))

        with patch("workers.tasks.get_settings", return_value=smtp_settings), patch(
            "workers.tasks.deliver", deliver
        ):
            result = send_email.apply(args=("ada@codionix.dev", "Hi", "<p>Hi</p>"))

        assert result.failed()
        assert deliver.call_count == 4


class TestBuildMessage:
    def test_headers(self, settings):
        message = build_message(settings, "ada@codionix.dev", "Verify Your Email - Codionix", "<p>x</p>")

        assert message["From"] == settings.EMAIL_FROM
        assert message["Subject"] == "Verify Your Email - Codionix"
        assert message["Message-ID"].endswith("@codionix.com>")
        assert message.is_multipart()


class TestNotificationService:
    """Tests for queueing rules."""

    def test_enqueue_failure_is_logged_not_raised(self, caplog):
        with patch("core.services.notification_service.send_email") as task:
            task.delay.side_effect = ConnectionError("broker down")
            with caplog.at_level(logging.ERROR, logger="core.services.notification_service"):
                queued = NotificationService.send_password_reset("ada@codionix.dev", "tok")

        assert queued is False
        assert any("Failed to queue email" in r.message for r in caplog.records)

    def test_verification_mail_contents(self):
        with patch("core.services.notification_service.send_email") as task:
            assert NotificationService.send_email_verification("ada@codionix.dev", "tok123") is True

        to, subject, html, metadata = task.delay.call_args.args
        assert to == "ada@codionix.dev"
        assert subject == "Verify Your Email - Codionix"
        assert "verify-email?token=tok123" in html
        assert metadata == {"type": "email_verification"}

    def test_welcome_requires_verified_user(self):
        user = SimpleNamespace(
            id="u1", email="ada@codionix.dev", full_name="Ada", role=UserRole.STUDENT, is_email_verified=False
        )

        with patch("core.services.notification_service.send_email") as task:
            assert NotificationService.send_welcome(user) is False

        task.delay.assert_not_called()

    def test_feature_flag_disables_family(self):
        user = SimpleNamespace(
            id="u1", email="ada@codionix.dev", full_name="Ada", role=UserRole.MENTOR, is_email_verified=True
        )

        with patch.dict(NotificationService.FEATURES, {"WELCOME_EMAIL": False}), patch(
            "core.services.notification_service.send_email"
        ) as task:
            assert NotificationService.send_welcome(user) is False

        task.delay.assert_not_called()

    def test_pending_status_sends_nothing(self):
        application = SimpleNamespace(status=ApplicationStatus.PENDING)

        with patch("core.services.notification_service.send_email") as task:
            assert NotificationService.send_status_update(application) is False

        task.delay.assert_not_called()

    def test_status_update_subject(self):
        owner = SimpleNamespace(full_name="Grace Mentor")
        project = SimpleNamespace(id="p1", title="Build a REST API", created_by=owner)
        application = SimpleNamespace(
            id="a1",
            status=ApplicationStatus.ACCEPTED,
            project=project,
            student=SimpleNamespace(full_name="Ada", email="ada@codionix.dev"),
            rejection_reason=None,
        )

        with patch("core.services.notification_service.send_email") as task:
            NotificationService.send_status_update(application)

        subject = task.delay.call_args.args[1]
        assert subject == 'Congratulations! You\'ve been accepted for "Build a REST API"'


class TestEmailTemplates:
    def test_cover_letter_preview_is_truncated(self):
        html = email_templates.new_application_email(
            "http://localhost:5173",
            owner_name="Grace",
            student_name="Ada",
            project_title="Build a REST API",
            application_id="a1",
            cover_letter="x" * 400,
        )

        assert "x" * 150 + "..." in html
        assert "x" * 151 not in html
        assert "http://localhost:5173/applications/a1" in html

    def test_rejection_reason_is_shown(self):
        html = email_templates.application_status_email(
            "http://localhost:5173",
            student_name="Ada",
            project_title="Build a REST API",
            status="REJECTED",
            owner_name="Grace",
            rejection_reason="Looking for more SQL experience",
        )

        assert "Looking for more SQL experience" in html

    def test_unknown_status_raises(self):
        with pytest.raises(KeyError):
            email_templates.application_status_email(
                "http://localhost:5173", "Ada", "Build a REST API", "PENDING", "Grace"
            )

    def test_welcome_falls_back_to_student_copy(self):
        html = email_templates.welcome_email("http://localhost:5173", "Ada", "ADMIN")

        assert "Ada" in html
