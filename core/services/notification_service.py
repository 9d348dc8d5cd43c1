# =============================================================================
# core/services/notification_service.py - E-mail Notifications
# =============================================================================
# Turns domain events into queued e-mails:
# - account: verification, password reset, welcome
# - applications: new-application alert (owner), status change (student)
#
# Sending is always fire-and-forget: the mail is handed to the Celery queue
# (workers.tasks.send_email) and a queueing failure is logged, never raised.
# Services call these through lib.database.after_commit(), so nothing is
# queued for a write that rolls back.
# =============================================================================

import logging
from typing import Any

from app.config import get_settings
from core.entities import Application, ApplicationStatus, User, UserRole
from workers.tasks import send_email

from . import email_templates

logger = logging.getLogger(__name__)


class NotificationService:
    """
    Queue transactional e-mails.

    FEATURES switches whole notification families off without touching
    callers.
    """

    FEATURES: dict[str, bool] = {
        "WELCOME_EMAIL": True,
        "APPLICATION_ALERTS": True,
        "STATUS_UPDATES": True,
    }

    STATUS_SUBJECTS = {
        ApplicationStatus.ACCEPTED: 'Congratulations! You\'ve been accepted for "{title}"',
        ApplicationStatus.REJECTED: 'Application Update: "{title}"',
        ApplicationStatus.UNDER_REVIEW: 'Your application for "{title}" is under review',
    }

    @staticmethod
    def _enqueue(operation: str, to: str, subject: str, html: str, metadata: dict[str, Any]) -> bool:
        """Hand a mail to the queue. Returns False (and logs) if the broker refuses it."""
        try:
            send_email.delay(to, subject, html, metadata)
        except Exception as e:
            logger.error(
                f"Failed to queue email: {e}",
                extra={"operation": operation, "recipient": to, **metadata},
            )
            return False
        logger.info("Email queued", extra={"operation": operation, "recipient": to, **metadata})
        return True

    # -------------------------------------------------------------------------
    # Account
    # -------------------------------------------------------------------------

    @staticmethod
    def send_email_verification(email: str, token: str) -> bool:
        html = email_templates.verification_email(get_settings().FRONTEND_URL, token)
        return NotificationService._enqueue(
            "notifications.emailVerification",
            email,
            "Verify Your Email - Codionix",
            html,
            {"type": "email_verification"},
        )

    @staticmethod
    def send_password_reset(email: str, token: str) -> bool:
        html = email_templates.password_reset_email(get_settings().FRONTEND_URL, token)
        return NotificationService._enqueue(
            "notifications.passwordReset",
            email,
            "Reset Your Password - Codionix",
            html,
            {"type": "password_reset"},
        )

    @staticmethod
    def send_welcome(user: User) -> bool:
        """Only verified accounts get a welcome mail."""
        if not NotificationService.FEATURES["WELCOME_EMAIL"]:
            return False
        if not user.is_email_verified:
            logger.warning(
                "Welcome email skipped - user not verified",
                extra={"operation": "notifications.sendWelcome", "user_id": user.id},
            )
            return False

        role = user.role.value if isinstance(user.role, UserRole) else str(user.role)
        html = email_templates.welcome_email(get_settings().FRONTEND_URL, user.full_name, role)
        return NotificationService._enqueue(
            "notifications.sendWelcome",
            user.email,
            "Welcome to Codionix - Start Building Today",
            html,
            {"type": "welcome", "userId": user.id},
        )

    # -------------------------------------------------------------------------
    # Applications
    # -------------------------------------------------------------------------

    @staticmethod
    def send_new_application_alert(application: Application) -> bool:
        """Tell the project owner someone applied."""
        if not NotificationService.FEATURES["APPLICATION_ALERTS"]:
            return False

        project = application.project
        owner = project.created_by
        student = application.student
        html = email_templates.new_application_email(
            get_settings().FRONTEND_URL,
            owner_name=owner.full_name,
            student_name=student.full_name,
            project_title=project.title,
            application_id=application.id,
            cover_letter=application.cover_letter,
        )
        return NotificationService._enqueue(
            "notifications.newApplication",
            owner.email,
            f'New Application: {student.full_name} applied to "{project.title}"',
            html,
            {
                "type": "application_received",
                "applicationId": application.id,
                "projectId": project.id,
                "studentId": student.id,
            },
        )

    @staticmethod
    def send_status_update(application: Application) -> bool:
        """Tell the student their application moved. PENDING is silent."""
        if not NotificationService.FEATURES["STATUS_UPDATES"]:
            return False

        subject_template = NotificationService.STATUS_SUBJECTS.get(application.status)
        if subject_template is None:
            return False

        project = application.project
        student = application.student
        html = email_templates.application_status_email(
            get_settings().FRONTEND_URL,
            student_name=student.full_name,
            project_title=project.title,
            status=application.status.value,
            owner_name=project.created_by.full_name,
            rejection_reason=application.rejection_reason,
        )
        return NotificationService._enqueue(
            "notifications.applicationStatus",
            student.email,
            subject_template.format(title=project.title),
            html,
            {
                "type": "application_status",
                "applicationId": application.id,
                "status": application.status.value,
            },
        )
