# =============================================================================
# workers/tasks.py - Celery Task Definitions
# =============================================================================
# Background work that must never block or fail an API request.
#
# Tasks:
# - send_email: deliver one transactional e-mail over SMTP, with retries
#
# Usage:
#   from workers.tasks import send_email
#   send_email.delay("ada@example.com", "Welcome", "<p>Hi</p>", {"type": "welcome"})
# =============================================================================

import logging
import smtplib
import time
from email.message import EmailMessage
from email.utils import make_msgid, parseaddr
from typing import Any

from celery import shared_task

from app.config import get_settings
from lib.logger import log_external_call

logger = logging.getLogger(__name__)

# Seconds to wait before retry 1, 2 and 3
RETRY_COUNTDOWNS = (1, 5, 15)
SMTP_TIMEOUT_SECONDS = 10


def build_message(settings, to: str, subject: str, html: str) -> EmailMessage:
    message = EmailMessage()
    message["From"] = settings.EMAIL_FROM
    message["To"] = to
    message["Subject"] = subject
    sender = parseaddr(settings.EMAIL_FROM)[1]
    message["Message-ID"] = make_msgid(domain=sender.split("@")[-1] if "@" in sender else None)
    message.set_content("This message requires an HTML-capable mail client.")
    message.add_alternative(html, subtype="html")
    return message


def deliver(settings, message: EmailMessage) -> None:
    """
    Send one message.

    SMTP_SECURE selects implicit TLS (usually port 465); otherwise the
    connection is upgraded with STARTTLS when the server offers it.
    """
    if settings.SMTP_SECURE:
        smtp = smtplib.SMTP_SSL(settings.SMTP_HOST, settings.SMTP_PORT, timeout=SMTP_TIMEOUT_SECONDS)
    else:
        smtp = smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=SMTP_TIMEOUT_SECONDS)

    with smtp:
        if not settings.SMTP_SECURE:
            smtp.ehlo()
            if smtp.has_extn("starttls"):
                smtp.starttls()
                smtp.ehlo()
        if settings.SMTP_USER:
            smtp.login(settings.SMTP_USER, settings.SMTP_PASS or "")
        smtp.send_message(message)


# =============================================================================
# E-mail Task
# =============================================================================

@shared_task(bind=True, max_retries=len(RETRY_COUNTDOWNS), name="workers.tasks.send_email")
def send_email(
    self,
    to: str,
    subject: str,
    html: str,
    metadata: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Deliver a transactional e-mail.

    Args:
        to: Recipient address
        subject: Subject line
        html: Rendered HTML body
        metadata: Free-form context for logs (type, userId, applicationId)

    Returns:
        {"sent": bool, "attempts": int}

    Retries transient SMTP/socket failures after 1s, 5s and 15s, then
    gives up and lets the task fail.
    """
    settings = get_settings()
    metadata = metadata or {}
    attempt = self.request.retries + 1

    if not settings.smtp_configured:
        logger.warning(
            "Email not sent - no SMTP config",
            extra={"recipient": to, "subject": subject, **metadata},
        )
        return {"sent": False, "attempts": 0}

    message = build_message(settings, to, subject, html)
    start = time.perf_counter()
    try:
        deliver(settings, message)
    except (smtplib.SMTPException, OSError) as e:
        duration_ms = int((time.perf_counter() - start) * 1000)
        log_external_call(
            "smtp",
            "send",
            duration_ms,
            False,
            recipient=to,
            attempt=attempt,
            error=str(e),
            **metadata,
        )
        if self.request.retries >= len(RETRY_COUNTDOWNS):
            logger.error(f"Email to {to} failed after {attempt} attempts: {e}")
            raise
        raise self.retry(exc=e, countdown=RETRY_COUNTDOWNS[self.request.retries])

    duration_ms = int((time.perf_counter() - start) * 1000)
    log_external_call(
        "smtp",
        "send",
        duration_ms,
        True,
        recipient=to,
        attempt=attempt,
        message_id=message["Message-ID"],
        **metadata,
    )
    return {"sent": True, "attempts": attempt}
