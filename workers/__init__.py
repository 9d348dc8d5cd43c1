# =============================================================================
# workers/ - Celery Background Task Workers
# =============================================================================
# This package contains the Celery configuration and task definitions for
# the e-mail queue.
#
# Components:
# - celery_app.py: Celery application configuration
# - tasks.py: Task definitions (send_email)
# - config.py: Worker-specific settings
#
# Usage:
#   # Start worker (e-mail has its own queue)
#   celery -A workers.celery_app worker -Q email,default --loglevel=info
#
#   # Submit task (from API)
#   from workers.tasks import send_email
#   send_email.delay(to, subject, html, metadata)
# =============================================================================

from .celery_app import celery_app
from . import tasks

__all__ = [
    "celery_app",
    "tasks",
]
