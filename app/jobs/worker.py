"""
Worker entry point.

    celery -A app.jobs.worker.celery worker -Q feedback-processing,scope-analysis,email-delivery,workflow-reminders
    celery -A app.jobs.worker.celery beat
"""

import os

from celery.signals import setup_logging

from app import create_app
from app.jobs.celery_app import celery  # noqa: F401
from app.middleware.logging_config import configure_worker_logging

# Connected receivers stop Celery from replacing the root handlers
setup_logging.connect(configure_worker_logging, weak=False)

flask_app = create_app(os.getenv("APP_ENV", "production"))
