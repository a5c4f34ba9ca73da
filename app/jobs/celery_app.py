"""
Celery configuration.

Queues:
    feedback-processing   AI parsing of new feedback into tasks
    scope-analysis        AI scope checks of single feedback items
    email-delivery        outbound notification emails
    workflow-reminders    hourly overdue-stage sweep (beat)

Every task runs inside a Flask application context (see ``init_celery``),
so services and models work exactly as they do in a request.
"""

from celery import Celery
from celery.schedules import crontab

QUEUE_FEEDBACK = "feedback-processing"
QUEUE_SCOPE = "scope-analysis"
QUEUE_EMAIL = "email-delivery"
QUEUE_WORKFLOW = "workflow-reminders"

MAX_RETRIES = 2          # 3 attempts in total
BACKOFF_BASE_SECONDS = 2
RESULT_EXPIRES_SECONDS = 24 * 60 * 60

celery = Celery("video_crm", include=["app.jobs.tasks"])

# Periodic tasks
celery.conf.beat_schedule = {
    "check-workflows-hourly": {
        "task": "app.jobs.tasks.check_workflows",
        "schedule": crontab(minute=0),  # every hour
        "options": {"queue": QUEUE_WORKFLOW},
    },
}

celery.conf.task_routes = {
    "app.jobs.tasks.parse_feedback": {"queue": QUEUE_FEEDBACK},
    "app.jobs.tasks.analyze_scope": {"queue": QUEUE_SCOPE},
    "app.jobs.tasks.send_email": {"queue": QUEUE_EMAIL},
    "app.jobs.tasks.check_workflows": {"queue": QUEUE_WORKFLOW},
}

celery.conf.update(
    timezone="UTC",
    enable_utc=True,
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    task_acks_late=True,           # acknowledge after completion
    worker_prefetch_multiplier=1,  # one task at a time per process
    result_expires=RESULT_EXPIRES_SECONDS,
    task_default_queue=QUEUE_FEEDBACK,
)


def backoff_seconds(retries: int) -> int:
    """Exponential backoff: 2 s, 4 s, 8 s, ..."""
    return BACKOFF_BASE_SECONDS * (2 ** retries)


def init_celery(flask_app) -> Celery:
    """Bind the Celery instance to *flask_app* (broker, backend, app context)."""
    cfg = flask_app.config
    celery.conf.update(
        broker_url=cfg.get("CELERY_BROKER_URL"),
        result_backend=cfg.get("CELERY_RESULT_BACKEND"),
        task_always_eager=cfg.get("CELERY_TASK_ALWAYS_EAGER", False),
    )

    class FlaskTask(celery.Task):
        def __call__(self, *args, **kwargs):
            with flask_app.app_context():
                return self.run(*args, **kwargs)

    celery.Task = FlaskTask
    flask_app.extensions["celery"] = celery
    return celery
