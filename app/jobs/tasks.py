"""
Celery tasks.

Each task delegates to a handler in ``app.jobs.handlers`` and retries
failures with exponential backoff (2 s, 4 s) for three attempts in total.
Log lines carry ``job_id``, ``queue`` and ``attempt`` so a job can be
followed across retries.
"""

import logging

from celery import shared_task

from app.jobs.celery_app import MAX_RETRIES, backoff_seconds

logger = logging.getLogger(__name__)


def job_context(task, **scope) -> dict:
    """``extra=`` fields for a running task."""
    request = task.request
    delivery_info = getattr(request, "delivery_info", None) or {}
    context = {
        "job_id": request.id,
        "queue": delivery_info.get("routing_key"),
        "attempt": (request.retries or 0) + 1,
    }
    context.update({k: v for k, v in scope.items() if v is not None})
    return context


def run_with_retry(task, handler, **kwargs):
    """Call *handler*; on failure log and schedule a retry with backoff."""
    name = task.name.rsplit(".", 1)[-1]
    extra = job_context(task, tenant_id=kwargs.get("tenant_id"), project_id=kwargs.get("project_id"))
    logger.info("%s started", name, extra=extra)
    try:
        result = handler(**kwargs)
    except Exception as exc:
        logger.warning("%s attempt %d failed: %s", name, extra["attempt"], exc, extra=extra)
        raise task.retry(exc=exc, countdown=backoff_seconds(task.request.retries))
    logger.info("%s finished", name, extra=extra)
    return result


@shared_task(bind=True, name="app.jobs.tasks.parse_feedback", max_retries=MAX_RETRIES)
def parse_feedback(self, tenant_id, project_id, feedback_ids):
    """AI-parse new feedback and create tasks from the action items."""
    from app.jobs.handlers import handle_parse_feedback

    return run_with_retry(
        self, handle_parse_feedback, tenant_id=tenant_id, project_id=project_id, feedback_ids=feedback_ids,
    )


@shared_task(bind=True, name="app.jobs.tasks.analyze_scope", max_retries=MAX_RETRIES)
def analyze_scope(self, tenant_id, project_id, feedback_id):
    from app.jobs.handlers import handle_analyze_scope

    return run_with_retry(
        self, handle_analyze_scope, tenant_id=tenant_id, project_id=project_id, feedback_id=feedback_id,
    )


@shared_task(bind=True, name="app.jobs.tasks.send_email", max_retries=MAX_RETRIES)
def send_email(self, tenant_id, to_email, template_name, context):
    from app.jobs.handlers import handle_send_email

    return run_with_retry(
        self, handle_send_email,
        tenant_id=tenant_id, to_email=to_email, template_name=template_name, context=context,
    )


@shared_task(bind=True, name="app.jobs.tasks.check_workflows", max_retries=MAX_RETRIES)
def check_workflows(self, tenant_id=None):
    """Hourly sweep for overdue workflow stages."""
    from app.jobs.handlers import handle_check_workflows

    return run_with_retry(self, handle_check_workflows, tenant_id=tenant_id)
