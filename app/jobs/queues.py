"""
Enqueue helpers.

Services call these instead of touching Celery directly. With
JOBS_ENABLED false (tests, local runs without Redis) every helper logs and
returns None.
"""

from __future__ import annotations

import logging

from flask import current_app

logger = logging.getLogger(__name__)


def jobs_enabled() -> bool:
    return bool(current_app.config.get("JOBS_ENABLED"))


def enqueue_parse_feedback(*, tenant_id: int, project_id: int, feedback_ids: list[int]):
    if not jobs_enabled():
        logger.debug("Jobs disabled; parse_feedback not queued for %s", feedback_ids)
        return None
    from app.jobs.tasks import parse_feedback

    return parse_feedback.delay(tenant_id=tenant_id, project_id=project_id, feedback_ids=list(feedback_ids))


def enqueue_analyze_scope(*, tenant_id: int, project_id: int, feedback_id: int):
    if not jobs_enabled():
        logger.debug("Jobs disabled; analyze_scope not queued for feedback %s", feedback_id)
        return None
    from app.jobs.tasks import analyze_scope

    return analyze_scope.delay(tenant_id=tenant_id, project_id=project_id, feedback_id=feedback_id)


def enqueue_send_email(*, tenant_id: int, to_email: str, template_name: str, context: dict):
    if not jobs_enabled():
        logger.debug("Jobs disabled; email %s to %s not queued", template_name, to_email)
        return None
    from app.jobs.tasks import send_email

    return send_email.delay(
        tenant_id=tenant_id, to_email=to_email, template_name=template_name, context=context,
    )
