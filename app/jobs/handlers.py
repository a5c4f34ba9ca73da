"""
Job bodies.

Plain functions that run inside an application context; ``tasks.py`` wraps
them for Celery. The parse-feedback handler is built by a factory so tests
can replace any collaborator (AI, task creation, lookups) with a stub.
"""

from __future__ import annotations

import logging
from typing import Callable

from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.auth import Tenant
from app.models.project import Project

logger = logging.getLogger(__name__)


# ── parse_feedback ───────────────────────────────────────────────────────────


def _default_get_feedback(feedback_id: int, tenant_id: int):
    from app.services.feedback_service import get_feedback, to_ai_item

    return to_ai_item(get_feedback(tenant_id=tenant_id, feedback_id=feedback_id))


def _default_get_project(project_id: int, tenant_id: int):
    project = Project.get_for_tenant(tenant_id, project_id)
    if project is None:
        return None
    return {"id": project.id, "name": project.name, "description": project.description}


def _default_parse_feedback(feedback_items: list[dict], project_context: dict) -> dict:
    from app.services.ai_service import AIService

    return AIService().parse_feedback(feedback_items, project_context)


def _default_create_tasks(*, project_id: int, tenant_id: int, action_items: list[dict], auto_assign: bool):
    from app.services.task_service import create_tasks_from_action_items

    return create_tasks_from_action_items(
        project_id=project_id, tenant_id=tenant_id, action_items=action_items, auto_assign=auto_assign,
    )


def create_parse_feedback_handler(
    *,
    get_feedback: Callable | None = None,
    get_project: Callable | None = None,
    parse_feedback: Callable | None = None,
    create_tasks: Callable | None = None,
    commit: Callable | None = None,
) -> Callable[..., dict]:
    """Build the parse-feedback job body with optional collaborator overrides."""
    get_feedback = get_feedback or _default_get_feedback
    get_project = get_project or _default_get_project
    parse_feedback = parse_feedback or _default_parse_feedback
    create_tasks = create_tasks or _default_create_tasks
    commit = commit or db.session.commit

    def handle(*, tenant_id: int, project_id: int, feedback_ids: list[int]) -> dict:
        logger.info("Parse feedback job started project=%s feedback=%s", project_id, feedback_ids)
        try:
            if not feedback_ids:
                raise ValidationError("feedbackIds is required")

            items = [get_feedback(fid, tenant_id) for fid in feedback_ids]

            project = get_project(project_id, tenant_id)
            if not project:
                raise NotFoundError("Project not found")

            parsed = parse_feedback(
                [
                    {
                        "id": item["id"],
                        "text": item["text"],
                        "timecode_sec": item.get("timecode_sec"),
                        "category": item.get("category"),
                        "author_name": item.get("author_name"),
                    }
                    for item in items
                ],
                {"name": project["name"], "brief": project.get("description")},
            )
            action_items = parsed.get("action_items") or []
            logger.info("Parse feedback job: AI returned %d action items", len(action_items))

            tasks = []
            if action_items:
                tasks = create_tasks(
                    project_id=project_id,
                    tenant_id=tenant_id,
                    action_items=action_items,
                    auto_assign=True,
                )
                commit()
                logger.info("Parse feedback job: created %d tasks", len(tasks))

            logger.info("Parse feedback job completed project=%s", project_id)
            return {"action_items": len(action_items), "tasks_created": len(tasks)}
        except Exception:
            logger.exception("Parse feedback job failed project=%s", project_id)
            db.session.rollback()
            raise

    return handle


handle_parse_feedback = create_parse_feedback_handler()


# ── analyze_scope ────────────────────────────────────────────────────────────


def handle_analyze_scope(*, tenant_id: int, project_id: int, feedback_id: int) -> dict:
    from app.services.scope_guard_service import analyze_feedback_scope

    analysis, decision = analyze_feedback_scope(
        tenant_id=tenant_id, project_id=project_id, feedback_id=feedback_id,
    )
    db.session.commit()
    logger.info("Scope analysis job: feedback=%s label=%s", feedback_id, analysis["label"])
    return {"decision_id": decision.id, "label": analysis["label"]}


# ── send_email ───────────────────────────────────────────────────────────────


def handle_send_email(*, tenant_id: int, to_email: str, template_name: str, context: dict) -> dict:
    from app.services.email_service import EmailService

    notification = EmailService.send_from_template(
        tenant_id=tenant_id, to_email=to_email, template_name=template_name, context=context,
    )
    db.session.commit()
    if notification is None:
        return {"sent": False, "reason": "unknown template"}
    return {"sent": notification.delivery_status == "SENT", "notification_id": notification.id}


# ── check_workflows ──────────────────────────────────────────────────────────


def handle_check_workflows(*, tenant_id: int | None = None) -> dict:
    """Email managers about overdue stages; all active tenants unless one is given."""
    from app.services.notification_service import notify_overdue_stages
    from app.services.workflow_service import check_overdue_stages

    if tenant_id is not None:
        tenant_ids = [tenant_id]
    else:
        tenant_ids = [tid for (tid,) in db.session.query(Tenant.id).filter(Tenant.is_active.is_(True)).all()]

    overdue_total = 0
    sent_total = 0
    for tid in tenant_ids:
        overdue = check_overdue_stages(tenant_id=tid)
        if not overdue:
            continue
        overdue_total += len(overdue)
        sent_total += notify_overdue_stages(tenant_id=tid, stages=overdue)
        db.session.commit()

    logger.info(
        "Workflow reminder sweep: tenants=%d overdue_stages=%d emails=%d",
        len(tenant_ids), overdue_total, sent_total,
    )
    return {"tenants": len(tenant_ids), "overdue_stages": overdue_total, "emails": sent_total}
