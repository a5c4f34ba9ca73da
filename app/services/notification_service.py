"""
Notification service — business events turned into emails and Telegram messages.

Email:
    notify_pm_about_new_feedback      new_feedback template, to a PM
    notify_client_about_new_version   version_uploaded template, to the client
    notify_pm_about_overdue_stage     stage_overdue template, to a PM
    notify_managers_about_new_feedback  fan-out of the first one to OWNER/PM users

Telegram (one agency chat, skipped when not configured):
    notify_new_feedback_telegram, notify_version_approved_telegram

Every email is recorded as a Notification row by EmailService; callers
commit.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone

from flask import current_app
from markupsafe import escape

from app.core.exceptions import NotFoundError
from app.integrations.telegram_gateway import TelegramGateway
from app.models import db
from app.models.asset import AssetVersion
from app.models.auth import MANAGER_ROLES, User
from app.models.feedback import FeedbackItem
from app.models.notification import Notification
from app.models.project import Project, WorkflowStage
from app.services.ai_service import format_timecode
from app.services.email_service import EmailService
from app.utils.helpers import as_utc

logger = logging.getLogger(__name__)

MAX_TELEGRAM_TEXT = 300


def portal_url(project: Project) -> str:
    base = (current_app.config.get("APP_URL") or "").rstrip("/")
    return f"{base}/client-portal/{project.portal_token}"


def get_manager_emails(tenant_id: int) -> list[str]:
    """Emails of the tenant's active OWNER/PM users."""
    users = (
        User.query
        .filter(User.tenant_id == tenant_id, User.role.in_(MANAGER_ROLES), User.is_active.is_(True))
        .order_by(User.id)
        .all()
    )
    return [u.email for u in users]


def overdue_hours(started_at: datetime | None, sla_hours: int, now: datetime | None = None) -> int:
    """Whole hours (rounded up) past the stage SLA; 0 when not overdue."""
    if started_at is None:
        return 0
    now = now or datetime.now(timezone.utc)
    overdue_seconds = (now - as_utc(started_at)).total_seconds() - sla_hours * 3600
    if overdue_seconds <= 0:
        return 0
    return math.ceil(overdue_seconds / 3600)


# ── Email notifications ──────────────────────────────────────────────────────


def notify_pm_about_new_feedback(
    *, tenant_id: int, project_id: int, feedback_id: int, pm_email: str
) -> Notification | None:
    feedback = (
        FeedbackItem.query
        .join(AssetVersion, FeedbackItem.asset_version_id == AssetVersion.id)
        .join(Project, AssetVersion.project_id == Project.id)
        .filter(
            FeedbackItem.id == feedback_id,
            Project.id == project_id,
            Project.tenant_id == tenant_id,
        )
        .first()
    )
    if not feedback:
        raise NotFoundError("Feedback not found in this tenant")

    project = feedback.asset_version.project
    author_name = feedback.author_name or feedback.author_email or "Unknown"
    timecode = format_timecode(feedback.timecode_sec) if feedback.timecode_sec is not None else "N/A"

    return EmailService.send_from_template(
        tenant_id=tenant_id,
        to_email=pm_email,
        template_name="new_feedback",
        context={
            "project_name": escape(project.name),
            "project_id": project.id,
            "author_name": escape(author_name),
            "timecode": escape(timecode),
            "category": feedback.category or "N/A",
            "status": feedback.status,
            "text": escape(feedback.text),
        },
        payload={
            "project_id": project.id,
            "project_name": project.name,
            "feedback_id": feedback.id,
            "author_name": author_name,
            "timecode": timecode,
            "category": feedback.category,
            "status": feedback.status,
        },
    )


def notify_managers_about_new_feedback(*, tenant_id: int, project_id: int, feedback_id: int) -> list[Notification]:
    sent = []
    for email in get_manager_emails(tenant_id):
        notification = notify_pm_about_new_feedback(
            tenant_id=tenant_id, project_id=project_id, feedback_id=feedback_id, pm_email=email,
        )
        if notification is not None:
            sent.append(notification)
    return sent


def notify_client_about_new_version(
    *, tenant_id: int, project_id: int, version_id: int, client_email: str, client_name: str
) -> Notification | None:
    version = (
        AssetVersion.query
        .join(Project, AssetVersion.project_id == Project.id)
        .filter(
            AssetVersion.id == version_id,
            Project.id == project_id,
            Project.tenant_id == tenant_id,
        )
        .first()
    )
    if not version:
        raise NotFoundError("Version not found in this tenant")

    project = version.project
    return EmailService.send_from_template(
        tenant_id=tenant_id,
        to_email=client_email,
        template_name="version_uploaded",
        context={
            "client_name": escape(client_name or ""),
            "version_number": version.version_no,
            "project_name": escape(project.name),
            "portal_url": portal_url(project),
        },
        payload={
            "project_id": project.id,
            "project_name": project.name,
            "version_id": version.id,
            "version_number": version.version_no,
            "client_name": client_name,
        },
    )


def notify_pm_about_overdue_stage(
    *, tenant_id: int, project_id: int, stage_name: str, pm_email: str
) -> Notification | None:
    stage = (
        WorkflowStage.query
        .join(Project, WorkflowStage.project_id == Project.id)
        .filter(
            WorkflowStage.project_id == project_id,
            WorkflowStage.stage_name == stage_name,
            Project.tenant_id == tenant_id,
        )
        .first()
    )
    if not stage:
        raise NotFoundError("Stage not found in this tenant")

    hours = overdue_hours(stage.started_at, stage.sla_hours)
    return EmailService.send_from_template(
        tenant_id=tenant_id,
        to_email=pm_email,
        template_name="stage_overdue",
        context={
            "project_name": escape(stage.project.name),
            "project_id": stage.project.id,
            "stage_name": escape(stage_name),
            "overdue_hours": hours,
        },
        payload={
            "project_id": stage.project.id,
            "project_name": stage.project.name,
            "stage_name": stage_name,
            "overdue_hours": hours,
        },
    )


def list_notifications(*, tenant_id: int, limit: int = 50) -> list[Notification]:
    if not isinstance(limit, int) or isinstance(limit, bool) or limit <= 0:
        limit = 50
    return (
        Notification.query_for_tenant(tenant_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(min(limit, 200))
        .all()
    )


def retry_failed_notification(*, tenant_id: int, notification_id: int) -> Notification:
    notification = Notification.get_for_tenant(tenant_id, notification_id)
    if not notification:
        raise NotFoundError("Notification not found")
    return EmailService.retry(notification)


# ── Telegram ─────────────────────────────────────────────────────────────────


def _telegram(gateway: TelegramGateway | None = None) -> TelegramGateway:
    if gateway is not None:
        return gateway
    cfg = current_app.config
    return TelegramGateway(
        token=cfg.get("TELEGRAM_BOT_TOKEN") or "",
        chat_id=cfg.get("TELEGRAM_CHAT_ID") or "",
    )


def notify_new_feedback_telegram(
    *, feedback: FeedbackItem, version: AssetVersion, gateway: TelegramGateway | None = None
) -> bool:
    """Post new client feedback to the agency chat. Raises TelegramError."""
    project = version.project
    text = feedback.text
    if len(text) > MAX_TELEGRAM_TEXT:
        text = f"{text[:MAX_TELEGRAM_TEXT]}..."

    lines = [
        "New client feedback",
        f"Project: {project.name}",
        f"Version: v{version.version_no}",
        f"Author: {feedback.display_name}",
    ]
    if feedback.timecode_sec is not None:
        lines.append(f"Timecode: {format_timecode(feedback.timecode_sec)}")
    lines.append(f"Text: {text}")
    lines.append(f"Link: {portal_url(project)}")
    return _telegram(gateway).send_message("\n".join(lines))


def notify_version_approved_telegram(
    *, version: AssetVersion, gateway: TelegramGateway | None = None
) -> bool:
    """Post a client approval to the agency chat. Raises TelegramError."""
    project = version.project
    approved_at = as_utc(version.approved_at) or datetime.now(timezone.utc)
    message = "\n".join([
        "Version approved by client",
        f"Project: {project.name}",
        f"Version: v{version.version_no}",
        f"Time: {approved_at.strftime('%Y-%m-%d %H:%M UTC')}",
        f"Link: {portal_url(project)}",
    ])
    return _telegram(gateway).send_message(message)


def notify_overdue_stages(*, tenant_id: int, stages: list[WorkflowStage]) -> int:
    """Email every manager about each overdue stage; returns emails recorded."""
    emails = get_manager_emails(tenant_id)
    count = 0
    for stage in stages:
        for email in emails:
            notify_pm_about_overdue_stage(
                tenant_id=tenant_id,
                project_id=stage.project_id,
                stage_name=stage.stage_name,
                pm_email=email,
            )
            count += 1
    db.session.flush()
    return count
