"""
Email Service — templated client/PM emails recorded as Notification rows.

When SMTP is not configured, emails are logged but not sent (dev/test mode).

Configuration (env vars):
    MAIL_SERVER     SMTP host (default: None → log-only mode)
    MAIL_PORT       SMTP port (default: 587)
    MAIL_USE_TLS    Use TLS (default: true)
    MAIL_USERNAME   SMTP username
    MAIL_PASSWORD   SMTP password
    MAIL_DEFAULT_SENDER  Default from address
"""

from __future__ import annotations

import logging
import smtplib
from datetime import datetime, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any

from email_validator import EmailNotValidError, validate_email
from flask import current_app

from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.auth import Tenant
from app.models.notification import Notification

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Email Templates
# ═══════════════════════════════════════════════════════════════════════════

_TEMPLATES: dict[str, dict[str, str]] = {
    "new_feedback": {
        "subject": "New Feedback on {project_name}",
        "html": """
        <h2>New Feedback Received</h2>
        <p>A new feedback has been submitted on project <strong>{project_name}</strong>.</p>
        <ul>
          <li><strong>Author:</strong> {author_name}</li>
          <li><strong>Timecode:</strong> {timecode}</li>
          <li><strong>Category:</strong> {category}</li>
          <li><strong>Status:</strong> {status}</li>
        </ul>
        <p><strong>Feedback Text:</strong></p>
        <p>{text}</p>
        <p><a href="{app_url}/projects/{project_id}">View feedback in CRM</a></p>
        """,
    },
    "version_uploaded": {
        "subject": "Your video is ready for review: {project_name}",
        "html": """
        <h2>Your video is ready for review</h2>
        <p>Hi {client_name},</p>
        <p>Version <strong>v{version_number}</strong> for project <strong>{project_name}</strong> has been uploaded.</p>
        <p><a href="{portal_url}">Open review portal</a></p>
        """,
    },
    "stage_overdue": {
        "subject": "Stage {stage_name} is overdue",
        "html": """
        <h2>Stage Overdue Warning</h2>
        <p>Project <strong>{project_name}</strong> has an overdue stage.</p>
        <ul>
          <li><strong>Stage:</strong> {stage_name}</li>
          <li><strong>Overdue:</strong> {overdue_hours} hour(s)</li>
        </ul>
        <p><a href="{app_url}/projects/{project_id}">Review project workflow</a></p>
        """,
    },
}


class EmailService:
    """
    Email sending service with template support.

    In development/test mode (no MAIL_SERVER configured), emails are
    recorded as SENT notifications but not actually sent via SMTP.
    """

    @staticmethod
    def is_configured() -> bool:
        """Check if SMTP is configured."""
        return bool(current_app.config.get("MAIL_SERVER"))

    @staticmethod
    def get_template(template_name: str) -> dict[str, str] | None:
        """Get an email template by name."""
        return _TEMPLATES.get(template_name)

    @classmethod
    def send(
        cls,
        *,
        tenant_id: int,
        to_email: str | None,
        subject: str | None,
        html_body: str | None,
        template_key: str | None = None,
        payload: dict[str, Any] | None = None,
    ) -> Notification:
        """
        Send an email and record it.

        An SMTP failure is stored on the notification (FAILED with the
        error message); only invalid input raises.
        """
        to_email = (to_email or "").strip()
        subject = (subject or "").strip()
        html_body = (html_body or "").strip()

        if not tenant_id:
            raise ValidationError("tenantId is required")
        try:
            validate_email(to_email, check_deliverability=False)
        except EmailNotValidError as exc:
            raise ValidationError("Invalid email") from exc
        if not subject:
            raise ValidationError("Subject is required")
        if not html_body:
            raise ValidationError("Body is required")
        if db.session.get(Tenant, tenant_id) is None:
            raise NotFoundError("Tenant not found")

        data = dict(payload or {})
        data.setdefault("subject", subject)
        data.setdefault("body", html_body)

        notification = Notification(
            tenant_id=tenant_id,
            channel="EMAIL",
            recipient=to_email,
            template_key=(template_key or "").strip() or "custom",
            payload=data,
            delivery_status="PENDING",
        )
        db.session.add(notification)
        cls._deliver(notification, subject=subject, html_body=html_body)
        db.session.flush()
        return notification

    @classmethod
    def send_from_template(
        cls,
        *,
        tenant_id: int,
        to_email: str,
        template_name: str,
        context: dict[str, Any],
        payload: dict[str, Any] | None = None,
    ) -> Notification | None:
        """
        Send an email using a named template.

        Template variables are interpolated from the context dict.
        """
        template = cls.get_template(template_name)
        if not template:
            logger.warning("Email template not found: %s", template_name)
            return None

        context = {"app_url": current_app.config.get("APP_URL", ""), **context}
        subject = template["subject"].format_map(_SafeDict(context))
        html_body = template["html"].format_map(_SafeDict(context))

        return cls.send(
            tenant_id=tenant_id,
            to_email=to_email,
            subject=subject,
            html_body=html_body,
            template_key=template_name,
            payload=payload,
        )

    @classmethod
    def retry(cls, notification: Notification) -> Notification:
        """Re-send a FAILED email notification from its stored subject/body."""
        if notification.channel != "EMAIL":
            raise ValidationError("Only EMAIL notifications can be retried")
        if notification.delivery_status != "FAILED":
            raise ValidationError("Only FAILED notifications can be retried")

        payload = notification.payload if isinstance(notification.payload, dict) else {}
        subject = str(payload.get("subject") or "").strip()
        body = str(payload.get("body") or "").strip()
        if not subject or not body:
            raise ValidationError("Notification payload missing subject/body for retry")

        cls._deliver(notification, subject=subject, html_body=body)
        db.session.flush()
        return notification

    @classmethod
    def _deliver(cls, notification: Notification, *, subject: str, html_body: str) -> None:
        if not cls.is_configured():
            # Dev/test mode: log only
            notification.delivery_status = "SENT"
            notification.sent_at = datetime.now(timezone.utc)
            notification.error_message = None
            logger.info(
                "Email (dev mode): to=%s subject='%s' template=%s",
                notification.recipient, subject, notification.template_key,
            )
            return

        try:
            cls._send_smtp(to_email=notification.recipient, subject=subject, html_body=html_body)
            notification.delivery_status = "SENT"
            notification.sent_at = datetime.now(timezone.utc)
            notification.error_message = None
            logger.info("Email sent: to=%s subject='%s'", notification.recipient, subject)
        except (smtplib.SMTPException, OSError) as exc:
            notification.delivery_status = "FAILED"
            notification.sent_at = None
            notification.error_message = str(exc)[:1000]
            logger.error("Email failed: to=%s error=%s", notification.recipient, exc)

    @staticmethod
    def _send_smtp(*, to_email: str, subject: str, html_body: str) -> None:
        """Actually send via SMTP."""
        cfg = current_app.config
        server = cfg.get("MAIL_SERVER")
        port = cfg.get("MAIL_PORT", 587)
        use_tls = cfg.get("MAIL_USE_TLS", True)
        username = cfg.get("MAIL_USERNAME")
        password = cfg.get("MAIL_PASSWORD")
        sender = cfg.get("MAIL_DEFAULT_SENDER", f"noreply@{server}")

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = sender
        msg["To"] = to_email
        msg.attach(MIMEText(html_body, "html"))

        with smtplib.SMTP(server, port, timeout=30) as smtp:
            if use_tls:
                smtp.starttls()
            if username and password:
                smtp.login(username, password)
            smtp.send_message(msg)


class _SafeDict(dict):
    """Dict that returns {key} for missing keys instead of raising."""

    def __missing__(self, key):
        return f"{{{key}}}"
