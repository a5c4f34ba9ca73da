"""
Client review portal — public, token-addressed view of one project.

The portal link carries the project's ``portal_token``. Links may also wrap
it: a base64url JSON object ``{"token": ..., "exp": ...}`` or a JWT-shaped
string whose payload segment holds the same object. An ``exp`` in the past
makes the link invalid.

Nothing here needs a logged-in user; the token is the credential.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import time

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.integrations.telegram_gateway import TelegramError
from app.models import db
from app.models.asset import LOCKED_STATUSES, AssetVersion
from app.models.base import iso
from app.models.feedback import AUTHOR_CLIENT, FeedbackItem
from app.models.project import Project
from app.services import asset_service, feedback_service, notification_service

logger = logging.getLogger(__name__)

PORTAL_FEEDBACK_LIMIT = 50


# ── Token resolution ─────────────────────────────────────────────────────────


def _decode_base64_json(value: str) -> dict | None:
    try:
        padded = value + "=" * (-len(value) % 4)
        parsed = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8"))
    except (ValueError, binascii.Error, UnicodeError):
        return None
    return parsed if isinstance(parsed, dict) else None


def _token_from_payload(payload: dict | None):
    """(matched, token) for a decoded wrapper object."""
    if not payload:
        return False, None
    token = payload.get("token") or payload.get("versionId")
    if not isinstance(token, str) or not token.strip():
        return False, None
    exp = payload.get("exp")
    if isinstance(exp, (int, float)) and not isinstance(exp, bool) and exp and time.time() > exp:
        return True, None
    return True, token.strip()


def resolve_portal_token(token: str | None) -> str | None:
    """Unwrap a portal link token; None when empty or expired."""
    raw = (token or "").strip()
    if not raw:
        return None

    matched, resolved = _token_from_payload(_decode_base64_json(raw))
    if matched:
        return resolved

    parts = raw.split(".")
    if len(parts) == 3:
        matched, resolved = _token_from_payload(_decode_base64_json(parts[1]))
        if matched:
            return resolved

    return raw


def _project_for_token(token: str) -> Project:
    portal_token = resolve_portal_token(token)
    if not portal_token:
        raise ValidationError("Invalid portal token")
    project = Project.query.filter_by(portal_token=portal_token).first()
    if not project:
        raise NotFoundError("Portal not found")
    return project


# ── Portal view ──────────────────────────────────────────────────────────────


def _select_active_version(versions: list[AssetVersion], requested_id: int | None) -> AssetVersion | None:
    if not versions:
        return None
    if requested_id is not None:
        requested = next((v for v in versions if v.id == requested_id), None)
        if requested is not None:
            return requested
    in_review = next((v for v in versions if v.status == "IN_REVIEW"), None)
    return in_review or versions[0]


def _version_summary(version: AssetVersion) -> dict:
    return {
        "id": version.id,
        "version_no": version.version_no,
        "file_url": version.file_url,
        "file_name": version.file_name,
        "video_provider": version.video_provider,
        "kinescope_video_id": version.kinescope_video_id,
        "stream_url": version.stream_url,
        "processing_status": version.processing_status,
        "duration_sec": version.duration_sec,
        "status": version.status,
        "created_at": iso(version.created_at),
    }


def _feedback_summary(item: FeedbackItem) -> dict:
    author_name = item.author_name
    if not author_name and item.author is not None:
        author_name = item.author.full_name or None
    return {
        "id": item.id,
        "text": item.text,
        "timecode_sec": item.timecode_sec,
        "created_at": iso(item.created_at),
        "author_name": author_name or "Anonymous",
        "author_email": item.author_email,
    }


def get_portal_view(*, token: str, version_id: int | None = None) -> dict:
    """Project, versions and latest feedback of the active version.

    Opening a DRAFT version in the portal moves it to IN_REVIEW.
    """
    project = _project_for_token(token)
    versions = project.versions.order_by(AssetVersion.version_no.desc()).all()

    active = _select_active_version(versions, version_id)
    if active is not None and active.status == "DRAFT":
        active.status = "IN_REVIEW"
        db.session.flush()
        logger.info("Portal opened draft version %s, moved to IN_REVIEW", active.id)

    feedback = []
    if active is not None:
        feedback = (
            active.feedback_items
            .order_by(FeedbackItem.created_at.desc(), FeedbackItem.id.desc())
            .limit(PORTAL_FEEDBACK_LIMIT)
            .all()
        )

    client = project.client
    return {
        "project": {
            "id": project.id,
            "name": project.name,
            "client_name": client.name if client else None,
            "company_name": client.company_name if client else None,
        },
        "active_version_id": active.id if active is not None else None,
        "versions": [_version_summary(v) for v in versions],
        "feedback": [_feedback_summary(f) for f in feedback],
    }


# ── Approval ─────────────────────────────────────────────────────────────────


def approve_from_portal(*, token: str, version_id: int) -> tuple[dict, AssetVersion | None]:
    """Client approval. Returns (body, approved version); already-approved returns None."""
    project = _project_for_token(token)
    version = AssetVersion.query.filter_by(id=version_id, project_id=project.id).first()
    if not version:
        raise NotFoundError("Version not found in this portal")

    if version.status in LOCKED_STATUSES:
        return {"status": version.status, "approved_at": iso(version.approved_at)}, None

    asset_service.approve_version(version=version, approved_by="client-portal")
    return version.to_dict(), version


def notify_portal_approval(version: AssetVersion) -> None:
    """Telegram message for a client approval; failures are logged only."""
    try:
        notification_service.notify_version_approved_telegram(version=version)
    except TelegramError:
        logger.exception("Telegram approval notification failed version=%s", version.id)


# ── Public feedback ──────────────────────────────────────────────────────────


def create_public_feedback(*, data: dict) -> FeedbackItem:
    """Client feedback from the portal; the version decides the tenant."""
    version_id = data.get("asset_version_id")
    version = db.session.get(AssetVersion, version_id) if version_id is not None else None
    if version is None:
        raise NotFoundError("Asset version not found")
    if version.is_locked:
        raise ConflictError(feedback_service.LOCKED_MESSAGE)

    payload = dict(data)
    payload["author_type"] = AUTHOR_CLIENT
    payload.pop("author_id", None)
    return feedback_service.create_feedback(tenant_id=version.project.tenant_id, data=payload)


def notify_public_feedback(item: FeedbackItem) -> None:
    """Telegram and manager emails for portal feedback; failures are logged only."""
    version = item.asset_version
    try:
        notification_service.notify_new_feedback_telegram(feedback=item, version=version)
    except TelegramError:
        logger.exception("Telegram feedback notification failed feedback=%s", item.id)

    project = version.project
    try:
        notification_service.notify_managers_about_new_feedback(
            tenant_id=project.tenant_id, project_id=project.id, feedback_id=item.id,
        )
    except Exception:
        logger.exception("Manager email for feedback %s failed", item.id)
