"""
Kinescope service — upload sessions, upload confirmation and webhook sync.

Flow:
    1. POST /upload            → create_upload_session(): Kinescope hands back
                                 a direct upload URL; a VideoUploadSession row
                                 tracks the video.
    2. browser uploads the file straight to Kinescope.
    3. POST /upload/confirm    → confirm_upload(): polls the video status.
    4. POST /webhooks/kinescope → sync_webhook_event(): processing updates flow
                                 into the session and any AssetVersion that
                                 references the video.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone

from flask import current_app

from app.core.exceptions import (
    ExternalServiceError,
    NotFoundError,
    ServiceUnavailableError,
    ValidationError,
)
from app.integrations.kinescope_gateway import GatewayResult, KinescopeGateway
from app.models import db
from app.models.asset import AssetVersion, VideoUploadSession
from app.models.project import Project
from app.utils.crypto import hmac_sha256_hex, signatures_match

logger = logging.getLogger(__name__)

ALLOWED_VIDEO_TYPES = ("video/mp4", "video/quicktime", "video/webm", "video/avi")
MAX_FILE_SIZE_BYTES = 5 * 1024 * 1024 * 1024
DEFAULT_EXPIRES_IN = 3600
METADATA_SOURCE = "video-crm"


# ── Pure helpers ─────────────────────────────────────────────────────────────


def resolve_status(raw_status: str | None) -> str:
    """Map a free-form Kinescope status string onto a processing status."""
    status = (raw_status or "").lower()
    if "ready" in status or "done" in status or "complete" in status:
        return "READY"
    if "fail" in status or "error" in status:
        return "FAILED"
    if "upload" in status:
        return "UPLOADING"
    return "PROCESSING"


def to_duration(value) -> int | None:
    """Whole seconds, or None for anything that is not a finite number ≥ 0."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if value != value or value in (float("inf"), float("-inf")) or value < 0:
        return None
    return int(value)


def build_embed_url(video_id: str) -> str:
    host = current_app.config.get("KINESCOPE_PLAYER_BASE_URL") or "https://kinescope.io"
    return f"{host.rstrip('/')}/{video_id}"


def is_configured() -> bool:
    cfg = current_app.config
    return bool(cfg.get("KINESCOPE_API_TOKEN") and cfg.get("KINESCOPE_PROJECT_ID"))


def ensure_configured() -> None:
    if not is_configured():
        raise ServiceUnavailableError("Kinescope is not configured")


def validate_upload_input(*, file_name: str, file_type: str, file_size: int) -> None:
    if not (file_name or "").strip() or len(file_name) > 255:
        raise ValidationError("Invalid file name")
    if file_type not in ALLOWED_VIDEO_TYPES:
        raise ValidationError(
            f"File type {file_type} not supported. Allowed: {', '.join(ALLOWED_VIDEO_TYPES)}"
        )
    if not isinstance(file_size, int) or file_size <= 0 or file_size > MAX_FILE_SIZE_BYTES:
        raise ValidationError("File size exceeds maximum of 5GB")


def _get_gateway(gateway: KinescopeGateway | None = None) -> KinescopeGateway:
    if gateway is not None:
        return gateway
    cfg = current_app.config
    return KinescopeGateway(
        base_url=cfg.get("KINESCOPE_BASE_URL") or "https://api.kinescope.io/v1",
        api_token=cfg.get("KINESCOPE_API_TOKEN", ""),
    )


def _unwrap(result: GatewayResult) -> dict:
    if not result.ok:
        raise ExternalServiceError(
            f"Kinescope API request failed ({result.status_code}): {result.error}",
            service="kinescope",
        )
    data = result.data
    # Kinescope wraps most payloads in {"data": {...}}
    if isinstance(data, dict) and isinstance(data.get("data"), dict):
        return data["data"]
    return data if isinstance(data, dict) else {}


def _assert_project_in_tenant(tenant_id: int, project_id: int) -> Project:
    project = Project.query_for_tenant(tenant_id).filter_by(id=project_id).first()
    if not project:
        raise NotFoundError("Project not found in this tenant")
    return project


# ── Upload flow ──────────────────────────────────────────────────────────────


def create_upload_session(
    *,
    tenant_id: int,
    project_id: int,
    file_name: str,
    file_type: str,
    file_size: int,
    gateway: KinescopeGateway | None = None,
) -> dict:
    """Ask Kinescope for a direct upload URL and record the upload session."""
    ensure_configured()
    validate_upload_input(file_name=file_name, file_type=file_type, file_size=file_size)
    _assert_project_in_tenant(tenant_id, project_id)

    gw = _get_gateway(gateway)
    response = _unwrap(gw.create_upload(
        project_id=current_app.config["KINESCOPE_PROJECT_ID"],
        title=file_name,
        metadata={"tenant_id": tenant_id, "project_id": project_id, "source": METADATA_SOURCE},
    ))

    upload = response.get("upload") or {}
    upload_url = upload.get("url")
    video_id = response.get("video_id") or response.get("id")
    if not upload_url or not video_id:
        raise ExternalServiceError("Kinescope upload session response is invalid", service="kinescope")

    expires_in = response.get("expires_in") or DEFAULT_EXPIRES_IN
    expires_at = response.get("expires_at") or (
        datetime.now(timezone.utc) + timedelta(seconds=expires_in)
    ).isoformat()

    session = VideoUploadSession.query.filter_by(kinescope_video_id=video_id).first()
    if session is None:
        session = VideoUploadSession(kinescope_video_id=video_id)
        db.session.add(session)
    session.tenant_id = tenant_id
    session.project_id = project_id
    session.file_name = file_name
    session.file_type = file_type
    session.file_size = file_size
    session.status = "UPLOADING"
    session.error_message = None
    db.session.flush()

    logger.info(
        "Kinescope upload session created video=%s project=%s tenant=%s",
        video_id, project_id, tenant_id,
    )
    return {
        "upload_url": upload_url,
        "upload_method": upload.get("method") or "PUT",
        "upload_headers": upload.get("headers"),
        "upload_fields": upload.get("fields"),
        "kinescope_video_id": video_id,
        "expires_at": expires_at,
        "expires_in": expires_in,
    }


def confirm_upload(
    *,
    tenant_id: int,
    project_id: int,
    kinescope_video_id: str,
    gateway: KinescopeGateway | None = None,
) -> dict:
    """Fetch the video from Kinescope and store its processing state."""
    ensure_configured()
    _assert_project_in_tenant(tenant_id, project_id)

    session = VideoUploadSession.query.filter_by(
        tenant_id=tenant_id, project_id=project_id, kinescope_video_id=kinescope_video_id,
    ).first()
    if not session:
        raise NotFoundError("Kinescope upload session not found for this tenant/project")

    video = _unwrap(_get_gateway(gateway).get_video(kinescope_video_id))

    status = resolve_status(video.get("status") or video.get("state"))
    stream_url = (
        (video.get("playback") or {}).get("url")
        or (video.get("player") or {}).get("url")
        or build_embed_url(kinescope_video_id)
    )
    duration = to_duration(video.get("duration_sec", video.get("duration")))
    error = video.get("error") or None

    session.status = status
    session.stream_url = stream_url
    session.duration_sec = duration
    session.error_message = error
    db.session.flush()

    return {
        "kinescope_video_id": kinescope_video_id,
        "processing_status": status,
        "stream_url": stream_url,
        "duration_sec": duration,
        "processing_error": error,
    }


# ── Webhooks ─────────────────────────────────────────────────────────────────


def verify_webhook_signature(raw_body: bytes | str, signature_header: str | None) -> bool:
    """Hex HMAC-SHA256 of the raw body; a ``sha256=`` prefix is tolerated.

    With no KINESCOPE_WEBHOOK_SECRET configured every request is accepted.
    """
    secret = current_app.config.get("KINESCOPE_WEBHOOK_SECRET") or ""
    if not secret:
        return True
    if not signature_header:
        return False

    provided = signature_header.strip()
    if provided.lower().startswith("sha256="):
        provided = provided[len("sha256="):]
    expected = hmac_sha256_hex(secret, raw_body)
    return signatures_match(expected, provided)


def parse_webhook_payload(raw_body: bytes | str) -> dict:
    """Decode the raw delivery body; Kinescope does not always send a JSON Content-Type."""
    try:
        payload = json.loads(raw_body or b"{}")
    except ValueError as exc:
        raise ValidationError("Invalid webhook payload") from exc
    if not isinstance(payload, dict):
        raise ValidationError("Invalid webhook payload")
    return payload


def sync_webhook_event(payload: dict) -> dict:
    """Apply a Kinescope processing event to upload sessions and versions."""
    payload = payload if isinstance(payload, dict) else {}
    event_type = str(payload.get("type") or payload.get("event") or "")
    video = payload.get("video") or payload.get("data") or {}
    if not isinstance(video, dict):
        video = {}
    video_id = video.get("id") or video.get("video_id")
    if not video_id:
        logger.info("Kinescope webhook without video id ignored event=%s", event_type)
        return {"updated_sessions": 0, "updated_versions": 0}

    status = resolve_status(video.get("status") or video.get("state") or event_type)
    stream_url = video.get("playback_url") or video.get("player_url") or build_embed_url(video_id)
    duration = to_duration(video.get("duration_sec", video.get("duration")))
    error = video.get("error") or ("Kinescope processing failed" if status == "FAILED" else None)

    sessions = VideoUploadSession.query.filter_by(kinescope_video_id=video_id).all()
    for session in sessions:
        session.status = status
        session.stream_url = stream_url
        session.duration_sec = duration
        session.error_message = error

    versions = AssetVersion.query.filter_by(kinescope_video_id=video_id).all()
    for version in versions:
        version.processing_status = status
        version.stream_url = stream_url
        version.processing_error = error
        version.file_url = stream_url
        if duration is not None:
            version.duration_sec = duration

    db.session.flush()
    logger.info(
        "Kinescope webhook synced video=%s status=%s sessions=%d versions=%d",
        video_id, status, len(sessions), len(versions),
    )
    return {"updated_sessions": len(sessions), "updated_versions": len(versions)}
