"""
Feedback Service — timecoded comments on asset versions.

Feedback is locked once its version is APPROVED or FINAL; both the
internal and the public portal paths go through ``create_feedback`` so
the lock holds everywhere. New feedback is queued for AI parsing after
the blueprint commits.
"""

from __future__ import annotations

import logging

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models import db
from app.models.asset import AssetVersion
from app.models.auth import User
from app.models.feedback import (
    AUTHOR_CLIENT,
    AUTHOR_TYPES,
    AUTHOR_USER,
    FEEDBACK_CATEGORIES,
    FEEDBACK_STATUSES,
    MAX_FEEDBACK_LENGTH,
    FeedbackItem,
)
from app.models.project import Project
from app.services.asset_service import get_version_in_tenant

logger = logging.getLogger(__name__)

LOCKED_MESSAGE = "Version is already approved. Feedback is locked."


def _feedback_query(tenant_id: int):
    return (
        FeedbackItem.query
        .join(AssetVersion, AssetVersion.id == FeedbackItem.asset_version_id)
        .join(Project, Project.id == AssetVersion.project_id)
        .filter(Project.tenant_id == tenant_id)
    )


def create_feedback(*, tenant_id: int, data: dict) -> FeedbackItem:
    """Validate and store a feedback item with status NEW."""
    text = (data.get("text") or "").strip()
    if not text or len(text) > MAX_FEEDBACK_LENGTH:
        raise ValidationError("Feedback text is required and must be under 5000 characters")

    timecode = data.get("timecode_sec")
    if timecode is not None and timecode < 0:
        raise ValidationError("Timecode must be non-negative")

    version = get_version_in_tenant(tenant_id=tenant_id, version_id=data.get("asset_version_id"))
    if version is None:
        raise NotFoundError("Asset version not found in this tenant")
    if version.is_locked:
        raise ConflictError(LOCKED_MESSAGE)

    author_type = data.get("author_type") or AUTHOR_USER
    if author_type not in AUTHOR_TYPES:
        raise ValidationError("Invalid author_type")

    author_id = None
    if author_type == AUTHOR_USER:
        author_id = data.get("author_id")
        if not author_id:
            raise ValidationError("authorId is required for USER type feedback")
        if User.query.filter_by(id=author_id, tenant_id=tenant_id).first() is None:
            raise NotFoundError("User not found in this tenant")
    elif not data.get("author_email") and not data.get("author_name"):
        raise ValidationError("authorEmail or authorName is required for CLIENT type feedback")

    category = data.get("category")
    if category is not None and category not in FEEDBACK_CATEGORIES:
        raise ValidationError("Invalid category")

    item = FeedbackItem(
        asset_version_id=version.id,
        author_type=author_type,
        author_id=author_id,
        author_email=data.get("author_email") if author_type == AUTHOR_CLIENT else None,
        author_name=data.get("author_name") if author_type == AUTHOR_CLIENT else None,
        timecode_sec=timecode,
        text=text,
        category=category,
        status="NEW",
    )
    db.session.add(item)
    db.session.flush()
    logger.info("Feedback %s created on version %s", item.id, version.id)
    return item


def queue_feedback_parsing(*, tenant_id: int, project_id: int, feedback_ids: list[int]) -> None:
    """Enqueue AI parsing for new feedback; a broker failure is only logged."""
    from app.jobs.queues import enqueue_parse_feedback

    try:
        enqueue_parse_feedback(tenant_id=tenant_id, project_id=project_id, feedback_ids=feedback_ids)
    except Exception:
        logger.exception(
            "Failed to enqueue feedback parsing",
            extra={"tenant_id": tenant_id, "project_id": project_id},
        )


def get_feedback(*, tenant_id: int, feedback_id: int) -> FeedbackItem:
    item = _feedback_query(tenant_id).filter(FeedbackItem.id == feedback_id).first()
    if item is None:
        raise NotFoundError("Feedback not found", resource_id=feedback_id, tenant_id=tenant_id)
    return item


def list_by_version(*, tenant_id: int, version_id: int) -> list[FeedbackItem]:
    if get_version_in_tenant(tenant_id=tenant_id, version_id=version_id) is None:
        raise NotFoundError("Asset version not found")
    return (
        FeedbackItem.query
        .filter_by(asset_version_id=version_id)
        .order_by(FeedbackItem.created_at.asc(), FeedbackItem.id.asc())
        .all()
    )


def list_by_project(*, tenant_id: int, project_id: int) -> list[FeedbackItem]:
    if Project.get_for_tenant(tenant_id, project_id) is None:
        raise NotFoundError("Project not found in this tenant")
    return (
        FeedbackItem.query
        .join(AssetVersion, AssetVersion.id == FeedbackItem.asset_version_id)
        .filter(AssetVersion.project_id == project_id)
        .order_by(FeedbackItem.created_at.desc(), FeedbackItem.id.desc())
        .all()
    )


def update_status(*, tenant_id: int, feedback_id: int, status: str) -> FeedbackItem:
    if status not in FEEDBACK_STATUSES:
        raise ValidationError("Invalid status")
    item = get_feedback(tenant_id=tenant_id, feedback_id=feedback_id)
    item.status = status
    db.session.flush()
    return item


def delete_feedback(*, tenant_id: int, feedback_id: int) -> None:
    item = get_feedback(tenant_id=tenant_id, feedback_id=feedback_id)
    db.session.delete(item)
    db.session.flush()


def to_ai_item(item: FeedbackItem) -> dict:
    """Shape a feedback row the way AIService.parse_feedback expects it."""
    return {
        "id": item.id,
        "text": item.text,
        "timecode_sec": item.timecode_sec,
        "category": item.category,
        "author_name": item.display_name,
    }
