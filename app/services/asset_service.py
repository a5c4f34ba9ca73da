"""
Asset Version Service — version numbering and the review state machine.

Manual transitions (PATCH status):
    DRAFT → IN_REVIEW
    IN_REVIEW → CHANGES_REQUESTED | APPROVED
    CHANGES_REQUESTED → IN_REVIEW
    APPROVED → FINAL

Approval (``approve_version``) may short-cut from DRAFT, IN_REVIEW or
CHANGES_REQUESTED straight to APPROVED and is idempotent once a version
is APPROVED or FINAL.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models import db
from app.models.asset import (
    APPROVABLE_STATUSES,
    LOCKED_STATUSES,
    VERSION_STATUSES,
    VERSION_TRANSITIONS,
    AssetVersion,
)
from app.models.project import Project

logger = logging.getLogger(__name__)


def get_version(*, tenant_id: int, project_id: int, version_id: int) -> AssetVersion:
    version = (
        AssetVersion.query
        .join(Project, Project.id == AssetVersion.project_id)
        .filter(
            AssetVersion.id == version_id,
            AssetVersion.project_id == project_id,
            Project.tenant_id == tenant_id,
        )
        .first()
    )
    if version is None:
        raise NotFoundError("Version not found", resource_id=version_id, tenant_id=tenant_id)
    return version


def get_version_in_tenant(*, tenant_id: int, version_id: int) -> AssetVersion | None:
    """Look a version up by id alone, scoped through its project's tenant."""
    return (
        AssetVersion.query
        .join(Project, Project.id == AssetVersion.project_id)
        .filter(AssetVersion.id == version_id, Project.tenant_id == tenant_id)
        .first()
    )


def list_versions(*, project_id: int) -> list[AssetVersion]:
    return (
        AssetVersion.query
        .filter_by(project_id=project_id)
        .order_by(AssetVersion.version_no.desc())
        .all()
    )


def next_version_no(project_id: int) -> int:
    current = db.session.query(func.max(AssetVersion.version_no)).filter(
        AssetVersion.project_id == project_id
    ).scalar()
    return (current or 0) + 1


def create_version(*, project: Project, data: dict) -> AssetVersion:
    version_no = data.get("version_no") or next_version_no(project.id)
    if AssetVersion.query.filter_by(project_id=project.id, version_no=version_no).first():
        raise ConflictError(f"Version {version_no} already exists for this project")

    kinescope_video_id = data.get("kinescope_video_id")
    version = AssetVersion(
        project_id=project.id,
        version_no=version_no,
        file_url=data["file_url"],
        file_name=data["file_name"],
        file_size=data.get("file_size") or 0,
        duration_sec=data.get("duration_sec"),
        notes=data.get("notes"),
        status="DRAFT",
        video_provider="KINESCOPE" if kinescope_video_id else "EXTERNAL",
        kinescope_video_id=kinescope_video_id,
        processing_status="PROCESSING" if kinescope_video_id else None,
    )
    db.session.add(version)
    db.session.flush()
    logger.info("Version %s (v%s) created for project %s", version.id, version_no, project.id)
    return version


def update_version_status(*, version: AssetVersion, status: str) -> AssetVersion:
    if status not in VERSION_STATUSES:
        raise ValidationError("Invalid status")
    if status not in VERSION_TRANSITIONS.get(version.status, frozenset()):
        raise ValidationError(
            "Invalid status transition",
            details={"from": version.status, "to": status},
        )

    if status == "APPROVED":
        return approve_version(version=version, approved_by=None)

    version.status = status
    db.session.flush()
    return version


def approve_version(*, version: AssetVersion, approved_by: str | int | None) -> AssetVersion:
    """Mark a version APPROVED; no-op when already APPROVED or FINAL."""
    if version.status in LOCKED_STATUSES:
        return version
    if version.status not in APPROVABLE_STATUSES:
        raise ValidationError("Invalid status transition")

    version.status = "APPROVED"
    version.approved_by = str(approved_by) if approved_by is not None else None
    version.approved_at = datetime.now(timezone.utc)
    db.session.flush()
    logger.info("Version %s approved by %s", version.id, version.approved_by)
    return version
