"""Project CRUD, portal tokens and project membership.

Every project gets its seven workflow stages on creation and one portal
token; rotating the token invalidates previously shared portal links.
"""

from __future__ import annotations

import logging
import secrets

from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.auth import ROLE_EDITOR, User, WorkspaceMember
from app.models.client import ClientAccount
from app.models.project import PROJECT_STATUSES, Project, ProjectMember
from app.services import workflow_service
from app.services.access_control import (
    accessible_projects_query,
    get_workspace_for_tenant,
    is_owner_or_pm,
)
from app.utils.helpers import parse_datetime

logger = logging.getLogger(__name__)


def generate_portal_token() -> str:
    return secrets.token_urlsafe(24)


def _parse_due_date(value):
    try:
        return parse_datetime(value)
    except ValueError as exc:
        raise ValidationError("Invalid due_date") from exc


def get_project(*, tenant_id: int, project_id: int) -> Project:
    """Tenant-scoped lookup without membership checks (OWNER/PM paths)."""
    project = Project.get_for_tenant(tenant_id, project_id)
    if project is None:
        raise NotFoundError("Project not found", resource_id=project_id, tenant_id=tenant_id)
    return project


def list_projects(*, user: User, status: str | None = None) -> list[Project]:
    query = accessible_projects_query(user)
    if status:
        if status not in PROJECT_STATUSES:
            raise ValidationError("Invalid status filter")
        query = query.filter(Project.status == status)
    return query.order_by(Project.created_at.desc(), Project.id.desc()).all()


def create_project(*, user: User, data: dict) -> Project:
    """Create a project with its default workflow stages."""
    tenant_id = user.tenant_id
    client = ClientAccount.get_for_tenant(tenant_id, data.get("client_id"))
    if client is None:
        raise ValidationError("Invalid client_id: client not found in this tenant")

    project = Project(
        tenant_id=tenant_id,
        client_id=client.id,
        name=data["name"].strip(),
        description=data.get("description"),
        status="DRAFT",
        revisions_limit=data.get("revisions_limit") if data.get("revisions_limit") is not None else 3,
        due_date=_parse_due_date(data.get("due_date")),
        scope_doc_url=data.get("scope_doc_url"),
        portal_token=generate_portal_token(),
    )
    db.session.add(project)
    db.session.flush()

    # Non-managers only see projects they belong to
    if not is_owner_or_pm(user.role):
        db.session.add(ProjectMember(
            project_id=project.id, user_id=user.id, role_on_project="editor", added_by=user.id,
        ))

    workflow_service.create_default_stages(project_id=project.id, tenant_id=tenant_id)
    logger.info("Project %s created in tenant %s", project.id, tenant_id)
    return project


def update_project(*, project: Project, data: dict) -> Project:
    if "status" in data and data["status"] is not None:
        if data["status"] not in PROJECT_STATUSES:
            raise ValidationError("Invalid status")
        project.status = data["status"]

    if data.get("client_id") is not None:
        client = ClientAccount.get_for_tenant(project.tenant_id, data["client_id"])
        if client is None:
            raise ValidationError("Invalid client_id: client not found in this tenant")
        project.client_id = client.id

    for field in ("name", "description", "revisions_limit", "scope_doc_url"):
        if field in data and data[field] is not None:
            setattr(project, field, data[field])

    if "due_date" in data:
        project.due_date = _parse_due_date(data["due_date"])

    db.session.flush()
    return project


def delete_project(*, project: Project) -> None:
    db.session.delete(project)
    db.session.flush()


def rotate_portal_token(*, tenant_id: int, project_id: int) -> dict:
    project = get_project(tenant_id=tenant_id, project_id=project_id)
    project.portal_token = generate_portal_token()
    db.session.flush()
    logger.info("Portal token rotated for project %s", project.id)
    return {"project_id": project.id, "portal_token": project.portal_token}


# ── Members ──────────────────────────────────────────────────────────────────


def list_members(*, tenant_id: int, project_id: int) -> list[ProjectMember]:
    get_project(tenant_id=tenant_id, project_id=project_id)
    return (
        ProjectMember.query
        .filter_by(project_id=project_id)
        .order_by(ProjectMember.added_at.desc(), ProjectMember.id.desc())
        .all()
    )


def add_members(*, tenant_id: int, project_id: int, user_ids: list[int], added_by: int) -> int:
    """Add workspace editors to a project. Returns the number of new rows."""
    workspace = get_workspace_for_tenant(tenant_id)
    if workspace is None:
        raise NotFoundError("Workspace not found", tenant_id=tenant_id)
    get_project(tenant_id=tenant_id, project_id=project_id)

    requested = list(dict.fromkeys(user_ids))
    editor_ids = {
        uid for (uid,) in db.session.query(WorkspaceMember.user_id).filter(
            WorkspaceMember.workspace_id == workspace.id,
            WorkspaceMember.user_id.in_(requested),
            WorkspaceMember.role == ROLE_EDITOR,
        )
    }
    if any(uid not in editor_ids for uid in requested):
        raise ValidationError("Only workspace editors can be added to project")

    existing = {
        uid for (uid,) in db.session.query(ProjectMember.user_id).filter(
            ProjectMember.project_id == project_id,
            ProjectMember.user_id.in_(requested),
        )
    }
    added = 0
    for uid in requested:
        if uid in existing:
            continue
        db.session.add(ProjectMember(
            project_id=project_id, user_id=uid, role_on_project="editor", added_by=added_by,
        ))
        added += 1
    db.session.flush()
    return added


def remove_member(*, tenant_id: int, project_id: int, user_id: int) -> None:
    get_project(tenant_id=tenant_id, project_id=project_id)
    ProjectMember.query.filter_by(project_id=project_id, user_id=user_id).delete()
    db.session.flush()
