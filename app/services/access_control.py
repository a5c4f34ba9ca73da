"""Role and project-visibility rules shared by every blueprint.

OWNER and PM see every project of their tenant; EDITOR and CLIENT_VIEWER
only see projects they are a ProjectMember of. A project the caller cannot
see answers 404, never 403.
"""

from __future__ import annotations

from app.core.exceptions import ForbiddenError, NotFoundError
from app.models import db
from app.models.auth import MANAGER_ROLES, ROLE_EDITOR, User, Workspace, WorkspaceMember
from app.models.project import Project, ProjectMember


def is_owner_or_pm(role: str | None) -> bool:
    return role in MANAGER_ROLES


def assert_owner_or_pm(user: User) -> None:
    if not is_owner_or_pm(user.role):
        raise ForbiddenError("Forbidden")


def accessible_projects_query(user: User):
    """Project query restricted to what *user* may see."""
    query = Project.query.filter(Project.tenant_id == user.tenant_id)
    if is_owner_or_pm(user.role):
        return query
    member_project_ids = db.session.query(ProjectMember.project_id).filter(
        ProjectMember.user_id == user.id
    )
    return query.filter(Project.id.in_(member_project_ids))


def get_accessible_project_ids(user: User) -> list[int]:
    return [pid for (pid,) in accessible_projects_query(user).with_entities(Project.id).all()]


def assert_project_access(user: User, project_id: int) -> Project:
    """Return the project or raise 404 when missing, foreign or not visible."""
    project = accessible_projects_query(user).filter(Project.id == project_id).first()
    if project is None:
        raise NotFoundError("Project not found", resource_id=project_id, tenant_id=user.tenant_id)
    return project


def get_workspace_for_tenant(tenant_id: int) -> Workspace | None:
    return Workspace.query.filter_by(tenant_id=tenant_id).first()


def get_workspace_editors(workspace_id: int) -> list[WorkspaceMember]:
    """Active EDITOR members of a workspace, oldest first."""
    return (
        WorkspaceMember.query
        .join(User, User.id == WorkspaceMember.user_id)
        .filter(
            WorkspaceMember.workspace_id == workspace_id,
            WorkspaceMember.role == ROLE_EDITOR,
            User.is_active.is_(True),
        )
        .order_by(WorkspaceMember.created_at.asc(), WorkspaceMember.id.asc())
        .all()
    )
