"""
Task Service — production tasks, manual or extracted from feedback by AI.

Auto-assignment distributes AI action items round-robin over the
project's editors, falling back to every editor of the tenant when the
project has none. Default due dates follow PRIORITY_DUE_HOURS.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import case

from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.auth import ROLE_EDITOR, User
from app.models.project import Project, ProjectMember
from app.models.task import (
    PRIORITY_DUE_HOURS,
    TASK_CATEGORIES,
    TASK_PRIORITIES,
    TASK_PRIORITY_ORDER,
    TASK_STATUSES,
    AITask,
)
from app.utils.helpers import as_utc

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 200

_PRIORITY_RANK = case(
    {name: rank for rank, name in enumerate(TASK_PRIORITY_ORDER)},
    value=AITask.priority,
    else_=-1,
)


def _now():
    return datetime.now(timezone.utc)


def _task_query(tenant_id: int):
    return AITask.query.join(Project, Project.id == AITask.project_id).filter(
        Project.tenant_id == tenant_id
    )


def _assert_project_in_tenant(project_id, tenant_id: int) -> Project:
    project = Project.get_for_tenant(tenant_id, project_id)
    if project is None:
        raise NotFoundError("Project not found in this tenant")
    return project


def _assert_user_in_tenant(user_id: int, tenant_id: int) -> User:
    user = User.query.filter_by(id=user_id, tenant_id=tenant_id).first()
    if user is None:
        raise NotFoundError("Assigned user not found in this tenant")
    return user


def _check_due_date(due_date):
    if due_date is not None and as_utc(due_date) < _now():
        raise ValidationError("Due date cannot be in the past")


def calculate_due_date(priority: str, now: datetime | None = None) -> datetime:
    now = now or _now()
    return now + timedelta(hours=PRIORITY_DUE_HOURS.get(priority, 48))


def create_task(
    *,
    project_id: int,
    tenant_id: int,
    title: str | None,
    description: str | None = None,
    priority: str = "MEDIUM",
    category: str | None = None,
    assigned_to_user_id: int | None = None,
    estimated_minutes: int | None = None,
    due_date: datetime | None = None,
    source_feedback_ids: list | None = None,
    ai_generated: bool = False,
) -> AITask:
    trimmed = (title or "").strip()
    if not trimmed or len(trimmed) > MAX_TITLE_LENGTH:
        raise ValidationError("Title is required and must be under 200 characters")
    if estimated_minutes is not None and estimated_minutes < 1:
        raise ValidationError("Estimated minutes must be at least 1")
    if priority not in TASK_PRIORITIES:
        raise ValidationError("Invalid priority")
    if category is not None and category not in TASK_CATEGORIES:
        raise ValidationError("Invalid category")
    _check_due_date(due_date)

    _assert_project_in_tenant(project_id, tenant_id)
    if assigned_to_user_id:
        _assert_user_in_tenant(assigned_to_user_id, tenant_id)

    task = AITask(
        project_id=project_id,
        title=trimmed,
        description=description,
        status="TODO",
        priority=priority,
        category=category,
        assigned_to_user_id=assigned_to_user_id or None,
        estimated_minutes=estimated_minutes,
        due_date=due_date,
        source_feedback_ids=list(source_feedback_ids or []),
        ai_generated=ai_generated,
    )
    db.session.add(task)
    db.session.flush()
    return task


def _editor_ids_for(project_id: int, tenant_id: int) -> list[int]:
    project_editors = [
        uid for (uid,) in (
            db.session.query(User.id)
            .join(ProjectMember, ProjectMember.user_id == User.id)
            .filter(
                ProjectMember.project_id == project_id,
                User.tenant_id == tenant_id,
                User.role == ROLE_EDITOR,
            )
            .order_by(ProjectMember.added_at.asc(), User.id.asc())
        )
    ]
    if project_editors:
        return project_editors
    return [
        uid for (uid,) in (
            db.session.query(User.id)
            .filter(User.tenant_id == tenant_id, User.role == ROLE_EDITOR)
            .order_by(User.id.asc())
        )
    ]


def create_tasks_from_action_items(
    *,
    project_id: int,
    tenant_id: int,
    action_items: list[dict],
    auto_assign: bool = True,
) -> list[AITask]:
    """Turn AI action items into tasks, optionally assigning editors round-robin."""
    if not action_items:
        raise ValidationError("Action items are required")
    _assert_project_in_tenant(project_id, tenant_id)

    editors = _editor_ids_for(project_id, tenant_id) if auto_assign else []
    now = _now()

    tasks = []
    for index, item in enumerate(action_items):
        priority = item.get("priority") or "MEDIUM"
        assignee = editors[index % len(editors)] if editors else None
        tasks.append(create_task(
            project_id=project_id,
            tenant_id=tenant_id,
            title=item.get("text"),
            priority=priority,
            category=item.get("category"),
            assigned_to_user_id=assignee,
            estimated_minutes=item.get("estimated_minutes"),
            due_date=calculate_due_date(priority, now),
            source_feedback_ids=item.get("source_feedback_ids"),
            ai_generated=True,
        ))

    logger.info(
        "Created %d AI tasks for project %s (%d editors)", len(tasks), project_id, len(editors),
        extra={"tenant_id": tenant_id, "project_id": project_id},
    )
    return tasks


def get_task(*, tenant_id: int, task_id: int) -> AITask:
    task = _task_query(tenant_id).filter(AITask.id == task_id).first()
    if task is None:
        raise NotFoundError("Task not found", resource_id=task_id, tenant_id=tenant_id)
    return task


def list_tasks(
    *,
    tenant_id: int,
    filters: dict | None = None,
    accessible_project_ids: list[int] | None = None,
) -> list[AITask]:
    """List tasks: priority high → low, then soonest due, then newest."""
    filters = filters or {}
    query = _task_query(tenant_id)

    project_id = filters.get("project_id")
    if project_id:
        _assert_project_in_tenant(project_id, tenant_id)
        query = query.filter(AITask.project_id == project_id)
    if accessible_project_ids is not None:
        query = query.filter(AITask.project_id.in_(accessible_project_ids))

    for field in ("assigned_to_user_id", "status", "priority", "category"):
        if filters.get(field):
            query = query.filter(getattr(AITask, field) == filters[field])

    return query.order_by(
        _PRIORITY_RANK.desc(),
        AITask.due_date.is_(None),
        AITask.due_date.asc(),
        AITask.created_at.desc(),
        AITask.id.desc(),
    ).all()


def update_task(*, tenant_id: int, task_id: int, data: dict) -> AITask:
    """Partial update of status, assignee and due date."""
    task = get_task(tenant_id=tenant_id, task_id=task_id)

    status = data.get("status")
    if status is not None and status not in TASK_STATUSES:
        raise ValidationError("Invalid status")

    if data.get("assigned_to_user_id"):
        _assert_user_in_tenant(data["assigned_to_user_id"], tenant_id)
        task.assigned_to_user_id = data["assigned_to_user_id"]

    if data.get("due_date") is not None:
        _check_due_date(data["due_date"])
        task.due_date = data["due_date"]

    if status is not None:
        task.status = status
        task.completed_at = _now() if status == "DONE" else None

    db.session.flush()
    return task


def assign_task(*, tenant_id: int, task_id: int, user_id: int) -> AITask:
    task = get_task(tenant_id=tenant_id, task_id=task_id)
    _assert_user_in_tenant(user_id, tenant_id)
    task.assigned_to_user_id = user_id
    db.session.flush()
    return task


def delete_task(*, tenant_id: int, task_id: int) -> None:
    task = get_task(tenant_id=tenant_id, task_id=task_id)
    db.session.delete(task)
    db.session.flush()
