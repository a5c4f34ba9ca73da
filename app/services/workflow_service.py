"""
Workflow Service — production stage tracking with SLA hours.

Stages (in order):
    BRIEFING → PRODUCTION → CLIENT_REVIEW → REVISIONS → APPROVAL → DELIVERY → COMPLETED

At most one stage is active (started_at set, completed_at empty). A
stage is overdue when it is active, has a positive SLA and its elapsed
hours exceed it.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models import db
from app.models.auth import User
from app.models.project import DEFAULT_STAGE_SLA, STAGE_ORDER, Project, WorkflowStage
from app.utils.helpers import as_utc

logger = logging.getLogger(__name__)


def _now():
    return datetime.now(timezone.utc)


def _assert_project_in_tenant(project_id: int, tenant_id: int) -> Project:
    project = Project.get_for_tenant(tenant_id, project_id)
    if project is None:
        raise NotFoundError("Project not found in this tenant", resource_id=project_id, tenant_id=tenant_id)
    return project


def _active_stage(project_id: int) -> WorkflowStage | None:
    return (
        WorkflowStage.query
        .filter(
            WorkflowStage.project_id == project_id,
            WorkflowStage.started_at.isnot(None),
            WorkflowStage.completed_at.is_(None),
        )
        .order_by(WorkflowStage.position.asc())
        .first()
    )


def _stage_by_name(project_id: int, stage_name: str) -> WorkflowStage | None:
    return WorkflowStage.query.filter_by(project_id=project_id, stage_name=stage_name).first()


def create_default_stages(*, project_id: int, tenant_id: int) -> list[WorkflowStage]:
    """Create all seven stages and start the first one."""
    _assert_project_in_tenant(project_id, tenant_id)

    if WorkflowStage.query.filter_by(project_id=project_id).first() is not None:
        raise ConflictError("Workflow stages already exist for this project")

    now = _now()
    stages = [
        WorkflowStage(
            project_id=project_id,
            stage_name=name,
            position=index,
            sla_hours=DEFAULT_STAGE_SLA[name],
            started_at=now if index == 0 else None,
        )
        for index, name in enumerate(STAGE_ORDER)
    ]
    db.session.add_all(stages)
    db.session.flush()
    return stages


def list_stages(*, project_id: int, tenant_id: int) -> list[WorkflowStage]:
    _assert_project_in_tenant(project_id, tenant_id)
    return (
        WorkflowStage.query
        .filter_by(project_id=project_id)
        .order_by(WorkflowStage.position.asc())
        .all()
    )


def get_current_stage(*, project_id: int, tenant_id: int) -> WorkflowStage | None:
    _assert_project_in_tenant(project_id, tenant_id)
    return _active_stage(project_id)


def transition_to_next_stage(*, project_id: int, tenant_id: int) -> WorkflowStage:
    """Complete the active stage and start the one after it."""
    _assert_project_in_tenant(project_id, tenant_id)

    current = _active_stage(project_id)
    if current is None:
        raise ValidationError("No active stage to transition from")

    index = STAGE_ORDER.index(current.stage_name) if current.stage_name in STAGE_ORDER else -1
    if index == -1 or index == len(STAGE_ORDER) - 1:
        raise ValidationError("Cannot transition: already at final stage")

    now = _now()
    current.completed_at = now

    nxt = _stage_by_name(project_id, STAGE_ORDER[index + 1])
    if nxt is None:
        raise NotFoundError("Target stage not found for this project")
    nxt.started_at = now
    nxt.completed_at = None
    db.session.flush()

    logger.info("Project %s: %s → %s", project_id, current.stage_name, nxt.stage_name)
    return nxt


def transition_to_stage(
    *,
    project_id: int,
    tenant_id: int,
    stage_name: str,
    owner_user_id: int | None = None,
) -> WorkflowStage:
    """Jump to *stage_name*, completing whatever stage was active."""
    _assert_project_in_tenant(project_id, tenant_id)

    if owner_user_id is not None:
        owner = User.query.filter_by(id=owner_user_id, tenant_id=tenant_id).first()
        if owner is None:
            raise NotFoundError("Owner user not found in this tenant")

    target = _stage_by_name(project_id, stage_name)
    if target is None:
        raise NotFoundError("Target stage not found for this project")
    if target.completed_at is not None:
        raise ValidationError("Target stage is already completed")

    now = _now()
    current = _active_stage(project_id)
    if current is not None and current.id != target.id:
        current.completed_at = now

    target.started_at = now
    target.completed_at = None
    target.owner_user_id = owner_user_id
    db.session.flush()

    logger.info("Project %s moved to stage %s", project_id, stage_name)
    return target


def complete_project(*, project_id: int, tenant_id: int) -> None:
    """Close every open stage."""
    _assert_project_in_tenant(project_id, tenant_id)
    now = _now()
    for stage in WorkflowStage.query.filter_by(project_id=project_id, completed_at=None):
        stage.completed_at = now
    db.session.flush()


def complete_stage(*, stage_id: int, tenant_id: int) -> WorkflowStage:
    stage = (
        WorkflowStage.query
        .join(Project, Project.id == WorkflowStage.project_id)
        .filter(WorkflowStage.id == stage_id, Project.tenant_id == tenant_id)
        .first()
    )
    if stage is None:
        raise NotFoundError("Stage not found in this tenant")
    if stage.completed_at is None:
        stage.completed_at = _now()
        db.session.flush()
    return stage


def check_overdue_stages(*, tenant_id: int) -> list[WorkflowStage]:
    """Active stages of the tenant whose SLA has run out."""
    active = (
        WorkflowStage.query
        .join(Project, Project.id == WorkflowStage.project_id)
        .filter(
            Project.tenant_id == tenant_id,
            WorkflowStage.started_at.isnot(None),
            WorkflowStage.completed_at.is_(None),
            WorkflowStage.sla_hours > 0,
        )
        .all()
    )
    now = _now()
    return [stage for stage in active if stage.is_overdue(now)]


def get_project_metrics(*, project_id: int, tenant_id: int) -> dict:
    _assert_project_in_tenant(project_id, tenant_id)
    stages = (
        WorkflowStage.query
        .filter_by(project_id=project_id)
        .order_by(WorkflowStage.position.asc())
        .all()
    )
    now = _now()

    completed = [s for s in stages if s.completed_at is not None]
    active = next((s for s in stages if s.is_active), None)
    overdue = sum(1 for s in stages if s.is_overdue(now))

    durations = [
        (as_utc(s.completed_at) - as_utc(s.started_at)).total_seconds() / 3600
        for s in stages
        if s.started_at is not None and s.completed_at is not None
    ]
    average = sum(durations) / len(durations) if durations else 0

    return {
        "total_stages": len(stages),
        "completed_stages": len(completed),
        "active_stage": active.stage_name if active else None,
        "overdue_stages": overdue,
        "average_completion_hours": round(average, 2),
    }
