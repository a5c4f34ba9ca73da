"""
Scope Guard Service — AI scope classification of feedback plus PM decisions.

One decision per feedback item; the AI label and confidence are stored
as-is and a PM later approves, rejects or turns it into a change request.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models import db
from app.models.asset import AssetVersion
from app.models.auth import User
from app.models.feedback import FeedbackItem
from app.models.project import Project
from app.models.scope import PM_DECISIONS, SCOPE_LABELS, ScopeDecision

logger = logging.getLogger(__name__)


def _decision_query(tenant_id: int):
    return ScopeDecision.query.join(Project, Project.id == ScopeDecision.project_id).filter(
        Project.tenant_id == tenant_id
    )


def _assert_not_decided(feedback_item_id: int) -> None:
    if ScopeDecision.query.filter_by(feedback_item_id=feedback_item_id).first() is not None:
        raise ConflictError("Scope decision already exists for this feedback")


def create_scope_decision(
    *,
    project_id: int,
    feedback_item_id: int,
    tenant_id: int,
    ai_label: str,
    ai_confidence: float,
    ai_reasoning: str | None = None,
) -> ScopeDecision:
    row = (
        db.session.query(FeedbackItem, AssetVersion.project_id)
        .join(AssetVersion, AssetVersion.id == FeedbackItem.asset_version_id)
        .join(Project, Project.id == AssetVersion.project_id)
        .filter(FeedbackItem.id == feedback_item_id, Project.tenant_id == tenant_id)
        .first()
    )
    if row is None:
        raise NotFoundError("Feedback not found in this tenant")
    if row[1] != project_id:
        raise ValidationError("Feedback does not belong to this project")

    _assert_not_decided(feedback_item_id)

    decision = ScopeDecision(
        project_id=project_id,
        feedback_item_id=feedback_item_id,
        ai_label=ai_label if ai_label in SCOPE_LABELS else "UNCLEAR",
        ai_confidence=ai_confidence,
        ai_reasoning=ai_reasoning,
    )
    db.session.add(decision)
    db.session.flush()
    logger.info(
        "Scope decision %s (%s, %.2f) for feedback %s",
        decision.id, decision.ai_label, decision.ai_confidence, feedback_item_id,
        extra={"tenant_id": tenant_id, "project_id": project_id},
    )
    return decision


def get_scope_decision(*, decision_id: int, tenant_id: int) -> ScopeDecision:
    decision = _decision_query(tenant_id).filter(ScopeDecision.id == decision_id).first()
    if decision is None:
        raise NotFoundError("Scope decision not found in this tenant")
    return decision


def list_by_project(*, project_id: int, tenant_id: int) -> list[ScopeDecision]:
    if Project.get_for_tenant(tenant_id, project_id) is None:
        raise NotFoundError("Project not found in this tenant")
    return (
        ScopeDecision.query
        .filter_by(project_id=project_id)
        .order_by(ScopeDecision.created_at.desc(), ScopeDecision.id.desc())
        .all()
    )


def list_for_projects(*, tenant_id: int, project_ids: list[int] | None) -> list[ScopeDecision]:
    """Decisions across projects; ``None`` means every project of the tenant."""
    query = _decision_query(tenant_id)
    if project_ids is not None:
        query = query.filter(ScopeDecision.project_id.in_(project_ids))
    return query.order_by(ScopeDecision.created_at.desc(), ScopeDecision.id.desc()).all()


def make_pm_decision(
    *,
    decision_id: int,
    tenant_id: int,
    pm_user_id: int,
    decision: str,
    reason: str | None = None,
    change_request_amount: float | None = None,
) -> ScopeDecision:
    if decision not in PM_DECISIONS:
        raise ValidationError("Invalid decision")
    if change_request_amount is not None and change_request_amount < 0:
        raise ValidationError("Change request amount must be non-negative")

    scope_decision = get_scope_decision(decision_id=decision_id, tenant_id=tenant_id)

    if User.query.filter_by(id=pm_user_id, tenant_id=tenant_id).first() is None:
        raise NotFoundError("PM user not found in this tenant")

    scope_decision.pm_decision = decision
    scope_decision.pm_reason = reason
    scope_decision.change_request_amount = (
        Decimal(str(change_request_amount)) if change_request_amount is not None else None
    )
    scope_decision.decided_by = pm_user_id
    scope_decision.decided_at = datetime.now(timezone.utc)
    db.session.flush()

    logger.info("Scope decision %s marked %s by user %s", decision_id, decision, pm_user_id)
    return scope_decision


def analyze_feedback_scope(*, tenant_id: int, project_id: int, feedback_id: int, ai=None) -> tuple[dict, ScopeDecision]:
    """Run the AI scope check on one feedback item and record the decision."""
    from app.services.ai_service import AIService
    from app.services.feedback_service import get_feedback

    feedback = get_feedback(tenant_id=tenant_id, feedback_id=feedback_id)
    project = Project.get_for_tenant(tenant_id, project_id)
    if project is None:
        raise NotFoundError("Project not found")
    if feedback.asset_version.project_id != project_id:
        raise ValidationError("Feedback does not belong to this project")
    # One decision per feedback; checked before calling the model
    _assert_not_decided(feedback.id)

    ai = ai or AIService()
    analysis = ai.analyze_scope_compliance(
        feedback_text=feedback.text,
        feedback_id=feedback.id,
        project_scope=project.description or project.scope_doc_url or "No brief provided",
        project_name=project.name,
    )
    decision = create_scope_decision(
        project_id=project_id,
        feedback_item_id=feedback.id,
        tenant_id=tenant_id,
        ai_label=analysis["label"],
        ai_confidence=analysis["confidence"],
        ai_reasoning=analysis["reasoning"],
    )
    return analysis, decision
