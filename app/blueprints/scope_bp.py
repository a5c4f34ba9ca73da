"""
Scope Guard Blueprint — AI check of client feedback against the project brief.

  POST /api/v1/scope/analyze                      { feedback_id, project_id }
  GET  /api/v1/scope/decisions?project_id=
  POST /api/v1/scope/decisions/<id>/decide        OWNER/PM

The AI only labels a request; a PM decision settles it.
"""

import logging

from flask import Blueprint, g, jsonify, request

from app.middleware.jwt_auth import login_required, owner_or_pm_required
from app.schemas import ScopeAnalyze, ScopeDecide, load
from app.services import scope_guard_service
from app.services.access_control import assert_project_access, get_accessible_project_ids
from app.utils.helpers import db_commit_or_error

logger = logging.getLogger(__name__)

scope_bp = Blueprint("scope_bp", __name__, url_prefix="/api/v1/scope")


@scope_bp.route("/analyze", methods=["POST"])
@login_required
def analyze():
    payload = load(ScopeAnalyze)
    assert_project_access(g.current_user, payload.project_id)
    analysis, decision = scope_guard_service.analyze_feedback_scope(
        tenant_id=g.tenant.id,
        project_id=payload.project_id,
        feedback_id=payload.feedback_id,
    )
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"analysis": analysis, "decision": decision.to_dict()}), 200


@scope_bp.route("/decisions", methods=["GET"])
@login_required
def list_decisions():
    project_id = request.args.get("project_id", type=int)
    if project_id:
        assert_project_access(g.current_user, project_id)
        decisions = scope_guard_service.list_by_project(project_id=project_id, tenant_id=g.tenant.id)
    else:
        decisions = scope_guard_service.list_for_projects(
            tenant_id=g.tenant.id, project_ids=get_accessible_project_ids(g.current_user),
        )
    return jsonify([d.to_dict() for d in decisions]), 200


@scope_bp.route("/decisions/<int:decision_id>/decide", methods=["POST"])
@login_required
@owner_or_pm_required
def decide(decision_id):
    payload = load(ScopeDecide)
    decision = scope_guard_service.make_pm_decision(
        decision_id=decision_id,
        tenant_id=g.tenant.id,
        pm_user_id=g.current_user.id,
        decision=payload.decision,
        reason=payload.reason,
        change_request_amount=payload.change_request_amount,
    )
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(decision.to_dict()), 200
