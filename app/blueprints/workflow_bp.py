"""
Workflow Blueprint — production stages of a project.

  GET  /api/v1/projects/<pid>/workflow              stages + current stage
  POST /api/v1/projects/<pid>/workflow/transition   jump to a named stage
  POST /api/v1/projects/<pid>/workflow/next         complete current, start next
  GET  /api/v1/projects/<pid>/workflow/metrics
"""

from flask import Blueprint, g, jsonify

from app.middleware.jwt_auth import login_required
from app.schemas import WorkflowTransition, load
from app.services import workflow_service
from app.services.access_control import assert_project_access
from app.utils.helpers import db_commit_or_error

workflow_bp = Blueprint("workflow_bp", __name__, url_prefix="/api/v1")


@workflow_bp.route("/projects/<int:project_id>/workflow", methods=["GET"])
@login_required
def get_workflow(project_id):
    assert_project_access(g.current_user, project_id)
    stages = workflow_service.list_stages(project_id=project_id, tenant_id=g.tenant.id)
    current = next((s for s in stages if s.is_active), None)
    return jsonify({
        "stages": [s.to_dict() for s in stages],
        "current_stage": current.to_dict() if current else None,
    }), 200


@workflow_bp.route("/projects/<int:project_id>/workflow/transition", methods=["POST"])
@login_required
def transition(project_id):
    assert_project_access(g.current_user, project_id)
    payload = load(WorkflowTransition)
    stage = workflow_service.transition_to_stage(
        project_id=project_id,
        tenant_id=g.tenant.id,
        stage_name=payload.stage_name,
        owner_user_id=payload.owner_user_id,
    )
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(stage.to_dict()), 200


@workflow_bp.route("/projects/<int:project_id>/workflow/next", methods=["POST"])
@login_required
def next_stage(project_id):
    assert_project_access(g.current_user, project_id)
    stage = workflow_service.transition_to_next_stage(project_id=project_id, tenant_id=g.tenant.id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(stage.to_dict()), 200


@workflow_bp.route("/projects/<int:project_id>/workflow/metrics", methods=["GET"])
@login_required
def metrics(project_id):
    assert_project_access(g.current_user, project_id)
    return jsonify(workflow_service.get_project_metrics(project_id=project_id, tenant_id=g.tenant.id)), 200
