"""
Feedback Blueprint — internal feedback on asset versions.

  POST   /api/v1/feedback                          author = current user
  PATCH  /api/v1/feedback/<id>                     status change
  DELETE /api/v1/feedback/<id>
  GET    /api/v1/projects/<pid>/feedback           newest first
  GET    /api/v1/versions/<vid>/feedback           oldest first

New feedback is queued for AI parsing once the row is committed.
"""

import logging

from flask import Blueprint, g, jsonify

from app.middleware.jwt_auth import login_required
from app.models.feedback import AUTHOR_USER
from app.schemas import FeedbackCreate, FeedbackStatusUpdate, load
from app.services import feedback_service
from app.services.access_control import assert_project_access
from app.services.asset_service import get_version_in_tenant
from app.utils.helpers import db_commit_or_error

logger = logging.getLogger(__name__)

feedback_bp = Blueprint("feedback_bp", __name__, url_prefix="/api/v1")


@feedback_bp.route("/feedback", methods=["POST"])
@login_required
def create_feedback():
    payload = load(FeedbackCreate)
    version = get_version_in_tenant(tenant_id=g.tenant.id, version_id=payload.asset_version_id)
    if version is not None:
        assert_project_access(g.current_user, version.project_id)

    data = payload.data()
    data["author_type"] = AUTHOR_USER
    data["author_id"] = g.current_user.id
    item = feedback_service.create_feedback(tenant_id=g.tenant.id, data=data)
    err = db_commit_or_error()
    if err:
        return err

    feedback_service.queue_feedback_parsing(
        tenant_id=g.tenant.id,
        project_id=item.asset_version.project_id,
        feedback_ids=[item.id],
    )
    return jsonify(item.to_dict()), 201


@feedback_bp.route("/feedback/<int:feedback_id>", methods=["PATCH"])
@login_required
def update_feedback(feedback_id):
    item = feedback_service.get_feedback(tenant_id=g.tenant.id, feedback_id=feedback_id)
    assert_project_access(g.current_user, item.asset_version.project_id)
    payload = load(FeedbackStatusUpdate)
    feedback_service.update_status(tenant_id=g.tenant.id, feedback_id=feedback_id, status=payload.status)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(item.to_dict()), 200


@feedback_bp.route("/feedback/<int:feedback_id>", methods=["DELETE"])
@login_required
def delete_feedback(feedback_id):
    item = feedback_service.get_feedback(tenant_id=g.tenant.id, feedback_id=feedback_id)
    assert_project_access(g.current_user, item.asset_version.project_id)
    feedback_service.delete_feedback(tenant_id=g.tenant.id, feedback_id=feedback_id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True}), 200


@feedback_bp.route("/projects/<int:project_id>/feedback", methods=["GET"])
@login_required
def list_project_feedback(project_id):
    assert_project_access(g.current_user, project_id)
    items = feedback_service.list_by_project(tenant_id=g.tenant.id, project_id=project_id)
    return jsonify([f.to_dict() for f in items]), 200


@feedback_bp.route("/versions/<int:version_id>/feedback", methods=["GET"])
@login_required
def list_version_feedback(version_id):
    version = get_version_in_tenant(tenant_id=g.tenant.id, version_id=version_id)
    if version is not None:
        assert_project_access(g.current_user, version.project_id)
    items = feedback_service.list_by_version(tenant_id=g.tenant.id, version_id=version_id)
    return jsonify([f.to_dict() for f in items]), 200
