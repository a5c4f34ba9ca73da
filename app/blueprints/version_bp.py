"""
Asset Version Blueprint — video iterations of a project and their review status.

  GET   /api/v1/projects/<pid>/versions
  POST  /api/v1/projects/<pid>/versions
  GET   /api/v1/projects/<pid>/versions/<vid>
  PATCH /api/v1/projects/<pid>/versions/<vid>/status
  POST  /api/v1/projects/<pid>/versions/<vid>/approve
  POST  /api/v1/projects/<pid>/versions/<vid>/notify-client   OWNER/PM

Status transitions:
    DRAFT → IN_REVIEW → CHANGES_REQUESTED ⇄ IN_REVIEW → APPROVED → FINAL
"""

import logging

from flask import Blueprint, g, jsonify

from app.middleware.jwt_auth import login_required, owner_or_pm_required
from app.schemas import VersionCreate, VersionStatusUpdate, load
from app.services import asset_service, notification_service
from app.services.access_control import assert_project_access
from app.utils.helpers import db_commit_or_error

logger = logging.getLogger(__name__)

version_bp = Blueprint("version_bp", __name__, url_prefix="/api/v1")


@version_bp.route("/projects/<int:project_id>/versions", methods=["GET"])
@login_required
def list_versions(project_id):
    assert_project_access(g.current_user, project_id)
    versions = asset_service.list_versions(project_id=project_id)
    return jsonify([v.to_dict() for v in versions]), 200


@version_bp.route("/projects/<int:project_id>/versions", methods=["POST"])
@login_required
def create_version(project_id):
    project = assert_project_access(g.current_user, project_id)
    payload = load(VersionCreate)
    version = asset_service.create_version(project=project, data=payload.data())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(version.to_dict()), 201


@version_bp.route("/projects/<int:project_id>/versions/<int:version_id>", methods=["GET"])
@login_required
def get_version(project_id, version_id):
    assert_project_access(g.current_user, project_id)
    version = asset_service.get_version(
        tenant_id=g.tenant.id, project_id=project_id, version_id=version_id,
    )
    return jsonify(version.to_dict()), 200


@version_bp.route("/projects/<int:project_id>/versions/<int:version_id>/status", methods=["PATCH"])
@login_required
def update_version_status(project_id, version_id):
    assert_project_access(g.current_user, project_id)
    payload = load(VersionStatusUpdate)
    version = asset_service.get_version(
        tenant_id=g.tenant.id, project_id=project_id, version_id=version_id,
    )
    asset_service.update_version_status(version=version, status=payload.status)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(version.to_dict()), 200


@version_bp.route("/projects/<int:project_id>/versions/<int:version_id>/approve", methods=["POST"])
@login_required
def approve_version(project_id, version_id):
    assert_project_access(g.current_user, project_id)
    version = asset_service.get_version(
        tenant_id=g.tenant.id, project_id=project_id, version_id=version_id,
    )
    asset_service.approve_version(version=version, approved_by=g.current_user.id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(version.to_dict()), 200


@version_bp.route("/projects/<int:project_id>/versions/<int:version_id>/notify-client", methods=["POST"])
@login_required
@owner_or_pm_required
def notify_client(project_id, version_id):
    """Email the project's client that a version is ready for review."""
    project = assert_project_access(g.current_user, project_id)
    client = project.client
    notification = notification_service.notify_client_about_new_version(
        tenant_id=g.tenant.id,
        project_id=project_id,
        version_id=version_id,
        client_email=client.email,
        client_name=client.name,
    )
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(notification.to_dict()), 201
