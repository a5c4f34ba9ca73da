"""
Project Blueprint — projects, portal token rotation, project members.

  GET    /api/v1/projects?status=
  POST   /api/v1/projects
  GET    /api/v1/projects/<id>
  PATCH  /api/v1/projects/<id>
  DELETE /api/v1/projects/<id>                       OWNER/PM
  POST   /api/v1/projects/<id>/portal-token/reset    OWNER/PM
  GET    /api/v1/projects/<id>/members
  POST   /api/v1/projects/<id>/members               OWNER/PM
  DELETE /api/v1/projects/<id>/members/<user_id>     OWNER/PM
"""

import logging

from flask import Blueprint, g, jsonify, request

from app.middleware.jwt_auth import login_required, owner_or_pm_required
from app.schemas import MembersAdd, ProjectCreate, ProjectUpdate, load
from app.services import project_service
from app.services.access_control import assert_project_access
from app.utils.helpers import db_commit_or_error

logger = logging.getLogger(__name__)

project_bp = Blueprint("project_bp", __name__, url_prefix="/api/v1")


# ═══════════════════════════════════════════════════════════════════════════
#  PROJECTS
# ═══════════════════════════════════════════════════════════════════════════

@project_bp.route("/projects", methods=["GET"])
@login_required
def list_projects():
    projects = project_service.list_projects(
        user=g.current_user, status=request.args.get("status") or None,
    )
    return jsonify([p.to_dict(include_client=True) for p in projects]), 200


@project_bp.route("/projects", methods=["POST"])
@login_required
def create_project():
    payload = load(ProjectCreate)
    project = project_service.create_project(user=g.current_user, data=payload.data())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(project.to_dict(include_client=True)), 201


@project_bp.route("/projects/<int:project_id>", methods=["GET"])
@login_required
def get_project(project_id):
    project = assert_project_access(g.current_user, project_id)
    return jsonify(project.to_dict(include_client=True)), 200


@project_bp.route("/projects/<int:project_id>", methods=["PATCH"])
@login_required
def update_project(project_id):
    project = assert_project_access(g.current_user, project_id)
    payload = load(ProjectUpdate)
    project_service.update_project(project=project, data=payload.data(partial=True))
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(project.to_dict(include_client=True)), 200


@project_bp.route("/projects/<int:project_id>", methods=["DELETE"])
@login_required
@owner_or_pm_required
def delete_project(project_id):
    project = project_service.get_project(tenant_id=g.tenant.id, project_id=project_id)
    project_service.delete_project(project=project)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True}), 200


@project_bp.route("/projects/<int:project_id>/portal-token/reset", methods=["POST"])
@login_required
@owner_or_pm_required
def reset_portal_token(project_id):
    result = project_service.rotate_portal_token(tenant_id=g.tenant.id, project_id=project_id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(result), 200


# ═══════════════════════════════════════════════════════════════════════════
#  MEMBERS
# ═══════════════════════════════════════════════════════════════════════════

@project_bp.route("/projects/<int:project_id>/members", methods=["GET"])
@login_required
def list_members(project_id):
    assert_project_access(g.current_user, project_id)
    members = project_service.list_members(tenant_id=g.tenant.id, project_id=project_id)
    return jsonify([m.to_dict() for m in members]), 200


@project_bp.route("/projects/<int:project_id>/members", methods=["POST"])
@login_required
@owner_or_pm_required
def add_members(project_id):
    payload = load(MembersAdd)
    added = project_service.add_members(
        tenant_id=g.tenant.id,
        project_id=project_id,
        user_ids=payload.user_ids,
        added_by=g.current_user.id,
    )
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"added": added}), 201


@project_bp.route("/projects/<int:project_id>/members/<int:user_id>", methods=["DELETE"])
@login_required
@owner_or_pm_required
def remove_member(project_id, user_id):
    project_service.remove_member(tenant_id=g.tenant.id, project_id=project_id, user_id=user_id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True}), 200
