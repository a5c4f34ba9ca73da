"""
Team Blueprint — workspace members and invite links.

  GET    /api/v1/team/members
  GET    /api/v1/team/invites                     OWNER/PM
  POST   /api/v1/team/invites                     OWNER/PM   { expires_in_days }
  DELETE /api/v1/team/invites/<id>                OWNER/PM   deactivate
  GET    /api/v1/invite/<token>                   public: validate a link
  POST   /api/v1/invite/<token>/accept            join as EDITOR
"""

import logging
from datetime import datetime, timedelta, timezone

from flask import Blueprint, g, jsonify

from app.core.exceptions import NotFoundError
from app.middleware.jwt_auth import login_required, owner_or_pm_required
from app.models.auth import WorkspaceMember
from app.schemas import InviteCreate, load
from app.services import invite_service
from app.services.access_control import get_workspace_for_tenant
from app.utils.helpers import db_commit_or_error

logger = logging.getLogger(__name__)

team_bp = Blueprint("team_bp", __name__, url_prefix="/api/v1")


def _workspace():
    workspace = get_workspace_for_tenant(g.tenant.id)
    if workspace is None:
        raise NotFoundError("Workspace not found")
    return workspace


@team_bp.route("/team/members", methods=["GET"])
@login_required
def list_members():
    members = (
        _workspace().members
        .order_by(WorkspaceMember.created_at.asc(), WorkspaceMember.id.asc())
        .all()
    )
    return jsonify([m.to_dict() for m in members]), 200


@team_bp.route("/team/invites", methods=["GET"])
@login_required
@owner_or_pm_required
def list_invites():
    invites = invite_service.list_active_invites(workspace_id=_workspace().id)
    return jsonify([i.to_dict() for i in invites]), 200


@team_bp.route("/team/invites", methods=["POST"])
@login_required
@owner_or_pm_required
def create_invite():
    payload = load(InviteCreate)
    expires_at = None
    if payload.expires_in_days:
        expires_at = datetime.now(timezone.utc) + timedelta(days=payload.expires_in_days)
    invite = invite_service.create_invite_link(
        workspace_id=_workspace().id, created_by=g.current_user.id, expires_at=expires_at,
    )
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(invite.to_dict()), 201


@team_bp.route("/team/invites/<int:invite_id>", methods=["DELETE"])
@login_required
@owner_or_pm_required
def deactivate_invite(invite_id):
    invite = invite_service.deactivate_invite(workspace_id=_workspace().id, invite_id=invite_id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(invite.to_dict()), 200


@team_bp.route("/invite/<token>", methods=["GET"])
def get_invite(token):
    invite = invite_service.validate_invite_token(token)
    return jsonify({
        "valid": True,
        "workspace": invite.workspace.to_dict(),
        "expires_at": invite.to_dict()["expires_at"],
    }), 200


@team_bp.route("/invite/<token>/accept", methods=["POST"])
@login_required
def accept_invite(token):
    invite = invite_service.accept_invite(token=token, user_id=g.current_user.id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True, "workspace_id": invite.workspace_id}), 200
