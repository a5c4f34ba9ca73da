"""
Public Blueprint — client review portal. No login; the portal token is the credential.

  GET  /api/v1/public/portal/<token>?version_id=
  POST /api/v1/public/portal/<token>/approve     { version_id }
  POST /api/v1/public/feedback                   client feedback on a version, queued for AI parsing
"""

import logging

from flask import Blueprint, jsonify, request

from app.schemas import PortalApprove, PublicFeedbackCreate, load
from app.services import feedback_service, portal_service
from app.utils.helpers import db_commit_or_error

logger = logging.getLogger(__name__)

public_bp = Blueprint("public_bp", __name__, url_prefix="/api/v1/public")


@public_bp.route("/portal/<token>", methods=["GET"])
def get_portal(token):
    view = portal_service.get_portal_view(
        token=token, version_id=request.args.get("version_id", type=int),
    )
    # Opening a draft promotes it to IN_REVIEW
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(view), 200


@public_bp.route("/portal/<token>/approve", methods=["POST"])
def approve(token):
    payload = load(PortalApprove)
    body, approved = portal_service.approve_from_portal(token=token, version_id=payload.version_id)
    if approved is None:
        return jsonify(body), 200

    err = db_commit_or_error()
    if err:
        return err

    portal_service.notify_portal_approval(approved)
    return jsonify(body), 200


@public_bp.route("/feedback", methods=["POST"])
def create_feedback():
    payload = load(PublicFeedbackCreate)
    item = portal_service.create_public_feedback(data=payload.data())
    err = db_commit_or_error()
    if err:
        return err

    project = item.asset_version.project
    feedback_service.queue_feedback_parsing(
        tenant_id=project.tenant_id, project_id=project.id, feedback_ids=[item.id],
    )
    portal_service.notify_public_feedback(item)
    # Manager emails are recorded as Notification rows
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(item.to_dict()), 201
