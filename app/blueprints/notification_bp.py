"""
Notification Blueprint — delivery log of outgoing emails.

  GET  /api/v1/notifications?limit=           newest first, max 200
  POST /api/v1/notifications/<id>/retry       OWNER/PM: resend a failed email
"""

from __future__ import annotations

import logging

from flask import Blueprint, g, jsonify, request

from app.middleware.jwt_auth import login_required, owner_or_pm_required
from app.services import notification_service
from app.utils.helpers import db_commit_or_error

logger = logging.getLogger(__name__)

notification_bp = Blueprint("notification_bp", __name__, url_prefix="/api/v1")


@notification_bp.route("/notifications", methods=["GET"])
@login_required
@owner_or_pm_required
def list_notifications():
    limit = request.args.get("limit", 50, type=int)
    items = notification_service.list_notifications(tenant_id=g.tenant.id, limit=limit)
    return jsonify([n.to_dict() for n in items]), 200


@notification_bp.route("/notifications/<int:notification_id>/retry", methods=["POST"])
@login_required
@owner_or_pm_required
def retry_notification(notification_id):
    notification = notification_service.retry_failed_notification(
        tenant_id=g.tenant.id, notification_id=notification_id,
    )
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(notification.to_dict()), 200
