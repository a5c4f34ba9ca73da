"""
Webhook Blueprint — signed callbacks from Kinescope and Stripe.

  POST /api/v1/webhooks/kinescope    X-Kinescope-Signature: [sha256=]<hex>
  POST /api/v1/webhooks/stripe       Stripe-Signature: t=<ts>,v1=<hex>

Both verify an HMAC-SHA256 over the raw request body before touching the
payload. JWT parsing is skipped for this prefix.
"""

import logging

from flask import Blueprint, jsonify, request

from app.services import billing_service, kinescope_service
from app.utils.errors import E, api_error
from app.utils.helpers import db_commit_or_error

logger = logging.getLogger(__name__)

webhook_bp = Blueprint("webhook_bp", __name__, url_prefix="/api/v1/webhooks")


@webhook_bp.route("/kinescope", methods=["POST"])
def kinescope_webhook():
    raw_body = request.get_data()
    signature = request.headers.get("X-Kinescope-Signature")
    if not kinescope_service.verify_webhook_signature(raw_body, signature):
        logger.warning("Kinescope webhook rejected: bad signature from %s", request.remote_addr)
        return api_error(E.UNAUTHORIZED, "Invalid webhook signature", status=401)

    payload = kinescope_service.parse_webhook_payload(raw_body)
    result = kinescope_service.sync_webhook_event(payload)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"ok": True, **result}), 200


@webhook_bp.route("/stripe", methods=["POST"])
def stripe_webhook():
    event = billing_service.construct_event(request.get_data(), request.headers.get("Stripe-Signature"))
    result = billing_service.handle_event(event)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(result), 200
