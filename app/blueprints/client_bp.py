"""
Client Blueprint — agency customers. OWNER/PM only.

  GET    /api/v1/clients
  POST   /api/v1/clients
  GET    /api/v1/clients/<id>
  PATCH  /api/v1/clients/<id>
  DELETE /api/v1/clients/<id>
"""

import logging

from flask import Blueprint, g, jsonify

from app.middleware.jwt_auth import login_required, owner_or_pm_required
from app.schemas import ClientCreate, ClientUpdate, load
from app.services import client_service
from app.utils.helpers import db_commit_or_error

logger = logging.getLogger(__name__)

client_bp = Blueprint("client_bp", __name__, url_prefix="/api/v1")


@client_bp.route("/clients", methods=["GET"])
@login_required
@owner_or_pm_required
def list_clients():
    clients = client_service.list_clients(tenant_id=g.tenant.id)
    return jsonify([c.to_dict() for c in clients]), 200


@client_bp.route("/clients", methods=["POST"])
@login_required
@owner_or_pm_required
def create_client():
    payload = load(ClientCreate)
    client = client_service.create_client(tenant_id=g.tenant.id, data=payload.data())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(client.to_dict()), 201


@client_bp.route("/clients/<int:client_id>", methods=["GET"])
@login_required
@owner_or_pm_required
def get_client(client_id):
    client = client_service.get_client(tenant_id=g.tenant.id, client_id=client_id)
    return jsonify(client.to_dict()), 200


@client_bp.route("/clients/<int:client_id>", methods=["PATCH"])
@login_required
@owner_or_pm_required
def update_client(client_id):
    payload = load(ClientUpdate)
    client = client_service.update_client(
        tenant_id=g.tenant.id, client_id=client_id, data=payload.data(partial=True),
    )
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(client.to_dict()), 200


@client_bp.route("/clients/<int:client_id>", methods=["DELETE"])
@login_required
@owner_or_pm_required
def delete_client(client_id):
    client_service.delete_client(tenant_id=g.tenant.id, client_id=client_id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True}), 200
