"""
Auth Blueprint — agency signup, login and current user.

  POST /api/v1/auth/signup   — new tenant + workspace + OWNER → JWT
  POST /api/v1/auth/login    — email + password + tenant slug → JWT
  GET  /api/v1/auth/me       — current user with tenant
"""

from flask import Blueprint, g, jsonify

from app.middleware.jwt_auth import login_required
from app.services import auth_service
from app.utils.helpers import db_commit_or_error, get_json_body

auth_bp = Blueprint("auth_bp", __name__, url_prefix="/api/v1/auth")


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/signup
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/signup", methods=["POST"])
def signup():
    """
    Register a new agency.

    Body: { "email", "password", "first_name", "last_name",
            "tenant_name", "tenant_slug" }
    """
    data = get_json_body()
    result = auth_service.signup(
        email=data.get("email"),
        password=data.get("password"),
        first_name=data.get("first_name"),
        last_name=data.get("last_name"),
        tenant_name=data.get("tenant_name"),
        tenant_slug=data.get("tenant_slug"),
    )
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(result), 201


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/login
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/login", methods=["POST"])
def login():
    """
    Body: { "email": "...", "password": "...", "tenant_slug": "..." }
    """
    data = get_json_body()
    result = auth_service.login(
        email=data.get("email"),
        password=data.get("password"),
        tenant_slug=data.get("tenant_slug"),
    )
    return jsonify(result), 200


# ═══════════════════════════════════════════════════════════════
# GET /api/v1/auth/me
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/me", methods=["GET"])
@login_required
def me():
    return jsonify(auth_service.get_current_user(g.jwt_user_id)), 200
