"""
Tenant Context Middleware — Enforces tenant isolation on API requests.

When a JWT-authenticated user makes a request:
  1. g.jwt_tenant_id / g.jwt_user_id are already set by jwt_auth middleware
  2. This middleware verifies the tenant exists and is active
  3. It verifies the user still exists, is active and belongs to that tenant
  4. Sets g.tenant and g.current_user for downstream handlers

A token whose tenant or user is gone is treated as anonymous (the JWT
context is cleared), so ``@login_required`` answers 401.

Chain order:
  jwt_auth.py  →  tenant_context.py  →  route handler
"""

import logging

from flask import g, request

from app.models import db
from app.models.auth import Tenant, User

logger = logging.getLogger(__name__)


def _clear_context():
    g.jwt_user_id = None
    g.jwt_tenant_id = None
    g.jwt_role = None
    g.jwt_invalid = True
    g.tenant = None
    g.current_user = None


def init_tenant_context(app):
    """Register tenant context middleware as a before_request hook."""

    @app.before_request
    def _tenant_context():
        g.tenant = None
        g.current_user = None

        if not request.path.startswith("/api/v1/"):
            return None

        tenant_id = getattr(g, "jwt_tenant_id", None)
        user_id = getattr(g, "jwt_user_id", None)
        if tenant_id is None or user_id is None:
            return None

        tenant = db.session.get(Tenant, tenant_id)
        if tenant is None or not tenant.is_active:
            logger.warning("JWT tenant_id %s not found or deactivated", tenant_id)
            _clear_context()
            return None

        user = db.session.get(User, user_id)
        if user is None or user.tenant_id != tenant.id or not user.is_active:
            logger.warning("JWT user %s not valid for tenant %s", user_id, tenant_id)
            _clear_context()
            return None

        g.tenant = tenant
        g.current_user = user
        # Role is read from the row so a role change applies immediately
        g.jwt_role = user.role
        return None

    logger.info("Tenant context middleware installed")
