"""
JWT Auth Middleware — Parses JWT from Authorization header, sets g.jwt_*.

Runs on every /api/v1 request and never rejects on its own: a missing or
invalid token simply leaves g.jwt_user_id as None. Route handlers opt in
to enforcement with ``@login_required`` (401 "Unauthorized") and
``@owner_or_pm_required`` (403 "Forbidden").

Context set:
    g.jwt_user_id    int | None
    g.jwt_tenant_id  int | None
    g.jwt_role       str | None
"""

import functools
import logging

import jwt as pyjwt
from flask import g, request

from app.models.auth import MANAGER_ROLES
from app.services.jwt_service import decode_access_token, hash_token
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# Paths that skip JWT parsing entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/auth/login",
    "/api/v1/auth/signup",
    "/api/v1/health",
    "/api/v1/webhooks/",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.jwt_user_id = None
        g.jwt_tenant_id = None
        g.jwt_role = None
        g.jwt_invalid = False

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return

        token = auth_header[7:].strip()
        if not token:
            return

        try:
            payload = decode_access_token(token)
        except pyjwt.ExpiredSignatureError:
            logger.info("Expired JWT presented (fp=%s)", hash_token(token)[:12])
            g.jwt_invalid = True
            return
        except pyjwt.InvalidTokenError:
            logger.info("Invalid JWT presented (fp=%s)", hash_token(token)[:12])
            g.jwt_invalid = True
            return

        g.jwt_user_id = payload["sub"]
        g.jwt_tenant_id = payload.get("tenant_id")
        g.jwt_role = payload.get("role")


def login_required(f):
    """Reject the request with 401 unless a valid JWT user is present."""

    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if getattr(g, "jwt_user_id", None) is None or getattr(g, "tenant", None) is None:
            message = "Invalid token" if getattr(g, "jwt_invalid", False) else "Unauthorized"
            return api_error(E.UNAUTHORIZED, message, status=401)
        return f(*args, **kwargs)

    return decorated


def owner_or_pm_required(f):
    """Reject the request with 403 unless the JWT role is OWNER or PM.

    Apply below ``@login_required`` so anonymous callers still get 401.
    """

    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if getattr(g, "jwt_role", None) not in MANAGER_ROLES:
            logger.warning(
                "User %s denied: role %s on %s",
                getattr(g, "jwt_user_id", None), getattr(g, "jwt_role", None), f.__name__,
            )
            return api_error(E.FORBIDDEN, "Forbidden", status=403)
        return f(*args, **kwargs)

    return decorated
