"""
JWT Service — access token generation and verification.

Access token:  30 days (configurable via JWT_ACCESS_EXPIRES, seconds)
Algorithm:     HS256

Token payload:
{
    "sub": "<user_id>",
    "tenant_id": <tenant_id>,
    "role": "OWNER" | "PM" | "EDITOR" | "CLIENT_VIEWER",
    "type": "access",
    "iat": <issued_at>,
    "exp": <expires_at>,
    "jti": <unique_id>
}

``sub`` is encoded as a string (RFC 7519); ``decode_access_token`` hands
it back as an int.
"""

import hashlib
import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app


# ─── Defaults ────────────────────────────────────────────────
DEFAULT_ACCESS_EXPIRES = 30 * 24 * 3600   # 30 days
ALGORITHM = "HS256"


def _get_secret():
    """Get the JWT secret key from app config."""
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def _get_access_expires():
    return current_app.config.get("JWT_ACCESS_EXPIRES", DEFAULT_ACCESS_EXPIRES)


# ═══════════════════════════════════════════════════════════════
# Token Generation
# ═══════════════════════════════════════════════════════════════
def generate_access_token(user_id: int, tenant_id: int, role: str) -> str:
    """Generate a signed access token for *user_id*."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "tenant_id": tenant_id,
        "role": role,
        "type": "access",
        "iat": now,
        "exp": now + timedelta(seconds=_get_access_expires()),
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, _get_secret(), algorithm=ALGORITHM)


# ═══════════════════════════════════════════════════════════════
# Token Verification
# ═══════════════════════════════════════════════════════════════
def decode_access_token(token: str) -> dict:
    """
    Decode and verify an access token.

    Returns the payload dict on success, with ``sub`` converted to int.
    Raises jwt.exceptions on failure (ExpiredSignatureError, InvalidTokenError, ...).
    """
    payload = jwt.decode(
        token,
        _get_secret(),
        algorithms=[ALGORITHM],
        options={"require": ["sub", "exp", "tenant_id"]},
    )

    if payload.get("type") != "access":
        raise jwt.InvalidTokenError(f"Expected access token, got {payload.get('type')}")

    try:
        payload["sub"] = int(payload["sub"])
    except (TypeError, ValueError) as exc:
        raise jwt.InvalidTokenError("Invalid subject claim") from exc

    return payload


# ═══════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════
def hash_token(token: str) -> str:
    """SHA-256 hash of a token (log-safe fingerprint)."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
