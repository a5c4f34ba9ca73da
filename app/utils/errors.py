"""Standardised API error responses.

Usage
-----
    from app.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Project not found")
    return api_error(E.VALIDATION_REQUIRED, "project_id is required")
    return api_error(E.VALIDATION_INVALID, "Validation failed", issues=[...])
"""

from __future__ import annotations

from flask import jsonify


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants (``ERR_`` prefix)."""

    # Validation – HTTP 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # Auth – HTTP 401 / 403
    UNAUTHORIZED = "ERR_UNAUTHORIZED"
    FORBIDDEN = "ERR_FORBIDDEN"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict / duplicate – HTTP 409
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    CONFLICT_STATE = "ERR_CONFLICT_STATE"

    # Payload too large – HTTP 413
    PAYLOAD_TOO_LARGE = "ERR_PAYLOAD_TOO_LARGE"

    # Rate limit – HTTP 429
    RATE_LIMITED = "ERR_RATE_LIMITED"

    # Server – HTTP 500 / 502 / 503
    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"
    EXTERNAL_SERVICE = "ERR_EXTERNAL_SERVICE"
    SERVICE_UNAVAILABLE = "ERR_SERVICE_UNAVAILABLE"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.UNAUTHORIZED: 401,
    E.FORBIDDEN: 403,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.CONFLICT_STATE: 409,
    E.PAYLOAD_TOO_LARGE: 413,
    E.RATE_LIMITED: 429,
    E.DATABASE: 500,
    E.INTERNAL: 500,
    E.EXTERNAL_SERVICE: 502,
    E.SERVICE_UNAVAILABLE: 503,
}

# Reverse lookup used by the central error translator
STATUS_CODES: dict[int, str] = {
    400: E.VALIDATION_INVALID,
    401: E.UNAUTHORIZED,
    403: E.FORBIDDEN,
    404: E.NOT_FOUND,
    409: E.CONFLICT_DUPLICATE,
    413: E.PAYLOAD_TOO_LARGE,
    429: E.RATE_LIMITED,
    500: E.INTERNAL,
    502: E.EXTERNAL_SERVICE,
    503: E.SERVICE_UNAVAILABLE,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
    issues: list | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (field errors, upstream status, ...).
    issues : list, optional
        Per-field request-schema problems, ``[{"path": ..., "message": ...}]``.

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details
    if issues is not None:
        body["issues"] = issues

    return jsonify(body), http_status
