"""
Central error translator.

Registered once in ``create_app``. Blueprints let service exceptions
propagate and this module turns them into the standard
``{"error": ..., "code": ...}`` body built by ``api_error``.

Resolution order:
  1. AppError subclasses carry their own status (NotFoundError → 404, ...).
  2. Request-schema failures (pydantic) → 400 "Validation failed" + issues.
  3. werkzeug HTTPExceptions keep their status.
  4. Anything else is mapped by message substring; unknown → 500.
"""

import logging

from flask import current_app
from pydantic import ValidationError as SchemaValidationError
from werkzeug.exceptions import HTTPException

from app.core.exceptions import AppError
from app.models import db
from app.utils.errors import E, STATUS_CODES, api_error

logger = logging.getLogger(__name__)

# Checked in order; first hit wins
_MESSAGE_RULES = (
    (404, ("not found",)),
    (401, ("unauthorized", "invalid token")),
    (403, ("forbidden",)),
    (400, ("required", "invalid", "must be", "cannot be in the past")),
    (409, ("already exists",)),
)


def status_for_message(message: str) -> int:
    """Infer an HTTP status from an error message."""
    normalized = (message or "").lower()
    for status, needles in _MESSAGE_RULES:
        if any(needle in normalized for needle in needles):
            return status
    return 500


def schema_issues(exc: SchemaValidationError) -> list[dict]:
    """Flatten pydantic errors into ``[{"path", "message"}]``."""
    return [
        {
            "path": ".".join(str(part) for part in err.get("loc", ())),
            "message": err.get("msg", "Invalid value"),
        }
        for err in exc.errors()
    ]


def register_error_handlers(app):
    """Attach the translator to *app*."""

    @app.errorhandler(AppError)
    def _handle_app_error(exc):
        db.session.rollback()
        status = exc.status_code
        if status >= 500:
            logger.error("Service error: %s", exc)
        else:
            logger.info("Request rejected (%d): %s", status, exc)
        return api_error(
            STATUS_CODES.get(status, E.INTERNAL),
            exc.message,
            status=status,
            details=getattr(exc, "details", None),
        )

    @app.errorhandler(SchemaValidationError)
    def _handle_schema_error(exc):
        return api_error(
            E.VALIDATION_INVALID,
            "Validation failed",
            status=400,
            issues=schema_issues(exc),
        )

    @app.errorhandler(HTTPException)
    def _handle_http_error(exc):
        return api_error(
            STATUS_CODES.get(exc.code, E.INTERNAL),
            exc.description or exc.name,
            status=exc.code,
        )

    @app.errorhandler(Exception)
    def _handle_unexpected(exc):
        db.session.rollback()
        message = str(exc) or "Internal server error"
        status = status_for_message(message)
        if status == 500:
            logger.exception("Unhandled error")
            if not (current_app.debug or current_app.testing):
                message = "Internal server error"
        return api_error(STATUS_CODES.get(status, E.INTERNAL), message, status=status)
