"""Shared utility functions used by services and blueprints.

parse_datetime:      ISO-8601 string → aware UTC datetime (raises on bad input)
as_utc:              normalise naive datetimes read back from SQLite
db_commit_or_error:  commit with a ready-to-return error tuple on failure
get_json_body:       request JSON as a dict, never None
"""
import logging
from datetime import date, datetime, time, timezone

from flask import jsonify, request

from app.models import db

logger = logging.getLogger(__name__)


def as_utc(value):
    """Return *value* as an aware UTC datetime (naive values are taken as UTC)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(value):
    """Parse an ISO date or datetime string into an aware UTC datetime.

    Returns None for empty input. Raises ValueError on anything unparsable.
    Supports:
    - YYYY-MM-DD (start of day, UTC)
    - YYYY-MM-DDTHH:MM:SS[.ffffff][+HH:MM|Z]
    """
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return as_utc(datetime.fromisoformat(text))
    except ValueError as exc:
        raise ValueError(f"Invalid date: {value}") from exc


def get_json_body():
    """Return the request JSON body as a dict (empty dict when absent/invalid)."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


# ── Database commit helper ───────────────────────────────────────────────────

def db_commit_or_error():
    """Commit the current SQLAlchemy session, returning an error response on failure.

    Returns:
        None on success.
        (response, status_code) tuple on failure — ready for ``return``.

    Usage::

        err = db_commit_or_error()
        if err:
            return err

    IntegrityError → 409 (duplicate / constraint violation)
    OperationalError → 500 (connection / lock issues)
    """
    from sqlalchemy.exc import IntegrityError, OperationalError

    try:
        db.session.commit()
        return None
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error on commit: %s", exc.orig)
        return jsonify({"error": "Resource already exists", "code": "ERR_CONFLICT_DUPLICATE"}), 409
    except OperationalError:
        db.session.rollback()
        logger.exception("Database operational error on commit")
        return jsonify({"error": "Database error", "code": "ERR_DATABASE"}), 500
