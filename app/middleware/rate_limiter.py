"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in app/__init__.py with no default limits;
this module applies granular limits per route category.

Usage:
    from app.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Auth endpoints:   10/minute  (credential stuffing)
        - AI endpoints:     20/minute  (LLM calls are expensive)
        - Public portal:    60/minute  (unauthenticated)
        - Other writes:     120/minute
        - Health/webhooks:  exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("auth_bp")
    if bp:
        limiter.limit("10/minute")(bp)

    for bp_name in ("ai_bp", "task_bp", "scope_bp"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit("20/minute", methods=["POST"])(bp)

    bp = app.blueprints.get("public_bp")
    if bp:
        limiter.limit("60/minute")(bp)

    for bp_name in ("client_bp", "project_bp", "version_bp", "feedback_bp", "team_bp", "upload_bp"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit("120/minute")(bp)

    for bp_name in ("health_bp", "webhook_bp"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured — auth: 10/min, AI: 20/min, portal: 60/min, api: 120/min"
    )
