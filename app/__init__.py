"""
Video Production CRM
Flask Application Factory.

Usage:
    from app import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, abort, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from app.config import config
from app.core.error_handlers import register_error_handlers
from app.jobs.celery_app import init_celery
from app.middleware.jwt_auth import init_jwt_middleware
from app.middleware.logging_config import configure_logging
from app.middleware.rate_limiter import init_rate_limits
from app.middleware.security_headers import init_security_headers
from app.middleware.tenant_context import init_tenant_context
from app.middleware.timing import init_request_timing
from app.models import db

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit, apply per-blueprint
    storage_uri=os.getenv("REDIS_URL", "memory://"),  # Redis in production, memory for dev
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    # Instantiate so ProductionConfig can refuse to boot without its env vars
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Security headers (CSP, HSTS, X-Frame-Options, etc.) ─────────────
    init_security_headers(app)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── JWT auth middleware (sets g.jwt_*) ───────────────────────────────
    init_jwt_middleware(app)

    # ── Tenant context middleware (sets g.tenant from JWT) ───────────────
    init_tenant_context(app)

    # ── Request guards (Content-Type) ────────────────────────────────────
    @app.before_request
    def _guard_request():
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            # Webhook bodies are verified byte-for-byte, whatever their type
            if request.path.startswith("/api/v1/webhooks/"):
                return None
            ct = request.content_type or ""
            if request.data and "json" not in ct:
                abort(415, description="Content-Type must be application/json")
        return None

    # ── Import all models so Alembic can detect them ─────────────────────
    from app.models import asset as _asset_models               # noqa: F401
    from app.models import auth as _auth_models                 # noqa: F401
    from app.models import client as _client_models             # noqa: F401
    from app.models import feedback as _feedback_models         # noqa: F401
    from app.models import notification as _notification_models  # noqa: F401
    from app.models import project as _project_models           # noqa: F401
    from app.models import scope as _scope_models               # noqa: F401
    from app.models import subscription as _subscription_models  # noqa: F401
    from app.models import task as _task_models                 # noqa: F401

    # ── Auto-create tables outside production (migrations own prod) ──────
    if config_name != "production":
        with app.app_context():
            db.create_all()

    # ── Blueprints ───────────────────────────────────────────────────────
    from app.blueprints.ai_bp import ai_bp
    from app.blueprints.auth_bp import auth_bp
    from app.blueprints.client_bp import client_bp
    from app.blueprints.feedback_bp import feedback_bp
    from app.blueprints.health_bp import health_bp
    from app.blueprints.notification_bp import notification_bp
    from app.blueprints.project_bp import project_bp
    from app.blueprints.public_bp import public_bp
    from app.blueprints.scope_bp import scope_bp
    from app.blueprints.task_bp import task_bp
    from app.blueprints.team_bp import team_bp
    from app.blueprints.upload_bp import upload_bp
    from app.blueprints.version_bp import version_bp
    from app.blueprints.webhook_bp import webhook_bp
    from app.blueprints.workflow_bp import workflow_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(client_bp)
    app.register_blueprint(project_bp)
    app.register_blueprint(version_bp)
    app.register_blueprint(workflow_bp)
    app.register_blueprint(feedback_bp)
    app.register_blueprint(public_bp)
    app.register_blueprint(task_bp)
    app.register_blueprint(scope_bp)
    app.register_blueprint(ai_bp)
    app.register_blueprint(team_bp)
    app.register_blueprint(upload_bp)
    app.register_blueprint(webhook_bp)
    app.register_blueprint(notification_bp)
    app.register_blueprint(health_bp)

    init_rate_limits(app, limiter)

    # ── Error handlers ───────────────────────────────────────────────────
    register_error_handlers(app)

    # ── Background jobs ──────────────────────────────────────────────────
    init_celery(app)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("check-workflows")
    def check_workflows_cmd():
        """Run the overdue-stage sweep once, without a Celery worker."""
        from app.jobs.handlers import handle_check_workflows
        result = handle_check_workflows()
        logger.info("Workflow check: %s", result)

    # ── Health check (kept for load balancers; detailed version at /health/live) ──
    @app.route("/api/v1/health")
    def health():
        return {"status": "ok", "app": app.config["APP_NAME"]}

    return app
