"""
QaHub
Flask Application Factory.

Usage:
    from qahub import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask, abort, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from qahub.config import config
from qahub.events import domain_events, register_read_model_listeners
from qahub.middleware.jwt_auth import init_jwt_middleware
from qahub.middleware.logging_config import configure_logging
from qahub.middleware.rate_limiter import init_rate_limits
from qahub.middleware.tenant_context import init_tenant_context
from qahub.middleware.timing import init_request_timing
from qahub.models import db
from qahub.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement (global engine event) ─────────────────────────
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
    default_limits=[],                     # per-blueprint limits only
    storage_uri=os.getenv("REDIS_URL") or "memory://",
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
    # Instantiate so ProductionConfig can refuse to start without its env vars
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

    # ── Request timing, JWT/PAT auth, tenant context ─────────────────────
    init_request_timing(app)
    init_jwt_middleware(app)
    init_tenant_context(app)

    # ── Request guards (input length + Content-Type) ─────────────────────
    app.config.setdefault("MAX_CONTENT_LENGTH", 12 * 1024 * 1024)

    @app.before_request
    def _guard_request():
        max_len = app.config.get("MAX_CONTENT_LENGTH")
        if max_len and request.content_length and request.content_length > max_len:
            abort(413, description="Request body too large")
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            ct = request.content_type or ""
            if request.content_length and "json" not in ct and "multipart/form-data" not in ct:
                abort(415, description="Content-Type must be application/json")

    # ── Import all models so Alembic can detect them ─────────────────────
    from qahub.models import base as _base_models                # noqa: F401
    from qahub.models import auth as _auth_models                # noqa: F401
    from qahub.models import project as _project_models          # noqa: F401
    from qahub.models import testing as _testing_models          # noqa: F401
    from qahub.models import bug_budget as _bug_budget_models    # noqa: F401
    from qahub.models import notification as _notification_models  # noqa: F401
    from qahub.models import audit as _audit_models              # noqa: F401
    from qahub.models import admin as _admin_models              # noqa: F401
    from qahub.models import editor as _editor_models            # noqa: F401
    from qahub.models import prd_review as _prd_review_models    # noqa: F401
    from qahub.models import analytics as _analytics_models      # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    with app.app_context():
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except Exception as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from qahub.blueprints.admin_bp import admin_bp
    from qahub.blueprints.analytics_bp import analytics_bp
    from qahub.blueprints.audit_bp import audit_bp
    from qahub.blueprints.auth_bp import auth_bp
    from qahub.blueprints.bug_budget_bp import bug_budget_bp
    from qahub.blueprints.comment_bp import comment_bp
    from qahub.blueprints.editor_bp import editor_bp
    from qahub.blueprints.health_bp import health_bp
    from qahub.blueprints.notification_bp import notification_bp
    from qahub.blueprints.prd_review_bp import prd_review_bp
    from qahub.blueprints.project_bp import project_bp
    from qahub.blueprints.rbac_bp import rbac_bp
    from qahub.blueprints.read_model_bp import read_model_bp
    from qahub.blueprints.test_run_bp import test_run_bp
    from qahub.blueprints.testing_bp import testing_bp
    from qahub.blueprints.token_bp import token_bp
    from qahub.blueprints.user_bp import user_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(user_bp)
    app.register_blueprint(token_bp)
    app.register_blueprint(rbac_bp)
    app.register_blueprint(project_bp)
    app.register_blueprint(testing_bp)
    app.register_blueprint(test_run_bp)
    app.register_blueprint(comment_bp)
    app.register_blueprint(editor_bp)
    app.register_blueprint(bug_budget_bp)
    app.register_blueprint(notification_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(audit_bp)
    app.register_blueprint(read_model_bp)
    app.register_blueprint(prd_review_bp)
    app.register_blueprint(analytics_bp)

    # ── Error handlers (JSON envelope for every failure) ─────────────────
    register_error_handlers(app)

    # ── Domain event listeners (read models + audit trail) ───────────────
    register_read_model_listeners(domain_events)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed")
    @click.option("--admin-email", default=None, help="Admin login (defaults to SEED_ADMIN_EMAIL)")
    @click.option("--admin-password", default=None, help="Admin password (defaults to SEED_ADMIN_PASSWORD)")
    def seed_cmd(admin_email, admin_password):
        """Create the default tenant, an admin user and a demo project."""
        from qahub.services.seed_service import seed_defaults
        result = seed_defaults(admin_email=admin_email, admin_password=admin_password)
        logger.info("Seed completed: %s", result)
        click.echo(f"Seeded: {result}")

    @app.cli.command("update-test-runs-view")
    @click.option("--days", type=int, default=None, help="Only runs updated in the last N days")
    @click.option("--test-run-id", type=int, default=None, help="Rebuild a single run")
    def update_test_runs_view_cmd(days, test_run_id):
        """Rebuild the denormalized test_runs_view rows."""
        from qahub.services import test_runs_view_service
        if test_run_id:
            updated = 1 if test_runs_view_service.update_test_runs_view(test_run_id) is not None else 0
        elif days:
            updated = test_runs_view_service.update_recent_test_runs_views(days)
        else:
            updated = test_runs_view_service.update_all_test_runs_views()
        db.session.commit()
        click.echo(f"Updated {updated} test run view row(s).")

    @app.cli.command("populate-analytics")
    @click.option("--days", type=int, default=1, show_default=True, help="Rebuild the last N days")
    @click.option("--yesterday", is_flag=True, default=False, help="Rebuild yesterday only")
    @click.option("--start-date", default=None, help="YYYY-MM-DD")
    @click.option("--end-date", default=None, help="YYYY-MM-DD")
    def populate_analytics_cmd(days, yesterday, start_date, end_date):
        """Rebuild daily analytics summaries for every tenant."""
        from qahub.services import analytics_service
        day_list = analytics_service.resolve_days(
            days=days, yesterday=yesterday, start_date=start_date, end_date=end_date,
        )
        counts = analytics_service.populate_analytics(day_list)
        click.echo(f"Analytics populated: {counts}")

    # ── Rate limiting (per-blueprint) ────────────────────────────────────
    init_rate_limits(app, limiter)

    return app
