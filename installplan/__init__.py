"""
Installation Planning Service
Flask Application Factory.

Usage:
    from installplan import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from installplan.config import config
from installplan.models import db
from installplan.middleware.logging_config import configure_logging
from installplan.middleware.rate_limiter import init_rate_limits
from installplan.middleware.timing import init_request_timing
from installplan.utils.errors import E, api_error

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
    default_limits=[],                     # per-blueprint limits only
    storage_uri=os.getenv("REDIS_URL", "memory://"),
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
    # Instantiated so ProductionConfig can refuse to start without its env vars
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

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from installplan.models import logistics as _logistics_models    # noqa: F401
    from installplan.models import scheduling as _scheduling_models  # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    with app.app_context():
        if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite:///") \
                and ":memory:" not in app.config["SQLALCHEMY_DATABASE_URI"]:
            os.makedirs(os.path.dirname(db.engine.url.database) or ".", exist_ok=True)
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except Exception as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from installplan.blueprints.dependency_bp import dependency_bp
    from installplan.blueprints.evm_bp import evm_bp
    from installplan.blueprints.health_bp import health_bp
    from installplan.blueprints.schedule_bp import schedule_bp
    from installplan.blueprints.scheduler_bp import scheduler_bp
    from installplan.blueprints.work_package_bp import work_package_bp

    app.register_blueprint(dependency_bp)
    app.register_blueprint(work_package_bp)
    app.register_blueprint(schedule_bp)
    app.register_blueprint(evm_bp)
    app.register_blueprint(scheduler_bp)
    app.register_blueprint(health_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("snapshot-evm")
    def snapshot_evm_cmd():
        """Capture today's EVM snapshots for every open project."""
        from installplan.services.snapshot import snapshot_daily_evm
        report = snapshot_daily_evm()
        logger.info("EVM snapshot report: %s", report)
        click.echo(
            f"{report['snapshot_date']}: {report['projects_processed']} project(s), "
            f"{len(report['failures'])} failure(s)"
        )

    @app.cli.command("aggregate-work-packages")
    @click.argument("project_number")
    def aggregate_work_packages_cmd(project_number):
        """Rebuild the work packages of PROJECT_NUMBER from its supply items."""
        from installplan.services.work_package_service import aggregate_work_packages
        result = aggregate_work_packages(project_number)
        click.echo(
            f"{project_number}: created={result['created']} "
            f"updated={result['updated']} total={result['total']}"
        )

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return api_error(E.NOT_FOUND, "Not found", details={"path": request.path})

    @app.errorhandler(405)
    def method_not_allowed(e):
        return api_error(E.VALIDATION_INVALID, "Method not allowed", status=405)

    @app.errorhandler(429)
    def rate_limited(e):
        return api_error(E.RATE_LIMITED, "Too many requests",
                         details={"retry_after": e.description})

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    # ── Scheduler initialization (import jobs to register them) ──────────
    import importlib
    importlib.import_module("installplan.services.scheduled_jobs")  # registers @register_job handlers
    from installplan.services.scheduler_service import SchedulerService
    SchedulerService.init_app(app)
    try:
        SchedulerService.ensure_jobs_registered()
    except Exception as e:
        app.logger.warning("Scheduled job registration failed: %s", e)

    return app
