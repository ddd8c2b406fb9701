"""
Content Management Backend
Approval workflow engine: Flask application factory.

Usage:
    from cms import create_app
    app = create_app()           # APP_ENV or "development"
    app = create_app("testing")
"""

import logging
import os

from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event
from sqlalchemy.exc import SQLAlchemyError

from cms.config import config
from cms.middleware.jwt_auth import init_jwt_middleware
from cms.middleware.logging_config import configure_logging
from cms.middleware.rate_limiter import init_rate_limits
from cms.middleware.timing import init_request_timing
from cms.models import db
from cms.utils.errors import E, api_error

logger = logging.getLogger(__name__)


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """SQLite ignores ON DELETE CASCADE unless foreign keys are switched on."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
# Storage comes from RATELIMIT_STORAGE_URI; limits are attached per blueprint
limiter = Limiter(key_func=get_remote_address, default_limits=[])


def _init_extensions(app):
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)

    origins = app.config.get("CORS_ORIGINS", "*")
    if origins and origins != "*":
        CORS(app, origins=[o.strip() for o in origins.split(",") if o.strip()])
    else:
        CORS(app)


def _create_tables(app):
    # Models must be imported before create_all and Alembic autogenerate
    from cms.models import auth, notification, workflow  # noqa: F401

    with app.app_context():
        try:
            db.create_all()
        except SQLAlchemyError as exc:
            logger.warning("db.create_all() failed: %s", exc)


def _register_blueprints(app):
    from cms.blueprints.health_bp import health_bp
    from cms.blueprints.notification_bp import notification_bp
    from cms.blueprints.workflow_bp import workflow_bp
    from cms.blueprints.workflow_config_bp import workflow_config_bp

    for bp in (health_bp, workflow_bp, workflow_config_bp, notification_bp):
        app.register_blueprint(bp)


def _register_app_error_handlers(app):
    """JSON envelopes for requests that never reach a blueprint."""

    @app.errorhandler(404)
    def not_found(e):
        return api_error(E.NOT_FOUND, f"No route for {request.path}")

    @app.errorhandler(405)
    def method_not_allowed(e):
        return api_error(E.METHOD_NOT_ALLOWED, f"{request.method} not allowed on {request.path}")

    @app.errorhandler(429)
    def rate_limited(e):
        return api_error(E.RATE_LIMITED, "Too many requests", details={"limit": e.description})

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")


def create_app(config_name=None):
    """Build the application for ``config_name`` (development, testing, production)."""
    config_name = config_name or os.getenv("APP_ENV", "development")
    config_cls = config[config_name]
    if hasattr(config_cls, "validate"):
        config_cls.validate()

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_cls)
    os.makedirs(app.instance_path, exist_ok=True)

    configure_logging(app)
    _init_extensions(app)
    init_request_timing(app)
    init_jwt_middleware(app)
    _create_tables(app)
    _register_blueprints(app)
    _register_app_error_handlers(app)
    init_rate_limits(app, limiter)

    logger.info("Workflow engine ready (env=%s)", config_name)
    return app
