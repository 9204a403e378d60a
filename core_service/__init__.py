"""
Use Case Workflow Core Service
Flask Application Factory.

Usage:
    from core_service import create_app
    app = create_app()           # APP_ENV, or "development" if unset
    app = create_app("testing")  # explicit config

Hook order matters: request timing assigns the request id, caller
resolution fills g.acting_user, and only then does the rate limiter run so
limits can be keyed per user.
"""

import logging
import os

from flask import Flask, abort, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from core_service.config import config
from core_service.models import db
from core_service.middleware.jwt_auth import init_jwt_middleware
from core_service.middleware.logging_config import configure_logging
from core_service.middleware.rate_limiter import init_rate_limits
from core_service.middleware.security_headers import init_security_headers
from core_service.middleware.timing import init_request_timing
from core_service.utils.errors import E, error_body

logger = logging.getLogger(__name__)

migrate = Migrate()
# Storage comes from RATELIMIT_STORAGE_URI in the app config
limiter = Limiter(key_func=get_remote_address, default_limits=[])

_BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """SQLite ignores foreign keys unless asked per connection."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def _init_extensions(app):
    db.init_app(app)
    migrate.init_app(app, db)
    origins = app.config.get("CORS_ORIGINS", "*")
    if origins and origins != "*":
        CORS(app, origins=[o.strip() for o in origins.split(",") if o.strip()])
    else:
        CORS(app)


def _init_request_guards(app):
    app.config.setdefault("MAX_CONTENT_LENGTH", 1 * 1024 * 1024)

    @app.before_request
    def _require_json_body():
        if request.method in _BODY_METHODS and request.path.startswith("/api/"):
            if request.data and "json" not in (request.content_type or ""):
                abort(415, description="Content-Type must be application/json")


def _create_tables(app):
    from core_service.models import plant as _plant_models        # noqa: F401
    from core_service.models import use_case as _use_case_models  # noqa: F401

    # Local convenience only; deployed schemas are managed by `flask db upgrade`
    with app.app_context():
        try:
            db.create_all()
        except Exception as exc:
            app.logger.warning("db.create_all() failed: %s", exc)


def _register_blueprints(app):
    from core_service.blueprints.plant_bp import plant_bp
    from core_service.blueprints.use_case_bp import use_case_bp

    app.register_blueprint(use_case_bp)
    app.register_blueprint(plant_bp)

    @app.route("/api/v1/health")
    def health():
        return {"status": "ok", "app": "Use Case Workflow Core Service"}


def _register_error_handlers(app):
    @app.errorhandler(404)
    def not_found(e):
        return error_body(E.NOT_FOUND, f"No route for {request.path}"), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return error_body(E.VALIDATION_INVALID, f"{request.method} not allowed on {request.path}"), 405

    @app.errorhandler(413)
    def payload_too_large(e):
        return error_body(E.VALIDATION_INVALID, "Request body too large"), 413

    @app.errorhandler(415)
    def unsupported_media_type(e):
        return error_body(E.VALIDATION_INVALID, e.description), 415

    @app.errorhandler(429)
    def rate_limited(e):
        return error_body("ERR_RATE_LIMITED", "Too many requests", {"limit": e.description}), 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("Unhandled error on %s %s", request.method, request.path, exc_info=True)
        return error_body(E.INTERNAL, "Internal server error"), 500


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: "development", "testing" or "production".
                     Defaults to the APP_ENV env var, or "development".

    Returns:
        Configured Flask application instance.
    """
    config_name = config_name or os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    # Instantiated so ProductionConfig can refuse to start without its env vars
    app.config.from_object(config[config_name]())
    os.makedirs(app.instance_path, exist_ok=True)

    configure_logging(app)
    _init_extensions(app)

    init_request_timing(app)
    init_jwt_middleware(app)
    limiter.init_app(app)
    init_security_headers(app)
    _init_request_guards(app)

    _create_tables(app)
    _register_blueprints(app)
    _register_error_handlers(app)

    # Needs the registered blueprints
    init_rate_limits(app, limiter)

    app.logger.info("Application created config=%s", config_name)
    return app
