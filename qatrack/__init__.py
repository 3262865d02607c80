"""
QA Track
Flask application factory.
"""

import logging
import os

from flask import Flask, jsonify, redirect, request, url_for
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from qatrack.config import config
from qatrack.core.exceptions import NotFoundError, ValidationError
from qatrack.middleware.logging_config import configure_logging
from qatrack.middleware.timing import init_request_timing
from qatrack.models import db
from qatrack.utils.errors import E, api_error

logger = logging.getLogger(__name__)

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit; assistant routes set their own
)

EXTENSION_KEY = "qatrack"


def _register_error_handlers(app):
    from qatrack.services.storage import StorageError

    @app.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, f"{error.resource} not found")

    @app.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_RULE, str(error), details=error.details)

    @app.errorhandler(StorageError)
    def _handle_storage(error: StorageError):
        logger.error("Storage backend failure: %s", error, exc_info=True)
        return api_error(E.STORAGE, "Changes could not be saved")

    @app.errorhandler(404)
    def not_found(e):
        if request.path.startswith("/api/"):
            return {"error": "Not found", "code": E.NOT_FOUND, "path": request.path}, 404
        return {"error": "Not found"}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "code": E.RATE_LIMITED, "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error", "code": E.INTERNAL}, 500


def create_app(config_name=None, *, storage=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.
        storage: Optional KeyValueStorage overriding STORAGE_BACKEND.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())

    # ── Logging (must be first) ──────────────────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    init_request_timing(app)
    app.config.setdefault("MAX_CONTENT_LENGTH", 2 * 1024 * 1024)  # 2 MB

    # ── Domain services ──────────────────────────────────────────────────
    from qatrack.ai.task_runner import AssistantTaskRunner
    from qatrack.models import storage as _storage_models  # noqa: F401  (registers StorageBlob)
    from qatrack.services.execution import ExecutionRegistry
    from qatrack.services.storage import build_storage
    from qatrack.services.test_store import TestStore

    with app.app_context():
        if storage is None:
            storage = build_storage(app)
        if storage.name == "sql":
            if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite:///") \
                    and ":memory:" not in app.config["SQLALCHEMY_DATABASE_URI"]:
                os.makedirs(app.instance_path, exist_ok=True)
            db.create_all()
        store = TestStore(storage)

    app.extensions[EXTENSION_KEY] = {
        "store": store,
        "executions": ExecutionRegistry(app.config.get("EXECUTION_IDLE_SECONDS", 12 * 60 * 60)),
        "task_runner": AssistantTaskRunner(app.config.get("ASSISTANT_WORKERS", 2),
                                           keep_finished=app.config.get("ASSISTANT_TASK_RETENTION", 200)),
    }
    logger.info("QA Track store ready: backend=%s cases=%d suites=%d users=%d",
                storage.name, len(store.test_cases), len(store.test_suites), len(store.users))

    # ── Blueprints ───────────────────────────────────────────────────────
    from qatrack.blueprints.ai_bp import ai_bp
    from qatrack.blueprints.dashboard_bp import dashboard_bp
    from qatrack.blueprints.execution_bp import execution_bp
    from qatrack.blueprints.health_bp import health_bp
    from qatrack.blueprints.testing_bp import testing_bp

    app.register_blueprint(testing_bp)
    app.register_blueprint(execution_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(ai_bp)
    app.register_blueprint(health_bp)

    # ── Index, suite page & deep links ───────────────────────────────────
    @app.route("/")
    def index():
        from qatrack.blueprints import get_store
        from qatrack.services.deep_link import SUITE_PARAM, resolve_suite_link, strip_suite_param

        if SUITE_PARAM in request.args:
            suite_id = resolve_suite_link(get_store(), request.args)
            if suite_id:
                return redirect(url_for("suite_page", suite_id=suite_id))
            return redirect(strip_suite_param(request.full_path.rstrip("?")))
        return jsonify({
            "name": "QA Track",
            "api": "/api/v1",
            "dashboard": url_for("dashboard_bp.dashboard"),
            "testSuites": url_for("testing_bp.list_test_suites"),
        })

    @app.route("/suites/<suite_id>")
    def suite_page(suite_id):
        from qatrack.blueprints import get_store
        from qatrack.blueprints.testing_bp import suite_detail

        store = get_store()
        suite = store.get_test_suite(suite_id)
        if suite is None:
            raise NotFoundError(resource="TestSuite", resource_id=suite_id)
        return jsonify(suite_detail(store, suite))

    _register_error_handlers(app)

    return app
