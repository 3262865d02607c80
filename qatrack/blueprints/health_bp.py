"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready  — simple 200 for load balancers
    GET /api/v1/health/live   — storage backend and assistant provider status
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

from qatrack import EXTENSION_KEY

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Simple readiness probe, always 200 if the app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Detailed liveness check with dependency status."""
    checks = {}
    overall = True
    store = current_app.extensions[EXTENSION_KEY]["store"]

    # ── Storage ──────────────────────────────────────────────────────
    storage = store.storage
    t0 = time.perf_counter()
    if storage.ping():
        checks["storage"] = {
            "status": "ok",
            "backend": storage.name,
            "latency_ms": round((time.perf_counter() - t0) * 1000, 1),
        }
    else:
        checks["storage"] = {"status": "error", "backend": storage.name}
        overall = False
        logger.error("Health check: storage backend %s failed", storage.name)

    # ── Store contents ───────────────────────────────────────────────
    checks["store"] = {
        "test_cases": len(store.test_cases),
        "test_suites": len(store.test_suites),
        "users": len(store.users),
    }

    # ── Assistant providers (configured keys only, no network call) ──
    configured = [
        name for name, key in (
            ("gemini", "GEMINI_API_KEY"),
            ("openai", "OPENAI_API_KEY"),
            ("anthropic", "ANTHROPIC_API_KEY"),
        ) if current_app.config.get(key)
    ]
    checks["assistant"] = {"providers": configured or ["local"]}

    checks["app"] = {
        "name": "QA Track",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }

    status_code = 200 if overall else 503
    return jsonify({"status": "ok" if overall else "degraded", "checks": checks}), status_code
