"""
QA Track
Dashboard Blueprint — status statistics and test-runner selection.

Endpoints:
    GET /api/v1/dashboard                 — Counters, pass rate, recent cases (?role=qa|uat|bat)
    GET /api/v1/runner/suites             — Visible suites with case counts
    GET /api/v1/runner/cases              — Cases of selected suites
                                            (?suite_ids=a,b&role=&executor_id=&sort=&direction=)
"""

import logging

from flask import Blueprint, jsonify, request

from qatrack.blueprints import get_store
from qatrack.services import dashboard_service

logger = logging.getLogger(__name__)

dashboard_bp = Blueprint("dashboard_bp", __name__, url_prefix="/api/v1")


@dashboard_bp.route("/dashboard", methods=["GET"])
def dashboard():
    return jsonify(dashboard_service.get_dashboard(get_store(), request.args.get("role", "qa")))


@dashboard_bp.route("/runner/suites", methods=["GET"])
def runner_suites():
    items = dashboard_service.suite_summaries(get_store())
    return jsonify({"items": items, "total": len(items)})


@dashboard_bp.route("/runner/cases", methods=["GET"])
def runner_cases():
    raw = request.args.get("suite_ids", "")
    suite_ids = [s.strip() for s in raw.split(",") if s.strip()]
    overview = dashboard_service.get_run_overview(
        get_store(),
        suite_ids,
        role=request.args.get("role", "qa"),
        executor_id=request.args.get("executor_id") or None,
        sort_key=request.args.get("sort") or None,
        direction=request.args.get("direction") or None,
    )
    return jsonify(overview)
