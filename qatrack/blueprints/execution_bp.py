"""
QA Track
Execution Blueprint — drive one test case run across requests.

Endpoints:
    POST   /api/v1/executions                        — Start {testCaseId, role?, executorId?}
    GET    /api/v1/executions/<sid>                  — Session state
    POST   /api/v1/executions/<sid>/step-results     — {stepId, result: pass|fail}
    POST   /api/v1/executions/<sid>/navigate         — {index} | {direction: previous|next}
    PUT    /api/v1/executions/<sid>/status           — {status} explicit override
    POST   /api/v1/executions/<sid>/commit           — Save verdict to the test case
    DELETE /api/v1/executions/<sid>                  — Discard without saving
"""

import logging

from flask import Blueprint, jsonify

from qatrack.blueprints import get_executions, get_store
from qatrack.utils.errors import E, api_error
from qatrack.utils.helpers import json_object_or_400

logger = logging.getLogger(__name__)

execution_bp = Blueprint("execution_bp", __name__, url_prefix="/api/v1/executions")


@execution_bp.route("", methods=["POST"])
def start_execution():
    data, err = json_object_or_400()
    if err:
        return err
    case_id = data.get("testCaseId")
    if not case_id:
        return api_error(E.VALIDATION_REQUIRED, "testCaseId is required")
    session = get_executions().start(
        get_store(), case_id, data.get("role") or "qa", data.get("executorId") or None,
    )
    return jsonify(session.to_dict()), 201


@execution_bp.route("/<session_id>", methods=["GET"])
def get_execution(session_id):
    return jsonify(get_executions().get(session_id).to_dict())


@execution_bp.route("/<session_id>/step-results", methods=["POST"])
def record_step_result(session_id):
    data, err = json_object_or_400()
    if err:
        return err
    if not data.get("stepId") or not data.get("result"):
        return api_error(E.VALIDATION_REQUIRED, "stepId and result are required")
    session = get_executions().get(session_id)
    session.record_step_result(data["stepId"], str(data["result"]))
    return jsonify(session.to_dict())


@execution_bp.route("/<session_id>/navigate", methods=["POST"])
def navigate_execution(session_id):
    data, err = json_object_or_400()
    if err:
        return err
    session = get_executions().get(session_id)
    direction = data.get("direction")
    if direction == "previous":
        session.previous()
    elif direction == "next":
        session.next()
    elif "index" in data:
        session.navigate(data["index"])
    else:
        return api_error(E.VALIDATION_REQUIRED, "index or direction (previous|next) is required")
    return jsonify(session.to_dict())


@execution_bp.route("/<session_id>/status", methods=["PUT"])
def set_execution_status(session_id):
    data, err = json_object_or_400()
    if err:
        return err
    if not data.get("status"):
        return api_error(E.VALIDATION_REQUIRED, "status is required")
    session = get_executions().get(session_id)
    session.set_overall_status(data["status"])
    return jsonify(session.to_dict())


@execution_bp.route("/<session_id>/commit", methods=["POST"])
def commit_execution(session_id):
    """Close the session and write its verdict into the role's status field."""
    store = get_store()
    session, result = get_executions().commit(store, session_id)
    tc = store.get_test_case(result.test_case_id)
    return jsonify({
        "session": session.to_dict(),
        "testCaseId": result.test_case_id,
        "overallStatus": result.overall_status,
        "testCase": tc.to_dict() if tc else None,
    })


@execution_bp.route("/<session_id>", methods=["DELETE"])
def discard_execution(session_id):
    executions = get_executions()
    executions.get(session_id)
    executions.discard(session_id)
    return jsonify({"message": "Execution discarded"}), 200
