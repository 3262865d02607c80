"""
QA Track
Testing Blueprint — test case, test suite and user CRUD.

Endpoints:
    Test cases:
        GET    /api/v1/test-cases                       — List (?suite_id=, ?limit=, ?offset=)
        POST   /api/v1/test-cases                       — Create
        GET    /api/v1/test-cases/<id>                  — Detail
        PUT    /api/v1/test-cases/<id>                  — Merge fields
        DELETE /api/v1/test-cases/<id>?confirm=true     — Delete
        POST   /api/v1/test-cases/<id>/copy             — Duplicate

    Test suites:
        GET    /api/v1/test-suites                      — List (?include_hidden=false)
        POST   /api/v1/test-suites                      — Create
        GET    /api/v1/test-suites/<id>                 — Detail (+ cases, owner name)
        PUT    /api/v1/test-suites/<id>                 — Merge fields
        DELETE /api/v1/test-suites/<id>?confirm=true    — Delete (detaches its cases)
        POST   /api/v1/test-suites/<id>/toggle-visibility
        GET    /api/v1/test-suites/<id>/export          — ?format=csv|xlsx
        GET    /api/v1/test-suites/<id>/link            — Shareable deep link

    Users:
        GET    /api/v1/users                            — List
        POST   /api/v1/users                            — Create
        GET    /api/v1/users/<id>                       — Detail
        PUT    /api/v1/users/<id>                       — Merge fields
        DELETE /api/v1/users/<id>                       — Delete (no cascade)

Payloads use the camelCase record shape (``testCaseId``, ``qaStatus`` ...).
"""

import logging

from flask import Blueprint, Response, current_app, jsonify, request, send_file

from qatrack.blueprints import get_store, paginate_list
from qatrack.models.testing import TestCase, TestSuite, User, fields_from_payload
from qatrack.services import export_service
from qatrack.services.dashboard_service import suite_summaries
from qatrack.services.deep_link import build_suite_link
from qatrack.utils.errors import E, api_error
from qatrack.utils.helpers import get_or_404 as _get_or_404
from qatrack.utils.helpers import json_object_or_400, parse_bool, require_confirm

logger = logging.getLogger(__name__)

testing_bp = Blueprint("testing_bp", __name__, url_prefix="/api/v1")


def case_detail(store, tc) -> dict:
    d = tc.to_dict()
    suite = store.get_test_suite(tc.test_suite_id) if tc.test_suite_id else None
    d["suiteName"] = suite.name if suite else None
    return d


def suite_detail(store, suite) -> dict:
    d = suite.to_dict()
    d["ownerName"] = store.display_name(suite.owner_id) if suite.owner_id else None
    d["testCases"] = [tc.to_dict() for tc in store.cases_for_suite(suite.id)]
    return d


def _steps_or_400(data):
    steps = data.get("steps")
    if steps is None:
        return None
    if not isinstance(steps, list) or not all(isinstance(s, dict) for s in steps):
        return api_error(E.VALIDATION_INVALID, "steps must be a list of objects")
    return None


# ═════════════════════════════════════════════════════════════════════════
# Test cases
# ═════════════════════════════════════════════════════════════════════════


@testing_bp.route("/test-cases", methods=["GET"])
def list_test_cases():
    store = get_store()
    cases = store.test_cases
    suite_id = request.args.get("suite_id")
    if suite_id:
        cases = [tc for tc in cases if tc.test_suite_id == suite_id]
    page, total = paginate_list(cases)
    return jsonify({"items": [tc.to_dict() for tc in page], "total": total})


@testing_bp.route("/test-cases", methods=["POST"])
def create_test_case():
    data, err = json_object_or_400()
    if err:
        return err
    err = _steps_or_400(data)
    if err:
        return err
    tc = get_store().create_test_case(fields_from_payload(TestCase, data))[0]
    return jsonify(tc.to_dict()), 201


@testing_bp.route("/test-cases/<case_id>", methods=["GET"])
def get_test_case(case_id):
    store = get_store()
    tc, err = _get_or_404(store.get_test_case, case_id, "Test case")
    if err:
        return err
    return jsonify(case_detail(store, tc))


@testing_bp.route("/test-cases/<case_id>", methods=["PUT", "PATCH"])
def update_test_case(case_id):
    store = get_store()
    _, err = _get_or_404(store.get_test_case, case_id, "Test case")
    if err:
        return err
    data, err = json_object_or_400()
    if err:
        return err
    err = _steps_or_400(data)
    if err:
        return err
    store.update_test_case(case_id, fields_from_payload(TestCase, data))
    return jsonify(store.get_test_case(case_id).to_dict())


@testing_bp.route("/test-cases/<case_id>", methods=["DELETE"])
def delete_test_case(case_id):
    """Delete a test case (requires confirm=true)."""
    store = get_store()
    _, err = _get_or_404(store.get_test_case, case_id, "Test case")
    if err:
        return err
    err = require_confirm()
    if err:
        return err
    store.delete_test_case(case_id)
    return jsonify({"message": "Test case deleted"}), 200


@testing_bp.route("/test-cases/<case_id>/copy", methods=["POST"])
def copy_test_case(case_id):
    store = get_store()
    _, err = _get_or_404(store.get_test_case, case_id, "Test case")
    if err:
        return err
    duplicate = store.copy_test_case(case_id)[0]
    return jsonify(duplicate.to_dict()), 201


# ═════════════════════════════════════════════════════════════════════════
# Test suites
# ═════════════════════════════════════════════════════════════════════════


@testing_bp.route("/test-suites", methods=["GET"])
def list_test_suites():
    include_hidden = parse_bool(request.args.get("include_hidden", "true"))
    items = suite_summaries(get_store(), include_hidden=include_hidden)
    return jsonify({"items": items, "total": len(items)})


@testing_bp.route("/test-suites", methods=["POST"])
def create_test_suite():
    data, err = json_object_or_400()
    if err:
        return err
    suite = get_store().create_test_suite(fields_from_payload(TestSuite, data))[0]
    return jsonify(suite.to_dict()), 201


@testing_bp.route("/test-suites/<suite_id>", methods=["GET"])
def get_test_suite(suite_id):
    store = get_store()
    suite, err = _get_or_404(store.get_test_suite, suite_id, "Test suite")
    if err:
        return err
    return jsonify(suite_detail(store, suite))


@testing_bp.route("/test-suites/<suite_id>", methods=["PUT", "PATCH"])
def update_test_suite(suite_id):
    store = get_store()
    _, err = _get_or_404(store.get_test_suite, suite_id, "Test suite")
    if err:
        return err
    data, err = json_object_or_400()
    if err:
        return err
    store.update_test_suite(suite_id, fields_from_payload(TestSuite, data))
    return jsonify(store.get_test_suite(suite_id).to_dict())


@testing_bp.route("/test-suites/<suite_id>", methods=["DELETE"])
def delete_test_suite(suite_id):
    """Delete a suite; its test cases stay, detached (requires confirm=true)."""
    store = get_store()
    _, err = _get_or_404(store.get_test_suite, suite_id, "Test suite")
    if err:
        return err
    err = require_confirm()
    if err:
        return err
    detached = len(store.cases_for_suite(suite_id))
    store.delete_test_suite(suite_id)
    return jsonify({"message": "Test suite deleted", "detachedCases": detached}), 200


@testing_bp.route("/test-suites/<suite_id>/toggle-visibility", methods=["POST"])
def toggle_test_suite_visibility(suite_id):
    store = get_store()
    _, err = _get_or_404(store.get_test_suite, suite_id, "Test suite")
    if err:
        return err
    store.toggle_test_suite_visibility(suite_id)
    return jsonify(store.get_test_suite(suite_id).to_dict())


@testing_bp.route("/test-suites/<suite_id>/export", methods=["GET"])
def export_test_suite(suite_id):
    """Export a suite's test cases. ?format=csv (default) | xlsx"""
    store = get_store()
    suite, err = _get_or_404(store.get_test_suite, suite_id, "Test suite")
    if err:
        return err

    fmt = request.args.get("format", "csv").lower()
    if fmt == "xlsx":
        buf = export_service.generate_suite_xlsx(store, suite_id)
        return send_file(
            buf,
            mimetype="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            as_attachment=True,
            download_name=export_service.export_filename(suite, "xlsx"),
        )
    if fmt != "csv":
        return api_error(E.VALIDATION_INVALID, "format must be csv or xlsx")

    csv_content = export_service.generate_suite_csv(store, suite_id)
    filename = export_service.export_filename(suite, "csv")
    return Response(
        csv_content,
        mimetype="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@testing_bp.route("/test-suites/<suite_id>/link", methods=["GET"])
def get_test_suite_link(suite_id):
    store = get_store()
    _, err = _get_or_404(store.get_test_suite, suite_id, "Test suite")
    if err:
        return err
    base = current_app.config.get("APP_BASE_URL") or request.host_url
    return jsonify({"suiteId": suite_id, "url": build_suite_link(base, suite_id)})


# ═════════════════════════════════════════════════════════════════════════
# Users
# ═════════════════════════════════════════════════════════════════════════


@testing_bp.route("/users", methods=["GET"])
def list_users():
    users = get_store().users
    return jsonify({"items": [u.to_dict() for u in users], "total": len(users)})


@testing_bp.route("/users", methods=["POST"])
def create_user():
    data, err = json_object_or_400()
    if err:
        return err
    if "roles" in data and not isinstance(data["roles"], list):
        return api_error(E.VALIDATION_INVALID, "roles must be a list")
    user = get_store().create_user(fields_from_payload(User, data))[0]
    return jsonify(user.to_dict()), 201


@testing_bp.route("/users/<user_id>", methods=["GET"])
def get_user(user_id):
    user, err = _get_or_404(get_store().get_user, user_id, "User")
    if err:
        return err
    return jsonify(user.to_dict())


@testing_bp.route("/users/<user_id>", methods=["PUT", "PATCH"])
def update_user(user_id):
    store = get_store()
    _, err = _get_or_404(store.get_user, user_id, "User")
    if err:
        return err
    data, err = json_object_or_400()
    if err:
        return err
    if "roles" in data and not isinstance(data["roles"], list):
        return api_error(E.VALIDATION_INVALID, "roles must be a list")
    store.update_user(user_id, fields_from_payload(User, data))
    return jsonify(store.get_user(user_id).to_dict())


@testing_bp.route("/users/<user_id>", methods=["DELETE"])
def delete_user(user_id):
    """Delete a user; suites and cases keep the dangling reference."""
    store = get_store()
    _, err = _get_or_404(store.get_user, user_id, "User")
    if err:
        return err
    store.delete_user(user_id)
    return jsonify({"message": "User deleted"}), 200
