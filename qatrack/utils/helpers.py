"""Shared blueprint helpers.

get_or_404:        tuple-return lookup against a store accessor
json_object_or_400: request body must be a JSON object
require_confirm:   destructive deletes need ?confirm=true
"""
import logging

from flask import request

from qatrack.utils.errors import E, api_error

logger = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on"}


def get_or_404(getter, record_id, label):
    """Fetch a record through a store accessor or return a 404 error tuple.

    - Success: (record, None)
    - Failure: (None, (jsonify_response, 404))

    Usage:
        suite, err = get_or_404(store.get_test_suite, suite_id, "Test suite")
        if err:
            return err
    """
    record = getter(record_id)
    if record is None:
        return None, api_error(E.NOT_FOUND, f"{label} not found")
    return record, None


def json_object_or_400():
    """Return (payload, None) for a JSON object body, else (None, error tuple)."""
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        return None, api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    return data, None


def parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in _TRUTHY


def require_confirm():
    """Return an error tuple unless the request carries ``confirm=true``."""
    if parse_bool(request.args.get("confirm")):
        return None
    return api_error(
        E.CONFIRMATION_REQUIRED,
        "This delete cannot be undone; repeat the request with confirm=true",
    )
