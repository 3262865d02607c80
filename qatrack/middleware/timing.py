"""
Request timing middleware.

Times every request, tags the log line with the record ids found in the URL
(suite, test case, execution session, assistant task) and warns about slow
requests. Adds X-Request-Duration-Ms and X-Request-ID headers to all responses.
"""

import logging
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

# Probes are polled constantly; their timing is not worth a log line
_QUIET_BLUEPRINTS = frozenset({"health_bp"})

SLOW_THRESHOLD_MS = 1000

# URL variable -> log extra
_VIEW_ARG_FIELDS = {
    "suite_id": "suite_id",
    "case_id": "test_case_id",
    "session_id": "session_id",
    "task_id": "task_id",
}


def _request_extra(response, duration_ms: float) -> dict:
    extra = {
        "method": request.method,
        "path": request.path,
        "status": response.status_code,
        "duration_ms": duration_ms,
        "remote_addr": request.remote_addr,
        "request_id": g.request_id,
    }
    for arg, field in _VIEW_ARG_FIELDS.items():
        value = (request.view_args or {}).get(arg)
        if value:
            extra[field] = value
    return extra


def init_request_timing(app: Flask):
    """Register before/after hooks for request timing."""

    @app.before_request
    def _start_timer():
        g.request_start = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]

    @app.after_request
    def _finish_timer(response):
        start = getattr(g, "request_start", None)
        if start is None:
            return response

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"
        response.headers["X-Request-ID"] = g.request_id

        if request.blueprint in _QUIET_BLUEPRINTS:
            return response

        extra = _request_extra(response, duration_ms)
        summary = "%s %s %d (%.0fms)"
        args = (request.method, request.path, response.status_code, duration_ms)
        if response.status_code >= 500:
            logger.error("Server error: " + summary, *args, extra=extra)
        elif duration_ms > SLOW_THRESHOLD_MS:
            logger.warning("Slow request: " + summary, *args, extra=extra)
        else:
            logger.debug("Request: " + summary, *args, extra=extra)
        return response
