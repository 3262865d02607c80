"""
QA Track
Blueprint registry and shared accessors for app-scoped services.
"""

from flask import current_app, request

from qatrack import EXTENSION_KEY


def _services() -> dict:
    return current_app.extensions[EXTENSION_KEY]


def get_store():
    return _services()["store"]


def get_executions():
    return _services()["executions"]


def get_task_runner():
    return _services()["task_runner"]


def paginate_list(items, default_limit=200, max_limit=1000):
    """Apply limit/offset pagination to an in-memory list.

    Query params:
        limit  — max items (default 200, capped at max_limit)
        offset — starting position (default 0)

    Returns:
        (items_page, total_count)
    """
    total = len(items)
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    return items[offset:offset + limit], total
