"""
QA Track
Assistant Blueprint — chat with the QA assistant.

Endpoints:
    GET    /api/v1/assistant/messages             — Conversation transcript
    POST   /api/v1/assistant/messages             — Send {message}; waits for the reply
    DELETE /api/v1/assistant/messages             — Start a new conversation
    POST   /api/v1/assistant/tasks                — Send {message} in the background
    GET    /api/v1/assistant/tasks                — List tasks (?status=)
    GET    /api/v1/assistant/tasks/<id>           — Poll a task
    POST   /api/v1/assistant/tasks/<id>/cancel    — Cancel a pending/running task
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from qatrack import EXTENSION_KEY, limiter
from qatrack.ai.assistant import QAAssistant
from qatrack.ai.gateway import LLMGateway
from qatrack.blueprints import get_store, get_task_runner
from qatrack.utils.errors import E, api_error
from qatrack.utils.helpers import json_object_or_400

logger = logging.getLogger(__name__)

ai_bp = Blueprint("ai_bp", __name__, url_prefix="/api/v1/assistant")

_assistant_limit = limiter.shared_limit(
    lambda: current_app.config.get("ASSISTANT_RATE_LIMIT", "30/minute"), scope="assistant",
)


# ── Lazy singletons stored on the app (test-isolation safe) ─────────────────

def _get_gateway():
    services = current_app.extensions[EXTENSION_KEY]
    if "gateway" not in services:
        services["gateway"] = LLMGateway(current_app.config)
    return services["gateway"]


def _get_assistant():
    services = current_app.extensions[EXTENSION_KEY]
    if "assistant" not in services:
        services["assistant"] = QAAssistant(get_store(), _get_gateway())
    return services["assistant"]


def _message_or_400():
    data, err = json_object_or_400()
    if err:
        return None, err
    message = str(data.get("message") or "").strip()
    if not message:
        return None, api_error(E.VALIDATION_REQUIRED, "message is required")
    return message, None


@ai_bp.route("/messages", methods=["GET"])
def get_messages():
    return jsonify({"messages": _get_assistant().history()})


@ai_bp.route("/messages", methods=["POST"])
@_assistant_limit
def send_message():
    """Round-trip a chat message; failures come back as an inline assistant reply."""
    message, err = _message_or_400()
    if err:
        return err
    result = _get_assistant().send_message(message)
    return jsonify(result), 200


@ai_bp.route("/messages", methods=["DELETE"])
def reset_messages():
    assistant = _get_assistant()
    assistant.reset()
    return jsonify({"messages": assistant.history()})


@ai_bp.route("/tasks", methods=["POST"])
@_assistant_limit
def submit_task():
    message, err = _message_or_400()
    if err:
        return err
    task = get_task_runner().submit(
        _get_assistant(), message, app=current_app._get_current_object(),
    )
    return jsonify(task), 202


@ai_bp.route("/tasks", methods=["GET"])
def list_tasks():
    tasks = get_task_runner().list_tasks(status=request.args.get("status") or None)
    return jsonify({"items": tasks, "total": len(tasks)})


@ai_bp.route("/tasks/<task_id>", methods=["GET"])
def get_task(task_id):
    return jsonify(get_task_runner().get_status(task_id))


@ai_bp.route("/tasks/<task_id>/cancel", methods=["POST"])
def cancel_task(task_id):
    return jsonify(get_task_runner().cancel(task_id))
