"""
QA Track
Async assistant task runner.

Assistant requests run in background threads with status polling via the
API. A task can be cancelled while pending or running: its result is then
discarded and nothing is written to the store.

Task states: pending → running → completed | failed | cancelled
"""

import logging
import threading
from datetime import datetime, timezone

from qatrack.core.exceptions import NotFoundError
from qatrack.models.testing import new_id

logger = logging.getLogger(__name__)

FINAL_STATES = {"completed", "failed", "cancelled"}


class AssistantTask:
    """State of one background assistant request."""

    def __init__(self, message: str):
        self.id = new_id()
        self.message = message
        self.status = "pending"
        self.result = None
        self.error_message = None
        self.created_at = datetime.now(timezone.utc)
        self.completed_at = None
        self.cancel_event = threading.Event()

    def finish(self, status: str, *, result=None, error_message=None):
        self.status = status
        self.result = result
        self.error_message = error_message
        self.completed_at = datetime.now(timezone.utc)

    def to_dict(self):
        return {
            "id": self.id,
            "message": self.message,
            "status": self.status,
            "result": self.result,
            "error_message": self.error_message,
            "created_at": self.created_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


class AssistantTaskRunner:
    """Runs assistant requests asynchronously and tracks their status.

    Args:
        max_workers: Upper bound on concurrently running requests.
        keep_finished: Finished tasks kept for polling; older ones are
                       dropped when a new task is submitted.
    """

    def __init__(self, max_workers: int = 2, *, keep_finished: int = 200):
        self.keep_finished = max(0, keep_finished)
        self._tasks: dict[str, AssistantTask] = {}
        self._threads: dict[str, threading.Thread] = {}
        self._lock = threading.RLock()
        self._slots = threading.BoundedSemaphore(max(1, max_workers))

    def submit(self, assistant, message: str, *, app=None) -> dict:
        """
        Queue an assistant request.

        Args:
            assistant: QAAssistant handling the conversation.
            message: The user's chat message.
            app: Flask app whose context the worker runs in (needed by the
                 SQL storage backend).

        Returns:
            Task dict (serializable).
        """
        task = AssistantTask(message)
        transcript = assistant.add_user_message(message)
        with self._lock:
            self._prune_finished()
            self._tasks[task.id] = task
            t = threading.Thread(
                target=self._execute_in_background,
                args=(task, assistant, transcript, app),
                daemon=True,
            )
            self._threads[task.id] = t
        t.start()
        logger.info("Assistant task %s submitted", task.id, extra={"task_id": task.id})
        return task.to_dict()

    def get_status(self, task_id: str) -> dict:
        return self._get(task_id).to_dict()

    def cancel(self, task_id: str) -> dict:
        """Cancel a pending/running task; finished tasks are returned as-is."""
        with self._lock:
            task = self._get(task_id)
            if task.status in FINAL_STATES:
                return task.to_dict()
            task.cancel_event.set()
            task.finish("cancelled")
        logger.info("Assistant task %s cancelled", task_id, extra={"task_id": task_id})
        return task.to_dict()

    def list_tasks(self, status: str | None = None, limit: int = 50) -> list[dict]:
        with self._lock:
            tasks = sorted(self._tasks.values(), key=lambda t: t.created_at, reverse=True)
        if status:
            tasks = [t for t in tasks if t.status == status]
        return [t.to_dict() for t in tasks[:limit]]

    def wait(self, task_id: str, timeout: float | None = None) -> dict:
        """Block until the task's worker thread ends (tests, CLI use)."""
        with self._lock:
            thread = self._threads.get(task_id)
        if thread is not None:
            thread.join(timeout)
        return self.get_status(task_id)

    # ── Internal ──────────────────────────────────────────────────────────

    def _get(self, task_id: str) -> AssistantTask:
        with self._lock:
            task = self._tasks.get(task_id)
        if task is None:
            raise NotFoundError(resource="AssistantTask", resource_id=task_id)
        return task

    def _prune_finished(self):
        finished = [t for t in self._tasks.values() if t.status in FINAL_STATES]
        excess = len(finished) - self.keep_finished
        if excess <= 0:
            return
        finished.sort(key=lambda t: t.completed_at)
        for task in finished[:excess]:
            del self._tasks[task.id]
            self._threads.pop(task.id, None)
        logger.debug("Dropped %d finished assistant task(s)", excess)

    def _execute_in_background(self, task, assistant, transcript, app):
        """Run the request in a background thread."""
        try:
            if app is not None:
                with app.app_context():
                    self._run(task, assistant, transcript)
            else:
                self._run(task, assistant, transcript)
        finally:
            with self._lock:
                self._threads.pop(task.id, None)

    def _run(self, task, assistant, transcript):
        with self._slots:
            with self._lock:
                if task.status == "cancelled":
                    return
                task.status = "running"
            try:
                response = assistant.request(transcript, cancel_event=task.cancel_event)
                # Cancellation check and store writes share the lock: a cancel
                # either lands before any write or sees a completed task.
                with self._lock:
                    if task.status == "cancelled":
                        logger.info("Discarding result of cancelled task %s", task.id,
                                    extra={"task_id": task.id})
                        return
                    task.finish("completed", result=assistant.apply(response))
                logger.info("Assistant task %s completed", task.id, extra={"task_id": task.id})
            except Exception as exc:
                with self._lock:
                    if task.status == "cancelled":
                        return
                    task.finish("failed", result=assistant.fail(exc), error_message=str(exc))
                logger.error("Assistant task %s failed: %s", task.id, exc, extra={"task_id": task.id})
