"""
QA Track
Execution state machine for running one test case step by step.

State:
    current_step_index  position in the case's ordered steps
    step_results        step id -> None | "pass" | "fail"
    overall_status      Untested | Pass | Fail | Blocked | Skipped

Transitions:
    record_step_result  set a verdict; auto-advance the cursor one step
    navigate / previous / next
    set_overall_status  explicit override at any time
    commit              hand (test_case_id, overall_status) back and close

Auto-suggestion: once every step has a verdict and overall_status is still
Untested, it becomes Fail when any step failed, else Pass. A status the
tester moved away from Untested is never overwritten.

ExecutionRegistry keeps open sessions addressable by id so the HTTP layer can
drive a run across requests. Sessions idle longer than ``max_idle_seconds``
are dropped the next time a run starts.
"""

import logging
import threading
import time
from collections import namedtuple

from qatrack.core.exceptions import NotFoundError, ValidationError
from qatrack.models.testing import (
    DEFAULT_STATUS,
    ROLE_STATUS_FIELDS,
    TEST_STATUSES,
    new_id,
    normalize_role,
)
from qatrack.services.storage import StorageError

logger = logging.getLogger(__name__)

STEP_PASS = "pass"
STEP_FAIL = "fail"
STEP_VERDICTS = {STEP_PASS, STEP_FAIL}

ExecutionResult = namedtuple("ExecutionResult", ["test_case_id", "overall_status"])


class ExecutionSession:
    """Interactive run of a single test case for one testing role."""

    def __init__(self, test_case, role: str = "qa", *, executor_id: str | None = None,
                 session_id: str | None = None):
        self.id = session_id or new_id()
        self.role = normalize_role(role)
        self.test_case_id = test_case.id
        self.executor_id = executor_id
        self.steps = list(test_case.steps)
        self.current_step_index = 0
        self.step_results = {step.id: None for step in self.steps}
        self.overall_status = test_case.status_for(self.role)
        self.closed = False
        # A case without steps starts complete.
        self._suggest_status()

    # ── Derived state ────────────────────────────────────────────────────

    @property
    def step_count(self) -> int:
        return len(self.steps)

    @property
    def current_step(self):
        return self.steps[self.current_step_index] if self.steps else None

    @property
    def is_complete(self) -> bool:
        return all(result is not None for result in self.step_results.values())

    @property
    def any_failed(self) -> bool:
        return any(result == STEP_FAIL for result in self.step_results.values())

    def _suggest_status(self):
        if self.is_complete and self.overall_status == DEFAULT_STATUS:
            self.overall_status = "Fail" if self.any_failed else "Pass"
            logger.debug("Session %s suggested overall status %s", self.id, self.overall_status,
                         extra={"session_id": self.id})

    def _ensure_open(self):
        if self.closed:
            raise ValidationError(
                "Execution session is already committed",
                details={"session_id": self.id},
            )

    # ── Transitions ──────────────────────────────────────────────────────

    def record_step_result(self, step_id: str, result: str):
        """Record ``pass`` / ``fail`` for a step and move the cursor one step on."""
        self._ensure_open()
        verdict = (result or "").strip().lower()
        if verdict not in STEP_VERDICTS:
            raise ValidationError(
                f"Invalid step result: {result!r}",
                details={"result": f"must be one of {sorted(STEP_VERDICTS)}"},
            )
        index = next((i for i, step in enumerate(self.steps) if step.id == step_id), None)
        if index is None:
            raise ValidationError(f"Unknown step id: {step_id!r}", details={"step_id": step_id})

        self.step_results[step_id] = verdict
        if self.current_step_index < self.step_count - 1:
            self.current_step_index += 1
        self._suggest_status()
        return self

    def navigate(self, index: int):
        self._ensure_open()
        if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < self.step_count:
            raise ValidationError(
                f"Step index out of range: {index!r}",
                details={"index": f"must be between 0 and {self.step_count - 1}"},
            )
        self.current_step_index = index
        return self

    def previous(self):
        self._ensure_open()
        self.current_step_index = max(self.current_step_index - 1, 0)
        return self

    def next(self):
        self._ensure_open()
        self.current_step_index = min(self.current_step_index + 1, max(self.step_count - 1, 0))
        return self

    def set_overall_status(self, status: str):
        self._ensure_open()
        if status not in TEST_STATUSES:
            raise ValidationError(
                f"Invalid status: {status!r}",
                details={"status": f"must be one of {list(TEST_STATUSES)}"},
            )
        self.overall_status = status
        self._suggest_status()
        return self

    def commit(self) -> ExecutionResult:
        """Close the session and return the verdict to the owning context."""
        self._ensure_open()
        self.closed = True
        logger.info("Execution session %s committed: %s", self.id, self.overall_status,
                    extra={"session_id": self.id, "test_case_id": self.test_case_id})
        return ExecutionResult(self.test_case_id, self.overall_status)

    def to_dict(self):
        current = self.current_step
        return {
            "id": self.id,
            "testCaseId": self.test_case_id,
            "role": self.role,
            "executorId": self.executor_id,
            "currentStepIndex": self.current_step_index,
            "currentStep": current.to_dict() if current else None,
            "stepCount": self.step_count,
            "stepResults": dict(self.step_results),
            "overallStatus": self.overall_status,
            "isComplete": self.is_complete,
            "closed": self.closed,
        }

    def __repr__(self):
        return f"<ExecutionSession {self.id}: case={self.test_case_id} {self.overall_status}>"


def apply_execution_result(store, result: ExecutionResult, role: str = "qa",
                           executor_id: str | None = None) -> list:
    """Write a committed verdict into the role's status field.

    When an executor is given, ``executor`` (display name, "Unknown" for a
    dangling id) and ``executorId`` are recorded as well. Unknown test case
    ids are a silent no-op, like every store update.
    """
    fields = {ROLE_STATUS_FIELDS[normalize_role(role)]: result.overall_status}
    if executor_id:
        fields["executor"] = store.display_name(executor_id)
        fields["executor_id"] = executor_id
    return store.update_test_case(result.test_case_id, fields)


class ExecutionRegistry:
    """Open execution sessions keyed by session id."""

    def __init__(self, max_idle_seconds: float = 12 * 60 * 60, *, clock=time.monotonic):
        self.max_idle_seconds = max_idle_seconds
        self._clock = clock
        self._sessions = {}
        self._last_active = {}
        self._lock = threading.Lock()

    def _prune(self):
        cutoff = self._clock() - self.max_idle_seconds
        stale = [sid for sid, seen in self._last_active.items() if seen < cutoff]
        for sid in stale:
            self._sessions.pop(sid, None)
            self._last_active.pop(sid, None)
        if stale:
            logger.info("Dropped %d idle execution session(s)", len(stale))

    def start(self, store, test_case_id: str, role: str = "qa", executor_id: str | None = None):
        test_case = store.get_test_case(test_case_id)
        if test_case is None:
            raise NotFoundError(resource="TestCase", resource_id=test_case_id)
        session = ExecutionSession(test_case, role, executor_id=executor_id)
        with self._lock:
            self._prune()
            self._sessions[session.id] = session
            self._last_active[session.id] = self._clock()
        logger.info("Execution session %s started for case %s (%s)", session.id, test_case_id,
                    session.role, extra={"session_id": session.id, "test_case_id": test_case_id})
        return session

    def get(self, session_id: str) -> ExecutionSession:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None:
                self._last_active[session_id] = self._clock()
        if session is None:
            raise NotFoundError(resource="ExecutionSession", resource_id=session_id)
        return session

    def commit(self, store, session_id: str):
        """Commit a session, write its verdict to the store and forget it.

        If the store cannot save the verdict the session is reopened, so the
        commit can be retried.
        """
        session = self.get(session_id)
        result = session.commit()
        try:
            apply_execution_result(store, result, session.role, session.executor_id)
        except StorageError:
            session.closed = False
            raise
        self.discard(session_id)
        return session, result

    def discard(self, session_id: str) -> bool:
        with self._lock:
            self._last_active.pop(session_id, None)
            return self._sessions.pop(session_id, None) is not None

    def __len__(self):
        with self._lock:
            return len(self._sessions)
