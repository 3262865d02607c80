"""
QA Track
QA Assistant: turns chat requests into test suites and test cases.

Flow for one user message:
    1. request(): build the prompt (system instruction + history), call the
       LLM gateway with the two function declarations, and parse every
       function call into an AssistantAction. No store writes happen here.
    2. apply(): run each parsed action through its intent handler, which
       funnels into the store's create operation, and produce the
       confirmation messages.

Any failure in step 1 (network, retries exhausted, malformed arguments,
cancellation) leaves the store untouched and is reported as one inline
assistant message.
"""

import json
import logging
import threading
from dataclasses import dataclass, field

from qatrack.core.exceptions import AssistantError
from qatrack.models.testing import DEFAULT_STATUS, TestStep, new_id

logger = logging.getLogger(__name__)

GREETING = (
    "Hello! I'm your QA Assistant. I can help you create test suites and test cases. "
    "Just tell me what you'd like to build!"
)
ERROR_REPLY = "Sorry, I encountered an error. Please try again."
FALLBACK_REPLY = "I'm not sure how to help with that."

SYSTEM_PROMPT = """You are a professional QA engineer assistant.
Your goal is to help users manage their test suite and test cases.
You can create test suites and test cases using the provided tools.
When a user describes a feature or a test scenario, suggest creating a test case or a suite.
Available Test Suites: {suites}.
If the user wants to add a test case to an existing suite, use the correct testSuiteId.
Always confirm with the user before performing actions, or perform them if they are explicitly requested."""

CREATE_TEST_SUITE_TOOL = {
    "name": "createTestSuite",
    "description": "Creates a new test suite to group related test cases.",
    "parameters": {
        "type": "object",
        "properties": {
            "name": {"type": "string", "description": "The name of the test suite."},
            "description": {"type": "string", "description": "A brief description of the test suite."},
        },
        "required": ["name", "description"],
    },
}

CREATE_TEST_CASE_TOOL = {
    "name": "createTestCase",
    "description": "Creates a new test case with detailed steps.",
    "parameters": {
        "type": "object",
        "properties": {
            "testCaseId": {"type": "string",
                           "description": "A unique identifier for the test case (e.g., TC-001)."},
            "title": {"type": "string", "description": "The title of the test case."},
            "description": {"type": "string", "description": "A description of the test case."},
            "preconditions": {"type": "string",
                              "description": "Conditions that must be met before running the test."},
            "testData": {"type": "string", "description": "Specific data required for the test."},
            "priority": {"type": "string", "enum": ["High", "Medium", "Low"],
                         "description": "The priority of the test case."},
            "testSuiteId": {"type": "string",
                            "description": "Optional ID of the test suite to associate this case with."},
            "steps": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "action": {"type": "string", "description": "The action to perform in this step."},
                        "expectedResult": {"type": "string",
                                           "description": "The expected outcome of this step."},
                    },
                    "required": ["action", "expectedResult"],
                },
                "description": "A list of steps to execute the test.",
            },
        },
        "required": ["testCaseId", "title", "description", "priority", "steps"],
    },
}

ASSISTANT_TOOLS = [CREATE_TEST_SUITE_TOOL, CREATE_TEST_CASE_TOOL]


# ── Intent handlers ─────────────────────────────────────────────────────────
# Each takes parsed store fields and returns (created record, confirmation).


def _text(args: dict, key: str) -> str:
    value = args.get(key)
    return "" if value is None else str(value)


def parse_create_test_suite(args: dict) -> dict:
    return {"name": _text(args, "name"), "description": _text(args, "description")}


def parse_create_test_case(args: dict) -> dict:
    steps = args.get("steps") or []
    if not isinstance(steps, list) or not all(isinstance(s, dict) for s in steps):
        raise AssistantError("createTestCase steps must be a list of objects")
    fields = {
        "test_case_id": _text(args, "testCaseId"),
        "title": _text(args, "title"),
        "description": _text(args, "description"),
        "preconditions": _text(args, "preconditions"),
        "test_data": _text(args, "testData"),
        "priority": _text(args, "priority"),
        "related_requirements": "",
        "test_suite_id": args.get("testSuiteId") or None,
        "qa_status": DEFAULT_STATUS,
        "uat_status": DEFAULT_STATUS,
        "bat_status": DEFAULT_STATUS,
        "steps": [
            TestStep(id=new_id(), action=_text(s, "action"), expected_result=_text(s, "expectedResult"))
            for s in steps
        ],
    }
    if not fields["priority"]:
        # Store default applies
        del fields["priority"]
    return fields


def handle_create_test_suite(store, fields: dict):
    suite = store.create_test_suite(fields)[0]
    return suite, f'I\'ve created the test suite "{suite.name}" for you.'


def handle_create_test_case(store, fields: dict):
    test_case = store.create_test_case(fields)[0]
    return test_case, (
        f'I\'ve created the test case "{test_case.title}" ({test_case.test_case_id}) for you.'
    )


# function name -> (argument parser, handler)
INTENT_HANDLERS = {
    "createTestSuite": (parse_create_test_suite, handle_create_test_suite),
    "createTestCase": (parse_create_test_case, handle_create_test_case),
}


@dataclass
class AssistantAction:
    name: str
    fields: dict


@dataclass
class AssistantResponse:
    """A fully parsed model reply, ready to apply."""

    actions: list = field(default_factory=list)
    text: str = ""
    model: str = ""


def _decode_args(raw) -> dict:
    if isinstance(raw, str):
        try:
            raw = json.loads(raw) if raw.strip() else {}
        except ValueError as exc:
            raise AssistantError(f"Function arguments are not valid JSON: {exc}") from exc
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        try:
            raw = dict(raw)
        except (TypeError, ValueError) as exc:
            raise AssistantError("Function arguments must be an object") from exc
    return raw


def parse_response(result: dict) -> AssistantResponse:
    """Turn a gateway result into actions; raises AssistantError when malformed."""
    if not isinstance(result, dict):
        raise AssistantError("Model reply is not an object")
    actions = []
    for call in result.get("function_calls") or []:
        if not isinstance(call, dict):
            raise AssistantError(f"Malformed function call: {call!r}")
        name = call.get("name")
        if name not in INTENT_HANDLERS:
            logger.warning("Ignoring unknown assistant function %r", name)
            continue
        parser, _ = INTENT_HANDLERS[name]
        actions.append(AssistantAction(name=name, fields=parser(_decode_args(call.get("args")))))
    return AssistantResponse(actions=actions, text=result.get("content") or "",
                             model=result.get("model", ""))


class QAAssistant:
    """Conversation with the QA assistant bound to one store.

    ``messages`` is the visible chat transcript, starting with the greeting.
    """

    def __init__(self, store, gateway, *, model: str | None = None):
        self.store = store
        self.gateway = gateway
        self.model = model
        self.messages = [{"role": "assistant", "content": GREETING}]
        self._lock = threading.Lock()

    def history(self) -> list:
        with self._lock:
            return [dict(m) for m in self.messages]

    def _append(self, role: str, content: str):
        with self._lock:
            self.messages.append({"role": role, "content": content})

    def add_user_message(self, text: str) -> list:
        """Record the user's message; returns the transcript to send."""
        with self._lock:
            self.messages.append({"role": "user", "content": text})
            return [dict(m) for m in self.messages]

    def build_prompt(self, transcript: list) -> list:
        suites = json.dumps([{"id": s.id, "name": s.name} for s in self.store.test_suites],
                            ensure_ascii=False)
        return [{"role": "system", "content": SYSTEM_PROMPT.format(suites=suites)}, *transcript]

    def request(self, transcript: list, *, cancel_event: threading.Event | None = None) -> AssistantResponse:
        """Call the model and parse its reply. Never writes to the store."""
        try:
            result = self.gateway.chat(
                self.build_prompt(transcript),
                self.model,
                tools=ASSISTANT_TOOLS,
                purpose="qa_assistant",
                cancel_event=cancel_event,
            )
        except RuntimeError as exc:
            raise AssistantError(str(exc)) from exc
        return parse_response(result)

    def apply(self, response: AssistantResponse) -> dict:
        """Run parsed actions through their handlers and record the replies."""
        replies = []
        created = {"testSuites": [], "testCases": []}
        for action in response.actions:
            _, handler = INTENT_HANDLERS[action.name]
            record, reply = handler(self.store, action.fields)
            bucket = "testSuites" if action.name == "createTestSuite" else "testCases"
            created[bucket].append(record.to_dict())
            replies.append(reply)
        if not response.actions:
            replies.append(response.text or FALLBACK_REPLY)
        for reply in replies:
            self._append("assistant", reply)
        return {"replies": replies, "created": created, "error": False}

    def fail(self, exc: Exception) -> dict:
        """Report a failed request inline; the store is left untouched."""
        logger.warning("Assistant request failed: %s", exc)
        self._append("assistant", ERROR_REPLY)
        return {"replies": [ERROR_REPLY], "created": {"testSuites": [], "testCases": []},
                "error": True}

    def send_message(self, text: str) -> dict:
        """Synchronous round trip: request, then apply."""
        transcript = self.add_user_message(text)
        try:
            response = self.request(transcript)
        except AssistantError as exc:
            return self.fail(exc)
        return self.apply(response)

    def reset(self):
        with self._lock:
            self.messages = [{"role": "assistant", "content": GREETING}]
