"""
QA Track
Testing domain records.

Records:
    - TestStep:   one action / expected-result pair, owned by its TestCase
    - TestCase:   a verifiable scenario with ordered steps and one status per testing role
    - TestSuite:  named grouping of test cases, optionally owned by a User
    - User:       a team member that can own suites and execute cases

Records are immutable dataclasses; the store replaces them on every change.
Each one serializes to the camelCase JSON object the browser client keeps in
local storage, so an exported browser blob loads unchanged.

Relationships are soft references by id:
    TestSuite ──1:N──▶ TestCase   (TestCase.test_suite_id, cleared on suite delete)
    User      ──1:N──▶ TestSuite  (TestSuite.owner_id, not cascaded)
    User      ──1:N──▶ TestCase   (TestCase.executor_id, not cascaded)
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from qatrack.core.exceptions import ValidationError


# ── Constants ────────────────────────────────────────────────────────────

# Ordered for display (dashboard counters, runner summary)
TEST_STATUSES = ("Untested", "Pass", "Fail", "Blocked", "Skipped")
DEFAULT_STATUS = "Untested"

PRIORITIES = ("High", "Medium", "Low")
DEFAULT_PRIORITY = "Medium"

USER_ROLES = ("BSA", "Developer", "QA", "UAT", "Business User", "Other")

# Testing role -> TestCase attribute holding that role's verdict
ROLE_STATUS_FIELDS = {
    "qa": "qa_status",
    "uat": "uat_status",
    "bat": "bat_status",
}

# Labels used by the runner screen
ROLE_LABELS = {
    "qa": "QA tester",
    "uat": "UAT tester",
    "bat": "BAT tester",
}

UNKNOWN_NAME = "Unknown"


def new_id() -> str:
    """Return a fresh opaque identifier (UUID4 string)."""
    return str(uuid.uuid4())


def utc_timestamp(moment: datetime | None = None) -> str:
    """ISO-8601 UTC timestamp with fixed microsecond precision."""
    moment = moment or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse a stored timestamp; None when missing or unparseable."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def normalize_role(value: str | None) -> str:
    """Map a testing-role label ("qa", "QA", "QA tester") to its key.

    Raises:
        ValidationError: when the label names no known testing role.
    """
    key = (value or "qa").strip().lower()
    if key.endswith(" tester"):
        key = key[: -len(" tester")]
    if key not in ROLE_STATUS_FIELDS:
        raise ValidationError(
            f"Unknown testing role: {value!r}",
            details={"role": f"must be one of {sorted(ROLE_STATUS_FIELDS)}"},
        )
    return key


def _text(value) -> str:
    return "" if value is None else str(value)


def _optional_ref(value) -> str | None:
    return str(value) if value not in (None, "") else None


def _status(value) -> str:
    # Only a missing status defaults; stored values are kept as they are
    return DEFAULT_STATUS if value is None else str(value)


# ═════════════════════════════════════════════════════════════════════════════
# TestStep
# ═════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class TestStep:
    """One action with its expected result."""

    id: str
    action: str = ""
    expected_result: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "TestStep":
        return cls(
            id=_text(data.get("id")) or new_id(),
            action=_text(data.get("action")),
            expected_result=_text(data.get("expectedResult", data.get("expected_result"))),
        )

    @classmethod
    def coerce(cls, value) -> "TestStep":
        """Accept a TestStep or a step mapping; steps without ids get fresh ids."""
        if isinstance(value, cls):
            return value if value.id else cls(new_id(), value.action, value.expected_result)
        if not isinstance(value, dict):
            raise TypeError(f"step must be an object, got {type(value).__name__}")
        return cls.from_dict(value)

    def to_dict(self):
        return {
            "id": self.id,
            "action": self.action,
            "expectedResult": self.expected_result,
        }


# ═════════════════════════════════════════════════════════════════════════════
# TestCase
# ═════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class TestCase:
    """A test case with its ordered steps and one verdict per testing role."""

    id: str
    test_case_id: str = ""
    title: str = ""
    description: str = ""
    preconditions: str = ""
    test_data: str = ""
    steps: list = field(default_factory=list)
    priority: str = DEFAULT_PRIORITY
    qa_status: str = DEFAULT_STATUS
    uat_status: str = DEFAULT_STATUS
    bat_status: str = DEFAULT_STATUS
    related_requirements: str = ""
    test_suite_id: str | None = None
    executor: str | None = None
    executor_id: str | None = None
    created_at: str = ""
    updated_at: str = ""

    def status_for(self, role: str) -> str:
        return getattr(self, ROLE_STATUS_FIELDS[normalize_role(role)])

    @classmethod
    def from_dict(cls, data: dict) -> "TestCase":
        steps = data.get("steps") or []
        if not isinstance(steps, list):
            raise TypeError("steps must be a list")
        return cls(
            id=_text(data["id"]),
            test_case_id=_text(data.get("testCaseId")),
            title=_text(data.get("title")),
            description=_text(data.get("description")),
            preconditions=_text(data.get("preconditions")),
            test_data=_text(data.get("testData")),
            steps=[TestStep.coerce(s) for s in steps],
            priority=_text(data.get("priority")) or DEFAULT_PRIORITY,
            qa_status=_status(data.get("qaStatus")),
            uat_status=_status(data.get("uatStatus")),
            bat_status=_status(data.get("batStatus")),
            related_requirements=_text(data.get("relatedRequirements")),
            test_suite_id=_optional_ref(data.get("testSuiteId")),
            executor=_optional_ref(data.get("executor")),
            executor_id=_optional_ref(data.get("executorId")),
            created_at=_text(data.get("createdAt")),
            updated_at=_text(data.get("updatedAt")),
        )

    def to_dict(self):
        return {
            "id": self.id,
            "testCaseId": self.test_case_id,
            "title": self.title,
            "description": self.description,
            "preconditions": self.preconditions,
            "testData": self.test_data,
            "steps": [s.to_dict() for s in self.steps],
            "priority": self.priority,
            "qaStatus": self.qa_status,
            "uatStatus": self.uat_status,
            "batStatus": self.bat_status,
            "relatedRequirements": self.related_requirements,
            "testSuiteId": self.test_suite_id,
            "executor": self.executor,
            "executorId": self.executor_id,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    def __repr__(self):
        return f"<TestCase {self.id}: {self.test_case_id}>"


# ═════════════════════════════════════════════════════════════════════════════
# TestSuite
# ═════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class TestSuite:
    """Named grouping of test cases."""

    id: str
    name: str = ""
    description: str = ""
    owner_id: str | None = None
    jira_number: str | None = None
    is_hidden: bool = False
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "TestSuite":
        return cls(
            id=_text(data["id"]),
            name=_text(data.get("name")),
            description=_text(data.get("description")),
            owner_id=_optional_ref(data.get("ownerId")),
            jira_number=_optional_ref(data.get("jiraNumber")),
            is_hidden=bool(data.get("isHidden", False)),
            created_at=_text(data.get("createdAt")),
            updated_at=_text(data.get("updatedAt")),
        )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "ownerId": self.owner_id,
            "jiraNumber": self.jira_number,
            "isHidden": self.is_hidden,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    def __repr__(self):
        return f"<TestSuite {self.id}: {self.name}>"


# ═════════════════════════════════════════════════════════════════════════════
# User
# ═════════════════════════════════════════════════════════════════════════════


def unique_roles(roles) -> list:
    """Drop duplicate roles, keeping first-seen order."""
    if isinstance(roles, str):
        roles = [roles]
    return list(dict.fromkeys(_text(r) for r in roles or []))


@dataclass(frozen=True)
class User:
    """A team member; ``roles`` behaves as an ordered set."""

    id: str
    name: str = ""
    email: str = ""
    roles: list = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "User":
        return cls(
            id=_text(data["id"]),
            name=_text(data.get("name")),
            email=_text(data.get("email")),
            roles=unique_roles(data.get("roles")),
            created_at=_text(data.get("createdAt")),
            updated_at=_text(data.get("updatedAt")),
        )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "roles": list(self.roles),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    def __repr__(self):
        return f"<User {self.id}: {self.name}>"


# ── Payload translation ──────────────────────────────────────────────────
# camelCase wire key -> snake_case attribute, per record type.

WIRE_FIELDS = {
    TestCase: {
        "testCaseId": "test_case_id",
        "title": "title",
        "description": "description",
        "preconditions": "preconditions",
        "testData": "test_data",
        "steps": "steps",
        "priority": "priority",
        "qaStatus": "qa_status",
        "uatStatus": "uat_status",
        "batStatus": "bat_status",
        "relatedRequirements": "related_requirements",
        "testSuiteId": "test_suite_id",
        "executor": "executor",
        "executorId": "executor_id",
    },
    TestSuite: {
        "name": "name",
        "description": "description",
        "ownerId": "owner_id",
        "jiraNumber": "jira_number",
        "isHidden": "is_hidden",
    },
    User: {
        "name": "name",
        "email": "email",
        "roles": "roles",
    },
}


def fields_from_payload(record_type, payload: dict) -> dict:
    """Translate a camelCase request payload into store field names.

    Unknown keys are dropped; ``id`` and timestamps are never writable.
    snake_case keys are accepted as-is.
    """
    mapping = WIRE_FIELDS[record_type]
    writable = set(mapping.values())
    fields = {}
    for key, value in payload.items():
        attr = mapping.get(key, key)
        if attr in writable:
            fields[attr] = value
    return fields
