"""
Shared pytest fixtures for the QA Track test suite.

Provides:
    - app: Flask application (session-scoped, memory storage)
    - services: Per-test reset of the app-scoped store, execution registry,
      task runner, gateway and assistant (autouse)
    - client: Flask test client (function-scoped)
    - store: The app's TestStore, freshly seeded for each test
    - empty_store: Standalone TestStore with the seed case removed
    - suite / login_case: Pre-created records via the API
"""

import pytest

from qatrack import EXTENSION_KEY, create_app
from qatrack.ai.task_runner import AssistantTaskRunner
from qatrack.services.execution import ExecutionRegistry
from qatrack.services.storage import MemoryStorage
from qatrack.services.test_store import TestStore


# ── App fixtures ─────────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(autouse=True)
def services(app):
    """Give every test a fresh store and fresh app-scoped services."""
    fresh = {
        "store": TestStore(MemoryStorage()),
        "executions": ExecutionRegistry(),
        "task_runner": AssistantTaskRunner(app.config.get("ASSISTANT_WORKERS", 2)),
    }
    app.extensions[EXTENSION_KEY] = fresh
    yield fresh
    # Let background assistant tasks finish before the next test swaps the store.
    for task in fresh["task_runner"].list_tasks():
        fresh["task_runner"].wait(task["id"], timeout=5)


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def store(services):
    """The store the API is serving, seeded with the sample checkout case."""
    return services["store"]


@pytest.fixture()
def empty_store():
    """A standalone store holding no records at all."""
    s = TestStore(MemoryStorage())
    for tc in s.test_cases:
        s.delete_test_case(tc.id)
    return s


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def suite(client):
    """Create and return a test suite via the API."""
    res = client.post(
        "/api/v1/test-suites",
        json={"name": "Checkout Regression", "description": "Checkout flows", "jiraNumber": "QA-42"},
    )
    assert res.status_code == 201
    return res.get_json()


@pytest.fixture()
def login_case(client, suite):
    """Create and return a three-step test case inside ``suite``."""
    res = client.post(
        "/api/v1/test-cases",
        json={
            "testCaseId": "TC-LOGIN-01",
            "title": "Login with valid credentials",
            "description": "Registered user can log in",
            "priority": "High",
            "testSuiteId": suite["id"],
            "steps": [
                {"id": "a", "action": "Open login page", "expectedResult": "Form visible"},
                {"id": "b", "action": "Enter credentials", "expectedResult": "Fields filled"},
                {"id": "c", "action": "Submit", "expectedResult": "Dashboard shown"},
            ],
        },
    )
    assert res.status_code == 201
    return res.get_json()
