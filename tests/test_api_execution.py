"""
HTTP tests for the execution blueprint (/api/v1/executions).

Covers:
  - Start a session for a role and executor; unknown case → 404
  - Step results with auto-advance and suggested status
  - Navigation by index and direction; out-of-range → 422
  - Explicit status override, commit writes the role field and executor
  - Committed / discarded sessions are gone
"""

import pytest


@pytest.fixture()
def tester(client):
    return client.post("/api/v1/users", json={"name": "Tess", "roles": ["UAT"]}).get_json()


def _start(client, case_id, **extra):
    res = client.post("/api/v1/executions", json={"testCaseId": case_id, **extra})
    assert res.status_code == 201
    return res.get_json()


class TestExecutionApi:
    def test_start(self, client, login_case):
        session = _start(client, login_case["id"], role="uat")
        assert session["role"] == "uat"
        assert session["currentStepIndex"] == 0
        assert session["stepCount"] == 3
        assert session["overallStatus"] == "Untested"

    def test_start_validation(self, client):
        assert client.post("/api/v1/executions", json={}).status_code == 400
        assert client.post("/api/v1/executions", json={"testCaseId": "missing"}).status_code == 404

    def test_unknown_role(self, client, login_case):
        res = client.post("/api/v1/executions", json={"testCaseId": login_case["id"], "role": "ops"})
        assert res.status_code == 422
        assert res.get_json()["code"] == "ERR_VALIDATION_RULE"

    def test_full_run_and_commit(self, client, login_case, tester):
        session = _start(client, login_case["id"], role="uat", executorId=tester["id"])
        url = f"/api/v1/executions/{session['id']}"
        for step_id, verdict in (("a", "pass"), ("b", "pass"), ("c", "fail")):
            state = client.post(f"{url}/step-results", json={"stepId": step_id, "result": verdict}).get_json()
        assert state["currentStepIndex"] == 2
        assert state["overallStatus"] == "Fail"
        assert state["isComplete"] is True

        res = client.post(f"{url}/commit")
        assert res.status_code == 200
        body = res.get_json()
        assert body["overallStatus"] == "Fail"
        assert body["testCase"]["uatStatus"] == "Fail"
        assert body["testCase"]["qaStatus"] == "Untested"
        assert body["testCase"]["executor"] == "Tess"
        assert body["testCase"]["executorId"] == tester["id"]

        assert client.get(url).status_code == 404

    def test_override_survives_completion(self, client, login_case):
        session = _start(client, login_case["id"])
        url = f"/api/v1/executions/{session['id']}"
        client.put(f"{url}/status", json={"status": "Skipped"})
        for step_id in ("a", "b", "c"):
            client.post(f"{url}/step-results", json={"stepId": step_id, "result": "pass"})
        client.post(f"{url}/commit")
        case = client.get(f"/api/v1/test-cases/{login_case['id']}").get_json()
        assert case["qaStatus"] == "Skipped"

    def test_navigation(self, client, login_case):
        url = f"/api/v1/executions/{_start(client, login_case['id'])['id']}"
        assert client.post(f"{url}/navigate", json={"index": 2}).get_json()["currentStepIndex"] == 2
        assert client.post(f"{url}/navigate", json={"direction": "previous"}).get_json()["currentStepIndex"] == 1
        assert client.post(f"{url}/navigate", json={"direction": "next"}).get_json()["currentStepIndex"] == 2
        assert client.post(f"{url}/navigate", json={"index": 7}).status_code == 422
        assert client.post(f"{url}/navigate", json={}).status_code == 400

    def test_invalid_step_input(self, client, login_case):
        url = f"/api/v1/executions/{_start(client, login_case['id'])['id']}"
        assert client.post(f"{url}/step-results", json={"stepId": "a"}).status_code == 400
        assert client.post(f"{url}/step-results", json={"stepId": "zz", "result": "pass"}).status_code == 422
        assert client.put(f"{url}/status", json={"status": "Great"}).status_code == 422

    def test_discard_leaves_case_untouched(self, client, login_case):
        url = f"/api/v1/executions/{_start(client, login_case['id'])['id']}"
        client.post(f"{url}/step-results", json={"stepId": "a", "result": "fail"})
        assert client.delete(url).status_code == 200
        assert client.delete(url).status_code == 404
        case = client.get(f"/api/v1/test-cases/{login_case['id']}").get_json()
        assert case["qaStatus"] == "Untested"

    def test_zero_step_case_commits_pass(self, client):
        case = client.post("/api/v1/test-cases", json={"title": "Smoke"}).get_json()
        session = _start(client, case["id"], role="bat")
        assert session["isComplete"] is True
        assert session["overallStatus"] == "Pass"
        client.post(f"/api/v1/executions/{session['id']}/commit")
        assert client.get(f"/api/v1/test-cases/{case['id']}").get_json()["batStatus"] == "Pass"
