"""
Tests for dashboard and runner aggregates (qatrack.services.dashboard_service).

Covers:
  - status_counts per role, pass_rate rounding (halves up, empty → 0)
  - get_dashboard: five most recent cases, role label
  - suite_summaries: hidden suites excluded unless requested
  - select_run_cases: multi-suite selection, sorting by column and role status
  - HTTP: /dashboard, /runner/suites, /runner/cases
"""

import pytest

from qatrack.core.exceptions import ValidationError
from qatrack.services.dashboard_service import (
    get_dashboard,
    get_run_overview,
    pass_rate,
    select_run_cases,
    status_counts,
    suite_summaries,
)


class TestCounters:
    @pytest.mark.parametrize("passed, total, expected", [
        (0, 0, 0), (1, 3, 33), (2, 3, 67), (1, 8, 13), (1, 2, 50), (3, 3, 100),
    ])
    def test_pass_rate(self, passed, total, expected):
        assert pass_rate(passed, total) == expected

    def test_status_counts_per_role(self, empty_store):
        empty_store.create_test_case({"qa_status": "Pass", "uat_status": "Fail"})
        empty_store.create_test_case({"qa_status": "Pass"})
        cases = empty_store.test_cases
        assert status_counts(cases, "qa")["Pass"] == 2
        assert status_counts(cases, "uat") == {
            "Untested": 1, "Pass": 0, "Fail": 1, "Blocked": 0, "Skipped": 0,
        }

    def test_dashboard(self, empty_store):
        for n in range(7):
            empty_store.create_test_case({"title": f"T{n}", "bat_status": "Pass" if n < 2 else "Untested"})
        data = get_dashboard(empty_store, "bat")
        assert data["roleLabel"] == "BAT tester"
        assert data["total"] == 7
        assert data["passRate"] == 29
        assert [tc["title"] for tc in data["recent"]] == ["T6", "T5", "T4", "T3", "T2"]

    def test_dashboard_unknown_role(self, empty_store):
        with pytest.raises(ValidationError):
            get_dashboard(empty_store, "ops")


class TestRunnerSelection:
    @pytest.fixture()
    def suites(self, empty_store):
        a = empty_store.create_test_suite({"name": "A"})[0]
        b = empty_store.create_test_suite({"name": "B", "is_hidden": True})[0]
        empty_store.create_test_case({"test_case_id": "TC-2", "title": "beta", "test_suite_id": a.id,
                                      "qa_status": "Pass"})
        empty_store.create_test_case({"test_case_id": "TC-1", "title": "alpha", "test_suite_id": b.id,
                                      "qa_status": "Fail"})
        empty_store.create_test_case({"test_case_id": "TC-3", "title": "loose"})
        return a, b

    def test_summaries_hide_hidden(self, empty_store, suites):
        assert [s["name"] for s in suite_summaries(empty_store)] == ["A"]
        assert len(suite_summaries(empty_store, include_hidden=True)) == 2

    def test_select_keeps_store_order(self, empty_store, suites):
        a, b = suites
        cases = select_run_cases(empty_store, [a.id, b.id])
        assert [tc.test_case_id for tc in cases] == ["TC-1", "TC-2"]

    def test_sort_by_column_and_status(self, empty_store, suites):
        ids = [s.id for s in suites]
        by_id = select_run_cases(empty_store, ids, sort_key="testCaseId", direction="asc")
        assert [tc.test_case_id for tc in by_id] == ["TC-1", "TC-2"]
        by_status = select_run_cases(empty_store, ids, sort_key="status", direction="desc")
        assert [tc.qa_status for tc in by_status] == ["Pass", "Fail"]

    def test_overview(self, empty_store, suites):
        user = empty_store.create_user({"name": "Rita"})[0]
        overview = get_run_overview(empty_store, [suites[0].id], "qa", user.id)
        assert overview["executor"] == "Rita"
        assert overview["total"] == 1
        assert overview["counts"]["Pass"] == 1


class TestDashboardApi:
    def test_dashboard_seed(self, client):
        data = client.get("/api/v1/dashboard").get_json()
        assert data["role"] == "qa"
        assert data["total"] == 1
        assert data["counts"]["Untested"] == 1
        assert data["passRate"] == 0

    def test_dashboard_bad_role(self, client):
        assert client.get("/api/v1/dashboard?role=ops").status_code == 422

    def test_runner_endpoints(self, client, suite, login_case):
        suites = client.get("/api/v1/runner/suites").get_json()
        assert suites["items"][0]["caseCount"] == 1
        res = client.get(f"/api/v1/runner/cases?suite_ids={suite['id']}&role=uat&sort=title&direction=asc")
        data = res.get_json()
        assert data["roleLabel"] == "UAT tester"
        assert [tc["id"] for tc in data["cases"]] == [login_case["id"]]
