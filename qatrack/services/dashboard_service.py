"""
Dashboard and test-runner aggregates.

  - Status counters and pass rate per testing role
  - Most recently created test cases
  - Suites with case counts and owner names (suite list, runner picker)
  - Case selection and status summary for a multi-suite run
"""

import logging
import math

from qatrack.models.testing import ROLE_LABELS, ROLE_STATUS_FIELDS, TEST_STATUSES, normalize_role

logger = logging.getLogger(__name__)

RECENT_LIMIT = 5

# Columns the runner table can be sorted by (wire name -> attribute)
RUNNER_SORT_KEYS = {
    "testCaseId": "test_case_id",
    "title": "title",
    "priority": "priority",
    "status": None,  # resolved per role
}


def status_counts(test_cases, role: str = "qa") -> dict:
    attr = ROLE_STATUS_FIELDS[normalize_role(role)]
    counts = {status: 0 for status in TEST_STATUSES}
    for tc in test_cases:
        status = getattr(tc, attr)
        counts[status] = counts.get(status, 0) + 1
    return counts


def pass_rate(passed: int, total: int) -> int:
    """Whole-number percentage, halves rounded up; 0 for an empty set."""
    if total <= 0:
        return 0
    return math.floor(passed / total * 100 + 0.5)


def get_dashboard(store, role: str = "qa") -> dict:
    """Counters, pass rate and the five newest test cases for one role."""
    role = normalize_role(role)
    cases = store.test_cases
    counts = status_counts(cases, role)
    return {
        "role": role,
        "roleLabel": ROLE_LABELS[role],
        "total": len(cases),
        "counts": counts,
        "passRate": pass_rate(counts["Pass"], len(cases)),
        "recent": [tc.to_dict() for tc in cases[:RECENT_LIMIT]],
    }


def suite_summaries(store, *, include_hidden: bool = False) -> list:
    """Suites with case counts and owner names, in store order.

    Hidden suites are left out unless ``include_hidden``; the runner picker
    only offers visible ones.
    """
    cases = store.test_cases
    result = []
    for suite in store.test_suites:
        if suite.is_hidden and not include_hidden:
            continue
        entry = suite.to_dict()
        entry["caseCount"] = sum(1 for tc in cases if tc.test_suite_id == suite.id)
        entry["ownerName"] = store.display_name(suite.owner_id) if suite.owner_id else None
        result.append(entry)
    return result


def select_run_cases(store, suite_ids, *, role: str = "qa", sort_key: str | None = None,
                     direction: str | None = None) -> list:
    """Cases belonging to any of ``suite_ids``, optionally sorted.

    Without a sort the store's order (newest first) is kept.
    """
    selected = set(suite_ids or [])
    cases = [tc for tc in store.test_cases if tc.test_suite_id and tc.test_suite_id in selected]
    if sort_key and direction in ("asc", "desc"):
        if sort_key not in RUNNER_SORT_KEYS:
            logger.debug("Ignoring unknown runner sort key %s", sort_key)
            return cases
        attr = RUNNER_SORT_KEYS[sort_key] or ROLE_STATUS_FIELDS[normalize_role(role)]
        cases = sorted(cases, key=lambda tc: getattr(tc, attr) or "", reverse=direction == "desc")
    return cases


def get_run_overview(store, suite_ids, role: str = "qa", executor_id: str | None = None, **sort) -> dict:
    role = normalize_role(role)
    cases = select_run_cases(store, suite_ids, role=role, **sort)
    return {
        "role": role,
        "roleLabel": ROLE_LABELS[role],
        "executor": store.display_name(executor_id) if executor_id else None,
        "suiteIds": list(suite_ids or []),
        "total": len(cases),
        "counts": status_counts(cases, role),
        "cases": [tc.to_dict() for tc in cases],
    }
