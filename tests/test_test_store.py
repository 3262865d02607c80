"""
Tests for the domain store (qatrack.services.test_store).

Covers:
  - Seeding: one sample case on an empty backend, written back once
  - create_*: unique ids, newest first, defaults for status / priority / step ids
  - update_*: merge semantics, strictly increasing updatedAt, protected fields,
    unknown ids are a silent no-op
  - copy_test_case: "-COPY" / " (Copy)" labels, fields copied verbatim
  - delete_test_suite: cases detached atomically before subscribers run
  - toggle_test_suite_visibility, user CRUD, "Unknown" lookups
  - Restore from persisted JSON, fallback on malformed data, legacy upgrade
"""

import json
from datetime import datetime, timezone

import pytest

from qatrack.models.testing import TestStep, parse_timestamp
from qatrack.services.storage import MemoryStorage, StorageError
from qatrack.services.test_store import (
    SEED_TEST_CASE,
    STORAGE_KEY_CASES,
    STORAGE_KEY_SUITES,
    STORAGE_KEY_USERS,
    TestStore,
)


def _frozen_clock():
    moment = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    return lambda: moment


class _FailingStorage(MemoryStorage):
    """Accepts the initial write-back, then refuses every save."""

    def __init__(self):
        super().__init__()
        self.broken = False

    def set(self, key, value):
        if self.broken:
            raise StorageError(f"Could not persist {key}")
        super().set(key, value)


# ═════════════════════════════════════════════════════════════════════════════
# Seeding & restore
# ═════════════════════════════════════════════════════════════════════════════


class TestSeedAndRestore:
    def test_empty_backend_gets_seed_case(self):
        storage = MemoryStorage()
        store = TestStore(storage)
        assert len(store.test_cases) == 1
        seed = store.test_cases[0]
        assert seed.test_case_id == SEED_TEST_CASE["testCaseId"]
        assert [s.id for s in seed.steps] == ["s1", "s2", "s3", "s4", "s5"]
        assert store.test_suites == []
        assert store.users == []

    def test_seed_written_back_under_fixed_keys(self):
        storage = MemoryStorage()
        TestStore(storage)
        assert len(json.loads(storage.get(STORAGE_KEY_CASES))) == 1
        assert json.loads(storage.get(STORAGE_KEY_SUITES)) == []
        assert json.loads(storage.get(STORAGE_KEY_USERS)) == []

    def test_restart_restores_same_state(self):
        storage = MemoryStorage()
        first = TestStore(storage)
        first.create_test_suite({"name": "Smoke"})
        first.create_user({"name": "Ada", "roles": ["QA"]})

        second = TestStore(storage)
        assert [s.to_dict() for s in second.test_suites] == [s.to_dict() for s in first.test_suites]
        assert [u.to_dict() for u in second.users] == [u.to_dict() for u in first.users]
        assert [c.to_dict() for c in second.test_cases] == [c.to_dict() for c in first.test_cases]

    @pytest.mark.parametrize("raw", ["{not json", '{"a": 1}', "[1, 2]", '[{"title": "no id"}]'])
    def test_malformed_cases_fall_back_to_seed(self, raw):
        store = TestStore(MemoryStorage({STORAGE_KEY_CASES: raw}))
        assert [tc.test_case_id for tc in store.test_cases] == [SEED_TEST_CASE["testCaseId"]]

    def test_malformed_suites_fall_back_to_empty(self):
        storage = MemoryStorage({STORAGE_KEY_SUITES: "oops", STORAGE_KEY_USERS: '"str"'})
        store = TestStore(storage)
        assert store.test_suites == []
        assert store.users == []
        # Repaired state is persisted
        assert json.loads(storage.get(STORAGE_KEY_SUITES)) == []

    def test_persisted_empty_list_is_not_reseeded(self):
        store = TestStore(MemoryStorage({STORAGE_KEY_CASES: "[]"}))
        assert store.test_cases == []

    def test_legacy_status_upgraded_on_load(self):
        legacy = [{"id": "c1", "testCaseId": "TC-9", "title": "Old", "status": "Pass", "steps": []}]
        storage = MemoryStorage({STORAGE_KEY_CASES: json.dumps(legacy)})
        store = TestStore(storage)
        tc = store.get_test_case("c1")
        assert (tc.qa_status, tc.uat_status, tc.bat_status) == ("Pass", "Untested", "Untested")
        saved = json.loads(storage.get(STORAGE_KEY_CASES))[0]
        assert "status" not in saved
        assert saved["qaStatus"] == "Pass"

    def test_empty_legacy_status_kept_verbatim(self):
        legacy = [{"id": "x", "status": "", "steps": []}]
        store = TestStore(MemoryStorage({STORAGE_KEY_CASES: json.dumps(legacy)}))
        tc = store.get_test_case("x")
        assert (tc.qa_status, tc.uat_status, tc.bat_status) == ("", "Untested", "Untested")


# ═════════════════════════════════════════════════════════════════════════════
# Test cases
# ═════════════════════════════════════════════════════════════════════════════


class TestTestCaseMutations:
    def test_create_twice_newest_first_unique_ids(self, empty_store):
        empty_store.create_test_case({"title": "A"})
        cases = empty_store.create_test_case({"title": "B"})
        assert [tc.title for tc in cases] == ["B", "A"]
        assert cases[0].id != cases[1].id
        assert cases[0].created_at == cases[0].updated_at

    def test_create_applies_defaults(self, empty_store):
        tc = empty_store.create_test_case({"title": "Defaults", "steps": [{"action": "x"}]})[0]
        assert tc.priority == "Medium"
        assert (tc.qa_status, tc.uat_status, tc.bat_status) == ("Untested",) * 3
        assert tc.steps[0].id
        assert tc.steps[0].action == "x"

    def test_create_does_not_validate(self, empty_store):
        tc = empty_store.create_test_case({"title": "", "priority": "Urgent"})[0]
        assert tc.title == ""
        assert tc.priority == "Urgent"

    def test_create_ignores_protected_and_unknown_fields(self, empty_store):
        tc = empty_store.create_test_case({"id": "mine", "created_at": "x", "bogus": 1})[0]
        assert tc.id != "mine"
        assert tc.created_at != "x"

    def test_update_merges_and_refreshes_timestamp(self):
        store = TestStore(MemoryStorage(), clock=_frozen_clock())
        tc = store.create_test_case({"title": "Before", "priority": "Low"})[0]
        store.update_test_case(tc.id, {"title": "After"})
        updated = store.get_test_case(tc.id)
        assert updated.title == "After"
        assert updated.priority == "Low"
        assert updated.created_at == tc.created_at
        assert parse_timestamp(updated.updated_at) > parse_timestamp(tc.updated_at)

    def test_repeated_updates_strictly_increase(self):
        store = TestStore(MemoryStorage(), clock=_frozen_clock())
        tc = store.create_test_case({"title": "T"})[0]
        stamps = [tc.updated_at]
        for n in range(3):
            store.update_test_case(tc.id, {"title": f"T{n}"})
            stamps.append(store.get_test_case(tc.id).updated_at)
        parsed = [parse_timestamp(s) for s in stamps]
        assert parsed == sorted(parsed)
        assert len(set(parsed)) == len(parsed)

    def test_update_cannot_change_id_or_created_at(self, empty_store):
        tc = empty_store.create_test_case({"title": "T"})[0]
        empty_store.update_test_case(tc.id, {"id": "other", "created_at": "1999-01-01"})
        updated = empty_store.get_test_case(tc.id)
        assert updated is not None
        assert updated.created_at == tc.created_at

    def test_update_unknown_id_is_noop(self, empty_store):
        empty_store.create_test_case({"title": "T"})
        before = empty_store.test_cases
        after = empty_store.update_test_case("missing", {"title": "X"})
        assert after == before

    def test_update_steps_replaces_list(self, empty_store):
        tc = empty_store.create_test_case({"steps": [{"id": "1", "action": "a"}]})[0]
        empty_store.update_test_case(tc.id, {"steps": [TestStep("2", "b", "c")]})
        assert [s.id for s in empty_store.get_test_case(tc.id).steps] == ["2"]

    def test_delete_removes_and_unknown_is_noop(self, empty_store):
        tc = empty_store.create_test_case({"title": "T"})[0]
        assert empty_store.delete_test_case("missing") == [tc]
        assert empty_store.delete_test_case(tc.id) == []

    def test_copy_test_case(self, empty_store):
        tc = empty_store.create_test_case({
            "test_case_id": "TC-7",
            "title": "Checkout",
            "qa_status": "Fail",
            "steps": [{"id": "s1", "action": "Pay", "expected_result": "Paid"}],
        })[0]
        cases = empty_store.copy_test_case(tc.id)
        duplicate = cases[0]
        assert len(cases) == 2
        assert duplicate.id != tc.id
        assert duplicate.test_case_id == "TC-7-COPY"
        assert duplicate.title == "Checkout (Copy)"
        assert duplicate.qa_status == "Fail"
        assert duplicate.steps == tc.steps
        assert duplicate.created_at != tc.created_at

    def test_copy_unknown_is_noop(self, empty_store):
        assert empty_store.copy_test_case("missing") == []

    def test_every_mutation_persists(self):
        storage = MemoryStorage()
        store = TestStore(storage)
        tc = store.create_test_case({"title": "Saved"})[0]
        saved = json.loads(storage.get(STORAGE_KEY_CASES))
        assert saved[0]["id"] == tc.id
        assert saved[0]["title"] == "Saved"

    def test_failed_save_leaves_memory_untouched(self):
        storage = _FailingStorage()
        store = TestStore(storage)
        before = store.test_cases
        storage.broken = True
        with pytest.raises(StorageError):
            store.create_test_case({"title": "Lost"})
        assert store.test_cases == before


# ═════════════════════════════════════════════════════════════════════════════
# Test suites
# ═════════════════════════════════════════════════════════════════════════════


class TestTestSuiteMutations:
    def test_delete_suite_detaches_cases(self, empty_store):
        suite = empty_store.create_test_suite({"name": "S"})[0]
        other = empty_store.create_test_suite({"name": "Other"})[0]
        inside = empty_store.create_test_case({"title": "in", "test_suite_id": suite.id})[0]
        outside = empty_store.create_test_case({"title": "out", "test_suite_id": other.id})[0]

        suites = empty_store.delete_test_suite(suite.id)

        assert [s.id for s in suites] == [other.id]
        assert empty_store.get_test_case(inside.id).test_suite_id is None
        assert empty_store.get_test_case(inside.id).updated_at != inside.updated_at
        assert empty_store.get_test_case(outside.id) == outside
        assert all(tc.test_suite_id != suite.id for tc in empty_store.test_cases)

    def test_cascade_persisted_before_subscribers_run(self):
        storage = MemoryStorage()
        store = TestStore(storage)
        suite = store.create_test_suite({"name": "S"})[0]
        store.create_test_case({"title": "in", "test_suite_id": suite.id})
        seen = []

        def on_change(name, records):
            saved_cases = json.loads(storage.get(STORAGE_KEY_CASES))
            saved_suites = json.loads(storage.get(STORAGE_KEY_SUITES))
            seen.append((name, saved_suites, [c["testSuiteId"] for c in saved_cases]))

        store.subscribe(on_change)
        store.delete_test_suite(suite.id)

        assert {name for name, _, _ in seen} == {"test_suites", "test_cases"}
        for _, saved_suites, refs in seen:
            assert saved_suites == []
            assert suite.id not in refs

    def test_delete_unknown_suite_is_noop(self, empty_store):
        empty_store.create_test_suite({"name": "S"})
        assert len(empty_store.delete_test_suite("missing")) == 1

    def test_toggle_visibility(self, empty_store):
        suite = empty_store.create_test_suite({"name": "S"})[0]
        assert suite.is_hidden is False
        empty_store.toggle_test_suite_visibility(suite.id)
        assert empty_store.get_test_suite(suite.id).is_hidden is True
        empty_store.toggle_test_suite_visibility(suite.id)
        assert empty_store.get_test_suite(suite.id).is_hidden is False

    def test_empty_reference_normalized_to_none(self, empty_store):
        suite = empty_store.create_test_suite({"name": "S", "owner_id": "", "jira_number": ""})[0]
        assert suite.owner_id is None
        assert suite.jira_number is None

    def test_cases_for_suite(self, empty_store):
        suite = empty_store.create_test_suite({"name": "S"})[0]
        empty_store.create_test_case({"title": "a", "test_suite_id": suite.id})
        empty_store.create_test_case({"title": "b"})
        assert [tc.title for tc in empty_store.cases_for_suite(suite.id)] == ["a"]


# ═════════════════════════════════════════════════════════════════════════════
# Users & subscriptions
# ═════════════════════════════════════════════════════════════════════════════


class TestUsersAndSubscriptions:
    def test_user_roles_deduplicated(self, empty_store):
        user = empty_store.create_user({"name": "Ada", "roles": ["QA", "BSA", "QA"]})[0]
        assert user.roles == ["QA", "BSA"]

    def test_delete_user_does_not_cascade(self, empty_store):
        user = empty_store.create_user({"name": "Ada"})[0]
        suite = empty_store.create_test_suite({"name": "S", "owner_id": user.id})[0]
        empty_store.delete_user(user.id)
        assert empty_store.get_test_suite(suite.id).owner_id == user.id
        assert empty_store.display_name(user.id) == "Unknown"

    def test_display_name(self, empty_store):
        user = empty_store.create_user({"name": "Grace"})[0]
        assert empty_store.display_name(user.id) == "Grace"
        assert empty_store.display_name(None) == "Unknown"

    def test_update_user(self, empty_store):
        user = empty_store.create_user({"name": "Ada", "email": "a@x.io"})[0]
        empty_store.update_user(user.id, {"email": "ada@x.io"})
        updated = empty_store.get_user(user.id)
        assert (updated.name, updated.email) == ("Ada", "ada@x.io")

    def test_subscriber_receives_new_collection(self, empty_store):
        received = []
        unsubscribe = empty_store.subscribe(lambda name, records: received.append((name, records)))
        cases = empty_store.create_test_case({"title": "T"})
        assert received == [("test_cases", cases)]

        unsubscribe()
        empty_store.create_test_case({"title": "U"})
        assert len(received) == 1

    def test_failing_subscriber_does_not_break_mutation(self, empty_store):
        def boom(name, records):
            raise RuntimeError("subscriber down")

        empty_store.subscribe(boom)
        cases = empty_store.create_test_suite({"name": "S"})
        assert len(cases) == 1

    def test_returned_list_is_a_snapshot(self, empty_store):
        cases = empty_store.create_test_case({"title": "T"})
        cases.clear()
        assert len(empty_store.test_cases) == 1
