"""
Load-time upgrades for persisted test case records.

Older clients stored one ``status`` per test case. The current shape keeps a
verdict per testing role (``qaStatus`` / ``uatStatus`` / ``batStatus``).
Upgrades run once, on the raw JSON objects, before records are built.

Record versions:
    1: single ``status`` field, no ``qaStatus``
    2: per-role statuses (current)
"""

import logging

from qatrack.models.testing import DEFAULT_STATUS

logger = logging.getLogger(__name__)

CURRENT_VERSION = 2


def detect_version(record: dict) -> int:
    if "status" in record and "qaStatus" not in record:
        return 1
    return CURRENT_VERSION


def _upgrade_v1_to_v2(record: dict) -> dict:
    """Move the legacy single status into qaStatus, preserving it exactly."""
    upgraded = dict(record)
    upgraded["qaStatus"] = upgraded.pop("status")
    upgraded.setdefault("uatStatus", DEFAULT_STATUS)
    upgraded.setdefault("batStatus", DEFAULT_STATUS)
    return upgraded


# from_version -> upgrade step producing from_version + 1
UPGRADE_STEPS = {
    1: _upgrade_v1_to_v2,
}


def upgrade_test_case_record(record: dict) -> dict:
    """Bring a single raw test case record up to CURRENT_VERSION.

    Raises:
        TypeError: when ``record`` is not a JSON object.
    """
    if not isinstance(record, dict):
        raise TypeError(f"test case record must be an object, got {type(record).__name__}")
    version = detect_version(record)
    while version < CURRENT_VERSION:
        record = UPGRADE_STEPS[version](record)
        version += 1
    return record


def upgrade_test_case_records(records: list) -> list:
    """Upgrade every record of a persisted collection; logs how many changed."""
    upgraded = []
    migrated = 0
    for record in records:
        if isinstance(record, dict) and detect_version(record) < CURRENT_VERSION:
            migrated += 1
        upgraded.append(upgrade_test_case_record(record))
    if migrated:
        logger.info("Upgraded %d legacy test case record(s) to version %d",
                    migrated, CURRENT_VERSION)
    return upgraded
