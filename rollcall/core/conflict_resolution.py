"""Conflict Resolution — pure decisions behind the attendance recorder's state machine.

States:
    NoRecord → Inserted
    NoRecord → Conflict → Reconciled → Inserted   (legacy null-date row removed, one retry)
    Existing → UpdatedInPlace                      (override with explicit status)

Invariants:
    - An existing live record is only ever edited by an override carrying a status
    - After a uniqueness violation, an exact occurrence-key match means another
      writer won: ALREADY_CHECKED_IN
    - Only a live null-date row on a now-recurring event is repairable
    - Every other conflict shape is ALREADY_CHECKED_IN — never retried
"""

from datetime import date

from rollcall.core.domain_types import CheckInMethod
from rollcall.core.errors import ErrorCode, failure

UPDATE_IN_PLACE = "update_in_place"
ALREADY_CHECKED_IN = "already_checked_in"
REPAIR_LEGACY = "repair_legacy"


def already_checked_in(message: str = "Already checked in to this event") -> dict:
    return failure(ErrorCode.ALREADY_CHECKED_IN, message)


def decide_existing(
    method: CheckInMethod, explicit_status: str | None,
) -> str:
    """What to do when a live record already exists for the occurrence key."""
    if method is CheckInMethod.OVERRIDE and explicit_status:
        return UPDATE_IN_PLACE
    return ALREADY_CHECKED_IN


def _record_date(record: dict) -> date | None:
    value = record.get("instance_date")
    if isinstance(value, str):
        return date.fromisoformat(value)
    return value


def classify_conflict(
    rows: list[dict], instance_date: date | None, event_is_recurring: bool,
) -> dict:
    """Decide the next step after a uniqueness violation.

    rows: live records for (event, participant) whose instance_date equals
    the attempted key or is null.
    """
    for row in rows:
        if _record_date(row) == instance_date:
            return {"action": ALREADY_CHECKED_IN, "record": row}

    if event_is_recurring and instance_date is not None:
        for row in rows:
            if _record_date(row) is None:
                return {"action": REPAIR_LEGACY, "record": row}

    return {"action": ALREADY_CHECKED_IN, "record": None}
