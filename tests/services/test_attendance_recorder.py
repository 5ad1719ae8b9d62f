"""AttendanceRecorder — pre-check, insert arbitration, and legacy repair.

Tests:
    - Two concurrent check-ins for one occurrence: exactly one succeeds
    - A live undated row on a now-recurring event is removed and the insert
      retried exactly once
    - Failed repair and failed retry both surface ALREADY_CHECKED_IN
    - Writes that return no row surface NO_DATA
"""

import asyncio
from datetime import date, timedelta
from unittest.mock import AsyncMock

import pytest

from rollcall.core.domain_types import CheckInMethod
from rollcall.core.errors import DatabaseError
from rollcall.services.attendance_recorder import (
    AttendanceRecorder, LegacyOccurrenceRepair,
)
from rollcall.services.check_in import CheckInCommand
from tests.services.fake_stores import (
    KICKOFF, InMemoryAttendanceRepository, north_of_field,
)

DAY = date(2025, 9, 8)


def _data(instance_date=DAY, participant_id="P1", event_id="W1") -> dict:
    return {
        "event_id": event_id,
        "instance_date": instance_date,
        "participant_id": participant_id,
        "team_id": "T1",
        "check_in_method": "geolocation",
        "checked_in_at": KICKOFF,
        "status": "present",
        "is_late": False,
        "late_minutes": None,
        "late_category": "on_time",
        "device_fingerprint": "dev-p1",
        "is_flagged": False,
        "flag_reason": None,
        "is_deleted": False,
    }


async def _record(recorder, data, *, method=CheckInMethod.GEOLOCATION,
                  explicit_status=None, recurring=True):
    return await recorder.record(
        data, method=method, explicit_status=explicit_status,
        event_is_recurring=recurring, now=KICKOFF,
    )


class _AlwaysRepaired:
    """Reports success without deleting anything."""

    def __init__(self):
        self.applied = []

    async def apply(self, legacy_record):
        self.applied.append(legacy_record["id"])
        return True


# ─── Concurrency ─────────────────────────────────────────────────

async def test_concurrent_check_ins_exactly_one_wins(service, attendance):
    lat, lon = north_of_field(10)
    command = CheckInCommand(
        method=CheckInMethod.GEOLOCATION, latitude=lat, longitude=lon,
        device_fingerprint="dev-p1",
    )
    results = await asyncio.gather(
        service.check_in("P1", "E1", command),
        service.check_in("P1", "E1", command),
    )
    outcomes = sorted(r.get("error_code", "ok") for r in results)
    assert outcomes == ["ALREADY_CHECKED_IN", "ok"]
    assert len(attendance.live()) == 1
    # Both passed the pre-check; the store arbitrated
    assert attendance.calls.count("insert") == 2


async def test_concurrent_recorder_inserts(attendance):
    recorder = AttendanceRecorder(attendance)
    results = await asyncio.gather(
        _record(recorder, _data()), _record(recorder, _data()),
    )
    assert sorted(r["status"] for r in results) == ["error", "ok"]
    assert attendance.calls.count("find_live_conflicts") == 1


async def test_different_participants_both_recorded(attendance):
    recorder = AttendanceRecorder(attendance)
    results = await asyncio.gather(
        _record(recorder, _data(participant_id="P1")),
        _record(recorder, _data(participant_id="P2")),
    )
    assert all(r["status"] == "ok" for r in results)


# ─── Legacy Repair ───────────────────────────────────────────────

async def test_legacy_undated_row_is_repaired_and_retried():
    attendance = InMemoryAttendanceRepository(legacy_unique_per_event=True)
    legacy = attendance.seed(event_id="W1", participant_id="P1", team_id="T1")
    recorder = AttendanceRecorder(attendance)

    result = await _record(recorder, _data())

    assert result["status"] == "ok"
    assert result["outcome"] == "inserted"
    assert result["record"]["instance_date"] == DAY
    assert legacy["id"] not in attendance.records
    assert attendance.calls.count("insert") == 2
    assert attendance.calls.count("hard_delete") == 1


async def test_legacy_row_kept_for_non_recurring_event():
    attendance = InMemoryAttendanceRepository(legacy_unique_per_event=True)
    legacy = attendance.seed(event_id="W1", participant_id="P1", team_id="T1")
    recorder = AttendanceRecorder(attendance)

    result = await _record(recorder, _data(), recurring=False)

    assert result["error_code"] == "ALREADY_CHECKED_IN"
    assert legacy["id"] in attendance.records
    assert "hard_delete" not in attendance.calls


async def test_failed_repair_is_already_checked_in():
    attendance = InMemoryAttendanceRepository(legacy_unique_per_event=True)
    attendance.seed(event_id="W1", participant_id="P1", team_id="T1")
    attendance.fail_on["hard_delete"] = DatabaseError("permission denied", "attendance delete")
    recorder = AttendanceRecorder(attendance)

    result = await _record(recorder, _data())

    assert result["error_code"] == "ALREADY_CHECKED_IN"
    assert "could not be reconciled" in result["message"]
    assert attendance.calls.count("insert") == 1


async def test_retry_is_attempted_only_once():
    attendance = InMemoryAttendanceRepository(legacy_unique_per_event=True)
    attendance.seed(event_id="W1", participant_id="P1", team_id="T1")
    repair = _AlwaysRepaired()
    recorder = AttendanceRecorder(attendance, repair)

    result = await _record(recorder, _data())

    assert result["error_code"] == "ALREADY_CHECKED_IN"
    assert len(repair.applied) == 1
    assert attendance.calls.count("insert") == 2


async def test_repair_reports_missing_row(attendance):
    repair = LegacyOccurrenceRepair(attendance)
    assert await repair.apply({"id": "R404", "event_id": "W1"}) is False


# ─── Pre-Check ───────────────────────────────────────────────────

async def test_existing_record_updated_in_place(attendance):
    existing = attendance.seed(
        event_id="W1", participant_id="P1", team_id="T1", instance_date=DAY,
    )
    recorder = AttendanceRecorder(attendance)
    now = KICKOFF + timedelta(hours=1)

    result = await recorder.record(
        _data(), method=CheckInMethod.OVERRIDE, explicit_status="late_10",
        event_is_recurring=True, now=now,
    )

    assert result["outcome"] == "updated"
    assert result["record"]["id"] == existing["id"]
    assert result["record"]["status"] == "late_10"
    assert result["record"]["late_category"] == "late_10"
    assert result["record"]["updated_at"] == now
    assert "insert" not in attendance.calls


async def test_soft_deleted_record_does_not_block(attendance):
    attendance.seed(
        event_id="W1", participant_id="P1", team_id="T1",
        instance_date=DAY, is_deleted=True,
    )
    result = await _record(AttendanceRecorder(attendance), _data())
    assert result["outcome"] == "inserted"


async def test_update_without_row_is_no_data(attendance):
    attendance.seed(event_id="W1", participant_id="P1", team_id="T1", instance_date=DAY)
    attendance.update = AsyncMock(return_value=None)
    result = await _record(
        AttendanceRecorder(attendance), _data(),
        method=CheckInMethod.OVERRIDE, explicit_status="excused",
    )
    assert result["error_code"] == "NO_DATA"


async def test_store_error_propagates(attendance):
    attendance.fail_on["find_record"] = DatabaseError("boom", "attendance lookup")
    recorder = AttendanceRecorder(attendance)
    with pytest.raises(DatabaseError) as exc_info:
        await _record(recorder, _data())
    assert exc_info.value.operation == "attendance lookup"
