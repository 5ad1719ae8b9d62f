"""Attendance Recorder — conflict-safe persistence of check-ins and check-outs.

Invariants:
    - The store's unique indexes are the only concurrency primitive: no locks,
      the pre-check is an optimisation, the insert is the arbiter
    - A uniqueness violation is reconciled at most once: one legacy repair,
      one retried insert, never a loop
    - The legacy repair is its own step (LegacyOccurrenceRepair) and the only
      hard delete in the system
    - A write that reports success without a row yields NO_DATA
    - DatabaseError propagates to the caller; the orchestrator maps it

Design Decisions:
    - Decisions (what to do with an existing row, how to read a conflict)
      live in core/conflict_resolution.py; this module only sequences IO
    - CheckOutRecorder reads with include_deleted so a soft-deleted record
      reports ATTENDANCE_DELETED instead of ATTENDANCE_NOT_FOUND
"""

import logging
from datetime import datetime

from rollcall.core.conflict_resolution import (
    ALREADY_CHECKED_IN, UPDATE_IN_PLACE,
    already_checked_in, classify_conflict, decide_existing,
)
from rollcall.core.domain_types import CheckInMethod
from rollcall.core.errors import (
    DatabaseError, DuplicateAttendanceError, ErrorCode, failure,
)
from rollcall.core.repository_protocols import AttendanceRepository
from rollcall.core.status_classifier import explicit_status_fields

logger = logging.getLogger(__name__)


def _no_data(operation: str) -> dict:
    return failure(ErrorCode.NO_DATA, f"Attendance {operation} returned no data")


def _log_extra(data: dict, **more) -> dict:
    instance_date = data.get("instance_date")
    return {
        "event_id": data.get("event_id"),
        "participant_id": data.get("participant_id"),
        "instance_date": instance_date.isoformat() if instance_date else None,
        **more,
    }


class LegacyOccurrenceRepair:
    """Removes a live undated row left over from before an event became recurring."""

    def __init__(self, attendance: AttendanceRepository):
        self._attendance = attendance

    async def apply(self, legacy_record: dict) -> bool:
        """Hard-delete the legacy row. False when the delete failed or found nothing."""
        try:
            deleted = await self._attendance.hard_delete(legacy_record["id"])
        except DatabaseError as exc:
            logger.error(
                f"Legacy attendance repair failed: {exc.message}",
                extra=_log_extra(legacy_record, operation="legacy repair"),
            )
            return False
        if deleted:
            logger.warning(
                f"Removed legacy undated attendance record {legacy_record['id']}",
                extra=_log_extra(legacy_record),
            )
        return deleted


class AttendanceRecorder:
    """NoRecord → Inserted | Conflict → Reconciled → Inserted, or UpdatedInPlace."""

    def __init__(
        self,
        attendance: AttendanceRepository,
        repair: LegacyOccurrenceRepair | None = None,
    ):
        self._attendance = attendance
        self._repair = repair or LegacyOccurrenceRepair(attendance)

    async def record(
        self,
        data: dict,
        *,
        method: CheckInMethod,
        explicit_status: str | None,
        event_is_recurring: bool,
        now: datetime,
    ) -> dict:
        """Persist a check-in built by the orchestrator. Returns ok dict or failure."""
        existing = await self._attendance.find_record(
            data["event_id"], data["participant_id"], data["instance_date"],
        )
        if existing:
            if decide_existing(method, explicit_status) == UPDATE_IN_PLACE:
                return await self._update_status(existing, explicit_status, now)
            return already_checked_in()
        return await self._insert(data, event_is_recurring)

    async def _update_status(
        self, existing: dict, explicit_status: str, now: datetime,
    ) -> dict:
        updated = await self._attendance.update(
            existing["id"],
            {**explicit_status_fields(explicit_status), "updated_at": now},
        )
        if updated is None:
            return _no_data("update")
        return {"status": "ok", "record": updated, "outcome": "updated"}

    async def _insert(self, data: dict, event_is_recurring: bool) -> dict:
        try:
            row = await self._attendance.insert(data)
        except DuplicateAttendanceError:
            return await self._reconcile(data, event_is_recurring)
        return self._inserted(row)

    async def _reconcile(self, data: dict, event_is_recurring: bool) -> dict:
        rows = await self._attendance.find_live_conflicts(
            data["event_id"], data["participant_id"], data["instance_date"],
        )
        decision = classify_conflict(rows, data["instance_date"], event_is_recurring)
        if decision["action"] == ALREADY_CHECKED_IN:
            logger.info(
                "Concurrent check-in lost the uniqueness race",
                extra=_log_extra(data, error_code=ErrorCode.ALREADY_CHECKED_IN.value),
            )
            return already_checked_in()

        if not await self._repair.apply(decision["record"]):
            return already_checked_in(
                "Already checked in. A previous record for this event could "
                "not be reconciled; contact your coach",
            )
        try:
            row = await self._attendance.insert(data)
        except DuplicateAttendanceError:
            logger.info(
                "Retried insert after legacy repair still conflicted",
                extra=_log_extra(data, attempt=2),
            )
            return already_checked_in()
        return self._inserted(row)

    @staticmethod
    def _inserted(row: dict | None) -> dict:
        if row is None:
            return _no_data("insert")
        return {"status": "ok", "record": row, "outcome": "inserted"}


class CheckOutRecorder:
    """Stamps checked_out_at on the live record of an occurrence."""

    def __init__(self, attendance: AttendanceRepository):
        self._attendance = attendance

    async def check_out(
        self,
        event_id: str,
        participant_id: str,
        instance_date,
        now: datetime,
    ) -> dict:
        record = await self._attendance.find_record(
            event_id, participant_id, instance_date, include_deleted=True,
        )
        if record is None:
            return failure(
                ErrorCode.ATTENDANCE_NOT_FOUND,
                "You haven't checked in to this event",
            )
        if record.get("is_deleted"):
            return failure(
                ErrorCode.ATTENDANCE_DELETED,
                "This attendance record was removed",
            )
        if record.get("checked_out_at"):
            return failure(
                ErrorCode.ALREADY_CHECKED_OUT,
                "Already checked out of this event",
            )

        updated = await self._attendance.update(
            record["id"], {"checked_out_at": now, "updated_at": now},
        )
        if updated is None:
            return _no_data("check-out")
        return {"status": "ok", "record": updated}
