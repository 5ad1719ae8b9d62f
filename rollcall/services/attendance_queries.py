"""Attendance Queries — read models, record administration, and scan-token issuance.

Invariants:
    - Reads only ever return live (not soft-deleted) records
    - Soft delete and token issuance are permission-checked with the same role
      resolution as delegated check-ins
    - Recurring events need an occurrence date to mint a token; non-recurring
      events reject one. Token expiry = occurrence end.
    - Store errors become DOWNSTREAM_FAILURE, message unmodified
    - Occurrence listing spans at most MAX_OCCURRENCE_SPAN_DAYS and needs start <= end

Design Decisions:
    - Same tagged-dict contract as CheckInService so routes handle both alike
    - Occurrence listing expands dates in core and re-anchors instants per date
"""

import functools
import logging
from datetime import date, datetime

from rollcall.core.authorization import check_record_admin, check_token_issuer
from rollcall.core.credential_cache import CredentialCache
from rollcall.core.domain_types import ensure_aware
from rollcall.core.errors import (
    DatabaseError, ErrorCode, downstream_failure, failure, is_failure,
)
from rollcall.core.occurrence import (
    expand_occurrences, format_occurrence_ref, is_recurring,
    occurrence_for, parse_occurrence_ref, resolve_occurrence,
)
from rollcall.core.repository_protocols import (
    AttendanceRepository, Clock, EventRepository, RandomSource, RoleDirectory,
)
from rollcall.core.token_codec import issue_token
from rollcall.services.check_in import CheckInPolicy, locate_occurrence
from rollcall.services.team_roles import lookup_team_role

logger = logging.getLogger(__name__)

MAX_OCCURRENCE_SPAN_DAYS = 366


def _downstream(fn):
    @functools.wraps(fn)
    async def wrapper(self, *args, **kwargs):
        try:
            return await fn(self, *args, **kwargs)
        except DatabaseError as exc:
            logger.error(
                f"{fn.__name__} store failure: {exc.message}",
                extra={"operation": exc.operation},
            )
            return downstream_failure(exc)
    return wrapper


class AttendanceQueryService:
    """Attendance listings, history, soft delete, and QR token generation."""

    def __init__(
        self,
        events: EventRepository,
        attendance: AttendanceRepository,
        roles: RoleDirectory,
        clock: Clock,
        random_source: RandomSource,
        policy: CheckInPolicy | None = None,
        cache: CredentialCache | None = None,
    ):
        self._events = events
        self._attendance = attendance
        self._roles = roles
        self._clock = clock
        self._random = random_source
        self._policy = policy or CheckInPolicy()
        self._cache = cache or CredentialCache(
            clock.now,
            ttl_seconds=self._policy.cache_ttl_seconds,
            max_entries=self._policy.cache_max_entries,
        )

    async def _load_event(self, ref: str) -> dict:
        parsed = parse_occurrence_ref(ref)
        if is_failure(parsed):
            return parsed
        event = await self._events.get(parsed["event_id"])
        if event is None:
            return failure(ErrorCode.EVENT_NOT_FOUND, "Event not found")
        return {"status": "ok", "event": event, "instance_date": parsed["instance_date"]}

    # ─── Reads ───────────────────────────────────────────────────

    @_downstream
    async def list_event_attendance(self, ref: str, status: str | None = None) -> dict:
        """Live records of an event; one occurrence when the reference names a date."""
        loaded = await self._load_event(ref)
        if is_failure(loaded):
            return loaded
        event, instance_date = loaded["event"], loaded["instance_date"]
        if is_recurring(event) and instance_date is not None:
            records = await self._attendance.list_for_event(
                event["id"], instance_date, status=status,
            )
        else:
            records = await self._attendance.list_for_event(
                event["id"], all_instances=True, status=status,
            )
        return {"status": "ok", "records": records}

    @_downstream
    async def get_participant_status(
        self, ref: str, participant_id: str, instance_date: date | None = None,
    ) -> dict:
        located = await locate_occurrence(self._events, ref, instance_date)
        if is_failure(located):
            return located
        occurrence = located["occurrence"]
        record = await self._attendance.find_record(
            occurrence.event_id, participant_id, occurrence.instance_date,
        )
        return {
            "status": "ok",
            "attendance": {
                "status": record["status"] if record else None,
                "checked_in_at": record["checked_in_at"] if record else None,
            },
        }

    @_downstream
    async def get_attendance_history(
        self,
        participant_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> dict:
        records = await self._attendance.list_for_participant(
            participant_id, start, end,
        )
        return {"status": "ok", "records": records}

    @_downstream
    async def list_occurrences(
        self, event_id: str, range_start: date, range_end: date,
    ) -> dict:
        span_days = (range_end - range_start).days
        if span_days < 0 or span_days > MAX_OCCURRENCE_SPAN_DAYS:
            return failure(
                ErrorCode.INVALID_DATE_RANGE,
                f"Occurrence range must run forward and span at most "
                f"{MAX_OCCURRENCE_SPAN_DAYS} days",
                start=range_start.isoformat(), end=range_end.isoformat(),
            )
        event = await self._events.get(event_id)
        if event is None:
            return failure(ErrorCode.EVENT_NOT_FOUND, "Event not found")
        recurring = is_recurring(event)
        occurrences = []
        for day in expand_occurrences(event, range_start, range_end):
            occurrence = occurrence_for(event, day if recurring else None)
            occurrences.append({
                "ref": format_occurrence_ref(event["id"], occurrence.instance_date),
                "instance_date": occurrence.instance_date,
                "start": occurrence.start,
                "end": occurrence.end,
            })
        return {"status": "ok", "occurrences": occurrences}

    # ─── Administration ──────────────────────────────────────────

    @_downstream
    async def soft_delete_record(self, record_id: str, actor_id: str) -> dict:
        record = await self._attendance.get_by_id(record_id)
        if record is None:
            return failure(ErrorCode.ATTENDANCE_NOT_FOUND, "Attendance record not found")
        if record.get("is_deleted"):
            return failure(
                ErrorCode.ATTENDANCE_DELETED, "Attendance record already removed",
            )

        role = await lookup_team_role(
            self._roles, self._cache, record["team_id"], actor_id,
        )
        error = check_record_admin(role)
        if error:
            return error

        now = ensure_aware(self._clock.now())
        updated = await self._attendance.update(
            record_id,
            {"is_deleted": True, "deleted_by": actor_id, "deleted_at": now, "updated_at": now},
        )
        if updated is None:
            return failure(ErrorCode.NO_DATA, "Attendance delete returned no data")
        logger.info(
            f"Attendance record {record_id} removed",
            extra={"event_id": record["event_id"], "participant_id": record["participant_id"]},
        )
        return {"status": "ok", "record": updated}

    @_downstream
    async def generate_event_qr_token(
        self, ref: str, caller_id: str, instance_date: date | None = None,
    ) -> dict:
        loaded = await self._load_event(ref)
        if is_failure(loaded):
            return loaded
        event = loaded["event"]
        occurrence_date = loaded["instance_date"] or instance_date

        if is_recurring(event) and occurrence_date is None:
            return failure(
                ErrorCode.INSTANCE_DATE_REQUIRED,
                "An occurrence date is required for recurring events",
            )
        if not is_recurring(event) and occurrence_date is not None:
            return failure(
                ErrorCode.INVALID_INSTANCE_DATE,
                "Occurrence date is only valid for recurring events",
            )

        role = await lookup_team_role(
            self._roles, self._cache, event["team_id"], caller_id,
        )
        error = check_token_issuer(event, caller_id, role)
        if error:
            return error

        occurrence = resolve_occurrence(event, occurrence_date)
        token = issue_token(
            event["id"], event["team_id"], occurrence.end, occurrence.instance_date,
            now=ensure_aware(self._clock.now()),
            random_bytes=self._random.token_bytes,
            secret=self._policy.token_secret,
        )
        logger.info(
            "Scan token issued",
            extra={
                "event_id": event["id"],
                "participant_id": caller_id,
                "instance_date": occurrence.instance_date_str,
            },
        )
        return {
            "status": "ok",
            "qr_token": token,
            "expires_at": occurrence.end,
            "instance_date": occurrence.instance_date,
        }
