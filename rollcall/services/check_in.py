"""Check-In Service — orchestrates one check-in from occurrence reference to stored record.

Invariants:
    - Stage order: resolve occurrence → authorize → validate credentials →
      classify status + integrity flags → record. First failure halts the call.
    - Authorization is decided before anything is written
    - Override skips the credential check and the time window; it is never flagged
    - Integrity flag lookups are best-effort: a failing lookup is logged and the
      check-in proceeds unflagged
    - Store errors other than the uniqueness signal become DOWNSTREAM_FAILURE
      with the store's message unmodified, never retried
    - "now" is read once per call from the injected Clock

Design Decisions:
    - One service instance per request: the CredentialCache it owns lives exactly
      as long as the call context (role lookups and token decodes are memoised)
    - Pure stages are chained with `or` (first error wins), same as the core checks
    - CheckInPolicy carries the tunables so tests can pin them without settings
"""

import logging
import math
from dataclasses import dataclass
from datetime import date

from rollcall.core.authorization import (
    check_delegation_role, check_group_membership, check_manual_payload,
    check_method_allowed, is_delegated, requires_group_check,
)
from rollcall.core.credential_cache import CredentialCache
from rollcall.core.credential_validator import (
    DEFAULT_RADIUS_M, GRACE_PERIOD_MINUTES, distance_from_event,
    validate_credentials,
)
from rollcall.core.domain_types import CheckInMethod, Occurrence, ensure_aware
from rollcall.core.errors import (
    DatabaseError, ErrorCode, downstream_failure, failure, is_failure,
)
from rollcall.core.integrity import (
    GPS_MISMATCH_MULTIPLIER, compose_flags, gps_mismatch_reason,
)
from rollcall.core.occurrence import (
    is_recurring, parse_occurrence_ref, resolve_occurrence,
)
from rollcall.core.repository_protocols import (
    AttendanceRepository, Clock, EventRepository, GroupDirectory, RoleDirectory,
)
from rollcall.core.status_classifier import classify_status
from rollcall.core.token_codec import verify_token
from rollcall.services.attendance_recorder import (
    AttendanceRecorder, CheckOutRecorder,
)
from rollcall.services.team_roles import lookup_team_role

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckInPolicy:
    default_radius_m: float = DEFAULT_RADIUS_M
    grace_minutes: int = GRACE_PERIOD_MINUTES
    gps_mismatch_multiplier: float = GPS_MISMATCH_MULTIPLIER
    token_secret: str | None = None
    cache_ttl_seconds: float = 30
    cache_max_entries: int = 256

    @classmethod
    def from_settings(cls, settings) -> "CheckInPolicy":
        return cls(
            default_radius_m=settings.checkin_default_radius_m,
            grace_minutes=settings.checkin_grace_minutes,
            gps_mismatch_multiplier=settings.gps_mismatch_multiplier,
            token_secret=settings.qr_token_secret,
            cache_ttl_seconds=settings.credential_cache_ttl_seconds,
            cache_max_entries=settings.credential_cache_max_entries,
        )


@dataclass(frozen=True)
class CheckInCommand:
    """What the caller submitted, already parsed into domain types."""
    method: CheckInMethod
    instance_date: date | None = None
    target_participant_id: str | None = None
    status: str | None = None
    token: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    device_fingerprint: str | None = None


async def locate_occurrence(
    events: EventRepository, ref: str, explicit_date: date | None,
) -> dict:
    """Reference → {"status": "ok", "event", "occurrence"} or failure."""
    parsed = parse_occurrence_ref(ref)
    if is_failure(parsed):
        return parsed
    event = await events.get(parsed["event_id"])
    if event is None:
        return failure(ErrorCode.EVENT_NOT_FOUND, "Event not found")

    ref_date = parsed["instance_date"]
    if ref_date and explicit_date and ref_date != explicit_date:
        logger.warning(
            f"Occurrence date {explicit_date} ignored, reference names {ref_date}",
            extra={"event_id": event["id"], "instance_date": ref_date.isoformat()},
        )
    return {
        "status": "ok",
        "event": event,
        "occurrence": resolve_occurrence(event, ref_date, explicit_date),
    }


class CheckInService:
    """Check-in and check-out for one request."""

    def __init__(
        self,
        events: EventRepository,
        attendance: AttendanceRepository,
        roles: RoleDirectory,
        groups: GroupDirectory,
        clock: Clock,
        policy: CheckInPolicy | None = None,
        cache: CredentialCache | None = None,
    ):
        self._events = events
        self._attendance = attendance
        self._roles = roles
        self._groups = groups
        self._clock = clock
        self._policy = policy or CheckInPolicy()
        self._cache = cache or CredentialCache(
            clock.now,
            ttl_seconds=self._policy.cache_ttl_seconds,
            max_entries=self._policy.cache_max_entries,
        )
        self._recorder = AttendanceRecorder(attendance)
        self._checkout = CheckOutRecorder(attendance)

    # ─── Public API ──────────────────────────────────────────────

    async def check_in(
        self, caller_id: str, ref: str, command: CheckInCommand,
    ) -> dict:
        try:
            return await self._check_in(caller_id, ref, command)
        except DatabaseError as exc:
            logger.error(
                f"Check-in store failure: {exc.message}",
                extra={
                    "participant_id": caller_id,
                    "operation": exc.operation,
                    "error_code": ErrorCode.DOWNSTREAM_FAILURE.value,
                },
            )
            return downstream_failure(exc)

    async def check_out(
        self, caller_id: str, ref: str, instance_date: date | None = None,
    ) -> dict:
        try:
            located = await locate_occurrence(self._events, ref, instance_date)
            if is_failure(located):
                return located
            occurrence = located["occurrence"]
            return await self._checkout.check_out(
                occurrence.event_id, caller_id, occurrence.instance_date,
                ensure_aware(self._clock.now()),
            )
        except DatabaseError as exc:
            logger.error(
                f"Check-out store failure: {exc.message}",
                extra={"participant_id": caller_id, "operation": exc.operation},
            )
            return downstream_failure(exc)

    # ─── Pipeline ────────────────────────────────────────────────

    async def _check_in(
        self, caller_id: str, ref: str, command: CheckInCommand,
    ) -> dict:
        located = await locate_occurrence(self._events, ref, command.instance_date)
        if is_failure(located):
            return self._rejected(located, caller_id, command)
        event, occurrence = located["event"], located["occurrence"]

        method = command.method
        participant_id = caller_id
        if method is CheckInMethod.OVERRIDE and command.target_participant_id:
            participant_id = command.target_participant_id

        error = (
            check_method_allowed(event, method)
            or check_manual_payload(method, command.latitude, command.longitude)
            or await self._authorize(event, method, caller_id, participant_id)
        )
        if error:
            return self._rejected(error, caller_id, command, occurrence)

        now = ensure_aware(self._clock.now())
        verification = None
        if method is CheckInMethod.TOKEN and command.token:
            verification = self._verify_token(command.token, now)
        error = validate_credentials(
            method, event, occurrence, now,
            token_verification=verification,
            latitude=command.latitude,
            longitude=command.longitude,
            default_radius=self._policy.default_radius_m,
            grace_minutes=self._policy.grace_minutes,
        )
        if error:
            return self._rejected(error, caller_id, command, occurrence)

        explicit_status = command.status if method is CheckInMethod.OVERRIDE else None
        status_fields = classify_status(now, occurrence.start, explicit_status)
        is_flagged, flag_reason = await self._integrity_flags(
            event, occurrence, participant_id, command,
        )
        data = self._build_record(
            event, occurrence, participant_id, command, now,
            {**status_fields, "is_flagged": is_flagged, "flag_reason": flag_reason},
        )

        result = await self._recorder.record(
            data,
            method=method,
            explicit_status=explicit_status,
            event_is_recurring=is_recurring(event),
            now=now,
        )
        if is_failure(result):
            return self._rejected(result, caller_id, command, occurrence)
        logger.info(
            f"Checked in ({result['outcome']}) as {result['record']['status']}",
            extra=self._log_extra(participant_id, command, occurrence),
        )
        return result

    async def _authorize(
        self, event: dict, method: CheckInMethod, caller_id: str, participant_id: str,
    ) -> dict | None:
        if is_delegated(method, caller_id, participant_id):
            role = await lookup_team_role(
                self._roles, self._cache, event["team_id"], caller_id,
            )
            return check_delegation_role(role)

        if not requires_group_check(event):
            return None
        assigned = list(event["assigned_attendance_groups"])
        member_ids = await self._groups.member_group_ids(caller_id, assigned)
        if member_ids.intersection(assigned):
            return None
        names = await self._groups.group_names(assigned)
        return check_group_membership(event, member_ids, names)

    def _verify_token(self, token: str, now) -> dict:
        key = ("token", token)
        cached = self._cache.get(key)
        if cached is not None and (
            not cached["valid"] or cached["payload"].expires_at >= now
        ):
            return cached
        verification = verify_token(token, now=now, secret=self._policy.token_secret)
        self._cache.put(key, verification)
        return verification

    async def _integrity_flags(
        self,
        event: dict,
        occurrence: Occurrence,
        participant_id: str,
        command: CheckInCommand,
    ) -> tuple[bool, str | None]:
        method = command.method
        if method is CheckInMethod.OVERRIDE:
            return False, None

        device_conflict = False
        if command.device_fingerprint:
            try:
                rows = await self._attendance.find_device_conflicts(
                    event["id"], occurrence.instance_date,
                    command.device_fingerprint, participant_id,
                )
                device_conflict = bool(rows)
            except Exception as exc:
                logger.warning(
                    f"Device conflict lookup failed, proceeding unflagged: {exc}",
                    extra=self._log_extra(participant_id, command, occurrence),
                )

        gps_reason = gps_mismatch_reason(
            method, event, command.latitude, command.longitude,
            self._policy.default_radius_m, self._policy.gps_mismatch_multiplier,
        )
        is_flagged, reason = compose_flags(method, device_conflict, gps_reason)
        if is_flagged:
            logger.warning(
                f"Check-in flagged: {reason}",
                extra=self._log_extra(participant_id, command, occurrence),
            )
        return is_flagged, reason

    @staticmethod
    def _build_record(
        event: dict,
        occurrence: Occurrence,
        participant_id: str,
        command: CheckInCommand,
        now,
        derived: dict,
    ) -> dict:
        self_service = command.method is not CheckInMethod.OVERRIDE
        distance = math.nan
        if self_service:
            distance = distance_from_event(event, command.latitude, command.longitude)
        return {
            "event_id": event["id"],
            "instance_date": occurrence.instance_date,
            "participant_id": participant_id,
            "team_id": event["team_id"],
            "check_in_method": command.method.value,
            "checked_in_at": now,
            **derived,
            "check_in_latitude": command.latitude if self_service else None,
            "check_in_longitude": command.longitude if self_service else None,
            "distance_from_event": None if math.isnan(distance) else distance,
            "device_fingerprint": command.device_fingerprint if self_service else None,
            "is_deleted": False,
            "created_at": now,
            "updated_at": now,
        }

    # ─── Logging ─────────────────────────────────────────────────

    @staticmethod
    def _log_extra(
        participant_id: str,
        command: CheckInCommand,
        occurrence: Occurrence | None = None,
    ) -> dict:
        return {
            "event_id": occurrence.event_id if occurrence else None,
            "instance_date": occurrence.instance_date_str if occurrence else None,
            "participant_id": participant_id,
            "method": command.method.value,
        }

    def _rejected(
        self,
        error: dict,
        caller_id: str,
        command: CheckInCommand,
        occurrence: Occurrence | None = None,
    ) -> dict:
        logger.info(
            f"Check-in rejected: {error['message']}",
            extra={
                **self._log_extra(caller_id, command, occurrence),
                "error_code": error["error_code"],
            },
        )
        return error
