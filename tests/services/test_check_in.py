"""CheckInService — end-to-end pipeline over the in-memory stores.

Tests:
    - Time window with grace period (17:16 rejected, 17:14 very_late / 134 min)
    - Geolocation radius (150 m rejected, 90 m admitted with distance)
    - Self-service vs. delegated authorization
    - Integrity flags, best-effort device lookup
    - Store failures surface as DOWNSTREAM_FAILURE, unmodified
    - Occurrence reference suffix wins over the explicit date
"""

from datetime import date, timedelta

import pytest

from rollcall.core.domain_types import CheckInMethod
from rollcall.core.errors import DatabaseError
from rollcall.core.token_codec import issue_token
from rollcall.services.check_in import CheckInCommand
from tests.services.fake_stores import KICKOFF, CountingRandom, north_of_field

TOKEN = CheckInMethod.TOKEN
GEO = CheckInMethod.GEOLOCATION
OVERRIDE = CheckInMethod.OVERRIDE


def _token(event_id="E1", instance_date=None, expires_at=None, team_id="T1"):
    return issue_token(
        event_id, team_id, expires_at or KICKOFF + timedelta(hours=3), instance_date,
        now=KICKOFF, random_bytes=CountingRandom().token_bytes,
    )


def _scan(token=None, **kwargs):
    return CheckInCommand(
        method=TOKEN, token=token or _token(), device_fingerprint="dev-p1", **kwargs,
    )


def _at(metres, **kwargs):
    lat, lon = north_of_field(metres)
    return CheckInCommand(
        method=GEO, latitude=lat, longitude=lon, device_fingerprint="dev-p1", **kwargs,
    )


# ─── Time Window & Status ────────────────────────────────────────

async def test_token_after_grace_period_is_rejected(service, fixed_clock, attendance):
    fixed_clock.current = KICKOFF + timedelta(hours=2, minutes=16)
    result = await service.check_in("P1", "E1", _scan())
    assert result["error_code"] == "EVENT_ENDED"
    assert attendance.records == {}


async def test_token_inside_grace_period_is_very_late(service, fixed_clock):
    fixed_clock.current = KICKOFF + timedelta(hours=2, minutes=14)
    result = await service.check_in("P1", "E1", _scan())
    assert result["status"] == "ok"
    record = result["record"]
    assert record["status"] == "very_late"
    assert record["is_late"] is True
    assert record["late_minutes"] == 134
    assert record["late_category"] == "very_late"


async def test_on_time_check_in_is_present(service):
    result = await service.check_in("P1", "E1", _scan())
    record = result["record"]
    assert result["outcome"] == "inserted"
    assert record["status"] == "present"
    assert record["late_minutes"] is None
    assert record["late_category"] == "on_time"
    assert record["check_in_method"] == "token"
    assert record["team_id"] == "T1"
    assert record["instance_date"] is None


async def test_second_check_in_is_already_checked_in(service):
    await service.check_in("P1", "E1", _scan())
    result = await service.check_in("P1", "E1", _scan())
    assert result["error_code"] == "ALREADY_CHECKED_IN"


# ─── Geolocation ─────────────────────────────────────────────────

async def test_geolocation_outside_radius_is_rejected(service):
    result = await service.check_in("P1", "E1", _at(150))
    assert result["error_code"] == "OUT_OF_RANGE"
    assert result["distance"] == pytest.approx(150, abs=0.01)
    assert result["radius"] == 100


async def test_geolocation_inside_radius_records_distance(service):
    result = await service.check_in("P1", "E1", _at(90))
    record = result["record"]
    assert record["distance_from_event"] == pytest.approx(90, abs=0.01)
    assert record["check_in_latitude"] == pytest.approx(north_of_field(90)[0])
    assert record["is_flagged"] is False


async def test_geolocation_without_coordinates(service):
    command = CheckInCommand(method=GEO, device_fingerprint="dev-p1")
    result = await service.check_in("P1", "E1", command)
    assert result["error_code"] == "LOCATION_REQUIRED"


async def test_geolocation_event_without_location(service, events):
    events.events["E1"].update(latitude=None, longitude=None)
    result = await service.check_in("P1", "E1", _at(10))
    assert result["error_code"] == "EVENT_LOCATION_NOT_SET"


# ─── Tokens ──────────────────────────────────────────────────────

async def test_missing_token(service):
    command = CheckInCommand(method=TOKEN, device_fingerprint="dev-p1")
    result = await service.check_in("P1", "E1", command)
    assert result["error_code"] == "QR_INVALID"
    assert "missing_token" in result["message"]


async def test_expired_token(service):
    token = _token(expires_at=KICKOFF - timedelta(minutes=1))
    result = await service.check_in("P1", "E1", _scan(token))
    assert result["error_code"] == "QR_INVALID"
    assert "expired" in result["message"]


async def test_token_for_other_event(service):
    result = await service.check_in("P1", "E1", _scan(_token(event_id="W1")))
    assert result["error_code"] == "QR_MISMATCH"


async def test_token_for_other_occurrence(service, fixed_clock):
    fixed_clock.current = KICKOFF + timedelta(days=14)
    token = issue_token(
        "W1", "T1", fixed_clock.current + timedelta(hours=3), "2025-09-08",
        now=fixed_clock.current, random_bytes=CountingRandom().token_bytes,
    )
    result = await service.check_in("P1", "W1:2025-09-15", _scan(token))
    assert result["error_code"] == "QR_INSTANCE_MISMATCH"
    assert "Expected: 2025-09-15, Got: 2025-09-08" in result["message"]


async def test_recurring_event_without_date_uses_template_date(service):
    token = _token(event_id="W1", instance_date="2025-09-01")
    result = await service.check_in("P1", "W1", _scan(token))
    assert result["record"]["instance_date"] == date(2025, 9, 1)


# ─── Occurrence Reference ────────────────────────────────────────

async def test_reference_suffix_wins_over_explicit_date(service, fixed_clock):
    fixed_clock.current = KICKOFF + timedelta(days=7)
    result = await service.check_in(
        "P1", "W1:2025-09-08", _at(10, instance_date=date(2025, 9, 15)),
    )
    assert result["record"]["instance_date"] == date(2025, 9, 8)
    assert result["record"]["status"] == "present"


async def test_explicit_date_used_without_suffix(service, fixed_clock):
    fixed_clock.current = KICKOFF + timedelta(days=7, minutes=5)
    result = await service.check_in("P1", "W1", _at(10, instance_date=date(2025, 9, 8)))
    record = result["record"]
    assert record["instance_date"] == date(2025, 9, 8)
    assert record["status"] == "late_10"
    assert record["late_minutes"] == 5


async def test_non_recurring_event_ignores_dates(service):
    result = await service.check_in("P1", "E1:2025-09-01", _at(10))
    assert result["record"]["instance_date"] is None


async def test_unknown_event(service):
    result = await service.check_in("P1", "NOPE", _at(10))
    assert result["error_code"] == "EVENT_NOT_FOUND"


async def test_malformed_reference(service):
    result = await service.check_in("P1", "E1:yesterday", _at(10))
    assert result["error_code"] == "INVALID_OCCURRENCE_REF"


# ─── Authorization ───────────────────────────────────────────────

async def test_group_member_may_self_check_in(service):
    result = await service.check_in("P1", "G1", _at(10))
    assert result["status"] == "ok"


async def test_non_member_rejected_with_group_names(service, groups):
    result = await service.check_in("P2", "G1", _at(10))
    assert result["error_code"] == "NOT_IN_GROUP"
    assert result["groups"] == ["Defense"]
    assert "Defense" in result["message"]


async def test_member_lookup_skips_names_when_admitted(service, groups):
    await service.check_in("P1", "G1", _at(10))
    assert groups.calls == ["member_group_ids"]


async def test_qualified_caller_may_mark_non_member(service):
    command = CheckInCommand(method=OVERRIDE, target_participant_id="P2", status="present")
    result = await service.check_in("C1", "G1", command)
    assert result["status"] == "ok"
    assert result["record"]["participant_id"] == "P2"


async def test_unqualified_caller_may_not_mark_others(service, attendance):
    command = CheckInCommand(method=OVERRIDE, target_participant_id="P2", status="present")
    result = await service.check_in("P1", "G1", command)
    assert result["error_code"] == "PERMISSION_DENIED"
    assert result["role"] == "player"
    assert attendance.records == {}


async def test_membership_row_fallback_grants_admin(service, roles):
    roles.members[("T1", "A1")] = {"role": "player", "is_admin": True}
    command = CheckInCommand(method=OVERRIDE, target_participant_id="P2")
    result = await service.check_in("A1", "E1", command)
    assert result["status"] == "ok"


async def test_role_lookup_is_cached_within_service(service, roles):
    for target in ("P1", "P2"):
        command = CheckInCommand(method=OVERRIDE, target_participant_id=target)
        await service.check_in("C1", "E1", command)
    assert roles.calls.count("get_team_role") == 1


async def test_self_override_goes_through_group_check(service):
    result = await service.check_in("P2", "G1", CheckInCommand(method=OVERRIDE))
    assert result["error_code"] == "NOT_IN_GROUP"


async def test_override_with_coordinates_rejected(service):
    command = CheckInCommand(
        method=OVERRIDE, target_participant_id="P2", latitude=40.0, longitude=-75.0,
    )
    result = await service.check_in("C1", "E1", command)
    assert result["error_code"] == "INVALID_MANUAL_CHECKIN"


async def test_disabled_method_rejected(service, events):
    events.events["E1"]["check_in_methods"] = ["token"]
    result = await service.check_in("P1", "E1", _at(10))
    assert result["error_code"] == "METHOD_NOT_ALLOWED"


# ─── Override ────────────────────────────────────────────────────

async def test_override_skips_time_window_and_stores_no_location(service, fixed_clock):
    fixed_clock.current = KICKOFF + timedelta(days=2)
    command = CheckInCommand(
        method=OVERRIDE, target_participant_id="P2", status="late_30",
        device_fingerprint="ignored",
    )
    result = await service.check_in("C1", "E1", command)
    record = result["record"]
    assert record["status"] == "late_30"
    assert record["is_late"] is True
    assert record["late_minutes"] is None
    assert record["device_fingerprint"] is None
    assert record["check_in_latitude"] is None
    assert record["distance_from_event"] is None
    assert record["is_flagged"] is False


async def test_override_without_status_is_classified(service, fixed_clock):
    fixed_clock.current = KICKOFF + timedelta(minutes=20)
    command = CheckInCommand(method=OVERRIDE, target_participant_id="P2")
    result = await service.check_in("C1", "E1", command)
    assert result["record"]["status"] == "late_30"
    assert result["record"]["late_minutes"] == 20


async def test_override_with_status_updates_existing_record(service, fixed_clock):
    await service.check_in("P2", "E1", _at(10))
    fixed_clock.advance(minutes=30)
    command = CheckInCommand(method=OVERRIDE, target_participant_id="P2", status="excused")
    result = await service.check_in("C1", "E1", command)
    assert result["outcome"] == "updated"
    assert result["record"]["status"] == "excused"
    assert result["record"]["is_late"] is False
    assert result["record"]["updated_at"] == fixed_clock.current


async def test_override_without_status_on_existing_record(service):
    await service.check_in("P2", "E1", _at(10))
    command = CheckInCommand(method=OVERRIDE, target_participant_id="P2")
    result = await service.check_in("C1", "E1", command)
    assert result["error_code"] == "ALREADY_CHECKED_IN"


# ─── Integrity Flags ─────────────────────────────────────────────

async def test_shared_device_is_flagged(service, attendance):
    attendance.seed(event_id="E1", participant_id="P9", team_id="T1", device_fingerprint="dev-p1")
    result = await service.check_in("P1", "E1", _scan())
    assert result["record"]["is_flagged"] is True
    assert result["record"]["flag_reason"] == "Device fingerprint conflict"


async def test_device_reuse_on_other_occurrence_not_flagged(service, attendance, fixed_clock):
    attendance.seed(
        event_id="W1", participant_id="P9", team_id="T1",
        instance_date=date(2025, 9, 1), device_fingerprint="dev-p1",
    )
    fixed_clock.current = KICKOFF + timedelta(days=7)
    result = await service.check_in("P1", "W1:2025-09-08", _at(10))
    assert result["record"]["is_flagged"] is False


async def test_token_with_distant_gps_is_flagged(service):
    lat, lon = north_of_field(130)
    result = await service.check_in("P1", "E1", _scan(latitude=lat, longitude=lon))
    record = result["record"]
    assert record["is_flagged"] is True
    assert record["flag_reason"] == "GPS mismatch with QR (130m from event, radius: 100m)"


async def test_both_flag_reasons_compose(service, attendance):
    attendance.seed(event_id="E1", participant_id="P9", team_id="T1", device_fingerprint="dev-p1")
    lat, lon = north_of_field(130)
    result = await service.check_in("P1", "E1", _scan(latitude=lat, longitude=lon))
    assert result["record"]["flag_reason"] == (
        "Device fingerprint conflict; GPS mismatch with QR (130m from event, radius: 100m)"
    )


async def test_device_lookup_failure_proceeds_unflagged(service, attendance, caplog):
    attendance.fail_on["find_device_conflicts"] = RuntimeError("index unavailable")
    result = await service.check_in("P1", "E1", _scan())
    assert result["status"] == "ok"
    assert result["record"]["is_flagged"] is False
    assert "proceeding unflagged" in caplog.text


# ─── Store Failures ──────────────────────────────────────────────

async def test_insert_failure_is_downstream_failure(service, attendance):
    attendance.fail_on["insert"] = DatabaseError("connection reset by peer", "attendance insert")
    result = await service.check_in("P1", "E1", _scan())
    assert result["error_code"] == "DOWNSTREAM_FAILURE"
    assert "connection reset by peer" in result["message"]
    assert attendance.calls.count("insert") == 1


async def test_event_lookup_failure_is_downstream_failure(service, events):
    events.fail_on["get"] = DatabaseError("timeout", "event lookup")
    result = await service.check_in("P1", "E1", _scan())
    assert result["error_code"] == "DOWNSTREAM_FAILURE"
    assert result["operation"] == "event lookup"


async def test_insert_without_row_is_no_data(service, attendance):
    attendance.insert_returns_none = True
    result = await service.check_in("P1", "E1", _scan())
    assert result["error_code"] == "NO_DATA"


async def test_early_check_in_is_present(service, fixed_clock):
    fixed_clock.current = KICKOFF - timedelta(minutes=30)
    result = await service.check_in("P1", "E1", _scan())
    assert result["record"]["status"] == "present"
    assert result["record"]["late_minutes"] is None
