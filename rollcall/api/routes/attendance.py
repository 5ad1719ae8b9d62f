"""Attendance Routes — check-in, check-out, listings, administration, scan tokens.

Invariants:
    - Every route delegates to a service; no business rule lives here
    - A failure dict from a service is raised as CheckInRejected and rendered
      by the global RollcallError handler (status from CODE_META)
    - Request bodies are validated by Pydantic before reaching the handler
    - Check-in answers 201 for a new record and 200 when an override updated one
    - Occurrence references travel in the path: "<eventId>" or "<eventId>:<YYYY-MM-DD>"
"""

import logging
from datetime import date, datetime

from fastapi import APIRouter, Depends, Query, Response, status

from rollcall.api.deps import get_caller_id, get_check_in_service, get_query_service
from rollcall.core.domain_types import CheckInMethod
from rollcall.core.errors import CheckInRejected, ErrorContext, is_failure
from rollcall.schemas.attendance import (
    AttendanceRecordResponse, AttendanceStatusResponse, CheckInRequest,
    CheckOutRequest, OccurrenceResponse, QrTokenRequest, QrTokenResponse,
)
from rollcall.services.attendance_queries import AttendanceQueryService
from rollcall.services.check_in import CheckInCommand, CheckInService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["attendance"])


def _unwrap(
    result: dict, event_ref: str | None = None, participant_id: str | None = None,
) -> dict:
    """Return an ok result, or raise the failure for the global handler."""
    if is_failure(result):
        raise CheckInRejected(
            result,
            ErrorContext(event_id=event_ref, participant_id=participant_id),
        )
    return result


def _command(body: CheckInRequest) -> CheckInCommand:
    return CheckInCommand(
        method=CheckInMethod(body.method),
        instance_date=body.instance_date,
        target_participant_id=body.target_participant_id,
        status=body.status.value if body.status else None,
        token=body.token,
        latitude=body.latitude,
        longitude=body.longitude,
        device_fingerprint=body.device_fingerprint,
    )


# ─── Check-in / Check-out ────────────────────────────────────────

@router.post(
    "/events/{ref}/check-in",
    response_model=AttendanceRecordResponse,
    status_code=status.HTTP_201_CREATED,
)
async def check_in(
    ref: str,
    body: CheckInRequest,
    response: Response,
    caller_id: str = Depends(get_caller_id),
    service: CheckInService = Depends(get_check_in_service),
):
    """Check in (self-service) or mark attendance (override)."""
    result = _unwrap(
        await service.check_in(caller_id, ref, _command(body)), ref, caller_id,
    )
    if result["outcome"] == "updated":
        response.status_code = status.HTTP_200_OK
    return result["record"]


@router.post("/events/{ref}/check-out", response_model=AttendanceRecordResponse)
async def check_out(
    ref: str,
    body: CheckOutRequest | None = None,
    caller_id: str = Depends(get_caller_id),
    service: CheckInService = Depends(get_check_in_service),
):
    instance_date = body.instance_date if body else None
    result = _unwrap(
        await service.check_out(caller_id, ref, instance_date), ref, caller_id,
    )
    return result["record"]


# ─── Reads ───────────────────────────────────────────────────────

@router.get(
    "/events/{ref}/attendance", response_model=list[AttendanceRecordResponse],
)
async def list_event_attendance(
    ref: str,
    status_filter: str | None = Query(None, alias="status"),
    caller_id: str = Depends(get_caller_id),
    service: AttendanceQueryService = Depends(get_query_service),
):
    result = _unwrap(
        await service.list_event_attendance(ref, status_filter), ref, caller_id,
    )
    return result["records"]


@router.get("/events/{ref}/attendance/me", response_model=AttendanceStatusResponse)
async def my_attendance_status(
    ref: str,
    instance_date: date | None = Query(None),
    caller_id: str = Depends(get_caller_id),
    service: AttendanceQueryService = Depends(get_query_service),
):
    result = _unwrap(
        await service.get_participant_status(ref, caller_id, instance_date),
        ref, caller_id,
    )
    return result["attendance"]


@router.get(
    "/participants/me/attendance", response_model=list[AttendanceRecordResponse],
)
async def my_attendance_history(
    start: datetime | None = Query(None),
    end: datetime | None = Query(None),
    caller_id: str = Depends(get_caller_id),
    service: AttendanceQueryService = Depends(get_query_service),
):
    result = _unwrap(
        await service.get_attendance_history(caller_id, start, end),
        participant_id=caller_id,
    )
    return result["records"]


@router.get(
    "/events/{event_id}/occurrences", response_model=list[OccurrenceResponse],
)
async def list_occurrences(
    event_id: str,
    start: date = Query(...),
    end: date = Query(...),
    service: AttendanceQueryService = Depends(get_query_service),
):
    result = _unwrap(await service.list_occurrences(event_id, start, end), event_id)
    return result["occurrences"]


# ─── Administration ──────────────────────────────────────────────

@router.delete("/attendance/{record_id}", response_model=AttendanceRecordResponse)
async def remove_attendance_record(
    record_id: str,
    caller_id: str = Depends(get_caller_id),
    service: AttendanceQueryService = Depends(get_query_service),
):
    """Soft-delete a record (coaches and admins only)."""
    result = _unwrap(
        await service.soft_delete_record(record_id, caller_id),
        participant_id=caller_id,
    )
    return result["record"]


@router.post("/events/{ref}/qr-token", response_model=QrTokenResponse)
async def generate_qr_token(
    ref: str,
    body: QrTokenRequest | None = None,
    caller_id: str = Depends(get_caller_id),
    service: AttendanceQueryService = Depends(get_query_service),
):
    """Mint a scan token valid until the occurrence ends."""
    instance_date = body.instance_date if body else None
    result = _unwrap(
        await service.generate_event_qr_token(ref, caller_id, instance_date),
        ref, caller_id,
    )
    return result
