"""Attendance Schemas — Pydantic models with field-level validation for API boundaries.

Invariants:
    - CheckInRequest.method is one of token | geolocation | override
    - Self-service methods require device_fingerprint; override forbids it
    - Coordinates, when present, are within [-90, 90] / [-180, 180]
    - Override-only fields (target_participant_id, status) are rejected on
      self-service methods

Design Decisions:
    - Literal for method over the str enum: Pydantic validates natively, the
      route converts to CheckInMethod
    - Coordinates on an override are NOT rejected here: the pipeline reports
      INVALID_MANUAL_CHECKIN so the error code matches the store-backed path
"""

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from rollcall.core.domain_types import AttendanceStatus


class CheckInRequest(BaseModel):
    """Check-in submission — cross-validates fields per method."""
    method: Literal["token", "geolocation", "override"]
    instance_date: date | None = None
    target_participant_id: str | None = Field(None, min_length=1, max_length=64)
    status: AttendanceStatus | None = None
    token: str | None = Field(None, max_length=4096)
    latitude: float | None = Field(None, ge=-90, le=90)
    longitude: float | None = Field(None, ge=-180, le=180)
    device_fingerprint: str | None = Field(None, min_length=1, max_length=128)

    @model_validator(mode="after")
    def check_method_fields(self) -> "CheckInRequest":
        if self.method == "override":
            if self.device_fingerprint is not None:
                raise ValueError("device_fingerprint is not accepted for override")
        else:
            if not self.device_fingerprint:
                raise ValueError(f"device_fingerprint is required for {self.method}")
            if self.target_participant_id is not None or self.status is not None:
                raise ValueError(
                    "target_participant_id and status are only accepted for override",
                )
        return self


class CheckOutRequest(BaseModel):
    instance_date: date | None = None


class QrTokenRequest(BaseModel):
    instance_date: date | None = None


class AttendanceRecordResponse(BaseModel):
    """Attendance record — public-facing fields (device fingerprint withheld)."""
    id: str
    event_id: str
    instance_date: date | None
    participant_id: str
    team_id: str
    check_in_method: str
    checked_in_at: datetime
    status: str
    is_late: bool
    late_minutes: int | None
    late_category: str
    check_in_latitude: float | None
    check_in_longitude: float | None
    distance_from_event: float | None
    is_flagged: bool
    flag_reason: str | None
    checked_out_at: datetime | None
    notes: str | None = None


class AttendanceStatusResponse(BaseModel):
    status: str | None
    checked_in_at: datetime | None


class QrTokenResponse(BaseModel):
    qr_token: str
    expires_at: datetime
    instance_date: date | None


class OccurrenceResponse(BaseModel):
    ref: str
    instance_date: date | None
    start: datetime
    end: datetime
