"""Credential Validation — method-specific admission rules for a resolved occurrence.

Invariants:
    - All functions are PURE: token verification result, clock reading and
      coordinates are passed in; return error dict on violation, None on success
    - Override: no credential check and no time-window check (retroactive marking)
    - Token/geolocation: admissible until occurrence end + grace period
    - Token binding: payload event == base event, payload team == event team;
      recurring ⇒ payload instance_date == resolved date exactly (both-absent included);
      non-recurring ⇒ payload must carry no instance_date
    - Geolocation: caller coordinates, event location, finite distance, within radius

Design Decisions:
    - Token decoding lives in token_codec; this module only checks binding, so
      a cached verification result can be reused within one call
"""

import math
from datetime import datetime, timedelta

from rollcall.core.domain_types import CheckInMethod, Occurrence
from rollcall.core.errors import ErrorCode, failure
from rollcall.core.geo_distance import haversine_distance
from rollcall.core.occurrence import is_recurring

DEFAULT_RADIUS_M = 100
GRACE_PERIOD_MINUTES = 15


def event_radius(event: dict, default_radius: float = DEFAULT_RADIUS_M) -> float:
    radius = event.get("check_in_radius")
    return default_radius if radius is None else radius


def has_event_location(event: dict) -> bool:
    return event.get("latitude") is not None and event.get("longitude") is not None


def distance_from_event(event: dict, latitude, longitude) -> float:
    """Metres between caller and event; nan when either side is unknown."""
    if latitude is None or longitude is None or not has_event_location(event):
        return math.nan
    return haversine_distance(
        latitude, longitude, event["latitude"], event["longitude"],
    )


def check_time_window(
    occurrence: Occurrence, now: datetime, grace_minutes: int = GRACE_PERIOD_MINUTES,
) -> dict | None:
    if now > occurrence.end + timedelta(minutes=grace_minutes):
        return failure(
            ErrorCode.EVENT_ENDED,
            "This event has ended and check-ins are no longer allowed",
        )
    return None


def check_token_binding(
    verification: dict | None, event: dict, occurrence: Occurrence,
) -> dict | None:
    """verification: token_codec.verify_token result, None when no token was sent."""
    if verification is None:
        return failure(ErrorCode.QR_INVALID, "Invalid QR token: missing_token")
    if not verification["valid"]:
        return failure(
            ErrorCode.QR_INVALID, f"Invalid QR token: {verification['reason']}",
        )

    payload = verification["payload"]
    if payload.event_id != event["id"] or payload.team_id != event["team_id"]:
        return failure(ErrorCode.QR_MISMATCH, "QR token does not match this event")

    expected = occurrence.instance_date_str
    if is_recurring(event):
        if payload.instance_date != expected:
            return failure(
                ErrorCode.QR_INSTANCE_MISMATCH,
                f"QR token is for a different occurrence of this recurring event. "
                f"Expected: {expected}, Got: {payload.instance_date}",
            )
    elif payload.instance_date:
        return failure(
            ErrorCode.QR_INSTANCE_MISMATCH,
            "QR token is for a recurring event instance, but this is not a recurring event",
        )
    return None


def check_geolocation(
    event: dict, latitude, longitude, default_radius: float = DEFAULT_RADIUS_M,
) -> dict | None:
    if latitude is None or longitude is None:
        return failure(
            ErrorCode.LOCATION_REQUIRED,
            "Location data is required for location-based check-in",
        )
    if not has_event_location(event):
        return failure(ErrorCode.EVENT_LOCATION_NOT_SET, "Event location is not set")

    distance = distance_from_event(event, latitude, longitude)
    if math.isnan(distance):
        return failure(ErrorCode.INVALID_LOCATION, "Invalid location coordinates")

    radius = event_radius(event, default_radius)
    if distance > radius:
        return failure(
            ErrorCode.OUT_OF_RANGE,
            f"You must be within {radius:g}m of the event location "
            f"(currently {round(distance)}m away)",
            distance=distance,
            radius=radius,
        )
    return None


def validate_credentials(
    method: CheckInMethod,
    event: dict,
    occurrence: Occurrence,
    now: datetime,
    *,
    token_verification: dict | None = None,
    latitude: float | None = None,
    longitude: float | None = None,
    default_radius: float = DEFAULT_RADIUS_M,
    grace_minutes: int = GRACE_PERIOD_MINUTES,
) -> dict | None:
    """Chain the checks for one method. Returns first error or None."""
    if method is CheckInMethod.OVERRIDE:
        return None
    window_error = check_time_window(occurrence, now, grace_minutes)
    if window_error:
        return window_error
    if method is CheckInMethod.TOKEN:
        return check_token_binding(token_verification, event, occurrence)
    return check_geolocation(event, latitude, longitude, default_radius)
