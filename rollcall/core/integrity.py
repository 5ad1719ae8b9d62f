"""Integrity Flags — secondary signals that annotate, never reject, a check-in.

Invariants:
    - Pure: the device-conflict lookup result is passed in by the shell
    - Override check-ins are never flagged
    - Reasons compose in order: device conflict first, then GPS mismatch, joined by "; "
    - GPS mismatch only for token check-ins carrying coordinates, when the
      distance exceeds radius × multiplier (default 1.2)
"""

import math

from rollcall.core.domain_types import CheckInMethod
from rollcall.core.credential_validator import (
    DEFAULT_RADIUS_M, distance_from_event, event_radius,
)

DEVICE_CONFLICT_REASON = "Device fingerprint conflict"
GPS_MISMATCH_MULTIPLIER = 1.2


def gps_mismatch_reason(
    method: CheckInMethod,
    event: dict,
    latitude,
    longitude,
    default_radius: float = DEFAULT_RADIUS_M,
    multiplier: float = GPS_MISMATCH_MULTIPLIER,
) -> str | None:
    if method is not CheckInMethod.TOKEN:
        return None
    distance = distance_from_event(event, latitude, longitude)
    if math.isnan(distance):
        return None
    radius = event_radius(event, default_radius)
    if distance > radius * multiplier:
        return (
            f"GPS mismatch with QR ({round(distance)}m from event, "
            f"radius: {radius:g}m)"
        )
    return None


def compose_flags(
    method: CheckInMethod, device_conflict: bool, gps_reason: str | None,
) -> tuple[bool, str | None]:
    """(is_flagged, flag_reason) for the record."""
    if method is CheckInMethod.OVERRIDE:
        return False, None
    reasons = []
    if device_conflict:
        reasons.append(DEVICE_CONFLICT_REASON)
    if gps_reason:
        reasons.append(gps_reason)
    if not reasons:
        return False, None
    return True, "; ".join(reasons)
