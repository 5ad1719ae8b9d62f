"""Status Classification — bucket a check-in into on-time / late categories.

Invariants:
    - Explicit (override) status is used verbatim; late iff the label contains "late"
    - Otherwise delta = floor((now - occurrence_start) / 60s):
      delta <= 0 present, (0, 10] late_10, (10, 30] late_30, > 30 very_late
    - late_minutes is the positive delta, None when on time or explicit
"""

import math
from datetime import datetime

from rollcall.core.domain_types import AttendanceStatus, ON_TIME_CATEGORY


def minutes_late(now: datetime, occurrence_start: datetime) -> int:
    return math.floor((now - occurrence_start).total_seconds() / 60)


def bucket_for(delta_minutes: int) -> AttendanceStatus:
    if delta_minutes <= 0:
        return AttendanceStatus.PRESENT
    if delta_minutes <= 10:
        return AttendanceStatus.LATE_10
    if delta_minutes <= 30:
        return AttendanceStatus.LATE_30
    return AttendanceStatus.VERY_LATE


def explicit_status_fields(status: str) -> dict:
    late = "late" in status
    return {
        "status": status,
        "is_late": late,
        "late_category": status if late else ON_TIME_CATEGORY,
    }


def classify_status(
    now: datetime, occurrence_start: datetime, explicit_status: str | None = None,
) -> dict:
    """Derived status fields for a new record."""
    if explicit_status:
        return {**explicit_status_fields(explicit_status), "late_minutes": None}

    delta = minutes_late(now, occurrence_start)
    status = bucket_for(delta)
    late = status is not AttendanceStatus.PRESENT
    return {
        "status": status.value,
        "is_late": late,
        "late_category": status.value if late else ON_TIME_CATEGORY,
        "late_minutes": delta if late else None,
    }
