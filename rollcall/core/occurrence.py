"""Occurrence Resolution — composite reference → canonical base event + occurrence.

Invariants:
    - Reference format: "<eventId>" or "<eventId>:<YYYY-MM-DD>" (split on first ':')
    - Non-recurring event ⇒ instance_date is always None
    - Recurring event ⇒ instance_date is always concrete
    - Occurrence start/end: template time-of-day re-anchored to the instance date,
      duration and tzinfo preserved, no timezone conversion
    - Precedence: reference suffix > explicit instance_date > template start date

Design Decisions:
    - Events travel as plain dicts (repository rows), the resolved occurrence as
      a frozen Occurrence
    - expand_occurrences enumerates dates only; instants come from occurrence_for
"""

import calendar
from datetime import date, timedelta

from rollcall.core.domain_types import (
    EventId, Occurrence, RecurrencePattern, ensure_aware,
)
from rollcall.core.errors import ErrorCode, failure

_WEEKDAY_BY_NAME = {
    "monday": 0, "tuesday": 1, "wednesday": 2, "thursday": 3,
    "friday": 4, "saturday": 5, "sunday": 6,
}


def is_recurring(event: dict) -> bool:
    pattern = event.get("recurring_pattern") or RecurrencePattern.NONE.value
    return pattern != RecurrencePattern.NONE.value


def parse_instance_date(value: str) -> date | None:
    """YYYY-MM-DD → date, or None when malformed."""
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        return None


def parse_occurrence_ref(ref: str) -> dict:
    """Split a reference into base event id and optional date."""
    event_id, sep, suffix = (ref or "").partition(":")
    if not event_id:
        return failure(
            ErrorCode.INVALID_OCCURRENCE_REF,
            f"Occurrence reference '{ref}' has no event id",
        )
    instance_date = None
    if sep and suffix:
        instance_date = parse_instance_date(suffix)
        if instance_date is None:
            return failure(
                ErrorCode.INVALID_OCCURRENCE_REF,
                f"Occurrence reference '{ref}' must use <eventId>:<YYYY-MM-DD>",
            )
    return {"status": "ok", "event_id": EventId(event_id), "instance_date": instance_date}


def format_occurrence_ref(event_id: str, instance_date: date | None) -> str:
    if instance_date is None:
        return event_id
    return f"{event_id}:{instance_date.isoformat()}"


def effective_instance_date(
    event: dict, ref_date: date | None, explicit_date: date | None,
) -> date | None:
    """Pick the occurrence date by precedence; None for non-recurring events."""
    if not is_recurring(event):
        return None
    if ref_date is not None:
        return ref_date
    if explicit_date is not None:
        return explicit_date
    return ensure_aware(event["start_time"]).date()


def occurrence_for(event: dict, instance_date: date | None) -> Occurrence:
    """Occurrence instants for a concrete date (or the template itself)."""
    start = ensure_aware(event["start_time"])
    end = ensure_aware(event["end_time"])
    if instance_date is None:
        return Occurrence(EventId(event["id"]), None, start, end)
    anchored = start.replace(
        year=instance_date.year, month=instance_date.month, day=instance_date.day,
    )
    return Occurrence(
        EventId(event["id"]), instance_date, anchored, anchored + (end - start),
    )


def resolve_occurrence(
    event: dict, ref_date: date | None = None, explicit_date: date | None = None,
) -> Occurrence:
    return occurrence_for(
        event, effective_instance_date(event, ref_date, explicit_date),
    )


# ─── Recurrence Expansion ────────────────────────────────────────

def _custom_weekdays(event: dict) -> set[int]:
    days = set()
    for value in event.get("recurring_days") or []:
        if isinstance(value, int):
            days.add((value - 1) % 7)  # 0 = Sunday in stored ints
        else:
            weekday = _WEEKDAY_BY_NAME.get(str(value).strip().lower())
            if weekday is not None:
                days.add(weekday)
    return days


def _add_months(anchor: date, months: int) -> date:
    month_index = anchor.month - 1 + months
    year, month = anchor.year + month_index // 12, month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(anchor.day, last_day))


def _monthly_dates(first: date, lo: date, hi: date) -> list[date]:
    dates = []
    offset = max(0, (lo.year - first.year) * 12 + lo.month - first.month - 1)
    while True:
        current = _add_months(first, offset)
        if current > hi:
            return dates
        if current >= lo:
            dates.append(current)
        offset += 1


def expand_occurrences(event: dict, range_start: date, range_end: date) -> list[date]:
    """Occurrence dates of an event within [range_start, range_end], inclusive."""
    first = ensure_aware(event["start_time"]).date()
    if not is_recurring(event):
        return [first] if range_start <= first <= range_end else []

    hi = range_end
    if event.get("recurring_end_date"):
        hi = min(hi, event["recurring_end_date"])
    lo = max(range_start, first)
    if lo > hi:
        return []

    pattern = RecurrencePattern(event["recurring_pattern"])
    if pattern is RecurrencePattern.MONTHLY:
        return _monthly_dates(first, lo, hi)

    if pattern is RecurrencePattern.CUSTOM_WEEKLY:
        weekdays = _custom_weekdays(event) or {first.weekday()}
        def keep(d: date) -> bool:
            return d.weekday() in weekdays
    else:
        step = {
            RecurrencePattern.DAILY: 1,
            RecurrencePattern.WEEKLY: 7,
            RecurrencePattern.BIWEEKLY: 14,
        }[pattern]
        def keep(d: date) -> bool:
            return (d - first).days % step == 0

    dates = []
    current = lo
    while current <= hi:
        if keep(current):
            dates.append(current)
        current += timedelta(days=1)
    return dates
