"""Domain Types — rich types that replace bare primitives across the codebase.

Invariants:
    - EventId, TeamId, ParticipantId, GroupId wrap str ids — never bare str in domain logic
    - All valid states encoded as Enums — no raw string matching
    - Occurrence and ScanCredential are frozen: derived values, never mutated

Design Decisions:
    - NewType over dataclass wrappers: zero runtime cost, full type-checker support
    - str Enums: serialize to JSON without custom encoders
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import NewType


# ─── Identity Types ──────────────────────────────────────────────

EventId = NewType("EventId", str)
TeamId = NewType("TeamId", str)
ParticipantId = NewType("ParticipantId", str)
GroupId = NewType("GroupId", str)


# ─── Enums ───────────────────────────────────────────────────────

class CheckInMethod(str, Enum):
    """How a participant proves presence."""
    TOKEN = "token"
    GEOLOCATION = "geolocation"
    OVERRIDE = "override"


class RecurrencePattern(str, Enum):
    """Recurrence descriptor stored on the event template."""
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    CUSTOM_WEEKLY = "custom_weekly"


class AttendanceStatus(str, Enum):
    """Status labels a record can carry. Override callers may pass any of these."""
    PRESENT = "present"
    LATE_10 = "late_10"
    LATE_30 = "late_30"
    VERY_LATE = "very_late"
    ABSENT = "absent"
    EXCUSED = "excused"
    FLAGGED = "flagged"


class TeamRole(str, Enum):
    """Granular per-team roles (team_member_roles)."""
    HEAD_COACH = "head_coach"
    ASSISTANT_COACH = "assistant_coach"
    POSITION_COACH = "position_coach"
    TEAM_ADMIN = "team_admin"
    STUDENT_MANAGER = "student_manager"
    ATHLETIC_TRAINER = "athletic_trainer"
    PLAYER = "player"


# Roles allowed to mark attendance for someone else or mint scan tokens
QUALIFYING_ROLES = frozenset({
    TeamRole.HEAD_COACH, TeamRole.ASSISTANT_COACH, TeamRole.TEAM_ADMIN,
})

ON_TIME_CATEGORY = "on_time"


# ─── Value Types ─────────────────────────────────────────────────

@dataclass(frozen=True)
class Occurrence:
    """One concrete calendar instantiation of an event."""
    event_id: EventId
    instance_date: date | None
    start: datetime
    end: datetime

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def instance_date_str(self) -> str | None:
        return self.instance_date.isoformat() if self.instance_date else None


@dataclass(frozen=True)
class ScanCredential:
    """Decoded scan-token payload. Validity is a pure function of fields + now."""
    event_id: str
    team_id: str
    expires_at: datetime
    issued_at: datetime | None
    nonce: str
    instance_date: str | None = None


def ensure_aware(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on round-trip)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
