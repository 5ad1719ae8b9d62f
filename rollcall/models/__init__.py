"""ORM Models — SQLAlchemy declarative models for all domain entities.

Invariants:
    - All models inherit from Base (db/base.py)
    - Event is the aggregate root for attendance; rows scoped by event_id

Design Decisions:
    - One file per entity (or tightly coupled pair) for locality
    - All models imported here so SQLAlchemy resolves string-based relationship()
      references before any query runs
"""

from rollcall.models.event import Event  # noqa: F401
from rollcall.models.attendance_record import AttendanceRecord  # noqa: F401
from rollcall.models.attendance_group import (  # noqa: F401
    AttendanceGroup, AttendanceGroupMember,
)
from rollcall.models.team_membership import TeamMember, TeamMemberRole  # noqa: F401
