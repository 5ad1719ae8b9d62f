"""Boundary Protocols — contracts between core and shell.

Invariants:
    - Core NEVER imports from shell — dependency arrows point inward only
    - All IO operations accessed through Protocol types
    - Implementations provided by shell via dependency injection
    - Rows cross the boundary as plain dicts; dates as datetime.date, instants aware
    - AttendanceRepository.insert raises DuplicateAttendanceError on the
      live-uniqueness constraint and DatabaseError on anything else

Design Decisions:
    - Protocol over ABC: structural subtyping, SQL and in-memory fakes interchangeable
    - Async in Protocol: boundary methods are async because implementations do IO,
      but core pure functions that USE these protocols are never async themselves
"""

from datetime import date, datetime
from typing import Protocol


class Clock(Protocol):
    """Wall clock capability — injected so tests can fix 'now'."""
    def now(self) -> datetime: ...


class RandomSource(Protocol):
    """Random byte capability for token nonces."""
    def token_bytes(self, n: int) -> bytes: ...


class EventRepository(Protocol):
    """Contract for event lookup — implemented by shell."""
    async def get(self, event_id: str) -> dict | None: ...


class AttendanceRepository(Protocol):
    """Contract for attendance persistence — implemented by shell."""
    async def get_by_id(self, record_id: str) -> dict | None: ...
    async def find_record(
        self, event_id: str, participant_id: str, instance_date: date | None,
        *, include_deleted: bool = False,
    ) -> dict | None: ...
    async def insert(self, data: dict) -> dict | None: ...
    async def update(self, record_id: str, fields: dict) -> dict | None: ...
    async def hard_delete(self, record_id: str) -> bool: ...
    async def find_live_conflicts(
        self, event_id: str, participant_id: str, instance_date: date | None,
    ) -> list[dict]: ...
    async def find_device_conflicts(
        self, event_id: str, instance_date: date | None,
        device_fingerprint: str, exclude_participant_id: str,
    ) -> list[dict]: ...
    async def list_for_event(
        self, event_id: str, instance_date: date | None = None,
        *, all_instances: bool = False, status: str | None = None,
    ) -> list[dict]: ...
    async def list_for_participant(
        self, participant_id: str,
        start: datetime | None = None, end: datetime | None = None,
    ) -> list[dict]: ...


class RoleDirectory(Protocol):
    """Contract for team-scoped role lookups — implemented by shell."""
    async def get_team_role(self, team_id: str, participant_id: str) -> dict | None: ...
    async def get_team_membership(
        self, team_id: str, participant_id: str,
    ) -> dict | None: ...


class GroupDirectory(Protocol):
    """Contract for attendance-group membership — implemented by shell."""
    async def member_group_ids(
        self, participant_id: str, group_ids: list[str],
    ) -> set[str]: ...
    async def group_names(self, group_ids: list[str]) -> list[str]: ...
