"""SQL Repositories — SQLAlchemy implementations of the core boundary Protocols.

Invariants:
    - Rows leave as plain dicts with timezone-aware datetimes (SQLite returns naive)
    - Instants are written in UTC
    - Every write commits immediately: one durable write per call, no open
      transaction survives a repository method
    - IntegrityError on a unique index → DuplicateAttendanceError; any other
      SQLAlchemyError → DatabaseError. The session is rolled back first.
    - "Live" means is_deleted is false

Design Decisions:
    - Repositories take an AsyncSession (from get_db) rather than the manager:
      one session per request, shared by all repositories of that request
    - Error translation in a decorator so each method body stays a plain query
"""

import functools
import logging
from datetime import date, datetime, timezone

from sqlalchemy import not_, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rollcall.core.domain_types import ensure_aware
from rollcall.core.errors import DatabaseError
from rollcall.infrastructure.database import translate_integrity_error
from rollcall.models import (
    AttendanceGroup, AttendanceGroupMember, AttendanceRecord, Event,
    TeamMember, TeamMemberRole,
)

logger = logging.getLogger(__name__)


def _store_errors(operation: str):
    """Translate SQLAlchemy failures into the store error contract."""
    def decorator(fn):
        @functools.wraps(fn)
        async def wrapper(self, *args, **kwargs):
            try:
                return await fn(self, *args, **kwargs)
            except IntegrityError as exc:
                await self._db.rollback()
                raise translate_integrity_error(exc, operation) from exc
            except SQLAlchemyError as exc:
                await self._db.rollback()
                logger.error(
                    f"Store {operation} failed: {exc}",
                    extra={"operation": operation},
                )
                raise DatabaseError(str(exc), operation) from exc
        return wrapper
    return decorator


def row_to_dict(row) -> dict:
    data = {}
    for column in row.__table__.columns:
        value = getattr(row, column.key)
        if isinstance(value, datetime):
            value = ensure_aware(value)
        data[column.key] = value
    return data


def _to_utc(value):
    if isinstance(value, datetime):
        return ensure_aware(value).astimezone(timezone.utc)
    return value


def _same_date(column, value: date | None):
    return column.is_(None) if value is None else column == value


# ─── Events ──────────────────────────────────────────────────────

class SqlEventRepository:
    def __init__(self, db: AsyncSession):
        self._db = db

    @_store_errors("event lookup")
    async def get(self, event_id: str) -> dict | None:
        row = await self._db.get(Event, event_id)
        return row_to_dict(row) if row else None


# ─── Attendance ──────────────────────────────────────────────────

class SqlAttendanceRepository:
    def __init__(self, db: AsyncSession):
        self._db = db

    async def _fetch_all(self, stmt) -> list[dict]:
        result = await self._db.execute(stmt)
        return [row_to_dict(r) for r in result.scalars().all()]

    @_store_errors("attendance lookup")
    async def get_by_id(self, record_id: str) -> dict | None:
        row = await self._db.get(AttendanceRecord, record_id)
        return row_to_dict(row) if row else None

    @_store_errors("attendance lookup")
    async def find_record(
        self, event_id: str, participant_id: str, instance_date: date | None,
        *, include_deleted: bool = False,
    ) -> dict | None:
        """Live record for the key; with include_deleted, the latest deleted one
        when no live record exists."""
        stmt = select(AttendanceRecord).where(
            AttendanceRecord.event_id == event_id,
            AttendanceRecord.participant_id == participant_id,
            _same_date(AttendanceRecord.instance_date, instance_date),
        )
        if not include_deleted:
            stmt = stmt.where(not_(AttendanceRecord.is_deleted))
        stmt = stmt.order_by(
            AttendanceRecord.is_deleted.asc(),
            AttendanceRecord.checked_in_at.desc(),
        ).limit(1)
        rows = await self._fetch_all(stmt)
        return rows[0] if rows else None

    @_store_errors("attendance insert")
    async def insert(self, data: dict) -> dict | None:
        row = AttendanceRecord(**{k: _to_utc(v) for k, v in data.items()})
        self._db.add(row)
        await self._db.commit()
        return row_to_dict(row)

    @_store_errors("attendance update")
    async def update(self, record_id: str, fields: dict) -> dict | None:
        row = await self._db.get(AttendanceRecord, record_id)
        if row is None:
            return None
        for key, value in fields.items():
            setattr(row, key, _to_utc(value))
        await self._db.commit()
        return row_to_dict(row)

    @_store_errors("attendance delete")
    async def hard_delete(self, record_id: str) -> bool:
        row = await self._db.get(AttendanceRecord, record_id)
        if row is None:
            return False
        await self._db.delete(row)
        await self._db.commit()
        return True

    @_store_errors("conflict lookup")
    async def find_live_conflicts(
        self, event_id: str, participant_id: str, instance_date: date | None,
    ) -> list[dict]:
        dates = AttendanceRecord.instance_date.is_(None)
        if instance_date is not None:
            dates = or_(dates, AttendanceRecord.instance_date == instance_date)
        return await self._fetch_all(
            select(AttendanceRecord).where(
                AttendanceRecord.event_id == event_id,
                AttendanceRecord.participant_id == participant_id,
                not_(AttendanceRecord.is_deleted),
                dates,
            ),
        )

    @_store_errors("device lookup")
    async def find_device_conflicts(
        self, event_id: str, instance_date: date | None,
        device_fingerprint: str, exclude_participant_id: str,
    ) -> list[dict]:
        return await self._fetch_all(
            select(AttendanceRecord).where(
                AttendanceRecord.event_id == event_id,
                _same_date(AttendanceRecord.instance_date, instance_date),
                AttendanceRecord.device_fingerprint == device_fingerprint,
                AttendanceRecord.participant_id != exclude_participant_id,
                not_(AttendanceRecord.is_deleted),
            ),
        )

    @_store_errors("attendance list")
    async def list_for_event(
        self, event_id: str, instance_date: date | None = None,
        *, all_instances: bool = False, status: str | None = None,
    ) -> list[dict]:
        stmt = select(AttendanceRecord).where(
            AttendanceRecord.event_id == event_id,
            not_(AttendanceRecord.is_deleted),
        )
        if not all_instances:
            stmt = stmt.where(
                _same_date(AttendanceRecord.instance_date, instance_date),
            )
        if status:
            stmt = stmt.where(AttendanceRecord.status == status)
        return await self._fetch_all(
            stmt.order_by(AttendanceRecord.checked_in_at.asc()),
        )

    @_store_errors("attendance history")
    async def list_for_participant(
        self, participant_id: str,
        start: datetime | None = None, end: datetime | None = None,
    ) -> list[dict]:
        stmt = select(AttendanceRecord).where(
            AttendanceRecord.participant_id == participant_id,
            not_(AttendanceRecord.is_deleted),
        )
        if start is not None:
            stmt = stmt.where(AttendanceRecord.checked_in_at >= _to_utc(start))
        if end is not None:
            stmt = stmt.where(AttendanceRecord.checked_in_at <= _to_utc(end))
        return await self._fetch_all(
            stmt.order_by(AttendanceRecord.checked_in_at.desc()),
        )


# ─── Team Directory ──────────────────────────────────────────────

class SqlRoleDirectory:
    def __init__(self, db: AsyncSession):
        self._db = db

    @_store_errors("role lookup")
    async def get_team_role(self, team_id: str, participant_id: str) -> dict | None:
        result = await self._db.execute(
            select(TeamMemberRole).where(
                TeamMemberRole.team_id == team_id,
                TeamMemberRole.participant_id == participant_id,
            ),
        )
        row = result.scalar_one_or_none()
        return row_to_dict(row) if row else None

    @_store_errors("membership lookup")
    async def get_team_membership(
        self, team_id: str, participant_id: str,
    ) -> dict | None:
        result = await self._db.execute(
            select(TeamMember).where(
                TeamMember.team_id == team_id,
                TeamMember.participant_id == participant_id,
            ),
        )
        row = result.scalar_one_or_none()
        return row_to_dict(row) if row else None


class SqlGroupDirectory:
    def __init__(self, db: AsyncSession):
        self._db = db

    @_store_errors("group membership lookup")
    async def member_group_ids(
        self, participant_id: str, group_ids: list[str],
    ) -> set[str]:
        if not group_ids:
            return set()
        result = await self._db.execute(
            select(AttendanceGroupMember.group_id).where(
                AttendanceGroupMember.participant_id == participant_id,
                AttendanceGroupMember.group_id.in_(group_ids),
            ),
        )
        return set(result.scalars().all())

    @_store_errors("group lookup")
    async def group_names(self, group_ids: list[str]) -> list[str]:
        if not group_ids:
            return []
        result = await self._db.execute(
            select(AttendanceGroup.name)
            .where(AttendanceGroup.id.in_(group_ids))
            .order_by(AttendanceGroup.name),
        )
        return list(result.scalars().all())
