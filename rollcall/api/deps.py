"""API Dependencies — per-request wiring of repositories, clock, and services.

Invariants:
    - One CheckInService / AttendanceQueryService per request (their credential
      cache never outlives the request)
    - Caller identity comes from the X-Participant-Id header; missing ⇒ 400
    - Clock and random source are dependencies so tests can override them
"""

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from rollcall.config import get_settings
from rollcall.core.repository_protocols import Clock, RandomSource
from rollcall.infrastructure.database import get_db
from rollcall.infrastructure.sql_repositories import (
    SqlAttendanceRepository, SqlEventRepository, SqlGroupDirectory,
    SqlRoleDirectory,
)
from rollcall.infrastructure.system_sources import SecureRandomSource, SystemClock
from rollcall.services.attendance_queries import AttendanceQueryService
from rollcall.services.check_in import CheckInPolicy, CheckInService


def get_caller_id(
    x_participant_id: str = Header(..., alias="X-Participant-Id", min_length=1),
) -> str:
    return x_participant_id


def get_clock() -> Clock:
    return SystemClock()


def get_random_source() -> RandomSource:
    return SecureRandomSource()


def get_policy() -> CheckInPolicy:
    return CheckInPolicy.from_settings(get_settings())


def get_check_in_service(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    policy: CheckInPolicy = Depends(get_policy),
) -> CheckInService:
    return CheckInService(
        SqlEventRepository(db),
        SqlAttendanceRepository(db),
        SqlRoleDirectory(db),
        SqlGroupDirectory(db),
        clock,
        policy,
    )


def get_query_service(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    random_source: RandomSource = Depends(get_random_source),
    policy: CheckInPolicy = Depends(get_policy),
) -> AttendanceQueryService:
    return AttendanceQueryService(
        SqlEventRepository(db),
        SqlAttendanceRepository(db),
        SqlRoleDirectory(db),
        clock,
        random_source,
        policy,
    )
