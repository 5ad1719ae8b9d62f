"""Service test fixtures — in-memory stores, async DB, and FastAPI test client.

Invariants:
    - Every test gets a fresh in-memory SQLite database
    - get_db dependency overridden to use test DB session
    - db_manager patched so the health probe sees the test engine
    - get_clock overridden: route tests run at a fixed instant (fixed_clock)

Design Decisions:
    - SQLite in-memory: fast, no external dependency; the partial unique
      indexes are declared with sqlite_where so uniqueness is enforced here too
    - Service tests use the Protocol fakes in fake_stores.py; only repository
      and route tests touch SQLAlchemy
"""

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncSession, create_async_engine, async_sessionmaker,
)
from httpx import ASGITransport, AsyncClient

from rollcall.api.deps import get_clock, get_random_source
from rollcall.db.base import Base
from rollcall.infrastructure.database import get_db, DatabaseSessionManager
import rollcall.infrastructure.database as db_module
from rollcall.main import app
from rollcall.models import (
    AttendanceGroup, AttendanceGroupMember, Event, TeamMember, TeamMemberRole,
)
from rollcall.services.attendance_queries import AttendanceQueryService
from rollcall.services.check_in import CheckInPolicy, CheckInService
from tests.services.fake_stores import (
    KICKOFF, CountingRandom, FixedClock, InMemoryAttendanceRepository,
    InMemoryEventRepository, InMemoryGroupDirectory, InMemoryRoleDirectory,
    make_event,
)


# ─── In-Memory Stores ────────────────────────────────────────────

@pytest.fixture
def fixed_clock():
    return FixedClock(KICKOFF)


@pytest.fixture
def events():
    return InMemoryEventRepository(
        make_event(),
        make_event(id="W1", title="Weekly practice", recurring_pattern="weekly"),
        make_event(id="G1", title="Defense film", assigned_attendance_groups=["grp-d"]),
    )


@pytest.fixture
def attendance():
    return InMemoryAttendanceRepository()


@pytest.fixture
def roles():
    directory = InMemoryRoleDirectory()
    directory.roles[("T1", "C1")] = "head_coach"
    directory.roles[("T1", "P1")] = "player"
    return directory


@pytest.fixture
def groups():
    directory = InMemoryGroupDirectory()
    directory.add_group("grp-d", "Defense", "P1")
    return directory


@pytest.fixture
def policy():
    return CheckInPolicy()


@pytest.fixture
def service(events, attendance, roles, groups, fixed_clock, policy):
    return CheckInService(events, attendance, roles, groups, fixed_clock, policy)


@pytest.fixture
def queries(events, attendance, roles, fixed_clock, policy):
    return AttendanceQueryService(
        events, attendance, roles, fixed_clock, CountingRandom(), policy,
    )


# ─── Database ────────────────────────────────────────────────────

@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:", echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def test_session_factory(test_engine):
    return async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False,
    )


@pytest.fixture
async def test_db(test_session_factory):
    async with test_session_factory() as session:
        yield session


@pytest.fixture
async def client(test_engine, test_session_factory, fixed_clock):
    """FastAPI test client with DB and clock dependencies overridden."""
    async def override_get_db():
        async with test_session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: fixed_clock
    app.dependency_overrides[get_random_source] = CountingRandom

    original_manager = db_module.db_manager
    fake_manager = DatabaseSessionManager.__new__(DatabaseSessionManager)
    fake_manager.engine = test_engine
    fake_manager._session_factory = test_session_factory
    db_module.db_manager = fake_manager

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()
    db_module.db_manager = original_manager


@pytest.fixture
async def seed_team(test_db):
    """Two events, one group, a head coach (C1) and two players (P1 in Defense, P2)."""
    for fields in (
        make_event(),
        make_event(id="W1", title="Weekly practice", recurring_pattern="weekly"),
        make_event(id="G1", title="Defense film", assigned_attendance_groups=["grp-d"]),
    ):
        test_db.add(Event(**fields))
    test_db.add(AttendanceGroup(id="grp-d", team_id="T1", name="Defense"))
    test_db.add(AttendanceGroupMember(group_id="grp-d", participant_id="P1"))
    test_db.add(TeamMemberRole(team_id="T1", participant_id="C1", role="head_coach"))
    test_db.add(TeamMember(team_id="T1", participant_id="P1", role="player"))
    test_db.add(TeamMember(team_id="T1", participant_id="P2", role="player"))
    await test_db.commit()
