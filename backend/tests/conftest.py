"""Shared test configuration and fixtures.

Each test gets its own SQLite database file (aiosqlite) with all tables
created from the models, so the KPI engine can open as many sessions as it
needs and every test starts empty.
"""

import uuid
from collections.abc import AsyncGenerator
from dataclasses import dataclass
from datetime import date

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

import portal.models  # noqa: F401  registers every table on Base.metadata
from portal.api.deps import get_db, get_kpi_engine
from portal.database import Base, make_engine, make_session_factory
from portal.kpi.engine import AggregationEngine, build_engine, build_memory_engine
from portal.main import app
from portal.models.assignment import PropertyAssignment
from portal.models.plan import Plan
from portal.models.property import Property
from portal.models.user import User

# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """A fresh SQLite database file per test, schema created from the models."""
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'portal_test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(test_engine)


@pytest_asyncio.fixture
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    """A session for arranging and inspecting data. Commit before calling the engine."""
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# KPI engines
# ---------------------------------------------------------------------------


@pytest.fixture
def kpi_engine(session_factory: async_sessionmaker[AsyncSession]) -> AggregationEngine:
    """Engine on the per-test SQLite database."""
    return build_engine(session_factory)


@pytest.fixture
def memory_engine() -> AggregationEngine:
    """Engine on in-memory store and resolvers with a 12% default fee."""
    return build_memory_engine(default_fee_percent=12)


# ---------------------------------------------------------------------------
# Convenience fixtures: an org with one manager and two properties
# ---------------------------------------------------------------------------


@dataclass
class Portfolio:
    org_id: uuid.UUID
    manager: User
    assigned: Property
    unassigned: Property


async def _create_manager(db_session: AsyncSession, name: str = "Test Manager") -> User:
    unique = uuid.uuid4().hex[:8]
    user = User(email=f"manager-{unique}@test.com", name=name, role="manager")
    db_session.add(user)
    await db_session.flush()
    return user


async def _assign_property(
    db_session: AsyncSession, org_id: uuid.UUID, prop: Property, user: User
) -> PropertyAssignment:
    assignment = PropertyAssignment(org_id=org_id, property_id=prop.id, user_id=user.id)
    db_session.add(assignment)
    await db_session.flush()
    return assignment


@pytest_asyncio.fixture
async def portfolio(db_session: AsyncSession) -> Portfolio:
    """An org whose manager runs one property on a 12% plan; a second property has no manager."""
    org_id = uuid.uuid4()
    manager = await _create_manager(db_session)

    assigned = Property(org_id=org_id, name="Assigned Villa")
    unassigned = Property(org_id=org_id, name="Unassigned Villa")
    db_session.add_all([assigned, unassigned])
    await db_session.flush()

    await _assign_property(db_session, org_id, assigned, manager)
    db_session.add(Plan(org_id=org_id, user_id=manager.id, tier="launch", percent=12, effective_date=date(2020, 1, 1)))
    await db_session.commit()

    return Portfolio(org_id=org_id, manager=manager, assigned=assigned, unassigned=unassigned)


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    kpi_engine: AggregationEngine,
) -> AsyncGenerator[AsyncClient, None]:
    """Provide an httpx AsyncClient wired to the per-test database and engine."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_kpi_engine] = lambda: kpi_engine

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()
