"""Test configuration and fixtures"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
from datetime import date, datetime, time, timezone
from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from seatplan.core.clock import FixedClock
from seatplan.core.config import parse_service_windows
from seatplan.core.database import get_session_factory, init_db
from seatplan.core.locks import KeyedLockRegistry
from seatplan.core.rate_limit import InMemoryRateLimitStore, RateLimiter
from seatplan.models.customer import Customer
from seatplan.models.restaurant import Table, Zone
from seatplan.schemas.reservation import ReservationCreate
from seatplan.services.assignment import AssignmentEngine
from seatplan.services.availability import AvailabilityCalculator
from seatplan.services.customer_conflicts import CustomerConflictResolver
from seatplan.services.floor_service import FloorService
from seatplan.services.reservation_service import ReservationService
from seatplan.services.state_machine import ReservationStateMachine


# Monday 3 June 2030, 10:00 UTC; reservations are made for the following Monday
NOW = datetime(2030, 6, 3, 10, 0, tzinfo=timezone.utc)
SERVICE_DAY = date(2030, 6, 10)
SERVICE_WINDOWS = "12:00-16:00,19:00-23:30"


@pytest.fixture
async def session_factory(tmp_path):
    """File-backed SQLite database, created fresh for each test"""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/test.db", echo=False)
    await init_db(engine)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def locks():
    return KeyedLockRegistry()


# ==================== Services ====================

@pytest.fixture
def availability(session_factory, clock):
    return AvailabilityCalculator(
        session_factory,
        clock,
        service_windows=parse_service_windows(SERVICE_WINDOWS),
        buffer_minutes=15,
        max_party_size=20,
        max_tables_per_group=4,
        default_duration_minutes=90,
    )


@pytest.fixture
def assignment(session_factory, clock, locks, availability):
    return AssignmentEngine(session_factory, clock, locks, availability)


@pytest.fixture
def state_machine(clock, assignment):
    return ReservationStateMachine(clock, assignment)


@pytest.fixture
def resolver(session_factory, locks):
    return CustomerConflictResolver(session_factory, locks, country_code="+34")


@pytest.fixture
def reservations(session_factory, clock, locks, assignment, resolver):
    return ReservationService(session_factory, clock, locks, assignment, resolver)


@pytest.fixture
def floor_service(session_factory, clock, locks):
    return FloorService(session_factory, clock, locks)


# ==================== Seed helpers ====================

@pytest.fixture
def add_zone(session_factory):
    """Insert a zone"""
    async def _add(code="MAIN", name=None, capacity=40, sort_order=0):
        async with session_factory() as session, session.begin():
            zone = Zone(code=code, name=name or code.title(), capacity=capacity, sort_order=sort_order)
            session.add(zone)
        return zone
    return _add


@pytest.fixture
def add_table(session_factory):
    """Insert a table"""
    async def _add(number, capacity, zone=None, is_combinable=True, max_combined_capacity=None):
        async with session_factory() as session, session.begin():
            table = Table(
                number=number,
                capacity=capacity,
                zone_id=zone.id if zone else None,
                is_combinable=is_combinable,
                max_combined_capacity=max_combined_capacity,
            )
            session.add(table)
        return table
    return _add


@pytest.fixture
def add_customer(session_factory):
    """Insert a customer"""
    async def _add(name, email=None, phone=None, **extra):
        async with session_factory() as session, session.begin():
            customer = Customer(name=name, email=email, phone=phone, **extra)
            session.add(customer)
        return customer
    return _add


@pytest.fixture
def book(reservations):
    """Create a reservation through the intake service and return it"""
    async def _book(start="14:00", party_size=4, tables=None, day=SERVICE_DAY, **fields):
        data = ReservationCreate(
            customer_name=fields.pop("customer_name", "Ana Lopez"),
            party_size=party_size,
            start_time=time.fromisoformat(start),
            date=day,
            table_ids=[t.id for t in tables] if tables else None,
            **fields,
        )
        return (await reservations.create(data)).unwrap()
    return _book


@pytest.fixture
async def floor(add_zone, add_table):
    """
    MAIN: 1 (2 seats), 2 (2), 3 (2), 4 (4)
    TER:  10 (4), 11 (6)
    """
    main = await add_zone("MAIN", "Main Hall", sort_order=1)
    terrace = await add_zone("TER", "Terrace", sort_order=2)
    tables = {}
    for number, capacity, zone in ((1, 2, main), (2, 2, main), (3, 2, main), (4, 4, main), (10, 4, terrace), (11, 6, terrace)):
        tables[number] = await add_table(number, capacity, zone)
    return {"zones": {"MAIN": main, "TER": terrace}, "tables": tables}


async def fetch(session_factory, model, id):
    """Fresh copy of a row"""
    async with session_factory() as session:
        return await session.get(model, id)


async def count(session_factory, model, *where):
    async with session_factory() as session:
        return await session.scalar(select(func.count()).select_from(model).where(*where))


# ==================== HTTP ====================

def actor_headers(role="host", actor_id=None):
    return {"X-Actor-Id": actor_id or f"{role}-1", "X-Actor-Role": role}


@pytest.fixture
def rate_limiter(clock):
    return RateLimiter(InMemoryRateLimitStore(clock), limit=1000, admin_limit=2000)


@pytest.fixture
async def client(session_factory, clock, locks, rate_limiter):
    """Create test client with overridden collaborators"""
    from seatplan.main import app
    from seatplan.api.deps import get_clock, get_lock_registry, get_rate_limiter

    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_lock_registry] = lambda: locks
    app.dependency_overrides[get_rate_limiter] = lambda: rate_limiter

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
