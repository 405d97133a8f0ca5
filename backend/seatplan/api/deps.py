"""
Collaborators for the HTTP layer. Each service is built per request from
the process-wide clock, lock registry and rate limiter; tests override the
get_* providers.
"""
from fastapi import Depends
from sqlalchemy.ext.asyncio import async_sessionmaker

from seatplan.core.clock import Clock, SystemClock
from seatplan.core.config import settings
from seatplan.core.database import get_session_factory
from seatplan.core.locks import KeyedLockRegistry
from seatplan.core.rate_limit import InMemoryRateLimitStore, RateLimiter
from seatplan.services.assignment import AssignmentEngine
from seatplan.services.availability import AvailabilityCalculator
from seatplan.services.customer_conflicts import CustomerConflictResolver
from seatplan.services.floor_service import FloorService
from seatplan.services.reservation_service import ReservationService
from seatplan.services.state_machine import ReservationStateMachine

_clock = SystemClock(settings.TIMEZONE)
_locks = KeyedLockRegistry()
_rate_limiter = RateLimiter(
    InMemoryRateLimitStore(_clock),
    limit=settings.RATE_LIMIT_PER_MINUTE,
    admin_limit=settings.RATE_LIMIT_ADMIN_PER_MINUTE,
)


def get_clock() -> Clock:
    return _clock


def get_lock_registry() -> KeyedLockRegistry:
    return _locks


def get_rate_limiter() -> RateLimiter:
    return _rate_limiter


# ==================== Services ====================

def get_availability(
    session_factory: async_sessionmaker = Depends(get_session_factory),
    clock: Clock = Depends(get_clock),
) -> AvailabilityCalculator:
    return AvailabilityCalculator(
        session_factory,
        clock,
        service_windows=settings.service_windows,
        buffer_minutes=settings.TURNOVER_BUFFER_MINUTES,
        max_party_size=settings.MAX_PARTY_SIZE,
        max_tables_per_group=settings.MAX_TABLES_PER_GROUP,
        default_duration_minutes=settings.DEFAULT_DURATION_MINUTES,
    )


def get_assignment_engine(
    session_factory: async_sessionmaker = Depends(get_session_factory),
    clock: Clock = Depends(get_clock),
    locks: KeyedLockRegistry = Depends(get_lock_registry),
    availability: AvailabilityCalculator = Depends(get_availability),
) -> AssignmentEngine:
    return AssignmentEngine(session_factory, clock, locks, availability)


def get_state_machine(
    clock: Clock = Depends(get_clock),
    assignment: AssignmentEngine = Depends(get_assignment_engine),
) -> ReservationStateMachine:
    return ReservationStateMachine(clock, assignment)


def get_conflict_resolver(
    session_factory: async_sessionmaker = Depends(get_session_factory),
    locks: KeyedLockRegistry = Depends(get_lock_registry),
) -> CustomerConflictResolver:
    return CustomerConflictResolver(session_factory, locks, country_code=settings.DEFAULT_COUNTRY_CODE)


def get_reservation_service(
    session_factory: async_sessionmaker = Depends(get_session_factory),
    clock: Clock = Depends(get_clock),
    locks: KeyedLockRegistry = Depends(get_lock_registry),
    assignment: AssignmentEngine = Depends(get_assignment_engine),
    resolver: CustomerConflictResolver = Depends(get_conflict_resolver),
) -> ReservationService:
    return ReservationService(session_factory, clock, locks, assignment, resolver)


def get_floor_service(
    session_factory: async_sessionmaker = Depends(get_session_factory),
    clock: Clock = Depends(get_clock),
    locks: KeyedLockRegistry = Depends(get_lock_registry),
) -> FloorService:
    return FloorService(session_factory, clock, locks)
