"""
Reservation intake: validates a new reservation, links it to a customer
through the conflict resolver and optionally assigns tables in the same
transaction.
"""
import logging
import random
import string
from typing import List, Optional, Set
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from seatplan.core.clock import Clock
from seatplan.core.database import transaction
from seatplan.core.errors import (
    ConflictUnresolvedError, CustomerNotFoundError, InvalidRequestError,
    ReservationNotFoundError, StaleStateError, ZoneNotFoundError,
)
from seatplan.core.locks import KeyedLockRegistry, contact_key, customer_key, table_key
from seatplan.core.normalization import is_valid_email, is_valid_phone
from seatplan.core.result import returns_result
from seatplan.core.roles import Actor, SYSTEM_ACTOR
from seatplan.models.customer import Customer
from seatplan.models.enums import ReservationStatus, STAFF_ORIGINS
from seatplan.models.reservation import Reservation, ReservationStatusHistory
from seatplan.repositories.customers import CustomerRepository
from seatplan.repositories.reservations import ReservationRepository
from seatplan.repositories.tables import ZoneRepository
from seatplan.schemas.reservation import ReservationCreate
from seatplan.services.assignment import AssignmentEngine, normalize_table_ids
from seatplan.services.audit_service import AuditService, serialize_for_audit
from seatplan.services.customer_conflicts import CONFLICT, NONE, CustomerConflictResolver
from seatplan.services.state_machine import record_status_change

logger = logging.getLogger(__name__)

AUDIT_FIELDS = [
    "reservation_number", "customer_id", "customer_name", "party_size", "date",
    "start_time", "duration_minutes", "status", "origin",
]


class ReservationService:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        clock: Clock,
        locks: KeyedLockRegistry,
        assignment: AssignmentEngine,
        resolver: CustomerConflictResolver,
    ):
        self.session_factory = session_factory
        self.clock = clock
        self.locks = locks
        self.assignment = assignment
        self.availability = assignment.availability
        self.resolver = resolver

    def generate_reservation_number(self) -> str:
        """Generate a reservation number: RES-YYYYMMDD-XXXX."""
        today = self.clock.today().strftime("%Y%m%d")
        rand = "".join(random.choices(string.ascii_uppercase + string.digits, k=4))
        return f"RES-{today}-{rand}"

    # ==================== Create ====================

    @returns_result
    async def create(self, data: ReservationCreate, actor: Optional[Actor] = None) -> Reservation:
        actor = actor or SYSTEM_ACTOR
        email, phone = self.resolver.normalize(data.customer_email, data.customer_phone)
        duration = data.duration_minutes or self.availability.default_duration_minutes

        self.availability.validate_request(data.date, data.start_time, data.party_size, duration)
        if data.children_count > data.party_size:
            raise InvalidRequestError(
                "Children cannot outnumber the party",
                field="children_count", children_count=data.children_count, party_size=data.party_size,
            )
        if phone and not is_valid_phone(phone):
            raise InvalidRequestError("Invalid phone number", field="customer_phone", phone=phone)
        if email and not is_valid_email(email):
            raise InvalidRequestError("Invalid email address", field="customer_email", email=email)

        table_ids = normalize_table_ids(data.table_ids or [])
        if data.customer_id:
            customer_ids = {data.customer_id}
        else:
            customer_ids = await self.resolver.matched_customer_ids(email, phone)
        keys = [
            contact_key(email), contact_key(phone),
            *[customer_key(c) for c in customer_ids],
            *[table_key(t) for t in table_ids],
        ]

        async with self.locks.acquire(*keys):
            async with transaction(self.session_factory) as session:
                zone_id = await self._requested_zone(session, data.requested_zone)
                customer = await self._link_customer(session, data, email, phone, customer_ids, actor)

                status = (
                    ReservationStatus.CONFIRMED.value if data.origin in STAFF_ORIGINS
                    else ReservationStatus.PENDING.value
                )
                reservation = Reservation(
                    reservation_number=await self._unique_number(session),
                    customer_id=customer.id,
                    customer_name=data.customer_name,
                    customer_phone=phone,
                    customer_email=email,
                    party_size=data.party_size,
                    children_count=data.children_count,
                    date=data.date,
                    start_time=data.start_time,
                    duration_minutes=duration,
                    requested_zone_id=zone_id,
                    status=status,
                    origin=data.origin,
                    special_requests=data.special_requests,
                    internal_notes=data.internal_notes,
                    confirmed_at=self.clock.now() if status == ReservationStatus.CONFIRMED.value else None,
                    created_by=actor.id,
                    table_links=[],
                )
                session.add(reservation)
                await session.flush()

                await record_status_change(session, reservation, None, status, actor, self.clock, "created")
                await AuditService(session, actor.id).log_create(
                    "reservation", reservation.id,
                    serialize_for_audit(reservation, AUDIT_FIELDS),
                    entity_name=reservation.reservation_number,
                )
                if table_ids:
                    await self.assignment.assign_in_session(session, reservation, table_ids, False, actor)

        logger.info(
            f"Reservation {reservation.reservation_number} created ({status}) "
            f"for {data.party_size} on {data.date} {data.start_time}"
        )
        return reservation

    async def _requested_zone(self, session: AsyncSession, reference) -> Optional[UUID]:
        if not reference:
            return None
        zone = await ZoneRepository(session).resolve(reference)
        if not zone:
            raise ZoneNotFoundError(f"Zone '{reference}' not found", zone=reference)
        return zone.id

    async def _unique_number(self, session: AsyncSession) -> str:
        repo = ReservationRepository(session)
        while True:
            number = self.generate_reservation_number()
            if not await repo.number_exists(number):
                return number

    async def _link_customer(
        self, session: AsyncSession, data: ReservationCreate,
        email: Optional[str], phone: Optional[str], locked_ids: Set[UUID], actor: Actor,
    ) -> Customer:
        repo = CustomerRepository(session)
        if data.customer_id:
            customer = await repo.get_by_id(data.customer_id, for_update=True)
            if not customer or not customer.is_active:
                raise CustomerNotFoundError("Customer not found", customer_id=data.customer_id)
            return customer

        resolution = data.customer_resolution
        existence = await self.resolver.existence_in_session(session, email, phone, for_update=True)
        if not existence.matched_ids() <= locked_ids:
            # Another request linked these contacts to a customer after the unlocked read
            raise StaleStateError(
                "Customer records changed while the request was waiting, please retry",
                email=email, phone=phone,
            )

        if existence.kind == CONFLICT:
            if resolution in (None, "update"):
                raise ConflictUnresolvedError(
                    "Email and phone belong to different customers, choose a resolution",
                    email_customer_id=existence.email_match.id,
                    phone_customer_id=existence.phone_match.id,
                    email=email, phone=phone,
                )
            outcome = await self.resolver.apply_in_session(
                session, existence.email_match, existence.phone_match, resolution,
                email, phone, data.customer_name, actor,
            )
            return outcome.customer

        if existence.kind == NONE or resolution == "create_new":
            return await self._create_customer(session, data, email, phone, actor)

        if resolution not in (None, "update"):
            raise InvalidRequestError(
                f"Resolution '{resolution}' only applies to conflicts",
                field="customer_resolution", kind=existence.kind,
            )
        customer = existence.customer
        if email and not customer.email:
            customer.email = email
        if phone and not customer.phone:
            customer.phone = phone
        await session.flush()
        return customer

    async def _create_customer(
        self, session: AsyncSession, data: ReservationCreate,
        email: Optional[str], phone: Optional[str], actor: Actor,
    ) -> Customer:
        customer = await CustomerRepository(session).create({
            "name": data.customer_name,
            "email": email,
            "phone": phone,
            "created_by": actor.id,
        })
        await AuditService(session, actor.id).log_create(
            "customer", customer.id, {"name": customer.name, "email": email, "phone": phone},
            entity_name=customer.name,
        )
        return customer

    # ==================== Queries ====================

    @returns_result
    async def get(self, reservation_id: UUID) -> Reservation:
        async with self.session_factory() as session:
            reservation = await ReservationRepository(session).get_by_id(reservation_id)
            if not reservation:
                raise ReservationNotFoundError("Reservation not found", reservation_id=reservation_id)
            return reservation

    @returns_result
    async def history(self, reservation_id: UUID) -> List[ReservationStatusHistory]:
        async with self.session_factory() as session:
            repo = ReservationRepository(session)
            if not await repo.exists(id=reservation_id):
                raise ReservationNotFoundError("Reservation not found", reservation_id=reservation_id)
            return await repo.history(reservation_id)
