"""
Assignment engine: binds a reservation to one table or a fusion group.

Each call locks the reservation plus every table it touches (old and new),
re-reads the reservation inside its own transaction and refuses to act if
the assignment changed since it was first read.
"""
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Iterable, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from seatplan.core.clock import Clock
from seatplan.core.database import transaction
from seatplan.core.errors import (
    InvalidRequestError, InvalidTransitionError, ReservationNotFoundError,
    StaleStateError, TableNotFoundError, TableUnavailableError,
)
from seatplan.core.locks import KeyedLockRegistry, reservation_key, table_key
from seatplan.core.result import returns_result
from seatplan.core.roles import Actor, SYSTEM_ACTOR
from seatplan.core.timeslots import format_time
from seatplan.models.enums import ACTIVE_STATUSES, FusionState, ReservationStatus, TableStatus
from seatplan.models.reservation import Reservation, ReservationTable
from seatplan.models.restaurant import Table
from seatplan.repositories.reservations import ReservationRepository
from seatplan.repositories.tables import TableRepository
from seatplan.services.audit_service import AuditService, TableStateAuditSink
from seatplan.services.availability import AvailabilityCalculator, fusion_compatible, is_contiguous

logger = logging.getLogger(__name__)

ASSIGNABLE_STATUSES = (ReservationStatus.PENDING.value, ReservationStatus.CONFIRMED.value)


@dataclass
class AssignmentResult:
    reservation_id: UUID
    table_ids: List[UUID] = field(default_factory=list)
    lead_table_id: Optional[UUID] = None
    capacity: int = 0
    forced: bool = False
    overlap_warning: bool = False
    overlapping_reservation_ids: List[UUID] = field(default_factory=list)
    already_assigned: bool = False


def normalize_table_ids(table_ids: Iterable) -> List[UUID]:
    ids = {t if isinstance(t, UUID) else UUID(str(t)) for t in table_ids}
    return sorted(ids, key=str)


class AssignmentEngine:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        clock: Clock,
        locks: KeyedLockRegistry,
        availability: AvailabilityCalculator,
    ):
        self.session_factory = session_factory
        self.clock = clock
        self.locks = locks
        self.availability = availability

    # ==================== Locking ====================

    async def current_table_ids(self, reservation_id: UUID) -> List[UUID]:
        async with self.session_factory() as session:
            reservation = await ReservationRepository(session).get_by_id(reservation_id)
            if not reservation:
                raise ReservationNotFoundError("Reservation not found", reservation_id=reservation_id)
            return reservation.table_ids

    @asynccontextmanager
    async def reservation_scope(self, reservation_id: UUID, table_ids: Iterable[UUID] = ()):
        """
        Lock the reservation with its current and requested tables, then open
        a transaction. Yields (session, table ids read before locking).
        """
        current = await self.current_table_ids(reservation_id)
        keys = [reservation_key(reservation_id)]
        keys += [table_key(t) for t in [*current, *table_ids]]
        async with self.locks.acquire(*keys):
            async with transaction(self.session_factory) as session:
                yield session, current

    async def load_reservation(
        self, session: AsyncSession, reservation_id: UUID, expected_table_ids: Optional[List[UUID]] = None,
    ) -> Reservation:
        reservation = await ReservationRepository(session).get_by_id(reservation_id, for_update=True)
        if not reservation:
            raise ReservationNotFoundError("Reservation not found", reservation_id=reservation_id)
        if expected_table_ids is not None and reservation.table_ids != sorted(expected_table_ids, key=str):
            raise StaleStateError(
                "Reservation assignment changed while waiting, please retry",
                reservation_id=reservation_id,
                expected_table_ids=expected_table_ids, actual_table_ids=reservation.table_ids,
            )
        return reservation

    # ==================== Assign ====================

    @returns_result
    async def assign(
        self, reservation_id: UUID, table_ids: Iterable, force: bool = False, actor: Optional[Actor] = None,
    ) -> AssignmentResult:
        actor = actor or SYSTEM_ACTOR
        ids = normalize_table_ids(table_ids)
        async with self.reservation_scope(reservation_id, ids) as (session, current):
            reservation = await self.load_reservation(session, reservation_id, current)
            result = await self.assign_in_session(session, reservation, ids, force, actor)

        if result.already_assigned:
            logger.info(f"Reservation {reservation_id} already assigned to {len(ids)} table(s)")
        elif result.overlap_warning:
            logger.warning(
                f"Forced assignment of reservation {reservation_id} by {actor.id} overlaps "
                f"{len(result.overlapping_reservation_ids)} reservation(s)"
            )
        else:
            logger.info(f"Reservation {reservation_id} assigned to {len(ids)} table(s)")
        return result

    async def assign_in_session(
        self, session: AsyncSession, reservation: Reservation, table_ids: List[UUID],
        force: bool, actor: Actor,
    ) -> AssignmentResult:
        if not table_ids:
            raise InvalidRequestError("At least one table is required", field="table_ids")
        if reservation.status not in ASSIGNABLE_STATUSES:
            raise InvalidTransitionError(
                f"Cannot assign tables to a {reservation.status} reservation",
                event="assign", status=reservation.status, reservation_id=reservation.id,
            )

        if reservation.table_ids == table_ids:
            tables = await TableRepository(session).get_many(table_ids)
            return AssignmentResult(
                reservation_id=reservation.id,
                table_ids=table_ids,
                lead_table_id=reservation.table_id,
                capacity=sum(t.capacity for t in tables),
                already_assigned=True,
            )

        tables = await TableRepository(session).get_many(table_ids, for_update=True)
        missing = set(table_ids) - {t.id for t in tables}
        if missing:
            raise TableNotFoundError("Table not found", table_ids=sorted(missing, key=str))

        # The previous assignment is dropped first so its own fusion group does not
        # count against the new one; a refusal below rolls the release back.
        sink = TableStateAuditSink(session, self.clock, actor.id)
        await self.release_in_session(session, reservation, sink)

        self._check_tables_usable(tables)
        self.availability.check_group_capacity(tables, reservation.party_size)

        if not force:
            self.availability.check_service_hours(reservation.start_time)
            if len(tables) > 1 and not is_contiguous(tables):
                raise TableUnavailableError(
                    "Combined tables must be adjacent in the same zone",
                    reason="not_contiguous", table_numbers=[t.number for t in tables],
                )

        overlapping = await ReservationRepository(session).find_overlapping(
            table_ids, reservation.date, reservation.start_time, reservation.duration_minutes,
            self.availability.buffer_minutes, exclude_reservation_id=reservation.id,
        )
        if overlapping and not force:
            clash = overlapping[0]
            raise TableUnavailableError(
                "Table is already reserved for an overlapping time",
                reason="overlap",
                table_numbers=[t.number for t in tables if t.id in set(clash.table_ids)],
                conflicting_reservation=clash.reservation_number,
                conflicting_window={
                    "date": clash.date,
                    "start": format_time(clash.start_time),
                    "duration_minutes": clash.duration_minutes,
                },
                buffer_minutes=self.availability.buffer_minutes,
            )

        await self._claim(session, reservation, tables, sink)

        result = AssignmentResult(
            reservation_id=reservation.id,
            table_ids=table_ids,
            lead_table_id=reservation.table_id,
            capacity=sum(t.capacity for t in tables),
            forced=force,
            overlap_warning=bool(overlapping),
            overlapping_reservation_ids=[r.id for r in overlapping],
        )
        if force:
            await AuditService(session, actor.id).log(
                entity_type="reservation",
                entity_id=reservation.id,
                entity_name=reservation.reservation_number,
                action="forced_assignment",
                action_detail=f"Forced assignment to tables {[t.number for t in tables]}",
                new_values={
                    "table_ids": table_ids,
                    "overlapping_reservation_ids": result.overlapping_reservation_ids,
                },
            )
        return result

    def _check_tables_usable(self, tables: List[Table]) -> None:
        compatible = fusion_compatible(tables)
        for table in tables:
            reason = None
            if not table.is_active:
                reason = "inactive"
            elif table.fusion_state == FusionState.BLOCKED.value:
                reason = "blocked"
            elif table.status == TableStatus.MAINTENANCE.value:
                reason = "maintenance"
            elif not compatible and table.fusion_state != FusionState.INDIVIDUAL.value:
                reason = "fused"
            if reason:
                raise TableUnavailableError(
                    f"Table {table.number} is not available ({reason})",
                    reason=reason, table_id=table.id, table_number=table.number,
                    status=table.status, fusion_state=table.fusion_state,
                )

    async def _claim(
        self, session: AsyncSession, reservation: Reservation, tables: List[Table], sink: TableStateAuditSink,
    ) -> None:
        tables = sorted(tables, key=lambda t: t.number)
        lead = tables[0]
        for table in tables:
            reservation.table_links.append(ReservationTable(table_id=table.id))
            if table.status == TableStatus.AVAILABLE.value:
                await sink.set_status(table, TableStatus.RESERVED.value, reservation.id)
        if len(tables) > 1:
            await sink.set_fusion(lead, FusionState.FUSION_MASTER.value, None, reservation.id)
            for table in tables[1:]:
                await sink.set_fusion(table, FusionState.FUSION_SLAVE.value, lead.id, reservation.id)
        reservation.table_id = lead.id
        await session.flush()

    # ==================== Release ====================

    @returns_result
    async def release(self, reservation_id: UUID, actor: Optional[Actor] = None) -> AssignmentResult:
        actor = actor or SYSTEM_ACTOR
        async with self.reservation_scope(reservation_id) as (session, current):
            reservation = await self.load_reservation(session, reservation_id, current)
            if reservation.status not in ASSIGNABLE_STATUSES:
                raise InvalidTransitionError(
                    f"Cannot release tables of a {reservation.status} reservation",
                    event="release", status=reservation.status, reservation_id=reservation.id,
                )
            sink = TableStateAuditSink(session, self.clock, actor.id)
            released = await self.release_in_session(session, reservation, sink)

        logger.info(f"Reservation {reservation_id} released {len(released)} table(s)")
        return AssignmentResult(reservation_id=reservation_id, table_ids=released)

    async def release_in_session(
        self, session: AsyncSession, reservation: Reservation, sink: TableStateAuditSink,
    ) -> List[UUID]:
        """
        Drop the reservation's tables and dissolve its fusion group. Reserved
        tables go back to available unless another pending or confirmed
        reservation still holds them.
        """
        released = reservation.table_ids
        if not released:
            return []
        tables = await TableRepository(session).get_many(released, for_update=True)
        still_held = await ReservationRepository(session).tables_held_by_others(
            released, ASSIGNABLE_STATUSES, exclude_reservation_id=reservation.id,
        )
        await self.dissolve_fusion(session, reservation, tables, sink)
        for table in tables:
            if table.status == TableStatus.RESERVED.value:
                target = TableStatus.RESERVED.value if table.id in still_held else TableStatus.AVAILABLE.value
                await sink.set_status(table, target, reservation.id)

        reservation.table_links.clear()
        reservation.table_id = None
        await session.flush()
        return released

    async def dissolve_fusion(
        self, session: AsyncSession, reservation: Reservation, tables: List[Table], sink: TableStateAuditSink,
    ) -> None:
        """
        Break up the fusion group formed by this reservation. Only tables fused
        under its own lead are touched, and a table stays fused while another
        active reservation still holds it inside a group.
        """
        if len(tables) < 2:
            return
        lead_id = reservation.table_id
        grouped_elsewhere = await ReservationRepository(session).tables_held_by_others(
            [t.id for t in tables], ACTIVE_STATUSES, exclude_reservation_id=reservation.id, grouped_only=True,
        )
        for table in tables:
            owned = (
                (table.fusion_state == FusionState.FUSION_MASTER.value and table.id == lead_id)
                or (table.fusion_state == FusionState.FUSION_SLAVE.value and table.fusion_master_id == lead_id)
            )
            if owned and table.id not in grouped_elsewhere:
                await sink.set_fusion(table, FusionState.INDIVIDUAL.value, None, reservation.id)
