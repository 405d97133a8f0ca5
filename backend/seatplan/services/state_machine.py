"""
Reservation lifecycle and the table state changes it drives.

    pending   --confirm------> confirmed
    pending   --cancel-------> cancelled   (assignment released)
    confirmed --cancel-------> cancelled   (assignment released)
    confirmed --seat---------> seated      (tables occupied)
    seated    --complete-----> completed   (tables cleaning, group dissolved)
    pending   --mark_no_show-> no_show     (assignment released)
    confirmed --mark_no_show-> no_show     (assignment released)
"""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from seatplan.core.clock import Clock
from seatplan.core.errors import (
    InvalidRequestError, InvalidTransitionError, NoTableAssignedError,
    StaleStateError, TableUnavailableError,
)
from seatplan.core.result import Result, returns_result
from seatplan.core.roles import Actor, SYSTEM_ACTOR
from seatplan.models.enums import ReservationStatus, TableStatus
from seatplan.models.reservation import Reservation, ReservationStatusHistory
from seatplan.repositories.customers import CustomerRepository
from seatplan.repositories.reservations import ReservationRepository
from seatplan.repositories.tables import TableRepository
from seatplan.services.assignment import AssignmentEngine
from seatplan.services.audit_service import TableStateAuditSink

logger = logging.getLogger(__name__)

PENDING = ReservationStatus.PENDING.value
CONFIRMED = ReservationStatus.CONFIRMED.value
SEATED = ReservationStatus.SEATED.value

TRANSITIONS = {
    "confirm": ((PENDING,), ReservationStatus.CONFIRMED.value),
    "cancel": ((PENDING, CONFIRMED), ReservationStatus.CANCELLED.value),
    "seat": ((CONFIRMED,), SEATED),
    "complete": ((SEATED,), ReservationStatus.COMPLETED.value),
    "mark_no_show": ((PENDING, CONFIRMED), ReservationStatus.NO_SHOW.value),
}

# Reservation column stamped when the event succeeds
TIMESTAMP_FIELDS = {
    "confirm": "confirmed_at",
    "cancel": "cancelled_at",
    "seat": "seated_at",
    "complete": "completed_at",
    "mark_no_show": "no_show_at",
}


async def record_status_change(
    session: AsyncSession,
    reservation: Reservation,
    old_status: Optional[str],
    new_status: str,
    actor: Actor,
    clock: Clock,
    notes: Optional[str] = None,
) -> ReservationStatusHistory:
    entry = ReservationStatusHistory(
        reservation_id=reservation.id,
        sequence=await ReservationRepository(session).next_history_sequence(reservation.id),
        old_status=old_status,
        new_status=new_status,
        changed_by=actor.id,
        change_source="system" if actor == SYSTEM_ACTOR else "staff",
        notes=notes,
        changed_at=clock.now(),
    )
    session.add(entry)
    await session.flush()
    return entry


class ReservationStateMachine:
    def __init__(self, clock: Clock, assignment: AssignmentEngine):
        self.clock = clock
        self.assignment = assignment

    @returns_result
    async def transition(
        self,
        reservation_id: UUID,
        event: str,
        actor: Optional[Actor] = None,
        expected_status: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> Reservation:
        if event not in TRANSITIONS:
            raise InvalidRequestError(f"Unknown event '{event}'", field="event", event=event)
        actor = actor or SYSTEM_ACTOR

        async with self.assignment.reservation_scope(reservation_id) as (session, current):
            reservation = await self.assignment.load_reservation(session, reservation_id, current)
            old_status = reservation.status
            if expected_status is not None and old_status != expected_status:
                raise StaleStateError(
                    f"Reservation is {old_status}, expected {expected_status}",
                    reservation_id=reservation_id, expected_status=expected_status, status=old_status,
                )
            sources, target = TRANSITIONS[event]
            if old_status not in sources:
                raise InvalidTransitionError(
                    f"Cannot {event} a {old_status} reservation",
                    event=event, status=old_status, allowed_from=list(sources),
                    reservation_id=reservation_id,
                )
            if event in ("seat", "complete") and not reservation.table_ids:
                raise NoTableAssignedError(
                    f"Reservation has no table assigned, cannot {event}",
                    event=event, reservation_id=reservation_id,
                )

            sink = TableStateAuditSink(session, self.clock, actor.id)
            await getattr(self, f"_on_{event}")(session, reservation, sink)

            reservation.status = target
            setattr(reservation, TIMESTAMP_FIELDS[event], self.clock.now())
            if event == "cancel":
                reservation.cancellation_reason = reason
            await record_status_change(session, reservation, old_status, target, actor, self.clock, reason)

        logger.info(f"Reservation {reservation.reservation_number}: {old_status} -> {target} ({event})")
        return reservation

    async def confirm(self, reservation_id: UUID, **kwargs) -> Result:
        return await self.transition(reservation_id, "confirm", **kwargs)

    async def cancel(self, reservation_id: UUID, **kwargs) -> Result:
        return await self.transition(reservation_id, "cancel", **kwargs)

    async def seat(self, reservation_id: UUID, **kwargs) -> Result:
        return await self.transition(reservation_id, "seat", **kwargs)

    async def complete(self, reservation_id: UUID, **kwargs) -> Result:
        return await self.transition(reservation_id, "complete", **kwargs)

    async def mark_no_show(self, reservation_id: UUID, **kwargs) -> Result:
        return await self.transition(reservation_id, "mark_no_show", **kwargs)

    # ==================== Side effects ====================

    async def _on_confirm(self, session, reservation, sink):
        pass

    async def _on_cancel(self, session, reservation, sink):
        await self.assignment.release_in_session(session, reservation, sink)

    async def _on_mark_no_show(self, session, reservation, sink):
        await self.assignment.release_in_session(session, reservation, sink)
        customer = await self._customer(session, reservation)
        if customer:
            customer.no_show_count += 1

    async def _on_seat(self, session, reservation, sink):
        tables = await TableRepository(session).get_many(reservation.table_ids, for_update=True)
        for table in tables:
            if table.status in (TableStatus.OCCUPIED.value, TableStatus.MAINTENANCE.value):
                raise TableUnavailableError(
                    f"Table {table.number} is {table.status}",
                    reason=table.status, table_id=table.id, table_number=table.number,
                )
        for table in tables:
            await sink.set_status(table, TableStatus.OCCUPIED.value, reservation.id)

    async def _on_complete(self, session, reservation, sink):
        tables = await TableRepository(session).get_many(reservation.table_ids, for_update=True)
        await self.assignment.dissolve_fusion(session, reservation, tables, sink)
        for table in tables:
            await sink.set_status(table, TableStatus.CLEANING.value, reservation.id)
        customer = await self._customer(session, reservation)
        if customer:
            customer.visit_count += 1

    @staticmethod
    async def _customer(session, reservation):
        if not reservation.customer_id:
            return None
        return await CustomerRepository(session).get_by_id(reservation.customer_id, for_update=True)
