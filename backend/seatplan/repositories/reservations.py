"""Reservation queries: overlap range query and assignment lookups."""
from datetime import date, time, timedelta
from typing import Iterable, List, Optional, Set
from uuid import UUID
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from seatplan.core.timeslots import reservation_window, windows_overlap
from seatplan.models.enums import ACTIVE_STATUSES
from seatplan.models.reservation import Reservation, ReservationTable, ReservationStatusHistory
from seatplan.repositories.base import BaseRepository


class ReservationRepository(BaseRepository[Reservation]):
    def __init__(self, db: AsyncSession):
        super().__init__(Reservation, db)

    async def find_overlapping(
        self,
        table_ids: Iterable[UUID],
        day: date,
        start: time,
        duration_minutes: int,
        buffer_minutes: int,
        exclude_reservation_id: Optional[UUID] = None,
    ) -> List[Reservation]:
        """
        Active reservations holding any of `table_ids` whose window, widened
        by the turnover buffer, intersects [start, start + duration).
        Neighbouring days are included so windows crossing midnight are seen.
        """
        table_ids = list(table_ids)
        if not table_ids:
            return []
        held = select(ReservationTable.reservation_id).where(ReservationTable.table_id.in_(table_ids))
        query = select(Reservation).where(
            Reservation.id.in_(held),
            Reservation.status.in_(ACTIVE_STATUSES),
            Reservation.date.between(day - timedelta(days=1), day + timedelta(days=1)),
        )
        if exclude_reservation_id:
            query = query.where(Reservation.id != exclude_reservation_id)

        result = await self.db.execute(query.order_by(Reservation.date, Reservation.start_time))
        wanted = reservation_window(day, start, duration_minutes)
        return [
            existing for existing in result.scalars().all()
            if windows_overlap(
                reservation_window(existing.date, existing.start_time, existing.duration_minutes),
                wanted,
                buffer_minutes,
            )
        ]

    async def tables_held_by_others(
        self,
        table_ids: Iterable[UUID],
        statuses: Iterable[str],
        exclude_reservation_id: Optional[UUID] = None,
        grouped_only: bool = False,
    ) -> Set[UUID]:
        """
        Which of `table_ids` are still assigned to another reservation in
        `statuses`. With `grouped_only`, only reservations holding two or more
        tables (a fusion group) count.
        """
        table_ids = list(table_ids)
        if not table_ids:
            return set()
        query = (
            select(ReservationTable.table_id)
            .join(Reservation, Reservation.id == ReservationTable.reservation_id)
            .where(
                ReservationTable.table_id.in_(table_ids),
                Reservation.status.in_(list(statuses)),
            )
        )
        if exclude_reservation_id:
            query = query.where(Reservation.id != exclude_reservation_id)
        if grouped_only:
            groups = (
                select(ReservationTable.reservation_id)
                .group_by(ReservationTable.reservation_id)
                .having(func.count(ReservationTable.table_id) > 1)
            )
            query = query.where(Reservation.id.in_(groups))
        result = await self.db.execute(query)
        return set(result.scalars().all())

    async def by_customer(self, customer_id: UUID) -> List[Reservation]:
        result = await self.db.execute(select(Reservation).where(Reservation.customer_id == customer_id))
        return list(result.scalars().all())

    async def number_exists(self, reservation_number: str) -> bool:
        return await self.exists(reservation_number=reservation_number)

    async def history(self, reservation_id: UUID) -> List[ReservationStatusHistory]:
        result = await self.db.execute(
            select(ReservationStatusHistory)
            .where(ReservationStatusHistory.reservation_id == reservation_id)
            .order_by(ReservationStatusHistory.sequence)
        )
        return list(result.scalars().all())

    async def next_history_sequence(self, reservation_id: UUID) -> int:
        last = await self.db.scalar(
            select(func.max(ReservationStatusHistory.sequence))
            .where(ReservationStatusHistory.reservation_id == reservation_id)
        )
        return (last or 0) + 1
