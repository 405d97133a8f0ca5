"""
Availability calculation: which tables (or contiguous groups of combinable
tables) can serve a party at a given date and time.
"""
from dataclasses import dataclass
from datetime import date, time
from typing import Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from seatplan.core.clock import Clock
from seatplan.core.errors import (
    CapacityExceededError, InvalidRequestError, OutOfServiceHoursError,
    TableUnavailableError, ZoneNotFoundError,
)
from seatplan.core.result import returns_result
from seatplan.core.timeslots import format_time, format_windows, in_service_hours
from seatplan.models.enums import FusionState, TableStatus
from seatplan.models.restaurant import Table, Zone
from seatplan.repositories.reservations import ReservationRepository
from seatplan.repositories.tables import TableRepository, ZoneRepository


@dataclass
class Candidate:
    """A single table or a contiguous run of tables, lead table first."""

    tables: List[Table]
    zone_match: bool = False

    @property
    def lead_table(self) -> Table:
        return self.tables[0]

    @property
    def capacity(self) -> int:
        return sum(t.capacity for t in self.tables)

    @property
    def table_ids(self) -> List[UUID]:
        return [t.id for t in self.tables]

    @property
    def zone_id(self) -> Optional[UUID]:
        return self.lead_table.zone_id

    @property
    def is_group(self) -> bool:
        return len(self.tables) > 1


def is_contiguous(tables: Sequence[Table]) -> bool:
    """Same zone and consecutive table numbers."""
    ordered = sorted(tables, key=lambda t: t.number)
    return all(
        b.zone_id == a.zone_id and b.number == a.number + 1
        for a, b in zip(ordered, ordered[1:])
    )


def fusion_compatible(tables: Sequence[Table]) -> bool:
    """
    A group may reuse tables that are already fused (for another time slot)
    only when they are fused under the same lead table.
    """
    if len(tables) < 2:
        return True
    lead = min(tables, key=lambda t: t.number)
    for table in tables:
        if table.fusion_state == FusionState.FUSION_MASTER.value and table.id != lead.id:
            return False
        if table.fusion_state == FusionState.FUSION_SLAVE.value and table.fusion_master_id != lead.id:
            return False
    return True


class AvailabilityCalculator:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        clock: Clock,
        service_windows: List[Tuple[time, time]],
        buffer_minutes: int = 15,
        max_party_size: int = 20,
        max_tables_per_group: int = 4,
        default_duration_minutes: int = 90,
    ):
        self.session_factory = session_factory
        self.clock = clock
        self.service_windows = service_windows
        self.buffer_minutes = buffer_minutes
        self.max_party_size = max_party_size
        self.max_tables_per_group = max_tables_per_group
        self.default_duration_minutes = default_duration_minutes

    # ==================== Validation ====================

    def check_service_hours(self, start: time) -> None:
        if not in_service_hours(start, self.service_windows):
            raise OutOfServiceHoursError(
                f"{format_time(start)} is outside service hours",
                time=format_time(start),
                service_windows=format_windows(self.service_windows),
            )

    def validate_request(self, day: date, start: time, party_size: int, duration_minutes: int) -> None:
        if party_size < 1 or party_size > self.max_party_size:
            raise InvalidRequestError(
                f"Party size must be between 1 and {self.max_party_size}",
                field="party_size", party_size=party_size, max_party_size=self.max_party_size,
            )
        if duration_minutes < 1:
            raise InvalidRequestError(
                "Duration must be positive", field="duration_minutes", duration_minutes=duration_minutes,
            )
        if day < self.clock.today():
            raise InvalidRequestError(
                "Reservation date is in the past",
                field="date", date=day, today=self.clock.today(),
            )
        self.check_service_hours(start)

    def check_group_capacity(self, tables: Sequence[Table], party_size: int) -> None:
        """
        Capacity rules that hold even for forced assignments: the tables seat
        the party, groups are combinable, no larger than the group limit and
        within the lead table's combined capacity.
        """
        tables = sorted(tables, key=lambda t: t.number)
        capacity = sum(t.capacity for t in tables)
        if capacity < party_size:
            raise CapacityExceededError(
                f"Party of {party_size} does not fit tables with capacity {capacity}",
                constraint="capacity", party_size=party_size, capacity=capacity,
                table_numbers=[t.number for t in tables],
            )
        if len(tables) < 2:
            return
        if len(tables) > self.max_tables_per_group:
            raise CapacityExceededError(
                f"A group may combine at most {self.max_tables_per_group} tables",
                constraint="max_tables_per_group", tables=len(tables),
                max_tables_per_group=self.max_tables_per_group,
            )
        not_combinable = [t.number for t in tables if not t.is_combinable]
        if not_combinable:
            raise TableUnavailableError(
                "Tables cannot be combined",
                reason="not_combinable", table_numbers=not_combinable,
            )
        lead = tables[0]
        if lead.max_combined_capacity is not None and capacity > lead.max_combined_capacity:
            raise CapacityExceededError(
                f"Group capacity {capacity} exceeds the combined limit of table {lead.number}",
                constraint="max_combined_capacity", capacity=capacity,
                max_combined_capacity=lead.max_combined_capacity, lead_table_number=lead.number,
            )

    # ==================== Candidates ====================

    @returns_result
    async def find_candidate_tables(
        self,
        day: date,
        start: time,
        party_size: int,
        duration_minutes: Optional[int] = None,
        zone_preference=None,
        exclude_reservation_id: Optional[UUID] = None,
    ) -> List[Candidate]:
        async with self.session_factory() as session:
            return await self.candidates_in_session(
                session, day, start, party_size, duration_minutes,
                zone_preference, exclude_reservation_id,
            )

    async def candidates_in_session(
        self,
        session: AsyncSession,
        day: date,
        start: time,
        party_size: int,
        duration_minutes: Optional[int] = None,
        zone_preference=None,
        exclude_reservation_id: Optional[UUID] = None,
    ) -> List[Candidate]:
        duration_minutes = duration_minutes or self.default_duration_minutes
        self.validate_request(day, start, party_size, duration_minutes)

        zone = None
        if zone_preference is not None:
            zone = await ZoneRepository(session).resolve(zone_preference)
            if zone is None:
                raise ZoneNotFoundError(f"Zone '{zone_preference}' not found", zone=str(zone_preference))

        eligible = [
            t for t in await TableRepository(session).list_floor()
            if t.fusion_state != FusionState.BLOCKED.value
            and t.status != TableStatus.MAINTENANCE.value
        ]
        overlapping = await ReservationRepository(session).find_overlapping(
            [t.id for t in eligible], day, start, duration_minutes,
            self.buffer_minutes, exclude_reservation_id,
        )
        busy = {table_id for r in overlapping for table_id in r.table_ids}
        free = [t for t in eligible if t.id not in busy]

        candidates = [Candidate([t]) for t in free if t.capacity >= party_size]
        candidates.extend(Candidate(run) for run in self._groups(free, party_size))
        return self._rank(candidates, zone)

    def _groups(self, free: Iterable[Table], party_size: int) -> List[List[Table]]:
        """Minimal contiguous runs of free combinable tables seating the party."""
        by_zone = {}
        for table in free:
            if table.is_combinable:
                by_zone.setdefault(table.zone_id, []).append(table)

        runs = []
        for tables in by_zone.values():
            tables.sort(key=lambda t: t.number)
            for i, lead in enumerate(tables):
                run = [lead]
                for nxt in tables[i + 1:]:
                    if sum(t.capacity for t in run) >= party_size or len(run) >= self.max_tables_per_group:
                        break
                    if nxt.number != run[-1].number + 1:
                        break
                    run.append(nxt)
                if self._is_offerable(run, party_size):
                    runs.append(run)
        return runs

    @staticmethod
    def _is_offerable(run: List[Table], party_size: int) -> bool:
        capacity = sum(t.capacity for t in run)
        limit = run[0].max_combined_capacity
        return (
            len(run) >= 2
            and capacity >= party_size
            and (limit is None or capacity <= limit)
            and all(t.capacity < party_size for t in run)
            and fusion_compatible(run)
        )

    @staticmethod
    def _rank(candidates: List[Candidate], zone: Optional[Zone]) -> List[Candidate]:
        for candidate in candidates:
            candidate.zone_match = zone is not None and candidate.zone_id == zone.id

        def sort_key(c: Candidate):
            zone_penalty = 0 if zone is None or c.zone_match else 1
            return (zone_penalty, c.capacity, len(c.tables), c.lead_table.number)

        return sorted(candidates, key=sort_key)
