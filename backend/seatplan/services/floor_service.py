"""
Floor administration: zones and tables, plus the manual table state edits
(block/unblock, maintenance, cleaning -> available) and table history.
"""
import logging
from contextlib import asynccontextmanager
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from seatplan.core.clock import Clock
from seatplan.core.database import transaction
from seatplan.core.errors import (
    InvalidRequestError, InvalidTransitionError, TableNotFoundError,
    TableUnavailableError, ZoneNotFoundError,
)
from seatplan.core.locks import KeyedLockRegistry, table_key
from seatplan.core.result import returns_result
from seatplan.core.roles import Actor, SYSTEM_ACTOR
from seatplan.models.enums import FusionState, ReservationStatus, TableStatus
from seatplan.models.restaurant import Table, TableStateLog, Zone
from seatplan.repositories.reservations import ReservationRepository
from seatplan.repositories.tables import TableRepository, ZoneRepository
from seatplan.schemas.restaurant import TableCreate, TableUpdate, ZoneCreate
from seatplan.services.audit_service import AuditService, TableStateAuditSink, serialize_for_audit

logger = logging.getLogger(__name__)

TABLE_AUDIT_FIELDS = ["number", "zone_id", "capacity", "max_combined_capacity", "is_combinable", "is_active", "notes"]
HOLDING_STATUSES = (ReservationStatus.PENDING.value, ReservationStatus.CONFIRMED.value)


class FloorService:
    def __init__(self, session_factory: async_sessionmaker, clock: Clock, locks: KeyedLockRegistry):
        self.session_factory = session_factory
        self.clock = clock
        self.locks = locks

    # ==================== Zones ====================

    @returns_result
    async def create_zone(self, data: ZoneCreate, actor: Optional[Actor] = None) -> Zone:
        actor = actor or SYSTEM_ACTOR
        async with transaction(self.session_factory) as session:
            repo = ZoneRepository(session)
            if await repo.exists(code=data.code):
                raise InvalidRequestError(f"Zone code '{data.code}' already exists", field="code", code=data.code)
            zone = await repo.create(data.model_dump())
            await AuditService(session, actor.id).log_create(
                "zone", zone.id, data.model_dump(), entity_name=zone.name,
            )
        logger.info(f"Zone {zone.code} created by {actor.id}")
        return zone

    @returns_result
    async def list_zones(self) -> List[Zone]:
        async with self.session_factory() as session:
            zones, _ = await ZoneRepository(session).get_all(is_active_filter=True, limit=1000)
            return zones

    # ==================== Tables ====================

    @returns_result
    async def create_table(self, data: TableCreate, actor: Optional[Actor] = None) -> Table:
        actor = actor or SYSTEM_ACTOR
        async with transaction(self.session_factory) as session:
            repo = TableRepository(session)
            if await repo.exists(number=data.number):
                raise InvalidRequestError(
                    f"Table number {data.number} already exists", field="number", number=data.number,
                )
            await self._check_zone(session, data.zone_id)
            table = await repo.create(data.model_dump())
            await AuditService(session, actor.id).log_create(
                "table", table.id, serialize_for_audit(table, TABLE_AUDIT_FIELDS),
                entity_name=f"Table {table.number}",
            )
        logger.info(f"Table {table.number} created by {actor.id}")
        return table

    @returns_result
    async def list_tables(
        self,
        zone_id: Optional[UUID] = None,
        status: Optional[str] = None,
        is_active: Optional[bool] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> Tuple[List[Table], int]:
        async with self.session_factory() as session:
            return await TableRepository(session).get_all(
                filters={"zone_id": zone_id, "status": status},
                is_active_filter=is_active,
                order_by="number",
                offset=offset,
                limit=limit,
            )

    @returns_result
    async def get_table(self, table_id: UUID) -> Table:
        async with self.session_factory() as session:
            return await self._load(session, table_id)

    @returns_result
    async def update_table(self, table_id: UUID, data: TableUpdate, actor: Optional[Actor] = None) -> Table:
        actor = actor or SYSTEM_ACTOR
        async with self.locks.acquire(table_key(table_id)):
            async with transaction(self.session_factory) as session:
                table = await self._load(session, table_id, for_update=True)
                changes = data.model_dump(exclude_unset=True)
                if "zone_id" in changes:
                    await self._check_zone(session, changes["zone_id"])
                before = serialize_for_audit(table, TABLE_AUDIT_FIELDS)
                await TableRepository(session).update(table, changes)
                await AuditService(session, actor.id).log_update(
                    "table", table.id, before, serialize_for_audit(table, TABLE_AUDIT_FIELDS),
                    entity_name=f"Table {table.number}",
                )
        return table

    # ==================== Manual state changes ====================

    @returns_result
    async def block_table(self, table_id: UUID, actor: Optional[Actor] = None, notes: Optional[str] = None) -> Table:
        async with self._table_scope(table_id) as (session, table):
            if table.fusion_state in (FusionState.FUSION_MASTER.value, FusionState.FUSION_SLAVE.value):
                raise TableUnavailableError(
                    f"Table {table.number} is part of a fusion group",
                    reason="fused", table_id=table.id, table_number=table.number,
                    fusion_state=table.fusion_state,
                )
            sink = self._sink(session, actor)
            await sink.set_fusion(table, FusionState.BLOCKED.value, None, notes=notes)
        logger.info(f"Table {table.number} blocked")
        return table

    @returns_result
    async def unblock_table(self, table_id: UUID, actor: Optional[Actor] = None, notes: Optional[str] = None) -> Table:
        async with self._table_scope(table_id) as (session, table):
            if table.fusion_state not in (FusionState.BLOCKED.value, FusionState.INDIVIDUAL.value):
                raise InvalidTransitionError(
                    f"Table {table.number} is not blocked",
                    event="unblock", fusion_state=table.fusion_state, table_id=table.id,
                )
            await self._sink(session, actor).set_fusion(table, FusionState.INDIVIDUAL.value, None, notes=notes)
        logger.info(f"Table {table.number} unblocked")
        return table

    @returns_result
    async def mark_table_available(self, table_id: UUID, actor: Optional[Actor] = None) -> Table:
        """Cleaning finished: the table is free again, or reserved if bookings still hold it."""
        async with self._table_scope(table_id) as (session, table):
            if table.status != TableStatus.CLEANING.value:
                raise InvalidTransitionError(
                    f"Table {table.number} is {table.status}, not cleaning",
                    event="mark_available", status=table.status, table_id=table.id,
                )
            await self._sink(session, actor).set_status(table, await self._idle_status(session, table))
        return table

    @returns_result
    async def set_maintenance(
        self, table_id: UUID, on: bool = True, actor: Optional[Actor] = None, notes: Optional[str] = None,
    ) -> Table:
        async with self._table_scope(table_id) as (session, table):
            sink = self._sink(session, actor)
            if on and table.status != TableStatus.MAINTENANCE.value:
                if table.status != TableStatus.AVAILABLE.value:
                    raise InvalidTransitionError(
                        f"Table {table.number} is {table.status}, only available tables go to maintenance",
                        event="maintenance", status=table.status, table_id=table.id,
                    )
                await sink.set_status(table, TableStatus.MAINTENANCE.value, notes=notes)
            elif not on and table.status == TableStatus.MAINTENANCE.value:
                await sink.set_status(table, await self._idle_status(session, table), notes=notes)
        logger.info(f"Table {table.number} maintenance {'on' if on else 'off'}")
        return table

    @returns_result
    async def table_history(self, table_id: UUID) -> List[TableStateLog]:
        async with self.session_factory() as session:
            await self._load(session, table_id)
            return await TableRepository(session).history(table_id)

    # ==================== Helpers ====================

    @asynccontextmanager
    async def _table_scope(self, table_id: UUID):
        """Table lock + transaction + the locked row."""
        async with self.locks.acquire(table_key(table_id)):
            async with transaction(self.session_factory) as session:
                yield session, await self._load(session, table_id, for_update=True)

    def _sink(self, session: AsyncSession, actor: Optional[Actor]) -> TableStateAuditSink:
        return TableStateAuditSink(session, self.clock, (actor or SYSTEM_ACTOR).id)

    async def _idle_status(self, session: AsyncSession, table: Table) -> str:
        held = await ReservationRepository(session).tables_held_by_others([table.id], HOLDING_STATUSES)
        return TableStatus.RESERVED.value if held else TableStatus.AVAILABLE.value

    async def _load(self, session: AsyncSession, table_id: UUID, for_update: bool = False) -> Table:
        table = await TableRepository(session).get_by_id(table_id, for_update=for_update)
        if not table:
            raise TableNotFoundError("Table not found", table_id=table_id)
        return table

    async def _check_zone(self, session: AsyncSession, zone_id: Optional[UUID]) -> None:
        if zone_id and not await ZoneRepository(session).get_by_id(zone_id):
            raise ZoneNotFoundError("Zone not found", zone_id=zone_id)

