"""Zone and table lookups used by the floor and assignment services."""
from typing import Iterable, List, Optional
from uuid import UUID
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from seatplan.models.restaurant import Table, Zone, TableStateLog
from seatplan.repositories.base import BaseRepository


class ZoneRepository(BaseRepository[Zone]):
    def __init__(self, db: AsyncSession):
        super().__init__(Zone, db)

    async def get_by_code(self, code: str) -> Optional[Zone]:
        result = await self.db.execute(select(Zone).where(Zone.code == code.upper()))
        return result.scalar_one_or_none()

    async def resolve(self, reference) -> Optional[Zone]:
        """Find a zone by id or by code."""
        if isinstance(reference, UUID):
            return await self.get_by_id(reference)
        try:
            return await self.get_by_id(UUID(str(reference)))
        except ValueError:
            return await self.get_by_code(str(reference))


class TableRepository(BaseRepository[Table]):
    def __init__(self, db: AsyncSession):
        super().__init__(Table, db)

    async def get_many(self, ids: Iterable[UUID], for_update: bool = False) -> List[Table]:
        """Load tables by id, ordered by table number."""
        ids = list(ids)
        if not ids:
            return []
        query = select(Table).where(Table.id.in_(ids)).order_by(Table.number)
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def list_floor(self) -> List[Table]:
        """Every active table, ordered by number."""
        result = await self.db.execute(
            select(Table).where(Table.is_active.is_(True)).order_by(Table.number)
        )
        return list(result.scalars().all())

    async def history(self, table_id: UUID) -> List[TableStateLog]:
        result = await self.db.execute(
            select(TableStateLog)
            .where(TableStateLog.table_id == table_id)
            .order_by(TableStateLog.sequence)
        )
        return list(result.scalars().all())
