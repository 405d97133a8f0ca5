"""
Generic CRUD repository over an async session.
Row loads can take a FOR UPDATE lock (ignored by SQLite).
"""
from typing import TypeVar, Generic, Type, Optional, List, Any, Dict
from uuid import UUID
from sqlalchemy import select, func, desc, asc
from sqlalchemy.ext.asyncio import AsyncSession

from seatplan.core.database import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """Base repository for CRUD operations."""

    def __init__(self, model: Type[ModelType], db: AsyncSession):
        self.model = model
        self.db = db

    def _base_query(self):
        return select(self.model)

    async def get_by_id(self, id: UUID, for_update: bool = False) -> Optional[ModelType]:
        """Get a single record by ID, optionally locking the row."""
        query = self._base_query().where(self.model.id == id)
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_all(
        self,
        filters: Dict[str, Any] = None,
        order_by: str = None,
        order_dir: str = "asc",
        offset: int = 0,
        limit: int = 50,
        is_active_filter: Optional[bool] = None,
    ) -> tuple[List[ModelType], int]:
        """
        Get paginated list with optional filtering and ordering.
        Returns (items, total_count).
        """
        query = self._base_query()

        if is_active_filter is not None and hasattr(self.model, "is_active"):
            query = query.where(self.model.is_active == is_active_filter)

        if filters:
            for field, value in filters.items():
                if hasattr(self.model, field) and value is not None:
                    query = query.where(getattr(self.model, field) == value)

        # Count total (before pagination)
        count_query = select(func.count()).select_from(query.subquery())
        total = (await self.db.execute(count_query)).scalar()

        if order_by and hasattr(self.model, order_by):
            order_col = getattr(self.model, order_by)
            query = query.order_by(desc(order_col) if order_dir == "desc" else asc(order_col))
        elif hasattr(self.model, "sort_order"):
            query = query.order_by(asc(self.model.sort_order), asc(self.model.created_at))
        elif hasattr(self.model, "created_at"):
            query = query.order_by(desc(self.model.created_at))

        query = query.offset(offset).limit(limit)

        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def create(self, data: dict) -> ModelType:
        """Create a new record."""
        instance = self.model(**data)
        self.db.add(instance)
        await self.db.flush()
        return instance

    async def update(self, instance: ModelType, data: dict) -> ModelType:
        """Apply non-None values to a loaded record."""
        for key, value in data.items():
            if value is not None and hasattr(instance, key):
                setattr(instance, key, value)
        await self.db.flush()
        return instance

    async def exists(self, **kwargs) -> bool:
        """Check if a record exists with given conditions."""
        query = self._base_query()
        for field, value in kwargs.items():
            if hasattr(self.model, field):
                query = query.where(getattr(self.model, field) == value)
        result = await self.db.execute(select(func.count()).select_from(query.subquery()))
        return result.scalar() > 0
