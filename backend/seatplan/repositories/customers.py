"""Customer lookups by normalised contact data."""
from typing import List
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from seatplan.models.customer import Customer
from seatplan.repositories.base import BaseRepository


class CustomerRepository(BaseRepository[Customer]):
    def __init__(self, db: AsyncSession):
        super().__init__(Customer, db)

    async def active_by_email(self, email: str, for_update: bool = False) -> List[Customer]:
        query = (
            select(Customer)
            .where(Customer.email == email, Customer.is_active.is_(True))
            .order_by(Customer.created_at)
        )
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def active_by_phone(self, phone: str, for_update: bool = False) -> List[Customer]:
        query = (
            select(Customer)
            .where(Customer.phone == phone, Customer.is_active.is_(True))
            .order_by(Customer.created_at)
        )
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return list(result.scalars().all())
