"""Customer existence check & duplicate resolution API endpoints."""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID

from seatplan.api.deps import get_conflict_resolver
from seatplan.core.database import get_db
from seatplan.core.errors import CustomerNotFoundError
from seatplan.core.roles import Actor, Role
from seatplan.middleware.actor import ensure_role, require_role
from seatplan.repositories.customers import CustomerRepository
from seatplan.schemas.customer import (
    CustomerResponse, ExistenceCheckRequest, ExistenceCheckResponse,
    ConflictResolutionRequest, ConflictResolutionResponse,
)
from seatplan.services.customer_conflicts import CustomerConflictResolver

router = APIRouter()


def _customer(customer):
    return CustomerResponse.model_validate(customer) if customer else None


@router.post("/existence", response_model=ExistenceCheckResponse)
async def check_customer_existence(
    data: ExistenceCheckRequest,
    resolver: CustomerConflictResolver = Depends(get_conflict_resolver),
    actor: Actor = Depends(require_role(Role.HOST)),
):
    """Is there a customer with this email and/or phone, or do they belong to two different ones?"""
    result = (await resolver.check_customer_existence(email=data.email, phone=data.phone)).unwrap()
    return ExistenceCheckResponse(
        kind=result.kind,
        matched_by=result.matched_by,
        customer=_customer(result.customer),
        email_match=_customer(result.email_match),
        phone_match=_customer(result.phone_match),
    )


@router.post("/resolve", response_model=ConflictResolutionResponse)
async def resolve_conflict(
    data: ConflictResolutionRequest,
    resolver: CustomerConflictResolver = Depends(get_conflict_resolver),
    actor: Actor = Depends(require_role(Role.HOST)),
):
    """Apply the chosen resolution. Merging needs a manager."""
    if data.resolution == "merge":
        ensure_role(actor, Role.MANAGER, "Merging customers")
    outcome = (await resolver.resolve_conflict(
        data.email_customer_id, data.phone_customer_id, data.resolution,
        email=data.email, phone=data.phone, name=data.name, actor=actor,
    )).unwrap()
    return ConflictResolutionResponse(
        resolution=outcome.resolution,
        customer=CustomerResponse.model_validate(outcome.customer),
        superseded_customer_id=outcome.superseded_customer_id,
        flagged_fields=outcome.flagged_fields,
    )


@router.get("/{customer_id}", response_model=CustomerResponse)
async def get_customer(
    customer_id: UUID,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_role(Role.HOST)),
):
    customer = await CustomerRepository(db).get_by_id(customer_id)
    if not customer:
        raise CustomerNotFoundError("Customer not found", customer_id=customer_id)
    return CustomerResponse.model_validate(customer)
