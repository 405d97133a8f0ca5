"""Zone, table & availability API endpoints."""
from fastapi import APIRouter, Depends, Query, status
from typing import List, Optional
from uuid import UUID
from datetime import date, time
import math

from seatplan.api.deps import get_availability, get_floor_service
from seatplan.core.roles import Actor, Role
from seatplan.middleware.actor import require_role
from seatplan.schemas.common import PaginatedResponse
from seatplan.schemas.restaurant import (
    ZoneCreate, ZoneResponse,
    TableCreate, TableUpdate, MaintenanceRequest, TableResponse, TableStateLogResponse,
    CandidateResponse,
)
from seatplan.services.availability import AvailabilityCalculator, Candidate
from seatplan.services.floor_service import FloorService

router = APIRouter()


# ==================== Zones ====================

@router.get("/zones", response_model=List[ZoneResponse])
async def list_zones(
    floor: FloorService = Depends(get_floor_service),
    actor: Actor = Depends(require_role(Role.HOST)),
):
    """List active zones."""
    zones = (await floor.list_zones()).unwrap()
    return [ZoneResponse.model_validate(z) for z in zones]


@router.post("/zones", response_model=ZoneResponse, status_code=status.HTTP_201_CREATED)
async def create_zone(
    data: ZoneCreate,
    floor: FloorService = Depends(get_floor_service),
    actor: Actor = Depends(require_role(Role.MANAGER)),
):
    """Create a new zone."""
    zone = (await floor.create_zone(data, actor)).unwrap()
    return ZoneResponse.model_validate(zone)


# ==================== Availability ====================

def _candidate_response(candidate: Candidate) -> CandidateResponse:
    return CandidateResponse(
        table_ids=candidate.table_ids,
        table_numbers=[t.number for t in candidate.tables],
        lead_table_id=candidate.lead_table.id,
        zone_id=candidate.zone_id,
        capacity=candidate.capacity,
        zone_match=candidate.zone_match,
    )


@router.get("/availability", response_model=List[CandidateResponse])
async def check_availability(
    reservation_date: date = Query(..., alias="date"),
    start_time: time = Query(..., alias="time"),
    party_size: int = Query(..., ge=1),
    duration: Optional[int] = Query(None, ge=15),
    zone: Optional[str] = None,
    availability: AvailabilityCalculator = Depends(get_availability),
    actor: Actor = Depends(require_role(Role.HOST)),
):
    """Ranked tables and table groups that can seat the party."""
    candidates = (await availability.find_candidate_tables(
        reservation_date, start_time, party_size,
        duration_minutes=duration, zone_preference=zone,
    )).unwrap()
    return [_candidate_response(c) for c in candidates]


# ==================== Tables ====================

@router.get("", response_model=PaginatedResponse[TableResponse])
async def list_tables(
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=100),
    zone_id: Optional[UUID] = None,
    status_filter: Optional[str] = Query(None, alias="status"),
    is_active: Optional[bool] = None,
    floor: FloorService = Depends(get_floor_service),
    actor: Actor = Depends(require_role(Role.HOST)),
):
    """List tables with filters."""
    items, total = (await floor.list_tables(
        zone_id=zone_id, status=status_filter, is_active=is_active,
        offset=(page - 1) * page_size, limit=page_size,
    )).unwrap()
    return PaginatedResponse(
        items=[TableResponse.model_validate(t) for t in items],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=math.ceil(total / page_size) if total else 0,
    )


@router.post("", response_model=TableResponse, status_code=status.HTTP_201_CREATED)
async def create_table(
    data: TableCreate,
    floor: FloorService = Depends(get_floor_service),
    actor: Actor = Depends(require_role(Role.STAFF)),
):
    """Create a new table."""
    return TableResponse.model_validate((await floor.create_table(data, actor)).unwrap())


@router.get("/{table_id}", response_model=TableResponse)
async def get_table(
    table_id: UUID,
    floor: FloorService = Depends(get_floor_service),
    actor: Actor = Depends(require_role(Role.HOST)),
):
    return TableResponse.model_validate((await floor.get_table(table_id)).unwrap())


@router.put("/{table_id}", response_model=TableResponse)
async def update_table(
    table_id: UUID,
    data: TableUpdate,
    floor: FloorService = Depends(get_floor_service),
    actor: Actor = Depends(require_role(Role.STAFF)),
):
    """Update table attributes (capacity, zone, combinable, notes, active)."""
    return TableResponse.model_validate((await floor.update_table(table_id, data, actor)).unwrap())


@router.post("/{table_id}/block", response_model=TableResponse)
async def block_table(
    table_id: UUID,
    floor: FloorService = Depends(get_floor_service),
    actor: Actor = Depends(require_role(Role.STAFF)),
):
    return TableResponse.model_validate((await floor.block_table(table_id, actor)).unwrap())


@router.post("/{table_id}/unblock", response_model=TableResponse)
async def unblock_table(
    table_id: UUID,
    floor: FloorService = Depends(get_floor_service),
    actor: Actor = Depends(require_role(Role.STAFF)),
):
    return TableResponse.model_validate((await floor.unblock_table(table_id, actor)).unwrap())


@router.post("/{table_id}/available", response_model=TableResponse)
async def mark_table_available(
    table_id: UUID,
    floor: FloorService = Depends(get_floor_service),
    actor: Actor = Depends(require_role(Role.STAFF)),
):
    """Cleaning finished."""
    return TableResponse.model_validate((await floor.mark_table_available(table_id, actor)).unwrap())


@router.post("/{table_id}/maintenance", response_model=TableResponse)
async def set_maintenance(
    table_id: UUID,
    data: MaintenanceRequest,
    floor: FloorService = Depends(get_floor_service),
    actor: Actor = Depends(require_role(Role.STAFF)),
):
    table = (await floor.set_maintenance(table_id, on=data.on, actor=actor, notes=data.notes)).unwrap()
    return TableResponse.model_validate(table)


@router.get("/{table_id}/history", response_model=List[TableStateLogResponse])
async def table_history(
    table_id: UUID,
    floor: FloorService = Depends(get_floor_service),
    actor: Actor = Depends(require_role(Role.HOST)),
):
    """Status and fusion changes of a table, oldest first."""
    entries = (await floor.table_history(table_id)).unwrap()
    return [TableStateLogResponse.model_validate(e) for e in entries]
