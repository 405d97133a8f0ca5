"""Reservation management API endpoints."""
from fastapi import APIRouter, Depends, status
from typing import List, Optional
from uuid import UUID

from seatplan.api.deps import get_assignment_engine, get_reservation_service, get_state_machine
from seatplan.core.roles import Actor, Role
from seatplan.middleware.actor import ensure_role, require_role
from seatplan.schemas.reservation import (
    ReservationCreate, ReservationResponse, AssignTablesRequest, AssignmentResponse,
    StatusChangeRequest, StatusHistoryResponse,
)
from seatplan.services.assignment import AssignmentEngine
from seatplan.services.reservation_service import ReservationService
from seatplan.services.state_machine import ReservationStateMachine

router = APIRouter()


# ==================== Reservations ====================

@router.post("", response_model=ReservationResponse, status_code=status.HTTP_201_CREATED)
async def create_reservation(
    data: ReservationCreate,
    service: ReservationService = Depends(get_reservation_service),
    actor: Actor = Depends(require_role(Role.HOST)),
):
    """Create a reservation, linking or creating its customer."""
    reservation = (await service.create(data, actor)).unwrap()
    return ReservationResponse.model_validate(reservation)


@router.get("/{reservation_id}", response_model=ReservationResponse)
async def get_reservation(
    reservation_id: UUID,
    service: ReservationService = Depends(get_reservation_service),
    actor: Actor = Depends(require_role(Role.HOST)),
):
    return ReservationResponse.model_validate((await service.get(reservation_id)).unwrap())


@router.get("/{reservation_id}/history", response_model=List[StatusHistoryResponse])
async def get_reservation_history(
    reservation_id: UUID,
    service: ReservationService = Depends(get_reservation_service),
    actor: Actor = Depends(require_role(Role.HOST)),
):
    entries = (await service.history(reservation_id)).unwrap()
    return [StatusHistoryResponse.model_validate(e) for e in entries]


# ==================== Table Assignment ====================

@router.post("/{reservation_id}/assign", response_model=AssignmentResponse)
async def assign_tables(
    reservation_id: UUID,
    data: AssignTablesRequest,
    engine: AssignmentEngine = Depends(get_assignment_engine),
    actor: Actor = Depends(require_role(Role.HOST)),
):
    """Assign one table or a fusion group. `force` needs a manager."""
    if data.force:
        ensure_role(actor, Role.MANAGER, "Forced assignment")
    result = (await engine.assign(reservation_id, data.table_ids, force=data.force, actor=actor)).unwrap()
    return AssignmentResponse.model_validate(result)


@router.post("/{reservation_id}/release", response_model=AssignmentResponse)
async def release_tables(
    reservation_id: UUID,
    engine: AssignmentEngine = Depends(get_assignment_engine),
    actor: Actor = Depends(require_role(Role.HOST)),
):
    result = (await engine.release(reservation_id, actor=actor)).unwrap()
    return AssignmentResponse.model_validate(result)


# ==================== Status Transitions ====================

async def _transition(
    machine: ReservationStateMachine, reservation_id: UUID, event: str,
    actor: Actor, data: Optional[StatusChangeRequest],
) -> ReservationResponse:
    data = data or StatusChangeRequest()
    reservation = (await machine.transition(
        reservation_id, event, actor=actor,
        expected_status=data.expected_status, reason=data.reason,
    )).unwrap()
    return ReservationResponse.model_validate(reservation)


@router.post("/{reservation_id}/confirm", response_model=ReservationResponse)
async def confirm_reservation(
    reservation_id: UUID,
    data: Optional[StatusChangeRequest] = None,
    machine: ReservationStateMachine = Depends(get_state_machine),
    actor: Actor = Depends(require_role(Role.HOST)),
):
    return await _transition(machine, reservation_id, "confirm", actor, data)


@router.post("/{reservation_id}/cancel", response_model=ReservationResponse)
async def cancel_reservation(
    reservation_id: UUID,
    data: Optional[StatusChangeRequest] = None,
    machine: ReservationStateMachine = Depends(get_state_machine),
    actor: Actor = Depends(require_role(Role.HOST)),
):
    return await _transition(machine, reservation_id, "cancel", actor, data)


@router.post("/{reservation_id}/seat", response_model=ReservationResponse)
async def seat_reservation(
    reservation_id: UUID,
    data: Optional[StatusChangeRequest] = None,
    machine: ReservationStateMachine = Depends(get_state_machine),
    actor: Actor = Depends(require_role(Role.HOST)),
):
    return await _transition(machine, reservation_id, "seat", actor, data)


@router.post("/{reservation_id}/complete", response_model=ReservationResponse)
async def complete_reservation(
    reservation_id: UUID,
    data: Optional[StatusChangeRequest] = None,
    machine: ReservationStateMachine = Depends(get_state_machine),
    actor: Actor = Depends(require_role(Role.HOST)),
):
    return await _transition(machine, reservation_id, "complete", actor, data)


@router.post("/{reservation_id}/no-show", response_model=ReservationResponse)
async def mark_no_show(
    reservation_id: UUID,
    data: Optional[StatusChangeRequest] = None,
    machine: ReservationStateMachine = Depends(get_state_machine),
    actor: Actor = Depends(require_role(Role.HOST)),
):
    return await _transition(machine, reservation_id, "mark_no_show", actor, data)
