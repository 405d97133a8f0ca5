"""Tests for the reservation lifecycle and its table side effects"""

import asyncio
import pytest

from seatplan.core.errors import (
    InvalidRequestError, InvalidTransitionError, NoTableAssignedError,
    StaleStateError, TableUnavailableError,
)
from seatplan.core.roles import Actor, Role
from seatplan.models.customer import Customer
from seatplan.models.reservation import Reservation
from seatplan.models.restaurant import Table
from seatplan.repositories.reservations import ReservationRepository

from conftest import NOW, fetch

HOST = Actor(id="host-7", role=Role.HOST)

STATUSES = ["pending", "confirmed", "seated", "completed", "cancelled", "no_show"]
EVENTS = ["confirm", "cancel", "seat", "complete", "mark_no_show"]
ALLOWED = {
    ("pending", "confirm"): "confirmed",
    ("pending", "cancel"): "cancelled",
    ("confirmed", "cancel"): "cancelled",
    ("confirmed", "seat"): "seated",
    ("seated", "complete"): "completed",
    ("pending", "mark_no_show"): "no_show",
    ("confirmed", "mark_no_show"): "no_show",
}


async def force_status(session_factory, reservation_id, status):
    async with session_factory() as session, session.begin():
        reservation = await session.get(Reservation, reservation_id)
        reservation.status = status


@pytest.mark.asyncio
@pytest.mark.parametrize("status", STATUSES)
@pytest.mark.parametrize("event", EVENTS)
async def test_transition_table(floor, book, state_machine, session_factory, status, event):
    reservation = await book("14:00", 4, tables=[floor["tables"][10]])
    await force_status(session_factory, reservation.id, status)

    result = await state_machine.transition(reservation.id, event, actor=HOST)

    if (status, event) in ALLOWED:
        assert result.ok
        assert result.value.status == ALLOWED[(status, event)]
    else:
        assert isinstance(result.error, InvalidTransitionError)
        assert result.error.details["status"] == status
        assert (await fetch(session_factory, Reservation, reservation.id)).status == status


@pytest.mark.asyncio
async def test_full_lifecycle(floor, book, state_machine, session_factory):
    table = floor["tables"][10]
    reservation = await book("14:00", 4, tables=[table])

    confirmed = (await state_machine.confirm(reservation.id, actor=HOST)).unwrap()
    assert confirmed.confirmed_at == NOW
    assert (await fetch(session_factory, Table, table.id)).status == "reserved"

    seated = (await state_machine.seat(reservation.id, actor=HOST)).unwrap()
    assert seated.seated_at == NOW
    assert (await fetch(session_factory, Table, table.id)).status == "occupied"

    completed = (await state_machine.complete(reservation.id, actor=HOST)).unwrap()
    assert completed.status == "completed"
    assert (await fetch(session_factory, Table, table.id)).status == "cleaning"

    customer = await fetch(session_factory, Customer, reservation.customer_id)
    assert customer.visit_count == 1

    async with session_factory() as session:
        history = await ReservationRepository(session).history(reservation.id)
    assert [(h.sequence, h.old_status, h.new_status) for h in history] == [
        (1, None, "pending"),
        (2, "pending", "confirmed"),
        (3, "confirmed", "seated"),
        (4, "seated", "completed"),
    ]
    assert history[0].change_source == "system"
    assert {h.changed_by for h in history[1:]} == {"host-7"}
    assert {h.change_source for h in history[1:]} == {"staff"}


@pytest.mark.asyncio
async def test_seat_requires_table(floor, book, state_machine):
    reservation = await book("14:00", 4, origin="phone")

    result = await state_machine.seat(reservation.id)

    assert isinstance(result.error, NoTableAssignedError)


@pytest.mark.asyncio
async def test_seat_refuses_occupied_table(floor, book, state_machine):
    table = floor["tables"][10]
    lunch = await book("13:00", 4, tables=[table], origin="phone")
    (await state_machine.seat(lunch.id)).unwrap()
    # The next booking starts after the buffer, but lunch has not left yet
    late = await book("15:00", 4, tables=[table], origin="phone")

    result = await state_machine.seat(late.id)

    assert isinstance(result.error, TableUnavailableError)
    assert result.error.details["reason"] == "occupied"


@pytest.mark.asyncio
async def test_cancel_releases_tables_and_keeps_reason(floor, book, state_machine, session_factory):
    t1, t2 = floor["tables"][1], floor["tables"][2]
    reservation = await book("14:00", 4, tables=[t1, t2])

    cancelled = (await state_machine.cancel(reservation.id, reason="Customer called")).unwrap()

    assert cancelled.cancellation_reason == "Customer called"
    assert cancelled.table_ids == []
    for table_id in (t1.id, t2.id):
        table = await fetch(session_factory, Table, table_id)
        assert (table.status, table.fusion_state) == ("available", "individual")


@pytest.mark.asyncio
async def test_no_show_counts_against_customer(floor, book, state_machine, session_factory):
    table = floor["tables"][10]
    reservation = await book("14:00", 4, tables=[table], origin="phone")

    (await state_machine.mark_no_show(reservation.id)).unwrap()

    customer = await fetch(session_factory, Customer, reservation.customer_id)
    assert customer.no_show_count == 1
    assert (await fetch(session_factory, Table, table.id)).status == "available"


@pytest.mark.asyncio
async def test_complete_dissolves_fusion(floor, book, state_machine, floor_service, session_factory):
    t1, t2 = floor["tables"][1], floor["tables"][2]
    reservation = await book("14:00", 4, tables=[t1, t2], origin="walk_in")

    (await state_machine.seat(reservation.id)).unwrap()
    (await state_machine.complete(reservation.id)).unwrap()

    for table_id in (t1.id, t2.id):
        table = await fetch(session_factory, Table, table_id)
        assert (table.status, table.fusion_state, table.fusion_master_id) == ("cleaning", "individual", None)

    assert (await floor_service.mark_table_available(t1.id)).unwrap().status == "available"


@pytest.mark.asyncio
async def test_completing_lunch_keeps_dinner_group(floor, book, state_machine, session_factory):
    t1, t2 = floor["tables"][1], floor["tables"][2]
    lunch = await book("13:00", 2, tables=[t1], origin="walk_in")
    await book("21:00", 4, tables=[t1, t2])

    (await state_machine.seat(lunch.id)).unwrap()
    (await state_machine.complete(lunch.id)).unwrap()

    master = await fetch(session_factory, Table, t1.id)
    slave = await fetch(session_factory, Table, t2.id)
    assert (master.status, master.fusion_state) == ("cleaning", "fusion_master")
    assert (slave.fusion_state, slave.fusion_master_id) == ("fusion_slave", t1.id)


@pytest.mark.asyncio
async def test_cancelling_lunch_keeps_dinner_group(floor, book, state_machine, session_factory):
    t1, t2 = floor["tables"][1], floor["tables"][2]
    lunch = await book("13:00", 2, tables=[t1])
    await book("21:00", 4, tables=[t1, t2])

    (await state_machine.cancel(lunch.id)).unwrap()

    master = await fetch(session_factory, Table, t1.id)
    slave = await fetch(session_factory, Table, t2.id)
    assert (master.status, master.fusion_state) == ("reserved", "fusion_master")
    assert (slave.fusion_state, slave.fusion_master_id) == ("fusion_slave", t1.id)


@pytest.mark.asyncio
async def test_expected_status_mismatch_is_stale(floor, book, state_machine):
    reservation = await book("14:00", 4)

    result = await state_machine.confirm(reservation.id, expected_status="confirmed")

    assert isinstance(result.error, StaleStateError)
    assert result.error.details["status"] == "pending"


@pytest.mark.asyncio
async def test_unknown_event(floor, book, state_machine):
    reservation = await book("14:00", 4)

    result = await state_machine.transition(reservation.id, "reopen")

    assert isinstance(result.error, InvalidRequestError)


@pytest.mark.asyncio
async def test_cancel_and_seat_race(floor, book, state_machine, session_factory):
    reservation = await book("14:00", 4, tables=[floor["tables"][10]], origin="phone")

    results = await asyncio.gather(
        state_machine.cancel(reservation.id),
        state_machine.seat(reservation.id),
    )

    assert sum(r.ok for r in results) == 1
    loser = next(r for r in results if not r.ok)
    assert isinstance(loser.error, (InvalidTransitionError, StaleStateError))
    final = await fetch(session_factory, Reservation, reservation.id)
    assert final.status in ("cancelled", "seated")
