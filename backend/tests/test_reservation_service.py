"""Tests for reservation intake"""

import asyncio
import re
import pytest
from datetime import time
from uuid import uuid4

from seatplan.core.errors import (
    ConflictUnresolvedError, CustomerNotFoundError, InvalidRequestError,
    OutOfServiceHoursError, ReservationNotFoundError, StaleStateError, TableUnavailableError,
    ZoneNotFoundError,
)
from seatplan.models.audit import AuditLog
from seatplan.models.customer import Customer
from seatplan.models.reservation import Reservation
from seatplan.models.restaurant import Table
from seatplan.schemas.reservation import ReservationCreate

from conftest import NOW, SERVICE_DAY, count, fetch


def request(**fields):
    data = {
        "customer_name": "Marta Gil",
        "party_size": 4,
        "start_time": time(14, 0),
        "date": SERVICE_DAY,
    }
    data.update(fields)
    return ReservationCreate(**data)


@pytest.mark.asyncio
async def test_web_reservation_starts_pending(reservations, session_factory):
    reservation = (await reservations.create(request(customer_email="Marta@Mail.com"))).unwrap()

    assert reservation.status == "pending"
    assert reservation.confirmed_at is None
    assert re.fullmatch(r"RES-20300603-[A-Z0-9]{4}", reservation.reservation_number)
    assert reservation.duration_minutes == 90
    assert reservation.customer_email == "marta@mail.com"
    customer = await fetch(session_factory, Customer, reservation.customer_id)
    assert (customer.name, customer.email) == ("Marta Gil", "marta@mail.com")

    history = (await reservations.history(reservation.id)).unwrap()
    assert [(h.sequence, h.old_status, h.new_status, h.notes) for h in history] == [(1, None, "pending", "created")]
    assert await count(session_factory, AuditLog, AuditLog.entity_type == "reservation") == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("origin", ["phone", "walk_in"])
async def test_staff_origins_start_confirmed(reservations, origin):
    reservation = (await reservations.create(request(origin=origin))).unwrap()

    assert reservation.status == "confirmed"
    assert reservation.confirmed_at == NOW


@pytest.mark.asyncio
async def test_tables_assigned_at_creation(reservations, floor, session_factory):
    t1, t2 = floor["tables"][1], floor["tables"][2]

    reservation = (await reservations.create(request(table_ids=[t1.id, t2.id], requested_zone="main"))).unwrap()

    assert set(reservation.table_ids) == {t1.id, t2.id}
    assert reservation.table_id == t1.id
    assert reservation.requested_zone_id == floor["zones"]["MAIN"].id
    assert (await fetch(session_factory, Table, t2.id)).fusion_state == "fusion_slave"


@pytest.mark.asyncio
async def test_failed_assignment_creates_nothing(reservations, floor, book, session_factory):
    table = floor["tables"][10]
    await book("14:00", 4, tables=[table])
    reservations_before = await count(session_factory, Reservation)
    customers_before = await count(session_factory, Customer)

    result = await reservations.create(request(start_time=time(14, 45), table_ids=[table.id], customer_phone="611000000"))

    assert isinstance(result.error, TableUnavailableError)
    assert await count(session_factory, Reservation) == reservations_before
    assert await count(session_factory, Customer) == customers_before


@pytest.mark.asyncio
async def test_existing_customer_is_reused_and_completed(reservations, add_customer, session_factory):
    customer = await add_customer("Marta Gil", phone="+34611000000")

    reservation = (await reservations.create(request(customer_phone="611 000 000", customer_email="m@x.com"))).unwrap()

    assert reservation.customer_id == customer.id
    stored = await fetch(session_factory, Customer, customer.id)
    assert stored.email == "m@x.com"
    assert await count(session_factory, Customer) == 1


@pytest.mark.asyncio
async def test_conflict_requires_resolution(reservations, add_customer, session_factory):
    c1 = await add_customer("Marta", email="m@x.com")
    c2 = await add_customer("Marta G.", phone="+34611000000")

    unresolved = await reservations.create(request(customer_email="m@x.com", customer_phone="611000000"))

    assert isinstance(unresolved.error, ConflictUnresolvedError)
    assert unresolved.error.details["email_customer_id"] == c1.id
    assert unresolved.error.details["phone_customer_id"] == c2.id
    assert await count(session_factory, Reservation) == 0

    merged = (await reservations.create(request(
        customer_email="m@x.com", customer_phone="611000000", customer_resolution="merge",
    ))).unwrap()

    assert merged.customer_id == c1.id
    assert not (await fetch(session_factory, Customer, c2.id)).is_active


@pytest.mark.asyncio
async def test_intake_merge_and_manual_merge_apply_once(reservations, resolver, add_customer, session_factory):
    c1 = await add_customer("Marta", email="m@x.com")
    c2 = await add_customer("Marta G.", phone="+34611000000")

    results = await asyncio.gather(
        reservations.create(request(
            customer_email="m@x.com", customer_phone="611000000", customer_resolution="merge",
        )),
        resolver.resolve_conflict(c1.id, c2.id, "merge"),
    )

    assert any(r.ok for r in results)
    assert await count(session_factory, AuditLog, AuditLog.action == "merge") == 1
    superseded = await fetch(session_factory, Customer, c2.id)
    assert (superseded.is_active, superseded.merged_into_id) == (False, c1.id)


@pytest.mark.asyncio
async def test_customer_linked_after_lookup_is_stale(reservations, add_customer, monkeypatch, session_factory):
    await add_customer("Marta", email="m@x.com")

    async def nothing_matched(email, phone):
        return set()

    monkeypatch.setattr(reservations.resolver, "matched_customer_ids", nothing_matched)
    result = await reservations.create(request(customer_email="m@x.com"))

    assert isinstance(result.error, StaleStateError)
    assert await count(session_factory, Reservation) == 0


@pytest.mark.asyncio
async def test_create_new_customer_even_when_matched(reservations, add_customer, session_factory):
    existing = await add_customer("Marta Gil", email="m@x.com")

    reservation = (await reservations.create(request(
        customer_name="Marta Gil (work)", customer_email="m@x.com", customer_resolution="create_new",
    ))).unwrap()

    assert reservation.customer_id != existing.id
    assert await count(session_factory, Customer) == 2


@pytest.mark.asyncio
async def test_known_customer_id(reservations, add_customer):
    customer = await add_customer("Marta Gil")

    reservation = (await reservations.create(request(customer_id=customer.id))).unwrap()
    missing = await reservations.create(request(customer_id=uuid4()))

    assert reservation.customer_id == customer.id
    assert isinstance(missing.error, CustomerNotFoundError)


@pytest.mark.asyncio
@pytest.mark.parametrize("fields, field", [
    ({"children_count": 5}, "children_count"),
    ({"customer_phone": "12ab"}, "customer_phone"),
    ({"customer_email": "not-an-email"}, "customer_email"),
    ({"party_size": 25}, "party_size"),
])
async def test_invalid_requests(reservations, fields, field):
    result = await reservations.create(request(**fields))

    assert isinstance(result.error, InvalidRequestError)
    assert result.error.details["field"] == field


@pytest.mark.asyncio
async def test_rejects_unknown_zone_and_closed_hours(reservations, floor):
    zone = await reservations.create(request(requested_zone="ROOF"))
    closed = await reservations.create(request(start_time=time(18, 0)))

    assert isinstance(zone.error, ZoneNotFoundError)
    assert isinstance(closed.error, OutOfServiceHoursError)


@pytest.mark.asyncio
async def test_get_and_history_unknown(reservations):
    assert isinstance((await reservations.get(uuid4())).error, ReservationNotFoundError)
    assert isinstance((await reservations.history(uuid4())).error, ReservationNotFoundError)


def test_reservation_number_format(reservations):
    numbers = {reservations.generate_reservation_number() for _ in range(20)}

    assert all(re.fullmatch(r"RES-20300603-[A-Z0-9]{4}", n) for n in numbers)
    assert len(numbers) > 1
