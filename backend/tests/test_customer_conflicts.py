"""Tests for duplicate customer detection and resolution"""

import pytest
from decimal import Decimal
from uuid import uuid4

from seatplan.core.errors import CustomerNotFoundError, InvalidRequestError
from seatplan.core.roles import Actor, Role
from seatplan.models.audit import AuditLog
from seatplan.models.customer import Customer
from seatplan.models.reservation import Reservation
from seatplan.schemas.customer import CustomerRecord
from seatplan.services.customer_conflicts import (
    CONFLICT, NONE, SINGLE_MATCH, keep_email_match, keep_phone_match, merge_customers,
)

from conftest import count, fetch

MANAGER = Actor(id="manager-1", role=Role.MANAGER)


@pytest.fixture
async def c1(add_customer):
    return await add_customer(
        "Ana Lopez", email="a@x.com", phone="+34611111111",
        allergies="nuts", visit_count=3, total_spend=Decimal("120.00"),
    )


@pytest.fixture
async def c2(add_customer):
    return await add_customer(
        "Ana L.", email="ana.l@y.com", phone="+34600000000",
        allergies="gluten", vip_status=True, visit_count=2, no_show_count=1,
        internal_notes="Birthday in May",
    )


# ==================== Merge (pure) ====================

def _records():
    primary = CustomerRecord(
        id=uuid4(), name="Ana Lopez", email="a@x.com", phone="+34611111111",
        allergies="nuts", internal_notes="Likes the window", visit_count=3,
        total_spend=Decimal("120.00"),
    )
    secondary = CustomerRecord(
        id=uuid4(), name="Ana L.", email="ana.l@y.com", phone="+34600000000",
        secondary_phone="+34622222222", allergies="gluten", vip_status=True,
        accepts_whatsapp=True, company_name="Acme", internal_notes="Birthday in May",
        visit_count=2, no_show_count=1,
    )
    return primary, secondary


def test_merge_prefers_primary_and_keeps_secondary_values():
    primary, secondary = _records()

    merged = merge_customers(primary, secondary).record

    assert merged.id == primary.id
    assert (merged.name, merged.email, merged.phone) == ("Ana Lopez", "a@x.com", "+34611111111")
    assert merged.secondary_phone == "+34600000000"
    assert merged.company_name == "Acme"
    assert merged.vip_status and merged.accepts_whatsapp and not merged.accepts_marketing
    assert merged.allergies == "nuts; gluten"
    assert merged.internal_notes.splitlines() == [
        "Likes the window",
        f"--- merged from customer #{secondary.id} ---",
        "Birthday in May",
        "name: Ana L.",
        "email: ana.l@y.com",
        "phone: +34622222222",
    ]


def test_merge_never_drops_a_secondary_value():
    primary, secondary = _records()

    merged = merge_customers(primary, secondary).record
    text = "\n".join(str(v) for v in merged.model_dump().values())

    for name, value in secondary.model_dump(exclude={"id", "visit_count", "total_spend", "no_show_count"}).items():
        if isinstance(value, str):
            for part in value.split("; "):
                assert part in text, name
        elif value is True:
            assert getattr(merged, name) is True


def test_merge_flags_counters_instead_of_summing():
    primary, secondary = _records()

    outcome = merge_customers(primary, secondary)

    assert outcome.flagged_fields == ["visit_count", "total_spend", "no_show_count"]
    assert (outcome.record.visit_count, outcome.record.no_show_count) == (3, 0)
    assert outcome.record.total_spend == Decimal("120.00")
    assert outcome.record.needs_reconciliation
    merge = outcome.record.reconciliation_notes["merges"][0]
    assert merge["merged_customer_id"] == str(secondary.id)
    assert merge["fields"]["visit_count"] == {"primary": 3, "secondary": 2}
    assert merge["fields"]["no_show_count"] == {"primary": 0, "secondary": 1}


def test_keep_resolutions_replace_one_contact():
    primary, secondary = _records()

    kept_email = keep_email_match(primary, "+34600000000")
    kept_phone = keep_phone_match(secondary, "a@x.com")

    assert (kept_email.email, kept_email.phone) == ("a@x.com", "+34600000000")
    assert (kept_phone.email, kept_phone.phone) == ("a@x.com", "+34600000000")
    assert kept_email.allergies == primary.allergies


# ==================== Existence check ====================

@pytest.mark.asyncio
async def test_conflict_scenario(resolver, c1, c2):
    result = (await resolver.check_customer_existence(email="A@X.com", phone="600 000 000")).unwrap()

    assert result.kind == CONFLICT
    assert result.email_match.id == c1.id
    assert result.phone_match.id == c2.id
    assert result.customer is None


@pytest.mark.asyncio
async def test_conflict_detection_is_symmetric(resolver, c1, c2):
    result = (await resolver.check_customer_existence(email="ana.l@y.com", phone="+34611111111")).unwrap()

    assert result.kind == CONFLICT
    assert (result.email_match.id, result.phone_match.id) == (c2.id, c1.id)


@pytest.mark.asyncio
async def test_single_match_variants(resolver, c1):
    both = (await resolver.check_customer_existence(email="a@x.com", phone="611111111")).unwrap()
    by_email = (await resolver.check_customer_existence(email="a@x.com", phone="+34699999999")).unwrap()
    by_phone = (await resolver.check_customer_existence(phone="0034611111111")).unwrap()
    nobody = (await resolver.check_customer_existence(email="z@x.com")).unwrap()

    assert (both.kind, both.matched_by, both.customer.id) == (SINGLE_MATCH, "both", c1.id)
    assert (by_email.kind, by_email.matched_by) == (SINGLE_MATCH, "email")
    assert (by_phone.kind, by_phone.matched_by) == (SINGLE_MATCH, "phone")
    assert nobody.kind == NONE


@pytest.mark.asyncio
async def test_superseded_customers_are_ignored(resolver, c1, c2):
    (await resolver.resolve_conflict(c1.id, c2.id, "merge", actor=MANAGER)).unwrap()

    result = (await resolver.check_customer_existence(email="ana.l@y.com")).unwrap()

    assert result.kind == NONE


# ==================== Resolution ====================

@pytest.mark.asyncio
async def test_merge_supersedes_and_moves_reservations(resolver, c1, c2, book, session_factory):
    reservation = await book("14:00", 2, customer_id=c2.id)

    outcome = (await resolver.resolve_conflict(c1.id, c2.id, "merge", actor=MANAGER)).unwrap()

    assert outcome.superseded_customer_id == c2.id
    assert outcome.customer.id == c1.id
    assert outcome.customer.secondary_phone == "+34600000000"
    assert outcome.customer.vip_status
    superseded = await fetch(session_factory, Customer, c2.id)
    assert not superseded.is_active
    assert superseded.merged_into_id == c1.id
    assert (await fetch(session_factory, Reservation, reservation.id)).customer_id == c1.id
    kept = await fetch(session_factory, Customer, c1.id)
    assert kept.visit_count == 3
    assert kept.needs_reconciliation
    assert kept.reconciliation_notes["merges"][0]["fields"]["visit_count"] == {"primary": 3, "secondary": 2}
    assert await count(session_factory, AuditLog, AuditLog.action == "merge") == 1


@pytest.mark.asyncio
async def test_keep_email_match_updates_phone_only(resolver, c1, c2, session_factory):
    outcome = (await resolver.resolve_conflict(
        c1.id, c2.id, "keep_email_match", email="a@x.com", phone="600000000",
    )).unwrap()

    assert outcome.customer.phone == "+34600000000"
    other = await fetch(session_factory, Customer, c2.id)
    assert other.is_active
    assert other.phone == "+34600000000"
    audit = await count(session_factory, AuditLog, AuditLog.action == "keep_email_match")
    assert audit == 1


@pytest.mark.asyncio
async def test_keep_phone_match_updates_email_only(resolver, c1, c2):
    outcome = (await resolver.resolve_conflict(
        c1.id, c2.id, "keep_phone_match", email="a@x.com", phone="+34600000000",
    )).unwrap()

    assert outcome.customer.id == c2.id
    assert outcome.customer.email == "a@x.com"
    assert outcome.customer.allergies == "gluten"


@pytest.mark.asyncio
async def test_create_new_needs_a_name(resolver, c1, c2, session_factory):
    missing = await resolver.resolve_conflict(c1.id, c2.id, "create_new")
    created = (await resolver.resolve_conflict(c1.id, c2.id, "create_new", name="Ana Ruiz")).unwrap()

    assert isinstance(missing.error, InvalidRequestError)
    assert created.customer.id not in (c1.id, c2.id)
    assert (created.customer.email, created.customer.phone) == ("a@x.com", "+34600000000")
    assert await count(session_factory, Customer) == 3


@pytest.mark.asyncio
async def test_resolution_requires_two_different_active_customers(resolver, c1, c2):
    same = await resolver.resolve_conflict(c1.id, c1.id, "merge", actor=MANAGER)
    missing = await resolver.resolve_conflict(c1.id, uuid4(), "merge", actor=MANAGER)
    unknown = await resolver.resolve_conflict(c1.id, c2.id, "toss_a_coin")

    assert isinstance(same.error, InvalidRequestError)
    assert isinstance(missing.error, CustomerNotFoundError)
    assert missing.error.details["role"] == "phone"
    assert isinstance(unknown.error, InvalidRequestError)
