"""
Duplicate-customer detection and resolution.

A conflict exists when the supplied email belongs to one active customer
and the supplied phone to a different one. Nothing is resolved
automatically: the caller picks keep_email_match, keep_phone_match, merge
or create_new, and resolve_conflict persists that choice atomically.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Set
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from seatplan.core.database import transaction
from seatplan.core.errors import CustomerNotFoundError, InvalidRequestError
from seatplan.core.locks import KeyedLockRegistry, contact_key, customer_key
from seatplan.core.normalization import normalize_email, normalize_phone
from seatplan.core.result import returns_result
from seatplan.core.roles import Actor, SYSTEM_ACTOR
from seatplan.models.customer import Customer
from seatplan.repositories.customers import CustomerRepository
from seatplan.repositories.reservations import ReservationRepository
from seatplan.schemas.customer import CustomerRecord
from seatplan.services.audit_service import AuditService, make_audit_safe

logger = logging.getLogger(__name__)

NONE = "none"
SINGLE_MATCH = "single_match"
CONFLICT = "conflict"

RESOLUTIONS = ("keep_email_match", "keep_phone_match", "merge", "create_new")

SCALAR_FIELDS = ("name", "email", "phone", "company_name", "preferred_language")
BOOLEAN_FIELDS = ("vip_status", "accepts_marketing", "accepts_whatsapp", "accepts_email")
TEXT_FIELDS = ("food_preferences", "dietary_restrictions", "allergies", "preferred_wines", "special_occasions")
COUNTER_FIELDS = ("visit_count", "total_spend", "no_show_count")


@dataclass
class ExistenceResult:
    kind: str
    customer: Optional[Customer] = None
    matched_by: Optional[str] = None  # email, phone, both
    email_match: Optional[Customer] = None
    phone_match: Optional[Customer] = None

    def matched_ids(self) -> Set[UUID]:
        return {c.id for c in (self.customer, self.email_match, self.phone_match) if c is not None}


@dataclass
class MergeOutcome:
    record: CustomerRecord
    flagged_fields: List[str] = field(default_factory=list)


@dataclass
class ResolutionOutcome:
    resolution: str
    customer: Customer
    superseded_customer_id: Optional[UUID] = None
    flagged_fields: List[str] = field(default_factory=list)


# ==================== Resolutions (pure) ====================

def keep_email_match(email_customer: CustomerRecord, phone: Optional[str]) -> CustomerRecord:
    """Keep the customer found by email; the request's phone replaces theirs."""
    return email_customer.model_copy(update={"phone": phone or email_customer.phone})


def keep_phone_match(phone_customer: CustomerRecord, email: Optional[str]) -> CustomerRecord:
    """Keep the customer found by phone; the request's email replaces theirs."""
    return phone_customer.model_copy(update={"email": email or phone_customer.email})


def create_new(name: str, email: Optional[str], phone: Optional[str]) -> CustomerRecord:
    return CustomerRecord(name=name, email=email, phone=phone)


def _join_text(*values: Optional[str]) -> Optional[str]:
    parts = []
    for value in values:
        value = (value or "").strip()
        if value and value not in parts:
            parts.append(value)
    return "; ".join(parts) or None


def merge_customers(primary: CustomerRecord, secondary: CustomerRecord) -> MergeOutcome:
    """
    Combine two customer snapshots into the primary.

    Scalars keep the primary's non-empty value; a differing secondary value
    that would be lost is written under the provenance marker in the notes.
    Booleans are OR-ed, free text is joined with "; ". Visit counters are
    never summed: the primary's are kept and the record is flagged for
    manual reconciliation with both source values.
    """
    merged = {}
    carried = []

    for name in SCALAR_FIELDS:
        ours, theirs = getattr(primary, name), getattr(secondary, name)
        merged[name] = ours or theirs
        if ours and theirs and theirs != ours and name != "phone":
            carried.append(f"{name}: {theirs}")

    spare_phones = []
    for candidate in (secondary.phone, primary.secondary_phone, secondary.secondary_phone):
        if candidate and candidate != merged["phone"] and candidate not in spare_phones:
            spare_phones.append(candidate)
    merged["secondary_phone"] = spare_phones[0] if spare_phones else None
    carried.extend(f"phone: {p}" for p in spare_phones[1:])

    for name in BOOLEAN_FIELDS:
        merged[name] = getattr(primary, name) or getattr(secondary, name)

    for name in TEXT_FIELDS:
        merged[name] = _join_text(getattr(primary, name), getattr(secondary, name))

    block = [f"--- merged from customer #{secondary.id} ---"] if (secondary.internal_notes or carried) else []
    if secondary.internal_notes:
        block.append(secondary.internal_notes.strip())
    block.extend(carried)
    merged["internal_notes"] = "\n".join(
        part for part in [(primary.internal_notes or "").strip(), *block] if part
    ) or None

    for name in COUNTER_FIELDS:
        merged[name] = getattr(primary, name)
    previous = (primary.reconciliation_notes or {}).get("merges", [])
    merged["reconciliation_notes"] = {"merges": [*previous, make_audit_safe({
        "merged_customer_id": secondary.id,
        "fields": {
            name: {"primary": getattr(primary, name), "secondary": getattr(secondary, name)}
            for name in COUNTER_FIELDS
        },
    })]}
    merged["needs_reconciliation"] = True

    return MergeOutcome(record=primary.model_copy(update=merged), flagged_fields=list(COUNTER_FIELDS))


def apply_record(customer: Customer, record: CustomerRecord) -> None:
    for name, value in record.model_dump(exclude={"id"}).items():
        setattr(customer, name, value)


# ==================== Service ====================

class CustomerConflictResolver:
    def __init__(self, session_factory: async_sessionmaker, locks: KeyedLockRegistry, country_code: str = "+34"):
        self.session_factory = session_factory
        self.locks = locks
        self.country_code = country_code

    def normalize(self, email: Optional[str], phone: Optional[str]):
        return normalize_email(email), normalize_phone(phone, self.country_code)

    @returns_result
    async def check_customer_existence(self, email: Optional[str] = None, phone: Optional[str] = None) -> ExistenceResult:
        async with self.session_factory() as session:
            return await self.existence_in_session(session, email, phone)

    async def matched_customer_ids(self, email: Optional[str], phone: Optional[str]) -> Set[UUID]:
        """Ids of active customers currently holding the email or phone, read without locks."""
        async with self.session_factory() as session:
            existence = await self.existence_in_session(session, email, phone)
        return existence.matched_ids()

    async def existence_in_session(
        self, session: AsyncSession, email: Optional[str], phone: Optional[str],
        for_update: bool = False,
    ) -> ExistenceResult:
        email, phone = self.normalize(email, phone)
        repo = CustomerRepository(session)
        by_email = await repo.active_by_email(email, for_update=for_update) if email else []
        by_phone = await repo.active_by_phone(phone, for_update=for_update) if phone else []

        email_match = by_email[0] if by_email else None
        phone_ids = {c.id for c in by_phone}

        if email_match and by_phone and email_match.id not in phone_ids:
            return ExistenceResult(kind=CONFLICT, email_match=email_match, phone_match=by_phone[0])
        if email_match and email_match.id in phone_ids:
            return ExistenceResult(
                kind=SINGLE_MATCH, customer=email_match, matched_by="both",
                email_match=email_match, phone_match=email_match,
            )
        if email_match:
            return ExistenceResult(kind=SINGLE_MATCH, customer=email_match, matched_by="email", email_match=email_match)
        if by_phone:
            return ExistenceResult(kind=SINGLE_MATCH, customer=by_phone[0], matched_by="phone", phone_match=by_phone[0])
        return ExistenceResult(kind=NONE)

    @returns_result
    async def resolve_conflict(
        self,
        email_customer_id: UUID,
        phone_customer_id: UUID,
        resolution: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        name: Optional[str] = None,
        actor: Optional[Actor] = None,
    ) -> ResolutionOutcome:
        actor = actor or SYSTEM_ACTOR
        email, phone = self.normalize(email, phone)
        keys = (customer_key(email_customer_id), customer_key(phone_customer_id), contact_key(email), contact_key(phone))
        async with self.locks.acquire(*keys):
            async with transaction(self.session_factory) as session:
                repo = CustomerRepository(session)
                email_customer = await repo.get_by_id(email_customer_id, for_update=True)
                phone_customer = await repo.get_by_id(phone_customer_id, for_update=True)
                outcome = await self.apply_in_session(
                    session, email_customer, phone_customer, resolution, email, phone, name, actor,
                )
        logger.info(f"Customer conflict resolved with {resolution} by {actor.id}")
        return outcome

    async def apply_in_session(
        self,
        session: AsyncSession,
        email_customer: Optional[Customer],
        phone_customer: Optional[Customer],
        resolution: str,
        email: Optional[str],
        phone: Optional[str],
        name: Optional[str],
        actor: Actor,
    ) -> ResolutionOutcome:
        if resolution not in RESOLUTIONS:
            raise InvalidRequestError(
                f"Unknown resolution '{resolution}'", field="resolution", allowed=list(RESOLUTIONS),
            )
        for role, customer in (("email", email_customer), ("phone", phone_customer)):
            if customer is None or not customer.is_active:
                raise CustomerNotFoundError(
                    f"The {role}-matched customer was not found",
                    role=role, customer_id=getattr(customer, "id", None),
                )
        if email_customer.id == phone_customer.id:
            raise InvalidRequestError(
                "Email and phone belong to the same customer, nothing to resolve",
                customer_id=email_customer.id,
            )

        audit = AuditService(session, actor.id)
        email = email or email_customer.email
        phone = phone or phone_customer.phone

        if resolution == "create_new":
            if not name:
                raise InvalidRequestError("A name is required to create a new customer", field="name")
            record = create_new(name, email, phone)
            customer = await CustomerRepository(session).create(
                {**record.model_dump(exclude={"id"}), "created_by": actor.id}
            )
            await audit.log(
                entity_type="customer", entity_id=customer.id, entity_name=customer.name,
                action="create_new", new_values=record.model_dump(exclude={"id"}),
                action_detail=f"Created instead of customers {email_customer.id} / {phone_customer.id}",
            )
            return ResolutionOutcome(resolution=resolution, customer=customer)

        if resolution in ("keep_email_match", "keep_phone_match"):
            if resolution == "keep_email_match":
                kept, before = email_customer, CustomerRecord.model_validate(email_customer)
                record = keep_email_match(before, phone)
            else:
                kept, before = phone_customer, CustomerRecord.model_validate(phone_customer)
                record = keep_phone_match(before, email)
            apply_record(kept, record)
            await audit.log(
                entity_type="customer", entity_id=kept.id, entity_name=kept.name, action=resolution,
                old_values={"email": before.email, "phone": before.phone},
                new_values={"email": record.email, "phone": record.phone},
            )
            await session.flush()
            return ResolutionOutcome(resolution=resolution, customer=kept)

        primary, secondary = email_customer, phone_customer
        before = CustomerRecord.model_validate(primary)
        outcome = merge_customers(before, CustomerRecord.model_validate(secondary))
        apply_record(primary, outcome.record)
        secondary.is_active = False
        secondary.merged_into_id = primary.id

        moved = await ReservationRepository(session).by_customer(secondary.id)
        for reservation in moved:
            reservation.customer_id = primary.id

        await audit.log(
            entity_type="customer", entity_id=primary.id, entity_name=primary.name, action="merge",
            old_values=before.model_dump(exclude={"id", "reconciliation_notes"}),
            new_values=outcome.record.model_dump(exclude={"id", "reconciliation_notes"}),
            action_detail=f"Merged customer {secondary.id} into {primary.id}",
        )
        await session.flush()
        logger.info(f"Merged customer {secondary.id} into {primary.id}, moved {len(moved)} reservation(s)")
        return ResolutionOutcome(
            resolution=resolution, customer=primary,
            superseded_customer_id=secondary.id, flagged_fields=outcome.flagged_fields,
        )
