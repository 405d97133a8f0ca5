"""
Customer models: Profiles, preferences and visit counters.
"""
import uuid
from datetime import datetime, timezone
from sqlalchemy import (
    Column, String, Boolean, DateTime, ForeignKey, Text, Integer, Numeric, JSON,
    Index
)
from sqlalchemy.dialects.postgresql import UUID
from seatplan.core.database import Base


def utcnow():
    return datetime.now(timezone.utc)


# ========================== Customers ==========================

class Customer(Base):
    """Customer profiles with preferences and visit history summary."""
    __tablename__ = "customers"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(200), nullable=False)
    email = Column(String(255), nullable=True)  # Stored lowercased
    phone = Column(String(50), nullable=True)  # Stored normalised: "+34600000000"
    secondary_phone = Column(String(50), nullable=True)
    company_name = Column(String(200), nullable=True)
    preferred_language = Column(String(10), nullable=True)

    # Preferences (free text, "; "-separated when merged)
    food_preferences = Column(Text, nullable=True)
    dietary_restrictions = Column(Text, nullable=True)
    allergies = Column(Text, nullable=True)
    preferred_wines = Column(Text, nullable=True)
    special_occasions = Column(Text, nullable=True)
    internal_notes = Column(Text, nullable=True)

    # Classification & consent
    vip_status = Column(Boolean, default=False, nullable=False)
    accepts_marketing = Column(Boolean, default=False, nullable=False)
    accepts_whatsapp = Column(Boolean, default=False, nullable=False)
    accepts_email = Column(Boolean, default=False, nullable=False)

    # Visit statistics
    visit_count = Column(Integer, default=0, nullable=False)
    total_spend = Column(Numeric(12, 2), default=0, nullable=False)
    no_show_count = Column(Integer, default=0, nullable=False)

    # Merge bookkeeping
    needs_reconciliation = Column(Boolean, default=False, nullable=False)
    reconciliation_notes = Column(JSON, nullable=True)  # Source values of unmerged counters
    merged_into_id = Column(UUID(as_uuid=True), ForeignKey("customers.id", ondelete="SET NULL"), nullable=True)

    # General
    is_active = Column(Boolean, default=True, nullable=False)
    created_by = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_customers_phone", "phone"),
        Index("ix_customers_email", "email"),
        Index("ix_customers_active", "is_active"),
    )
