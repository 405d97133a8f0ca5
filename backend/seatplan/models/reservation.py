"""
Reservation models: Reservations, assigned tables, Status History.
"""
import uuid
from datetime import datetime, timezone
from sqlalchemy import (
    Column, String, DateTime, ForeignKey, Text, Integer, Date, Time,
    UniqueConstraint, Index, CheckConstraint
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from seatplan.core.database import Base


def utcnow():
    return datetime.now(timezone.utc)


# ========================== Reservations ==========================

class Reservation(Base):
    """Restaurant reservations with their table assignment."""
    __tablename__ = "reservations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    reservation_number = Column(String(20), unique=True, nullable=False)  # "RES-20260208-4F2A"
    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id", ondelete="SET NULL"), nullable=True)
    table_id = Column(UUID(as_uuid=True), ForeignKey("tables.id", ondelete="SET NULL"), nullable=True)
    # Lead table: the single table, or the fusion master

    # Customer info (denormalized for quick access)
    customer_name = Column(String(200), nullable=False)
    customer_phone = Column(String(50), nullable=True)
    customer_email = Column(String(255), nullable=True)

    # Reservation details
    party_size = Column(Integer, nullable=False)
    children_count = Column(Integer, default=0, nullable=False)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    duration_minutes = Column(Integer, default=90, nullable=False)
    requested_zone_id = Column(UUID(as_uuid=True), ForeignKey("zones.id", ondelete="SET NULL"), nullable=True)

    # Status
    status = Column(String(20), default="pending", nullable=False)
    # pending, confirmed, seated, completed, cancelled, no_show
    origin = Column(String(20), default="web", nullable=False)
    # web, phone, walk_in, third_party

    # Additional info
    special_requests = Column(Text, nullable=True)
    internal_notes = Column(Text, nullable=True)  # Staff-only notes

    # Timestamps
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    seated_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    no_show_at = Column(DateTime(timezone=True), nullable=True)

    # Audit
    created_by = Column(String(100), nullable=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    table_links = relationship(
        "ReservationTable", back_populates="reservation",
        cascade="all, delete-orphan", lazy="selectin",
    )
    status_history = relationship(
        "ReservationStatusHistory", back_populates="reservation",
        cascade="all, delete-orphan", order_by="ReservationStatusHistory.sequence",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_reservations_date", "date"),
        Index("ix_reservations_status", "status"),
        Index("ix_reservations_customer", "customer_id"),
        Index("ix_reservations_table_date", "table_id", "date"),
        CheckConstraint("party_size > 0", name="ck_party_size_positive"),
        CheckConstraint("children_count >= 0", name="ck_children_count_non_negative"),
        CheckConstraint("duration_minutes > 0", name="ck_duration_positive"),
    )

    @property
    def table_ids(self) -> list:
        return sorted((link.table_id for link in self.table_links), key=str)


# ========================== Assigned Tables ==========================

class ReservationTable(Base):
    """Every table held by a reservation (one row, or one per fused table)."""
    __tablename__ = "reservation_tables"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    reservation_id = Column(UUID(as_uuid=True), ForeignKey("reservations.id", ondelete="CASCADE"), nullable=False)
    table_id = Column(UUID(as_uuid=True), ForeignKey("tables.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    # Relationships
    reservation = relationship("Reservation", back_populates="table_links")

    __table_args__ = (
        UniqueConstraint("reservation_id", "table_id", name="uq_reservation_table"),
        Index("ix_reservation_tables_table", "table_id"),
    )


# ========================== Reservation Status History ==========================

class ReservationStatusHistory(Base):
    """Track all status changes of a reservation."""
    __tablename__ = "reservation_status_history"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    reservation_id = Column(UUID(as_uuid=True), ForeignKey("reservations.id", ondelete="CASCADE"), nullable=False)
    sequence = Column(Integer, nullable=False)  # 1 for creation, +1 per change
    old_status = Column(String(20), nullable=True)  # NULL for creation
    new_status = Column(String(20), nullable=False)
    changed_by = Column(String(100), nullable=True)
    change_source = Column(String(20), nullable=True)  # "staff", "customer", "system"
    notes = Column(Text, nullable=True)
    changed_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    # Relationships
    reservation = relationship("Reservation", back_populates="status_history")

    __table_args__ = (
        Index("ix_reservation_history_reservation", "reservation_id", "sequence"),
    )
