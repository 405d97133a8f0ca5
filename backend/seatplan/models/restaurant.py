"""
Restaurant physical space models: Zones, Tables, Table state history.
"""
import uuid
from datetime import datetime, timezone
from sqlalchemy import (
    Column, String, Boolean, DateTime, ForeignKey, Text, Integer,
    Index, CheckConstraint
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from seatplan.core.database import Base


def utcnow():
    return datetime.now(timezone.utc)


# ========================== Zones ==========================

class Zone(Base):
    """Restaurant zones (e.g., Main Hall, Terrace, Private Room)."""
    __tablename__ = "zones"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    code = Column(String(10), unique=True, nullable=False)  # "MAIN", "TER", "VIP1"
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    capacity = Column(Integer, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    tables = relationship("Table", back_populates="zone")

    __table_args__ = (
        CheckConstraint("capacity > 0", name="ck_zone_capacity_positive"),
    )


# ========================== Tables ==========================

class Table(Base):
    """Individual restaurant tables, possibly fused into a group for one party."""
    __tablename__ = "tables"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    zone_id = Column(UUID(as_uuid=True), ForeignKey("zones.id", ondelete="SET NULL"), nullable=True)
    number = Column(Integer, unique=True, nullable=False)
    capacity = Column(Integer, nullable=False)
    max_combined_capacity = Column(Integer, nullable=True)  # NULL = no limit when leading a group
    is_combinable = Column(Boolean, default=True, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    status = Column(String(20), default="available", nullable=False)
    # available, reserved, occupied, cleaning, maintenance
    fusion_state = Column(String(20), default="individual", nullable=False)
    # individual, fusion_master, fusion_slave, blocked
    fusion_master_id = Column(UUID(as_uuid=True), ForeignKey("tables.id", ondelete="SET NULL"), nullable=True)
    notes = Column(Text, nullable=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    zone = relationship("Zone", back_populates="tables", lazy="selectin")

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_tables_zone", "zone_id"),
        Index("ix_tables_status", "status"),
        CheckConstraint("capacity > 0", name="ck_table_capacity_positive"),
        CheckConstraint("number > 0", name="ck_table_number_positive"),
    )


# ========================== Table State Log ==========================

class TableStateLog(Base):
    """Append-only history of table status and fusion changes."""
    __tablename__ = "table_state_logs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    table_id = Column(UUID(as_uuid=True), ForeignKey("tables.id", ondelete="CASCADE"), nullable=False)
    sequence = Column(Integer, nullable=False)  # Per-table order of changes
    previous_state = Column(String(20), nullable=True)
    new_state = Column(String(20), nullable=False)
    changed_by = Column(String(100), nullable=True)  # Opaque actor id
    reservation_id = Column(UUID(as_uuid=True), ForeignKey("reservations.id", ondelete="SET NULL"), nullable=True)
    notes = Column(Text, nullable=True)
    changed_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_table_state_logs_table", "table_id", "sequence"),
    )
