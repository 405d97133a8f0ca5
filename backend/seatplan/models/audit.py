"""
Audit models: Audit logs for forced assignments, resolutions and admin edits.
"""
import uuid
from datetime import datetime, timezone
from sqlalchemy import (
    Column, String, DateTime, JSON, Index
)
from sqlalchemy.dialects.postgresql import UUID
from seatplan.core.database import Base


def utcnow():
    return datetime.now(timezone.utc)


# ========================== Audit Log ==========================

class AuditLog(Base):
    """
    Audit trail for entity changes.
    Tracks who did what, when, and stores before/after values.
    """
    __tablename__ = "audit_logs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    actor_id = Column(String(100), nullable=True)

    # What was changed
    entity_type = Column(String(50), nullable=False)
    # "table", "zone", "reservation", "customer"
    entity_id = Column(UUID(as_uuid=True), nullable=False)
    entity_name = Column(String(200), nullable=True)  # Human-readable: "Table 5", "RES-20260208-4F2A"

    # What action
    action = Column(String(30), nullable=False)
    # create, update, delete, status_change, forced_assignment, merge, keep_email_match, ...
    action_detail = Column(String(200), nullable=True)

    # Before/After values
    old_values = Column(JSON, nullable=True)  # {"status": "available", "capacity": 4}
    new_values = Column(JSON, nullable=True)
    changed_fields = Column(JSON, nullable=True)  # ["status", "capacity"]

    source = Column(String(20), nullable=True)  # "web", "api", "system"

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_audit_logs_entity", "entity_type", "entity_id"),
        Index("ix_audit_logs_actor", "actor_id"),
        Index("ix_audit_logs_action", "action"),
        Index("ix_audit_logs_date", "created_at"),
    )
