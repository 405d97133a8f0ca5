"""
Audit logging service - tracks entity changes and table state history.
"""
from uuid import UUID
from typing import Optional, Dict, Any
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from seatplan.core.clock import Clock
from seatplan.models.audit import AuditLog
from seatplan.models.restaurant import Table, TableStateLog


class AuditService:
    """Service to create audit log entries in the caller's transaction."""

    def __init__(self, db: AsyncSession, actor_id: Optional[str] = None, source: str = "api"):
        self.db = db
        self.actor_id = actor_id
        self.source = source

    async def log(
        self,
        entity_type: str,
        entity_id: UUID,
        action: str,
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None,
        entity_name: Optional[str] = None,
        action_detail: Optional[str] = None,
        changed_fields: Optional[list] = None,
    ):
        """Create an audit log entry."""
        # Make values JSON-safe
        if old_values:
            old_values = make_audit_safe(old_values)
        if new_values:
            new_values = make_audit_safe(new_values)

        # Auto-detect changed fields if not provided
        if changed_fields is None and old_values and new_values:
            changed_fields = [
                k for k in new_values
                if k in old_values and old_values[k] != new_values[k]
            ]

        audit_entry = AuditLog(
            actor_id=self.actor_id,
            entity_type=entity_type,
            entity_id=entity_id,
            entity_name=entity_name,
            action=action,
            action_detail=action_detail[:200] if action_detail else None,
            old_values=old_values,
            new_values=new_values,
            changed_fields=changed_fields,
            source=self.source,
        )
        self.db.add(audit_entry)
        await self.db.flush()
        return audit_entry

    async def log_create(
        self, entity_type: str, entity_id: UUID, new_values: dict,
        entity_name: str = None,
    ):
        return await self.log(
            entity_type=entity_type, entity_id=entity_id, action="create",
            new_values=new_values, entity_name=entity_name,
        )

    async def log_update(
        self, entity_type: str, entity_id: UUID,
        old_values: dict, new_values: dict,
        entity_name: str = None,
    ):
        return await self.log(
            entity_type=entity_type, entity_id=entity_id, action="update",
            old_values=old_values, new_values=new_values,
            entity_name=entity_name,
        )


class TableStateAuditSink:
    """Appends TableStateLog rows; every table status or fusion change goes through here."""

    def __init__(self, db: AsyncSession, clock: Clock, actor_id: Optional[str] = None):
        self.db = db
        self.clock = clock
        self.actor_id = actor_id

    async def record(
        self,
        table: Table,
        previous_state: Optional[str],
        new_state: str,
        reservation_id: Optional[UUID] = None,
        notes: Optional[str] = None,
    ) -> TableStateLog:
        last = await self.db.scalar(
            select(func.max(TableStateLog.sequence)).where(TableStateLog.table_id == table.id)
        )
        entry = TableStateLog(
            table_id=table.id,
            sequence=(last or 0) + 1,
            previous_state=previous_state,
            new_state=new_state,
            changed_by=self.actor_id,
            reservation_id=reservation_id,
            notes=notes,
            changed_at=self.clock.now(),
        )
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def set_status(self, table: Table, new_status: str, reservation_id=None, notes=None):
        """Change a table's status and log it; a no-op when nothing changes."""
        if table.status == new_status:
            return None
        previous = table.status
        table.status = new_status
        return await self.record(table, previous, new_status, reservation_id, notes)

    async def set_fusion(self, table: Table, new_state: str, master_id=None, reservation_id=None, notes=None):
        if table.fusion_state == new_state and table.fusion_master_id == master_id:
            return None
        previous = table.fusion_state
        table.fusion_state = new_state
        table.fusion_master_id = master_id
        return await self.record(table, previous, new_state, reservation_id, notes)


def serialize_for_audit(obj, fields: list) -> dict:
    """Serialize an ORM object to a dict for audit logging."""
    result = {}
    for field in fields:
        value = getattr(obj, field, None)
        result[field] = _make_json_safe(value)
    return result


def _make_json_safe(value):
    """Convert a value to a JSON-serializable type."""
    if value is None:
        return None
    if isinstance(value, (str, int, float, bool)):
        return value
    if hasattr(value, "hex"):  # UUID
        return str(value)
    if hasattr(value, "isoformat"):  # datetime, date, time
        return value.isoformat()
    if hasattr(value, "as_tuple"):  # Decimal
        return float(value)
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_make_json_safe(v) for v in value]
    if isinstance(value, dict):
        return {k: _make_json_safe(v) for k, v in value.items()}
    return str(value)


def make_audit_safe(data: dict) -> dict:
    """Make an entire dict JSON-serializable for audit logging."""
    return {k: _make_json_safe(v) for k, v in data.items()}
