"""Schemas for Reservation management."""
from pydantic import BaseModel, Field
from typing import Optional, List
from uuid import UUID
from datetime import datetime, date, time


# ==================== Reservations ====================

class ReservationCreate(BaseModel):
    customer_id: Optional[UUID] = None
    customer_name: str = Field(..., min_length=1, max_length=200)
    customer_phone: Optional[str] = Field(None, max_length=50)
    customer_email: Optional[str] = Field(None, max_length=255)
    customer_resolution: Optional[str] = Field(
        None, pattern=r"^(update|create_new|keep_email_match|keep_phone_match|merge)$"
    )
    party_size: int = Field(..., ge=1)
    children_count: int = Field(0, ge=0)
    start_time: time
    duration_minutes: Optional[int] = Field(None, ge=15)
    requested_zone: Optional[str] = None  # Zone id or code
    origin: str = Field("web", pattern=r"^(web|phone|walk_in|third_party)$")
    special_requests: Optional[str] = None
    internal_notes: Optional[str] = None
    table_ids: Optional[List[UUID]] = None
    date: date


class AssignTablesRequest(BaseModel):
    table_ids: List[UUID] = Field(..., min_length=1)
    force: bool = False


class StatusChangeRequest(BaseModel):
    expected_status: Optional[str] = Field(
        None, pattern=r"^(pending|confirmed|seated|completed|cancelled|no_show)$"
    )
    reason: Optional[str] = None


class ReservationResponse(BaseModel):
    id: UUID
    reservation_number: str
    customer_id: Optional[UUID] = None
    table_id: Optional[UUID] = None
    table_ids: List[UUID] = []
    customer_name: str
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    party_size: int
    children_count: int
    start_time: time
    duration_minutes: int
    requested_zone_id: Optional[UUID] = None
    status: str
    origin: str
    special_requests: Optional[str] = None
    internal_notes: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    seated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    no_show_at: Optional[datetime] = None
    created_by: Optional[str] = None
    version: int
    created_at: datetime
    date: date

    class Config:
        from_attributes = True


class AssignmentResponse(BaseModel):
    reservation_id: UUID
    table_ids: List[UUID]
    lead_table_id: Optional[UUID] = None
    capacity: int
    forced: bool
    overlap_warning: bool
    overlapping_reservation_ids: List[UUID] = []
    already_assigned: bool

    class Config:
        from_attributes = True


class StatusHistoryResponse(BaseModel):
    id: UUID
    sequence: int
    old_status: Optional[str] = None
    new_status: str
    changed_by: Optional[str] = None
    change_source: Optional[str] = None
    notes: Optional[str] = None
    changed_at: datetime

    class Config:
        from_attributes = True
