"""Schemas for zones, tables and availability."""
from pydantic import BaseModel, Field
from typing import Optional, List
from uuid import UUID
from datetime import datetime


# ==================== Zones ====================

class ZoneCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=10, pattern=r"^[A-Z0-9]+$")
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    capacity: int = Field(..., gt=0)
    sort_order: int = 0


class ZoneResponse(BaseModel):
    id: UUID
    code: str
    name: str
    description: Optional[str] = None
    capacity: int
    sort_order: int
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


# ==================== Tables ====================

class TableCreate(BaseModel):
    number: int = Field(..., gt=0)
    zone_id: Optional[UUID] = None
    capacity: int = Field(..., gt=0)
    max_combined_capacity: Optional[int] = Field(None, gt=0)
    is_combinable: bool = True
    notes: Optional[str] = None


class TableUpdate(BaseModel):
    zone_id: Optional[UUID] = None
    capacity: Optional[int] = Field(None, gt=0)
    max_combined_capacity: Optional[int] = Field(None, gt=0)
    is_combinable: Optional[bool] = None
    is_active: Optional[bool] = None
    notes: Optional[str] = None


class MaintenanceRequest(BaseModel):
    on: bool = True
    notes: Optional[str] = None


class TableResponse(BaseModel):
    id: UUID
    number: int
    zone_id: Optional[UUID] = None
    capacity: int
    max_combined_capacity: Optional[int] = None
    is_combinable: bool
    is_active: bool
    status: str
    fusion_state: str
    fusion_master_id: Optional[UUID] = None
    notes: Optional[str] = None
    version: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class TableStateLogResponse(BaseModel):
    id: UUID
    table_id: UUID
    sequence: int
    previous_state: Optional[str] = None
    new_state: str
    changed_by: Optional[str] = None
    reservation_id: Optional[UUID] = None
    notes: Optional[str] = None
    changed_at: datetime

    class Config:
        from_attributes = True


# ==================== Availability ====================

class CandidateResponse(BaseModel):
    table_ids: List[UUID]
    table_numbers: List[int]
    lead_table_id: UUID
    zone_id: Optional[UUID] = None
    capacity: int
    zone_match: bool
