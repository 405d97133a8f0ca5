"""Schemas for customers and duplicate-contact resolution."""
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from uuid import UUID
from decimal import Decimal
from datetime import datetime


# ==================== Customer snapshot ====================

class CustomerRecord(BaseModel):
    """Detached snapshot of a customer, the input and output of the resolutions."""
    id: Optional[UUID] = None
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    secondary_phone: Optional[str] = None
    company_name: Optional[str] = None
    preferred_language: Optional[str] = None

    food_preferences: Optional[str] = None
    dietary_restrictions: Optional[str] = None
    allergies: Optional[str] = None
    preferred_wines: Optional[str] = None
    special_occasions: Optional[str] = None
    internal_notes: Optional[str] = None

    vip_status: bool = False
    accepts_marketing: bool = False
    accepts_whatsapp: bool = False
    accepts_email: bool = False

    visit_count: int = 0
    total_spend: Decimal = Decimal("0")
    no_show_count: int = 0

    needs_reconciliation: bool = False
    reconciliation_notes: Optional[Dict[str, Any]] = None

    class Config:
        from_attributes = True


class CustomerResponse(CustomerRecord):
    id: UUID
    is_active: bool
    merged_into_id: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime


# ==================== Existence & Resolution ====================

class ExistenceCheckRequest(BaseModel):
    email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=50)


class ExistenceCheckResponse(BaseModel):
    kind: str  # none, single_match, conflict
    matched_by: Optional[str] = None  # email, phone, both
    customer: Optional[CustomerResponse] = None
    email_match: Optional[CustomerResponse] = None
    phone_match: Optional[CustomerResponse] = None


class ConflictResolutionRequest(BaseModel):
    email_customer_id: UUID
    phone_customer_id: UUID
    resolution: str = Field(..., pattern=r"^(keep_email_match|keep_phone_match|merge|create_new)$")
    email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=50)
    name: Optional[str] = Field(None, min_length=1, max_length=200)


class ConflictResolutionResponse(BaseModel):
    resolution: str
    customer: CustomerResponse
    superseded_customer_id: Optional[UUID] = None
    flagged_fields: List[str] = []
