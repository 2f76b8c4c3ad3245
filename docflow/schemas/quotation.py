"""Pydantic schemas for quotations."""
from datetime import datetime
from typing import Optional, List
from decimal import Decimal
from uuid import UUID

from pydantic import Field

from docflow.schemas.base import BaseCreateSchema, BaseResponseSchema


# ==================== Requests ====================

class QuotationItemCreate(BaseCreateSchema):
    """Schema for a quotation line."""
    item_id: Optional[UUID] = None
    description: str
    quantity: int = Field(..., gt=0)
    unit_price: Decimal = Field(Decimal("0"), ge=0)
    notes: Optional[str] = None


class QuotationCreate(BaseCreateSchema):
    """Schema for creating a quotation."""
    customer_id: UUID
    items: List[QuotationItemCreate] = Field(..., min_length=1)
    currency: Optional[str] = None
    discount_amount: Decimal = Field(Decimal("0"), ge=0)
    tax_amount: Decimal = Field(Decimal("0"), ge=0)
    valid_until: Optional[datetime] = None
    terms: Optional[str] = None
    notes: Optional[str] = None


class QuotationRevisionRequest(BaseCreateSchema):
    """
    Schema for revising a quotation.

    Header fields left out are copied from the revised row; items replace
    the current items only when given.
    """
    reason: str
    currency: Optional[str] = None
    discount_amount: Optional[Decimal] = Field(None, ge=0)
    tax_amount: Optional[Decimal] = Field(None, ge=0)
    valid_until: Optional[datetime] = None
    terms: Optional[str] = None
    notes: Optional[str] = None
    items: Optional[List[QuotationItemCreate]] = None

    def header_changes(self) -> dict:
        return self.model_dump(exclude={"reason", "items"}, exclude_none=True)


class QuotationStatusUpdate(BaseCreateSchema):
    status: str


class QuotationApproveRequest(BaseCreateSchema):
    comments: Optional[str] = None


class QuotationRejectRequest(BaseCreateSchema):
    reason: str


# ==================== Responses ====================

class QuotationItemResponse(BaseResponseSchema):
    id: UUID
    item_id: Optional[UUID] = None
    line_number: int
    description: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal
    notes: Optional[str] = None


class QuotationApprovalResponse(BaseResponseSchema):
    id: UUID
    quotation_id: UUID
    approver_id: Optional[UUID] = None
    status: str
    comments: Optional[str] = None
    created_at: datetime


class QuotationResponse(BaseResponseSchema):
    """Response schema for a quotation row (one revision)."""
    id: UUID
    quote_number: str
    revision: int
    parent_quotation_id: Optional[UUID] = None
    root_id: UUID
    revision_reason: Optional[str] = None
    is_superseded: bool
    superseded_at: Optional[datetime] = None
    customer_id: UUID
    status: str
    quote_date: datetime
    valid_until: Optional[datetime] = None
    currency: str
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    terms: Optional[str] = None
    notes: Optional[str] = None
    approval_status: str
    approved_by: Optional[UUID] = None
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    created_by: Optional[UUID] = None
    created_at: datetime
    items: List[QuotationItemResponse] = []
