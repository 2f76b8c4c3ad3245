"""Pydantic schemas for sales orders."""
from datetime import datetime
from typing import Optional, List
from decimal import Decimal
from uuid import UUID

from docflow.schemas.base import BaseCreateSchema, BaseResponseSchema


# ==================== Requests ====================

class SalesOrderFromQuotationRequest(BaseCreateSchema):
    quotation_id: UUID


class SalesOrderAmendRequest(BaseCreateSchema):
    reason: str


class CustomerLpoValidationRequest(BaseCreateSchema):
    """Record the customer purchase order check. Downgrading Approved needs override."""
    status: str
    notes: Optional[str] = None
    override: bool = False


# ==================== Responses ====================

class SalesOrderItemResponse(BaseResponseSchema):
    id: UUID
    item_id: UUID
    quotation_item_id: Optional[UUID] = None
    line_number: int
    description: Optional[str] = None
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    delivery_requirement: Optional[str] = None
    special_instructions: Optional[str] = None


class SalesOrderResponse(BaseResponseSchema):
    """Response schema for a sales order or one of its amendments."""
    id: UUID
    order_number: str
    quotation_id: Optional[UUID] = None
    customer_id: UUID
    order_date: datetime
    status: str
    customer_po_number: Optional[str] = None

    currency: str
    exchange_rate: Decimal
    base_currency: str
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    subtotal_base: Decimal
    tax_amount_base: Decimal
    total_amount_base: Decimal

    payment_terms: Optional[str] = None
    delivery_instructions: Optional[str] = None
    notes: Optional[str] = None

    version: int
    parent_order_id: Optional[UUID] = None
    root_id: UUID
    amendment_sequence: Optional[int] = None
    amendment_reason: Optional[str] = None

    customer_lpo_required: bool
    customer_lpo_validation_status: str
    customer_lpo_validated_by: Optional[UUID] = None
    customer_lpo_validated_at: Optional[datetime] = None
    customer_lpo_validation_notes: Optional[str] = None

    source_type: str
    created_by: Optional[UUID] = None
    created_at: datetime
    items: List[SalesOrderItemResponse] = []
