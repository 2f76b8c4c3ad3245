"""Pydantic schemas for supplier LPOs."""
from datetime import datetime
from typing import Optional, List, Dict
from decimal import Decimal
from uuid import UUID

from pydantic import Field

from docflow.schemas.base import BaseCreateSchema, BaseResponseSchema


# ==================== Requests ====================

class LpoFromSalesOrdersRequest(BaseCreateSchema):
    """Derive LPOs. group_by: supplier (merge across orders) or sales_order."""
    sales_order_ids: List[UUID]
    group_by: str = "supplier"


class LpoAmendRequest(BaseCreateSchema):
    reason: str
    amendment_type: str = Field(..., description="Quantity, Price, Delivery, Terms, Cancellation")


class LpoApproveRequest(BaseCreateSchema):
    notes: Optional[str] = None


class LpoRejectRequest(BaseCreateSchema):
    notes: str


class LpoConfirmRequest(BaseCreateSchema):
    confirmation_reference: Optional[str] = None


class LpoReceiveRequest(BaseCreateSchema):
    """LPO item id -> quantity received now."""
    quantities: Dict[UUID, int]


class LpoCancelRequest(BaseCreateSchema):
    reason: Optional[str] = None


# ==================== Responses ====================

class SupplierLpoItemResponse(BaseResponseSchema):
    id: UUID
    sales_order_item_id: Optional[UUID] = None
    item_id: UUID
    line_number: int
    supplier_code: str
    barcode: Optional[str] = None
    item_description: str
    quantity: int
    received_quantity: int
    pending_quantity: int
    unit_cost: Decimal
    total_cost: Decimal
    delivery_status: str
    urgency: str


class SupplierLpoResponse(BaseResponseSchema):
    """Response schema for an LPO or one of its amendments."""
    id: UUID
    lpo_number: str
    supplier_id: UUID
    status: str
    lpo_date: datetime
    expected_delivery_date: Optional[datetime] = None

    source_type: str
    source_sales_order_ids: Optional[List[str]] = None
    grouping_criteria: Optional[str] = None

    currency: str
    exchange_rate: Decimal
    base_currency: str
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    subtotal_base: Decimal
    tax_amount_base: Decimal
    total_amount_base: Decimal

    supplier_contact_person: Optional[str] = None
    supplier_email: Optional[str] = None
    supplier_phone: Optional[str] = None
    payment_terms: Optional[str] = None
    delivery_terms: Optional[str] = None
    special_instructions: Optional[str] = None

    version: int
    parent_lpo_id: Optional[UUID] = None
    root_id: UUID
    amendment_sequence: Optional[int] = None
    amendment_reason: Optional[str] = None
    amendment_type: Optional[str] = None

    requires_approval: bool
    approval_status: str
    approved_by: Optional[UUID] = None
    approved_at: Optional[datetime] = None
    approval_notes: Optional[str] = None

    sent_to_supplier_at: Optional[datetime] = None
    confirmed_by_supplier_at: Optional[datetime] = None
    supplier_confirmation_reference: Optional[str] = None
    received_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    created_by: Optional[UUID] = None
    created_at: datetime
    items: List[SupplierLpoItemResponse] = []
