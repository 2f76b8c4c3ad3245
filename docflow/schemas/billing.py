"""Pydantic schemas for invoices and credit notes."""
from datetime import datetime
from typing import Optional, List
from decimal import Decimal
from uuid import UUID

from docflow.models.billing import InvoiceType
from docflow.schemas.base import BaseCreateSchema, BaseResponseSchema


# ==================== Invoice Schemas ====================

class InvoiceFromDeliveryRequest(BaseCreateSchema):
    delivery_id: UUID
    invoice_type: str = InvoiceType.FINAL.value


class ProformaInvoiceRequest(BaseCreateSchema):
    sales_order_id: UUID


class InvoicePaymentRequest(BaseCreateSchema):
    """A payment received against an invoice. Amounts accumulate."""
    amount: Decimal
    payment_method: Optional[str] = None
    reference: Optional[str] = None


class InvoiceCancelRequest(BaseCreateSchema):
    reason: Optional[str] = None


class InvoiceItemResponse(BaseResponseSchema):
    id: UUID
    delivery_item_id: Optional[UUID] = None
    sales_order_item_id: Optional[UUID] = None
    item_id: Optional[UUID] = None
    line_number: int
    barcode: Optional[str] = None
    supplier_code: Optional[str] = None
    description: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    unit_price_base: Decimal
    total_price_base: Decimal


class InvoiceResponse(BaseResponseSchema):
    """Response schema for Invoice."""
    id: UUID
    invoice_number: str
    invoice_type: str
    sales_order_id: UUID
    delivery_id: Optional[UUID] = None
    customer_id: UUID
    invoice_date: datetime
    due_date: Optional[datetime] = None
    status: str

    currency: str
    exchange_rate: Decimal
    base_currency: str
    subtotal: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    subtotal_base: Decimal
    tax_amount_base: Decimal
    discount_amount_base: Decimal
    total_amount_base: Decimal

    paid_amount: Decimal
    outstanding_amount: Decimal
    credited_amount: Decimal
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None
    last_payment_date: Optional[datetime] = None

    auto_generated: bool
    sent_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_by: Optional[UUID] = None
    created_at: datetime
    items: List[InvoiceItemResponse] = []


# ==================== Credit Note Schemas ====================

class CreditNoteCreate(BaseCreateSchema):
    invoice_id: UUID
    amount: Decimal
    reason: str
    notes: Optional[str] = None


class CreditNoteApplyRequest(BaseCreateSchema):
    """Apply part or (when amount is omitted) all of what can still be applied."""
    amount: Optional[Decimal] = None


class CreditNoteResponse(BaseResponseSchema):
    id: UUID
    credit_note_number: str
    original_invoice_id: UUID
    customer_id: UUID
    credit_note_date: datetime
    reason: str
    status: str
    currency: str
    exchange_rate: Decimal
    total_amount: Decimal
    applied_amount: Decimal
    remaining_amount: Decimal
    notes: Optional[str] = None
    created_by: Optional[UUID] = None
    created_at: datetime
