"""API endpoints for invoices: generation, payments and status."""
from uuid import UUID

from fastapi import APIRouter, status

from docflow.api.deps import DB, ActorId
from docflow.schemas.base import CurrencyUpdateRequest
from docflow.schemas.billing import (
    InvoiceFromDeliveryRequest,
    ProformaInvoiceRequest,
    InvoicePaymentRequest,
    InvoiceCancelRequest,
    InvoiceResponse,
)
from docflow.services.invoice_service import InvoiceService


router = APIRouter()


@router.post("/from-delivery", response_model=InvoiceResponse, status_code=status.HTTP_201_CREATED)
async def generate_from_delivery(data: InvoiceFromDeliveryRequest, db: DB, actor_id: ActorId):
    return await InvoiceService(db).generate_from_delivery(
        data.delivery_id, invoice_type=data.invoice_type, user_id=actor_id
    )


@router.post("/proforma", response_model=InvoiceResponse, status_code=status.HTTP_201_CREATED)
async def generate_proforma(data: ProformaInvoiceRequest, db: DB, actor_id: ActorId):
    return await InvoiceService(db).generate_proforma(data.sales_order_id, user_id=actor_id)


@router.get("/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(invoice_id: UUID, db: DB):
    return await InvoiceService(db).get_invoice(invoice_id)


@router.post("/{invoice_id}/payments", response_model=InvoiceResponse)
async def record_payment(invoice_id: UUID, data: InvoicePaymentRequest, db: DB, actor_id: ActorId):
    """Accumulate a payment; status becomes Paid once nothing is outstanding."""
    return await InvoiceService(db).mark_paid(
        invoice_id,
        data.amount,
        payment_method=data.payment_method,
        reference=data.reference,
        user_id=actor_id,
    )


@router.post("/{invoice_id}/send", response_model=InvoiceResponse)
async def send_invoice(invoice_id: UUID, db: DB, actor_id: ActorId):
    return await InvoiceService(db).send_invoice(invoice_id, user_id=actor_id)


@router.post("/{invoice_id}/overdue", response_model=InvoiceResponse)
async def mark_overdue(invoice_id: UUID, db: DB, actor_id: ActorId):
    return await InvoiceService(db).mark_overdue(invoice_id, user_id=actor_id)


@router.post("/{invoice_id}/cancel", response_model=InvoiceResponse)
async def cancel_invoice(invoice_id: UUID, data: InvoiceCancelRequest, db: DB, actor_id: ActorId):
    return await InvoiceService(db).cancel_invoice(invoice_id, reason=data.reason, user_id=actor_id)


@router.put("/{invoice_id}/currency", response_model=InvoiceResponse)
async def update_invoice_currency(invoice_id: UUID, data: CurrencyUpdateRequest, db: DB, actor_id: ActorId):
    return await InvoiceService(db).update_currency(invoice_id, data.currency, data.rate, user_id=actor_id)
