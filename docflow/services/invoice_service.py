"""Invoice Service.

Generates invoices from the document chain:
- Final invoice from a delivery: one line per delivered item, priced from the
  originating sales order item
- Proforma invoice from a sales order: an empty shell with zero totals

Payments, sending, overdue marking and cancellation go through
invoice_state_machine. Everything a generation writes is flushed in the
caller's transaction, so a failed line leaves no partial invoice behind.
"""
import uuid
import logging
from decimal import Decimal
from typing import Optional, Dict, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from docflow.config import settings
from docflow.core.exceptions import NotFoundError, ValidationError
from docflow.database import flush_changes
from docflow.models.billing import Invoice, InvoiceItem, InvoiceType, InvoiceStatus
from docflow.models.delivery import Delivery, DeliveryItem
from docflow.models.sales_order import SalesOrder, SalesOrderItem
from docflow.services.audit_service import AuditService
from docflow.services.currency_service import CurrencyService, money, resolve_base_currency
from docflow.services.document_sequence_service import generate_number
from docflow.services.invoice_state_machine import (
    apply_payment,
    recompute_outstanding,
    transition_invoice,
)


logger = logging.getLogger(__name__)


ENTITY = "INVOICE"

INVOICE_TYPES = [t.value for t in InvoiceType]


def billed_quantity(item: DeliveryItem) -> int:
    """Only what was actually delivered is billed; picked or ordered stock is not."""
    return item.delivered_quantity or 0


class InvoiceService:
    """Service for invoice generation and payment tracking."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)
        self.currency = CurrencyService(db)

    async def get_invoice(self, invoice_id: uuid.UUID) -> Invoice:
        invoice = await self.db.scalar(select(Invoice).where(Invoice.id == invoice_id))
        if invoice is None:
            raise NotFoundError("Invoice", invoice_id)
        return invoice

    async def _get_sales_order(self, order_id: uuid.UUID) -> SalesOrder:
        order = await self.db.scalar(select(SalesOrder).where(SalesOrder.id == order_id))
        if order is None:
            raise NotFoundError("Sales order", order_id)
        return order

    async def generate_from_delivery(
        self,
        delivery_id: uuid.UUID,
        invoice_type: str = InvoiceType.FINAL.value,
        user_id: Optional[uuid.UUID] = None,
    ) -> Invoice:
        """
        Bill a delivery.

        Flow:
        1. Load the delivery and its sales order
        2. Price each delivered item from its sales order item (or the
           delivery line's own unit price when it cannot be linked)
        3. Carry currency / rate / base currency over from the sales order
        4. outstanding_amount starts at the full total

        Raises:
            NotFoundError: delivery or its sales order missing
            ValidationError: unknown invoice type, no billable lines, or a
                line with no price
        """
        if invoice_type not in INVOICE_TYPES:
            raise ValidationError(
                f"Invalid invoice type '{invoice_type}'. Allowed: {', '.join(INVOICE_TYPES)}",
                fields=["invoice_type"],
            )

        # 1. Delivery and sales order
        delivery = await self.db.scalar(select(Delivery).where(Delivery.id == delivery_id))
        if delivery is None:
            raise NotFoundError("Delivery", delivery_id)
        order = await self._get_sales_order(delivery.sales_order_id)

        so_item_ids = [i.sales_order_item_id for i in delivery.items if i.sales_order_item_id]
        so_items: Dict[uuid.UUID, SalesOrderItem] = {}
        if so_item_ids:
            result = await self.db.execute(
                select(SalesOrderItem).where(SalesOrderItem.id.in_(so_item_ids))
            )
            so_items = {item.id: item for item in result.scalars().all()}

        # 2. Lines
        items = []
        for d_item in delivery.items:
            quantity = billed_quantity(d_item)
            if quantity <= 0:
                continue

            so_item = so_items.get(d_item.sales_order_item_id)
            if so_item is not None:
                unit_price = so_item.unit_price
            elif d_item.unit_price is not None:
                unit_price = d_item.unit_price
            else:
                raise ValidationError(
                    f"Delivery line {d_item.id} has no sales order item and no unit price",
                    fields=[f"delivery_items.{d_item.id}.unit_price"],
                )
            unit_price = money(unit_price)

            items.append(InvoiceItem(
                delivery_item_id=d_item.id,
                sales_order_item_id=so_item.id if so_item is not None else None,
                item_id=d_item.item_id,
                line_number=len(items) + 1,
                barcode=d_item.barcode,
                supplier_code=d_item.supplier_code,
                description=d_item.description or (so_item.description if so_item is not None else "") or "",
                quantity=quantity,
                unit_price=unit_price,
                total_price=money(unit_price * quantity),
            ))

        if not items:
            raise ValidationError(
                f"Delivery {delivery.delivery_number} has no delivered items to bill",
                fields=["delivery_id"],
            )

        subtotal = money(sum((item.total_price for item in items), Decimal("0")))

        # 3. Currency from the sales order
        currency = order.currency or settings.DEFAULT_CURRENCY
        invoice = Invoice(
            invoice_number=generate_number("INV"),
            invoice_type=invoice_type,
            sales_order_id=order.id,
            delivery_id=delivery.id,
            customer_id=order.customer_id,
            status=InvoiceStatus.DRAFT.value,
            currency=currency,
            exchange_rate=order.exchange_rate or Decimal("1"),
            base_currency=order.base_currency or resolve_base_currency(currency),
            subtotal=subtotal,
            tax_amount=Decimal("0"),
            discount_amount=Decimal("0"),
            total_amount=subtotal,
            paid_amount=Decimal("0"),
            payment_terms=order.payment_terms,
            auto_generated=True,
            created_by=await self.audit.resolve_actor(user_id),
            items=items,
        )
        # 4. Outstanding
        recompute_outstanding(invoice)
        self.currency.apply_base_amounts(invoice)

        self.db.add(invoice)
        await flush_changes(self.db, "Generate invoice")

        await self.audit.log_event(
            ENTITY, invoice.id, "DERIVED", user_id,
            {"delivery_id": str(delivery.id), "sales_order_id": str(order.id)},
            {"invoice_number": invoice.invoice_number, "total_amount": str(invoice.total_amount)},
        )
        logger.info(
            f"Generated invoice {invoice.invoice_number} ({len(items)} lines, total {invoice.total_amount} "
            f"{invoice.currency}) from delivery {delivery.delivery_number}"
        )
        return invoice

    async def generate_proforma(
        self,
        sales_order_id: uuid.UUID,
        user_id: Optional[uuid.UUID] = None,
    ) -> Invoice:
        """Create an empty proforma invoice for a sales order. Totals start at zero."""
        order = await self._get_sales_order(sales_order_id)

        currency = order.currency or settings.DEFAULT_CURRENCY
        invoice = Invoice(
            invoice_number=generate_number("PFINV"),
            invoice_type=InvoiceType.PROFORMA.value,
            sales_order_id=order.id,
            customer_id=order.customer_id,
            status=InvoiceStatus.DRAFT.value,
            currency=currency,
            exchange_rate=order.exchange_rate or Decimal("1"),
            base_currency=order.base_currency or resolve_base_currency(currency),
            subtotal=Decimal("0"),
            tax_amount=Decimal("0"),
            discount_amount=Decimal("0"),
            total_amount=Decimal("0"),
            paid_amount=Decimal("0"),
            outstanding_amount=Decimal("0"),
            payment_terms=order.payment_terms,
            created_by=await self.audit.resolve_actor(user_id),
            items=[],
        )
        self.currency.apply_base_amounts(invoice)
        self.db.add(invoice)
        await flush_changes(self.db, "Generate proforma invoice")

        await self.audit.log_event(
            ENTITY, invoice.id, "DERIVED", user_id,
            {"sales_order_id": str(order.id)},
            {"invoice_number": invoice.invoice_number, "invoice_type": invoice.invoice_type},
        )
        logger.info(f"Generated proforma invoice {invoice.invoice_number} for {order.order_number}")
        return invoice

    async def mark_paid(
        self,
        invoice_id: uuid.UUID,
        amount: Decimal,
        payment_method: Optional[str] = None,
        reference: Optional[str] = None,
        user_id: Optional[uuid.UUID] = None,
    ) -> Invoice:
        """
        Record a payment.

        paid_amount accumulates; status flips to Paid only when nothing is
        outstanding.
        """
        invoice = await self.get_invoice(invoice_id)
        old = {
            "status": invoice.status,
            "paid_amount": str(invoice.paid_amount),
            "outstanding_amount": str(invoice.outstanding_amount),
        }

        apply_payment(invoice, amount)
        if payment_method:
            invoice.payment_method = payment_method
        if reference:
            invoice.payment_reference = reference
        await flush_changes(self.db, "Record invoice payment")

        await self.audit.log_event(
            ENTITY, invoice.id, "PAYMENT_RECORDED", user_id,
            old,
            {
                "status": invoice.status,
                "paid_amount": str(invoice.paid_amount),
                "outstanding_amount": str(invoice.outstanding_amount),
                "payment_method": payment_method,
                "reference": reference,
            },
        )
        logger.info(
            f"Invoice {invoice.invoice_number}: payment {money(amount)}, "
            f"outstanding {invoice.outstanding_amount}, status {invoice.status}"
        )
        return invoice

    async def send_invoice(self, invoice_id: uuid.UUID, user_id: Optional[uuid.UUID] = None) -> Invoice:
        return await self._transition(invoice_id, InvoiceStatus.SENT.value, user_id)

    async def mark_overdue(self, invoice_id: uuid.UUID, user_id: Optional[uuid.UUID] = None) -> Invoice:
        return await self._transition(invoice_id, InvoiceStatus.OVERDUE.value, user_id)

    async def cancel_invoice(
        self,
        invoice_id: uuid.UUID,
        reason: Optional[str] = None,
        user_id: Optional[uuid.UUID] = None,
    ) -> Invoice:
        invoice = await self._transition(invoice_id, InvoiceStatus.CANCELLED.value, user_id)
        if reason:
            invoice.notes = f"{invoice.notes or ''}\nCancellation Reason: {reason}".strip()
            await flush_changes(self.db, "Cancel invoice")
        return invoice

    async def _transition(
        self,
        invoice_id: uuid.UUID,
        new_status: str,
        user_id: Optional[uuid.UUID],
    ) -> Invoice:
        invoice = await self.get_invoice(invoice_id)
        old_status = invoice.status
        if old_status == new_status:
            return invoice

        transition_invoice(invoice, new_status)
        await flush_changes(self.db, f"Invoice {old_status} -> {new_status}")

        await self.audit.log_status_change(ENTITY, invoice.id, old_status, new_status, user_id)
        logger.info(f"Invoice {invoice.invoice_number}: {old_status} -> {new_status}")
        return invoice

    async def update_currency(
        self,
        invoice_id: uuid.UUID,
        new_currency: str,
        rate: Decimal,
        user_id: Optional[uuid.UUID] = None,
    ) -> Invoice:
        """Change invoice currency and rate; recompute all base mirrors including items."""
        invoice = await self.get_invoice(invoice_id)
        old = {"currency": invoice.currency, "exchange_rate": str(invoice.exchange_rate)}
        await self.currency.update_document_currency(invoice, new_currency, rate)

        await self.audit.log_event(
            ENTITY, invoice.id, "CURRENCY_CHANGED", user_id,
            old, {"currency": invoice.currency, "exchange_rate": str(invoice.exchange_rate)},
        )
        return invoice

    async def list_for_sales_order(self, sales_order_id: uuid.UUID) -> List[Invoice]:
        result = await self.db.execute(
            select(Invoice)
            .where(Invoice.sales_order_id == sales_order_id)
            .order_by(Invoice.created_at)
        )
        return list(result.scalars().all())
