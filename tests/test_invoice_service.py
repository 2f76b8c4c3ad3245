"""
Invoice generation from deliveries, proforma shells and payment tracking.
"""

import uuid
from decimal import Decimal

import pytest

from docflow.core.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from docflow.models.delivery import Delivery, DeliveryItem
from docflow.services.document_sequence_service import generate_number
from docflow.services.invoice_service import InvoiceService, billed_quantity
from docflow.services.sales_order_service import SalesOrderService


def assert_outstanding_invariant(invoice):
    expected = max(Decimal("0"), invoice.total_amount - invoice.paid_amount)
    assert invoice.outstanding_amount == expected
    assert (invoice.status == "Paid") == (invoice.outstanding_amount == 0)


class TestBilledQuantity:

    def test_bills_delivered_quantity_only(self):
        assert billed_quantity(DeliveryItem(delivered_quantity=3, picked_quantity=5, ordered_quantity=7)) == 3
        assert billed_quantity(DeliveryItem(delivered_quantity=0, picked_quantity=5, ordered_quantity=7)) == 0
        assert billed_quantity(DeliveryItem(delivered_quantity=None, picked_quantity=5, ordered_quantity=7)) == 0


class TestGenerateFromDelivery:

    async def test_prices_lines_from_sales_order(self, db, docs, seed):
        order = await docs.sales_order([docs.line(0, 10, "10.00"), docs.line(2, 4, "2.50")])
        delivery = await docs.delivery(order, quantities=[6, 4])

        invoice = await InvoiceService(db).generate_from_delivery(delivery.id, user_id=seed.user_id)

        assert invoice.invoice_number.startswith("INV-")
        assert invoice.invoice_type == "Final"
        assert invoice.status == "Draft"
        assert invoice.auto_generated is True
        assert invoice.sales_order_id == order.id
        assert invoice.delivery_id == delivery.id
        assert invoice.customer_id == seed.customer_id
        assert [(i.quantity, i.unit_price, i.total_price) for i in invoice.items] == [
            (6, Decimal("10.00"), Decimal("60.00")),
            (4, Decimal("2.50"), Decimal("10.00")),
        ]
        assert invoice.total_amount == Decimal("70.00")
        assert invoice.outstanding_amount == invoice.total_amount
        assert invoice.paid_amount == Decimal("0")

    async def test_undelivered_lines_are_not_billed(self, db, docs):
        order = await docs.sales_order([docs.line(0, 10, "10.00"), docs.line(2, 4, "2.50")])
        delivery = await docs.delivery(order, quantities=[6, 0])

        invoice = await InvoiceService(db).generate_from_delivery(delivery.id)

        assert [(i.sales_order_item_id, i.quantity) for i in invoice.items] == [(order.items[0].id, 6)]
        assert invoice.total_amount == Decimal("60.00")

    async def test_carries_sales_order_currency(self, db, docs):
        order = await docs.sales_order()
        await SalesOrderService(db).update_currency(order.id, "USD", Decimal("0.376"))
        delivery = await docs.delivery(order)

        invoice = await InvoiceService(db).generate_from_delivery(delivery.id)

        assert (invoice.currency, invoice.exchange_rate, invoice.base_currency) == ("USD", Decimal("0.376"), "BHD")
        assert invoice.total_amount_base == Decimal("37.60")
        assert invoice.items[0].total_price_base == Decimal("37.60")

    async def test_unlinked_line_uses_its_own_price(self, db, docs):
        order = await docs.sales_order()
        delivery = Delivery(
            delivery_number=generate_number("DN"),
            sales_order_id=order.id,
            items=[
                DeliveryItem(item_id=order.items[0].item_id, description="Loose stock",
                             ordered_quantity=2, delivered_quantity=2, unit_price=Decimal("4.00")),
            ],
        )
        db.add(delivery)
        await db.flush()

        invoice = await InvoiceService(db).generate_from_delivery(delivery.id)

        assert invoice.items[0].sales_order_item_id is None
        assert invoice.total_amount == Decimal("8.00")

    async def test_unpriced_line_fails_without_partial_invoice(self, db, docs):
        order = await docs.sales_order()
        delivery = Delivery(
            delivery_number=generate_number("DN"),
            sales_order_id=order.id,
            items=[DeliveryItem(item_id=order.items[0].item_id, ordered_quantity=1, delivered_quantity=1)],
        )
        db.add(delivery)
        await db.flush()
        service = InvoiceService(db)

        with pytest.raises(ValidationError):
            await service.generate_from_delivery(delivery.id)

        assert await service.list_for_sales_order(order.id) == []

    async def test_delivery_without_lines(self, db, docs):
        order = await docs.sales_order()
        delivery = Delivery(delivery_number=generate_number("DN"), sales_order_id=order.id, items=[])
        db.add(delivery)
        await db.flush()

        with pytest.raises(ValidationError) as exc_info:
            await InvoiceService(db).generate_from_delivery(delivery.id)
        assert exc_info.value.fields == ["delivery_id"]

    async def test_unknown_delivery_and_type(self, db, docs):
        service = InvoiceService(db)
        with pytest.raises(NotFoundError):
            await service.generate_from_delivery(uuid.uuid4())
        with pytest.raises(ValidationError):
            await service.generate_from_delivery(uuid.uuid4(), invoice_type="Recurring")


class TestProforma:

    async def test_empty_shell(self, db, docs, seed):
        order = await docs.sales_order()

        invoice = await InvoiceService(db).generate_proforma(order.id)

        assert invoice.invoice_number.startswith("PFINV-")
        assert invoice.invoice_type == "Proforma"
        assert invoice.customer_id == seed.customer_id
        assert invoice.items == []
        assert (invoice.total_amount, invoice.outstanding_amount) == (Decimal("0"), Decimal("0"))

    async def test_unknown_order(self, db, seed):
        with pytest.raises(NotFoundError):
            await InvoiceService(db).generate_proforma(uuid.uuid4())


class TestPayments:

    async def _invoice(self, db, docs):
        order = await docs.sales_order()
        delivery = await docs.delivery(order)
        return await InvoiceService(db).generate_from_delivery(delivery.id)

    async def test_partial_then_full_payment(self, db, docs):
        invoice = await self._invoice(db, docs)
        service = InvoiceService(db)

        await service.mark_paid(invoice.id, Decimal("30.00"), payment_method="Bank Transfer", reference="TT-1")
        assert_outstanding_invariant(invoice)
        assert invoice.status == "Draft"
        assert invoice.outstanding_amount == Decimal("70.00")

        await service.mark_paid(invoice.id, Decimal("70.00"), reference="TT-2")
        assert_outstanding_invariant(invoice)
        assert invoice.status == "Paid"
        assert invoice.outstanding_amount == Decimal("0.00")
        assert invoice.payment_method == "Bank Transfer"
        assert invoice.payment_reference == "TT-2"

    async def test_paid_invoice_rejects_more_payments(self, db, docs):
        invoice = await self._invoice(db, docs)
        service = InvoiceService(db)
        await service.mark_paid(invoice.id, invoice.total_amount)

        with pytest.raises(InvalidTransitionError):
            await service.mark_paid(invoice.id, Decimal("1.00"))
        assert invoice.paid_amount == Decimal("100.00")

    async def test_send_overdue_then_pay(self, db, docs):
        invoice = await self._invoice(db, docs)
        service = InvoiceService(db)

        await service.send_invoice(invoice.id)
        assert invoice.sent_at is not None
        await service.mark_overdue(invoice.id)
        paid = await service.mark_paid(invoice.id, Decimal("100.00"))

        assert paid.status == "Paid"

    async def test_cancel(self, db, docs):
        invoice = await self._invoice(db, docs)
        service = InvoiceService(db)

        cancelled = await service.cancel_invoice(invoice.id, reason="Raised in error")

        assert cancelled.status == "Cancelled"
        assert "Cancellation Reason: Raised in error" in cancelled.notes
        with pytest.raises(InvalidTransitionError):
            await service.mark_paid(invoice.id, Decimal("10.00"))

    async def test_update_currency_round_trip(self, db, docs):
        invoice = await self._invoice(db, docs)
        service = InvoiceService(db)
        original_base = (invoice.total_amount_base, invoice.items[0].total_price_base)

        await service.update_currency(invoice.id, "USD", Decimal("2.5"))
        assert invoice.total_amount_base == Decimal("250.00")

        await service.update_currency(invoice.id, "BHD", Decimal("1") / Decimal("2.5"))
        assert (invoice.total_amount_base, invoice.items[0].total_price_base) == original_base
