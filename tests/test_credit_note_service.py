"""
Credit notes: creation against an invoice, issue, application and cancel.
"""

from decimal import Decimal

import pytest

from docflow.core.exceptions import InvalidTransitionError, ValidationError
from docflow.services.credit_note_service import CreditNoteService
from docflow.services.invoice_service import InvoiceService


@pytest.fixture
async def invoice(db, docs):
    """Final invoice for 100.00, nothing paid."""
    order = await docs.sales_order()
    delivery = await docs.delivery(order)
    return await InvoiceService(db).generate_from_delivery(delivery.id)


class TestCreateCreditNote:

    async def test_draft_note_in_invoice_currency(self, db, invoice, seed):
        note = await CreditNoteService(db).create_credit_note(
            invoice.id, Decimal("25.00"), "Damaged goods", user_id=seed.user_id
        )

        assert note.credit_note_number.startswith("CN-")
        assert note.status == "Draft"
        assert note.original_invoice_id == invoice.id
        assert note.customer_id == invoice.customer_id
        assert note.currency == invoice.currency
        assert note.remaining_amount == Decimal("25.00")
        assert note.created_by == seed.user_id

    @pytest.mark.parametrize("amount", ["0", "-1.00", "100.01"])
    async def test_amount_bounds(self, db, invoice, amount):
        with pytest.raises(ValidationError) as exc_info:
            await CreditNoteService(db).create_credit_note(invoice.id, Decimal(amount), "Adjustment")
        assert exc_info.value.fields == ["amount"]

    async def test_reason_required(self, db, invoice):
        with pytest.raises(ValidationError) as exc_info:
            await CreditNoteService(db).create_credit_note(invoice.id, Decimal("5.00"), "  ")
        assert exc_info.value.fields == ["reason"]

    async def test_cancelled_invoice_rejected(self, db, invoice):
        await InvoiceService(db).cancel_invoice(invoice.id)
        with pytest.raises(InvalidTransitionError):
            await CreditNoteService(db).create_credit_note(invoice.id, Decimal("5.00"), "Late delivery")


class TestApplyCreditNote:

    async def test_must_be_issued(self, db, invoice):
        service = CreditNoteService(db)
        note = await service.create_credit_note(invoice.id, Decimal("20.00"), "Short shipment")

        with pytest.raises(InvalidTransitionError):
            await service.apply(note.id)

    async def test_full_application(self, db, invoice):
        service = CreditNoteService(db)
        note = await service.create_credit_note(invoice.id, Decimal("20.00"), "Short shipment")
        await service.issue(note.id)

        applied = await service.apply(note.id)

        assert applied.status == "Applied"
        assert applied.applied_amount == Decimal("20.00")
        assert invoice.credited_amount == Decimal("20.00")
        assert invoice.outstanding_amount == Decimal("80.00")
        assert invoice.status == "Draft"

    async def test_partial_application_stays_issued(self, db, invoice):
        service = CreditNoteService(db)
        note = await service.create_credit_note(invoice.id, Decimal("20.00"), "Short shipment")
        await service.issue(note.id)

        await service.apply(note.id, Decimal("5.00"))

        assert note.status == "Issued"
        assert note.remaining_amount == Decimal("15.00")

        with pytest.raises(ValidationError):
            await service.apply(note.id, Decimal("15.01"))

    async def test_capped_by_invoice_outstanding(self, db, invoice):
        await InvoiceService(db).mark_paid(invoice.id, Decimal("90.00"))
        service = CreditNoteService(db)
        note = await service.create_credit_note(invoice.id, Decimal("30.00"), "Price adjustment")
        await service.issue(note.id)

        applied = await service.apply(note.id)

        # Only the 10.00 still outstanding can be credited
        assert applied.applied_amount == Decimal("10.00")
        assert applied.status == "Issued"
        assert invoice.outstanding_amount == Decimal("0")
        assert invoice.status == "Paid"

        with pytest.raises(ValidationError):
            await service.apply(note.id)

    async def test_credit_then_payment_settles_invoice(self, db, invoice):
        service = CreditNoteService(db)
        invoice_service = InvoiceService(db)
        await invoice_service.send_invoice(invoice.id)
        note = await service.create_credit_note(invoice.id, Decimal("30.00"), "Returned goods")
        await service.issue(note.id)
        await service.apply(note.id)

        paid = await invoice_service.mark_paid(invoice.id, Decimal("70.00"))

        assert paid.status == "Paid"
        assert paid.outstanding_amount == Decimal("0.00")
        assert (paid.paid_amount, paid.credited_amount) == (Decimal("100.00"), Decimal("30.00"))
        with pytest.raises(InvalidTransitionError):
            await invoice_service.mark_overdue(invoice.id)
        with pytest.raises(InvalidTransitionError):
            await invoice_service.mark_paid(invoice.id, Decimal("1.00"))

    async def test_payment_capped_at_balance_after_credit(self, db, invoice):
        service = CreditNoteService(db)
        note = await service.create_credit_note(invoice.id, Decimal("30.00"), "Returned goods")
        await service.issue(note.id)
        await service.apply(note.id)

        with pytest.raises(ValidationError):
            await InvoiceService(db).mark_paid(invoice.id, Decimal("100.00"))
        assert invoice.outstanding_amount == Decimal("70.00")

    async def test_credit_covering_balance_marks_invoice_paid(self, db, invoice):
        await InvoiceService(db).mark_paid(invoice.id, Decimal("75.00"))
        service = CreditNoteService(db)
        note = await service.create_credit_note(invoice.id, Decimal("25.00"), "Loyalty discount")
        await service.issue(note.id)

        applied = await service.apply(note.id)

        assert applied.status == "Applied"
        assert invoice.status == "Paid"
        assert invoice.outstanding_amount == Decimal("0.00")

    async def test_cancel_before_application_only(self, db, invoice):
        service = CreditNoteService(db)
        unused = await service.create_credit_note(invoice.id, Decimal("5.00"), "Goodwill")
        used = await service.create_credit_note(invoice.id, Decimal("5.00"), "Goodwill")
        await service.issue(used.id)
        await service.apply(used.id, Decimal("2.00"))

        cancelled = await service.cancel(unused.id)
        assert cancelled.status == "Cancelled"

        with pytest.raises(InvalidTransitionError):
            await service.cancel(used.id)

        notes = await service.list_for_invoice(invoice.id)
        assert {n.id for n in notes} == {unused.id, used.id}
