"""
Sales order derivation, customer LPO validation and currency updates.
"""

import logging
from decimal import Decimal

import pytest

from docflow.config import settings
from docflow.core.exceptions import ConflictError, ValidationError
from docflow.models.document_sequence import DocumentSequence
from docflow.services.quotation_service import QuotationService
from docflow.services.sales_order_service import SalesOrderService, validate_lpo_status_change


class TestCreateFromQuotation:
    """Quotation -> sales order derivation."""

    async def test_copies_customer_items_and_total(self, db, docs, seed):
        quotation = await docs.accepted_quotation([docs.line(0, 10, "10.00")])

        order = await SalesOrderService(db).create_from_quotation(quotation.id, user_id=seed.user_id)

        year = DocumentSequence.get_period()
        assert order.order_number == f"SO-{year}-001"
        assert order.status == "Draft"
        assert order.customer_id == seed.customer_id
        assert order.quotation_id == quotation.id
        assert order.total_amount == Decimal("100.00")
        assert order.source_type == "Auto"
        assert len(order.items) == 1
        assert order.items[0].quotation_item_id == quotation.items[0].id
        assert order.parent_order_id is None
        assert order.version == 1

    async def test_item_sum_equals_total(self, db, docs):
        order = await docs.sales_order([
            docs.line(0, 3, "33.33"),
            docs.line(1, 7, "1.15"),
            docs.line(2, 1, "0.01"),
        ])

        item_sum = sum((item.total_price for item in order.items), Decimal("0"))
        assert item_sum == order.total_amount == Decimal("108.05")

    async def test_base_amounts_mirror_totals(self, docs):
        order = await docs.sales_order()
        assert order.base_currency == "BHD"
        assert order.exchange_rate == Decimal("1")
        assert order.total_amount_base == order.total_amount

    async def test_numbers_increment(self, db, docs):
        first = await docs.sales_order()
        second = await docs.sales_order()
        year = DocumentSequence.get_period()
        assert (first.order_number, second.order_number) == (f"SO-{year}-001", f"SO-{year}-002")

    async def test_quotation_must_be_accepted(self, db, docs):
        quotation = await docs.quotation()

        with pytest.raises(ConflictError) as exc_info:
            await SalesOrderService(db).create_from_quotation(quotation.id)

        assert "only Accepted quotations" in exc_info.value.message

    async def test_quotation_converted_only_once(self, db, docs):
        quotation = await docs.accepted_quotation()
        service = SalesOrderService(db)
        order = await service.create_from_quotation(quotation.id)

        with pytest.raises(ConflictError) as exc_info:
            await service.create_from_quotation(quotation.id)

        assert exc_info.value.detail["order_number"] == order.order_number

    async def test_missing_product_reference_is_validation_error(self, db, docs):
        line = docs.line(0, 1, "5.00")
        line["item_id"] = None
        quotation = await docs.accepted_quotation([line])

        with pytest.raises(ValidationError) as exc_info:
            await SalesOrderService(db).create_from_quotation(quotation.id)

        assert exc_info.value.fields == ["items[0].item_id"]

    async def test_fallback_substitutes_first_product(self, db, docs, seed, monkeypatch, caplog):
        monkeypatch.setattr(settings, "ALLOW_REFERENTIAL_FALLBACK", True)
        line = docs.line(0, 2, "5.00")
        line["item_id"] = None
        quotation = await docs.accepted_quotation([line])

        with caplog.at_level(logging.WARNING, logger="docflow.services.reference_resolver"):
            order = await SalesOrderService(db).create_from_quotation(quotation.id)

        assert order.items[0].item_id in seed.item_ids
        assert "substituted" in caplog.text


class TestCustomerLpoValidation:

    async def test_pending_to_approved(self, db, docs, seed):
        order = await docs.sales_order()

        updated = await SalesOrderService(db).validate_customer_lpo(
            order.id, "Approved", seed.user_id, notes="PO 4411 received"
        )

        assert updated.customer_lpo_validation_status == "Approved"
        assert updated.customer_lpo_validated_by == seed.user_id
        assert updated.customer_lpo_validated_at is not None
        assert updated.customer_lpo_validation_notes == "PO 4411 received"

    async def test_downgrade_requires_override(self, db, docs, seed):
        order = await docs.sales_order()
        service = SalesOrderService(db)
        await service.validate_customer_lpo(order.id, "Approved", seed.user_id)

        with pytest.raises(ConflictError) as exc_info:
            await service.validate_customer_lpo(order.id, "Rejected", seed.user_id)
        assert exc_info.value.retryable is False
        assert order.customer_lpo_validation_status == "Approved"

        updated = await service.validate_customer_lpo(order.id, "Rejected", seed.user_id, override=True)
        assert updated.customer_lpo_validation_status == "Rejected"

    async def test_reapproving_is_allowed(self, db, docs):
        order = await docs.sales_order()
        service = SalesOrderService(db)
        await service.validate_customer_lpo(order.id, "Approved", None)
        updated = await service.validate_customer_lpo(order.id, "Approved", None, notes="Checked again")
        assert updated.customer_lpo_validation_notes == "Checked again"

    def test_unknown_status(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_lpo_status_change("Pending", "Maybe", override=False)
        assert exc_info.value.fields == ["status"]


class TestSalesOrderCurrency:

    async def test_update_currency_recomputes_base(self, db, docs):
        order = await docs.sales_order([docs.line(0, 4, "25.00")])

        updated = await SalesOrderService(db).update_currency(order.id, "usd", Decimal("0.376"))

        assert updated.currency == "USD"
        assert updated.base_currency == "BHD"
        assert updated.total_amount == Decimal("100.00")
        assert updated.total_amount_base == Decimal("37.60")

    async def test_non_positive_rate_rejected(self, db, docs):
        order = await docs.sales_order()

        with pytest.raises(ValidationError) as exc_info:
            await SalesOrderService(db).update_currency(order.id, "USD", Decimal("0"))

        assert exc_info.value.fields == ["rate"]
        assert order.currency == "BHD"


class TestQuotationToOrderChain:

    async def test_revised_quotation_can_be_converted(self, db, docs):
        original = await docs.quotation()
        service = QuotationService(db)
        revision = await service.create_revision(original.id, "Adjusted quantities", items=[docs.line(1, 5, "4.00")])
        await service.approve(revision.id)

        order = await SalesOrderService(db).create_from_quotation(revision.id)

        assert order.total_amount == Decimal("20.00")
        assert order.quotation_id == revision.id
