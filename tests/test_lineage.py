"""
Amendment lineage tests.

Covers:
- Number helpers (suffix stripping, amendment numbers, free-slot search)
- Error translation for amendment writes
- Sequence allocation with gaps and hand-numbered siblings
- Root resolution and lineage ordering
"""

from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from docflow.core.exceptions import ConflictError, NotFoundError, PersistenceError, ValidationError
from docflow.models.sales_order import SalesOrder, SalesOrderItem
from docflow.models.supplier_lpo import SupplierLpo
from docflow.services.lineage_service import (
    LineageService,
    amendment_number,
    next_free_sequence,
    strip_amendment_suffix,
    translate_amendment_error,
)
from docflow.services.sales_order_service import SalesOrderService


class TestNumberHelpers:
    """Pure helpers used by the allocator."""

    def test_strip_amendment_suffix(self):
        assert strip_amendment_suffix("SO-2026-001-A2") == "SO-2026-001"
        assert strip_amendment_suffix("SO-2026-001") == "SO-2026-001"
        # Only a trailing -A<n> counts as a suffix
        assert strip_amendment_suffix("SO-A1-2026") == "SO-A1-2026"

    def test_amendment_number_uses_stripped_root(self):
        assert amendment_number("SO-2026-007", 3) == "SO-2026-007-A3"
        assert amendment_number("SO-2026-007-A1", 2) == "SO-2026-007-A2"

    @pytest.mark.parametrize(
        "used, expected",
        [
            (set(), 1),
            ({1, 2}, 3),
            ({1, 3}, 2),
            ({2, 3, 4}, 1),
        ],
    )
    def test_next_free_sequence_takes_smallest_gap(self, used, expected):
        assert next_free_sequence(used) == expected


class TestTranslateAmendmentError:
    """Database failures during amendment map to caller-facing errors."""

    def test_lock_timeout_is_retryable_conflict(self):
        exc = OperationalError("SELECT ...", {}, Exception("database is locked"))
        error = translate_amendment_error(exc)
        assert isinstance(error, ConflictError)
        assert error.retryable is True

    def test_sequence_collision_is_retryable_conflict(self):
        exc = IntegrityError(
            "INSERT ...", {},
            Exception("UNIQUE constraint failed: sales_orders.parent_order_id, sales_orders.amendment_sequence"),
        )
        error = translate_amendment_error(exc)
        assert isinstance(error, ConflictError)
        assert error.retryable is True

    def test_other_integrity_error_is_persistence_error(self):
        exc = IntegrityError("INSERT ...", {}, Exception("FOREIGN KEY constraint failed"))
        error = translate_amendment_error(exc)
        assert isinstance(error, PersistenceError)
        assert error.retryable is False


async def _add_sibling(db, root: SalesOrder, number: str, sequence=None) -> SalesOrder:
    """Insert an amendment row directly, bypassing the allocator."""
    sibling = SalesOrder(
        order_number=number,
        customer_id=root.customer_id,
        parent_order_id=root.id,
        amendment_sequence=sequence,
        version=(sequence or 0) + 1,
        currency=root.currency,
        base_currency=root.base_currency,
        subtotal=root.subtotal,
        total_amount=root.total_amount,
        items=[
            SalesOrderItem(
                item_id=item.item_id,
                line_number=item.line_number,
                quantity=item.quantity,
                unit_price=item.unit_price,
                total_price=item.total_price,
            )
            for item in root.items
        ],
    )
    db.add(sibling)
    await db.flush()
    return sibling


class TestAllocateAmendmentSequence:
    """Locked allocation of the next free amendment integer."""

    async def test_first_amendment_gets_one(self, db, docs):
        order = await docs.sales_order()

        root, sequence = await LineageService(db).allocate_amendment_sequence(SalesOrder, order.id)

        assert root.id == order.id
        assert sequence == 1

    async def test_fills_lowest_gap(self, db, docs):
        order = await docs.sales_order()
        await _add_sibling(db, order, f"{order.order_number}-A1", 1)
        await _add_sibling(db, order, f"{order.order_number}-A3", 3)

        _, sequence = await LineageService(db).allocate_amendment_sequence(SalesOrder, order.id)

        assert sequence == 2

    async def test_suffix_of_unsequenced_sibling_counts_as_used(self, db, docs):
        """A sibling numbered -A1 without a stored sequence still occupies 1."""
        order = await docs.sales_order()
        await _add_sibling(db, order, f"{order.order_number}-A1", None)

        _, sequence = await LineageService(db).allocate_amendment_sequence(SalesOrder, order.id)

        assert sequence == 2

    async def test_allocating_from_an_amendment_resolves_root(self, db, docs):
        order = await docs.sales_order()
        amendment = await SalesOrderService(db).create_amendment(order.id, "Customer changed quantity")

        root, sequence = await LineageService(db).allocate_amendment_sequence(SalesOrder, amendment.id)

        assert root.id == order.id
        assert sequence == 2

    async def test_unknown_document_is_not_found(self, db, seed):
        import uuid

        with pytest.raises(NotFoundError):
            await LineageService(db).allocate_amendment_sequence(SalesOrder, uuid.uuid4())

    async def test_unsupported_model_is_rejected(self, db, seed):
        import uuid

        from docflow.models.billing import Invoice

        with pytest.raises(ValueError):
            await LineageService(db).allocate_amendment_sequence(Invoice, uuid.uuid4())


class TestSalesOrderAmendment:
    """create_amendment: root attachment, numbering, content copy."""

    async def test_amendment_attaches_to_root_and_copies_content(self, db, docs, seed):
        order = await docs.sales_order([docs.line(0, 4, "25.00"), docs.line(2, 1, "12.50")])
        service = SalesOrderService(db)

        first = await service.create_amendment(order.id, "Price correction", user_id=seed.user_id)
        second = await service.create_amendment(first.id, "Delivery date moved")

        assert first.parent_order_id == order.id
        assert second.parent_order_id == order.id  # never chained
        assert first.order_number == f"{order.order_number}-A1"
        assert second.order_number == f"{order.order_number}-A2"
        assert (first.amendment_sequence, first.version) == (1, 2)
        assert (second.amendment_sequence, second.version) == (2, 3)

        assert second.total_amount == order.total_amount == Decimal("112.50")
        assert [(i.item_id, i.quantity) for i in second.items] == [(i.item_id, i.quantity) for i in order.items]
        assert "Amendment Reason: Delivery date moved" in second.notes
        assert second.status == "Draft"
        assert first.created_by == seed.user_id

    async def test_amendment_resets_customer_lpo_validation(self, db, docs):
        order = await docs.sales_order()
        service = SalesOrderService(db)
        await service.validate_customer_lpo(order.id, "Approved", None)

        amendment = await service.create_amendment(order.id, "Quantity increased")

        assert order.customer_lpo_validation_status == "Approved"
        assert amendment.customer_lpo_validation_status == "Pending"

    @pytest.mark.parametrize("reason", [None, "", "   ", "abc", "  ab  "])
    async def test_short_reason_is_rejected(self, db, docs, reason):
        order = await docs.sales_order()

        with pytest.raises(ValidationError) as exc_info:
            await SalesOrderService(db).create_amendment(order.id, reason)

        assert exc_info.value.fields == ["reason"]

    async def test_missing_parent_is_not_found(self, db, seed):
        import uuid

        with pytest.raises(NotFoundError):
            await SalesOrderService(db).create_amendment(uuid.uuid4(), "Valid reason here")


class TestGetLineage:
    """Root first, then amendments by ascending sequence."""

    async def test_lineage_order_from_any_member(self, db, docs):
        order = await docs.sales_order()
        await _add_sibling(db, order, f"{order.order_number}-A2", 2)
        await _add_sibling(db, order, f"{order.order_number}-A1", 1)
        service = SalesOrderService(db)
        third = await service.create_amendment(order.id, "Third change")

        from_root = await service.get_lineage(order.id)
        from_amendment = await service.get_lineage(third.id)

        numbers = [o.order_number for o in from_root]
        assert numbers == [
            order.order_number,
            f"{order.order_number}-A1",
            f"{order.order_number}-A2",
            f"{order.order_number}-A3",
        ]
        assert [o.id for o in from_amendment] == [o.id for o in from_root]

    async def test_lpo_lineage_uses_lpo_columns(self, db, docs):
        from docflow.services.supplier_lpo_service import SupplierLpoService

        order = await docs.sales_order()
        service = SupplierLpoService(db)
        [lpo] = await service.create_from_sales_orders([order.id])
        amendment = await service.create_amendment(lpo.id, "Supplier price increase", "Price")

        lineage = await LineageService(db).get_lineage(SupplierLpo, amendment.id)

        assert [row.id for row in lineage] == [lpo.id, amendment.id]
