"""
Quotation lifecycle: creation, revisions, status changes and approvals.
"""

import uuid
from decimal import Decimal

import pytest
from sqlalchemy import select

from docflow.core.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from docflow.models.audit_log import AuditLog
from docflow.services.quotation_service import QuotationService


class TestCreateQuotation:

    async def test_totals_from_items(self, db, docs):
        quotation = await docs.quotation(
            [docs.line(0, 3, "12.50"), docs.line(1, 2, "7.25")],
            discount_amount=Decimal("5.00"),
            tax_amount=Decimal("2.10"),
        )

        assert quotation.status == "Draft"
        assert quotation.quote_number.startswith("QT-")
        assert [item.line_total for item in quotation.items] == [Decimal("37.50"), Decimal("14.50")]
        assert quotation.subtotal == Decimal("52.00")
        assert quotation.total_amount == Decimal("49.10")

    async def test_default_quotation_totals_100(self, docs):
        quotation = await docs.quotation()
        assert quotation.total_amount == Decimal("100.00")
        assert quotation.currency == "BHD"

    async def test_requires_items(self, db, seed):
        with pytest.raises(ValidationError) as exc_info:
            await QuotationService(db).create_quotation(seed.customer_id, [])
        assert exc_info.value.fields == ["items"]

    async def test_rejects_non_positive_quantity(self, docs):
        with pytest.raises(ValidationError) as exc_info:
            await docs.quotation([docs.line(0, 0, "10.00")])
        assert exc_info.value.fields == ["items[0].quantity"]

    async def test_unknown_customer(self, db, seed, docs):
        with pytest.raises(NotFoundError):
            await QuotationService(db).create_quotation(uuid.uuid4(), [docs.line(0, 1, "1.00")])

    async def test_creation_is_audited(self, db, docs, seed):
        quotation = await docs.quotation()

        entry = await db.scalar(
            select(AuditLog).where(AuditLog.entity_id == quotation.id, AuditLog.action == "CREATED")
        )
        assert entry is not None
        assert entry.entity_type == "QUOTATION"
        assert entry.user_id == seed.user_id


class TestRevisions:

    async def test_revision_supersedes_current_row(self, db, docs, seed):
        original = await docs.quotation()
        service = QuotationService(db)

        revision = await service.create_revision(
            original.id, "Customer asked for a discount",
            changes={"discount_amount": Decimal("10.00"), "status": "Accepted"},
            user_id=seed.user_id,
        )

        assert revision.parent_quotation_id == original.id
        assert revision.revision == 2
        assert revision.quote_number == f"{original.quote_number}-R2"
        assert revision.status == "Draft"  # status is not a revisable field
        assert revision.total_amount == Decimal("90.00")
        assert original.is_superseded is True
        assert original.superseded_by == seed.user_id

    async def test_revisions_attach_to_root(self, db, docs):
        original = await docs.quotation()
        service = QuotationService(db)

        second = await service.create_revision(original.id, "First change")
        third = await service.create_revision(second.id, "Second change", items=[docs.line(2, 4, "5.00")])

        assert third.parent_quotation_id == original.id
        assert third.revision == 3
        assert third.total_amount == Decimal("20.00")
        assert second.is_superseded is True

        revisions = await service.get_revisions(third.id)
        assert [q.revision for q in revisions] == [1, 2, 3]

    async def test_superseded_row_cannot_be_revised(self, db, docs):
        original = await docs.quotation()
        service = QuotationService(db)
        await service.create_revision(original.id, "Replace it")

        with pytest.raises(InvalidTransitionError):
            await service.create_revision(original.id, "Again from the old row")

    async def test_reason_required(self, db, docs):
        original = await docs.quotation()
        with pytest.raises(ValidationError):
            await QuotationService(db).create_revision(original.id, "  ")


class TestStatusAndApproval:

    async def test_update_status(self, db, docs):
        quotation = await docs.quotation()
        updated = await QuotationService(db).update_status(quotation.id, "Sent")
        assert updated.status == "Sent"

    async def test_invalid_status_change_leaves_row_untouched(self, db, docs):
        quotation = await docs.quotation()
        service = QuotationService(db)
        await service.update_status(quotation.id, "Expired")

        with pytest.raises(InvalidTransitionError):
            await service.update_status(quotation.id, "Sent")

        reloaded = await service.get_quotation(quotation.id)
        assert reloaded.status == "Expired"

    async def test_approve_records_approval_row(self, db, docs, seed):
        quotation = await docs.quotation()
        service = QuotationService(db)

        approved = await service.approve(quotation.id, user_id=seed.user_id, comments="Margin ok")

        assert approved.status == "Accepted"
        assert approved.approval_status == "Approved"
        assert approved.approved_by == seed.user_id

        approvals = await service.get_approvals(quotation.id)
        assert [(a.status, a.comments, a.approver_id) for a in approvals] == [
            ("Approved", "Margin ok", seed.user_id)
        ]

    async def test_reject_requires_reason(self, db, docs):
        quotation = await docs.quotation()
        service = QuotationService(db)

        with pytest.raises(ValidationError):
            await service.reject(quotation.id, "")

        rejected = await service.reject(quotation.id, "Customer went elsewhere")
        assert rejected.status == "Rejected"
        assert rejected.rejection_reason == "Customer went elsewhere"

    async def test_unknown_actor_is_recorded_as_none(self, db, docs, caplog):
        quotation = await docs.quotation()

        approved = await QuotationService(db).approve(quotation.id, user_id=uuid.uuid4())

        assert approved.approved_by is None
        assert "Unknown actor" in caplog.text
