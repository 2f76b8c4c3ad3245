"""
Quotation Service.

Creation, revision, status changes and approval of customer quotations.

Revisions are new rows attached to the lineage root (parent_quotation_id)
with revision = highest revision + 1. The row being replaced is flagged
is_superseded and frozen.
"""
import uuid
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, List, Dict, Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from docflow.config import settings
from docflow.core.exceptions import NotFoundError, ValidationError, InvalidTransitionError
from docflow.database import flush_changes
from docflow.models.master_data import Customer
from docflow.models.quotation import (
    Quotation,
    QuotationItem,
    QuotationApproval,
    QuotationApprovalStatus,
)
from docflow.services.audit_service import AuditService
from docflow.services.currency_service import money
from docflow.services.document_sequence_service import generate_number
from docflow.services import quotation_state_machine as qsm


logger = logging.getLogger(__name__)


ENTITY = "QUOTATION"

# Header fields a revision may override
REVISABLE_FIELDS = ("valid_until", "terms", "notes", "discount_amount", "tax_amount", "currency")


def build_quotation_items(items: List[Dict[str, Any]]) -> List[QuotationItem]:
    """Validate item dicts and price each line."""
    if not items:
        raise ValidationError("A quotation needs at least one item", fields=["items"])

    built = []
    for index, data in enumerate(items, start=1):
        quantity = int(data.get("quantity") or 0)
        unit_price = money(data.get("unit_price"))
        if quantity <= 0:
            raise ValidationError(f"Item {index}: quantity must be positive", fields=[f"items[{index - 1}].quantity"])
        if unit_price < 0:
            raise ValidationError(f"Item {index}: unit price cannot be negative", fields=[f"items[{index - 1}].unit_price"])
        if not (data.get("description") or "").strip():
            raise ValidationError(f"Item {index}: description is required", fields=[f"items[{index - 1}].description"])

        built.append(QuotationItem(
            item_id=data.get("item_id"),
            line_number=index,
            description=data["description"].strip(),
            quantity=quantity,
            unit_price=unit_price,
            line_total=money(unit_price * quantity),
            notes=data.get("notes"),
        ))
    return built


def apply_totals(quotation: Quotation) -> None:
    """subtotal = sum(line_total); total = subtotal - discount + tax"""
    subtotal = sum((item.line_total for item in quotation.items), Decimal("0"))
    quotation.subtotal = money(subtotal)
    quotation.total_amount = money(
        quotation.subtotal - money(quotation.discount_amount) + money(quotation.tax_amount)
    )


class QuotationService:
    """Service for the quotation lifecycle."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)

    async def get_quotation(self, quotation_id: uuid.UUID, lock: bool = False) -> Quotation:
        stmt = select(Quotation).where(Quotation.id == quotation_id)
        if lock:
            stmt = stmt.with_for_update()
        quotation = await self.db.scalar(stmt)
        if quotation is None:
            raise NotFoundError("Quotation", quotation_id)
        return quotation

    async def create_quotation(
        self,
        customer_id: uuid.UUID,
        items: List[Dict[str, Any]],
        currency: Optional[str] = None,
        discount_amount: Decimal = Decimal("0"),
        tax_amount: Decimal = Decimal("0"),
        valid_until: Optional[datetime] = None,
        terms: Optional[str] = None,
        notes: Optional[str] = None,
        user_id: Optional[uuid.UUID] = None,
    ) -> Quotation:
        """Create a Draft quotation with priced items."""
        customer = await self.db.scalar(select(Customer.id).where(Customer.id == customer_id))
        if customer is None:
            raise NotFoundError("Customer", customer_id)

        quotation = Quotation(
            quote_number=generate_number("QT"),
            customer_id=customer_id,
            currency=currency or settings.DEFAULT_CURRENCY,
            discount_amount=money(discount_amount),
            tax_amount=money(tax_amount),
            valid_until=valid_until,
            terms=terms,
            notes=notes,
            created_by=await self.audit.resolve_actor(user_id),
            items=build_quotation_items(items),
        )
        apply_totals(quotation)
        self.db.add(quotation)
        await flush_changes(self.db, "Create quotation")

        await self.audit.log_event(
            ENTITY, quotation.id, "CREATED", user_id,
            None, {"quote_number": quotation.quote_number, "total_amount": str(quotation.total_amount)},
        )
        logger.info(f"Created quotation {quotation.quote_number} total {quotation.total_amount}")
        return quotation

    async def create_revision(
        self,
        quotation_id: uuid.UUID,
        reason: str,
        changes: Optional[Dict[str, Any]] = None,
        items: Optional[List[Dict[str, Any]]] = None,
        user_id: Optional[uuid.UUID] = None,
    ) -> Quotation:
        """
        Revise a quotation.

        The new row copies the current one (items included unless new items
        are given), starts in Draft, and the current row is superseded.
        """
        if not (reason and reason.strip()):
            raise ValidationError("Revision reason is required", fields=["reason"])

        current = await self.get_quotation(quotation_id)
        if not qsm.can_revise(current):
            raise InvalidTransitionError("Superseded quotation", current.status, "Revised", [])

        root_id = current.root_id
        root = await self.get_quotation(root_id, lock=True)

        result = await self.db.execute(
            select(Quotation).where(
                (Quotation.id == root_id) | (Quotation.parent_quotation_id == root_id)
            ).with_for_update()
        )
        lineage = list(result.scalars().all())
        next_revision = max(q.revision for q in lineage) + 1

        changes = {k: v for k, v in (changes or {}).items() if k in REVISABLE_FIELDS}
        if items is not None:
            new_items = build_quotation_items(items)
        else:
            new_items = [
                QuotationItem(
                    item_id=item.item_id,
                    line_number=item.line_number,
                    description=item.description,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    line_total=item.line_total,
                    notes=item.notes,
                )
                for item in current.items
            ]

        actor = await self.audit.resolve_actor(user_id)
        revision = Quotation(
            quote_number=f"{root.quote_number}-R{next_revision}",
            revision=next_revision,
            parent_quotation_id=root_id,
            revision_reason=reason.strip(),
            customer_id=current.customer_id,
            currency=changes.get("currency", current.currency),
            discount_amount=money(changes.get("discount_amount", current.discount_amount)),
            tax_amount=money(changes.get("tax_amount", current.tax_amount)),
            valid_until=changes.get("valid_until", current.valid_until),
            terms=changes.get("terms", current.terms),
            notes=changes.get("notes", current.notes),
            created_by=actor,
            items=new_items,
        )
        apply_totals(revision)

        for row in lineage:
            if not row.is_superseded:
                row.is_superseded = True
                row.superseded_at = datetime.now(timezone.utc)
                row.superseded_by = actor

        self.db.add(revision)
        await flush_changes(self.db, "Revise quotation")

        await self.audit.log_event(
            ENTITY, revision.id, "REVISED", user_id,
            {"quote_number": current.quote_number, "revision": current.revision},
            {"quote_number": revision.quote_number, "revision": revision.revision, "reason": revision.revision_reason},
        )
        logger.info(f"Quotation {current.quote_number} revised as {revision.quote_number}")
        return revision

    async def get_revisions(self, quotation_id: uuid.UUID) -> List[Quotation]:
        """Root first, then revisions by ascending revision number."""
        quotation = await self.get_quotation(quotation_id)
        root_id = quotation.root_id
        result = await self.db.execute(
            select(Quotation).where(
                (Quotation.id == root_id) | (Quotation.parent_quotation_id == root_id)
            )
        )
        return sorted(result.scalars().all(), key=lambda q: (q.parent_quotation_id is not None, q.revision))

    async def update_status(
        self,
        quotation_id: uuid.UUID,
        status: str,
        user_id: Optional[uuid.UUID] = None,
    ) -> Quotation:
        quotation = await self.get_quotation(quotation_id)
        old_status = quotation.status
        qsm.transition_quotation(quotation, status)
        await flush_changes(self.db, "Update quotation status")

        if old_status != status:
            await self.audit.log_status_change(ENTITY, quotation.id, old_status, status, user_id)
            logger.info(f"Quotation {quotation.quote_number}: {old_status} -> {status}")
        return quotation

    async def approve(
        self,
        quotation_id: uuid.UUID,
        user_id: Optional[uuid.UUID] = None,
        comments: Optional[str] = None,
    ) -> Quotation:
        """Approve: approval_status Approved, status Accepted."""
        return await self._decide(quotation_id, QuotationApprovalStatus.APPROVED.value, user_id, comments)

    async def reject(
        self,
        quotation_id: uuid.UUID,
        reason: str,
        user_id: Optional[uuid.UUID] = None,
    ) -> Quotation:
        """Reject: approval_status Rejected, status Rejected. Reason required."""
        return await self._decide(quotation_id, QuotationApprovalStatus.REJECTED.value, user_id, reason)

    async def _decide(
        self,
        quotation_id: uuid.UUID,
        decision: str,
        user_id: Optional[uuid.UUID],
        comments: Optional[str],
    ) -> Quotation:
        quotation = await self.get_quotation(quotation_id)
        old_status = quotation.status
        actor = await self.audit.resolve_actor(user_id)

        qsm.apply_approval(quotation, decision, actor, comments)
        self.db.add(QuotationApproval(
            quotation_id=quotation.id,
            approver_id=actor,
            status=decision,
            comments=comments,
        ))
        await flush_changes(self.db, f"{decision} quotation")

        await self.audit.log_event(
            ENTITY, quotation.id, decision.upper(), user_id,
            {"status": old_status}, {"status": quotation.status, "comments": comments},
        )
        logger.info(f"Quotation {quotation.quote_number} {decision.lower()} by {actor}")
        return quotation

    async def get_approvals(self, quotation_id: uuid.UUID) -> List[QuotationApproval]:
        await self.get_quotation(quotation_id)
        result = await self.db.execute(
            select(QuotationApproval)
            .where(QuotationApproval.quotation_id == quotation_id)
            .order_by(QuotationApproval.created_at)
        )
        return list(result.scalars().all())
