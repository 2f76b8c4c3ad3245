"""Credit Note Service.

A credit note references exactly one invoice and settles part of it when
applied. Lifecycle: Draft -> Issued -> Applied, or Cancelled before any
amount is applied.

The amount applied never exceeds the credit note's remaining total nor the
invoice's outstanding amount. Applied credit counts towards the invoice's
paid_amount, so a credit that clears the balance marks the invoice Paid.
"""
import uuid
import logging
from decimal import Decimal
from typing import Optional, List, Dict

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from docflow.core.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from docflow.database import flush_changes
from docflow.models.billing import CreditNote, CreditNoteStatus, Invoice, InvoiceStatus
from docflow.services.audit_service import AuditService
from docflow.services.currency_service import money
from docflow.services.document_sequence_service import generate_number
from docflow.services.invoice_state_machine import apply_credit


logger = logging.getLogger(__name__)


ENTITY = "CREDIT_NOTE"

CREDIT_NOTE_TRANSITIONS: Dict[str, List[str]] = {
    CreditNoteStatus.DRAFT.value: [CreditNoteStatus.ISSUED.value, CreditNoteStatus.CANCELLED.value],
    CreditNoteStatus.ISSUED.value: [CreditNoteStatus.APPLIED.value, CreditNoteStatus.CANCELLED.value],
    CreditNoteStatus.APPLIED.value: [],
    CreditNoteStatus.CANCELLED.value: [],
}


def validate_credit_note_transition(credit_note: CreditNote, new_status: str) -> None:
    allowed = CREDIT_NOTE_TRANSITIONS.get(credit_note.status, [])
    if new_status not in allowed:
        raise InvalidTransitionError("Credit note", credit_note.status, new_status, allowed)


class CreditNoteService:
    """Service for credit note creation and application against invoices."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)

    async def get_credit_note(self, credit_note_id: uuid.UUID) -> CreditNote:
        credit_note = await self.db.scalar(select(CreditNote).where(CreditNote.id == credit_note_id))
        if credit_note is None:
            raise NotFoundError("Credit note", credit_note_id)
        return credit_note

    async def _get_invoice(self, invoice_id: uuid.UUID) -> Invoice:
        invoice = await self.db.scalar(select(Invoice).where(Invoice.id == invoice_id))
        if invoice is None:
            raise NotFoundError("Invoice", invoice_id)
        return invoice

    async def create_credit_note(
        self,
        invoice_id: uuid.UUID,
        amount: Decimal,
        reason: str,
        user_id: Optional[uuid.UUID] = None,
        notes: Optional[str] = None,
    ) -> CreditNote:
        """
        Create a Draft credit note against an invoice.

        Raises:
            NotFoundError: invoice missing
            ValidationError: amount not positive or above the invoice total,
                or no reason given
            InvalidTransitionError: invoice is Cancelled
        """
        invoice = await self._get_invoice(invoice_id)
        if invoice.status == InvoiceStatus.CANCELLED.value:
            raise InvalidTransitionError(
                "Invoice", invoice.status, invoice.status, [],
                reason="credit notes cannot be raised against a cancelled invoice",
            )

        amount = money(amount)
        if amount <= 0:
            raise ValidationError("Credit note amount must be greater than zero", fields=["amount"])
        if amount > money(invoice.total_amount):
            raise ValidationError(
                f"Credit note amount {amount} exceeds invoice total {invoice.total_amount}",
                fields=["amount"],
            )
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("Credit note reason is required", fields=["reason"])

        credit_note = CreditNote(
            credit_note_number=generate_number("CN"),
            original_invoice_id=invoice.id,
            customer_id=invoice.customer_id,
            reason=reason,
            status=CreditNoteStatus.DRAFT.value,
            currency=invoice.currency,
            exchange_rate=invoice.exchange_rate,
            total_amount=amount,
            applied_amount=Decimal("0"),
            notes=notes,
            created_by=await self.audit.resolve_actor(user_id),
        )
        self.db.add(credit_note)
        await flush_changes(self.db, "Create credit note")

        await self.audit.log_event(
            ENTITY, credit_note.id, "CREATED", user_id,
            {"invoice_id": str(invoice.id)},
            {"credit_note_number": credit_note.credit_note_number, "total_amount": str(amount)},
        )
        logger.info(
            f"Created credit note {credit_note.credit_note_number} for {amount} {credit_note.currency} "
            f"against invoice {invoice.invoice_number}"
        )
        return credit_note

    async def issue(self, credit_note_id: uuid.UUID, user_id: Optional[uuid.UUID] = None) -> CreditNote:
        credit_note = await self.get_credit_note(credit_note_id)
        return await self._transition(credit_note, CreditNoteStatus.ISSUED.value, user_id)

    async def apply(
        self,
        credit_note_id: uuid.UUID,
        amount: Optional[Decimal] = None,
        user_id: Optional[uuid.UUID] = None,
    ) -> CreditNote:
        """
        Apply an issued credit note to its invoice.

        amount defaults to whatever can still be applied. The note becomes
        Applied once its whole total has been used; a partial application
        leaves it Issued.

        Raises:
            InvalidTransitionError: note not Issued, or invoice Paid or Cancelled
            ValidationError: amount not positive, or above what the note or
                the invoice can absorb
        """
        credit_note = await self.get_credit_note(credit_note_id)
        if credit_note.status != CreditNoteStatus.ISSUED.value:
            raise InvalidTransitionError(
                "Credit note", credit_note.status, CreditNoteStatus.APPLIED.value,
                CREDIT_NOTE_TRANSITIONS.get(credit_note.status, []),
                reason="only Issued credit notes can be applied",
            )
        invoice = await self._get_invoice(credit_note.original_invoice_id)

        applicable = min(credit_note.remaining_amount, money(invoice.outstanding_amount))
        amount = applicable if amount is None else money(amount)
        if amount <= 0:
            raise ValidationError(
                f"Nothing to apply: credit remaining {credit_note.remaining_amount}, "
                f"invoice outstanding {invoice.outstanding_amount}",
                fields=["amount"],
            )
        if amount > applicable:
            raise ValidationError(
                f"Cannot apply {amount}: at most {applicable} can be applied "
                f"(credit remaining {credit_note.remaining_amount}, "
                f"invoice outstanding {invoice.outstanding_amount})",
                fields=["amount"],
            )

        old = {"status": invoice.status, "outstanding_amount": str(invoice.outstanding_amount)}
        apply_credit(invoice, amount)
        credit_note.applied_amount = money(credit_note.applied_amount) + amount
        await flush_changes(self.db, "Apply credit note")

        await self.audit.log_event(
            "INVOICE", invoice.id, "CREDIT_APPLIED", user_id,
            old,
            {
                "status": invoice.status,
                "outstanding_amount": str(invoice.outstanding_amount),
                "credit_note_number": credit_note.credit_note_number,
                "amount": str(amount),
            },
        )
        logger.info(
            f"Applied {amount} of credit note {credit_note.credit_note_number} to invoice "
            f"{invoice.invoice_number} (outstanding {old['outstanding_amount']} -> "
            f"{invoice.outstanding_amount}, status {invoice.status})"
        )

        if credit_note.remaining_amount == 0:
            return await self._transition(credit_note, CreditNoteStatus.APPLIED.value, user_id)
        return credit_note

    async def cancel(self, credit_note_id: uuid.UUID, user_id: Optional[uuid.UUID] = None) -> CreditNote:
        credit_note = await self.get_credit_note(credit_note_id)
        if credit_note.applied_amount and credit_note.applied_amount > 0:
            raise InvalidTransitionError(
                "Credit note", credit_note.status, CreditNoteStatus.CANCELLED.value, [],
                reason=f"{credit_note.applied_amount} has already been applied",
            )
        return await self._transition(credit_note, CreditNoteStatus.CANCELLED.value, user_id)

    async def _transition(
        self,
        credit_note: CreditNote,
        new_status: str,
        user_id: Optional[uuid.UUID],
    ) -> CreditNote:
        old_status = credit_note.status
        validate_credit_note_transition(credit_note, new_status)
        credit_note.status = new_status
        await flush_changes(self.db, f"Credit note {old_status} -> {new_status}")

        await self.audit.log_status_change(ENTITY, credit_note.id, old_status, new_status, user_id)
        logger.info(f"Credit note {credit_note.credit_note_number}: {old_status} -> {new_status}")
        return credit_note

    async def list_for_invoice(self, invoice_id: uuid.UUID) -> List[CreditNote]:
        result = await self.db.execute(
            select(CreditNote)
            .where(CreditNote.original_invoice_id == invoice_id)
            .order_by(CreditNote.created_at)
        )
        return list(result.scalars().all())
