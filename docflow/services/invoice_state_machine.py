"""
Invoice State Machine

Draft -> Sent -> Paid, with Overdue as a side state before payment.
Cancelled is reachable from any state except Paid. Paid and Cancelled are
terminal.

Payments and applied credit notes do not go through transition_invoice; both
settle the invoice and flip it to Paid only when nothing is outstanding.
"""

from decimal import Decimal
from typing import List, Dict
from datetime import datetime, timezone

from docflow.core.exceptions import InvalidTransitionError, ValidationError
from docflow.models.billing import InvoiceStatus
from docflow.services.currency_service import money


INVOICE_TRANSITIONS: Dict[str, List[str]] = {
    InvoiceStatus.DRAFT.value: [
        InvoiceStatus.SENT.value,
        InvoiceStatus.PAID.value,
        InvoiceStatus.OVERDUE.value,
        InvoiceStatus.CANCELLED.value,
    ],
    InvoiceStatus.SENT.value: [
        InvoiceStatus.PAID.value,
        InvoiceStatus.OVERDUE.value,
        InvoiceStatus.CANCELLED.value,
    ],
    InvoiceStatus.OVERDUE.value: [
        InvoiceStatus.PAID.value,
        InvoiceStatus.CANCELLED.value,
    ],
    InvoiceStatus.PAID.value: [],
    InvoiceStatus.CANCELLED.value: [],
}


def can_transition(current_status: str, new_status: str) -> bool:
    return new_status in INVOICE_TRANSITIONS.get(current_status, [])


def get_allowed_transitions(current_status: str) -> List[str]:
    return INVOICE_TRANSITIONS.get(current_status, [])


def is_terminal(status: str) -> bool:
    return not INVOICE_TRANSITIONS.get(status, [])


def can_accept_payment(status: str) -> bool:
    return not is_terminal(status)


def validate_transition(current_status: str, new_status: str) -> None:
    if current_status == new_status:
        return
    if not can_transition(current_status, new_status):
        raise InvalidTransitionError(
            "Invoice", current_status, new_status, get_allowed_transitions(current_status)
        )


def transition_invoice(invoice, new_status: str) -> None:
    validate_transition(invoice.status, new_status)
    invoice.status = new_status

    now = datetime.now(timezone.utc)
    if new_status == InvoiceStatus.SENT.value:
        invoice.sent_at = now
    elif new_status == InvoiceStatus.CANCELLED.value:
        invoice.cancelled_at = now


def recompute_outstanding(invoice) -> None:
    """outstanding = max(0, total - paid)"""
    outstanding = money(invoice.total_amount) - money(invoice.paid_amount)
    invoice.outstanding_amount = max(Decimal("0.00"), outstanding)


def _settle(invoice, amount: Decimal, kind: str) -> Decimal:
    amount = money(amount)
    if amount <= 0:
        raise ValidationError(f"{kind} amount must be greater than zero", fields=["amount"])
    if not can_accept_payment(invoice.status):
        raise InvalidTransitionError(
            "Invoice", invoice.status, InvoiceStatus.PAID.value, get_allowed_transitions(invoice.status)
        )
    if amount > money(invoice.outstanding_amount):
        raise ValidationError(
            f"{kind} amount {amount} exceeds outstanding {invoice.outstanding_amount}",
            fields=["amount"],
        )

    invoice.paid_amount = money(invoice.paid_amount) + amount
    recompute_outstanding(invoice)
    if invoice.outstanding_amount == 0:
        invoice.status = InvoiceStatus.PAID.value
    return amount


def apply_payment(invoice, amount: Decimal) -> None:
    """
    Accumulate a payment.

    Status becomes Paid iff outstanding reaches zero; a partial payment
    leaves status unchanged.

    Raises:
        ValidationError: amount not positive, or above the outstanding amount
        InvalidTransitionError: invoice already Paid or Cancelled
    """
    _settle(invoice, amount, "Payment")
    invoice.last_payment_date = datetime.now(timezone.utc)


def apply_credit(invoice, amount: Decimal) -> None:
    """
    Settle part of the invoice with a credit note.

    An applied credit counts towards paid_amount like a payment, so a credit
    that clears the balance moves the invoice to Paid. credited_amount keeps
    the credit share of it.
    """
    amount = _settle(invoice, amount, "Credit")
    invoice.credited_amount = money(invoice.credited_amount) + amount
