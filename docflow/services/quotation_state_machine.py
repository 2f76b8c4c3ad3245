"""
Quotation State Machine

Draft -> Sent -> Accepted / Rejected / Expired. Accepted, Rejected and
Expired are terminal. A superseded quotation is frozen; changes go into a
new revision instead.

Approval is a sub-state: approving forces Accepted, rejecting forces
Rejected and needs a reason.
"""

from typing import List, Dict, Optional
from datetime import datetime, timezone

from docflow.core.exceptions import InvalidTransitionError, ValidationError
from docflow.models.quotation import QuotationStatus, QuotationApprovalStatus


QUOTATION_TRANSITIONS: Dict[str, List[str]] = {
    QuotationStatus.DRAFT.value: [
        QuotationStatus.SENT.value,
        QuotationStatus.ACCEPTED.value,
        QuotationStatus.REJECTED.value,
        QuotationStatus.EXPIRED.value,
    ],
    QuotationStatus.SENT.value: [
        QuotationStatus.ACCEPTED.value,
        QuotationStatus.REJECTED.value,
        QuotationStatus.EXPIRED.value,
    ],
    QuotationStatus.ACCEPTED.value: [],
    QuotationStatus.REJECTED.value: [],
    QuotationStatus.EXPIRED.value: [],
}


def can_transition(current_status: str, new_status: str) -> bool:
    return new_status in QUOTATION_TRANSITIONS.get(current_status, [])


def get_allowed_transitions(current_status: str) -> List[str]:
    return QUOTATION_TRANSITIONS.get(current_status, [])


def is_terminal(status: str) -> bool:
    return not QUOTATION_TRANSITIONS.get(status, [])


def validate_transition(quotation, new_status: str) -> None:
    """Raises InvalidTransitionError if quotation may not move to new_status."""
    if new_status not in QUOTATION_TRANSITIONS:
        raise ValidationError(f"Unknown quotation status '{new_status}'", fields=["status"])

    if quotation.is_superseded:
        raise InvalidTransitionError("Superseded quotation", quotation.status, new_status, [])

    if quotation.status == new_status:
        return

    if not can_transition(quotation.status, new_status):
        raise InvalidTransitionError(
            "Quotation", quotation.status, new_status, get_allowed_transitions(quotation.status)
        )


def can_revise(quotation) -> bool:
    """Only the current (non-superseded) row of a lineage can be revised."""
    return not quotation.is_superseded


def transition_quotation(quotation, new_status: str) -> None:
    validate_transition(quotation, new_status)
    quotation.status = new_status


def apply_approval(quotation, decision: str, user_id=None, reason: Optional[str] = None) -> None:
    """
    Record an approval decision on the quotation row.

    Approved forces status Accepted and stamps approver; Rejected forces
    status Rejected and requires a reason. Validation happens before any
    attribute is touched.
    """
    if decision == QuotationApprovalStatus.APPROVED.value:
        validate_transition(quotation, QuotationStatus.ACCEPTED.value)
        quotation.approval_status = decision
        quotation.status = QuotationStatus.ACCEPTED.value
        quotation.approved_by = user_id
        quotation.approved_at = datetime.now(timezone.utc)

    elif decision == QuotationApprovalStatus.REJECTED.value:
        if not (reason and reason.strip()):
            raise ValidationError("Rejection reason is required", fields=["rejection_reason"])
        validate_transition(quotation, QuotationStatus.REJECTED.value)
        quotation.approval_status = decision
        quotation.status = QuotationStatus.REJECTED.value
        quotation.rejection_reason = reason.strip()

    else:
        raise ValidationError(f"Unknown approval decision '{decision}'", fields=["approval_status"])
