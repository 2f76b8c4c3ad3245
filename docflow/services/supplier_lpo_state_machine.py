"""
Supplier LPO State Machine

This module is the SINGLE SOURCE OF TRUTH for all LPO status transitions.
All status changes must go through this module.

Two axes are tracked:
- status: Draft -> Sent -> Confirmed -> Received, or Cancelled
- approval_status: Not Required | Pending -> Approved / Rejected

An LPO that requires approval cannot be sent until it is Approved.
"""

from typing import List, Dict, Optional
from datetime import datetime, timezone

from docflow.core.exceptions import InvalidTransitionError, ValidationError


# =============================================================================
# STATUS DEFINITIONS (Single Source of Truth)
# =============================================================================

class LpoStatus:
    """LPO Status constants - use these instead of strings."""
    DRAFT = "Draft"
    SENT = "Sent"
    CONFIRMED = "Confirmed"
    RECEIVED = "Received"
    CANCELLED = "Cancelled"


class LpoApprovalStatus:
    """LPO approval sub-state constants."""
    NOT_REQUIRED = "Not Required"
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


# =============================================================================
# TRANSITION RULES
# =============================================================================

# Format: current_status -> [list of allowed next statuses]
LPO_TRANSITIONS: Dict[str, List[str]] = {
    LpoStatus.DRAFT: [
        LpoStatus.SENT,             # Send to supplier (approval gate applies)
        LpoStatus.CANCELLED,        # Cancel draft
    ],
    LpoStatus.SENT: [
        LpoStatus.CONFIRMED,        # Supplier confirmed
        LpoStatus.RECEIVED,         # All goods received without confirmation
        LpoStatus.CANCELLED,        # Cancel (with supplier agreement)
    ],
    LpoStatus.CONFIRMED: [
        LpoStatus.RECEIVED,         # All goods received
        LpoStatus.CANCELLED,        # Cancel
    ],
    LpoStatus.RECEIVED: [],         # Terminal state - no transitions
    LpoStatus.CANCELLED: [],        # Terminal state - no transitions
}

APPROVAL_TRANSITIONS: Dict[str, List[str]] = {
    LpoApprovalStatus.NOT_REQUIRED: [LpoApprovalStatus.PENDING],
    LpoApprovalStatus.PENDING: [LpoApprovalStatus.APPROVED, LpoApprovalStatus.REJECTED],
    LpoApprovalStatus.REJECTED: [LpoApprovalStatus.PENDING],   # Resubmit after changes
    LpoApprovalStatus.APPROVED: [],
}

# Human-readable action names for each transition
TRANSITION_ACTIONS: Dict[tuple, str] = {
    (LpoStatus.DRAFT, LpoStatus.SENT): "Send to Supplier",
    (LpoStatus.DRAFT, LpoStatus.CANCELLED): "Cancel",
    (LpoStatus.SENT, LpoStatus.CONFIRMED): "Supplier Confirmed",
    (LpoStatus.SENT, LpoStatus.RECEIVED): "Receive All Goods",
    (LpoStatus.SENT, LpoStatus.CANCELLED): "Cancel",
    (LpoStatus.CONFIRMED, LpoStatus.RECEIVED): "Receive All Goods",
    (LpoStatus.CONFIRMED, LpoStatus.CANCELLED): "Cancel",
}


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def can_transition(current_status: str, new_status: str) -> bool:
    """Check if a transition is allowed."""
    allowed = LPO_TRANSITIONS.get(current_status, [])
    return new_status in allowed


def get_allowed_transitions(current_status: str) -> List[str]:
    """Get list of statuses that can be transitioned to from current status."""
    return LPO_TRANSITIONS.get(current_status, [])


def get_transition_action(current_status: str, new_status: str) -> str:
    """Get human-readable action name for a transition."""
    return TRANSITION_ACTIONS.get((current_status, new_status), f"{current_status} -> {new_status}")


def validate_transition(current_status: str, new_status: str) -> None:
    """
    Validate a status transition. Raises InvalidTransitionError if invalid.
    """
    if current_status == new_status:
        return  # No change, always allowed

    if not can_transition(current_status, new_status):
        raise InvalidTransitionError(
            "Supplier LPO", current_status, new_status, get_allowed_transitions(current_status)
        )


def validate_approval_transition(current: str, new: str) -> None:
    if new not in APPROVAL_TRANSITIONS.get(current, []):
        raise InvalidTransitionError(
            "Supplier LPO approval", current, new, APPROVAL_TRANSITIONS.get(current, [])
        )


# =============================================================================
# STATUS CHECK HELPERS (for common operations)
# =============================================================================

def can_send_to_supplier(lpo) -> bool:
    """Draft, and approved when approval is required."""
    if lpo.status != LpoStatus.DRAFT:
        return False
    if lpo.requires_approval:
        return lpo.approval_status == LpoApprovalStatus.APPROVED
    return True


def can_receive_goods(status: str) -> bool:
    """Can goods be received against this LPO?"""
    return status in [LpoStatus.SENT, LpoStatus.CONFIRMED]


def can_cancel(status: str) -> bool:
    """Can this LPO be cancelled?"""
    return not is_terminal(status)


def is_terminal(status: str) -> bool:
    """Is this a terminal (final) state?"""
    return not LPO_TRANSITIONS.get(status, [])


# =============================================================================
# TRANSITION EXECUTORS
# =============================================================================

def transition_lpo(lpo, new_status: str, user_id=None, reference: Optional[str] = None) -> None:
    """
    Transition an LPO to a new status.

    This function:
    1. Validates the transition (and the approval gate for Sent)
    2. Updates the status
    3. Stamps tracking fields based on the transition

    Raises:
        InvalidTransitionError: If transition is not allowed
    """
    current_status = lpo.status

    validate_transition(current_status, new_status)
    if current_status == new_status:
        return

    if new_status == LpoStatus.SENT and not can_send_to_supplier(lpo):
        raise InvalidTransitionError(
            "Supplier LPO",
            current_status,
            new_status,
            [s for s in get_allowed_transitions(current_status) if s != LpoStatus.SENT],
            reason=f"approval is required (approval status '{lpo.approval_status}')",
        )

    lpo.status = new_status

    now = datetime.now(timezone.utc)

    if new_status == LpoStatus.SENT:
        lpo.sent_to_supplier_at = now

    elif new_status == LpoStatus.CONFIRMED:
        lpo.confirmed_by_supplier_at = now
        if reference:
            lpo.supplier_confirmation_reference = reference

    elif new_status == LpoStatus.RECEIVED:
        lpo.received_at = now

    elif new_status == LpoStatus.CANCELLED:
        lpo.cancelled_at = now


def transition_approval(lpo, new_approval_status: str, user_id=None, notes: Optional[str] = None) -> None:
    """
    Move the approval sub-state. Status itself stays Draft throughout.

    Raises:
        InvalidTransitionError: LPO not in Draft or approval move not allowed
        ValidationError: rejection without notes
    """
    if lpo.status != LpoStatus.DRAFT:
        raise InvalidTransitionError(
            "Supplier LPO approval", lpo.approval_status, new_approval_status, []
        )
    validate_approval_transition(lpo.approval_status, new_approval_status)

    if new_approval_status == LpoApprovalStatus.REJECTED and not (notes and notes.strip()):
        raise ValidationError("Rejection notes are required", fields=["notes"])

    lpo.approval_status = new_approval_status

    if new_approval_status == LpoApprovalStatus.PENDING:
        lpo.requires_approval = True
        lpo.approved_by = None
        lpo.approved_at = None

    elif new_approval_status == LpoApprovalStatus.APPROVED:
        lpo.approved_by = user_id
        lpo.approved_at = datetime.now(timezone.utc)

    if notes is not None:
        lpo.approval_notes = notes
