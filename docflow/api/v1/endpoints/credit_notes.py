"""API endpoints for credit notes."""
from typing import List
from uuid import UUID

from fastapi import APIRouter, status

from docflow.api.deps import DB, ActorId
from docflow.schemas.billing import CreditNoteCreate, CreditNoteApplyRequest, CreditNoteResponse
from docflow.services.credit_note_service import CreditNoteService


router = APIRouter()


@router.post("", response_model=CreditNoteResponse, status_code=status.HTTP_201_CREATED)
async def create_credit_note(data: CreditNoteCreate, db: DB, actor_id: ActorId):
    return await CreditNoteService(db).create_credit_note(
        data.invoice_id, data.amount, data.reason, user_id=actor_id, notes=data.notes
    )


@router.get("/by-invoice/{invoice_id}", response_model=List[CreditNoteResponse])
async def list_credit_notes_for_invoice(invoice_id: UUID, db: DB):
    return await CreditNoteService(db).list_for_invoice(invoice_id)


@router.get("/{credit_note_id}", response_model=CreditNoteResponse)
async def get_credit_note(credit_note_id: UUID, db: DB):
    return await CreditNoteService(db).get_credit_note(credit_note_id)


@router.post("/{credit_note_id}/issue", response_model=CreditNoteResponse)
async def issue_credit_note(credit_note_id: UUID, db: DB, actor_id: ActorId):
    return await CreditNoteService(db).issue(credit_note_id, user_id=actor_id)


@router.post("/{credit_note_id}/apply", response_model=CreditNoteResponse)
async def apply_credit_note(credit_note_id: UUID, data: CreditNoteApplyRequest, db: DB, actor_id: ActorId):
    """Settle part of the invoice with the credit note; a credit clearing the balance marks it Paid."""
    return await CreditNoteService(db).apply(credit_note_id, amount=data.amount, user_id=actor_id)


@router.post("/{credit_note_id}/cancel", response_model=CreditNoteResponse)
async def cancel_credit_note(credit_note_id: UUID, db: DB, actor_id: ActorId):
    return await CreditNoteService(db).cancel(credit_note_id, user_id=actor_id)
