"""API endpoints for quotations: creation, revisions, status and approval."""
from typing import List
from uuid import UUID

from fastapi import APIRouter, status

from docflow.api.deps import DB, ActorId
from docflow.schemas.quotation import (
    QuotationCreate,
    QuotationRevisionRequest,
    QuotationStatusUpdate,
    QuotationApproveRequest,
    QuotationRejectRequest,
    QuotationResponse,
    QuotationApprovalResponse,
)
from docflow.services.quotation_service import QuotationService


router = APIRouter()


@router.post("", response_model=QuotationResponse, status_code=status.HTTP_201_CREATED)
async def create_quotation(data: QuotationCreate, db: DB, actor_id: ActorId):
    """Create a Draft quotation."""
    return await QuotationService(db).create_quotation(
        customer_id=data.customer_id,
        items=[item.model_dump() for item in data.items],
        currency=data.currency,
        discount_amount=data.discount_amount,
        tax_amount=data.tax_amount,
        valid_until=data.valid_until,
        terms=data.terms,
        notes=data.notes,
        user_id=actor_id,
    )


@router.get("/{quotation_id}", response_model=QuotationResponse)
async def get_quotation(quotation_id: UUID, db: DB):
    return await QuotationService(db).get_quotation(quotation_id)


@router.post("/{quotation_id}/revisions", response_model=QuotationResponse, status_code=status.HTTP_201_CREATED)
async def revise_quotation(quotation_id: UUID, data: QuotationRevisionRequest, db: DB, actor_id: ActorId):
    """Create a new revision; the current row becomes superseded."""
    items = [item.model_dump() for item in data.items] if data.items is not None else None
    return await QuotationService(db).create_revision(
        quotation_id,
        reason=data.reason,
        changes=data.header_changes(),
        items=items,
        user_id=actor_id,
    )


@router.get("/{quotation_id}/revisions", response_model=List[QuotationResponse])
async def list_revisions(quotation_id: UUID, db: DB):
    return await QuotationService(db).get_revisions(quotation_id)


@router.put("/{quotation_id}/status", response_model=QuotationResponse)
async def update_quotation_status(quotation_id: UUID, data: QuotationStatusUpdate, db: DB, actor_id: ActorId):
    return await QuotationService(db).update_status(quotation_id, data.status, user_id=actor_id)


@router.post("/{quotation_id}/approve", response_model=QuotationResponse)
async def approve_quotation(quotation_id: UUID, data: QuotationApproveRequest, db: DB, actor_id: ActorId):
    return await QuotationService(db).approve(quotation_id, user_id=actor_id, comments=data.comments)


@router.post("/{quotation_id}/reject", response_model=QuotationResponse)
async def reject_quotation(quotation_id: UUID, data: QuotationRejectRequest, db: DB, actor_id: ActorId):
    return await QuotationService(db).reject(quotation_id, reason=data.reason, user_id=actor_id)


@router.get("/{quotation_id}/approvals", response_model=List[QuotationApprovalResponse])
async def list_approvals(quotation_id: UUID, db: DB):
    return await QuotationService(db).get_approvals(quotation_id)
