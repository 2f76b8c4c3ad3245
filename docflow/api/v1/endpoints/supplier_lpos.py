"""API endpoints for supplier LPOs: derivation, amendments, approval and fulfilment."""
from typing import List
from uuid import UUID

from fastapi import APIRouter, status

from docflow.api.deps import DB, ActorId
from docflow.schemas.base import CurrencyUpdateRequest
from docflow.schemas.supplier_lpo import (
    LpoFromSalesOrdersRequest,
    LpoAmendRequest,
    LpoApproveRequest,
    LpoRejectRequest,
    LpoConfirmRequest,
    LpoReceiveRequest,
    LpoCancelRequest,
    SupplierLpoResponse,
)
from docflow.services.supplier_lpo_service import SupplierLpoService


router = APIRouter()


@router.post("/from-sales-orders", response_model=List[SupplierLpoResponse], status_code=status.HTTP_201_CREATED)
async def create_from_sales_orders(data: LpoFromSalesOrdersRequest, db: DB, actor_id: ActorId):
    """Derive Draft LPOs, one per supplier group."""
    return await SupplierLpoService(db).create_from_sales_orders(
        data.sales_order_ids, group_by=data.group_by, user_id=actor_id
    )


@router.get("/{lpo_id}", response_model=SupplierLpoResponse)
async def get_supplier_lpo(lpo_id: UUID, db: DB):
    return await SupplierLpoService(db).get_lpo(lpo_id)


@router.post("/{lpo_id}/amendments", response_model=SupplierLpoResponse, status_code=status.HTTP_201_CREATED)
async def amend_supplier_lpo(lpo_id: UUID, data: LpoAmendRequest, db: DB, actor_id: ActorId):
    return await SupplierLpoService(db).create_amendment(
        lpo_id, data.reason, data.amendment_type, user_id=actor_id
    )


@router.get("/{lpo_id}/lineage", response_model=List[SupplierLpoResponse])
async def get_supplier_lpo_lineage(lpo_id: UUID, db: DB):
    return await SupplierLpoService(db).get_lineage(lpo_id)


# ==================== Approval ====================

@router.post("/{lpo_id}/submit", response_model=SupplierLpoResponse)
async def submit_for_approval(lpo_id: UUID, db: DB, actor_id: ActorId):
    return await SupplierLpoService(db).submit_for_approval(lpo_id, user_id=actor_id)


@router.post("/{lpo_id}/approve", response_model=SupplierLpoResponse)
async def approve_supplier_lpo(lpo_id: UUID, data: LpoApproveRequest, db: DB, actor_id: ActorId):
    return await SupplierLpoService(db).approve(lpo_id, user_id=actor_id, notes=data.notes)


@router.post("/{lpo_id}/reject", response_model=SupplierLpoResponse)
async def reject_supplier_lpo(lpo_id: UUID, data: LpoRejectRequest, db: DB, actor_id: ActorId):
    return await SupplierLpoService(db).reject(lpo_id, notes=data.notes, user_id=actor_id)


# ==================== Fulfilment ====================

@router.post("/{lpo_id}/send", response_model=SupplierLpoResponse)
async def send_to_supplier(lpo_id: UUID, db: DB, actor_id: ActorId):
    """Draft -> Sent. 409 while a required approval is outstanding."""
    return await SupplierLpoService(db).send_to_supplier(lpo_id, user_id=actor_id)


@router.post("/{lpo_id}/confirm", response_model=SupplierLpoResponse)
async def confirm_by_supplier(lpo_id: UUID, data: LpoConfirmRequest, db: DB, actor_id: ActorId):
    return await SupplierLpoService(db).confirm_by_supplier(
        lpo_id, confirmation_reference=data.confirmation_reference, user_id=actor_id
    )


@router.post("/{lpo_id}/receive", response_model=SupplierLpoResponse)
async def receive_goods(lpo_id: UUID, data: LpoReceiveRequest, db: DB, actor_id: ActorId):
    return await SupplierLpoService(db).receive_goods(lpo_id, data.quantities, user_id=actor_id)


@router.post("/{lpo_id}/cancel", response_model=SupplierLpoResponse)
async def cancel_supplier_lpo(lpo_id: UUID, data: LpoCancelRequest, db: DB, actor_id: ActorId):
    return await SupplierLpoService(db).cancel(lpo_id, reason=data.reason, user_id=actor_id)


@router.put("/{lpo_id}/currency", response_model=SupplierLpoResponse)
async def update_supplier_lpo_currency(lpo_id: UUID, data: CurrencyUpdateRequest, db: DB, actor_id: ActorId):
    return await SupplierLpoService(db).update_currency(lpo_id, data.currency, data.rate, user_id=actor_id)
