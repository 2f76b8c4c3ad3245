"""API endpoints for sales orders: derivation, amendments, customer LPO validation."""
from typing import List
from uuid import UUID

from fastapi import APIRouter, status

from docflow.api.deps import DB, ActorId
from docflow.schemas.base import CurrencyUpdateRequest
from docflow.schemas.sales_order import (
    SalesOrderFromQuotationRequest,
    SalesOrderAmendRequest,
    CustomerLpoValidationRequest,
    SalesOrderResponse,
)
from docflow.services.sales_order_service import SalesOrderService


router = APIRouter()


@router.post("/from-quotation", response_model=SalesOrderResponse, status_code=status.HTTP_201_CREATED)
async def create_from_quotation(data: SalesOrderFromQuotationRequest, db: DB, actor_id: ActorId):
    """Convert an Accepted quotation into a Draft sales order."""
    return await SalesOrderService(db).create_from_quotation(data.quotation_id, user_id=actor_id)


@router.get("/{order_id}", response_model=SalesOrderResponse)
async def get_sales_order(order_id: UUID, db: DB):
    return await SalesOrderService(db).get_order(order_id)


@router.post("/{order_id}/amendments", response_model=SalesOrderResponse, status_code=status.HTTP_201_CREATED)
async def amend_sales_order(order_id: UUID, data: SalesOrderAmendRequest, db: DB, actor_id: ActorId):
    """
    Amend a sales order.

    409 with retryable=true when another amendment of the same lineage holds
    the lock; the request can be repeated as is.
    """
    return await SalesOrderService(db).create_amendment(order_id, data.reason, user_id=actor_id)


@router.get("/{order_id}/lineage", response_model=List[SalesOrderResponse])
async def get_sales_order_lineage(order_id: UUID, db: DB):
    """Root order first, then amendments by sequence."""
    return await SalesOrderService(db).get_lineage(order_id)


@router.put("/{order_id}/customer-lpo", response_model=SalesOrderResponse)
async def validate_customer_lpo(order_id: UUID, data: CustomerLpoValidationRequest, db: DB, actor_id: ActorId):
    return await SalesOrderService(db).validate_customer_lpo(
        order_id,
        status=data.status,
        validated_by=actor_id,
        notes=data.notes,
        override=data.override,
    )


@router.put("/{order_id}/currency", response_model=SalesOrderResponse)
async def update_sales_order_currency(order_id: UUID, data: CurrencyUpdateRequest, db: DB, actor_id: ActorId):
    return await SalesOrderService(db).update_currency(order_id, data.currency, data.rate, user_id=actor_id)
