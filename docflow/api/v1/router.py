from fastapi import APIRouter

from docflow.api.v1.endpoints import (
    # Sales side
    quotations,
    sales_orders,
    # Procurement
    supplier_lpos,
    # Billing
    invoices,
    credit_notes,
)


api_router = APIRouter(prefix="/api/v1")


# ==================== Quotations ====================
api_router.include_router(
    quotations.router,
    prefix="/quotations",
    tags=["Quotations"]
)

# ==================== Sales Orders ====================
api_router.include_router(
    sales_orders.router,
    prefix="/sales-orders",
    tags=["Sales Orders"]
)

# ==================== Supplier LPOs ====================
api_router.include_router(
    supplier_lpos.router,
    prefix="/supplier-lpos",
    tags=["Supplier LPOs"]
)

# ==================== Invoices ====================
api_router.include_router(
    invoices.router,
    prefix="/invoices",
    tags=["Invoices"]
)

# ==================== Credit Notes ====================
api_router.include_router(
    credit_notes.router,
    prefix="/credit-notes",
    tags=["Credit Notes"]
)
