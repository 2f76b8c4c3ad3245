# Services module
from docflow.services.audit_service import AuditService
from docflow.services.document_sequence_service import DocumentSequenceService, generate_number
from docflow.services.currency_service import CurrencyService
from docflow.services.lineage_service import LineageService

# Document lifecycle
from docflow.services.quotation_service import QuotationService
from docflow.services.sales_order_service import SalesOrderService
from docflow.services.supplier_lpo_service import SupplierLpoService

# Billing
from docflow.services.invoice_service import InvoiceService
from docflow.services.credit_note_service import CreditNoteService

__all__ = [
    "AuditService",
    "DocumentSequenceService",
    "generate_number",
    "CurrencyService",
    "LineageService",
    # Document lifecycle
    "QuotationService",
    "SalesOrderService",
    "SupplierLpoService",
    # Billing
    "InvoiceService",
    "CreditNoteService",
]
