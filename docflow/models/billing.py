"""Billing models: customer invoices and credit notes.

Every monetary column in document currency has a <field>_base mirror in the
invoice's base currency. CurrencyService keeps the mirrors in sync.
"""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List
from decimal import Decimal

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from docflow.database import Base
from docflow.db_types import UUIDType, MoneyType, RateType


class InvoiceType(str, Enum):
    """Invoice type enumeration."""
    FINAL = "Final"           # Billed from a delivery
    PROFORMA = "Proforma"     # Advance shell billed from a sales order


class InvoiceStatus(str, Enum):
    """Invoice status enumeration."""
    DRAFT = "Draft"
    SENT = "Sent"
    PAID = "Paid"
    OVERDUE = "Overdue"
    CANCELLED = "Cancelled"


class CreditNoteStatus(str, Enum):
    """Credit note status enumeration."""
    DRAFT = "Draft"
    ISSUED = "Issued"
    APPLIED = "Applied"
    CANCELLED = "Cancelled"


class Invoice(Base):
    """Customer invoice with transaction and base currency amounts."""
    __tablename__ = "invoices"

    MONETARY_FIELDS = ("subtotal", "tax_amount", "discount_amount", "total_amount")

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    # Identification
    invoice_number: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
        comment="INV-XXXXXXXXXX or PFINV-XXXXXXXXXX"
    )
    invoice_type: Mapped[str] = mapped_column(
        String(50),
        default=InvoiceType.FINAL.value,
        nullable=False,
        comment="Final, Proforma"
    )
    sales_order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("sales_orders.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    delivery_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("deliveries.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    customer_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("customers.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    invoice_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Status
    status: Mapped[str] = mapped_column(
        String(50),
        default=InvoiceStatus.DRAFT.value,
        nullable=False,
        index=True
    )

    # Currency
    currency: Mapped[str] = mapped_column(String(10), default="BHD", nullable=False)
    exchange_rate: Mapped[Decimal] = mapped_column(RateType, default=Decimal("1"), nullable=False)
    base_currency: Mapped[str] = mapped_column(String(10), default="BHD", nullable=False)

    # Amounts (invoice currency)
    subtotal: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"), nullable=False)

    # Amounts (base currency)
    subtotal_base: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"), nullable=False)
    tax_amount_base: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"), nullable=False)
    discount_amount_base: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"), nullable=False)
    total_amount_base: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"), nullable=False)

    # Payment
    paid_amount: Mapped[Decimal] = mapped_column(
        MoneyType,
        default=Decimal("0"),
        nullable=False,
        comment="Settled so far: payments plus applied credit notes"
    )
    outstanding_amount: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"), nullable=False)
    credited_amount: Mapped[Decimal] = mapped_column(
        MoneyType,
        default=Decimal("0"),
        nullable=False,
        comment="Share of paid_amount settled by credit notes"
    )
    payment_terms: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    payment_method: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    payment_reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_payment_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    auto_generated: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    row_version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": row_version}

    # Relationships
    items: Mapped[List["InvoiceItem"]] = relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.line_number",
        lazy="selectin"
    )

    def __repr__(self) -> str:
        return f"<Invoice(number='{self.invoice_number}', status='{self.status}')>"


class InvoiceItem(Base):
    """Invoice line item with base currency mirrors."""
    __tablename__ = "invoice_items"

    MONETARY_FIELDS = ("unit_price", "total_price", "discount_amount", "tax_amount")

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    invoice_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    delivery_item_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("delivery_items.id", ondelete="SET NULL"),
        nullable=True
    )
    sales_order_item_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("sales_order_items.id", ondelete="SET NULL"),
        nullable=True
    )
    item_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("items.id", ondelete="SET NULL"),
        nullable=True
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)

    barcode: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    supplier_code: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    # Pricing (invoice currency)
    unit_price: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    total_price: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"), nullable=False)

    # Pricing (base currency)
    unit_price_base: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"), nullable=False)
    total_price_base: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"), nullable=False)
    discount_amount_base: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"), nullable=False)
    tax_amount_base: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"), nullable=False)

    # Relationships
    invoice: Mapped["Invoice"] = relationship("Invoice", back_populates="items")

    def __repr__(self) -> str:
        return f"<InvoiceItem(line={self.line_number}, total={self.total_price})>"


class CreditNote(Base):
    """Credit note reducing the receivable of exactly one invoice."""
    __tablename__ = "credit_notes"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    credit_note_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    original_invoice_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("invoices.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    customer_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("customers.id", ondelete="RESTRICT"),
        nullable=False
    )
    credit_note_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        String(50),
        default=CreditNoteStatus.DRAFT.value,
        nullable=False,
        comment="Draft, Issued, Applied, Cancelled"
    )

    currency: Mapped[str] = mapped_column(String(10), default="BHD", nullable=False)
    exchange_rate: Mapped[Decimal] = mapped_column(RateType, default=Decimal("1"), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    applied_amount: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    @property
    def remaining_amount(self) -> Decimal:
        return max(Decimal("0"), self.total_amount - (self.applied_amount or Decimal("0")))

    def __repr__(self) -> str:
        return f"<CreditNote(number='{self.credit_note_number}', status='{self.status}')>"
