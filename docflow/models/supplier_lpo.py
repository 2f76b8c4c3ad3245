"""Supplier LPO (Local Purchase Order) models.

An LPO is addressed to one supplier and is usually derived from one or more
sales orders. Amendments follow the same root-attached scheme as sales orders.
"""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List
from decimal import Decimal

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Integer, Text
from sqlalchemy import UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from docflow.database import Base
from docflow.db_types import UUIDType, JSONType, MoneyType, RateType


# ==================== Enums ====================

class LpoSourceType(str, Enum):
    MANUAL = "Manual"
    AUTO = "Auto"


class LpoAmendmentType(str, Enum):
    """What an LPO amendment changes."""
    QUANTITY = "Quantity"
    PRICE = "Price"
    DELIVERY = "Delivery"
    TERMS = "Terms"
    CANCELLATION = "Cancellation"


class LpoItemDeliveryStatus(str, Enum):
    PENDING = "Pending"
    PARTIAL = "Partial"
    COMPLETE = "Complete"


# ==================== Supplier LPO ====================

class SupplierLpo(Base):
    """
    Supplier LPO model.
    Official order placed with a supplier.
    """
    __tablename__ = "supplier_lpos"
    __table_args__ = (
        UniqueConstraint("parent_lpo_id", "amendment_sequence", name="uq_supplier_lpo_amendment_sequence"),
    )

    MONETARY_FIELDS = ("subtotal", "tax_amount", "total_amount")

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    # Identification
    lpo_number: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
        comment="LPO-XXXXXXXXXX, amendments suffixed -A<n>"
    )
    supplier_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("suppliers.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    # Status
    status: Mapped[str] = mapped_column(
        String(50),
        default="Draft",
        nullable=False,
        index=True,
        comment="Draft, Sent, Confirmed, Received, Cancelled"
    )
    lpo_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    expected_delivery_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Derivation source
    source_type: Mapped[str] = mapped_column(
        String(50),
        default=LpoSourceType.MANUAL.value,
        nullable=False,
        comment="Auto, Manual"
    )
    source_sales_order_ids: Mapped[Optional[list]] = mapped_column(
        JSONType,
        nullable=True,
        comment="Sales order ids this LPO was derived from"
    )
    grouping_criteria: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Amounts (document currency)
    currency: Mapped[str] = mapped_column(String(10), default="BHD", nullable=False)
    exchange_rate: Mapped[Decimal] = mapped_column(RateType, default=Decimal("1"), nullable=False)
    base_currency: Mapped[str] = mapped_column(String(10), default="BHD", nullable=False)
    subtotal: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"), nullable=False)

    # Amounts (base currency)
    subtotal_base: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"), nullable=False)
    tax_amount_base: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"), nullable=False)
    total_amount_base: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"), nullable=False)

    # Supplier snapshot
    supplier_contact_person: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    supplier_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    supplier_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Terms
    payment_terms: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    delivery_terms: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    terms_and_conditions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    special_instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Amendment tracking
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    parent_lpo_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("supplier_lpos.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
        comment="Lineage root; NULL on the root itself"
    )
    amendment_sequence: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    amendment_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    amendment_type: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment="Quantity, Price, Delivery, Terms, Cancellation"
    )

    # Approval workflow
    requires_approval: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    approval_status: Mapped[str] = mapped_column(
        String(50),
        default="Not Required",
        nullable=False,
        comment="Not Required, Pending, Approved, Rejected"
    )
    approved_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True
    )
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    approval_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Tracking
    sent_to_supplier_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    confirmed_by_supplier_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    supplier_confirmation_reference: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    received_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

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
    items: Mapped[List["SupplierLpoItem"]] = relationship(
        "SupplierLpoItem",
        back_populates="supplier_lpo",
        cascade="all, delete-orphan",
        order_by="SupplierLpoItem.line_number",
        lazy="selectin"
    )

    @property
    def is_fully_received(self) -> bool:
        """Check if all items are fully received."""
        return bool(self.items) and all(item.pending_quantity <= 0 for item in self.items)

    def __repr__(self) -> str:
        return f"<SupplierLpo(number='{self.lpo_number}', status='{self.status}')>"


class SupplierLpoItem(Base):
    """Line items in a Supplier LPO."""
    __tablename__ = "supplier_lpo_items"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    supplier_lpo_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("supplier_lpos.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    sales_order_item_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("sales_order_items.id", ondelete="SET NULL"),
        nullable=True
    )
    item_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("items.id", ondelete="RESTRICT"),
        nullable=False
    )
    line_number: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    # Snapshot
    supplier_code: Mapped[str] = mapped_column(String(100), nullable=False)
    barcode: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    item_description: Mapped[str] = mapped_column(Text, nullable=False)

    # Quantities
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    received_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    pending_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Pricing
    unit_cost: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    total_cost: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)

    delivery_status: Mapped[str] = mapped_column(
        String(50),
        default=LpoItemDeliveryStatus.PENDING.value,
        nullable=False,
        comment="Pending, Partial, Complete"
    )
    urgency: Mapped[str] = mapped_column(String(50), default="Normal", nullable=False)
    special_instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Relationships
    supplier_lpo: Mapped["SupplierLpo"] = relationship("SupplierLpo", back_populates="items")

    def __repr__(self) -> str:
        return f"<SupplierLpoItem(line={self.line_number}, qty={self.quantity}, pending={self.pending_quantity})>"
