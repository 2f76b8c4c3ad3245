"""Sales order models.

Amendments are new rows attached directly to the lineage root through
parent_order_id. amendment_sequence is unique among the root's amendments and
the order number carries it as an -A<n> suffix.
"""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Optional, List
from decimal import Decimal

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Integer, Text
from sqlalchemy import UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from docflow.database import Base
from docflow.db_types import UUIDType, MoneyType, RateType

if TYPE_CHECKING:
    from docflow.models.master_data import Item


# ==================== Enums ====================

class SalesOrderStatus(str, Enum):
    """Sales order status."""
    DRAFT = "Draft"
    CONFIRMED = "Confirmed"
    PROCESSING = "Processing"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


class CustomerLpoValidationStatus(str, Enum):
    """Validation of the customer's own purchase order document."""
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


# ==================== Sales Order ====================

class SalesOrder(Base):
    """
    Sales Order model.
    Created from an accepted quotation; amended by inserting new rows.
    """
    __tablename__ = "sales_orders"
    __table_args__ = (
        UniqueConstraint("parent_order_id", "amendment_sequence", name="uq_sales_order_amendment_sequence"),
    )

    MONETARY_FIELDS = ("subtotal", "tax_amount", "total_amount")

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    # Identification
    order_number: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
        comment="SO-YYYY-NNN, amendments suffixed -A<n>"
    )
    quotation_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("quotations.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    customer_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("customers.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    order_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    # Status
    status: Mapped[str] = mapped_column(
        String(50),
        default=SalesOrderStatus.DRAFT.value,
        nullable=False,
        index=True
    )
    customer_po_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

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

    payment_terms: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    delivery_instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Amendment tracking
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    parent_order_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("sales_orders.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
        comment="Lineage root; NULL on the root itself"
    )
    amendment_sequence: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    amendment_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Customer LPO validation
    customer_lpo_required: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    customer_lpo_validation_status: Mapped[str] = mapped_column(
        String(50),
        default=CustomerLpoValidationStatus.PENDING.value,
        nullable=False,
        comment="Pending, Approved, Rejected"
    )
    customer_lpo_validated_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True
    )
    customer_lpo_validated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    customer_lpo_validation_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    source_type: Mapped[str] = mapped_column(String(50), default="Manual", nullable=False, comment="Auto, Manual")

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
    items: Mapped[List["SalesOrderItem"]] = relationship(
        "SalesOrderItem",
        back_populates="sales_order",
        cascade="all, delete-orphan",
        order_by="SalesOrderItem.line_number",
        lazy="selectin"
    )

    def __repr__(self) -> str:
        return f"<SalesOrder(number='{self.order_number}', version={self.version})>"


class SalesOrderItem(Base):
    """Line items in a Sales Order."""
    __tablename__ = "sales_order_items"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    sales_order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("sales_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    item_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("items.id", ondelete="RESTRICT"),
        nullable=False
    )
    quotation_item_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("quotation_items.id", ondelete="SET NULL"),
        nullable=True
    )
    line_number: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    total_price: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    delivery_requirement: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    special_instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Relationships
    sales_order: Mapped["SalesOrder"] = relationship("SalesOrder", back_populates="items")
    item: Mapped["Item"] = relationship("Item")

    def __repr__(self) -> str:
        return f"<SalesOrderItem(line={self.line_number}, qty={self.quantity})>"
