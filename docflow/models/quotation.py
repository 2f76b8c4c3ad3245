"""Quotation models.

A quotation is revised by inserting a new row that points at the lineage root
(parent_quotation_id) and flagging the previous current row as superseded.
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
from docflow.db_types import UUIDType, MoneyType

if TYPE_CHECKING:
    from docflow.models.master_data import Customer


# ==================== Enums ====================

class QuotationStatus(str, Enum):
    """Quotation status."""
    DRAFT = "Draft"
    SENT = "Sent"
    ACCEPTED = "Accepted"
    REJECTED = "Rejected"
    EXPIRED = "Expired"


class QuotationApprovalStatus(str, Enum):
    """Internal approval of a quotation before it goes to the customer."""
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


# ==================== Quotation ====================

class Quotation(Base):
    """
    Quotation model.
    Priced offer to a customer; may be revised until accepted.
    """
    __tablename__ = "quotations"
    __table_args__ = (
        UniqueConstraint("parent_quotation_id", "revision", name="uq_quotation_parent_revision"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    # Identification
    quote_number: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
        comment="QT-XXXXXXXXXX, revisions suffixed -R<n>"
    )

    # Revision tracking
    revision: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    parent_quotation_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("quotations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="Lineage root; NULL on the root itself"
    )
    revision_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_superseded: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    superseded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    superseded_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True
    )

    customer_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("customers.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    # Status
    status: Mapped[str] = mapped_column(
        String(50),
        default=QuotationStatus.DRAFT.value,
        nullable=False,
        index=True,
        comment="Draft, Sent, Accepted, Rejected, Expired"
    )
    quote_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    valid_until: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Amounts
    currency: Mapped[str] = mapped_column(String(10), default="BHD", nullable=False)
    subtotal: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"), nullable=False)

    terms: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Approval
    approval_status: Mapped[str] = mapped_column(
        String(50),
        default=QuotationApprovalStatus.PENDING.value,
        nullable=False,
        comment="Pending, Approved, Rejected"
    )
    approved_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True
    )
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

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

    # Concurrent status updates fail instead of silently overwriting
    row_version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": row_version}

    # Relationships
    customer: Mapped["Customer"] = relationship("Customer")
    items: Mapped[List["QuotationItem"]] = relationship(
        "QuotationItem",
        back_populates="quotation",
        cascade="all, delete-orphan",
        order_by="QuotationItem.line_number",
        lazy="selectin"
    )
    approvals: Mapped[List["QuotationApproval"]] = relationship(
        "QuotationApproval",
        back_populates="quotation",
        cascade="all, delete-orphan",
        order_by="QuotationApproval.created_at",
        lazy="selectin"
    )

    @property
    def root_id(self) -> uuid.UUID:
        return self.parent_quotation_id or self.id

    def __repr__(self) -> str:
        return f"<Quotation(number='{self.quote_number}', status='{self.status}')>"


class QuotationItem(Base):
    """Line items in a Quotation."""
    __tablename__ = "quotation_items"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    quotation_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("quotations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    # Optional product link; quotations are often priced from free text
    item_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("items.id", ondelete="SET NULL"),
        nullable=True
    )
    line_number: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    description: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    line_total: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Relationships
    quotation: Mapped["Quotation"] = relationship("Quotation", back_populates="items")

    def __repr__(self) -> str:
        return f"<QuotationItem(line={self.line_number}, qty={self.quantity})>"


class QuotationApproval(Base):
    """Immutable record of each approve/reject decision on a quotation."""
    __tablename__ = "quotation_approvals"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    quotation_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("quotations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    approver_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True
    )
    status: Mapped[str] = mapped_column(String(50), nullable=False, comment="Approved, Rejected")
    comments: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    # Relationships
    quotation: Mapped["Quotation"] = relationship("Quotation", back_populates="approvals")

    def __repr__(self) -> str:
        return f"<QuotationApproval(status='{self.status}')>"
