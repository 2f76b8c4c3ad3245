"""Delivery models.

Deliveries are recorded by the warehouse flow; the engine only reads them to
generate final invoices.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional, List
from decimal import Decimal

from sqlalchemy import String, DateTime, ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from docflow.database import Base
from docflow.db_types import UUIDType, MoneyType


class Delivery(Base):
    """Goods dispatched against a sales order."""
    __tablename__ = "deliveries"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    delivery_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    sales_order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("sales_orders.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    status: Mapped[str] = mapped_column(String(50), default="Pending", nullable=False)
    delivery_type: Mapped[str] = mapped_column(String(50), default="Full", nullable=False, comment="Full, Partial")
    delivery_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    delivery_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

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

    # Relationships
    items: Mapped[List["DeliveryItem"]] = relationship(
        "DeliveryItem",
        back_populates="delivery",
        cascade="all, delete-orphan",
        lazy="selectin"
    )

    def __repr__(self) -> str:
        return f"<Delivery(number='{self.delivery_number}')>"


class DeliveryItem(Base):
    """Line items in a Delivery."""
    __tablename__ = "delivery_items"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    delivery_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("deliveries.id", ondelete="CASCADE"),
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
    barcode: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    supplier_code: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    ordered_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    picked_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    delivered_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # Used only when the line cannot be linked back to a sales order item
    unit_price: Mapped[Optional[Decimal]] = mapped_column(MoneyType, nullable=True)

    # Relationships
    delivery: Mapped["Delivery"] = relationship("Delivery", back_populates="items")

    def __repr__(self) -> str:
        return f"<DeliveryItem(delivered={self.delivered_quantity})>"
