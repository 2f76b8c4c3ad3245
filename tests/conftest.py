"""
Pytest fixtures for the document lifecycle engine.

Provides:
- A file-backed SQLite database per test (aiosqlite, BEGIN IMMEDIATE
  locking), so separate sessions really contend for the write lock
- Seeded master data (user, customer, two suppliers, three items)
- DocumentFactory for building quotations, orders and deliveries

Environment Variables:
- DATABASE_URL: only used by the module-level engine imported by the app;
  every test runs against its own temporary database.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from docflow.database import build_engine, build_session_factory, init_db
from docflow.models.delivery import Delivery, DeliveryItem
from docflow.models.master_data import Customer, Item, Supplier, User
from docflow.models.quotation import Quotation
from docflow.models.sales_order import SalesOrder
from docflow.services.document_sequence_service import generate_number
from docflow.services.quotation_service import QuotationService
from docflow.services.sales_order_service import SalesOrderService


@dataclass
class SeedData:
    """Ids of the master data rows every test starts with."""
    user_id: UUID
    customer_id: UUID
    supplier_a_id: UUID
    supplier_b_id: UUID
    # items[0], items[1] are supplied by A; items[2] by B
    item_ids: List[UUID]


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
async def engine(tmp_path):
    """Fresh SQLite database file with all tables."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'docflow.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def db(session_factory) -> AsyncSession:
    """
    Session for the test body.

    Tests that start concurrent sessions must commit this one first;
    SQLite holds the write lock for the whole transaction.
    """
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def seed(db) -> SeedData:
    user = User(username="sales.manager", first_name="Sales", last_name="Manager", role="manager")
    customer = Customer(name="Gulf Trading WLL", email="buyer@gulftrading.test", payment_terms="Net 30")
    supplier_a = Supplier(
        name="Al Noor Supplies",
        contact_person="Hassan",
        email="orders@alnoor.test",
        phone="+973 1700 0001",
        payment_terms="Net 45",
    )
    supplier_b = Supplier(name="Manama Industrial", email="po@manama-ind.test")
    db.add_all([user, customer, supplier_a, supplier_b])
    await db.flush()

    items = [
        Item(supplier_code="AN-100", barcode="6290000000017", description="Steel bracket", supplier_id=supplier_a.id),
        Item(supplier_code="AN-200", barcode="6290000000024", description="Hex bolt M10", supplier_id=supplier_a.id),
        Item(supplier_code="MI-300", barcode="6290000000031", description="Copper pipe 15mm", supplier_id=supplier_b.id),
    ]
    db.add_all(items)
    await db.commit()

    return SeedData(
        user_id=user.id,
        customer_id=customer.id,
        supplier_a_id=supplier_a.id,
        supplier_b_id=supplier_b.id,
        item_ids=[item.id for item in items],
    )


# =============================================================================
# Document builders
# =============================================================================


class DocumentFactory:
    """Builds documents through the services, the way callers would."""

    def __init__(self, db: AsyncSession, seed: SeedData):
        self.db = db
        self.seed = seed

    def line(self, index: int, quantity: int, unit_price: str, description: Optional[str] = None) -> Dict:
        return {
            "item_id": self.seed.item_ids[index],
            "description": description or f"Line for item {index}",
            "quantity": quantity,
            "unit_price": Decimal(unit_price),
        }

    async def quotation(self, lines: Optional[List[Dict]] = None, **kwargs) -> Quotation:
        lines = lines or [self.line(0, 10, "10.00")]
        return await QuotationService(self.db).create_quotation(
            customer_id=self.seed.customer_id,
            items=lines,
            user_id=self.seed.user_id,
            **kwargs,
        )

    async def accepted_quotation(self, lines: Optional[List[Dict]] = None, **kwargs) -> Quotation:
        quotation = await self.quotation(lines, **kwargs)
        return await QuotationService(self.db).approve(quotation.id, user_id=self.seed.user_id)

    async def sales_order(self, lines: Optional[List[Dict]] = None, **kwargs) -> SalesOrder:
        quotation = await self.accepted_quotation(lines, **kwargs)
        return await SalesOrderService(self.db).create_from_quotation(quotation.id, user_id=self.seed.user_id)

    async def delivery(self, order: SalesOrder, quantities: Optional[List[int]] = None) -> Delivery:
        """Delivery of every order line; quantities override delivered amounts per line."""
        items = []
        for index, so_item in enumerate(order.items):
            delivered = quantities[index] if quantities is not None else so_item.quantity
            items.append(DeliveryItem(
                sales_order_item_id=so_item.id,
                item_id=so_item.item_id,
                description=so_item.description,
                ordered_quantity=so_item.quantity,
                picked_quantity=delivered,
                delivered_quantity=delivered,
            ))
        delivery = Delivery(
            delivery_number=generate_number("DN"),
            sales_order_id=order.id,
            status="Delivered",
            items=items,
        )
        self.db.add(delivery)
        await self.db.flush()
        return delivery


@pytest.fixture
def docs(db, seed) -> DocumentFactory:
    return DocumentFactory(db, seed)
