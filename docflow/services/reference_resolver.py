"""
Resolution of product and supplier references during derivations.

By default a missing reference is a ValidationError naming the offending
field. With ALLOW_REFERENTIAL_FALLBACK enabled the resolver substitutes the
first existing row, or creates a placeholder when the table is empty, and
logs a warning each time it does so.
"""
import uuid
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from docflow.config import settings
from docflow.core.exceptions import ValidationError
from docflow.models.master_data import Item, Supplier


logger = logging.getLogger(__name__)


class ReferenceResolver:

    def __init__(self, db: AsyncSession, allow_fallback: Optional[bool] = None):
        self.db = db
        self.allow_fallback = settings.ALLOW_REFERENTIAL_FALLBACK if allow_fallback is None else allow_fallback

    async def resolve_item(self, item_id: Optional[uuid.UUID], field: str, description: Optional[str] = None) -> Item:
        if item_id is not None:
            item = await self.db.get(Item, item_id)
            if item is not None:
                return item

        if not self.allow_fallback:
            raise ValidationError(
                f"{field}: product {item_id} not found" if item_id else f"{field}: no product reference",
                fields=[field],
            )

        item = await self.db.scalar(select(Item).order_by(Item.created_at, Item.id).limit(1))
        if item is None:
            item = Item(
                supplier_code="AUTO-SUP",
                description=description or "Auto-generated item",
            )
            self.db.add(item)
            await self.db.flush()
            logger.warning(f"{field}: no products exist, synthesized placeholder {item.id}")
        else:
            logger.warning(f"{field}: product {item_id} unresolved, substituted {item.id}")
        return item

    async def resolve_supplier(self, supplier_id: Optional[uuid.UUID], field: str) -> Supplier:
        if supplier_id is not None:
            supplier = await self.db.get(Supplier, supplier_id)
            if supplier is not None:
                return supplier

        if not self.allow_fallback:
            raise ValidationError(
                f"{field}: supplier {supplier_id} not found" if supplier_id else f"{field}: no supplier reference",
                fields=[field],
            )

        supplier = await self.db.scalar(select(Supplier).order_by(Supplier.created_at, Supplier.id).limit(1))
        if supplier is None:
            supplier = Supplier(name="Auto Supplier")
            self.db.add(supplier)
            await self.db.flush()
            logger.warning(f"{field}: no suppliers exist, synthesized placeholder {supplier.id}")
        else:
            logger.warning(f"{field}: supplier {supplier_id} unresolved, substituted {supplier.id}")
        return supplier
