"""
Sales Order Service.

Derivation from accepted quotations, locked amendments, customer LPO
validation and lineage listing.
"""
import uuid
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, List

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from docflow.config import settings
from docflow.core.exceptions import ConflictError, NotFoundError, ValidationError
from docflow.database import flush_changes
from docflow.models.quotation import QuotationStatus
from docflow.models.sales_order import (
    SalesOrder,
    SalesOrderItem,
    SalesOrderStatus,
    CustomerLpoValidationStatus,
)
from docflow.services.audit_service import AuditService
from docflow.services.currency_service import CurrencyService, money, resolve_base_currency
from docflow.services.document_sequence_service import DocumentSequenceService
from docflow.services.lineage_service import LineageService, amendment_number, translate_amendment_error
from docflow.services.quotation_service import QuotationService
from docflow.services.reference_resolver import ReferenceResolver


logger = logging.getLogger(__name__)


ENTITY = "SALES_ORDER"

LPO_VALIDATION_STATUSES = [s.value for s in CustomerLpoValidationStatus]


def validate_reason(reason: Optional[str]) -> str:
    reason = (reason or "").strip()
    if len(reason) < settings.AMENDMENT_REASON_MIN_LENGTH:
        raise ValidationError(
            f"Amendment reason must be at least {settings.AMENDMENT_REASON_MIN_LENGTH} characters",
            fields=["reason"],
        )
    return reason


def validate_lpo_status_change(current: str, new: str, override: bool) -> None:
    """
    Customer LPO validation gate.

    Any of Pending/Approved/Rejected may be set, except that an Approved
    validation is only downgraded with an explicit override.
    """
    if new not in LPO_VALIDATION_STATUSES:
        raise ValidationError(
            f"Invalid LPO validation status '{new}'. Allowed: {', '.join(LPO_VALIDATION_STATUSES)}",
            fields=["status"],
        )
    if (
        current == CustomerLpoValidationStatus.APPROVED.value
        and new != CustomerLpoValidationStatus.APPROVED.value
        and not override
    ):
        raise ConflictError(
            f"Customer LPO is already Approved; changing it to '{new}' requires override",
            detail={"current_status": current, "target_status": new},
        )


def copy_items(order: SalesOrder) -> List[SalesOrderItem]:
    return [
        SalesOrderItem(
            item_id=item.item_id,
            quotation_item_id=item.quotation_item_id,
            line_number=item.line_number,
            description=item.description,
            quantity=item.quantity,
            unit_price=item.unit_price,
            total_price=item.total_price,
            delivery_requirement=item.delivery_requirement,
            special_instructions=item.special_instructions,
        )
        for item in order.items
    ]


class SalesOrderService:
    """Service for sales order derivation and versioning."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)
        self.lineage = LineageService(db)
        self.currency = CurrencyService(db)

    async def get_order(self, order_id: uuid.UUID) -> SalesOrder:
        order = await self.db.scalar(select(SalesOrder).where(SalesOrder.id == order_id))
        if order is None:
            raise NotFoundError("Sales order", order_id)
        return order

    async def create_from_quotation(
        self,
        quotation_id: uuid.UUID,
        user_id: Optional[uuid.UUID] = None,
    ) -> SalesOrder:
        """
        Derive a Draft sales order from an Accepted quotation.

        Item totals are recomputed; the order total is their sum.

        Raises:
            NotFoundError: quotation missing
            ConflictError: quotation not Accepted or already converted
            ValidationError: a quotation item has no resolvable product
        """
        quotation = await QuotationService(self.db).get_quotation(quotation_id)

        if quotation.status != QuotationStatus.ACCEPTED.value:
            raise ConflictError(
                f"Quotation {quotation.quote_number} is '{quotation.status}'; only Accepted quotations can be converted",
                detail={"quotation_id": str(quotation.id), "status": quotation.status},
            )

        existing = await self.db.scalar(
            select(SalesOrder.order_number).where(SalesOrder.quotation_id == quotation.id).limit(1)
        )
        if existing:
            raise ConflictError(
                f"Quotation {quotation.quote_number} already has sales order {existing}",
                detail={"quotation_id": str(quotation.id), "order_number": existing},
            )

        resolver = ReferenceResolver(self.db)
        items = []
        for index, q_item in enumerate(quotation.items):
            product = await resolver.resolve_item(
                q_item.item_id, f"items[{index}].item_id", description=q_item.description
            )
            unit_price = money(q_item.unit_price)
            items.append(SalesOrderItem(
                item_id=product.id,
                quotation_item_id=q_item.id,
                line_number=index + 1,
                description=q_item.description,
                quantity=q_item.quantity,
                unit_price=unit_price,
                total_price=money(unit_price * q_item.quantity),
            ))

        total = money(sum((item.total_price for item in items), Decimal("0")))
        if total != money(quotation.total_amount):
            logger.warning(
                f"Quotation {quotation.quote_number} total {quotation.total_amount} differs from "
                f"item sum {total}; sales order uses the item sum"
            )

        order_number = await DocumentSequenceService(self.db).get_next_number("SO")
        currency = quotation.currency or settings.DEFAULT_CURRENCY
        order = SalesOrder(
            order_number=order_number,
            quotation_id=quotation.id,
            customer_id=quotation.customer_id,
            status=SalesOrderStatus.DRAFT.value,
            currency=currency,
            base_currency=resolve_base_currency(currency),
            exchange_rate=Decimal("1"),
            subtotal=total,
            tax_amount=Decimal("0"),
            total_amount=total,
            source_type="Auto",
            created_by=await self.audit.resolve_actor(user_id),
            items=items,
        )
        self.currency.apply_base_amounts(order)
        self.db.add(order)
        await flush_changes(self.db, "Create sales order")

        await self.audit.log_event(
            ENTITY, order.id, "DERIVED", user_id,
            {"quotation_id": str(quotation.id)},
            {"order_number": order.order_number, "total_amount": str(order.total_amount)},
        )
        logger.info(f"Created sales order {order.order_number} from quotation {quotation.quote_number}")
        return order

    async def create_amendment(
        self,
        parent_order_id: uuid.UUID,
        reason: str,
        user_id: Optional[uuid.UUID] = None,
    ) -> SalesOrder:
        """
        Amend a sales order.

        The amendment copies the given order's content but attaches to the
        lineage root, with the next free sequence and number <root>-A<n>.
        Allocation and insert share one transaction.

        Raises:
            ValidationError: reason too short
            NotFoundError: order missing
            ConflictError: lock timeout or sequence collision (retryable)
        """
        reason = validate_reason(reason)

        try:
            base = await self.get_order(parent_order_id)
            actor = await self.audit.resolve_actor(user_id)
            root, sequence = await self.lineage.allocate_amendment_sequence(SalesOrder, base.id)

            notes = f"{base.notes or ''}\nAmendment Reason: {reason}".strip()
            amendment = SalesOrder(
                order_number=amendment_number(root.order_number, sequence),
                parent_order_id=root.id,
                amendment_sequence=sequence,
                version=sequence + 1,
                amendment_reason=reason,
                quotation_id=base.quotation_id,
                customer_id=base.customer_id,
                status=SalesOrderStatus.DRAFT.value,
                customer_po_number=base.customer_po_number,
                currency=base.currency,
                exchange_rate=base.exchange_rate,
                base_currency=base.base_currency,
                subtotal=base.subtotal,
                tax_amount=base.tax_amount,
                total_amount=base.total_amount,
                payment_terms=base.payment_terms,
                delivery_instructions=base.delivery_instructions,
                notes=notes,
                customer_lpo_required=base.customer_lpo_required,
                customer_lpo_validation_status=CustomerLpoValidationStatus.PENDING.value,
                source_type=base.source_type,
                created_by=actor,
                items=copy_items(base),
            )
            self.currency.apply_base_amounts(amendment)
            self.db.add(amendment)
            await self.db.flush()
        except (OperationalError, IntegrityError, StaleDataError) as e:
            raise translate_amendment_error(e) from e

        await self.audit.log_event(
            ENTITY, amendment.id, "AMENDED", user_id,
            {"order_number": base.order_number},
            {"order_number": amendment.order_number, "amendment_sequence": sequence, "reason": reason},
        )
        logger.info(f"Sales order {base.order_number} amended as {amendment.order_number}")
        return amendment

    async def validate_customer_lpo(
        self,
        order_id: uuid.UUID,
        status: str,
        validated_by: Optional[uuid.UUID],
        notes: Optional[str] = None,
        override: bool = False,
    ) -> SalesOrder:
        """Record validation of the customer's purchase order document."""
        order = await self.get_order(order_id)
        old_status = order.customer_lpo_validation_status
        validate_lpo_status_change(old_status, status, override)

        order.customer_lpo_validation_status = status
        order.customer_lpo_validated_by = await self.audit.resolve_actor(validated_by)
        order.customer_lpo_validated_at = datetime.now(timezone.utc)
        order.customer_lpo_validation_notes = notes
        await flush_changes(self.db, "Validate customer LPO")

        await self.audit.log_event(
            ENTITY, order.id, "LPO_VALIDATED", validated_by,
            {"customer_lpo_validation_status": old_status},
            {"customer_lpo_validation_status": status, "override": override, "notes": notes},
        )
        logger.info(f"Sales order {order.order_number}: customer LPO {old_status} -> {status}")
        return order

    async def get_lineage(self, order_id: uuid.UUID) -> List[SalesOrder]:
        return await self.lineage.get_lineage(SalesOrder, order_id)

    async def update_currency(
        self,
        order_id: uuid.UUID,
        new_currency: str,
        rate: Decimal,
        user_id: Optional[uuid.UUID] = None,
    ) -> SalesOrder:
        order = await self.get_order(order_id)
        old = {"currency": order.currency, "exchange_rate": str(order.exchange_rate)}
        await self.currency.update_document_currency(order, new_currency, rate)

        await self.audit.log_event(
            ENTITY, order.id, "CURRENCY_CHANGED", user_id,
            old, {"currency": order.currency, "exchange_rate": str(order.exchange_rate)},
        )
        return order
