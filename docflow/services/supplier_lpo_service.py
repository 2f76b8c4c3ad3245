"""
Supplier LPO Service.

Derives LPOs from sales orders, amends them under the lineage lock, and
drives the approval / send / confirm / receive workflow through
supplier_lpo_state_machine.

Grouping:
    supplier     - items of all given sales orders that resolve to the same
                   supplier (and currency) share one LPO
    sales_order  - LPOs never span sales orders; an order whose items come
                   from several suppliers still yields one LPO per supplier
"""
import uuid
import logging
from decimal import Decimal
from typing import Optional, List, Dict, Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from docflow.config import settings
from docflow.core.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from docflow.database import flush_changes
from docflow.models.sales_order import SalesOrder
from docflow.models.supplier_lpo import (
    SupplierLpo,
    SupplierLpoItem,
    LpoAmendmentType,
    LpoItemDeliveryStatus,
    LpoSourceType,
)
from docflow.services.audit_service import AuditService
from docflow.services.currency_service import CurrencyService, money, resolve_base_currency
from docflow.services.document_sequence_service import generate_number
from docflow.services.lineage_service import LineageService, amendment_number, translate_amendment_error
from docflow.services.reference_resolver import ReferenceResolver
from docflow.services.sales_order_service import validate_reason
from docflow.services.supplier_lpo_state_machine import (
    LpoStatus,
    LpoApprovalStatus,
    can_cancel,
    can_receive_goods,
    get_transition_action,
    transition_approval,
    transition_lpo,
)


logger = logging.getLogger(__name__)


ENTITY = "SUPPLIER_LPO"

GROUP_BY_OPTIONS = ("supplier", "sales_order")

AMENDMENT_TYPES = [t.value for t in LpoAmendmentType]


def item_delivery_status(item: SupplierLpoItem) -> str:
    if item.received_quantity <= 0:
        return LpoItemDeliveryStatus.PENDING.value
    if item.pending_quantity > 0:
        return LpoItemDeliveryStatus.PARTIAL.value
    return LpoItemDeliveryStatus.COMPLETE.value


def needs_approval(total: Decimal) -> bool:
    threshold = settings.LPO_APPROVAL_THRESHOLD
    return threshold is not None and total >= threshold


class SupplierLpoService:
    """Service for supplier LPO derivation, amendment and workflow."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)
        self.lineage = LineageService(db)
        self.currency = CurrencyService(db)

    async def get_lpo(self, lpo_id: uuid.UUID) -> SupplierLpo:
        lpo = await self.db.scalar(select(SupplierLpo).where(SupplierLpo.id == lpo_id))
        if lpo is None:
            raise NotFoundError("Supplier LPO", lpo_id)
        return lpo

    # ==================== Derivation ====================

    async def create_from_sales_orders(
        self,
        sales_order_ids: List[uuid.UUID],
        group_by: str = "supplier",
        user_id: Optional[uuid.UUID] = None,
    ) -> List[SupplierLpo]:
        """
        Derive Draft LPOs from sales orders.

        Every LPO item starts with pending_quantity = quantity and
        received_quantity = 0; LPO totals are the sum of item costs.

        Raises:
            ValidationError: empty id list, unknown group_by, or an item
                without a resolvable product/supplier
            NotFoundError: a sales order id does not exist
        """
        if not sales_order_ids:
            raise ValidationError("At least one sales order is required", fields=["sales_order_ids"])
        if group_by not in GROUP_BY_OPTIONS:
            raise ValidationError(
                f"Invalid group_by '{group_by}'. Allowed: {', '.join(GROUP_BY_OPTIONS)}",
                fields=["group_by"],
            )

        ordered_ids = list(dict.fromkeys(sales_order_ids))
        result = await self.db.execute(select(SalesOrder).where(SalesOrder.id.in_(ordered_ids)))
        orders = {order.id: order for order in result.scalars().all()}
        for order_id in ordered_ids:
            if order_id not in orders:
                raise NotFoundError("Sales order", order_id)

        resolver = ReferenceResolver(self.db)
        actor = await self.audit.resolve_actor(user_id)

        # group key -> {"supplier", "currency", "orders", "lines"}
        groups: Dict[tuple, Dict[str, Any]] = {}
        for order_id in ordered_ids:
            order = orders[order_id]
            if not order.items:
                raise ValidationError(
                    f"Sales order {order.order_number} has no items", fields=["sales_order_ids"]
                )
            for index, so_item in enumerate(order.items):
                field = f"{order.order_number}.items[{index}]"
                product = await resolver.resolve_item(so_item.item_id, f"{field}.item_id", so_item.description)
                supplier = await resolver.resolve_supplier(product.supplier_id, f"{field}.supplier_id")

                if group_by == "supplier":
                    key = (supplier.id, order.currency)
                else:
                    key = (order.id, supplier.id)
                group = groups.setdefault(key, {
                    "supplier": supplier,
                    "currency": order.currency,
                    "orders": [],
                    "lines": [],
                })
                if order.id not in group["orders"]:
                    group["orders"].append(order.id)
                group["lines"].append((so_item, product))

        lpos = []
        for group in groups.values():
            lpo = self._build_lpo(group, group_by, actor)
            self.db.add(lpo)
            lpos.append(lpo)
        await flush_changes(self.db, "Create supplier LPOs")

        for lpo in lpos:
            await self.audit.log_event(
                ENTITY, lpo.id, "DERIVED", user_id,
                {"sales_order_ids": lpo.source_sales_order_ids},
                {"lpo_number": lpo.lpo_number, "total_amount": str(lpo.total_amount)},
            )
            logger.info(
                f"Created LPO {lpo.lpo_number} ({len(lpo.items)} items, total {lpo.total_amount}) "
                f"from {len(lpo.source_sales_order_ids)} sales order(s)"
            )
        return lpos

    def _build_lpo(self, group: Dict[str, Any], group_by: str, actor: Optional[uuid.UUID]) -> SupplierLpo:
        supplier = group["supplier"]
        items = []
        for line_number, (so_item, product) in enumerate(group["lines"], start=1):
            unit_cost = money(so_item.unit_price)
            items.append(SupplierLpoItem(
                sales_order_item_id=so_item.id,
                item_id=product.id,
                line_number=line_number,
                supplier_code=product.supplier_code,
                barcode=product.barcode,
                item_description=so_item.description or product.description,
                quantity=so_item.quantity,
                received_quantity=0,
                pending_quantity=so_item.quantity,
                unit_cost=unit_cost,
                total_cost=money(unit_cost * so_item.quantity),
                delivery_status=LpoItemDeliveryStatus.PENDING.value,
            ))

        total = money(sum((item.total_cost for item in items), Decimal("0")))
        requires_approval = needs_approval(total)
        currency = group["currency"] or settings.DEFAULT_CURRENCY

        lpo = SupplierLpo(
            lpo_number=generate_number("LPO"),
            supplier_id=supplier.id,
            status=LpoStatus.DRAFT,
            source_type=LpoSourceType.AUTO.value,
            source_sales_order_ids=[str(order_id) for order_id in group["orders"]],
            grouping_criteria=group_by,
            currency=currency,
            base_currency=resolve_base_currency(currency),
            exchange_rate=Decimal("1"),
            subtotal=total,
            tax_amount=Decimal("0"),
            total_amount=total,
            supplier_contact_person=supplier.contact_person,
            supplier_email=supplier.email,
            supplier_phone=supplier.phone,
            payment_terms=supplier.payment_terms,
            requires_approval=requires_approval,
            approval_status=LpoApprovalStatus.PENDING if requires_approval else LpoApprovalStatus.NOT_REQUIRED,
            created_by=actor,
            items=items,
        )
        self.currency.apply_base_amounts(lpo)
        return lpo

    # ==================== Amendment ====================

    async def create_amendment(
        self,
        parent_lpo_id: uuid.UUID,
        reason: str,
        amendment_type: str,
        user_id: Optional[uuid.UUID] = None,
    ) -> SupplierLpo:
        """
        Amend an LPO. Same lineage rules as sales order amendments.

        The amendment starts in Draft; approval restarts at Pending when the
        LPO requires approval.
        """
        reason = validate_reason(reason)
        if amendment_type not in AMENDMENT_TYPES:
            raise ValidationError(
                f"Invalid amendment type '{amendment_type}'. Allowed: {', '.join(AMENDMENT_TYPES)}",
                fields=["amendment_type"],
            )

        try:
            base = await self.get_lpo(parent_lpo_id)
            actor = await self.audit.resolve_actor(user_id)
            root, sequence = await self.lineage.allocate_amendment_sequence(SupplierLpo, base.id)

            amendment = SupplierLpo(
                lpo_number=amendment_number(root.lpo_number, sequence),
                parent_lpo_id=root.id,
                amendment_sequence=sequence,
                version=sequence + 1,
                amendment_reason=reason,
                amendment_type=amendment_type,
                supplier_id=base.supplier_id,
                status=LpoStatus.DRAFT,
                expected_delivery_date=base.expected_delivery_date,
                source_type=base.source_type,
                source_sales_order_ids=list(base.source_sales_order_ids or []),
                grouping_criteria=base.grouping_criteria,
                currency=base.currency,
                exchange_rate=base.exchange_rate,
                base_currency=base.base_currency,
                subtotal=base.subtotal,
                tax_amount=base.tax_amount,
                total_amount=base.total_amount,
                supplier_contact_person=base.supplier_contact_person,
                supplier_email=base.supplier_email,
                supplier_phone=base.supplier_phone,
                payment_terms=base.payment_terms,
                delivery_terms=base.delivery_terms,
                terms_and_conditions=base.terms_and_conditions,
                special_instructions=base.special_instructions,
                requires_approval=base.requires_approval,
                approval_status=(
                    LpoApprovalStatus.PENDING if base.requires_approval else LpoApprovalStatus.NOT_REQUIRED
                ),
                created_by=actor,
                items=[
                    SupplierLpoItem(
                        sales_order_item_id=item.sales_order_item_id,
                        item_id=item.item_id,
                        line_number=item.line_number,
                        supplier_code=item.supplier_code,
                        barcode=item.barcode,
                        item_description=item.item_description,
                        quantity=item.quantity,
                        received_quantity=item.received_quantity,
                        pending_quantity=item.pending_quantity,
                        unit_cost=item.unit_cost,
                        total_cost=item.total_cost,
                        delivery_status=item.delivery_status,
                        urgency=item.urgency,
                        special_instructions=item.special_instructions,
                    )
                    for item in base.items
                ],
            )
            self.currency.apply_base_amounts(amendment)
            self.db.add(amendment)
            await self.db.flush()
        except (OperationalError, IntegrityError, StaleDataError) as e:
            raise translate_amendment_error(e) from e

        await self.audit.log_event(
            ENTITY, amendment.id, "AMENDED", user_id,
            {"lpo_number": base.lpo_number},
            {
                "lpo_number": amendment.lpo_number,
                "amendment_sequence": sequence,
                "amendment_type": amendment_type,
                "reason": reason,
            },
        )
        logger.info(f"LPO {base.lpo_number} amended as {amendment.lpo_number} ({amendment_type})")
        return amendment

    async def get_lineage(self, lpo_id: uuid.UUID) -> List[SupplierLpo]:
        return await self.lineage.get_lineage(SupplierLpo, lpo_id)

    # ==================== Approval ====================

    async def submit_for_approval(self, lpo_id: uuid.UUID, user_id: Optional[uuid.UUID] = None) -> SupplierLpo:
        return await self._change_approval(lpo_id, LpoApprovalStatus.PENDING, user_id)

    async def approve(
        self,
        lpo_id: uuid.UUID,
        user_id: Optional[uuid.UUID] = None,
        notes: Optional[str] = None,
    ) -> SupplierLpo:
        return await self._change_approval(lpo_id, LpoApprovalStatus.APPROVED, user_id, notes)

    async def reject(
        self,
        lpo_id: uuid.UUID,
        notes: str,
        user_id: Optional[uuid.UUID] = None,
    ) -> SupplierLpo:
        return await self._change_approval(lpo_id, LpoApprovalStatus.REJECTED, user_id, notes)

    async def _change_approval(
        self,
        lpo_id: uuid.UUID,
        new_status: str,
        user_id: Optional[uuid.UUID],
        notes: Optional[str] = None,
    ) -> SupplierLpo:
        lpo = await self.get_lpo(lpo_id)
        old_status = lpo.approval_status
        actor = await self.audit.resolve_actor(user_id)

        transition_approval(lpo, new_status, actor, notes)
        await flush_changes(self.db, "Update LPO approval")

        await self.audit.log_event(
            ENTITY, lpo.id, "APPROVAL_CHANGED", user_id,
            {"approval_status": old_status},
            {"approval_status": new_status, "notes": notes},
        )
        logger.info(f"LPO {lpo.lpo_number}: approval {old_status} -> {new_status}")
        return lpo

    # ==================== Status workflow ====================

    async def send_to_supplier(self, lpo_id: uuid.UUID, user_id: Optional[uuid.UUID] = None) -> SupplierLpo:
        """Draft -> Sent. Blocked until Approved when approval is required."""
        lpo = await self.get_lpo(lpo_id)
        if lpo.status != LpoStatus.DRAFT:
            raise InvalidTransitionError(
                "Supplier LPO", lpo.status, LpoStatus.SENT, [], reason="only Draft LPOs can be sent"
            )
        return await self._transition(lpo, LpoStatus.SENT, user_id)

    async def confirm_by_supplier(
        self,
        lpo_id: uuid.UUID,
        confirmation_reference: Optional[str] = None,
        user_id: Optional[uuid.UUID] = None,
    ) -> SupplierLpo:
        """Sent -> Confirmed, recording the supplier's reference."""
        lpo = await self.get_lpo(lpo_id)
        if lpo.status != LpoStatus.SENT:
            raise InvalidTransitionError(
                "Supplier LPO", lpo.status, LpoStatus.CONFIRMED, [], reason="only Sent LPOs can be confirmed"
            )
        return await self._transition(lpo, LpoStatus.CONFIRMED, user_id, reference=confirmation_reference)

    async def cancel(
        self,
        lpo_id: uuid.UUID,
        reason: Optional[str] = None,
        user_id: Optional[uuid.UUID] = None,
    ) -> SupplierLpo:
        lpo = await self.get_lpo(lpo_id)
        if not can_cancel(lpo.status):
            raise InvalidTransitionError("Supplier LPO", lpo.status, LpoStatus.CANCELLED, [])
        if reason:
            lpo.special_instructions = f"{lpo.special_instructions or ''}\nCancellation Reason: {reason}".strip()
        return await self._transition(lpo, LpoStatus.CANCELLED, user_id)

    async def receive_goods(
        self,
        lpo_id: uuid.UUID,
        quantities: Dict[uuid.UUID, int],
        user_id: Optional[uuid.UUID] = None,
    ) -> SupplierLpo:
        """
        Record received quantities per LPO item.

        The LPO moves to Received once nothing is pending. Quantities are
        validated in full before any item is updated.
        """
        lpo = await self.get_lpo(lpo_id)
        if not can_receive_goods(lpo.status):
            raise InvalidTransitionError(
                "Supplier LPO", lpo.status, LpoStatus.RECEIVED, [],
                reason="goods can only be received against Sent or Confirmed LPOs",
            )
        if not quantities:
            raise ValidationError("No quantities given", fields=["quantities"])

        # Same item may arrive keyed as UUID and as str; sum before validating
        totals: Dict[uuid.UUID, int] = {}
        for raw_id, raw_qty in quantities.items():
            try:
                item_id = raw_id if isinstance(raw_id, uuid.UUID) else uuid.UUID(str(raw_id))
            except ValueError:
                raise ValidationError(f"Invalid LPO item id '{raw_id}'", fields=[f"quantities.{raw_id}"])
            try:
                qty = int(raw_qty)
            except (TypeError, ValueError):
                raise ValidationError(
                    f"Invalid quantity '{raw_qty}' for item {item_id}", fields=[f"quantities.{item_id}"]
                )
            totals[item_id] = totals.get(item_id, 0) + qty

        items_by_id = {item.id: item for item in lpo.items}
        updates = []
        for item_id, qty in totals.items():
            item = items_by_id.get(item_id)
            if item is None:
                raise NotFoundError("Supplier LPO item", item_id)
            if qty <= 0 or qty > item.pending_quantity:
                raise ValidationError(
                    f"Item {item.line_number}: received quantity must be between 1 and {item.pending_quantity}",
                    fields=[f"quantities.{item_id}"],
                )
            updates.append((item, qty))

        for item, qty in updates:
            item.received_quantity += qty
            item.pending_quantity = item.quantity - item.received_quantity
            item.delivery_status = item_delivery_status(item)

        await self.audit.log_event(
            ENTITY, lpo.id, "GOODS_RECEIVED", user_id,
            None, {str(item.id): qty for item, qty in updates},
        )
        logger.info(f"LPO {lpo.lpo_number}: received {sum(q for _, q in updates)} units")

        if lpo.is_fully_received:
            return await self._transition(lpo, LpoStatus.RECEIVED, user_id)
        await flush_changes(self.db, "Receive LPO goods")
        return lpo

    async def _transition(
        self,
        lpo: SupplierLpo,
        new_status: str,
        user_id: Optional[uuid.UUID],
        reference: Optional[str] = None,
    ) -> SupplierLpo:
        old_status = lpo.status
        transition_lpo(lpo, new_status, user_id, reference=reference)
        await flush_changes(self.db, get_transition_action(old_status, new_status))

        await self.audit.log_status_change(ENTITY, lpo.id, old_status, new_status, user_id)
        logger.info(f"LPO {lpo.lpo_number}: {old_status} -> {new_status}")
        return lpo

    async def update_currency(
        self,
        lpo_id: uuid.UUID,
        new_currency: str,
        rate: Decimal,
        user_id: Optional[uuid.UUID] = None,
    ) -> SupplierLpo:
        lpo = await self.get_lpo(lpo_id)
        old = {"currency": lpo.currency, "exchange_rate": str(lpo.exchange_rate)}
        await self.currency.update_document_currency(lpo, new_currency, rate)

        await self.audit.log_event(
            ENTITY, lpo.id, "CURRENCY_CHANGED", user_id,
            old, {"currency": lpo.currency, "exchange_rate": str(lpo.exchange_rate)},
        )
        return lpo
