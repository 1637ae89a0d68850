"""
Vendor Assignment Engine - routes orders (or subsets of their items) to vendors.

Rules:
- At most one VendorAssignment per (order, vendor). Enforced by an engine
  pre-check plus the uq_vendor_assignments_order_vendor constraint; a race
  that trips the constraint surfaces as DuplicateAssignmentError.
- An OrderItem is covered by at most one ItemAssignment at a time. A
  non-cancelled full assignment covers every item of the order, so it
  cannot coexist with item links or with another open full assignment.
- Commission: full   -> order.total_amount * rate / 100
              partial -> sum(item amounts) * rate / 100
  where an item amount is total_price when the whole quantity is routed,
  otherwise unit_price * quantity. Money is rounded half-up to cents.
- Removing an item linkage leaves the parent assignment open (possibly
  empty) and does not touch its commission.

Default-vendor routing (auto_assign_order) only uses ProductVendorAssignment
rows marked is_default; items without a default vendor stay unassigned.
"""
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fulfillment.exceptions import (
    DuplicateAssignmentError, FulfillmentError, InvalidAssignmentError, NotFoundError
)
from fulfillment.models.core import (
    ItemAssignment, Order, OrderItem, OrderStatusHistory, ProductVendorAssignment,
    SyncedProduct, Vendor, VendorAssignment
)
from fulfillment.models.enums import AssignmentStatus, AssignmentType, OrderStatus
from fulfillment.services.state_machine import TERMINAL_ORDER_STATUSES
from fulfillment.utils.normalization import normalize_sku, to_money

logger = logging.getLogger(__name__)

AUTO_ASSIGN_ACTOR = "system:auto-assign"


@dataclass
class BulkAssignResult:
    succeeded: List[int] = field(default_factory=list)
    failed: Dict[int, Dict[str, str]] = field(default_factory=dict)


@dataclass
class AutoAssignResult:
    order_id: int
    assignments: List[VendorAssignment] = field(default_factory=list)
    unassigned_item_ids: List[int] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)


def compute_commission(base_amount, commission_rate) -> Decimal:
    return to_money(to_money(base_amount) * Decimal(str(commission_rate or 0)) / Decimal("100"))


class AssignmentService:
    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _get_order(self, order_id: int) -> Order:
        order = self.db.query(Order).filter(Order.id == order_id).first()
        if not order:
            raise NotFoundError("Order", order_id)
        return order

    def _get_vendor(self, vendor_id: int) -> Vendor:
        vendor = self.db.query(Vendor).filter(Vendor.id == vendor_id).first()
        if not vendor:
            raise NotFoundError("Vendor", vendor_id)
        return vendor

    def _existing_assignment(self, order_id: int, vendor_id: int) -> Optional[VendorAssignment]:
        return self.db.query(VendorAssignment).filter(
            VendorAssignment.order_id == order_id,
            VendorAssignment.vendor_id == vendor_id
        ).first()

    def _open_full_assignment(self, order_id: int) -> Optional[VendorAssignment]:
        return self.db.query(VendorAssignment).filter(
            VendorAssignment.order_id == order_id,
            VendorAssignment.assignment_type == AssignmentType.FULL,
            VendorAssignment.status != AssignmentStatus.CANCELLED
        ).first()

    def _ensure_no_coverage(self, order: Order):
        """A full assignment covers every item, so nothing on the order may be covered yet."""
        full = self._open_full_assignment(order.id)
        if full is not None:
            raise DuplicateAssignmentError(
                f"Order {order.id} is already fully assigned to vendor {full.vendor_id}",
                {"order_id": order.id, "vendor_assignment_id": full.id}
            )
        covered = self.db.query(ItemAssignment).join(
            OrderItem, ItemAssignment.order_item_id == OrderItem.id
        ).filter(OrderItem.order_id == order.id).first()
        if covered is not None:
            raise DuplicateAssignmentError(
                f"Order item {covered.order_item_id} is already covered by assignment {covered.vendor_assignment_id}",
                {"order_item_id": covered.order_item_id, "vendor_assignment_id": covered.vendor_assignment_id}
            )

    # ------------------------------------------------------------------
    # Single assignment
    # ------------------------------------------------------------------

    def assign_vendor(
        self,
        order_id: int,
        vendor_id: int,
        assignment_type=AssignmentType.FULL,
        items: Optional[List[Any]] = None,
        assigned_by: Optional[str] = None,
        notes: Optional[str] = None,
        commit: bool = True,
    ) -> VendorAssignment:
        """
        Create a full or partial assignment of an order to a vendor.

        Args:
            items: for partial assignments, objects with `order_item_id` and an
                optional `quantity` (defaults to the whole item quantity)
            commit: when False the caller owns the transaction (used inside
                savepoints by bulk and auto assignment)

        Raises:
            NotFoundError: order, vendor or an item does not resolve
            DuplicateAssignmentError: vendor already assigned / item already covered
            InvalidAssignmentError: empty partial, bad quantity, closed order
        """
        order = self._get_order(order_id)
        vendor = self._get_vendor(vendor_id)
        assignment_type = AssignmentType(assignment_type)

        if OrderStatus(order.order_status) in TERMINAL_ORDER_STATUSES:
            raise InvalidAssignmentError(
                f"Order {order.id} is {OrderStatus(order.order_status).value}; it cannot be assigned",
                {"order_id": order.id, "order_status": OrderStatus(order.order_status).value}
            )

        if self._existing_assignment(order.id, vendor.id):
            raise DuplicateAssignmentError(
                f"Vendor {vendor.id} is already assigned to order {order.id}",
                {"order_id": order.id, "vendor_id": vendor.id}
            )

        item_rows = []
        if assignment_type == AssignmentType.FULL:
            self._ensure_no_coverage(order)
            base_amount = to_money(order.total_amount)
        else:
            item_rows = self._resolve_items(order, items)
            base_amount = to_money(sum((amount for _, _, amount in item_rows), Decimal("0")))

        commission = compute_commission(base_amount, vendor.commission_rate)

        assignment = VendorAssignment(
            order_id=order.id,
            vendor_id=vendor.id,
            assigned_by=assigned_by,
            assignment_type=assignment_type,
            status=AssignmentStatus.ASSIGNED,
            commission_amount=commission,
            notes=notes,
        )
        try:
            with self.db.begin_nested():
                self.db.add(assignment)
                self.db.flush()
                for order_item, quantity, amount in item_rows:
                    self.db.add(ItemAssignment(
                        vendor_assignment_id=assignment.id,
                        order_item_id=order_item.id,
                        quantity=quantity,
                        assigned_amount=amount,
                    ))
                self.db.add(OrderStatusHistory(
                    order_id=order.id,
                    vendor_assignment_id=assignment.id,
                    changed_by=assigned_by,
                    old_status=OrderStatus(order.order_status).value,
                    new_status=OrderStatus(order.order_status).value,
                    notes=f"assignment:{AssignmentStatus.ASSIGNED.value} {assignment_type.value} to vendor {vendor.id} ({vendor.company_name})",
                ))
                self.db.flush()
        except IntegrityError:
            raise DuplicateAssignmentError(
                f"Vendor {vendor.id} or one of the selected items is already assigned on order {order.id}",
                {"order_id": order.id, "vendor_id": vendor.id}
            )

        if commit:
            self.db.commit()
            self.db.refresh(assignment)

        logger.info(
            f"[ASSIGNMENT] action=CREATE assignment_id={assignment.id} order_id={order.id} vendor_id={vendor.id} "
            f"type={assignment_type.value} base={base_amount} commission={commission}"
        )
        return assignment

    def _resolve_items(self, order: Order, items: Optional[List[Any]]):
        if not items:
            raise InvalidAssignmentError(
                "A partial assignment requires at least one item",
                {"order_id": order.id}
            )

        full = self._open_full_assignment(order.id)
        if full is not None:
            raise DuplicateAssignmentError(
                f"Order {order.id} is fully assigned to vendor {full.vendor_id}; its items are already covered",
                {"order_id": order.id, "vendor_assignment_id": full.id}
            )

        rows = []
        seen = set()
        for selection in items:
            item_id = selection.order_item_id
            if item_id in seen:
                raise InvalidAssignmentError(f"Order item {item_id} selected more than once", {"order_item_id": item_id})
            seen.add(item_id)

            order_item = self.db.query(OrderItem).filter(
                OrderItem.id == item_id,
                OrderItem.order_id == order.id
            ).first()
            if not order_item:
                raise NotFoundError("OrderItem", item_id)

            covered = self.db.query(ItemAssignment).filter(ItemAssignment.order_item_id == order_item.id).first()
            if covered:
                raise DuplicateAssignmentError(
                    f"Order item {order_item.id} is already covered by assignment {covered.vendor_assignment_id}",
                    {"order_item_id": order_item.id, "vendor_assignment_id": covered.vendor_assignment_id}
                )

            quantity = selection.quantity if getattr(selection, "quantity", None) is not None else order_item.quantity
            if quantity < 1 or quantity > order_item.quantity:
                raise InvalidAssignmentError(
                    f"Quantity {quantity} is not valid for item {order_item.id} (ordered {order_item.quantity})",
                    {"order_item_id": order_item.id, "quantity": quantity}
                )

            if quantity == order_item.quantity:
                amount = to_money(order_item.total_price)
            else:
                amount = to_money(to_money(order_item.unit_price) * quantity)
            rows.append((order_item, quantity, amount))
        return rows

    def remove_item_assignment(self, item_assignment_id: int) -> None:
        """Delete one item linkage. The parent assignment and its commission are left as-is."""
        item_assignment = self.db.query(ItemAssignment).filter(ItemAssignment.id == item_assignment_id).first()
        if not item_assignment:
            raise NotFoundError("ItemAssignment", item_assignment_id)

        parent_id = item_assignment.vendor_assignment_id
        order_item_id = item_assignment.order_item_id
        self.db.delete(item_assignment)
        self.db.commit()

        remaining = self.db.query(ItemAssignment).filter(ItemAssignment.vendor_assignment_id == parent_id).count()
        logger.info(
            f"[ASSIGNMENT] action=REMOVE_ITEM item_assignment_id={item_assignment_id} "
            f"assignment_id={parent_id} order_item_id={order_item_id} remaining_items={remaining}"
        )
        if remaining == 0:
            logger.warning(f"[ASSIGNMENT] assignment_id={parent_id} has no items left but remains open")

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    def bulk_assign_vendor(
        self,
        order_ids: List[int],
        vendor_id: int,
        assignment_type=AssignmentType.FULL,
        assigned_by: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> BulkAssignResult:
        """Assign each order independently; failures are collected, never raised."""
        result = BulkAssignResult()
        for order_id in order_ids:
            try:
                self.assign_vendor(
                    order_id, vendor_id, assignment_type,
                    assigned_by=assigned_by, notes=notes, commit=True
                )
                result.succeeded.append(order_id)
            except FulfillmentError as e:
                self.db.rollback()
                result.failed[order_id] = {"error": e.error_kind, "message": e.message}

        logger.info(
            f"[ASSIGNMENT] action=BULK vendor_id={vendor_id} succeeded={len(result.succeeded)} "
            f"failed={len(result.failed)}"
        )
        return result

    # ------------------------------------------------------------------
    # Splitting view
    # ------------------------------------------------------------------

    def get_order_splitting(self, order_id: int) -> Dict[str, Any]:
        """Per-item coverage summary for an order."""
        order = self._get_order(order_id)
        assignments = self.db.query(VendorAssignment).filter(
            VendorAssignment.order_id == order.id
        ).order_by(VendorAssignment.id).all()
        full_assignment = next(
            (a for a in assignments
             if a.assignment_type == AssignmentType.FULL and a.status != AssignmentStatus.CANCELLED),
            None
        )

        summary = []
        for item in order.items:
            link = item.item_assignment
            if link is not None:
                assigned_quantity = link.quantity
                covering = link.vendor_assignment
            elif full_assignment is not None:
                assigned_quantity = item.quantity
                covering = full_assignment
            else:
                assigned_quantity = 0
                covering = None

            remaining = item.quantity - assigned_quantity
            summary.append({
                "order_item_id": item.id,
                "product_name": item.product_name,
                "sku": item.sku,
                "quantity": item.quantity,
                "assigned_quantity": assigned_quantity,
                "remaining_quantity": remaining,
                "vendor_assignment_id": covering.id if covering else None,
                "vendor_id": covering.vendor_id if covering else None,
                "is_fully_assigned": remaining == 0,
            })

        return {
            "order_id": order.id,
            "items": summary,
            "assignments": assignments,
            "is_fully_assigned": all(row["is_fully_assigned"] for row in summary),
        }

    # ------------------------------------------------------------------
    # Default vendors
    # ------------------------------------------------------------------

    def set_product_default_vendor(
        self,
        synced_product_id: int,
        vendor_id: int,
        priority: int = 1,
        commission_rate=None,
    ) -> ProductVendorAssignment:
        """Mark a vendor as the default for a product, clearing any previous default."""
        product = self.db.query(SyncedProduct).filter(SyncedProduct.id == synced_product_id).first()
        if not product:
            raise NotFoundError("SyncedProduct", synced_product_id)
        vendor = self._get_vendor(vendor_id)

        self.db.query(ProductVendorAssignment).filter(
            ProductVendorAssignment.synced_product_id == product.id,
            ProductVendorAssignment.vendor_id != vendor.id,
            ProductVendorAssignment.is_default.is_(True)
        ).update({"is_default": False}, synchronize_session=False)

        link = self.db.query(ProductVendorAssignment).filter(
            ProductVendorAssignment.synced_product_id == product.id,
            ProductVendorAssignment.vendor_id == vendor.id
        ).first()
        if not link:
            link = ProductVendorAssignment(synced_product_id=product.id, vendor_id=vendor.id)
            self.db.add(link)
        link.is_default = True
        link.priority = priority
        link.commission_rate = commission_rate

        self.db.commit()
        self.db.refresh(link)
        logger.info(f"[ASSIGNMENT] action=SET_DEFAULT_VENDOR product_id={product.id} vendor_id={vendor.id}")
        return link

    def _default_vendor_for_item(self, store_id: int, item: OrderItem) -> Optional[int]:
        sku = normalize_sku(item.sku)
        if not sku:
            return None
        products = self.db.query(SyncedProduct).filter(SyncedProduct.store_id == store_id).all()
        product = next((p for p in products if normalize_sku(p.sku) == sku), None)
        if not product:
            return None
        link = self.db.query(ProductVendorAssignment).filter(
            ProductVendorAssignment.synced_product_id == product.id,
            ProductVendorAssignment.is_default.is_(True)
        ).first()
        return link.vendor_id if link else None

    def auto_assign_order(self, order_id: int) -> AutoAssignResult:
        """
        Route a freshly ingested order's items to their products' default vendors.

        One vendor covering every item -> a full assignment; otherwise one partial
        assignment per vendor over its items. Items without a default vendor (or
        already covered) stay unassigned. DuplicateAssignment is recorded, not raised.
        """
        order = self._get_order(order_id)
        result = AutoAssignResult(order_id=order.id)

        routed: "OrderedDict[int, List[OrderItem]]" = OrderedDict()
        for item in order.items:
            if item.item_assignment is not None:
                continue
            vendor_id = self._default_vendor_for_item(order.store_id, item)
            if vendor_id is None:
                result.unassigned_item_ids.append(item.id)
                continue
            routed.setdefault(vendor_id, []).append(item)

        if not routed:
            return result

        whole_order = len(routed) == 1 and not result.unassigned_item_ids and \
            len(next(iter(routed.values()))) == len(order.items)

        for vendor_id, vendor_items in routed.items():
            try:
                if whole_order:
                    assignment = self.assign_vendor(
                        order.id, vendor_id, AssignmentType.FULL, assigned_by=AUTO_ASSIGN_ACTOR,
                        notes="default vendor"
                    )
                else:
                    selections = [_Selection(item.id) for item in vendor_items]
                    assignment = self.assign_vendor(
                        order.id, vendor_id, AssignmentType.PARTIAL, items=selections,
                        assigned_by=AUTO_ASSIGN_ACTOR, notes="default vendor"
                    )
                result.assignments.append(assignment)
            except (DuplicateAssignmentError, InvalidAssignmentError) as e:
                self.db.rollback()
                result.errors.append({"vendor_id": vendor_id, "error": e.error_kind, "message": e.message})
                logger.info(f"[ASSIGNMENT] auto-assign skipped order_id={order.id} vendor_id={vendor_id}: {e.message}")

        return result


@dataclass
class _Selection:
    order_item_id: int
    quantity: Optional[int] = None
