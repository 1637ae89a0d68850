"""
Fulfillment State Machine - legal status transitions for orders and vendor assignments.

Order:       pending -> processing -> shipped -> fulfilled
             cancelled from any non-terminal state
Assignment:  assigned -> accepted -> in_progress -> completed
             accepted -> completed (vendor skips in_progress)
             cancelled from assigned or accepted only

Re-applying the current status is a no-op success: no timestamp moves and
no history row is written. Every real transition appends an
OrderStatusHistory row; assignment transitions reference the assignment
and carry "assignment:<status>" in notes.

override_assignment_status is the administrative escape hatch. It ignores
the rules but requires an actor and a reason, and is logged at WARNING.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from fulfillment.exceptions import InvalidOverrideError, InvalidTransitionError, NotFoundError
from fulfillment.models.core import ItemAssignment, Order, OrderStatusHistory, VendorAssignment
from fulfillment.models.enums import AssignmentStatus, OrderStatus

logger = logging.getLogger(__name__)

ORDER_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.FULFILLED, OrderStatus.CANCELLED},
    OrderStatus.FULFILLED: set(),
    OrderStatus.CANCELLED: set(),
}

ASSIGNMENT_TRANSITIONS = {
    AssignmentStatus.ASSIGNED: {AssignmentStatus.ACCEPTED, AssignmentStatus.CANCELLED},
    AssignmentStatus.ACCEPTED: {AssignmentStatus.IN_PROGRESS, AssignmentStatus.COMPLETED, AssignmentStatus.CANCELLED},
    AssignmentStatus.IN_PROGRESS: {AssignmentStatus.COMPLETED},
    AssignmentStatus.COMPLETED: set(),
    AssignmentStatus.CANCELLED: set(),
}

ASSIGNMENT_TIMESTAMP_FIELDS = {
    AssignmentStatus.ACCEPTED: "accepted_at",
    AssignmentStatus.IN_PROGRESS: "started_at",
    AssignmentStatus.COMPLETED: "completed_at",
    AssignmentStatus.CANCELLED: "cancelled_at",
}

TERMINAL_ORDER_STATUSES = {OrderStatus.FULFILLED, OrderStatus.CANCELLED}

# Forward path used when an order is pulled along by shipping events
ORDER_FORWARD_PATH = [OrderStatus.PENDING, OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.FULFILLED]


def can_transition_order(from_status: OrderStatus, to_status: OrderStatus) -> bool:
    return from_status == to_status or to_status in ORDER_TRANSITIONS.get(from_status, set())


def can_transition_assignment(from_status: AssignmentStatus, to_status: AssignmentStatus) -> bool:
    return from_status == to_status or to_status in ASSIGNMENT_TRANSITIONS.get(from_status, set())


class FulfillmentStateMachine:
    def __init__(self, db: Session):
        self.db = db

    def _get_order(self, order_id: int) -> Order:
        order = self.db.query(Order).filter(Order.id == order_id).first()
        if not order:
            raise NotFoundError("Order", order_id)
        return order

    def _get_assignment(self, assignment_id: int) -> VendorAssignment:
        assignment = self.db.query(VendorAssignment).filter(VendorAssignment.id == assignment_id).first()
        if not assignment:
            raise NotFoundError("VendorAssignment", assignment_id)
        return assignment

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    def transition_order(
        self,
        order_id: int,
        new_status,
        actor: Optional[str] = None,
        notes: Optional[str] = None,
        commit: bool = True,
    ) -> Order:
        order = self._get_order(order_id)
        new_status = OrderStatus(new_status)
        old_status = OrderStatus(order.order_status)

        if old_status == new_status:
            return order
        if new_status not in ORDER_TRANSITIONS[old_status]:
            raise InvalidTransitionError("order", old_status.value, new_status.value)

        self._apply_order_status(order, old_status, new_status, actor, notes)
        if commit:
            self.db.commit()
            self.db.refresh(order)
        return order

    def advance_order_to(self, order_id: int, target, actor: Optional[str] = None,
                         notes: Optional[str] = None) -> Order:
        """
        Walk the order forward along pending -> processing -> shipped -> fulfilled
        until it reaches `target`, recording each step. Never moves backwards and
        leaves terminal orders alone. Caller commits.
        """
        order = self._get_order(order_id)
        target = OrderStatus(target)
        current = OrderStatus(order.order_status)
        if current in TERMINAL_ORDER_STATUSES or current not in ORDER_FORWARD_PATH:
            return order

        start = ORDER_FORWARD_PATH.index(current)
        end = ORDER_FORWARD_PATH.index(target)
        for step in ORDER_FORWARD_PATH[start + 1:end + 1]:
            self._apply_order_status(order, OrderStatus(order.order_status), step, actor, notes)
        return order

    def _apply_order_status(self, order: Order, old_status: OrderStatus, new_status: OrderStatus,
                            actor: Optional[str], notes: Optional[str]):
        now = datetime.utcnow()
        order.order_status = new_status
        order.updated_at = now
        self.db.add(OrderStatusHistory(
            order_id=order.id,
            changed_by=actor,
            old_status=old_status.value,
            new_status=new_status.value,
            notes=notes,
            created_at=now,
        ))
        self.db.flush()
        logger.info(f"[STATE] order_id={order.id} {old_status.value} -> {new_status.value} actor={actor}")

    # ------------------------------------------------------------------
    # Assignments
    # ------------------------------------------------------------------

    def transition_assignment(
        self,
        assignment_id: int,
        new_status,
        actor: Optional[str] = None,
        notes: Optional[str] = None,
        commit: bool = True,
    ) -> VendorAssignment:
        assignment = self._get_assignment(assignment_id)
        new_status = AssignmentStatus(new_status)
        old_status = AssignmentStatus(assignment.status)

        if old_status == new_status:
            return assignment
        if new_status not in ASSIGNMENT_TRANSITIONS[old_status]:
            raise InvalidTransitionError("assignment", old_status.value, new_status.value)

        self._apply_assignment_status(assignment, old_status, new_status, actor, notes)

        # First vendor acceptance moves a pending order into processing
        if new_status == AssignmentStatus.ACCEPTED and assignment.order.order_status == OrderStatus.PENDING:
            self._apply_order_status(
                assignment.order, OrderStatus.PENDING, OrderStatus.PROCESSING, actor,
                f"accepted by vendor {assignment.vendor_id}"
            )

        if commit:
            self.db.commit()
            self.db.refresh(assignment)
        return assignment

    def override_assignment_status(
        self,
        assignment_id: int,
        new_status,
        actor: str,
        reason: str,
        commit: bool = True,
    ) -> VendorAssignment:
        if not actor or not reason:
            raise InvalidOverrideError(
                "Administrative override requires both an actor and a reason",
                {"assignment_id": assignment_id, "actor": actor}
            )

        assignment = self._get_assignment(assignment_id)
        new_status = AssignmentStatus(new_status)
        old_status = AssignmentStatus(assignment.status)

        logger.warning(
            f"[STATE] OVERRIDE assignment_id={assignment.id} {old_status.value} -> {new_status.value} "
            f"actor={actor} reason={reason!r}"
        )
        self._apply_assignment_status(assignment, old_status, new_status, actor, f"override: {reason}")
        if commit:
            self.db.commit()
            self.db.refresh(assignment)
        return assignment

    def _apply_assignment_status(self, assignment: VendorAssignment, old_status: AssignmentStatus,
                                 new_status: AssignmentStatus, actor: Optional[str], notes: Optional[str]):
        now = datetime.utcnow()
        assignment.status = new_status
        assignment.updated_at = now
        timestamp_field = ASSIGNMENT_TIMESTAMP_FIELDS.get(new_status)
        if timestamp_field:
            setattr(assignment, timestamp_field, now)

        if new_status == AssignmentStatus.CANCELLED:
            # Release covered items so they can be routed to another vendor
            self.db.query(ItemAssignment).filter(
                ItemAssignment.vendor_assignment_id == assignment.id
            ).delete(synchronize_session=False)
            self.db.expire(assignment, ["item_assignments"])

        history_notes = f"assignment:{new_status.value}"
        if notes:
            history_notes = f"{history_notes} {notes}"
        self.db.add(OrderStatusHistory(
            order_id=assignment.order_id,
            vendor_assignment_id=assignment.id,
            changed_by=actor,
            old_status=old_status.value,
            new_status=new_status.value,
            notes=history_notes,
            created_at=now,
        ))
        self.db.flush()
        logger.info(
            f"[STATE] assignment_id={assignment.id} order_id={assignment.order_id} "
            f"{old_status.value} -> {new_status.value} actor={actor}"
        )
