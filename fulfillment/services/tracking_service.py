"""
Tracking Service - shipment tracking per vendor assignment.

Adding tracking pulls the order forward to `shipped` once every open
assignment has shipped something; a `delivered` update pulls it to
`fulfilled` once every open assignment has a delivered shipment.
Order moves go through the state machine so history is recorded.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from fulfillment.exceptions import InvalidTransitionError, NotFoundError
from fulfillment.models.core import OrderTracking, VendorAssignment
from fulfillment.models.enums import AssignmentStatus, OrderStatus, TrackingStatus
from fulfillment.services.state_machine import FulfillmentStateMachine

logger = logging.getLogger(__name__)


class TrackingService:
    def __init__(self, db: Session):
        self.db = db
        self.state_machine = FulfillmentStateMachine(db)

    def add_tracking(
        self,
        assignment_id: int,
        tracking_number: str,
        carrier: Optional[str] = None,
        tracking_url: Optional[str] = None,
        shipped_date: Optional[datetime] = None,
        notes: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> OrderTracking:
        assignment = self.db.query(VendorAssignment).filter(VendorAssignment.id == assignment_id).first()
        if not assignment:
            raise NotFoundError("VendorAssignment", assignment_id)
        if assignment.status == AssignmentStatus.CANCELLED:
            raise InvalidTransitionError("tracking", AssignmentStatus.CANCELLED.value, TrackingStatus.SHIPPED.value)

        now = datetime.utcnow()
        tracking = OrderTracking(
            order_id=assignment.order_id,
            vendor_assignment_id=assignment.id,
            tracking_number=tracking_number.strip(),
            carrier=carrier,
            tracking_url=tracking_url,
            status=TrackingStatus.SHIPPED,
            shipped_date=shipped_date or now,
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        self.db.add(tracking)
        self.db.flush()

        if self._all_open_assignments_have(assignment.order_id):
            self.state_machine.advance_order_to(
                assignment.order_id, OrderStatus.SHIPPED, actor=created_by,
                notes=f"tracking {tracking.tracking_number}"
            )

        self.db.commit()
        self.db.refresh(tracking)
        logger.info(
            f"[TRACKING] action=ADD tracking_id={tracking.id} assignment_id={assignment.id} "
            f"order_id={assignment.order_id} carrier={carrier}"
        )
        return tracking

    def update_tracking_status(
        self,
        tracking_id: int,
        status,
        notes: Optional[str] = None,
        changed_by: Optional[str] = None,
    ) -> OrderTracking:
        tracking = self.db.query(OrderTracking).filter(OrderTracking.id == tracking_id).first()
        if not tracking:
            raise NotFoundError("OrderTracking", tracking_id)

        status = TrackingStatus(status)
        if TrackingStatus(tracking.status) == status:
            return tracking

        now = datetime.utcnow()
        tracking.status = status
        tracking.updated_at = now
        if notes:
            tracking.notes = notes
        if status == TrackingStatus.DELIVERED:
            tracking.delivered_date = now
        self.db.flush()

        if status == TrackingStatus.DELIVERED and self._all_open_assignments_have(tracking.order_id, delivered=True):
            self.state_machine.advance_order_to(
                tracking.order_id, OrderStatus.FULFILLED, actor=changed_by,
                notes=f"delivered {tracking.tracking_number}"
            )

        self.db.commit()
        self.db.refresh(tracking)
        logger.info(f"[TRACKING] action=STATUS tracking_id={tracking.id} status={status.value}")
        return tracking

    def _all_open_assignments_have(self, order_id: int, delivered: bool = False) -> bool:
        assignments = self.db.query(VendorAssignment).filter(
            VendorAssignment.order_id == order_id,
            VendorAssignment.status != AssignmentStatus.CANCELLED
        ).all()
        if not assignments:
            return False

        for assignment in assignments:
            rows = self.db.query(OrderTracking).filter(OrderTracking.vendor_assignment_id == assignment.id).all()
            if not rows:
                return False
            if delivered and not any(r.status == TrackingStatus.DELIVERED for r in rows):
                return False
        return True
