"""
Assignments API - vendor routing, assignment lifecycle and shipment tracking.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from fulfillment.api.deps import verify_admin_key
from fulfillment.api.errors import to_http_exception
from fulfillment.database import get_db
from fulfillment.exceptions import FulfillmentError
from fulfillment.schemas.core import (
    AssignmentStatusUpdate, AssignVendorRequest, BulkAssignRequest, BulkAssignResponse, TrackingCreate,
    TrackingResponse, TrackingStatusUpdate, VendorAssignmentResponse
)
from fulfillment.services.assignment_service import AssignmentService
from fulfillment.services.state_machine import FulfillmentStateMachine
from fulfillment.services.tracking_service import TrackingService

router = APIRouter(prefix="/assignments", tags=["assignments"], dependencies=[Depends(verify_admin_key)])
tracking_router = APIRouter(prefix="/tracking", tags=["tracking"], dependencies=[Depends(verify_admin_key)])


@router.post("", response_model=VendorAssignmentResponse, status_code=201)
def create_assignment(data: AssignVendorRequest, db: Session = Depends(get_db)):
    try:
        return AssignmentService(db).assign_vendor(
            data.order_id,
            data.vendor_id,
            data.assignment_type,
            items=data.items,
            assigned_by=data.assigned_by,
            notes=data.notes,
        )
    except FulfillmentError as e:
        raise to_http_exception(e)


@router.post("/bulk", response_model=BulkAssignResponse)
def bulk_assign(data: BulkAssignRequest, db: Session = Depends(get_db)):
    result = AssignmentService(db).bulk_assign_vendor(
        data.order_ids,
        data.vendor_id,
        data.assignment_type,
        assigned_by=data.assigned_by,
        notes=data.notes,
    )
    return BulkAssignResponse(succeeded=result.succeeded, failed=result.failed)


@router.post("/{assignment_id}/status", response_model=VendorAssignmentResponse)
def update_assignment_status(assignment_id: int, data: AssignmentStatusUpdate, db: Session = Depends(get_db)):
    machine = FulfillmentStateMachine(db)
    try:
        if data.override:
            return machine.override_assignment_status(assignment_id, data.status, data.changed_by, data.reason)
        return machine.transition_assignment(assignment_id, data.status, actor=data.changed_by, notes=data.notes)
    except FulfillmentError as e:
        raise to_http_exception(e)


@router.delete("/items/{item_assignment_id}", status_code=204)
def remove_item_assignment(item_assignment_id: int, db: Session = Depends(get_db)):
    try:
        AssignmentService(db).remove_item_assignment(item_assignment_id)
    except FulfillmentError as e:
        raise to_http_exception(e)


@router.post("/{assignment_id}/tracking", response_model=TrackingResponse, status_code=201)
def add_tracking(assignment_id: int, data: TrackingCreate, db: Session = Depends(get_db)):
    try:
        return TrackingService(db).add_tracking(assignment_id, **data.model_dump())
    except FulfillmentError as e:
        raise to_http_exception(e)


@tracking_router.post("/{tracking_id}/status", response_model=TrackingResponse)
def update_tracking_status(tracking_id: int, data: TrackingStatusUpdate, db: Session = Depends(get_db)):
    try:
        return TrackingService(db).update_tracking_status(
            tracking_id, data.status, notes=data.notes, changed_by=data.changed_by
        )
    except FulfillmentError as e:
        raise to_http_exception(e)
