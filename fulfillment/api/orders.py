"""
Orders API - canonical orders, their lifecycle and audit trail.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from fulfillment.api.deps import verify_admin_key
from fulfillment.api.errors import to_http_exception
from fulfillment.database import get_db
from fulfillment.exceptions import FulfillmentError
from fulfillment.models.core import Order, OrderStatusHistory
from fulfillment.models.enums import OrderStatus
from fulfillment.schemas.core import (
    OrderDetailResponse, OrderResponse, OrderSplittingResponse, OrderStatusHistoryResponse, OrderStatusUpdate,
    ProductionStatusResponse, ProofResponse
)
from fulfillment.services.assignment_service import AssignmentService
from fulfillment.services.proof_service import ProofService
from fulfillment.services.state_machine import FulfillmentStateMachine

router = APIRouter(prefix="/orders", tags=["orders"], dependencies=[Depends(verify_admin_key)])


@router.get("", response_model=List[OrderResponse])
def list_orders(
    status: Optional[OrderStatus] = None,
    store_id: Optional[int] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db)
):
    query = db.query(Order)
    if status:
        query = query.filter(Order.order_status == status)
    if store_id:
        query = query.filter(Order.store_id == store_id)
    return query.order_by(Order.order_date.desc(), Order.id.desc()).offset(skip).limit(limit).all()


@router.get("/{order_id}", response_model=OrderDetailResponse)
def get_order(order_id: int, db: Session = Depends(get_db)):
    order = db.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@router.post("/{order_id}/status", response_model=OrderResponse)
def update_order_status(order_id: int, data: OrderStatusUpdate, db: Session = Depends(get_db)):
    try:
        return FulfillmentStateMachine(db).transition_order(
            order_id, data.status, actor=data.changed_by, notes=data.notes
        )
    except FulfillmentError as e:
        raise to_http_exception(e)


@router.get("/{order_id}/history", response_model=List[OrderStatusHistoryResponse])
def get_order_history(order_id: int, db: Session = Depends(get_db)):
    if not db.query(Order.id).filter(Order.id == order_id).first():
        raise HTTPException(status_code=404, detail="Order not found")
    return db.query(OrderStatusHistory).filter(
        OrderStatusHistory.order_id == order_id
    ).order_by(OrderStatusHistory.id).all()


@router.get("/{order_id}/splitting", response_model=OrderSplittingResponse)
def get_order_splitting(order_id: int, db: Session = Depends(get_db)):
    try:
        return AssignmentService(db).get_order_splitting(order_id)
    except FulfillmentError as e:
        raise to_http_exception(e)


@router.get("/{order_id}/production-status", response_model=List[ProductionStatusResponse])
def get_production_status(order_id: int, db: Session = Depends(get_db)):
    try:
        return ProofService(db).get_production_status(order_id)
    except FulfillmentError as e:
        raise to_http_exception(e)


@router.get("/{order_id}/proofs", response_model=List[ProofResponse])
def list_order_proofs(order_id: int, db: Session = Depends(get_db)):
    try:
        return ProofService(db).list_order_proofs(order_id)
    except FulfillmentError as e:
        raise to_http_exception(e)
