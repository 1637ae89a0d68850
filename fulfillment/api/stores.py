"""
Stores API - storefront registration and order/product sync.

Provides endpoints for:
- Registering and listing stores
- Testing storefront credentials
- Syncing orders (one store or all active stores)
- Syncing the product catalogue
"""
import logging
from dataclasses import asdict
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from fulfillment.api.deps import verify_admin_key
from fulfillment.api.errors import to_http_exception
from fulfillment.database import get_db
from fulfillment.exceptions import FulfillmentError
from fulfillment.models.core import Store
from fulfillment.schemas.core import (
    ConnectionTestResponse, ProductSyncResultResponse, StoreCreate, StoreResponse, SyncResultResponse
)
from fulfillment.services.ingestion_service import OrderIngestionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/stores", tags=["stores"], dependencies=[Depends(verify_admin_key)])


def _sync_response(result) -> SyncResultResponse:
    data = asdict(result)
    data.pop("created_order_ids", None)
    return SyncResultResponse(**data)


@router.get("", response_model=List[StoreResponse])
def list_stores(db: Session = Depends(get_db)):
    return db.query(Store).order_by(Store.id).all()


@router.post("", response_model=StoreResponse, status_code=201)
def create_store(data: StoreCreate, db: Session = Depends(get_db)):
    store = Store(**data.model_dump())
    db.add(store)
    db.commit()
    db.refresh(store)
    logger.info(f"[STORES] action=CREATE store_id={store.id} type={store.type.value}")
    return store


@router.post("/sync-all", response_model=List[SyncResultResponse])
def sync_all_stores(
    since: Optional[datetime] = Query(None, description="Only fetch orders created after this time"),
    db: Session = Depends(get_db)
):
    results = OrderIngestionService(db).sync_all_stores(since=since)
    return [_sync_response(r) for r in results]


@router.get("/{store_id}/test-connection", response_model=ConnectionTestResponse)
def test_store_connection(store_id: int, db: Session = Depends(get_db)):
    try:
        result = OrderIngestionService(db).test_connection(store_id)
    except FulfillmentError as e:
        raise to_http_exception(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ConnectionTestResponse(store_id=store_id, ok=result.ok, message=result.message)


@router.post("/{store_id}/sync-orders", response_model=SyncResultResponse)
def sync_store_orders(
    store_id: int,
    since: Optional[datetime] = Query(None, description="Only fetch orders created after this time"),
    db: Session = Depends(get_db)
):
    try:
        result = OrderIngestionService(db).sync_store(store_id, since=since)
    except FulfillmentError as e:
        raise to_http_exception(e)
    return _sync_response(result)


@router.post("/{store_id}/sync-products", response_model=ProductSyncResultResponse)
def sync_store_products(store_id: int, db: Session = Depends(get_db)):
    try:
        result = OrderIngestionService(db).sync_products(store_id)
    except FulfillmentError as e:
        raise to_http_exception(e)
    return ProductSyncResultResponse(**asdict(result))
