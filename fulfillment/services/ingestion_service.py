"""
Order Ingestion Service - pulls storefront orders into canonical Order/OrderItem rows.

Idempotency:
- Orders are keyed by (store_id, external_order_id). A known order is
  skipped, never overwritten.
- Each new order and its items are written inside one SAVEPOINT and
  committed on their own, so a failure on one order neither loses the
  orders before it nor stops the orders after it.
- A record the connector rejected as malformed counts as a failed order;
  the rest of the batch is still ingested.
- A connector failure aborts the pass for that store only.

Products (sync_products) ARE refreshed on re-sync: SyncedProduct rows are
upserted by (store_id, external_product_id).
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from fulfillment.exceptions import FulfillmentError, NotFoundError
from fulfillment.models.core import Order, OrderItem, OrderStatusHistory, Store, SyncedProduct
from fulfillment.schemas.canonical import CanonicalOrder
from fulfillment.services.assignment_service import AssignmentService
from fulfillment.services.connectors.base import StoreConnector
from fulfillment.services.connectors.registry import get_connector

logger = logging.getLogger(__name__)

INGESTION_ACTOR = "system:ingestion"


@dataclass
class SyncResult:
    """Per-store order sync summary."""
    store_id: int
    fetched: int = 0
    created: int = 0
    skipped: int = 0
    failed: int = 0
    auto_assigned: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None  # set when the whole pass was aborted
    created_order_ids: List[int] = field(default_factory=list)


@dataclass
class ProductSyncResult:
    store_id: int
    fetched: int = 0
    created: int = 0
    updated: int = 0
    failed: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)


class OrderIngestionService:
    def __init__(
        self,
        db: Session,
        connector_factory: Callable[[Any], StoreConnector] = get_connector,
        auto_assign: bool = True,
    ):
        self.db = db
        self.connector_factory = connector_factory
        self.auto_assign = auto_assign

    def _get_store(self, store_id: int) -> Store:
        store = self.db.query(Store).filter(Store.id == store_id).first()
        if not store:
            raise NotFoundError("Store", store_id)
        return store

    def test_connection(self, store_id: int):
        store = self._get_store(store_id)
        return self.connector_factory(store.type).test_connection(store)

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    def sync_store(self, store_id: int, since: Optional[datetime] = None) -> SyncResult:
        """
        Fetch and persist new orders for one store.

        Raises:
            NotFoundError: unknown store
            ConnectorUnavailableError: the storefront could not be read;
                nothing was written for this pass
        """
        store = self._get_store(store_id)
        connector = self.connector_factory(store.type)
        result = SyncResult(store_id=store.id)

        logger.info(f"[INGESTION] Starting order sync store_id={store.id} type={store.type.value} since={since}")
        fetched = connector.fetch_orders(store, since=since)
        result.fetched = len(fetched.records) + len(fetched.rejected)

        for rejected in fetched.rejected:
            result.failed += 1
            result.errors.append({"external_order_id": rejected.external_id, "error": rejected.error})

        for canonical in fetched.records:
            self._ingest_one(store, canonical, result)

        if self.auto_assign:
            for order_id in result.created_order_ids:
                auto = AssignmentService(self.db).auto_assign_order(order_id)
                result.auto_assigned += len(auto.assignments)
                for err in auto.errors:
                    result.errors.append({"order_id": order_id, **err})

        store.last_sync_at = datetime.utcnow()
        self.db.commit()

        logger.info(
            f"[INGESTION] Finished store_id={store.id} fetched={result.fetched} created={result.created} "
            f"skipped={result.skipped} failed={result.failed} auto_assigned={result.auto_assigned}"
        )
        return result

    def _ingest_one(self, store: Store, canonical: CanonicalOrder, result: SyncResult):
        existing = self.db.query(Order.id).filter(
            Order.store_id == store.id,
            Order.external_order_id == canonical.external_order_id
        ).first()
        if existing:
            result.skipped += 1
            return

        try:
            with self.db.begin_nested():
                order = self._build_order(store, canonical)
                self.db.add(order)
                self.db.flush()
                self.db.add(OrderStatusHistory(
                    order_id=order.id,
                    changed_by=INGESTION_ACTOR,
                    old_status=None,
                    new_status=order.order_status.value,
                    notes=f"imported from {store.type.value} store {store.id}",
                ))
                self.db.flush()
            self.db.commit()
        except IntegrityError:
            # Another worker inserted the same external order first
            self.db.rollback()
            result.skipped += 1
            logger.info(
                f"[INGESTION] Concurrent insert for store_id={store.id} "
                f"external_order_id={canonical.external_order_id}; skipped"
            )
            return
        except SQLAlchemyError as e:
            self.db.rollback()
            result.failed += 1
            result.errors.append({"external_order_id": canonical.external_order_id, "error": str(e)})
            logger.error(
                f"[INGESTION] Failed to persist store_id={store.id} "
                f"external_order_id={canonical.external_order_id}: {e}"
            )
            return

        result.created += 1
        result.created_order_ids.append(order.id)
        logger.info(
            f"[INGESTION] action=CREATE order_id={order.id} store_id={store.id} "
            f"external_order_id={canonical.external_order_id} items={len(canonical.items)}"
        )

    def _build_order(self, store: Store, canonical: CanonicalOrder) -> Order:
        order = Order(
            store_id=store.id,
            external_order_id=canonical.external_order_id,
            order_number=canonical.order_number,
            customer_name=canonical.customer_name,
            customer_email=canonical.customer_email,
            customer_phone=canonical.customer_phone,
            billing_address=canonical.billing_address.model_dump(mode="json") if canonical.billing_address else None,
            shipping_address=canonical.shipping_address.model_dump(mode="json") if canonical.shipping_address else None,
            total_amount=canonical.total_amount,
            currency=canonical.currency,
            order_status=canonical.order_status,
            fulfillment_status=canonical.fulfillment_status,
            payment_status=canonical.payment_status,
            tags=canonical.tags,
            notes=canonical.notes,
            order_date=canonical.order_date,
        )
        for item in canonical.items:
            order.items.append(OrderItem(
                external_item_id=item.external_item_id,
                product_name=item.product_name,
                sku=item.sku,
                quantity=item.quantity,
                unit_price=item.unit_price,
                total_price=item.total_price,
                variant_title=item.variant_title,
                product_data=item.product_data,
            ))
        return order

    def sync_all_stores(self, since: Optional[datetime] = None) -> List[SyncResult]:
        """Sync every active, sync-enabled store; one store's failure never stops the others."""
        stores = self.db.query(Store).filter(
            Store.is_active.is_(True),
            Store.sync_enabled.is_(True)
        ).order_by(Store.id).all()

        results = []
        for store in stores:
            try:
                results.append(self.sync_store(store.id, since=since))
            except FulfillmentError as e:
                self.db.rollback()
                logger.error(f"[INGESTION] Sync aborted for store_id={store.id}: {e.message}")
                results.append(SyncResult(store_id=store.id, error=e.message))
        return results

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    def sync_products(self, store_id: int) -> ProductSyncResult:
        store = self._get_store(store_id)
        connector = self.connector_factory(store.type)
        fetched = connector.fetch_products(store)
        result = ProductSyncResult(store_id=store.id, fetched=len(fetched.records) + len(fetched.rejected))
        for rejected in fetched.rejected:
            result.failed += 1
            result.errors.append({"external_product_id": rejected.external_id, "error": rejected.error})
        now = datetime.utcnow()

        for product in fetched.records:
            row = self.db.query(SyncedProduct).filter(
                SyncedProduct.store_id == store.id,
                SyncedProduct.external_product_id == product.external_product_id
            ).first()
            if row is None:
                row = SyncedProduct(store_id=store.id, external_product_id=product.external_product_id)
                self.db.add(row)
                result.created += 1
            else:
                result.updated += 1

            row.name = product.name
            row.description = product.description
            row.sku = product.sku
            row.price = product.price
            row.inventory_quantity = product.inventory_quantity
            row.product_type = product.product_type
            row.images = [img.model_dump(mode="json") for img in product.images]
            row.variants = [v.model_dump(mode="json") for v in product.variants]
            row.is_active = True
            row.last_synced_at = now

        self.db.commit()
        logger.info(
            f"[INGESTION] Product sync store_id={store.id} fetched={result.fetched} "
            f"created={result.created} updated={result.updated} failed={result.failed}"
        )
        return result
