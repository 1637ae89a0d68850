from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Any, Dict, Optional

from fulfillment.models.enums import OrderStatus, StoreType
from fulfillment.services.connectors.base import FetchResult, StoreConnector, full_name
from fulfillment.utils.normalization import normalize_identifier

# BigCommerce v2 order status_id -> canonical status.
# 0 Incomplete, 1 Pending, 2 Shipped, 3 Partially Shipped, 4 Refunded,
# 5 Cancelled, 6 Declined, 7 Awaiting Payment, 8 Awaiting Pickup,
# 9 Awaiting Shipment, 10 Completed, 11 Awaiting Fulfillment,
# 12 Manual Verification Required, 13 Disputed
STATUS_MAP = {
    0: OrderStatus.PENDING,
    1: OrderStatus.PENDING,
    2: OrderStatus.SHIPPED,
    3: OrderStatus.PROCESSING,
    4: OrderStatus.CANCELLED,
    5: OrderStatus.CANCELLED,
    6: OrderStatus.CANCELLED,
    7: OrderStatus.PROCESSING,
    8: OrderStatus.PROCESSING,
    9: OrderStatus.PROCESSING,
    10: OrderStatus.FULFILLED,
    11: OrderStatus.PROCESSING,
    12: OrderStatus.PENDING,
    13: OrderStatus.CANCELLED,
}


class BigCommerceConnector(StoreConnector):
    platform = StoreType.BIGCOMMERCE

    def _base_url(self, store) -> str:
        return f"https://api.bigcommerce.com/stores/{self._credential(store, 'store_hash')}"

    def _headers(self, store) -> Dict[str, str]:
        return {
            "X-Auth-Token": self._credential(store, "access_token"),
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _shop_info_request(self, store):
        return f"{self._base_url(store)}/v2/store", self._headers(store), None

    def map_status(self, status_id: Any) -> OrderStatus:
        try:
            return STATUS_MAP.get(int(status_id), OrderStatus.PENDING)
        except (TypeError, ValueError):
            return OrderStatus.PENDING

    def fetch_orders(self, store, since: Optional[datetime] = None) -> FetchResult:
        base_url = self._base_url(store)
        headers = self._headers(store)
        params = {"limit": 250}
        if since:
            params["min_date_created"] = format_datetime(since.replace(tzinfo=timezone.utc))

        # v2 answers 204 with an empty body when there are no orders
        raw_orders = self._get(f"{base_url}/v2/orders", headers=headers, params=params) or []
        for order in raw_orders:
            if order.get("id") is None:
                continue
            order["_products"] = self._get(f"{base_url}/v2/orders/{order['id']}/products", headers=headers) or []
        return self._validate_orders(raw_orders, self._map_order)

    def fetch_products(self, store) -> FetchResult:
        params = {"limit": 250, "include": "variants,images"}
        data = self._get(f"{self._base_url(store)}/v3/catalog/products", headers=self._headers(store), params=params)
        return self._validate_products(data.get("data", []), self._map_product)

    def _map_address(self, addr: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if not addr:
            return None
        return {
            "first_name": addr.get("first_name"),
            "last_name": addr.get("last_name"),
            "company": addr.get("company"),
            "address1": addr.get("street_1"),
            "address2": addr.get("street_2"),
            "city": addr.get("city"),
            "province": addr.get("state"),
            "postal_code": addr.get("zip"),
            "country": addr.get("country"),
            "phone": addr.get("phone"),
            "email": addr.get("email"),
        }

    def _map_order(self, order: Dict[str, Any]) -> Dict[str, Any]:
        billing = order.get("billing_address") or {}
        shipping = order.get("shipping_addresses")
        items = []
        for item in order.get("_products", []):
            options = item.get("product_options") or []
            items.append({
                "external_item_id": normalize_identifier(item.get("id")),
                "product_name": item.get("name") or "",
                "sku": item.get("sku") or None,
                "quantity": int(item.get("quantity") or 0),
                "unit_price": item.get("price_inc_tax"),
                "total_price": item.get("total_inc_tax"),
                "variant_title": ", ".join(f"{o.get('display_name')}: {o.get('display_value')}" for o in options) or None,
                "product_data": item,
            })

        return {
            "external_order_id": normalize_identifier(order["id"]),
            "order_number": normalize_identifier(order["id"]),
            "customer_email": billing.get("email"),
            "customer_name": full_name(billing.get("first_name"), billing.get("last_name")),
            "customer_phone": billing.get("phone"),
            "billing_address": self._map_address(billing),
            # shipping_addresses is a sub-resource link unless expanded
            "shipping_address": self._map_address(shipping[0]) if isinstance(shipping, list) and shipping else None,
            "total_amount": order.get("total_inc_tax"),
            "currency": order.get("currency_code") or "USD",
            "order_status": self.map_status(order.get("status_id")),
            "fulfillment_status": order.get("status"),
            "payment_status": order.get("payment_status"),
            "notes": order.get("customer_message") or None,
            "tags": None,
            "order_date": order["date_created"],
            "items": items,
        }

    def _map_product(self, product: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "external_product_id": normalize_identifier(product["id"]),
            "name": product.get("name") or "",
            "description": product.get("description"),
            "sku": product.get("sku") or None,
            "price": product.get("price") or "0",
            "inventory_quantity": int(product.get("inventory_level") or 0),
            "product_type": product.get("type"),
            "images": [
                {"url": img["url_standard"], "alt": img.get("description")}
                for img in product.get("images") or []
            ],
            "variants": [
                {
                    "id": normalize_identifier(v["id"]),
                    "title": " / ".join(ov.get("label", "") for ov in v.get("option_values") or []) or "Default",
                    "price": v.get("price") or product.get("price") or "0",
                    "sku": v.get("sku") or product.get("sku") or None,
                    "inventory_quantity": int(v.get("inventory_level") or 0),
                }
                for v in product.get("variants") or []
            ],
        }
