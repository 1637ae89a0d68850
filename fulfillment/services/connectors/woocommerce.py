from datetime import datetime
from typing import Any, Dict, Optional

from fulfillment.models.enums import OrderStatus, StoreType
from fulfillment.services.connectors.base import FetchResult, StoreConnector, full_name
from fulfillment.utils.normalization import normalize_identifier

STATUS_MAP = {
    "pending": OrderStatus.PENDING,
    "processing": OrderStatus.PROCESSING,
    "on-hold": OrderStatus.PENDING,
    "completed": OrderStatus.FULFILLED,
    "cancelled": OrderStatus.CANCELLED,
    "refunded": OrderStatus.CANCELLED,
    "failed": OrderStatus.CANCELLED,
}


class WooCommerceConnector(StoreConnector):
    platform = StoreType.WOOCOMMERCE

    def _base_url(self, store) -> str:
        return f"{self._credential(store, 'site_url').rstrip('/')}/wp-json/wc/v3"

    def _auth(self, store):
        return self._credential(store, "consumer_key"), self._credential(store, "consumer_secret")

    def _headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json"}

    def _shop_info_request(self, store):
        return f"{self._base_url(store)}/system_status", self._headers(), self._auth(store)

    def map_status(self, status: Optional[str]) -> OrderStatus:
        return STATUS_MAP.get(status, OrderStatus.PENDING)

    def fetch_orders(self, store, since: Optional[datetime] = None) -> FetchResult:
        params = {"per_page": 100}
        if since:
            params["after"] = since.replace(microsecond=0).isoformat()
        data = self._get(f"{self._base_url(store)}/orders", headers=self._headers(), params=params, auth=self._auth(store))
        return self._validate_orders(data, self._map_order)

    def fetch_products(self, store) -> FetchResult:
        params = {"per_page": 100, "status": "publish"}
        data = self._get(f"{self._base_url(store)}/products", headers=self._headers(), params=params, auth=self._auth(store))
        return self._validate_products(data, self._map_product)

    def _map_address(self, addr: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if not addr:
            return None
        return {
            "first_name": addr.get("first_name"),
            "last_name": addr.get("last_name"),
            "company": addr.get("company"),
            "address1": addr.get("address_1"),
            "address2": addr.get("address_2"),
            "city": addr.get("city"),
            "province": addr.get("state"),
            "postal_code": addr.get("postcode"),
            "country": addr.get("country"),
            "phone": addr.get("phone"),
            "email": addr.get("email"),
        }

    def _variant_title(self, item: Dict[str, Any]) -> Optional[str]:
        for meta in item.get("meta_data") or []:
            if meta.get("key") == "variation":
                return str(meta.get("value"))
        return None

    def _map_order(self, order: Dict[str, Any]) -> Dict[str, Any]:
        billing = order.get("billing") or {}
        items = [
            {
                "external_item_id": normalize_identifier(item.get("id")),
                "product_name": item.get("name") or "",
                "sku": item.get("sku") or None,
                "quantity": int(item.get("quantity") or 0),
                "unit_price": item.get("price"),
                "total_price": item.get("total"),
                "variant_title": self._variant_title(item),
                "product_data": item,
            }
            for item in order.get("line_items") or []
        ]

        return {
            "external_order_id": normalize_identifier(order["id"]),
            "order_number": normalize_identifier(order.get("number")),
            "customer_email": billing.get("email"),
            "customer_name": full_name(billing.get("first_name"), billing.get("last_name")),
            "customer_phone": billing.get("phone"),
            "billing_address": self._map_address(billing),
            "shipping_address": self._map_address(order.get("shipping")),
            "total_amount": order.get("total"),
            "currency": order.get("currency") or "USD",
            "order_status": self.map_status(order.get("status")),
            "fulfillment_status": order.get("status"),
            "payment_status": "paid" if order.get("date_paid") else "unpaid",
            "notes": order.get("customer_note") or None,
            "tags": None,
            "order_date": order.get("date_created_gmt") or order["date_created"],
            "items": items,
        }

    def _map_product(self, product: Dict[str, Any]) -> Dict[str, Any]:
        # `variations` is a list of ids unless the store expands it
        variations = [v for v in product.get("variations") or [] if isinstance(v, dict)]
        return {
            "external_product_id": normalize_identifier(product["id"]),
            "name": product.get("name") or "",
            "description": product.get("description"),
            "sku": product.get("sku") or None,
            "price": product.get("price") or "0",
            "inventory_quantity": int(product.get("stock_quantity") or 0),
            "product_type": product.get("type"),
            "images": [{"url": img["src"], "alt": img.get("alt")} for img in product.get("images") or []],
            "variants": [
                {
                    "id": normalize_identifier(v["id"]),
                    "title": ", ".join(f"{a.get('name')}: {a.get('option')}" for a in v.get("attributes") or []) or "Default",
                    "price": v.get("price") or product.get("price") or "0",
                    "sku": v.get("sku") or product.get("sku") or None,
                    "inventory_quantity": int(v.get("stock_quantity") or 0),
                }
                for v in variations
            ],
        }
