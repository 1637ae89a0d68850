from datetime import datetime
from typing import Any, Dict, Optional

from fulfillment.models.enums import OrderStatus, StoreType
from fulfillment.services.connectors.base import FetchResult, StoreConnector, full_name
from fulfillment.utils.normalization import normalize_identifier, to_money

API_VERSION = "2023-10"

ORDER_FIELDS = (
    "id,order_number,email,created_at,updated_at,cancelled_at,total_price,currency,customer,"
    "billing_address,shipping_address,line_items,fulfillment_status,financial_status,tags,note"
)
PRODUCT_FIELDS = "id,title,body_html,vendor,product_type,created_at,updated_at,status,tags,variants,images"

# fulfillment_status wins over financial_status
FULFILLMENT_STATUS_MAP = {
    "fulfilled": OrderStatus.FULFILLED,
    "partial": OrderStatus.PROCESSING,
}
FINANCIAL_STATUS_MAP = {
    "paid": OrderStatus.PROCESSING,
    "pending": OrderStatus.PENDING,
}


class ShopifyConnector(StoreConnector):
    platform = StoreType.SHOPIFY

    def _base_url(self, store) -> str:
        shop_domain = self._credential(store, "shop_domain")
        return f"https://{shop_domain}.myshopify.com/admin/api/{API_VERSION}"

    def _headers(self, store) -> Dict[str, str]:
        return {"X-Shopify-Access-Token": self._credential(store, "access_token")}

    def _shop_info_request(self, store):
        return f"{self._base_url(store)}/shop.json", self._headers(store), None

    def map_status(self, fulfillment_status: Optional[str], financial_status: Optional[str],
                   cancelled_at: Optional[str] = None) -> OrderStatus:
        if cancelled_at:
            return OrderStatus.CANCELLED
        if fulfillment_status in FULFILLMENT_STATUS_MAP:
            return FULFILLMENT_STATUS_MAP[fulfillment_status]
        return FINANCIAL_STATUS_MAP.get(financial_status, OrderStatus.PENDING)

    def fetch_orders(self, store, since: Optional[datetime] = None) -> FetchResult:
        params = {"limit": 250, "status": "any", "fields": ORDER_FIELDS}
        if since:
            params["created_at_min"] = since.isoformat()
        data = self._get(f"{self._base_url(store)}/orders.json", headers=self._headers(store), params=params)
        return self._validate_orders(data.get("orders", []), self._map_order)

    def fetch_products(self, store) -> FetchResult:
        params = {"limit": 250, "fields": PRODUCT_FIELDS}
        data = self._get(f"{self._base_url(store)}/products.json", headers=self._headers(store), params=params)
        return self._validate_products(data.get("products", []), self._map_product)

    def _map_address(self, addr: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if not addr:
            return None
        return {
            "first_name": addr.get("first_name"),
            "last_name": addr.get("last_name"),
            "company": addr.get("company"),
            "address1": addr.get("address1"),
            "address2": addr.get("address2"),
            "city": addr.get("city"),
            "province": addr.get("province"),
            "postal_code": addr.get("zip"),
            "country": addr.get("country"),
            "phone": addr.get("phone"),
        }

    def _map_order(self, order: Dict[str, Any]) -> Dict[str, Any]:
        customer = order.get("customer") or {}
        items = []
        for item in order.get("line_items") or []:
            quantity = int(item.get("quantity") or 0)
            unit_price = to_money(item.get("price"))
            items.append({
                "external_item_id": normalize_identifier(item.get("id")),
                "product_name": item.get("name") or item.get("title") or "",
                "sku": item.get("sku") or None,
                "quantity": quantity,
                "unit_price": unit_price,
                "total_price": unit_price * quantity,
                "variant_title": item.get("variant_title"),
                "product_data": item,
            })

        return {
            "external_order_id": normalize_identifier(order["id"]),
            "order_number": normalize_identifier(order.get("order_number")),
            "customer_email": order.get("email"),
            "customer_name": full_name(customer.get("first_name"), customer.get("last_name")),
            "customer_phone": customer.get("phone"),
            "billing_address": self._map_address(order.get("billing_address")),
            "shipping_address": self._map_address(order.get("shipping_address")),
            "total_amount": order.get("total_price"),
            "currency": order.get("currency") or "USD",
            "order_status": self.map_status(
                order.get("fulfillment_status"), order.get("financial_status"), order.get("cancelled_at")
            ),
            "fulfillment_status": order.get("fulfillment_status"),
            "payment_status": order.get("financial_status"),
            "notes": order.get("note"),
            "tags": order.get("tags") or None,
            "order_date": order["created_at"],
            "items": items,
        }

    def _map_product(self, product: Dict[str, Any]) -> Dict[str, Any]:
        variants = product.get("variants") or []
        first = variants[0] if variants else {}
        return {
            "external_product_id": normalize_identifier(product["id"]),
            "name": product.get("title") or "",
            "description": product.get("body_html"),
            "sku": first.get("sku") or None,
            "price": first.get("price") or "0",
            "inventory_quantity": sum(int(v.get("inventory_quantity") or 0) for v in variants),
            "product_type": product.get("product_type"),
            "images": [{"url": img["src"], "alt": img.get("alt")} for img in product.get("images") or []],
            "variants": [
                {
                    "id": normalize_identifier(v["id"]),
                    "title": v.get("title"),
                    "price": v.get("price") or "0",
                    "sku": v.get("sku") or None,
                    "inventory_quantity": int(v.get("inventory_quantity") or 0),
                }
                for v in variants
            ],
        }
