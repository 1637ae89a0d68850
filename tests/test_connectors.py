import unittest
from datetime import datetime
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import requests

from fulfillment.exceptions import ConnectorUnavailableError
from fulfillment.models.enums import OrderStatus, StoreType
from fulfillment.services.connectors.bigcommerce import BigCommerceConnector
from fulfillment.services.connectors.registry import get_connector
from fulfillment.services.connectors.shopify import ShopifyConnector
from fulfillment.services.connectors.woocommerce import WooCommerceConnector

REQUESTS_GET = "fulfillment.services.connectors.base.requests.get"


def fake_response(status_code=200, payload=None, text=""):
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    response.json.return_value = payload
    return response


def shopify_store():
    return SimpleNamespace(id=1, api_credentials={"shop_domain": "acme", "access_token": "shpat_x"})


SHOPIFY_ORDER = {
    "id": 450789469,
    "order_number": 1001,
    "email": "bob@example.com",
    "created_at": "2024-01-05T10:00:00-05:00",
    "cancelled_at": None,
    "total_price": "59.90",
    "currency": "USD",
    "fulfillment_status": None,
    "financial_status": "paid",
    "customer": {"first_name": "Bob", "last_name": "Norman"},
    "shipping_address": {"first_name": "Bob", "address1": "1 Main St", "zip": "40202", "city": "Louisville"},
    "line_items": [
        {"id": 1, "name": "Banner - Large", "sku": "BAN-L", "quantity": 2, "price": "19.95"},
        {"id": 2, "name": "Sticker", "sku": "", "quantity": 1, "price": "20.00"},
    ],
    "tags": "",
}


class TestShopifyConnector(unittest.TestCase):
    def setUp(self):
        self.connector = ShopifyConnector(timeout=5)

    def test_status_mapping(self):
        self.assertEqual(self.connector.map_status("fulfilled", "paid"), OrderStatus.FULFILLED)
        self.assertEqual(self.connector.map_status("partial", "paid"), OrderStatus.PROCESSING)
        self.assertEqual(self.connector.map_status(None, "paid"), OrderStatus.PROCESSING)
        self.assertEqual(self.connector.map_status(None, "pending"), OrderStatus.PENDING)
        self.assertEqual(self.connector.map_status(None, "refunded"), OrderStatus.PENDING)
        self.assertEqual(
            self.connector.map_status("fulfilled", "paid", "2024-01-06T00:00:00Z"), OrderStatus.CANCELLED
        )

    @patch(REQUESTS_GET)
    def test_fetch_orders_maps_canonical_order(self, mock_get):
        mock_get.return_value = fake_response(payload={"orders": [SHOPIFY_ORDER]})

        fetched = self.connector.fetch_orders(shopify_store(), since=datetime(2024, 1, 1))

        args, kwargs = mock_get.call_args
        self.assertEqual(args[0], "https://acme.myshopify.com/admin/api/2023-10/orders.json")
        self.assertEqual(kwargs["headers"], {"X-Shopify-Access-Token": "shpat_x"})
        self.assertEqual(kwargs["params"]["created_at_min"], "2024-01-01T00:00:00")
        self.assertEqual(kwargs["timeout"], 5)

        self.assertEqual(fetched.rejected, [])
        order = fetched.records[0]
        self.assertEqual(order.external_order_id, "450789469")
        self.assertEqual(order.order_number, "1001")
        self.assertEqual(order.customer_name, "Bob Norman")
        self.assertEqual(order.order_status, OrderStatus.PROCESSING)
        self.assertEqual(order.order_date, datetime(2024, 1, 5, 15, 0, 0))
        self.assertEqual(order.total_amount, Decimal("59.90"))
        self.assertEqual(order.shipping_address.postal_code, "40202")
        self.assertEqual(order.items[0].total_price, Decimal("39.90"))
        self.assertIsNone(order.items[1].sku)

    @patch(REQUESTS_GET)
    def test_malformed_order_is_rejected_alone(self, mock_get):
        second = dict(SHOPIFY_ORDER, id=450789470, order_number=1002)
        broken = {k: v for k, v in SHOPIFY_ORDER.items() if k != "created_at"}
        broken["id"] = 450789471
        mock_get.return_value = fake_response(payload={"orders": [SHOPIFY_ORDER, second, broken]})

        with self.assertLogs("fulfillment.services.connectors.base", level="WARNING") as logs:
            fetched = self.connector.fetch_orders(shopify_store())

        self.assertEqual([o.external_order_id for o in fetched.records], ["450789469", "450789470"])
        self.assertEqual(len(fetched.rejected), 1)
        self.assertEqual(fetched.rejected[0].external_id, "450789471")
        self.assertIn("created_at", fetched.rejected[0].error)
        self.assertIn("[CONNECTOR] Rejected malformed order", logs.output[0])

    @patch(REQUESTS_GET)
    def test_timeout_is_retryable(self, mock_get):
        mock_get.side_effect = requests.Timeout()
        with self.assertRaises(ConnectorUnavailableError) as ctx:
            self.connector.fetch_orders(shopify_store())
        self.assertTrue(ctx.exception.retryable)

    @patch(REQUESTS_GET)
    def test_unauthorized_is_not_retryable(self, mock_get):
        mock_get.return_value = fake_response(status_code=401, text="Invalid API key")
        with self.assertRaises(ConnectorUnavailableError) as ctx:
            self.connector.fetch_orders(shopify_store())
        self.assertFalse(ctx.exception.retryable)
        self.assertEqual(ctx.exception.status_code, 401)

    @patch(REQUESTS_GET)
    def test_rate_limit_is_retryable(self, mock_get):
        mock_get.return_value = fake_response(status_code=429, text="Too Many Requests")
        with self.assertRaises(ConnectorUnavailableError) as ctx:
            self.connector.fetch_products(shopify_store())
        self.assertTrue(ctx.exception.retryable)

    @patch(REQUESTS_GET)
    def test_test_connection_reports_failure(self, mock_get):
        mock_get.side_effect = requests.ConnectionError("dns failure")
        result = self.connector.test_connection(shopify_store())
        self.assertFalse(result.ok)
        self.assertIn("unreachable", result.message)

    @patch(REQUESTS_GET)
    def test_test_connection_ok(self, mock_get):
        mock_get.return_value = fake_response(payload={"shop": {"name": "Acme"}})
        result = self.connector.test_connection(shopify_store())
        self.assertTrue(result.ok)
        self.assertTrue(mock_get.call_args[0][0].endswith("/shop.json"))

    def test_missing_credentials(self):
        store = SimpleNamespace(id=2, api_credentials={"shop_domain": "acme"})
        result = self.connector.test_connection(store)
        self.assertFalse(result.ok)
        self.assertIn("access_token", result.message)

    @patch(REQUESTS_GET)
    def test_fetch_products(self, mock_get):
        mock_get.return_value = fake_response(payload={"products": [{
            "id": 632910392,
            "title": "IPod Nano",
            "product_type": "Cult Products",
            "variants": [
                {"id": 808950810, "title": "Pink", "price": "199.00", "sku": "IPOD2008PINK", "inventory_quantity": 10},
                {"id": 49148385, "title": "Red", "price": "199.00", "sku": "IPOD2008RED", "inventory_quantity": 20},
            ],
            "images": [{"src": "https://cdn.example/ipod.png"}],
        }]})

        products = self.connector.fetch_products(shopify_store()).records

        self.assertEqual(products[0].external_product_id, "632910392")
        self.assertEqual(products[0].sku, "IPOD2008PINK")
        self.assertEqual(products[0].inventory_quantity, 30)
        self.assertEqual(len(products[0].variants), 2)


class TestBigCommerceConnector(unittest.TestCase):
    def setUp(self):
        self.connector = BigCommerceConnector(timeout=5)
        self.store = SimpleNamespace(id=3, api_credentials={"store_hash": "abc123", "access_token": "tok"})

    def test_status_mapping(self):
        expected = {
            0: OrderStatus.PENDING, 1: OrderStatus.PENDING, 2: OrderStatus.SHIPPED, 3: OrderStatus.PROCESSING,
            5: OrderStatus.CANCELLED, 9: OrderStatus.PROCESSING, 10: OrderStatus.FULFILLED,
            11: OrderStatus.PROCESSING, 12: OrderStatus.PENDING, 13: OrderStatus.CANCELLED,
        }
        for status_id, status in expected.items():
            self.assertEqual(self.connector.map_status(status_id), status)
        self.assertEqual(self.connector.map_status("10"), OrderStatus.FULFILLED)
        self.assertEqual(self.connector.map_status(None), OrderStatus.PENDING)

    @patch(REQUESTS_GET)
    def test_fetch_orders_reads_products_per_order(self, mock_get):
        order = {
            "id": 100,
            "status_id": 5,
            "status": "Cancelled",
            "date_created": "Tue, 20 Nov 2012 00:00:00 +0000",
            "total_inc_tax": "30.0000",
            "currency_code": "USD",
            "billing_address": {"first_name": "Jane", "last_name": "Doe", "email": "jane@example.com",
                                "street_1": "12 Elm", "zip": "10001"},
        }
        products = [{"id": 7, "name": "Mug", "sku": "MUG", "quantity": 2,
                     "price_inc_tax": "15.0000", "total_inc_tax": "30.0000", "product_options": []}]
        mock_get.side_effect = [fake_response(payload=[order]), fake_response(payload=products)]

        orders = self.connector.fetch_orders(self.store, since=datetime(2012, 11, 1)).records

        first_call, second_call = mock_get.call_args_list
        self.assertEqual(first_call[0][0], "https://api.bigcommerce.com/stores/abc123/v2/orders")
        self.assertEqual(first_call[1]["params"]["min_date_created"], "Thu, 01 Nov 2012 00:00:00 +0000")
        self.assertEqual(second_call[0][0], "https://api.bigcommerce.com/stores/abc123/v2/orders/100/products")

        canonical = orders[0]
        self.assertEqual(canonical.order_status, OrderStatus.CANCELLED)
        self.assertEqual(canonical.order_date, datetime(2012, 11, 20))
        self.assertEqual(canonical.billing_address.address1, "12 Elm")
        self.assertEqual(canonical.items[0].unit_price, Decimal("15.00"))

    @patch(REQUESTS_GET)
    def test_no_content_means_no_orders(self, mock_get):
        mock_get.return_value = fake_response(status_code=204)
        fetched = self.connector.fetch_orders(self.store)
        self.assertEqual((fetched.records, fetched.rejected), ([], []))


class TestWooCommerceConnector(unittest.TestCase):
    def setUp(self):
        self.connector = WooCommerceConnector(timeout=5)
        self.store = SimpleNamespace(id=4, api_credentials={
            "site_url": "https://shop.example/", "consumer_key": "ck_1", "consumer_secret": "cs_1"
        })

    def test_status_mapping(self):
        self.assertEqual(self.connector.map_status("on-hold"), OrderStatus.PENDING)
        self.assertEqual(self.connector.map_status("processing"), OrderStatus.PROCESSING)
        self.assertEqual(self.connector.map_status("completed"), OrderStatus.FULFILLED)
        for status in ("cancelled", "refunded", "failed"):
            self.assertEqual(self.connector.map_status(status), OrderStatus.CANCELLED)
        self.assertEqual(self.connector.map_status("checkout-draft"), OrderStatus.PENDING)

    @patch(REQUESTS_GET)
    def test_fetch_orders_uses_basic_auth(self, mock_get):
        mock_get.return_value = fake_response(payload=[{
            "id": 727,
            "number": "727",
            "status": "processing",
            "date_created_gmt": "2024-02-02T08:30:00",
            "total": "42.00",
            "date_paid": "2024-02-02T08:31:00",
            "billing": {"first_name": "Ann", "last_name": "Lee", "email": "ann@example.com"},
            "shipping": {"address_1": "9 Pine", "postcode": "94107"},
            "line_items": [{"id": 1, "name": "Cap", "sku": "CAP", "quantity": 1, "price": 42, "total": "42.00"}],
        }])

        orders = self.connector.fetch_orders(self.store, since=datetime(2024, 2, 1, 0, 0, 0, 500)).records

        args, kwargs = mock_get.call_args
        self.assertEqual(args[0], "https://shop.example/wp-json/wc/v3/orders")
        self.assertEqual(kwargs["auth"], ("ck_1", "cs_1"))
        self.assertEqual(kwargs["params"]["after"], "2024-02-01T00:00:00")
        self.assertEqual(orders[0].payment_status, "paid")
        self.assertEqual(orders[0].shipping_address.postal_code, "94107")

    @patch(REQUESTS_GET)
    def test_server_error_retryable(self, mock_get):
        mock_get.return_value = fake_response(status_code=503, text="Service Unavailable")
        with self.assertRaises(ConnectorUnavailableError) as ctx:
            self.connector.fetch_products(self.store)
        self.assertTrue(ctx.exception.retryable)

    @patch(REQUESTS_GET)
    def test_invalid_json(self, mock_get):
        response = fake_response()
        response.json.side_effect = ValueError("No JSON")
        mock_get.return_value = response
        with self.assertRaises(ConnectorUnavailableError):
            self.connector.fetch_orders(self.store)


class TestRegistry(unittest.TestCase):
    def test_lookup_by_enum_or_string(self):
        self.assertIsInstance(get_connector(StoreType.SHOPIFY), ShopifyConnector)
        self.assertIsInstance(get_connector("woocommerce"), WooCommerceConnector)

    def test_unsupported_type(self):
        with self.assertRaises(ValueError):
            get_connector("magento")


if __name__ == '__main__':
    unittest.main()
