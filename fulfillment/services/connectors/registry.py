from typing import Dict, Type

from fulfillment.models.enums import StoreType
from fulfillment.services.connectors.base import StoreConnector
from fulfillment.services.connectors.bigcommerce import BigCommerceConnector
from fulfillment.services.connectors.shopify import ShopifyConnector
from fulfillment.services.connectors.woocommerce import WooCommerceConnector

CONNECTORS: Dict[StoreType, Type[StoreConnector]] = {
    StoreType.SHOPIFY: ShopifyConnector,
    StoreType.BIGCOMMERCE: BigCommerceConnector,
    StoreType.WOOCOMMERCE: WooCommerceConnector,
}


def get_connector(store_type) -> StoreConnector:
    """Return a connector instance for the given store type (enum or raw string)."""
    try:
        return CONNECTORS[StoreType(store_type)]()
    except (KeyError, ValueError):
        raise ValueError(f"Unsupported store type: {store_type!r}")
