"""
Canonical (storefront-agnostic) order and product shapes.

Every store connector maps its platform payloads into these models, so
validation happens once, at the connector boundary, before anything
reaches the database.
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fulfillment.models.enums import OrderStatus
from fulfillment.utils.normalization import parse_timestamp, to_money


class CanonicalAddress(BaseModel):
    model_config = ConfigDict(extra="ignore")

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    company: Optional[str] = None
    address1: Optional[str] = None
    address2: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None


class CanonicalOrderItem(BaseModel):
    external_item_id: Optional[str] = None
    product_name: str
    sku: Optional[str] = None
    quantity: int = Field(default=1, ge=0)
    unit_price: Decimal
    total_price: Decimal
    variant_title: Optional[str] = None
    # Raw platform line item (customization options, properties, etc.)
    product_data: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("unit_price", "total_price", mode="before")
    @classmethod
    def _money(cls, v):
        return to_money(v)


class CanonicalOrder(BaseModel):
    external_order_id: str
    order_number: Optional[str] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    billing_address: Optional[CanonicalAddress] = None
    shipping_address: Optional[CanonicalAddress] = None
    total_amount: Decimal
    currency: str = "USD"
    order_status: OrderStatus = OrderStatus.PENDING
    fulfillment_status: Optional[str] = None
    payment_status: Optional[str] = None
    tags: Optional[str] = None
    notes: Optional[str] = None
    order_date: datetime
    items: List[CanonicalOrderItem] = Field(default_factory=list)

    @field_validator("total_amount", mode="before")
    @classmethod
    def _money(cls, v):
        return to_money(v)

    @field_validator("order_date", mode="before")
    @classmethod
    def _naive_utc(cls, v):
        parsed = parse_timestamp(v)
        if parsed is None:
            raise ValueError(f"Unparseable order_date: {v!r}")
        return parsed


class CanonicalImage(BaseModel):
    url: str
    alt: Optional[str] = None


class CanonicalVariant(BaseModel):
    id: str
    title: Optional[str] = None
    price: Decimal = Decimal("0.00")
    sku: Optional[str] = None
    inventory_quantity: int = 0

    @field_validator("price", mode="before")
    @classmethod
    def _money(cls, v):
        return to_money(v)


class CanonicalProduct(BaseModel):
    external_product_id: str
    name: str
    description: Optional[str] = None
    sku: Optional[str] = None
    price: Decimal = Decimal("0.00")
    inventory_quantity: int = 0
    product_type: Optional[str] = None
    images: List[CanonicalImage] = Field(default_factory=list)
    variants: List[CanonicalVariant] = Field(default_factory=list)

    @field_validator("price", mode="before")
    @classmethod
    def _money(cls, v):
        return to_money(v)
