from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from typing import Optional, List, Dict, Any
from datetime import datetime
from decimal import Decimal
from fulfillment.models.enums import (
    StoreType, OrderStatus, AssignmentType, AssignmentStatus, TrackingStatus,
    ProofType, ProofStatus, AlertType
)

# Stores

class ShopifyCredentials(BaseModel):
    model_config = ConfigDict(extra="allow")

    shop_domain: str = Field(min_length=1)
    access_token: str = Field(min_length=1)

class BigCommerceCredentials(BaseModel):
    model_config = ConfigDict(extra="allow")

    store_hash: str = Field(min_length=1)
    access_token: str = Field(min_length=1)

class WooCommerceCredentials(BaseModel):
    model_config = ConfigDict(extra="allow")

    site_url: str = Field(min_length=1)
    consumer_key: str = Field(min_length=1)
    consumer_secret: str = Field(min_length=1)

    @field_validator("site_url")
    @classmethod
    def _http_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("site_url must start with http:// or https://")
        return v.rstrip("/")

CREDENTIAL_MODELS = {
    StoreType.SHOPIFY: ShopifyCredentials,
    StoreType.BIGCOMMERCE: BigCommerceCredentials,
    StoreType.WOOCOMMERCE: WooCommerceCredentials,
}

class StoreBase(BaseModel):
    name: str
    type: StoreType
    store_url: str
    is_active: bool = True
    sync_enabled: bool = True

class StoreCreate(StoreBase):
    api_credentials: Dict[str, Any]

    @model_validator(mode="after")
    def _credentials_match_platform(self):
        model = CREDENTIAL_MODELS[self.type]
        try:
            credentials = model.model_validate(self.api_credentials)
        except ValidationError as e:
            fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
            raise ValueError(f"Invalid {self.type.value} credentials: {fields}")
        self.api_credentials = credentials.model_dump()
        return self

class StoreResponse(StoreBase):
    id: int
    last_sync_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class ConnectionTestResponse(BaseModel):
    store_id: int
    ok: bool
    message: str

class SyncResultResponse(BaseModel):
    store_id: int
    fetched: int = 0
    created: int = 0
    skipped: int = 0
    failed: int = 0
    auto_assigned: int = 0
    errors: List[Dict[str, Any]] = []
    error: Optional[str] = None

class ProductSyncResultResponse(BaseModel):
    store_id: int
    fetched: int
    created: int
    updated: int
    failed: int = 0
    errors: List[Dict[str, Any]] = []

# Vendors

class VendorBase(BaseModel):
    company_name: str
    contact_email: Optional[str] = None
    commission_rate: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    is_active: bool = True

class VendorCreate(VendorBase):
    pass

class VendorResponse(VendorBase):
    id: int

    class Config:
        from_attributes = True

class ProductDefaultVendorRequest(BaseModel):
    vendor_id: int
    priority: int = 1
    commission_rate: Optional[Decimal] = None

class ProductVendorAssignmentResponse(BaseModel):
    id: int
    synced_product_id: int
    vendor_id: int
    is_default: bool
    priority: Optional[int] = None
    commission_rate: Optional[Decimal] = None

    class Config:
        from_attributes = True

# Orders

class OrderItemResponse(BaseModel):
    id: int
    external_item_id: Optional[str] = None
    product_name: str
    sku: Optional[str] = None
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    variant_title: Optional[str] = None

    class Config:
        from_attributes = True

class OrderResponse(BaseModel):
    id: int
    store_id: int
    external_order_id: str
    order_number: Optional[str] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    total_amount: Decimal
    currency: Optional[str] = None
    order_status: OrderStatus
    fulfillment_status: Optional[str] = None
    payment_status: Optional[str] = None
    order_date: datetime
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class OrderDetailResponse(OrderResponse):
    customer_phone: Optional[str] = None
    billing_address: Optional[Dict[str, Any]] = None
    shipping_address: Optional[Dict[str, Any]] = None
    tags: Optional[str] = None
    notes: Optional[str] = None
    items: List[OrderItemResponse] = []

class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    changed_by: Optional[str] = None
    notes: Optional[str] = None

class OrderStatusHistoryResponse(BaseModel):
    id: int
    order_id: int
    vendor_assignment_id: Optional[int] = None
    changed_by: Optional[str] = None
    old_status: Optional[str] = None
    new_status: str
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True

# Assignments

class ItemSelection(BaseModel):
    """One order item (optionally a sub-quantity) in a partial assignment."""
    order_item_id: int
    quantity: Optional[int] = Field(default=None, ge=1)

class AssignVendorRequest(BaseModel):
    order_id: int
    vendor_id: int
    assignment_type: AssignmentType = AssignmentType.FULL
    items: Optional[List[ItemSelection]] = None
    assigned_by: Optional[str] = None
    notes: Optional[str] = None

class BulkAssignRequest(BaseModel):
    order_ids: List[int]
    vendor_id: int
    assignment_type: AssignmentType = AssignmentType.FULL
    assigned_by: Optional[str] = None
    notes: Optional[str] = None

class BulkAssignResponse(BaseModel):
    succeeded: List[int]
    failed: Dict[int, Dict[str, str]]

class ItemAssignmentResponse(BaseModel):
    id: int
    vendor_assignment_id: int
    order_item_id: int
    quantity: int
    assigned_amount: Decimal

    class Config:
        from_attributes = True

class VendorAssignmentResponse(BaseModel):
    id: int
    order_id: int
    vendor_id: int
    assigned_by: Optional[str] = None
    assignment_type: AssignmentType
    status: AssignmentStatus
    commission_amount: Optional[Decimal] = None
    notes: Optional[str] = None
    assigned_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    item_assignments: List[ItemAssignmentResponse] = []

    class Config:
        from_attributes = True

class AssignmentStatusUpdate(BaseModel):
    status: AssignmentStatus
    changed_by: Optional[str] = None
    notes: Optional[str] = None
    override: bool = False
    reason: Optional[str] = None

class SplittingItemResponse(BaseModel):
    order_item_id: int
    product_name: str
    sku: Optional[str] = None
    quantity: int
    assigned_quantity: int
    remaining_quantity: int
    vendor_assignment_id: Optional[int] = None
    vendor_id: Optional[int] = None
    is_fully_assigned: bool

class OrderSplittingResponse(BaseModel):
    order_id: int
    items: List[SplittingItemResponse]
    assignments: List[VendorAssignmentResponse]
    is_fully_assigned: bool

# Tracking

class TrackingCreate(BaseModel):
    tracking_number: str
    carrier: Optional[str] = None
    tracking_url: Optional[str] = None
    shipped_date: Optional[datetime] = None
    notes: Optional[str] = None
    created_by: Optional[str] = None

class TrackingStatusUpdate(BaseModel):
    status: TrackingStatus
    notes: Optional[str] = None
    changed_by: Optional[str] = None

class TrackingResponse(BaseModel):
    id: int
    order_id: int
    vendor_assignment_id: int
    tracking_number: str
    carrier: Optional[str] = None
    tracking_url: Optional[str] = None
    status: TrackingStatus
    shipped_date: Optional[datetime] = None
    delivered_date: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

# Proofs

class ProofCreate(BaseModel):
    order_id: int
    proof_type: ProofType
    proof_images: List[str] = Field(min_length=1)
    customer_email: str
    customer_name: Optional[str] = None
    order_item_id: Optional[int] = None
    vendor_assignment_id: Optional[int] = None
    created_by: Optional[str] = None

class ProofResponse(BaseModel):
    id: int
    order_id: int
    order_item_id: Optional[int] = None
    vendor_assignment_id: Optional[int] = None
    proof_type: ProofType
    proof_images: List[str]
    customer_email: str
    customer_name: Optional[str] = None
    approval_token: str
    status: ProofStatus
    sent_at: Optional[datetime] = None
    expires_at: datetime
    responded_at: Optional[datetime] = None
    response_notes: Optional[str] = None

    class Config:
        from_attributes = True

class ProofPublicResponse(BaseModel):
    """What the customer sees on the approval page; no token or email echo."""
    id: int
    order_id: int
    proof_type: ProofType
    proof_images: List[str]
    customer_name: Optional[str] = None
    status: ProofStatus
    expires_at: datetime
    responded_at: Optional[datetime] = None
    is_expired: bool = False

    class Config:
        from_attributes = True

class ProofRespondRequest(BaseModel):
    decision: ProofStatus
    notes: Optional[str] = None

class ProductionStatusResponse(BaseModel):
    id: int
    order_id: int
    vendor_assignment_id: Optional[int] = None
    design_proof_status: str
    production_proof_status: str
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class ProofStatsResponse(BaseModel):
    total: int
    pending: int
    approved: int
    rejected: int
    revision_requested: int
    expired_pending: int

# Monitoring

class AlertResponse(BaseModel):
    id: int
    alert_type: AlertType
    order_id: Optional[int] = None
    vendor_assignment_id: Optional[int] = None
    proof_approval_id: Optional[int] = None
    tracking_id: Optional[int] = None
    vendor_id: Optional[int] = None
    hours_overdue: int
    elapsed_hours: float
    message: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True

class ThresholdsResponse(BaseModel):
    unassigned_order_hours: float
    assigned_but_not_accepted_hours: float
    accepted_but_not_started_hours: float
    in_progress_too_long_days: float
    no_tracking_after_days: float
    stale_tracking_days: float

class ThresholdsUpdate(BaseModel):
    unassigned_order_hours: Optional[float] = None
    assigned_but_not_accepted_hours: Optional[float] = None
    accepted_but_not_started_hours: Optional[float] = None
    in_progress_too_long_days: Optional[float] = None
    no_tracking_after_days: Optional[float] = None
    stale_tracking_days: Optional[float] = None
    updated_by: Optional[str] = None

class MonitorRunRequest(BaseModel):
    rules: Optional[List[AlertType]] = None

class MonitorRunResponse(BaseModel):
    started_at: datetime
    alerts_created: int
    counts: Dict[str, int]
    rule_errors: Dict[str, str]
    alerts: List[AlertResponse] = []
