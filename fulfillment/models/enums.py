import enum

class StoreType(str, enum.Enum):
    SHOPIFY = "shopify"
    BIGCOMMERCE = "bigcommerce"
    WOOCOMMERCE = "woocommerce"

class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"

class AssignmentType(str, enum.Enum):
    FULL = "full"
    PARTIAL = "partial"

class AssignmentStatus(str, enum.Enum):
    ASSIGNED = "assigned"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

class TrackingStatus(str, enum.Enum):
    PENDING = "pending"
    SHIPPED = "shipped"
    IN_TRANSIT = "in_transit"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    EXCEPTION = "exception"

class ProofType(str, enum.Enum):
    DESIGN_PROOF = "design_proof"
    PRODUCTION_PROOF = "production_proof"

class ProofStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    REVISION_REQUESTED = "revision_requested"

class AlertType(str, enum.Enum):
    UNASSIGNED = "unassigned"
    NOT_ACCEPTED = "not_accepted"
    NOT_STARTED = "not_started"
    STALE_IN_PROGRESS = "stale_in_progress"
    MISSING_TRACKING = "missing_tracking"
    STALE_TRACKING = "stale_tracking"
    OVERDUE_PROOF = "overdue_proof"
