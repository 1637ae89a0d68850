"""
Error taxonomy for the fulfillment core.

Single-entity operations raise these directly. Batch operations (bulk
assignment, multi-store sync) catch them per item and report them in their
result summaries via `error_kind`.
"""
from typing import Any, Dict, Optional


class FulfillmentError(Exception):
    """Base exception for fulfillment engine errors."""
    error_kind = "fulfillment_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.error_kind, "message": self.message, "details": self.details}


class NotFoundError(FulfillmentError):
    """Raised when an order/vendor/assignment/proof reference cannot be resolved."""
    error_kind = "not_found"

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} {entity_id} not found", {"entity": entity, "id": entity_id})
        self.entity = entity
        self.entity_id = entity_id


class DuplicateAssignmentError(FulfillmentError):
    """Raised when a vendor is already assigned to an order (or an item is already covered)."""
    error_kind = "duplicate_assignment"


class InvalidAssignmentError(FulfillmentError):
    """Raised when an assignment request is malformed (e.g. partial with no items)."""
    error_kind = "invalid_assignment"


class InvalidTransitionError(FulfillmentError):
    """Raised when a status change violates the lifecycle rules."""
    error_kind = "invalid_transition"

    def __init__(self, entity: str, from_status: Optional[str], to_status: str):
        super().__init__(
            f"Cannot transition {entity} from '{from_status}' to '{to_status}'",
            {"entity": entity, "from": from_status, "to": to_status}
        )
        self.from_status = from_status
        self.to_status = to_status


class InvalidOverrideError(FulfillmentError):
    """Raised when an administrative override is missing its actor or reason."""
    error_kind = "invalid_override"


class ProofError(FulfillmentError):
    """Base exception for proof approval errors."""
    error_kind = "proof_error"


class TokenNotFoundError(ProofError):
    error_kind = "token_not_found"

    def __init__(self, message: str = "Invalid approval token"):
        super().__init__(message)


class TokenExpiredError(ProofError):
    error_kind = "token_expired"

    def __init__(self, message: str = "Approval token has expired"):
        super().__init__(message)


class AlreadyRespondedError(ProofError):
    error_kind = "already_responded"

    def __init__(self, message: str = "Proof has already been responded to"):
        super().__init__(message)


class ConnectorUnavailableError(FulfillmentError):
    """Raised when a storefront API is unreachable or rejects our credentials."""
    error_kind = "connector_unavailable"

    def __init__(self, message: str, status_code: int = 0, retryable: bool = False):
        super().__init__(message, {"status_code": status_code, "retryable": retryable})
        self.status_code = status_code
        self.retryable = retryable


class ThresholdValidationError(FulfillmentError):
    """Raised when an SLA threshold update is rejected."""
    error_kind = "invalid_threshold"
