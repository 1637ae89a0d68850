"""
Store Connector - common contract for storefront API adapters.

Each platform (Shopify, BigCommerce, WooCommerce) gets one concrete
StoreConnector subclass that owns:
- how to authenticate against the platform
- which endpoints to call for orders/products/shop info
- an explicit status-mapping table into OrderStatus

All HTTP goes through `_get`, which enforces a bounded timeout and turns
every transport/HTTP failure into ConnectorUnavailableError. Connectors do
not retry; callers decide. A record that fails canonical validation is a
data problem, not an outage: it is returned in FetchResult.rejected and the
rest of the batch is kept.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import requests
from pydantic import ValidationError

from fulfillment.config import get_settings
from fulfillment.exceptions import ConnectorUnavailableError
from fulfillment.models.enums import StoreType
from fulfillment.schemas.canonical import CanonicalOrder, CanonicalProduct

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


@dataclass
class ConnectionResult:
    """Outcome of a connectivity check; never raised, always returned."""
    ok: bool
    message: str


@dataclass
class RejectedRecord:
    """A fetched record that failed canonical validation."""
    external_id: Optional[str]
    error: str


@dataclass
class FetchResult:
    """Validated records from one fetch plus the ones rejected at the boundary."""
    records: List[Any] = field(default_factory=list)
    rejected: List[RejectedRecord] = field(default_factory=list)


class StoreConnector(ABC):
    platform: StoreType

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout if timeout is not None else get_settings().CONNECTOR_TIMEOUT_SECONDS

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    def test_connection(self, store) -> ConnectionResult:
        try:
            url, headers, auth = self._shop_info_request(store)
            self._get(url, headers=headers, auth=auth)
        except ConnectorUnavailableError as e:
            logger.warning(
                f"[CONNECTOR] test_connection failed platform={self.platform.value} store_id={store.id}: {e.message}"
            )
            return ConnectionResult(ok=False, message=e.message)
        return ConnectionResult(ok=True, message=f"Connected to {self.platform.value} store")

    @abstractmethod
    def fetch_orders(self, store, since: Optional[datetime] = None) -> FetchResult:
        ...

    @abstractmethod
    def fetch_products(self, store) -> FetchResult:
        ...

    @abstractmethod
    def map_status(self, *args) -> Any:
        """Map the platform's native status vocabulary into OrderStatus."""

    @abstractmethod
    def _shop_info_request(self, store) -> Tuple[str, Dict[str, str], Optional[Tuple[str, str]]]:
        """Return (url, headers, auth) of a cheap authenticated endpoint."""

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _credential(self, store, key: str) -> str:
        creds = store.api_credentials or {}
        value = creds.get(key)
        if not value:
            raise ConnectorUnavailableError(
                f"{self.platform.value} store {store.id} is missing credential '{key}'",
                status_code=0,
                retryable=False,
            )
        return value

    def _get(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        auth: Optional[Tuple[str, str]] = None,
    ) -> Any:
        """GET a JSON resource, mapping every failure to ConnectorUnavailableError."""
        platform = self.platform.value
        try:
            response = requests.get(url, headers=headers, params=params, auth=auth, timeout=self.timeout)
        except requests.Timeout:
            raise ConnectorUnavailableError(f"{platform} API timed out after {self.timeout}s", retryable=True)
        except requests.ConnectionError as e:
            raise ConnectorUnavailableError(f"{platform} API unreachable: {e}", retryable=True)
        except requests.RequestException as e:
            raise ConnectorUnavailableError(f"{platform} API request failed: {e}", retryable=False)

        status = response.status_code
        if status in (401, 403):
            raise ConnectorUnavailableError(
                f"{platform} API rejected credentials (HTTP {status})", status_code=status, retryable=False
            )
        if not 200 <= status < 300:
            raise ConnectorUnavailableError(
                f"{platform} API error: HTTP {status} - {response.text[:200]}",
                status_code=status,
                retryable=status in RETRYABLE_STATUS_CODES,
            )

        if status == 204:
            return None

        try:
            return response.json()
        except ValueError:
            raise ConnectorUnavailableError(f"{platform} API returned invalid JSON", status_code=status)

    def _validate_orders(self, raw_orders: List[Dict[str, Any]], mapper) -> FetchResult:
        result = self._validate(raw_orders, mapper, CanonicalOrder, "order")
        logger.info(
            "[CONNECTOR] platform=%s fetched_orders=%d rejected=%d",
            self.platform.value, len(result.records), len(result.rejected)
        )
        return result

    def _validate_products(self, raw_products: List[Dict[str, Any]], mapper) -> FetchResult:
        result = self._validate(raw_products, mapper, CanonicalProduct, "product")
        logger.info(
            "[CONNECTOR] platform=%s fetched_products=%d rejected=%d",
            self.platform.value, len(result.records), len(result.rejected)
        )
        return result

    def _validate(self, raw_records: List[Dict[str, Any]], mapper, model, kind: str) -> FetchResult:
        """Map and validate each record; a bad record is rejected alone."""
        result = FetchResult()
        for raw in raw_records:
            try:
                result.records.append(model.model_validate(mapper(raw)))
            except (ValidationError, KeyError, TypeError, ValueError, AttributeError) as e:
                external_id = raw.get("id") if isinstance(raw, dict) else None
                external_id = str(external_id) if external_id is not None else None
                logger.warning(
                    f"[CONNECTOR] Rejected malformed {kind} platform={self.platform.value} "
                    f"external_id={external_id}: {e}"
                )
                result.rejected.append(RejectedRecord(external_id=external_id, error=str(e)))
        return result


def full_name(first: Optional[str], last: Optional[str]) -> Optional[str]:
    name = f"{first or ''} {last or ''}".strip()
    return name or None
