"""
Normalization utilities for storefront payloads and money values.

Provides centralized, deterministic normalization for:
- Identifiers and SKUs (type-safe, whitespace-safe)
- Upstream timestamps (ISO 8601 or RFC 2822, stored as naive UTC)
- Money amounts (Decimal, rounded half-up to cents)

Used by:
- Store connectors when building canonical orders/products
- Ingestion (SKU -> synced product matching for default vendors)
- Assignment commission calculation
"""
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from email.utils import parsedate_to_datetime
from typing import Any, Optional, Union

CENTS = Decimal("0.01")


def normalize_identifier(value: Optional[Union[str, int]]) -> Optional[str]:
    """
    Normalize identifier for type-safe, whitespace-safe matching.
    Casts everything to string and strips whitespace.

    Examples:
        "450789469" -> "450789469"
        450789469 -> "450789469"
        " 450789469 " -> "450789469"
        None -> None
        "" -> None
    """
    if value is None:
        return None
    normalized = str(value).strip()
    return normalized if normalized else None


def normalize_sku(value: Optional[str]) -> Optional[str]:
    """
    Normalize SKU for case-insensitive matching.

    Examples:
        " tee-blk-m " -> "TEE-BLK-M"
        "" -> None
    """
    normalized = normalize_identifier(value)
    return normalized.upper() if normalized else None


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse an upstream timestamp into a naive UTC datetime.

    Accepts datetimes, ISO 8601 strings (with or without a Z suffix) and
    RFC 2822 strings (BigCommerce v2 uses "Tue, 20 Nov 2012 00:00:00 +0000").
    Naive inputs are assumed to already be UTC.
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        dt = value
    else:
        ts_str = str(value).strip()
        if ts_str.endswith("Z"):
            ts_str = ts_str[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(ts_str)
        except ValueError:
            try:
                dt = parsedate_to_datetime(ts_str)
            except (TypeError, ValueError):
                return None

    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def to_money(value: Any) -> Decimal:
    """
    Convert a price-like value into a Decimal rounded half-up to 2 places.

    Examples:
        "19.995" -> Decimal("20.00")
        None -> Decimal("0.00")
    """
    if value is None or value == "":
        return Decimal("0.00")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Invalid money amount: {value!r}")
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)
