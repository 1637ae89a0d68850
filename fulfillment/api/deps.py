from typing import Optional

from fastapi import Header, HTTPException

from fulfillment.config import get_settings


def verify_admin_key(x_admin_key: Optional[str] = Header(None, alias="X-Admin-Key")):
    """
    Dependency that verifies the X-Admin-Key header.
    Returns 500 if ADMIN_KEY is not configured, 401 if the header is missing or wrong.
    """
    admin_key = get_settings().ADMIN_KEY
    if not admin_key:
        raise HTTPException(
            status_code=500,
            detail="ADMIN_KEY environment variable not configured"
        )

    if not x_admin_key:
        raise HTTPException(
            status_code=401,
            detail="X-Admin-Key header required"
        )

    if x_admin_key != admin_key:
        raise HTTPException(
            status_code=401,
            detail="Invalid admin key"
        )

    return True
