from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from fulfillment.api.deps import verify_admin_key
from fulfillment.api.errors import to_http_exception
from fulfillment.database import get_db
from fulfillment.exceptions import FulfillmentError
from fulfillment.models.core import Vendor
from fulfillment.schemas.core import (
    ProductDefaultVendorRequest, ProductVendorAssignmentResponse, VendorCreate, VendorResponse
)
from fulfillment.services.assignment_service import AssignmentService

router = APIRouter(prefix="/vendors", tags=["vendors"], dependencies=[Depends(verify_admin_key)])


@router.get("", response_model=List[VendorResponse])
def list_vendors(db: Session = Depends(get_db)):
    return db.query(Vendor).order_by(Vendor.company_name).all()


@router.post("", response_model=VendorResponse, status_code=201)
def create_vendor(data: VendorCreate, db: Session = Depends(get_db)):
    vendor = Vendor(**data.model_dump())
    db.add(vendor)
    db.commit()
    db.refresh(vendor)
    return vendor


@router.put("/product-defaults/{synced_product_id}", response_model=ProductVendorAssignmentResponse)
def set_product_default_vendor(
    synced_product_id: int,
    data: ProductDefaultVendorRequest,
    db: Session = Depends(get_db)
):
    try:
        return AssignmentService(db).set_product_default_vendor(
            synced_product_id, data.vendor_id, priority=data.priority, commission_rate=data.commission_rate
        )
    except FulfillmentError as e:
        raise to_http_exception(e)
