from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from fulfillment.api.deps import verify_admin_key
from fulfillment.api.errors import to_http_exception
from fulfillment.database import get_db
from fulfillment.exceptions import FulfillmentError
from fulfillment.models.enums import AlertType
from fulfillment.models.monitoring import Alert
from fulfillment.schemas.core import (
    AlertResponse, MonitorRunRequest, MonitorRunResponse, ThresholdsResponse, ThresholdsUpdate
)
from fulfillment.services.monitoring_service import SlaMonitor, get_thresholds, update_thresholds

router = APIRouter(prefix="/monitoring", tags=["monitoring"], dependencies=[Depends(verify_admin_key)])


@router.post("/run", response_model=MonitorRunResponse)
def run_monitor(data: Optional[MonitorRunRequest] = None, db: Session = Depends(get_db)):
    rules = data.rules if data else None
    result = SlaMonitor(db).run(rules=rules)
    return MonitorRunResponse(
        started_at=result.started_at,
        alerts_created=result.alerts_created,
        counts=result.counts,
        rule_errors=result.rule_errors,
        alerts=[AlertResponse.model_validate(a) for a in result.alerts],
    )


@router.get("/thresholds", response_model=ThresholdsResponse)
def read_thresholds(db: Session = Depends(get_db)):
    return ThresholdsResponse(**get_thresholds(db).as_dict())


@router.put("/thresholds", response_model=ThresholdsResponse)
def write_thresholds(data: ThresholdsUpdate, db: Session = Depends(get_db)):
    changes = data.model_dump(exclude={"updated_by"}, exclude_none=True)
    try:
        thresholds = update_thresholds(db, updated_by=data.updated_by, **changes)
    except FulfillmentError as e:
        raise to_http_exception(e)
    return ThresholdsResponse(**thresholds.as_dict())


@router.get("/alerts", response_model=List[AlertResponse])
def list_alerts(
    alert_type: Optional[AlertType] = None,
    order_id: Optional[int] = None,
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db)
):
    query = db.query(Alert)
    if alert_type:
        query = query.filter(Alert.alert_type == alert_type)
    if order_id:
        query = query.filter(Alert.order_id == order_id)
    return query.order_by(Alert.created_at.desc(), Alert.id.desc()).limit(limit).all()
