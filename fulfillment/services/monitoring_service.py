"""
SLA Monitor - evaluates open orders, assignments, tracking and proofs against
time thresholds and records Alert rows.

Rules (each independent, evaluated against an injected `now`):
1. unassigned         orders pending/processing with no assignment
2. not_accepted       assignments `assigned` past assigned_but_not_accepted_hours
3. not_started        assignments `accepted` past accepted_but_not_started_hours
4. stale_in_progress  assignments `in_progress` not updated for in_progress_too_long_days
5. missing_tracking   `in_progress` assignments older than no_tracking_after_days with no tracking
6. stale_tracking     undelivered tracking not updated for stale_tracking_days
7. overdue_proof      pending proofs past expires_at

A rule that fails is rolled back, logged and reported in rule_errors; the
other rules still run. Alerts are append-only and are not de-duplicated
across runs. Each persisted alert is published as "alert.raised".

Thresholds come from Settings (env) overlaid with MonitoringSetting rows,
so an administrative update is picked up by the next run.
"""
import logging
import math
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from fulfillment.config import Settings, get_settings
from fulfillment.exceptions import ThresholdValidationError
from fulfillment.models.core import Order, OrderTracking, VendorAssignment
from fulfillment.models.enums import AlertType, AssignmentStatus, OrderStatus, ProofStatus, TrackingStatus
from fulfillment.models.monitoring import Alert, MonitoringSetting
from fulfillment.models.proofs import ProofApproval
from fulfillment.schemas.core import AlertResponse
from fulfillment.services.events import ALERT_RAISED, bus

logger = logging.getLogger(__name__)

HOURS_PER_DAY = 24

# Hourly job: the checks where a day's delay is already costly
CRITICAL_RULES = [AlertType.UNASSIGNED, AlertType.NOT_ACCEPTED, AlertType.OVERDUE_PROOF]


@dataclass
class SlaThresholds:
    unassigned_order_hours: float = 24
    assigned_but_not_accepted_hours: float = 48
    accepted_but_not_started_hours: float = 72
    in_progress_too_long_days: float = 7
    no_tracking_after_days: float = 3
    stale_tracking_days: float = 14

    @classmethod
    def from_settings(cls, settings: Settings) -> "SlaThresholds":
        return cls(
            unassigned_order_hours=settings.UNASSIGNED_ORDER_HOURS,
            assigned_but_not_accepted_hours=settings.ASSIGNED_BUT_NOT_ACCEPTED_HOURS,
            accepted_but_not_started_hours=settings.ACCEPTED_BUT_NOT_STARTED_HOURS,
            in_progress_too_long_days=settings.IN_PROGRESS_TOO_LONG_DAYS,
            no_tracking_after_days=settings.NO_TRACKING_AFTER_DAYS,
            stale_tracking_days=settings.STALE_TRACKING_DAYS,
        )

    def as_dict(self) -> Dict[str, float]:
        return asdict(self)


THRESHOLD_KEYS = [f.name for f in fields(SlaThresholds)]


def get_thresholds(db: Session, settings: Optional[Settings] = None) -> SlaThresholds:
    """Settings defaults overlaid with persisted MonitoringSetting overrides."""
    thresholds = SlaThresholds.from_settings(settings or get_settings())
    for row in db.query(MonitoringSetting).filter(MonitoringSetting.key.in_(THRESHOLD_KEYS)).all():
        setattr(thresholds, row.key, float(row.value))
    return thresholds


def update_thresholds(db: Session, updated_by: Optional[str] = None, **changes) -> SlaThresholds:
    """
    Validate and persist threshold overrides. Keys left as None are ignored.

    Raises:
        ThresholdValidationError: unknown key, or a value that is not a positive number
    """
    changes = {k: v for k, v in changes.items() if v is not None}
    unknown = sorted(set(changes) - set(THRESHOLD_KEYS))
    if unknown:
        raise ThresholdValidationError(f"Unknown threshold(s): {', '.join(unknown)}", {"unknown": unknown})

    for key, value in changes.items():
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value) or value <= 0:
            raise ThresholdValidationError(
                f"Threshold {key} must be a positive number, got {value!r}", {"key": key, "value": str(value)}
            )

    for key, value in changes.items():
        row = db.query(MonitoringSetting).filter(MonitoringSetting.key == key).first()
        if row is None:
            row = MonitoringSetting(key=key)
            db.add(row)
        row.value = str(float(value))
        row.updated_by = updated_by
        row.updated_at = datetime.utcnow()
    db.commit()

    logger.info(f"[SLA_MONITOR] Thresholds updated by={updated_by} changes={changes}")
    return get_thresholds(db)


@dataclass
class AlertCandidate:
    alert_type: AlertType
    elapsed_hours: float
    threshold_hours: float
    message: str
    order_id: Optional[int] = None
    vendor_assignment_id: Optional[int] = None
    proof_approval_id: Optional[int] = None
    tracking_id: Optional[int] = None
    vendor_id: Optional[int] = None

    @property
    def hours_overdue(self) -> int:
        return max(0, math.floor(self.elapsed_hours - self.threshold_hours))


@dataclass
class MonitorRunResult:
    started_at: datetime
    alerts: List[Alert] = field(default_factory=list)
    counts: Dict[str, int] = field(default_factory=dict)
    rule_errors: Dict[str, str] = field(default_factory=dict)

    @property
    def alerts_created(self) -> int:
        return len(self.alerts)


def _hours_between(earlier: datetime, later: datetime) -> float:
    return (later - earlier).total_seconds() / 3600


class SlaMonitor:
    def __init__(self, db: Session, thresholds: Optional[SlaThresholds] = None, event_bus=None):
        self.db = db
        self.thresholds = thresholds or get_thresholds(db)
        self.bus = event_bus or bus
        self.rules: Dict[AlertType, Callable[[datetime], List[AlertCandidate]]] = {
            AlertType.UNASSIGNED: self.check_unassigned_orders,
            AlertType.NOT_ACCEPTED: self.check_not_accepted,
            AlertType.NOT_STARTED: self.check_not_started,
            AlertType.STALE_IN_PROGRESS: self.check_stale_in_progress,
            AlertType.MISSING_TRACKING: self.check_missing_tracking,
            AlertType.STALE_TRACKING: self.check_stale_tracking,
            AlertType.OVERDUE_PROOF: self.check_overdue_proofs,
        }

    def reload(self, db: Optional[Session] = None) -> SlaThresholds:
        self.thresholds = get_thresholds(db or self.db)
        logger.info(f"[SLA_MONITOR] Thresholds reloaded {self.thresholds.as_dict()}")
        return self.thresholds

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(self, now: Optional[datetime] = None, rules: Optional[List[Any]] = None) -> MonitorRunResult:
        now = now or datetime.utcnow()
        selected = [AlertType(r) for r in rules] if rules else list(self.rules)
        result = MonitorRunResult(started_at=now)
        logger.info(f"[SLA_MONITOR] Run started now={now.isoformat()} rules={[r.value for r in selected]}")

        for alert_type in selected:
            try:
                candidates = self.rules[alert_type](now)
                alerts = [self._to_alert(c, now) for c in candidates]
                self.db.add_all(alerts)
                self.db.commit()
            except Exception as e:
                self.db.rollback()
                logger.exception(f"[SLA_MONITOR] Rule {alert_type.value} failed")
                result.rule_errors[alert_type.value] = str(e)
                continue

            result.counts[alert_type.value] = len(alerts)
            result.alerts.extend(alerts)
            for alert in alerts:
                self.bus.publish(ALERT_RAISED, AlertResponse.model_validate(alert).model_dump(mode="json"))

        logger.info(
            f"[SLA_MONITOR] Run finished alerts={result.alerts_created} counts={result.counts} "
            f"errors={list(result.rule_errors)}"
        )
        return result

    def _to_alert(self, candidate: AlertCandidate, now: datetime) -> Alert:
        return Alert(
            alert_type=candidate.alert_type,
            order_id=candidate.order_id,
            vendor_assignment_id=candidate.vendor_assignment_id,
            proof_approval_id=candidate.proof_approval_id,
            tracking_id=candidate.tracking_id,
            vendor_id=candidate.vendor_id,
            hours_overdue=candidate.hours_overdue,
            elapsed_hours=round(candidate.elapsed_hours, 2),
            message=candidate.message,
            created_at=now,
        )

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    def check_unassigned_orders(self, now: datetime) -> List[AlertCandidate]:
        threshold = self.thresholds.unassigned_order_hours
        cutoff = now - timedelta(hours=threshold)
        orders = self.db.query(Order).filter(
            Order.order_status.in_([OrderStatus.PENDING, OrderStatus.PROCESSING]),
            Order.order_date < cutoff,
            ~Order.assignments.any()
        ).order_by(Order.order_date).all()

        return [
            AlertCandidate(
                alert_type=AlertType.UNASSIGNED,
                order_id=o.id,
                elapsed_hours=_hours_between(o.order_date, now),
                threshold_hours=threshold,
                message=f"Order #{o.order_number or o.id} has no vendor after "
                        f"{_hours_between(o.order_date, now):.1f}h (threshold {threshold:g}h)",
            )
            for o in orders
        ]

    def _stalled_assignments(self, status: AssignmentStatus, column, threshold_hours: float,
                             now: datetime) -> List[VendorAssignment]:
        cutoff = now - timedelta(hours=threshold_hours)
        return self.db.query(VendorAssignment).filter(
            VendorAssignment.status == status,
            column < cutoff
        ).order_by(column).all()

    def check_not_accepted(self, now: datetime) -> List[AlertCandidate]:
        threshold = self.thresholds.assigned_but_not_accepted_hours
        rows = self._stalled_assignments(AssignmentStatus.ASSIGNED, VendorAssignment.assigned_at, threshold, now)
        return [
            AlertCandidate(
                alert_type=AlertType.NOT_ACCEPTED,
                order_id=a.order_id,
                vendor_assignment_id=a.id,
                vendor_id=a.vendor_id,
                elapsed_hours=_hours_between(a.assigned_at, now),
                threshold_hours=threshold,
                message=f"Vendor {a.vendor_id} has not accepted assignment {a.id} "
                        f"after {_hours_between(a.assigned_at, now):.1f}h (threshold {threshold:g}h)",
            )
            for a in rows
        ]

    def check_not_started(self, now: datetime) -> List[AlertCandidate]:
        threshold = self.thresholds.accepted_but_not_started_hours
        rows = self._stalled_assignments(AssignmentStatus.ACCEPTED, VendorAssignment.accepted_at, threshold, now)
        return [
            AlertCandidate(
                alert_type=AlertType.NOT_STARTED,
                order_id=a.order_id,
                vendor_assignment_id=a.id,
                vendor_id=a.vendor_id,
                elapsed_hours=_hours_between(a.accepted_at, now),
                threshold_hours=threshold,
                message=f"Assignment {a.id} accepted {_hours_between(a.accepted_at, now):.1f}h ago "
                        f"but not started (threshold {threshold:g}h)",
            )
            for a in rows
        ]

    def check_stale_in_progress(self, now: datetime) -> List[AlertCandidate]:
        threshold = self.thresholds.in_progress_too_long_days * HOURS_PER_DAY
        rows = self._stalled_assignments(AssignmentStatus.IN_PROGRESS, VendorAssignment.updated_at, threshold, now)
        return [
            AlertCandidate(
                alert_type=AlertType.STALE_IN_PROGRESS,
                order_id=a.order_id,
                vendor_assignment_id=a.id,
                vendor_id=a.vendor_id,
                elapsed_hours=_hours_between(a.updated_at, now),
                threshold_hours=threshold,
                message=f"Assignment {a.id} in progress without updates for "
                        f"{_hours_between(a.updated_at, now) / HOURS_PER_DAY:.1f} days",
            )
            for a in rows
        ]

    def check_missing_tracking(self, now: datetime) -> List[AlertCandidate]:
        threshold = self.thresholds.no_tracking_after_days * HOURS_PER_DAY
        cutoff = now - timedelta(hours=threshold)
        rows = self.db.query(VendorAssignment).filter(
            VendorAssignment.status == AssignmentStatus.IN_PROGRESS,
            VendorAssignment.updated_at < cutoff,
            ~VendorAssignment.tracking.any()
        ).order_by(VendorAssignment.updated_at).all()
        return [
            AlertCandidate(
                alert_type=AlertType.MISSING_TRACKING,
                order_id=a.order_id,
                vendor_assignment_id=a.id,
                vendor_id=a.vendor_id,
                elapsed_hours=_hours_between(a.updated_at, now),
                threshold_hours=threshold,
                message=f"Assignment {a.id} has no tracking after "
                        f"{_hours_between(a.updated_at, now) / HOURS_PER_DAY:.1f} days in progress",
            )
            for a in rows
        ]

    def check_stale_tracking(self, now: datetime) -> List[AlertCandidate]:
        threshold = self.thresholds.stale_tracking_days * HOURS_PER_DAY
        cutoff = now - timedelta(hours=threshold)
        rows = self.db.query(OrderTracking).filter(
            OrderTracking.status != TrackingStatus.DELIVERED,
            OrderTracking.updated_at < cutoff
        ).order_by(OrderTracking.updated_at).all()
        return [
            AlertCandidate(
                alert_type=AlertType.STALE_TRACKING,
                order_id=t.order_id,
                vendor_assignment_id=t.vendor_assignment_id,
                tracking_id=t.id,
                elapsed_hours=_hours_between(t.updated_at, now),
                threshold_hours=threshold,
                message=f"Tracking {t.tracking_number} ({t.carrier or 'unknown carrier'}) unchanged for "
                        f"{_hours_between(t.updated_at, now) / HOURS_PER_DAY:.1f} days",
            )
            for t in rows
        ]

    def check_overdue_proofs(self, now: datetime) -> List[AlertCandidate]:
        rows = self.db.query(ProofApproval).filter(
            ProofApproval.status == ProofStatus.PENDING,
            ProofApproval.expires_at < now
        ).order_by(ProofApproval.expires_at).all()
        return [
            AlertCandidate(
                alert_type=AlertType.OVERDUE_PROOF,
                order_id=p.order_id,
                vendor_assignment_id=p.vendor_assignment_id,
                proof_approval_id=p.id,
                # measured from expiry, so the threshold is zero
                elapsed_hours=_hours_between(p.expires_at, now),
                threshold_hours=0,
                message=f"{ProofStatus(p.status).value.title()} {p.proof_type.value} {p.id} expired "
                        f"{_hours_between(p.expires_at, now):.1f}h ago without a customer response",
            )
            for p in rows
        ]
