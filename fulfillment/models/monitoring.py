from sqlalchemy import Column, Integer, String, Text, Float, ForeignKey, DateTime, Enum
from datetime import datetime
from fulfillment.database import Base
from fulfillment.models.enums import AlertType

class Alert(Base):
    """Append-only SLA breach fact. Read/ack state lives with the notifier."""
    __tablename__ = "alerts"

    id = Column(Integer, primary_key=True, index=True)
    alert_type = Column(Enum(AlertType), nullable=False, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True, index=True)
    vendor_assignment_id = Column(Integer, ForeignKey("vendor_assignments.id"), nullable=True)
    proof_approval_id = Column(Integer, ForeignKey("proof_approvals.id"), nullable=True)
    tracking_id = Column(Integer, ForeignKey("order_tracking.id"), nullable=True)
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=True)
    hours_overdue = Column(Integer, nullable=False, default=0)
    elapsed_hours = Column(Float, nullable=False, default=0)
    message = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

class MonitoringSetting(Base):
    __tablename__ = "monitoring_settings"

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String(100), unique=True, nullable=False)
    value = Column(String(100), nullable=False)
    updated_by = Column(String(255), nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
