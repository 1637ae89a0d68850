from sqlalchemy import Column, Integer, String, Text, ForeignKey, DateTime, Enum, JSON, UniqueConstraint, Index, text
from sqlalchemy.orm import relationship
from datetime import datetime
from fulfillment.database import Base
from fulfillment.models.enums import ProofType, ProofStatus

class ProofApproval(Base):
    __tablename__ = "proof_approvals"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    order_item_id = Column(Integer, ForeignKey("order_items.id"), nullable=True)
    vendor_assignment_id = Column(Integer, ForeignKey("vendor_assignments.id"), nullable=True)
    proof_type = Column(Enum(ProofType), nullable=False)
    proof_images = Column(JSON, nullable=False, default=list)
    customer_email = Column(String(255), nullable=False)
    customer_name = Column(String(255), nullable=True)
    approval_token = Column(String(64), nullable=False, unique=True, index=True)
    status = Column(Enum(ProofStatus), nullable=False, default=ProofStatus.PENDING)
    sent_at = Column(DateTime, default=datetime.utcnow)
    expires_at = Column(DateTime, nullable=False)
    responded_at = Column(DateTime, nullable=True)
    response_notes = Column(Text, nullable=True)
    created_by = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    order = relationship("Order")
    vendor_assignment = relationship("VendorAssignment")
    response_logs = relationship("ProofResponseLog", back_populates="proof", order_by="ProofResponseLog.id")

class ProofResponseLog(Base):
    __tablename__ = "proof_response_logs"

    id = Column(Integer, primary_key=True, index=True)
    proof_approval_id = Column(Integer, ForeignKey("proof_approvals.id"), nullable=False, index=True)
    response_type = Column(String(50), nullable=False)
    response_message = Column(Text, nullable=True)
    response_ip = Column(String(64), nullable=True)
    response_user_agent = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    proof = relationship("ProofApproval", back_populates="response_logs")

class OrderProductionStatus(Base):
    __tablename__ = "order_production_status"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    vendor_assignment_id = Column(Integer, ForeignKey("vendor_assignments.id"), nullable=True)
    design_proof_status = Column(String(50), nullable=False, default="pending")
    production_proof_status = Column(String(50), nullable=False, default="pending")
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)

    # NULLs are distinct in a unique constraint; the partial index keeps one unassigned row per order
    __table_args__ = (
        UniqueConstraint('order_id', 'vendor_assignment_id', name='uq_order_production_status_order_assignment'),
        Index(
            'uq_order_production_status_order_unassigned', 'order_id', unique=True,
            sqlite_where=text('vendor_assignment_id IS NULL'),
            postgresql_where=text('vendor_assignment_id IS NULL'),
        ),
    )
