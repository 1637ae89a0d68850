"""
Proof Approval Workflow - customer sign-off on design/production proofs.

Each proof carries an unguessable token (secrets.token_hex(32)) and an
expiry (PROOF_TOKEN_TTL_DAYS, default 7). A response is accepted exactly
once: the status write is a compare-and-swap on status='pending', so of
two racing responses only one can win. An approved response is the only
thing that advances OrderProductionStatus.
"""
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fulfillment.config import get_settings
from fulfillment.exceptions import (
    AlreadyRespondedError, NotFoundError, ProofError, TokenExpiredError, TokenNotFoundError
)
from fulfillment.models.core import Order, OrderItem, VendorAssignment
from fulfillment.models.enums import ProofStatus, ProofType
from fulfillment.models.proofs import OrderProductionStatus, ProofApproval, ProofResponseLog
from fulfillment.services.events import PROOF_RESPONDED, bus

logger = logging.getLogger(__name__)

RESPONSE_DECISIONS = {ProofStatus.APPROVED, ProofStatus.REJECTED, ProofStatus.REVISION_REQUESTED}

PRODUCTION_STATUS_FIELDS = {
    ProofType.DESIGN_PROOF: "design_proof_status",
    ProofType.PRODUCTION_PROOF: "production_proof_status",
}


@dataclass
class RequesterMeta:
    """Who answered a proof link, kept for the audit log."""
    ip: Optional[str] = None
    user_agent: Optional[str] = None


def generate_approval_token() -> str:
    return secrets.token_hex(32)


class ProofService:
    def __init__(self, db: Session, token_ttl_days: Optional[int] = None, event_bus=None):
        self.db = db
        self.token_ttl_days = token_ttl_days if token_ttl_days is not None else get_settings().PROOF_TOKEN_TTL_DAYS
        self.bus = event_bus or bus

    def create_proof(
        self,
        order_id: int,
        proof_type,
        proof_images: List[str],
        customer_email: str,
        customer_name: Optional[str] = None,
        order_item_id: Optional[int] = None,
        vendor_assignment_id: Optional[int] = None,
        created_by: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ProofApproval:
        order = self.db.query(Order).filter(Order.id == order_id).first()
        if not order:
            raise NotFoundError("Order", order_id)

        if order_item_id is not None:
            item = self.db.query(OrderItem).filter(
                OrderItem.id == order_item_id, OrderItem.order_id == order.id
            ).first()
            if not item:
                raise NotFoundError("OrderItem", order_item_id)

        if vendor_assignment_id is not None:
            assignment = self.db.query(VendorAssignment).filter(
                VendorAssignment.id == vendor_assignment_id, VendorAssignment.order_id == order.id
            ).first()
            if not assignment:
                raise NotFoundError("VendorAssignment", vendor_assignment_id)

        now = now or datetime.utcnow()
        proof = ProofApproval(
            order_id=order.id,
            order_item_id=order_item_id,
            vendor_assignment_id=vendor_assignment_id,
            proof_type=ProofType(proof_type),
            proof_images=list(proof_images),
            customer_email=customer_email,
            customer_name=customer_name or order.customer_name,
            approval_token=generate_approval_token(),
            status=ProofStatus.PENDING,
            sent_at=now,
            expires_at=now + timedelta(days=self.token_ttl_days),
            created_by=created_by,
            created_at=now,
        )
        self.db.add(proof)
        self.db.commit()
        self.db.refresh(proof)

        logger.info(
            f"[PROOFS] action=CREATE proof_id={proof.id} order_id={order.id} type={proof.proof_type.value} "
            f"expires_at={proof.expires_at.isoformat()}"
        )
        return proof

    def get_proof_by_token(self, token: str) -> ProofApproval:
        proof = self.db.query(ProofApproval).filter(ProofApproval.approval_token == token).first()
        if not proof:
            raise TokenNotFoundError()
        return proof

    def respond_to_proof(
        self,
        token: str,
        decision,
        notes: Optional[str] = None,
        requester: Optional[RequesterMeta] = None,
        now: Optional[datetime] = None,
    ) -> ProofApproval:
        """
        Record the customer's answer.

        Raises:
            TokenNotFoundError: no proof has this token
            TokenExpiredError: now > expires_at (even if still pending)
            AlreadyRespondedError: the proof already left `pending`, including
                losing a race against a concurrent response
            ProofError: decision is not approved/rejected/revision_requested
        """
        try:
            decision = ProofStatus(decision)
        except ValueError:
            raise ProofError(f"Invalid decision: {decision!r}", {"decision": str(decision)})
        if decision not in RESPONSE_DECISIONS:
            raise ProofError(f"Invalid decision: {decision.value}", {"decision": decision.value})

        requester = requester or RequesterMeta()
        now = now or datetime.utcnow()

        proof = self.get_proof_by_token(token)
        if now > proof.expires_at:
            raise TokenExpiredError()
        if proof.status != ProofStatus.PENDING:
            raise AlreadyRespondedError()

        updated = self.db.query(ProofApproval).filter(
            ProofApproval.id == proof.id,
            ProofApproval.status == ProofStatus.PENDING
        ).update(
            {"status": decision, "responded_at": now, "response_notes": notes},
            synchronize_session=False
        )
        if updated == 0:
            self.db.rollback()
            logger.info(f"[PROOFS] Lost response race proof_id={proof.id}")
            raise AlreadyRespondedError()

        if decision == ProofStatus.APPROVED:
            self._mark_production_approved(proof, now)

        self.db.add(ProofResponseLog(
            proof_approval_id=proof.id,
            response_type=decision.value,
            response_message=notes,
            response_ip=requester.ip,
            response_user_agent=requester.user_agent,
            created_at=now,
        ))
        self.db.commit()
        self.db.refresh(proof)

        logger.info(f"[PROOFS] action=RESPOND proof_id={proof.id} order_id={proof.order_id} decision={decision.value}")
        self.bus.publish(PROOF_RESPONDED, {
            "proof_id": proof.id,
            "order_id": proof.order_id,
            "vendor_assignment_id": proof.vendor_assignment_id,
            "proof_type": proof.proof_type.value,
            "decision": decision.value,
            "responded_at": now.isoformat(),
        })
        return proof

    def _find_production_status(self, order_id: int, vendor_assignment_id: Optional[int]):
        return self.db.query(OrderProductionStatus).filter(
            OrderProductionStatus.order_id == order_id,
            OrderProductionStatus.vendor_assignment_id == vendor_assignment_id
        ).first()

    def _mark_production_approved(self, proof: ProofApproval, now: datetime):
        status = self._find_production_status(proof.order_id, proof.vendor_assignment_id)
        if status is None:
            try:
                with self.db.begin_nested():
                    status = OrderProductionStatus(
                        order_id=proof.order_id,
                        vendor_assignment_id=proof.vendor_assignment_id,
                        design_proof_status=ProofStatus.PENDING.value,
                        production_proof_status=ProofStatus.PENDING.value,
                        created_at=now,
                    )
                    self.db.add(status)
                    self.db.flush()
            except IntegrityError:
                # A concurrent approval created the row first
                status = self._find_production_status(proof.order_id, proof.vendor_assignment_id)

        setattr(status, PRODUCTION_STATUS_FIELDS[ProofType(proof.proof_type)], ProofStatus.APPROVED.value)
        status.updated_at = now
        self.db.flush()

    def list_order_proofs(self, order_id: int) -> List[ProofApproval]:
        if not self.db.query(Order.id).filter(Order.id == order_id).first():
            raise NotFoundError("Order", order_id)
        return self.db.query(ProofApproval).filter(
            ProofApproval.order_id == order_id
        ).order_by(ProofApproval.created_at.desc(), ProofApproval.id.desc()).all()

    def get_production_status(self, order_id: int) -> List[OrderProductionStatus]:
        if not self.db.query(Order.id).filter(Order.id == order_id).first():
            raise NotFoundError("Order", order_id)
        return self.db.query(OrderProductionStatus).filter(
            OrderProductionStatus.order_id == order_id
        ).order_by(OrderProductionStatus.id).all()

    def get_proof_stats(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or datetime.utcnow()
        counts = dict(
            self.db.query(ProofApproval.status, func.count(ProofApproval.id)).group_by(ProofApproval.status).all()
        )
        expired_pending = self.db.query(ProofApproval).filter(
            ProofApproval.status == ProofStatus.PENDING,
            ProofApproval.expires_at < now
        ).count()
        return {
            "total": sum(counts.values()),
            "pending": counts.get(ProofStatus.PENDING, 0),
            "approved": counts.get(ProofStatus.APPROVED, 0),
            "rejected": counts.get(ProofStatus.REJECTED, 0),
            "revision_requested": counts.get(ProofStatus.REVISION_REQUESTED, 0),
            "expired_pending": expired_pending,
        }
