import os
import re
import shutil
import tempfile
import unittest
from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import patch
from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker
from fulfillment.database import Base
import fulfillment.models  # noqa: F401
from fulfillment.exceptions import (
    AlreadyRespondedError, NotFoundError, ProofError, TokenExpiredError, TokenNotFoundError
)
from fulfillment.models.core import Store, Vendor, Order, OrderItem, VendorAssignment
from fulfillment.models.enums import (
    StoreType, OrderStatus, AssignmentStatus, AssignmentType, ProofStatus, ProofType
)
from fulfillment.models.proofs import OrderProductionStatus, ProofApproval, ProofResponseLog
from fulfillment.services.events import EventBus, PROOF_RESPONDED
from fulfillment.services.proof_service import ProofService, RequesterMeta

SENT_AT = datetime(2024, 3, 1, 9, 0, 0)


def seed_order(db):
    store = Store(name="Store A", type=StoreType.SHOPIFY, store_url="https://a.example", api_credentials={})
    vendor = Vendor(company_name="Print Co", commission_rate=Decimal("10"))
    db.add_all([store, vendor])
    db.flush()
    order = Order(
        store_id=store.id, external_order_id="1001", order_number="1001", customer_name="Ada Lovelace",
        customer_email="ada@example.com", total_amount=Decimal("50.00"), order_status=OrderStatus.PROCESSING,
        order_date=SENT_AT
    )
    order.items.append(OrderItem(product_name="Custom Banner", quantity=1, unit_price=Decimal("50.00"),
                                 total_price=Decimal("50.00")))
    db.add(order)
    db.flush()
    assignment = VendorAssignment(order_id=order.id, vendor_id=vendor.id, assignment_type=AssignmentType.FULL,
                                  status=AssignmentStatus.ACCEPTED, commission_amount=Decimal("5.00"))
    db.add(assignment)
    db.commit()
    return order, assignment


class TestProofService(unittest.TestCase):
    def setUp(self):
        self.engine = create_engine("sqlite:///:memory:")
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine)
        self.db = self.Session()
        self.order, self.assignment = seed_order(self.db)
        self.events = EventBus()
        self.service = ProofService(self.db, token_ttl_days=7, event_bus=self.events)

    def tearDown(self):
        self.db.close()

    def _create(self, proof_type=ProofType.DESIGN_PROOF):
        return self.service.create_proof(
            self.order.id, proof_type, ["https://cdn.example/proof-1.png"], "ada@example.com",
            vendor_assignment_id=self.assignment.id, created_by="admin", now=SENT_AT
        )

    def test_create_generates_token_and_expiry(self):
        proof = self._create()

        self.assertTrue(re.fullmatch(r"[0-9a-f]{64}", proof.approval_token))
        self.assertEqual(proof.status, ProofStatus.PENDING)
        self.assertEqual(proof.expires_at, SENT_AT + timedelta(days=7))
        self.assertEqual(proof.customer_name, "Ada Lovelace")

    def test_tokens_are_unique(self):
        tokens = {self._create().approval_token for _ in range(5)}
        self.assertEqual(len(tokens), 5)

    def test_create_for_unknown_order(self):
        with self.assertRaises(NotFoundError):
            self.service.create_proof(999, ProofType.DESIGN_PROOF, [], "x@example.com")

    def test_create_rejects_assignment_from_another_order(self):
        with self.assertRaises(NotFoundError):
            self.service.create_proof(self.order.id, ProofType.DESIGN_PROOF, [], "x@example.com",
                                      vendor_assignment_id=999)

    def test_unknown_token(self):
        with self.assertRaises(TokenNotFoundError):
            self.service.get_proof_by_token("0" * 64)
        with self.assertRaises(TokenNotFoundError):
            self.service.respond_to_proof("0" * 64, ProofStatus.APPROVED, now=SENT_AT)

    def test_expired_token_rejected_and_production_status_untouched(self):
        proof = self._create()

        with self.assertRaises(TokenExpiredError):
            self.service.respond_to_proof(proof.approval_token, ProofStatus.APPROVED, now=SENT_AT + timedelta(days=8))

        self.db.refresh(proof)
        self.assertEqual(proof.status, ProofStatus.PENDING)
        self.assertEqual(self.db.query(OrderProductionStatus).count(), 0)
        self.assertEqual(self.db.query(ProofResponseLog).count(), 0)

    def test_approve_marks_production_status(self):
        proof = self._create()

        result = self.service.respond_to_proof(
            proof.approval_token, ProofStatus.APPROVED, notes="Looks great",
            requester=RequesterMeta(ip="203.0.113.9", user_agent="Mozilla/5.0"), now=SENT_AT + timedelta(days=1)
        )

        self.assertEqual(result.status, ProofStatus.APPROVED)
        self.assertEqual(result.responded_at, SENT_AT + timedelta(days=1))
        self.assertEqual(result.response_notes, "Looks great")

        status = self.db.query(OrderProductionStatus).one()
        self.assertEqual(status.vendor_assignment_id, self.assignment.id)
        self.assertEqual(status.design_proof_status, "approved")
        self.assertEqual(status.production_proof_status, "pending")

        log = self.db.query(ProofResponseLog).one()
        self.assertEqual(log.response_type, "approved")
        self.assertEqual(log.response_ip, "203.0.113.9")
        self.assertEqual(log.response_user_agent, "Mozilla/5.0")

    def test_second_approval_updates_existing_production_row(self):
        design = self._create(ProofType.DESIGN_PROOF)
        production = self._create(ProofType.PRODUCTION_PROOF)

        self.service.respond_to_proof(design.approval_token, ProofStatus.APPROVED, now=SENT_AT)
        self.service.respond_to_proof(production.approval_token, ProofStatus.APPROVED, now=SENT_AT)

        status = self.db.query(OrderProductionStatus).one()
        self.assertEqual(status.design_proof_status, "approved")
        self.assertEqual(status.production_proof_status, "approved")

    def test_unassigned_proofs_share_one_production_row(self):
        design, production = [
            self.service.create_proof(self.order.id, proof_type, [], "ada@example.com", now=SENT_AT)
            for proof_type in (ProofType.DESIGN_PROOF, ProofType.PRODUCTION_PROOF)
        ]

        self.service.respond_to_proof(design.approval_token, ProofStatus.APPROVED, now=SENT_AT)
        self.service.respond_to_proof(production.approval_token, ProofStatus.APPROVED, now=SENT_AT)

        status = self.db.query(OrderProductionStatus).one()
        self.assertIsNone(status.vendor_assignment_id)
        self.assertEqual((status.design_proof_status, status.production_proof_status), ("approved", "approved"))

    def test_one_unassigned_production_row_per_order(self):
        for _ in range(2):
            self.db.add(OrderProductionStatus(order_id=self.order.id, vendor_assignment_id=None))
        with self.assertRaises(IntegrityError):
            self.db.commit()
        self.db.rollback()

    def test_approval_reuses_row_created_by_concurrent_approval(self):
        self.db.add(OrderProductionStatus(order_id=self.order.id, vendor_assignment_id=None,
                                          production_proof_status="approved"))
        self.db.commit()
        proof = self.service.create_proof(self.order.id, ProofType.DESIGN_PROOF, [], "ada@example.com", now=SENT_AT)
        original = ProofService._find_production_status
        calls = []

        def stale_first_lookup(service, order_id, vendor_assignment_id):
            calls.append(order_id)
            if len(calls) == 1:
                return None
            return original(service, order_id, vendor_assignment_id)

        with patch.object(ProofService, "_find_production_status", autospec=True, side_effect=stale_first_lookup):
            answered = self.service.respond_to_proof(proof.approval_token, ProofStatus.APPROVED, now=SENT_AT)

        self.assertEqual(answered.status, ProofStatus.APPROVED)
        self.assertEqual(len(calls), 2)
        status = self.db.query(OrderProductionStatus).one()
        self.assertEqual((status.design_proof_status, status.production_proof_status), ("approved", "approved"))

    def test_rejection_leaves_production_status_alone(self):
        proof = self._create()
        self.service.respond_to_proof(proof.approval_token, ProofStatus.REJECTED, notes="Wrong colour", now=SENT_AT)
        self.assertEqual(self.db.query(OrderProductionStatus).count(), 0)

    def test_second_response_is_rejected(self):
        proof = self._create()
        self.service.respond_to_proof(proof.approval_token, ProofStatus.REVISION_REQUESTED, now=SENT_AT)

        with self.assertRaises(AlreadyRespondedError):
            self.service.respond_to_proof(proof.approval_token, ProofStatus.APPROVED, now=SENT_AT)
        self.db.refresh(proof)
        self.assertEqual(proof.status, ProofStatus.REVISION_REQUESTED)

    def test_invalid_decision(self):
        proof = self._create()
        with self.assertRaises(ProofError):
            self.service.respond_to_proof(proof.approval_token, ProofStatus.PENDING, now=SENT_AT)
        with self.assertRaises(ProofError):
            self.service.respond_to_proof(proof.approval_token, "maybe", now=SENT_AT)

    def test_response_publishes_event(self):
        received = []
        self.events.subscribe(PROOF_RESPONDED, received.append)
        proof = self._create()

        self.service.respond_to_proof(proof.approval_token, ProofStatus.APPROVED, now=SENT_AT)

        self.assertEqual(len(received), 1)
        self.assertEqual(received[0]["proof_id"], proof.id)
        self.assertEqual(received[0]["order_id"], self.order.id)
        self.assertEqual(received[0]["decision"], "approved")

    def test_failing_subscriber_does_not_undo_response(self):
        def broken(_):
            raise RuntimeError("smtp down")
        self.events.subscribe(PROOF_RESPONDED, broken)
        proof = self._create()

        result = self.service.respond_to_proof(proof.approval_token, ProofStatus.APPROVED, now=SENT_AT)
        self.assertEqual(result.status, ProofStatus.APPROVED)

    def test_list_and_stats(self):
        first = self._create()
        self._create()
        self.service.respond_to_proof(first.approval_token, ProofStatus.APPROVED, now=SENT_AT)

        self.assertEqual(len(self.service.list_order_proofs(self.order.id)), 2)
        stats = self.service.get_proof_stats(now=SENT_AT + timedelta(days=10))
        self.assertEqual(stats["total"], 2)
        self.assertEqual(stats["approved"], 1)
        self.assertEqual(stats["pending"], 1)
        self.assertEqual(stats["expired_pending"], 1)

        with self.assertRaises(NotFoundError):
            self.service.get_production_status(999)


class TestConcurrentResponses(unittest.TestCase):
    """Two sessions answering the same link; only one may win."""

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.engine = create_engine(f"sqlite:///{os.path.join(self.tmpdir, 'proofs.db')}")
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine)

        db = self.Session()
        order, assignment = seed_order(db)
        proof = ProofService(db, token_ttl_days=7, event_bus=EventBus()).create_proof(
            order.id, ProofType.PRODUCTION_PROOF, [], "ada@example.com",
            vendor_assignment_id=assignment.id, now=SENT_AT
        )
        self.token = proof.approval_token
        db.close()

    def tearDown(self):
        self.engine.dispose()
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def test_exactly_one_response_wins(self):
        db_a = self.Session()
        db_b = self.Session()
        try:
            service_a = ProofService(db_a, token_ttl_days=7, event_bus=EventBus())
            service_b = ProofService(db_b, token_ttl_days=7, event_bus=EventBus())

            # B has already read the proof as pending when A's answer lands
            stale = service_b.get_proof_by_token(self.token)
            self.assertEqual(stale.status, ProofStatus.PENDING)

            service_a.respond_to_proof(self.token, ProofStatus.APPROVED, now=SENT_AT)
            with self.assertRaises(AlreadyRespondedError):
                service_b.respond_to_proof(self.token, ProofStatus.REJECTED, now=SENT_AT)
        finally:
            db_a.close()
            db_b.close()

        check = self.Session()
        try:
            proof = check.query(ProofApproval).filter(ProofApproval.approval_token == self.token).one()
            self.assertEqual(proof.status, ProofStatus.APPROVED)
            self.assertEqual(check.query(ProofResponseLog).count(), 1)
            status = check.query(OrderProductionStatus).one()
            self.assertEqual(status.production_proof_status, "approved")
        finally:
            check.close()


if __name__ == '__main__':
    unittest.main()
