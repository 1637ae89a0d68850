import unittest
from datetime import datetime
from decimal import Decimal
from unittest.mock import patch
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from fulfillment.database import Base
import fulfillment.models  # noqa: F401
from fulfillment.exceptions import DuplicateAssignmentError, InvalidAssignmentError, NotFoundError
from fulfillment.models.core import (
    Store, Vendor, Order, OrderItem, ItemAssignment, VendorAssignment, SyncedProduct, ProductVendorAssignment
)
from fulfillment.models.enums import StoreType, OrderStatus, AssignmentStatus, AssignmentType
from fulfillment.schemas.core import ItemSelection
from fulfillment.services.assignment_service import AssignmentService, compute_commission


def make_order(db, store, external_id, items, status=OrderStatus.PENDING):
    total = sum((Decimal(str(price)) * qty for _, qty, price in items), Decimal("0"))
    order = Order(
        store_id=store.id, external_order_id=external_id, order_number=external_id,
        total_amount=total, order_status=status, order_date=datetime(2024, 1, 1, 12, 0, 0)
    )
    for sku, qty, price in items:
        order.items.append(OrderItem(
            product_name=f"Product {sku}", sku=sku, quantity=qty,
            unit_price=Decimal(str(price)), total_price=Decimal(str(price)) * qty
        ))
    db.add(order)
    db.commit()
    return order


class TestCommission(unittest.TestCase):
    def test_full_order_commission(self):
        self.assertEqual(compute_commission(Decimal("100.00"), Decimal("15")), Decimal("15.00"))

    def test_partial_commission(self):
        self.assertEqual(compute_commission(Decimal("40.00"), Decimal("15")), Decimal("6.00"))

    def test_rounds_half_up_to_cents(self):
        self.assertEqual(compute_commission(Decimal("10.05"), Decimal("50")), Decimal("5.03"))

    def test_missing_rate_is_zero(self):
        self.assertEqual(compute_commission(Decimal("99.99"), None), Decimal("0.00"))


class TestAssignmentService(unittest.TestCase):
    def setUp(self):
        self.engine = create_engine("sqlite:///:memory:")
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine)
        self.db = self.Session()

        self.store = Store(name="Store A", type=StoreType.SHOPIFY, store_url="https://a.example", api_credentials={})
        self.vendor_a = Vendor(company_name="Vendor A", commission_rate=Decimal("15"))
        self.vendor_b = Vendor(company_name="Vendor B", commission_rate=Decimal("10"))
        self.db.add_all([self.store, self.vendor_a, self.vendor_b])
        self.db.commit()
        self.service = AssignmentService(self.db)

    def tearDown(self):
        self.db.close()

    def test_full_assignment_commission(self):
        order = make_order(self.db, self.store, "1001", [("TEE", 1, "100.00")])

        assignment = self.service.assign_vendor(order.id, self.vendor_a.id, AssignmentType.FULL, assigned_by="admin")

        self.assertEqual(assignment.status, AssignmentStatus.ASSIGNED)
        self.assertEqual(assignment.commission_amount, Decimal("15.00"))
        self.assertEqual(self.db.query(ItemAssignment).count(), 0)

    def test_partial_assignment_commission_uses_selected_items(self):
        order = make_order(self.db, self.store, "1002", [("TEE", 1, "60.00"), ("MUG", 2, "20.00")])
        mug = order.items[1]

        assignment = self.service.assign_vendor(
            order.id, self.vendor_a.id, AssignmentType.PARTIAL,
            items=[ItemSelection(order_item_id=mug.id)]
        )

        self.assertEqual(assignment.commission_amount, Decimal("6.00"))
        links = self.db.query(ItemAssignment).all()
        self.assertEqual(len(links), 1)
        self.assertEqual(links[0].quantity, 2)
        self.assertEqual(links[0].assigned_amount, Decimal("40.00"))

    def test_partial_quantity_uses_unit_price(self):
        order = make_order(self.db, self.store, "1003", [("MUG", 3, "12.50")])

        self.service.assign_vendor(
            order.id, self.vendor_a.id, AssignmentType.PARTIAL,
            items=[ItemSelection(order_item_id=order.items[0].id, quantity=2)]
        )

        link = self.db.query(ItemAssignment).one()
        self.assertEqual(link.assigned_amount, Decimal("25.00"))

    def test_same_vendor_twice_is_duplicate(self):
        order = make_order(self.db, self.store, "1004", [("TEE", 1, "100.00")])
        self.service.assign_vendor(order.id, self.vendor_a.id)

        with self.assertRaises(DuplicateAssignmentError):
            self.service.assign_vendor(order.id, self.vendor_a.id)
        self.assertEqual(self.db.query(VendorAssignment).count(), 1)

    def test_constraint_race_surfaces_as_duplicate(self):
        order = make_order(self.db, self.store, "1005", [("TEE", 1, "60.00"), ("MUG", 1, "40.00")])
        tee, mug = order.items
        self.service.assign_vendor(order.id, self.vendor_a.id, AssignmentType.PARTIAL,
                                   items=[ItemSelection(order_item_id=tee.id)])

        with patch.object(AssignmentService, "_existing_assignment", return_value=None):
            with self.assertRaises(DuplicateAssignmentError):
                self.service.assign_vendor(order.id, self.vendor_a.id, AssignmentType.PARTIAL,
                                           items=[ItemSelection(order_item_id=mug.id)])
        self.db.rollback()
        self.assertEqual(self.db.query(VendorAssignment).count(), 1)

    def test_partial_without_items_is_invalid(self):
        order = make_order(self.db, self.store, "1006", [("TEE", 1, "100.00")])
        with self.assertRaises(InvalidAssignmentError):
            self.service.assign_vendor(order.id, self.vendor_a.id, AssignmentType.PARTIAL, items=[])
        self.assertEqual(self.db.query(VendorAssignment).count(), 0)

    def test_quantity_above_ordered_is_invalid(self):
        order = make_order(self.db, self.store, "1007", [("TEE", 1, "100.00")])
        with self.assertRaises(InvalidAssignmentError):
            self.service.assign_vendor(
                order.id, self.vendor_a.id, AssignmentType.PARTIAL,
                items=[ItemSelection(order_item_id=order.items[0].id, quantity=5)]
            )

    def test_item_from_another_order_not_found(self):
        order = make_order(self.db, self.store, "1008", [("TEE", 1, "100.00")])
        other = make_order(self.db, self.store, "1009", [("MUG", 1, "10.00")])
        with self.assertRaises(NotFoundError):
            self.service.assign_vendor(
                order.id, self.vendor_a.id, AssignmentType.PARTIAL,
                items=[ItemSelection(order_item_id=other.items[0].id)]
            )

    def test_covered_item_cannot_be_assigned_again(self):
        order = make_order(self.db, self.store, "1010", [("TEE", 1, "60.00"), ("MUG", 1, "40.00")])
        tee = order.items[0]
        self.service.assign_vendor(order.id, self.vendor_a.id, AssignmentType.PARTIAL,
                                   items=[ItemSelection(order_item_id=tee.id)])

        with self.assertRaises(DuplicateAssignmentError):
            self.service.assign_vendor(order.id, self.vendor_b.id, AssignmentType.PARTIAL,
                                       items=[ItemSelection(order_item_id=tee.id)])

    def test_partial_rejected_after_full_assignment(self):
        order = make_order(self.db, self.store, "1013", [("TEE", 1, "100.00")])
        self.service.assign_vendor(order.id, self.vendor_a.id)

        with self.assertRaises(DuplicateAssignmentError):
            self.service.assign_vendor(order.id, self.vendor_b.id, AssignmentType.PARTIAL,
                                       items=[ItemSelection(order_item_id=order.items[0].id)])

        commissions = [a.commission_amount for a in self.db.query(VendorAssignment).all()]
        self.assertEqual(commissions, [Decimal("15.00")])
        self.assertEqual(self.db.query(ItemAssignment).count(), 0)

    def test_full_rejected_when_an_item_is_already_covered(self):
        order = make_order(self.db, self.store, "1014", [("TEE", 1, "60.00"), ("MUG", 1, "40.00")])
        self.service.assign_vendor(order.id, self.vendor_a.id, AssignmentType.PARTIAL,
                                   items=[ItemSelection(order_item_id=order.items[1].id)])

        with self.assertRaises(DuplicateAssignmentError):
            self.service.assign_vendor(order.id, self.vendor_b.id, AssignmentType.FULL)

        self.assertEqual(self.db.query(VendorAssignment).count(), 1)

    def test_second_full_assignment_rejected(self):
        order = make_order(self.db, self.store, "1015", [("TEE", 1, "100.00")])
        self.service.assign_vendor(order.id, self.vendor_a.id)

        with self.assertRaises(DuplicateAssignmentError):
            self.service.assign_vendor(order.id, self.vendor_b.id)

    def test_cancelled_full_assignment_frees_the_order(self):
        order = make_order(self.db, self.store, "1016", [("TEE", 1, "100.00")])
        first = self.service.assign_vendor(order.id, self.vendor_a.id)
        first.status = AssignmentStatus.CANCELLED
        self.db.commit()

        partial = self.service.assign_vendor(order.id, self.vendor_b.id, AssignmentType.PARTIAL,
                                             items=[ItemSelection(order_item_id=order.items[0].id)])

        self.assertEqual(partial.commission_amount, Decimal("10.00"))

    def test_unknown_order_and_vendor(self):
        order = make_order(self.db, self.store, "1011", [("TEE", 1, "100.00")])
        with self.assertRaises(NotFoundError):
            self.service.assign_vendor(999, self.vendor_a.id)
        with self.assertRaises(NotFoundError):
            self.service.assign_vendor(order.id, 999)

    def test_terminal_order_rejected(self):
        order = make_order(self.db, self.store, "1012", [("TEE", 1, "100.00")], status=OrderStatus.CANCELLED)
        with self.assertRaises(InvalidAssignmentError):
            self.service.assign_vendor(order.id, self.vendor_a.id)

    def test_bulk_assign_collects_failures(self):
        first = make_order(self.db, self.store, "2001", [("TEE", 1, "100.00")])
        second = make_order(self.db, self.store, "2002", [("TEE", 1, "50.00")])
        self.service.assign_vendor(second.id, self.vendor_a.id)

        result = self.service.bulk_assign_vendor([first.id, second.id, 999], self.vendor_a.id)

        self.assertEqual(result.succeeded, [first.id])
        self.assertEqual(result.failed[second.id]["error"], "duplicate_assignment")
        self.assertEqual(result.failed[999]["error"], "not_found")
        self.assertEqual(self.db.query(VendorAssignment).count(), 2)

    def test_remove_item_keeps_assignment_and_commission(self):
        order = make_order(self.db, self.store, "3001", [("TEE", 1, "60.00"), ("MUG", 1, "40.00")])
        assignment = self.service.assign_vendor(
            order.id, self.vendor_a.id, AssignmentType.PARTIAL,
            items=[ItemSelection(order_item_id=order.items[0].id), ItemSelection(order_item_id=order.items[1].id)]
        )
        self.assertEqual(assignment.commission_amount, Decimal("15.00"))

        for link in list(assignment.item_assignments):
            self.service.remove_item_assignment(link.id)

        self.db.refresh(assignment)
        self.assertEqual(assignment.status, AssignmentStatus.ASSIGNED)
        self.assertEqual(assignment.commission_amount, Decimal("15.00"))
        self.assertEqual(len(assignment.item_assignments), 0)

    def test_remove_unknown_item_assignment(self):
        with self.assertRaises(NotFoundError):
            self.service.remove_item_assignment(12345)

    def test_order_splitting_view(self):
        order = make_order(self.db, self.store, "4001", [("TEE", 2, "30.00"), ("MUG", 1, "40.00")])
        tee, mug = order.items
        assignment = self.service.assign_vendor(
            order.id, self.vendor_a.id, AssignmentType.PARTIAL,
            items=[ItemSelection(order_item_id=tee.id, quantity=1)]
        )

        view = self.service.get_order_splitting(order.id)

        self.assertFalse(view["is_fully_assigned"])
        rows = {row["order_item_id"]: row for row in view["items"]}
        self.assertEqual(rows[tee.id]["assigned_quantity"], 1)
        self.assertEqual(rows[tee.id]["remaining_quantity"], 1)
        self.assertEqual(rows[tee.id]["vendor_assignment_id"], assignment.id)
        self.assertEqual(rows[mug.id]["assigned_quantity"], 0)
        self.assertIsNone(rows[mug.id]["vendor_id"])

    def test_full_assignment_covers_every_item_in_splitting(self):
        order = make_order(self.db, self.store, "4002", [("TEE", 2, "30.00"), ("MUG", 1, "40.00")])
        self.service.assign_vendor(order.id, self.vendor_b.id)

        view = self.service.get_order_splitting(order.id)

        self.assertTrue(view["is_fully_assigned"])
        self.assertTrue(all(row["vendor_id"] == self.vendor_b.id for row in view["items"]))


class TestDefaultVendorRouting(unittest.TestCase):
    def setUp(self):
        self.engine = create_engine("sqlite:///:memory:")
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine)
        self.db = self.Session()

        self.store = Store(name="Store A", type=StoreType.SHOPIFY, store_url="https://a.example", api_credentials={})
        self.vendor_a = Vendor(company_name="Vendor A", commission_rate=Decimal("10"))
        self.vendor_b = Vendor(company_name="Vendor B", commission_rate=Decimal("20"))
        self.db.add_all([self.store, self.vendor_a, self.vendor_b])
        self.db.commit()
        self.tee = self._product("P1", "tee-01")
        self.mug = self._product("P2", "MUG-01")
        self.service = AssignmentService(self.db)

    def tearDown(self):
        self.db.close()

    def _product(self, external_id, sku):
        product = SyncedProduct(store_id=self.store.id, external_product_id=external_id, name=sku, sku=sku)
        self.db.add(product)
        self.db.commit()
        return product

    def test_set_default_vendor_clears_previous_default(self):
        self.service.set_product_default_vendor(self.tee.id, self.vendor_a.id)
        self.service.set_product_default_vendor(self.tee.id, self.vendor_b.id, priority=2)

        links = self.db.query(ProductVendorAssignment).filter(
            ProductVendorAssignment.synced_product_id == self.tee.id
        ).all()
        defaults = [link.vendor_id for link in links if link.is_default]
        self.assertEqual(defaults, [self.vendor_b.id])

    def test_single_default_vendor_gets_full_assignment(self):
        self.service.set_product_default_vendor(self.tee.id, self.vendor_a.id)
        self.service.set_product_default_vendor(self.mug.id, self.vendor_a.id)
        order = make_order(self.db, self.store, "5001", [("TEE-01", 1, "60.00"), ("mug-01", 1, "40.00")])

        result = self.service.auto_assign_order(order.id)

        self.assertEqual(len(result.assignments), 1)
        self.assertEqual(result.assignments[0].assignment_type, AssignmentType.FULL)
        self.assertEqual(result.assignments[0].assigned_by, "system:auto-assign")
        self.assertEqual(result.unassigned_item_ids, [])

    def test_items_split_across_default_vendors(self):
        self.service.set_product_default_vendor(self.tee.id, self.vendor_a.id)
        self.service.set_product_default_vendor(self.mug.id, self.vendor_b.id)
        order = make_order(self.db, self.store, "5002", [("TEE-01", 1, "60.00"), ("MUG-01", 1, "40.00")])

        result = self.service.auto_assign_order(order.id)

        by_vendor = {a.vendor_id: a for a in result.assignments}
        self.assertEqual(by_vendor[self.vendor_a.id].assignment_type, AssignmentType.PARTIAL)
        self.assertEqual(by_vendor[self.vendor_a.id].commission_amount, Decimal("6.00"))
        self.assertEqual(by_vendor[self.vendor_b.id].commission_amount, Decimal("8.00"))

    def test_items_without_default_vendor_stay_unassigned(self):
        self.service.set_product_default_vendor(self.tee.id, self.vendor_a.id)
        order = make_order(self.db, self.store, "5003", [("TEE-01", 1, "60.00"), ("UNKNOWN", 1, "5.00")])

        result = self.service.auto_assign_order(order.id)

        self.assertEqual(len(result.assignments), 1)
        self.assertEqual(result.assignments[0].assignment_type, AssignmentType.PARTIAL)
        self.assertEqual(result.unassigned_item_ids, [order.items[1].id])


if __name__ == '__main__':
    unittest.main()
