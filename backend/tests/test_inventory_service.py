import unittest

from stockledger import create_app
from stockledger.extensions import db
from stockledger.models import Product, ProductSize, StockMovement, StockRecord, StockRestock
from stockledger.services import inventory_service, movement_service
from stockledger.services.stock_service import InsufficientStockError, StockOwner


class InventoryServiceTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.app = create_app({
            "SECRET_KEY": "test",
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
            "SQLALCHEMY_TRACK_MODIFICATIONS": False,
            "TESTING": True,
        })
        cls.ctx = cls.app.app_context()
        cls.ctx.push()
        db.create_all()

    @classmethod
    def tearDownClass(cls):
        db.session.remove()
        db.drop_all()
        cls.ctx.pop()

    def setUp(self):
        for table in reversed(db.metadata.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        self.product = Product(vendor_id=9, sku="TEE-1", title="Tee", price_cents=2500)
        db.session.add(self.product)
        db.session.flush()

        self.size = ProductSize(product_id=self.product.id, label="M")
        db.session.add(self.size)
        db.session.flush()

        db.session.add(StockRecord(product_size_id=self.size.id, quantity_available=10, quantity_reserved=0))
        db.session.commit()
        self.owner = StockOwner.size(self.size.id)

    def test_restock_writes_restock_row_and_in_movement(self):
        record, entry = inventory_service.restock(
            self.owner, quantity=5, cost_per_unit_cents=800, supplier_name="Acme Textiles"
        )

        self.assertEqual(record.quantity_available, 15)
        self.assertEqual(entry.quantity_added, 5)

        (movement,) = movement_service.list_movements(self.owner)
        self.assertEqual(movement.movement_type, "IN")
        self.assertEqual(movement.quantity_delta, 5)
        self.assertEqual(movement.reason, "Restock: Acme Textiles")
        self.assertEqual(movement.reference_type, "restock")
        self.assertEqual(movement.reference_id, str(entry.id))

    def test_restock_creates_record_for_untracked_product(self):
        product = Product(vendor_id=9, sku="MUG-1", title="Mug", price_cents=900)
        db.session.add(product)
        db.session.commit()

        owner = StockOwner.product(product.id)
        record, _ = inventory_service.restock(owner, quantity=3, cost_per_unit_cents=100, supplier_name="Kiln")

        self.assertEqual(record.product_id, product.id)
        self.assertEqual(record.quantity_available, 3)

    def test_adjust_records_signed_adjustment(self):
        inventory_service.adjust(self.owner, quantity_delta=-4, reason="Damaged in storage")

        (movement,) = movement_service.list_movements(self.owner)
        self.assertEqual(movement.movement_type, "ADJUSTMENT")
        self.assertEqual(movement.quantity_delta, -4)
        self.assertEqual(inventory_service.get_stock_summary(self.owner)["quantity_available"], 6)

    def test_failed_adjust_leaves_no_movement(self):
        with self.assertRaises(InsufficientStockError):
            inventory_service.adjust(self.owner, quantity_delta=-11, reason="Count variance")

        self.assertEqual(db.session.query(StockMovement).count(), 0)
        self.assertEqual(inventory_service.get_stock_summary(self.owner)["quantity_available"], 10)

    def test_refund_returns_units_with_return_movement(self):
        inventory_service.refund(self.owner, quantity=2, reference_id=77)

        (movement,) = movement_service.list_movements(self.owner)
        self.assertEqual(movement.movement_type, "RETURN")
        self.assertEqual(movement.reference_type, "refund")
        self.assertEqual(movement.reference_id, "77")
        self.assertEqual(inventory_service.get_stock_summary(self.owner)["quantity_available"], 12)

    def test_deduct_for_sale_records_negative_out_movement(self):
        record = inventory_service.deduct_for_sale(self.owner, quantity=3, order_id=41)

        self.assertEqual(record.quantity_available, 7)
        (movement,) = movement_service.list_movements_for_reference("order", 41)
        self.assertEqual(movement.movement_type, "OUT")
        self.assertEqual(movement.quantity_delta, -3)

    def test_sale_keeps_other_reservations(self):
        inventory_service.reserve(self.owner, quantity=4)

        record = inventory_service.deduct_for_sale(self.owner, quantity=6, order_id=42)

        self.assertEqual(record.quantity_available, 4)
        self.assertEqual(record.quantity_reserved, 4)
        with self.assertRaises(InsufficientStockError):
            inventory_service.deduct_for_sale(self.owner, quantity=1, order_id=43)
        inventory_service.release(self.owner, quantity=4)

    def test_deduct_for_sale_short_stock_writes_nothing(self):
        with self.assertRaises(InsufficientStockError):
            inventory_service.deduct_for_sale(self.owner, quantity=11, order_id=41)

        self.assertEqual(movement_service.list_movements_for_reference("order", 41), [])
        self.assertEqual(inventory_service.get_stock_summary(self.owner)["quantity_available"], 10)

    def test_movement_history_newest_first_with_limit(self):
        inventory_service.restock(self.owner, quantity=1, cost_per_unit_cents=100, supplier_name="A")
        inventory_service.adjust(self.owner, quantity_delta=-1, reason="B")
        inventory_service.refund(self.owner, quantity=1)

        history = movement_service.list_movements(self.owner, limit=2)

        self.assertEqual([m.movement_type for m in history], ["RETURN", "ADJUSTMENT"])

    def test_summary_includes_weighted_average_cost(self):
        inventory_service.restock(self.owner, quantity=2, cost_per_unit_cents=1000, supplier_name="A")
        inventory_service.restock(self.owner, quantity=6, cost_per_unit_cents=600, supplier_name="B")

        summary = inventory_service.get_stock_summary(self.owner)

        self.assertEqual(summary["weighted_average_cost_cents"], 700)
        self.assertEqual(summary["quantity_available"], 18)
        self.assertEqual(summary["inventory_value_cents"], 18 * 700)
        self.assertEqual(db.session.query(StockRestock).count(), 2)

    def test_low_stock_listing_respects_reorder_level_and_vendor(self):
        inventory_service.set_reorder_level(self.owner, level=10)

        other = Product(vendor_id=3, sku="CAP-1", title="Cap", price_cents=500)
        db.session.add(other)
        db.session.commit()
        other_owner = StockOwner.product(other.id)
        inventory_service.restock(other_owner, quantity=1, cost_per_unit_cents=100, supplier_name="C")
        inventory_service.set_reorder_level(other_owner, level=2)

        all_low = inventory_service.list_low_stock()
        vendor_low = inventory_service.list_low_stock(vendor_id=9)

        self.assertEqual(len(all_low), 2)
        self.assertEqual([r.product_size_id for r in vendor_low], [self.size.id])

    def test_zero_reorder_level_is_never_low(self):
        self.assertEqual(inventory_service.list_low_stock(), [])


if __name__ == "__main__":
    unittest.main()
