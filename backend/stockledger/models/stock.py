from __future__ import annotations

from ..extensions import db
from stockledger.time_utils import to_utc_z, utcnow


MOVEMENT_IN = "IN"
MOVEMENT_OUT = "OUT"
MOVEMENT_ADJUSTMENT = "ADJUSTMENT"
MOVEMENT_RETURN = "RETURN"

VALID_MOVEMENT_TYPES = (MOVEMENT_IN, MOVEMENT_OUT, MOVEMENT_ADJUSTMENT, MOVEMENT_RETURN)


class StockRecord(db.Model):
    """
    Current stock position for exactly one owner: a product size, or a
    product sold without sizes.

    sellable = quantity_available - quantity_reserved

    WHY version_id: concurrent settlements for the same size must not
    overwrite each other's decrements. Writers lock the row (FOR UPDATE
    where supported) and the version column turns any remaining lost
    update into a StaleDataError that the retry helper absorbs.
    """
    __tablename__ = "stock_records"
    __table_args__ = (
        db.CheckConstraint(
            "(product_size_id IS NULL) <> (product_id IS NULL)",
            name="ck_stock_records_single_owner",
        ),
        db.CheckConstraint("quantity_available >= 0", name="ck_stock_records_available_nonneg"),
        db.CheckConstraint("quantity_reserved >= 0", name="ck_stock_records_reserved_nonneg"),
        db.CheckConstraint("reorder_level >= 0", name="ck_stock_records_reorder_nonneg"),
        db.UniqueConstraint("product_size_id", name="uq_stock_records_size"),
        db.UniqueConstraint("product_id", name="uq_stock_records_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_size_id = db.Column(db.Integer, db.ForeignKey("product_sizes.id", ondelete="CASCADE"), nullable=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=True)

    quantity_available = db.Column(db.Integer, nullable=False, default=0)
    quantity_reserved = db.Column(db.Integer, nullable=False, default=0)
    reorder_level = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    size = db.relationship("ProductSize", backref=db.backref("stock_record", uselist=False, lazy=True))
    product = db.relationship("Product", backref=db.backref("stock_record", uselist=False, lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def sellable(self) -> int:
        return self.quantity_available - self.quantity_reserved

    @property
    def is_low_stock(self) -> bool:
        return self.reorder_level > 0 and self.quantity_available <= self.reorder_level

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_size_id": self.product_size_id,
            "product_id": self.product_id,
            "quantity_available": self.quantity_available,
            "quantity_reserved": self.quantity_reserved,
            "sellable": self.sellable,
            "reorder_level": self.reorder_level,
            "is_low_stock": self.is_low_stock,
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only audit row for a stock change. quantity_delta carries the
    signed intent: OUT rows are negative, IN/RETURN rows positive,
    ADJUSTMENT rows either.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_size_created", "product_size_id", "created_at"),
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
        db.Index("ix_stock_movements_reference", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_size_id = db.Column(db.Integer, db.ForeignKey("product_sizes.id", ondelete="SET NULL"), nullable=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True)

    movement_type = db.Column(db.String(16), nullable=False, index=True)
    quantity_delta = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=True)

    reference_id = db.Column(db.String(64), nullable=True)
    reference_type = db.Column(db.String(32), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_size_id": self.product_size_id,
            "product_id": self.product_id,
            "movement_type": self.movement_type,
            "quantity_delta": self.quantity_delta,
            "reason": self.reason,
            "reference_id": self.reference_id,
            "reference_type": self.reference_type,
            "created_at": to_utc_z(self.created_at),
        }


class StockRestock(db.Model):
    """Supplier delivery record written alongside the IN movement it produced."""
    __tablename__ = "stock_restocks"
    __table_args__ = (
        db.CheckConstraint("quantity_added > 0", name="ck_stock_restocks_qty_positive"),
        db.CheckConstraint("cost_per_unit_cents >= 0", name="ck_stock_restocks_cost_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_size_id = db.Column(db.Integer, db.ForeignKey("product_sizes.id", ondelete="SET NULL"), nullable=True, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)

    quantity_added = db.Column(db.Integer, nullable=False)
    cost_per_unit_cents = db.Column(db.Integer, nullable=False)
    supplier_name = db.Column(db.String(255), nullable=False)
    restock_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_size_id": self.product_size_id,
            "product_id": self.product_id,
            "quantity_added": self.quantity_added,
            "cost_per_unit_cents": self.cost_per_unit_cents,
            "supplier_name": self.supplier_name,
            "restock_date": to_utc_z(self.restock_date),
            "created_at": to_utc_z(self.created_at),
        }
