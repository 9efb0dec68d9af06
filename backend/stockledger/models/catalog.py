from __future__ import annotations

from ..extensions import db
from stockledger.time_utils import to_utc_z


PRODUCT_STATUS_ACTIVE = "active"
PRODUCT_STATUS_OUT_OF_STOCK = "out-of-stock"
PRODUCT_STATUS_DRAFT = "draft"


class Product(db.Model):
    """
    Vendor-owned catalog product.

    Stock is never stored here: product-level quantities (for products sold
    without sizes) live in stock_records keyed by product_id. status flips to
    "out-of-stock" when settlement drains the last sellable unit of one of
    its sizes.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("vendor_id", "sku", name="uq_products_vendor_sku"),
        db.Index("ix_products_vendor_active", "vendor_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    vendor_id = db.Column(db.Integer, nullable=True, index=True)

    sku = db.Column(db.String(64), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    price_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=PRODUCT_STATUS_ACTIVE, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    sizes = db.relationship("ProductSize", back_populates="product", cascade="all, delete-orphan", lazy=True)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "vendor_id": self.vendor_id,
            "sku": self.sku,
            "title": self.title,
            "price_cents": self.price_cents,
            "status": self.status,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProductSize(db.Model):
    """A purchasable size (variant) of a product. Its stock is a stock_records row."""
    __tablename__ = "product_sizes"
    __table_args__ = (
        db.UniqueConstraint("product_id", "label", name="uq_product_sizes_product_label"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)

    label = db.Column(db.String(32), nullable=False)
    sku = db.Column(db.String(64), nullable=True)
    price_cents = db.Column(db.Integer, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", back_populates="sizes")

    def effective_price_cents(self) -> int:
        if self.price_cents is not None:
            return self.price_cents
        return self.product.price_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "label": self.label,
            "sku": self.sku,
            "price_cents": self.price_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
