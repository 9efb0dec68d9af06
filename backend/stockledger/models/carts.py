from __future__ import annotations

from ..extensions import db
from ..line_items import LINE_REFERENCE_CHECK, line_from_row
from stockledger.time_utils import to_utc_z


DISCOUNT_PERCENTAGE = "PERCENTAGE"
DISCOUNT_FIXED_AMOUNT = "FIXED_AMOUNT"


class Coupon(db.Model):
    """
    Checkout coupon.

    discount_value is interpreted by discount_type:
    - PERCENTAGE: basis points (1000 = 10%)
    - FIXED_AMOUNT: cents
    """
    __tablename__ = "coupons"
    __table_args__ = (
        db.CheckConstraint("usage_count >= 0", name="ck_coupons_usage_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), nullable=False, unique=True)
    discount_type = db.Column(db.String(16), nullable=False, default=DISCOUNT_FIXED_AMOUNT)
    discount_value = db.Column(db.Integer, nullable=False, default=0)
    usage_count = db.Column(db.Integer, nullable=False, default=0)
    usage_limit = db.Column(db.Integer, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def discount_for(self, subtotal_cents: int) -> int:
        if self.discount_type == DISCOUNT_PERCENTAGE:
            discount = (subtotal_cents * self.discount_value) // 10_000
        else:
            discount = self.discount_value
        return max(0, min(discount, subtotal_cents))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "discount_type": self.discount_type,
            "discount_value": self.discount_value,
            "usage_count": self.usage_count,
            "usage_limit": self.usage_limit,
            "is_active": self.is_active,
        }


class Cart(db.Model):
    __tablename__ = "carts"
    __table_args__ = (
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=False, unique=True)
    coupon_id = db.Column(db.Integer, db.ForeignKey("coupons.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    items = db.relationship(
        "CartItem",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItem.id",
        lazy=True,
    )
    coupon = db.relationship("Coupon")


class CartItem(db.Model):
    """One cart line: a product (optionally sized), a deal, or a promotion."""
    __tablename__ = "cart_items"
    __table_args__ = (
        db.CheckConstraint(LINE_REFERENCE_CHECK, name="ck_cart_items_single_reference"),
        db.CheckConstraint("quantity > 0", name="ck_cart_items_qty_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    cart_id = db.Column(db.Integer, db.ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)

    item_type = db.Column(db.String(16), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)
    product_size_id = db.Column(db.Integer, db.ForeignKey("product_sizes.id"), nullable=True)
    deal_id = db.Column(db.Integer, db.ForeignKey("deals.id"), nullable=True)
    promotion_id = db.Column(db.Integer, db.ForeignKey("promotions.id"), nullable=True)

    quantity = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    cart = db.relationship("Cart", back_populates="items")

    def to_line(self):
        return line_from_row(self)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cart_id": self.cart_id,
            "item_type": self.item_type,
            "product_id": self.product_id,
            "product_size_id": self.product_size_id,
            "deal_id": self.deal_id,
            "promotion_id": self.promotion_id,
            "quantity": self.quantity,
            "created_at": to_utc_z(self.created_at),
        }
