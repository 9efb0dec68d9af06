from __future__ import annotations

from ..extensions import db
from ..line_items import LINE_REFERENCE_CHECK, line_from_row
from stockledger.time_utils import to_utc_z


ORDER_STATUS_PENDING = "pending"
ORDER_STATUS_CONFIRMED = "confirmed"

ORDER_PAYMENT_PAID = "paid"
ORDER_PAYMENT_PENDING = "pending"


class Order(db.Model):
    """
    Customer order materialized from a paid checkout.

    order_number is the gateway payment reference. The unique constraint is
    what makes settlement at-most-once: a webhook that loses the insert race
    resolves to the winner's row instead of creating a second order.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("order_number", name="uq_orders_order_number"),
        db.Index("ix_orders_user_created", "user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(64), nullable=False)
    user_id = db.Column(db.Integer, nullable=False)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    shipping_fee_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    coupon_id = db.Column(db.Integer, db.ForeignKey("coupons.id"), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=ORDER_STATUS_PENDING)
    payment_method = db.Column(db.String(32), nullable=False)
    payment_status = db.Column(db.String(16), nullable=False, default=ORDER_PAYMENT_PENDING)
    delivery_method = db.Column(db.String(32), nullable=False)

    delivery_address = db.Column(db.JSON, nullable=True)
    contact_email = db.Column(db.String(255), nullable=True)
    contact_phone = db.Column(db.String(32), nullable=True)
    contact_name = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    items = db.relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
        lazy=True,
    )

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "user_id": self.user_id,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "shipping_fee_cents": self.shipping_fee_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "coupon_id": self.coupon_id,
            "status": self.status,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "delivery_method": self.delivery_method,
            "delivery_address": self.delivery_address,
            "contact_email": self.contact_email,
            "contact_phone": self.contact_phone,
            "contact_name": self.contact_name,
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint(LINE_REFERENCE_CHECK, name="ck_order_items_single_reference"),
        db.CheckConstraint("quantity > 0", name="ck_order_items_qty_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)

    item_type = db.Column(db.String(16), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)
    product_size_id = db.Column(db.Integer, db.ForeignKey("product_sizes.id"), nullable=True)
    deal_id = db.Column(db.Integer, db.ForeignKey("deals.id"), nullable=True)
    promotion_id = db.Column(db.Integer, db.ForeignKey("promotions.id"), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False, default=0)

    order = db.relationship("Order", back_populates="items")

    def to_line(self):
        return line_from_row(self)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "item_type": self.item_type,
            "product_id": self.product_id,
            "product_size_id": self.product_size_id,
            "deal_id": self.deal_id,
            "promotion_id": self.promotion_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }
