# Overview: Service-layer operations for shopper carts and coupons.

from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..line_items import DealLine, LineItem, ProductLine, line_columns
from ..models import Cart, CartItem, Coupon, Deal, Product, ProductSize, Promotion
from ..validation import ConflictError, NotFoundError, ValidationError
from .concurrency import lock_for_update, run_with_retry


@dataclass(frozen=True)
class PricedLine:
    item_id: int
    line: LineItem
    unit_price_cents: int

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.line.quantity


@dataclass
class FullCart:
    cart_id: int
    user_id: int
    lines: list[PricedLine]
    subtotal_cents: int
    discount_cents: int
    total_cents: int
    coupon_id: int | None

    @property
    def items(self) -> list[LineItem]:
        return [p.line for p in self.lines]

    @property
    def unit_count(self) -> int:
        return sum(p.line.quantity for p in self.lines)

    def to_dict(self) -> dict:
        return {
            "cart_id": self.cart_id,
            "user_id": self.user_id,
            "items": [
                {
                    "item_id": p.item_id,
                    **line_columns(p.line),
                    "unit_price_cents": p.unit_price_cents,
                    "line_total_cents": p.line_total_cents,
                }
                for p in self.lines
            ],
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "coupon_id": self.coupon_id,
        }


def unit_price_cents(line: LineItem) -> int:
    """Current price of one unit. Missing sellables price at 0; availability reports them."""
    if isinstance(line, ProductLine):
        if line.size_id is not None:
            size = db.session.get(ProductSize, line.size_id)
            if size is not None:
                return size.effective_price_cents()
        product = db.session.get(Product, line.product_id)
        return product.price_cents if product is not None else 0
    model, offer_id = (Deal, line.deal_id) if isinstance(line, DealLine) else (Promotion, line.promotion_id)
    offer = db.session.get(model, offer_id)
    return offer.price_cents if offer is not None else 0


def get_cart(user_id: int) -> Cart | None:
    return db.session.query(Cart).filter_by(user_id=user_id).first()


def get_or_create_cart(user_id: int) -> Cart:
    cart = get_cart(user_id)
    if cart is None:
        cart = Cart(user_id=user_id)
        db.session.add(cart)
        db.session.commit()
    return cart


def add_item(user_id: int, line: LineItem) -> CartItem:
    if line.quantity <= 0:
        raise ValidationError("quantity must be > 0")
    cart = get_or_create_cart(user_id)
    item = CartItem(cart_id=cart.id, **line_columns(line))
    db.session.add(item)
    db.session.commit()
    return item


def apply_coupon(user_id: int, code: str) -> Cart:
    coupon = db.session.query(Coupon).filter_by(code=code.strip()).first()
    if coupon is None or not coupon.is_active:
        raise NotFoundError(f"Coupon {code} not found")
    if coupon.usage_limit is not None and coupon.usage_count >= coupon.usage_limit:
        raise ConflictError(f"Coupon {code} has reached its usage limit")
    cart = get_or_create_cart(user_id)
    cart.coupon_id = coupon.id
    db.session.commit()
    return cart


def get_full_cart(user_id: int) -> FullCart | None:
    """Cart lines with current prices and totals, or None if the user has no cart."""
    cart = get_cart(user_id)
    if cart is None:
        return None

    lines = []
    for item in cart.items:
        line = item.to_line()
        lines.append(PricedLine(item.id, line, unit_price_cents(line)))

    subtotal = sum(p.line_total_cents for p in lines)
    discount = cart.coupon.discount_for(subtotal) if cart.coupon is not None else 0

    return FullCart(
        cart_id=cart.id,
        user_id=user_id,
        lines=lines,
        subtotal_cents=subtotal,
        discount_cents=discount,
        total_cents=subtotal - discount,
        coupon_id=cart.coupon_id,
    )


def clear_cart(user_id: int) -> int:
    """Remove every line and the applied coupon. Returns the number of lines removed."""
    cart = get_cart(user_id)
    if cart is None:
        return 0
    removed = db.session.query(CartItem).filter_by(cart_id=cart.id).delete()
    cart.coupon_id = None
    db.session.commit()
    db.session.expire(cart)
    return removed


def increment_coupon_usage(coupon_id: int) -> Coupon:
    def _op():
        coupon = lock_for_update(db.session.query(Coupon).filter_by(id=coupon_id)).first()
        if coupon is None:
            raise NotFoundError(f"Coupon {coupon_id} not found")
        coupon.usage_count += 1
        db.session.commit()
        return coupon

    return run_with_retry(_op)
