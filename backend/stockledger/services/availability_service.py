# Overview: Service-layer availability checks for products, cart lines, and whole carts.

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app

from ..extensions import db
from ..line_items import DealLine, ProductLine, PromotionLine, line_from_row
from ..models import Deal, Product, ProductSize, Promotion
from . import offer_service, stock_service
from .stock_service import StockOwner

ITEM_CHECK_FAILED = "Error checking item availability"


@dataclass
class AvailabilityResult:
    is_available: bool
    reasons: list[str] = field(default_factory=list)

    @classmethod
    def unavailable(cls, reason: str) -> "AvailabilityResult":
        return cls(is_available=False, reasons=[reason])

    def to_dict(self) -> dict:
        return {"is_available": self.is_available, "reasons": list(self.reasons)}


@dataclass
class CartAvailability:
    allow_checkout: bool
    reasons: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"allow_checkout": self.allow_checkout, "availability_issues": list(self.reasons)}


def check_product(product_id: int, size_id: int | None, quantity: int) -> AvailabilityResult:
    """
    Availability of a product (or one of its sizes) at a quantity.

    The insufficient and out-of-stock reasons are independent checks, so a
    size with zero stock reports both.
    """
    product = db.session.get(Product, product_id)
    if product is None:
        return AvailabilityResult.unavailable("Product not found")

    if size_id is None:
        stock = stock_service.get_sellable(StockOwner.product(product_id))
        subject = "Product"
    else:
        size = db.session.get(ProductSize, size_id)
        if size is None or size.product_id != product_id:
            return AvailabilityResult.unavailable("Size not found")
        stock = stock_service.get_sellable(StockOwner.size(size_id))
        subject = "Size"

    reasons = []
    if size_id is not None and not size.is_active:
        reasons.append("Size is no longer available")
    if stock < quantity:
        reasons.append(f"Insufficient stock: only {stock} available, but {quantity} requested")
    if stock < 1:
        reasons.append(f"{subject} is out of stock")
    return AvailabilityResult(is_available=not reasons, reasons=reasons)


def check_item(item) -> AvailabilityResult:
    """
    Dispatch on the line kind. item is a typed line or a cart/order row;
    a row that does not reference exactly one sellable raises ValueError.
    """
    line = item if isinstance(item, (ProductLine, DealLine, PromotionLine)) else line_from_row(item)

    if isinstance(line, ProductLine):
        return check_product(line.product_id, line.size_id, line.quantity)
    if isinstance(line, DealLine):
        return offer_service.check_offer(Deal.OFFER_KIND, line.deal_id, line.quantity)
    return offer_service.check_offer(Promotion.OFFER_KIND, line.promotion_id, line.quantity)


def check_cart(items) -> CartAvailability:
    """
    Check every line and report all problems at once. One line blowing up
    is reported as a reason instead of aborting the whole check.
    """
    reasons: list[str] = []
    for item in items:
        try:
            result = check_item(item)
        except Exception:
            current_app.logger.exception("Availability check failed for cart item %s", getattr(item, "id", item))
            reasons.append(ITEM_CHECK_FAILED)
            continue
        reasons.extend(result.reasons)
    return CartAvailability(allow_checkout=not reasons, reasons=reasons)
