# Overview: Service-layer settlement of gateway payment notifications into orders and stock changes.

"""
Checkout Settlement

WHY: The gateway tells us a payment finished through an ITN webhook. That
webhook may arrive more than once, concurrently on different workers, or
long after the shopper left. Settlement turns exactly one PAID
notification per payment reference into exactly one order, then drains
stock for what was bought.

States for a payment reference:
    NOTIFIED -> VALIDATED -> DUPLICATE | CONTEXT_MISSING | ORDER_CREATED -> SETTLED

ORDER_CREATED is transient: the result reports SETTLED once every
post-order step has been attempted.

DESIGN PRINCIPLES:
- At most one order per reference: duplicate (pf_payment_id, signature)
  deliveries are suppressed, the notification row is unique on that pair,
  and orders.order_number is unique
- The notification is stored before any order decision
- After the order exists, every later step (coupon, stock, deactivation,
  loyalty, cart, context) commits on its own; one failing step is logged
  and the rest still run. Stock can therefore be partially drained, which
  the movement ledger and the logs make visible
- Nothing here raises to the webhook route; failures come back as
  SettlementResult(success=False)
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..line_items import DealLine, ProductLine, PromotionLine
from ..models import Deal, Order, PaymentNotification, Product, ProductSize, Promotion
from ..models.catalog import PRODUCT_STATUS_OUT_OF_STOCK
from ..models.orders import ORDER_PAYMENT_PAID, ORDER_STATUS_CONFIRMED
from ..validation import ConflictError, NotFoundError
from stockledger.time_utils import parse_iso_datetime
from . import (
    cart_service,
    inventory_service,
    loyalty_service,
    offer_service,
    order_service,
    payment_context_service,
)
from .payfast_service import PAYMENT_STATUS_PAID, parse_payment_status
from .stock_service import StockOwner


STATE_NOTIFIED = "NOTIFIED"
STATE_VALIDATED = "VALIDATED"
STATE_DUPLICATE = "DUPLICATE"
STATE_CONTEXT_MISSING = "CONTEXT_MISSING"
STATE_SETTLED = "SETTLED"

REQUIRED_FIELDS = ("m_payment_id", "pf_payment_id", "payment_status", "merchant_id")

SETTLEMENT_PAYMENT_METHOD = "bank-transfer"

MSG_MISSING_FIELDS = "Missing required ITN fields"
MSG_DUPLICATE_WITH_ORDER = "Duplicate notification - order already exists"
MSG_DUPLICATE = "Duplicate notification - already processed"
MSG_ORDER_EXISTS = "Order already exists"
MSG_ORDER_CREATED = "Payment confirmed and order created automatically"
MSG_MANUAL_VERIFICATION = "Payment confirmed via ITN - order creation requires manual verification"
MSG_CREATION_FAILED = "Payment confirmed but auto order creation failed - manual verification required"

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


@dataclass
class SettlementResult:
    success: bool
    message: str
    state: str
    order: Order | None = None

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "message": self.message,
            "state": self.state,
            "order": self.order.to_dict() if self.order is not None else None,
        }


@dataclass
class StockDecrementReport:
    """What one settlement did to stock. failures holds one message per failed line."""
    updates: int = 0
    failures: list[str] = field(default_factory=list)
    deals_to_check: set[int] = field(default_factory=set)
    promotions_to_check: set[int] = field(default_factory=set)
    deactivated: list[tuple[str, int]] = field(default_factory=list)


# =============================================================================
# NOTIFICATION NORMALISATION
# =============================================================================

def _text(value: Any) -> str | None:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def clean_email(value: Any) -> str | None:
    email = _text(value)
    if email is None or not _EMAIL_RE.match(email):
        return None
    return email


def parse_amount_cents(value: Any) -> int | None:
    text = _text(value)
    if text is None:
        return None
    try:
        return int((Decimal(text) * 100).quantize(Decimal("1")))
    except (InvalidOperation, ValueError):
        return None


def parse_billing_date(value: Any):
    text = _text(value)
    if text is None:
        return None
    try:
        return parse_iso_datetime(text)
    except ValueError:
        return None


def is_duplicate_notification(pf_payment_id: str, signature: str) -> bool:
    return db.session.query(
        db.session.query(PaymentNotification)
        .filter_by(pf_payment_id=pf_payment_id, signature=signature)
        .exists()
    ).scalar()


def save_notification(fields: Mapping[str, Any], raw: Mapping[str, Any]) -> bool:
    """Persist the notification. Returns False (logged) if it could not be stored."""
    try:
        notification = PaymentNotification(
            merchant_id=_text(fields.get("merchant_id")),
            pf_payment_id=_text(fields.get("pf_payment_id")),
            payment_reference=_text(fields.get("m_payment_id")),
            payment_status=_text(fields.get("payment_status")).upper(),
            item_name=_text(fields.get("item_name")),
            amount_gross_cents=parse_amount_cents(fields.get("amount_gross")),
            amount_fee_cents=parse_amount_cents(fields.get("amount_fee")),
            amount_net_cents=parse_amount_cents(fields.get("amount_net")),
            email_address=clean_email(fields.get("email_address")),
            billing_date=parse_billing_date(fields.get("billing_date")),
            signature=_text(fields.get("signature")),
            raw_payload=json.dumps(dict(raw), default=str, sort_keys=True),
        )
        db.session.add(notification)
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception(
            "Failed to save payment notification %s", fields.get("pf_payment_id")
        )
        return False

    current_app.logger.info(
        "Saved payment notification %s for %s (%s)",
        notification.pf_payment_id, notification.payment_reference, notification.payment_status,
    )
    return True


# =============================================================================
# ENTRY POINT
# =============================================================================

def handle_payment_notification(notification: Mapping[str, Any]) -> SettlementResult:
    """
    Process one ITN delivery. Safe to call any number of times for the same
    payment; never raises.
    """
    try:
        return _handle(notification)
    except Exception as exc:
        db.session.rollback()
        current_app.logger.exception("ITN processing failed for %s", notification.get("m_payment_id"))
        return SettlementResult(False, f"ITN processing failed: {exc}", STATE_NOTIFIED)


def _handle(notification: Mapping[str, Any]) -> SettlementResult:
    if any(_text(notification.get(name)) is None for name in REQUIRED_FIELDS):
        current_app.logger.warning("Rejected ITN with missing required fields")
        return SettlementResult(False, MSG_MISSING_FIELDS, STATE_NOTIFIED)

    reference = _text(notification["m_payment_id"])
    pf_payment_id = _text(notification["pf_payment_id"])
    raw_status = _text(notification["payment_status"])
    signature = _text(notification.get("signature"))

    if signature and is_duplicate_notification(pf_payment_id, signature):
        current_app.logger.warning("Duplicate ITN %s for %s", pf_payment_id, reference)
        existing = order_service.find_order_by_number(reference)
        if existing is not None:
            return SettlementResult(True, MSG_DUPLICATE_WITH_ORDER, STATE_DUPLICATE, existing)
        return SettlementResult(True, MSG_DUPLICATE, STATE_DUPLICATE)

    saved = save_notification(notification, notification)

    existing = order_service.find_order_by_number(reference)
    if existing is not None:
        return SettlementResult(True, MSG_ORDER_EXISTS, STATE_DUPLICATE, existing)

    status = parse_payment_status(raw_status)
    if status != PAYMENT_STATUS_PAID or not saved:
        current_app.logger.info("ITN for %s not settled: status %s -> %s, saved=%s", reference, raw_status, status, saved)
        return SettlementResult(True, f"Payment status: {raw_status}", STATE_VALIDATED)

    try:
        order, state = materialize_order(reference)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Auto order creation failed for %s", reference)
        return SettlementResult(True, MSG_CREATION_FAILED, STATE_VALIDATED)

    if order is None:
        current_app.logger.warning(
            "MANUAL VERIFICATION REQUIRED: payment %s confirmed but no order was created (%s)",
            reference, state,
        )
        return SettlementResult(True, MSG_MANUAL_VERIFICATION, state)

    if state == STATE_DUPLICATE:
        return SettlementResult(True, MSG_ORDER_EXISTS, state, order)
    return SettlementResult(True, MSG_ORDER_CREATED, state, order)


# =============================================================================
# ORDER MATERIALIZATION
# =============================================================================

def materialize_order(reference: str) -> tuple[Order | None, str]:
    """
    Build the order for a PAID reference from its checkout context and the
    shopper's current cart. Returns (order or None, final state).
    """
    context = payment_context_service.get_context(reference)
    if context is None:
        return None, STATE_CONTEXT_MISSING

    existing = order_service.find_order_by_number(reference)
    if existing is not None:
        payment_context_service.delete_context(reference)
        return existing, STATE_DUPLICATE

    user_id = context.user_id
    cart = cart_service.get_full_cart(user_id)
    if cart is None or not cart.lines:
        current_app.logger.warning("Cart for user %s is empty; cannot settle %s", user_id, reference)
        return None, STATE_VALIDATED

    try:
        order = order_service.create_order(
            order_number=reference,
            user_id=user_id,
            subtotal_cents=cart.subtotal_cents,
            discount_cents=cart.discount_cents,
            shipping_fee_cents=0,
            tax_cents=0,
            total_cents=cart.total_cents,
            coupon_id=cart.coupon_id,
            status=ORDER_STATUS_CONFIRMED,
            payment_method=SETTLEMENT_PAYMENT_METHOD,
            payment_status=ORDER_PAYMENT_PAID,
            delivery_method=context.delivery_method,
            delivery_address=context.delivery_address,
            contact_email=context.email,
            contact_phone=context.phone,
            contact_name=context.full_name,
        )
        order_service.create_order_items(order, cart.lines)
    except ConflictError:
        # Another worker won the insert race for this reference
        winner = order_service.find_order_by_number(reference)
        if winner is None:
            raise
        current_app.logger.warning("Order %s was created concurrently; using existing order", reference)
        return winner, STATE_DUPLICATE

    current_app.logger.info(
        "Created order %s for user %s: %s lines, total %s cents",
        reference, user_id, len(cart.lines), order.total_cents,
    )

    if cart.coupon_id is not None:
        _best_effort("increment coupon usage", reference, cart_service.increment_coupon_usage, cart.coupon_id)

    report = decrement_order_stock(order, cart.items)
    report.deactivated = offer_service.run_deactivation_checks(report.deals_to_check, report.promotions_to_check)
    current_app.logger.info(
        "Stock for order %s: %s updates, %s failed lines, deactivated %s",
        reference, report.updates, len(report.failures), report.deactivated or "none",
    )

    award = _best_effort("award loyalty points", reference, loyalty_service.add_points_for_order,
                         user_id, order.id, order.total_cents)
    if award is not None:
        current_app.logger.info(
            "Loyalty for order %s: %s base + %s bonus points", reference, award.base_points, award.bonus_points
        )

    _best_effort("clear cart", reference, cart_service.clear_cart, user_id)
    _best_effort("delete payment context", reference, payment_context_service.delete_context, reference)

    return order, STATE_SETTLED


def _best_effort(step: str, reference: str, func, *args):
    try:
        return func(*args)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Settlement step '%s' failed for %s", step, reference)
        return None


# =============================================================================
# STOCK DECREMENT
# =============================================================================

def decrement_order_stock(order: Order, lines) -> StockDecrementReport:
    """
    Drain stock for each order line. A failing line is logged and skipped;
    earlier successful decrements stay committed.
    """
    report = StockDecrementReport()
    for line in lines:
        try:
            if isinstance(line, ProductLine):
                _decrement_product_line(order, line, report)
            elif isinstance(line, DealLine):
                report.deals_to_check.add(line.deal_id)
                _decrement_offer_line(order, Deal.OFFER_KIND, line.deal_id, line.quantity, report)
            elif isinstance(line, PromotionLine):
                report.promotions_to_check.add(line.promotion_id)
                _decrement_offer_line(order, Promotion.OFFER_KIND, line.promotion_id, line.quantity, report)
            else:
                raise ValueError(f"Unsupported order line {line!r}")
        except Exception as exc:
            db.session.rollback()
            current_app.logger.exception("Stock decrement failed for order %s line %r", order.order_number, line)
            report.failures.append(f"{getattr(line, 'item_type', 'unknown')}: {exc}")
    return report


def decrement_stock(order: Order, product_id: int, size_id: int | None, quantity: int, report: StockDecrementReport) -> int:
    """
    Deduct quantity for one product/size and return the remaining sellable
    stock. When that reaches zero the product is marked out of stock and
    every active offer containing the size is queued for a deactivation
    check.
    """
    if size_id is not None:
        size = db.session.get(ProductSize, size_id)
        if size is None:
            raise NotFoundError(f"Size {size_id} not found")
        product_id = size.product_id
        owner = StockOwner.size(size_id)
    else:
        owner = StockOwner.product(product_id)

    record = inventory_service.deduct_for_sale(
        owner, quantity=quantity, order_id=order.id, reason=f"Sale: order {order.order_number}"
    )
    report.updates += 1
    remaining = record.sellable

    if remaining < 1:
        _mark_out_of_stock(product_id)
        if size_id is not None:
            related = offer_service.find_offers_containing(size_id)
            report.deals_to_check.update(d.id for d in related.deals)
            report.promotions_to_check.update(p.id for p in related.promotions)
    return remaining


def _decrement_product_line(order: Order, line: ProductLine, report: StockDecrementReport) -> None:
    decrement_stock(order, line.product_id, line.size_id, line.quantity, report)


def _decrement_offer_line(order: Order, kind: str, offer_id: int, quantity: int, report: StockDecrementReport) -> None:
    offer = offer_service.require_offer(kind, offer_id)
    for part in offer_service.expand(offer, quantity):
        decrement_stock(order, part.product_id, part.size_id, part.quantity, report)


def _mark_out_of_stock(product_id: int) -> None:
    product = db.session.get(Product, product_id)
    if product is None or product.status == PRODUCT_STATUS_OUT_OF_STOCK:
        return
    product.status = PRODUCT_STATUS_OUT_OF_STOCK
    db.session.commit()
    current_app.logger.info("Product %s is out of stock", product_id)
