# Overview: Service-layer operations for orders created by checkout settlement.

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..line_items import line_columns
from ..models import Order, OrderItem
from ..validation import ConflictError


def find_order_by_number(order_number: str) -> Order | None:
    return db.session.query(Order).filter_by(order_number=order_number).first()


def create_order(*, order_number: str, user_id: int, **fields) -> Order:
    """
    Insert the order row and flush so its id is available.

    Raises ConflictError if another worker already created an order with
    this number; the session is rolled back in that case.
    """
    order = Order(order_number=order_number, user_id=user_id, **fields)
    db.session.add(order)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"Order {order_number} already exists")
    return order


def create_order_items(order: Order, priced_lines) -> list[OrderItem]:
    """Persist one OrderItem per priced cart line and commit the order with them."""
    items = []
    for priced in priced_lines:
        item = OrderItem(
            order_id=order.id,
            **line_columns(priced.line),
            unit_price_cents=priced.unit_price_cents,
            line_total_cents=priced.line_total_cents,
        )
        db.session.add(item)
        items.append(item)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"Order {order.order_number} already exists")
    return items
