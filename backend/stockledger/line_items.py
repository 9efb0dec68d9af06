# Overview: Typed sellable lines shared by carts and orders.

"""
A cart or order line sells exactly one of: a product (optionally a specific
size), a deal, or a promotion. Rows store the discriminator in item_type plus
one populated reference; these dataclasses are the in-memory form that the
availability and settlement code dispatches on.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

ITEM_PRODUCT = "product"
ITEM_DEAL = "deal"
ITEM_PROMOTION = "promotion"

VALID_ITEM_TYPES = (ITEM_PRODUCT, ITEM_DEAL, ITEM_PROMOTION)


@dataclass(frozen=True)
class ProductLine:
    product_id: int
    size_id: int | None
    quantity: int
    item_type: str = ITEM_PRODUCT


@dataclass(frozen=True)
class DealLine:
    deal_id: int
    quantity: int
    item_type: str = ITEM_DEAL


@dataclass(frozen=True)
class PromotionLine:
    promotion_id: int
    quantity: int
    item_type: str = ITEM_PROMOTION


LineItem = Union[ProductLine, DealLine, PromotionLine]


def line_from_row(row) -> LineItem:
    """
    Build a typed line from a CartItem/OrderItem-shaped row.

    Raises ValueError when the row does not reference exactly one sellable.
    """
    refs = {
        ITEM_PRODUCT: row.product_id,
        ITEM_DEAL: row.deal_id,
        ITEM_PROMOTION: row.promotion_id,
    }
    populated = [kind for kind, ref in refs.items() if ref is not None]
    if len(populated) != 1:
        raise ValueError(f"Line item must reference exactly one sellable, got {populated or 'none'}")

    kind = populated[0]
    if row.item_type is not None and row.item_type != kind:
        raise ValueError(f"Line item type {row.item_type!r} does not match its reference ({kind})")

    if kind == ITEM_PRODUCT:
        return ProductLine(product_id=row.product_id, size_id=row.product_size_id, quantity=row.quantity)
    if kind == ITEM_DEAL:
        return DealLine(deal_id=row.deal_id, quantity=row.quantity)
    return PromotionLine(promotion_id=row.promotion_id, quantity=row.quantity)


def line_columns(line: LineItem) -> dict:
    """Column values for persisting a line on a CartItem/OrderItem row."""
    cols = {
        "item_type": line.item_type,
        "product_id": None,
        "product_size_id": None,
        "deal_id": None,
        "promotion_id": None,
        "quantity": line.quantity,
    }
    if isinstance(line, ProductLine):
        cols["product_id"] = line.product_id
        cols["product_size_id"] = line.size_id
    elif isinstance(line, DealLine):
        cols["deal_id"] = line.deal_id
    else:
        cols["promotion_id"] = line.promotion_id
    return cols


# Row-level backstop mirroring line_from_row's exactly-one rule
LINE_REFERENCE_CHECK = (
    "(CASE WHEN product_id IS NOT NULL THEN 1 ELSE 0 END"
    " + CASE WHEN deal_id IS NOT NULL THEN 1 ELSE 0 END"
    " + CASE WHEN promotion_id IS NOT NULL THEN 1 ELSE 0 END) = 1"
)
