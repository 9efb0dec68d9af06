# Overview: Service-layer operations for inventory; pairs every on-hand stock change with a movement.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func

from ..extensions import db
from ..models import Product, ProductSize, StockRecord, StockRestock
from ..models.stock import MOVEMENT_ADJUSTMENT, MOVEMENT_IN, MOVEMENT_OUT, MOVEMENT_RETURN
from stockledger.time_utils import utcnow
from . import movement_service, stock_service
from .concurrency import run_with_retry
from .stock_service import StockOwner

REFERENCE_ORDER = "order"
REFERENCE_RESTOCK = "restock"
REFERENCE_REFUND = "refund"
REFERENCE_ADJUSTMENT = "adjustment"


def restock(
    owner: StockOwner,
    *,
    quantity: int,
    cost_per_unit_cents: int,
    supplier_name: str,
    restock_date: datetime | None = None,
) -> tuple[StockRecord, StockRestock]:
    """
    Receive a supplier delivery: restock row, IN movement, and the
    available increase commit together.
    """
    def _op():
        stock_service.find_or_create(owner, commit=False)
        record = stock_service.increase(owner, quantity, commit=False)

        entry = StockRestock(
            **owner.column_values(),
            quantity_added=quantity,
            cost_per_unit_cents=cost_per_unit_cents,
            supplier_name=supplier_name,
            restock_date=restock_date or utcnow(),
        )
        db.session.add(entry)
        db.session.flush()

        movement_service.append_movement(
            owner=owner,
            movement_type=MOVEMENT_IN,
            quantity=quantity,
            reason=f"Restock: {supplier_name}",
            reference_id=entry.id,
            reference_type=REFERENCE_RESTOCK,
        )
        db.session.commit()
        return record, entry

    return _run_in_transaction(_op)


def adjust(
    owner: StockOwner,
    *,
    quantity_delta: int,
    reason: str,
    reference_id: str | None = None,
) -> StockRecord:
    """Manual correction (count variance, shrink, damage)."""
    def _op():
        stock_service.find_or_create(owner, commit=False)
        record = stock_service.adjust(owner, quantity_delta, commit=False)
        movement_service.append_movement(
            owner=owner,
            movement_type=MOVEMENT_ADJUSTMENT,
            quantity=quantity_delta,
            reason=reason,
            reference_id=reference_id,
            reference_type=REFERENCE_ADJUSTMENT,
        )
        db.session.commit()
        return record

    return _run_in_transaction(_op)


def refund(
    owner: StockOwner,
    *,
    quantity: int,
    reference_id: str | int | None = None,
    reason: str | None = None,
) -> StockRecord:
    """Customer return: units go back to available with a RETURN movement."""
    def _op():
        stock_service.find_or_create(owner, commit=False)
        record = stock_service.increase(owner, quantity, commit=False)
        movement_service.append_movement(
            owner=owner,
            movement_type=MOVEMENT_RETURN,
            quantity=quantity,
            reason=reason or "Customer return",
            reference_id=reference_id,
            reference_type=REFERENCE_REFUND,
        )
        db.session.commit()
        return record

    return _run_in_transaction(_op)


def deduct_for_sale(
    owner: StockOwner,
    *,
    quantity: int,
    order_id: int,
    reason: str = "Sale",
    from_reservation: bool = False,
) -> StockRecord:
    """
    Remove sold units for a paid order with a matching OUT movement.

    Raises InsufficientStockError (nothing written) when the units are not
    there: sellable stock for a direct sale, reserved stock when
    from_reservation finalizes an earlier reserve.
    """
    def _op():
        record = stock_service.deduct(owner, quantity, from_reservation=from_reservation, commit=False)
        movement_service.append_movement(
            owner=owner,
            movement_type=MOVEMENT_OUT,
            quantity=quantity,
            reason=reason,
            reference_id=order_id,
            reference_type=REFERENCE_ORDER,
        )
        db.session.commit()
        return record

    return _run_in_transaction(_op)


def reserve(owner: StockOwner, *, quantity: int) -> StockRecord:
    return stock_service.reserve(owner, quantity)


def release(owner: StockOwner, *, quantity: int) -> StockRecord:
    return stock_service.release(owner, quantity)


def set_reorder_level(owner: StockOwner, *, level: int) -> StockRecord:
    def _op():
        stock_service.find_or_create(owner, commit=False)
        record = stock_service.set_reorder_level(owner, level, commit=False)
        db.session.commit()
        return record

    return _run_in_transaction(_op)


def _run_in_transaction(op):
    """
    Retry concurrency conflicts; any other failure rolls the whole unit
    back so no half-written stock change or orphan movement survives.
    """
    def _guarded():
        try:
            return op()
        except Exception:
            db.session.rollback()
            raise

    return run_with_retry(_guarded)


# =============================================================================
# READS
# =============================================================================

def get_weighted_average_cost_cents(owner: StockOwner) -> int | None:
    row = (
        db.session.query(
            func.sum(StockRestock.quantity_added * StockRestock.cost_per_unit_cents),
            func.sum(StockRestock.quantity_added),
        )
        .filter_by(**owner.filter_by())
        .one()
    )
    total_cost, total_qty = row
    if not total_qty:
        return None
    return int(total_cost) // int(total_qty)


def get_stock_summary(owner: StockOwner) -> dict:
    record = stock_service.get_record(owner)
    wac = get_weighted_average_cost_cents(owner)
    available = record.quantity_available if record else 0

    return {
        "owner": {"kind": owner.kind, "id": owner.id},
        "tracked": record is not None,
        "quantity_available": available,
        "quantity_reserved": record.quantity_reserved if record else 0,
        "sellable": record.sellable if record else 0,
        "reorder_level": record.reorder_level if record else 0,
        "is_low_stock": record.is_low_stock if record else False,
        "weighted_average_cost_cents": wac,
        "inventory_value_cents": (available * wac) if wac is not None else None,
    }


def list_low_stock(*, vendor_id: int | None = None) -> list[StockRecord]:
    """Records at or below a positive reorder level, optionally for one vendor."""
    q = db.session.query(StockRecord).filter(
        StockRecord.reorder_level > 0,
        StockRecord.quantity_available <= StockRecord.reorder_level,
    )
    if vendor_id is not None:
        size_ids = (
            db.select(ProductSize.id)
            .join(Product, Product.id == ProductSize.product_id)
            .where(Product.vendor_id == vendor_id)
        )
        product_ids = db.select(Product.id).where(Product.vendor_id == vendor_id)
        q = q.filter(
            db.or_(
                StockRecord.product_size_id.in_(size_ids),
                StockRecord.product_id.in_(product_ids),
            )
        )
    return q.order_by(StockRecord.quantity_available.asc(), StockRecord.id.asc()).all()
