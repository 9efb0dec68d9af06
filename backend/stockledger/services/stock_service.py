# Overview: Service-layer operations for stock records; the only code that changes stored quantities.

"""
Stock Store

One StockRecord per owner (a product size, or a product sold without
sizes). Every mutation here:
- re-reads the record under lock_for_update inside the write
- refuses to persist a negative quantity (InsufficientStockError)
- commits on its own unless the caller passes commit=False, in which case
  the caller owns both the transaction and the retry

Movements are NOT written here. Callers that change on-hand stock pair the
change with a movement_service.append_movement call in the same
transaction (see inventory_service).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product, ProductSize, StockRecord
from ..validation import NotFoundError, ValidationError
from .concurrency import finish, lock_for_update, run_with_retry


OWNER_SIZE = "size"
OWNER_PRODUCT = "product"


class InsufficientStockError(Exception):
    """Raised when a stock change would take a quantity below zero."""

    def __init__(self, owner: "StockOwner", requested: int, available: int, message: str | None = None):
        self.owner = owner
        self.requested = requested
        self.available = available
        super().__init__(
            message or f"Insufficient stock for {owner}: only {available} available, but {requested} requested"
        )


@dataclass(frozen=True)
class StockOwner:
    """Exactly one of a size or a product. Construct via StockOwner.size / StockOwner.product."""
    kind: str
    id: int

    @classmethod
    def size(cls, size_id: int) -> "StockOwner":
        return cls(OWNER_SIZE, int(size_id))

    @classmethod
    def product(cls, product_id: int) -> "StockOwner":
        return cls(OWNER_PRODUCT, int(product_id))

    @classmethod
    def from_ids(cls, *, product_size_id=None, product_id=None) -> "StockOwner":
        if (product_size_id is None) == (product_id is None):
            raise ValidationError("Exactly one of product_size_id or product_id is required")
        if product_size_id is not None:
            return cls.size(product_size_id)
        return cls.product(product_id)

    def column_values(self) -> dict:
        if self.kind == OWNER_SIZE:
            return {"product_size_id": self.id, "product_id": None}
        return {"product_size_id": None, "product_id": self.id}

    def filter_by(self) -> dict:
        if self.kind == OWNER_SIZE:
            return {"product_size_id": self.id}
        return {"product_id": self.id}

    def __str__(self) -> str:
        return f"{self.kind} {self.id}"


def _query(owner: StockOwner):
    return db.session.query(StockRecord).filter_by(**owner.filter_by())


def _ensure_owner_exists(owner: StockOwner) -> None:
    model = ProductSize if owner.kind == OWNER_SIZE else Product
    if db.session.get(model, owner.id) is None:
        raise NotFoundError(f"{owner.kind.capitalize()} {owner.id} not found")


def _locked_record(owner: StockOwner) -> StockRecord:
    record = lock_for_update(_query(owner)).first()
    if record is None:
        raise NotFoundError(f"No stock record for {owner}")
    return record


def _require_positive(quantity: int) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("quantity must be a positive integer")
    return quantity


def _mutate(owner: StockOwner, mutate: Callable[[StockRecord], None], *, commit: bool) -> StockRecord:
    def _op():
        record = _locked_record(owner)
        mutate(record)
        finish(commit)
        return record

    if not commit:
        return _op()

    def _own_transaction():
        try:
            return _op()
        except (InsufficientStockError, NotFoundError):
            # release the row lock; nothing was written
            db.session.rollback()
            raise

    return run_with_retry(_own_transaction)


# =============================================================================
# READS
# =============================================================================

def get_record(owner: StockOwner) -> StockRecord | None:
    return _query(owner).first()


def get_sellable(owner: StockOwner) -> int:
    """Sellable quantity; an owner that was never tracked has none."""
    record = get_record(owner)
    return record.sellable if record is not None else 0


# =============================================================================
# MUTATIONS
# =============================================================================

def find_or_create(owner: StockOwner, *, initial_available: int = 0, commit: bool = True) -> StockRecord:
    """
    Return the owner's stock record, creating it with initial_available if absent.

    Two concurrent creators race on the unique owner column; the loser
    re-reads the winner's row.
    """
    existing = get_record(owner)
    if existing is not None:
        return existing

    _ensure_owner_exists(owner)
    if initial_available < 0:
        raise ValidationError("initial_available must be >= 0")

    record = StockRecord(
        **owner.column_values(),
        quantity_available=initial_available,
        quantity_reserved=0,
        reorder_level=0,
    )
    db.session.add(record)
    if not commit:
        db.session.flush()
        return record
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        record = get_record(owner)
        if record is None:
            raise
    return record


def reserve(owner: StockOwner, quantity: int, *, commit: bool = True) -> StockRecord:
    """Hold quantity against the sellable balance; available is unchanged."""
    _require_positive(quantity)

    def _apply(record: StockRecord):
        if quantity > record.sellable:
            raise InsufficientStockError(owner, quantity, record.sellable)
        record.quantity_reserved += quantity

    return _mutate(owner, _apply, commit=commit)


def release(owner: StockOwner, quantity: int, *, commit: bool = True) -> StockRecord:
    """Give back a reservation. Releasing more than is reserved is refused."""
    _require_positive(quantity)

    def _apply(record: StockRecord):
        if quantity > record.quantity_reserved:
            raise InsufficientStockError(
                owner, quantity, record.quantity_reserved,
                message=f"Cannot release {quantity} for {owner}: only {record.quantity_reserved} reserved",
            )
        record.quantity_reserved -= quantity

    return _mutate(owner, _apply, commit=commit)


def deduct(owner: StockOwner, quantity: int, *, from_reservation: bool = False, commit: bool = True) -> StockRecord:
    """
    Remove sold units from on-hand stock.

    from_reservation=True finalizes units the caller reserved earlier:
    available and reserved both drop by quantity. A direct deduction
    (the default) may only take sellable units and leaves every existing
    reservation in place. Either way nothing is written on failure.
    """
    _require_positive(quantity)

    def _apply(record: StockRecord):
        if from_reservation:
            if quantity > record.quantity_reserved:
                raise InsufficientStockError(
                    owner, quantity, record.quantity_reserved,
                    message=f"Cannot finalize {quantity} for {owner}: only {record.quantity_reserved} reserved",
                )
            if quantity > record.quantity_available:
                raise InsufficientStockError(owner, quantity, record.quantity_available)
            record.quantity_reserved -= quantity
        elif quantity > record.sellable:
            raise InsufficientStockError(owner, quantity, record.sellable)
        record.quantity_available -= quantity

    return _mutate(owner, _apply, commit=commit)


def increase(owner: StockOwner, quantity: int, *, commit: bool = True) -> StockRecord:
    """Add units to available (restock, customer return)."""
    _require_positive(quantity)

    def _apply(record: StockRecord):
        record.quantity_available += quantity

    return _mutate(owner, _apply, commit=commit)


def adjust(owner: StockOwner, delta: int, *, commit: bool = True) -> StockRecord:
    """
    Signed correction to available. A negative delta may only remove
    sellable units; reserved units stay covered.
    """
    if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
        raise ValidationError("delta must be a non-zero integer")

    def _apply(record: StockRecord):
        if delta < 0 and -delta > record.sellable:
            raise InsufficientStockError(owner, -delta, record.sellable)
        record.quantity_available += delta

    return _mutate(owner, _apply, commit=commit)


def set_reorder_level(owner: StockOwner, level: int, *, commit: bool = True) -> StockRecord:
    if isinstance(level, bool) or not isinstance(level, int) or level < 0:
        raise ValidationError("reorder_level must be a non-negative integer")

    def _apply(record: StockRecord):
        record.reorder_level = level

    return _mutate(owner, _apply, commit=commit)
