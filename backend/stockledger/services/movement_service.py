# Overview: Service-layer operations for the stock movement ledger.

from __future__ import annotations

from ..extensions import db
from ..models import StockMovement
from ..models.stock import VALID_MOVEMENT_TYPES, MOVEMENT_OUT
from ..validation import ValidationError
from .stock_service import StockOwner

"""
Stock Movement Ledger Invariants

- Append-only: rows are never updated or deleted by application code.
- A movement is written in the same DB transaction as the stock change it
  records; this module only adds to the session, the caller commits.
- quantity_delta is signed: OUT is stored negative whatever sign the
  caller passes.
- History reads are newest first, ties broken by id.
"""

DEFAULT_HISTORY_LIMIT = 100


def append_movement(
    *,
    owner: StockOwner,
    movement_type: str,
    quantity: int,
    reason: str | None = None,
    reference_id: str | int | None = None,
    reference_type: str | None = None,
) -> StockMovement:
    if movement_type not in VALID_MOVEMENT_TYPES:
        raise ValidationError(f"movement_type must be one of {', '.join(VALID_MOVEMENT_TYPES)}")
    if quantity == 0:
        raise ValidationError("movement quantity must be non-zero")

    delta = -abs(quantity) if movement_type == MOVEMENT_OUT else quantity

    movement = StockMovement(
        **owner.column_values(),
        movement_type=movement_type,
        quantity_delta=delta,
        reason=reason,
        reference_id=str(reference_id) if reference_id is not None else None,
        reference_type=reference_type,
    )
    db.session.add(movement)
    return movement


def list_movements(owner: StockOwner, *, limit: int = DEFAULT_HISTORY_LIMIT) -> list[StockMovement]:
    if limit <= 0:
        raise ValidationError("limit must be > 0")
    return (
        db.session.query(StockMovement)
        .filter_by(**owner.filter_by())
        .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .limit(limit)
        .all()
    )


def list_movements_for_reference(reference_type: str, reference_id: str | int) -> list[StockMovement]:
    return (
        db.session.query(StockMovement)
        .filter_by(reference_type=reference_type, reference_id=str(reference_id))
        .order_by(StockMovement.id.asc())
        .all()
    )
