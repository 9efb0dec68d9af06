# backend/stockledger/routes/inventory.py
"""
Inventory management routes.

Stock owners are addressed as /<kind>/<id> where kind is "size" or
"product". Write endpoints take the owner in the body as exactly one of
product_size_id / product_id.

Status codes:
- 400 invalid input
- 404 unknown product, size, or stock record
- 409 the change would take stock below zero
"""
from flask import Blueprint, current_app, request

from ..models import StockMovement, StockRecord, StockRestock
from ..services import inventory_service, movement_service
from ..services.stock_service import OWNER_PRODUCT, OWNER_SIZE, InsufficientStockError, StockOwner
from ..validation import (
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_rules_adjust,
    enforce_rules_restock,
    parse_int,
    require_positive_quantity,
    validate_payload,
)


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

OWNER_FIELDS = frozenset({"product_size_id", "product_id"})

RESTOCK_POLICY = ModelValidationPolicy(
    writable_fields=OWNER_FIELDS | {"quantity_added", "cost_per_unit_cents", "supplier_name", "restock_date"},
    required_on_create=frozenset({"quantity_added", "cost_per_unit_cents", "supplier_name"}),
)

ADJUST_POLICY = ModelValidationPolicy(
    writable_fields=OWNER_FIELDS | {"quantity_delta", "reason", "reference_id"},
    required_on_create=frozenset({"quantity_delta", "reason"}),
)

REFUND_POLICY = ModelValidationPolicy(
    writable_fields=OWNER_FIELDS | {"quantity", "reason", "reference_id"},
    required_on_create=frozenset({"quantity"}),
)

RESERVATION_POLICY = ModelValidationPolicy(
    writable_fields=OWNER_FIELDS | {"quantity"},
    required_on_create=frozenset({"quantity"}),
)


def _owner_from_path(kind: str, owner_id: int) -> StockOwner:
    if kind == OWNER_SIZE:
        return StockOwner.size(owner_id)
    if kind == OWNER_PRODUCT:
        return StockOwner.product(owner_id)
    raise ValidationError(f"owner kind must be '{OWNER_SIZE}' or '{OWNER_PRODUCT}'")


def _owner_from_patch(patch: dict) -> StockOwner:
    return StockOwner.from_ids(
        product_size_id=patch.pop("product_size_id", None),
        product_id=patch.pop("product_id", None),
    )


def _error_response(e: Exception):
    if isinstance(e, ValidationError):
        return {"error": str(e)}, 400
    if isinstance(e, NotFoundError):
        return {"error": str(e)}, 404
    if isinstance(e, InsufficientStockError):
        return {"error": str(e), "requested": e.requested, "available": e.available}, 409
    raise e


@inventory_bp.get("/<kind>/<int:owner_id>")
def stock_summary_route(kind: str, owner_id: int):
    try:
        owner = _owner_from_path(kind, owner_id)
    except ValidationError as e:
        return _error_response(e)
    return inventory_service.get_stock_summary(owner), 200


@inventory_bp.get("/<kind>/<int:owner_id>/movements")
def movement_history_route(kind: str, owner_id: int):
    """Newest first. ?limit= defaults to 100."""
    try:
        owner = _owner_from_path(kind, owner_id)
        limit = parse_int(request.args.get("limit", movement_service.DEFAULT_HISTORY_LIMIT), "limit")
        movements = movement_service.list_movements(owner, limit=limit)
    except ValidationError as e:
        return _error_response(e)
    return {"movements": [m.to_dict() for m in movements]}, 200


@inventory_bp.put("/<kind>/<int:owner_id>/reorder-level")
def reorder_level_route(kind: str, owner_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        owner = _owner_from_path(kind, owner_id)
        level = parse_int(payload.get("reorder_level"), "reorder_level")
        record = inventory_service.set_reorder_level(owner, level=level)
    except (ValidationError, NotFoundError) as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to set reorder level for %s %s", kind, owner_id)
        return {"error": "Internal server error"}, 500
    return {"stock": record.to_dict()}, 200


@inventory_bp.get("/low-stock")
def low_stock_route():
    try:
        vendor_id = request.args.get("vendor_id")
        vendor_id = parse_int(vendor_id, "vendor_id") if vendor_id is not None else None
    except ValidationError as e:
        return _error_response(e)
    records = inventory_service.list_low_stock(vendor_id=vendor_id)
    return {"items": [r.to_dict() for r in records]}, 200


@inventory_bp.post("/restock")
def restock_route():
    """Receive a supplier delivery (IN movement)."""
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=StockRestock, payload=payload, policy=RESTOCK_POLICY)
        enforce_rules_restock(patch)
        owner = _owner_from_patch(patch)
        record, entry = inventory_service.restock(
            owner,
            quantity=patch["quantity_added"],
            cost_per_unit_cents=patch["cost_per_unit_cents"],
            supplier_name=patch["supplier_name"],
            restock_date=patch.get("restock_date"),
        )
    except (ValidationError, NotFoundError) as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to restock")
        return {"error": "Internal server error"}, 500

    return {"restock": entry.to_dict(), "summary": inventory_service.get_stock_summary(owner)}, 201


@inventory_bp.post("/adjust")
def adjust_route():
    """Manual signed correction (ADJUSTMENT movement)."""
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=StockMovement, payload=payload, policy=ADJUST_POLICY)
        enforce_rules_adjust(patch)
        owner = _owner_from_patch(patch)
        inventory_service.adjust(
            owner,
            quantity_delta=patch["quantity_delta"],
            reason=patch["reason"],
            reference_id=patch.get("reference_id"),
        )
    except (ValidationError, NotFoundError, InsufficientStockError) as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return {"error": "Internal server error"}, 500

    return {"summary": inventory_service.get_stock_summary(owner)}, 201


@inventory_bp.post("/refund")
def refund_route():
    """Customer return (RETURN movement)."""
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=StockMovement, payload=payload, policy=REFUND_POLICY)
        quantity = require_positive_quantity(patch["quantity"])
        owner = _owner_from_patch(patch)
        inventory_service.refund(
            owner,
            quantity=quantity,
            reference_id=patch.get("reference_id"),
            reason=patch.get("reason"),
        )
    except (ValidationError, NotFoundError) as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record refund")
        return {"error": "Internal server error"}, 500

    return {"summary": inventory_service.get_stock_summary(owner)}, 201


def _reservation(action):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=StockRecord, payload=payload, policy=RESERVATION_POLICY)
        quantity = require_positive_quantity(patch["quantity"])
        owner = _owner_from_patch(patch)
        record = action(owner, quantity=quantity)
    except (ValidationError, NotFoundError, InsufficientStockError) as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update reservation")
        return {"error": "Internal server error"}, 500
    return {"stock": record.to_dict()}, 200


@inventory_bp.post("/reserve")
def reserve_route():
    return _reservation(inventory_service.reserve)


@inventory_bp.post("/release")
def release_route():
    return _reservation(inventory_service.release)
