# Overview: Request validation and the service-layer error types shared by routes and services.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Integer, String, Text

from stockledger.time_utils import parse_iso_datetime


# Maximum unit cost: 9,999,999.99 (999,999,999 cents)
MAX_COST_CENTS = 999_999_999


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate order number)."""


class NotFoundError(LookupError):
    """404-level missing entity (product, size, offer, stock record)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """Which payload keys a route accepts, and which of them must be present."""
    writable_fields: frozenset[str]
    required_on_create: frozenset[str] = frozenset()


def _coerce_value(col, value: Any):
    """Coerce a JSON value to what the column stores: ints, ISO datetimes, trimmed text."""
    if isinstance(col.type, Integer):
        return parse_int(value, col.key)
    if isinstance(col.type, DateTime):
        if isinstance(value, datetime):
            return value
        try:
            parsed = parse_iso_datetime(value) if isinstance(value, str) else None
        except ValueError:
            parsed = None
        if parsed is None:
            raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
        return parsed
    if isinstance(col.type, (String, Text)):
        text = str(value).strip()
        if not text and not col.nullable:
            raise ValidationError(f"{col.key} cannot be blank")
        if isinstance(col.type, String) and col.type.length and len(text) > col.type.length:
            raise ValidationError(f"{col.key} exceeds max length {col.type.length}")
        return text
    return value


def validate_payload(*, model, payload, policy: ModelValidationPolicy, partial: bool = False) -> dict:
    """
    Clean a request body for a stock write.

    Keys outside policy.writable_fields are rejected. Keys that name a
    column of model are coerced against that column; any other allowed key
    is an integer operation parameter (e.g. "quantity"). Unless partial,
    every required field must be present and non-null.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if payload.get(f) is None)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    columns = model.__table__.columns
    patch: dict = {}
    for key, raw in payload.items():
        if key not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {key}")
        if raw is None:
            if key in columns and not columns[key].nullable:
                raise ValidationError(f"{key} cannot be null")
            patch[key] = None
        elif key in columns:
            patch[key] = _coerce_value(columns[key], raw)
        else:
            patch[key] = parse_int(raw, key)
    return patch


def parse_int(value: Any, field: str) -> int:
    """Strict integer parsing for query-string and JSON values."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().removeprefix("-").isdigit():
        return int(value.strip())
    raise ValidationError(f"{field} must be an integer")


def require_positive_quantity(quantity: Any, field: str = "quantity") -> int:
    qty = parse_int(quantity, field)
    if qty <= 0:
        raise ValidationError(f"{field} must be > 0")
    return qty


def enforce_rules_restock(patch: dict) -> None:
    require_positive_quantity(patch.get("quantity_added"), "quantity_added")
    cost = patch.get("cost_per_unit_cents")
    if cost is None:
        raise ValidationError("cost_per_unit_cents is required for restock")
    if cost < 0:
        raise ValidationError("cost_per_unit_cents must be >= 0")
    if cost > MAX_COST_CENTS:
        raise ValidationError(f"cost_per_unit_cents cannot exceed {MAX_COST_CENTS}")


def enforce_rules_adjust(patch: dict) -> None:
    # ADJUSTMENT requires a non-zero signed delta and a reason
    if patch.get("quantity_delta") in (None, 0):
        raise ValidationError("quantity_delta must be non-zero for ADJUSTMENT")
    if not patch.get("reason"):
        raise ValidationError("reason is required for ADJUSTMENT")
