# Overview: Service-layer operations for composite offers (deals and promotions).

"""
Composite Offer Resolver

Deals and promotions bundle product sizes. This module expands an offer
into per-size quantities, decides whether an offer can be sold, finds the
offers a size participates in, and owns the one-directional
auto-deactivation rule:

    an active offer is deactivated once ANY constituent has sellable
    stock below 1; restocking never reactivates it (reactivate() is an
    explicit admin action)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import Deal, Promotion
from ..validation import ConflictError, NotFoundError, ValidationError
from stockledger.time_utils import to_utc_naive, utcnow
from . import stock_service
from .stock_service import StockOwner


OFFER_MODELS = {
    Deal.OFFER_KIND: Deal,
    Promotion.OFFER_KIND: Promotion,
}


@dataclass(frozen=True)
class Constituent:
    product_id: int
    size_id: int | None
    quantity: int

    @property
    def owner(self) -> StockOwner:
        if self.size_id is not None:
            return StockOwner.size(self.size_id)
        return StockOwner.product(self.product_id)


@dataclass
class OffersContaining:
    deals: list
    promotions: list

    def to_dict(self) -> dict:
        return {
            "deals": [d.to_dict() for d in self.deals],
            "promotions": [p.to_dict() for p in self.promotions],
        }


def offer_model(kind: str):
    try:
        return OFFER_MODELS[kind]
    except KeyError:
        raise ValidationError(f"offer kind must be one of {', '.join(OFFER_MODELS)}")


def get_offer(kind: str, offer_id: int):
    return db.session.get(offer_model(kind), offer_id)


def require_offer(kind: str, offer_id: int):
    offer = get_offer(kind, offer_id)
    if offer is None:
        raise NotFoundError(f"{offer_model(kind).OFFER_LABEL} {offer_id} not found")
    return offer


def _parse_entry(offer, entry) -> Constituent:
    if not isinstance(entry, dict) or entry.get("product_id") is None:
        raise ValueError(f"{offer.OFFER_LABEL} {offer.id} has a malformed constituent: {entry!r}")
    multiplier = entry.get("quantity", 1)
    if not isinstance(multiplier, int) or isinstance(multiplier, bool) or multiplier < 1:
        raise ValueError(f"{offer.OFFER_LABEL} {offer.id} has an invalid constituent quantity: {multiplier!r}")
    size_id = entry.get("size_id")
    return Constituent(
        product_id=int(entry["product_id"]),
        size_id=int(size_id) if size_id is not None else None,
        quantity=multiplier,
    )


def constituents(offer) -> list[Constituent]:
    return [_parse_entry(offer, entry) for entry in offer.constituent_entries()]


def expand(offer, requested_quantity: int) -> list[Constituent]:
    """Per-constituent quantities for buying requested_quantity units of the offer."""
    return [
        Constituent(c.product_id, c.size_id, c.quantity * requested_quantity)
        for c in constituents(offer)
    ]


def check_offer(kind: str, offer_id: int, requested_quantity: int, *, now: datetime | None = None):
    """
    Availability of requested_quantity units of an offer.

    A missing offer is reported alone. Otherwise the offer-level problems
    (inactive, outside its window) are reported together with every failing
    constituent, each prefixed with the offer label and product id.
    """
    from .availability_service import AvailabilityResult, check_product

    model = offer_model(kind)
    label = model.OFFER_LABEL
    offer = db.session.get(model, offer_id)
    if offer is None:
        return AvailabilityResult.unavailable(f"{label} not found")

    reasons: list[str] = []
    if not offer.is_active:
        reasons.append(f"{label} is no longer active")

    current = to_utc_naive(now) if now is not None else utcnow()
    if offer.start_date is not None and current < to_utc_naive(offer.start_date):
        reasons.append(f"{label} has not started yet")
    if offer.end_date is not None and current > to_utc_naive(offer.end_date):
        reasons.append(f"{label} has expired")

    for part in expand(offer, requested_quantity):
        result = check_product(part.product_id, part.size_id, part.quantity)
        reasons.extend(f"{label} product ({part.product_id}): {reason}" for reason in result.reasons)

    return AvailabilityResult(is_available=not reasons, reasons=reasons)


def find_offers_containing(size_id: int) -> OffersContaining:
    """
    Active deals and promotions that include size_id.

    NOTE: full scan of active offers; constituent lists are JSON so there is
    no index to join through. Fine at marketplace catalog sizes.
    """
    deals = [d for d in db.session.query(Deal).filter_by(is_active=True).all() if d.contains_size(size_id)]
    promotions = [p for p in db.session.query(Promotion).filter_by(is_active=True).all() if p.contains_size(size_id)]
    return OffersContaining(deals=deals, promotions=promotions)


def should_deactivate(offer) -> bool:
    return any(stock_service.get_sellable(c.owner) < 1 for c in constituents(offer))


def deactivate_if_unsellable(offer) -> bool:
    """Deactivate an active offer whose stock ran out. Returns True if it changed."""
    if not offer.is_active or not should_deactivate(offer):
        return False
    offer.is_active = False
    db.session.commit()
    current_app.logger.info("Deactivated %s %s: a constituent is out of stock", offer.OFFER_KIND, offer.id)
    return True


def run_deactivation_checks(deal_ids, promotion_ids) -> list[tuple[str, int]]:
    """
    Re-check every queued offer. A failure on one offer is logged and does
    not stop the others.
    """
    deactivated: list[tuple[str, int]] = []
    queue = [(Deal.OFFER_KIND, i) for i in sorted(deal_ids)] + [
        (Promotion.OFFER_KIND, i) for i in sorted(promotion_ids)
    ]
    for kind, offer_id in queue:
        try:
            offer = get_offer(kind, offer_id)
            if offer is not None and deactivate_if_unsellable(offer):
                deactivated.append((kind, offer_id))
        except Exception:
            db.session.rollback()
            current_app.logger.exception("Deactivation check failed for %s %s", kind, offer_id)
    return deactivated


def reactivate(kind: str, offer_id: int, *, force: bool = False):
    """
    Admin-only path back to active. Refuses while a constituent is still
    out of stock unless force=True.
    """
    offer = require_offer(kind, offer_id)
    if offer.is_active:
        return offer
    if not force and should_deactivate(offer):
        raise ConflictError(f"{offer.OFFER_LABEL} {offer_id} still has an out-of-stock constituent")
    offer.is_active = True
    db.session.commit()
    current_app.logger.info("Reactivated %s %s (force=%s)", kind, offer_id, force)
    return offer
