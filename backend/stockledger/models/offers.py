from __future__ import annotations

from ..extensions import db
from stockledger.time_utils import to_utc_z


class CompositeOfferMixin:
    """
    Columns shared by deals and promotions.

    products holds the constituent list as JSON:
        [{"product_id": 1, "size_id": 7, "quantity": 2}, ...]
    quantity is the per-unit multiplier; buying N of the offer consumes
    N * quantity of each constituent. size_id may be null for products sold
    without sizes.

    WHY JSON: constituents are only ever read and replaced as a whole, and
    the reverse lookup (offers containing a size) scans active offers in
    Python so it stays portable across SQLite and PostgreSQL.
    """
    id = db.Column(db.Integer, primary_key=True)
    vendor_id = db.Column(db.Integer, nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    price_cents = db.Column(db.Integer, nullable=False, default=0)

    products = db.Column(db.JSON, nullable=False, default=list)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    start_date = db.Column(db.DateTime(timezone=True), nullable=True)
    end_date = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    # Overridden per concrete offer; used in availability messages and routes
    OFFER_KIND = ""
    OFFER_LABEL = ""

    def constituent_entries(self) -> list[dict]:
        return list(self.products or [])

    def contains_size(self, size_id: int) -> bool:
        return any(entry.get("size_id") == size_id for entry in self.constituent_entries())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.OFFER_KIND,
            "vendor_id": self.vendor_id,
            "name": self.name,
            "description": self.description,
            "price_cents": self.price_cents,
            "products": self.constituent_entries(),
            "is_active": self.is_active,
            "start_date": to_utc_z(self.start_date),
            "end_date": to_utc_z(self.end_date),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Deal(CompositeOfferMixin, db.Model):
    """Bundle of product sizes sold together at a single price."""
    __tablename__ = "deals"
    __table_args__ = (
        db.Index("ix_deals_active_window", "is_active", "start_date", "end_date"),
        {"sqlite_autoincrement": True},
    )

    OFFER_KIND = "deal"
    OFFER_LABEL = "Deal"


class Promotion(CompositeOfferMixin, db.Model):
    """Time-boxed promotional bundle; same stock semantics as a deal."""
    __tablename__ = "promotions"
    __table_args__ = (
        db.Index("ix_promotions_active_window", "is_active", "start_date", "end_date"),
        {"sqlite_autoincrement": True},
    )

    OFFER_KIND = "promotion"
    OFFER_LABEL = "Promotion"
