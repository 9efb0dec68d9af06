from __future__ import annotations

from ..extensions import db
from stockledger.time_utils import to_utc_z, utcnow


class PaymentNotification(db.Model):
    """
    Persisted gateway webhook (ITN).

    (pf_payment_id, signature) is the duplicate-delivery key. The unique
    constraint means only one of two racing deliveries can be stored; the
    loser is not allowed to create an order.
    """
    __tablename__ = "payment_notifications"
    __table_args__ = (
        db.UniqueConstraint("pf_payment_id", "signature", name="uq_payment_notifications_pf_signature"),
        db.Index("ix_payment_notifications_reference", "payment_reference"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.String(64), nullable=True)
    pf_payment_id = db.Column(db.String(64), nullable=False)
    payment_reference = db.Column(db.String(64), nullable=False)
    payment_status = db.Column(db.String(32), nullable=False)

    item_name = db.Column(db.String(255), nullable=True)
    amount_gross_cents = db.Column(db.Integer, nullable=True)
    amount_fee_cents = db.Column(db.Integer, nullable=True)
    amount_net_cents = db.Column(db.Integer, nullable=True)

    email_address = db.Column(db.String(255), nullable=True)
    billing_date = db.Column(db.DateTime(timezone=True), nullable=True)
    signature = db.Column(db.String(64), nullable=True)
    raw_payload = db.Column(db.Text, nullable=True)

    received_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "merchant_id": self.merchant_id,
            "pf_payment_id": self.pf_payment_id,
            "payment_reference": self.payment_reference,
            "payment_status": self.payment_status,
            "item_name": self.item_name,
            "amount_gross_cents": self.amount_gross_cents,
            "amount_fee_cents": self.amount_fee_cents,
            "amount_net_cents": self.amount_net_cents,
            "email_address": self.email_address,
            "billing_date": to_utc_z(self.billing_date),
            "signature": self.signature,
            "received_at": to_utc_z(self.received_at),
        }


class PaymentContext(db.Model):
    """
    Checkout context captured when the payment redirect is generated and
    consumed when the matching webhook settles the order. Rows older than
    PAYMENT_CONTEXT_TTL_HOURS are treated as absent and swept periodically.
    """
    __tablename__ = "payment_contexts"
    __table_args__ = (
        db.Index("ix_payment_contexts_created", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    payment_reference = db.Column(db.String(64), nullable=False, unique=True)
    user_id = db.Column(db.Integer, nullable=False)

    delivery_address = db.Column(db.JSON, nullable=True)
    delivery_method = db.Column(db.String(32), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    full_name = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "payment_reference": self.payment_reference,
            "user_id": self.user_id,
            "delivery_address": self.delivery_address,
            "delivery_method": self.delivery_method,
            "email": self.email,
            "phone": self.phone,
            "full_name": self.full_name,
            "created_at": to_utc_z(self.created_at),
        }
