# Overview: Service-layer operations for checkout contexts awaiting payment confirmation.

"""
Payment Context Store

WHY a table instead of process memory: the webhook that settles a payment
can land on any worker, so the checkout snapshot (user, delivery details,
contact) has to live in the shared database.

Expiry:
- an entry is stale once strictly more than PAYMENT_CONTEXT_TTL_HOURS have
  passed since it was written
- get() treats a stale entry as absent and deletes it
- the sweeper thread (and the maintenance CLI) delete all stale entries
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta

from flask import current_app

from ..extensions import db
from ..models import PaymentContext
from stockledger.time_utils import has_expired, to_utc_naive, utcnow


def _ttl() -> timedelta:
    return timedelta(hours=current_app.config["PAYMENT_CONTEXT_TTL_HOURS"])


def put_context(
    payment_reference: str,
    *,
    user_id: int,
    delivery_method: str,
    delivery_address: dict | None = None,
    email: str | None = None,
    phone: str | None = None,
    full_name: str | None = None,
    now: datetime | None = None,
) -> PaymentContext:
    """Upsert; writing again refreshes the timestamp."""
    ctx = db.session.query(PaymentContext).filter_by(payment_reference=payment_reference).first()
    if ctx is None:
        ctx = PaymentContext(payment_reference=payment_reference)
        db.session.add(ctx)

    ctx.user_id = user_id
    ctx.delivery_method = delivery_method
    ctx.delivery_address = delivery_address
    ctx.email = email
    ctx.phone = phone
    ctx.full_name = full_name
    ctx.created_at = to_utc_naive(now) if now is not None else utcnow()
    db.session.commit()
    return ctx


def get_context(payment_reference: str, *, now: datetime | None = None) -> PaymentContext | None:
    ctx = db.session.query(PaymentContext).filter_by(payment_reference=payment_reference).first()
    if ctx is None:
        return None
    if has_expired(ctx.created_at, _ttl(), now=now):
        current_app.logger.info("Evicting expired payment context %s", payment_reference)
        db.session.delete(ctx)
        db.session.commit()
        return None
    return ctx


def delete_context(payment_reference: str) -> bool:
    deleted = db.session.query(PaymentContext).filter_by(payment_reference=payment_reference).delete()
    db.session.commit()
    return bool(deleted)


def sweep_expired_contexts(*, now: datetime | None = None) -> int:
    current = to_utc_naive(now) if now is not None else utcnow()
    cutoff = current - _ttl()
    deleted = db.session.query(PaymentContext).filter(PaymentContext.created_at < cutoff).delete()
    db.session.commit()
    return deleted


class ContextSweeper(threading.Thread):
    """Daemon thread that sweeps expired contexts every interval seconds."""

    def __init__(self, app, interval_seconds: int):
        super().__init__(name="payment-context-sweeper", daemon=True)
        self.app = app
        self.interval_seconds = interval_seconds
        self._stop_event = threading.Event()

    def run(self):
        while not self._stop_event.wait(self.interval_seconds):
            with self.app.app_context():
                try:
                    deleted = sweep_expired_contexts()
                    if deleted:
                        self.app.logger.info("Swept %s expired payment contexts", deleted)
                except Exception:
                    db.session.rollback()
                    self.app.logger.exception("Payment context sweep failed")
                finally:
                    db.session.remove()

    def stop(self):
        self._stop_event.set()


def start_context_sweeper(app) -> ContextSweeper | None:
    interval = app.config.get("PAYMENT_CONTEXT_SWEEP_INTERVAL_SECONDS", 0)
    if not interval or interval <= 0:
        return None
    sweeper = ContextSweeper(app, interval)
    sweeper.start()
    app.extensions["payment_context_sweeper"] = sweeper
    return sweeper
