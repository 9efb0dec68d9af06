# backend/stockledger/routes/system.py
"""
System health endpoint.

Reports database connectivity plus the payment context backlog so
operators can see whether the sweeper is keeping up.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import PaymentContext, StockRecord
from stockledger.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        stock_records = db.session.query(StockRecord).count()
        pending_contexts = db.session.query(PaymentContext).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "stock_records": stock_records,
                "pending_payment_contexts": pending_contexts,
            },
        }
    except Exception as e:
        db.session.rollback()
        current_app.logger.exception("Database health check failed")
        return {"status": "unhealthy", "error": str(e)}


@system_bp.get("/health")
def health():
    database = check_database_health()
    healthy = database["status"] == "healthy"
    body = {
        "status": "ok" if healthy else "degraded",
        "timestamp": to_utc_z(utcnow()),
        "database": database,
    }
    return body, (200 if healthy else 503)
