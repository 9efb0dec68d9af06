# backend/stockledger/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///stockledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Payment gateway. PAYFAST_ENV selects the sandbox or production credentials.
    PAYFAST_ENV = os.environ.get("PAYFAST_ENV", "sandbox")  # "production", "live" or "true" for live payments
    PAYFAST_MERCHANT_ID = os.environ.get("PAYFAST_MERCHANT_ID")
    PAYFAST_MERCHANT_KEY = os.environ.get("PAYFAST_MERCHANT_KEY")
    PAYFAST_MERCHANT_ID_SANDBOX = os.environ.get("PAYFAST_MERCHANT_ID_SANDBOX", "10000100")
    PAYFAST_MERCHANT_KEY_SANDBOX = os.environ.get("PAYFAST_MERCHANT_KEY_SANDBOX", "46f0cd694581a")
    PAYFAST_PASSPHRASE = os.environ.get("PAYFAST_PASSPHRASE")
    PAYFAST_RETURN_URL = os.environ.get("PAYFAST_RETURN_URL")
    PAYFAST_CANCEL_URL = os.environ.get("PAYFAST_CANCEL_URL")
    BACKEND_URL = os.environ.get("BACKEND_URL")

    # Checkout context store
    PAYMENT_CONTEXT_TTL_HOURS = _env_int("PAYMENT_CONTEXT_TTL_HOURS", 24)
    PAYMENT_CONTEXT_SWEEP_INTERVAL_SECONDS = _env_int("PAYMENT_CONTEXT_SWEEP_INTERVAL_SECONDS", 3600)

    # Loyalty: points per whole currency unit, plus a flat bonus above a threshold
    LOYALTY_POINTS_PER_UNIT = _env_int("LOYALTY_POINTS_PER_UNIT", 1)
    LOYALTY_BONUS_THRESHOLD_CENTS = _env_int("LOYALTY_BONUS_THRESHOLD_CENTS", 100_000)
    LOYALTY_BONUS_POINTS = _env_int("LOYALTY_BONUS_POINTS", 50)
