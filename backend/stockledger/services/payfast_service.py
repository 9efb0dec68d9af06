# Overview: Service-layer operations for the PayFast gateway; checkout redirects and payment status.

"""
PayFast Integration

WHY: Shoppers pay on the gateway's hosted page. We hand them a signed
redirect URL and later learn the outcome through the ITN webhook
(settlement_service). This module owns everything gateway-specific:
- configuration (sandbox vs production merchant)
- the parameter signature
- payment references (also used as the order number)
- mapping the gateway's free-form status strings onto PAYMENT_STATUS_*

DESIGN NOTE: Sandbox checkouts always charge a nominal 5.00 so test
payments never move real cart totals through the sandbox.
"""

from __future__ import annotations

import hashlib
import random
from dataclasses import dataclass
from datetime import datetime
from urllib.parse import quote_plus

from flask import current_app

from ..extensions import db
from ..models import PaymentNotification
from stockledger.time_utils import utcnow
from . import availability_service, cart_service, order_service, payment_context_service


class PaymentError(Exception):
    """Raised for checkout/payment operation errors."""
    pass


class ConfigurationError(PaymentError):
    """Gateway credentials or callback URLs are missing."""
    pass


# =============================================================================
# PAYMENT STATUS (CONSTANTS)
# =============================================================================

PAYMENT_STATUS_PAID = "PAID"
PAYMENT_STATUS_FAILED = "FAILED"
PAYMENT_STATUS_CANCELLED = "CANCELLED"
PAYMENT_STATUS_DECLINED = "DECLINED"
PAYMENT_STATUS_PROCESSING = "PROCESSING"
PAYMENT_STATUS_PENDING = "PENDING"

_STATUS_SYNONYMS = {
    PAYMENT_STATUS_PAID: ("COMPLETED", "COMPLETE", "PAID", "SUCCESS"),
    PAYMENT_STATUS_FAILED: ("FAILED", "FAILURE", "ERROR"),
    PAYMENT_STATUS_CANCELLED: ("CANCELLED", "CANCELED", "CANCEL"),
    PAYMENT_STATUS_DECLINED: ("DECLINED", "DECLINE"),
    PAYMENT_STATUS_PROCESSING: ("PROCESSING",),
    PAYMENT_STATUS_PENDING: ("PENDING",),
}
STATUS_LOOKUP = {raw: status for status, raws in _STATUS_SYNONYMS.items() for raw in raws}

# The gateway reports a finished payment as COMPLETE
GATEWAY_STATUS_COMPLETE = "COMPLETE"

PRODUCTION_URL = "https://www.payfast.co.za"
SANDBOX_URL = "https://sandbox.payfast.co.za"
SANDBOX_AMOUNT_CENTS = 500

DEFAULT_DELIVERY_METHOD = "home-delivery"
NOTIFY_PATH = "/api/payfast/notification"


@dataclass(frozen=True)
class PayFastConfig:
    merchant_id: str
    merchant_key: str
    payment_url: str
    is_production: bool
    passphrase: str | None = None


def parse_payment_status(raw) -> str:
    """Case-insensitive, trimmed; anything unrecognized is PENDING."""
    if not isinstance(raw, str):
        return PAYMENT_STATUS_PENDING
    return STATUS_LOOKUP.get(raw.strip().upper(), PAYMENT_STATUS_PENDING)


def get_payfast_config() -> PayFastConfig:
    cfg = current_app.config
    is_production = str(cfg.get("PAYFAST_ENV") or "").strip().lower() in ("true", "production", "live")
    passphrase = cfg.get("PAYFAST_PASSPHRASE") or None

    if is_production:
        if not cfg.get("PAYFAST_MERCHANT_ID") or not cfg.get("PAYFAST_MERCHANT_KEY"):
            raise ConfigurationError("Missing production PayFast credentials")
        return PayFastConfig(cfg["PAYFAST_MERCHANT_ID"], cfg["PAYFAST_MERCHANT_KEY"], PRODUCTION_URL, True, passphrase)

    return PayFastConfig(
        cfg.get("PAYFAST_MERCHANT_ID_SANDBOX") or "10000100",
        cfg.get("PAYFAST_MERCHANT_KEY_SANDBOX") or "46f0cd694581a",
        SANDBOX_URL,
        False,
        passphrase,
    )


def validate_config(config: PayFastConfig) -> None:
    if not config.merchant_id or not config.merchant_key:
        raise ConfigurationError("Missing PayFast configuration - check merchant ID and key")
    if not current_app.config.get("BACKEND_URL"):
        raise ConfigurationError("Missing BACKEND_URL configuration")
    if not current_app.config.get("PAYFAST_RETURN_URL"):
        raise ConfigurationError("Missing PAYFAST_RETURN_URL configuration")


def _encode_pairs(params: dict) -> str:
    return "&".join(f"{key}={quote_plus(str(value))}" for key, value in params.items())


def generate_signature(params: dict, passphrase: str | None = None) -> str:
    """
    MD5 over the alphabetically sorted, non-empty parameters joined as
    key=value&...; any existing signature key is ignored.
    """
    signed = {
        key: params[key]
        for key in sorted(params)
        if key != "signature" and params[key] is not None and params[key] != ""
    }
    if passphrase:
        signed["passphrase"] = passphrase
    return hashlib.md5(_encode_pairs(signed).encode("utf-8")).hexdigest()


def generate_payment_reference(user_id: int, prefix: str = "Order", *, now: datetime | None = None) -> str:
    """<prefix>_<epoch milliseconds>_<user id>_<3-digit random>"""
    moment = now or utcnow()
    epoch_ms = int((moment - datetime(1970, 1, 1)).total_seconds() * 1000)
    return f"{prefix}_{epoch_ms}_{user_id}_{random.randint(0, 999):03d}"


def format_amount(amount_cents: int) -> str:
    return f"{amount_cents // 100}.{amount_cents % 100:02d}"


def build_payment_url(
    config: PayFastConfig,
    *,
    amount_cents: int,
    payment_reference: str,
    cart_id: int,
    item_count: int,
    email: str | None,
    delivery_method: str = DEFAULT_DELIVERY_METHOD,
) -> str:
    app_cfg = current_app.config
    return_base = app_cfg["PAYFAST_RETURN_URL"].rstrip("/")
    cancel_base = (app_cfg.get("PAYFAST_CANCEL_URL") or app_cfg["PAYFAST_RETURN_URL"]).rstrip("/")

    params = {
        "merchant_id": config.merchant_id,
        "merchant_key": config.merchant_key,
        "return_url": f"{return_base}/client/dashboard/order-history?paymentReference={payment_reference}&status=success",
        "cancel_url": f"{cancel_base}/client/checkout?paymentReference={payment_reference}&status=cancelled",
        "notify_url": f"{app_cfg['BACKEND_URL'].rstrip('/')}{NOTIFY_PATH}",
        "m_payment_id": payment_reference,
        "amount": format_amount(amount_cents),
        "item_name": f"Cart Order #{cart_id}",
        "item_description": f"Cart {cart_id} - {delivery_method} - {item_count} items",
        "email_address": email or "customer@example.com",
    }
    params["signature"] = generate_signature(params, config.passphrase)
    return f"{config.payment_url}/eng/process?{_encode_pairs(params)}"


def generate_payment_from_cart(
    user_id: int,
    *,
    email: str | None,
    phone: str | None = None,
    full_name: str | None = None,
    delivery_address: dict | None = None,
    delivery_method: str = DEFAULT_DELIVERY_METHOD,
) -> dict:
    """
    Gate the cart on availability, snapshot the checkout context, and
    return a signed gateway redirect.

    Raises PaymentError if the cart is missing/empty and ConfigurationError
    if the gateway is not configured.
    """
    config = get_payfast_config()
    validate_config(config)

    cart = cart_service.get_full_cart(user_id)
    if cart is None or not cart.lines:
        raise PaymentError("Cart not found or empty")

    availability = availability_service.check_cart(cart.items)
    if not availability.allow_checkout:
        current_app.logger.info(
            "Checkout blocked for user %s: %s", user_id, "; ".join(availability.reasons)
        )
        return {
            "payment_url": "",
            "payment_reference": "",
            "amount": "0.00",
            "merchant_id": config.merchant_id,
            "allow_checkout": False,
            "availability_issues": availability.reasons,
        }

    amount_cents = cart.total_cents if config.is_production else SANDBOX_AMOUNT_CENTS
    if amount_cents <= 0:
        raise PaymentError("Invalid cart amount")

    reference = generate_payment_reference(user_id)
    payment_context_service.put_context(
        reference,
        user_id=user_id,
        delivery_method=delivery_method,
        delivery_address=delivery_address,
        email=email,
        phone=phone,
        full_name=full_name,
    )

    url = build_payment_url(
        config,
        amount_cents=amount_cents,
        payment_reference=reference,
        cart_id=cart.cart_id,
        item_count=len(cart.lines),
        email=email,
        delivery_method=delivery_method,
    )
    current_app.logger.info("Generated payment %s for user %s (%s)", reference, user_id, format_amount(amount_cents))

    return {
        "payment_url": url,
        "payment_reference": reference,
        "amount": format_amount(amount_cents),
        "merchant_id": config.merchant_id,
        "allow_checkout": True,
        "availability_issues": [],
    }


def find_notification_by_reference(payment_reference: str) -> PaymentNotification | None:
    return (
        db.session.query(PaymentNotification)
        .filter_by(payment_reference=payment_reference)
        .order_by(PaymentNotification.received_at.desc(), PaymentNotification.id.desc())
        .first()
    )


def check_payment_status(payment_reference: str) -> dict:
    """
    Polling endpoint backing the return page:
    - order exists                    -> PAID, verified
    - latest notification is COMPLETE -> PAID, verified, no order yet
    - otherwise                       -> PENDING
    """
    order = order_service.find_order_by_number(payment_reference)
    if order is not None:
        return {"status": PAYMENT_STATUS_PAID, "order_exists": True, "order": order.to_dict(), "verified": True}

    notification = find_notification_by_reference(payment_reference)
    if notification is not None and notification.payment_status == GATEWAY_STATUS_COMPLETE:
        return {"status": PAYMENT_STATUS_PAID, "order_exists": False, "verified": True}

    return {"status": PAYMENT_STATUS_PENDING, "order_exists": False, "verified": False}
