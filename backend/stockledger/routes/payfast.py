# Overview: Flask API routes for PayFast checkout, ITN webhook, and payment status.

# backend/stockledger/routes/payfast.py
"""
Payment gateway routes.

The notification route is called by the gateway, not by our frontend: it
takes a form-encoded body and answers in plain text, and it only returns
500 if the settlement handler itself could not run.
"""
from flask import Blueprint, Response, current_app, jsonify, request

from ..services import payfast_service
from ..services.payfast_service import ConfigurationError, PaymentError
from ..services.settlement_service import handle_payment_notification
from ..validation import ValidationError, parse_int

payfast_bp = Blueprint("payfast", __name__, url_prefix="/api/payfast")


def _text_response(body: str, status: int) -> Response:
    return Response(body, status=status, mimetype="text/plain")


@payfast_bp.post("/generate-payment")
def generate_payment_route():
    """
    Start checkout for a user's cart.

    Body: user_id (required), email, phone, full_name, delivery_address,
    delivery_method. Responds 200 with allow_checkout=false and the
    availability issues when the cart cannot be bought.
    """
    payload = request.get_json(silent=True) or {}

    try:
        user_id = parse_int(payload.get("user_id"), "user_id")
        delivery_address = payload.get("delivery_address")
        if delivery_address is not None and not isinstance(delivery_address, (dict, str)):
            raise ValidationError("delivery_address must be an object or string")
        if isinstance(delivery_address, str):
            delivery_address = {"line1": delivery_address}

        result = payfast_service.generate_payment_from_cart(
            user_id,
            email=payload.get("email"),
            phone=payload.get("phone"),
            full_name=payload.get("full_name"),
            delivery_address=delivery_address,
            delivery_method=payload.get("delivery_method") or payfast_service.DEFAULT_DELIVERY_METHOD,
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConfigurationError as e:
        current_app.logger.error("Payment gateway misconfigured: %s", e)
        return jsonify({"error": str(e)}), 500
    except PaymentError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to generate payment")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(result), 200


@payfast_bp.post("/notification")
def payfast_notification_route():
    """ITN webhook: "OK" 200 when handled, "Error processing ITN" 400 when rejected."""
    try:
        data = request.form.to_dict() if request.form else (request.get_json(silent=True) or {})
        result = handle_payment_notification(data)
    except Exception:
        current_app.logger.exception("ITN handler crashed")
        return _text_response("Internal server error", 500)

    if result.success:
        current_app.logger.info("ITN handled: %s (%s)", result.message, result.state)
        return _text_response("OK", 200)

    current_app.logger.warning("ITN rejected: %s", result.message)
    return _text_response("Error processing ITN", 400)


@payfast_bp.get("/status/<payment_reference>")
def payment_status_route(payment_reference: str):
    try:
        return jsonify(payfast_service.check_payment_status(payment_reference)), 200
    except Exception:
        current_app.logger.exception("Failed to check payment status for %s", payment_reference)
        return jsonify({"error": "Internal server error"}), 500
