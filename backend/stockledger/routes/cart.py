# Overview: Flask API routes for cart contents and checkout readiness.

from flask import Blueprint, current_app

from ..services import availability_service, cart_service

cart_bp = Blueprint("cart", __name__, url_prefix="/api/cart")


@cart_bp.get("/<int:user_id>")
def get_cart_route(user_id: int):
    cart = cart_service.get_full_cart(user_id)
    if cart is None:
        return {"error": "Cart not found"}, 404
    return {"cart": cart.to_dict()}, 200


@cart_bp.get("/<int:user_id>/availability")
def cart_availability_route(user_id: int):
    """Every problem in the cart at once; allow_checkout is false if there is any."""
    try:
        cart = cart_service.get_cart(user_id)
        if cart is None:
            return {"error": "Cart not found"}, 404
        result = availability_service.check_cart(cart.items)
    except Exception:
        current_app.logger.exception("Failed to check cart availability for user %s", user_id)
        return {"error": "Internal server error"}, 500
    return result.to_dict(), 200
